"""
Policy lifecycle service.

DRAFT/PENDING -> ACTIVE -> {TERMINATED, EXPIRED}; DRAFT/PENDING -> CANCELLED.
TERMINATED, EXPIRED and CANCELLED policies can no longer be modified.
"""
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.errors import (
    BusinessRuleError,
    ConcurrentModificationError,
    IllegalStateError,
    IntegrationError,
    IntegrationRejectedError,
    NotFoundError,
    UmbrellaError,
    ValidationError,
    Violation,
)
from app.core.logging import get_logger, log_audit_event
from app.core.tasks import TaskExecutor, TaskHandle
from app.db.models import (
    Coverage,
    Endorsement,
    ExportStatus,
    Policy,
    PolicyExport,
    PolicyStatus,
    User,
)
from app.integrations import PolicyStarClient
from app.services.result import Err, Ok, Result
from app.services.validation import Validator

logger = get_logger(__name__)

UPDATABLE_FIELDS = ("policy_number", "total_premium", "effective_date", "expiry_date", "owner_id")
COVERAGE_FIELDS = ("coverage_type", "description", "limit_amount", "deductible", "premium")
ACTIVATABLE = frozenset({PolicyStatus.DRAFT, PolicyStatus.PENDING})


@dataclass
class ExportOutcome:
    export_id: int
    status: ExportStatus
    reference: Optional[str]


@dataclass
class ExportSubmission:
    """A queued export: the recorded attempt plus the handle of the running task."""
    export: PolicyExport
    handle: "TaskHandle[ExportOutcome]"


def build_export_payload(policy: Policy) -> Dict[str, Any]:
    """Body sent to PolicySTAR's export endpoint."""
    return {
        "policyId": policy.id,
        "policyNumber": policy.policy_number,
        "effectiveDate": policy.effective_date.isoformat(),
        "expiryDate": policy.expiry_date.isoformat(),
        "totalPremium": str(policy.total_premium),
        "status": policy.status.value,
        "coverages": [
            {
                "coverageType": c.coverage_type,
                "limitAmount": str(c.limit_amount),
                "deductible": str(c.deductible),
                "premium": str(c.premium),
            }
            for c in policy.coverages
        ],
        "endorsements": [
            {
                "endorsementNumber": e.endorsement_number,
                "premiumAdjustment": str(e.premium_adjustment),
                "effectiveDate": e.effective_date.isoformat(),
                "expiryDate": e.expiry_date.isoformat(),
            }
            for e in policy.endorsements
        ],
    }


class PolicyService:
    """Creates policies and drives their status transitions."""

    def __init__(
        self,
        db: Session,
        validator: Validator,
        executor: TaskExecutor,
        policystar: PolicyStarClient,
        session_factory: Callable[[], Session],
    ):
        self.db = db
        self.validator = validator
        self.executor = executor
        self.policystar = policystar
        self.session_factory = session_factory

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _commit(self, policy_id: Any) -> Optional[UmbrellaError]:
        """Commit the unit of work; map lost optimistic-lock races to an error."""
        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            logger.warning(f"Concurrent modification of policy {policy_id}")
            return ConcurrentModificationError("Policy", policy_id)
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Integrity error on policy {policy_id}: {e.orig}")
            return ValidationError.single("policy_number", "is already in use")
        return None

    def _number_taken(self, policy_number: str, exclude_id: Optional[int] = None) -> bool:
        query = self.db.query(Policy.id).filter(Policy.policy_number == policy_number)
        if exclude_id is not None:
            query = query.filter(Policy.id != exclude_id)
        return query.first() is not None

    def _coverage_violations(self, coverages: Iterable[Dict[str, Any]]) -> List[Violation]:
        found: List[Violation] = []
        for i, coverage in enumerate(coverages):
            found.extend(self.validator.violations("coverage", coverage, prefix=f"coverages[{i}]"))
        return found

    def _transition(
        self,
        policy_id: int,
        allowed_from: Iterable[PolicyStatus],
        target: PolicyStatus,
        actor: str,
    ) -> Result[Policy]:
        result = self.get(policy_id)
        if not result.is_ok:
            return result
        policy = result.value
        if policy.status not in allowed_from:
            return Err(IllegalStateError(
                f"Policy {policy.policy_number} cannot move from {policy.status.value} to {target.value}",
                current=policy.status.value,
                target=target.value,
            ))

        previous = policy.status
        policy.status = target
        error = self._commit(policy_id)
        if error:
            return Err(error)
        self.db.refresh(policy)

        log_audit_event(
            event_type=f"POLICY_{target.value}",
            actor_id=actor,
            actor_type="user",
            details={"policy_number": policy.policy_number, "from": previous.value},
        )
        return Ok(policy)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, policy_id: int) -> Result[Policy]:
        policy = self.db.get(Policy, policy_id)
        if policy is None:
            return Err(NotFoundError("Policy", policy_id))
        return Ok(policy)

    def list(
        self,
        status: Optional[PolicyStatus] = None,
        owner_id: Optional[int] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> Result[List[Policy]]:
        query = self.db.query(Policy)
        if status is not None:
            query = query.filter(Policy.status == status)
        if owner_id is not None:
            query = query.filter(Policy.owner_id == owner_id)
        return Ok(query.order_by(Policy.id).offset(offset).limit(limit).all())

    def list_exports(self, policy_id: int) -> Result[List[PolicyExport]]:
        result = self.get(policy_id)
        if not result.is_ok:
            return result
        # Export rows are written by worker sessions; reload over the identity map
        exports = (
            self.db.query(PolicyExport)
            .filter(PolicyExport.policy_id == policy_id)
            .order_by(PolicyExport.id)
            .populate_existing()
            .all()
        )
        return Ok(exports)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create(self, data: Dict[str, Any], actor: str) -> Result[Policy]:
        """Validate and persist a new policy in DRAFT."""
        coverages = data.get("coverages") or []
        violations = self.validator.violations("policy", data) + self._coverage_violations(coverages)
        if violations:
            return Err(ValidationError(violations))

        if self.db.get(User, data["owner_id"]) is None:
            return Err(ValidationError.single("owner_id", "does not reference an existing user"))
        if self._number_taken(data["policy_number"]):
            return Err(ValidationError.single("policy_number", "is already in use"))

        policy = Policy(
            policy_number=data["policy_number"],
            owner_id=data["owner_id"],
            status=PolicyStatus.DRAFT,
            total_premium=Decimal(str(data["total_premium"])),
            effective_date=data["effective_date"],
            expiry_date=data["expiry_date"],
            coverages=[
                Coverage(**{k: c[k] for k in COVERAGE_FIELDS if c.get(k) is not None})
                for c in coverages
            ],
        )
        self.db.add(policy)
        error = self._commit(data["policy_number"])
        if error:
            return Err(error)
        self.db.refresh(policy)

        log_audit_event(
            event_type="POLICY_CREATED",
            actor_id=actor,
            actor_type="user",
            details={"policy_number": policy.policy_number, "policy_id": policy.id},
        )
        return Ok(policy)

    def update(self, policy_id: int, data: Dict[str, Any], actor: str) -> Result[Policy]:
        """Apply field changes under the optimistic lock.

        ``data["version"]``, when given, must equal the stored version.
        """
        result = self.get(policy_id)
        if not result.is_ok:
            return result
        policy = result.value

        if policy.is_terminal():
            return Err(IllegalStateError(
                f"Policy {policy.policy_number} is {policy.status.value} and can no longer be modified",
                current=policy.status.value,
            ))

        expected_version = data.get("version")
        if expected_version is not None and expected_version != policy.version:
            return Err(ConcurrentModificationError("Policy", policy_id))

        merged = {field: getattr(policy, field) for field in UPDATABLE_FIELDS}
        merged.update({k: v for k, v in data.items() if k in UPDATABLE_FIELDS and v is not None})

        coverages = data.get("coverages")
        violations = self.validator.violations("policy", merged)
        if coverages is not None:
            violations += self._coverage_violations(coverages)
        if violations:
            return Err(ValidationError(violations))

        if merged["owner_id"] != policy.owner_id and self.db.get(User, merged["owner_id"]) is None:
            return Err(ValidationError.single("owner_id", "does not reference an existing user"))
        if merged["policy_number"] != policy.policy_number and self._number_taken(
            merged["policy_number"], exclude_id=policy.id
        ):
            return Err(ValidationError.single("policy_number", "is already in use"))

        for field in UPDATABLE_FIELDS:
            setattr(policy, field, merged[field])
        policy.total_premium = Decimal(str(merged["total_premium"]))
        if coverages is not None:
            policy.coverages = [
                Coverage(**{k: c[k] for k in COVERAGE_FIELDS if c.get(k) is not None})
                for c in coverages
            ]

        error = self._commit(policy_id)
        if error:
            return Err(error)
        self.db.refresh(policy)

        log_audit_event(
            event_type="POLICY_UPDATED",
            actor_id=actor,
            actor_type="user",
            details={"policy_number": policy.policy_number, "version": policy.version},
        )
        return Ok(policy)

    def activate(self, policy_id: int, actor: str) -> Result[Policy]:
        """Underwriting approval."""
        return self._transition(policy_id, ACTIVATABLE, PolicyStatus.ACTIVE, actor)

    def cancel(self, policy_id: int, actor: str) -> Result[Policy]:
        return self._transition(policy_id, ACTIVATABLE, PolicyStatus.CANCELLED, actor)

    def terminate(self, policy_id: int, termination_date: date, actor: str) -> Result[Policy]:
        """End an ACTIVE policy early; the termination date becomes its expiry date."""
        result = self.get(policy_id)
        if not result.is_ok:
            return result
        policy = result.value

        if policy.status != PolicyStatus.ACTIVE:
            return Err(IllegalStateError(
                f"Only ACTIVE policies can be terminated; policy {policy.policy_number} "
                f"is {policy.status.value}",
                current=policy.status.value,
                target=PolicyStatus.TERMINATED.value,
            ))
        if not policy.effective_date < termination_date <= policy.expiry_date:
            return Err(IllegalStateError(
                f"Termination date {termination_date} must be after {policy.effective_date} "
                f"and on or before {policy.expiry_date}",
                current=policy.status.value,
                target=PolicyStatus.TERMINATED.value,
            ))

        original_expiry = policy.expiry_date
        policy.status = PolicyStatus.TERMINATED
        policy.expiry_date = termination_date
        error = self._commit(policy_id)
        if error:
            return Err(error)
        self.db.refresh(policy)

        log_audit_event(
            event_type="POLICY_TERMINATED",
            actor_id=actor,
            actor_type="user",
            details={
                "policy_number": policy.policy_number,
                "termination_date": termination_date.isoformat(),
                "original_expiry": original_expiry.isoformat(),
            },
        )
        return Ok(policy)

    def expire_lapsed(self, as_of: date, actor: str) -> Result[List[Policy]]:
        """Mark ACTIVE policies whose term ended before ``as_of`` as EXPIRED."""
        lapsed = (
            self.db.query(Policy)
            .filter(Policy.status == PolicyStatus.ACTIVE, Policy.expiry_date < as_of)
            .order_by(Policy.id)
            .all()
        )
        if not lapsed:
            return Ok([])

        for policy in lapsed:
            policy.status = PolicyStatus.EXPIRED
        error = self._commit("batch")
        if error:
            return Err(error)

        numbers = [p.policy_number for p in lapsed]
        logger.info(f"Expired {len(lapsed)} lapsed policies as of {as_of}")
        log_audit_event(
            event_type="POLICIES_EXPIRED",
            actor_id=actor,
            actor_type="user",
            details={"as_of": as_of.isoformat(), "policy_numbers": numbers},
        )
        return Ok(lapsed)

    def add_endorsement(self, policy_id: int, data: Dict[str, Any], actor: str) -> Result[Endorsement]:
        """Amend an ACTIVE policy and adjust its premium."""
        result = self.get(policy_id)
        if not result.is_ok:
            return result
        policy = result.value

        if policy.status != PolicyStatus.ACTIVE:
            return Err(IllegalStateError(
                f"Endorsements require an ACTIVE policy; policy {policy.policy_number} "
                f"is {policy.status.value}",
                current=policy.status.value,
            ))

        violations = self.validator.violations("endorsement", data)
        if not violations:
            if data["effective_date"] < policy.effective_date:
                violations.append(Violation("effective_date", "must not be before the policy effective date"))
            if data["expiry_date"] > policy.expiry_date:
                violations.append(Violation("expiry_date", "must not be after the policy expiry date"))
        if violations:
            return Err(ValidationError(violations))

        if self.db.query(Endorsement.id).filter(
            Endorsement.endorsement_number == data["endorsement_number"]
        ).first():
            return Err(ValidationError.single("endorsement_number", "is already in use"))

        adjustment = Decimal(str(data["premium_adjustment"]))
        new_premium = Decimal(policy.total_premium) + adjustment
        if new_premium <= 0:
            return Err(BusinessRuleError(
                f"Endorsement would reduce the premium of {policy.policy_number} to {new_premium}"
            ))

        endorsement = Endorsement(
            endorsement_number=data["endorsement_number"],
            description=data.get("description"),
            premium_adjustment=adjustment,
            effective_date=data["effective_date"],
            expiry_date=data["expiry_date"],
        )
        policy.endorsements.append(endorsement)
        policy.total_premium = new_premium
        error = self._commit(policy_id)
        if error:
            return Err(error)
        self.db.refresh(endorsement)

        log_audit_event(
            event_type="POLICY_ENDORSED",
            actor_id=actor,
            actor_type="user",
            details={
                "policy_number": policy.policy_number,
                "endorsement_number": endorsement.endorsement_number,
                "premium_adjustment": str(adjustment),
            },
        )
        return Ok(endorsement)

    # ------------------------------------------------------------------
    # PolicySTAR export
    # ------------------------------------------------------------------

    def export_to_external_system(self, policy_id: int, actor: str) -> Result[ExportSubmission]:
        """Queue a PolicySTAR export and return without waiting for it.

        The export never changes the policy status. Its outcome is written to
        the returned ``PolicyExport`` row and delivered through the handle.
        """
        result = self.get(policy_id)
        if not result.is_ok:
            return result
        policy = result.value

        if policy.status != PolicyStatus.ACTIVE:
            return Err(IllegalStateError(
                f"Only ACTIVE policies can be exported; policy {policy.policy_number} "
                f"is {policy.status.value}",
                current=policy.status.value,
            ))

        export = PolicyExport(policy_id=policy.id, status=ExportStatus.PENDING, requested_by=actor)
        self.db.add(export)
        self.db.commit()
        self.db.refresh(export)

        payload = build_export_payload(policy)
        handle = self.executor.submit(
            self._run_export,
            export.id,
            payload,
            name=f"policystar-export-{policy.policy_number}",
            integration=self.policystar.name,
        )
        logger.info(f"Queued PolicySTAR export {export.id} for policy {policy.policy_number}")
        return Ok(ExportSubmission(export=export, handle=handle))

    def _run_export(self, export_id: int, payload: Dict[str, Any]) -> ExportOutcome:
        """Worker side of an export; records the outcome in its own session.

        Every failure leaves the export row FAILED before the error reaches
        the handle, including ones no integration error describes.
        """
        try:
            self._record_export(export_id, ExportStatus.IN_PROGRESS)
            reference = self.policystar.export_policy(payload)
            remote_status = self.policystar.check_export_status(reference)
        except IntegrationError as e:
            self._record_export(export_id, ExportStatus.FAILED, error=e)
            raise
        except Exception:
            logger.error(f"PolicySTAR export {export_id} failed unexpectedly", exc_info=True)
            try:
                self._record_export(
                    export_id, ExportStatus.FAILED, error=UmbrellaError("Unexpected error during export")
                )
            except Exception:
                logger.error(f"Could not mark export {export_id} as FAILED", exc_info=True)
            raise

        if remote_status == ExportStatus.FAILED:
            error = IntegrationRejectedError(
                self.policystar.name, f"PolicySTAR reported export {reference} as failed"
            )
            self._record_export(export_id, ExportStatus.FAILED, reference=reference, error=error)
            raise error

        status = ExportStatus.COMPLETED if remote_status == ExportStatus.COMPLETED else ExportStatus.IN_PROGRESS
        self._record_export(export_id, status, reference=reference)
        return ExportOutcome(export_id=export_id, status=status, reference=reference)

    def _record_export(
        self,
        export_id: int,
        status: ExportStatus,
        reference: Optional[str] = None,
        error: Optional[UmbrellaError] = None,
    ) -> None:
        db = self.session_factory()
        try:
            export = db.get(PolicyExport, export_id)
            export.status = status
            if reference:
                export.export_reference = reference
            if error is not None:
                export.error_kind = error.kind
                export.error_message = error.message
            if status in (ExportStatus.COMPLETED, ExportStatus.FAILED):
                export.completed_at = datetime.utcnow()
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        if status == ExportStatus.FAILED:
            logger.error(f"PolicySTAR export {export_id} failed: {error.message if error else 'unknown'}")
        else:
            logger.info(f"PolicySTAR export {export_id} is {status.value}")
