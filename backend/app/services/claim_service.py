"""
Claim lifecycle service.

PENDING -> IN_REVIEW -> {APPROVED, REJECTED} -> CLOSED, with no way back.
Claims carry documents and SpeedPay payments; completed payments never add
up to more than the claim amount.
"""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.errors import (
    BusinessRuleError,
    ConcurrentModificationError,
    IllegalStateError,
    IntegrationError,
    NotFoundError,
    UmbrellaError,
    ValidationError,
)
from app.core.logging import get_logger, log_audit_event
from app.core.tasks import TaskExecutor, TaskHandle
from app.db.models import (
    ALLOWED_CONTENT_TYPES,
    Claim,
    ClaimDocument,
    ClaimStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    Policy,
)
from app.db.models.payment import COMMITTED_PAYMENT_STATUSES
from app.integrations import CLUEClient, SpeedPayClient
from app.services.document_storage import DocumentStorage
from app.services.result import Err, Ok, Result
from app.services.validation import Validator

logger = get_logger(__name__)

UNPAYABLE = frozenset({ClaimStatus.REJECTED, ClaimStatus.CLOSED})
PAID_AMOUNT_ATTEMPTS = 3


def generate_claim_number() -> str:
    return f"CLM-{uuid.uuid4().hex[:8].upper()}"


def generate_transaction_id() -> str:
    return f"PAY-{uuid.uuid4().hex[:12].upper()}"


class ClaimService:
    """Creates claims, moves them through review and pays them out."""

    def __init__(
        self,
        db: Session,
        validator: Validator,
        executor: TaskExecutor,
        speedpay: SpeedPayClient,
        clue: CLUEClient,
        storage: DocumentStorage,
    ):
        self.db = db
        self.validator = validator
        self.executor = executor
        self.speedpay = speedpay
        self.clue = clue
        self.storage = storage

    def _commit(self, claim_id: Any) -> Optional[UmbrellaError]:
        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            logger.warning(f"Concurrent modification of claim {claim_id}")
            return ConcurrentModificationError("Claim", claim_id)
        return None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, claim_id: int) -> Result[Claim]:
        claim = self.db.get(Claim, claim_id)
        if claim is None:
            return Err(NotFoundError("Claim", claim_id))
        return Ok(claim)

    def list(
        self,
        policy_id: Optional[int] = None,
        status: Optional[ClaimStatus] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> Result[List[Claim]]:
        query = self.db.query(Claim)
        if policy_id is not None:
            query = query.filter(Claim.policy_id == policy_id)
        if status is not None:
            query = query.filter(Claim.status == status)
        return Ok(query.order_by(Claim.id).offset(offset).limit(limit).all())

    def list_documents(self, claim_id: int) -> Result[List[ClaimDocument]]:
        result = self.get(claim_id)
        if not result.is_ok:
            return result
        return Ok(list(result.value.documents))

    def list_payments(self, claim_id: int) -> Result[List[Payment]]:
        result = self.get(claim_id)
        if not result.is_ok:
            return result
        return Ok(list(result.value.payments))

    def claim_history(self, claim_id: int) -> "Result[TaskHandle[List[Dict[str, Any]]]]":
        """Start a CLUE lookup for the claim's policy; the caller awaits the handle."""
        result = self.get(claim_id)
        if not result.is_ok:
            return result
        policy_number = result.value.policy.policy_number
        handle = self.executor.submit(
            self.clue.claim_history,
            policy_number,
            name=f"clue-history-{policy_number}",
            integration=self.clue.name,
        )
        return Ok(handle)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create(self, data: Dict[str, Any], actor: str) -> Result[Claim]:
        """Open a claim against a policy that was in force on the incident date."""
        data = dict(data)
        if data.get("reported_date") is None:
            data["reported_date"] = self.validator.clock()

        validation = self.validator.validate("claim", data)
        if not validation.is_ok:
            return validation

        policy = self.db.get(Policy, data["policy_id"])
        if policy is None:
            return Err(NotFoundError("Policy", data["policy_id"]))
        if not policy.was_in_force_on(data["incident_date"]):
            return Err(IllegalStateError(
                f"Policy {policy.policy_number} was not in force on {data['incident_date']}",
                current=policy.status.value,
            ))

        claim = Claim(
            claim_number=generate_claim_number(),
            policy_id=policy.id,
            status=ClaimStatus.PENDING,
            description=data.get("description"),
            claim_amount=Decimal(str(data["claim_amount"])),
            paid_amount=Decimal("0.00"),
            incident_date=data["incident_date"],
            reported_date=data["reported_date"],
            created_by=actor,
        )
        self.db.add(claim)
        self.db.commit()
        self.db.refresh(claim)

        log_audit_event(
            event_type="CLAIM_CREATED",
            actor_id=actor,
            actor_type="user",
            details={"claim_number": claim.claim_number, "policy_number": policy.policy_number},
        )
        return Ok(claim)

    def update_status(self, claim_id: int, new_status: str, actor: str) -> Result[Claim]:
        validation = self.validator.validate("claim_status", {"status": new_status})
        if not validation.is_ok:
            return validation

        result = self.get(claim_id)
        if not result.is_ok:
            return result
        claim = result.value

        target = ClaimStatus(new_status)
        if not claim.can_transition_to(target):
            return Err(IllegalStateError(
                f"Claim {claim.claim_number} cannot move from {claim.status.value} to {target.value}",
                current=claim.status.value,
                target=target.value,
            ))

        previous = claim.status
        claim.status = target
        error = self._commit(claim_id)
        if error:
            return Err(error)
        self.db.refresh(claim)

        log_audit_event(
            event_type=f"CLAIM_{target.value}",
            actor_id=actor,
            actor_type="user",
            details={"claim_number": claim.claim_number, "from": previous.value},
        )
        return Ok(claim)

    def upload_document(
        self,
        claim_id: int,
        file_name: str,
        content_type: str,
        content: bytes,
        uploaded_by: str,
    ) -> Result[ClaimDocument]:
        """Store an uploaded file and record its metadata on the claim."""
        result = self.get(claim_id)
        if not result.is_ok:
            return result
        claim = result.value

        validation = self.validator.validate(
            "document",
            {"file_name": file_name, "content_type": content_type, "file_size": len(content)},
        )
        if not validation.is_ok:
            return validation

        if claim.status == ClaimStatus.CLOSED:
            return Err(IllegalStateError(
                f"Claim {claim.claim_number} is CLOSED; documents can no longer be added",
                current=claim.status.value,
            ))

        location = self.storage.store(claim.id, file_name, content)
        document = ClaimDocument(
            claim_id=claim.id,
            document_type=ALLOWED_CONTENT_TYPES[content_type],
            file_name=file_name,
            content_type=content_type,
            file_size=len(content),
            storage_location=location,
            uploaded_by=uploaded_by,
        )
        self.db.add(document)
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            self.storage.delete(location)
            raise
        self.db.refresh(document)

        logger.info(f"Document uploaded: {document.file_name} for claim {claim.claim_number}")
        return Ok(document)

    def process_payment(
        self,
        claim_id: int,
        amount: Decimal,
        method: str,
        actor: str,
    ) -> Result[Payment]:
        """Pay out part of a claim through SpeedPay.

        A failed SpeedPay call leaves a FAILED payment and returns the
        integration error. Nothing is retried here; resubmitting creates a new
        payment.
        """
        result = self.get(claim_id)
        if not result.is_ok:
            return result
        claim = result.value

        if claim.status in UNPAYABLE:
            return Err(IllegalStateError(
                f"Claim {claim.claim_number} is {claim.status.value} and cannot be paid",
                current=claim.status.value,
            ))

        validation = self.validator.validate("payment", {"amount": amount, "payment_method": method})
        if not validation.is_ok:
            return validation

        amount = Decimal(str(amount))
        if amount <= 0:
            return Err(BusinessRuleError("Payment amount must be greater than zero"))

        committed = sum(
            (Decimal(p.amount) for p in claim.payments if p.status in COMMITTED_PAYMENT_STATUSES),
            Decimal("0"),
        )
        claim_amount = Decimal(claim.claim_amount)
        if committed + amount > claim_amount:
            return Err(BusinessRuleError(
                f"Payment of {amount} exceeds the remaining amount {claim_amount - committed} "
                f"of claim {claim.claim_number}"
            ))

        payment = Payment(
            transaction_id=generate_transaction_id(),
            amount=amount,
            payment_method=PaymentMethod(method),
            status=PaymentStatus.PENDING,
            requested_by=actor,
        )
        claim.payments.append(payment)
        # Touching the claim bumps its version so a concurrent payment loses
        claim.updated_at = datetime.utcnow()
        error = self._commit(claim_id)
        if error:
            return Err(error)

        payment.status = PaymentStatus.PROCESSING
        self.db.commit()

        handle = self.executor.submit(
            self.speedpay.process_payment,
            payment.transaction_id,
            amount,
            payment.payment_method.value,
            name=f"speedpay-{payment.transaction_id}",
            integration=self.speedpay.name,
        )
        try:
            confirmation = handle.result(timeout=self.speedpay.max_call_duration())
        except IntegrationError as e:
            self._fail_payment(payment, e.message)
            return Err(e)
        except Exception:
            self._fail_payment(payment, "Unexpected error while processing payment")
            raise

        # SpeedPay has charged; record that before touching the versioned claim
        payment.status = PaymentStatus.COMPLETED
        payment.external_transaction_id = confirmation.get("transactionId")
        payment.processed_at = datetime.utcnow()
        self.db.commit()

        error = self._sync_paid_amount(claim_id)
        if error:
            return Err(error)
        self.db.refresh(payment)

        log_audit_event(
            event_type="PAYMENT_COMPLETED",
            actor_id=actor,
            actor_type="user",
            details={
                "claim_number": claim.claim_number,
                "transaction_id": payment.transaction_id,
                "amount": str(amount),
            },
        )
        return Ok(payment)

    def _sync_paid_amount(self, claim_id: int) -> Optional[UmbrellaError]:
        """Set the claim's paid amount to the sum of its completed payments.

        Recomputed from the payments table on every attempt, so losing a race
        with another claim write only costs a retry.
        """
        for attempt in range(PAID_AMOUNT_ATTEMPTS):
            claim = self.db.get(Claim, claim_id)
            self.db.refresh(claim)
            completed = (
                self.db.query(func.sum(Payment.amount))
                .filter(Payment.claim_id == claim_id, Payment.status == PaymentStatus.COMPLETED)
                .scalar()
            )
            claim.paid_amount = Decimal(str(completed or 0))
            try:
                self.db.commit()
                return None
            except StaleDataError:
                self.db.rollback()
                logger.warning(
                    f"Paid amount of claim {claim_id} lost a concurrent write "
                    f"(attempt {attempt + 1}/{PAID_AMOUNT_ATTEMPTS})"
                )
        logger.error(f"Paid amount of claim {claim_id} not updated; completed payments are recorded")
        return ConcurrentModificationError("Claim", claim_id)

    def _fail_payment(self, payment: Payment, reason: str) -> None:
        payment.status = PaymentStatus.FAILED
        payment.failure_reason = reason
        payment.processed_at = datetime.utcnow()
        self.db.commit()
        logger.error(f"Payment {payment.transaction_id} failed: {reason}")
