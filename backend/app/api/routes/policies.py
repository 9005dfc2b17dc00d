"""
Policies API routes
"""
from datetime import date
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field

from app.api.deps import (
    get_actor,
    get_current_user_id,
    get_policy_service,
    require_manager,
)
from app.db.models import Coverage, Endorsement, Policy, PolicyExport, PolicyStatus
from app.services import PolicyService, unwrap

router = APIRouter()


# Request schemas
class CoverageRequest(BaseModel):
    coverage_type: str
    description: Optional[str] = None
    limit_amount: Decimal
    deductible: Decimal = Decimal("0")
    premium: Decimal = Decimal("0")


class PolicyCreateRequest(BaseModel):
    policy_number: str
    total_premium: Decimal
    effective_date: date
    expiry_date: date
    owner_id: Optional[int] = None
    coverages: List[CoverageRequest] = []


class PolicyUpdateRequest(BaseModel):
    version: Optional[int] = None
    policy_number: Optional[str] = None
    total_premium: Optional[Decimal] = None
    effective_date: Optional[date] = None
    expiry_date: Optional[date] = None
    owner_id: Optional[int] = None
    coverages: Optional[List[CoverageRequest]] = None


class TerminateRequest(BaseModel):
    termination_date: date


class EndorsementRequest(BaseModel):
    endorsement_number: str
    description: Optional[str] = None
    premium_adjustment: Decimal
    effective_date: date
    expiry_date: date


class ExpireRequest(BaseModel):
    as_of: Optional[date] = None


# Response schemas
class CoverageResponse(BaseModel):
    id: int
    coverage_type: str
    description: Optional[str]
    limit_amount: Decimal
    deductible: Decimal
    premium: Decimal


class EndorsementResponse(BaseModel):
    id: int
    endorsement_number: str
    description: Optional[str]
    premium_adjustment: Decimal
    effective_date: date
    expiry_date: date


class PolicyResponse(BaseModel):
    id: int
    policy_number: str
    status: str
    total_premium: Decimal
    effective_date: date
    expiry_date: date
    owner_id: int
    version: int
    is_active: bool
    coverages: List[CoverageResponse] = []
    endorsements: List[EndorsementResponse] = []


class ExportResponse(BaseModel):
    id: int
    policy_id: int
    status: str
    export_reference: Optional[str] = None
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    requested_by: Optional[str] = None
    requested_at: str
    completed_at: Optional[str] = None


def _coverage_response(c: Coverage) -> CoverageResponse:
    return CoverageResponse(
        id=c.id,
        coverage_type=c.coverage_type,
        description=c.description,
        limit_amount=c.limit_amount,
        deductible=c.deductible,
        premium=c.premium,
    )


def _endorsement_response(e: Endorsement) -> EndorsementResponse:
    return EndorsementResponse(
        id=e.id,
        endorsement_number=e.endorsement_number,
        description=e.description,
        premium_adjustment=e.premium_adjustment,
        effective_date=e.effective_date,
        expiry_date=e.expiry_date,
    )


def policy_response(p: Policy) -> PolicyResponse:
    return PolicyResponse(
        id=p.id,
        policy_number=p.policy_number,
        status=p.status.value,
        total_premium=p.total_premium,
        effective_date=p.effective_date,
        expiry_date=p.expiry_date,
        owner_id=p.owner_id,
        version=p.version,
        is_active=p.is_active(),
        coverages=[_coverage_response(c) for c in p.coverages],
        endorsements=[_endorsement_response(e) for e in p.endorsements],
    )


def export_response(e: PolicyExport) -> ExportResponse:
    return ExportResponse(
        id=e.id,
        policy_id=e.policy_id,
        status=e.status.value,
        export_reference=e.export_reference,
        error_kind=e.error_kind,
        error_message=e.error_message,
        requested_by=e.requested_by,
        requested_at=e.requested_at.isoformat(),
        completed_at=e.completed_at.isoformat() if e.completed_at else None,
    )


@router.post("", response_model=PolicyResponse, status_code=status.HTTP_201_CREATED)
def create_policy(
    request: PolicyCreateRequest,
    response: Response,
    user_id: int = Depends(get_current_user_id),
    actor: str = Depends(get_actor),
    service: PolicyService = Depends(get_policy_service),
):
    """Create a policy in DRAFT. The owner defaults to the caller."""
    data = request.model_dump()
    if data["owner_id"] is None:
        data["owner_id"] = user_id
    policy = unwrap(service.create(data, actor))
    response.headers["Location"] = f"/api/v1/policies/{policy.id}"
    return policy_response(policy)


@router.get("", response_model=List[PolicyResponse])
def list_policies(
    status_filter: Optional[PolicyStatus] = Query(None, alias="status"),
    owner_id: Optional[int] = None,
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    user_id: int = Depends(get_current_user_id),
    service: PolicyService = Depends(get_policy_service),
):
    policies = unwrap(service.list(status=status_filter, owner_id=owner_id, offset=offset, limit=limit))
    return [policy_response(p) for p in policies]


@router.post("/expire-lapsed", response_model=List[PolicyResponse])
def expire_lapsed_policies(
    request: ExpireRequest,
    payload: dict = Depends(require_manager),
    actor: str = Depends(get_actor),
    service: PolicyService = Depends(get_policy_service),
):
    """Sweep ACTIVE policies whose term has ended to EXPIRED."""
    as_of = request.as_of or date.today()
    return [policy_response(p) for p in unwrap(service.expire_lapsed(as_of, actor))]


@router.get("/{policy_id}", response_model=PolicyResponse)
def get_policy(
    policy_id: int,
    user_id: int = Depends(get_current_user_id),
    service: PolicyService = Depends(get_policy_service),
):
    return policy_response(unwrap(service.get(policy_id)))


@router.put("/{policy_id}", response_model=PolicyResponse)
def update_policy(
    policy_id: int,
    request: PolicyUpdateRequest,
    actor: str = Depends(get_actor),
    service: PolicyService = Depends(get_policy_service),
):
    data = request.model_dump(exclude_unset=True)
    return policy_response(unwrap(service.update(policy_id, data, actor)))


@router.post("/{policy_id}/activate", response_model=PolicyResponse)
def activate_policy(
    policy_id: int,
    payload: dict = Depends(require_manager),
    actor: str = Depends(get_actor),
    service: PolicyService = Depends(get_policy_service),
):
    """Underwriting approval: DRAFT/PENDING -> ACTIVE."""
    return policy_response(unwrap(service.activate(policy_id, actor)))


@router.post("/{policy_id}/cancel", response_model=PolicyResponse)
def cancel_policy(
    policy_id: int,
    payload: dict = Depends(require_manager),
    actor: str = Depends(get_actor),
    service: PolicyService = Depends(get_policy_service),
):
    return policy_response(unwrap(service.cancel(policy_id, actor)))


@router.post("/{policy_id}/terminate", response_model=PolicyResponse)
def terminate_policy(
    policy_id: int,
    request: TerminateRequest,
    payload: dict = Depends(require_manager),
    actor: str = Depends(get_actor),
    service: PolicyService = Depends(get_policy_service),
):
    return policy_response(unwrap(service.terminate(policy_id, request.termination_date, actor)))


@router.post(
    "/{policy_id}/endorsements",
    response_model=EndorsementResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_endorsement(
    policy_id: int,
    request: EndorsementRequest,
    actor: str = Depends(get_actor),
    service: PolicyService = Depends(get_policy_service),
):
    endorsement = unwrap(service.add_endorsement(policy_id, request.model_dump(), actor))
    return _endorsement_response(endorsement)


@router.post("/{policy_id}/export", response_model=ExportResponse)
def export_policy(
    policy_id: int,
    wait: bool = Query(False, description="Wait for PolicySTAR to answer before responding"),
    actor: str = Depends(get_actor),
    service: PolicyService = Depends(get_policy_service),
):
    """Queue a PolicySTAR export.

    Returns the PENDING export record immediately, or with ``wait=true`` the
    final record once PolicySTAR has answered. Export failures never change
    the policy.
    """
    submission = unwrap(service.export_to_external_system(policy_id, actor))
    if not wait:
        return export_response(submission.export)

    submission.handle.result(timeout=service.policystar.max_call_duration() * 2)
    service.db.refresh(submission.export)
    return export_response(submission.export)


@router.get("/{policy_id}/exports", response_model=List[ExportResponse])
def list_policy_exports(
    policy_id: int,
    user_id: int = Depends(get_current_user_id),
    service: PolicyService = Depends(get_policy_service),
):
    return [export_response(e) for e in unwrap(service.list_exports(policy_id))]
