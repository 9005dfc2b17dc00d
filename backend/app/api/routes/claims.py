"""
Claims API routes
"""
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile, status
from pydantic import BaseModel

from app.api.deps import (
    get_actor,
    get_claim_service,
    get_current_user_id,
    require_manager,
)
from app.db.models import Claim, ClaimDocument, ClaimStatus, Payment
from app.services import ClaimService, unwrap

router = APIRouter()


# Request schemas
class ClaimCreateRequest(BaseModel):
    policy_id: int
    claim_amount: Decimal
    incident_date: date
    reported_date: Optional[date] = None
    description: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    status: str


class PaymentRequest(BaseModel):
    amount: Decimal
    payment_method: str = "ACH"


# Response schemas
class ClaimResponse(BaseModel):
    id: int
    claim_number: str
    policy_id: int
    status: str
    description: Optional[str]
    claim_amount: Decimal
    paid_amount: Decimal
    incident_date: date
    reported_date: date
    version: int
    created_at: str


class DocumentResponse(BaseModel):
    id: int
    claim_id: int
    document_type: str
    file_name: str
    content_type: str
    file_size: int
    uploaded_by: Optional[str]
    uploaded_at: str


class PaymentResponse(BaseModel):
    id: int
    claim_id: int
    transaction_id: str
    external_transaction_id: Optional[str]
    amount: Decimal
    status: str
    payment_method: str
    failure_reason: Optional[str]
    created_at: str
    processed_at: Optional[str]


class ClaimHistoryResponse(BaseModel):
    claim_id: int
    policy_number: str
    history: List[Dict[str, Any]]


def claim_response(c: Claim) -> ClaimResponse:
    return ClaimResponse(
        id=c.id,
        claim_number=c.claim_number,
        policy_id=c.policy_id,
        status=c.status.value,
        description=c.description,
        claim_amount=c.claim_amount,
        paid_amount=c.paid_amount,
        incident_date=c.incident_date,
        reported_date=c.reported_date,
        version=c.version,
        created_at=c.created_at.isoformat(),
    )


def document_response(d: ClaimDocument) -> DocumentResponse:
    return DocumentResponse(
        id=d.id,
        claim_id=d.claim_id,
        document_type=d.document_type.value,
        file_name=d.file_name,
        content_type=d.content_type,
        file_size=d.file_size,
        uploaded_by=d.uploaded_by,
        uploaded_at=d.uploaded_at.isoformat(),
    )


def payment_response(p: Payment) -> PaymentResponse:
    return PaymentResponse(
        id=p.id,
        claim_id=p.claim_id,
        transaction_id=p.transaction_id,
        external_transaction_id=p.external_transaction_id,
        amount=p.amount,
        status=p.status.value,
        payment_method=p.payment_method.value,
        failure_reason=p.failure_reason,
        created_at=p.created_at.isoformat(),
        processed_at=p.processed_at.isoformat() if p.processed_at else None,
    )


@router.post("", response_model=ClaimResponse, status_code=status.HTTP_201_CREATED)
def create_claim(
    request: ClaimCreateRequest,
    response: Response,
    actor: str = Depends(get_actor),
    service: ClaimService = Depends(get_claim_service),
):
    """File a claim against a policy that was in force on the incident date."""
    claim = unwrap(service.create(request.model_dump(), actor))
    response.headers["Location"] = f"/api/v1/claims/{claim.id}"
    return claim_response(claim)


@router.get("", response_model=List[ClaimResponse])
def list_claims(
    policy_id: Optional[int] = None,
    status_filter: Optional[ClaimStatus] = Query(None, alias="status"),
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    user_id: int = Depends(get_current_user_id),
    service: ClaimService = Depends(get_claim_service),
):
    claims = unwrap(service.list(policy_id=policy_id, status=status_filter, offset=offset, limit=limit))
    return [claim_response(c) for c in claims]


@router.get("/{claim_id}", response_model=ClaimResponse)
def get_claim(
    claim_id: int,
    user_id: int = Depends(get_current_user_id),
    service: ClaimService = Depends(get_claim_service),
):
    return claim_response(unwrap(service.get(claim_id)))


@router.patch("/{claim_id}/status", response_model=ClaimResponse)
def update_claim_status(
    claim_id: int,
    request: StatusUpdateRequest,
    actor: str = Depends(get_actor),
    service: ClaimService = Depends(get_claim_service),
):
    return claim_response(unwrap(service.update_status(claim_id, request.status, actor)))


@router.post("/{claim_id}/documents", response_model=DocumentResponse)
def upload_claim_document(
    claim_id: int,
    file: UploadFile = File(...),
    actor: str = Depends(get_actor),
    service: ClaimService = Depends(get_claim_service),
):
    """Attach a PDF, JPEG or PNG to a claim."""
    content = file.file.read()
    document = unwrap(service.upload_document(
        claim_id,
        file_name=file.filename or "",
        content_type=file.content_type or "",
        content=content,
        uploaded_by=actor,
    ))
    return document_response(document)


@router.get("/{claim_id}/documents", response_model=List[DocumentResponse])
def list_claim_documents(
    claim_id: int,
    user_id: int = Depends(get_current_user_id),
    service: ClaimService = Depends(get_claim_service),
):
    return [document_response(d) for d in unwrap(service.list_documents(claim_id))]


@router.post("/{claim_id}/payments", response_model=PaymentResponse)
def process_claim_payment(
    claim_id: int,
    request: PaymentRequest,
    payload: dict = Depends(require_manager),
    actor: str = Depends(get_actor),
    service: ClaimService = Depends(get_claim_service),
):
    """Pay out part of a claim through SpeedPay. Failed payments are not retried."""
    payment = unwrap(service.process_payment(claim_id, request.amount, request.payment_method, actor))
    return payment_response(payment)


@router.get("/{claim_id}/payments", response_model=List[PaymentResponse])
def list_claim_payments(
    claim_id: int,
    user_id: int = Depends(get_current_user_id),
    service: ClaimService = Depends(get_claim_service),
):
    return [payment_response(p) for p in unwrap(service.list_payments(claim_id))]


@router.get("/{claim_id}/history", response_model=ClaimHistoryResponse)
def get_claim_history(
    claim_id: int,
    user_id: int = Depends(get_current_user_id),
    service: ClaimService = Depends(get_claim_service),
):
    """Prior claims on the claim's policy, from CLUE."""
    handle = unwrap(service.claim_history(claim_id))
    history = handle.result(timeout=service.clue.max_call_duration())
    claim = unwrap(service.get(claim_id))
    return ClaimHistoryResponse(
        claim_id=claim.id,
        policy_number=claim.policy.policy_number,
        history=history,
    )
