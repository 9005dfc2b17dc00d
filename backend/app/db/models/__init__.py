"""
Database models package
"""
from app.db.models.user import User, Role, RoleName, user_roles
from app.db.models.policy import (
    Policy, Coverage, Endorsement, PolicyExport,
    PolicyStatus, ExportStatus,
)
from app.db.models.claim import Claim, ClaimStatus, CLAIM_TRANSITIONS
from app.db.models.document import ClaimDocument, DocumentType, ALLOWED_CONTENT_TYPES
from app.db.models.payment import Payment, PaymentStatus, PaymentMethod

__all__ = [
    # User
    "User",
    "Role",
    "RoleName",
    "user_roles",
    # Policy
    "Policy",
    "Coverage",
    "Endorsement",
    "PolicyExport",
    "PolicyStatus",
    "ExportStatus",
    # Claim
    "Claim",
    "ClaimStatus",
    "CLAIM_TRANSITIONS",
    # Document
    "ClaimDocument",
    "DocumentType",
    "ALLOWED_CONTENT_TYPES",
    # Payment
    "Payment",
    "PaymentStatus",
    "PaymentMethod",
]
