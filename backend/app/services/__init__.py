"""
Services package
"""
from app.services.result import Ok, Err, Result, unwrap
from app.services.validation import Validator
from app.services.document_storage import DocumentStorage, LocalDocumentStorage
from app.services.policy_service import PolicyService, ExportSubmission, ExportOutcome
from app.services.claim_service import ClaimService
from app.services.user_service import UserService

__all__ = [
    "Ok",
    "Err",
    "Result",
    "unwrap",
    "Validator",
    "DocumentStorage",
    "LocalDocumentStorage",
    "PolicyService",
    "ExportSubmission",
    "ExportOutcome",
    "ClaimService",
    "UserService",
]
