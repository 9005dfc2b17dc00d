"""
Core module exports
"""
from app.core.config import settings
from app.core.security import (
    hash_password,
    verify_password,
    create_access_token,
    decode_access_token,
    get_token_payload,
    get_current_user_id,
    require_role,
)
from app.core.logging import logger, get_logger, log_audit_event

__all__ = [
    "settings",
    "hash_password",
    "verify_password",
    "create_access_token",
    "decode_access_token",
    "get_token_payload",
    "get_current_user_id",
    "require_role",
    "logger",
    "get_logger",
    "log_audit_event",
]
