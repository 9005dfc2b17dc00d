"""
API dependencies
"""
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.core import get_current_user_id, get_token_payload, require_role
from app.core.container import Container
from app.db import get_db
from app.db.models import RoleName
from app.services import ClaimService, PolicyService, UserService

# Role guards
require_admin = require_role([RoleName.ADMIN.value])
require_manager = require_role([RoleName.ADMIN.value, RoleName.MANAGER.value])


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_actor(payload: dict = Depends(get_token_payload)) -> str:
    """Name recorded in audit events and ``*_by`` columns."""
    return payload.get("username") or str(payload["sub"])


def get_policy_service(
    db: Session = Depends(get_db),
    container: Container = Depends(get_container),
) -> PolicyService:
    return PolicyService(
        db=db,
        validator=container.validator,
        executor=container.executor,
        policystar=container.policystar,
        session_factory=container.session_factory,
    )


def get_claim_service(
    db: Session = Depends(get_db),
    container: Container = Depends(get_container),
) -> ClaimService:
    return ClaimService(
        db=db,
        validator=container.validator,
        executor=container.executor,
        speedpay=container.speedpay,
        clue=container.clue,
        storage=container.storage,
    )


def get_user_service(
    db: Session = Depends(get_db),
    container: Container = Depends(get_container),
) -> UserService:
    return UserService(db=db, validator=container.validator)


__all__ = [
    "get_db",
    "get_container",
    "get_actor",
    "get_current_user_id",
    "get_token_payload",
    "require_role",
    "require_admin",
    "require_manager",
    "get_policy_service",
    "get_claim_service",
    "get_user_service",
]
