"""
User administration API routes
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel

from app.api.deps import get_actor, get_token_payload, get_user_service, require_admin
from app.core.errors import IllegalStateError
from app.db.models import RoleName, User
from app.services import UserService, unwrap

router = APIRouter()


# Request schemas
class UserCreateRequest(BaseModel):
    username: str
    email: str
    password: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    roles: List[str] = []


class UserUpdateRequest(BaseModel):
    version: Optional[int] = None
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    enabled: Optional[bool] = None
    account_non_locked: Optional[bool] = None
    account_non_expired: Optional[bool] = None


class RolesRequest(BaseModel):
    roles: List[str]


class PasswordChangeRequest(BaseModel):
    current_password: Optional[str] = None
    new_password: str


# Response schemas
class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    first_name: Optional[str]
    last_name: Optional[str]
    enabled: bool
    account_non_locked: bool
    account_non_expired: bool
    credentials_non_expired: bool
    roles: List[str]
    version: int
    last_login_at: Optional[str]
    created_at: str


def user_response(u: User) -> UserResponse:
    return UserResponse(
        id=u.id,
        username=u.username,
        email=u.email,
        first_name=u.first_name,
        last_name=u.last_name,
        enabled=u.enabled,
        account_non_locked=u.account_non_locked,
        account_non_expired=u.account_non_expired,
        credentials_non_expired=u.credentials_non_expired,
        roles=u.role_names,
        version=u.version,
        last_login_at=u.last_login_at.isoformat() if u.last_login_at else None,
        created_at=u.created_at.isoformat(),
    )


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    request: UserCreateRequest,
    response: Response,
    payload: dict = Depends(require_admin),
    actor: str = Depends(get_actor),
    service: UserService = Depends(get_user_service),
):
    user = unwrap(service.create(request.model_dump(), actor))
    response.headers["Location"] = f"/api/v1/users/{user.id}"
    return user_response(user)


@router.get("", response_model=List[UserResponse])
def list_users(
    enabled: Optional[bool] = None,
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    payload: dict = Depends(require_admin),
    service: UserService = Depends(get_user_service),
):
    return [user_response(u) for u in unwrap(service.list(enabled=enabled, offset=offset, limit=limit))]


@router.get("/roles", response_model=List[str])
def list_roles(payload: dict = Depends(require_admin)):
    return [r.value for r in RoleName]


@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    user_id: int,
    payload: dict = Depends(require_admin),
    service: UserService = Depends(get_user_service),
):
    return user_response(unwrap(service.get(user_id)))


@router.put("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: int,
    request: UserUpdateRequest,
    payload: dict = Depends(require_admin),
    actor: str = Depends(get_actor),
    service: UserService = Depends(get_user_service),
):
    return user_response(unwrap(service.update(user_id, request.model_dump(exclude_unset=True), actor)))


@router.put("/{user_id}/roles", response_model=UserResponse)
def set_user_roles(
    user_id: int,
    request: RolesRequest,
    payload: dict = Depends(require_admin),
    actor: str = Depends(get_actor),
    service: UserService = Depends(get_user_service),
):
    return user_response(unwrap(service.set_roles(user_id, request.roles, actor)))


@router.delete("/{user_id}", response_model=UserResponse)
def deactivate_user(
    user_id: int,
    payload: dict = Depends(require_admin),
    actor: str = Depends(get_actor),
    service: UserService = Depends(get_user_service),
):
    """Disable the account; users are never hard-deleted."""
    if str(user_id) == str(payload.get("sub")):
        raise IllegalStateError("Administrators cannot deactivate their own account")
    return user_response(unwrap(service.deactivate(user_id, actor)))


@router.post("/{user_id}/password", response_model=UserResponse)
def change_password(
    user_id: int,
    request: PasswordChangeRequest,
    payload: dict = Depends(get_token_payload),
    actor: str = Depends(get_actor),
    service: UserService = Depends(get_user_service),
):
    """Users change their own password; administrators may reset anyone's."""
    is_self = str(user_id) == str(payload.get("sub"))
    is_admin = RoleName.ADMIN.value in (payload.get("roles") or [])
    if not is_self and not is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the account owner or an administrator can change this password",
        )
    user = unwrap(service.change_password(
        user_id,
        request.current_password,
        request.new_password,
        actor,
        verify_current=is_self,
    ))
    return user_response(user)
