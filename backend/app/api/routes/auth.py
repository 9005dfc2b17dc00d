"""
Authentication API routes
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.api.deps import get_current_user_id, get_user_service
from app.api.routes.users import UserResponse, user_response
from app.core import create_access_token
from app.services import UserService, unwrap

router = APIRouter()


# Request/Response schemas
class LoginRequest(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: int
    username: str
    roles: list[str]


@router.post("/login", response_model=TokenResponse)
def login(request: LoginRequest, service: UserService = Depends(get_user_service)):
    """Login with username and password."""
    user = unwrap(service.authenticate(request.username, request.password))

    token = create_access_token({
        "sub": str(user.id),
        "username": user.username,
        "roles": user.role_names,
    })

    return TokenResponse(
        access_token=token,
        user_id=user.id,
        username=user.username,
        roles=user.role_names,
    )


@router.get("/me", response_model=UserResponse)
def get_me(
    user_id: int = Depends(get_current_user_id),
    service: UserService = Depends(get_user_service),
):
    """Get current user info."""
    return user_response(unwrap(service.get(user_id)))
