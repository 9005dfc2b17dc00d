"""
User account administration and authentication.
"""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.errors import (
    AuthenticationError,
    ConcurrentModificationError,
    NotFoundError,
    UmbrellaError,
    ValidationError,
)
from app.core.logging import get_logger, log_audit_event
from app.core.security import hash_password, verify_password
from app.db.models import Role, RoleName, User
from app.services.result import Err, Ok, Result
from app.services.validation import Validator

logger = get_logger(__name__)

PROFILE_FIELDS = ("email", "first_name", "last_name", "enabled", "account_non_locked", "account_non_expired")
DEFAULT_ROLES = [RoleName.USER.value]


class UserService:
    def __init__(self, db: Session, validator: Validator):
        self.db = db
        self.validator = validator

    def _commit(self, user_id: Any) -> Optional[UmbrellaError]:
        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            return ConcurrentModificationError("User", user_id)
        return None

    def ensure_roles(self, names: Optional[Iterable[str]] = None) -> List[Role]:
        """Return Role rows for ``names`` (default: every role), creating any that are missing."""
        if names is None:
            names = [r.value for r in RoleName]
        wanted = list(dict.fromkeys(names))
        existing = {r.name: r for r in self.db.query(Role).filter(Role.name.in_(wanted)).all()}
        for name in wanted:
            if name not in existing:
                role = Role(name=name)
                self.db.add(role)
                existing[name] = role
        self.db.flush()
        return [existing[name] for name in wanted]

    def get(self, user_id: int) -> Result[User]:
        user = self.db.get(User, user_id)
        if user is None:
            return Err(NotFoundError("User", user_id))
        return Ok(user)

    def list(self, enabled: Optional[bool] = None, offset: int = 0, limit: int = 50) -> Result[List[User]]:
        query = self.db.query(User)
        if enabled is not None:
            query = query.filter(User.enabled == enabled)
        return Ok(query.order_by(User.id).offset(offset).limit(limit).all())

    def create(self, data: Dict[str, Any], actor: str) -> Result[User]:
        data = dict(data)
        data["roles"] = data.get("roles") or DEFAULT_ROLES
        validation = self.validator.validate("user", data)
        if not validation.is_ok:
            return validation

        clash = self.db.query(User).filter(
            or_(User.username == data["username"], User.email == data["email"])
        ).first()
        if clash is not None:
            field = "username" if clash.username == data["username"] else "email"
            return Err(ValidationError.single(field, "is already taken"))

        user = User(
            username=data["username"],
            email=data["email"],
            password_hash=hash_password(data["password"]),
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            roles=self.ensure_roles(data["roles"]),
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)

        log_audit_event(
            event_type="USER_CREATED",
            actor_id=actor,
            actor_type="user",
            details={"username": user.username, "roles": user.role_names},
        )
        return Ok(user)

    def update(self, user_id: int, data: Dict[str, Any], actor: str) -> Result[User]:
        result = self.get(user_id)
        if not result.is_ok:
            return result
        user = result.value

        expected_version = data.get("version")
        if expected_version is not None and expected_version != user.version:
            return Err(ConcurrentModificationError("User", user_id))

        validation = self.validator.validate("user_update", data)
        if not validation.is_ok:
            return validation

        email = data.get("email")
        if email and email != user.email:
            if self.db.query(User.id).filter(User.email == email).first():
                return Err(ValidationError.single("email", "is already taken"))

        for field in PROFILE_FIELDS:
            if data.get(field) is not None:
                setattr(user, field, data[field])
        if data.get("roles") is not None:
            user.roles = self.ensure_roles(data["roles"])

        error = self._commit(user_id)
        if error:
            return Err(error)
        self.db.refresh(user)

        log_audit_event(
            event_type="USER_UPDATED",
            actor_id=actor,
            actor_type="user",
            details={"username": user.username},
        )
        return Ok(user)

    def set_roles(self, user_id: int, roles: List[str], actor: str) -> Result[User]:
        if not roles:
            return Err(ValidationError.single("roles", "at least one role is required"))
        return self.update(user_id, {"roles": roles}, actor)

    def deactivate(self, user_id: int, actor: str) -> Result[User]:
        result = self.update(user_id, {"enabled": False}, actor)
        if result.is_ok:
            logger.info(f"User deactivated: {result.value.username}")
        return result

    def change_password(
        self,
        user_id: int,
        current_password: Optional[str],
        new_password: str,
        actor: str,
        verify_current: bool = True,
    ) -> Result[User]:
        """Set a new password; administrators resetting others skip the current check."""
        result = self.get(user_id)
        if not result.is_ok:
            return result
        user = result.value

        validation = self.validator.validate("password", {"new_password": new_password})
        if not validation.is_ok:
            return validation
        if verify_current and not verify_password(current_password or "", user.password_hash):
            return Err(ValidationError.single("current_password", "is incorrect"))

        user.password_hash = hash_password(new_password)
        user.credentials_non_expired = True
        error = self._commit(user_id)
        if error:
            return Err(error)

        log_audit_event(
            event_type="PASSWORD_CHANGED",
            actor_id=actor,
            actor_type="user",
            details={"username": user.username},
        )
        return Ok(user)

    def authenticate(self, username: str, password: str) -> Result[User]:
        user = self.db.query(User).filter(User.username == username).first()
        if user is None or not verify_password(password, user.password_hash):
            logger.warning(f"Failed login attempt for {username}")
            return Err(AuthenticationError("Invalid username or password"))
        if not user.can_login():
            logger.warning(f"Login refused for disabled or locked account {username}")
            return Err(AuthenticationError("Account is disabled or locked"))

        user.last_login_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"User logged in: {user.username}")
        return Ok(user)
