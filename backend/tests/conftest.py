"""
Test configuration and fixtures for the Umbrella backend tests.
"""
import os
import tempfile

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="umbrella-uploads-"))

import pytest
from datetime import date
from decimal import Decimal
from typing import Generator

import httpx
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from main import app
from app.core.config import settings
from app.core.container import build_container
from app.core.security import create_access_token
from app.db.base import Base
from app.db.session import get_db
from app.db.models import Policy, PolicyStatus, RoleName
from app.services import Validator, UserService, PolicyService, ClaimService, LocalDocumentStorage


# Use in-memory SQLite for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TODAY = date(2024, 9, 1)


class FakeRemote:
    """Scripted stand-in for an external system behind ``httpx.MockTransport``.

    ``on(method, path, *responses)`` queues responses for a route; the last
    one repeats. A queued exception is raised instead of answering, and a
    queued callable is called for a fresh response on every request.
    """

    def __init__(self, base_url: str):
        self.base_url = base_url
        self.routes = {}
        self.requests = []

    def on(self, method: str, path: str, *responses) -> "FakeRemote":
        self.routes[(method, path)] = list(responses)
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queued = self.routes.get((request.method, request.url.path))
        if not queued:
            return httpx.Response(404, json={"error": "no such route"})
        response = queued.pop(0) if len(queued) > 1 else queued[0]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response()
        return response

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler), base_url=self.base_url)

    def calls(self, method: str, path: str) -> list:
        return [r for r in self.requests if r.method == method and r.url.path == path]


@pytest.fixture
def session_factory():
    return TestingSessionLocal


@pytest.fixture
def remotes() -> dict:
    """One fake per integration, keyed by settings prefix."""
    return {
        prefix: FakeRemote(f"http://{prefix.lower()}.test")
        for prefix in ("POLICYSTAR", "RMV", "SPEEDPAY", "CLUE")
    }


@pytest.fixture
def sleeps() -> list:
    """Backoff delays requested by integration clients."""
    return []


@pytest.fixture
def validator() -> Validator:
    return Validator(max_upload_size_bytes=settings.max_upload_size_bytes, clock=lambda: TODAY)


@pytest.fixture
def container(remotes, sleeps, validator, tmp_path):
    container = build_container(
        settings,
        TestingSessionLocal,
        http_clients={prefix: remote.client() for prefix, remote in remotes.items()},
        storage=LocalDocumentStorage(str(tmp_path / "uploads")),
        sleep=sleeps.append,
    )
    container.validator = validator
    yield container
    container.executor.shutdown(wait=True)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db: Session, container) -> Generator[TestClient, None, None]:
    """Create a test client with database and container overrides."""
    app.dependency_overrides[get_db] = lambda: db
    app.state.container = container
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    app.state.container = None


@pytest.fixture
def user_service(db: Session, validator) -> UserService:
    return UserService(db, validator)


@pytest.fixture
def policy_service(db: Session, container) -> PolicyService:
    return PolicyService(
        db=db,
        validator=container.validator,
        executor=container.executor,
        policystar=container.policystar,
        session_factory=TestingSessionLocal,
    )


@pytest.fixture
def claim_service(db: Session, container) -> ClaimService:
    return ClaimService(
        db=db,
        validator=container.validator,
        executor=container.executor,
        speedpay=container.speedpay,
        clue=container.clue,
        storage=container.storage,
    )


def _make_user(service: UserService, username: str, roles: list):
    result = service.create(
        {
            "username": username,
            "email": f"{username}@example.com",
            "password": f"{username}-pass123",
            "roles": roles,
        },
        actor="fixture",
    )
    assert result.is_ok, result
    return result.value


@pytest.fixture
def test_user(user_service):
    """Create a test user."""
    return _make_user(user_service, "jdoe", [RoleName.USER.value])


@pytest.fixture
def test_manager(user_service):
    """Create a test manager."""
    return _make_user(user_service, "mmanager", [RoleName.MANAGER.value])


@pytest.fixture
def test_admin(user_service):
    """Create a test admin user."""
    return _make_user(user_service, "root.admin", [RoleName.ADMIN.value])


def token_for(user) -> str:
    return create_access_token(
        data={"sub": str(user.id), "username": user.username, "roles": user.role_names}
    )


@pytest.fixture
def auth_headers(test_user) -> dict:
    """Get authorization headers for the test user."""
    return {"Authorization": f"Bearer {token_for(test_user)}"}


@pytest.fixture
def manager_headers(test_manager) -> dict:
    return {"Authorization": f"Bearer {token_for(test_manager)}"}


@pytest.fixture
def admin_headers(test_admin) -> dict:
    """Get authorization headers for the test admin."""
    return {"Authorization": f"Bearer {token_for(test_admin)}"}


@pytest.fixture
def policy_data(test_user) -> dict:
    return {
        "policy_number": "POL-2024-000001",
        "total_premium": Decimal("1200.00"),
        "effective_date": date(2024, 1, 1),
        "expiry_date": date(2024, 12, 31),
        "owner_id": test_user.id,
    }


@pytest.fixture
def active_policy(db: Session, test_user) -> Policy:
    """An ACTIVE policy covering calendar year 2024."""
    policy = Policy(
        policy_number="POL-2024-000042",
        owner_id=test_user.id,
        status=PolicyStatus.ACTIVE,
        total_premium=Decimal("1200.00"),
        effective_date=date(2024, 1, 1),
        expiry_date=date(2024, 12, 31),
    )
    db.add(policy)
    db.commit()
    db.refresh(policy)
    return policy


@pytest.fixture
def test_claim(claim_service, active_policy):
    """A PENDING claim of 5000.00 on the active policy."""
    result = claim_service.create(
        {
            "policy_id": active_policy.id,
            "claim_amount": Decimal("5000.00"),
            "incident_date": date(2024, 3, 1),
            "description": "Rear-ended at a stop light",
        },
        actor="fixture",
    )
    assert result.is_ok, result
    return result.value
