"""
Shared fixtures.

Tests run against an in-memory SQLite database; the environment is set
before anything from coolfix is imported so the engine and settings pick
it up.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-action-link-secret-0123456789abcdef"
os.environ["JWT_SECRET"] = "test-session-secret-0123456789abcdef0123"
os.environ["ADMIN_EMAIL"] = "admin@coolfix.test"
os.environ["API_BASE_URL"] = "http://testserver"
os.environ["EMAIL_PROVIDER"] = "console"

from typing import List, Tuple

import pytest
from fastapi.testclient import TestClient

from coolfix.api.app import app
from coolfix.api.dependencies import get_dispatcher
from coolfix.lib.action_tokens import ActionTokenIssuer
from coolfix.lib.db import SessionLocal, drop_db, init_db
from coolfix.lib.jwt import create_access_token
from coolfix.lib.metrics import reset_metrics
from coolfix.models.services import Service, ServiceCategory
from coolfix.models.technicians import Technician
from coolfix.models.users import User, UserRole
from coolfix.services.notification_service import EmailTransport, NotificationDispatcher


class RecordingTransport(EmailTransport):
    """Email transport that keeps every message instead of sending it."""

    name = "recording"

    def __init__(self, fail_for: Tuple[str, ...] = ()):
        self.sent: List[dict] = []
        self.fail_for = fail_for

    async def deliver(self, to: str, subject: str, html: str) -> bool:
        if to in self.fail_for:
            raise ConnectionError(f"SMTP refused {to}")
        self.sent.append({"to": to, "subject": subject, "html": html})
        return True

    def sent_to(self, address: str) -> List[dict]:
        return [message for message in self.sent if message["to"] == address]


@pytest.fixture(autouse=True)
def database():
    """Fresh schema for every test."""
    init_db()
    reset_metrics()
    yield
    drop_db()
    reset_metrics()


@pytest.fixture
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def dispatcher(transport):
    return NotificationDispatcher(transport=transport, admin_email="admin@coolfix.test")


@pytest.fixture
def issuer():
    """Issuer sharing the app's signing key."""
    return ActionTokenIssuer()


@pytest.fixture
def client(dispatcher):
    """TestClient whose notifications go to the recording transport."""
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session):
    """Factory creating committed accounts."""
    counter = {"n": 0}

    def _make(role: UserRole = UserRole.CUSTOMER, email: str = None, full_name: str = "Test User") -> User:
        counter["n"] += 1
        user = User(
            full_name=full_name,
            email=email or f"{role.value}{counter['n']}@coolfix.test",
            phone="+923001234567",
            role=role,
            is_verified=True,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture
def customer(make_user):
    return make_user(UserRole.CUSTOMER, email="ayesha@example.com", full_name="Ayesha Khan")


@pytest.fixture
def admin(make_user):
    return make_user(UserRole.ADMIN, full_name="Workshop Admin")


@pytest.fixture
def technician(make_user, db_session):
    user = make_user(UserRole.TECHNICIAN, full_name="Bilal Tech")
    db_session.add(Technician(id=user.id, skills=["ac"], experience="5 years"))
    db_session.commit()
    return user


@pytest.fixture
def ac_service(db_session):
    service = Service(
        name="AC Repair",
        category=ServiceCategory.AC,
        description="Split and window AC repair",
        icon="❄️",
        base_price=3000,
    )
    db_session.add(service)
    db_session.commit()
    return service


def _bearer(user: User) -> dict:
    token = create_access_token(str(user.id), user.role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers():
    """Build an Authorization header for an account."""
    return _bearer


@pytest.fixture
def public_booking_body():
    """Valid public booking form body."""
    return {
        "customerName": "Ayesha Khan",
        "phone": "+923001234567",
        "email": "ayesha@example.com",
        "service": {"name": "AC Repair", "icon": "❄️", "basePrice": 3000, "category": "ac"},
        "date": "2026-11-02",
        "time": "10:00 AM",
        "address": "House 12, Street 4, Lahore",
        "comments": "Cooling stopped",
    }
