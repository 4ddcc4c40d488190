# backend/tests/conftest.py

import os
from datetime import datetime, timezone
from typing import Dict, List, Optional

import bcrypt
import pytest
from fastapi.testclient import TestClient
from dotenv import load_dotenv
from unittest.mock import AsyncMock

# Load the test environment FIRST, before any application imports, so the
# settings object is built from it.
load_dotenv(dotenv_path=os.path.join(os.path.dirname(__file__), "..", ".env.test"))

from copay_ussd.main import app  # noqa: E402
from copay_ussd.models.directory import (  # noqa: E402
    CooperativeContact,
    CooperativeSummary,
    PaymentHistoryEntry,
    PaymentResult,
    PaymentTypeOption,
    UserRecord,
)
from copay_ussd.models.ussd import UssdRequest  # noqa: E402
from copay_ussd.services.collaborators import (  # noqa: E402
    Collaborators,
    CooperativeDirectory,
    PaymentHistoryReader,
    PaymentInitiator,
    PaymentTypeDirectory,
    UserDirectory,
)
from copay_ussd.services.security_service import BcryptPinVerifier  # noqa: E402
from copay_ussd.services.session_store import InMemorySessionStore  # noqa: E402
from copay_ussd.services.ussd_service import UssdService  # noqa: E402
from copay_ussd.utils.dependencies import get_ussd_service  # noqa: E402
from copay_ussd.workflows.engine import ConversationEngine  # noqa: E402
from copay_ussd.workflows.handlers import HandlerContext  # noqa: E402

VALID_PIN = "4826"
UNBOUND_PHONE = "+250788123456"   # active user, no cooperative yet
BOUND_PHONE = "+250788000111"     # active user bound to coop-1
INACTIVE_PHONE = "+250788999999"
UNKNOWN_PHONE = "+250788555555"


# --- In-memory collaborators ---

class FakeUserDirectory(UserDirectory):
    def __init__(self, users: Dict[str, UserRecord]):
        self.users = users
        self.lookups = 0

    async def find_by_phone(self, phone: str) -> Optional[UserRecord]:
        self.lookups += 1
        return self.users.get(phone)


class FakeCooperativeDirectory(CooperativeDirectory):
    def __init__(self, cooperatives: List[CooperativeSummary], contacts: Dict[str, CooperativeContact]):
        self.cooperatives = cooperatives
        self.contacts = contacts
        self.list_calls = 0

    async def list_active(self, limit: int) -> List[CooperativeSummary]:
        self.list_calls += 1
        return list(self.cooperatives[:limit])

    async def get_contact(self, cooperative_id: str) -> Optional[CooperativeContact]:
        return self.contacts.get(cooperative_id)


class FakePaymentTypeDirectory(PaymentTypeDirectory):
    def __init__(self, options: Dict[str, List[PaymentTypeOption]]):
        self.options = options
        self.list_calls = 0

    async def list_active(self, cooperative_id: str, limit: int) -> List[PaymentTypeOption]:
        self.list_calls += 1
        return list(self.options.get(cooperative_id, [])[:limit])


class FakePaymentInitiator(PaymentInitiator):
    """De-duplicates on the idempotency key, like the real payments API."""

    def __init__(self, status: str = "PENDING"):
        self.status = status
        self.calls: List[dict] = []
        self.payments: Dict[str, PaymentResult] = {}

    async def initiate(self, idempotency_key, user_id, cooperative_id, payment_type, channel, payment_account):
        self.calls.append({
            "idempotency_key": idempotency_key,
            "user_id": user_id,
            "cooperative_id": cooperative_id,
            "payment_type": payment_type,
            "channel": channel,
            "payment_account": payment_account,
        })
        if idempotency_key not in self.payments:
            self.payments[idempotency_key] = PaymentResult(
                id=f"pay-{len(self.payments) + 1}", amount=payment_type.amount, status=self.status
            )
        return self.payments[idempotency_key]


class FakePaymentHistory(PaymentHistoryReader):
    def __init__(self, entries: Dict[str, List[PaymentHistoryEntry]]):
        self.entries = entries
        self.calls: List[tuple] = []

    async def recent(self, user_id, cooperative_id, limit):
        self.calls.append((user_id, cooperative_id, limit))
        return list(self.entries.get(user_id, [])[:limit])


class SeededSessionStore(InMemorySessionStore):
    """In-memory store that tests can seed with arbitrary stored records."""

    def put_raw(self, session_id: str, raw: str, ttl: int = 300) -> None:
        self._entries[session_id] = (self._clock() + ttl, raw)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._entries


# --- Fixtures ---

@pytest.fixture(scope="session")
def pin_hash():
    # Low cost factor keeps the suite fast; verification is the same code path.
    return bcrypt.hashpw(VALID_PIN.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8")


@pytest.fixture
def collaborators(pin_hash):
    users = FakeUserDirectory({
        UNBOUND_PHONE: UserRecord(id="user-1", hashed_pin=pin_hash, status="ACTIVE", first_name="Alice"),
        BOUND_PHONE: UserRecord(id="user-2", hashed_pin=pin_hash, status="ACTIVE", cooperative_id="coop-1"),
        INACTIVE_PHONE: UserRecord(id="user-3", hashed_pin=pin_hash, status="SUSPENDED", first_name="Carol"),
    })
    cooperatives = FakeCooperativeDirectory(
        [
            CooperativeSummary(id="coop-1", name="Kigali Farmers", code="KGF"),
            CooperativeSummary(id="coop-2", name="Musanze Growers", code="MSG"),
        ],
        {"coop-1": CooperativeContact(name="Kigali Farmers", phone="+250788111222", email="info@kgf.rw")},
    )
    payment_types = FakePaymentTypeDirectory({
        "coop-1": [
            PaymentTypeOption(id="pt-1", name="Membership", amount=5000, description="Annual membership fee"),
            PaymentTypeOption(id="pt-2", name="Savings", amount=2500.5),
        ],
    })
    history = FakePaymentHistory({
        "user-2": [
            PaymentHistoryEntry(
                type_name="Membership", amount=5000, status="COMPLETED",
                date=datetime(2024, 3, 5, 10, 30, tzinfo=timezone.utc),
            ),
            PaymentHistoryEntry(
                type_name="Savings", amount=2500.5, status="PENDING",
                date=datetime(2024, 2, 1, 8, 0, tzinfo=timezone.utc),
            ),
        ],
    })
    return Collaborators(
        users=users,
        cooperatives=cooperatives,
        payment_types=payment_types,
        payments=FakePaymentInitiator(),
        history=history,
        pins=BcryptPinVerifier(),
    )


@pytest.fixture
def handler_context(collaborators):
    return HandlerContext(collaborators=collaborators, payment_timeout_seconds=0.5)


@pytest.fixture
def engine(handler_context):
    return ConversationEngine(handler_context)


@pytest.fixture
def session_store():
    return SeededSessionStore()


@pytest.fixture
def gateway(session_store, engine):
    return UssdService(session_store, engine, session_ttl=300)


@pytest.fixture
def make_request():
    def _make(text: str = "", session_id: str = "sess-1", phone: str = UNBOUND_PHONE) -> UssdRequest:
        return UssdRequest(sessionId=session_id, phoneNumber=phone, text=text)
    return _make


@pytest.fixture(scope="function")
def test_client(mocker, gateway):
    """
    Provides a TestClient for API integration tests, wired to the in-memory
    gateway. Startup must not try to reach MongoDB.
    """
    mocker.patch("copay_ussd.services.directory_service.DatabaseService.create_indexes", new_callable=AsyncMock)
    app.dependency_overrides[get_ussd_service] = lambda: gateway

    # The app's lifespan (startup/shutdown events) is managed by the TestClient
    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
