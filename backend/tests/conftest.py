"""Shared test fixtures for backend tests."""

import asyncio
from datetime import date
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from invoice_chat.api.deps import build_chat_service, get_chat_service
from invoice_chat.models.invoice import Invoice
from invoice_chat.services.llm.base import BaseLLMProvider, LLMResponse
from invoice_chat.services.records import SQLRecordStore

# In-memory SQLite with StaticPool so all connections (including threads) share one DB
test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

SAMPLE_INVOICES = [
    ("inv-100", "INV-100", "Acme Corp", 1500.0, "approved", date(2026, 9, 2)),
    ("inv-101", "INV-101", "Globex", 250.0, "pending", date(2026, 9, 20)),
    ("inv-102", "INV-102", "Initech", 9800.0, "overdue", date(2026, 8, 14)),
    ("inv-103", "INV-103", "Acme Corp", 420.0, "paid", date(2026, 7, 1)),
    ("inv-104", "INV-104", "Umbrella", 3000.0, "in_review", date(2026, 10, 5)),
]


@pytest.fixture(autouse=True)
def setup_test_db():
    """Create all tables before each test, drop after."""
    import invoice_chat.models.audit  # noqa: F401 - register models
    import invoice_chat.models.conversation  # noqa: F401
    import invoice_chat.models.invoice  # noqa: F401
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture
def engine():
    return test_engine


@pytest.fixture
def invoices():
    """Seed invoices for user-1, plus one belonging to someone else."""
    with Session(test_engine) as session:
        for id_, number, vendor, amount, status, issued in SAMPLE_INVOICES:
            session.add(Invoice(
                id=id_, owner_id="user-1", invoice_number=number, vendor=vendor,
                amount=amount, status=status, issue_date=issued,
            ))
        session.add(Invoice(
            id="inv-900", owner_id="user-2", invoice_number="INV-900", vendor="Hooli",
            amount=77.0, status="pending", issue_date=date(2026, 9, 1),
        ))
        session.commit()


@pytest.fixture
def records():
    return SQLRecordStore(test_engine)


class FakeProvider(BaseLLMProvider):
    """Returns canned responses; optionally slow or failing."""

    def __init__(self, response: LLMResponse | None = None, delay: float = 0.0, error: Exception | None = None):
        self.response = response or LLMResponse(content="")
        self.delay = delay
        self.error = error
        self.calls: list[dict] = []

    async def chat(self, messages, tools=None, system=None):
        self.calls.append({"messages": messages, "tools": tools, "system": system})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.response


@pytest.fixture
def fake_provider():
    return FakeProvider


@pytest.fixture
def service():
    """ChatService with the deterministic interpreter only."""
    return build_chat_service(test_engine, None)


@pytest.fixture
def client(service):
    """FastAPI TestClient wired to the in-memory database."""
    with (
        patch("invoice_chat.core.database.engine", test_engine),
        patch("invoice_chat.main.get_llm_provider", return_value=None),
    ):
        from invoice_chat.main import app

        app.dependency_overrides[get_chat_service] = lambda: service

        with TestClient(app, headers={"X-User-Id": "user-1"}) as c:
            yield c

        app.dependency_overrides.clear()
