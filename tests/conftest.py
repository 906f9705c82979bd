"""
Shared pytest fixtures for the order alerts tests.

These fixtures provide consistent test data and a fixed clock.

Against NOW (2024-05-10 10:00 UTC) the fixture orders in data/ classify as:
- ord-001 due 2024-05-13, in_progress -> due_soon, 3 days
- ord-002 due 2024-05-08, pending     -> overdue, -2 days
- ord-003 no due date                  -> nothing
- ord-004 due 2024-05-10, ready        -> due_soon, 0 days (due today)
- ord-005 delivered                    -> nothing
- ord-006 due 2024-05-25               -> nothing (outside the window)
"""

from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest

from shared.data_store import OrderStore
from shared.models import Customer, Order, OrderStatus
from shared.settings import DispatchSettings, ReconciliationSettings

NOW = datetime(2024, 5, 10, 10, 0, tzinfo=timezone.utc)
TODAY = NOW.date()


def make_order(order_id: str, days_from_today=None, status=OrderStatus.PENDING, **overrides) -> Order:
    """Order due ``days_from_today`` days after NOW's date (None = no due date)."""
    due = None if days_from_today is None else TODAY + timedelta(days=days_from_today)
    fields = {
        "id": order_id,
        "order_number": f"TB-{order_id.upper()}",
        "customer_id": f"cust-{order_id}",
        "customer_name": f"Customer {order_id.upper()}",
        "status": status,
        "due_date": due,
    }
    fields.update(overrides)
    return Order(**fields)


class FixedClock:
    """Settable clock for deterministic tests."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def order_factory():
    """The ``make_order`` helper, for building orders relative to NOW."""
    return make_order


@pytest.fixture
def data_dir() -> Path:
    """Path to the sample data directory."""
    return Path(__file__).parent.parent / "data"


@pytest.fixture
def store(data_dir: Path) -> OrderStore:
    """
    Fresh OrderStore loaded from the sample fixtures for each test.

    A new instance per test so mutations don't leak between tests.
    """
    return OrderStore(data_dir=data_dir)


@pytest.fixture
def empty_store() -> OrderStore:
    return OrderStore()


@pytest.fixture
def asha() -> Customer:
    """Customer with a local mobile number and an email address."""
    return Customer(id="cust-001", name="Asha Rao", mobile="98765 43210", email="asha.rao@example.com")


@pytest.fixture
def vikram() -> Customer:
    """Customer with an international mobile number and no email."""
    return Customer(id="cust-002", name="Vikram Shah", mobile="+91 98123 45678")


@pytest.fixture
def dispatch_settings() -> DispatchSettings:
    return DispatchSettings(
        api_url="https://gateway.test",
        api_key="test-key",
        sms_sender_id="TailorBuddy",
        default_country_code="+91",
        shop_name="Tailor Bill Buddy",
        shop_contact="+91-80-1234-5678",
    )


@pytest.fixture
def fast_settings() -> ReconciliationSettings:
    """Short timings so timer-driven behaviour is observable in tests."""
    return ReconciliationSettings(refresh_interval_seconds=0.05, resubscribe_delay_seconds=0.01)


@pytest.fixture
def slow_settings() -> ReconciliationSettings:
    """Timer far enough away that it never fires during a test."""
    return ReconciliationSettings(refresh_interval_seconds=3600, resubscribe_delay_seconds=3600)


class RecordingGateway:
    """
    httpx MockTransport handler that records provider requests.

    Responds 200 unless the path or recipient is listed in ``fail_paths`` /
    ``fail_recipients``; raises a connection error for ``unreachable``.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.fail_paths: set[str] = set()
        self.fail_recipients: set[str] = set()
        self.unreachable: set[str] = set()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        body = self.json(request)
        recipient = body.get("to")
        if request.url.path in self.unreachable:
            raise httpx.ConnectError("gateway unreachable", request=request)
        if request.url.path in self.fail_paths or recipient in self.fail_recipients:
            return httpx.Response(503, json={"error": "unavailable"})
        return httpx.Response(200, json={"status": "accepted"})

    @staticmethod
    def json(request: httpx.Request) -> dict:
        import json

        return json.loads(request.content or b"{}")

    def bodies(self, path: str = None) -> list[dict]:
        return [self.json(r) for r in self.requests if path is None or r.url.path == path]


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def http_client(gateway: RecordingGateway) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(gateway))
