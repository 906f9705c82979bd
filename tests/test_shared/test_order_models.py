"""
Tests for shared domain models and settings.
"""

from datetime import date, datetime, timezone

import pytest
from pydantic import ValidationError

from shared.models import (
    Customer,
    Invoice,
    InvoiceItem,
    Notification,
    NotificationType,
    Order,
    OrderStatus,
    notification_id,
    utcnow,
)
from shared.settings import DispatchSettings, ReconciliationSettings


def make_notification(**overrides) -> Notification:
    fields = {
        "id": "overdue_o1",
        "type": NotificationType.OVERDUE,
        "order_id": "o1",
        "customer_id": "c1",
        "customer_name": "Asha Rao",
        "order_number": "TB-1",
        "due_date": date(2024, 5, 8),
        "days_until_due": -2,
        "priority": "high",
        "title": "Order Overdue",
        "message": "Order TB-1 for Asha Rao is 2 days overdue",
        "created_at": datetime(2024, 5, 10, tzinfo=timezone.utc),
    }
    fields.update(overrides)
    return Notification(**fields)


class TestOrder:
    """Tests for the Order model."""

    def test_parses_store_row(self):
        order = Order(
            id="o1",
            order_number="TB-1",
            customer_id="c1",
            status="in_progress",
            due_date="2024-05-13",
        )

        assert order.status == "in_progress"
        assert order.due_date == date(2024, 5, 13)
        assert order.customer_name == ""

    def test_defaults(self):
        order = Order(id="o1", order_number="TB-1", customer_id="c1")
        assert order.status == "pending"
        assert order.due_date is None

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError):
            Order(id="o1", order_number="TB-1", customer_id="c1", status="shipped")

    @pytest.mark.parametrize(
        "status,is_open",
        [
            (OrderStatus.PENDING, True),
            (OrderStatus.IN_PROGRESS, True),
            (OrderStatus.READY, True),
            (OrderStatus.DELIVERED, False),
            (OrderStatus.CANCELLED, False),
        ],
    )
    def test_is_open(self, status, is_open):
        order = Order(id="o1", order_number="TB-1", customer_id="c1", status=status)
        assert order.is_open is is_open


class TestNotification:
    """Tests for the Notification model."""

    def test_identity(self):
        assert notification_id(NotificationType.DUE_SOON, "o1") == "due_soon_o1"
        assert notification_id("overdue", "o1") == "overdue_o1"

    def test_is_frozen(self):
        notification = make_notification()
        with pytest.raises(ValidationError):
            notification.is_read = True

    def test_with_read(self):
        notification = make_notification()

        read = notification.with_read(True)

        assert read.is_read is True
        assert notification.is_read is False
        assert read.id == notification.id

    def test_with_read_unchanged_returns_same(self):
        notification = make_notification()
        assert notification.with_read(False) is notification

    def test_serializes_enums_as_strings(self):
        data = make_notification().model_dump(mode="json")
        assert data["type"] == "overdue"
        assert data["priority"] == "high"
        assert data["due_date"] == "2024-05-08"


class TestCustomerAndInvoice:
    """Tests for customer and invoice models."""

    def test_customer_email_optional(self):
        customer = Customer(id="c1", name="Vikram", mobile="+91 98123 45678")
        assert customer.email is None

    def test_invoice(self):
        invoice = Invoice(
            invoice_number="INV-1",
            total_amount=2500,
            items=[InvoiceItem(description="Shirt", total_price=1200)],
        )
        assert invoice.items[0].total_price == 1200
        assert invoice.created_at is not None

    def test_negative_amount_rejected(self):
        with pytest.raises(ValidationError):
            InvoiceItem(description="Shirt", total_price=-1)


def test_utcnow_is_aware():
    assert utcnow().tzinfo is not None


class TestSettings:
    """Tests for environment-driven settings."""

    def test_dispatch_defaults(self, monkeypatch):
        monkeypatch.delenv("ORDER_ALERTS_API_URL", raising=False)
        settings = DispatchSettings(_env_file=None)

        assert settings.sms_sender_id == "TailorBuddy"
        assert settings.default_country_code == "+91"
        assert settings.request_timeout_seconds == 10

    def test_dispatch_from_environment(self, monkeypatch):
        monkeypatch.setenv("ORDER_ALERTS_API_URL", "https://sms.example.com")
        monkeypatch.setenv("ORDER_ALERTS_DEFAULT_COUNTRY_CODE", "+44")

        settings = DispatchSettings(_env_file=None)

        assert settings.api_url == "https://sms.example.com"
        assert settings.default_country_code == "+44"

    def test_country_code_validated(self):
        with pytest.raises(ValidationError):
            DispatchSettings(_env_file=None, default_country_code="91")

    def test_reconciliation_defaults(self, monkeypatch):
        monkeypatch.delenv("ORDER_ALERTS_REFRESH_INTERVAL_SECONDS", raising=False)
        settings = ReconciliationSettings(_env_file=None)

        assert settings.refresh_interval_seconds == 300
        assert settings.resubscribe_delay_seconds == 5

    def test_interval_must_be_positive(self):
        with pytest.raises(ValidationError):
            ReconciliationSettings(_env_file=None, refresh_interval_seconds=0)
