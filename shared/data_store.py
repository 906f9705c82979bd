"""
In-memory order store implementing the snapshot source contract.

The production order store lives outside this package (a hosted database
with a realtime channel). This module provides:
- ``OrderSnapshotSource``: the contract the reconciliation loop consumes
- ``OrderStore``: an in-memory implementation backed by optional JSON
  fixtures, used by the API, the CLI and the tests

Design decisions:
- Fixtures are loaded lazily from ``orders.json`` / ``customers.json``
- Writes update in-memory state and publish a ChangeEvent on the feed
- The snapshot query applies the same filter as the hosted query:
  status not in (delivered, cancelled) and due_date is not null
"""

import json
import logging
from datetime import date
from pathlib import Path
from typing import Any, Optional, Protocol

from shared.change_feed import ChangeFeed, ChangeHandler, ErrorHandler, Subscription
from shared.models import (
    ChangeEvent,
    ChangeType,
    Customer,
    Order,
    OrderStatus,
)

logger = logging.getLogger("data_store")


class OrderSnapshotSource(Protocol):
    """What the reconciliation loop needs from the order store."""

    async def fetch_active_orders(self) -> list[Order]:
        """Open orders that have a due date. May raise on failure."""
        ...

    def subscribe(
        self,
        on_event: ChangeHandler,
        on_error: Optional[ErrorHandler] = None,
    ) -> Subscription:
        """Open a change subscription on the orders table."""
        ...


class OrderStore:
    """
    Order and customer store with a change feed.

    Example:
        store = OrderStore()
        store.upsert_order(Order(id="o-1", order_number="1001", customer_id="c-1",
                                 due_date=date(2024, 5, 13)))
        orders = await store.fetch_active_orders()
    """

    def __init__(self, data_dir: Optional[Path] = None, feed: Optional[ChangeFeed] = None):
        """
        Initialize the store.

        Args:
            data_dir: Directory containing JSON fixtures. When None the store
                      starts empty.
            feed: Change feed to publish on (defaults to a new one)
        """
        self.data_dir = Path(data_dir) if data_dir is not None else None
        self.feed = feed or ChangeFeed()

        # In-memory caches - loaded lazily
        self._orders: Optional[dict[str, Order]] = None
        self._customers: Optional[dict[str, Customer]] = None

    # =========================================================================
    # Data Loading (lazy)
    # =========================================================================

    def _load_json(self, filename: str) -> list[dict]:
        """Load a JSON fixture file."""
        if self.data_dir is None:
            return []
        filepath = self.data_dir / filename
        if not filepath.exists():
            return []
        with open(filepath, "r") as f:
            return json.load(f)

    def _ensure_orders_loaded(self):
        if self._orders is None:
            data = self._load_json("orders.json")
            self._orders = {o["id"]: Order(**o) for o in data}

    def _ensure_customers_loaded(self):
        if self._customers is None:
            data = self._load_json("customers.json")
            self._customers = {c["id"]: Customer(**c) for c in data}

    # =========================================================================
    # Snapshot source contract
    # =========================================================================

    async def fetch_active_orders(self) -> list[Order]:
        """Snapshot query: open orders with a due date."""
        return self.get_active_orders()

    def subscribe(
        self,
        on_event: ChangeHandler,
        on_error: Optional[ErrorHandler] = None,
    ) -> Subscription:
        return self.feed.subscribe(on_event, on_error, table="orders")

    # =========================================================================
    # Order Operations
    # =========================================================================

    def get_order(self, order_id: str) -> Optional[Order]:
        self._ensure_orders_loaded()
        return self._orders.get(order_id)

    def get_orders(self) -> list[Order]:
        self._ensure_orders_loaded()
        return list(self._orders.values())

    def get_active_orders(self) -> list[Order]:
        """Orders eligible for due-date alerts."""
        self._ensure_orders_loaded()
        return [o for o in self._orders.values() if o.is_open and o.due_date is not None]

    def upsert_order(self, order: Order) -> Order:
        """Insert or replace an order and publish the change."""
        self._ensure_orders_loaded()
        change = ChangeType.UPDATE if order.id in self._orders else ChangeType.INSERT
        self._orders[order.id] = order
        self._publish(change, order.model_dump(mode="json"))
        return order

    def update_order_status(self, order_id: str, status: OrderStatus) -> Optional[Order]:
        """Change an order's status. Returns None if the order is unknown."""
        return self._update(order_id, status=status)

    def update_due_date(self, order_id: str, due_date: Optional[date]) -> Optional[Order]:
        """Move (or clear) an order's due date."""
        return self._update(order_id, due_date=due_date)

    def delete_order(self, order_id: str) -> bool:
        """Remove an order. Returns False if it did not exist."""
        self._ensure_orders_loaded()
        order = self._orders.pop(order_id, None)
        if order is None:
            return False
        self._publish(ChangeType.DELETE, {"id": order_id})
        return True

    def _update(self, order_id: str, **changes: Any) -> Optional[Order]:
        self._ensure_orders_loaded()
        order = self._orders.get(order_id)
        if order is None:
            logger.warning(f"Order not found: {order_id}")
            return None
        updated = Order.model_validate({**order.model_dump(), **changes})
        self._orders[order_id] = updated
        self._publish(ChangeType.UPDATE, updated.model_dump(mode="json"))
        return updated

    def _publish(self, change: ChangeType, record: dict[str, Any]) -> None:
        self.feed.publish(ChangeEvent(event_type=change, table="orders", record=record))

    # =========================================================================
    # Customer Operations
    # =========================================================================

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        self._ensure_customers_loaded()
        return self._customers.get(customer_id)

    def get_customers(self) -> list[Customer]:
        self._ensure_customers_loaded()
        return list(self._customers.values())

    def add_customer(self, customer: Customer) -> Customer:
        self._ensure_customers_loaded()
        self._customers[customer.id] = customer
        return customer

    def reload(self):
        """Drop in-memory state so fixtures are read again on next access."""
        self._orders = None
        self._customers = None
