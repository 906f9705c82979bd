"""
FastAPI application exposing one alerting session.

The app owns a session: the order store, the read-state tracker, a running
reconciliation loop and the dispatcher. The loop is started in the lifespan
and stopped on shutdown.

Endpoints:
- /notifications ...   current alerts, read/unread marking, manual refresh
- /dispatch ...        template preview and outbound customer messages

Run with:
    uvicorn api.main:app --reload

Then visit http://localhost:8000/docs for interactive API documentation.
"""

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from alerting.computer import sort_by_urgency
from alerting.read_state import ReadStateTracker
from alerting.reconciliation import ReconciliationHandle, ReconciliationLoop
from dispatch.channels import ChannelType, DispatchResult
from dispatch.dispatcher import NotificationDispatcher
from shared.data_store import OrderStore
from shared.errors import OrderAlertsError, UnknownTemplate
from shared.models import Customer, Notification, utcnow
from shared.settings import DispatchSettings, ReconciliationSettings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)-24s | %(levelname)-5s | %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger("api")


# =============================================================================
# Request / response models
# =============================================================================

class NotificationList(BaseModel):
    """Current alert set, most urgent first, with dashboard counts."""
    notifications: list[Notification]
    total: int
    unread_count: int
    overdue: int
    due_soon: int
    passes_published: int
    error: Optional[str] = Field(default=None, description="Last refresh problem, if any")


class ReadStateResponse(BaseModel):
    id: str
    is_read: bool
    unread_count: int


class MarkAllResponse(BaseModel):
    marked: int
    unread_count: int


class RenderRequest(BaseModel):
    template_type: str
    context: dict[str, Any] = Field(default_factory=dict)


class RenderResponse(BaseModel):
    subject: str
    message: str


class SendRequest(BaseModel):
    channel: str = Field(default=ChannelType.SMS.value)
    to: str = Field(..., description="Mobile number or email address")
    message: str
    subject: Optional[str] = None
    fallback: list[str] = Field(
        default_factory=list, description="Channels of the same address kind to try on failure"
    )


class BulkSendRequest(BaseModel):
    channel: str = Field(default=ChannelType.SMS.value)
    recipients: list[str]
    message: str
    subject: Optional[str] = None


class AlertDispatchRequest(BaseModel):
    channel: str = Field(default=ChannelType.SMS.value)
    notification_ids: Optional[list[str]] = Field(
        default=None, description="Alerts to forward; all unread alerts when omitted"
    )
    fallback: list[str] = Field(default_factory=list)


class DispatchOutcome(BaseModel):
    success: bool
    channel: str
    recipient: str
    error: Optional[str] = None

    @classmethod
    def from_result(cls, result: DispatchResult) -> "DispatchOutcome":
        return cls(
            success=result.success,
            channel=getattr(result.channel, "value", str(result.channel)),
            recipient=result.recipient,
            error=result.error,
        )


class BulkOutcome(BaseModel):
    sent: int
    failed: int
    results: list[DispatchOutcome]


# =============================================================================
# Session
# =============================================================================

class AlertSession:
    """Everything one operator session needs, wired together explicitly."""

    def __init__(
        self,
        store: OrderStore,
        dispatcher: NotificationDispatcher,
        reconciliation_settings: ReconciliationSettings,
        clock=utcnow,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.tracker = ReadStateTracker(clock=clock)
        self.loop = ReconciliationLoop(
            tracker=self.tracker,
            settings=reconciliation_settings,
            on_error=self._on_error,
            clock=clock,
        )
        self.handle: Optional[ReconciliationHandle] = None

    def _on_error(self, error: OrderAlertsError) -> None:
        logger.warning(f"Refresh problem: {error}")

    def on_update(self, notifications: list[Notification]) -> None:
        logger.debug(f"Session received {len(notifications)} notification(s)")

    def start(self) -> ReconciliationHandle:
        self.handle = self.loop.start(self.store, self.on_update)
        return self.handle

    def stop(self) -> None:
        if self.handle is not None:
            self.handle.stop()

    def listing(self) -> NotificationList:
        summary = self.tracker.summary()
        error = self.handle.last_error if self.handle else None
        return NotificationList(
            notifications=sort_by_urgency(self.tracker.notifications),
            total=summary.total,
            unread_count=summary.unread,
            overdue=summary.overdue,
            due_soon=summary.due_soon,
            passes_published=self.handle.passes_published if self.handle else 0,
            error=str(error) if error else None,
        )

    def customer_for(self, notification: Notification) -> Optional[Customer]:
        customer = self.store.get_customer(notification.customer_id)
        if customer is not None:
            return customer
        order = self.store.get_order(notification.order_id)
        if order is not None and order.customer_mobile:
            return Customer(id=order.customer_id, name=order.customer_name, mobile=order.customer_mobile)
        return None


def _session(request: Request) -> AlertSession:
    return request.app.state.session


# =============================================================================
# Application factory
# =============================================================================

def create_app(
    store: Optional[OrderStore] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
    reconciliation_settings: Optional[ReconciliationSettings] = None,
    clock=utcnow,
) -> FastAPI:
    """Build the app around an explicitly supplied store and dispatcher."""

    if store is None:
        data_dir = os.environ.get("ORDER_ALERTS_DATA_DIR")
        store = OrderStore(data_dir=Path(data_dir) if data_dir else None)
    if dispatcher is None:
        dispatcher = NotificationDispatcher(DispatchSettings())

    session = AlertSession(
        store=store,
        dispatcher=dispatcher,
        reconciliation_settings=reconciliation_settings or ReconciliationSettings(),
        clock=clock,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the reconciliation loop and load the first alert set."""
        logging.info("Starting order alerts session")
        handle = session.start()
        await handle.refresh()
        yield
        session.stop()
        logging.info("Shutting down")

    app = FastAPI(
        title="Order Due-Date Alerts",
        description="Overdue / due-soon alerts for open orders, and outbound customer messaging.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.session = session

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.get("/health", tags=["Health"])
    def health_check(request: Request):
        handle = _session(request).handle
        return {
            "status": "healthy",
            "service": "order-alerts",
            "reconciling": bool(handle and handle.active),
            "subscribed": bool(handle and handle.subscribed),
        }

    # =========================================================================
    # Notifications
    # =========================================================================

    @app.get("/notifications", response_model=NotificationList, tags=["Notifications"])
    def list_notifications(request: Request):
        """Current alerts, most urgent first."""
        return _session(request).listing()

    @app.post("/notifications/refresh", response_model=NotificationList, tags=["Notifications"])
    async def refresh_notifications(request: Request):
        """Run a reconciliation pass now and return the result."""
        session = _session(request)
        if session.handle is not None:
            await session.handle.refresh()
        return session.listing()

    @app.post("/notifications/read-all", response_model=MarkAllResponse, tags=["Notifications"])
    def mark_all_read(request: Request):
        tracker = _session(request).tracker
        marked = tracker.mark_all_read()
        return MarkAllResponse(marked=marked, unread_count=tracker.unread_count)

    @app.post("/notifications/{notification_id}/read", response_model=ReadStateResponse, tags=["Notifications"])
    def mark_read(notification_id: str, request: Request):
        tracker = _session(request).tracker
        if not tracker.mark_read(notification_id):
            raise HTTPException(status_code=404, detail=f"Notification not found: {notification_id}")
        return ReadStateResponse(id=notification_id, is_read=True, unread_count=tracker.unread_count)

    @app.post("/notifications/{notification_id}/unread", response_model=ReadStateResponse, tags=["Notifications"])
    def mark_unread(notification_id: str, request: Request):
        tracker = _session(request).tracker
        if not tracker.mark_unread(notification_id):
            raise HTTPException(status_code=404, detail=f"Notification not found: {notification_id}")
        return ReadStateResponse(id=notification_id, is_read=False, unread_count=tracker.unread_count)

    # =========================================================================
    # Dispatch
    # =========================================================================

    @app.post("/dispatch/render", response_model=RenderResponse, tags=["Dispatch"])
    def render_message(body: RenderRequest, request: Request):
        """Preview a customer message."""
        try:
            rendered = _session(request).dispatcher.render(body.template_type, body.context)
        except UnknownTemplate as e:
            raise HTTPException(status_code=404, detail=str(e))
        return RenderResponse(subject=rendered.subject, message=rendered.message)

    @app.post("/dispatch/send", response_model=DispatchOutcome, tags=["Dispatch"])
    async def send_message(body: SendRequest, request: Request):
        result = await _session(request).dispatcher.deliver(
            body.channel, body.to, body.message, subject=body.subject, fallback=body.fallback
        )
        return DispatchOutcome.from_result(result)

    @app.post("/dispatch/bulk", response_model=BulkOutcome, tags=["Dispatch"])
    async def send_bulk(body: BulkSendRequest, request: Request):
        report = await _session(request).dispatcher.send_bulk(
            body.channel, body.recipients, body.message, subject=body.subject
        )
        return BulkOutcome(
            sent=report.sent,
            failed=report.failed,
            results=[DispatchOutcome.from_result(r) for r in report.results],
        )

    @app.post("/dispatch/alerts", response_model=BulkOutcome, tags=["Dispatch"])
    async def dispatch_alerts(body: AlertDispatchRequest, request: Request):
        """Forward alerts to the customers whose orders they concern."""
        session = _session(request)
        if body.notification_ids is None:
            selected = [n for n in session.tracker.notifications if not n.is_read]
        else:
            selected = []
            for notification_id in body.notification_ids:
                notification = session.tracker.get(notification_id)
                if notification is None:
                    raise HTTPException(status_code=404, detail=f"Notification not found: {notification_id}")
                selected.append(notification)

        results = []
        for notification in selected:
            customer = session.customer_for(notification)
            if customer is None:
                logger.error(f"No contact details for customer {notification.customer_id}")
                results.append(DispatchOutcome(
                    success=False, channel=body.channel, recipient="",
                    error=f"no contact for customer {notification.customer_id}",
                ))
                continue
            result = await session.dispatcher.send_alert(
                notification, customer, body.channel, fallback=body.fallback
            )
            results.append(DispatchOutcome.from_result(result))

        sent = sum(1 for r in results if r.success)
        return BulkOutcome(sent=sent, failed=len(results) - sent, results=results)

    return app


app = create_app()
