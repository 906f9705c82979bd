"""
Notification dispatcher: renders customer messages and hands them to the
outbound transports.

Design decisions:
- Constructed explicitly with its settings and transports; callers pass the
  instance around (no process-wide singleton)
- ``send``/``deliver`` never raise: transport failures are logged and
  reported as a failed result, so one bad recipient never aborts a batch
- Mobile numbers are normalized here, once, before any phone transport sees
  them
- A delivery can list fallback channels, tried in order until one succeeds;
  each attempt is addressed for its own channel
- Rendering an undefined template type raises UnknownTemplate to the caller
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

import httpx

from dispatch.channels import (
    PHONE_CHANNELS,
    ChannelType,
    DispatchResult,
    HttpTransport,
    build_transports,
)
from dispatch.templates import RenderedMessage, TemplateType, render
from shared.errors import TransportError
from shared.models import Customer, Invoice, Notification, Order
from shared.settings import DispatchSettings

logger = logging.getLogger("dispatch")

_SEPARATORS = re.compile(r"[\s\-().]")

Recipient = Union[Customer, str]


def normalize_mobile(number: str, country_code: str = "+91") -> str:
    """
    International form of a mobile number.

    Separators are stripped; numbers already starting with ``+`` are kept,
    ``00`` is read as ``+``, and anything else gets ``country_code``
    prepended (after dropping a single leading trunk ``0``).
    """
    digits = _SEPARATORS.sub("", number or "")
    if not digits or digits.startswith("+"):
        return digits
    if digits.startswith("00"):
        return f"+{digits[2:]}"
    if digits.startswith("0"):
        digits = digits[1:]
    return f"{country_code}{digits}"


@dataclass
class BulkDispatchReport:
    """Per-recipient outcome of a batch send."""
    results: list[DispatchResult] = field(default_factory=list)

    @property
    def sent(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    def failures(self) -> list[DispatchResult]:
        return [r for r in self.results if not r.success]


class NotificationDispatcher:
    """
    Sends customer messages over SMS, WhatsApp or email.

    Example:
        dispatcher = NotificationDispatcher(DispatchSettings(api_url="https://gw.example"))
        ok = await dispatcher.send("sms", "98765 43210", "Your order is ready")
    """

    def __init__(
        self,
        settings: DispatchSettings,
        transports: Optional[Mapping[Any, HttpTransport]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            settings: Provider endpoint, credentials and shop details
            transports: Channel -> transport overrides (defaults built from settings)
            client: Shared HTTP client for the default transports
        """
        self.settings = settings
        built = build_transports(settings, client=client)
        for channel, transport in (transports or {}).items():
            built[ChannelType(channel)] = transport
        self.transports: dict[ChannelType, HttpTransport] = built

    # =========================================================================
    # Rendering
    # =========================================================================

    def render(self, template_type: Any, context: Optional[Mapping[str, Any]] = None) -> RenderedMessage:
        """
        Render a customer message with this shop's name and contact.

        Raises:
            UnknownTemplate: If template_type is not defined
        """
        return render(
            template_type,
            context,
            shop_name=self.settings.shop_name,
            shop_contact=self.settings.shop_contact,
        )

    # =========================================================================
    # Addressing
    # =========================================================================

    def normalize_address(self, channel: ChannelType, address: str) -> str:
        if channel in PHONE_CHANNELS:
            return normalize_mobile(address, self.settings.default_country_code)
        return (address or "").strip()

    @staticmethod
    def address_for(customer: Customer, channel: ChannelType) -> str:
        """The raw contact a customer is reached at on ``channel``."""
        if channel == ChannelType.EMAIL:
            return customer.email or ""
        return customer.mobile

    # =========================================================================
    # Sending
    # =========================================================================

    async def _attempt(self, channel: ChannelType, address: str, message: str,
                       subject: Optional[str]) -> DispatchResult:
        recipient = self.normalize_address(channel, address)
        try:
            if not recipient:
                raise TransportError(channel.value, address or "", "no address")
            transport = self.transports.get(channel)
            if transport is None:
                raise TransportError(channel.value, recipient, "no transport configured")
            await transport.send(recipient, message, subject)
        except TransportError as e:
            logger.error(f"[{channel.value.upper()} FAILED] To: {recipient or address} | Error: {e.reason}")
            return DispatchResult(
                success=False, channel=channel, recipient=recipient,
                body=message, subject=subject, error=e.reason,
            )
        except Exception as e:
            logger.error(f"[{channel.value.upper()} FAILED] To: {recipient} | Unexpected error: {e!r}")
            return DispatchResult(
                success=False, channel=channel, recipient=recipient,
                body=message, subject=subject, error=repr(e),
            )

        logger.info(f"[{channel.value.upper()}] To: {recipient}")
        logger.debug(f"[{channel.value.upper()} BODY] {message}")
        return DispatchResult(success=True, channel=channel, recipient=recipient, body=message, subject=subject)

    async def deliver(
        self,
        channel: Any,
        address: Recipient,
        message: str,
        *,
        subject: Optional[str] = None,
        fallback: Sequence[Any] = (),
    ) -> DispatchResult:
        """
        Send one message, trying ``fallback`` channels in order on failure.

        ``address`` is a customer or a raw address. A customer is addressed
        per channel (mobile for sms/whatsapp, email for email). A raw address
        only carries over to channels of the same kind: a fallback that needs
        a different kind of address fails without a send. Returns the result
        of the first successful attempt, or of the last failed one.
        """
        result: Optional[DispatchResult] = None
        raw_is_phone: Optional[bool] = None
        for raw in (channel, *fallback):
            try:
                resolved = ChannelType(raw)
            except ValueError:
                logger.error(f"Unknown channel: {raw}")
                result = DispatchResult(
                    success=False, channel=raw, recipient=self._display(address),
                    body=message, subject=subject, error=f"unknown channel {raw!r}",
                )
                continue
            if result is not None:
                logger.info(f"Falling back to {resolved.value} for {self._display(address)}")

            if isinstance(address, Customer):
                target = self.address_for(address, resolved)
            else:
                is_phone = resolved in PHONE_CHANNELS
                if raw_is_phone is None:
                    raw_is_phone = is_phone
                if is_phone != raw_is_phone:
                    logger.warning(f"Skipping {resolved.value}: {address!r} is not a {resolved.value} address")
                    result = DispatchResult(
                        success=False, channel=resolved, recipient=address, body=message,
                        subject=subject, error=f"address is not valid for {resolved.value}",
                    )
                    continue
                target = address

            result = await self._attempt(resolved, target, message, subject)
            if result.success:
                break
        return result

    @staticmethod
    def _display(address: Recipient) -> str:
        return address.mobile if isinstance(address, Customer) else address

    async def send(self, channel: Any, address: Recipient, message: str, *, subject: Optional[str] = None) -> bool:
        """Send one message. Never raises; False means it was not accepted."""
        result = await self.deliver(channel, address, message, subject=subject)
        return result.success

    async def send_bulk(
        self,
        channel: Any,
        recipients: Iterable[Recipient],
        message: str,
        *,
        subject: Optional[str] = None,
    ) -> BulkDispatchReport:
        """
        Send the same message to many recipients.

        Recipients are customers or raw addresses. Each is isolated: a
        failure is reported for that recipient and the batch continues.
        """
        attempts = [self.deliver(channel, recipient, message, subject=subject) for recipient in recipients]

        report = BulkDispatchReport(results=list(await asyncio.gather(*attempts)))
        logger.info(f"Bulk {channel} dispatch complete: {report.sent} sent, {report.failed} failed")
        return report

    # =========================================================================
    # Customer messages
    # =========================================================================

    async def send_template(
        self,
        template_type: Any,
        context: Mapping[str, Any],
        customer: Customer,
        channel: Any = ChannelType.SMS,
        fallback: Sequence[Any] = (),
    ) -> DispatchResult:
        """
        Render a template for ``customer`` and send it.

        Raises:
            UnknownTemplate: If template_type is not defined
        """
        rendered = self.render(template_type, {"customer_name": customer.name, **context})
        return await self.deliver(channel, customer, rendered.message,
                                  subject=rendered.subject, fallback=fallback)

    async def send_bill_receipt(self, customer: Customer, invoice: Invoice,
                                channel: Any = ChannelType.SMS) -> bool:
        result = await self.send_template(
            TemplateType.BILL_RECEIPT,
            {
                "invoice_number": invoice.invoice_number,
                "total_amount": invoice.total_amount,
                "date": invoice.created_at,
                "items": invoice.items,
            },
            customer,
            channel,
        )
        return result.success

    async def send_delivery_reminder(self, customer: Customer, order: Order,
                                     items: Iterable[Any] = (),
                                     channel: Any = ChannelType.SMS) -> bool:
        result = await self.send_template(
            TemplateType.DELIVERY_REMINDER,
            {"order_number": order.order_number, "items": list(items)},
            customer,
            channel,
        )
        return result.success

    async def send_order_status_update(self, customer: Customer, order: Order,
                                       channel: Any = ChannelType.SMS) -> bool:
        result = await self.send_template(
            TemplateType.ORDER_STATUS,
            {"order_number": order.order_number, "status": order.status, "due_date": order.due_date},
            customer,
            channel,
        )
        return result.success

    async def send_measurement_confirmation(self, customer: Customer, clothing_type: str,
                                            channel: Any = ChannelType.SMS) -> bool:
        result = await self.send_template(
            TemplateType.MEASUREMENT_READY,
            {"clothing_type": clothing_type},
            customer,
            channel,
        )
        return result.success

    async def send_alert(self, notification: Notification, customer: Customer,
                         channel: Any = ChannelType.SMS,
                         fallback: Sequence[Any] = ()) -> DispatchResult:
        """Forward a derived due-date alert to the customer it concerns."""
        return await self.deliver(channel, customer, notification.message,
                                  subject=notification.title, fallback=fallback)
