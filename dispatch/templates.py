"""
Customer message templates.

Templates are plain strings with {variable} placeholders. Rendering is pure
and total for every defined template type: any context value the caller
leaves out falls back to a sensible placeholder instead of failing, so a
half-filled context still produces a sendable message. Asking for a template
type that does not exist is a programming error and raises UnknownTemplate.

SMS and WhatsApp share the same text; the subject line is only used for
email.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from shared.errors import UnknownTemplate

DEFAULT_SHOP_NAME = "Tailor Bill Buddy"
DEFAULT_SHOP_CONTACT = "+91-XXXXXXXXXX"
CURRENCY = "₹"


class TemplateType(str, Enum):
    """Customer message kinds."""
    BILL_RECEIPT = "bill_receipt"
    DELIVERY_REMINDER = "delivery_reminder"
    ORDER_STATUS = "order_status"
    MEASUREMENT_READY = "measurement_ready"


@dataclass(frozen=True)
class RenderedMessage:
    """A template filled in for one recipient."""
    subject: str
    message: str


class _Context(dict):
    # Unknown placeholders render empty rather than raising
    def __missing__(self, key: str) -> str:
        return ""


@dataclass
class MessageTemplate:
    """A subject line and message body for one template type."""
    template_type: TemplateType
    subject: str
    message: str

    def render(self, **kwargs) -> RenderedMessage:
        context = _Context(kwargs)
        return RenderedMessage(
            subject=self.subject.format_map(context),
            message=self.message.format_map(context),
        )


# =============================================================================
# Template Definitions
# =============================================================================

TEMPLATES: dict[TemplateType, MessageTemplate] = {

    TemplateType.BILL_RECEIPT: MessageTemplate(
        template_type=TemplateType.BILL_RECEIPT,
        subject="Bill Receipt - {shop_name}",
        message="""Dear {customer_name},

Your bill receipt for Invoice #{invoice_number}:
Total Amount: {currency}{total_amount}
Date: {date}

Items:
{item_list}

Thank you for your business!
- {shop_name}""",
    ),

    TemplateType.DELIVERY_REMINDER: MessageTemplate(
        template_type=TemplateType.DELIVERY_REMINDER,
        subject="Delivery Ready - {shop_name}",
        message="""Dear {customer_name},

Your order #{order_number} is ready for pickup!

Items ready:
{item_list}

Please visit our shop at your convenience.
Contact: {shop_contact}

- {shop_name}""",
    ),

    TemplateType.ORDER_STATUS: MessageTemplate(
        template_type=TemplateType.ORDER_STATUS,
        subject="Order Status Update - {shop_name}",
        message="""Dear {customer_name},

Order #{order_number} status updated to: {status}

{status_line}

Expected delivery: {due_date}

- {shop_name}""",
    ),

    TemplateType.MEASUREMENT_READY: MessageTemplate(
        template_type=TemplateType.MEASUREMENT_READY,
        subject="Measurements Recorded - {shop_name}",
        message="""Dear {customer_name},

Your measurements for {clothing_type} have been successfully recorded.

You can now place orders based on these measurements.
Visit us or call {shop_contact} to place your order.

- {shop_name}""",
    ),
}

STATUS_LINES = {
    "in_progress": "Your order is being worked on by our skilled tailors.",
    "ready": "Your order is ready for pickup!",
    "delivered": "Order successfully delivered. Thank you!",
}
DEFAULT_STATUS_LINE = "Order details updated."


# =============================================================================
# Context helpers
# =============================================================================

def _field(item: Any, name: str, default: Any = "") -> Any:
    if isinstance(item, Mapping):
        return item.get(name, default)
    return getattr(item, name, default)


def format_amount(value: Any) -> str:
    """Two-decimal amount, or the value as given if it is not numeric."""
    if value is None or value == "":
        return "0.00"
    try:
        return f"{float(value):.2f}"
    except (TypeError, ValueError):
        return str(value)


def format_date(value: Any) -> str:
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, date):
        return value.strftime("%d/%m/%Y")
    return str(value) if value else ""


def format_item_list(items: Optional[Iterable[Any]], with_price: bool = False) -> str:
    """
    Bullet list of items for a message body.

    Items may be dicts or objects with ``description`` (and ``total_price``
    when ``with_price`` is set).
    """
    lines = []
    for item in items or []:
        description = _field(item, "description")
        if with_price:
            lines.append(f"• {description} - {CURRENCY}{format_amount(_field(item, 'total_price'))}")
        else:
            lines.append(f"• {description}")
    return "\n".join(lines)


def _prepare(template_type: TemplateType, context: Mapping[str, Any],
             shop_name: str, shop_contact: str) -> dict[str, Any]:
    values: dict[str, Any] = {
        "shop_name": context.get("shop_name") or shop_name,
        "shop_contact": context.get("shop_contact") or shop_contact,
        "customer_name": context.get("customer_name") or "Customer",
        "currency": CURRENCY,
    }

    if template_type == TemplateType.BILL_RECEIPT:
        values.update(
            invoice_number=context.get("invoice_number", ""),
            total_amount=format_amount(context.get("total_amount")),
            date=format_date(context.get("date")),
            item_list=format_item_list(context.get("items"), with_price=True),
        )
    elif template_type == TemplateType.DELIVERY_REMINDER:
        values.update(
            order_number=context.get("order_number", ""),
            item_list=format_item_list(context.get("items")),
        )
    elif template_type == TemplateType.ORDER_STATUS:
        status = context.get("status") or ""
        status = status.value if isinstance(status, Enum) else str(status)
        values.update(
            order_number=context.get("order_number", ""),
            status=status.upper(),
            status_line=STATUS_LINES.get(status, DEFAULT_STATUS_LINE),
            due_date=format_date(context.get("due_date")) or "To be confirmed",
        )
    elif template_type == TemplateType.MEASUREMENT_READY:
        values.update(clothing_type=context.get("clothing_type") or "your garment")

    return values


# =============================================================================
# Template Access Functions
# =============================================================================

def resolve_template_type(template_type: Any) -> TemplateType:
    """
    Coerce a template type name.

    Raises:
        UnknownTemplate: If the name is not a defined template type
    """
    if isinstance(template_type, TemplateType):
        return template_type
    try:
        return TemplateType(template_type)
    except ValueError:
        raise UnknownTemplate(template_type) from None


def get_template(template_type: Any) -> MessageTemplate:
    return TEMPLATES[resolve_template_type(template_type)]


def render(
    template_type: Any,
    context: Optional[Mapping[str, Any]] = None,
    *,
    shop_name: str = DEFAULT_SHOP_NAME,
    shop_contact: str = DEFAULT_SHOP_CONTACT,
) -> RenderedMessage:
    """
    Render a customer message.

    Args:
        template_type: One of the TemplateType values
        context: Variables for the template; missing ones get placeholders
        shop_name: Sign-off used when the context does not provide one
        shop_contact: Contact number used when the context does not provide one

    Raises:
        UnknownTemplate: If template_type is not defined
    """
    resolved = resolve_template_type(template_type)
    values = _prepare(resolved, context or {}, shop_name, shop_contact)
    return TEMPLATES[resolved].render(**values)
