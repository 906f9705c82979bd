"""
Outbound customer messaging.

- templates: customer message templates (bill receipt, delivery reminder,
  order status, measurement ready)
- channels: SMS / WhatsApp / email transports over the provider gateway
- dispatcher: rendering, address normalization, fallback and batch sends
"""

from dispatch.channels import ChannelType, DispatchResult
from dispatch.dispatcher import BulkDispatchReport, NotificationDispatcher, normalize_mobile
from dispatch.templates import RenderedMessage, TemplateType, render

__all__ = [
    "ChannelType",
    "DispatchResult",
    "BulkDispatchReport",
    "NotificationDispatcher",
    "normalize_mobile",
    "RenderedMessage",
    "TemplateType",
    "render",
]
