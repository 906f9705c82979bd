"""
Error taxonomy for the alerting engine.

Nothing in the engine lets these escape to the process: each is caught at the
boundary of the component that issued the I/O and turned into a result value
plus a log entry. ``UnknownTemplate`` is the exception - it signals a
programming error and is raised to the caller.
"""

from typing import Optional


class OrderAlertsError(Exception):
    """Base class for all engine errors."""


class FetchError(OrderAlertsError):
    """The snapshot query failed; the pass is aborted and prior state kept."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class SubscriptionError(OrderAlertsError):
    """The change subscription dropped and must be re-established."""


class TransportError(OrderAlertsError):
    """A single outbound dispatch failed."""

    def __init__(self, channel: str, recipient: str, reason: str):
        super().__init__(f"{channel} to {recipient} failed: {reason}")
        self.channel = channel
        self.recipient = recipient
        self.reason = reason


class UnknownTemplate(OrderAlertsError, ValueError):
    """A message template type that does not exist was requested."""

    def __init__(self, template_type: object):
        super().__init__(f"No template found for type: {template_type}")
        self.template_type = template_type
