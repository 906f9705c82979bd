"""
Reconciliation loop: keeps the alert set fresh.

Two independent signals say "the orders may have changed":
- a change event from the order store subscription
- a fixed refresh interval (5 minutes by default)

Both are treated as freshness hints feeding one coalescing scheduler. A
reconciliation pass is fetch -> compute -> merge read state -> publish, run
strictly in that order, and at most one pass is in flight at a time. Hints
that arrive while a pass is running set a single pending flag, so a burst
of change events costs at most one extra pass.

Every pass is numbered; a completion that is not newer than the last
published pass is discarded, and nothing is published once the handle is
stopped. A failed fetch keeps the previously published set and signals the
error. A dropped subscription is retried in the background while the timer
keeps driving refreshes.
"""

import asyncio
import functools
import logging
from datetime import datetime
from typing import Callable, Iterable, Optional

from alerting.computer import compute_notifications
from alerting.read_state import ReadStateTracker
from shared.change_feed import Subscription
from shared.data_store import OrderSnapshotSource
from shared.errors import FetchError, OrderAlertsError, SubscriptionError
from shared.models import ChangeEvent, Notification, Order, utcnow
from shared.settings import ReconciliationSettings

logger = logging.getLogger("reconciliation")


# Callback types
UpdateHandler = Callable[[list[Notification]], None]
ErrorSignal = Callable[[OrderAlertsError], None]
Computer = Callable[[Iterable[Order], datetime], list[Notification]]


class ReconciliationHandle:
    """
    A running reconciliation loop.

    Owns its subscription, its refresh timer and any pending re-subscription.
    ``stop`` releases all of them and is safe to call any number of times.
    Must be created from inside a running event loop.
    """

    def __init__(
        self,
        source: OrderSnapshotSource,
        on_update: UpdateHandler,
        *,
        tracker: ReadStateTracker,
        settings: ReconciliationSettings,
        on_error: Optional[ErrorSignal] = None,
        clock: Callable[[], datetime] = utcnow,
        compute: Computer = compute_notifications,
    ):
        self._loop = asyncio.get_running_loop()
        self._source = source
        self._on_update = on_update
        self._on_error = on_error
        self._clock = clock
        self._compute = compute
        self._settings = settings
        self.tracker = tracker

        self._active = False
        self._subscription: Optional[Subscription] = None
        # Bumped per subscribe; errors from an older subscription are ignored
        self._subscription_generation = 0
        self._timer_task: Optional[asyncio.Task] = None
        self._resubscribe_task: Optional[asyncio.Task] = None
        self._drain_task: Optional[asyncio.Task] = None
        self._pending = False

        # Pass numbering: started vs. last published
        self._started_seq = 0
        self._published_seq = 0

        self.passes_published = 0
        self.last_error: Optional[OrderAlertsError] = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def active(self) -> bool:
        return self._active

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None

    @property
    def in_flight(self) -> bool:
        return self._drain_task is not None and not self._drain_task.done()

    def _start(self) -> None:
        self._active = True
        self._subscribe()
        self._timer_task = self._loop.create_task(self._run_timer())
        logger.info(
            f"Reconciliation started (refresh every {self._settings.refresh_interval_seconds:g}s)"
        )
        self.trigger("initial")

    def stop(self) -> None:
        """
        Unsubscribe and cancel the timer.

        A fetch already underway is allowed to finish, but its result is
        thrown away.
        """
        if not self._active:
            return
        self._active = False
        self._pending = False

        if self._subscription is not None:
            try:
                self._subscription.close()
            except Exception as e:
                logger.error(f"Closing subscription failed: {e}")
            self._subscription = None

        for task in (self._timer_task, self._resubscribe_task):
            if task is not None and not task.done():
                task.cancel()
        self._timer_task = None
        self._resubscribe_task = None
        logger.info("Reconciliation stopped")

    # =========================================================================
    # Scheduling
    # =========================================================================

    def trigger(self, reason: str = "manual") -> None:
        """
        Ask for a fresh pass.

        Starts one immediately when idle; otherwise marks a single pass as
        pending behind the one in flight.
        """
        if not self._active:
            return
        if self.in_flight:
            if not self._pending:
                logger.debug(f"Pass in flight, queueing one more ({reason})")
            self._pending = True
            return
        self._pending = False
        self._drain_task = self._loop.create_task(self._drain(reason))

    async def refresh(self) -> bool:
        """
        Run a pass now (or join the one queued) and wait for it to settle.

        Returns True if a new alert set was published.
        """
        if not self._active:
            return False
        published_before = self.passes_published
        self.trigger("refresh")
        task = self._drain_task
        if task is not None:
            await asyncio.shield(task)
        return self.passes_published > published_before

    async def _drain(self, reason: str) -> None:
        while self._active:
            self._pending = False
            await self._run_pass(reason)
            if not self._pending:
                return
            reason = "coalesced"

    async def _run_timer(self) -> None:
        while self._active:
            await asyncio.sleep(self._settings.refresh_interval_seconds)
            self.trigger("timer")

    # =========================================================================
    # One pass: fetch -> compute -> merge -> publish
    # =========================================================================

    async def _run_pass(self, reason: str) -> None:
        self._started_seq += 1
        seq = self._started_seq
        logger.debug(f"Pass {seq} started ({reason})")

        try:
            orders = await self._source.fetch_active_orders()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = e if isinstance(e, FetchError) else FetchError(f"Snapshot fetch failed: {e}", cause=e)
            logger.warning(f"Pass {seq} aborted, keeping previous notifications: {error}")
            self._signal(error)
            return

        if not self._active:
            logger.debug(f"Pass {seq} finished after stop, discarding")
            return
        if seq <= self._published_seq:
            logger.debug(f"Pass {seq} is older than published pass {self._published_seq}, discarding")
            return

        computed = self._compute(orders, self._clock())
        merged = self.tracker.update(computed)

        self._published_seq = seq
        self.passes_published += 1
        self.last_error = None
        logger.info(
            f"Pass {seq} published {len(merged)} notification(s) from {len(orders)} order(s)"
        )

        try:
            self._on_update(merged)
        except Exception as e:
            logger.error(f"Update handler raised: {e}")

    def _signal(self, error: OrderAlertsError) -> None:
        self.last_error = error
        if self._on_error is None:
            return
        try:
            self._on_error(error)
        except Exception as e:
            logger.error(f"Error handler raised: {e}")

    # =========================================================================
    # Subscription
    # =========================================================================

    def _subscribe(self) -> None:
        try:
            self._subscription = self._open_subscription()
        except Exception as e:
            error = e if isinstance(e, SubscriptionError) else SubscriptionError(str(e))
            self._subscription_lost(error)
            return
        logger.info("Subscribed to order changes")

    def _on_change(self, event: ChangeEvent) -> None:
        logger.debug(f"Change received: {event}")
        self._call_soon(self.trigger, "change")

    def _open_subscription(self) -> Subscription:
        self._subscription_generation += 1
        on_error = functools.partial(self._on_subscription_error, self._subscription_generation)
        return self._source.subscribe(self._on_change, on_error)

    def _on_subscription_error(self, generation: int, error: SubscriptionError) -> None:
        self._call_soon(self._subscription_lost, error, generation)

    def _call_soon(self, callback: Callable, *args) -> None:
        # Subscription callbacks may arrive on a transport thread
        if self._loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            callback(*args)
        else:
            self._loop.call_soon_threadsafe(callback, *args)

    def _subscription_lost(self, error: SubscriptionError, generation: Optional[int] = None) -> None:
        if generation is not None and generation != self._subscription_generation:
            logger.debug(f"Ignoring error from replaced subscription: {error}")
            return
        self._subscription = None
        if not self._active:
            return
        logger.warning(f"Order subscription lost: {error}; timer refresh continues")
        self._signal(error)
        if self._resubscribe_task is None or self._resubscribe_task.done():
            self._resubscribe_task = self._loop.create_task(self._resubscribe())

    async def _resubscribe(self) -> None:
        delay = self._settings.resubscribe_delay_seconds
        while self._active and self._subscription is None:
            await asyncio.sleep(delay)
            if not self._active:
                return
            try:
                self._subscription = self._open_subscription()
            except Exception as e:
                logger.warning(f"Re-subscription failed, retrying in {delay:g}s: {e}")
                continue
            logger.info("Order subscription re-established")
            # Changes may have been missed while disconnected
            self.trigger("resubscribed")


class ReconciliationLoop:
    """
    Factory for reconciliation handles sharing one configuration.

    Example:
        loop = ReconciliationLoop(tracker=ReadStateTracker())
        handle = loop.start(store, on_update=render)
        ...
        handle.stop()
    """

    def __init__(
        self,
        tracker: Optional[ReadStateTracker] = None,
        settings: Optional[ReconciliationSettings] = None,
        on_error: Optional[ErrorSignal] = None,
        clock: Callable[[], datetime] = utcnow,
        compute: Computer = compute_notifications,
    ):
        self.tracker = tracker or ReadStateTracker()
        self.settings = settings or ReconciliationSettings()
        self.on_error = on_error
        self.clock = clock
        self.compute = compute

    def start(self, source: OrderSnapshotSource, on_update: UpdateHandler) -> ReconciliationHandle:
        """Subscribe to ``source``, start the timer and kick off the first pass."""
        handle = ReconciliationHandle(
            source,
            on_update,
            tracker=self.tracker,
            settings=self.settings,
            on_error=self.on_error,
            clock=self.clock,
            compute=self.compute,
        )
        handle._start()
        return handle


def start(
    source: OrderSnapshotSource,
    on_update: UpdateHandler,
    *,
    tracker: Optional[ReadStateTracker] = None,
    settings: Optional[ReconciliationSettings] = None,
    on_error: Optional[ErrorSignal] = None,
    clock: Callable[[], datetime] = utcnow,
) -> ReconciliationHandle:
    """Start a reconciliation loop with a one-off configuration."""
    loop = ReconciliationLoop(tracker=tracker, settings=settings, on_error=on_error, clock=clock)
    return loop.start(source, on_update)
