"""Batch captured rrweb events and decide when to flush them.

The recorder runs on an asyncio loop. Events come in through ``record`` (the
capture source's emit callback) and leave in batches through a
``DeliveryTransport``. A flush is triggered by the batch size threshold, a
periodic timer, or the host page going hidden/unloading.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from improver.capture.lifecycle import Lifecycle, LifecycleEvent, VisibilityState
from improver.capture.session_context import SessionContext
from improver.capture.transport import DeliveryTransport
from improver.capture.user_agent import parse_user_agent
from improver.utils.events import is_valid_event

logger = logging.getLogger("improver.capture")

DEFAULT_BATCH_SIZE = 50
DEFAULT_FLUSH_INTERVAL = 10.0  # seconds


@dataclass
class PageInfo:
    """Hosting page details; the host updates ``url`` on navigation."""
    url: str = "unknown"
    user_agent: str = "unknown"
    screen_width: int = 0
    screen_height: int = 0


@dataclass
class RecorderOptions:
    """Options forwarded to the capture source."""
    mask_all_inputs: bool = True
    mask_text_content: bool = False


class Recorder:
    """
    Client-side batcher.

    ``init`` may run any number of times (host remount churn): the timer and
    lifecycle listeners are set up once and the session id is kept. ``flush``
    drains the queue before awaiting the transport, so triggers firing during
    an in-flight send only see events queued after the drain.
    """

    def __init__(
        self,
        transport: DeliveryTransport,
        context: Optional[SessionContext] = None,
        page: Optional[PageInfo] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        flush_interval: float = DEFAULT_FLUSH_INTERVAL,
    ):
        self.transport = transport
        self.context = context or SessionContext()
        self.page = page or PageInfo()
        self.batch_size = batch_size
        self.flush_interval = flush_interval
        self.options = RecorderOptions()

        self._queue: List[Dict[str, Any]] = []
        self._timer: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()
        self._initialized = False
        self._recording = False
        self._listeners_registered = False

    @property
    def pending(self) -> List[Dict[str, Any]]:
        """Snapshot of events waiting for the next flush."""
        return list(self._queue)

    @property
    def recording(self) -> bool:
        return self._recording

    def init(self, lifecycle: Optional[Lifecycle] = None, **options) -> str:
        """
        Start (or resume) recording. Must be called from a running event loop.

        Args:
            lifecycle: Host lifecycle registry to flush on hide/unload
            **options: RecorderOptions overrides

        Returns:
            The session id
        """
        if self._initialized and self._recording:
            return self.context.session_id

        for name, value in options.items():
            if hasattr(self.options, name):
                setattr(self.options, name, value)

        session_id = self.context.start()
        self._recording = True

        if self._timer is None:
            self._timer = asyncio.get_running_loop().create_task(self._run_timer())

        if lifecycle is not None and not self._listeners_registered:
            lifecycle.add_listener(LifecycleEvent.BEFORE_UNLOAD, self._on_unload)
            lifecycle.add_listener(LifecycleEvent.PAGE_HIDE, self._on_unload)
            lifecycle.add_listener(LifecycleEvent.VISIBILITY_CHANGE, self._on_visibility_change)
            self._listeners_registered = True

        self._initialized = True
        return session_id

    def record(self, event: Dict[str, Any]) -> None:
        """Queue one captured event; reaching the batch size triggers a flush."""
        if not self._recording:
            return
        if not is_valid_event(event):
            logger.debug("Dropping malformed event")
            return
        self._queue.append(event)
        if len(self._queue) >= self.batch_size:
            self._schedule_flush()

    async def flush(self) -> bool:
        """
        Send everything queued so far as one batch.

        Returns:
            False when the queue was empty, no session is active or delivery failed
        """
        if not self._queue or not self.context.active:
            return False
        # Bind the id before draining so a batch is never detached from its session
        session_id = self.context.session_id
        batch, self._queue = self._queue, []
        return await self.transport.send(
            session_id,
            batch,
            self.metadata(),
            on_failure=self.requeue,
        )

    def requeue(self, batch: List[Dict[str, Any]]) -> None:
        """Put a failed batch back in front of newer events, original order kept."""
        self._queue[:0] = batch

    def metadata(self) -> Dict[str, Any]:
        device = parse_user_agent(self.page.user_agent)
        return {
            "startTime": self.context.started_at,
            "userAgent": self.page.user_agent,
            "screenWidth": self.page.screen_width,
            "screenHeight": self.page.screen_height,
            "pageUrl": self.page.url,
            "deviceType": device.device_type,
            "browser": device.browser,
            "os": device.os,
        }

    def stop(self) -> None:
        """Stop capturing; timer, listeners and session id survive for a remount."""
        self._recording = False

    async def force_stop(self) -> None:
        """Full teardown (e.g. logout): stop the timer, flush, end the session."""
        self._recording = False
        if self._timer is not None:
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
            self._timer = None
        await self.settle()
        if self.context.active:
            await self.flush()
            if self._queue:
                # The session ends here; its events must not be sent under the next one
                logger.warning(
                    f"Discarding {len(self._queue)} undelivered events of ended session "
                    f"{self.context.session_id}"
                )
                self._queue = []
            self.context.end()
        self._initialized = False
        logger.info("Session recording force stopped")

    async def settle(self) -> None:
        """Wait for flushes scheduled by triggers to finish."""
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    def _schedule_flush(self) -> None:
        if not self.context.active:
            return
        task = asyncio.get_running_loop().create_task(self.flush())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    def _on_unload(self, *args) -> None:
        self._schedule_flush()

    def _on_visibility_change(self, state: str = VisibilityState.HIDDEN, *args) -> None:
        if state == VisibilityState.HIDDEN:
            self._schedule_flush()

    async def _run_timer(self) -> None:
        while True:
            await asyncio.sleep(self.flush_interval)
            try:
                await self.flush()
            except Exception as e:
                logger.error(f"Periodic flush failed: {e}", exc_info=True)
