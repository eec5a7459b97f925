"""Long-poll loop pulling inbound events and dispatching each as its own task."""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Callable, Coroutine

from tgrelay.models import InboundEvent
from tgrelay.transports.base import Transport
from tgrelay.utils.logging import get_logger

log = get_logger(__name__)

DispatchFn = Callable[[InboundEvent], Coroutine[Any, Any, None]]


class PollState(str, Enum):
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"


class PollLoop:
    """Pulls updates until the stop event is set.

    Dispatches run concurrently with polling and with each other. At most
    ``max_inflight`` run at once; when the limit is reached the loop waits
    for a free slot before starting the next one. On shutdown, dispatches
    still running get ``shutdown_grace`` seconds to finish before they are
    cancelled.
    """

    def __init__(
        self,
        transport: Transport,
        dispatch: DispatchFn,
        *,
        error_delay: float = 1.0,
        shutdown_grace: float = 10.0,
        max_inflight: int = 64,
    ) -> None:
        self._transport = transport
        self._dispatch = dispatch
        self._error_delay = error_delay
        self._shutdown_grace = shutdown_grace
        self._slots = asyncio.Semaphore(max_inflight)
        self._inflight: set[asyncio.Task[None]] = set()
        self._state = PollState.RUNNING

    @property
    def state(self) -> PollState:
        return self._state

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    async def run(self, stop: asyncio.Event) -> None:
        log.info("poll_loop_started", platform=self._transport.platform_name)
        stop_wait = asyncio.create_task(stop.wait(), name="poll-stop-wait")
        fetch: asyncio.Task[list[InboundEvent]] | None = None
        try:
            while True:
                fetch = asyncio.create_task(
                    self._transport.fetch_events(), name="poll-fetch"
                )
                done, _ = await asyncio.wait(
                    {fetch, stop_wait}, return_when=asyncio.FIRST_COMPLETED
                )
                if stop_wait in done:
                    break

                try:
                    events = fetch.result()
                except Exception:
                    log.exception("poll_fetch_failed")
                    await self._sleep_unless_stopped(stop, self._error_delay)
                    continue
                finally:
                    fetch = None

                for index, event in enumerate(events):
                    if stop.is_set() or not await self._acquire_slot(stop, stop_wait):
                        log.info(
                            "poll_events_dropped_on_shutdown", count=len(events) - index
                        )
                        break
                    self._spawn(event)
        finally:
            self._state = PollState.SHUTTING_DOWN
            stop_wait.cancel()
            if fetch is not None:
                fetch.cancel()
                await asyncio.gather(fetch, return_exceptions=True)
            self._transport.stop_receiving()

        log.info("poll_loop_stopping", inflight=len(self._inflight))
        await self._drain()
        log.info("poll_loop_stopped")

    async def _acquire_slot(
        self, stop: asyncio.Event, stop_wait: asyncio.Task[bool]
    ) -> bool:
        """Wait for a free dispatch slot. Returns False if stop came first."""
        acquire = asyncio.create_task(self._slots.acquire(), name="poll-slot")
        await asyncio.wait({acquire, stop_wait}, return_when=asyncio.FIRST_COMPLETED)
        if not acquire.done():
            acquire.cancel()
            await asyncio.gather(acquire, return_exceptions=True)
        if acquire.cancelled():
            return False
        if stop.is_set():
            self._slots.release()
            return False
        return True

    def _spawn(self, event: InboundEvent) -> None:
        """Start a dispatch task in an already acquired slot."""
        task = asyncio.create_task(
            self._dispatch_one(event), name=f"dispatch-{type(event).__name__}"
        )
        self._inflight.add(task)
        task.add_done_callback(self._on_dispatch_done)
        # Only dispatched updates are confirmed back to the platform
        self._transport.ack(event)

    def _on_dispatch_done(self, task: asyncio.Task[None]) -> None:
        self._inflight.discard(task)
        self._slots.release()

    async def _dispatch_one(self, event: InboundEvent) -> None:
        try:
            await self._dispatch(event)
        except Exception:
            log.exception(
                "dispatch_failed",
                event_type=type(event).__name__,
                chat_id=event.chat_id,
            )

    async def _drain(self) -> None:
        if not self._inflight:
            return
        _, pending = await asyncio.wait(set(self._inflight), timeout=self._shutdown_grace)
        if pending:
            log.warning("dispatch_cancelled_on_shutdown", count=len(pending))
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    @staticmethod
    async def _sleep_unless_stopped(stop: asyncio.Event, delay: float) -> None:
        try:
            await asyncio.wait_for(stop.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass
