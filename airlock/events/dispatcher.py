"""EventDispatcher — fire-and-forget fan-out of events to every sink.

``emit`` never blocks and never raises.  Inside a running event loop it
schedules delivery as a detached task and returns at once; outside one
it delivers inline.  Inside a loop, synchronous ``accept`` calls run on a
single worker thread, so a slow sink never stalls the loop and each sink
still sees events in emission order.  Sink failures are logged and
swallowed; one failing sink does not stop delivery to the others, and
nothing is retried.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from airlock.models.events import AirlockEvent

if TYPE_CHECKING:
    from airlock.events.sinks import BaseSink

logger = logging.getLogger(__name__)


class EventDispatcher:
    """Routes events to all registered sinks, best-effort.

    Usage
    -----
    >>> dispatcher = EventDispatcher()
    >>> dispatcher.register_sink(LoggingSink())
    >>> dispatcher.emit(event)
    """

    def __init__(self) -> None:
        self._sinks: list[BaseSink] = []
        self._pending: set[asyncio.Task[None]] = set()
        self._sync_worker = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="airlock-events"
        )

    # ------------------------------------------------------------------
    # Sink management
    # ------------------------------------------------------------------

    def register_sink(self, sink: BaseSink) -> None:
        """Register a sink.  Registering the same instance twice is ignored."""
        if sink not in self._sinks:
            self._sinks.append(sink)
            logger.info("Registered event sink: %s", sink.sink_name)

    def unregister_sink(self, sink: BaseSink) -> None:
        """Remove a previously registered sink."""
        try:
            self._sinks.remove(sink)
            logger.info("Unregistered event sink: %s", sink.sink_name)
        except ValueError:
            pass

    @property
    def registered_sinks(self) -> list[BaseSink]:
        """Return a copy of the registered sink list."""
        return list(self._sinks)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def emit(self, event: AirlockEvent) -> None:
        """Hand *event* to every sink without waiting for them."""
        if not self._sinks:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is None:
            self._deliver_inline(event)
            return

        task = loop.create_task(self._deliver(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, event: AirlockEvent) -> None:
        loop = asyncio.get_running_loop()
        for sink in list(self._sinks):
            try:
                if inspect.iscoroutinefunction(sink.accept):
                    result = sink.accept(event)
                else:
                    result = await loop.run_in_executor(
                        self._sync_worker, sink.accept, event
                    )
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:  # noqa: BLE001
                self._log_failure(sink, event, exc)

    def _deliver_inline(self, event: AirlockEvent) -> None:
        for sink in list(self._sinks):
            try:
                result = sink.accept(event)
                if inspect.isawaitable(result):
                    asyncio.run(_await(result))
            except Exception as exc:  # noqa: BLE001
                self._log_failure(sink, event, exc)

    @staticmethod
    def _log_failure(sink: BaseSink, event: AirlockEvent, exc: Exception) -> None:
        logger.error(
            "Event sink %s failed for %s event %s: %s",
            sink.sink_name,
            event.type.value,
            event.event_id,
            exc,
        )

    async def drain(self) -> None:
        """Wait for every in-flight delivery (tests and shutdown)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


async def _await(awaitable: object) -> None:
    await awaitable  # type: ignore[misc]
