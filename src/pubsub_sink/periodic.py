"""
Periodic batching sink.

Events are formatted on arrival and kept in a bounded in-memory queue; a single
worker task flushes them every ``period``. A failed batch and everything after
it stays pending for the next tick. Nothing is persisted: use the durable sink
when events must survive a restart.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Optional, Sequence, Union

from loguru import logger

from .metrics import MESSAGES_DROPPED_TOTAL
from .models import DeliveryOutcome, LogEvent, LogLevel
from .queue import BoundedQueue
from .rolling import RollingFileWriter
from .state import SinkState


def _seconds(value: Union[timedelta, float, int]) -> float:
    return value.total_seconds() if isinstance(value, timedelta) else float(value)


class PeriodicBatchingSink:
    """
    Timer-driven sink.

    Usage:
        async with PeriodicBatchingSink(state) as sink:
            await sink.emit(LogEvent.create("hello"))
    """

    def __init__(
        self,
        state: SinkState,
        *,
        period: Optional[Union[timedelta, float]] = None,
        queue_limit: Optional[int] = None,
        resources: Sequence[RollingFileWriter] = (),
    ):
        self._state = state
        self._period = _seconds(period if period is not None else state.options.period)
        self._queue: BoundedQueue[str] = BoundedQueue(
            queue_limit or state.options.queue_limit,
            drop_callback=self._on_drop,
        )
        self._retained: list[str] = []
        self._resources = list(resources)

        self._task: Optional[asyncio.Task[None]] = None
        self._stopping = asyncio.Event()
        self._flush_lock = asyncio.Lock()

    # --------------------------- context management

    async def __aenter__(self) -> "PeriodicBatchingSink":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    # --------------------------- public API

    @property
    def state(self) -> SinkState:
        return self._state

    @property
    def minimum_level(self) -> Optional[LogLevel]:
        return self._state.options.minimum_log_event_level

    @property
    def pending(self) -> int:
        return len(self._retained) + self._queue.size

    async def emit(self, event: LogEvent) -> None:
        """Queue one event; never raises."""
        try:
            if self.minimum_level is not None and event.level < self.minimum_level:
                return
            await self._queue.put(self._state.periodic_formatter.format(event))
        except Exception as exc:
            self._state.sideband.report_error(f"Event could not be queued: {type(exc).__name__}: {exc}")

    def start(self) -> None:
        if self._task is not None:
            return
        self._stopping.clear()
        self._task = asyncio.create_task(self._run(), name="pubsub-sink-periodic")

    async def stop(self) -> None:
        """Stop the worker after a final flush; safe to call multiple times."""
        self._stopping.set()
        if self._task is not None:
            await self._task
            self._task = None
        else:
            await self.flush()
        for writer in self._resources:
            writer.close()

    async def flush(self) -> list[DeliveryOutcome]:
        """Publish everything pending; returns one outcome per attempted batch."""
        async with self._flush_lock:
            texts = self._retained + self._queue.drain()
            self._retained = []
            if not texts:
                return []

            result = self._state.prepare(texts)
            outcomes: list[DeliveryOutcome] = []
            for i, batch in enumerate(result.batches):
                outcome = await self._state.publish_async(batch.messages)
                outcomes.append(outcome)
                if not outcome.ok:
                    pending = [t for b in result.batches[i:] for t in b.sources()]
                    self._retain(pending)
                    self._state.sideband.report_error(
                        f"Publish failed: {outcome.reason}. {len(pending)} events kept for the next attempt.",
                        batch.sources(),
                    )
                    break
            return outcomes

    # --------------------------- internals

    async def _run(self) -> None:
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self._period)
            except asyncio.TimeoutError:
                pass
            try:
                await self.flush()
            except Exception as exc:
                logger.warning(f"Periodic flush error (ignored): {type(exc).__name__}: {exc}")

    def _retain(self, texts: list[str]) -> None:
        limit = self._queue.capacity
        if len(texts) > limit:
            dropped = texts[: len(texts) - limit]
            texts = texts[len(texts) - limit :]
            MESSAGES_DROPPED_TOTAL.labels(topic=self._state.topic_path).inc(len(dropped))
            self._state.sideband.report_error(
                f"Queue limit {limit} reached: {len(dropped)} pending events dropped.", dropped
            )
        self._retained = texts

    async def _on_drop(self, text: str) -> None:
        MESSAGES_DROPPED_TOTAL.labels(topic=self._state.topic_path).inc()
        self._state.sideband.report_error("Queue limit reached: oldest event dropped.", [text])
