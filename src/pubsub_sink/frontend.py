"""
loguru front-end.

``install`` registers a sink as a loguru handler. Records produced by this
package are filtered out so a failing sink cannot feed its own diagnostics
back into itself.

Periodic sinks are coroutine handlers: log calls must happen while an event
loop is running, and ``await logger.complete()`` waits for pending emits.
"""

from __future__ import annotations

from typing import Any, Optional, Union

from .durable import DurableSink
from .models import LogEvent, LogLevel
from .periodic import PeriodicBatchingSink

PACKAGE_NAME = __name__.split(".")[0]


def _nearest_level(no: int) -> LogLevel:
    level = LogLevel.TRACE
    for candidate in LogLevel:
        if candidate <= no:
            level = candidate
    return level


def event_from_loguru(record: dict[str, Any]) -> LogEvent:
    """Convert a loguru record dict (``message.record``) into a LogEvent."""
    return LogEvent(
        timestamp=record["time"],
        level=_nearest_level(record["level"].no),
        text=record["message"],
        properties=dict(record.get("extra") or {}),
    )


def _not_from_this_package(record: dict[str, Any]) -> bool:
    name = record.get("name") or ""
    return name != PACKAGE_NAME and not name.startswith(PACKAGE_NAME + ".")


def install(
    logger,
    sink: Union[DurableSink, PeriodicBatchingSink],
    *,
    level: Optional[Union[str, int, LogLevel]] = None,
) -> int:
    """Add ``sink`` to a loguru logger; returns the handler id for ``logger.remove``."""
    floor = LogLevel.parse(level) if level is not None else (sink.minimum_level or LogLevel.TRACE)

    if isinstance(sink, PeriodicBatchingSink):

        async def handler(message) -> None:
            await sink.emit(event_from_loguru(message.record))

    else:

        def handler(message) -> None:
            sink.emit(event_from_loguru(message.record))

    return logger.add(
        handler,
        level=int(floor),
        format="{message}",
        filter=_not_from_this_package,
        catch=True,
    )
