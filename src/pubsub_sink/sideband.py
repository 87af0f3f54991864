"""
Error/debug sideband.

Best-effort recorder of operational events (publish errors, batch overflows,
skipped events, debug traces) into a dedicated rolling file. Every public
method swallows every exception: reporting a problem must never become one.
"""

from __future__ import annotations

from typing import Optional, Sequence

from loguru import logger

from .metrics import SIDEBAND_WRITE_ERRORS_TOTAL
from .models import LogEvent, LogLevel
from .rolling import RollingFileWriter

EVENTS_START_MARKER = " ---Events---"
EVENTS_END_MARKER = " ----end-----"
NO_EVENTS_MARKER = " ---Events: there are no events.---"


class ErrorSideband:
    """Writes gated error/debug entries to an optional RollingFileWriter."""

    def __init__(
        self,
        writer: Optional[RollingFileWriter] = None,
        *,
        store_events: bool = False,
        store_overflows: bool = False,
        store_event_skip: bool = False,
        store_all: bool = False,
    ):
        self._writer = writer
        self._store_events = store_events
        self._store_overflows = store_overflows
        self._store_event_skip = store_event_skip
        self._store_all = store_all

    @classmethod
    def from_options(cls, options, writer: Optional[RollingFileWriter] = None) -> "ErrorSideband":
        return cls(
            writer,
            store_events=options.error_store_events,
            store_overflows=options.debug_store_batch_limits_overflows,
            store_event_skip=options.debug_store_event_skip,
            store_all=options.debug_store_all,
        )

    @property
    def enabled(self) -> bool:
        return self._writer is not None

    # --------------------------- public API

    def report_error(self, message: str, payload: Optional[Sequence[str]] = None) -> None:
        try:
            save_payload = payload is not None and (self._store_events or self._store_all)
            self._store(message, payload, save_payload)
        except Exception:
            self._swallowed()

    def report_debug(self, message: str, payload: Optional[Sequence[str]] = None) -> None:
        try:
            if self._store_all:
                self._store(message, payload, payload is not None)
        except Exception:
            self._swallowed()

    def report_skip(self, message: str, payload: Sequence[str]) -> None:
        try:
            if self._store_all or self._store_event_skip:
                self._store(message, payload, True)
        except Exception:
            self._swallowed()

    def report_overflow(
        self,
        message: str,
        count: int,
        count_limit: int,
        size_bytes: int,
        size_limit: Optional[int] = None,
    ) -> None:
        try:
            if self._store_all or self._store_overflows:
                limit = "no limit" if size_limit is None else str(size_limit)
                text = (
                    f"{message} Overflow. // Events in payload={count} with limit={count_limit}"
                    f" // Size (bytes) of payload={size_bytes} with limit={limit}"
                )
                self._store(text, None, False)
        except Exception:
            self._swallowed()

    # --------------------------- internals

    def _store(self, message: str, payload: Optional[Sequence[str]], save_payload: bool) -> None:
        if self._writer is None or not message:
            return
        try:
            self._emit(message)
            if save_payload:
                if payload:
                    self._emit(EVENTS_START_MARKER)
                    for line in payload:
                        self._emit(line)
                    self._emit(EVENTS_END_MARKER)
                else:
                    self._emit(NO_EVENTS_MARKER)
        except Exception:
            self._swallowed()

    def _emit(self, text: str) -> None:
        if self._writer is None:
            return
        self._writer.emit(LogEvent(level=LogLevel.ERROR, text=text))

    @staticmethod
    def _swallowed() -> None:
        try:
            SIDEBAND_WRITE_ERRORS_TOTAL.inc()
            logger.opt(exception=True).debug("Sideband write failed (ignored)")
        except Exception:
            pass
