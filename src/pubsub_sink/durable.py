"""
Durable (buffer file) mode.

``DurableSink.emit`` appends each formatted event to a rolling buffer file.
``LogShipper`` tails those files from a persisted bookmark, publishes batches
in file order and moves the bookmark only past batches Pub/Sub accepted, so
unacknowledged events are re-read after a failure or a restart.
"""

from __future__ import annotations

import asyncio
import json
import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Optional, Sequence, Union

from loguru import logger

from .errors import BufferReadError, SinkConfigurationError
from .models import AssemblyResult, DeliveryOutcome, LogEvent, LogLevel, WireMessage
from .rolling import RollingFileWriter, list_files
from .state import SinkState

BOOKMARK_SUFFIX = ".bookmark"


def bookmark_path(buffer_base_filename: Union[str, Path]) -> Path:
    base = Path(buffer_base_filename).expanduser()
    return base.with_name(base.name + BOOKMARK_SUFFIX)


class FileBookmark:
    """Persisted read cursor: buffer file name + byte position."""

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> tuple[Optional[str], int]:
        if not self._path.exists():
            return None, 0
        try:
            doc = json.loads(self._path.read_text(encoding="utf-8"))
            return doc.get("file"), int(doc.get("position", 0))
        except (OSError, ValueError, TypeError, AttributeError) as exc:
            raise BufferReadError(f"Unreadable bookmark {self._path}: {exc}") from exc

    def write(self, file_name: str, position: int) -> None:
        tmp = self._path.with_name(self._path.name + ".tmp")
        tmp.write_text(json.dumps({"file": file_name, "position": position}), encoding="utf-8")
        os.replace(tmp, self._path)


@dataclass(frozen=True)
class BufferChunk:
    """Complete lines read from a buffer file, each with its end offset."""

    lines: list[tuple[str, int]]
    end: int
    # last line had no newline and was read anyway
    partial: bool = False


def read_chunk(
    path: Path,
    position: int,
    max_lines: int,
    encoding: str = "utf-8",
    *,
    include_partial: bool = False,
) -> BufferChunk:
    """
    Read up to ``max_lines`` non-blank complete lines starting at ``position``.

    With ``include_partial`` a trailing line without newline is returned too;
    only do that for files nobody writes to any more.
    """
    lines: list[tuple[str, int]] = []
    offset = position
    partial = False
    with open(path, "rb") as fh:
        fh.seek(position)
        while len(lines) < max_lines:
            raw = fh.readline()
            if not raw:
                break
            if not raw.endswith(b"\n"):
                # still being written, unless the file was abandoned
                if not include_partial:
                    break
                partial = True
            offset += len(raw)
            text = raw.decode(encoding, "replace").rstrip("\r\n")
            if text:
                lines.append((text, offset))
            if partial:
                break
    return BufferChunk(lines=lines, end=offset, partial=partial)


@dataclass
class ShipReport:
    """Result of one shipping pass."""

    shipped: int = 0
    skipped: int = 0
    failed: int = 0
    files_removed: int = 0
    outcomes: list[DeliveryOutcome] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def as_dict(self) -> dict:
        return {
            "shipped": self.shipped,
            "skipped": self.skipped,
            "failed": self.failed,
            "files_removed": self.files_removed,
            "batches": len(self.outcomes),
        }


@dataclass
class _Plan:
    file: Path
    chunk: BufferChunk
    result: AssemblyResult
    # bookmark position after each batch
    batch_ends: list[int]


class LogShipper:
    """Reads buffer files from the bookmark and publishes them batch by batch."""

    def __init__(
        self,
        state: SinkState,
        buffer_base_filename: Union[str, Path],
        *,
        extension: Optional[str] = None,
        bookmark: Optional[FileBookmark] = None,
        interval: Optional[Union[timedelta, float]] = None,
    ):
        self._state = state
        self._base = Path(buffer_base_filename).expanduser()
        self._extension = extension or state.options.buffer_file_extension
        self._bookmark = bookmark or FileBookmark(bookmark_path(self._base))
        interval = interval if interval is not None else state.options.buffer_log_shipping_interval
        self._interval = interval.total_seconds() if isinstance(interval, timedelta) else float(interval)
        self._stopping = asyncio.Event()

    @property
    def bookmark(self) -> FileBookmark:
        return self._bookmark

    def files(self) -> list[Path]:
        return list_files(self._base, self._extension)

    # --------------------------- one pass

    def ship_once(self) -> ShipReport:
        report = ShipReport()
        while True:
            plan = self._next_plan(report)
            if plan is None:
                return report
            if not self._execute(plan, report):
                return report

    async def ship_once_async(self) -> ShipReport:
        report = ShipReport()
        while True:
            plan = self._next_plan(report)
            if plan is None:
                return report
            if not await self._execute_async(plan, report):
                return report

    # --------------------------- loop

    async def run(self) -> None:
        """Ship every ``interval`` until ``stop()``."""
        while not self._stopping.is_set():
            try:
                report = await self.ship_once_async()
                if report.shipped or report.failed:
                    logger.debug(f"Buffer shipping pass: {report.as_dict()}")
            except Exception as exc:
                logger.warning(f"Buffer shipping error (will retry): {type(exc).__name__}: {exc}")
                self._state.sideband.report_error(f"Buffer shipping error: {type(exc).__name__}: {exc}")
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass

    def stop(self) -> None:
        self._stopping.set()

    def reset(self) -> None:
        """Allow ``run()`` again after ``stop()``."""
        self._stopping.clear()

    # --------------------------- internals

    def _next_plan(self, report: ShipReport) -> Optional[_Plan]:
        limit = self._state.options.batch_posting_limit
        while True:
            files = self.files()
            if not files:
                return None

            name, position = self._bookmark.read()
            current = next((f for f in files if f.name == name), None)
            if current is None:
                if name is not None:
                    self._state.sideband.report_error(
                        f"Bookmarked buffer file {name} no longer exists; restarting at {files[0].name}."
                    )
                current, position = files[0], 0
                self._bookmark.write(current.name, 0)

            if current.stat().st_size < position:
                self._state.sideband.report_error(
                    f"Buffer file {current.name} is shorter than bookmark position {position}; rereading it."
                )
                position = 0

            newer = files[files.index(current) + 1 :]
            # the writer has moved on, so a line without newline will never be completed
            chunk = read_chunk(current, position, limit, include_partial=bool(newer))
            if chunk.partial:
                self._state.sideband.report_error(
                    f"Buffer file {current.name} ends with an incomplete line; shipping it as is.",
                    [text for text, end in chunk.lines if end == chunk.end] or None,
                )
            if chunk.lines:
                return self._plan(current, chunk)
            if chunk.end > position:
                # only blank lines
                self._bookmark.write(current.name, chunk.end)
                continue

            if not newer:
                return None
            self._bookmark.write(newer[0].name, 0)
            try:
                current.unlink()
                report.files_removed += 1
                logger.debug(f"Shipped buffer file removed: {current}")
            except OSError as exc:
                logger.warning(f"Could not remove shipped buffer file {current}: {exc}")

    def _plan(self, file: Path, chunk: BufferChunk) -> _Plan:
        pairs: list[tuple[WireMessage, int]] = [
            (self._state.codec.encode_text(text), end) for text, end in chunk.lines
        ]
        result = self._state.assemble([m for m, _ in pairs])
        skipped = {id(m) for m in result.skipped}
        kept_ends = [end for m, end in pairs if id(m) not in skipped]

        batch_ends: list[int] = []
        cursor = 0
        for batch in result.batches:
            cursor += len(batch)
            batch_ends.append(kept_ends[cursor - 1])
        return _Plan(file=file, chunk=chunk, result=result, batch_ends=batch_ends)

    def _execute(self, plan: _Plan, report: ShipReport) -> bool:
        for batch, end in zip(plan.result.batches, plan.batch_ends):
            outcome = self._state.publish(batch.messages)
            if not self._record(plan, batch, end, outcome, report):
                return False
        return self._finish(plan, report)

    async def _execute_async(self, plan: _Plan, report: ShipReport) -> bool:
        for batch, end in zip(plan.result.batches, plan.batch_ends):
            outcome = await self._state.publish_async(batch.messages)
            if not self._record(plan, batch, end, outcome, report):
                return False
        return self._finish(plan, report)

    def _record(self, plan: _Plan, batch, end: int, outcome: DeliveryOutcome, report: ShipReport) -> bool:
        report.outcomes.append(outcome)
        if not outcome.ok:
            report.failed += len(batch)
            self._state.sideband.report_error(
                f"Publish of {len(batch)} buffered events from {plan.file.name} failed: {outcome.reason}",
                batch.sources(),
            )
            return False
        report.shipped += len(batch)
        self._bookmark.write(plan.file.name, end)
        return True

    def _finish(self, plan: _Plan, report: ShipReport) -> bool:
        report.skipped += len(plan.result.skipped)
        self._bookmark.write(plan.file.name, plan.chunk.end)
        return True


class DurableSink:
    """
    Buffer-file backed sink.

    Usage:
        sink = DurableSink(state)
        sink.emit(LogEvent.create("hello"))
        async with sink:           # runs the shipper
            ...
    """

    def __init__(
        self,
        state: SinkState,
        *,
        writer: Optional[RollingFileWriter] = None,
        shipper: Optional[LogShipper] = None,
        resources: Sequence[RollingFileWriter] = (),
    ):
        opts = state.options
        if not opts.buffer_base_filename:
            raise SinkConfigurationError("BufferBaseFilename is required for the durable sink")

        self._state = state
        self._writer = writer or RollingFileWriter(
            opts.buffer_base_filename,
            extension=opts.buffer_file_extension,
            file_size_limit_bytes=opts.buffer_file_size_limit_bytes,
            retained_file_count_limit=opts.buffer_retained_file_count_limit,
            buffered=opts.buffer_write_is_buffered,
            formatter=state.durable_formatter,
        )
        self._shipper = shipper or LogShipper(
            state, opts.buffer_base_filename, extension=opts.buffer_file_extension
        )
        self._resources = list(resources)
        self._task: Optional[asyncio.Task[None]] = None

    # --------------------------- context management

    async def __aenter__(self) -> "DurableSink":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    # --------------------------- public API

    @property
    def state(self) -> SinkState:
        return self._state

    @property
    def shipper(self) -> LogShipper:
        return self._shipper

    @property
    def writer(self) -> RollingFileWriter:
        return self._writer

    @property
    def minimum_level(self) -> Optional[LogLevel]:
        return self._state.options.minimum_log_event_level

    def emit(self, event: LogEvent) -> None:
        """Append one event to the buffer; never raises."""
        if self.minimum_level is not None and event.level < self.minimum_level:
            return
        try:
            self._writer.emit(event)
        except Exception as exc:
            self._state.sideband.report_error(
                f"Event could not be written to the buffer: {type(exc).__name__}: {exc}",
                [event.text],
            )

    def start(self) -> None:
        if self._task is not None:
            return
        self._shipper.reset()
        self._task = asyncio.create_task(self._shipper.run(), name="pubsub-sink-shipper")

    async def stop(self) -> None:
        """Stop shipping, flush the buffer writer and try one last pass."""
        self._shipper.stop()
        if self._task is not None:
            await self._task
            self._task = None
        self._writer.flush()
        try:
            await self._shipper.ship_once_async()
        except Exception as exc:
            logger.warning(f"Final buffer shipping pass failed: {type(exc).__name__}: {exc}")
        self._writer.close()
        for writer in self._resources:
            writer.close()
