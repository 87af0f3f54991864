"""
Batch assembler.

Groups pending wire messages into batches bounded by a message count and an
optional byte size. Oversize messages are skipped, never delivered.
"""

from __future__ import annotations

from typing import Callable, Iterable, Optional, Protocol, Sequence

from .models import AssemblyResult, Batch, WireMessage


class AssemblyListener(Protocol):
    """Receives skip/overflow notifications (the error sideband implements this)."""

    def report_skip(self, message: str, payload: list[str]) -> None:
        ...

    def report_overflow(
        self,
        message: str,
        count: int,
        count_limit: int,
        size_bytes: int,
        size_limit: Optional[int],
    ) -> None:
        ...


class BatchAssembler:
    """
    Deterministic FIFO batcher.

    Usage:
        assembler = BatchAssembler(max_count=50, max_bytes=1_000_000)
        result = assembler.assemble(messages)
        for batch in result.batches:
            ...
    """

    def __init__(
        self,
        max_count: int,
        max_bytes: Optional[int] = None,
        *,
        listener: Optional[AssemblyListener] = None,
        finalize: Optional[Callable[[Sequence[WireMessage]], Sequence[WireMessage]]] = None,
    ):
        if max_count < 1:
            raise ValueError("max_count must be >= 1")
        if max_bytes is not None and max_bytes < 1:
            raise ValueError("max_bytes must be >= 1 when set")
        self._max_count = max_count
        self._max_bytes = max_bytes
        self._listener = listener
        # applied to every closed batch; sizes are measured after it
        self._finalize = finalize

    @property
    def max_count(self) -> int:
        return self._max_count

    @property
    def max_bytes(self) -> Optional[int]:
        return self._max_bytes

    def assemble(self, pending: Iterable[WireMessage]) -> AssemblyResult:
        batches: list[Batch] = []
        skipped: list[WireMessage] = []

        current: list[WireMessage] = []
        current_bytes = 0

        for msg in pending:
            if self._max_bytes is not None:
                alone = self._measure([msg])
                if alone > self._max_bytes:
                    skipped.append(msg)
                    self._notify_skip(msg, alone)
                    continue

            if current:
                over_count = len(current) + 1 > self._max_count
                over_bytes = False
                if self._max_bytes is not None and not over_count:
                    if self._finalize is None:
                        over_bytes = current_bytes + msg.size > self._max_bytes
                    else:
                        over_bytes = self._measure(current + [msg]) > self._max_bytes
                if over_count or over_bytes:
                    batch = self._close(current)
                    self._notify_overflow(len(batch), batch.size_bytes)
                    batches.append(batch)
                    current = []
                    current_bytes = 0

            current.append(msg)
            current_bytes += msg.size

        if current:
            batches.append(self._close(current))

        return AssemblyResult(batches=tuple(batches), skipped=tuple(skipped))

    def _measure(self, messages: Sequence[WireMessage]) -> int:
        if self._finalize is not None:
            messages = self._finalize(messages)
        return sum(m.size for m in messages)

    def _close(self, messages: Sequence[WireMessage]) -> Batch:
        final = tuple(self._finalize(messages)) if self._finalize is not None else tuple(messages)
        return Batch(messages=final, size_bytes=sum(m.size for m in final))

    # --------------------------- notifications

    def _notify_skip(self, msg: WireMessage, size: int) -> None:
        if self._listener is None:
            return
        self._listener.report_skip(
            f"Event skipped: size {size} bytes exceeds BatchSizeLimitBytes={self._max_bytes}.",
            [msg.source if msg.source is not None else msg.data.decode("utf-8", "replace")],
        )

    def _notify_overflow(self, count: int, size_bytes: int) -> None:
        if self._listener is None:
            return
        self._listener.report_overflow(
            "Batch closed before end of input.",
            count,
            self._max_count,
            size_bytes,
            self._max_bytes,
        )
