"""
Message codec: LogEvent / text -> WireMessage.

Pure transformation with immutable configuration. No I/O, no shared state, so
one codec may be used from any number of threads or tasks.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Sequence

from .formatting import Formatter, RawFormatter
from .models import Batch, LogEvent, WireMessage

MIN_VALUE_SPEC_SEPARATOR = "#"


@dataclass(frozen=True)
class MinValueAttribute:
    """Parsed ``"<fieldIndex>#<attributeName>"`` rule."""

    field_index: int
    name: str

    @classmethod
    def parse(cls, spec: Optional[str]) -> Optional["MinValueAttribute"]:
        """Parse a rule; anything malformed yields None rather than an error."""
        if not spec or MIN_VALUE_SPEC_SEPARATOR not in spec:
            return None
        index_str, _, name = spec.partition(MIN_VALUE_SPEC_SEPARATOR)
        name = name.strip()
        try:
            index = int(index_str.strip())
        except ValueError:
            return None
        if index < 0 or not name:
            return None
        return cls(field_index=index, name=name)


class MessageCodec:
    """Builds wire messages and derives their attributes."""

    def __init__(
        self,
        *,
        formatter: Optional[Formatter] = None,
        data_to_base64: bool = True,
        fixed_attributes: Optional[Mapping[str, str]] = None,
        field_separator: Optional[str] = None,
        min_value_spec: Optional[str] = None,
        encoding: str = "utf-8",
    ):
        self._formatter = formatter or RawFormatter()
        self._base64 = data_to_base64
        self._fixed = {str(k): str(v) for k, v in (fixed_attributes or {}).items()}
        self._separator = field_separator or None
        self._min_attr = MinValueAttribute.parse(min_value_spec)
        self._encoding = encoding

    @property
    def formatter(self) -> Formatter:
        return self._formatter

    @property
    def min_value_attribute(self) -> Optional[MinValueAttribute]:
        return self._min_attr

    # --------------------------- encode

    def encode(self, event: LogEvent) -> WireMessage:
        return self.encode_text(self._formatter.format(event))

    def encode_text(self, text: str) -> WireMessage:
        raw = text.encode(self._encoding)
        data = base64.b64encode(raw) if self._base64 else raw
        return WireMessage(data=data, attributes=dict(self._fixed), source=text)

    def decode_text(self, message: WireMessage) -> str:
        """Inverse of ``encode_text`` for the configured base64 setting."""
        raw = base64.b64decode(message.data) if self._base64 else message.data
        return raw.decode(self._encoding)

    # --------------------------- computed attribute

    def field_value(self, text: str) -> Optional[str]:
        """Value of the configured field in ``text``, or None when not applicable."""
        if self._min_attr is None or self._separator is None:
            return None
        if self._separator not in text:
            return None
        parts = text.split(self._separator)
        if self._min_attr.field_index >= len(parts):
            return None
        value = parts[self._min_attr.field_index]
        return value if value != "" else None

    def min_value(self, texts: Iterable[str]) -> Optional[str]:
        """String-wise minimum of the configured field across ``texts``."""
        values = [v for v in (self.field_value(t) for t in texts) if v is not None]
        return min(values) if values else None

    def stamp(self, messages: Sequence[WireMessage]) -> tuple[WireMessage, ...]:
        """Messages with the group minimum attribute added (unchanged if none resolves)."""
        messages = tuple(messages)
        if self._min_attr is None or not messages:
            return messages
        value = self.min_value(Batch(messages=messages).sources())
        if value is None:
            return messages
        extra = {self._min_attr.name: value}
        return tuple(m.with_attributes(extra) for m in messages)

    def apply_batch_attributes(self, batch: Batch) -> Batch:
        """Stamp the batch minimum onto each of its messages (if one resolves)."""
        messages = self.stamp(batch.messages)
        if messages is batch.messages:
            return batch
        return Batch(messages=messages, size_bytes=sum(m.size for m in messages))
