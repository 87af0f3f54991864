"""
Data models for the Pub/Sub sink.

LogEvent is the unit of input, WireMessage what travels to Pub/Sub. Batches
and delivery outcomes are plain frozen dataclasses; they only live for one
publish cycle.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Iterator, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


class LogLevel(IntEnum):
    """Severity levels, numerically aligned with loguru."""

    TRACE = 5
    DEBUG = 10
    INFO = 20
    SUCCESS = 25
    WARNING = 30
    ERROR = 40
    CRITICAL = 50

    @property
    def tag(self) -> str:
        return _LEVEL_TAGS[self]

    @classmethod
    def parse(cls, value: Union[str, int, "LogLevel"]) -> "LogLevel":
        """Accept a level name ("warning"), a number (30) or a LogLevel."""
        if isinstance(value, LogLevel):
            return value
        if isinstance(value, int):
            return cls(value)
        name = str(value).strip().upper()
        aliases = {"VERBOSE": "TRACE", "INFORMATION": "INFO", "WARN": "WARNING", "FATAL": "CRITICAL"}
        name = aliases.get(name, name)
        try:
            return cls[name]
        except KeyError:
            raise ValueError(f"Unknown log level: {value!r}") from None


_LEVEL_TAGS = {
    LogLevel.TRACE: "TRC",
    LogLevel.DEBUG: "DBG",
    LogLevel.INFO: "INF",
    LogLevel.SUCCESS: "SUC",
    LogLevel.WARNING: "WRN",
    LogLevel.ERROR: "ERR",
    LogLevel.CRITICAL: "CRT",
}


class LogEvent(BaseModel):
    """One immutable log record: timestamp, level, rendered text and properties."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=utc_now)
    level: LogLevel = LogLevel.INFO
    text: str
    properties: dict[str, Any] = Field(default_factory=dict)

    @field_validator("level", mode="before")
    @classmethod
    def _parse_level(cls, v):
        return LogLevel.parse(v)

    @classmethod
    def create(cls, text: str, level: Union[str, int, LogLevel] = LogLevel.INFO, **properties: Any) -> "LogEvent":
        return cls(text=text, level=level, properties=properties)


class WireMessage(BaseModel):
    """Payload bytes plus string attributes, as sent to Pub/Sub."""

    model_config = ConfigDict(frozen=True)

    data: bytes
    attributes: dict[str, str] = Field(default_factory=dict)
    # Pre-encoding text, only used for sideband reports. Never sent.
    source: Optional[str] = Field(default=None, exclude=True)

    @property
    def size(self) -> int:
        """Payload bytes plus the UTF-8 length of every attribute key and value."""
        attrs = sum(len(k.encode("utf-8")) + len(v.encode("utf-8")) for k, v in self.attributes.items())
        return len(self.data) + attrs

    def with_attributes(self, extra: dict[str, str]) -> "WireMessage":
        if not extra:
            return self
        return self.model_copy(update={"attributes": {**self.attributes, **extra}})


@dataclass(frozen=True)
class Batch:
    """Ordered group of wire messages delivered by one publish call."""

    messages: tuple[WireMessage, ...]
    size_bytes: int = 0

    def __len__(self) -> int:
        return len(self.messages)

    def __iter__(self) -> Iterator[WireMessage]:
        return iter(self.messages)

    def sources(self) -> list[str]:
        return [m.source if m.source is not None else m.data.decode("utf-8", "replace") for m in self.messages]


@dataclass(frozen=True)
class AssemblyResult:
    """Batches built from pending messages plus the oversize ones left out."""

    batches: tuple[Batch, ...] = ()
    skipped: tuple[WireMessage, ...] = ()

    @property
    def message_count(self) -> int:
        return sum(len(b) for b in self.batches)


@dataclass(frozen=True)
class Success:
    """Every message of the batch was accepted."""

    accepted: int
    message_ids: tuple[str, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    """Transport or endpoint error; nothing of the batch was accepted."""

    reason: str

    @property
    def ok(self) -> bool:
        return False


DeliveryOutcome = Union[Success, Failure]
