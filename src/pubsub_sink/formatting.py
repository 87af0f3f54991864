"""
Text formatters that turn a LogEvent into the string sent to Pub/Sub.

The same formatter instance serves periodic and durable mode so an event is
serialized identically whichever path ships it.
"""

from __future__ import annotations

import json
from typing import Protocol

from .models import LogEvent


class Formatter(Protocol):
    """Anything with ``format(event) -> str``."""

    def format(self, event: LogEvent) -> str:
        ...


class RawFormatter:
    """Default formatter: the rendered message text, untouched."""

    def format(self, event: LogEvent) -> str:
        return event.text

    def __repr__(self) -> str:
        return "RawFormatter()"


class JsonFormatter:
    """Compact one-line JSON document with timestamp, level, message and properties."""

    def __init__(self, *, include_properties: bool = True, sort_keys: bool = False):
        self._include_properties = include_properties
        self._sort_keys = sort_keys

    def format(self, event: LogEvent) -> str:
        doc = {
            "timestamp": event.timestamp.isoformat(),
            "level": event.level.name,
            "message": event.text,
        }
        if self._include_properties and event.properties:
            doc["properties"] = event.properties
        return json.dumps(doc, separators=(",", ":"), sort_keys=self._sort_keys, default=str)


class TextLineFormatter:
    """``<iso timestamp> [TAG] text``; used for the error/debug file."""

    def format(self, event: LogEvent) -> str:
        ts = event.timestamp.isoformat(timespec="milliseconds")
        return f"{ts} [{event.level.tag}] {event.text}"
