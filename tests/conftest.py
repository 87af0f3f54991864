"""
Pytest configuration and fixtures for pubsub-sink.

Provides cross-platform event loop configuration, sink options and publisher
doubles.
"""

import asyncio
import sys
from pathlib import Path

import pytest

from pubsub_sink import InMemoryPublisher, RollingFileWriter, SinkOptions
from pubsub_sink.rolling import list_files

# Set policy *before* pytest-asyncio creates any loops
if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


@pytest.fixture
def options():
    """Minimal valid options (periodic mode, base64 off for readable payloads)."""
    return SinkOptions(project_id="test-project", topic_id="test-topic", message_data_to_base64=False)


@pytest.fixture
def publisher():
    """Publisher double that records every batch."""
    return InMemoryPublisher()


@pytest.fixture
def failing_publisher():
    """Publisher double that always raises."""
    return InMemoryPublisher(fail_with=RuntimeError("endpoint unavailable"))


@pytest.fixture
def error_writer(tmp_path):
    """Rolling writer for the error/debug file, closed after the test."""
    writer = RollingFileWriter(tmp_path / "errors", extension=".log")
    yield writer
    writer.close()


def _read_entries(base: Path, extension: str = ".log") -> list[str]:
    out = []
    for path in list_files(base, extension):
        for line in path.read_text(encoding="utf-8").splitlines():
            out.append(line.split("] ", 1)[1] if "] " in line else line)
    return out


@pytest.fixture
def read_entries():
    """Texts written to a rolling set, without the ``<ts> [TAG] `` prefix."""
    return _read_entries
