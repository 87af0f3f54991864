"""
Pub/Sub Sink

Reliable, at-least-once shipping of log events to a Google Cloud Pub/Sub
topic, in count- and size-bounded batches, with an optional on-disk buffer and
an error/debug sideband file.

Usage:
    from loguru import logger
    from pubsub_sink import SinkOptions, create_sink, install

    options = SinkOptions(project_id="my-project", topic_id="logs",
                          buffer_base_filename="/var/spool/app/buffer")
    sink = create_sink(options)
    install(logger, sink)
    async with sink:
        logger.info("hello")
"""

from .batch import BatchAssembler
from .codec import MessageCodec, MinValueAttribute
from .config import SinkOptions, SinkSettings, get_settings
from .durable import DurableSink, FileBookmark, LogShipper, ShipReport
from .errors import PublishError, PubSubSinkError, SinkConfigurationError
from .factory import create_sink
from .formatting import Formatter, JsonFormatter, RawFormatter, TextLineFormatter
from .frontend import event_from_loguru, install
from .models import (
    AssemblyResult,
    Batch,
    DeliveryOutcome,
    Failure,
    LogEvent,
    LogLevel,
    Success,
    WireMessage,
)
from .periodic import PeriodicBatchingSink
from .publisher import GooglePubSubPublisher, InMemoryPublisher, PublisherClient
from .rolling import RollingFileWriter
from .sideband import ErrorSideband
from .state import SinkState

__version__ = "1.0.0"
__all__ = [
    "AssemblyResult",
    "Batch",
    "BatchAssembler",
    "DeliveryOutcome",
    "DurableSink",
    "ErrorSideband",
    "Failure",
    "FileBookmark",
    "Formatter",
    "GooglePubSubPublisher",
    "InMemoryPublisher",
    "JsonFormatter",
    "LogEvent",
    "LogLevel",
    "LogShipper",
    "MessageCodec",
    "MinValueAttribute",
    "PeriodicBatchingSink",
    "PubSubSinkError",
    "PublishError",
    "PublisherClient",
    "RawFormatter",
    "RollingFileWriter",
    "ShipReport",
    "SinkConfigurationError",
    "SinkOptions",
    "SinkSettings",
    "SinkState",
    "Success",
    "TextLineFormatter",
    "WireMessage",
    "create_sink",
    "event_from_loguru",
    "get_settings",
    "install",
]
