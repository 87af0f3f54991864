"""
Build a ready-to-use sink from options.

Durable mode is chosen when ``buffer_base_filename`` is configured, periodic
mode otherwise. The error/debug file writer is created here, borrowed by the
delivery engine, and closed when the sink stops.
"""

from __future__ import annotations

from typing import Optional, Union

from .config import DEFAULT_ERROR_FILE_EXTENSION, SinkOptions
from .durable import DurableSink
from .periodic import PeriodicBatchingSink
from .publisher import GooglePubSubPublisher, PublisherClient
from .rolling import RollingFileWriter
from .state import SinkState


def create_error_writer(options: SinkOptions) -> Optional[RollingFileWriter]:
    if not options.error_base_filename:
        return None
    return RollingFileWriter(
        options.error_base_filename,
        extension=DEFAULT_ERROR_FILE_EXTENSION,
        file_size_limit_bytes=options.error_file_size_limit_bytes,
    )


def create_sink(
    options: SinkOptions,
    publisher: Optional[PublisherClient] = None,
) -> Union[DurableSink, PeriodicBatchingSink]:
    publisher = publisher or GooglePubSubPublisher()
    error_writer = create_error_writer(options)
    resources = [error_writer] if error_writer is not None else []
    try:
        state = SinkState.create(options, publisher, error_writer)
        if options.durable:
            return DurableSink(state, resources=resources)
        return PeriodicBatchingSink(state, resources=resources)
    except Exception:
        for writer in resources:
            writer.close()
        raise
