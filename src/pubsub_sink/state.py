"""
Delivery engine.

``SinkState`` ties codec, assembler and sideband to one Pub/Sub topic and
exposes the publish contract used by both schedulers (periodic and durable).
``publish`` and ``publish_async`` always return a DeliveryOutcome; they never
raise.
"""

from __future__ import annotations

import inspect
from time import perf_counter
from typing import Iterable, Optional, Sequence

from loguru import logger

from .batch import BatchAssembler
from .codec import MessageCodec
from .config import SinkOptions
from .errors import SinkConfigurationError, describe_error
from .formatting import Formatter, RawFormatter
from .metrics import (
    BATCH_OVERFLOWS_TOTAL,
    MESSAGES_PUBLISHED_TOTAL,
    MESSAGES_SKIPPED_TOTAL,
    PUBLISH_LATENCY_MS,
    PUBLISH_TOTAL,
)
from .models import AssemblyResult, DeliveryOutcome, Failure, Success, WireMessage
from .publisher import PublisherClient
from .rolling import RollingFileWriter
from .sideband import ErrorSideband


class SinkState:
    """Per-topic delivery engine."""

    @classmethod
    def create(
        cls,
        options: Optional[SinkOptions],
        publisher: PublisherClient,
        error_writer: Optional[RollingFileWriter] = None,
    ) -> "SinkState":
        if options is None:
            raise SinkConfigurationError("options is required")
        return cls(options, publisher, error_writer)

    def __init__(
        self,
        options: SinkOptions,
        publisher: PublisherClient,
        error_writer: Optional[RollingFileWriter] = None,
    ):
        if options.batch_posting_limit < 1:
            raise SinkConfigurationError("BatchPostingLimit must be >= 1")
        if not options.project_id or not options.project_id.strip():
            raise SinkConfigurationError("ProjectId is required")
        if not options.topic_id or not options.topic_id.strip():
            raise SinkConfigurationError("TopicId is required")
        if publisher is None:
            raise SinkConfigurationError("publisher is required")

        self._options = options
        self._publisher = publisher
        self._topic = options.topic_path

        self._formatter: Formatter = options.custom_formatter or RawFormatter()
        self._sideband = ErrorSideband.from_options(options, error_writer)
        self._codec = MessageCodec(
            formatter=self._formatter,
            data_to_base64=options.message_data_to_base64,
            fixed_attributes=options.message_attr_fixed,
            field_separator=options.event_field_separator,
            min_value_spec=options.message_attr_min_value,
        )
        self._assembler = BatchAssembler(
            options.batch_posting_limit,
            options.batch_size_limit_bytes,
            listener=self._sideband,
            finalize=self._codec.stamp if self._codec.min_value_attribute is not None else None,
        )
        logger.debug(f"SinkState ready: topic={self._topic} limit={options.batch_posting_limit}")

    # --------------------------- accessors

    @property
    def options(self) -> SinkOptions:
        return self._options

    @property
    def topic_path(self) -> str:
        return self._topic

    @property
    def formatter(self) -> Formatter:
        return self._formatter

    @property
    def periodic_formatter(self) -> Formatter:
        return self._formatter

    @property
    def durable_formatter(self) -> Formatter:
        return self._formatter

    @property
    def codec(self) -> MessageCodec:
        return self._codec

    @property
    def assembler(self) -> BatchAssembler:
        return self._assembler

    @property
    def sideband(self) -> ErrorSideband:
        return self._sideband

    # --------------------------- publish

    def publish(self, messages: Sequence[WireMessage]) -> DeliveryOutcome:
        messages = list(messages)
        t0 = perf_counter()
        try:
            ids = self._publisher.publish(self._topic, messages)
        except Exception as exc:
            return self._failed(exc, t0)
        return self._succeeded(messages, ids, t0)

    async def publish_async(self, messages: Sequence[WireMessage]) -> DeliveryOutcome:
        messages = list(messages)
        t0 = perf_counter()
        try:
            result = self._publisher.publish_async(self._topic, messages)
            ids = await result if inspect.isawaitable(result) else result
        except Exception as exc:
            return self._failed(exc, t0)
        return self._succeeded(messages, ids, t0)

    def publish_texts(self, texts: Optional[Iterable[str]]) -> DeliveryOutcome:
        return self.publish(self.to_wire_messages(texts))

    # --------------------------- conversion

    def to_wire_messages(self, texts: Optional[Iterable[str]]) -> list[WireMessage]:
        if not texts:
            return []
        return [self._codec.encode_text(t) for t in texts if t is not None]

    def prepare(self, texts: Optional[Iterable[str]]) -> AssemblyResult:
        """Convert and batch; the assembler stamps the per-batch minimum attribute."""
        return self.assemble(self.to_wire_messages(texts))

    def assemble(self, messages: Sequence[WireMessage]) -> AssemblyResult:
        result = self._assembler.assemble(messages)
        if result.skipped:
            MESSAGES_SKIPPED_TOTAL.labels(topic=self._topic).inc(len(result.skipped))
        if len(result.batches) > 1:
            BATCH_OVERFLOWS_TOTAL.labels(topic=self._topic).inc(len(result.batches) - 1)
        return result

    # --------------------------- internals

    def _succeeded(self, messages: list[WireMessage], ids, t0: float) -> DeliveryOutcome:
        ids = tuple(str(i) for i in (ids or ()))
        PUBLISH_LATENCY_MS.labels(topic=self._topic).observe((perf_counter() - t0) * 1000.0)
        PUBLISH_TOTAL.labels(topic=self._topic, outcome="success").inc()
        MESSAGES_PUBLISHED_TOTAL.labels(topic=self._topic).inc(len(messages))
        return Success(accepted=len(messages), message_ids=ids)

    def _failed(self, exc: BaseException, t0: float) -> DeliveryOutcome:
        reason = describe_error(exc)
        PUBLISH_LATENCY_MS.labels(topic=self._topic).observe((perf_counter() - t0) * 1000.0)
        PUBLISH_TOTAL.labels(topic=self._topic, outcome="failure").inc()
        logger.warning(f"Publish to {self._topic} failed: {type(exc).__name__}: {reason}")
        return Failure(reason=reason)
