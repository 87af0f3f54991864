"""
Publisher client adapters.

The delivery engine only needs ``publish(topic, messages)`` and its async
twin. Adapters own authentication, connection pooling and transport retries;
they raise on failure and the engine turns any exception into a ``Failure``.
"""

from __future__ import annotations

import asyncio
import itertools
import threading
from typing import Any, Optional, Protocol, Sequence, runtime_checkable

from loguru import logger

from .config import RESERVED_ATTRIBUTE_NAMES
from .errors import PublishError
from .models import WireMessage


@runtime_checkable
class PublisherClient(Protocol):
    """Opaque capability: deliver one batch to a topic, return message ids."""

    def publish(self, topic: str, messages: Sequence[WireMessage]) -> Sequence[str]:
        ...

    async def publish_async(self, topic: str, messages: Sequence[WireMessage]) -> Sequence[str]:
        ...


class InMemoryPublisher:
    """Records published batches; for tests, dry runs and local debugging."""

    def __init__(self, *, fail_with: Optional[BaseException] = None):
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self.fail_with = fail_with
        self.published: list[tuple[str, list[WireMessage]]] = []

    def publish(self, topic: str, messages: Sequence[WireMessage]) -> Sequence[str]:
        if self.fail_with is not None:
            raise self.fail_with
        with self._lock:
            self.published.append((topic, list(messages)))
            return [str(next(self._ids)) for _ in messages]

    async def publish_async(self, topic: str, messages: Sequence[WireMessage]) -> Sequence[str]:
        return self.publish(topic, messages)

    @property
    def messages(self) -> list[WireMessage]:
        """All published messages, in publish order."""
        with self._lock:
            return [m for _, batch in self.published for m in batch]


class GooglePubSubPublisher:
    """
    Adapter over ``google.cloud.pubsub_v1.PublisherClient``.

    Every message of the batch is published and its future awaited; the batch
    succeeds only if all of them do.

    Usage:
        publisher = GooglePubSubPublisher()
        state = SinkState(options, publisher)
    """

    def __init__(self, client: Any = None, *, timeout: float = 60.0):
        if client is None:
            from google.cloud import pubsub_v1

            client = pubsub_v1.PublisherClient()
        self._client = client
        self._timeout = timeout

    def publish(self, topic: str, messages: Sequence[WireMessage]) -> Sequence[str]:
        for m in messages:
            clash = RESERVED_ATTRIBUTE_NAMES.intersection(m.attributes)
            if clash:
                raise PublishError(f"Attribute names reserved by the publish call: {sorted(clash)}")
        futures = [self._client.publish(topic, m.data, **m.attributes) for m in messages]
        ids: list[str] = []
        errors: list[BaseException] = []
        for fut in futures:
            try:
                ids.append(fut.result(timeout=self._timeout))
            except Exception as exc:
                errors.append(exc)
        if errors:
            logger.debug(f"Pub/Sub rejected {len(errors)}/{len(messages)} messages on {topic}")
            raise PublishError(f"{len(errors)} of {len(messages)} messages failed: {errors[0]}")
        return ids

    async def publish_async(self, topic: str, messages: Sequence[WireMessage]) -> Sequence[str]:
        return await asyncio.to_thread(self.publish, topic, messages)
