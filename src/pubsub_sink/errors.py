"""
Custom exceptions for the Pub/Sub sink.

Only configuration problems are ever raised to callers. Publish failures are
converted into ``Failure`` outcomes by the delivery engine.
"""


class PubSubSinkError(Exception):
    """Base error for the Pub/Sub sink."""

    pass


class SinkConfigurationError(PubSubSinkError, ValueError):
    """Invalid sink configuration (batch limit, identifiers, file prefixes)."""

    pass


class PublishError(PubSubSinkError):
    """The endpoint rejected or did not acknowledge a batch."""

    pass


class BufferReadError(PubSubSinkError):
    """A durable buffer file or its bookmark could not be read."""

    pass


def describe_error(e: BaseException) -> str:
    """Human readable reason for a failed publish; never empty."""
    text = str(e).strip()
    if not text:
        return type(e).__name__
    return text
