"""
Prometheus metrics for the Pub/Sub sink.

Import ``metrics_registry`` (or the module-level collectors) anywhere; they are
registered in the global prometheus REGISTRY on first import.
"""

from prometheus_client import Counter, Histogram

PUBLISH_TOTAL = Counter(
    "pubsub_sink_publish_total",
    "Total number of batch publish attempts",
    ["topic", "outcome"],
)

PUBLISH_LATENCY_MS = Histogram(
    "pubsub_sink_publish_latency_ms",
    "Batch publish latency in milliseconds",
    ["topic"],
    buckets=[1, 2.5, 5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000],
)

MESSAGES_PUBLISHED_TOTAL = Counter(
    "pubsub_sink_messages_published_total",
    "Messages accepted by Pub/Sub",
    ["topic"],
)

MESSAGES_SKIPPED_TOTAL = Counter(
    "pubsub_sink_messages_skipped_total",
    "Messages dropped because they exceed the batch byte limit",
    ["topic"],
)

MESSAGES_DROPPED_TOTAL = Counter(
    "pubsub_sink_messages_dropped_total",
    "Messages dropped by a full in-memory queue",
    ["topic"],
)

BATCH_OVERFLOWS_TOTAL = Counter(
    "pubsub_sink_batch_overflows_total",
    "Batches closed early because the count or byte limit was reached",
    ["topic"],
)

SIDEBAND_WRITE_ERRORS_TOTAL = Counter(
    "pubsub_sink_sideband_write_errors_total",
    "Errors swallowed while writing the error/debug file",
)


class MetricsRegistry:
    """Centralized access to the sink's collectors."""

    publish_total = PUBLISH_TOTAL
    publish_latency_ms = PUBLISH_LATENCY_MS
    messages_published_total = MESSAGES_PUBLISHED_TOTAL
    messages_skipped_total = MESSAGES_SKIPPED_TOTAL
    messages_dropped_total = MESSAGES_DROPPED_TOTAL
    batch_overflows_total = BATCH_OVERFLOWS_TOTAL
    sideband_write_errors_total = SIDEBAND_WRITE_ERRORS_TOTAL


# Singleton instance
metrics_registry = MetricsRegistry()
