"""
Unit tests for PeriodicBatchingSink.
"""

import pytest

from pubsub_sink import InMemoryPublisher, LogEvent, PeriodicBatchingSink, SinkState


def _texts(publisher):
    return [m.data.decode() for m in publisher.messages]


@pytest.mark.asyncio
async def test_flush_publishes_in_batches(options, publisher):
    sink = PeriodicBatchingSink(SinkState(options.with_values(batch_posting_limit=2), publisher))
    for i in range(5):
        await sink.emit(LogEvent.create(f"e{i}"))

    outcomes = await sink.flush()

    assert [o.ok for o in outcomes] == [True, True, True]
    assert [len(b) for _, b in publisher.published] == [2, 2, 1]
    assert _texts(publisher) == [f"e{i}" for i in range(5)]
    assert sink.pending == 0


@pytest.mark.asyncio
async def test_flush_with_nothing_pending(options, publisher):
    sink = PeriodicBatchingSink(SinkState(options, publisher))

    assert await sink.flush() == []
    assert publisher.published == []


@pytest.mark.asyncio
async def test_failed_batch_is_retried_in_order(options):
    publisher = InMemoryPublisher(fail_with=RuntimeError("down"))
    sink = PeriodicBatchingSink(SinkState(options, publisher))
    await sink.emit(LogEvent.create("a"))
    await sink.emit(LogEvent.create("b"))

    outcomes = await sink.flush()
    assert not outcomes[0].ok
    assert outcomes[0].reason == "down"
    assert sink.pending == 2

    publisher.fail_with = None
    await sink.emit(LogEvent.create("c"))
    await sink.flush()

    assert _texts(publisher) == ["a", "b", "c"]
    assert sink.pending == 0


@pytest.mark.asyncio
async def test_queue_limit_drops_oldest(options, publisher):
    sink = PeriodicBatchingSink(SinkState(options, publisher), queue_limit=2)
    for i in range(3):
        await sink.emit(LogEvent.create(f"e{i}"))

    await sink.flush()

    assert _texts(publisher) == ["e1", "e2"]


@pytest.mark.asyncio
async def test_minimum_level_filters(options, publisher):
    state = SinkState(options.with_values(minimum_log_event_level="error"), publisher)
    sink = PeriodicBatchingSink(state)
    await sink.emit(LogEvent.create("chatty", level="info"))
    await sink.emit(LogEvent.create("broken", level="error"))

    await sink.flush()

    assert _texts(publisher) == ["broken"]


@pytest.mark.asyncio
@pytest.mark.timeout(5)
async def test_stop_runs_final_flush(options, publisher):
    sink = PeriodicBatchingSink(SinkState(options, publisher), period=60)
    async with sink:
        await sink.emit(LogEvent.create("last words"))

    assert _texts(publisher) == ["last words"]


@pytest.mark.asyncio
async def test_stop_without_start_flushes(options, publisher, error_writer):
    sink = PeriodicBatchingSink(SinkState(options, publisher), resources=[error_writer])
    await sink.emit(LogEvent.create("pending"))

    await sink.stop()

    assert _texts(publisher) == ["pending"]
    with pytest.raises(ValueError):
        error_writer.write_line("closed")
