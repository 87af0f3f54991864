"""
Unit tests for BatchAssembler.
"""

import math

import pytest

from pubsub_sink import BatchAssembler, ErrorSideband, MessageCodec

codec = MessageCodec(data_to_base64=False)


def _msgs(texts):
    return [codec.encode_text(t) for t in texts]


@pytest.mark.parametrize("m,n", [(0, 1), (1, 1), (10, 3), (23, 5), (50, 50), (51, 50), (7, 100)])
def test_count_limit_batches(m, n):
    """M messages with limit N yield ceil(M/N) batches, FIFO, nothing lost."""
    texts = [f"event-{i}" for i in range(m)]

    result = BatchAssembler(max_count=n).assemble(_msgs(texts))

    assert len(result.batches) == math.ceil(m / n)
    assert all(len(b) == n for b in result.batches[:-1])
    if m:
        assert len(result.batches[-1]) == (m % n or n)
    assert [t for b in result.batches for t in b.sources()] == texts
    assert result.skipped == ()


def test_byte_limit_closes_batches():
    result = BatchAssembler(max_count=100, max_bytes=10).assemble(_msgs(["aaaa", "bbbb", "cccc"]))

    assert [b.sources() for b in result.batches] == [["aaaa", "bbbb"], ["cccc"]]
    assert [b.size_bytes for b in result.batches] == [8, 4]


def test_oversize_message_is_skipped():
    """A message larger than max_bytes is in skipped and in no batch."""
    result = BatchAssembler(max_count=100, max_bytes=10).assemble(
        _msgs(["aaaa", "b" * 20, "cccc", "dddd"])
    )

    assert [m.source for m in result.skipped] == ["b" * 20]
    assert [b.sources() for b in result.batches] == [["aaaa", "cccc"], ["dddd"]]
    assert all(b.size_bytes <= 10 for b in result.batches)


def test_message_exactly_at_limit_is_kept():
    result = BatchAssembler(max_count=10, max_bytes=4).assemble(_msgs(["aaaa", "bbbb"]))

    assert [len(b) for b in result.batches] == [1, 1]
    assert result.skipped == ()


def test_invalid_limits():
    with pytest.raises(ValueError):
        BatchAssembler(max_count=0)
    with pytest.raises(ValueError):
        BatchAssembler(max_count=1, max_bytes=0)


def test_overflow_notifications(error_writer, read_entries):
    sideband = ErrorSideband(error_writer, store_overflows=True)
    assembler = BatchAssembler(max_count=2, listener=sideband)

    assembler.assemble(_msgs(["a", "b", "c", "d", "e"]))

    entries = read_entries(error_writer.base_filename)
    assert len(entries) == 2
    assert entries[0] == (
        "Batch closed before end of input. Overflow. // Events in payload=2 with limit=2"
        " // Size (bytes) of payload=2 with limit=no limit"
    )


def test_skip_notification_carries_payload(error_writer, read_entries):
    sideband = ErrorSideband(error_writer, store_event_skip=True)
    assembler = BatchAssembler(max_count=10, max_bytes=3, listener=sideband)

    assembler.assemble(_msgs(["ok", "too long"]))

    entries = read_entries(error_writer.base_filename)
    assert entries[0].startswith("Event skipped: size 8 bytes")
    assert entries[1:] == [" ---Events---", "too long", " ----end-----"]


def test_notifications_gated_off(error_writer, read_entries):
    sideband = ErrorSideband(error_writer)
    assembler = BatchAssembler(max_count=1, max_bytes=3, listener=sideband)

    assembler.assemble(_msgs(["a", "b", "too long"]))

    assert read_entries(error_writer.base_filename) == []
