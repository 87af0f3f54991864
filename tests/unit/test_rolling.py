"""
Unit tests for RollingFileWriter.
"""

from datetime import datetime, timedelta

import pytest

from pubsub_sink import LogEvent, RawFormatter, RollingFileWriter, SinkConfigurationError
from pubsub_sink.rolling import list_files


class Clock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return Clock(datetime(2024, 3, 1, 12, 0, 0))


def test_writes_dated_file(tmp_path, clock):
    with RollingFileWriter(tmp_path / "buffer", extension=".swap", formatter=RawFormatter(), clock=clock) as w:
        w.emit(LogEvent.create("one"))
        w.emit(LogEvent.create("two"))
        path = w.current_path

    assert path.name == "buffer-20240301.swap"
    assert path.read_text() == "one\ntwo\n"


def test_line_breaks_do_not_split_entries(tmp_path, clock):
    with RollingFileWriter(tmp_path / "buffer", formatter=RawFormatter(), clock=clock) as w:
        w.write_line("first\nsecond\r\nthird")
        path = w.current_path

    assert path.read_text() == "first second third\n"


def test_rolls_on_size_limit(tmp_path, clock):
    with RollingFileWriter(
        tmp_path / "buffer", extension=".swap", file_size_limit_bytes=20, clock=clock
    ) as w:
        for _ in range(3):
            w.write_line("12345678")

    names = [p.name for p in list_files(tmp_path / "buffer", ".swap")]
    assert names == ["buffer-20240301.swap", "buffer-20240301_001.swap"]
    assert (tmp_path / "buffer-20240301.swap").stat().st_size == 18


def test_rolls_daily_and_applies_retention(tmp_path, clock):
    with RollingFileWriter(tmp_path / "buffer", extension=".swap", retained_file_count_limit=2, clock=clock) as w:
        for _ in range(4):
            w.write_line("x")
            clock.now += timedelta(days=1)

    names = [p.name for p in list_files(tmp_path / "buffer", ".swap")]
    assert names == ["buffer-20240303.swap", "buffer-20240304.swap"]


def test_reopens_latest_sequence(tmp_path, clock):
    with RollingFileWriter(tmp_path / "buffer", file_size_limit_bytes=4, clock=clock) as w:
        w.write_line("aaa")
        w.write_line("bbb")
    with RollingFileWriter(tmp_path / "buffer", clock=clock) as w:
        w.write_line("ccc")
        assert w.current_path.name == "buffer-20240301_001.log"


def test_list_files_ignores_other_names(tmp_path):
    (tmp_path / "buffer-20240101.swap").write_text("")
    (tmp_path / "buffer-20240101_002.swap").write_text("")
    (tmp_path / "buffer-20231231.swap").write_text("")
    (tmp_path / "buffer.bookmark").write_text("")
    (tmp_path / "buffer-errors-20240101.swap").write_text("")
    (tmp_path / "buffer-20240101.log").write_text("")

    names = [p.name for p in list_files(tmp_path / "buffer", ".swap")]

    assert names == ["buffer-20231231.swap", "buffer-20240101.swap", "buffer-20240101_002.swap"]


def test_overlapping_prefix_rejected_while_open(tmp_path):
    first = RollingFileWriter(tmp_path / "app")
    try:
        with pytest.raises(SinkConfigurationError):
            RollingFileWriter(tmp_path / "app-errors")
    finally:
        first.close()

    # prefix is free again once the first writer is closed
    RollingFileWriter(tmp_path / "app-errors").close()


def test_write_after_close_raises(tmp_path):
    w = RollingFileWriter(tmp_path / "buffer")
    w.close()
    w.close()
    with pytest.raises(ValueError):
        w.write_line("late")
