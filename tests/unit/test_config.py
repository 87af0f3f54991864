"""
Unit tests for SinkOptions / SinkSettings.
"""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from pubsub_sink import LogLevel, SinkOptions, SinkSettings


def test_defaults():
    opts = SinkOptions(project_id="p", topic_id="t")

    assert opts.batch_posting_limit == 50
    assert opts.batch_size_limit_bytes is None
    assert opts.period == timedelta(seconds=2)
    assert opts.buffer_log_shipping_interval == timedelta(seconds=2)
    assert opts.buffer_file_extension == ".swap"
    assert opts.buffer_retained_file_count_limit == 31
    assert opts.buffer_write_is_buffered is False
    assert opts.message_data_to_base64 is True
    assert not any(
        [
            opts.error_store_events,
            opts.debug_store_all,
            opts.debug_store_batch_limits_overflows,
            opts.debug_store_event_skip,
        ]
    )
    assert opts.message_attr_fixed == {}
    assert not opts.durable


def test_pascal_case_aliases():
    opts = SinkOptions.model_validate(
        {
            "ProjectId": "p",
            "TopicId": "t",
            "BatchPostingLimit": 10,
            "MinimumLogEventLevel": "Warning",
            "MessageAttrFixed": {"app": "x"},
            "DebugStoreAll": True,
        }
    )

    assert opts.batch_posting_limit == 10
    assert opts.minimum_log_event_level == LogLevel.WARNING
    assert opts.message_attr_fixed == {"app": "x"}
    assert opts.debug_store_all is True


def test_options_are_frozen():
    opts = SinkOptions(project_id="p", topic_id="t")
    with pytest.raises(ValidationError):
        opts.batch_posting_limit = 3


@pytest.mark.parametrize("given,expected", [(None, None), (0, 2), (1, 2), (2, 2), (10, 10)])
def test_retained_count_minimum(given, expected):
    opts = SinkOptions(project_id="p", topic_id="t", buffer_retained_file_count_limit=given)
    assert opts.buffer_retained_file_count_limit == expected


def test_empty_values_fall_back_to_defaults():
    opts = SinkOptions(
        project_id="p",
        topic_id="t",
        buffer_file_extension="",
        event_field_separator="",
        message_attr_min_value="",
        message_attr_fixed=None,
    )
    assert opts.buffer_file_extension == ".swap"
    assert opts.event_field_separator is None
    assert opts.message_attr_min_value is None
    assert opts.message_attr_fixed == {}


def test_extension_gets_dot():
    assert SinkOptions(project_id="p", topic_id="t", buffer_file_extension="buf").buffer_file_extension == ".buf"


@pytest.mark.parametrize(
    "buffer,error",
    [
        ("logs/app", "logs/app-errors"),
        ("logs/app-buffer", "logs/app"),
        ("logs/app", "logs/app"),
    ],
)
def test_overlapping_prefixes_rejected(tmp_path, buffer, error):
    with pytest.raises(ValidationError, match="must not start with the same name"):
        SinkOptions(
            project_id="p",
            topic_id="t",
            buffer_base_filename=str(tmp_path / buffer),
            error_base_filename=str(tmp_path / error),
        )


def test_disjoint_prefixes_accepted(tmp_path):
    opts = SinkOptions(
        project_id="p",
        topic_id="t",
        buffer_base_filename=str(tmp_path / "logs" / "buffer"),
        error_base_filename=str(tmp_path / "logs" / "errors"),
    )
    assert opts.durable


def test_same_name_in_other_directory_accepted(tmp_path):
    SinkOptions(
        project_id="p",
        topic_id="t",
        buffer_base_filename=str(tmp_path / "a" / "app"),
        error_base_filename=str(tmp_path / "b" / "app"),
    )


def test_with_values_overrides_and_keeps():
    opts = SinkOptions(project_id="p", topic_id="t", batch_posting_limit=20)

    updated = opts.with_values(batch_size_limit_bytes=1000, batch_posting_limit=None, debug_store_all=True)

    assert updated.batch_size_limit_bytes == 1000
    assert updated.batch_posting_limit == 20
    assert updated.debug_store_all is True
    assert opts.batch_size_limit_bytes is None


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("PUBSUB_SINK_PROJECT_ID", "env-project")
    monkeypatch.setenv("PUBSUB_SINK_TOPIC_ID", "env-topic")
    monkeypatch.setenv("PUBSUB_SINK_BATCH_POSTING_LIMIT", "25")
    monkeypatch.setenv("PUBSUB_SINK_PERIOD_SECONDS", "0.5")
    monkeypatch.setenv("PUBSUB_SINK_MESSAGE_DATA_TO_BASE64", "false")
    monkeypatch.setenv("PUBSUB_SINK_MESSAGE_ATTR_FIXED", '{"app": "billing"}')
    monkeypatch.setenv("PUBSUB_SINK_MINIMUM_LOG_EVENT_LEVEL", "error")

    opts = SinkSettings(_env_file=None).to_options()

    assert opts.topic_path == "projects/env-project/topics/env-topic"
    assert opts.batch_posting_limit == 25
    assert opts.period == timedelta(seconds=0.5)
    assert opts.message_data_to_base64 is False
    assert opts.message_attr_fixed == {"app": "billing"}
    assert opts.minimum_log_event_level == LogLevel.ERROR


def test_settings_require_identifiers(monkeypatch):
    monkeypatch.delenv("PUBSUB_SINK_PROJECT_ID", raising=False)
    monkeypatch.delenv("PUBSUB_SINK_TOPIC_ID", raising=False)
    with pytest.raises(ValidationError):
        SinkSettings(_env_file=None)


@pytest.mark.parametrize(
    "value,level",
    [("Verbose", LogLevel.TRACE), ("information", LogLevel.INFO), (30, LogLevel.WARNING), ("FATAL", LogLevel.CRITICAL)],
)
def test_level_parsing(value, level):
    assert LogLevel.parse(value) == level


def test_unknown_level():
    with pytest.raises(ValueError):
        LogLevel.parse("loud")


@pytest.mark.parametrize("name", ["ordering_key", "retry", "timeout"])
def test_reserved_fixed_attribute_names_rejected(name):
    with pytest.raises(ValidationError, match="reserved"):
        SinkOptions(project_id="p", topic_id="t", message_attr_fixed={name: "x", "env": "prod"})


def test_reserved_min_value_name_rejected():
    with pytest.raises(ValidationError, match="reserved"):
        SinkOptions(project_id="p", topic_id="t", message_attr_min_value="0#ordering_key")


def test_ordinary_attribute_names_accepted():
    opts = SinkOptions(
        project_id="p",
        topic_id="t",
        message_attr_fixed={"env": "prod", "timeout_ms": "5"},
        message_attr_min_value="0#min_seq",
    )
    assert opts.message_attr_fixed == {"env": "prod", "timeout_ms": "5"}
