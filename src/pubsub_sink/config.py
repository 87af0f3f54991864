"""
Sink configuration.

``SinkOptions`` is the immutable value set handed to the delivery engine. Field
names are snake_case; the PascalCase names used in appsettings-style files
(``ProjectId``, ``BatchPostingLimit``, ...) are accepted as aliases.

``SinkSettings`` loads the same values from ``PUBSUB_SINK_*`` environment
variables or a ``.env`` file.
"""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_pascal
from pydantic_settings import BaseSettings, SettingsConfigDict

from .codec import MinValueAttribute
from .models import LogLevel

DEFAULT_BATCH_POSTING_LIMIT = 50
DEFAULT_PERIOD = timedelta(seconds=2)
DEFAULT_BUFFER_FILE_EXTENSION = ".swap"
DEFAULT_ERROR_FILE_EXTENSION = ".log"
DEFAULT_RETAINED_FILE_COUNT_LIMIT = 31
MIN_RETAINED_FILE_COUNT_LIMIT = 2

# keyword arguments of pubsub_v1.PublisherClient.publish; never usable as attribute names
RESERVED_ATTRIBUTE_NAMES = frozenset({"ordering_key", "retry", "timeout"})


def prefixes_overlap(first: str | Path, second: str | Path) -> bool:
    """True when two rolling-file base names could match each other's files."""
    a = Path(first).expanduser().absolute()
    b = Path(second).expanduser().absolute()
    if a.parent != b.parent:
        return False
    return a.name.startswith(b.name) or b.name.startswith(a.name)


class SinkOptions(BaseModel):
    """Options for one Pub/Sub destination (project + topic)."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_pascal,
        arbitrary_types_allowed=True,
    )

    # --- Pub/Sub destination
    project_id: str
    topic_id: str

    # --- common (durable and periodic)
    batch_posting_limit: int = DEFAULT_BATCH_POSTING_LIMIT
    batch_size_limit_bytes: Optional[int] = None
    minimum_log_event_level: Optional[LogLevel] = None
    custom_formatter: Optional[Any] = None

    # --- periodic batching
    period: timedelta = DEFAULT_PERIOD
    queue_limit: int = 100_000

    # --- durable batching (buffer files on disk)
    buffer_log_shipping_interval: timedelta = DEFAULT_PERIOD
    buffer_base_filename: Optional[str] = None
    buffer_file_extension: str = DEFAULT_BUFFER_FILE_EXTENSION
    buffer_file_size_limit_bytes: Optional[int] = None
    buffer_retained_file_count_limit: Optional[int] = DEFAULT_RETAINED_FILE_COUNT_LIMIT
    buffer_write_is_buffered: bool = False

    # --- error and debug file
    error_base_filename: Optional[str] = None
    error_file_size_limit_bytes: Optional[int] = None
    error_store_events: bool = False
    debug_store_batch_limits_overflows: bool = False
    debug_store_event_skip: bool = False
    debug_store_all: bool = False

    # --- message data
    message_data_to_base64: bool = True
    event_field_separator: Optional[str] = None
    message_attr_min_value: Optional[str] = None
    message_attr_fixed: dict[str, str] = Field(default_factory=dict)

    @field_validator("minimum_log_event_level", mode="before")
    @classmethod
    def _parse_level(cls, v):
        if v is None or v == "":
            return None
        return LogLevel.parse(v)

    @field_validator("buffer_retained_file_count_limit")
    @classmethod
    def _clamp_retained(cls, v):
        if v is None:
            return None
        return max(MIN_RETAINED_FILE_COUNT_LIMIT, v)

    @field_validator("buffer_file_extension", mode="before")
    @classmethod
    def _default_extension(cls, v):
        if not v:
            return DEFAULT_BUFFER_FILE_EXTENSION
        return v if v.startswith(".") else f".{v}"

    @field_validator("event_field_separator", "message_attr_min_value", mode="before")
    @classmethod
    def _empty_to_none(cls, v):
        return v or None

    @field_validator("message_attr_fixed", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return v if v is not None else {}

    @field_validator("message_attr_fixed")
    @classmethod
    def _check_fixed_names(cls, v):
        reserved = sorted(RESERVED_ATTRIBUTE_NAMES.intersection(v))
        if reserved:
            raise ValueError(f"MessageAttrFixed uses reserved attribute names: {reserved}")
        return v

    @field_validator("message_attr_min_value")
    @classmethod
    def _check_min_value_name(cls, v):
        rule = MinValueAttribute.parse(v)
        if rule is not None and rule.name in RESERVED_ATTRIBUTE_NAMES:
            raise ValueError(f"MessageAttrMinValue uses a reserved attribute name: {rule.name!r}")
        return v

    @model_validator(mode="after")
    def _check_file_prefixes(self) -> "SinkOptions":
        if self.buffer_base_filename and self.error_base_filename:
            if prefixes_overlap(self.buffer_base_filename, self.error_base_filename):
                raise ValueError(
                    "ErrorBaseFilename and BufferBaseFilename must not start with the same name "
                    f"({self.error_base_filename!r} vs {self.buffer_base_filename!r})"
                )
        return self

    # --------------------------- helpers

    @property
    def durable(self) -> bool:
        """Durable mode is selected by configuring a buffer file."""
        return bool(self.buffer_base_filename)

    @property
    def topic_path(self) -> str:
        return f"projects/{self.project_id}/topics/{self.topic_id}"

    def with_values(self, **overrides: Any) -> "SinkOptions":
        """Return a validated copy; ``None`` overrides keep the current value."""
        data = self.model_dump()
        data.update({k: v for k, v in overrides.items() if v is not None})
        return type(self).model_validate(data)


class SinkSettings(BaseSettings):
    """Environment-backed settings (``PUBSUB_SINK_PROJECT_ID`` etc.)."""

    model_config = SettingsConfigDict(
        env_prefix="PUBSUB_SINK_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    project_id: str
    topic_id: str
    batch_posting_limit: int = DEFAULT_BATCH_POSTING_LIMIT
    batch_size_limit_bytes: Optional[int] = None
    minimum_log_event_level: Optional[str] = None
    period_seconds: float = DEFAULT_PERIOD.total_seconds()
    queue_limit: int = 100_000
    buffer_log_shipping_interval_seconds: float = DEFAULT_PERIOD.total_seconds()
    buffer_base_filename: Optional[str] = None
    buffer_file_extension: str = DEFAULT_BUFFER_FILE_EXTENSION
    buffer_file_size_limit_bytes: Optional[int] = None
    buffer_retained_file_count_limit: Optional[int] = DEFAULT_RETAINED_FILE_COUNT_LIMIT
    buffer_write_is_buffered: bool = False
    error_base_filename: Optional[str] = None
    error_file_size_limit_bytes: Optional[int] = None
    error_store_events: bool = False
    debug_store_batch_limits_overflows: bool = False
    debug_store_event_skip: bool = False
    debug_store_all: bool = False
    message_data_to_base64: bool = True
    event_field_separator: Optional[str] = None
    message_attr_min_value: Optional[str] = None
    message_attr_fixed: dict[str, str] = Field(default_factory=dict)

    def to_options(self, **overrides: Any) -> SinkOptions:
        data = self.model_dump()
        data["period"] = timedelta(seconds=data.pop("period_seconds"))
        data["buffer_log_shipping_interval"] = timedelta(
            seconds=data.pop("buffer_log_shipping_interval_seconds")
        )
        data.update(overrides)
        return SinkOptions(**data)


@lru_cache()
def get_settings() -> SinkSettings:
    return SinkSettings()
