from __future__ import annotations

import json
import sys
from typing import Optional

import typer
from loguru import logger
from pydantic import ValidationError

from .config import SinkOptions, get_settings
from .durable import FileBookmark, LogShipper, bookmark_path, read_chunk
from .errors import PubSubSinkError
from .factory import create_error_writer
from .formatting import RawFormatter
from .models import LogEvent
from .publisher import GooglePubSubPublisher, InMemoryPublisher
from .rolling import RollingFileWriter, list_files
from .state import SinkState

app = typer.Typer(help="pubsub-sink operational CLI")

# ---------------------------
# Common options
# ---------------------------


def project_opt() -> str:
    return typer.Option(..., "--project", envvar="PUBSUB_SINK_PROJECT_ID", help="GCP project id")


def topic_opt() -> str:
    return typer.Option(..., "--topic", envvar="PUBSUB_SINK_TOPIC_ID", help="Pub/Sub topic id")


def buffer_opt() -> str:
    return typer.Option(
        ..., "--buffer-base", envvar="PUBSUB_SINK_BUFFER_BASE_FILENAME", help="Buffer base filename"
    )


def ext_opt() -> str:
    return typer.Option(".swap", "--ext", envvar="PUBSUB_SINK_BUFFER_FILE_EXTENSION", help="Buffer file extension")


def _fail(msg: str) -> None:
    logger.error(msg)
    sys.exit(1)


# ---------------------------
# Commands
# ---------------------------


@app.command("check-config")
def check_config():
    """Load settings from PUBSUB_SINK_* / .env and validate them."""
    try:
        options = get_settings().to_options()
        SinkState(options, InMemoryPublisher())
    except (ValidationError, PubSubSinkError) as e:
        _fail(f"Invalid configuration: {e}")
        return
    summary = options.model_dump(exclude={"custom_formatter"})
    summary["mode"] = "durable" if options.durable else "periodic"
    summary["topic_path"] = options.topic_path
    typer.echo(json.dumps(summary, indent=2, default=str))


@app.command("status")
def status(buffer_base: str = buffer_opt(), ext: str = ext_opt()):
    """Show buffer files, bookmark and the number of lines not yet shipped."""
    files = list_files(buffer_base, ext)
    bookmark = FileBookmark(bookmark_path(buffer_base))
    try:
        name, position = bookmark.read()
    except PubSubSinkError as e:
        _fail(str(e))
        return

    pending = 0
    started = name is None or all(f.name != name for f in files)
    for f in files:
        if f.name == name:
            started = True
            pending += len(read_chunk(f, position, sys.maxsize).lines)
        elif started:
            pending += len(read_chunk(f, 0, sys.maxsize).lines)

    typer.echo(
        json.dumps(
            {
                "files": [{"name": f.name, "bytes": f.stat().st_size} for f in files],
                "bookmark": {"file": name, "position": position},
                "pending_lines": pending,
            },
            indent=2,
        )
    )


@app.command("ship")
def ship(
    project: str = project_opt(),
    topic: str = topic_opt(),
    buffer_base: str = buffer_opt(),
    ext: str = ext_opt(),
    batch_posting_limit: int = typer.Option(50, "--batch-posting-limit"),
    batch_size_limit_bytes: Optional[int] = typer.Option(None, "--batch-size-limit-bytes"),
    base64: bool = typer.Option(True, "--base64/--no-base64", help="Base64-encode message data"),
    error_base: Optional[str] = typer.Option(None, "--error-base", help="Error/debug file base filename"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Publish to an in-memory publisher"),
):
    """Run one shipping pass over the buffer files and print the report."""
    try:
        options = SinkOptions(
            project_id=project,
            topic_id=topic,
            buffer_base_filename=buffer_base,
            buffer_file_extension=ext,
            batch_posting_limit=batch_posting_limit,
            batch_size_limit_bytes=batch_size_limit_bytes,
            message_data_to_base64=base64,
            error_base_filename=error_base,
        )
        publisher = InMemoryPublisher() if dry_run else GooglePubSubPublisher()
        error_writer = create_error_writer(options)
        state = SinkState(options, publisher, error_writer)
    except (ValidationError, PubSubSinkError) as e:
        _fail(f"Invalid configuration: {e}")
        return

    try:
        report = LogShipper(state, buffer_base, extension=ext).ship_once()
    except PubSubSinkError as e:
        _fail(f"Shipping failed: {e}")
        return
    finally:
        if error_writer is not None:
            error_writer.close()

    typer.echo(json.dumps(report.as_dict(), indent=2))
    if not report.ok:
        sys.exit(2)


@app.command("emit")
def emit(
    text: str = typer.Argument(..., help="Event text to append to the buffer"),
    buffer_base: str = buffer_opt(),
    ext: str = ext_opt(),
):
    """Append one event to the buffer files (for testing a shipping setup)."""
    with RollingFileWriter(buffer_base, extension=ext, formatter=RawFormatter()) as writer:
        writer.emit(LogEvent.create(text))
    typer.echo("ok")


if __name__ == "__main__":
    app()
