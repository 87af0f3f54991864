"""
Append-only rolling file writer.

One primitive serves two purposes: the durable buffer (``<base>-YYYYMMDD.swap``)
and the error/debug file. Each instance owns a filename prefix; a second live
writer whose prefix overlaps an existing one is rejected, so the buffer reader
can never pick up error-file lines.
"""

from __future__ import annotations

import re
import threading
import weakref
from datetime import datetime
from pathlib import Path
from typing import IO, Callable, ClassVar, Optional

from loguru import logger

from .config import prefixes_overlap
from .errors import SinkConfigurationError
from .formatting import Formatter, TextLineFormatter
from .models import LogEvent


def _file_pattern(name: str, extension: str) -> re.Pattern[str]:
    return re.compile(rf"^{re.escape(name)}-(\d{{8}})(?:_(\d{{3,}}))?{re.escape(extension)}$")


def list_files(base_filename: str | Path, extension: str) -> list[Path]:
    """Files of a rolling set, oldest first (by date, then sequence)."""
    base = Path(base_filename).expanduser()
    directory = base.parent if str(base.parent) else Path(".")
    if not directory.is_dir():
        return []
    pattern = _file_pattern(base.name, extension)
    found: list[tuple[str, int, Path]] = []
    for path in directory.iterdir():
        m = pattern.match(path.name)
        if m and path.is_file():
            found.append((m.group(1), int(m.group(2) or 0), path))
    found.sort(key=lambda t: (t[0], t[1]))
    return [p for _, _, p in found]


class RollingFileWriter:
    """
    Date/size rolling, count-retained line writer.

    Usage:
        with RollingFileWriter("logs/buffer", extension=".swap") as w:
            w.emit(event)
    """

    _active: ClassVar["weakref.WeakSet[RollingFileWriter]"] = weakref.WeakSet()
    _registry_lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(
        self,
        base_filename: str | Path,
        *,
        extension: str = ".log",
        file_size_limit_bytes: Optional[int] = None,
        retained_file_count_limit: Optional[int] = 31,
        buffered: bool = False,
        formatter: Optional[Formatter] = None,
        encoding: str = "utf-8",
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._base = Path(base_filename).expanduser()
        self._extension = extension
        self._size_limit = file_size_limit_bytes
        self._retained = retained_file_count_limit
        self._buffered = buffered
        self._formatter = formatter or TextLineFormatter()
        self._encoding = encoding
        self._clock = clock

        self._lock = threading.Lock()
        self._fh: Optional[IO[bytes]] = None
        self._path: Optional[Path] = None
        self._size = 0
        self._closed = False

        self._register()
        self._base.parent.mkdir(parents=True, exist_ok=True)

    # --------------------------- registry

    def _register(self) -> None:
        with self._registry_lock:
            for other in list(self._active):
                if prefixes_overlap(other.base_filename, self._base):
                    raise SinkConfigurationError(
                        f"Rolling file prefix {str(self._base)!r} overlaps active writer {str(other.base_filename)!r}"
                    )
            self._active.add(self)

    def _unregister(self) -> None:
        with self._registry_lock:
            self._active.discard(self)

    # --------------------------- public API

    @property
    def base_filename(self) -> Path:
        return self._base

    @property
    def extension(self) -> str:
        return self._extension

    @property
    def current_path(self) -> Optional[Path]:
        return self._path

    def files(self) -> list[Path]:
        return list_files(self._base, self._extension)

    def emit(self, event: LogEvent) -> None:
        self.write_line(self._formatter.format(event))

    def write_line(self, text: str) -> None:
        # one entry per line; embedded line breaks would split it on read
        line = text.replace("\r\n", " ").replace("\n", " ").replace("\r", " ")
        data = (line + "\n").encode(self._encoding)
        with self._lock:
            if self._closed:
                raise ValueError("write to closed RollingFileWriter")
            fh = self._target(len(data))
            fh.write(data)
            if not self._buffered:
                fh.flush()
            self._size += len(data)

    def flush(self) -> None:
        with self._lock:
            if self._fh is not None:
                self._fh.flush()

    def close(self) -> None:
        """Close the current file; safe to call multiple times."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._fh is not None:
                self._fh.close()
                self._fh = None
        self._unregister()

    def __enter__(self) -> "RollingFileWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --------------------------- internals

    def _path_for(self, day: str, sequence: int) -> Path:
        suffix = f"_{sequence:03d}" if sequence else ""
        return self._base.with_name(f"{self._base.name}-{day}{suffix}{self._extension}")

    def _target(self, incoming: int) -> IO[bytes]:
        day = self._clock().strftime("%Y%m%d")
        if self._path is None or not self._path.name.startswith(f"{self._base.name}-{day}"):
            self._open(day, self._latest_sequence(day))
        if self._size_limit is not None and self._size > 0 and self._size + incoming > self._size_limit:
            self._open(day, self._sequence_of(self._path) + 1)
        if self._fh is None:
            raise OSError(f"Rolling file {self._path} could not be opened")
        return self._fh

    def _latest_sequence(self, day: str) -> int:
        pattern = _file_pattern(self._base.name, self._extension)
        latest = 0
        for path in self.files():
            m = pattern.match(path.name)
            if m and m.group(1) == day:
                latest = max(latest, int(m.group(2) or 0))
        return latest

    def _sequence_of(self, path: Optional[Path]) -> int:
        if path is None:
            return 0
        m = _file_pattern(self._base.name, self._extension).match(path.name)
        return int(m.group(2) or 0) if m else 0

    def _open(self, day: str, sequence: int) -> None:
        if self._fh is not None:
            self._fh.close()
        path = self._path_for(day, sequence)
        path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = open(path, "ab", buffering=-1 if self._buffered else 0)
        self._path = path
        self._size = path.stat().st_size
        logger.debug(f"Rolling file opened: {path} ({self._size} bytes)")
        self._apply_retention()

    def _apply_retention(self) -> None:
        if self._retained is None:
            return
        files = self.files()
        excess = len(files) - self._retained
        for path in files[: max(0, excess)]:
            if path == self._path:
                continue
            try:
                path.unlink()
                logger.debug(f"Rolling file removed by retention limit: {path}")
            except OSError as exc:
                logger.warning(f"Could not remove old rolling file {path}: {exc}")
