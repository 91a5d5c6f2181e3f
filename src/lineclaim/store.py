from __future__ import annotations

import logging
import os
import threading
from collections.abc import Iterable
from pathlib import Path

logger = logging.getLogger(__name__)

RECORD_TERMINATOR = "\n"


class StoreError(Exception):
    pass


class StoreIOError(StoreError):
    def __init__(self, operation: str, path: Path, cause: BaseException) -> None:
        super().__init__(f"{operation} failed for {path}: {cause}")
        self.operation = operation
        self.path = path


def _is_utf8(text: str) -> bool:
    try:
        text.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def clean_lines(values: Iterable[object]) -> list[str]:
    """Trim every value and drop blanks, keeping order and duplicates.

    Values that cannot be written as UTF-8 (lone surrogates) are dropped too.
    """
    cleaned: list[str] = []
    for value in values:
        text = str(value).strip()
        if text and _is_utf8(text):
            cleaned.append(text)
    return cleaned


def normalize_lines(values: Iterable[object]) -> list[str]:
    return list(dict.fromkeys(clean_lines(values)))


def ensure_text_file(path: Path, lines: Iterable[str] = ()) -> bool:
    path.parent.mkdir(parents=True, exist_ok=True)
    content = "".join(f"{line}{RECORD_TERMINATOR}" for line in lines)
    try:
        with path.open("x", encoding="utf-8") as handle:
            handle.write(content)
    except FileExistsError:
        return False
    return True


class LineStore:
    """Append-only log of granted lines; the file is the source of truth.

    With ``cache=True`` the derived set is kept in memory and updated only by
    this store's own appends.
    """

    def __init__(self, path: Path | str, cache: bool = False) -> None:
        self._path = Path(path)
        self._cache_enabled = cache
        self._cache: set[str] | None = None
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    def ensure_initialized(self) -> None:
        try:
            if ensure_text_file(self._path):
                logger.info("created empty line log at %s", self._path)
        except OSError as exc:
            raise StoreIOError("initialize", self._path, exc) from exc

    def load(self) -> set[str]:
        with self._lock:
            if self._cache is not None:
                return set(self._cache)

            self.ensure_initialized()
            try:
                text = self._path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                raise StoreIOError("read", self._path, exc) from exc

            lines = set(clean_lines(text.split(RECORD_TERMINATOR)))
            if self._cache_enabled:
                self._cache = set(lines)
            return lines

    def read_text(self) -> str:
        self.ensure_initialized()
        try:
            return self._path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise StoreIOError("read", self._path, exc) from exc

    def append_unique(self, lines: Iterable[object]) -> int:
        """Write each distinct line as its own record in one all-or-nothing write."""
        unique = normalize_lines(lines)
        if not unique:
            return 0
        with self._lock:
            self.ensure_initialized()
            self._commit(unique)
            if self._cache is not None:
                self._cache.update(unique)
        return len(unique)

    def append_new(self, lines: Iterable[object]) -> int:
        # Bulk ingestion: not serialized with claim cycles.
        unique = normalize_lines(lines)
        if not unique:
            return 0
        with self._lock:
            existing = self.load()
            fresh = [line for line in unique if line not in existing]
            return self.append_unique(fresh)

    def _commit(self, lines: list[str]) -> None:
        payload = (RECORD_TERMINATOR.join(lines) + RECORD_TERMINATOR).encode("utf-8")
        try:
            fd = os.open(self._path, os.O_WRONLY | os.O_APPEND)
        except OSError as exc:
            raise StoreIOError("append", self._path, exc) from exc

        offset = 0
        try:
            offset = os.lseek(fd, 0, os.SEEK_END)
            if offset > 0 and os.pread(fd, 1, offset - 1) != b"\n":
                # last record was never terminated; keep it separate from ours
                payload = b"\n" + payload
            view = memoryview(payload)
            written = 0
            while written < len(payload):
                written += os.write(fd, view[written:])
            os.fsync(fd)
        except OSError as exc:
            self._rollback(fd, offset)
            raise StoreIOError("append", self._path, exc) from exc
        finally:
            os.close(fd)

    def _rollback(self, fd: int, offset: int) -> None:
        try:
            os.ftruncate(fd, offset)
        except OSError:
            logger.exception("could not truncate %s back to %d bytes", self._path, offset)
