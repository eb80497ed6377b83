"""Document store: the interface the codec writes through, plus a local vault."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Protocol

from .errors import StoreError

_LOG = logging.getLogger(__name__)


class DocumentStore(Protocol):
    """Vault operations used by the archive. Paths are POSIX-style and relative."""

    def exists(self, path: str) -> bool: ...

    def create_directory(self, path: str) -> None: ...

    def read_text(self, path: str) -> str: ...

    def write_text(self, path: str, text: str) -> None: ...

    def write_binary(self, path: str, data: bytes) -> None: ...

    def list_text_files(self, scope: str) -> list[str]: ...

    def modified_time(self, path: str) -> datetime: ...

    def delete(self, path: str) -> None: ...


class LocalStore:
    """A vault backed by a directory on the local filesystem."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def _resolve(self, path: str) -> Path:
        rel = PurePosixPath(path)
        if rel.is_absolute() or ".." in rel.parts:
            raise StoreError(path, "path escapes the vault root")
        return self.root.joinpath(*rel.parts)

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    def create_directory(self, path: str) -> None:
        try:
            self._resolve(path).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(path, str(e)) from e

    def read_text(self, path: str) -> str:
        try:
            return self._resolve(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise StoreError(path, str(e)) from e

    def write_text(self, path: str, text: str) -> None:
        # Write in place rather than replace, so open handles stay valid.
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "w", encoding="utf-8", newline="\n") as f:
                f.write(text)
        except OSError as e:
            raise StoreError(path, str(e)) from e
        _LOG.debug("Wrote %d chars to %s", len(text), path)

    def write_binary(self, path: str, data: bytes) -> None:
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise StoreError(path, str(e)) from e
        _LOG.debug("Wrote %d bytes to %s", len(data), path)

    def list_text_files(self, scope: str) -> list[str]:
        base = self._resolve(scope) if scope else self.root
        if not base.is_dir():
            return []
        return sorted(
            p.relative_to(self.root).as_posix()
            for p in base.rglob("*.md")
            if p.is_file()
        )

    def modified_time(self, path: str) -> datetime:
        try:
            mtime = self._resolve(path).stat().st_mtime
        except OSError as e:
            raise StoreError(path, str(e)) from e
        return datetime.fromtimestamp(mtime, tz=timezone.utc)

    def delete(self, path: str) -> None:
        try:
            self._resolve(path).unlink()
        except OSError as e:
            raise StoreError(path, str(e)) from e
