"""Retention for auto-saved conversation documents."""

from __future__ import annotations

import logging
from pathlib import PurePosixPath

from .archive import AUTOSAVE_MARKER
from .store import DocumentStore

_LOG = logging.getLogger(__name__)


def is_autosave(path: str) -> bool:
    name = PurePosixPath(path).name
    return name.startswith(AUTOSAVE_MARKER) or f"_{AUTOSAVE_MARKER}" in name


def prune_autosaves(store: DocumentStore, folder: str, keep: int) -> list[str]:
    """Delete all but the ``keep`` newest auto-saves in ``folder``.

    Auto-save names start with their timestamp, so name order is age order.
    Returns the deleted paths.
    """
    if keep < 1:
        raise ValueError(f"keep must be at least 1, got {keep}")

    files = [p for p in store.list_text_files(folder) if is_autosave(p)]
    files.sort(key=lambda p: PurePosixPath(p).name, reverse=True)

    deleted = []
    for path in files[keep:]:
        store.delete(path)
        deleted.append(path)
        _LOG.info("Removed old auto-save %s", path)
    return deleted
