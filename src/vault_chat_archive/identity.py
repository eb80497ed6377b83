"""Conversation identity: derivation and lookup of the document that carries it."""

from __future__ import annotations

import logging
import string
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from .errors import StoreError
from .header import read_header
from .models import Conversation
from .store import DocumentStore

_LOG = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase

HASHED_MESSAGES = 3
HASHED_PREFIX = 100


@dataclass(frozen=True)
class IdentityConflict:
    """More than one document claims the same conversation identity."""

    identity: str
    chosen: str
    candidates: tuple[str, ...]


def _to_base36(n: int) -> str:
    if n == 0:
        return "0"
    digits = []
    while n:
        n, r = divmod(n, 36)
        digits.append(_BASE36[r])
    return "".join(reversed(digits))


def _rolling_hash(text: str) -> int:
    """32-bit signed ``h * 31 + c`` hash over UTF-16 code units."""
    h = 0
    units = text.encode("utf-16-le")
    for i in range(0, len(units), 2):
        h = (h * 31 + int.from_bytes(units[i:i + 2], "little")) & 0xFFFFFFFF
    return h - 0x100000000 if h & 0x80000000 else h


def derive_identity(conversation: Conversation) -> str:
    """Stable id from the first message time plus a hash of the opening messages.

    Pure function of the conversation's content: ``<epoch seconds>_<hash>``.
    """
    if conversation.messages:
        started = conversation.messages[0].timestamp
    else:
        started = conversation.created_at
    seconds = int(started.timestamp())

    seed = "".join(
        f"{msg.role.value}:{(msg.content or '')[:HASHED_PREFIX]}"
        for msg in conversation.messages[:HASHED_MESSAGES]
    )
    short_hash = _to_base36(abs(_rolling_hash(seed)))[:6]
    return f"{seconds}_{short_hash}"


def needs_identity(conversation: Conversation) -> bool:
    """True for conversations that were never assigned a persistent id."""
    return not conversation.id or conversation.id.startswith("loaded_")


def effective_identity(conversation: Conversation) -> str:
    return derive_identity(conversation) if needs_identity(conversation) else conversation.id


def find_by_identity(
    store: DocumentStore,
    identity: str,
    scope: str,
    on_conflict: Callable[[IdentityConflict], None] | None = None,
) -> str | None:
    """Find the document in ``scope`` whose header carries ``identity``.

    When several match, the most recently modified one wins and
    ``on_conflict`` is told about the others.
    """
    matches: list[tuple[datetime, str]] = []
    for path in store.list_text_files(scope):
        try:
            header = read_header(store.read_text(path))
            if header is None or header.conversation_id != identity:
                continue
            matches.append((store.modified_time(path), path))
        except StoreError as e:
            _LOG.warning("Skipping unreadable document %s: %s", path, e)

    if not matches:
        return None
    if len(matches) == 1:
        return matches[0][1]

    ranked = [path for _, path in sorted(matches, reverse=True)]
    conflict = IdentityConflict(identity=identity, chosen=ranked[0], candidates=tuple(ranked))
    _LOG.warning(
        "Found %d documents with conversationID %s, using the newest: %s",
        len(ranked), identity, ranked[0],
    )
    if on_conflict is not None:
        on_conflict(conflict)
    return ranked[0]
