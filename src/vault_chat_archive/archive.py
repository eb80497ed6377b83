"""Save and load conversations in a document store."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from pathlib import PurePosixPath
from typing import Callable

from .decoder import decode_document
from .encoder import encode_conversation
from .errors import ArchiveError
from .identity import IdentityConflict, derive_identity, find_by_identity, needs_identity
from .models import Conversation, SaveMode
from .placeholders import extract_inline_images
from .resolver import TempImageResolver
from .settings import ArchiveSettings
from .store import DocumentStore
from .timestamps import format_for_filename, utc_now
from .titles import suggest_title

_LOG = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 200
AUTOSAVE_MARKER = "auto-saved-"


def sanitize_file_name(title: str) -> str:
    """Turn a conversation title into a file name stem valid on every platform."""
    name = re.sub(r'[\\/:*?"<>|]', "_", title)
    name = re.sub(r"\s+", "_", name)
    name = re.sub(r"_{2,}", "_", name).strip("_")
    name = name[:MAX_TITLE_LENGTH]
    name = re.sub(r"[.\s]+$", "", name)
    return name or "untitled_conversation"


def sanitize_timestamp_file_name(name: str) -> str:
    name = re.sub(r'[<>:"/\\|?*]', "-", name)
    name = re.sub(r"[\x00-\x1f\x80-\x9f]", "", name)
    name = name.lstrip(".")
    if not name.endswith(".md"):
        name = re.sub(r"\.+$", "", name) + ".md"
    return name[:255]


def autosave_file_name(conversation_id: str, now: datetime | None = None) -> str:
    """``YYYY-MM-DD_HH-MM-SS_auto-saved-<id tail>.md``; sorts by creation time."""
    stamp = format_for_filename(now or utc_now())
    return sanitize_timestamp_file_name(f"{stamp}_{AUTOSAVE_MARKER}{conversation_id[-8:]}.md")


def write_document(store: DocumentStore, path: str, text: str) -> None:
    """Create or overwrite ``path``, creating its folder if needed."""
    folder = str(PurePosixPath(path).parent)
    if folder not in ("", ".") and not store.exists(folder):
        store.create_directory(folder)
    store.write_text(path, text)


def ensure_identity(conversation: Conversation) -> str:
    """Assign a derived id to a conversation that has none, and return its id."""
    if needs_identity(conversation):
        conversation.id = derive_identity(conversation)
        _LOG.debug("Derived conversation id %s", conversation.id)
    return conversation.id


def save_conversation(
    conversation: Conversation,
    store: DocumentStore,
    settings: ArchiveSettings | None = None,
    on_conflict: Callable[[IdentityConflict], None] | None = None,
    resolver: TempImageResolver | None = None,
    now: datetime | None = None,
) -> str:
    """Manually save ``conversation``, materializing its temp images.

    Overwrites the document that already carries this conversation's id, or
    creates one named after the title. Returns the document path.
    """
    if conversation.is_empty:
        raise ArchiveError("Conversation has no messages to save")
    settings = settings or ArchiveSettings()

    if not conversation.title:
        conversation.title = suggest_title(conversation)
    identity = ensure_identity(conversation)

    text = encode_conversation(
        conversation,
        mode=SaveMode.MANUAL,
        update_timestamp=True,
        resolver=resolver or TempImageResolver(store, settings),
        model=settings.model,
        now=now,
    )

    folder = settings.conversation_folder
    path = find_by_identity(store, identity, folder, on_conflict=on_conflict)
    if path is None:
        stem = sanitize_file_name(conversation.title)
        path = f"{folder}/{stem}.md"
        if store.exists(path):
            path = f"{folder}/{stem}-{identity[-8:]}.md"
        _LOG.info("Saving conversation %s as new document %s", identity, path)
    else:
        _LOG.info("Updating conversation %s in %s", identity, path)

    write_document(store, path, text)
    return path


def load_conversation(
    store: DocumentStore, path: str, dematerialize: bool = True
) -> Conversation:
    """Read and decode a document.

    With ``dematerialize`` set, inline data-URI images become temp images
    again, so the next manual save writes them out as vault files.
    """
    text = store.read_text(path)
    conversation = decode_document(text, fallback_title=PurePosixPath(path).stem)
    if dematerialize:
        for msg in conversation.messages:
            content, images = extract_inline_images(msg.content)
            if images:
                msg.content = content
                msg.temp_images.update(images)
    return conversation
