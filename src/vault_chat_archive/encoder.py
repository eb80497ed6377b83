"""Encode a conversation as a Markdown document with YAML front matter."""

from __future__ import annotations

import logging
from datetime import datetime

from .header import DocumentHeader, render_header
from .identity import effective_identity
from .models import Conversation, Message, Role, SaveMode
from .resolver import Resolution, TempImageResolver
from .timestamps import format_iso, utc_now
from .titles import suggest_title

_LOG = logging.getLogger(__name__)

ROLE_MARKERS = {Role.USER: "user", Role.ASSISTANT: "ai"}


def role_line(message: Message) -> str:
    return f"{ROLE_MARKERS[message.role]}: <!-- {format_iso(message.timestamp)} -->"


def resolve_messages(
    conversation: Conversation, mode: SaveMode, resolver: TempImageResolver
) -> list[Resolution]:
    """Resolve temp images for every message, in conversation order."""
    return [resolver.resolve(msg, mode) for msg in conversation.messages]


def encode_conversation(
    conversation: Conversation,
    mode: SaveMode = SaveMode.AUTO,
    update_timestamp: bool = True,
    resolver: TempImageResolver | None = None,
    model: str = "default",
    now: datetime | None = None,
) -> str:
    """Render ``conversation`` as document text.

    With ``update_timestamp=False`` the ``lastModified`` field repeats
    ``created``, so unchanged conversations encode to identical text.
    Images whose resolution failed stay as placeholders and their payloads
    are kept in the header's ``tempImages`` table.
    """
    resolver = resolver or TempImageResolver()
    resolutions = resolve_messages(conversation, mode, resolver)

    unresolved: dict[str, str] = {}
    for res in resolutions:
        unresolved.update(res.temp_images)
    if unresolved:
        _LOG.warning(
            "%d temp image(s) left unresolved in conversation %s",
            len(unresolved), conversation.id,
        )

    created = conversation.created_at
    header = DocumentHeader(
        conversation_id=effective_identity(conversation),
        title=conversation.title or suggest_title(conversation),
        model=model,
        created=created,
        last_modified=(now or utc_now()) if update_timestamp else created,
        last_mode_used=conversation.last_mode_used,
        temp_images=unresolved,
    )

    parts = [render_header(header)]
    for msg, res in zip(conversation.messages, resolutions):
        parts.append(role_line(msg) + "\n")
        if res.content:
            parts.append(res.content + "\n")
        parts.append("\n")
    return "".join(parts)
