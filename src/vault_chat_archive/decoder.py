"""Decode conversation documents, current and legacy layouts alike.

Three body grammars are recognised, by content rather than by any flag:

* current: ``user: <!-- 2025-08-07T01:27:20.000Z -->`` role lines, each
  followed by the message content and a blank separator line;
* legacy trailer: bare ``user:`` / ``ai:`` role lines whose message may be
  closed by a ``[Timestamp: 2025/08/07 01:27:20]`` line;
* legacy message blocks: ``## Message Block N`` sections with labelled
  ``**Sender:**``, ``**Time:**`` and ``**Content:**`` fields.

Decoding is best effort. Malformed headers or bodies degrade to defaults and
never raise.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from .header import DocumentHeader, parse_header, split_front_matter
from .identity import derive_identity
from .models import Conversation, Message, Role
from .placeholders import find_placeholders
from .timestamps import parse_timestamp, utc_now
from .titles import suggest_title

_LOG = logging.getLogger(__name__)

_CURRENT_ROLE_RE = re.compile(r"^(user|ai):[ \t]*<!--\s*(.*?)\s*-->[ \t]*(.*)$")
_BARE_ROLE_RE = re.compile(r"^(user|ai):[ \t]*(.*)$")
_TRAILER_RE = re.compile(r"^\[Timestamp:\s*(.+?)\s*\]\s*$")
_BLOCK_RE = re.compile(r"^##[ \t]+Message Block[ \t]+\d+[ \t]*$", re.MULTILINE)
_SENDER_RE = re.compile(r"^(?:\*\*)?Sender:(?:\*\*)?[ \t]*\W*?[ \t]*(User|AI Assistant|Assistant|AI)\b", re.MULTILINE)
_TIME_RE = re.compile(r"^(?:\*\*)?Time:(?:\*\*)?[ \t]*(.+?)[ \t]*$", re.MULTILINE)
_CONTENT_RE = re.compile(r"^(?:\*\*)?Content:(?:\*\*)?[ \t]*$", re.MULTILINE)
_RULE_RE = re.compile(r"^---[ \t]*$", re.MULTILINE)
_TITLE_RE = re.compile(r"^#[ \t]+(.+?)[ \t]*$", re.MULTILINE)

LEGACY_TITLE_PREFIX = "AI Conversation - "


@dataclass
class _Draft:
    """A message being accumulated line by line."""

    role: Role
    timestamp: datetime | None
    lines: list[str] = field(default_factory=list)


def _role(marker: str) -> Role:
    return Role.USER if marker == "user" else Role.ASSISTANT


def trim_blank_lines(lines: list[str]) -> str:
    """Join lines, dropping blank lines at either end but keeping inner ones."""
    start, end = 0, len(lines)
    while start < end and not lines[start].strip():
        start += 1
    while end > start and not lines[end - 1].strip():
        end -= 1
    return "\n".join(lines[start:end])


def detect_grammar(body: str) -> str:
    """Return ``"current"``, ``"blocks"`` or ``"trailer"``."""
    lines = body.split("\n")
    if any(_CURRENT_ROLE_RE.match(line) for line in lines):
        return "current"
    if _BLOCK_RE.search(body):
        return "blocks"
    return "trailer"


def _parse_role_lines(body: str) -> list[_Draft]:
    """Current and legacy-trailer grammars, which share the line-oriented shape."""
    annotated = detect_grammar(body) == "current"
    drafts: list[_Draft] = []
    current: _Draft | None = None

    for line in body.split("\n"):
        if annotated:
            m = _CURRENT_ROLE_RE.match(line)
            if m:
                stamp = parse_timestamp(m.group(2))
                current = _Draft(_role(m.group(1)), stamp, [m.group(3)] if m.group(3) else [])
                drafts.append(current)
                continue
        else:
            m = _BARE_ROLE_RE.match(line)
            if m:
                current = _Draft(_role(m.group(1)), None, [m.group(2)] if m.group(2) else [])
                drafts.append(current)
                continue
            m = _TRAILER_RE.match(line)
            if m and current is not None:
                current.timestamp = parse_timestamp(m.group(1)) or current.timestamp
                current = None
                continue
        if current is not None:
            current.lines.append(line)
    return drafts


def _parse_message_blocks(body: str) -> list[_Draft]:
    drafts: list[_Draft] = []
    for block in _BLOCK_RE.split(body)[1:]:
        sender = _SENDER_RE.search(block)
        if not sender:
            continue
        role = Role.USER if sender.group(1) == "User" else Role.ASSISTANT

        time_match = _TIME_RE.search(block)
        stamp = parse_timestamp(time_match.group(1)) if time_match else None

        label = _CONTENT_RE.search(block)
        if not label:
            continue
        content = block[label.end():]
        rule = _RULE_RE.search(content)
        if rule:
            content = content[:rule.start()]
        drafts.append(_Draft(role, stamp, content.split("\n")))
    return drafts


def _body_title(body: str) -> str:
    """A ``# heading`` that precedes the first message, as older layouts wrote."""
    first = len(body)
    for pattern in (_CURRENT_ROLE_RE, _BARE_ROLE_RE):
        for m in re.finditer(pattern.pattern, body, re.MULTILINE):
            first = min(first, m.start())
            break
    block = _BLOCK_RE.search(body)
    if block:
        first = min(first, block.start())

    m = _TITLE_RE.search(body, 0, first)
    if not m:
        return ""
    title = m.group(1)
    if title.startswith(LEGACY_TITLE_PREFIX):
        title = title[len(LEGACY_TITLE_PREFIX):]
    return title.strip()


def decode_document(text: str, fallback_title: str = "") -> Conversation:
    """Rebuild a Conversation from document text; never raises on bad input."""
    text = text.replace("\r\n", "\n")
    raw_header, body = split_front_matter(text)

    header = parse_header(raw_header) if raw_header is not None else None
    if header is None:
        _LOG.warning("Document has no usable header; using defaults")
        header = DocumentHeader(tags=[])

    now = utc_now()
    created = header.created
    grammar = detect_grammar(body)
    if grammar == "blocks":
        drafts = _parse_message_blocks(body)
    else:
        drafts = _parse_role_lines(body)

    batch = int(time.time() * 1000)
    messages: list[Message] = []
    for index, draft in enumerate(drafts):
        content = trim_blank_lines(draft.lines)
        if not content:
            continue
        temp_images = {
            token: header.temp_images[token]
            for token in find_placeholders(content)
            if token in header.temp_images
        }
        messages.append(
            Message(
                id=f"loaded_{batch}_{index}",
                role=draft.role,
                content=content,
                timestamp=draft.timestamp or created or now,
                temp_images=temp_images,
            )
        )

    if created is None:
        created = messages[0].timestamp if messages else now

    conversation = Conversation(
        id=header.conversation_id,
        title=header.title or _body_title(body) or fallback_title,
        messages=messages,
        created_at=created,
        last_updated=header.last_modified or created,
        last_mode_used=header.last_mode_used,
    )
    if not conversation.title:
        conversation.title = suggest_title(conversation)
    if not conversation.id:
        conversation.id = derive_identity(conversation) if messages else f"conv_{uuid.uuid4().hex}"
        _LOG.info("Document carried no conversationID; assigned %s", conversation.id)

    _LOG.debug("Decoded %d message(s) using the %s grammar", len(messages), grammar)
    return conversation
