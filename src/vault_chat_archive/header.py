"""YAML front-matter header of a conversation document."""

from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .timestamps import format_iso, parse_timestamp

_LOG = logging.getLogger(__name__)

HEADER_TAGS = ["ai-conversation"]

_FRONT_MATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)
_ID_LINE_RE = re.compile(r"^conversationID:[ \t]*(.+?)[ \t]*$", re.MULTILINE)


def _yaml() -> YAML:
    y = YAML()
    y.default_flow_style = False
    y.width = 4096  # keep long image payloads on one line
    y.indent(mapping=2, sequence=4, offset=2)
    return y


@dataclass
class DocumentHeader:
    """Fields carried in a document's front matter."""

    conversation_id: str = ""
    title: str = ""
    model: str = "default"
    created: datetime | None = None
    last_modified: datetime | None = None
    tags: list[str] = field(default_factory=lambda: list(HEADER_TAGS))
    last_mode_used: str | None = None
    temp_images: dict[str, str] = field(default_factory=dict)


def render_header(header: DocumentHeader) -> str:
    """Render the ``---``-delimited front matter block, trailing newline included."""
    data: dict = {"conversationID": header.conversation_id}
    if header.title:
        data["title"] = header.title
    data["model"] = header.model
    data["created"] = format_iso(header.created) if header.created else ""
    data["lastModified"] = format_iso(header.last_modified) if header.last_modified else ""
    data["tags"] = list(header.tags)
    if header.last_mode_used:
        data["lastModeUsed"] = header.last_mode_used
    if header.temp_images:
        data["tempImages"] = dict(header.temp_images)

    buf = io.StringIO()
    _yaml().dump(data, buf)
    return f"---\n{buf.getvalue()}---\n"


def split_front_matter(text: str) -> tuple[str | None, str]:
    """Split a document into ``(front matter, body)``; front matter is None if absent."""
    m = _FRONT_MATTER_RE.match(text)
    if not m:
        return None, text
    return m.group(1), text[m.end():]


def _parse_mapping(raw: str) -> dict | None:
    try:
        data = _yaml().load(raw)
    except YAMLError as e:
        _LOG.warning("Unparsable document header: %s", e)
        return None
    if not isinstance(data, dict):
        _LOG.warning("Document header is not a mapping")
        return None
    return data


def parse_header(raw: str) -> DocumentHeader | None:
    """Parse front matter into a DocumentHeader; None when it is not a YAML mapping."""
    data = _parse_mapping(raw)
    if data is None:
        return None

    header = DocumentHeader(tags=[])
    conv_id = data.get("conversationID")
    if conv_id is not None and not isinstance(conv_id, str):
        # e.g. "1723000000_123456" read back as an int; use the literal text.
        m = _ID_LINE_RE.search(raw)
        conv_id = m.group(1).strip("'\"") if m else str(conv_id)
    header.conversation_id = (conv_id or "").strip()

    title = data.get("title")
    header.title = str(title).strip() if title is not None else ""
    header.model = str(data.get("model") or "default")
    header.created = parse_timestamp(data.get("created"))
    header.last_modified = parse_timestamp(data.get("lastModified"))

    tags = data.get("tags")
    if isinstance(tags, list):
        header.tags = [str(t) for t in tags]
    elif isinstance(tags, str):
        header.tags = [tags]

    mode = data.get("lastModeUsed")
    header.last_mode_used = str(mode) if mode is not None else None

    images = data.get("tempImages")
    if isinstance(images, dict):
        header.temp_images = {
            str(k): str(v) for k, v in images.items() if v is not None
        }
    return header


def read_header(text: str) -> DocumentHeader | None:
    """Parse only the header of a document; None when it has no usable header."""
    raw, _ = split_front_matter(text)
    if raw is None:
        return None
    return parse_header(raw)
