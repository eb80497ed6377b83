"""Heuristic conversation titles."""

from __future__ import annotations

from .models import Conversation, Role
from .placeholders import has_images, strip_images

DEFAULT_TITLE = "New conversation"
IMAGE_TITLE = "Image conversation"


def suggest_title(conversation: Conversation, max_length: int = 50) -> str:
    """Title from the first line of the first user message."""
    for msg in conversation.messages:
        if msg.role is not Role.USER:
            continue
        text = strip_images(msg.content)
        for line in text.splitlines():
            line = line.strip().lstrip("#").strip()
            if line:
                if len(line) > max_length:
                    return line[: max_length - 1].rstrip() + "…"
                return line
        if has_images(msg.content):
            return IMAGE_TITLE
    return DEFAULT_TITLE
