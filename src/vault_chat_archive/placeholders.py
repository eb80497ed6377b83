"""Image marker and temp-image placeholder grammar used inside message content."""

from __future__ import annotations

import random
import re
import string
import time

from .models import ImageSource, TransientImage

PLACEHOLDER_PREFIX = "[!TempImg"

# Older builds wrote "[!Tempimg ...]" and "[!TempPic ...]".
PLACEHOLDER_RE = re.compile(r"\[!Temp(?:img|pic)\s+([^\]\s]+)\s*\]", re.IGNORECASE)
IMAGE_MARKER_RE = re.compile(r"!\[([^\]]*)\]\(([^)]*)\)")
DATA_URI_MARKER_RE = re.compile(r"!\[([^\]]*)\]\((data:image/[^;]+;base64,[^)]+)\)")

_BASE36 = string.digits + string.ascii_lowercase


def placeholder(token: str) -> str:
    return f"{PLACEHOLDER_PREFIX} {token}]"


def image_markup(label: str, target: str) -> str:
    return f"![{label}]({target})"


def new_token() -> str:
    """Return a fresh placeholder token, e.g. ``temp_img_1723000000000_k3x9qa``."""
    suffix = "".join(random.choice(_BASE36) for _ in range(6))
    return f"temp_img_{int(time.time() * 1000)}_{suffix}"


def find_placeholders(content: str) -> list[str]:
    """Tokens of all placeholders in order of appearance, without duplicates."""
    seen: list[str] = []
    for m in PLACEHOLDER_RE.finditer(content):
        if m.group(1) not in seen:
            seen.append(m.group(1))
    return seen


def replace_placeholder(content: str, token: str, replacement: str) -> str:
    """Replace every placeholder for ``token``, whatever its spelling."""
    return PLACEHOLDER_RE.sub(
        lambda m: replacement if m.group(1) == token else m.group(0), content
    )


def strip_images(content: str) -> str:
    """Remove image markers and placeholders, leaving only the text."""
    text = IMAGE_MARKER_RE.sub("", content)
    text = PLACEHOLDER_RE.sub("", text)
    return re.sub(r"\n\s*\n", "\n\n", text).strip()


def has_images(content: str) -> bool:
    return bool(IMAGE_MARKER_RE.search(content) or PLACEHOLDER_RE.search(content))


def extract_inline_images(content: str) -> tuple[str, dict[str, str]]:
    """Turn inline data-URI image markers back into temp-image placeholders.

    Used when a saved conversation is reopened, so that inline images get
    materialized as vault files on the next manual save. The marker's label
    becomes the image source.
    """
    temp_images: dict[str, str] = {}

    def _swap(m: re.Match) -> str:
        label, data_uri = m.group(1) or "image", m.group(2)
        token = new_token()
        while token in temp_images:
            token = new_token()
        temp_images[token] = TransientImage(
            data=data_uri,
            source=ImageSource.parse(label),
            file_name=f"{label}_{token}.png",
        ).serialize()
        return placeholder(token)

    return DATA_URI_MARKER_RE.sub(_swap, content), temp_images
