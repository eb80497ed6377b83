"""Resolve temp-image placeholders into inline data URIs or vault image files."""

from __future__ import annotations

import base64
import binascii
import io
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from PIL import Image, UnidentifiedImageError

from .errors import ResolutionError, StoreError
from .models import (
    ImageSource,
    LegacyTransientImage,
    MaterializedImage,
    Message,
    SaveMode,
    TransientImage,
    parse_transient_image,
)
from .placeholders import find_placeholders, image_markup, replace_placeholder
from .settings import ArchiveSettings
from .store import DocumentStore
from .timestamps import utc_now

_LOG = logging.getLogger(__name__)

_DATA_URI_RE = re.compile(r"^data:([^;,]*)(;base64)?,(.*)$", re.DOTALL)

# Pillow format name -> file extension
_FORMAT_EXTS = {"JPEG": "jpg", "PNG": "png", "GIF": "gif", "WEBP": "webp", "BMP": "bmp"}


@dataclass
class Resolution:
    """Result of resolving one message's temp images.

    When ``failed`` is set, ``content`` and ``temp_images`` are the message's
    originals and nothing should be treated as resolved. Otherwise
    ``temp_images`` is empty.
    """

    content: str
    temp_images: dict[str, str] = field(default_factory=dict)
    materialized: list[MaterializedImage] = field(default_factory=list)
    failed: bool = False


def decode_image_data(data: str) -> tuple[bytes, str]:
    """Decode a data URI or bare base64 string into ``(bytes, mime)``.

    ``mime`` is empty when the data carries no media type. Raises ValueError
    for data that is not base64.
    """
    mime = ""
    payload = data
    m = _DATA_URI_RE.match(data)
    if m:
        mime, payload = m.group(1), m.group(3)
        if not m.group(2):
            raise ValueError("data URI is not base64-encoded")
    try:
        return base64.b64decode(payload, validate=True), mime
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"invalid base64 image data: {e}") from e


def image_extension(raw: bytes, mime: str) -> str:
    """Pick a file extension from the mime type, else by sniffing the bytes."""
    if mime.startswith("image/"):
        subtype = mime.split("/", 1)[1].split("+", 1)[0].lower()
        if subtype == "jpeg":
            return "jpg"
        if subtype:
            return subtype
    try:
        with Image.open(io.BytesIO(raw)) as img:
            return _FORMAT_EXTS.get(img.format or "", "png")
    except (UnidentifiedImageError, OSError):
        return "png"


class TempImageResolver:
    """Replaces ``[!TempImg token]`` placeholders according to the save mode.

    Auto mode inlines each image as a data URI and touches nothing else.
    Manual mode writes each image once into a folder chosen by its source and
    references the new vault path.
    """

    def __init__(
        self,
        store: DocumentStore | None = None,
        settings: ArchiveSettings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.settings = settings or ArchiveSettings()
        self.clock = clock

    def target_folder(self, source: ImageSource) -> str:
        if source is ImageSource.SCREENSHOT:
            return self.settings.screenshot_folder
        if source is ImageSource.EXTERNAL:
            return self.settings.external_image_folder
        return self.settings.conversation_image_folder

    def resolve(self, message: Message, mode: SaveMode) -> Resolution:
        """Resolve every placeholder in ``message``; the message is not modified."""
        if not message.temp_images:
            return Resolution(content=message.content)
        if mode is SaveMode.MANUAL and self.store is None:
            raise ResolutionError("manual resolution needs a document store")

        content = message.content
        pending = dict(message.temp_images)
        written: list[MaterializedImage] = []

        for token in find_placeholders(message.content):
            raw = pending.pop(token, None)
            if raw is None:
                _LOG.warning("Placeholder %s in message %s has no image data", token, message.id)
                continue
            image = parse_transient_image(token, raw)
            try:
                if mode is SaveMode.AUTO:
                    markup = image_markup(image.source.value, image.data_uri)
                else:
                    markup = self._materialize(token, image, written).markup()
            except (StoreError, ValueError) as e:
                _LOG.error("Failed to resolve temp image %s: %s", token, e)
                self._discard(written)
                return Resolution(
                    content=message.content,
                    temp_images=dict(message.temp_images),
                    failed=True,
                )
            content = replace_placeholder(content, token, markup)

        if pending:
            _LOG.warning(
                "Dropping %d temp image(s) with no placeholder in message %s",
                len(pending), message.id,
            )
        return Resolution(content=content, materialized=written)

    def _materialize(
        self,
        token: str,
        image: TransientImage | LegacyTransientImage,
        written: list[MaterializedImage],
    ) -> MaterializedImage:
        label = image.source.value
        if image.source is ImageSource.VAULT and image.local_path:
            # Already a vault file.
            return MaterializedImage(path=image.local_path, label=label)

        raw, mime = decode_image_data(image.data)
        folder = self.target_folder(image.source)
        stamp = self.clock().isoformat().replace(":", "-").replace(".", "-")
        materialized = MaterializedImage(
            path=f"{folder}/{token}_{stamp}.{image_extension(raw, mime)}", label=label
        )

        if not self.store.exists(folder):
            self.store.create_directory(folder)
        self.store.write_binary(materialized.path, raw)
        written.append(materialized)
        _LOG.info("Saved temp image %s to %s", token, materialized.path)
        return materialized

    def _discard(self, written: list[MaterializedImage]) -> None:
        """Remove files written earlier in a message whose resolution failed."""
        for image in written:
            try:
                self.store.delete(image.path)
            except StoreError as e:
                _LOG.warning("Could not remove partial image %s: %s", image.path, e)
