"""Data models for archived conversations and their image payloads."""

from __future__ import annotations

import json
import mimetypes
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from .timestamps import utc_now


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class SaveMode(str, Enum):
    """How temporary images are resolved when a conversation is encoded."""

    AUTO = "auto"  # inline data URIs, no extra store writes
    MANUAL = "manual"  # materialize each image as a vault file


class ImageSource(str, Enum):
    """Where an attached image came from."""

    SCREENSHOT = "screenshot"
    EXTERNAL = "external"
    VAULT = "vault"
    IMAGE = "image"  # generic / unknown

    @classmethod
    def parse(cls, value: object) -> ImageSource:
        try:
            return cls(str(value))
        except ValueError:
            return cls.IMAGE


@dataclass(frozen=True)
class TransientImage:
    """An attached image that only exists as inline encoded data."""

    data: str  # data: URI or bare base64
    source: ImageSource = ImageSource.IMAGE
    file_name: str = ""
    local_path: str | None = None  # set for images that already live in the vault

    @property
    def data_uri(self) -> str:
        if self.data.startswith("data:"):
            return self.data
        mime, _ = mimetypes.guess_type(self.file_name or "")
        if not mime or not mime.startswith("image/"):
            mime = "image/png"
        return f"data:{mime};base64,{self.data}"

    def serialize(self) -> str:
        """Serialize to the JSON object string stored in ``Message.temp_images``."""
        payload = {
            "dataUrl": self.data,
            "source": self.source.value,
            "fileName": self.file_name,
        }
        if self.local_path:
            payload["localPath"] = self.local_path
        return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


@dataclass(frozen=True)
class LegacyTransientImage:
    """A temp image stored by older versions as a bare data string."""

    token: str
    data: str

    source = ImageSource.IMAGE
    local_path = None

    @property
    def file_name(self) -> str:
        return f"temp-{self.token}"

    @property
    def data_uri(self) -> str:
        if self.data.startswith("data:"):
            return self.data
        return f"data:image/png;base64,{self.data}"

    def serialize(self) -> str:
        return self.data


def parse_transient_image(token: str, raw: str) -> TransientImage | LegacyTransientImage:
    """Decode a serialized temp image, JSON first, bare string as fallback.

    Never raises: anything that is not a JSON object carrying image data is
    treated as the legacy bare-string form.
    """
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError):
        return LegacyTransientImage(token=token, data=str(raw))

    if not isinstance(payload, dict):
        return LegacyTransientImage(token=token, data=raw)

    data = payload.get("dataUrl") or payload.get("encodedBytes")
    if not isinstance(data, str) or not data:
        return LegacyTransientImage(token=token, data=raw)

    return TransientImage(
        data=data,
        source=ImageSource.parse(payload.get("source", "image")),
        file_name=str(payload.get("fileName") or f"temp-{token}"),
        local_path=payload.get("localPath") or None,
    )


@dataclass(frozen=True)
class MaterializedImage:
    """An image persisted at a stable path in the document store."""

    path: str
    label: str = ImageSource.IMAGE.value

    def markup(self) -> str:
        return f"![{self.label}]({self.path})"


@dataclass
class Message:
    """A single message in a conversation."""

    id: str
    role: Role
    content: str
    timestamp: datetime = field(default_factory=utc_now)
    temp_images: dict[str, str] = field(default_factory=dict)  # token -> serialized payload


@dataclass
class Conversation:
    """An ordered, multi-turn conversation."""

    id: str
    title: str = ""
    messages: list[Message] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    last_updated: datetime = field(default_factory=utc_now)
    last_mode_used: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.messages

    def _touch(self) -> None:
        self.last_updated = utc_now()

    def add_message(self, message: Message) -> None:
        self.messages.append(message)
        self._touch()

    def edit_message(self, message_id: str, content: str) -> bool:
        for msg in self.messages:
            if msg.id == message_id:
                msg.content = content
                self._touch()
                return True
        return False

    def delete_message(self, message_id: str) -> bool:
        for i, msg in enumerate(self.messages):
            if msg.id == message_id:
                del self.messages[i]
                self._touch()
                return True
        return False
