"""Archive configuration, loaded from an optional YAML file."""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .errors import SettingsError


@dataclass
class ArchiveSettings:
    """Vault folders and auto-save policy."""

    screenshot_folder: str = "screenshots-capture/savedscreenshots"
    external_image_folder: str = "screenshots-capture/othersourceimage"
    conversation_folder: str = "screenshots-capture/conversations"
    autosave_folder: str = "screenshots-capture/autosavedconversations"
    autosave_enabled: bool = True
    autosave_interval: int = 30  # seconds
    max_autosaved: int = 5
    model: str = "default"
    debug_logging: bool = False

    @property
    def conversation_image_folder(self) -> str:
        return f"{self.conversation_folder}/images"


# Key names used by the plugin's own settings file.
_ALIASES = {
    "defaultSaveLocation": "screenshot_folder",
    "otherSourceImageLocation": "external_image_folder",
    "conversationSaveLocation": "conversation_folder",
    "autoSavedConversationLocation": "autosave_folder",
    "autoSaveConversations": "autosave_enabled",
    "autoSaveInterval": "autosave_interval",
    "maxAutoSavedConversations": "max_autosaved",
    "defaultModelConfigId": "model",
    "enableDebugLogging": "debug_logging",
}


def _coerce(name: str, value: object, default: object) -> object:
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise SettingsError(f"{name} must be true or false, got {value!r}")
        return value
    if isinstance(default, int):
        if isinstance(value, bool) or not isinstance(value, int):
            raise SettingsError(f"{name} must be an integer, got {value!r}")
        if value < 1:
            raise SettingsError(f"{name} must be at least 1, got {value}")
        return value
    if not isinstance(value, str) or not value.strip():
        raise SettingsError(f"{name} must be a non-empty string, got {value!r}")
    return value.strip().rstrip("/")


def load_settings(path: Path | None = None) -> ArchiveSettings:
    """Read settings from a YAML file; missing file or keys keep the defaults."""
    settings = ArchiveSettings()
    if path is None or not path.exists():
        return settings

    y = YAML(typ="safe")
    try:
        with open(path, encoding="utf-8") as f:
            data = y.load(f)
    except YAMLError as e:
        raise SettingsError(f"Could not parse {path}: {e}") from e

    if data is None:
        return settings
    if not isinstance(data, dict):
        raise SettingsError(f"{path} must contain a mapping at the top level")

    known = {f.name for f in fields(settings)}
    for key, value in data.items():
        name = _ALIASES.get(key, key)
        if name not in known:
            continue
        setattr(settings, name, _coerce(name, value, getattr(settings, name)))
    return settings
