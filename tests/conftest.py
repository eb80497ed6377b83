"""Shared fixtures for archive tests."""

from datetime import datetime, timedelta, timezone

import pytest

from vault_chat_archive.models import Conversation, Message, Role
from vault_chat_archive.settings import ArchiveSettings
from vault_chat_archive.store import LocalStore

T0 = datetime(2025, 1, 1, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def store(tmp_path):
    """A LocalStore rooted in a temporary vault directory."""
    return LocalStore(tmp_path)


@pytest.fixture
def settings():
    return ArchiveSettings()


@pytest.fixture
def make_conversation():
    """Factory for conversations built from ``(role, content)`` pairs.

    Message i is timestamped ``T0 + 5s * i``.
    """

    def _make(pairs, conv_id="abc123", title="Test conversation", created=T0):
        conv = Conversation(id=conv_id, title=title, created_at=created, last_updated=created)
        for i, (role, content) in enumerate(pairs):
            conv.messages.append(
                Message(
                    id=f"msg_{i}",
                    role=Role(role),
                    content=content,
                    timestamp=created + timedelta(seconds=5 * i),
                )
            )
        return conv

    return _make
