"""Periodic auto-save with change detection.

The saver is an explicit two-state machine. ``IDLE`` means no timer is
running. ``ARMED`` means the caller's timer ticks for one conversation id.
Each transition takes the current ``AutoSaveState`` and returns the next one.
The last persisted encoding (the baseline) lives in that state, not in the
saver.

On every tick the conversation is encoded with ``lastModified`` pinned to
``created``. When that text equals the baseline, the store write is skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Callable

from .archive import autosave_file_name, ensure_identity, write_document
from .encoder import encode_conversation
from .models import Conversation, SaveMode
from .resolver import TempImageResolver
from .settings import ArchiveSettings
from .store import DocumentStore
from .timestamps import utc_now

_LOG = logging.getLogger(__name__)


class Phase(str, Enum):
    IDLE = "idle"
    ARMED = "armed"


@dataclass(frozen=True)
class AutoSaveState:
    phase: Phase = Phase.IDLE
    conversation_id: str | None = None
    file_name: str | None = None
    baseline: str | None = None


IDLE = AutoSaveState()


class AutoSaver:
    """Drives auto-save transitions; the caller owns the timer."""

    def __init__(
        self,
        store: DocumentStore,
        settings: ArchiveSettings | None = None,
        resolver: TempImageResolver | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.settings = settings or ArchiveSettings()
        self.resolver = resolver or TempImageResolver(store, self.settings)
        self.clock = clock

    @property
    def interval(self) -> int:
        """Seconds between ticks."""
        return self.settings.autosave_interval

    def path_for(self, state: AutoSaveState) -> str:
        return f"{self.settings.autosave_folder}/{state.file_name}"

    def arm(self, conversation: Conversation) -> AutoSaveState:
        """Start auto-saving ``conversation``; its id is derived now if missing."""
        identity = ensure_identity(conversation)
        state = AutoSaveState(
            phase=Phase.ARMED,
            conversation_id=identity,
            file_name=autosave_file_name(identity, self.clock()),
        )
        _LOG.info("Auto-save armed for conversation %s", identity)
        return state

    def on_message_added(self, state: AutoSaveState, conversation: Conversation) -> AutoSaveState:
        """Arm when the first message lands in an idle, previously empty conversation."""
        if not self.settings.autosave_enabled:
            return IDLE
        if state.phase is Phase.IDLE and not conversation.is_empty:
            return self.arm(conversation)
        return state

    def tick(
        self,
        state: AutoSaveState,
        conversation: Conversation | None,
        previous: Conversation | None = None,
    ) -> AutoSaveState:
        """Handle one timer tick for the currently active conversation.

        ``previous`` is the conversation the state was armed for, if the
        caller still has it. It gets a final save when the active
        conversation has changed.
        """
        if state.phase is Phase.IDLE:
            return state
        if not self.settings.autosave_enabled or conversation is None or conversation.is_empty:
            _LOG.debug("Auto-save disarmed: no active conversation")
            return IDLE

        if conversation.id != state.conversation_id:
            if previous is not None and previous.id == state.conversation_id:
                self._write(state, previous, force=True)
            state = self.arm(conversation)

        return self._write(state, conversation)

    def switch(
        self,
        state: AutoSaveState,
        outgoing: Conversation | None,
        incoming: Conversation | None,
    ) -> AutoSaveState:
        """Final save of ``outgoing``, then arm for ``incoming`` (or go idle)."""
        if state.phase is Phase.ARMED and outgoing is not None and not outgoing.is_empty:
            self._write(state, outgoing, force=True)
        if incoming is None or incoming.is_empty or not self.settings.autosave_enabled:
            return IDLE
        return self.arm(incoming)

    def close(self, state: AutoSaveState, conversation: Conversation | None) -> AutoSaveState:
        """Synchronous final save before teardown; always ends idle."""
        if state.phase is Phase.ARMED and conversation is not None and not conversation.is_empty:
            self._write(state, conversation, force=True)
        return IDLE

    def _encode(self, conversation: Conversation, update_timestamp: bool) -> str:
        return encode_conversation(
            conversation,
            mode=SaveMode.AUTO,
            update_timestamp=update_timestamp,
            resolver=self.resolver,
            model=self.settings.model,
            now=self.clock(),
        )

    def _write(self, state: AutoSaveState, conversation: Conversation, force: bool = False) -> AutoSaveState:
        comparison = self._encode(conversation, update_timestamp=False)
        if not force and comparison == state.baseline:
            _LOG.debug("Auto-save skipped: no changes in %s", state.conversation_id)
            return state

        path = self.path_for(state)
        # StoreError propagates; the baseline stays put so the next tick retries.
        write_document(self.store, path, self._encode(conversation, update_timestamp=True))
        _LOG.info("Auto-saved conversation %s to %s", state.conversation_id, path)
        return replace(state, baseline=comparison)
