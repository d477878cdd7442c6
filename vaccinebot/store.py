from __future__ import annotations

import logging
from typing import Any

from vaccinebot.domain import (
    ActivationResult,
    DeactivationResult,
    NotificationRecord,
    PersistedState,
    Subscriber,
)
from vaccinebot.state_file import load_state, save_state

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_MS = 24 * 60 * 60 * 1000


class StateStore:
    """In-memory state of the bot, written to `path` as a whole on every save()."""

    def __init__(self, path: str, state: PersistedState | None = None) -> None:
        self.path = path
        self.state = state if state is not None else PersistedState()

    @classmethod
    def load(cls, path: str) -> StateStore:
        store = cls(path, load_state(path))
        logger.info(
            "Loaded state from %s: chats=%d records=%d",
            path,
            len(store.state.subscribers),
            len(store.state.records),
        )
        return store

    def save(self) -> None:
        save_state(self.path, self.state)


class NotificationStore:
    def __init__(self, store: StateStore, cooldown_ms: int = DEFAULT_COOLDOWN_MS) -> None:
        self._store = store
        self.cooldown_ms = cooldown_ms

    def _find(self, location_name: str) -> NotificationRecord | None:
        for record in self._store.state.records:
            if record.location_name == location_name:
                return record
        return None

    def last_notified(self, location_name: str) -> int | None:
        record = self._find(location_name)
        return record.time if record is not None else None

    def is_cooldown_elapsed(self, location_name: str, now_ms: int) -> bool:
        record = self._find(location_name)
        if record is None:
            return True
        return now_ms - record.time >= self.cooldown_ms

    def record_notified(self, location_name: str, now_ms: int) -> None:
        # Upsert; applying it twice for the same location leaves one record.
        record = self._find(location_name)
        if record is None:
            self._store.state.records.append(NotificationRecord(location_name=location_name, time=now_ms))
        else:
            record.time = now_ms
        self._store.save()

    def clear_record(self, location_name: str) -> None:
        records = self._store.state.records
        records[:] = [r for r in records if r.location_name != location_name]
        self._store.save()


class SubscriberRegistry:
    def __init__(self, store: StateStore) -> None:
        self._store = store

    def __len__(self) -> int:
        return len(self._store.state.subscribers)

    @property
    def subscribers(self) -> list[Subscriber]:
        # Snapshot: callers iterate while handlers may (de)activate chats.
        return list(self._store.state.subscribers)

    def is_active(self, chat_id: int) -> bool:
        return any(s.chat_id == chat_id for s in self._store.state.subscribers)

    def activate(self, chat: dict[str, Any]) -> ActivationResult:
        chat_id = int(chat["id"])
        if self.is_active(chat_id):
            return ActivationResult.ALREADY_ACTIVE

        self._store.state.subscribers.append(Subscriber(chat_id=chat_id, chat=dict(chat)))
        self._store.save()
        return ActivationResult.ACTIVATED

    def deactivate(self, chat_id: int) -> DeactivationResult:
        subscribers = self._store.state.subscribers
        remaining = [s for s in subscribers if s.chat_id != chat_id]
        if len(remaining) == len(subscribers):
            return DeactivationResult.NOT_ACTIVE

        subscribers[:] = remaining
        self._store.save()
        return DeactivationResult.DEACTIVATED
