from __future__ import annotations

import json
import logging
import os
import tempfile
from typing import Any

from vaccinebot.domain import NotificationRecord, PersistedState, Subscriber

logger = logging.getLogger(__name__)


def _list_field(raw: dict[str, Any], key: str, path: str) -> list[Any]:
    value = raw.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        logger.warning("State file %s has a non-list %r (%s), ignoring it", path, key, type(value).__name__)
        return []
    return value


def load_state(path: str) -> PersistedState:
    if not os.path.exists(path):
        return PersistedState()

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError):
        # Corrupted state shouldn't brick the bot; start fresh.
        logger.warning("State file %s is not valid JSON, starting with empty state", path)
        return PersistedState()

    if not isinstance(raw, dict):
        logger.warning("State file %s does not hold a JSON object, starting with empty state", path)
        return PersistedState()

    state = PersistedState()
    seen_chats: set[int] = set()
    for chat in _list_field(raw, "activeChats", path):
        try:
            chat_id = int(chat["id"])
        except Exception:
            continue
        if chat_id in seen_chats:
            continue
        seen_chats.add(chat_id)
        state.subscribers.append(Subscriber(chat_id=chat_id, chat=dict(chat)))

    seen_locations: set[str] = set()
    for item in _list_field(raw, "lastSuccesses", path):
        try:
            record = NotificationRecord(location_name=str(item["locationName"]), time=int(item["time"]))
        except Exception:
            continue
        if record.location_name in seen_locations:
            continue
        seen_locations.add(record.location_name)
        state.records.append(record)

    return state


def save_state(path: str, state: PersistedState) -> None:
    data = {
        "activeChats": [s.chat or {"id": s.chat_id} for s in state.subscribers],
        "lastSuccesses": [{"locationName": r.location_name, "time": r.time} for r in state.records],
    }

    folder = os.path.dirname(os.path.abspath(path))
    if folder and not os.path.exists(folder):
        os.makedirs(folder, exist_ok=True)

    # Atomic write
    with tempfile.NamedTemporaryFile("w", delete=False, encoding="utf-8", dir=folder, suffix=".tmp") as tf:
        json.dump(data, tf, ensure_ascii=False, indent=2)
        tmp_name = tf.name

    os.replace(tmp_name, path)
