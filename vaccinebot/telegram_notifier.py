from __future__ import annotations

import logging
from typing import Any

import httpx

from vaccinebot.store import SubscriberRegistry

logger = logging.getLogger(__name__)

API_URL = "https://api.telegram.org"

BOT_COMMANDS: tuple[tuple[str, str], ...] = (
    ("start", "Activate the bot"),
    ("stop", "Deactivate the bot"),
    ("status", "Get the status of the bot"),
    ("check", "Check for available appointments now"),
)


def _method_url(bot_token: str, method: str) -> str:
    return f"{API_URL}/bot{bot_token}/{method}"


async def _call(client: httpx.AsyncClient, bot_token: str, method: str, payload: dict[str, Any], **kwargs: Any) -> Any:
    r = await client.post(_method_url(bot_token, method), json=payload, **kwargs)
    r.raise_for_status()
    try:
        data = r.json()
    except ValueError as e:
        raise RuntimeError(f"Telegram API error: non-JSON response to {method} ({e})") from e
    if not isinstance(data, dict):
        raise RuntimeError(f"Telegram API error: unexpected {type(data).__name__} response to {method}")
    if not data.get("ok", False):
        raise RuntimeError(f"Telegram API error: {data}")
    return data.get("result")


async def send_telegram_message(
    client: httpx.AsyncClient,
    *,
    bot_token: str,
    chat_id: int | str,
    text: str,
    parse_mode: str | None = None,
) -> None:
    payload: dict[str, Any] = {
        "chat_id": chat_id,
        "text": text,
        "disable_web_page_preview": True,
    }
    if parse_mode:
        payload["parse_mode"] = parse_mode

    await _call(client, bot_token, "sendMessage", payload)


async def get_updates(
    client: httpx.AsyncClient,
    *,
    bot_token: str,
    offset: int | None,
    timeout_seconds: int,
) -> list[dict[str, Any]]:
    payload: dict[str, Any] = {"timeout": timeout_seconds, "allowed_updates": ["message"]}
    if offset is not None:
        payload["offset"] = offset

    # The HTTP timeout has to outlive the long poll itself.
    return await _call(client, bot_token, "getUpdates", payload, timeout=timeout_seconds + 10) or []


async def set_my_commands(client: httpx.AsyncClient, *, bot_token: str) -> None:
    commands = [{"command": c, "description": d} for c, d in BOT_COMMANDS]
    await _call(client, bot_token, "setMyCommands", {"commands": commands})


class Notifier:
    def __init__(self, client: httpx.AsyncClient, bot_token: str, registry: SubscriberRegistry) -> None:
        self._client = client
        self._bot_token = bot_token
        self._registry = registry

    async def _send(self, chat_id: int, text: str, parse_mode: str | None) -> bool:
        try:
            await send_telegram_message(
                self._client,
                bot_token=self._bot_token,
                chat_id=chat_id,
                text=text,
                parse_mode=parse_mode,
            )
            return True
        except Exception as e:
            # Best-effort: a dead chat must not stop delivery to the others.
            logger.warning("Failed to send telegram message to chat_id=%s (%s: %s)", chat_id, type(e).__name__, e)
            return False

    async def broadcast(self, text: str) -> int:
        """Send `text` (Markdown) to every active chat. Returns the number of failed sends."""
        failed = 0
        for subscriber in self._registry.subscribers:
            if not await self._send(subscriber.chat_id, text, "Markdown"):
                failed += 1
        return failed

    async def reply_to(self, chat_id: int, text: str, *, markdown: bool = False) -> None:
        await self._send(chat_id, text, "Markdown" if markdown else None)
