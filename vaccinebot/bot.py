from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

import httpx
from tenacity import RetryCallState, retry, retry_if_exception_type, wait_exponential

from vaccinebot.config import Settings
from vaccinebot.telegram_notifier import get_updates, set_my_commands
from vaccinebot.worker import Orchestrator, spawn

logger = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any]], Awaitable[Any]]


def parse_command(text: str | None) -> str | None:
    """Return the bare command name of a message ("/start@MyBot now" -> "start")."""
    parts = (text or "").split(maxsplit=1)
    if not parts or not parts[0].startswith("/"):
        return None
    return parts[0][1:].split("@", 1)[0].lower() or None


def build_handlers(orchestrator: Orchestrator) -> dict[str, Handler]:
    return {
        "start": orchestrator.activate,
        "activate": orchestrator.activate,
        "stop": orchestrator.deactivate,
        "deactivate": orchestrator.deactivate,
        "status": orchestrator.status,
        "check": orchestrator.manual_check,
    }


def _log_before_sleep(retry_state: RetryCallState) -> None:
    sleep_seconds = getattr(retry_state.next_action, "sleep", None)
    exc = retry_state.outcome.exception() if retry_state.outcome is not None else None
    reason = f"{type(exc).__name__}: {exc}" if exc is not None else "unknown"
    logger.warning(
        "getUpdates attempt %s failed (%s), next attempt in %.0f sec.",
        retry_state.attempt_number,
        reason,
        sleep_seconds or 0,
    )


class UpdatePoller:
    """Long-polls Telegram and hands every command to the orchestrator.

    Each handler runs as its own task so a slow /check never blocks /stop.
    """

    def __init__(self, settings: Settings, client: httpx.AsyncClient, orchestrator: Orchestrator) -> None:
        self._settings = settings
        self._client = client
        self._handlers = build_handlers(orchestrator)
        self._offset: int | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    @retry(
        retry=retry_if_exception_type((httpx.HTTPError, RuntimeError)),
        wait=wait_exponential(multiplier=2, min=2, max=60),
        before_sleep=_log_before_sleep,
        reraise=True,
    )
    async def _fetch_updates(self) -> list[dict[str, Any]]:
        return await get_updates(
            self._client,
            bot_token=self._settings.telegram_token,
            offset=self._offset,
            timeout_seconds=self._settings.telegram_poll_timeout_seconds,
        )

    def dispatch(self, update: dict[str, Any]) -> asyncio.Task[Any] | None:
        update_id = update.get("update_id")
        if isinstance(update_id, int):
            self._offset = update_id + 1

        message = update.get("message") or {}
        chat = message.get("chat")
        command = parse_command(message.get("text"))
        if not chat or command is None:
            return None

        handler = self._handlers.get(command)
        if handler is None:
            logger.debug("Ignoring unknown command /%s", command)
            return None

        return spawn(handler(chat), self._tasks, name=f"command-{command}")

    async def poll_once(self) -> int:
        updates = await self._fetch_updates()
        for update in updates:
            self.dispatch(update)
        return len(updates)

    async def run_forever(self) -> None:
        try:
            await set_my_commands(self._client, bot_token=self._settings.telegram_token)
        except Exception:
            logger.warning("Failed to register bot commands", exc_info=True)
        logger.info("Bot started, waiting for commands")
        while True:
            await self.poll_once()
