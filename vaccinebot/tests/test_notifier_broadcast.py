from __future__ import annotations

import json

import httpx
import pytest

from vaccinebot.store import StateStore, SubscriberRegistry
from vaccinebot.telegram_notifier import Notifier, send_telegram_message


def _registry(tmp_path, *chat_ids: int) -> SubscriberRegistry:
    registry = SubscriberRegistry(StateStore(str(tmp_path / "data.json")))
    for chat_id in chat_ids:
        registry.activate({"id": chat_id})
    return registry


@pytest.mark.asyncio
async def test_broadcast_keeps_going_after_a_failed_chat(tmp_path) -> None:
    sent: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        sent.append(payload)
        if payload["chat_id"] == 2:
            return httpx.Response(403, json={"ok": False, "description": "Forbidden: bot was blocked by the user"})
        return httpx.Response(200, json={"ok": True, "result": {}})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        notifier = Notifier(client, "TEST_TOKEN", _registry(tmp_path, 1, 2, 3))
        failed = await notifier.broadcast("*hello*")

    assert failed == 1
    assert [p["chat_id"] for p in sent] == [1, 2, 3]
    assert all(p["parse_mode"] == "Markdown" for p in sent)


@pytest.mark.asyncio
async def test_reply_to_does_not_raise_on_network_error(tmp_path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timeout", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        notifier = Notifier(client, "TEST_TOKEN", _registry(tmp_path))
        await notifier.reply_to(5, "hi")


@pytest.mark.asyncio
async def test_send_telegram_message_raises_when_api_says_not_ok() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": False, "description": "chat not found"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(RuntimeError, match="Telegram API error"):
            await send_telegram_message(client, bot_token="TEST_TOKEN", chat_id=1, text="hi")

    assert seen[0].url.path == "/botTEST_TOKEN/sendMessage"
    assert "parse_mode" not in json.loads(seen[0].content)
