from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Coroutine

from vaccinebot.checker import AvailabilityChecker
from vaccinebot.config import Settings
from vaccinebot.doctolib_provider import BOOKING_URL
from vaccinebot.domain import ActivationResult, CheckOutcome, CheckResult, DeactivationResult, Location
from vaccinebot.store import SubscriberRegistry
from vaccinebot.telegram_notifier import Notifier

logger = logging.getLogger(__name__)


def _log_task_failure(task: asyncio.Task[Any]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Task %s failed (%s: %s)", task.get_name(), type(exc).__name__, exc, exc_info=exc)


def spawn(coro: Coroutine[Any, Any, Any], tasks: set[asyncio.Task[Any]], *, name: str) -> asyncio.Task[Any]:
    """Run `coro` as a background task, keeping a reference until it is done."""
    task = asyncio.create_task(coro, name=name)
    tasks.add(task)
    task.add_done_callback(tasks.discard)
    task.add_done_callback(_log_task_failure)
    return task


def _format_new_appointments(location: Location) -> str:
    return (
        f'Looks like appointments for "{location.name}" are available!\n'
        f"[Click here to get to the website]({BOOKING_URL}) - ⚠ you will have to pick the location and motive manually!"
    )


def _format_old_appointments(location: Location) -> str:
    return (
        f'Looks like there are appointments for "{location.name}", which were already notified.\n'
        f"[Click here to get to the website]({BOOKING_URL}) - ⚠ you will have to pick the location and motive manually!"
    )


def _format_no_appointments(location: Location) -> str:
    return f'Looks like there are no appointments for "{location.name}".'


def _format_welcome(settings: Settings) -> str:
    names = "".join(f"\n • {loc.name}" for loc in settings.locations)
    return (
        f"I'm checking every {settings.check_interval_minutes} Minutes for available vaccine appointments "
        f"in those locations:{names}\n"
        "I will update you if it looks like one is available 💉\n\n"
        "You can also check my /status"
    )


class PeriodicCheck:
    """Repeating check with two states: idle (no timer) and running.

    start() runs the job right away and then every `interval_seconds`.
    stop() cancels the timer only; jobs already dispatched finish on their own.
    """

    def __init__(self, interval_seconds: float, job: Callable[[], Awaitable[Any]]) -> None:
        self.interval_seconds = interval_seconds
        self._job = job
        self._timer: asyncio.Task[None] | None = None
        self._in_flight: set[asyncio.Task[Any]] = set()

    @property
    def is_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def start(self) -> None:
        self.stop()
        self._timer = asyncio.create_task(self._run(), name="periodic-check")
        logger.info("Checking started. Interval=%ss", self.interval_seconds)

    def stop(self) -> None:
        if self._timer is None:
            return
        self._timer.cancel()
        self._timer = None
        logger.info("Checking stopped")

    def _dispatch(self) -> None:
        spawn(self._job(), self._in_flight, name="check-all")

    async def _run(self) -> None:
        self._dispatch()
        while True:
            await asyncio.sleep(self.interval_seconds)
            logger.info("Automatically checking all ...")
            self._dispatch()

    async def wait_in_flight(self) -> None:
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)


class Orchestrator:
    def __init__(
        self,
        settings: Settings,
        checker: AvailabilityChecker,
        registry: SubscriberRegistry,
        notifier: Notifier,
    ) -> None:
        self.settings = settings
        self._checker = checker
        self._registry = registry
        self._notifier = notifier
        self.scheduler = PeriodicCheck(settings.check_interval_seconds, self.check_all)

    def resume(self) -> None:
        """Start checking if chats were already active before a restart."""
        if len(self._registry) > 0:
            self.scheduler.start()

    async def _check_location(self, location: Location, requester_chat_id: int | None) -> CheckResult:
        result = await self._checker.check(location)

        if result.outcome is CheckOutcome.AVAILABLE_NEW:
            await self._notifier.broadcast(_format_new_appointments(location))
            return result

        # Only a manual check hears about repeats and empty locations.
        if requester_chat_id is None:
            return result

        if result.outcome is CheckOutcome.AVAILABLE_REPEAT:
            await self._notifier.reply_to(requester_chat_id, _format_old_appointments(location), markdown=True)
        elif result.outcome is CheckOutcome.UNAVAILABLE:
            await self._notifier.reply_to(requester_chat_id, _format_no_appointments(location))

        return result

    async def check_all(self, requester_chat_id: int | None = None) -> list[CheckResult]:
        # Locations are independent; each one reports as soon as it is classified.
        return list(
            await asyncio.gather(
                *(self._check_location(loc, requester_chat_id) for loc in self.settings.locations)
            )
        )

    async def activate(self, chat: dict[str, Any]) -> ActivationResult:
        chat_id = int(chat["id"])
        result = self._registry.activate(chat)

        if result is ActivationResult.ALREADY_ACTIVE:
            await self._notifier.reply_to(chat_id, "Bot already activated")
            return result

        logger.info("activated chat %s", json.dumps(chat, ensure_ascii=False))
        if len(self._registry) == 1:
            self.scheduler.start()

        await self._notifier.reply_to(chat_id, "🟢 Vaccine Bot Activated 💉🤖🔥")
        await self._notifier.reply_to(chat_id, _format_welcome(self.settings))
        return result

    async def deactivate(self, chat: dict[str, Any]) -> DeactivationResult:
        chat_id = int(chat["id"])
        result = self._registry.deactivate(chat_id)

        if result is DeactivationResult.NOT_ACTIVE:
            await self._notifier.reply_to(chat_id, "Bot is not activated.\nUse /start to activate")
            return result

        logger.info("deactivated chat %s", json.dumps(chat, ensure_ascii=False))
        if len(self._registry) == 0:
            self.scheduler.stop()

        await self._notifier.reply_to(chat_id, "🔴 Vaccine Bot Deactivated")
        return result

    async def status(self, chat: dict[str, Any]) -> None:
        chat_id = int(chat["id"])
        logger.info("status check %s", json.dumps(chat, ensure_ascii=False))

        if self._registry.is_active(chat_id):
            text = (
                f"🟢 Vaccine Bot is activated and checking every {self.settings.check_interval_minutes} Minutes.\n"
                "Use /stop to deactivate"
            )
        else:
            text = "🔴 Vaccine Bot is deactivated.\nUse /start to activate"
        await self._notifier.reply_to(chat_id, text)

    async def manual_check(self, chat: dict[str, Any]) -> list[CheckResult]:
        logger.info("Manual check for appointments ... %s", json.dumps(chat, ensure_ascii=False))
        return await self.check_all(requester_chat_id=int(chat["id"]))
