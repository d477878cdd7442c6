from __future__ import annotations

import datetime as dt
import json
import logging
import time
from typing import Callable

import httpx

from vaccinebot.doctolib_provider import build_availability_url, fetch_availabilities
from vaccinebot.domain import CheckOutcome, CheckResult, Location, ProviderError
from vaccinebot.store import NotificationStore

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


class AvailabilityChecker:
    """Classifies one Doctolib response per location.

    The checker owns the notification bookkeeping: an empty answer clears the
    location's record, a new availability records "notified now" before the
    result is handed back, so the caller only has to send the messages.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        notifications: NotificationStore,
        *,
        clock: Callable[[], int] = now_ms,
        today: Callable[[], dt.date] = dt.date.today,
    ) -> None:
        self._client = client
        self._notifications = notifications
        self._clock = clock
        self._today = today

    async def check(self, location: Location) -> CheckResult:
        today = self._today()
        url = build_availability_url(location, today)

        try:
            availabilities = await fetch_availabilities(self._client, location, today)
        except ProviderError as e:
            logger.error("Check failed for %s (%s)", location.name, e)
            return CheckResult(location=location, outcome=CheckOutcome.FAILED, error=str(e))

        payload = json.dumps(availabilities, ensure_ascii=False)

        if not availabilities:
            logger.info("no appointments for %s %s %s", location.name, url, payload)
            self._notifications.clear_record(location.name)
            return CheckResult(location=location, outcome=CheckOutcome.UNAVAILABLE)

        now = self._clock()
        if self._notifications.is_cooldown_elapsed(location.name, now):
            logger.info("new appointments for %s : %s", location.name, payload)
            self._notifications.record_notified(location.name, now)
            return CheckResult(location=location, outcome=CheckOutcome.AVAILABLE_NEW, availabilities=availabilities)

        logger.info("old appointments for %s %s %s", location.name, url, payload)
        return CheckResult(location=location, outcome=CheckOutcome.AVAILABLE_REPEAT, availabilities=availabilities)
