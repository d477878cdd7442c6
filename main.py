import argparse
import asyncio
import datetime as dt
import logging
import os
import sys

import httpx

from vaccinebot.bot import UpdatePoller
from vaccinebot.checker import AvailabilityChecker
from vaccinebot.config import Settings, load_settings
from vaccinebot.store import NotificationStore, StateStore, SubscriberRegistry
from vaccinebot.telegram_notifier import Notifier
from vaccinebot.worker import Orchestrator


def _log_file_name(log_dir: str) -> str:
    # One file per run, e.g. "2021-05-12T08-30-00.123456+00-00 log.txt"
    stamp = dt.datetime.now(dt.timezone.utc).isoformat().replace(":", "-")
    return os.path.join(log_dir, f"{stamp} log.txt")


def _setup_logging(log_dir: str) -> None:
    os.makedirs(log_dir, exist_ok=True)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(_log_file_name(log_dir), encoding="utf-8"),
        ],
    )
    # httpx logs every request at INFO, including the long polls.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def build_orchestrator(settings: Settings, client: httpx.AsyncClient, store: StateStore) -> Orchestrator:
    registry = SubscriberRegistry(store)
    notifications = NotificationStore(store, cooldown_ms=settings.cooldown_ms)
    checker = AvailabilityChecker(client, notifications)
    notifier = Notifier(client, settings.telegram_token, registry)
    return Orchestrator(settings, checker, registry, notifier)


async def run(settings: Settings, *, once: bool = False) -> None:
    store = StateStore.load(settings.state_file)
    store.save()

    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
        orchestrator = build_orchestrator(settings, client, store)

        if once:
            await orchestrator.check_all()
            return

        orchestrator.resume()
        try:
            await UpdatePoller(settings, client, orchestrator).run_forever()
        finally:
            orchestrator.scheduler.stop()


def main() -> int:
    parser = argparse.ArgumentParser(description="VaccineBot: Doctolib vaccination slot watcher")
    parser.add_argument("--once", action="store_true", help="Run a single check of all locations and exit")
    args = parser.parse_args()

    settings = load_settings()
    _setup_logging(settings.log_dir)

    try:
        asyncio.run(run(settings, once=args.once))
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("VaccineBot stopped")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
