from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from vaccinebot.domain import Location

# Vaccination centres watched on Doctolib (agenda id + display name).
DEFAULT_LOCATIONS: tuple[Location, ...] = (
    Location(agenda_id=406456, name="Centre Hospitalier Universitaire  Dupuytren 1"),
    Location(agenda_id=407243, name="Polyclinique de Limoges  - Site Chenieux"),
    Location(agenda_id=413512, name="Polyclinique de Limoges - Emailleurs"),
)


@dataclass(frozen=True)
class Settings:
    telegram_token: str

    locations: tuple[Location, ...] = DEFAULT_LOCATIONS

    check_interval_minutes: int = 15
    cooldown_hours: float = 24

    # Where we store active chats and last notifications
    state_file: str = "data/data.json"
    log_dir: str = "data/logs"

    http_timeout_seconds: float = 20.0
    # Long-poll timeout passed to Telegram getUpdates.
    telegram_poll_timeout_seconds: int = 30

    @property
    def check_interval_seconds(self) -> float:
        return self.check_interval_minutes * 60

    @property
    def cooldown_ms(self) -> int:
        return int(self.cooldown_hours * 60 * 60 * 1000)


def _require(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def _int_env(name: str, default: str) -> int:
    raw = os.getenv(name, default).strip()
    try:
        return int(raw)
    except ValueError as e:
        raise RuntimeError(f"Invalid {name} value: {raw!r}. Expected integer.") from e


def _float_env(name: str, default: str) -> float:
    raw = os.getenv(name, default).strip()
    try:
        return float(raw)
    except ValueError as e:
        raise RuntimeError(f"Invalid {name} value: {raw!r}. Expected number.") from e


def load_settings(dotenv_path: str | None = None) -> Settings:
    # Prefer .env in repo root; dotenv_path allows overriding in tests.
    load_dotenv(dotenv_path=dotenv_path, override=False)

    check_interval_minutes = _int_env("CHECK_INTERVAL_MINUTES", "15")
    if check_interval_minutes < 1:
        raise RuntimeError("CHECK_INTERVAL_MINUTES must be >= 1")

    cooldown_hours = _float_env("COOLDOWN_HOURS", "24")
    if cooldown_hours <= 0:
        raise RuntimeError("COOLDOWN_HOURS must be > 0")

    http_timeout_seconds = _float_env("HTTP_TIMEOUT_SECONDS", "20")
    if http_timeout_seconds <= 0:
        raise RuntimeError("HTTP_TIMEOUT_SECONDS must be > 0")

    telegram_poll_timeout_seconds = _int_env("TELEGRAM_POLL_TIMEOUT_SECONDS", "30")
    if telegram_poll_timeout_seconds < 0:
        raise RuntimeError("TELEGRAM_POLL_TIMEOUT_SECONDS must be >= 0")

    return Settings(
        telegram_token=_require("TELEGRAM_TOKEN"),
        check_interval_minutes=check_interval_minutes,
        cooldown_hours=cooldown_hours,
        state_file=os.getenv("STATE_FILE", "data/data.json"),
        log_dir=os.getenv("LOG_DIR", "data/logs"),
        http_timeout_seconds=http_timeout_seconds,
        telegram_poll_timeout_seconds=telegram_poll_timeout_seconds,
    )
