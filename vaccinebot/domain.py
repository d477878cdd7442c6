from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Location:
    """A vaccination centre watched on Doctolib.

    `agenda_id` is the provider's agenda identifier, `name` is what we show
    to users and what notification records are keyed on.
    """

    agenda_id: int
    name: str


@dataclass
class Subscriber:
    chat_id: int
    # Raw Telegram chat object, kept as-is for the state file.
    chat: dict[str, Any] = field(default_factory=dict)


@dataclass
class NotificationRecord:
    location_name: str
    time: int  # ms since epoch


@dataclass
class PersistedState:
    subscribers: list[Subscriber] = field(default_factory=list)
    records: list[NotificationRecord] = field(default_factory=list)


class CheckOutcome(enum.Enum):
    AVAILABLE_NEW = "available-new"
    AVAILABLE_REPEAT = "available-repeat"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


@dataclass(frozen=True)
class CheckResult:
    location: Location
    outcome: CheckOutcome
    availabilities: list[Any] = field(default_factory=list)
    error: str | None = None


class ActivationResult(enum.Enum):
    ACTIVATED = "activated"
    ALREADY_ACTIVE = "already-active"


class DeactivationResult(enum.Enum):
    DEACTIVATED = "deactivated"
    NOT_ACTIVE = "not-active"


class ProviderError(RuntimeError):
    """Doctolib could not be queried (network error, bad status or non-JSON body).

    The check for that location is dropped for the current cycle; the next
    scheduled tick is the retry.
    """
