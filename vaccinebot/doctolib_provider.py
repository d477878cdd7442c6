from __future__ import annotations

import datetime as dt
from typing import Any

import httpx

from vaccinebot.domain import Location, ProviderError

BASE_URL = "https://partners.doctolib.fr"
AVAILABILITIES_URL = f"{BASE_URL}/availabilities.json"

# Page users land on from a notification. The practice page does not take
# agenda/motive parameters, so users pick the location manually.
BOOKING_URL = (
    f"{BASE_URL}/centre-de-vaccinations-internationales/limousin/"
    "vaccination-covid-19-professionnels-de-sante?pid=practice-162612&enable_cookies_consent=1"
)

# First injection. The second one is 2529895.
VACCINATION_MOTIVE_ID = 2529894
PRACTICE_ID = 162612

_STATIC_PARAMS: dict[str, str] = {
    "insurance_sector": "public",
    "practice_ids": str(PRACTICE_ID),
    "destroy_temporary": "true",
    "limit": "7",
    "allowNewPatients": "true",
    "telehealth": "240406",
    "isOrganization": "true",
    "telehealthFeatureEnabled": "false",
    "vaccinationMotive": "true",
    "vaccinationDaysRange": "26",
    "vaccinationCenter": "true",
    "nbConfirmedVaccinationAppointments": "11940",
}


def build_availability_params(location: Location, today: dt.date) -> dict[str, str]:
    return {
        "start_date": today.isoformat(),  # YYYY-MM-DD
        "visit_motive_ids": str(VACCINATION_MOTIVE_ID),
        "agenda_ids": str(location.agenda_id),
        **_STATIC_PARAMS,
    }


def build_availability_url(location: Location, today: dt.date) -> str:
    return str(httpx.URL(AVAILABILITIES_URL, params=build_availability_params(location, today)))


async def fetch_availabilities(client: httpx.AsyncClient, location: Location, today: dt.date) -> list[Any]:
    """Query Doctolib for `location` starting `today`.

    Returns the `availabilities` array (empty when the field is missing or
    null). Any transport, HTTP status or decoding problem is raised as
    ProviderError so the caller only has one failure type to handle.
    """

    try:
        r = await client.get(AVAILABILITIES_URL, params=build_availability_params(location, today))
        r.raise_for_status()
        data = r.json()
    except httpx.HTTPError as e:
        raise ProviderError(f"Doctolib request failed for {location.name!r} ({type(e).__name__}: {e})") from e
    except ValueError as e:
        raise ProviderError(f"Doctolib returned a non-JSON body for {location.name!r}") from e

    if not isinstance(data, dict):
        raise ProviderError(f"Unexpected Doctolib payload for {location.name!r}: {type(data).__name__}")

    availabilities = data.get("availabilities") or []
    if not isinstance(availabilities, list):
        raise ProviderError(f"Unexpected 'availabilities' type for {location.name!r}: {type(availabilities).__name__}")
    return availabilities
