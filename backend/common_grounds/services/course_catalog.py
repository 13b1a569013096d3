"""Client for the UVA SIS class search API."""

import logging
import re
from datetime import date
from typing import Any

import httpx

from common_grounds.config import Settings

logger = logging.getLogger(__name__)

_CLASS_INPUT_RE = re.compile(r"^([A-Z]{2,4})\s*(\d{4})$", re.IGNORECASE)


class CatalogUnavailableError(Exception):
    """The catalog could not be queried (timeout, transport error, bad response)."""


def current_term(today: date | None = None) -> str:
    """
    SIS term code for a date: "1" + two-digit year + semester digit.

    January through May is spring ("2"); the rest of the year maps to fall ("8").
    """
    today = today or date.today()
    semester = "2" if 1 <= today.month <= 5 else "8"
    return f"1{today.year % 100:02d}{semester}"


def parse_class_input(value: str) -> tuple[str, str] | None:
    """Split "CS 2150" / "cs2150" into ("CS", "2150"), or None if it doesn't parse."""
    match = _CLASS_INPUT_RE.match(value.strip().upper())
    if not match:
        return None
    return match.group(1), match.group(2)


def _to_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def normalize_section(raw: dict[str, Any]) -> dict[str, Any]:
    """Map an SIS section record onto Class column names."""
    return {
        "subject": str(raw.get("subject", "")).upper(),
        "catalog_number": str(raw.get("catalog_nbr", "")),
        "sis_class_number": str(raw.get("class_nbr", "")),
        "title": raw.get("descr") or "",
        "instructor": raw.get("instructor"),
        "component": raw.get("component"),
        "class_section": raw.get("class_section"),
        "class_capacity": _to_int(raw.get("class_capacity")),
        "enrollment_available": _to_int(raw.get("enrollment_available")),
        "days": raw.get("days"),
        "start_time": raw.get("start_time"),
        "end_time": raw.get("end_time"),
        "location": raw.get("location"),
    }


class CourseCatalogClient:
    """Fetches section records for a subject/catalog number/term."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient):
        self.settings = settings
        self.client = client

    async def fetch_sections(
        self, subject: str, catalog_number: str, term: str
    ) -> list[dict[str, Any]]:
        """
        Query SIS and return normalized section dicts.

        Raises:
            CatalogUnavailableError: On timeout, transport failure, non-2xx
                status or an unparseable body
        """
        if not self.settings.sis_api_url:
            raise CatalogUnavailableError("SIS API URL is not configured")

        try:
            response = await self.client.get(
                self.settings.sis_api_url,
                params={
                    "institution": self.settings.sis_institution,
                    "term": term,
                    "subject": subject.upper(),
                    "catalog_nbr": catalog_number,
                    "page": 1,
                },
                timeout=self.settings.sis_timeout_seconds,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise CatalogUnavailableError(str(e) or e.__class__.__name__) from e
        except ValueError as e:
            raise CatalogUnavailableError("SIS returned invalid JSON") from e

        if not isinstance(data, list):
            logger.warning("Unexpected SIS payload for %s %s: %s", subject, catalog_number, type(data).__name__)
            return []

        sections = [normalize_section(item) for item in data if isinstance(item, dict)]
        sections = [s for s in sections if s["sis_class_number"]]
        if not sections:
            logger.warning("No classes found for %s %s", subject, catalog_number)
        return sections
