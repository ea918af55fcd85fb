"""
Holiday pseudo-events for the calendar view.

Combines the civil holidays of a configurable locale (python-holidays) with
Easter-relative Christian holidays computed from dateutil's Easter date.
"""

from datetime import date, timedelta
from typing import Iterable, Optional

import holidays
from dateutil.easter import easter
from loguru import logger

from .models import HolidayEvent


# dateutil's Western (Gregorian) Easter is only defined for these years
EASTER_MIN_YEAR = 1583
EASTER_MAX_YEAR = 4099

# Offsets in days from Easter Sunday
EASTER_RELATIVE = [
    ("Ash Wednesday", -46),
    ("Palm Sunday", -7),
    ("Good Friday", -2),
    ("Easter Sunday", 0),
]

# python-holidays spelling; matched case-insensitively
DEFAULT_DENYLIST = ("Day After Thanksgiving",)


def compute_easter(year: int) -> Optional[date]:
    """Easter Sunday of a Gregorian year, or None if it cannot be computed."""
    if not EASTER_MIN_YEAR <= year <= EASTER_MAX_YEAR:
        return None
    try:
        return easter(year)
    except ValueError as e:
        logger.warning(f"Could not compute Easter for {year}: {e}")
        return None


class HolidayGenerator:
    """
    Generates the yearly set of holiday pseudo-events.

    If Easter cannot be computed for a year, no holidays at all are returned
    for that year. Results are memoised per year.
    """

    def __init__(
        self,
        country: str = "US",
        subdivision: Optional[str] = None,
        denylist: Iterable[str] = DEFAULT_DENYLIST,
    ):
        self.country = country
        self.subdivision = subdivision
        self.denylist = frozenset(name.casefold() for name in denylist)
        self._cache: dict[int, tuple[HolidayEvent, ...]] = {}

    def generate(self, year: int) -> list[HolidayEvent]:
        """Get the holiday pseudo-events of a calendar year."""
        if year not in self._cache:
            self._cache[year] = tuple(self._build(year))
        return list(self._cache[year])

    def _build(self, year: int) -> list[HolidayEvent]:
        easter_sunday = compute_easter(year)
        if easter_sunday is None:
            logger.warning(f"No Easter date for {year}; skipping all holidays")
            return []

        candidates = list(self._civil_holidays(year))
        for name, offset in EASTER_RELATIVE:
            candidates.append((name, easter_sunday + timedelta(days=offset)))
        candidates.append(("Christmas Day", date(year, 12, 25)))

        # One holiday per calendar date, first seen wins
        by_day: dict[date, str] = {}
        for name, day in candidates:
            by_day.setdefault(day, name)

        return [
            HolidayEvent(title=name, day=day)
            for day, name in by_day.items()
            if name.casefold() not in self.denylist
        ]

    def _civil_holidays(self, year: int) -> Iterable[tuple[str, date]]:
        """Civil holidays of the configured locale, in date order."""
        table = holidays.country_holidays(self.country, subdiv=self.subdivision, years=year)
        for day in sorted(table.keys()):
            for name in table.get_list(day):
                yield name, day
