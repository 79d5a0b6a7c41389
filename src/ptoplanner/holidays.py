"""Holiday presets and custom holiday expansion.

Presets compute *observed* public holidays for a given year: a holiday that
falls on Saturday is observed the preceding Friday, one that falls on Sunday
the following Monday.  Custom holidays may repeat yearly, in which case only
their month and day matter.
"""

from __future__ import annotations

import calendar
import datetime
from collections.abc import Callable, Iterable
from typing import NamedTuple


class Holiday(NamedTuple):
    date: datetime.date
    name: str
    repeats_yearly: bool = False


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _nth_weekday(year: int, month: int, weekday: int, n: int) -> datetime.date:
    """The *n*-th (1-based) *weekday* of a month; 0 = Monday like ``date.weekday``."""
    first_weekday, _ = calendar.monthrange(year, month)
    day = 1 + (weekday - first_weekday) % 7 + 7 * (n - 1)
    return datetime.date(year, month, day)


def _last_weekday(year: int, month: int, weekday: int) -> datetime.date:
    last_day = calendar.monthrange(year, month)[1]
    last = datetime.date(year, month, last_day)
    return last - datetime.timedelta(days=(last.weekday() - weekday) % 7)


def _observed(d: datetime.date) -> datetime.date:
    """Sat -> Fri, Sun -> Mon."""
    shift = {5: -1, 6: 1}.get(d.weekday(), 0)
    return d + datetime.timedelta(days=shift)


# ---------------------------------------------------------------------------
# Country presets
# ---------------------------------------------------------------------------

PRESETS: dict[str, str] = {
    "us": "United States federal holidays",
}


def us_holidays(year: int) -> list[Holiday]:
    """US federal holidays (observed) for *year*."""
    return sorted(
        [
            Holiday(_observed(datetime.date(year, 1, 1)), "New Year's Day"),
            Holiday(_nth_weekday(year, 1, 0, 3), "Martin Luther King Jr. Day"),
            Holiday(_nth_weekday(year, 2, 0, 3), "Presidents' Day"),
            Holiday(_last_weekday(year, 5, 0), "Memorial Day"),
            Holiday(_observed(datetime.date(year, 6, 19)), "Juneteenth"),
            Holiday(_observed(datetime.date(year, 7, 4)), "Independence Day"),
            Holiday(_nth_weekday(year, 9, 0, 1), "Labor Day"),
            Holiday(_nth_weekday(year, 11, 3, 4), "Thanksgiving"),
            Holiday(_observed(datetime.date(year, 12, 25)), "Christmas Day"),
        ]
    )


_PRESET_FNS: dict[str, Callable[[int], list[Holiday]]] = {
    "us": us_holidays,
}


def get_holidays(country: str, year: int) -> list[Holiday]:
    """Return the preset holidays for *country* and *year*.

    Raises ``KeyError`` if the country is not supported.
    """
    fn = _PRESET_FNS.get(country.lower())
    if fn is None:
        supported = ", ".join(sorted(PRESETS))
        msg = f"Unknown country preset {country!r}. Supported: {supported}"
        raise KeyError(msg)
    return fn(year)


def preset_holidays(
    country: str,
    start: datetime.date,
    end: datetime.date,
) -> list[Holiday]:
    """Preset holidays observed inside ``[start, end]``.

    The year after *end* is scanned too: a Saturday New Year's Day is
    observed on Dec 31 of the previous year.
    """
    found: list[Holiday] = []
    for year in range(start.year, end.year + 2):
        found.extend(h for h in get_holidays(country, year) if start <= h.date <= end)
    return found


def expand_holidays(
    holidays: Iterable[Holiday],
    start: datetime.date,
    end: datetime.date,
) -> list[datetime.date]:
    """Concrete holiday dates inside ``[start, end]``, sorted and unique.

    Repeating holidays produce one date per year of the window; a Feb 29
    holiday only lands in leap years.
    """
    dates: set[datetime.date] = set()
    for h in holidays:
        if not h.repeats_yearly:
            if start <= h.date <= end:
                dates.add(h.date)
            continue
        for year in range(start.year, end.year + 1):
            try:
                occurrence = h.date.replace(year=year)
            except ValueError:
                continue
            if start <= occurrence <= end:
                dates.add(occurrence)
    return sorted(dates)
