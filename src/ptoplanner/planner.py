"""Planner file: the stored state the optimizer and balance projection read.

A planner file is a JSON document holding leave settings, accrual rules,
booked PTO days, custom holidays, weekend days and suggestion preferences.
It plays the part of the persistence layer: everything here reads or writes
plain values, and the pure core in :mod:`ptoplanner.optimizer` and
:mod:`ptoplanner.balance` is called with them.
"""

from __future__ import annotations

import datetime
import json
import logging
import math
import pathlib
from collections.abc import Iterable
from typing import Any, NamedTuple

from ptoplanner.balance import (
    FREQUENCIES,
    STATUSES,
    AccrualRule,
    BookedLeave,
    LeaveSettings,
    balance_as_of,
    to_days,
)
from ptoplanner.holidays import Holiday, expand_holidays, preset_holidays
from ptoplanner.optimizer import (
    RANKING_MODES,
    OptimizationPreferences,
    OptimizationResult,
    optimize_pto,
    to_day,
)

logger = logging.getLogger(__name__)

DEFAULT_WEEKEND_DAYS = (0, 6)
DEFAULT_MIN_PTO_TO_KEEP = 2

# weekday 0 = Sunday, day of month, day of year
_ACCRUAL_DAY_RANGES = {
    "weekly": (0, 6),
    "biweekly": (0, 6),
    "monthly": (1, 31),
    "yearly": (1, 366),
}

_NUMERIC_PREFERENCES = (
    "max_pto_per_break",
    "min_consecutive_days_off",
    "max_suggestions",
    "min_spacing_between_breaks",
)


class PlannerFileError(ValueError):
    """A planner file is missing, unreadable or has an invalid value."""


class PlannerData(NamedTuple):
    settings: LeaveSettings
    accrual_rules: list[AccrualRule]
    pto_days: list[BookedLeave]
    holidays: list[Holiday]
    weekend_days: tuple[int, ...] = DEFAULT_WEEKEND_DAYS
    country: str | None = None
    min_pto_to_keep: float = DEFAULT_MIN_PTO_TO_KEEP
    preferences: dict[str, Any] | None = None

    @property
    def booked_dates(self) -> list[datetime.date]:
        return sorted({e.date for e in self.pto_days if e.status != "cancelled"})


def default_preferences(today: datetime.date | None = None) -> OptimizationPreferences:
    """Window from today to the end of next year with the stock limits."""
    today = today or datetime.date.today()
    return OptimizationPreferences(
        earliest_start=today,
        latest_end=datetime.date(today.year + 1, 12, 31),
    )


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _date(value: object, key: str) -> datetime.date:
    if not isinstance(value, str):
        raise PlannerFileError(f"{key}: expected a YYYY-MM-DD string, got {value!r}")
    try:
        return datetime.date.fromisoformat(value)
    except ValueError:
        raise PlannerFileError(f"{key}: invalid date {value!r}. Use YYYY-MM-DD.") from None


def _optional_date(value: object, key: str) -> datetime.date | None:
    return None if value is None else _date(value, key)


def _number(value: object, key: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise PlannerFileError(f"{key}: expected a number, got {value!r}")
    if not math.isfinite(value):
        raise PlannerFileError(f"{key}: expected a finite number, got {value!r}")
    return value


def _optional_number(value: object, key: str) -> float | None:
    return None if value is None else _number(value, key)


def _section(data: dict[str, Any], key: str, kind: type) -> Any:
    value = data.get(key, kind())
    if not isinstance(value, kind):
        raise PlannerFileError(f"'{key}' must be a {kind.__name__}.")
    return value


def _parse_settings(raw: dict[str, Any]) -> LeaveSettings:
    unit = raw.get("pto_display_unit", "days")
    if unit not in ("days", "hours"):
        raise PlannerFileError(f"settings.pto_display_unit: expected 'days' or 'hours', got {unit!r}")
    hours_per_day = _number(raw.get("hours_per_day", 8), "settings.hours_per_day")
    if hours_per_day <= 0:
        raise PlannerFileError("settings.hours_per_day: must be positive")
    return LeaveSettings(
        initial_balance=_number(raw.get("initial_balance", 0), "settings.initial_balance"),
        pto_start_date=_optional_date(raw.get("pto_start_date"), "settings.pto_start_date"),
        carry_over_limit=_optional_number(raw.get("carry_over_limit"), "settings.carry_over_limit"),
        renewal_date=_optional_date(raw.get("renewal_date"), "settings.renewal_date"),
        max_balance=_optional_number(raw.get("max_balance"), "settings.max_balance"),
        pto_display_unit=unit,
        hours_per_day=hours_per_day,
    )


def _parse_rule(raw: object, i: int) -> AccrualRule:
    key = f"accrual_rules[{i}]"
    if not isinstance(raw, dict):
        raise PlannerFileError(f"{key}: expected an object")
    freq = raw.get("accrual_frequency")
    if freq not in FREQUENCIES:
        raise PlannerFileError(
            f"{key}.accrual_frequency: expected one of {', '.join(FREQUENCIES)}, got {freq!r}"
        )
    day = raw.get("accrual_day")
    if day is not None and (isinstance(day, bool) or not isinstance(day, int)):
        raise PlannerFileError(f"{key}.accrual_day: expected an integer, got {day!r}")
    bounds = _ACCRUAL_DAY_RANGES.get(freq)
    if day is not None and bounds is not None and not bounds[0] <= day <= bounds[1]:
        raise PlannerFileError(
            f"{key}.accrual_day: expected {bounds[0]}-{bounds[1]} for a {freq} rule, got {day}"
        )
    return AccrualRule(
        name=str(raw.get("name", f"Rule {i + 1}")),
        accrual_amount=_number(raw.get("accrual_amount"), f"{key}.accrual_amount"),
        accrual_frequency=freq,
        effective_date=_date(raw.get("effective_date"), f"{key}.effective_date"),
        accrual_day=day,
        end_date=_optional_date(raw.get("end_date"), f"{key}.end_date"),
        is_active=bool(raw.get("is_active", True)),
    )


def _parse_pto_day(raw: object, i: int) -> BookedLeave:
    key = f"pto_days[{i}]"
    if isinstance(raw, str):
        return BookedLeave(date=_date(raw, key))
    if not isinstance(raw, dict):
        raise PlannerFileError(f"{key}: expected a date string or an object")
    status = raw.get("status", "planned")
    if status not in STATUSES:
        raise PlannerFileError(f"{key}.status: expected one of {', '.join(STATUSES)}, got {status!r}")
    return BookedLeave(
        date=_date(raw.get("date"), f"{key}.date"),
        amount=_optional_number(raw.get("amount"), f"{key}.amount"),
        status=status,
        description=raw.get("description"),
    )


def _parse_holiday(raw: object, i: int) -> Holiday:
    key = f"holidays[{i}]"
    if isinstance(raw, str):
        d = _date(raw, key)
        return Holiday(date=d, name=d.strftime("%b %d"))
    if not isinstance(raw, dict):
        raise PlannerFileError(f"{key}: expected a date string or an object")
    d = _date(raw.get("date"), f"{key}.date")
    return Holiday(
        date=d,
        name=str(raw.get("name") or d.strftime("%b %d")),
        repeats_yearly=bool(raw.get("repeats_yearly", False)),
    )


def _parse_weekend(raw: object) -> tuple[int, ...]:
    if not isinstance(raw, list) or not all(
        isinstance(d, int) and not isinstance(d, bool) and 0 <= d <= 6 for d in raw
    ):
        raise PlannerFileError("'weekend_days' must be a list of integers 0-6 (0 = Sunday).")
    return tuple(sorted(set(raw)))


def _parse_preferences(raw: object) -> dict[str, Any]:
    """Validate stored suggestion preferences; returns them with dates parsed."""
    if not isinstance(raw, dict):
        raise PlannerFileError("'preferences' must be a dict.")
    unknown = set(raw) - set(OptimizationPreferences._fields)
    if unknown:
        raise PlannerFileError(f"preferences: unknown key(s) {', '.join(sorted(unknown))}")

    prefs: dict[str, Any] = {}
    for key, value in raw.items():
        name = f"preferences.{key}"
        if key in ("earliest_start", "latest_end"):
            prefs[key] = _date(value, name)
        elif key == "max_pto_to_use":
            prefs[key] = _optional_number(value, name)
        elif key in _NUMERIC_PREFERENCES:
            prefs[key] = _number(value, name)
        elif key == "ranking_mode":
            if value is not None and value not in RANKING_MODES:
                raise PlannerFileError(
                    f"{name}: expected one of {', '.join(RANKING_MODES)}, got {value!r}"
                )
            prefs[key] = value
        elif key == "extend_existing_pto":
            if not isinstance(value, bool):
                raise PlannerFileError(f"{name}: expected true or false, got {value!r}")
            prefs[key] = value
    return prefs


def parse_planner(data: object) -> PlannerData:
    """Validate a decoded planner document and build :class:`PlannerData`."""
    if not isinstance(data, dict):
        raise PlannerFileError("Planner file must contain a JSON object.")

    prefs = data.get("preferences")
    if prefs is not None:
        _parse_preferences(prefs)

    country = data.get("country")
    if country is not None and not isinstance(country, str):
        raise PlannerFileError(f"country: expected a string, got {country!r}")

    return PlannerData(
        settings=_parse_settings(_section(data, "settings", dict)),
        accrual_rules=[_parse_rule(r, i) for i, r in enumerate(_section(data, "accrual_rules", list))],
        pto_days=[_parse_pto_day(d, i) for i, d in enumerate(_section(data, "pto_days", list))],
        holidays=[_parse_holiday(h, i) for i, h in enumerate(_section(data, "holidays", list))],
        weekend_days=_parse_weekend(data.get("weekend_days", list(DEFAULT_WEEKEND_DAYS))),
        country=None if country in (None, "", "none") else country,
        min_pto_to_keep=_number(data.get("min_pto_to_keep", DEFAULT_MIN_PTO_TO_KEEP), "min_pto_to_keep"),
        preferences=prefs,
    )


def load_planner(path: str | pathlib.Path) -> PlannerData:
    """Read and validate a planner file."""
    p = pathlib.Path(path)
    if not p.exists():
        raise PlannerFileError(f"Planner file not found: {path}")
    try:
        data = json.loads(p.read_text())
    except json.JSONDecodeError as exc:
        raise PlannerFileError(f"Invalid JSON in planner file: {exc}") from None
    return parse_planner(data)


def planner_to_dict(planner: PlannerData) -> dict[str, Any]:
    s = planner.settings

    def _iso(d: datetime.date | None) -> str | None:
        return d.isoformat() if d else None

    out: dict[str, Any] = {
        "settings": {
            "initial_balance": s.initial_balance,
            "pto_start_date": _iso(s.pto_start_date),
            "carry_over_limit": s.carry_over_limit,
            "renewal_date": _iso(s.renewal_date),
            "max_balance": s.max_balance,
            "pto_display_unit": s.pto_display_unit,
            "hours_per_day": s.hours_per_day,
        },
        "accrual_rules": [
            {
                "name": r.name,
                "accrual_amount": r.accrual_amount,
                "accrual_frequency": r.accrual_frequency,
                "accrual_day": r.accrual_day,
                "effective_date": r.effective_date.isoformat(),
                "end_date": _iso(r.end_date),
                "is_active": r.is_active,
            }
            for r in planner.accrual_rules
        ],
        "pto_days": [
            {
                "date": e.date.isoformat(),
                "amount": e.amount,
                "status": e.status,
                "description": e.description,
            }
            for e in planner.pto_days
        ],
        "holidays": [
            {"date": h.date.isoformat(), "name": h.name, "repeats_yearly": h.repeats_yearly}
            for h in planner.holidays
        ],
        "weekend_days": list(planner.weekend_days),
        "country": planner.country,
        "min_pto_to_keep": planner.min_pto_to_keep,
    }
    if planner.preferences is not None:
        out["preferences"] = planner.preferences
    return out


def save_planner(planner: PlannerData, path: str | pathlib.Path) -> None:
    pathlib.Path(path).write_text(json.dumps(planner_to_dict(planner), indent=2) + "\n")


# ---------------------------------------------------------------------------
# Data flow: balance -> budget -> optimizer
# ---------------------------------------------------------------------------


def planner_preferences(
    planner: PlannerData,
    today: datetime.date | None = None,
    **overrides: Any,
) -> OptimizationPreferences:
    """Stored preferences layered over the defaults, then *overrides*.

    ``None`` override values are ignored so CLI options can be passed as-is.
    """
    prefs = default_preferences(today)
    if planner.preferences is not None:
        prefs = prefs._replace(**_parse_preferences(planner.preferences))
    return prefs._replace(**{k: v for k, v in overrides.items() if v is not None})


def planner_holidays(
    planner: PlannerData,
    start: datetime.date,
    end: datetime.date,
) -> list[datetime.date]:
    """Custom and preset holidays inside ``[start, end]``."""
    holidays: list[Holiday] = list(planner.holidays)
    if planner.country:
        holidays.extend(preset_holidays(planner.country, start, end))
    return expand_holidays(holidays, start, end)


def available_budget(
    planner: PlannerData,
    preferences: OptimizationPreferences,
) -> float:
    """PTO days that may be suggested: balance at the window end minus the reserve."""
    end = max(to_day(preferences.earliest_start), to_day(preferences.latest_end))
    balance = balance_as_of(
        end, planner.settings, planner.accrual_rules, planner.pto_days
    )
    days = to_days(balance, planner.settings)
    reserve = max(0, math.floor(planner.min_pto_to_keep))
    return max(days - reserve, 0.0)


def suggest_breaks(
    planner: PlannerData,
    today: datetime.date | None = None,
    budget: float | None = None,
    preferences: OptimizationPreferences | None = None,
    **overrides: Any,
) -> OptimizationResult:
    """Run the optimizer against a planner's balance, holidays and bookings.

    *budget* replaces the projected balance when given.  *preferences*, if
    already resolved with :func:`planner_preferences`, are used as-is.
    """
    if preferences is None:
        prefs = planner_preferences(planner, today, **overrides)
    else:
        prefs = preferences._replace(**{k: v for k, v in overrides.items() if v is not None})
    if budget is None:
        budget = available_budget(planner, prefs)
    start, end = sorted((to_day(prefs.earliest_start), to_day(prefs.latest_end)))
    holidays = planner_holidays(planner, start, end)
    logger.debug("Suggesting breaks with budget %.2f, %d holidays", budget, len(holidays))
    return optimize_pto(
        budget,
        planner.weekend_days,
        holidays,
        prefs,
        booked_days=planner.booked_dates,
        today=today,
    )


def apply_suggestions(
    planner: PlannerData,
    days: Iterable[datetime.date],
) -> PlannerData:
    """New planner with *days* booked as planned PTO; already-booked dates are skipped."""
    booked = set(planner.booked_dates)
    added = [
        BookedLeave(date=d, status="planned")
        for d in sorted(set(days))
        if d not in booked
    ]
    pto_days = sorted(planner.pto_days + added, key=lambda e: e.date)
    return planner._replace(pto_days=pto_days)
