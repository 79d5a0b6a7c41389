"""Leave balance projection.

Computes the PTO balance as of an arbitrary date from an initial balance,
periodic accrual rules, booked leave and an optional annual carry-over cap.

Weekday numbers for weekly / biweekly rules follow the 0 = Sunday ...
6 = Saturday convention used by the optimizer's weekend sets.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Iterable
from typing import NamedTuple

from dateutil.relativedelta import relativedelta

from ptoplanner.optimizer import day_of_week, to_day

logger = logging.getLogger(__name__)

FREQUENCIES = ("daily", "weekly", "biweekly", "monthly", "yearly")
STATUSES = ("planned", "approved", "taken", "cancelled")

MAX_ACCRUAL_OCCURRENCES = 10_000

# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


class AccrualRule(NamedTuple):
    """A periodic PTO grant, e.g. 1.25 days on the 15th of every month.

    ``accrual_day`` is the weekday (weekly/biweekly), day of month (monthly)
    or day of year (yearly); when unset the effective date supplies it.
    """

    name: str
    accrual_amount: float
    accrual_frequency: str
    effective_date: datetime.date
    accrual_day: int | None = None
    end_date: datetime.date | None = None
    is_active: bool = True


class BookedLeave(NamedTuple):
    """A day of PTO that has been put on the calendar."""

    date: datetime.date
    amount: float | None = None
    status: str = "planned"
    description: str | None = None


class LeaveSettings(NamedTuple):
    initial_balance: float = 0.0
    pto_start_date: datetime.date | None = None
    carry_over_limit: float | None = None
    renewal_date: datetime.date | None = None
    max_balance: float | None = None
    pto_display_unit: str = "days"
    hours_per_day: float = 8.0


class AccrualTotal(NamedTuple):
    amount: float
    occurrences: int
    truncated: bool = False


class BalanceProjection(NamedTuple):
    """Breakdown of a balance figure as of ``date``."""

    date: datetime.date
    balance: float
    initial_balance: float
    accrued: float
    used: float
    carry_over_loss: float
    truncated: bool = False


# ---------------------------------------------------------------------------
# Accrual occurrences
# ---------------------------------------------------------------------------


def _first_weekly(effective: datetime.date, weekday: int) -> datetime.date:
    return effective + datetime.timedelta(days=(weekday - day_of_week(effective)) % 7)


def _first_monthly(effective: datetime.date, day_of_month: int) -> datetime.date:
    # relativedelta(day=N) clamps N to the last valid day of the month
    day_of_month = max(day_of_month, 1)
    occurrence = effective + relativedelta(day=day_of_month)
    if occurrence < effective:
        occurrence = effective + relativedelta(months=1, day=day_of_month)
    return occurrence


def _first_yearly(effective: datetime.date, day_of_year: int | None) -> datetime.date:
    if day_of_year is None:
        return effective
    occurrence = datetime.date(effective.year, 1, 1) + datetime.timedelta(
        days=max(1, day_of_year) - 1
    )
    if occurrence < effective:
        occurrence = datetime.date(effective.year + 1, 1, 1) + datetime.timedelta(
            days=max(1, day_of_year) - 1
        )
    return occurrence


def _occurrences(rule: AccrualRule, effective: datetime.date):
    """Yield accrual dates for *rule* in ascending order, without end."""
    freq = rule.accrual_frequency
    day = rule.accrual_day

    if freq in ("weekly", "biweekly"):
        weekday = day if day is not None else day_of_week(effective)
        current = _first_weekly(effective, weekday)
        step = datetime.timedelta(days=7 if freq == "weekly" else 14)
        while True:
            yield current
            current += step

    elif freq == "monthly":
        dom = day if day is not None else effective.day
        first = _first_monthly(effective, dom)
        n = 0
        while True:
            yield first + relativedelta(months=n, day=max(dom, 1))
            n += 1

    elif freq == "yearly":
        first = _first_yearly(effective, day)
        n = 0
        while True:
            if day is None:
                yield first + relativedelta(years=n)
            else:
                yield datetime.date(first.year + n, 1, 1) + datetime.timedelta(
                    days=max(1, day) - 1
                )
            n += 1

    else:
        # daily, and the fallback for anything unrecognised
        current = effective
        while True:
            yield current
            current += datetime.timedelta(days=1)


def accruals_for_rule(rule: AccrualRule, target: datetime.date) -> AccrualTotal:
    """Total accrued by *rule* on or before *target*.

    Stops after ``MAX_ACCRUAL_OCCURRENCES`` occurrences and returns the
    partial total with ``truncated=True``.
    """
    if not rule.is_active:
        return AccrualTotal(0.0, 0)

    target = to_day(target)
    effective = to_day(rule.effective_date)
    if target < effective:
        return AccrualTotal(0.0, 0)

    limit = target
    if rule.end_date is not None:
        limit = min(limit, to_day(rule.end_date))

    amount = 0.0
    count = 0
    for occurrence in _occurrences(rule, effective):
        if occurrence > limit:
            break
        if count >= MAX_ACCRUAL_OCCURRENCES:
            logger.warning(
                "Accrual rule %r stopped after %d occurrences (target %s)",
                rule.name,
                count,
                target,
            )
            return AccrualTotal(amount, count, truncated=True)
        amount += rule.accrual_amount
        count += 1

    return AccrualTotal(amount, count)


# ---------------------------------------------------------------------------
# Balance
# ---------------------------------------------------------------------------


def entry_amount(entry: BookedLeave, settings: LeaveSettings) -> float:
    if entry.amount is not None:
        return entry.amount
    return settings.hours_per_day if settings.pto_display_unit == "hours" else 1.0


def to_days(amount: float, settings: LeaveSettings) -> float:
    """Convert an amount in the display unit into days."""
    if settings.pto_display_unit == "hours" and settings.hours_per_day:
        return amount / settings.hours_per_day
    return amount


def _before_start(target: datetime.date, settings: LeaveSettings) -> bool:
    return settings.pto_start_date is not None and target < to_day(settings.pto_start_date)


def accrued_until(
    target: datetime.date,
    settings: LeaveSettings,
    rules: Iterable[AccrualRule],
) -> AccrualTotal:
    """Sum of all rules' accruals on or before *target*."""
    target = to_day(target)
    if _before_start(target, settings):
        return AccrualTotal(0.0, 0)

    amount = 0.0
    count = 0
    truncated = False
    for rule in rules:
        total = accruals_for_rule(rule, target)
        amount += total.amount
        count += total.occurrences
        truncated = truncated or total.truncated
    return AccrualTotal(amount, count, truncated)


def used_before(
    target: datetime.date,
    entries: Iterable[BookedLeave],
    settings: LeaveSettings,
) -> float:
    """PTO booked strictly before *target*, ignoring cancelled entries."""
    target = to_day(target)
    return sum(
        entry_amount(e, settings)
        for e in entries
        if e.status != "cancelled" and to_day(e.date) < target
    )


def _renewal_boundaries(
    renewal: datetime.date,
    start: datetime.date | None,
    target: datetime.date,
) -> list[datetime.date]:
    boundaries: list[datetime.date] = []
    n = 0
    candidate = renewal
    while candidate <= target:
        if start is None or candidate > start:
            boundaries.append(candidate)
        n += 1
        candidate = renewal + relativedelta(years=n)
    return boundaries


def project_balance(
    target: datetime.date,
    settings: LeaveSettings,
    rules: Iterable[AccrualRule] = (),
    entries: Iterable[BookedLeave] = (),
) -> BalanceProjection:
    """Balance as of *target* with its accrued / used / carry-over breakdown.

    At each anniversary of ``renewal_date`` the balance above
    ``carry_over_limit`` is forfeited, and that loss sticks for every later
    date.  The result is capped by ``max_balance`` but never floored at zero.
    """
    target = to_day(target)
    rules = list(rules)
    entries = list(entries)

    if _before_start(target, settings):
        return BalanceProjection(target, 0.0, 0.0, 0.0, 0.0, 0.0)

    initial = settings.initial_balance or 0.0
    accrued = accrued_until(target, settings, rules)
    used = used_before(target, entries, settings)
    truncated = accrued.truncated

    loss = 0.0
    limit = settings.carry_over_limit
    if limit is not None and limit >= 0 and settings.renewal_date is not None:
        start = to_day(settings.pto_start_date) if settings.pto_start_date else None
        for reset in _renewal_boundaries(to_day(settings.renewal_date), start, target):
            at_reset = accrued_until(reset, settings, rules)
            truncated = truncated or at_reset.truncated
            before_reset = (
                initial + at_reset.amount - used_before(reset, entries, settings) - loss
            )
            allowed = min(limit, max(before_reset, 0.0))
            if before_reset > allowed:
                loss += before_reset - allowed

    balance = initial + accrued.amount - used - loss
    if settings.max_balance is not None:
        balance = min(balance, settings.max_balance)

    return BalanceProjection(
        date=target,
        balance=balance,
        initial_balance=initial,
        accrued=accrued.amount,
        used=used,
        carry_over_loss=loss,
        truncated=truncated,
    )


def balance_as_of(
    target: datetime.date | None,
    settings: LeaveSettings,
    rules: Iterable[AccrualRule] = (),
    entries: Iterable[BookedLeave] = (),
) -> float:
    """PTO balance as of *target*; ``0.0`` when no target is given."""
    if target is None:
        return 0.0
    return project_balance(target, settings, rules, entries).balance
