"""Gap-filling PTO break optimizer

Suggests consecutive-day breaks by finding the working-day gaps between
non-working anchors (weekends, holidays and, optionally, PTO that is already
booked) and ranking the most efficient ways to fill those gaps with PTO.

Pipeline:
  1. Timeline  - classify every day in the window and group runs of
                 working / non-working days into segments
  2. Anchors   - resolve the non-working segment on each side of a gap
  3. Candidates - one candidate break per qualifying working segment
  4. Selection - rank candidates, then greedily pick non-overlapping breaks
                 under the PTO budget
"""

from __future__ import annotations

import calendar
import datetime
import logging
import math
import sys
from collections.abc import Iterable
from typing import NamedTuple

logger = logging.getLogger(__name__)

WORKING = "working"
NON_WORKING = "non-working"

WEEKEND = "weekend"
HOLIDAY = "holiday"
EXISTING = "existing"

RANKING_MODES = ("efficiency", "longest", "least-pto", "earliest")

ONE_DAY = datetime.timedelta(days=1)

# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


class Segment(NamedTuple):
    """A maximal run of consecutive days of one kind."""

    kind: str
    start: datetime.date
    end: datetime.date
    days: tuple[datetime.date, ...]
    sources: frozenset[str] = frozenset()


class Anchor(NamedTuple):
    """The non-working run (or window edge) on one side of a working gap."""

    start: datetime.date
    end: datetime.date
    days: tuple[datetime.date, ...]
    type: str
    counts_toward_run: bool
    sources: frozenset[str] = frozenset()

    @property
    def day_count(self) -> int:
        return len(self.days)

    @property
    def label(self) -> str:
        prefix = _ANCHOR_LABELS.get(self.type, "Anchor")
        if self.type in ("boundary-start", "boundary-end"):
            return prefix
        return f"{prefix} ({_format_range(self.start, self.end)})"


class SuggestedBreak(NamedTuple):
    """A candidate (or selected) break: one gap of PTO plus its anchors."""

    start: datetime.date
    end: datetime.date
    pto_days: tuple[datetime.date, ...]
    pto_required: int
    total_days_off: int
    efficiency: float
    before: Anchor
    after: Anchor

    @property
    def id(self) -> str:
        return f"{self.start.isoformat()}_{self.end.isoformat()}_{self.pto_required}"


class OptimizationPreferences(NamedTuple):
    """Per-run knobs for the optimizer."""

    earliest_start: datetime.date
    latest_end: datetime.date
    max_pto_to_use: float | None = None
    max_pto_per_break: float = 14
    min_consecutive_days_off: float = 4
    max_suggestions: float = 10
    min_spacing_between_breaks: float = 14
    ranking_mode: str | None = "efficiency"
    extend_existing_pto: bool = True


class OptimizationResult(NamedTuple):
    """Selected breaks plus the flattened list of days to request off."""

    suggested_days: list[datetime.date]
    breaks: list[SuggestedBreak]
    total_pto_used: int
    total_days_off: int
    average_efficiency: float
    remaining_pto: int


class _Sanitized(NamedTuple):
    earliest_start: datetime.date
    latest_end: datetime.date
    budget: int
    max_pto_per_break: int
    min_consecutive_days_off: int
    max_suggestions: int
    min_spacing_between_breaks: int
    ranking_mode: str
    extend_existing_pto: bool


_ANCHOR_LABELS = {
    "weekend": "Weekend",
    "holiday": "Holiday",
    "mixed": "Holiday + Weekend",
    "existing": "Existing PTO",
    "boundary-start": "Timeframe start",
    "boundary-end": "Timeframe end",
}

# ---------------------------------------------------------------------------
# Date helpers
# ---------------------------------------------------------------------------


def to_day(value: datetime.date | str) -> datetime.date:
    """Normalize a date, datetime or ``YYYY-MM-DD`` string to a plain date."""
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    return datetime.date.fromisoformat(value)


def day_of_week(d: datetime.date) -> int:
    """Weekday number with 0 = Sunday ... 6 = Saturday."""
    return (d.weekday() + 1) % 7


def _format_range(start: datetime.date, end: datetime.date) -> str:
    if start == end:
        return start.strftime("%b %d")
    return f"{start.strftime('%b %d')} - {end.strftime('%b %d')}"


def _whole(value: float | None, default: int = 0) -> int:
    """Floor a numeric preference and clamp it to >= 0."""
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return default
    if math.isinf(value):
        return sys.maxsize if value > 0 else 0
    return max(0, math.floor(value))


# ---------------------------------------------------------------------------
# Timeline
# ---------------------------------------------------------------------------


def build_timeline(
    start: datetime.date,
    end: datetime.date,
    weekend_days: Iterable[int],
    holidays: Iterable[datetime.date],
    booked: Iterable[datetime.date] = (),
) -> list[Segment]:
    """Partition ``[start, end]`` into alternating working / non-working segments."""
    weekend_set = set(weekend_days)
    holiday_set = {to_day(h) for h in holidays}
    booked_set = {to_day(b) for b in booked}

    segments: list[Segment] = []
    kind = ""
    run: list[datetime.date] = []
    run_sources: set[str] = set()

    day = start
    while day <= end:
        sources: set[str] = set()
        if day_of_week(day) in weekend_set:
            sources.add(WEEKEND)
        if day in holiday_set:
            sources.add(HOLIDAY)
        if day in booked_set:
            sources.add(EXISTING)
        day_kind = NON_WORKING if sources else WORKING

        if day_kind != kind and run:
            segments.append(_make_segment(kind, run, run_sources))
            run, run_sources = [], set()
        kind = day_kind
        run.append(day)
        run_sources |= sources
        day += ONE_DAY

    if run:
        segments.append(_make_segment(kind, run, run_sources))

    return segments


def _make_segment(kind: str, days: list[datetime.date], sources: set[str]) -> Segment:
    return Segment(
        kind=kind,
        start=days[0],
        end=days[-1],
        days=tuple(days),
        sources=frozenset(sources) if kind == NON_WORKING else frozenset(),
    )


# ---------------------------------------------------------------------------
# Anchors
# ---------------------------------------------------------------------------


def anchor_counts(sources: frozenset[str], extend_existing: bool) -> bool:
    if WEEKEND in sources or HOLIDAY in sources:
        return True
    return EXISTING in sources and extend_existing


def anchor_type(sources: frozenset[str]) -> str:
    if WEEKEND in sources and HOLIDAY in sources:
        return "mixed"
    if WEEKEND in sources:
        return "weekend"
    if HOLIDAY in sources:
        return "holiday"
    return "existing"


def find_neighbor_anchor(
    segments: list[Segment],
    index: int,
    direction: str,
    extend_existing: bool,
) -> Anchor | None:
    """Return the nearest non-working segment before/after ``segments[index]``.

    *direction* is ``"backward"`` or ``"forward"``.  Returns ``None`` when the
    scan runs off the end of the list.
    """
    step = 1 if direction == "forward" else -1
    i = index + step
    while 0 <= i < len(segments):
        seg = segments[i]
        if seg.kind == NON_WORKING:
            return Anchor(
                start=seg.start,
                end=seg.end,
                days=seg.days,
                type=anchor_type(seg.sources),
                counts_toward_run=anchor_counts(seg.sources, extend_existing),
                sources=seg.sources,
            )
        i += step
    return None


def boundary_anchor(position: str, reference: datetime.date) -> Anchor:
    """Zero-day anchor pinned to the window edge; never extends a break."""
    return Anchor(
        start=reference,
        end=reference,
        days=(),
        type=f"boundary-{position}",
        counts_toward_run=False,
    )


# ---------------------------------------------------------------------------
# Candidates
# ---------------------------------------------------------------------------


def build_candidate_breaks(
    segments: list[Segment],
    max_pto_per_break: int,
    min_consecutive_days_off: int,
    extend_existing: bool,
    range_start: datetime.date,
    range_end: datetime.date,
) -> list[SuggestedBreak]:
    """One candidate per working segment that fits the per-break limits."""
    candidates: list[SuggestedBreak] = []

    for i, seg in enumerate(segments):
        if seg.kind != WORKING or not seg.days:
            continue

        pto_required = len(seg.days)
        if pto_required > max_pto_per_break:
            continue

        before = find_neighbor_anchor(segments, i, "backward", extend_existing)
        if before is None:
            before = boundary_anchor("start", range_start)
        after = find_neighbor_anchor(segments, i, "forward", extend_existing)
        if after is None:
            after = boundary_anchor("end", range_end)

        total = pto_required
        if before.counts_toward_run:
            total += before.day_count
        if after.counts_toward_run:
            total += after.day_count
        if total < min_consecutive_days_off:
            continue

        candidates.append(
            SuggestedBreak(
                start=before.start if before.counts_toward_run else seg.start,
                end=after.end if after.counts_toward_run else seg.end,
                pto_days=seg.days,
                pto_required=pto_required,
                total_days_off=total,
                efficiency=total / pto_required,
                before=before,
                after=after,
            )
        )

    return candidates


# ---------------------------------------------------------------------------
# Ranking & selection
# ---------------------------------------------------------------------------


def _rank_key(mode: str):
    if mode == "longest":
        return lambda b: (-b.total_days_off, b.pto_required, b.start)
    if mode == "least-pto":
        return lambda b: (b.pto_required, -b.efficiency, b.start)
    if mode == "earliest":
        return lambda b: (b.start, -b.total_days_off, b.pto_required)
    return lambda b: (-b.efficiency, -b.total_days_off, b.pto_required, b.start)


def rank_candidates(candidates: Iterable[SuggestedBreak], mode: str) -> list[SuggestedBreak]:
    """Sort candidates for *mode*; unknown modes rank by efficiency."""
    return sorted(candidates, key=_rank_key(mode))


def breaks_conflict(a: SuggestedBreak, b: SuggestedBreak, min_spacing: int) -> bool:
    """True when the later break starts before ``earlier.end + min_spacing + 1``."""
    first, second = (a, b) if a.start <= b.start else (b, a)
    earliest_next = first.end + datetime.timedelta(days=max(0, min_spacing) + 1)
    return second.start < earliest_next


def select_breaks(
    ranked: Iterable[SuggestedBreak],
    budget: int,
    max_suggestions: int,
    min_spacing: int,
) -> list[SuggestedBreak]:
    """Single greedy pass in rank order; earlier picks are never revisited."""
    selected: list[SuggestedBreak] = []
    remaining = budget

    for cand in ranked:
        if len(selected) >= max_suggestions:
            break
        if cand.pto_required > remaining:
            continue
        if any(breaks_conflict(cand, s, min_spacing) for s in selected):
            continue
        selected.append(cand)
        remaining -= cand.pto_required

    return selected


def sanitize_preferences(
    preferences: OptimizationPreferences,
    available_pto: float,
    today: datetime.date | None = None,
) -> _Sanitized:
    today = to_day(today) if today is not None else datetime.date.today()
    earliest = to_day(preferences.earliest_start)
    latest = to_day(preferences.latest_end)
    if latest < earliest:
        earliest, latest = latest, earliest
    earliest = max(earliest, today)

    budget = _whole(available_pto)
    if preferences.max_pto_to_use is not None:
        budget = min(budget, _whole(preferences.max_pto_to_use))

    mode = preferences.ranking_mode or "efficiency"

    return _Sanitized(
        earliest_start=earliest,
        latest_end=latest,
        budget=budget,
        max_pto_per_break=_whole(preferences.max_pto_per_break),
        min_consecutive_days_off=_whole(preferences.min_consecutive_days_off),
        max_suggestions=_whole(preferences.max_suggestions),
        min_spacing_between_breaks=_whole(preferences.min_spacing_between_breaks),
        ranking_mode=mode,
        extend_existing_pto=bool(preferences.extend_existing_pto),
    )


def empty_result(remaining_pto: int = 0) -> OptimizationResult:
    return OptimizationResult(
        suggested_days=[],
        breaks=[],
        total_pto_used=0,
        total_days_off=0,
        average_efficiency=0.0,
        remaining_pto=remaining_pto,
    )


def optimize_pto(
    available_pto: float,
    weekend_days: Iterable[int],
    holidays: Iterable[datetime.date],
    preferences: OptimizationPreferences,
    booked_days: Iterable[datetime.date] = (),
    today: datetime.date | None = None,
) -> OptimizationResult:
    """Suggest PTO breaks that fill working-day gaps between anchors.

    Parameters
    ----------
    available_pto : float
        Leave budget in days; floored and clamped to >= 0.
    weekend_days : iterable of int
        Weekend weekday numbers, 0 = Sunday ... 6 = Saturday.
    holidays : iterable of date
        Holiday dates inside (or around) the window.
    preferences : OptimizationPreferences
        Window, caps, spacing and ranking mode for this run.
    booked_days : iterable of date
        PTO that is already booked; treated as non-working.
    today : date, optional
        Reference "today"; suggestions never start before it.

    Degenerate inputs (inverted window, zero budget or caps, no gaps) return
    an empty result rather than raising.
    """
    opts = sanitize_preferences(preferences, available_pto, today)

    if opts.earliest_start > opts.latest_end:
        return empty_result(opts.budget)
    if opts.budget <= 0 or opts.max_pto_per_break <= 0 or opts.max_suggestions <= 0:
        return empty_result(opts.budget)

    timeline = build_timeline(
        opts.earliest_start,
        opts.latest_end,
        weekend_days,
        holidays,
        booked_days,
    )
    candidates = build_candidate_breaks(
        timeline,
        opts.max_pto_per_break,
        opts.min_consecutive_days_off,
        opts.extend_existing_pto,
        opts.earliest_start,
        opts.latest_end,
    )
    logger.debug(
        "Timeline %s..%s: %d segments, %d candidate breaks",
        opts.earliest_start,
        opts.latest_end,
        len(timeline),
        len(candidates),
    )
    if not candidates:
        return empty_result(opts.budget)

    ranked = rank_candidates(candidates, opts.ranking_mode)
    selected = select_breaks(
        ranked,
        opts.budget,
        opts.max_suggestions,
        opts.min_spacing_between_breaks,
    )

    used = sum(b.pto_required for b in selected)
    days_off = sum(b.total_days_off for b in selected)
    suggested = sorted({d for b in selected for d in b.pto_days})

    return OptimizationResult(
        suggested_days=suggested,
        breaks=selected,
        total_pto_used=used,
        total_days_off=days_off,
        average_efficiency=days_off / used if used else 0.0,
        remaining_pto=max(0, opts.budget - used),
    )


# ---------------------------------------------------------------------------
# Output formatting
# ---------------------------------------------------------------------------


def format_result(result: OptimizationResult, budget: float | None = None) -> str:
    """Return a human-readable summary of an optimization result."""
    lines: list[str] = []
    w = 64

    lines.append("")
    lines.append("=" * w)
    lines.append("  SUGGESTED BREAKS")
    lines.append("=" * w)

    used_label = f"{result.total_pto_used}"
    if budget is not None:
        used_label += f" / {_whole(budget)}"
    lines.append(f"  PTO days used: {used_label}")
    lines.append(f"  PTO remaining: {result.remaining_pto}")
    lines.append(f"  Total days off: {result.total_days_off}")
    if result.total_pto_used > 0:
        lines.append(
            f"  Efficiency: {result.average_efficiency:.1f}x (days off per PTO day)"
        )
    lines.append("")

    if not result.breaks:
        lines.append("  No breaks to suggest for this window and budget.")
        return "\n".join(lines)

    lines.append("  Breaks:")
    lines.append("  " + "-" * (w - 4))

    for i, brk in enumerate(sorted(result.breaks, key=lambda b: b.start), 1):
        n = brk.total_days_off
        if brk.start == brk.end:
            dr = brk.start.strftime("%a, %b %d")
        else:
            dr = f"{brk.start.strftime('%a, %b %d')} -> {brk.end.strftime('%a, %b %d')}"
        lines.append(f"  {i:>2}. {dr}  ({n} day{'s' if n != 1 else ''} off)")
        lines.append(f"      {brk.pto_required} PTO, {brk.efficiency:.2f}x")
        lines.append(f"      before: {brk.before.label}")
        lines.append(f"      after:  {brk.after.label}")
        lines.append("")

    lines.append("  Days to request off:")
    for d in result.suggested_days:
        lines.append(f"    -> {d.strftime('%A, %B %d, %Y')}")

    return "\n".join(lines)


def format_calendar_view(
    result: OptimizationResult,
    holidays: Iterable[datetime.date] = (),
    booked_days: Iterable[datetime.date] = (),
) -> str:
    """Month-by-month calendar for every month that holds a suggested day."""
    suggested = set(result.suggested_days)
    holiday_set = set(holidays)
    booked_set = set(booked_days)

    months = sorted({(d.year, d.month) for d in suggested})
    if not months:
        return ""

    lines: list[str] = [
        "",
        "  Calendar View",
        "  Legend: P=Suggested PTO  B=Booked  H=Holiday",
        "",
    ]

    cal = calendar.Calendar(firstweekday=0)

    for year, month in months:
        lines.append(f"  {calendar.month_name[month]} {year}")
        lines.append("  Mo  Tu  We  Th  Fr  Sa  Su")

        row = ""
        for day_num, weekday in cal.itermonthdays2(year, month):
            if day_num == 0:
                row += "    "
            else:
                d = datetime.date(year, month, day_num)
                if d in suggested:
                    cell = f" {day_num:>2}P"
                elif d in booked_set:
                    cell = f" {day_num:>2}B"
                elif d in holiday_set:
                    cell = f" {day_num:>2}H"
                else:
                    cell = f"  {day_num:>2}"
                row += cell

            if weekday == 6:
                lines.append(row)
                row = ""

        if row.strip():
            lines.append(row)
        lines.append("")

    return "\n".join(lines)
