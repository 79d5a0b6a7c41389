from __future__ import annotations

import datetime

from ptoplanner.optimizer import (
    NON_WORKING,
    WORKING,
    Anchor,
    OptimizationPreferences,
    SuggestedBreak,
    boundary_anchor,
    breaks_conflict,
    build_candidate_breaks,
    build_timeline,
    day_of_week,
    empty_result,
    find_neighbor_anchor,
    format_calendar_view,
    format_result,
    optimize_pto,
    rank_candidates,
    select_breaks,
)

WEEKEND = (0, 6)
TODAY = datetime.date(2025, 1, 1)


def _d(month: int, day: int, year: int = 2025) -> datetime.date:
    return datetime.date(year, month, day)


def _us_holidays_2025() -> list[datetime.date]:
    return [
        datetime.date(2025, 1, 1),
        datetime.date(2025, 1, 20),
        datetime.date(2025, 2, 17),
        datetime.date(2025, 5, 26),
        datetime.date(2025, 6, 19),
        datetime.date(2025, 7, 4),
        datetime.date(2025, 9, 1),
        datetime.date(2025, 11, 27),
        datetime.date(2025, 12, 25),
    ]


def _prefs(
    start: datetime.date,
    end: datetime.date,
    **kwargs: object,
) -> OptimizationPreferences:
    return OptimizationPreferences(earliest_start=start, latest_end=end, **kwargs)


def _first_week_of_march(budget: float = 5, holidays: list[datetime.date] | None = None, **kwargs: object):
    """Sat Mar 1 .. Sun Mar 9 2025, one suggestion, any break length."""
    opts: dict[str, object] = {
        "min_consecutive_days_off": 1,
        "max_pto_per_break": 5,
        "max_suggestions": 1,
    }
    opts.update(kwargs)
    return optimize_pto(
        budget,
        WEEKEND,
        holidays or [],
        _prefs(_d(3, 1), _d(3, 9), **opts),
        today=TODAY,
    )


def _brk(start: datetime.date, pto: int, total: int) -> SuggestedBreak:
    end = start + datetime.timedelta(days=total - 1)
    return SuggestedBreak(
        start=start,
        end=end,
        pto_days=tuple(start + datetime.timedelta(days=i) for i in range(pto)),
        pto_required=pto,
        total_days_off=total,
        efficiency=total / pto,
        before=boundary_anchor("start", start),
        after=boundary_anchor("end", end),
    )


def _full_year(budget: float = 15, **kwargs: object):
    return optimize_pto(
        budget,
        WEEKEND,
        _us_holidays_2025(),
        _prefs(_d(1, 1), _d(12, 31), **kwargs),
        today=TODAY,
    )


# ---------------------------------------------------------------------------
# Timeline
# ---------------------------------------------------------------------------


class TestDayOfWeek:
    def test_sunday_is_zero(self) -> None:
        assert day_of_week(_d(3, 9)) == 0

    def test_saturday_is_six(self) -> None:
        assert day_of_week(_d(3, 1)) == 6

    def test_monday_is_one(self) -> None:
        assert day_of_week(_d(3, 3)) == 1


class TestBuildTimeline:
    def test_segments_partition_the_range(self) -> None:
        segments = build_timeline(_d(3, 1), _d(3, 31), WEEKEND, [_d(3, 3)])
        days = [d for seg in segments for d in seg.days]
        assert days == [_d(3, 1) + datetime.timedelta(days=i) for i in range(31)]

    def test_kinds_alternate(self) -> None:
        segments = build_timeline(_d(3, 1), _d(3, 31), WEEKEND, [_d(3, 3)])
        for a, b in zip(segments, segments[1:]):
            assert a.kind != b.kind

    def test_weekend_and_holiday_merge_into_one_segment(self) -> None:
        segments = build_timeline(_d(3, 1), _d(3, 9), WEEKEND, [_d(3, 3)])
        first = segments[0]
        assert first.kind == NON_WORKING
        assert first.days == (_d(3, 1), _d(3, 2), _d(3, 3))
        assert first.sources == frozenset({"weekend", "holiday"})

    def test_working_segments_have_no_sources(self) -> None:
        segments = build_timeline(_d(3, 1), _d(3, 9), WEEKEND, [])
        working = [s for s in segments if s.kind == WORKING]
        assert len(working) == 1
        assert working[0].sources == frozenset()
        assert working[0].start == _d(3, 3)
        assert working[0].end == _d(3, 7)

    def test_booked_days_are_non_working(self) -> None:
        segments = build_timeline(_d(3, 3), _d(3, 7), WEEKEND, [], booked=[_d(3, 5)])
        assert [s.kind for s in segments] == [WORKING, NON_WORKING, WORKING]
        assert segments[1].sources == frozenset({"existing"})

    def test_custom_weekend(self) -> None:
        # Friday + Saturday weekend
        segments = build_timeline(_d(3, 1), _d(3, 9), (5, 6), [])
        assert segments[0].days == (_d(3, 1),)
        assert segments[-2].days == (_d(3, 7), _d(3, 8))
        assert segments[-1].kind == WORKING

    def test_single_day_range(self) -> None:
        segments = build_timeline(_d(3, 4), _d(3, 4), WEEKEND, [])
        assert len(segments) == 1
        assert segments[0].kind == WORKING

    def test_empty_when_end_before_start(self) -> None:
        assert build_timeline(_d(3, 9), _d(3, 1), WEEKEND, []) == []


# ---------------------------------------------------------------------------
# Anchors
# ---------------------------------------------------------------------------


class TestAnchors:
    def test_neighbor_anchor_types(self) -> None:
        segments = build_timeline(_d(3, 1), _d(3, 9), WEEKEND, [_d(3, 3)])
        before = find_neighbor_anchor(segments, 1, "backward", True)
        after = find_neighbor_anchor(segments, 1, "forward", True)
        assert before is not None and after is not None
        assert before.type == "mixed"
        assert before.day_count == 3
        assert after.type == "weekend"
        assert after.counts_toward_run is True

    def test_none_at_the_edge(self) -> None:
        segments = build_timeline(_d(3, 3), _d(3, 7), WEEKEND, [])
        assert find_neighbor_anchor(segments, 0, "backward", True) is None
        assert find_neighbor_anchor(segments, 0, "forward", True) is None

    def test_existing_counts_only_when_extending(self) -> None:
        segments = build_timeline(_d(3, 3), _d(3, 7), WEEKEND, [], booked=[_d(3, 5)])
        extending = find_neighbor_anchor(segments, 0, "forward", True)
        not_extending = find_neighbor_anchor(segments, 0, "forward", False)
        assert extending is not None and not_extending is not None
        assert extending.type == "existing"
        assert extending.counts_toward_run is True
        assert not_extending.counts_toward_run is False

    def test_boundary_anchor(self) -> None:
        anchor = boundary_anchor("start", _d(3, 3))
        assert anchor.type == "boundary-start"
        assert anchor.day_count == 0
        assert anchor.counts_toward_run is False
        assert anchor.label == "Timeframe start"

    def test_labels(self) -> None:
        anchor = Anchor(
            start=_d(3, 1),
            end=_d(3, 2),
            days=(_d(3, 1), _d(3, 2)),
            type="weekend",
            counts_toward_run=True,
        )
        assert anchor.label == "Weekend (Mar 01 - Mar 02)"
        single = anchor._replace(end=_d(3, 1), days=(_d(3, 1),), type="holiday")
        assert single.label == "Holiday (Mar 01)"


# ---------------------------------------------------------------------------
# Candidates
# ---------------------------------------------------------------------------


class TestBuildCandidateBreaks:
    def _candidates(
        self,
        start: datetime.date,
        end: datetime.date,
        holidays: list[datetime.date] | None = None,
        booked: list[datetime.date] | None = None,
        max_per_break: int = 14,
        min_days_off: int = 1,
        extend: bool = True,
    ) -> list[SuggestedBreak]:
        segments = build_timeline(start, end, WEEKEND, holidays or [], booked or [])
        return build_candidate_breaks(segments, max_per_break, min_days_off, extend, start, end)

    def test_weekend_bridge(self) -> None:
        (cand,) = self._candidates(_d(3, 1), _d(3, 9))
        assert cand.pto_days == tuple(_d(3, d) for d in range(3, 8))
        assert cand.pto_required == 5
        assert cand.total_days_off == 9
        assert cand.efficiency == 1.8
        assert cand.start == _d(3, 1)
        assert cand.end == _d(3, 9)

    def test_holiday_anchor(self) -> None:
        (cand,) = self._candidates(_d(3, 3), _d(3, 9), holidays=[_d(3, 3)])
        assert cand.before.type == "holiday"
        assert cand.pto_required == 4
        assert cand.total_days_off == 7
        assert cand.efficiency == 1.75

    def test_mixed_anchor(self) -> None:
        (cand,) = self._candidates(_d(3, 1), _d(3, 9), holidays=[_d(3, 3)])
        assert cand.before.type == "mixed"
        assert cand.total_days_off == 9
        assert cand.efficiency == 2.25

    def test_boundary_on_both_sides(self) -> None:
        (cand,) = self._candidates(_d(3, 3), _d(3, 7))
        assert cand.before.type == "boundary-start"
        assert cand.after.type == "boundary-end"
        assert cand.total_days_off == 5
        assert cand.efficiency == 1.0
        assert (cand.start, cand.end) == (_d(3, 3), _d(3, 7))

    def test_extends_existing_pto(self) -> None:
        first, second = self._candidates(_d(3, 1), _d(3, 9), booked=[_d(3, 5)])
        assert (first.start, first.end) == (_d(3, 1), _d(3, 5))
        assert first.total_days_off == 5
        assert first.after.type == "existing"
        assert (second.start, second.end) == (_d(3, 5), _d(3, 9))
        assert second.total_days_off == 5

    def test_existing_not_extended(self) -> None:
        first, second = self._candidates(_d(3, 1), _d(3, 9), booked=[_d(3, 5)], extend=False)
        assert (first.start, first.end) == (_d(3, 1), _d(3, 4))
        assert first.total_days_off == 4
        assert (second.start, second.end) == (_d(3, 6), _d(3, 9))
        assert second.efficiency == 2.0

    def test_per_break_cap(self) -> None:
        assert self._candidates(_d(3, 1), _d(3, 9), max_per_break=4) == []

    def test_min_days_off(self) -> None:
        assert self._candidates(_d(3, 1), _d(3, 9), min_days_off=10) == []
        assert len(self._candidates(_d(3, 1), _d(3, 9), min_days_off=9)) == 1

    def test_only_non_working_days(self) -> None:
        assert self._candidates(_d(3, 1), _d(3, 2)) == []

    def test_break_id(self) -> None:
        (cand,) = self._candidates(_d(3, 1), _d(3, 9))
        assert cand.id == "2025-03-01_2025-03-09_5"


# ---------------------------------------------------------------------------
# Ranking & selection
# ---------------------------------------------------------------------------


class TestRankCandidates:
    def _pool(self) -> list[SuggestedBreak]:
        return [
            _brk(_d(3, 1), pto=1, total=4),
            _brk(_d(4, 1), pto=5, total=9),
            _brk(_d(2, 1), pto=2, total=5),
        ]

    def _starts(self, ranked: list[SuggestedBreak]) -> list[datetime.date]:
        return [b.start for b in ranked]

    def test_efficiency(self) -> None:
        ranked = rank_candidates(self._pool(), "efficiency")
        assert self._starts(ranked) == [_d(3, 1), _d(2, 1), _d(4, 1)]

    def test_longest(self) -> None:
        ranked = rank_candidates(self._pool(), "longest")
        assert self._starts(ranked) == [_d(4, 1), _d(2, 1), _d(3, 1)]

    def test_least_pto(self) -> None:
        ranked = rank_candidates(self._pool(), "least-pto")
        assert self._starts(ranked) == [_d(3, 1), _d(2, 1), _d(4, 1)]

    def test_earliest(self) -> None:
        ranked = rank_candidates(self._pool(), "earliest")
        assert self._starts(ranked) == [_d(2, 1), _d(3, 1), _d(4, 1)]

    def test_unknown_mode_ranks_by_efficiency(self) -> None:
        assert rank_candidates(self._pool(), "bogus") == rank_candidates(self._pool(), "efficiency")

    def test_efficiency_tie_prefers_longer_break(self) -> None:
        short = _brk(_d(1, 6), pto=2, total=4)
        long = _brk(_d(6, 2), pto=4, total=8)
        assert rank_candidates([short, long], "efficiency") == [long, short]


class TestBreaksConflict:
    def test_adjacent_without_spacing(self) -> None:
        first = _brk(_d(3, 1), pto=5, total=9)
        assert breaks_conflict(first, _brk(_d(3, 10), pto=1, total=1), 0) is False
        assert breaks_conflict(first, _brk(_d(3, 9), pto=1, total=1), 0) is True

    def test_spacing(self) -> None:
        first = _brk(_d(3, 1), pto=5, total=9)
        assert breaks_conflict(first, _brk(_d(3, 23), pto=1, total=1), 14) is True
        assert breaks_conflict(first, _brk(_d(3, 24), pto=1, total=1), 14) is False

    def test_order_independent(self) -> None:
        a = _brk(_d(3, 1), pto=5, total=9)
        b = _brk(_d(3, 15), pto=1, total=1)
        assert breaks_conflict(a, b, 14) == breaks_conflict(b, a, 14)


class TestSelectBreaks:
    def test_skips_unaffordable(self) -> None:
        a = _brk(_d(1, 6), pto=3, total=9)
        b = _brk(_d(5, 5), pto=5, total=9)
        c = _brk(_d(9, 1), pto=2, total=4)
        assert select_breaks([a, b, c], budget=5, max_suggestions=10, min_spacing=0) == [a, c]

    def test_greedy_does_not_backtrack(self) -> None:
        a = _brk(_d(1, 6), pto=3, total=9)
        b = _brk(_d(5, 5), pto=5, total=14)
        # b alone would spend the whole budget for more days off
        assert select_breaks([a, b], budget=5, max_suggestions=10, min_spacing=0) == [a]

    def test_max_suggestions(self) -> None:
        pool = [_brk(_d(m, 1), pto=1, total=3) for m in range(1, 7)]
        assert len(select_breaks(pool, budget=10, max_suggestions=2, min_spacing=0)) == 2

    def test_spacing_rejects_close_breaks(self) -> None:
        a = _brk(_d(3, 1), pto=1, total=3)
        b = _brk(_d(3, 10), pto=1, total=3)
        assert select_breaks([a, b], budget=10, max_suggestions=10, min_spacing=14) == [a]


# ---------------------------------------------------------------------------
# optimize_pto
# ---------------------------------------------------------------------------


class TestOptimizePTO:
    def test_single_week(self) -> None:
        result = _first_week_of_march()
        assert len(result.breaks) == 1
        brk = result.breaks[0]
        assert brk.pto_required == 5
        assert brk.total_days_off == 9
        assert brk.efficiency == 1.8
        assert (brk.start, brk.end) == (_d(3, 1), _d(3, 9))
        assert result.suggested_days == [_d(3, d) for d in range(3, 8)]
        assert result.total_pto_used == 5
        assert result.remaining_pto == 0
        assert result.average_efficiency == 1.8

    def test_monday_holiday(self) -> None:
        result = optimize_pto(
            5,
            WEEKEND,
            [_d(3, 3)],
            _prefs(_d(3, 3), _d(3, 9), min_consecutive_days_off=1, max_suggestions=1),
            today=TODAY,
        )
        (brk,) = result.breaks
        assert brk.pto_required == 4
        assert brk.total_days_off == 7
        assert brk.efficiency == 1.75
        assert result.remaining_pto == 1

    def test_zero_budget(self) -> None:
        assert _first_week_of_march(budget=0) == empty_result(0)

    def test_nan_budget(self) -> None:
        assert _first_week_of_march(budget=float("nan")) == empty_result(0)

    def test_fractional_budget_is_floored(self) -> None:
        assert _first_week_of_march(budget=5.9).total_pto_used == 5
        short = _first_week_of_march(budget=4.9)
        assert short.breaks == []
        assert short.remaining_pto == 4
        assert short.average_efficiency == 0.0

    def test_zero_per_break_cap(self) -> None:
        result = _first_week_of_march(max_pto_per_break=0)
        assert result == empty_result(5)

    def test_zero_max_suggestions(self) -> None:
        assert _first_week_of_march(max_suggestions=0) == empty_result(5)

    def test_no_candidates(self) -> None:
        assert _first_week_of_march(min_consecutive_days_off=30) == empty_result(5)

    def test_inverted_window_is_swapped(self) -> None:
        forward = _first_week_of_march()
        backward = optimize_pto(
            5,
            WEEKEND,
            [],
            _prefs(
                _d(3, 9),
                _d(3, 1),
                min_consecutive_days_off=1,
                max_pto_per_break=5,
                max_suggestions=1,
            ),
            today=TODAY,
        )
        assert backward == forward

    def test_window_in_the_past(self) -> None:
        result = optimize_pto(
            5,
            WEEKEND,
            [],
            _prefs(_d(3, 1), _d(3, 9)),
            today=datetime.date(2026, 1, 1),
        )
        assert result == empty_result(5)

    def test_never_suggests_before_today(self) -> None:
        today = _d(6, 2)
        result = optimize_pto(
            15,
            WEEKEND,
            _us_holidays_2025(),
            _prefs(datetime.date(2024, 1, 1), _d(12, 31)),
            today=today,
        )
        assert result.breaks
        assert all(b.start >= today for b in result.breaks)
        assert all(d >= today for d in result.suggested_days)

    def test_max_pto_to_use_caps_budget(self) -> None:
        result = _full_year(budget=20, max_pto_to_use=3)
        assert 0 < result.total_pto_used <= 3
        assert result.remaining_pto == 3 - result.total_pto_used

    def test_booked_days_are_not_suggested(self) -> None:
        result = optimize_pto(
            5,
            WEEKEND,
            [],
            _prefs(_d(3, 1), _d(3, 9), min_consecutive_days_off=1),
            booked_days=[_d(3, 5)],
            today=TODAY,
        )
        assert result.breaks
        assert _d(3, 5) not in result.suggested_days

    def test_inputs_not_mutated(self) -> None:
        holidays = _us_holidays_2025()
        optimize_pto(15, WEEKEND, holidays, _prefs(_d(1, 1), _d(12, 31)), today=TODAY)
        assert holidays == _us_holidays_2025()


class TestOptimizePTOProperties:
    def test_budget_conservation(self) -> None:
        result = _full_year()
        assert result.total_pto_used <= 15
        assert result.remaining_pto == 15 - result.total_pto_used
        assert result.total_pto_used == sum(b.pto_required for b in result.breaks)
        assert result.total_days_off == sum(b.total_days_off for b in result.breaks)

    def test_suggested_days_sorted_and_unique(self) -> None:
        result = _full_year()
        assert result.suggested_days == sorted(set(result.suggested_days))
        assert len(result.suggested_days) == result.total_pto_used

    def test_pto_only_on_working_days(self) -> None:
        holidays = set(_us_holidays_2025())
        for d in _full_year().suggested_days:
            assert day_of_week(d) not in WEEKEND
            assert d not in holidays

    def test_breaks_respect_spacing(self) -> None:
        breaks = _full_year().breaks
        for i, a in enumerate(breaks):
            for b in breaks[i + 1:]:
                assert not breaks_conflict(a, b, 14)

    def test_break_limits(self) -> None:
        result = _full_year()
        assert 0 < len(result.breaks) <= 10
        for brk in result.breaks:
            assert brk.pto_required <= 14
            assert brk.total_days_off >= 4

    def test_deterministic(self) -> None:
        assert _full_year() == _full_year()

    def test_every_mode_stays_in_budget(self) -> None:
        for mode in ("efficiency", "longest", "least-pto", "earliest"):
            result = _full_year(ranking_mode=mode)
            assert result.total_pto_used <= 15
            assert result.breaks

    def test_efficiency_picks_best_first(self) -> None:
        result = _full_year(max_suggestions=1)
        candidates = build_candidate_breaks(
            build_timeline(_d(1, 1), _d(12, 31), WEEKEND, _us_holidays_2025()),
            14,
            4,
            True,
            _d(1, 1),
            _d(12, 31),
        )
        best = max(c.efficiency for c in candidates if c.pto_required <= 15)
        assert result.breaks[0].efficiency == best


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


class TestFormatResult:
    def test_contains_breaks(self) -> None:
        output = format_result(_first_week_of_march(), budget=5)
        assert "SUGGESTED BREAKS" in output
        assert "PTO days used: 5 / 5" in output
        assert "Sat, Mar 01 -> Sun, Mar 09  (9 days off)" in output
        assert "5 PTO, 1.80x" in output
        assert "before: Weekend (Mar 01 - Mar 02)" in output
        assert "after:  Weekend (Mar 08 - Mar 09)" in output
        assert "Monday, March 03, 2025" in output

    def test_empty(self) -> None:
        output = format_result(empty_result(3))
        assert "PTO remaining: 3" in output
        assert "No breaks to suggest" in output


class TestFormatCalendarView:
    def test_marks_days(self) -> None:
        output = format_calendar_view(
            _first_week_of_march(),
            holidays=[_d(3, 10)],
            booked_days=[_d(3, 11)],
        )
        assert "Calendar View" in output
        assert "March 2025" in output
        assert "  3P" in output
        assert " 10H" in output
        assert " 11B" in output

    def test_empty_result_has_no_calendar(self) -> None:
        assert format_calendar_view(empty_result()) == ""
