"""Typer CLI for the PTO break planner."""

from __future__ import annotations

import datetime
import json
import logging
import sys

import typer

from ptoplanner.balance import LeaveSettings, project_balance
from ptoplanner.holidays import PRESETS, Holiday, get_holidays
from ptoplanner.optimizer import (
    RANKING_MODES,
    OptimizationResult,
    SuggestedBreak,
    format_calendar_view,
    format_result,
)
from ptoplanner.planner import (
    PlannerData,
    PlannerFileError,
    apply_suggestions,
    available_budget,
    load_planner,
    planner_holidays,
    planner_preferences,
    save_planner,
    suggest_breaks,
)

app = typer.Typer(
    name="ptoplanner",
    help="PTO break planner: suggest which workdays to take off to turn "
    "weekends and holidays into longer breaks, and project your balance.",
    add_completion=False,
)


def _parse_date(value: str) -> datetime.date:
    """Parse a YYYY-MM-DD date string."""
    try:
        return datetime.date.fromisoformat(value)
    except ValueError:
        raise typer.BadParameter(f"Invalid date format {value!r}. Use YYYY-MM-DD.") from None


def _optional_date(value: str | None) -> datetime.date | None:
    return None if value is None else _parse_date(value)


def _fail(message: str) -> typer.Exit:
    typer.echo(f"Error: {message}", err=True)
    return typer.Exit(code=1)


def _load(config: str) -> PlannerData:
    try:
        return load_planner(config)
    except PlannerFileError as exc:
        raise _fail(str(exc)) from None


@app.callback()
def _main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def suggest(
    budget: float | None = typer.Option(
        None,
        "--budget",
        "-b",
        help="PTO days available. Required without --config; overrides the "
        "projected balance with it.",
        min=0,
    ),
    config: str | None = typer.Option(
        None,
        "--config",
        help="Path to a JSON planner file (settings, accrual rules, booked days, holidays).",
    ),
    start: str | None = typer.Option(None, "--start", help="Window start (YYYY-MM-DD)."),
    end: str | None = typer.Option(None, "--end", help="Window end (YYYY-MM-DD)."),
    mode: str | None = typer.Option(
        None,
        "--mode",
        "-m",
        help=f"Ranking mode: {', '.join(RANKING_MODES)}.",
    ),
    max_suggestions: int | None = typer.Option(
        None, "--max-suggestions", "-n", help="Maximum number of breaks.", min=0
    ),
    max_per_break: int | None = typer.Option(
        None, "--max-per-break", help="Maximum PTO days in a single break.", min=0
    ),
    max_pto: int | None = typer.Option(
        None, "--max-pto", help="Maximum PTO days to spend in total.", min=0
    ),
    min_days_off: int | None = typer.Option(
        None, "--min-days-off", help="Minimum consecutive days off for a break.", min=0
    ),
    spacing: int | None = typer.Option(
        None, "--spacing", help="Minimum days between two breaks.", min=0
    ),
    no_extend_existing: bool = typer.Option(
        False,
        "--no-extend-existing",
        help="Do not count booked PTO next to a gap toward the break length.",
    ),
    weekend: list[int] | None = typer.Option(  # noqa: B008
        None,
        "--weekend",
        "-w",
        help="Weekend weekday, 0 = Sunday ... 6 = Saturday. Repeatable. Default: 0 and 6.",
    ),
    holiday: list[str] | None = typer.Option(  # noqa: B008
        None,
        "--holiday",
        "-H",
        help="Additional holiday date (YYYY-MM-DD). Repeatable.",
    ),
    booked: list[str] | None = typer.Option(  # noqa: B008
        None,
        "--booked",
        help="Already-booked PTO date (YYYY-MM-DD). Repeatable.",
    ),
    country: str | None = typer.Option(
        None,
        "--country",
        "-c",
        help=f"Holiday preset ({', '.join(sorted(PRESETS))}). Use 'none' to skip. "
        "Default: us, or the planner file's country.",
    ),
    calendar: bool = typer.Option(
        True,
        "--calendar/--no-calendar",
        help="Show month-by-month calendar view.",
    ),
    output_json: bool = typer.Option(False, "--json", help="Output results as JSON."),
    apply: bool = typer.Option(
        False,
        "--apply",
        help="Book the suggested days as planned PTO in the planner file.",
    ),
) -> None:
    """Suggest breaks that turn weekends and holidays into longer time off.

    Use --budget for a quick run, or --config to plan from a planner file's
    projected balance.
    """
    if config is None and budget is None:
        raise _fail("--budget is required (or use --config with a planner file).")
    if apply and config is None:
        raise _fail("--apply needs --config.")
    if mode is not None and mode not in RANKING_MODES:
        raise _fail(f"Invalid mode {mode!r}. Choose from: {', '.join(RANKING_MODES)}")
    bad_days = [d for d in weekend or [] if not 0 <= d <= 6]
    if bad_days:
        raise _fail(f"Invalid weekend day {bad_days[0]}. Use 0 (Sunday) to 6 (Saturday).")

    planner = _load(config) if config is not None else PlannerData(
        settings=LeaveSettings(), accrual_rules=[], pto_days=[], holidays=[], country="us"
    )

    extra_holidays = [Holiday(d, d.strftime("%b %d")) for d in map(_parse_date, holiday or [])]
    planner = planner._replace(holidays=planner.holidays + extra_holidays)
    if booked:
        planner = apply_suggestions(planner, [_parse_date(b) for b in booked])
    if weekend:
        planner = planner._replace(weekend_days=tuple(sorted(set(weekend))))
    if country is not None:
        if country != "none" and country.lower() not in PRESETS:
            supported = ", ".join(sorted(PRESETS))
            raise _fail(f"Unknown country preset {country!r}. Supported: {supported}")
        planner = planner._replace(country=None if country == "none" else country)

    today = datetime.date.today()
    overrides = {
        "earliest_start": _optional_date(start),
        "latest_end": _optional_date(end),
        "ranking_mode": mode,
        "max_suggestions": max_suggestions,
        "max_pto_per_break": max_per_break,
        "max_pto_to_use": max_pto,
        "min_consecutive_days_off": min_days_off,
        "min_spacing_between_breaks": spacing,
        "extend_existing_pto": False if no_extend_existing else None,
    }

    try:
        prefs = planner_preferences(planner, today, **overrides)
        resolved_budget = budget if budget is not None else available_budget(planner, prefs)
        result = suggest_breaks(planner, today, budget=resolved_budget, preferences=prefs)
    except PlannerFileError as exc:
        raise _fail(str(exc)) from None

    window = sorted((prefs.earliest_start, prefs.latest_end))
    window_holidays = planner_holidays(planner, window[0], window[1])

    if output_json:
        _print_json(result, resolved_budget)
    else:
        typer.echo(format_result(result, resolved_budget))
        if calendar:
            typer.echo(format_calendar_view(result, window_holidays, planner.booked_dates))

    if apply and config is not None:
        save_planner(apply_suggestions(_load(config), result.suggested_days), config)
        if not output_json:
            typer.echo()
            typer.echo(f"  Booked {len(result.suggested_days)} day(s) in {config}.")


def _serialize_break(brk: SuggestedBreak) -> dict[str, object]:
    return {
        "id": brk.id,
        "start": brk.start.isoformat(),
        "end": brk.end.isoformat(),
        "pto_days": [d.isoformat() for d in brk.pto_days],
        "pto_required": brk.pto_required,
        "total_days_off": brk.total_days_off,
        "efficiency": brk.efficiency,
        "anchors": {
            side: {
                "start": a.start.isoformat(),
                "end": a.end.isoformat(),
                "day_count": a.day_count,
                "type": a.type,
                "label": a.label,
                "counts_toward_run": a.counts_toward_run,
            }
            for side, a in (("before", brk.before), ("after", brk.after))
        },
    }


def _print_json(result: OptimizationResult, budget: float) -> None:
    output = {
        "budget": budget,
        "suggested_days": [d.isoformat() for d in result.suggested_days],
        "breaks": [_serialize_break(b) for b in result.breaks],
        "summary": {
            "total_pto_used": result.total_pto_used,
            "total_days_off": result.total_days_off,
            "average_efficiency": result.average_efficiency,
            "remaining_pto": result.remaining_pto,
        },
    }
    json.dump(output, sys.stdout, indent=2)
    typer.echo()


@app.command()
def balance(
    config: str = typer.Option(..., "--config", help="Path to a JSON planner file."),
    date: str | None = typer.Option(
        None,
        "--date",
        "-d",
        help="Date to project the balance to (YYYY-MM-DD). Defaults to today.",
    ),
    output_json: bool = typer.Option(False, "--json", help="Output the projection as JSON."),
) -> None:
    """Project the PTO balance as of a date."""
    planner = _load(config)
    target = _parse_date(date) if date is not None else datetime.date.today()
    proj = project_balance(target, planner.settings, planner.accrual_rules, planner.pto_days)
    unit = planner.settings.pto_display_unit

    if output_json:
        json.dump(
            {
                "date": proj.date.isoformat(),
                "unit": unit,
                "balance": proj.balance,
                "initial_balance": proj.initial_balance,
                "accrued": proj.accrued,
                "used": proj.used,
                "carry_over_loss": proj.carry_over_loss,
                "truncated": proj.truncated,
            },
            sys.stdout,
            indent=2,
        )
        typer.echo()
        return

    typer.echo(f"  Balance as of {proj.date.strftime('%a, %b %d, %Y')}")
    typer.echo()
    typer.echo(f"    Initial balance:  {proj.initial_balance:>8.2f} {unit}")
    typer.echo(f"    Accrued:         +{proj.accrued:>8.2f} {unit}")
    typer.echo(f"    Used:            -{proj.used:>8.2f} {unit}")
    if proj.carry_over_loss:
        typer.echo(f"    Carry-over loss: -{proj.carry_over_loss:>8.2f} {unit}")
    typer.echo(f"    Balance:          {proj.balance:>8.2f} {unit}")
    if proj.truncated:
        typer.echo("  Warning: an accrual rule hit the occurrence limit; total is partial.")


@app.command()
def holidays(
    country: str = typer.Option(
        "us",
        "--country",
        "-c",
        help=f"Country preset ({', '.join(sorted(PRESETS))}).",
    ),
    year: int = typer.Option(
        None,
        "--year",
        "-y",
        help="Year to list holidays for. Defaults to the current year.",
    ),
) -> None:
    """List holidays for a country preset."""
    resolved_year = year if year is not None else datetime.date.today().year

    try:
        preset = get_holidays(country, resolved_year)
    except KeyError as exc:
        raise _fail(exc.args[0]) from None

    typer.echo(f"  {PRESETS[country.lower()]} - {resolved_year}")
    typer.echo()
    for h in preset:
        typer.echo(f"    {h.date.strftime('%a, %b %d'):>12}  {h.name}")


def main() -> None:
    """Entry point for the CLI."""
    app()
