"""PTO Break Planner.

Suggest which workdays to take off so weekends and holidays grow into
longer breaks, and project the leave balance those suggestions spend.
"""

from ptoplanner.balance import (
    AccrualRule,
    BalanceProjection,
    BookedLeave,
    LeaveSettings,
    accruals_for_rule,
    balance_as_of,
    project_balance,
)
from ptoplanner.holidays import Holiday, expand_holidays, get_holidays, us_holidays
from ptoplanner.optimizer import (
    Anchor,
    OptimizationPreferences,
    OptimizationResult,
    Segment,
    SuggestedBreak,
    build_timeline,
    optimize_pto,
)
from ptoplanner.planner import PlannerData, load_planner, suggest_breaks

__all__ = [
    "AccrualRule",
    "Anchor",
    "BalanceProjection",
    "BookedLeave",
    "Holiday",
    "LeaveSettings",
    "OptimizationPreferences",
    "OptimizationResult",
    "PlannerData",
    "Segment",
    "SuggestedBreak",
    "accruals_for_rule",
    "balance_as_of",
    "build_timeline",
    "expand_holidays",
    "get_holidays",
    "load_planner",
    "optimize_pto",
    "project_balance",
    "suggest_breaks",
    "us_holidays",
]
