"""Savings goal funding package."""

from smart_expense.goals.funding import (
    GoalFundingService,
    apply_funding,
    linked_totals,
    recompute_goal_totals,
)

__all__ = [
    "GoalFundingService",
    "apply_funding",
    "linked_totals",
    "recompute_goal_totals",
]
