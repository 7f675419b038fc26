"""Recurring rule scheduler package."""

from smart_expense.scheduler.recurring import (
    CatchUpLimitExceeded,
    RuleScheduler,
    advance_due_date,
    catch_up_rule,
    materialize,
    process_due_rules,
)

__all__ = [
    "CatchUpLimitExceeded",
    "RuleScheduler",
    "advance_due_date",
    "catch_up_rule",
    "materialize",
    "process_due_rules",
]
