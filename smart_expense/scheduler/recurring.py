"""
Recurring Rule Scheduler

Turns overdue recurring rules into concrete transactions, exactly once per
due occurrence, without a long-running process. It is invoked on demand
(typically at session start).

DESIGN DECISION: The scheduler is a pure state-transition function.
    rules + now  ->  materialized transactions + advanced rules
Persisting either side is the caller's job. This keeps it deterministic,
testable, and free of partial-write hazards.

CATCH-UP: A rule that missed several periods materializes one transaction
per missed occurrence, not just one. Each step advances from the previous
due date:
    daily   +1 day
    weekly  +7 days
    monthly +1 calendar month (day clamped to the shorter month)
    yearly  +1 calendar year  (Feb 29 clamped to Feb 28)

FAILURES are per record. A malformed rule is reported and the rest of the
batch proceeds. A rule without a due date is skipped and reported.
"""

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any, Optional, Union

import structlog
from dateutil.relativedelta import relativedelta

from smart_expense.config import LedgerSettings
from smart_expense.errors import LedgerError, ValidationError
from smart_expense.models.insights import RuleIssue, SchedulerResult
from smart_expense.models.ledger import (
    Frequency,
    RecurringRule,
    Transaction,
    to_naive_utc,
)
from smart_expense.validation import parse_frequency, parse_record


logger = structlog.get_logger(__name__)

DEFAULT_MAX_CATCH_UP = 1000

_PERIODS = {
    Frequency.DAILY: relativedelta(days=1),
    Frequency.WEEKLY: relativedelta(weeks=1),
    Frequency.MONTHLY: relativedelta(months=1),
    Frequency.YEARLY: relativedelta(years=1),
}


class CatchUpLimitExceeded(LedgerError):
    """A rule is further behind than the configured catch-up cap."""

    def __init__(self, rule_id: str, limit: int):
        super().__init__(
            f"Rule {rule_id} has more than {limit} missed occurrences"
        )
        self.rule_id = rule_id
        self.limit = limit


def advance_due_date(
    when: datetime,
    frequency: Union[Frequency, str],
) -> datetime:
    """
    Move a due date forward by one period.

    Raises:
        ValidationError: If `frequency` is not a known value
    """
    return when + _PERIODS[parse_frequency(frequency)]


def materialize(rule: RecurringRule, due: datetime) -> Transaction:
    """Build the transaction for one due occurrence of `rule`."""
    return Transaction(
        user_id=rule.user_id,
        title=rule.title,
        amount=rule.amount,
        type=rule.type,
        category=rule.category,
        date=due,
        notes=rule.title,
    )


def catch_up_rule(
    rule: RecurringRule,
    now: datetime,
    max_periods: int = DEFAULT_MAX_CATCH_UP,
) -> tuple[RecurringRule, list[Transaction]]:
    """
    Materialize every occurrence of `rule` due at or before `now`.

    Returns the advanced rule (a copy) and the new transactions, oldest
    first. A rule that is not due comes back unchanged with no transactions.

    Raises:
        ValidationError: Unknown frequency
        CatchUpLimitExceeded: More than `max_periods` occurrences are due
    """
    now = to_naive_utc(now)
    due = rule.next_due_date
    last_processed = rule.last_processed
    transactions: list[Transaction] = []

    while due is not None and due <= now:
        if len(transactions) >= max_periods:
            raise CatchUpLimitExceeded(rule.id, max_periods)
        transactions.append(materialize(rule, due))
        last_processed = due
        due = advance_due_date(due, rule.frequency)

    if not transactions:
        return rule, transactions

    updated = rule.model_copy(update={
        "next_due_date": due,
        "last_processed": last_processed,
    })
    return updated, transactions


def _record_id(raw: Any) -> Optional[str]:
    if isinstance(raw, Mapping):
        value = raw.get("id")
        return str(value) if value is not None else None
    return getattr(raw, "id", None)


def process_due_rules(
    rules: Iterable[Union[RecurringRule, Mapping[str, Any]]],
    now: datetime,
    max_periods: int = DEFAULT_MAX_CATCH_UP,
    user_id: Optional[str] = None,
) -> SchedulerResult:
    """
    Run one scheduler pass over a user's rules.

    Args:
        rules: RecurringRule models or raw store records
        now: Reference time; a rule is due iff next_due_date <= now
        max_periods: Cap on occurrences materialized per rule
        user_id: When given, rules owned by anyone else are reported as
                 failures and never fire

    Returns:
        SchedulerResult. Only rules that fired appear in `updated_rules`.
        Callers should refresh aggregated views when `count > 0`.
    """
    now = to_naive_utc(now)
    result = SchedulerResult()

    for raw in rules:
        rule_id = _record_id(raw)

        try:
            rule = parse_record(RecurringRule, raw)
        except ValidationError as e:
            logger.warning("rule_invalid", rule_id=rule_id, error=e.message)
            result.failures.append(RuleIssue(
                rule_id=rule_id,
                reason=e.message,
                issues=e.issues,
            ))
            continue

        if user_id is not None and rule.user_id != user_id:
            logger.warning("rule_wrong_owner", rule_id=rule.id, owner=rule.user_id)
            result.failures.append(RuleIssue(
                rule_id=rule.id,
                reason=f"rule belongs to another user: {rule.user_id}",
            ))
            continue

        if rule.next_due_date is None:
            logger.warning("rule_skipped", rule_id=rule.id, reason="missing next_due_date")
            result.skipped.append(RuleIssue(
                rule_id=rule.id,
                reason="missing next_due_date",
            ))
            continue

        try:
            updated, transactions = catch_up_rule(rule, now, max_periods)
        except ValidationError as e:
            logger.warning("rule_invalid", rule_id=rule.id, error=e.message)
            result.failures.append(RuleIssue(
                rule_id=rule.id,
                reason=e.message,
                issues=e.issues,
            ))
            continue
        except CatchUpLimitExceeded as e:
            logger.error("rule_catch_up_limit", rule_id=rule.id, limit=e.limit)
            result.failures.append(RuleIssue(rule_id=rule.id, reason=str(e)))
            continue

        if not transactions:
            continue

        logger.info(
            "rule_materialized",
            rule_id=rule.id,
            count=len(transactions),
            next_due_date=updated.next_due_date.isoformat(),
        )
        result.materialized.extend(transactions)
        result.sources.update({tx.id: rule.id for tx in transactions})
        result.updated_rules.append(updated)

    return result


class RuleScheduler:
    """
    Settings-aware wrapper around `process_due_rules`.

    Holds the catch-up cap so callers don't have to thread it through.
    """

    def __init__(self, settings: Optional[LedgerSettings] = None):
        self._settings = settings or LedgerSettings()

    def process(
        self,
        rules: Iterable[Union[RecurringRule, Mapping[str, Any]]],
        now: datetime,
        user_id: Optional[str] = None,
    ) -> SchedulerResult:
        return process_due_rules(
            rules,
            now,
            max_periods=self._settings.max_catch_up_periods,
            user_id=user_id,
        )
