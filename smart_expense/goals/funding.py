"""
Goal Funding Operation

Keeps a SavingsGoal's `current_amount` in step with the money put toward it:
1. A new transaction carrying `savings_goal_id` adds its amount to the goal
2. An explicit "add funds" action adds a user-chosen amount

DESIGN DECISION: Funding happens at creation time only. Editing or
deleting a linked transaction later does NOT adjust the goal. Where that
drift is unacceptable, `recompute_goal_totals` rebuilds the totals from the
linked transactions instead (see the `goal_funding_mode` setting).

Completion (current >= target) is derived, never stored. The result tells
the caller when a funding crossed the target so it can celebrate.
"""

from collections.abc import Iterable, Mapping
from typing import Optional
from uuid import UUID

from smart_expense.audit import AuditLogger
from smart_expense.errors import NotFoundError
from smart_expense.models.insights import FundingResult
from smart_expense.models.ledger import SavingsGoal, Transaction
from smart_expense.services.storage import LedgerStorageInterface
from smart_expense.validation import require_positive_amount


def apply_funding(
    goal: SavingsGoal,
    amount: float,
    manual: bool = False,
) -> FundingResult:
    """
    Add `amount` to a goal.

    Manual fundings are also tracked in `manual_amount` so a later
    recompute from transactions doesn't lose them.

    Pure: returns an updated copy, the input goal is untouched.

    Raises:
        ValidationError: If `amount` is not positive
    """
    require_positive_amount(amount)
    update = {"current_amount": goal.current_amount + amount}
    if manual:
        update["manual_amount"] = goal.manual_amount + amount
    updated = goal.model_copy(update=update)
    return FundingResult(goal=updated, amount=amount, was_complete=goal.is_complete)


def linked_totals(transactions: Iterable[Transaction]) -> dict[str, float]:
    """Sum of transaction amounts per linked goal id."""
    totals: dict[str, float] = {}
    for tx in transactions:
        if tx.savings_goal_id:
            totals[tx.savings_goal_id] = totals.get(tx.savings_goal_id, 0.0) + tx.amount
    return totals


def recompute_goal_totals(
    goals: Iterable[SavingsGoal],
    transactions: Iterable[Transaction],
    baseline: Optional[Mapping[str, float]] = None,
) -> list[SavingsGoal]:
    """
    Rebuild each goal's `current_amount` from scratch.

    current_amount = manual funds + sum of linked transaction amounts

    Manual funds come from `baseline[goal.id]` when given, otherwise from
    the goal's own `manual_amount`. Returns copies; inputs are untouched.
    """
    totals = linked_totals(transactions)
    baseline = baseline or {}
    return [
        goal.model_copy(update={
            "current_amount": (
                baseline.get(goal.id, goal.manual_amount) + totals.get(goal.id, 0.0)
            ),
        })
        for goal in goals
    ]


class GoalFundingService:
    """
    Store-backed funding: read the goal, apply, write it back.

    Each call is a read-modify-write against the single goal record.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger

    async def fund_from_transaction(
        self,
        transaction: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[FundingResult]:
        """
        Fund the goal a newly created transaction is linked to.

        Returns None when the transaction isn't linked to a goal.

        Raises:
            NotFoundError: If the linked goal doesn't exist for this user
        """
        if not transaction.savings_goal_id:
            return None
        return await self._fund(
            user_id=transaction.user_id,
            goal_id=transaction.savings_goal_id,
            amount=transaction.amount,
            source=f"transaction:{transaction.id}",
            correlation_id=correlation_id,
        )

    async def add_funds(
        self,
        user_id: str,
        goal_id: str,
        amount: float,
        correlation_id: Optional[UUID] = None,
    ) -> FundingResult:
        """
        Manually add money to a goal.

        Raises:
            NotFoundError: If the goal doesn't exist for this user
            ValidationError: If `amount` is not positive
        """
        return await self._fund(
            user_id=user_id,
            goal_id=goal_id,
            amount=amount,
            source="manual",
            correlation_id=correlation_id,
        )

    async def _fund(
        self,
        user_id: str,
        goal_id: str,
        amount: float,
        source: str,
        correlation_id: Optional[UUID],
    ) -> FundingResult:
        goal = await self._storage.get_savings_goal(user_id, goal_id)
        if goal is None:
            raise NotFoundError("savings_goal", goal_id)

        result = apply_funding(goal, amount, manual=(source == "manual"))
        await self._storage.update_savings_goal(result.goal)

        if self._audit_logger:
            await self._audit_logger.log_goal_funded(
                user_id=user_id,
                goal_id=goal_id,
                amount=amount,
                current_amount=result.goal.current_amount,
                source=source,
                correlation_id=correlation_id,
            )
            if result.completed_now:
                await self._audit_logger.log_goal_completed(
                    user_id=user_id,
                    goal_id=goal_id,
                    target_amount=result.goal.target_amount,
                    correlation_id=correlation_id,
                )

        return result
