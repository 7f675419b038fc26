"""
In-Memory Storage Implementation

A complete Ledger Store held in process memory. Used by the tests and by
callers that embed the core without a real backend.

Records are copied on the way in and on the way out, so callers can never
mutate stored state by holding on to a returned object.
"""

from typing import Generic, Optional, TypeVar
from uuid import UUID

import structlog
from pydantic import BaseModel

from smart_expense.models.audit import AuditEvent
from smart_expense.models.ledger import (
    Budget,
    Category,
    RecurringRule,
    SavingsGoal,
    Transaction,
)
from smart_expense.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
)


logger = structlog.get_logger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)


class _Collection(Generic[RecordT]):
    """Records of one type, partitioned by user id and keyed by record id."""

    def __init__(self, entity_type: str):
        self.entity_type = entity_type
        self._by_user: dict[str, dict[str, RecordT]] = {}

    def list(self, user_id: str) -> list[RecordT]:
        return [r.model_copy(deep=True) for r in self._by_user.get(user_id, {}).values()]

    def get(self, user_id: str, record_id: str) -> Optional[RecordT]:
        record = self._by_user.get(user_id, {}).get(record_id)
        return record.model_copy(deep=True) if record is not None else None

    def insert(self, record: RecordT) -> RecordT:
        records = self._by_user.setdefault(record.user_id, {})
        if record.id in records:
            raise DuplicateError(f"{self.entity_type} already exists: {record.id}")
        records[record.id] = record.model_copy(deep=True)
        return record.model_copy(deep=True)

    def replace(self, record: RecordT) -> RecordT:
        records = self._by_user.get(record.user_id, {})
        if record.id not in records:
            raise NotFoundError(self.entity_type, record.id)
        records[record.id] = record.model_copy(deep=True)
        return record.model_copy(deep=True)

    def upsert(self, record: RecordT) -> RecordT:
        self._by_user.setdefault(record.user_id, {})[record.id] = record.model_copy(deep=True)
        return record.model_copy(deep=True)

    def remove(self, user_id: str, record_id: str) -> bool:
        return self._by_user.get(user_id, {}).pop(record_id, None) is not None


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Dictionary-backed Ledger Store."""

    def __init__(self):
        self._transactions: _Collection[Transaction] = _Collection("transaction")
        self._rules: _Collection[RecurringRule] = _Collection("recurring_rule")
        self._budgets: _Collection[Budget] = _Collection("budget")
        self._categories: _Collection[Category] = _Collection("category")
        self._goals: _Collection[SavingsGoal] = _Collection("savings_goal")

    # ── Transactions ──────────────────────────────────────

    async def list_transactions(self, user_id: str) -> list[Transaction]:
        return self._transactions.list(user_id)

    async def get_transaction(
        self,
        user_id: str,
        transaction_id: str,
    ) -> Optional[Transaction]:
        return self._transactions.get(user_id, transaction_id)

    async def create_transaction(self, transaction: Transaction) -> Transaction:
        saved = self._transactions.insert(transaction)
        logger.debug("transaction_stored", transaction_id=saved.id, user_id=saved.user_id)
        return saved

    async def update_transaction(self, transaction: Transaction) -> Transaction:
        return self._transactions.replace(transaction)

    async def delete_transaction(self, user_id: str, transaction_id: str) -> bool:
        return self._transactions.remove(user_id, transaction_id)

    # ── Recurring rules ───────────────────────────────────

    async def list_recurring_rules(self, user_id: str) -> list[RecurringRule]:
        return self._rules.list(user_id)

    async def create_recurring_rule(self, rule: RecurringRule) -> RecurringRule:
        return self._rules.insert(rule)

    async def update_recurring_rule(self, rule: RecurringRule) -> RecurringRule:
        return self._rules.replace(rule)

    async def delete_recurring_rule(self, user_id: str, rule_id: str) -> bool:
        return self._rules.remove(user_id, rule_id)

    # ── Budgets ───────────────────────────────────────────

    async def list_budgets(self, user_id: str) -> list[Budget]:
        return self._budgets.list(user_id)

    async def get_budget(self, user_id: str, budget_id: str) -> Optional[Budget]:
        return self._budgets.get(user_id, budget_id)

    async def save_budget(self, budget: Budget) -> Budget:
        return self._budgets.upsert(budget)

    # ── Categories ────────────────────────────────────────

    async def list_categories(self, user_id: str) -> list[Category]:
        return self._categories.list(user_id)

    async def create_category(self, category: Category) -> Category:
        return self._categories.insert(category)

    async def delete_category(self, user_id: str, category_id: str) -> bool:
        return self._categories.remove(user_id, category_id)

    # ── Savings goals ─────────────────────────────────────

    async def list_savings_goals(self, user_id: str) -> list[SavingsGoal]:
        return self._goals.list(user_id)

    async def get_savings_goal(
        self,
        user_id: str,
        goal_id: str,
    ) -> Optional[SavingsGoal]:
        return self._goals.get(user_id, goal_id)

    async def create_savings_goal(self, goal: SavingsGoal) -> SavingsGoal:
        return self._goals.insert(goal)

    async def update_savings_goal(self, goal: SavingsGoal) -> SavingsGoal:
        return self._goals.replace(goal)

    async def delete_savings_goal(self, user_id: str, goal_id: str) -> bool:
        return self._goals.remove(user_id, goal_id)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log held in memory."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
