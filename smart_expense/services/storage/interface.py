"""
Abstract Ledger Store Interface

DESIGN DECISION: The core never assumes a storage technology. It talks to
the Ledger Store through this interface, which allows us to:
1. Back it with any document/key-value store keyed by user id
2. Use in-memory storage for testing
3. Keep the engines free of I/O entirely

The interface is intentionally simple - CRUD and list-by-user for each
record type, nothing more. Every operation is scoped to one user; a store
never returns another user's records.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from smart_expense.errors import LedgerError, NotFoundError
from smart_expense.models.audit import AuditEvent
from smart_expense.models.ledger import (
    Budget,
    Category,
    RecurringRule,
    SavingsGoal,
    Transaction,
)


class LedgerStorageInterface(ABC):
    """
    Abstract interface for a per-user ledger store.

    Any storage implementation must implement these methods.
    """

    # ── Transactions ──────────────────────────────────────

    @abstractmethod
    async def list_transactions(self, user_id: str) -> list[Transaction]:
        """
        List all of a user's transactions.

        Returns:
            Transactions in insertion order (empty list if none)
        """
        pass

    @abstractmethod
    async def get_transaction(
        self,
        user_id: str,
        transaction_id: str,
    ) -> Optional[Transaction]:
        """Fetch one transaction, or None if it doesn't exist."""
        pass

    @abstractmethod
    async def create_transaction(self, transaction: Transaction) -> Transaction:
        """
        Persist a new transaction.

        Raises:
            DuplicateError: If the id is already taken
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update_transaction(self, transaction: Transaction) -> Transaction:
        """
        Replace an existing transaction.

        Raises:
            NotFoundError: If the transaction doesn't exist
        """
        pass

    @abstractmethod
    async def delete_transaction(self, user_id: str, transaction_id: str) -> bool:
        """
        Delete a transaction.

        Returns:
            True if something was deleted
        """
        pass

    # ── Recurring rules ───────────────────────────────────

    @abstractmethod
    async def list_recurring_rules(self, user_id: str) -> list[RecurringRule]:
        """List all of a user's recurring rules."""
        pass

    @abstractmethod
    async def create_recurring_rule(self, rule: RecurringRule) -> RecurringRule:
        """
        Persist a new recurring rule.

        Raises:
            DuplicateError: If the id is already taken
        """
        pass

    @abstractmethod
    async def update_recurring_rule(self, rule: RecurringRule) -> RecurringRule:
        """
        Replace an existing recurring rule.

        Raises:
            NotFoundError: If the rule doesn't exist
        """
        pass

    @abstractmethod
    async def delete_recurring_rule(self, user_id: str, rule_id: str) -> bool:
        """Delete a recurring rule. Returns True if something was deleted."""
        pass

    # ── Budgets ───────────────────────────────────────────

    @abstractmethod
    async def list_budgets(self, user_id: str) -> list[Budget]:
        """List all of a user's budgets."""
        pass

    @abstractmethod
    async def get_budget(self, user_id: str, budget_id: str) -> Optional[Budget]:
        """Fetch one budget, or None if it doesn't exist."""
        pass

    @abstractmethod
    async def save_budget(self, budget: Budget) -> Budget:
        """Create or replace a budget."""
        pass

    # ── Categories ────────────────────────────────────────

    @abstractmethod
    async def list_categories(self, user_id: str) -> list[Category]:
        """List all of a user's categories."""
        pass

    @abstractmethod
    async def create_category(self, category: Category) -> Category:
        """
        Persist a new category.

        Raises:
            DuplicateError: If the id is already taken
        """
        pass

    @abstractmethod
    async def delete_category(self, user_id: str, category_id: str) -> bool:
        """Delete a category. Returns True if something was deleted."""
        pass

    # ── Savings goals ─────────────────────────────────────

    @abstractmethod
    async def list_savings_goals(self, user_id: str) -> list[SavingsGoal]:
        """List all of a user's savings goals."""
        pass

    @abstractmethod
    async def get_savings_goal(
        self,
        user_id: str,
        goal_id: str,
    ) -> Optional[SavingsGoal]:
        """Fetch one savings goal, or None if it doesn't exist."""
        pass

    @abstractmethod
    async def create_savings_goal(self, goal: SavingsGoal) -> SavingsGoal:
        """
        Persist a new savings goal.

        Raises:
            DuplicateError: If the id is already taken
        """
        pass

    @abstractmethod
    async def update_savings_goal(self, goal: SavingsGoal) -> SavingsGoal:
        """
        Replace an existing savings goal.

        Raises:
            NotFoundError: If the goal doesn't exist
        """
        pass

    @abstractmethod
    async def delete_savings_goal(self, user_id: str, goal_id: str) -> bool:
        """
        Delete a savings goal.

        Transactions linked to it keep their `savings_goal_id`.

        Returns:
            True if something was deleted
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one session sync).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(LedgerError):
    """Base exception for storage operations."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class StorageConnectionError(StorageError):
    """Could not reach the storage backend."""
    pass


__all__ = [
    "AuditStorageInterface",
    "DuplicateError",
    "LedgerStorageInterface",
    "NotFoundError",
    "StorageConnectionError",
    "StorageError",
]
