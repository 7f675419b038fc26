"""
Main Orchestrator for the Ledger Core

This module ties the engines to the store and defines the end-to-end
flows for:
1. Session sync (load -> process recurring rules -> reload -> aggregate)
2. Transaction entry (validate -> auto-create category -> save -> fund goal)
3. Goal, budget and recurring rule maintenance
4. Edits and deletes (no goal reconciliation)

DESIGN DECISION: The orchestrator is the only place that touches both the
store and the engines. The engines stay pure; every write the orchestrator
makes is audited.

Store reads are retried on connection errors. Everything else propagates.
"""

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Optional, Union
from uuid import UUID

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from smart_expense.analytics import (
    budget_overview,
    daily_series,
    financial_health,
    goal_progress,
    month_over_month_trend,
    summarize,
    top_categories,
)
from smart_expense.audit import AuditLogger, create_correlation_id
from smart_expense.config import LedgerSettings, get_settings
from smart_expense.errors import LedgerError, NotFoundError, ValidationError
from smart_expense.goals import GoalFundingService, recompute_goal_totals
from smart_expense.models.insights import (
    DashboardView,
    FundingResult,
    LedgerSnapshot,
    SchedulerResult,
    SyncResult,
    TransactionResult,
)
from smart_expense.models.ledger import (
    Budget,
    Category,
    RecurringRule,
    SavingsGoal,
    Transaction,
    TransactionType,
    ValidationIssue,
    to_naive_utc,
)
from smart_expense.scheduler import RuleScheduler
from smart_expense.services.storage import (
    AuditStorageInterface,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    StorageConnectionError,
)
from smart_expense.validation import RecordValidator


logger = structlog.get_logger(__name__)

RECENT_TRANSACTIONS_LIMIT = 5

# Colors handed out to auto-created categories, in turn
CATEGORY_PALETTE = (
    "#3b82f6",
    "#10b981",
    "#f59e0b",
    "#ef4444",
    "#8b5cf6",
    "#ec4899",
    "#14b8a6",
)

# Raw store document (camelCase or snake_case keys) or an already-built model
RawRecord = Union[Mapping[str, Any], Transaction, RecurringRule, SavingsGoal]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _field_updates(model_cls, changes: Mapping[str, Any]) -> dict[str, Any]:
    """Map edit keys (field names or aliases) to field names, minus identity."""
    fields = model_cls.model_fields
    aliases = {field.alias: name for name, field in fields.items() if field.alias}

    updates = {}
    unknown = []
    for key, value in changes.items():
        name = aliases.get(key, key)
        if name not in fields:
            unknown.append(key)
        elif name not in ("id", "user_id"):
            updates[name] = value

    if unknown:
        raise ValidationError(
            f"Unknown {model_cls.__name__} field(s): {', '.join(unknown)}",
            [
                ValidationIssue(
                    field=key,
                    issue_type="invalid_format",
                    message="Unknown field",
                    severity="error",
                )
                for key in unknown
            ],
        )
    return updates


class LedgerSession:
    """
    Orchestrates one user's ledger against a store.

    Flow on session start (`sync`):
    1. Load all collections
    2. Run the recurring rule scheduler once
    3. Persist materialized transactions and advanced rules
    4. Reload if anything was materialized
    5. Build the dashboard view from the fresh snapshot

    The same `sync` call is what callers re-run after any mutation.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        settings: Optional[LedgerSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
        scheduler: Optional[RuleScheduler] = None,
        validator: Optional[RecordValidator] = None,
        retry_wait=None,
    ):
        self._storage = storage
        self._settings = settings or get_settings().ledger
        self._audit_logger = audit_logger
        self._scheduler = scheduler or RuleScheduler(self._settings)
        self._validator = validator or RecordValidator()
        self._funding = GoalFundingService(storage, audit_logger)
        self._retry_wait = retry_wait or wait_exponential(multiplier=1, min=2, max=10)

    @property
    def settings(self) -> LedgerSettings:
        return self._settings

    # =========================================================================
    # READS
    # =========================================================================

    async def _read(self, method, *args):
        """Call a store read, retrying on connection errors."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._settings.storage_retry_attempts),
            wait=self._retry_wait,
            retry=retry_if_exception_type(StorageConnectionError),
            reraise=True,
        ):
            with attempt:
                return await method(*args)

    async def load_snapshot(
        self,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerSnapshot:
        """Load every ledger collection of a user."""
        snapshot = LedgerSnapshot(
            user_id=user_id,
            transactions=await self._read(self._storage.list_transactions, user_id),
            budgets=await self._read(self._storage.list_budgets, user_id),
            categories=await self._read(self._storage.list_categories, user_id),
            recurring_rules=await self._read(self._storage.list_recurring_rules, user_id),
            savings_goals=await self._read(self._storage.list_savings_goals, user_id),
        )

        if self._audit_logger:
            await self._audit_logger.log_snapshot_loaded(
                user_id=user_id,
                counts=snapshot.counts(),
                correlation_id=correlation_id,
            )

        return snapshot

    # =========================================================================
    # SESSION SYNC
    # =========================================================================

    async def process_recurring_rules(
        self,
        user_id: str,
        now: Optional[datetime] = None,
        rules: Optional[list[RawRecord]] = None,
        correlation_id: Optional[UUID] = None,
    ) -> SchedulerResult:
        """
        Materialize every overdue occurrence of the user's rules.

        Transactions are written before the rule that produced them is
        advanced. An interrupted pass may repeat an occurrence on the next
        sync but never drops one. A failed store write is audited as
        `rule_persist_failed` and re-raised.

        Args:
            user_id: Owner of the rules
            now: Reference time (defaults to the current UTC time)
            rules: Rules to process; loaded from the store when omitted.
                   Rules owned by another user are reported as failures.
            correlation_id: Ties the audit events of this pass together
        """
        now = to_naive_utc(now) if now is not None else _utcnow()
        if rules is None:
            rules = await self._read(self._storage.list_recurring_rules, user_id)

        result = self._scheduler.process(rules, now, user_id=user_id)

        created_by_rule: dict[str, list[str]] = {}
        for rule in result.updated_rules:
            created_by_rule[rule.id] = []
            try:
                for tx in result.transactions_for(rule.id):
                    tx = await self._storage.create_transaction(tx)
                    created_by_rule[rule.id].append(tx.id)
                await self._storage.update_recurring_rule(rule)
            except LedgerError as e:
                if self._audit_logger:
                    await self._audit_logger.log_error(
                        error_type="rule_persist_failed",
                        error_message=str(e),
                        details={
                            "rule_id": rule.id,
                            "transaction_ids": created_by_rule[rule.id],
                        },
                        correlation_id=correlation_id,
                    )
                raise

        if self._audit_logger:
            for rule in result.updated_rules:
                await self._audit_logger.log_rule_materialized(
                    user_id=user_id,
                    rule_id=rule.id,
                    transaction_ids=created_by_rule[rule.id],
                    next_due_date=rule.next_due_date,
                    correlation_id=correlation_id,
                )
            for issue in result.skipped:
                await self._audit_logger.log_rule_skipped(
                    user_id=user_id,
                    rule_id=issue.rule_id,
                    reason=issue.reason,
                    correlation_id=correlation_id,
                )
            for issue in result.failures:
                await self._audit_logger.log_rule_failed(
                    user_id=user_id,
                    rule_id=issue.rule_id,
                    reason=issue.reason,
                    issues=[i.model_dump() for i in issue.issues],
                    correlation_id=correlation_id,
                )
            await self._audit_logger.log_rules_processed(
                user_id=user_id,
                materialized=result.count,
                skipped=len(result.skipped),
                failed=len(result.failures),
                correlation_id=correlation_id,
            )

        return result

    def build_view(self, snapshot: LedgerSnapshot, now: datetime) -> DashboardView:
        """
        Derive the dashboard view from a snapshot. Pure.

        In `recompute` funding mode, goal totals are rebuilt from the linked
        transactions before progress is computed.
        """
        now = to_naive_utc(now)
        transactions = snapshot.transactions
        goals = snapshot.savings_goals
        if self._settings.goal_funding_mode == "recompute":
            goals = recompute_goal_totals(goals, transactions)

        limit = self._settings.top_categories_limit
        summary = summarize(transactions)
        recent = sorted(transactions, key=lambda tx: tx.date, reverse=True)

        return DashboardView(
            reference_now=now,
            summary=summary,
            health=financial_health(summary),
            trend=month_over_month_trend(transactions, now),
            daily_series=daily_series(transactions, now, self._settings.daily_window_days),
            top_income=top_categories(transactions, TransactionType.INCOME, limit),
            top_expense=top_categories(transactions, TransactionType.EXPENSE, limit),
            budgets=budget_overview(snapshot.budgets, transactions, now),
            goals=[goal_progress(goal, now) for goal in goals],
            recent=recent[:RECENT_TRANSACTIONS_LIMIT],
        )

    async def sync(
        self,
        user_id: str,
        now: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> SyncResult:
        """
        Session start: catch up recurring rules, then build the view.

        The snapshot is reloaded only when the scheduler materialized
        something.
        """
        correlation_id = correlation_id or create_correlation_id()
        now = to_naive_utc(now) if now is not None else _utcnow()

        snapshot = await self.load_snapshot(user_id, correlation_id)
        result = await self.process_recurring_rules(
            user_id,
            now,
            rules=snapshot.recurring_rules,
            correlation_id=correlation_id,
        )
        if result.needs_refresh:
            snapshot = await self.load_snapshot(user_id, correlation_id)

        logger.info(
            "session_synced",
            user_id=user_id,
            materialized=result.count,
            transactions=len(snapshot.transactions),
        )
        return SyncResult(scheduler=result, view=self.build_view(snapshot, now))

    # =========================================================================
    # WRITES
    # =========================================================================

    async def add_transaction(
        self,
        raw: RawRecord,
        correlation_id: Optional[UUID] = None,
    ) -> TransactionResult:
        """
        Validate and save a new transaction.

        1. A category name the user has never used for this type (compared
           case-insensitively) gets a Category record
        2. The transaction is saved
        3. A linked savings goal is funded with the amount

        When the linked goal doesn't exist the `goal_funding_failure_policy`
        setting decides: `proceed` keeps the transaction and reports
        `funding_error`; `rollback` deletes it again, along with a category
        created for it by this call, and re-raises.

        Raises:
            ValidationError: If the record is malformed
            NotFoundError: Missing goal under the `rollback` policy
        """
        correlation_id = correlation_id or create_correlation_id()
        tx = self._validator.transaction(raw)
        if not tx.notes:
            tx = tx.model_copy(update={"notes": tx.title})

        category = await self._ensure_category(tx, correlation_id)

        tx = await self._storage.create_transaction(tx)
        if self._audit_logger:
            await self._audit_logger.log_transaction_created(
                user_id=tx.user_id,
                transaction_id=tx.id,
                tx_type=tx.type.value,
                amount=tx.amount,
                category=tx.category,
                correlation_id=correlation_id,
            )

        result = TransactionResult(transaction=tx, category_created=category)
        if not tx.savings_goal_id:
            return result

        try:
            result.funding = await self._funding.fund_from_transaction(
                tx, correlation_id=correlation_id
            )
        except NotFoundError as e:
            if self._audit_logger:
                await self._audit_logger.log_goal_funding_failed(
                    user_id=tx.user_id,
                    goal_id=tx.savings_goal_id,
                    transaction_id=tx.id,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            if self._settings.goal_funding_failure_policy == "rollback":
                await self._storage.delete_transaction(tx.user_id, tx.id)
                if category is not None:
                    await self._storage.delete_category(tx.user_id, category.id)
                if self._audit_logger:
                    await self._audit_logger.log_transaction_rolled_back(
                        user_id=tx.user_id,
                        transaction_id=tx.id,
                        reason=str(e),
                        correlation_id=correlation_id,
                    )
                    if category is not None:
                        await self._audit_logger.log_record_deleted(
                            user_id=tx.user_id,
                            entity_type="category",
                            entity_id=category.id,
                            reason="rolled back with its transaction",
                            correlation_id=correlation_id,
                        )
                raise
            logger.warning(
                "goal_funding_skipped",
                transaction_id=tx.id,
                goal_id=tx.savings_goal_id,
            )
            result.funding_error = str(e)

        return result

    async def _ensure_category(
        self,
        tx: Transaction,
        correlation_id: UUID,
    ) -> Optional[Category]:
        categories = await self._read(self._storage.list_categories, tx.user_id)
        wanted = tx.category.lower()
        if any(c.name.lower() == wanted and c.type == tx.type for c in categories):
            return None

        category = await self._storage.create_category(Category(
            user_id=tx.user_id,
            name=tx.category,
            type=tx.type,
            color=CATEGORY_PALETTE[len(categories) % len(CATEGORY_PALETTE)],
        ))
        if self._audit_logger:
            await self._audit_logger.log_category_created(
                user_id=tx.user_id,
                category_id=category.id,
                name=category.name,
                correlation_id=correlation_id,
            )
        return category

    async def update_transaction(
        self,
        user_id: str,
        transaction_id: str,
        changes: Mapping[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> TransactionResult:
        """
        Edit an existing transaction.

        `changes` may use field names or store (camelCase) keys. `id` and
        `user_id` never change. A new category name gets a Category record
        just like on entry.

        Goals are NOT reconciled. In `incremental` mode a linked goal keeps the
        amount it was funded with at creation, whatever the edit; in
        `recompute` mode the next view reflects the edited amount or link.

        Raises:
            NotFoundError: If the transaction doesn't exist
            ValidationError: If a key is unknown or the result is malformed
        """
        correlation_id = correlation_id or create_correlation_id()
        existing = await self._read(self._storage.get_transaction, user_id, transaction_id)
        if existing is None:
            raise NotFoundError("transaction", transaction_id)

        updates = _field_updates(Transaction, changes)
        tx = self._validator.transaction({**existing.model_dump(), **updates})
        changed = sorted(
            name for name in updates if getattr(existing, name) != getattr(tx, name)
        )

        category = await self._ensure_category(tx, correlation_id)
        tx = await self._storage.update_transaction(tx)
        if self._audit_logger:
            await self._audit_logger.log_transaction_updated(
                user_id=user_id,
                transaction_id=tx.id,
                changed_fields=changed,
                correlation_id=correlation_id,
            )
        return TransactionResult(transaction=tx, category_created=category)

    async def delete_transaction(
        self,
        user_id: str,
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Delete a transaction.

        Like edits, deletes leave a linked goal's stored total alone; only
        `recompute` mode drops the amount from the goal.
        """
        return await self._delete(
            "transaction",
            self._storage.delete_transaction,
            user_id,
            transaction_id,
            correlation_id,
        )

    async def delete_recurring_rule(
        self,
        user_id: str,
        rule_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """Delete a rule. Transactions it already materialized stay."""
        return await self._delete(
            "rule",
            self._storage.delete_recurring_rule,
            user_id,
            rule_id,
            correlation_id,
        )

    async def delete_savings_goal(
        self,
        user_id: str,
        goal_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """Delete a goal. Linked transactions keep their `savings_goal_id`."""
        return await self._delete(
            "goal",
            self._storage.delete_savings_goal,
            user_id,
            goal_id,
            correlation_id,
        )

    async def delete_category(
        self,
        user_id: str,
        category_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Delete a category record.

        Transactions keep their category text; the next entry under that
        name creates the record again.
        """
        return await self._delete(
            "category",
            self._storage.delete_category,
            user_id,
            category_id,
            correlation_id,
        )

    async def _delete(self, entity_type, method, user_id, entity_id, correlation_id) -> bool:
        deleted = await method(user_id, entity_id)
        if deleted and self._audit_logger:
            await self._audit_logger.log_record_deleted(
                user_id=user_id,
                entity_type=entity_type,
                entity_id=entity_id,
                correlation_id=correlation_id,
            )
        logger.info("record_deleted", entity_type=entity_type, entity_id=entity_id, deleted=deleted)
        return deleted

    async def add_funds(
        self,
        user_id: str,
        goal_id: str,
        amount: float,
        correlation_id: Optional[UUID] = None,
    ) -> FundingResult:
        """
        Manually add money to a savings goal.

        Raises:
            NotFoundError: If the goal doesn't exist
            ValidationError: If `amount` is not positive
        """
        return await self._funding.add_funds(
            user_id,
            goal_id,
            amount,
            correlation_id=correlation_id or create_correlation_id(),
        )

    async def create_recurring_rule(
        self,
        raw: RawRecord,
        now: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> RecurringRule:
        """
        Save a new recurring rule.

        A rule without a first due date starts due at `now`, so the next
        sync materializes its first occurrence.
        """
        rule = self._validator.recurring_rule(raw)
        if rule.next_due_date is None:
            now = to_naive_utc(now) if now is not None else _utcnow()
            rule = rule.model_copy(update={"next_due_date": now})

        rule = await self._storage.create_recurring_rule(rule)
        if self._audit_logger:
            await self._audit_logger.log_rule_created(
                user_id=rule.user_id,
                rule_id=rule.id,
                frequency=rule.frequency.value,
                correlation_id=correlation_id,
            )
        return rule

    async def set_budget(self, user_id: str, category: str, limit: float) -> Budget:
        """
        Set the monthly limit for a category.

        Updates the user's existing budget for that exact category name, or
        creates one.
        """
        budgets = await self._read(self._storage.list_budgets, user_id)
        existing = next((b for b in budgets if b.category == category.strip()), None)
        if existing is not None:
            budget = existing.model_copy(update={"limit": limit})
            budget = self._validator.budget(budget.model_dump())
        else:
            budget = self._validator.budget({
                "user_id": user_id,
                "category": category,
                "limit": limit,
            })
        return await self._storage.save_budget(budget)

    async def create_savings_goal(self, raw: RawRecord) -> SavingsGoal:
        """Validate and save a new savings goal."""
        return await self._storage.create_savings_goal(
            self._validator.savings_goal(raw)
        )


def create_app_components(
    storage: Optional[LedgerStorageInterface] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
    settings: Optional[LedgerSettings] = None,
) -> LedgerSession:
    """
    Factory function to create a ready-to-use session.

    Args:
        storage: Ledger store. Defaults to an in-memory store.
        audit_storage: Where audit events are persisted. Defaults to an
                       in-memory store.
        settings: Ledger settings. Defaults to the configured ones.
    """
    storage = storage or InMemoryLedgerStorage()
    audit_logger = AuditLogger(audit_storage or InMemoryAuditStorage())
    return LedgerSession(
        storage=storage,
        settings=settings,
        audit_logger=audit_logger,
    )
