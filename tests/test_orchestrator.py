"""
Integration tests for the ledger session flows.

Everything runs against the in-memory store; no network or real backend.
"""

import pytest
from datetime import datetime

from tenacity import wait_none

from smart_expense.audit import AuditLogger, create_correlation_id
from smart_expense.config import LedgerSettings
from smart_expense.errors import NotFoundError, ValidationError
from smart_expense.models.audit import AuditEventType
from smart_expense.models.ledger import RecurringRule, SavingsGoal, TransactionType
from smart_expense.orchestrator import LedgerSession, create_app_components
from smart_expense.services.storage import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    StorageConnectionError,
    StorageError,
)


NOW = datetime(2026, 3, 10, 12, 0)


class FlakyStorage(InMemoryLedgerStorage):
    """Fails the first `failures` transaction reads with a connection error."""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures
        self.calls = 0

    async def list_transactions(self, user_id):
        self.calls += 1
        if self.calls <= self.failures:
            raise StorageConnectionError("store unavailable")
        return await super().list_transactions(user_id)


class ReadOnlyRuleStorage(InMemoryLedgerStorage):
    """Refuses to update recurring rules."""

    async def update_recurring_rule(self, rule):
        raise StorageError("rules are read-only")


def make_session(storage, audit_storage=None, **settings) -> LedgerSession:
    return LedgerSession(
        storage=storage,
        settings=LedgerSettings(**settings),
        audit_logger=AuditLogger(audit_storage) if audit_storage else None,
        retry_wait=wait_none(),
    )


def expense_record(**overrides) -> dict:
    record = {
        "userId": "u1",
        "title": "Groceries",
        "amount": 250000,
        "type": "expense",
        "category": "Food",
        "date": "2026-03-09T10:00:00",
    }
    record.update(overrides)
    return record


@pytest.fixture
def storage():
    return InMemoryLedgerStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def session(storage, audit_storage):
    return make_session(storage, audit_storage)


class TestSync:
    """Tests for the session start flow."""

    @pytest.mark.asyncio
    async def test_empty_ledger(self, session):
        """Test that an empty ledger yields a neutral view."""
        result = await session.sync("u1", now=NOW)

        assert result.materialized_count == 0
        assert result.view.summary.balance == 0
        assert result.view.health.score == 50
        assert len(result.view.daily_series) == 30
        assert result.view.goals == []

    @pytest.mark.asyncio
    async def test_salary_rule_catches_up(self, session, storage):
        """Test the salary rule two months behind end to end."""
        await storage.create_recurring_rule(RecurringRule(
            id="salary",
            user_id="u1",
            title="Salary",
            amount=5000000,
            type="income",
            category="Salary",
            frequency="monthly",
            next_due_date=datetime(2026, 1, 15),
        ))

        result = await session.sync("u1", now=NOW)

        assert result.materialized_count == 2
        stored = await storage.list_transactions("u1")
        assert len(stored) == 2
        assert {tx.category for tx in stored} == {"Salary"}

        [rule] = await storage.list_recurring_rules("u1")
        assert rule.next_due_date == datetime(2026, 3, 15)
        assert rule.last_processed == datetime(2026, 2, 15)

        assert result.view.summary.income == 10000000
        assert result.view.top_income[0].category == "Salary"
        assert result.view.trend.previous_income == 5000000

    @pytest.mark.asyncio
    async def test_second_sync_materializes_nothing(self, session, storage):
        """Test that a rule fires once per occurrence across sessions."""
        await storage.create_recurring_rule(RecurringRule(
            user_id="u1",
            title="Rent",
            amount=3000000,
            type="expense",
            category="Housing",
            frequency="monthly",
            next_due_date=datetime(2026, 3, 1),
        ))

        first = await session.sync("u1", now=NOW)
        second = await session.sync("u1", now=NOW)

        assert first.materialized_count == 1
        assert second.materialized_count == 0
        assert len(await storage.list_transactions("u1")) == 1

    @pytest.mark.asyncio
    async def test_sync_audit_trail(self, session, storage, audit_storage):
        """Test that one sync shares a correlation id across its events."""
        await storage.create_recurring_rule(RecurringRule(
            id="daily",
            user_id="u1",
            title="Coffee",
            amount=20000,
            type="expense",
            category="Food",
            frequency="daily",
            next_due_date=datetime(2026, 3, 9, 8, 0),
        ))
        await storage.create_recurring_rule(RecurringRule(
            id="broken",
            user_id="u1",
            title="Broken",
            amount=1,
            type="expense",
            category="Misc",
            frequency="daily",
        ))
        correlation_id = create_correlation_id()

        result = await session.sync("u1", now=NOW, correlation_id=correlation_id)

        assert result.materialized_count == 2
        assert [issue.rule_id for issue in result.scheduler.skipped] == ["broken"]
        events = await audit_storage.get_events_by_correlation_id(correlation_id)
        types = [e.event_type for e in events]
        assert types.count(AuditEventType.SNAPSHOT_LOADED) == 2
        assert AuditEventType.RULE_MATERIALIZED in types
        assert AuditEventType.RULE_SKIPPED in types
        assert AuditEventType.RULES_PROCESSED in types

        materialized = next(e for e in events if e.event_type == AuditEventType.RULE_MATERIALIZED)
        assert len(materialized.details["transaction_ids"]) == 2

    @pytest.mark.asyncio
    async def test_no_reload_without_materialization(self, session, audit_storage):
        """Test that the snapshot is loaded once when nothing fired."""
        correlation_id = create_correlation_id()
        await session.sync("u1", now=NOW, correlation_id=correlation_id)
        events = await audit_storage.get_events_by_correlation_id(correlation_id)
        loads = [e for e in events if e.event_type == AuditEventType.SNAPSHOT_LOADED]
        assert len(loads) == 1

    @pytest.mark.asyncio
    async def test_invalid_raw_rule_is_reported(self, session, audit_storage):
        """Test that a malformed stored rule becomes a failure, not a crash."""
        raw = {
            "id": "bad",
            "userId": "u1",
            "title": "Gym",
            "amount": 100,
            "type": "expense",
            "category": "Health",
            "frequency": "biweekly",
            "nextDueDate": "2026-03-01T00:00:00",
        }
        result = await session.process_recurring_rules("u1", NOW, rules=[raw])

        assert result.count == 0
        assert result.failures[0].rule_id == "bad"
        events = await audit_storage.get_recent_events()
        assert any(e.event_type == AuditEventType.RULE_FAILED for e in events)

    @pytest.mark.asyncio
    async def test_view_uses_current_month_budgets(self, session, storage):
        """Test that budget spend comes from this month's transactions."""
        await session.set_budget("u1", "Food", 1000000)
        await session.add_transaction(expense_record(date="2026-03-02T09:00:00"))
        await session.add_transaction(expense_record(date="2026-02-02T09:00:00"))

        result = await session.sync("u1", now=NOW)

        assert result.view.budgets.total_spent == 250000
        assert result.view.budgets.days_remaining_in_month == 21
        assert [tx.date.month for tx in result.view.recent] == [3, 2]


class TestAddTransaction:
    """Tests for transaction entry."""

    @pytest.mark.asyncio
    async def test_creates_category_for_new_name(self, session, storage):
        """Test that a never-seen category name gets a record."""
        result = await session.add_transaction(expense_record())

        assert result.category_created is not None
        assert result.category_created.name == "Food"
        assert result.category_created.type == TransactionType.EXPENSE
        assert result.transaction.notes == "Groceries"
        assert len(await storage.list_categories("u1")) == 1

    @pytest.mark.asyncio
    async def test_category_match_ignores_case(self, session, storage):
        """Test that 'food' reuses the existing 'Food' category."""
        await session.add_transaction(expense_record())
        result = await session.add_transaction(expense_record(category="food"))

        assert result.category_created is None
        assert result.transaction.category == "food"
        assert len(await storage.list_categories("u1")) == 1

    @pytest.mark.asyncio
    async def test_category_is_per_type(self, session, storage):
        """Test that the same name under the other type is a new category."""
        await session.add_transaction(expense_record(category="Bonus"))
        result = await session.add_transaction(expense_record(category="Bonus", type="income"))

        assert result.category_created is not None
        categories = await storage.list_categories("u1")
        assert len(categories) == 2
        assert categories[0].color != categories[1].color

    @pytest.mark.asyncio
    async def test_invalid_transaction_is_not_saved(self, session, storage):
        """Test that validation happens before any write."""
        with pytest.raises(ValidationError):
            await session.add_transaction(expense_record(amount=0))
        assert await storage.list_transactions("u1") == []
        assert await storage.list_categories("u1") == []

    @pytest.mark.asyncio
    async def test_funds_linked_goal(self, session, storage):
        """Test that a linked transaction funds its goal."""
        goal = await session.create_savings_goal({
            "userId": "u1",
            "name": "Holiday",
            "targetAmount": 1000000,
            "deadline": "2026-12-01T00:00:00",
        })
        result = await session.add_transaction(expense_record(savingsGoalId=goal.id))

        assert result.funding is not None
        assert result.funding.goal.current_amount == 250000
        assert result.funding_error is None
        stored = await storage.get_savings_goal("u1", goal.id)
        assert stored.current_amount == 250000

    @pytest.mark.asyncio
    async def test_missing_goal_proceeds_by_default(self, session, storage, audit_storage):
        """Test that the transaction is kept and the failure reported."""
        result = await session.add_transaction(expense_record(savingsGoalId="missing"))

        assert result.funding is None
        assert "missing" in result.funding_error
        assert len(await storage.list_transactions("u1")) == 1
        events = await audit_storage.get_recent_events()
        assert any(e.event_type == AuditEventType.GOAL_FUNDING_FAILED for e in events)

    @pytest.mark.asyncio
    async def test_missing_goal_rollback_policy(self, storage, audit_storage):
        """Test that the rollback policy removes the transaction and raises."""
        session = make_session(
            storage,
            audit_storage,
            goal_funding_failure_policy="rollback",
        )
        with pytest.raises(NotFoundError):
            await session.add_transaction(expense_record(savingsGoalId="missing"))

        assert await storage.list_transactions("u1") == []
        assert await storage.list_categories("u1") == []
        events = await audit_storage.get_recent_events()
        assert [e.event_type for e in events[:2]] == [
            AuditEventType.RECORD_DELETED,
            AuditEventType.TRANSACTION_ROLLED_BACK,
        ]
        assert events[0].entity_type == "category"

    @pytest.mark.asyncio
    async def test_rollback_keeps_existing_category(self, storage):
        """Test that only a category created by the failed entry is removed."""
        session = make_session(storage, goal_funding_failure_policy="rollback")
        await session.add_transaction(expense_record())

        with pytest.raises(NotFoundError):
            await session.add_transaction(expense_record(savingsGoalId="missing"))

        assert [c.name for c in await storage.list_categories("u1")] == ["Food"]
        assert len(await storage.list_transactions("u1")) == 1

    @pytest.mark.asyncio
    async def test_overlong_category_is_rejected_before_any_write(self, session, storage):
        """Test that a category too long for a Category record is a ValidationError."""
        with pytest.raises(ValidationError) as exc_info:
            await session.add_transaction(expense_record(category="x" * 101))

        assert "category" in exc_info.value.fields
        assert await storage.list_transactions("u1") == []
        assert await storage.list_categories("u1") == []

    @pytest.mark.asyncio
    async def test_longest_category_completes_every_step(self, session, storage, audit_storage):
        """Test that a maximal category is saved, audited and funds its goal."""
        goal = await session.create_savings_goal({
            "userId": "u1",
            "name": "Holiday",
            "targetAmount": 1000000,
            "deadline": "2026-12-01T00:00:00",
        })
        category = "x" * 100

        result = await session.add_transaction(
            expense_record(category=category, savingsGoalId=goal.id)
        )

        assert result.category_created.name == category
        assert result.funding.goal.current_amount == 250000
        events = await audit_storage.get_recent_events()
        created = next(e for e in events if e.event_type == AuditEventType.TRANSACTION_CREATED)
        assert created.details["category"] == category


class TestGoalsAndRules:
    """Tests for goal, budget and rule maintenance."""

    @pytest.mark.asyncio
    async def test_add_funds(self, session, storage):
        """Test manual funding through the session."""
        goal = await session.create_savings_goal(SavingsGoal(
            user_id="u1",
            name="Car",
            target_amount=100,
            deadline=datetime(2027, 1, 1),
        ))
        result = await session.add_funds("u1", goal.id, 100)

        assert result.completed_now
        stored = await storage.get_savings_goal("u1", goal.id)
        assert stored.manual_amount == 100

    @pytest.mark.asyncio
    async def test_add_funds_unknown_goal(self, session):
        """Test that funding an unknown goal raises."""
        with pytest.raises(NotFoundError):
            await session.add_funds("u1", "nope", 10)

    @pytest.mark.asyncio
    async def test_recompute_mode_rebuilds_goal_totals(self, storage):
        """Test that recompute mode ignores the stored running total."""
        session = make_session(storage, goal_funding_mode="recompute")
        goal = await session.create_savings_goal(SavingsGoal(
            id="g1",
            user_id="u1",
            name="Car",
            target_amount=1000,
            current_amount=900,
            manual_amount=100,
            deadline=datetime(2027, 1, 1),
        ))
        await session.add_transaction(expense_record(amount=200, savingsGoalId=goal.id))

        result = await session.sync("u1", now=NOW)

        [progress] = result.view.goals
        assert progress.progress_pct == 30
        assert progress.remaining == 700

    @pytest.mark.asyncio
    async def test_new_rule_defaults_to_due_now(self, session, storage):
        """Test that a rule without a first due date fires on the next sync."""
        rule = await session.create_recurring_rule(
            {
                "userId": "u1",
                "title": "Netflix",
                "amount": 186000,
                "type": "expense",
                "category": "Entertainment",
                "frequency": "monthly",
            },
            now=NOW,
        )
        assert rule.next_due_date == NOW

        result = await session.sync("u1", now=NOW)

        assert result.materialized_count == 1
        [stored] = await storage.list_recurring_rules("u1")
        assert stored.next_due_date == datetime(2026, 4, 10, 12, 0)

    @pytest.mark.asyncio
    async def test_create_rule_rejects_bad_frequency(self, session):
        """Test validation of new rules."""
        with pytest.raises(ValidationError):
            await session.create_recurring_rule({
                "userId": "u1",
                "title": "Bad",
                "amount": 1,
                "type": "expense",
                "category": "Misc",
                "frequency": "hourly",
            })

    @pytest.mark.asyncio
    async def test_set_budget_updates_existing(self, session, storage):
        """Test that a second limit for a category replaces the first."""
        first = await session.set_budget("u1", "Food", 500)
        second = await session.set_budget("u1", "Food", 800)
        await session.set_budget("u1", "Transport", 200)

        assert first.id == second.id
        budgets = {b.category: b.limit for b in await storage.list_budgets("u1")}
        assert budgets == {"Food": 800, "Transport": 200}


class TestStoreRetries:
    """Tests for retrying store reads."""

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self):
        """Test that a read succeeds after a connection error."""
        storage = FlakyStorage(failures=2)
        session = make_session(storage)

        snapshot = await session.load_snapshot("u1")

        assert snapshot.transactions == []
        assert storage.calls == 3

    @pytest.mark.asyncio
    async def test_persistent_failure_propagates(self):
        """Test that the error surfaces after the configured attempts."""
        storage = FlakyStorage(failures=10)
        session = make_session(storage, storage_retry_attempts=2)

        with pytest.raises(StorageConnectionError):
            await session.load_snapshot("u1")
        assert storage.calls == 2


class TestFactory:
    """Tests for component wiring."""

    @pytest.mark.asyncio
    async def test_create_app_components(self):
        """Test that the factory builds a working session."""
        session = create_app_components(settings=LedgerSettings())
        result = await session.add_transaction(expense_record())
        view = (await session.sync("u1", now=NOW)).view
        assert view.summary.expense == result.transaction.amount


class TestPersistFailures:
    """Tests for store write failures during a sync."""

    @pytest.mark.asyncio
    async def test_rule_write_failure_is_audited_and_raised(self, audit_storage):
        """Test that a failed rule update surfaces with a system error event."""
        storage = ReadOnlyRuleStorage()
        session = make_session(storage, audit_storage)
        await storage.create_recurring_rule(RecurringRule(
            id="rent",
            user_id="u1",
            title="Rent",
            amount=100,
            type="expense",
            category="Housing",
            frequency="monthly",
            next_due_date=datetime(2026, 3, 1),
        ))

        with pytest.raises(StorageError):
            await session.sync("u1", now=NOW)

        events = await audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.SYSTEM_ERROR
        assert events[0].details["rule_id"] == "rent"
        assert len(events[0].details["transaction_ids"]) == 1

    @pytest.mark.asyncio
    async def test_missing_rule_on_update_is_audited_and_raised(self, session, storage, audit_storage):
        """Test that a NotFoundError from the rule write is audited like any store failure."""
        unstored = RecurringRule(
            id="ghost",
            user_id="u1",
            title="Gym",
            amount=100,
            type="expense",
            category="Health",
            frequency="monthly",
            next_due_date=datetime(2026, 1, 1),
        )

        with pytest.raises(NotFoundError):
            await session.process_recurring_rules("u1", NOW, rules=[unstored])

        events = await audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.SYSTEM_ERROR
        assert events[0].details["rule_id"] == "ghost"
        assert len(events[0].details["transaction_ids"]) == 3
        assert len(await storage.list_transactions("u1")) == 3


class TestRuleOwnership:
    """Tests for rules handed to the scheduler directly."""

    @pytest.mark.asyncio
    async def test_foreign_rule_is_reported_not_materialized(self, session, storage):
        """Test that another user's rule never fires under any user id."""
        theirs = await storage.create_recurring_rule(RecurringRule(
            id="theirs",
            user_id="u2",
            title="Rent",
            amount=100,
            type="expense",
            category="Housing",
            frequency="monthly",
            next_due_date=datetime(2026, 3, 1),
        ))

        result = await session.process_recurring_rules("u1", NOW, rules=[theirs])

        assert result.count == 0
        assert [issue.rule_id for issue in result.failures] == ["theirs"]
        assert await storage.list_transactions("u1") == []
        assert await storage.list_transactions("u2") == []
        [stored] = await storage.list_recurring_rules("u2")
        assert stored.next_due_date == datetime(2026, 3, 1)


async def _goal_with_linked_expense(session):
    goal = await session.create_savings_goal({
        "id": "g1",
        "userId": "u1",
        "name": "Holiday",
        "targetAmount": 1000000,
        "deadline": "2026-12-01T00:00:00",
    })
    result = await session.add_transaction(expense_record(savingsGoalId=goal.id))
    return goal, result.transaction


class TestEditsAndDeletes:
    """Tests for editing and deleting records."""

    @pytest.mark.asyncio
    async def test_update_transaction(self, session, storage, audit_storage):
        """Test that edits accept store keys and keep identity."""
        created = (await session.add_transaction(expense_record())).transaction

        result = await session.update_transaction(
            "u1",
            created.id,
            {"amount": 300000, "category": "Dining", "userId": "someone-else"},
        )

        assert result.transaction.id == created.id
        assert result.transaction.user_id == "u1"
        assert result.transaction.amount == 300000
        assert result.category_created.name == "Dining"
        [stored] = await storage.list_transactions("u1")
        assert stored.category == "Dining"

        events = await audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.TRANSACTION_UPDATED
        assert events[0].details["changed_fields"] == ["amount", "category"]

    @pytest.mark.asyncio
    async def test_update_rejects_bad_input(self, session, storage):
        """Test that unknown keys and invalid values leave the record alone."""
        created = (await session.add_transaction(expense_record())).transaction

        with pytest.raises(ValidationError):
            await session.update_transaction("u1", created.id, {"colour": "red"})
        with pytest.raises(ValidationError):
            await session.update_transaction("u1", created.id, {"amount": -5})

        [stored] = await storage.list_transactions("u1")
        assert stored.amount == 250000

    @pytest.mark.asyncio
    async def test_update_unknown_transaction(self, session):
        """Test that editing a missing transaction raises."""
        with pytest.raises(NotFoundError):
            await session.update_transaction("u1", "nope", {"amount": 1})

    @pytest.mark.asyncio
    async def test_edit_does_not_reconcile_goal_in_incremental_mode(self, session, storage):
        """Test that the stored goal total keeps the amount funded at entry."""
        goal, tx = await _goal_with_linked_expense(session)

        await session.update_transaction("u1", tx.id, {"amount": 100000})

        stored = await storage.get_savings_goal("u1", goal.id)
        assert stored.current_amount == 250000
        [progress] = (await session.sync("u1", now=NOW)).view.goals
        assert progress.progress_pct == 25

    @pytest.mark.asyncio
    async def test_edit_is_reflected_in_recompute_mode(self, storage):
        """Test that recompute mode derives the goal total from the edited amount."""
        session = make_session(storage, goal_funding_mode="recompute")
        goal, tx = await _goal_with_linked_expense(session)

        await session.update_transaction("u1", tx.id, {"amount": 100000})

        stored = await storage.get_savings_goal("u1", goal.id)
        assert stored.current_amount == 250000
        [progress] = (await session.sync("u1", now=NOW)).view.goals
        assert progress.progress_pct == pytest.approx(10)

    @pytest.mark.asyncio
    async def test_delete_linked_transaction_in_both_modes(self, storage):
        """Test that only recompute mode drops a deleted transaction from its goal."""
        increment = make_session(storage)
        goal, tx = await _goal_with_linked_expense(increment)

        assert await increment.delete_transaction("u1", tx.id) is True

        [progress] = (await increment.sync("u1", now=NOW)).view.goals
        assert progress.progress_pct == 25

        recompute = make_session(storage, goal_funding_mode="recompute")
        [progress] = (await recompute.sync("u1", now=NOW)).view.goals
        assert progress.progress_pct == 0

    @pytest.mark.asyncio
    async def test_deletes_are_audited(self, session, storage, audit_storage):
        """Test that each record type can be deleted and the deletion logged."""
        goal, tx = await _goal_with_linked_expense(session)
        rule = await session.create_recurring_rule(
            {
                "userId": "u1",
                "title": "Rent",
                "amount": 100,
                "type": "expense",
                "category": "Housing",
                "frequency": "monthly",
            },
            now=NOW,
        )
        [category] = await storage.list_categories("u1")

        assert await session.delete_recurring_rule("u1", rule.id) is True
        assert await session.delete_savings_goal("u1", goal.id) is True
        assert await session.delete_category("u1", category.id) is True
        assert await session.delete_savings_goal("u1", goal.id) is False

        events = await audit_storage.get_recent_events()
        deleted = [e for e in events if e.event_type == AuditEventType.RECORD_DELETED]
        assert [e.entity_type for e in deleted] == ["category", "goal", "rule"]

        [kept] = await storage.list_transactions("u1")
        assert kept.savings_goal_id == goal.id
        assert await storage.list_recurring_rules("u1") == []
