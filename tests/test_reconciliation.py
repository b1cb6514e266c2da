"""Tests for cascade delete and the reconciliation pass."""

import asyncio
from decimal import Decimal
from uuid import uuid4

import pytest

from split_ledger.engine import ConsistencyGapError, PermissionDeniedError
from split_ledger.models import AuditEventType, Debt, DebtType, UserContext
from split_ledger.services.storage import NotFoundError, StorageError


def orphan_debt(creditor="me", debtor="f9") -> Debt:
    return Debt(
        creditor=creditor,
        debtor=debtor,
        amount=Decimal("12.00"),
        description="Split expense: gone",
        type=DebtType.SPLIT,
        metadata={"split_expense_id": str(uuid4())},
    )


class TestCascadeDelete:
    """Deleting a split expense together with its debts."""

    def test_removes_expense_and_all_debts(self, flow, ctx, dinner, ledger, store):
        created = asyncio.run(flow.create_split_expense(ctx, dinner))
        result = asyncio.run(flow.delete_split_expense(ctx, created.expense.id))

        assert result.expense_deleted is True
        assert (result.debts_found, result.debts_deleted, result.debts_failed) == (2, 2, 0)
        assert result.fully_consistent
        assert asyncio.run(store.get_expense(created.expense.id)) is None
        assert asyncio.run(flow.fetch_debts(ctx, "owed-to-me")) == []

    def test_summary_after_delete(self, flow, ctx, dinner):
        before = asyncio.run(flow.compute_summary(ctx))
        created = asyncio.run(flow.create_split_expense(ctx, dinner))
        asyncio.run(flow.delete_split_expense(ctx, created.expense.id))
        after = asyncio.run(flow.compute_summary(ctx))

        assert after.total_owed_to_me == Decimal("0.00")
        assert after.owed_to_me_count == 0
        assert after.owed_by_me_count == 0
        assert after.integration_health.orphaned_debts == before.integration_health.orphaned_debts

    def test_leaves_unrelated_debts_alone(self, flow, ctx, dinner, ledger):
        first = asyncio.run(flow.create_split_expense(ctx, dinner))
        second = asyncio.run(flow.create_split_expense(ctx, dict(dinner, description="Lunch")))
        asyncio.run(flow.delete_split_expense(ctx, first.expense.id))

        remaining = asyncio.run(flow.fetch_debts(ctx, "owed-to-me"))
        assert {d.split_expense_id for d in remaining} == {str(second.expense.id)}

    def test_missing_expense_raises_without_writes(self, flow, ctx, ledger):
        with pytest.raises(NotFoundError):
            asyncio.run(flow.delete_split_expense(ctx, uuid4()))
        assert ledger.delete_calls == 0

    def test_failed_lookup_raises_without_writes(self, flow, ctx, dinner, ledger, store):
        created = asyncio.run(flow.create_split_expense(ctx, dinner))
        ledger.fail_lookup = True

        with pytest.raises(StorageError):
            asyncio.run(flow.delete_split_expense(ctx, created.expense.id))
        assert ledger.delete_calls == 0
        assert asyncio.run(store.get_expense(created.expense.id)) is not None

    def test_partial_debt_failure_reports_orphans(self, flow, ctx, dinner, ledger, audit_storage):
        created = asyncio.run(flow.create_split_expense(ctx, dinner))
        stuck = created.debts[0].id
        ledger.fail_delete_for = {stuck}

        result = asyncio.run(flow.delete_split_expense(ctx, created.expense.id))

        assert result.expense_deleted is True
        assert (result.debts_deleted, result.debts_failed) == (1, 1)
        assert not result.fully_consistent
        types = [e.event_type for e in audit_storage.events]
        assert AuditEventType.CONSISTENCY_GAP in types
        assert AuditEventType.DEBT_DELETION_FAILED in types

        summary = asyncio.run(flow.compute_summary(ctx))
        assert summary.integration_health.orphaned_debts == 1

    def test_expense_delete_failure_raises_gap(self, flow, ctx, dinner, store, audit_storage):
        created = asyncio.run(flow.create_split_expense(ctx, dinner))
        store.fail_delete = True

        with pytest.raises(ConsistencyGapError) as exc_info:
            asyncio.run(flow.delete_split_expense(ctx, created.expense.id))

        partial = exc_info.value.result
        assert partial.expense_deleted is False
        assert partial.debts_deleted == 2
        assert audit_storage.events[-1].event_type == AuditEventType.CONSISTENCY_GAP

    def test_other_users_cannot_delete(self, flow, ctx, dinner):
        created = asyncio.run(flow.create_split_expense(ctx, dinner))
        stranger = UserContext(user_id="mallory")
        with pytest.raises(PermissionDeniedError):
            asyncio.run(flow.delete_split_expense(stranger, created.expense.id))


class TestReconcile:
    """The orphan and missing-allocation pass."""

    def test_consistent_ledger(self, flow, ctx, dinner):
        asyncio.run(flow.create_split_expense(ctx, dinner))
        report = asyncio.run(flow.reconcile(ctx))

        assert report.is_consistent
        assert report.expenses_checked == 1
        assert report.debts_checked == 2

    def test_reports_orphans_without_repair(self, flow, ctx, ledger):
        orphan = asyncio.run(ledger.create_debt(orphan_debt()))
        report = asyncio.run(flow.reconcile(ctx))

        assert report.orphaned_debt_ids == [orphan.id]
        assert report.repaired_debt_ids == []
        assert asyncio.run(ledger.get_debt(orphan.id)) is not None

    def test_repair_deletes_orphans(self, flow, ctx, ledger, audit_storage):
        orphan = asyncio.run(ledger.create_debt(orphan_debt()))
        report = asyncio.run(flow.reconcile(ctx, repair=True))

        assert report.repaired_debt_ids == [orphan.id]
        assert asyncio.run(ledger.get_debt(orphan.id)) is None
        types = [e.event_type for e in audit_storage.events]
        assert AuditEventType.ORPHANED_DEBTS_DETECTED in types
        assert AuditEventType.ORPHANED_DEBT_REPAIRED in types

    def test_repair_failures_are_counted(self, flow, ctx, ledger):
        orphan = asyncio.run(ledger.create_debt(orphan_debt()))
        ledger.fail_delete_for = {orphan.id}
        report = asyncio.run(flow.reconcile(ctx, repair=True))

        assert report.repair_failures == 1
        assert report.repaired_debt_ids == []

    def test_reports_missing_allocations(self, flow, ctx, dinner, ledger):
        ledger.fail_create_for = {"f2"}
        created = asyncio.run(flow.create_split_expense(ctx, dinner))
        report = asyncio.run(flow.reconcile(ctx))

        assert len(report.missing_allocations) == 1
        assert report.missing_allocations[0].expense_id == created.expense.id
        assert report.missing_allocations[0].missing_participants == ["f2"]

    def test_expense_paid_by_friend_is_not_missing(self, flow, ctx, dinner):
        dinner["paid_by"] = "f1"
        asyncio.run(flow.create_split_expense(ctx, dinner))
        report = asyncio.run(flow.reconcile(ctx))

        assert report.expenses_checked == 1
        assert report.missing_allocations == []

    def test_manual_debts_are_never_orphans(self, flow, ctx):
        asyncio.run(flow.create_debt(ctx, {
            "counterparty_id": "f1",
            "amount": "20",
            "description": "Lunch",
            "direction": "owe-me",
        }))
        report = asyncio.run(flow.reconcile(ctx))
        assert report.orphaned_debt_ids == []

    def test_run_periodically(self, flow, ctx, ledger, store):
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        store.fail_list = True
        reports = asyncio.run(flow.reconciliation.run_periodically(
            ctx, interval_seconds=5, iterations=3, sleep=fake_sleep,
        ))
        # Failed passes are logged, not collected
        assert reports == []
        assert sleeps == [5, 5]

        store.fail_list = False
        asyncio.run(ledger.create_debt(orphan_debt()))
        reports = asyncio.run(flow.reconciliation.run_periodically(
            ctx, interval_seconds=5, repair=True, iterations=2, sleep=fake_sleep,
        ))
        assert len(reports[0].repaired_debt_ids) == 1
        assert reports[1].is_consistent

    def test_run_periodically_zero_interval(self, flow, ctx):
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        asyncio.run(flow.reconciliation.run_periodically(
            ctx, interval_seconds=0, iterations=3, sleep=fake_sleep,
        ))
        assert sleeps == [0, 0]
