"""Tests for the balance aggregator."""

import asyncio
from decimal import Decimal

import pytest

from split_ledger.engine import BalanceAggregator
from split_ledger.models import AuditEventType, DebtDirection


@pytest.fixture
def aggregator(store, ledger, audit_logger):
    return BalanceAggregator(store, ledger, audit_logger=audit_logger)


def manual(flow, ctx, direction, amount, counterparty="f7"):
    return asyncio.run(flow.create_debt(ctx, {
        "counterparty_id": counterparty,
        "amount": amount,
        "description": "Manual",
        "direction": direction,
    }))


class TestComputeSummary:
    """Totals, partitions and degraded reads."""

    def test_empty_ledger(self, aggregator, ctx):
        summary = asyncio.run(aggregator.compute_summary(ctx))

        assert summary.net_balance == Decimal("0.00")
        assert summary.total_debts == 0
        assert summary.split_expense_count == 0
        assert summary.is_complete

    def test_partitions_split_and_regular(self, flow, aggregator, ctx, dinner):
        asyncio.run(flow.create_split_expense(ctx, dinner))
        manual(flow, ctx, "owe-me", "50")
        manual(flow, ctx, "i-owe", "30.50")

        summary = asyncio.run(aggregator.compute_summary(ctx))

        assert summary.total_owed_to_me == Decimal("250.00")
        assert summary.total_owed_by_me == Decimal("30.50")
        assert summary.net_balance == Decimal("219.50")
        assert summary.net_balance == summary.total_owed_to_me - summary.total_owed_by_me
        assert summary.split_expense_amount == Decimal("200.00")
        assert summary.regular_amount == Decimal("50.00")
        assert (summary.split_expense_debt_count, summary.regular_debt_count) == (2, 1)
        assert summary.split_expense_count == 1
        assert summary.total_split_expense_amount == Decimal("300.00")
        assert summary.split_expense_contribution == Decimal("80.0")
        assert summary.integration_health.split_expenses_with_debts == 1
        assert summary.integration_health.orphaned_debts == 0

    def test_paid_debts_do_not_count(self, flow, aggregator, ctx):
        debt = manual(flow, ctx, "owe-me", "40")
        manual(flow, ctx, "owe-me", "10", counterparty="f8")
        asyncio.run(flow.mark_debt_paid(ctx, debt.id))

        summary = asyncio.run(aggregator.compute_summary(ctx))

        assert summary.total_owed_to_me == Decimal("10.00")
        assert summary.owed_to_me_count == 1

    def test_failed_source_degrades_to_empty(self, flow, aggregator, ctx, dinner, ledger, audit_storage):
        asyncio.run(flow.create_split_expense(ctx, dinner))
        manual(flow, ctx, "i-owe", "30")
        ledger.fail_list = {DebtDirection.OWED_BY_ME}

        summary = asyncio.run(aggregator.compute_summary(ctx))

        assert summary.degraded_sources == ["owed_by_me"]
        assert summary.total_owed_by_me == Decimal("0.00")
        assert summary.total_owed_to_me == Decimal("200.00")
        assert not summary.is_complete
        assert audit_storage.events[-1].event_type == AuditEventType.SUMMARY_DEGRADED

    def test_missing_expenses_zero_link_counts(self, flow, aggregator, ctx, dinner, store):
        asyncio.run(flow.create_split_expense(ctx, dinner))
        store.fail_list = True

        summary = asyncio.run(aggregator.compute_summary(ctx))

        assert summary.degraded_sources == ["split_expenses"]
        assert summary.integration_health.orphaned_debts == 0
        assert summary.integration_health.split_expenses_with_debts == 0
        assert summary.split_expense_amount == Decimal("200.00")

    def test_every_source_failing(self, aggregator, ctx, ledger, store):
        ledger.fail_list = {DebtDirection.OWED_TO_ME, DebtDirection.OWED_BY_ME}
        store.fail_list = True

        summary = asyncio.run(aggregator.compute_summary(ctx))

        assert summary.degraded_sources == ["owed_to_me", "owed_by_me", "split_expenses"]
        assert summary.net_balance == Decimal("0.00")
