"""
Tests for Split Ledger models

Test strategy:
1. Unit tests for individual components (models, money, validators)
2. Flow tests against in-memory backends with failing doubles
3. No real API calls in tests
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from split_ledger.models import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
    BalanceSummary,
    CascadeDeleteResult,
    Debt,
    DebtStatus,
    DebtType,
    SplitExpense,
    SplitShare,
    SplitType,
    UserContext,
)
from split_ledger.money import equal_share, qround, to_decimal, within_tolerance


class TestMoney:
    """Tests for the Decimal helpers."""

    def test_qround_half_up(self):
        assert qround(Decimal("0.005")) == Decimal("0.01")
        assert qround(Decimal("33.334")) == Decimal("33.33")

    def test_to_decimal_parses_strings_and_numbers(self):
        assert to_decimal("12.50") == Decimal("12.50")
        assert to_decimal(" 7 ") == Decimal("7")
        assert to_decimal(3) == Decimal("3")

    def test_to_decimal_rejects_garbage(self):
        for value in (None, "", "  ", "abc", True, float("nan"), "Infinity"):
            assert to_decimal(value) is None

    def test_equal_share_counts_the_payer(self):
        assert equal_share(Decimal("300"), 2) == Decimal("100.00")
        assert equal_share(Decimal("100"), 2) == Decimal("33.33")
        assert equal_share(Decimal("200"), 2) == Decimal("66.66")
        assert equal_share(Decimal("0.02"), 3) == Decimal("0.00")

    def test_within_tolerance(self):
        assert within_tolerance(Decimal("100.00"), Decimal("100.01"))
        assert not within_tolerance(Decimal("100.00"), Decimal("100.05"))


class TestLedgerModels:
    """Tests for split expense and debt models."""

    def test_user_context_resolves_self(self):
        ctx = UserContext(user_id="me")
        assert ctx.resolve("self") == "me"
        assert ctx.resolve("f1") == "f1"

    def test_split_share_needs_identifier(self):
        with pytest.raises(ValueError):
            SplitShare(amount=Decimal("10"))

    def test_split_share_key_prefers_id(self):
        share = SplitShare(participant_id="f1", participant_email="f1@example.com", amount=Decimal("5"))
        assert share.participant_key == "f1"
        share = SplitShare(participant_email="f2@example.com", amount=Decimal("5"))
        assert share.participant_key == "f2@example.com"

    def test_split_share_rejects_non_positive_amount(self):
        with pytest.raises(ValueError):
            SplitShare(participant_id="f1", amount=Decimal("0"))

    def test_split_expense_participants_exclude_payer(self):
        expense = SplitExpense(
            created_by="me",
            description="Dinner",
            total_amount=Decimal("300"),
            paid_by="me",
            split_type=SplitType.EQUAL,
            splits=[
                SplitShare(participant_id="f1", amount=Decimal("100")),
                SplitShare(participant_id="f2", amount=Decimal("100")),
                SplitShare(participant_id="me", amount=Decimal("100")),
            ],
        )
        assert [s.participant_key for s in expense.participants] == ["f1", "f2"]
        assert expense.participant_count == 3
        assert expense.split_total == Decimal("300.00")
        assert expense.allocation_key(expense.splits[0]) == f"{expense.id}:f1"

    def test_debt_rejects_self_debt(self):
        with pytest.raises(ValueError):
            Debt(creditor="me", debtor="me", amount=Decimal("1"), description="x")

    def test_split_debt_requires_expense_link(self):
        with pytest.raises(ValueError):
            Debt(
                creditor="me",
                debtor="f1",
                amount=Decimal("1"),
                description="x",
                type=DebtType.SPLIT,
            )

    def test_split_debt_exposes_link(self):
        expense_id = uuid4()
        debt = Debt(
            creditor="me",
            debtor="f1",
            amount=Decimal("100.004"),
            description="Split expense: Dinner",
            type=DebtType.SPLIT,
            metadata={"split_expense_id": str(expense_id), "allocation_key": f"{expense_id}:f1"},
        )
        assert debt.amount == Decimal("100.00")
        assert debt.split_expense_id == str(expense_id)
        assert debt.allocation_key == f"{expense_id}:f1"
        assert debt.status == DebtStatus.PENDING
        assert debt.involves("f1")
        assert not debt.involves("f2")


class TestResultModels:
    """Tests for operation result models."""

    def test_cascade_result_consistency(self):
        result = CascadeDeleteResult(expense_id=uuid4(), expense_deleted=True, debts_found=2, debts_deleted=2)
        assert result.fully_consistent
        result.debts_failed = 1
        assert not result.fully_consistent

    def test_balance_summary_contribution(self):
        summary = BalanceSummary(
            total_owed_to_me=Decimal("200.00"),
            split_expense_amount=Decimal("50.00"),
        )
        assert summary.split_expense_contribution == Decimal("25.0")
        assert BalanceSummary().split_expense_contribution == Decimal("0.0")
        assert BalanceSummary().is_complete


class TestAuditModels:
    """Tests for audit models."""

    def test_audit_event_creation(self):
        event = AuditEvent(
            event_type=AuditEventType.DEBT_CREATED,
            description="Debt created",
        )
        assert event.severity == AuditSeverity.INFO
        assert event.event_id is not None

    def test_audit_event_to_log_dict(self):
        entity_id = uuid4()
        event = AuditEvent(
            event_type=AuditEventType.DEBT_PAID,
            entity_type="debt",
            entity_id=entity_id,
            description="Debt marked as paid",
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "debt_paid"
        assert log_dict["entity_id"] == str(entity_id)

    def test_audit_event_to_sheets_row(self):
        event = AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description="boom",
            details={"amount": Decimal("1.50")},
        )
        row = event.to_sheets_row()
        assert len(row) == 11
        assert row[2] == "system_error"
        assert row[9] == '{"amount": "1.50"}'

    def test_builder_consistency_gap_is_error(self):
        expense_id = uuid4()
        event = AuditEventBuilder.consistency_gap(
            expense_id=expense_id,
            reason="expense delete failed",
            counts={"debts_deleted": 2},
            correlation_id=None,
        )
        assert event.event_type == AuditEventType.CONSISTENCY_GAP
        assert event.severity == AuditSeverity.ERROR
        assert event.entity_id == expense_id

    def test_builder_allocation_severity_follows_failures(self):
        ok = AuditEventBuilder.allocation_completed(uuid4(), created=2, failed=0, skipped=0, correlation_id=None)
        partial = AuditEventBuilder.allocation_completed(uuid4(), created=1, failed=1, skipped=0, correlation_id=None)
        assert ok.severity == AuditSeverity.INFO
        assert partial.severity == AuditSeverity.WARNING
