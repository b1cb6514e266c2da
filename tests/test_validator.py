"""Tests for split expense and manual debt validation."""

import pytest
from decimal import Decimal

from split_ledger.config import LedgerSettings
from split_ledger.models import DebtType, SplitType, UserContext
from split_ledger.validation import DebtValidator, SplitExpenseValidator, ValidationError


@pytest.fixture
def validator():
    return SplitExpenseValidator(LedgerSettings(calls_per_second=0))


@pytest.fixture
def ctx():
    return UserContext(user_id="me", name="Asha")


def custom(total, *amounts, **extra):
    data = {
        "description": "Groceries",
        "total_amount": total,
        "split_type": "custom",
        "splits": [
            {"participant_id": f"f{i}", "amount": amount}
            for i, amount in enumerate(amounts, start=1)
        ],
    }
    data.update(extra)
    return data


class TestSplitExpenseValidator:
    """Pre-flight rules for split expenses."""

    def test_equal_split_computes_shares(self, validator, ctx, dinner):
        expense = validator.validate(ctx, dinner)
        assert expense.split_type == SplitType.EQUAL
        assert expense.paid_by == "me"
        assert [s.amount for s in expense.participants] == [Decimal("100.00"), Decimal("100.00")]
        assert expense.split_total == Decimal("300.00")

    def test_equal_split_keeps_payer_remainder(self, validator, ctx):
        expense = validator.validate(ctx, {
            "description": "Taxi",
            "total_amount": "100",
            "splits": [{"participant_id": "f1"}, {"participant_id": "f2"}],
        })
        payer = [s for s in expense.splits if s.participant_key == "me"]
        assert len(payer) == 1
        assert payer[0].amount == Decimal("33.34")
        assert expense.split_total == Decimal("100.00")

    def test_equal_split_ignores_supplied_amounts(self, validator, ctx):
        expense = validator.validate(ctx, {
            "description": "Taxi",
            "total_amount": "90",
            "splits": [{"participant_id": "f1", "amount": "80"}, {"participant_id": "f2", "amount": "1"}],
        })
        assert [s.amount for s in expense.participants] == [Decimal("30.00"), Decimal("30.00")]

    def test_custom_split_uses_amounts_verbatim(self, validator, ctx):
        expense = validator.validate(ctx, custom("100", "60", "40"))
        assert [s.amount for s in expense.splits] == [Decimal("60.00"), Decimal("40.00")]

    def test_custom_split_within_tolerance(self, validator, ctx):
        expense = validator.validate(ctx, custom("100", "33.33", "33.33", "33.33"))
        assert expense.total_amount == Decimal("100.00")

    def test_custom_split_mismatch_is_rejected(self, validator, ctx):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(ctx, custom("100", "60", "40.05"))
        issues = exc_info.value.issues
        assert [i.issue_type for i in issues] == ["amount_mismatch"]
        assert "Total amount (100.00) must equal sum of splits (100.05)" in issues[0].message

    def test_all_violations_are_reported_in_order(self, validator, ctx):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(ctx, {
                "description": "   ",
                "total_amount": "-5",
                "split_type": "custom",
                "splits": [],
            })
        assert exc_info.value.messages == [
            "Description is required",
            "Valid total amount is required",
            "At least one participant is required",
        ]

    def test_each_split_is_checked(self, validator, ctx):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(ctx, {
                "description": "Trip",
                "total_amount": "100",
                "split_type": "custom",
                "splits": [
                    {"amount": "50"},
                    {"participant_id": "f2", "amount": "0"},
                    {"participant_email": "f3@example.com", "amount": "abc"},
                ],
            })
        messages = exc_info.value.messages
        assert "Participant 1 must have either an id or email" in messages
        assert "Participant 2 must have a valid amount" in messages
        assert "Participant 3 must have a valid amount" in messages
        # Unparseable amounts make the sum meaningless
        assert not any("sum of splits" in m for m in messages)

    def test_repeated_participant_is_rejected(self, validator, ctx):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(ctx, {
                "description": "Groceries",
                "total_amount": "300",
                "split_type": "custom",
                "splits": [
                    {"participant_id": "f1", "amount": "100"},
                    {"participant_id": "f1", "amount": "200"},
                ],
            })
        issues = exc_info.value.issues
        assert [i.issue_type for i in issues] == ["duplicate"]
        assert issues[0].message == "Participant 2 is listed more than once"

    def test_repeated_email_in_equal_split_is_rejected(self, validator, ctx):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(ctx, {
                "description": "Taxi",
                "total_amount": "90",
                "splits": [
                    {"participant_email": "gopal@example.com"},
                    {"participant_id": "f1"},
                    {"participant_email": "gopal@example.com"},
                ],
            })
        assert "Participant 3 is listed more than once" in exc_info.value.messages

    def test_malformed_email_is_rejected(self, validator, ctx):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(ctx, {
                "description": "Trip",
                "total_amount": "100",
                "split_type": "custom",
                "splits": [
                    {"participant_email": "farah@example.com", "amount": "50"},
                    {"participant_email": "not-an-email", "amount": "50"},
                ],
            })
        issues = exc_info.value.issues
        assert [i.issue_type for i in issues] == ["invalid_format"]
        assert issues[0].field == "splits[1].participant_email"
        assert issues[0].message == "Participant 2 must have a valid email address"

    @pytest.mark.parametrize("total,others", [
        ("100", 2),
        ("10", 5),
        ("1", 6),
        ("0.05", 2),
        ("999.99", 7),
    ])
    def test_equal_shares_never_exceed_total(self, validator, ctx, total, others):
        expense = validator.validate(ctx, {
            "description": "Rounding",
            "total_amount": total,
            "splits": [{"participant_id": f"f{i}"} for i in range(1, others + 1)],
        })
        owed = sum(s.amount for s in expense.participants)
        assert owed <= expense.total_amount
        assert expense.split_total == expense.total_amount

    def test_total_too_small_for_whole_cents(self, validator, ctx):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(ctx, {
                "description": "Gum",
                "total_amount": "0.02",
                "splits": [{"participant_id": p} for p in ("a", "b", "c")],
            })
        assert "Participant 1 must have a valid amount" in exc_info.value.messages

    def test_unknown_split_type(self, validator, ctx, dinner):
        dinner["split_type"] = "weighted"
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(ctx, dinner)
        assert exc_info.value.issues[0].field == "split_type"

    def test_total_too_small_to_split(self, validator, ctx):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(ctx, {
                "description": "Gum",
                "total_amount": "0.01",
                "splits": [{"participant_id": "f1"}, {"participant_id": "f2"}],
            })
        assert "Participant 1 must have a valid amount" in exc_info.value.messages

    def test_other_payer(self, validator, ctx):
        expense = validator.validate(ctx, {
            "description": "Cinema",
            "total_amount": "30",
            "paid_by": "f1",
            "splits": [
                {"participant_id": "f1", "participant_name": "Farah"},
                {"participant_id": "self"},
            ],
        })
        assert expense.paid_by == "f1"
        assert [s.participant_key for s in expense.participants] == ["me"]
        assert expense.participants[0].amount == Decimal("15.00")


class TestDebtValidator:
    """Rules for manual debts."""

    @pytest.fixture
    def debt_validator(self):
        return DebtValidator(LedgerSettings(max_debt_amount=1000))

    def test_owe_me_makes_user_creditor(self, debt_validator, ctx):
        debt = debt_validator.validate(ctx, {
            "counterparty_id": "f1",
            "amount": "25",
            "description": "Lunch",
            "direction": "owe-me",
        })
        assert (debt.creditor, debt.debtor) == ("me", "f1")
        assert debt.type == DebtType.MANUAL

    def test_i_owe_makes_user_debtor(self, debt_validator, ctx):
        debt = debt_validator.validate(ctx, {
            "counterparty_email": "f1@example.com",
            "amount": 10,
            "description": "Coffee",
            "direction": "i-owe",
            "due_date": "2026-11-01",
        })
        assert (debt.creditor, debt.debtor) == ("f1@example.com", "me")
        assert debt.due_date.isoformat() == "2026-11-01"

    def test_rejects_bad_input(self, debt_validator, ctx):
        with pytest.raises(ValidationError) as exc_info:
            debt_validator.validate(ctx, {
                "amount": "5000",
                "direction": "sideways",
            })
        fields = [i.field for i in exc_info.value.issues]
        assert fields == ["counterparty_id", "amount", "description", "direction"]

    def test_rejects_debt_with_self(self, debt_validator, ctx):
        with pytest.raises(ValidationError):
            debt_validator.validate(ctx, {
                "counterparty_id": "self",
                "amount": "5",
                "description": "x",
                "direction": "owe-me",
            })

    def test_rejects_malformed_friend_email(self, debt_validator, ctx):
        with pytest.raises(ValidationError) as exc_info:
            debt_validator.validate(ctx, {
                "counterparty_email": "farah at example",
                "amount": "5",
                "description": "Chai",
                "direction": "owe-me",
            })
        assert [i.field for i in exc_info.value.issues] == ["counterparty_email"]
