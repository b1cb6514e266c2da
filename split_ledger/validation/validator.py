"""
Pre-flight Validation for Split Expenses and Manual Debts

DESIGN DECISION: Validation runs before anything is written.
A split expense turns into several independent store writes, so
rejecting bad input up front is the only point where "nothing happened"
is still a cheap guarantee.

Rules are checked in a fixed order:
1. Description present
2. Total amount is a positive number
3. At least one split
4. Each split has an identifier, a well-formed email if given,
   a distinct participant and a positive amount
5. Split amounts add up to the total (within tolerance)

Every violated rule is reported, not just the first one.

IMPORTANT: Validation NEVER silently fixes amounts.
The only normalization is the equal-split share computation,
which is part of what "equal" means.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Mapping, Optional

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as SchemaError

from split_ledger.config import LedgerSettings, get_settings
from split_ledger.models.ledger import (
    SELF,
    Debt,
    DebtSide,
    DebtType,
    SplitExpense,
    SplitShare,
    SplitType,
    UserContext,
    ValidationIssue,
)
from split_ledger.money import equal_share, qround, sum_amounts, to_decimal, within_tolerance

_EMAIL = TypeAdapter(EmailStr)


class ValidationError(Exception):
    """Input rejected before any write. Carries every issue found."""

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = issues
        super().__init__("; ".join(issue.message for issue in issues))

    @property
    def messages(self) -> list[str]:
        return [issue.message for issue in self.issues]

    def as_dicts(self) -> list[dict]:
        return [issue.model_dump() for issue in self.issues]


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _is_email(value: str) -> bool:
    try:
        _EMAIL.validate_python(value)
    except SchemaError:
        return False
    return True


def _schema_issues(error: SchemaError, prefix: str) -> list[ValidationIssue]:
    """Turn a pydantic error into issues so callers see one exception type."""
    issues = []
    for err in error.errors():
        location = ".".join(str(part) for part in err.get("loc", ()))
        issues.append(ValidationIssue(
            field=f"{prefix}.{location}" if location else prefix,
            issue_type="invalid_value",
            message=err.get("msg", "Invalid value"),
        ))
    return issues


class SplitExpenseValidator:
    """
    Validates raw split expense input and builds the record to store.

    Input keys: description, total_amount, splits, paid_by (default "self"),
    split_type (default "equal"). Each split carries participant_id and/or
    participant_email, an optional participant_name, and an amount
    (ignored for equal splits).
    """

    def __init__(self, settings: Optional[LedgerSettings] = None):
        self._settings = settings or get_settings().ledger
        self._tolerance = Decimal(str(self._settings.amount_tolerance))

    def validate(self, ctx: UserContext, data: Mapping[str, Any]) -> SplitExpense:
        """
        Validate `data` and return the normalized expense (not yet stored).

        Raises:
            ValidationError: listing every violated rule
        """
        issues: list[ValidationIssue] = []

        # 1. Description
        description = _text(data.get("description"))
        if not description:
            issues.append(ValidationIssue(
                field="description",
                issue_type="missing",
                message="Description is required",
                suggested_fix="Say what the expense was for",
            ))
        elif len(description) > 200:
            issues.append(ValidationIssue(
                field="description",
                issue_type="too_long",
                message="Description must be at most 200 characters",
            ))

        # 2. Total amount
        total = to_decimal(data.get("total_amount"))
        if total is None or total <= 0:
            issues.append(ValidationIssue(
                field="total_amount",
                issue_type="invalid_value",
                message="Valid total amount is required",
                suggested_fix="Enter an amount greater than zero",
            ))
            total = None
        else:
            total = qround(total)

        split_type = self._split_type(data.get("split_type"), issues)
        paid_by = ctx.resolve(_text(data.get("paid_by")) or SELF)

        # 3. Splits present
        raw_splits = data.get("splits") or []
        if not isinstance(raw_splits, (list, tuple)) or not raw_splits:
            issues.append(ValidationIssue(
                field="splits",
                issue_type="missing",
                message="At least one participant is required",
                suggested_fix="Add the people sharing this expense",
            ))
            raw_splits = []

        # 4. Each split
        shares = self._shares(ctx, raw_splits, split_type, total, paid_by, issues)

        # 5. Sum matches total
        if total is not None and shares is not None and raw_splits:
            split_sum = sum_amounts(amount for _, amount in shares)
            if not within_tolerance(split_sum, total, self._tolerance):
                issues.append(ValidationIssue(
                    field="splits",
                    issue_type="amount_mismatch",
                    message=f"Total amount ({total}) must equal sum of splits ({split_sum})",
                    suggested_fix="Adjust the split amounts so they add up to the total",
                ))

        if issues:
            raise ValidationError(issues)

        try:
            return SplitExpense(
                created_by=ctx.user_id,
                description=description,
                total_amount=total,
                paid_by=paid_by,
                split_type=split_type,
                splits=[
                    SplitShare(**fields, amount=amount)
                    for fields, amount in shares
                ],
            )
        except SchemaError as e:
            raise ValidationError(_schema_issues(e, "expense"))

    def _split_type(self, value: Any, issues: list[ValidationIssue]) -> SplitType:
        if value is None or value == "":
            return SplitType.EQUAL
        try:
            return SplitType(value)
        except ValueError:
            issues.append(ValidationIssue(
                field="split_type",
                issue_type="invalid_value",
                message=f"Split type must be 'equal' or 'custom', got '{value}'",
            ))
            return SplitType.EQUAL

    def _shares(
        self,
        ctx: UserContext,
        raw_splits: list,
        split_type: SplitType,
        total: Optional[Decimal],
        paid_by: str,
        issues: list[ValidationIssue],
    ) -> Optional[list[tuple[dict, Decimal]]]:
        """
        Resolve participants and amounts.

        Returns (fields, amount) pairs, or None when the amounts
        can't be summed (unparseable amount, or no total for an equal split).
        """
        entries: list[tuple[int, dict, Any]] = []
        seen: set[str] = set()
        for number, raw in enumerate(raw_splits, start=1):
            if not isinstance(raw, Mapping):
                raw = {}
            participant_id = _text(raw.get("participant_id"))
            participant_email = _text(raw.get("participant_email"))
            if not participant_id and not participant_email:
                issues.append(ValidationIssue(
                    field=f"splits[{number - 1}]",
                    issue_type="missing",
                    message=f"Participant {number} must have either an id or email",
                ))
            if participant_email and not _is_email(participant_email):
                issues.append(ValidationIssue(
                    field=f"splits[{number - 1}].participant_email",
                    issue_type="invalid_format",
                    message=f"Participant {number} must have a valid email address",
                ))
            fields = {
                "participant_id": ctx.resolve(participant_id) if participant_id else None,
                "participant_email": participant_email or None,
                "participant_name": _text(raw.get("participant_name")) or None,
            }

            # One debt per participant, so a repeated key would lose a share
            key = fields["participant_id"] or fields["participant_email"]
            if key:
                if key in seen:
                    issues.append(ValidationIssue(
                        field=f"splits[{number - 1}]",
                        issue_type="duplicate",
                        message=f"Participant {number} is listed more than once",
                        suggested_fix="Combine their shares into a single entry",
                    ))
                seen.add(key)
            entries.append((number, fields, raw.get("amount")))

        if split_type == SplitType.EQUAL:
            return self._equal_shares(entries, total, paid_by, issues)

        shares = []
        summable = True
        for number, fields, raw_amount in entries:
            amount = to_decimal(raw_amount)
            if amount is None or amount <= 0:
                issues.append(ValidationIssue(
                    field=f"splits[{number - 1}].amount",
                    issue_type="invalid_value",
                    message=f"Participant {number} must have a valid amount",
                ))
                if amount is None:
                    summable = False
                    continue
            shares.append((fields, amount))
        return shares if summable else None

    def _equal_shares(
        self,
        entries: list[tuple[int, dict, Any]],
        total: Optional[Decimal],
        paid_by: str,
        issues: list[ValidationIssue],
    ) -> Optional[list[tuple[dict, Decimal]]]:
        if total is None:
            return None

        others = [
            (number, fields) for number, fields, _ in entries
            if (fields["participant_id"] or fields["participant_email"]) != paid_by
        ]
        share = equal_share(total, len(others))
        if others and share <= 0:
            for number, _ in others:
                issues.append(ValidationIssue(
                    field=f"splits[{number - 1}].amount",
                    issue_type="invalid_value",
                    message=f"Participant {number} must have a valid amount",
                    suggested_fix="The total is too small to split this many ways",
                ))

        shares = [(fields, share) for _, fields in others]

        # The payer's own share is kept on the record so the splits add up
        remainder = total - share * len(others)
        if remainder > 0:
            payer_fields = {
                "participant_id": paid_by,
                "participant_email": None,
                "participant_name": None,
            }
            for _, fields, _ in entries:
                if (fields["participant_id"] or fields["participant_email"]) == paid_by:
                    payer_fields = fields
                    break
            shares.append((payer_fields, remainder))
        return shares


class DebtValidator:
    """
    Validates manual debt input.

    Input keys: counterparty_id and/or counterparty_email, counterparty_name,
    amount, description, direction ("owe-me" or "i-owe"), due_date.
    """

    def __init__(self, settings: Optional[LedgerSettings] = None):
        self._settings = settings or get_settings().ledger
        self._max_amount = Decimal(str(self._settings.max_debt_amount))

    def validate(self, ctx: UserContext, data: Mapping[str, Any]) -> Debt:
        """
        Validate `data` and return an unsaved manual debt.

        Raises:
            ValidationError: listing every violated rule
        """
        issues: list[ValidationIssue] = []

        counterparty_id = _text(data.get("counterparty_id"))
        counterparty_email = _text(data.get("counterparty_email"))
        counterparty = counterparty_id or counterparty_email
        if not counterparty:
            issues.append(ValidationIssue(
                field="counterparty_id",
                issue_type="missing",
                message="Either a friend id or email is required",
            ))
        elif ctx.resolve(counterparty) == ctx.user_id:
            issues.append(ValidationIssue(
                field="counterparty_id",
                issue_type="invalid_value",
                message="You can't record a debt with yourself",
            ))
        if counterparty_email and not _is_email(counterparty_email):
            issues.append(ValidationIssue(
                field="counterparty_email",
                issue_type="invalid_format",
                message="Friend email must be a valid email address",
            ))

        amount = to_decimal(data.get("amount"))
        if amount is None or amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be a positive number",
            ))
        elif amount > self._max_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="absurd_value",
                message=f"Amount cannot exceed {self._max_amount}",
                suggested_fix="Split very large amounts into several debts",
            ))

        description = _text(data.get("description"))
        if not description:
            issues.append(ValidationIssue(
                field="description",
                issue_type="missing",
                message="Description is required",
            ))

        direction = None
        try:
            direction = DebtSide(data.get("direction"))
        except ValueError:
            issues.append(ValidationIssue(
                field="direction",
                issue_type="invalid_value",
                message="Direction must be either 'owe-me' or 'i-owe'",
            ))

        due_date = data.get("due_date")
        if isinstance(due_date, str) and due_date.strip():
            try:
                due_date = date.fromisoformat(due_date.strip())
            except ValueError:
                issues.append(ValidationIssue(
                    field="due_date",
                    issue_type="invalid_format",
                    message="Due date must be an ISO date (YYYY-MM-DD)",
                ))
                due_date = None
        elif not isinstance(due_date, date):
            due_date = None

        if issues:
            raise ValidationError(issues)

        if direction == DebtSide.OWE_ME:
            creditor, debtor = ctx.user_id, counterparty
        else:
            creditor, debtor = counterparty, ctx.user_id

        metadata = {}
        counterparty_name = _text(data.get("counterparty_name"))
        if counterparty_name:
            metadata["counterparty_name"] = counterparty_name
        if counterparty_id and counterparty_email:
            metadata["counterparty_email"] = counterparty_email

        try:
            return Debt(
                creditor=creditor,
                debtor=debtor,
                amount=amount,
                description=description,
                type=DebtType.MANUAL,
                due_date=due_date,
                metadata=metadata,
            )
        except SchemaError as e:
            raise ValidationError(_schema_issues(e, "debt"))
