"""Credit note validation against an invoice's remaining balance.

The validator is a pure predicate over aggregates the caller has already
fetched (invoice total, other issued credit notes, payments). Business-rule
violations are returned, never raised.

The aggregates can go stale between the read and the write if two credit
notes are issued for the same invoice at once. That race is accepted; there
is no locking around it.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable

from django.db import models

from apps.invoices.totals import ZERO, normalize_rate, round_money, to_decimal


class CreditNoteReason(models.TextChoices):
    PRICING_ERROR = "pricing_error", "Pricing Error"
    QUANTITY_ADJUSTMENT = "quantity_adjustment", "Quantity Adjustment"
    DAMAGED_GOODS = "damaged_goods", "Damaged Goods"
    INCORRECT_SPECIFICATION = "incorrect_specification", "Incorrect Specification"
    CUSTOMER_RETURN = "customer_return", "Customer Return"
    SERVICE_NOT_RENDERED = "service_not_rendered", "Service Not Rendered"
    OVERPAYMENT_CORRECTION = "overpayment_correction", "Overpayment Correction"
    DISCOUNT_APPLIED = "discount_applied", "Discount Applied"
    OTHER = "other", "Other"


CREDIT_NOTE_REASONS = dict(CreditNoteReason.choices)

# Rule codes
EXCEEDS_REMAINING = "exceeds_remaining"
EXCEEDS_INVOICE_TOTAL = "exceeds_invoice_total"
TOTAL_NOT_POSITIVE = "total_not_positive"
REASON_REQUIRED = "reason_required"
DESCRIPTION_REQUIRED = "description_required"


@dataclass(frozen=True)
class CreditNoteError:
    field: str
    code: str
    message: str


@dataclass
class CreditNoteValidation:
    """Outcome of validating a proposed credit note."""

    remaining: Decimal = ZERO
    errors: list[CreditNoteError] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def codes(self) -> list[str]:
        return [e.code for e in self.errors]

    def as_dict(self) -> dict[str, str]:
        """Field -> message. The first error per field wins."""
        result: dict[str, str] = {}
        for error in self.errors:
            result.setdefault(error.field, error.message)
        return result

    def add(self, field_name: str, code: str, message: str) -> None:
        self.errors.append(CreditNoteError(field_name, code, message))


def credit_note_gross(amount: Any, vat_rate: Any) -> Decimal:
    """Gross value of a credit note stored as net amount plus rate, in cents."""
    return round_money(to_decimal(amount) * (1 + normalize_rate(vat_rate)))


def sum_credit_notes_gross(credit_notes: Iterable[Any]) -> Decimal:
    """Sum gross values of credit note rows or dicts with ``amount`` and ``vat_rate``."""
    total = ZERO
    for note in credit_notes:
        if isinstance(note, dict):
            total += credit_note_gross(note.get("amount"), note.get("vat_rate"))
        else:
            total += credit_note_gross(note.amount, note.vat_rate)
    return total


def remaining_balance(
    invoice_total: Any, other_credit_notes_gross: Any, payments_total: Any
) -> Decimal:
    """Amount of the invoice still open for crediting, never negative."""
    remaining = (
        to_decimal(invoice_total)
        - to_decimal(other_credit_notes_gross)
        - to_decimal(payments_total)
    )
    return max(ZERO, remaining)


def format_reason_text(reason_code: str | None, description: str = "") -> str:
    """Human-readable reason, e.g. ``"Pricing Error: wrong unit price"``."""
    description = (description or "").strip()
    if not reason_code:
        return description or "Credit note"
    label = CREDIT_NOTE_REASONS.get(reason_code, reason_code)
    return f"{label}: {description}" if description else label


def _money(value: Decimal) -> str:
    return f"€{round_money(value):,.2f}"


def validate_credit_note(
    proposed_gross: Any,
    invoice_total: Any = ZERO,
    other_credit_notes_gross: Any = ZERO,
    payments_total: Any = ZERO,
    *,
    reason_code: str | None = None,
    issuing: bool = True,
    linked_to_invoice: bool = True,
    description: str | None = None,
) -> CreditNoteValidation:
    """Check a proposed credit note against the invoice balance.

    Standalone customer credits (``linked_to_invoice=False``) have no
    balance to check; only the positive-total and description rules apply.
    """
    proposed = to_decimal(proposed_gross)
    result = CreditNoteValidation()

    if linked_to_invoice:
        total = to_decimal(invoice_total)
        remaining = remaining_balance(total, other_credit_notes_gross, payments_total)
        result.remaining = remaining

        if proposed > remaining and remaining > 0:
            result.add(
                "total",
                EXCEEDS_REMAINING,
                f"Credit amount ({_money(proposed)}) exceeds the remaining "
                f"invoice balance of {_money(remaining)}",
            )
        elif remaining == 0 and proposed > 0:
            # A fully settled or fully credited invoice takes no further credit.
            result.add(
                "total",
                EXCEEDS_INVOICE_TOTAL,
                f"Credit amount ({_money(proposed)}) exceeds the invoice "
                f"total of {_money(total)}; nothing remains to credit",
            )

    if proposed <= 0:
        result.add(
            "total",
            TOTAL_NOT_POSITIVE,
            "Credit note total must be greater than zero",
        )

    if linked_to_invoice:
        if issuing and not reason_code:
            result.add(
                "reason",
                REASON_REQUIRED,
                "Please select a reason for this credit note",
            )
        elif reason_code and reason_code not in CREDIT_NOTE_REASONS:
            result.add("reason", REASON_REQUIRED, f"Unknown reason: {reason_code}")
    elif not (description or "").strip():
        result.add(
            "description",
            DESCRIPTION_REQUIRED,
            "Please describe what this credit is for",
        )

    return result


class CreditNoteRejected(ValueError):
    """Raised by services when a credit note fails validation."""

    def __init__(self, validation: CreditNoteValidation):
        self.validation = validation
        messages = [e.message for e in validation.errors]
        super().__init__("; ".join(messages) or "Credit note is not valid")
