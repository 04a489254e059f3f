"""Derived invoice status: payment state, due state and the badge to display."""
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from django.db import models
from django.utils import timezone

from apps.invoices.totals import ZERO, to_decimal


class DocumentStatus(models.TextChoices):
    DRAFT = "draft", "Draft"
    ISSUED = "issued", "Issued"
    VOID = "void", "Void"


class PaymentStatus(models.TextChoices):
    UNPAID = "unpaid", "Unpaid"
    PARTIAL = "partial", "Partially paid"
    PAID = "paid", "Paid"


class DueStatus(models.TextChoices):
    NOT_DUE = "not_due", "Not due"
    DUE = "due", "Due today"
    OVERDUE = "overdue", "Overdue"


AGING_BUCKETS = ("current", "1-30", "31-60", "61-90", "90+")


@dataclass(frozen=True)
class StatusInfo:
    document: str
    payment: str
    due: str
    display_status: str


def _as_date(value: date | datetime | str | None) -> date | None:
    """Reduce a date, datetime or ISO string to a calendar date in the local time zone."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value) if "T" in value else date.fromisoformat(value)
    if isinstance(value, datetime):
        if timezone.is_aware(value):
            return timezone.localdate(value)
        return value.date()
    return value


def compute_payment_status(total: Any, paid: Any) -> str:
    paid = to_decimal(paid)
    if paid <= ZERO:
        return PaymentStatus.UNPAID
    if paid >= to_decimal(total):
        return PaymentStatus.PAID
    return PaymentStatus.PARTIAL


def compute_due_status(due_date, payment_status: str, today: date | None = None) -> str:
    if payment_status == PaymentStatus.PAID:
        return DueStatus.NOT_DUE
    due = _as_date(due_date)
    if due is None:
        return DueStatus.NOT_DUE
    today = _as_date(today) or timezone.localdate()
    if due < today:
        return DueStatus.OVERDUE
    if due == today:
        return DueStatus.DUE
    return DueStatus.NOT_DUE


def resolve_document_status(
    document_status: str,
    total_amount: Any,
    paid_amount: Any,
    due_date=None,
    today: date | None = None,
) -> StatusInfo:
    """Combine lifecycle, payment and due state into one display status.

    Display priority: draft, void, paid, overdue, partial, issued. A paid
    invoice is never shown as overdue.
    """
    payment = compute_payment_status(total_amount, paid_amount)
    due = compute_due_status(due_date, payment, today)

    if document_status == DocumentStatus.DRAFT:
        display = "draft"
    elif document_status == DocumentStatus.VOID:
        display = "void"
    elif payment == PaymentStatus.PAID:
        display = "paid"
    elif due == DueStatus.OVERDUE:
        display = "overdue"
    elif payment == PaymentStatus.PARTIAL:
        display = "partial"
    else:
        display = "issued"

    return StatusInfo(
        document=str(document_status),
        payment=str(payment),
        due=str(due),
        display_status=display,
    )


def days_overdue(due_date, today: date | None = None) -> int:
    """Days past the due date; 0 when not yet due or no due date."""
    due = _as_date(due_date)
    if due is None:
        return 0
    today = _as_date(today) or timezone.localdate()
    return max(0, (today - due).days)


def aging_bucket(days: int) -> str:
    if days <= 0:
        return "current"
    if days <= 30:
        return "1-30"
    if days <= 60:
        return "31-60"
    if days <= 90:
        return "61-90"
    return "90+"


def can_void(document_status: str, allow_from_draft: bool = False) -> bool:
    """Issued documents can always be voided; drafts only when the business allows it."""
    if document_status == DocumentStatus.ISSUED:
        return True
    if document_status == DocumentStatus.DRAFT:
        return allow_from_draft
    return False
