"""Payment reminder levels for unpaid invoices.

Reminders escalate friendly, firm, final. A level is chosen from how far the
invoice is past its due date; repeats of the same level are escalated and
reminders are spaced at least ``MIN_DAYS_BETWEEN`` days apart.
"""
from dataclasses import dataclass
from datetime import date

from django.db import models

from apps.invoices.config import DocumentSettings

MIN_DAYS_BETWEEN = 3


class ReminderLevel(models.TextChoices):
    FRIENDLY = "friendly", "Friendly"
    FIRM = "firm", "Firm"
    FINAL = "final", "Final"


ESCALATION = {
    ReminderLevel.FRIENDLY: ReminderLevel.FIRM,
    ReminderLevel.FIRM: ReminderLevel.FINAL,
}


@dataclass(frozen=True)
class ReminderHistory:
    """What has already been sent for an invoice."""

    sent_count: int = 0
    last_level: str | None = None
    last_date: date | None = None


def days_past_due(due_date: date, today: date) -> int:
    """Signed days past due; negative while the invoice is not yet due."""
    return (today - due_date).days


def level_for_days(days_past: int, ds: DocumentSettings) -> str | None:
    """Base level for an invoice ``days_past`` its due date, ignoring history."""
    if days_past >= ds.reminder_days_after_due_final:
        return ReminderLevel.FINAL
    if days_past >= ds.reminder_days_after_due_first:
        return ReminderLevel.FIRM
    if days_past >= -ds.reminder_days_before_due:
        return ReminderLevel.FRIENDLY
    return None


def choose_reminder_level(
    days_past: int,
    ds: DocumentSettings,
    history: ReminderHistory | None = None,
    today: date | None = None,
) -> str | None:
    """Level of the reminder to send now, or None when none is due."""
    history = history or ReminderHistory()
    if history.sent_count >= ds.max_reminders:
        return None

    level = level_for_days(days_past, ds)
    if level is None or history.last_level is None:
        return level

    if history.last_date is not None and today is not None:
        if (today - history.last_date).days < MIN_DAYS_BETWEEN:
            return None

    last = history.last_level
    if last == ReminderLevel.FRIENDLY and days_past >= ds.reminder_days_after_due_first:
        return ReminderLevel.FIRM
    if last == ReminderLevel.FIRM and days_past >= ds.reminder_days_after_due_final:
        return ReminderLevel.FINAL
    if last == level:
        # Same band as last time: move up a level, or stop after the final one.
        return ESCALATION.get(level)
    return level
