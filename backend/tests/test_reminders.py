"""Tests for payment reminder scheduling."""
from datetime import date, timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from apps.customers.models import Customer
from apps.invoices.config import DocumentSettings
from apps.invoices.models import PaymentReminder
from apps.invoices.reminders import (
    ReminderHistory,
    ReminderLevel,
    choose_reminder_level,
    days_past_due,
    level_for_days,
)
from apps.invoices.services import PaymentReminderService
from apps.invoices.tasks import schedule_payment_reminders_task

SETTINGS = DocumentSettings(reminders_enabled=True)
TODAY = date(2026, 4, 20)


class TestLevelForDays:
    @pytest.mark.parametrize(
        "days_past,level",
        [
            (-10, None),
            (-4, None),
            (-3, ReminderLevel.FRIENDLY),
            (0, ReminderLevel.FRIENDLY),
            (6, ReminderLevel.FRIENDLY),
            (7, ReminderLevel.FIRM),
            (14, ReminderLevel.FIRM),
            (20, ReminderLevel.FIRM),
            (21, ReminderLevel.FINAL),
            (90, ReminderLevel.FINAL),
        ],
    )
    def test_bands(self, days_past, level):
        assert level_for_days(days_past, SETTINGS) == level

    def test_days_past_due_is_signed(self):
        assert days_past_due(date(2026, 3, 31), date(2026, 4, 10)) == 10
        assert days_past_due(date(2026, 3, 31), date(2026, 3, 29)) == -2


class TestChooseReminderLevel:
    def test_first_reminder_uses_band(self):
        assert choose_reminder_level(8, SETTINGS) == ReminderLevel.FIRM

    def test_stops_at_max_reminders(self):
        history = ReminderHistory(sent_count=5, last_level="firm", last_date=date(2026, 1, 1))
        assert choose_reminder_level(30, SETTINGS, history, TODAY) is None

    def test_spacing_between_reminders(self):
        history = ReminderHistory(1, ReminderLevel.FRIENDLY, TODAY - timedelta(days=2))
        assert choose_reminder_level(10, SETTINGS, history, TODAY) is None

    def test_friendly_escalates_to_firm_once_overdue(self):
        history = ReminderHistory(1, ReminderLevel.FRIENDLY, TODAY - timedelta(days=5))
        assert choose_reminder_level(8, SETTINGS, history, TODAY) == ReminderLevel.FIRM

    def test_firm_escalates_to_final(self):
        history = ReminderHistory(2, ReminderLevel.FIRM, TODAY - timedelta(days=7))
        assert choose_reminder_level(21, SETTINGS, history, TODAY) == ReminderLevel.FINAL

    def test_repeat_of_same_band_escalates(self):
        history = ReminderHistory(1, ReminderLevel.FRIENDLY, TODAY - timedelta(days=3))
        assert choose_reminder_level(2, SETTINGS, history, TODAY) == ReminderLevel.FIRM

    def test_nothing_after_final(self):
        history = ReminderHistory(3, ReminderLevel.FINAL, TODAY - timedelta(days=10))
        assert choose_reminder_level(40, SETTINGS, history, TODAY) is None

    def test_custom_bands(self):
        ds = DocumentSettings(reminder_days_after_due_first=3, reminder_days_after_due_final=5)
        assert choose_reminder_level(4, ds) == ReminderLevel.FIRM
        assert choose_reminder_level(5, ds) == ReminderLevel.FINAL


@pytest.fixture
def reminders_on(business):
    business.settings = {"reminders_enabled": True}
    business.save()
    return business


class TestPaymentReminderService:
    def test_disabled_by_default(self, business, issued_invoice):
        assert PaymentReminderService(business).schedule_reminders(date(2026, 4, 10)) == []
        assert not PaymentReminder.objects.exists()

    def test_schedules_reminder_for_overdue_invoice(self, reminders_on, issued_invoice):
        scheduled = PaymentReminderService(reminders_on).schedule_reminders(date(2026, 4, 10))
        assert len(scheduled) == 1
        reminder = scheduled[0]
        assert reminder.invoice == issued_invoice
        assert reminder.level == ReminderLevel.FIRM
        assert reminder.days_overdue == 10
        assert reminder.outstanding_amount == Decimal("1000.00")

    def test_reminder_before_due_date(self, reminders_on, issued_invoice):
        scheduled = PaymentReminderService(reminders_on).schedule_reminders(date(2026, 3, 29))
        assert [r.level for r in scheduled] == [ReminderLevel.FRIENDLY]
        assert scheduled[0].days_overdue == -2

    def test_runs_are_spaced_and_escalate(self, reminders_on, issued_invoice):
        service = PaymentReminderService(reminders_on)
        service.schedule_reminders(date(2026, 4, 10))
        assert service.schedule_reminders(date(2026, 4, 10)) == []
        assert service.schedule_reminders(date(2026, 4, 12)) == []

        scheduled = service.schedule_reminders(date(2026, 4, 14))
        assert [r.level for r in scheduled] == [ReminderLevel.FINAL]
        assert PaymentReminderService.history(issued_invoice).sent_count == 2

    def test_paid_invoice_gets_no_reminder(self, reminders_on, invoice_service, issued_invoice):
        invoice_service.record_payment(issued_invoice, "1000", date(2026, 4, 1))
        assert PaymentReminderService(reminders_on).schedule_reminders(date(2026, 4, 10)) == []

    def test_partly_paid_reminder_carries_balance(
        self, reminders_on, invoice_service, issued_invoice
    ):
        invoice_service.record_payment(issued_invoice, "400", date(2026, 4, 1))
        scheduled = PaymentReminderService(reminders_on).schedule_reminders(date(2026, 4, 10))
        assert scheduled[0].outstanding_amount == Decimal("600.00")

    def test_customer_without_email_is_skipped(self, reminders_on, invoice_service):
        walk_in = Customer.objects.create(business=reminders_on, name="Walk-in")
        invoice = invoice_service.create_invoice(
            walk_in,
            [{"description": "Repair", "unit_price": "50", "vat_rate": "0.18"}],
            invoice_date=date(2026, 3, 1),
            due_date=date(2026, 3, 31),
        )
        invoice_service.issue_invoice(invoice)
        assert PaymentReminderService(reminders_on).schedule_reminders(date(2026, 4, 10)) == []

    def test_draft_invoices_are_ignored(self, reminders_on, invoice_service, customer):
        invoice_service.create_invoice(
            customer,
            [{"description": "Repair", "unit_price": "50", "vat_rate": "0.18"}],
            invoice_date=date(2026, 3, 1),
            due_date=date(2026, 3, 31),
        )
        assert PaymentReminderService(reminders_on).schedule_reminders(date(2026, 4, 10)) == []


class TestScheduleRemindersTask:
    def test_task_schedules_for_active_businesses(self, reminders_on, invoice_service, customer):
        today = timezone.localdate()
        invoice = invoice_service.create_invoice(
            customer,
            [{"description": "Hosting", "unit_price": "100", "vat_rate": "0.18"}],
            invoice_date=today - timedelta(days=40),
            due_date=today - timedelta(days=10),
        )
        invoice_service.issue_invoice(invoice)

        assert schedule_payment_reminders_task() == 1
        reminder = PaymentReminder.objects.get()
        assert reminder.level == ReminderLevel.FIRM
        assert reminder.reminder_date == today

    def test_task_skips_inactive_business(self, reminders_on, issued_invoice):
        reminders_on.is_active = False
        reminders_on.save()
        assert schedule_payment_reminders_task() == 0
