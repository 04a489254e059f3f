"""Celery tasks for invoicing housekeeping."""

import logging

from celery import shared_task

from apps.businesses.models import Business
from apps.invoices.services import PaymentReminderService, QuotationService

logger = logging.getLogger(__name__)


@shared_task(acks_late=True)
def expire_quotations_task() -> int:
    """
    Mark sent quotations past their validity date as expired.

    Runs for every active business. Returns the number of quotations expired.
    """
    expired = 0
    for business in Business.objects.filter(is_active=True):
        count = QuotationService(business).expire_stale()
        if count:
            logger.info("Expired %s quotations for business %s", count, business.id)
        expired += count
    return expired


@shared_task(acks_late=True)
def schedule_payment_reminders_task() -> int:
    """
    Record today's payment reminders for overdue and soon-due invoices.

    Businesses with reminders switched off are skipped by the service.
    Returns the number of reminders scheduled.
    """
    scheduled = 0
    for business in Business.objects.filter(is_active=True):
        count = len(PaymentReminderService(business).schedule_reminders())
        if count:
            logger.info("Scheduled %s payment reminders for business %s", count, business.id)
        scheduled += count
    return scheduled
