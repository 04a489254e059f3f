"""Receivables reporting over issued invoices."""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from django.db.models import Prefetch
from django.utils import timezone

from apps.businesses.models import Business
from apps.invoices.models import CreditNote, Invoice
from apps.invoices.status import AGING_BUCKETS, aging_bucket, days_overdue
from apps.invoices.totals import ZERO, round_money


@dataclass
class AgingBucketTotal:
    label: str
    amount: Decimal = ZERO
    count: int = 0


@dataclass
class ReceivablesSummary:
    total_invoiced: Decimal = ZERO
    total_paid: Decimal = ZERO
    total_credited: Decimal = ZERO
    outstanding: Decimal = ZERO
    overdue_amount: Decimal = ZERO
    overdue_count: int = 0
    draft_count: int = 0
    aging: list[AgingBucketTotal] = field(default_factory=list)


class ReportService:
    """Aggregates outstanding balances for a business."""

    def __init__(self, business: Business):
        self.business = business

    def _issued_invoices(self):
        return (
            Invoice.objects
            .filter(business=self.business, status=Invoice.Status.ISSUED)
            .prefetch_related(
                "payments",
                Prefetch(
                    "credit_notes",
                    queryset=CreditNote.objects.filter(status=CreditNote.Status.ISSUED),
                ),
            )
        )

    @staticmethod
    def _settlement(invoice: Invoice) -> tuple[Decimal, Decimal]:
        paid = sum((p.amount for p in invoice.payments.all()), ZERO)
        credited = sum((c.gross for c in invoice.credit_notes.all()), ZERO)
        return paid, credited

    def _open_balances(self, invoices):
        """Yield (invoice, outstanding) for invoices with a balance left."""
        for invoice in invoices:
            paid, credited = self._settlement(invoice)
            outstanding = round_money(invoice.total_amount - paid - credited)
            if outstanding > 0:
                yield invoice, outstanding

    def receivables_aging(self, today: date | None = None) -> list[AgingBucketTotal]:
        """Outstanding amounts per aging bucket, in bucket order."""
        today = today or timezone.localdate()
        buckets = {label: AgingBucketTotal(label) for label in AGING_BUCKETS}
        for invoice, outstanding in self._open_balances(self._issued_invoices()):
            bucket = buckets[aging_bucket(days_overdue(invoice.due_date, today))]
            bucket.amount += outstanding
            bucket.count += 1
        return list(buckets.values())

    def summary(self, today: date | None = None) -> ReceivablesSummary:
        today = today or timezone.localdate()
        result = ReceivablesSummary()
        invoices = list(self._issued_invoices())

        for invoice in invoices:
            paid, credited = self._settlement(invoice)
            result.total_invoiced += invoice.total_amount
            result.total_paid += paid
            result.total_credited += credited

        for invoice, outstanding in self._open_balances(invoices):
            result.outstanding += outstanding
            if days_overdue(invoice.due_date, today) > 0:
                result.overdue_amount += outstanding
                result.overdue_count += 1

        result.draft_count = Invoice.objects.filter(
            business=self.business, status=Invoice.Status.DRAFT
        ).count()
        result.aging = self.receivables_aging(today)
        return result

    def customer_outstanding(self, customer) -> Decimal:
        invoices = self._issued_invoices().filter(customer=customer)
        return sum((amount for _, amount in self._open_balances(invoices)), ZERO)
