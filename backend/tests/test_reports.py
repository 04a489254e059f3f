"""Tests for receivables reporting."""
from datetime import date
from decimal import Decimal

from apps.invoices.reports import ReportService

TODAY = date(2026, 6, 15)


def make_issued(invoice_service, customer, price, due_date):
    invoice = invoice_service.create_invoice(
        customer,
        [{"description": "Service", "unit_price": price, "vat_rate": "0"}],
        invoice_date=date(2026, 1, 1),
        due_date=due_date,
    )
    return invoice_service.issue_invoice(invoice)


class TestReceivablesAging:
    def test_buckets(self, business, invoice_service, customer):
        make_issued(invoice_service, customer, "100", date(2026, 7, 1))   # current
        make_issued(invoice_service, customer, "200", date(2026, 6, 1))   # 14 days
        make_issued(invoice_service, customer, "300", date(2026, 4, 1))   # 75 days
        paid = make_issued(invoice_service, customer, "400", date(2026, 1, 31))
        invoice_service.record_payment(paid, "400")

        buckets = {b.label: b for b in ReportService(business).receivables_aging(TODAY)}

        assert list(buckets) == ["current", "1-30", "31-60", "61-90", "90+"]
        assert buckets["current"].amount == Decimal("100.00")
        assert buckets["1-30"].amount == Decimal("200.00")
        assert buckets["61-90"].count == 1
        assert buckets["90+"].count == 0

    def test_credit_notes_reduce_outstanding(
        self, business, invoice_service, credit_note_service, customer
    ):
        invoice = make_issued(invoice_service, customer, "500", date(2026, 5, 1))
        credit_note_service.create_credit_note(
            items=[{"description": "Discount", "unit_price": "150", "vat_rate": "0"}],
            invoice=invoice,
            reason_code="discount_applied",
            issue=True,
        )
        assert ReportService(business).customer_outstanding(customer) == Decimal("350.00")


class TestSummary:
    def test_summary(self, business, invoice_service, customer):
        make_issued(invoice_service, customer, "100", date(2026, 7, 1))
        overdue = make_issued(invoice_service, customer, "300", date(2026, 5, 1))
        invoice_service.record_payment(overdue, "50")
        invoice_service.create_invoice(customer, [{"description": "Draft", "unit_price": "10"}])

        summary = ReportService(business).summary(TODAY)

        assert summary.total_invoiced == Decimal("400.00")
        assert summary.total_paid == Decimal("50.00")
        assert summary.outstanding == Decimal("350.00")
        assert summary.overdue_amount == Decimal("250.00")
        assert summary.overdue_count == 1
        assert summary.draft_count == 1
        assert len(summary.aging) == 5
