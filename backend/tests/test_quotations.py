"""Tests for quotations and their conversion to invoices."""
from datetime import date
from decimal import Decimal

import pytest

from apps.invoices.models import Invoice, Quotation
from apps.invoices.tasks import expire_quotations_task
from apps.invoices.totals import Discount, DiscountType

ITEMS = [{"description": "Kitchen refit", "unit_price": "1000", "vat_rate": "0.18"}]


@pytest.fixture
def quotation(quotation_service, customer):
    return quotation_service.create_quotation(
        customer,
        ITEMS,
        discount=Discount(DiscountType.PERCENT, Decimal("5")),
        quotation_date=date(2026, 2, 1),
    )


class TestQuotationService:
    def test_create(self, quotation):
        assert quotation.quotation_number == "QUO-000001"
        assert quotation.status == Quotation.Status.DRAFT
        assert quotation.valid_until == date(2026, 3, 3)
        assert quotation.total_amount == Decimal("1121.00")

    def test_sent_then_accepted(self, quotation_service, quotation):
        quotation_service.mark_sent(quotation)
        accepted = quotation_service.accept(quotation, today=date(2026, 2, 10))
        assert accepted.status == Quotation.Status.ACCEPTED

    def test_cannot_accept_after_validity(self, quotation_service, quotation):
        with pytest.raises(ValueError, match="expired"):
            quotation_service.accept(quotation, today=date(2026, 4, 1))

    def test_cannot_send_twice(self, quotation_service, quotation):
        quotation_service.mark_sent(quotation)
        with pytest.raises(ValueError, match="cannot be marked sent"):
            quotation_service.mark_sent(quotation)

    def test_convert_to_invoice(self, quotation_service, quotation):
        invoice = quotation_service.convert_to_invoice(quotation)
        quotation.refresh_from_db()

        assert invoice.status == Invoice.Status.DRAFT
        assert invoice.invoice_number == "INV-000001"
        assert invoice.total_amount == quotation.total_amount
        assert invoice.discount_type == DiscountType.PERCENT.value
        assert quotation.status == Quotation.Status.CONVERTED
        assert quotation.converted_invoice == invoice

    def test_cannot_convert_twice(self, quotation_service, quotation):
        quotation_service.convert_to_invoice(quotation)
        with pytest.raises(ValueError, match="cannot be converted"):
            quotation_service.convert_to_invoice(quotation)

    def test_expire_stale(self, quotation_service, quotation):
        assert quotation_service.expire_stale(today=date(2026, 3, 3)) == 0
        assert quotation_service.expire_stale(today=date(2026, 3, 4)) == 1
        quotation.refresh_from_db()
        assert quotation.status == Quotation.Status.EXPIRED


class TestExpireQuotationsTask:
    def test_expires_across_businesses(self, quotation_service, customer):
        quotation_service.create_quotation(
            customer, ITEMS, quotation_date=date(2020, 1, 1), valid_until=date(2020, 1, 31)
        )
        assert expire_quotations_task() == 1
        assert Quotation.objects.get().status == Quotation.Status.EXPIRED
