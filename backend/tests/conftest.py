"""Pytest configuration and fixtures."""
from datetime import date

import pytest

from apps.businesses.models import Business, Role, User
from apps.customers.models import Customer
from apps.invoices.numbering import InMemoryCounterStore
from apps.invoices.services import CreditNoteService, InvoiceService, QuotationService


@pytest.fixture
def business(db):
    """Create a test business.

    The post_save signal creates default roles (Owner, Bookkeeper, Viewer).
    """
    return Business.objects.create(
        name="Test Business Ltd",
        currency="EUR",
        vat_number="MT12345678",
    )


@pytest.fixture
def user(db, business):
    """Create a test user with Owner role (full permissions for tests)."""
    u = User.objects.create_user(
        email="test@example.com",
        password="testpass123",
        business=business,
    )
    u.roles.add(Role.objects.get(business=business, name="Owner"))
    return u


@pytest.fixture
def viewer(db, business):
    u = User.objects.create_user(
        email="viewer@example.com",
        password="testpass123",
        business=business,
    )
    u.roles.add(Role.objects.get(business=business, name="Viewer"))
    return u


@pytest.fixture
def customer(db, business):
    return Customer.objects.create(
        business=business,
        name="Acme Malta Ltd",
        email="billing@acme.mt",
    )


@pytest.fixture
def invoice_service(business):
    return InvoiceService(business)


@pytest.fixture
def credit_note_service(business):
    return CreditNoteService(business)


@pytest.fixture
def quotation_service(business):
    return QuotationService(business)


@pytest.fixture
def counter_store():
    return InMemoryCounterStore()


@pytest.fixture
def issued_invoice(invoice_service, customer):
    """An issued invoice for 1000.00 gross (847.46 net at 18%)."""
    invoice = invoice_service.create_invoice(
        customer,
        [{"description": "Consulting", "quantity": 1, "unit_price": "847.46", "vat_rate": "0.18"}],
        invoice_date=date(2026, 3, 1),
        due_date=date(2026, 3, 31),
    )
    return invoice_service.issue_invoice(invoice)
