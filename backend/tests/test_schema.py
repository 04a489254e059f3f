"""GraphQL API tests for invoicing."""
from datetime import date
from unittest.mock import Mock

import pytest

from apps.core.context import Context, Session
from apps.invoices.models import CreditNote, Invoice
from config.schema import schema


def run_graphql(query, variables, context):
    """Helper to run GraphQL queries synchronously."""
    return schema.execute_sync(query, variable_values=variables, context_value=context)


def make_context(user=None):
    """Create a proper Context object for GraphQL testing."""
    request = Mock()
    return Context(request=request, session=Session(user))


CREATE_INVOICE = """
mutation CreateInvoice($input: CreateInvoiceInput!) {
    createInvoice(input: $input) {
        success
        error
        invoice { id invoiceNumber status displayStatus totalAmount vatAmount numberIsFallback }
    }
}
"""

ISSUE_INVOICE = """
mutation IssueInvoice($id: ID!) {
    issueInvoice(invoiceId: $id) {
        success
        error
        invoice { status displayStatus }
    }
}
"""

CREATE_CREDIT_NOTE = """
mutation CreateCreditNote($input: CreateCreditNoteInput!) {
    createCreditNote(input: $input) {
        success
        error
        remaining
        fieldErrors { field code message }
        creditNote { creditNoteNumber totalAmount status }
    }
}
"""


def invoice_input(customer, price="100.00"):
    return {
        "customerId": str(customer.pk),
        "items": [{"description": "Consulting", "unitPrice": price, "vatRate": "0.18"}],
        "invoiceDate": "2026-03-01",
    }


class TestTotalsPreview:
    def test_calculate_totals(self, user):
        query = """
        query Totals($items: [LineItemInput!]!, $discount: DiscountInput) {
            calculateTotals(items: $items, discount: $discount) {
                subtotal discountAmount taxable vatAmount total vatLabel
                vatBreakdown { rate taxable vat }
            }
        }
        """
        variables = {
            "items": [
                {"description": "A", "unitPrice": "100", "vatRate": "0.18"},
                {"description": "B", "unitPrice": "100", "vatRate": "0"},
            ],
            "discount": {"type": "percent", "value": "10"},
        }
        result = run_graphql(query, variables, make_context(user))
        assert result.errors is None
        totals = result.data["calculateTotals"]
        assert totals["subtotal"] == "200.00"
        assert totals["discountAmount"] == "20.00"
        assert totals["vatAmount"] == "16.20"
        assert totals["total"] == "196.20"
        assert totals["vatLabel"] == "VAT"


class TestInvoiceMutations:
    def test_create_and_issue(self, user, customer):
        context = make_context(user)
        result = run_graphql(CREATE_INVOICE, {"input": invoice_input(customer)}, context)
        assert result.errors is None
        data = result.data["createInvoice"]
        assert data["success"] is True
        assert data["invoice"]["invoiceNumber"] == "INV-000001"
        assert data["invoice"]["numberIsFallback"] is False
        assert data["invoice"]["status"] == "draft"
        assert data["invoice"]["totalAmount"] == "118.00"

        result = run_graphql(ISSUE_INVOICE, {"id": data["invoice"]["id"]}, context)
        assert result.errors is None
        assert result.data["issueInvoice"]["success"] is True
        assert result.data["issueInvoice"]["invoice"]["status"] == "issued"

    def test_unknown_customer(self, user):
        variables = {"input": {"customerId": "999", "items": [], "invoiceDate": "2026-03-01"}}
        result = run_graphql(CREATE_INVOICE, variables, make_context(user))
        assert result.data["createInvoice"] == {
            "success": False,
            "error": "Customer not found",
            "invoice": None,
        }

    def test_validation_error_is_returned(self, user, customer):
        result = run_graphql(
            CREATE_INVOICE, {"input": invoice_input(customer, price="-5")}, make_context(user)
        )
        data = result.data["createInvoice"]
        assert data["success"] is False
        assert "unit price" in data["error"]

    def test_viewer_cannot_create(self, viewer, customer):
        result = run_graphql(CREATE_INVOICE, {"input": invoice_input(customer)}, make_context(viewer))
        assert result.data["createInvoice"]["error"] == "Permission denied"
        assert not Invoice.objects.exists()

    def test_anonymous_query_rejected(self, db):
        result = run_graphql("query { invoices { id } }", None, make_context())
        assert result.errors is not None
        assert "Authentication required" in result.errors[0].message

    def test_record_payment(self, user, issued_invoice):
        mutation = """
        mutation Pay($input: RecordPaymentInput!) {
            recordPayment(input: $input) {
                success
                error
                invoice { displayStatus paidAmount outstandingAmount }
            }
        }
        """
        variables = {"input": {
            "invoiceId": str(issued_invoice.pk),
            "amount": "250.00",
            "paymentDate": "2026-03-05",
        }}
        result = run_graphql(mutation, variables, make_context(user))
        assert result.errors is None
        data = result.data["recordPayment"]
        assert data["success"] is True
        assert data["invoice"]["paidAmount"] == "250.00"
        assert data["invoice"]["outstandingAmount"] == "750.00"


class TestCreditNoteMutations:
    def test_over_credit_returns_field_errors(self, user, issued_invoice):
        variables = {"input": {
            "invoiceId": str(issued_invoice.pk),
            "items": [{"description": "Refund", "unitPrice": "847.47", "vatRate": "0.18"}],
            "reasonCode": "pricing_error",
            "issue": True,
        }}
        result = run_graphql(CREATE_CREDIT_NOTE, variables, make_context(user))
        assert result.errors is None
        data = result.data["createCreditNote"]
        assert data["success"] is False
        assert data["remaining"] == "1000.00"
        assert data["fieldErrors"][0]["field"] == "total"
        assert data["fieldErrors"][0]["code"] == "exceeds_remaining"
        assert not CreditNote.objects.exists()

    def test_credit_within_remaining(self, user, issued_invoice):
        variables = {"input": {
            "invoiceId": str(issued_invoice.pk),
            "items": [{"description": "Refund", "unitPrice": "100", "vatRate": "0.18"}],
            "reasonCode": "pricing_error",
            "issue": True,
        }}
        result = run_graphql(CREATE_CREDIT_NOTE, variables, make_context(user))
        data = result.data["createCreditNote"]
        assert data["success"] is True
        assert data["creditNote"]["creditNoteNumber"] == "CN-000001"
        assert data["creditNote"]["totalAmount"] == "118.00"
        assert data["creditNote"]["status"] == "issued"


class TestQuotationMutations:
    def test_create_and_convert(self, user, customer):
        context = make_context(user)
        create = """
        mutation Quote($input: CreateQuotationInput!) {
            createQuotation(input: $input) {
                success error quotation { id quotationNumber totalAmount }
            }
        }
        """
        result = run_graphql(create, {"input": {
            "customerId": str(customer.pk),
            "items": [{"description": "Audit", "unitPrice": "500", "vatRate": "0.18"}],
        }}, context)
        quotation = result.data["createQuotation"]["quotation"]
        assert quotation["quotationNumber"] == "QUO-000001"

        convert = """
        mutation Convert($id: ID!) {
            convertQuotation(quotationId: $id) {
                success error
                quotation { status convertedInvoiceId }
                invoice { invoiceNumber totalAmount }
            }
        }
        """
        result = run_graphql(convert, {"id": quotation["id"]}, context)
        assert result.errors is None
        data = result.data["convertQuotation"]
        assert data["success"] is True
        assert data["quotation"]["status"] == "converted"
        assert data["invoice"]["totalAmount"] == quotation["totalAmount"]


class TestDocumentSettingsMutation:
    MUTATION = """
    mutation Save($input: DocumentSettingsInput!) {
        saveDocumentSettings(input: $input) {
            success error settings { invoicePrefix numberPattern defaultPaymentDays }
        }
    }
    """

    def test_save(self, user, business):
        variables = {"input": {"invoicePrefix": "MT-", "numberPattern": "{YYYY}-{NNNN}"}}
        result = run_graphql(self.MUTATION, variables, make_context(user))
        data = result.data["saveDocumentSettings"]
        assert data["success"] is True
        assert data["settings"]["invoicePrefix"] == "MT-"
        business.refresh_from_db()
        assert business.document_settings.number_pattern == "{YYYY}-{NNNN}"

    def test_save_reminder_settings(self, user, business):
        variables = {"input": {"remindersEnabled": True, "reminderDaysAfterDueFirst": 10}}
        result = run_graphql(self.MUTATION, variables, make_context(user))
        assert result.data["saveDocumentSettings"]["success"] is True
        business.refresh_from_db()
        ds = business.document_settings
        assert ds.reminders_enabled is True
        assert ds.reminder_days_after_due_first == 10
        assert ds.max_reminders == 5

    @pytest.mark.parametrize(
        "payload,message",
        [
            ({"numberPattern": "{YYYY}"}, "counter placeholder"),
            ({"invoicePrefix": "X" * 21}, "at most 20"),
            ({"vatRateStandard": "120"}, "between 0 and 100"),
            ({"defaultPaymentDays": -1}, "cannot be negative"),
            ({"maxReminders": -1}, "cannot be negative"),
        ],
    )
    def test_rejects_invalid(self, user, payload, message):
        result = run_graphql(self.MUTATION, {"input": payload}, make_context(user))
        data = result.data["saveDocumentSettings"]
        assert data["success"] is False
        assert message in data["error"]

    def test_next_number_preview(self, user, issued_invoice):
        result = run_graphql(
            'query { nextNumberPreview(kind: "invoice") }', None, make_context(user)
        )
        assert result.data["nextNumberPreview"] == "INV-000002"


class TestLogin:
    MUTATION = """
    mutation Login($email: String!, $password: String!) {
        login(email: $email, password: $password) {
            ... on AuthPayload { accessToken email businessId }
            ... on AuthError { message }
        }
    }
    """

    def test_login(self, user):
        context = make_context()
        result = run_graphql(
            self.MUTATION, {"email": "test@example.com", "password": "testpass123"}, context
        )
        assert result.errors is None
        assert result.data["login"]["email"] == "test@example.com"
        assert result.data["login"]["accessToken"]
        assert context.user == user

    def test_wrong_password(self, user):
        result = run_graphql(
            self.MUTATION, {"email": "test@example.com", "password": "nope"}, make_context()
        )
        assert result.data["login"] == {"message": "Invalid email or password"}
