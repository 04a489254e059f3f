"""GraphQL schema for invoices, credit notes, quotations and payments."""
import logging
from dataclasses import fields
from datetime import date, datetime
from decimal import Decimal
from typing import List

import strawberry
from strawberry.types import Info

from apps.core.context import Context
from apps.core.permissions import check_perm, require_perm
from apps.customers.models import Customer
from apps.invoices.config import DocumentSettings
from apps.invoices.credit_notes import CreditNoteRejected, CreditNoteValidation
from apps.invoices.models import CreditNote, Invoice, Payment, Quotation
from apps.invoices.numbering import SequenceNumberError, SequenceNumberGenerator, validate_pattern
from apps.invoices.reports import ReportService
from apps.invoices.services import CreditNoteService, InvoiceService, QuotationService
from apps.invoices.totals import (
    Discount,
    calculate_totals,
    line_items_from_rows,
    normalize_rate,
    vat_label,
)

logger = logging.getLogger(__name__)

NUMBERING_FAILED = "Could not create document, please retry."


# =========================================================================
# Inputs
# =========================================================================


@strawberry.input
class LineItemInput:
    description: str
    unit_price: Decimal
    quantity: Decimal = Decimal("1")
    unit: str = "unit"
    vat_rate: Decimal | None = None  # Business standard rate when omitted


@strawberry.input
class DiscountInput:
    type: str = "none"  # none, amount, percent
    value: Decimal = Decimal("0")


@strawberry.input
class CreateInvoiceInput:
    customer_id: strawberry.ID
    items: List[LineItemInput]
    discount: DiscountInput | None = None
    invoice_date: date | None = None
    due_date: date | None = None
    notes: str = ""


@strawberry.input
class RecordPaymentInput:
    invoice_id: strawberry.ID
    amount: Decimal
    payment_date: date | None = None
    method: str = "bank_transfer"
    reference: str = ""


@strawberry.input
class CreateCreditNoteInput:
    items: List[LineItemInput]
    invoice_id: strawberry.ID | None = None
    customer_id: strawberry.ID | None = None
    reason_code: str | None = None
    description: str = ""
    credit_note_date: date | None = None
    issue: bool = False


@strawberry.input
class CreateQuotationInput:
    customer_id: strawberry.ID
    items: List[LineItemInput]
    discount: DiscountInput | None = None
    quotation_date: date | None = None
    valid_until: date | None = None
    notes: str = ""


@strawberry.input
class DocumentSettingsInput:
    invoice_prefix: str | None = None
    credit_note_prefix: str | None = None
    quotation_prefix: str | None = None
    number_pattern: str | None = None
    default_payment_days: int | None = None
    quotation_validity_days: int | None = None
    vat_rate_standard: Decimal | None = None
    vat_rate_reduced: Decimal | None = None
    vat_rate_zero: Decimal | None = None
    allow_void_from_draft: bool | None = None
    allow_fallback_numbering: bool | None = None
    invoice_footer_text: str | None = None
    default_invoice_notes: str | None = None
    reminders_enabled: bool | None = None
    reminder_days_before_due: int | None = None
    reminder_days_after_due_first: int | None = None
    reminder_days_after_due_second: int | None = None
    reminder_days_after_due_final: int | None = None
    max_reminders: int | None = None


# =========================================================================
# Output types
# =========================================================================


@strawberry.type
class VatBucketType:
    rate: Decimal
    net: Decimal
    discount: Decimal
    taxable: Decimal
    vat: Decimal


@strawberry.type
class TotalsType:
    subtotal: Decimal
    discount_amount: Decimal
    taxable: Decimal
    vat_amount: Decimal
    total: Decimal
    vat_label: str
    vat_breakdown: List[VatBucketType]


@strawberry.type
class DocumentItemType:
    id: strawberry.ID
    description: str
    quantity: Decimal
    unit: str
    unit_price: Decimal
    vat_rate: Decimal
    line_total: Decimal


@strawberry.type
class PaymentType:
    id: strawberry.ID
    amount: Decimal
    payment_date: date
    method: str
    reference: str


@strawberry.type
class InvoiceType:
    id: strawberry.ID
    invoice_number: str
    number_is_fallback: bool
    customer_id: strawberry.ID
    customer_name: str
    status: str
    display_status: str
    payment_status: str
    due_status: str
    invoice_date: date
    due_date: date | None
    discount_type: str
    discount_value: Decimal
    subtotal: Decimal
    discount_amount: Decimal
    taxable_amount: Decimal
    vat_amount: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    outstanding_amount: Decimal
    issued_at: datetime | None
    voided_at: datetime | None
    notes: str
    items: List[DocumentItemType]
    payments: List[PaymentType]


@strawberry.type
class CreditNoteType:
    id: strawberry.ID
    credit_note_number: str
    number_is_fallback: bool
    invoice_id: strawberry.ID | None
    invoice_number: str | None
    customer_id: strawberry.ID
    customer_name: str
    type: str
    status: str
    amount: Decimal
    vat_rate: Decimal
    vat_amount: Decimal
    total_amount: Decimal
    reason_code: str
    reason: str
    description: str
    credit_note_date: date
    issued_at: datetime | None
    items: List[DocumentItemType]


@strawberry.type
class QuotationType:
    id: strawberry.ID
    quotation_number: str
    number_is_fallback: bool
    customer_id: strawberry.ID
    customer_name: str
    status: str
    quotation_date: date
    valid_until: date | None
    subtotal: Decimal
    discount_amount: Decimal
    taxable_amount: Decimal
    vat_amount: Decimal
    total_amount: Decimal
    converted_invoice_id: strawberry.ID | None
    items: List[DocumentItemType]


@strawberry.type
class AgingBucketType:
    label: str
    amount: Decimal
    count: int


@strawberry.type
class DocumentSettingsType:
    invoice_prefix: str
    credit_note_prefix: str
    quotation_prefix: str
    number_pattern: str
    default_payment_days: int
    quotation_validity_days: int
    vat_rate_standard: Decimal
    vat_rate_reduced: Decimal
    vat_rate_zero: Decimal
    allow_void_from_draft: bool
    allow_fallback_numbering: bool
    invoice_footer_text: str
    default_invoice_notes: str
    reminders_enabled: bool
    reminder_days_before_due: int
    reminder_days_after_due_first: int
    reminder_days_after_due_second: int
    reminder_days_after_due_final: int
    max_reminders: int


@strawberry.type
class FieldErrorType:
    field: str
    code: str
    message: str


@strawberry.type
class InvoiceResult:
    success: bool
    error: str | None = None
    invoice: InvoiceType | None = None


@strawberry.type
class PaymentResult:
    success: bool
    error: str | None = None
    payment: PaymentType | None = None
    invoice: InvoiceType | None = None


@strawberry.type
class CreditNoteResult:
    success: bool
    error: str | None = None
    field_errors: List[FieldErrorType] = strawberry.field(default_factory=list)
    remaining: Decimal | None = None
    credit_note: CreditNoteType | None = None


@strawberry.type
class QuotationResult:
    success: bool
    error: str | None = None
    quotation: QuotationType | None = None
    invoice: InvoiceType | None = None


@strawberry.type
class DocumentSettingsResult:
    success: bool
    error: str | None = None
    settings: DocumentSettingsType | None = None


# =========================================================================
# Converters
# =========================================================================


def _convert_item(item) -> DocumentItemType:
    return DocumentItemType(
        id=strawberry.ID(str(item.pk)),
        description=item.description,
        quantity=item.quantity,
        unit=item.unit,
        unit_price=item.unit_price,
        vat_rate=item.vat_rate,
        line_total=item.quantity * item.unit_price,
    )


def _convert_payment(payment: Payment) -> PaymentType:
    return PaymentType(
        id=strawberry.ID(str(payment.pk)),
        amount=payment.amount,
        payment_date=payment.payment_date,
        method=payment.method,
        reference=payment.reference,
    )


def _convert_invoice(invoice: Invoice, service: InvoiceService) -> InvoiceType:
    status = service.status_for(invoice)
    return InvoiceType(
        id=strawberry.ID(str(invoice.pk)),
        invoice_number=invoice.invoice_number,
        number_is_fallback=invoice.number_is_fallback,
        customer_id=strawberry.ID(str(invoice.customer_id)),
        customer_name=invoice.customer.name,
        status=invoice.status,
        display_status=status.display_status,
        payment_status=status.payment,
        due_status=status.due,
        invoice_date=invoice.invoice_date,
        due_date=invoice.due_date,
        discount_type=invoice.discount_type,
        discount_value=invoice.discount_value,
        subtotal=invoice.subtotal,
        discount_amount=invoice.discount_amount,
        taxable_amount=invoice.taxable_amount,
        vat_amount=invoice.vat_amount,
        total_amount=invoice.total_amount,
        paid_amount=service.paid_amount(invoice),
        outstanding_amount=service.outstanding_amount(invoice),
        issued_at=invoice.issued_at,
        voided_at=invoice.voided_at,
        notes=invoice.notes,
        items=[_convert_item(i) for i in invoice.items.all()],
        payments=[_convert_payment(p) for p in invoice.payments.all()],
    )


def _convert_credit_note(note: CreditNote) -> CreditNoteType:
    return CreditNoteType(
        id=strawberry.ID(str(note.pk)),
        credit_note_number=note.credit_note_number,
        number_is_fallback=note.number_is_fallback,
        invoice_id=strawberry.ID(str(note.invoice_id)) if note.invoice_id else None,
        invoice_number=note.invoice.invoice_number if note.invoice_id else None,
        customer_id=strawberry.ID(str(note.customer_id)),
        customer_name=note.customer.name,
        type=note.type,
        status=note.status,
        amount=note.amount,
        vat_rate=note.vat_rate,
        vat_amount=note.vat_amount,
        total_amount=note.total_amount,
        reason_code=note.reason_code,
        reason=note.reason,
        description=note.description,
        credit_note_date=note.credit_note_date,
        issued_at=note.issued_at,
        items=[_convert_item(i) for i in note.items.all()],
    )


def _convert_quotation(quotation: Quotation) -> QuotationType:
    return QuotationType(
        id=strawberry.ID(str(quotation.pk)),
        quotation_number=quotation.quotation_number,
        number_is_fallback=quotation.number_is_fallback,
        customer_id=strawberry.ID(str(quotation.customer_id)),
        customer_name=quotation.customer.name,
        status=quotation.status,
        quotation_date=quotation.quotation_date,
        valid_until=quotation.valid_until,
        subtotal=quotation.subtotal,
        discount_amount=quotation.discount_amount,
        taxable_amount=quotation.taxable_amount,
        vat_amount=quotation.vat_amount,
        total_amount=quotation.total_amount,
        converted_invoice_id=(
            strawberry.ID(str(quotation.converted_invoice_id))
            if quotation.converted_invoice_id
            else None
        ),
        items=[_convert_item(i) for i in quotation.items.all()],
    )


def _convert_settings(ds: DocumentSettings) -> DocumentSettingsType:
    return DocumentSettingsType(**{
        f.name: getattr(ds, f.name) for f in fields(DocumentSettings)
    })


def _field_errors(validation: CreditNoteValidation) -> List[FieldErrorType]:
    return [
        FieldErrorType(field=e.field, code=e.code, message=e.message)
        for e in validation.errors
    ]


def _item_dicts(items: List[LineItemInput]) -> list[dict]:
    return [
        {
            "description": item.description,
            "quantity": item.quantity,
            "unit": item.unit,
            "unit_price": item.unit_price,
            "vat_rate": item.vat_rate,
        }
        for item in items
    ]


def _discount(discount: DiscountInput | None) -> Discount | None:
    if discount is None:
        return None
    return Discount.from_values(discount.type, discount.value)


def _get_customer(business, customer_id) -> Customer | None:
    return Customer.objects.filter(business=business, id=customer_id).first()


def _get_invoice(business, invoice_id) -> Invoice | None:
    return Invoice.objects.filter(business=business, id=invoice_id).first()


# =========================================================================
# Queries
# =========================================================================


@strawberry.type
class InvoiceQuery:
    """Invoice-related queries."""

    @strawberry.field
    def calculate_totals(
        self,
        info: Info[Context, None],
        items: List[LineItemInput],
        discount: DiscountInput | None = None,
    ) -> TotalsType:
        """Preview totals for unsaved line items."""
        user = require_perm(info, "invoices", "read")
        default_rate = user.business.document_settings.vat_rate_standard
        rows = [
            {
                "quantity": item.quantity,
                "unit_price": item.unit_price,
                "vat_rate": default_rate if item.vat_rate is None else item.vat_rate,
            }
            for item in items
        ]
        line_items = line_items_from_rows(rows)
        totals = calculate_totals(line_items, _discount(discount))
        return TotalsType(
            subtotal=totals.subtotal,
            discount_amount=totals.discount_amount,
            taxable=totals.taxable,
            vat_amount=totals.vat_amount,
            total=totals.total,
            vat_label=vat_label(line_items),
            vat_breakdown=[
                VatBucketType(
                    rate=b.rate, net=b.net, discount=b.discount, taxable=b.taxable, vat=b.vat
                )
                for b in totals.vat_breakdown
            ],
        )

    @strawberry.field
    def invoices(
        self, info: Info[Context, None], status: str | None = None
    ) -> List[InvoiceType]:
        user = require_perm(info, "invoices", "read")
        service = InvoiceService(user.business)
        queryset = service.list_invoices(status).prefetch_related("items", "payments")
        return [_convert_invoice(inv, service) for inv in queryset]

    @strawberry.field
    def invoice(self, info: Info[Context, None], id: strawberry.ID) -> InvoiceType | None:
        user = require_perm(info, "invoices", "read")
        invoice = _get_invoice(user.business, id)
        if invoice is None:
            return None
        return _convert_invoice(invoice, InvoiceService(user.business))

    @strawberry.field
    def credit_notes(
        self, info: Info[Context, None], invoice_id: strawberry.ID | None = None
    ) -> List[CreditNoteType]:
        user = require_perm(info, "credit_notes", "read")
        queryset = (
            CreditNote.objects
            .filter(business=user.business)
            .select_related("customer", "invoice")
            .prefetch_related("items")
        )
        if invoice_id is not None:
            queryset = queryset.filter(invoice_id=invoice_id)
        return [_convert_credit_note(n) for n in queryset]

    @strawberry.field
    def receivables_aging(self, info: Info[Context, None]) -> List[AgingBucketType]:
        """Outstanding receivables grouped by days overdue."""
        user = require_perm(info, "reports", "read")
        buckets = ReportService(user.business).receivables_aging()
        return [AgingBucketType(label=b.label, amount=b.amount, count=b.count) for b in buckets]

    @strawberry.field
    def document_settings(self, info: Info[Context, None]) -> DocumentSettingsType:
        user = require_perm(info, "settings", "read")
        return _convert_settings(user.business.document_settings)

    @strawberry.field
    def next_number_preview(self, info: Info[Context, None], kind: str = "invoice") -> str:
        """Preview the next number for a document kind without reserving it."""
        user = require_perm(info, "invoices", "read")
        ds = user.business.document_settings
        generator = SequenceNumberGenerator(user.business.pk, pattern=ds.number_pattern)
        return generator.preview_next_number(ds.prefix_for(kind))


# =========================================================================
# Mutations
# =========================================================================


@strawberry.type
class InvoiceMutation:
    """Invoice-related mutations."""

    @strawberry.mutation
    def create_invoice(
        self, info: Info[Context, None], input: CreateInvoiceInput
    ) -> InvoiceResult:
        """Create a numbered draft invoice."""
        user, err = check_perm(info, "invoices", "write")
        if err:
            return InvoiceResult(success=False, error=err)

        customer = _get_customer(user.business, input.customer_id)
        if customer is None:
            return InvoiceResult(success=False, error="Customer not found")

        service = InvoiceService(user.business)
        try:
            invoice = service.create_invoice(
                customer,
                _item_dicts(input.items),
                discount=_discount(input.discount),
                invoice_date=input.invoice_date,
                due_date=input.due_date,
                notes=input.notes,
                user=user,
            )
        except SequenceNumberError:
            return InvoiceResult(success=False, error=NUMBERING_FAILED)
        except ValueError as e:
            return InvoiceResult(success=False, error=str(e))

        return InvoiceResult(success=True, invoice=_convert_invoice(invoice, service))

    @strawberry.mutation
    def issue_invoice(
        self, info: Info[Context, None], invoice_id: strawberry.ID
    ) -> InvoiceResult:
        """Issue a draft invoice. Issued invoices are immutable."""
        user, err = check_perm(info, "invoices", "issue")
        if err:
            return InvoiceResult(success=False, error=err)

        invoice = _get_invoice(user.business, invoice_id)
        if invoice is None:
            return InvoiceResult(success=False, error="Invoice not found")

        service = InvoiceService(user.business)
        try:
            invoice = service.issue_invoice(invoice, user=user)
        except ValueError as e:
            return InvoiceResult(success=False, error=str(e))

        return InvoiceResult(success=True, invoice=_convert_invoice(invoice, service))

    @strawberry.mutation
    def void_invoice(
        self, info: Info[Context, None], invoice_id: strawberry.ID
    ) -> InvoiceResult:
        user, err = check_perm(info, "invoices", "void")
        if err:
            return InvoiceResult(success=False, error=err)

        invoice = _get_invoice(user.business, invoice_id)
        if invoice is None:
            return InvoiceResult(success=False, error="Invoice not found")

        service = InvoiceService(user.business)
        try:
            invoice = service.void_invoice(invoice, user=user)
        except ValueError as e:
            return InvoiceResult(success=False, error=str(e))

        return InvoiceResult(success=True, invoice=_convert_invoice(invoice, service))

    @strawberry.mutation
    def record_payment(
        self, info: Info[Context, None], input: RecordPaymentInput
    ) -> PaymentResult:
        user, err = check_perm(info, "payments", "write")
        if err:
            return PaymentResult(success=False, error=err)

        invoice = _get_invoice(user.business, input.invoice_id)
        if invoice is None:
            return PaymentResult(success=False, error="Invoice not found")

        service = InvoiceService(user.business)
        try:
            payment = service.record_payment(
                invoice,
                input.amount,
                payment_date=input.payment_date,
                method=input.method,
                reference=input.reference,
                user=user,
            )
        except ValueError as e:
            return PaymentResult(success=False, error=str(e))

        return PaymentResult(
            success=True,
            payment=_convert_payment(payment),
            invoice=_convert_invoice(invoice, service),
        )

    @strawberry.mutation
    def create_credit_note(
        self, info: Info[Context, None], input: CreateCreditNoteInput
    ) -> CreditNoteResult:
        """Create a credit note against an invoice, or a standalone customer credit."""
        user, err = check_perm(info, "credit_notes", "write")
        if err:
            return CreditNoteResult(success=False, error=err)
        if input.issue:
            user, err = check_perm(info, "credit_notes", "issue")
            if err:
                return CreditNoteResult(success=False, error=err)

        invoice = None
        if input.invoice_id is not None:
            invoice = _get_invoice(user.business, input.invoice_id)
            if invoice is None:
                return CreditNoteResult(success=False, error="Invoice not found")

        customer = None
        if input.customer_id is not None:
            customer = _get_customer(user.business, input.customer_id)
            if customer is None:
                return CreditNoteResult(success=False, error="Customer not found")

        service = CreditNoteService(user.business)
        try:
            note = service.create_credit_note(
                customer,
                _item_dicts(input.items),
                invoice=invoice,
                reason_code=input.reason_code,
                description=input.description,
                credit_note_date=input.credit_note_date,
                issue=input.issue,
                user=user,
            )
        except CreditNoteRejected as e:
            return CreditNoteResult(
                success=False,
                error=str(e),
                field_errors=_field_errors(e.validation),
                remaining=e.validation.remaining,
            )
        except SequenceNumberError:
            return CreditNoteResult(success=False, error=NUMBERING_FAILED)
        except ValueError as e:
            return CreditNoteResult(success=False, error=str(e))

        return CreditNoteResult(success=True, credit_note=_convert_credit_note(note))

    @strawberry.mutation
    def issue_credit_note(
        self, info: Info[Context, None], credit_note_id: strawberry.ID
    ) -> CreditNoteResult:
        user, err = check_perm(info, "credit_notes", "issue")
        if err:
            return CreditNoteResult(success=False, error=err)

        note = CreditNote.objects.filter(business=user.business, id=credit_note_id).first()
        if note is None:
            return CreditNoteResult(success=False, error="Credit note not found")

        try:
            note = CreditNoteService(user.business).issue_credit_note(note, user=user)
        except CreditNoteRejected as e:
            return CreditNoteResult(
                success=False,
                error=str(e),
                field_errors=_field_errors(e.validation),
                remaining=e.validation.remaining,
            )
        except ValueError as e:
            return CreditNoteResult(success=False, error=str(e))

        return CreditNoteResult(success=True, credit_note=_convert_credit_note(note))

    @strawberry.mutation
    def create_quotation(
        self, info: Info[Context, None], input: CreateQuotationInput
    ) -> QuotationResult:
        user, err = check_perm(info, "quotations", "write")
        if err:
            return QuotationResult(success=False, error=err)

        customer = _get_customer(user.business, input.customer_id)
        if customer is None:
            return QuotationResult(success=False, error="Customer not found")

        try:
            quotation = QuotationService(user.business).create_quotation(
                customer,
                _item_dicts(input.items),
                discount=_discount(input.discount),
                quotation_date=input.quotation_date,
                valid_until=input.valid_until,
                notes=input.notes,
            )
        except SequenceNumberError:
            return QuotationResult(success=False, error=NUMBERING_FAILED)
        except ValueError as e:
            return QuotationResult(success=False, error=str(e))

        return QuotationResult(success=True, quotation=_convert_quotation(quotation))

    @strawberry.mutation
    def convert_quotation(
        self, info: Info[Context, None], quotation_id: strawberry.ID
    ) -> QuotationResult:
        """Turn a quotation into a draft invoice."""
        user, err = check_perm(info, "quotations", "write")
        if err:
            return QuotationResult(success=False, error=err)
        user, err = check_perm(info, "invoices", "write")
        if err:
            return QuotationResult(success=False, error=err)

        quotation = Quotation.objects.filter(business=user.business, id=quotation_id).first()
        if quotation is None:
            return QuotationResult(success=False, error="Quotation not found")

        try:
            invoice = QuotationService(user.business).convert_to_invoice(quotation, user=user)
        except SequenceNumberError:
            return QuotationResult(success=False, error=NUMBERING_FAILED)
        except ValueError as e:
            return QuotationResult(success=False, error=str(e))

        return QuotationResult(
            success=True,
            quotation=_convert_quotation(quotation),
            invoice=_convert_invoice(invoice, InvoiceService(user.business)),
        )

    @strawberry.mutation
    def save_document_settings(
        self, info: Info[Context, None], input: DocumentSettingsInput
    ) -> DocumentSettingsResult:
        """Save numbering, payment terms and VAT defaults for the business."""
        user, err = check_perm(info, "settings", "write")
        if err:
            return DocumentSettingsResult(success=False, error=err)

        if input.number_pattern is not None:
            errors = validate_pattern(input.number_pattern)
            if errors:
                return DocumentSettingsResult(success=False, error="; ".join(errors))

        for name in ("invoice_prefix", "credit_note_prefix", "quotation_prefix"):
            prefix = getattr(input, name)
            if prefix is not None and len(prefix) > 20:
                return DocumentSettingsResult(
                    success=False, error=f"{name} must be at most 20 characters."
                )

        for name in ("vat_rate_standard", "vat_rate_reduced", "vat_rate_zero"):
            rate = getattr(input, name)
            if rate is not None and not 0 <= normalize_rate(rate) <= 1:
                return DocumentSettingsResult(
                    success=False, error=f"{name} must be between 0 and 100%."
                )

        for name in (
            "default_payment_days",
            "quotation_validity_days",
            "reminder_days_before_due",
            "reminder_days_after_due_first",
            "reminder_days_after_due_second",
            "reminder_days_after_due_final",
            "max_reminders",
        ):
            days = getattr(input, name)
            if days is not None and days < 0:
                return DocumentSettingsResult(
                    success=False, error=f"{name} cannot be negative."
                )

        business = user.business
        raw = business.document_settings.to_dict()
        for name in (f.name for f in fields(DocumentSettings)):
            value = getattr(input, name)
            if value is not None:
                raw[name] = value
        document_settings = DocumentSettings.from_mapping(raw)
        business.save_document_settings(document_settings)
        logger.info("Saved document settings for business %s", business.pk)

        return DocumentSettingsResult(
            success=True, settings=_convert_settings(document_settings)
        )
