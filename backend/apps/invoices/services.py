"""Document lifecycle services: invoices, credit notes, quotations and reminders.

Services own persistence and lifecycle rules. Amounts always come from the
pure calculators in ``totals`` and ``credit_notes``; guard violations raise
``ValueError`` with a user-facing message.
"""
import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

from django.db import IntegrityError, transaction
from django.db.models import Sum
from django.utils import timezone

from apps.businesses.models import Business
from apps.invoices.credit_notes import (
    CreditNoteRejected,
    CreditNoteValidation,
    format_reason_text,
    validate_credit_note,
)
from apps.invoices.models import (
    CreditNote,
    CreditNoteItem,
    Invoice,
    InvoiceAuditLog,
    InvoiceItem,
    Payment,
    PaymentReminder,
    Quotation,
    QuotationItem,
)
from apps.invoices.numbering import (
    CounterStore,
    SequenceNumber,
    SequenceNumberError,
    SequenceNumberGenerator,
)
from apps.invoices.reminders import ReminderHistory, choose_reminder_level, days_past_due
from apps.invoices.status import DocumentStatus, StatusInfo, can_void, resolve_document_status
from apps.invoices.totals import (
    ZERO,
    Discount,
    InvoiceTotals,
    calculate_totals,
    line_items_from_rows,
    normalize_rate,
    round_money,
    to_decimal,
)

logger = logging.getLogger(__name__)

QUANTITY_STEP = Decimal("0.001")
RATE_STEP = Decimal("0.0001")

# Attempts at a free document number before giving up.
NUMBER_ATTEMPTS = 3


def clean_items(items, default_vat_rate: Decimal) -> list[dict]:
    """Validate item dicts and normalize their numbers for storage."""
    rows = []
    for index, item in enumerate(items or [], start=1):
        description = (item.get("description") or "").strip()
        if not description:
            raise ValueError(f"Item {index}: description is required.")

        quantity = to_decimal(item.get("quantity", 1)).quantize(QUANTITY_STEP)
        if quantity <= 0:
            raise ValueError(f"Item {index}: quantity must be greater than zero.")

        unit_price = round_money(item.get("unit_price"))
        if unit_price < 0:
            raise ValueError(f"Item {index}: unit price cannot be negative.")

        raw_rate = item.get("vat_rate")
        vat_rate = normalize_rate(default_vat_rate if raw_rate is None else raw_rate)
        if not ZERO <= vat_rate <= 1:
            raise ValueError(f"Item {index}: VAT rate must be between 0 and 100%.")

        rows.append({
            "description": description,
            "quantity": quantity,
            "unit": item.get("unit") or "unit",
            "unit_price": unit_price,
            "vat_rate": vat_rate.quantize(RATE_STEP),
        })
    return rows


def _totals_fields(totals: InvoiceTotals) -> dict:
    return {
        "subtotal": totals.subtotal,
        "discount_amount": totals.discount_amount,
        "taxable_amount": totals.taxable,
        "vat_amount": totals.vat_amount,
        "total_amount": totals.total,
    }


def _discount_fields(discount: Discount | None) -> dict:
    discount = discount or Discount.none()
    return {
        "discount_type": discount.type.value,
        "discount_value": round_money(discount.value),
    }


class _DocumentService:
    def __init__(self, business: Business, counter_store: CounterStore | None = None):
        self.business = business
        self.counter_store = counter_store

    @property
    def settings(self):
        return self.business.document_settings

    def _next_number(self, kind: str, on_date: date) -> SequenceNumber:
        """Reserve a number for a document of ``kind``. Raises SequenceNumberError."""
        ds = self.settings
        generator = SequenceNumberGenerator(
            self.business.pk,
            store=self.counter_store,
            pattern=ds.number_pattern,
        )
        return generator.next_number_or_fallback(
            ds.prefix_for(kind),
            on_date,
            allow_fallback=ds.allow_fallback_numbering,
        )

    def _create_numbered(self, model, number_field: str, kind: str, on_date: date, **fields):
        """Create a numbered document, moving to the next number if one is taken.

        A unique-constraint clash on the number surfaces as SequenceNumberError
        once the attempts run out.
        """
        for attempt in range(1, NUMBER_ATTEMPTS + 1):
            number = self._next_number(kind, on_date)
            try:
                with transaction.atomic():
                    return model.objects.create(
                        business=self.business,
                        number_is_fallback=number.is_fallback,
                        **{number_field: number.value},
                        **fields,
                    )
            except IntegrityError:
                logger.warning(
                    "Number %s already taken for business %s (attempt %s)",
                    number.value, self.business.pk, attempt,
                )
        raise SequenceNumberError(
            f"Could not assign a free {kind.replace('_', ' ')} number."
        )

    def _check_customer(self, customer):
        if customer.business_id != self.business.pk:
            raise ValueError("Customer not found.")

    @staticmethod
    def _audit(invoice, action, user=None, old_data=None, new_data=None):
        InvoiceAuditLog.objects.create(
            invoice=invoice,
            user=user,
            action=action,
            old_data=old_data,
            new_data=new_data,
        )


class InvoiceService(_DocumentService):
    """Creates, issues, voids and settles invoices for a business."""

    def create_invoice(
        self,
        customer,
        items,
        discount: Discount | None = None,
        invoice_date: date | None = None,
        due_date: date | None = None,
        notes: str = "",
        user=None,
    ) -> Invoice:
        self._check_customer(customer)
        ds = self.settings
        rows = clean_items(items, ds.vat_rate_standard)
        if not rows:
            raise ValueError("An invoice needs at least one item.")

        invoice_date = invoice_date or timezone.localdate()
        if due_date is None:
            due_date = invoice_date + timedelta(days=ds.default_payment_days)
        if due_date < invoice_date:
            raise ValueError("Due date cannot be before the invoice date.")

        totals = calculate_totals(line_items_from_rows(rows), discount)

        with transaction.atomic():
            invoice = self._create_numbered(
                Invoice,
                "invoice_number",
                "invoice",
                invoice_date,
                customer=customer,
                invoice_date=invoice_date,
                due_date=due_date,
                notes=notes or ds.default_invoice_notes,
                **_discount_fields(discount),
                **_totals_fields(totals),
            )
            InvoiceItem.objects.bulk_create([
                InvoiceItem(invoice=invoice, sort_order=i, **row)
                for i, row in enumerate(rows)
            ])
            self._audit(
                invoice,
                InvoiceAuditLog.Action.CREATED,
                user,
                new_data={"invoice_number": invoice.invoice_number, "total_amount": str(totals.total)},
            )

        logger.info("Created invoice %s for business %s", invoice.invoice_number, self.business.pk)
        return invoice

    def update_draft(
        self,
        invoice: Invoice,
        items=None,
        discount: Discount | None = None,
        due_date: date | None = None,
        notes: str | None = None,
        user=None,
    ) -> Invoice:
        if invoice.status != DocumentStatus.DRAFT:
            raise ValueError(
                "Only draft invoices can be edited. Use credit notes for corrections."
            )

        with transaction.atomic():
            if items is not None:
                rows = clean_items(items, self.settings.vat_rate_standard)
                if not rows:
                    raise ValueError("An invoice needs at least one item.")
                invoice.items.all().delete()
                InvoiceItem.objects.bulk_create([
                    InvoiceItem(invoice=invoice, sort_order=i, **row)
                    for i, row in enumerate(rows)
                ])
            if discount is not None:
                for name, value in _discount_fields(discount).items():
                    setattr(invoice, name, value)
            if due_date is not None:
                invoice.due_date = due_date
            if notes is not None:
                invoice.notes = notes

            old_total = str(invoice.total_amount)
            totals = calculate_totals(
                line_items_from_rows(invoice.items.all()), invoice.discount
            )
            for name, value in _totals_fields(totals).items():
                setattr(invoice, name, value)
            invoice.save()
            self._audit(
                invoice,
                InvoiceAuditLog.Action.UPDATED,
                user,
                old_data={"total_amount": old_total},
                new_data={"total_amount": str(totals.total)},
            )
        return invoice

    def issue_invoice(self, invoice: Invoice, user=None) -> Invoice:
        """Lock a draft invoice: status, issue timestamp and integrity hash."""
        with transaction.atomic():
            invoice = Invoice.objects.select_for_update().get(pk=invoice.pk)
            if invoice.status != DocumentStatus.DRAFT:
                raise ValueError(
                    "Invoice already issued. To correct it, create a credit note."
                )
            if not invoice.items.exists():
                raise ValueError("Cannot issue an invoice without items.")

            invoice.status = DocumentStatus.ISSUED
            invoice.issued_at = timezone.now()
            invoice.invoice_hash = self.compute_hash(invoice)
            invoice.save(update_fields=["status", "issued_at", "invoice_hash", "updated_at"])
            self._audit(
                invoice,
                InvoiceAuditLog.Action.ISSUED,
                user,
                new_data={
                    "invoice_number": invoice.invoice_number,
                    "total_amount": str(invoice.total_amount),
                    "customer_id": invoice.customer_id,
                    "issued_at": invoice.issued_at.isoformat(),
                },
            )

        logger.info("Issued invoice %s", invoice.invoice_number)
        return invoice

    def void_invoice(self, invoice: Invoice, user=None) -> Invoice:
        with transaction.atomic():
            invoice = Invoice.objects.select_for_update().get(pk=invoice.pk)
            if not can_void(invoice.status, self.settings.allow_void_from_draft):
                if invoice.status == DocumentStatus.DRAFT:
                    raise ValueError("Draft invoices cannot be voided. Delete the draft instead.")
                raise ValueError(f"Invoice {invoice.invoice_number} cannot be voided.")

            old_status = invoice.status
            invoice.status = DocumentStatus.VOID
            invoice.voided_at = timezone.now()
            invoice.save(update_fields=["status", "voided_at", "updated_at"])
            self._audit(
                invoice,
                InvoiceAuditLog.Action.VOIDED,
                user,
                old_data={"status": old_status},
                new_data={"status": DocumentStatus.VOID.value},
            )

        logger.info("Voided invoice %s", invoice.invoice_number)
        return invoice

    def record_payment(
        self,
        invoice: Invoice,
        amount,
        payment_date: date | None = None,
        method: str = Payment.Method.BANK_TRANSFER,
        reference: str = "",
        user=None,
    ) -> Payment:
        if invoice.status != DocumentStatus.ISSUED:
            raise ValueError("Payments can only be recorded against issued invoices.")
        amount = round_money(amount)
        if amount <= 0:
            raise ValueError("Payment amount must be greater than zero.")
        if method not in Payment.Method.values:
            raise ValueError(f"Unknown payment method: {method}")

        with transaction.atomic():
            payment = Payment.objects.create(
                invoice=invoice,
                amount=amount,
                payment_date=payment_date or timezone.localdate(),
                method=method,
                reference=reference,
            )
            self._audit(
                invoice,
                InvoiceAuditLog.Action.PAYMENT_RECORDED,
                user,
                new_data={"amount": str(amount), "payment_id": payment.pk},
            )
        return payment

    def paid_amount(self, invoice: Invoice) -> Decimal:
        """Sum of payments received."""
        return round_money(invoice.payments.aggregate(total=Sum("amount"))["total"] or ZERO)

    def credited_amount(self, invoice: Invoice) -> Decimal:
        """Gross sum of issued credit notes against the invoice."""
        notes = invoice.credit_notes.filter(status=CreditNote.Status.ISSUED)
        return round_money(sum((note.gross for note in notes), ZERO))

    def outstanding_amount(self, invoice: Invoice) -> Decimal:
        outstanding = invoice.total_amount - self.paid_amount(invoice) - self.credited_amount(invoice)
        return max(ZERO, outstanding)

    def status_for(self, invoice: Invoice, today: date | None = None) -> StatusInfo:
        """Display status; issued credit notes count towards settlement."""
        settled = self.paid_amount(invoice) + self.credited_amount(invoice)
        return resolve_document_status(
            invoice.status, invoice.total_amount, settled, invoice.due_date, today
        )

    @staticmethod
    def compute_hash(invoice: Invoice) -> str:
        """SHA-256 over the invoice's critical fields and items."""

        def num(value):
            return str(to_decimal(value).normalize())

        payload = {
            "invoice_number": invoice.invoice_number,
            "invoice_date": str(invoice.invoice_date),
            "due_date": str(invoice.due_date),
            "customer_id": invoice.customer_id,
            "discount_type": invoice.discount_type,
            "discount_value": num(invoice.discount_value),
            "taxable_amount": num(invoice.taxable_amount),
            "vat_amount": num(invoice.vat_amount),
            "total_amount": num(invoice.total_amount),
            "issued_at": invoice.issued_at.isoformat() if invoice.issued_at else None,
            "items": [
                {
                    "description": item.description,
                    "quantity": num(item.quantity),
                    "unit_price": num(item.unit_price),
                    "vat_rate": num(item.vat_rate),
                }
                for item in invoice.items.order_by("sort_order", "id")
            ],
        }
        encoded = json.dumps(payload, sort_keys=True).encode("utf-8")
        return hashlib.sha256(encoded).hexdigest()

    def verify_integrity(self, invoice: Invoice) -> bool:
        invoice.refresh_from_db()
        if not invoice.invoice_hash:
            return False
        valid = self.compute_hash(invoice) == invoice.invoice_hash
        if not valid:
            logger.warning("Integrity check failed for invoice %s", invoice.invoice_number)
        return valid

    def list_invoices(self, status: str | None = None):
        qs = Invoice.objects.filter(business=self.business).select_related("customer")
        if status:
            qs = qs.filter(status=status)
        return qs


@dataclass(frozen=True)
class InvoiceAggregates:
    invoice_total: Decimal
    other_credit_notes_gross: Decimal
    payments_total: Decimal


def _effective_vat_rate(totals: InvoiceTotals) -> Decimal:
    """Single VAT rate of a credit note; the blended rate when items mix rates."""
    if len(totals.vat_breakdown) == 1:
        return totals.vat_breakdown[0].rate.quantize(RATE_STEP)
    if not totals.taxable:
        return ZERO
    return (totals.vat_amount / totals.taxable).quantize(RATE_STEP)


class CreditNoteService(_DocumentService):
    """Creates and issues credit notes, validated against the invoice balance."""

    def invoice_aggregates(self, invoice: Invoice, exclude: CreditNote | None = None) -> InvoiceAggregates:
        others = invoice.credit_notes.filter(status=CreditNote.Status.ISSUED)
        if exclude is not None and exclude.pk:
            others = others.exclude(pk=exclude.pk)
        payments = round_money(invoice.payments.aggregate(total=Sum("amount"))["total"] or ZERO)
        return InvoiceAggregates(
            invoice_total=invoice.total_amount,
            other_credit_notes_gross=round_money(sum((note.gross for note in others), ZERO)),
            payments_total=payments,
        )

    def validate(
        self,
        totals: InvoiceTotals,
        invoice: Invoice | None,
        reason_code: str | None,
        description: str,
        issuing: bool,
        exclude: CreditNote | None = None,
    ) -> CreditNoteValidation:
        if invoice is None:
            return validate_credit_note(
                totals.total,
                linked_to_invoice=False,
                issuing=issuing,
                description=description,
            )
        aggregates = self.invoice_aggregates(invoice, exclude=exclude)
        return validate_credit_note(
            totals.total,
            aggregates.invoice_total,
            aggregates.other_credit_notes_gross,
            aggregates.payments_total,
            reason_code=reason_code,
            issuing=issuing,
            description=description,
        )

    def _reject_if_invalid(self, validation: CreditNoteValidation, invoice: Invoice | None):
        if validation.is_valid:
            return
        logger.info(
            "Credit note rejected for invoice %s: %s",
            invoice.invoice_number if invoice else "-",
            ", ".join(validation.codes),
        )
        raise CreditNoteRejected(validation)

    def create_credit_note(
        self,
        customer=None,
        items=None,
        invoice: Invoice | None = None,
        reason_code: str | None = None,
        description: str = "",
        credit_note_date: date | None = None,
        issue: bool = False,
        user=None,
    ) -> CreditNote:
        if invoice is not None:
            if invoice.business_id != self.business.pk:
                raise ValueError("Invoice not found.")
            if invoice.status != DocumentStatus.ISSUED:
                raise ValueError("Credit notes can only be raised against issued invoices.")
            customer = customer or invoice.customer
            if customer.pk != invoice.customer_id:
                raise ValueError("Credit note customer must match the invoice customer.")
        if customer is None:
            raise ValueError("A customer is required.")
        self._check_customer(customer)

        rows = clean_items(items, self.settings.vat_rate_standard)
        totals = calculate_totals(line_items_from_rows(rows))
        reason_code = reason_code or ""

        with transaction.atomic():
            if invoice is not None:
                # Serialize credits against the same invoice in this database.
                invoice = Invoice.objects.select_for_update().get(pk=invoice.pk)
            validation = self.validate(totals, invoice, reason_code, description, issuing=issue)
            self._reject_if_invalid(validation, invoice)

            note_date = credit_note_date or timezone.localdate()
            credit_note = self._create_numbered(
                CreditNote,
                "credit_note_number",
                "credit_note",
                note_date,
                customer=customer,
                invoice=invoice,
                type=(
                    CreditNote.Type.INVOICE_ADJUSTMENT
                    if invoice is not None
                    else CreditNote.Type.CUSTOMER_CREDIT
                ),
                amount=totals.taxable,
                vat_rate=_effective_vat_rate(totals),
                vat_amount=totals.vat_amount,
                total_amount=totals.total,
                reason_code=reason_code,
                reason=format_reason_text(reason_code, description),
                description=description,
                status=CreditNote.Status.ISSUED if issue else CreditNote.Status.DRAFT,
                credit_note_date=note_date,
                issued_at=timezone.now() if issue else None,
            )
            CreditNoteItem.objects.bulk_create([
                CreditNoteItem(credit_note=credit_note, **row) for row in rows
            ])
            if invoice is not None and issue:
                self._audit(
                    invoice,
                    InvoiceAuditLog.Action.CREDITED,
                    user,
                    new_data={
                        "credit_note_number": credit_note.credit_note_number,
                        "total_amount": str(credit_note.total_amount),
                    },
                )

        logger.info(
            "Created credit note %s (%s)", credit_note.credit_note_number, credit_note.status
        )
        return credit_note

    def update_draft(
        self,
        credit_note: CreditNote,
        items=None,
        reason_code: str | None = None,
        description: str | None = None,
    ) -> CreditNote:
        if credit_note.status != CreditNote.Status.DRAFT:
            raise ValueError("Issued credit notes cannot be edited.")

        with transaction.atomic():
            if items is not None:
                rows = clean_items(items, self.settings.vat_rate_standard)
            else:
                rows = list(
                    credit_note.items.values(
                        "description", "quantity", "unit", "unit_price", "vat_rate"
                    )
                )
            if reason_code is not None:
                credit_note.reason_code = reason_code
            if description is not None:
                credit_note.description = description

            totals = calculate_totals(line_items_from_rows(rows))
            validation = self.validate(
                totals,
                credit_note.invoice,
                credit_note.reason_code,
                credit_note.description,
                issuing=False,
                exclude=credit_note,
            )
            self._reject_if_invalid(validation, credit_note.invoice)

            if items is not None:
                credit_note.items.all().delete()
                CreditNoteItem.objects.bulk_create([
                    CreditNoteItem(credit_note=credit_note, **row) for row in rows
                ])
            credit_note.amount = totals.taxable
            credit_note.vat_rate = _effective_vat_rate(totals)
            credit_note.vat_amount = totals.vat_amount
            credit_note.total_amount = totals.total
            credit_note.reason = format_reason_text(credit_note.reason_code, credit_note.description)
            credit_note.save()
        return credit_note

    def issue_credit_note(self, credit_note: CreditNote, user=None) -> CreditNote:
        """Re-validate as issuing and lock the credit note."""
        with transaction.atomic():
            credit_note = CreditNote.objects.select_for_update().get(pk=credit_note.pk)
            if credit_note.status != CreditNote.Status.DRAFT:
                raise ValueError("Credit note already issued.")
            invoice = credit_note.invoice
            if invoice is not None and invoice.status != DocumentStatus.ISSUED:
                raise ValueError("The credited invoice is no longer issued.")

            totals = calculate_totals(line_items_from_rows(credit_note.items.all()))
            validation = self.validate(
                totals,
                invoice,
                credit_note.reason_code,
                credit_note.description,
                issuing=True,
                exclude=credit_note,
            )
            self._reject_if_invalid(validation, invoice)

            credit_note.status = CreditNote.Status.ISSUED
            credit_note.issued_at = timezone.now()
            credit_note.save(update_fields=["status", "issued_at", "updated_at"])
            if invoice is not None:
                self._audit(
                    invoice,
                    InvoiceAuditLog.Action.CREDITED,
                    user,
                    new_data={
                        "credit_note_number": credit_note.credit_note_number,
                        "total_amount": str(credit_note.total_amount),
                    },
                )

        logger.info("Issued credit note %s", credit_note.credit_note_number)
        return credit_note

    def create_full_credit_note(
        self, invoice: Invoice, reason_code: str = "other", description: str = "", user=None
    ) -> CreditNote:
        """Issue a credit note for the whole invoice.

        Discounted invoices are credited with one line per VAT rate so the
        credit matches the invoice total to the cent.
        """
        invoice_items = list(invoice.items.all())
        if invoice.discount_amount:
            totals = calculate_totals(line_items_from_rows(invoice_items), invoice.discount)
            items = [
                {
                    "description": f"Credit for {invoice.invoice_number} "
                                   f"({(bucket.rate * 100).normalize()}% VAT)",
                    "quantity": 1,
                    "unit_price": bucket.taxable,
                    "vat_rate": bucket.rate,
                }
                for bucket in totals.vat_breakdown
                if bucket.taxable
            ]
        else:
            items = [
                {
                    "description": item.description,
                    "quantity": item.quantity,
                    "unit": item.unit,
                    "unit_price": item.unit_price,
                    "vat_rate": item.vat_rate,
                }
                for item in invoice_items
            ]
        return self.create_credit_note(
            invoice.customer,
            items,
            invoice=invoice,
            reason_code=reason_code,
            description=description or f"Full credit of invoice {invoice.invoice_number}",
            issue=True,
            user=user,
        )


class QuotationService(_DocumentService):
    """Quotation lifecycle: draft, sent, accepted, then converted or expired."""

    def create_quotation(
        self,
        customer,
        items,
        discount: Discount | None = None,
        quotation_date: date | None = None,
        valid_until: date | None = None,
        notes: str = "",
    ) -> Quotation:
        self._check_customer(customer)
        ds = self.settings
        rows = clean_items(items, ds.vat_rate_standard)
        if not rows:
            raise ValueError("A quotation needs at least one item.")

        quotation_date = quotation_date or timezone.localdate()
        if valid_until is None:
            valid_until = quotation_date + timedelta(days=ds.quotation_validity_days)
        totals = calculate_totals(line_items_from_rows(rows), discount)

        with transaction.atomic():
            quotation = self._create_numbered(
                Quotation,
                "quotation_number",
                "quotation",
                quotation_date,
                customer=customer,
                quotation_date=quotation_date,
                valid_until=valid_until,
                notes=notes,
                **_discount_fields(discount),
                **_totals_fields(totals),
            )
            QuotationItem.objects.bulk_create([
                QuotationItem(quotation=quotation, sort_order=i, **row)
                for i, row in enumerate(rows)
            ])
        return quotation

    def _transition(self, quotation: Quotation, allowed: set, target: str) -> Quotation:
        if quotation.status not in allowed:
            raise ValueError(
                f"Quotation {quotation.quotation_number} is {quotation.status} "
                f"and cannot be marked {target}."
            )
        quotation.status = target
        quotation.save(update_fields=["status", "updated_at"])
        return quotation

    def mark_sent(self, quotation: Quotation) -> Quotation:
        return self._transition(quotation, {Quotation.Status.DRAFT}, Quotation.Status.SENT)

    def accept(self, quotation: Quotation, today: date | None = None) -> Quotation:
        today = today or timezone.localdate()
        if quotation.valid_until and quotation.valid_until < today:
            raise ValueError(f"Quotation {quotation.quotation_number} has expired.")
        return self._transition(
            quotation,
            {Quotation.Status.DRAFT, Quotation.Status.SENT},
            Quotation.Status.ACCEPTED,
        )

    def expire_stale(self, today: date | None = None) -> int:
        """Mark open quotations past their validity date as expired."""
        today = today or timezone.localdate()
        return Quotation.objects.filter(
            business=self.business,
            status__in=[Quotation.Status.DRAFT, Quotation.Status.SENT],
            valid_until__lt=today,
        ).update(status=Quotation.Status.EXPIRED, updated_at=timezone.now())

    def convert_to_invoice(self, quotation: Quotation, user=None) -> Invoice:
        """Create a draft invoice with the quotation's items and discount."""
        if quotation.status in (Quotation.Status.CONVERTED, Quotation.Status.EXPIRED):
            raise ValueError(
                f"Quotation {quotation.quotation_number} is {quotation.status} "
                "and cannot be converted."
            )

        items = [
            {
                "description": item.description,
                "quantity": item.quantity,
                "unit": item.unit,
                "unit_price": item.unit_price,
                "vat_rate": item.vat_rate,
            }
            for item in quotation.items.all()
        ]
        with transaction.atomic():
            invoice = InvoiceService(self.business, self.counter_store).create_invoice(
                quotation.customer,
                items,
                discount=quotation.discount,
                notes=quotation.notes,
                user=user,
            )
            quotation.status = Quotation.Status.CONVERTED
            quotation.converted_invoice = invoice
            quotation.save(update_fields=["status", "converted_invoice", "updated_at"])

        logger.info(
            "Converted quotation %s to invoice %s",
            quotation.quotation_number, invoice.invoice_number,
        )
        return invoice


class PaymentReminderService(_DocumentService):
    """Schedules payment reminders for issued invoices with a balance left.

    Only the reminder record is written here; sending it is up to a mailer.
    """

    @staticmethod
    def history(invoice: Invoice) -> ReminderHistory:
        reminders = list(invoice.reminders.all())
        if not reminders:
            return ReminderHistory()
        last = reminders[0]
        return ReminderHistory(
            sent_count=len(reminders),
            last_level=last.level,
            last_date=last.reminder_date,
        )

    def schedule_reminders(self, today: date | None = None) -> list[PaymentReminder]:
        """Create today's reminders. Running twice on one day creates nothing new."""
        ds = self.settings
        if not ds.reminders_enabled:
            return []
        today = today or timezone.localdate()

        invoices = (
            Invoice.objects
            .filter(business=self.business, status=DocumentStatus.ISSUED, due_date__isnull=False)
            .select_related("customer")
            .prefetch_related("reminders")
        )
        invoice_service = InvoiceService(self.business)
        scheduled = []
        for invoice in invoices:
            if not invoice.customer.email:
                continue
            outstanding = invoice_service.outstanding_amount(invoice)
            if outstanding <= 0:
                continue

            days_past = days_past_due(invoice.due_date, today)
            level = choose_reminder_level(days_past, ds, self.history(invoice), today)
            if level is None:
                continue

            reminder, created = PaymentReminder.objects.get_or_create(
                invoice=invoice,
                reminder_date=today,
                defaults={
                    "level": level,
                    "days_overdue": days_past,
                    "outstanding_amount": outstanding,
                },
            )
            if created:
                logger.info(
                    "Scheduled %s reminder for invoice %s (%s days past due)",
                    level, invoice.invoice_number, days_past,
                )
                scheduled.append(reminder)
        return scheduled
