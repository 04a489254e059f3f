"""Invoice, credit note, quotation and payment models."""
from django.conf import settings
from django.db import models

from apps.core.models import BusinessModel, TimestampedModel
from apps.invoices.credit_notes import CreditNoteReason, credit_note_gross
from apps.invoices.reminders import ReminderLevel
from apps.invoices.status import DocumentStatus
from apps.invoices.totals import Discount, DiscountType

DISCOUNT_TYPE_CHOICES = [(t.value, t.name.title()) for t in DiscountType]


def _money_field(**kwargs):
    return models.DecimalField(max_digits=12, decimal_places=2, default=0, **kwargs)


class DocumentCounter(TimestampedModel):
    """Last issued sequence number per business, prefix and year."""

    business = models.ForeignKey(
        "businesses.Business",
        on_delete=models.CASCADE,
        related_name="document_counters",
    )
    prefix = models.CharField(max_length=20)
    year = models.PositiveIntegerField()
    last_seq = models.PositiveIntegerField(default=0)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["business", "prefix", "year"],
                name="unique_document_counter",
            ),
        ]

    def __str__(self):
        return f"{self.prefix}{self.year}: {self.last_seq}"


class Invoice(BusinessModel):
    """A sales invoice. Amounts are a snapshot taken from its items."""

    Status = DocumentStatus

    customer = models.ForeignKey(
        "customers.Customer",
        on_delete=models.PROTECT,
        related_name="invoices",
    )
    invoice_number = models.CharField(max_length=50)
    number_is_fallback = models.BooleanField(
        default=False,
        help_text="Number was assigned from the timestamp fallback, not the counter",
    )
    status = models.CharField(
        max_length=10,
        choices=DocumentStatus.choices,
        default=DocumentStatus.DRAFT,
    )
    invoice_date = models.DateField()
    due_date = models.DateField(null=True, blank=True)

    discount_type = models.CharField(
        max_length=10,
        choices=DISCOUNT_TYPE_CHOICES,
        default=DiscountType.NONE.value,
    )
    discount_value = _money_field()

    subtotal = _money_field()
    discount_amount = _money_field()
    taxable_amount = _money_field()
    vat_amount = _money_field()
    total_amount = _money_field()

    issued_at = models.DateTimeField(null=True, blank=True)
    voided_at = models.DateTimeField(null=True, blank=True)
    invoice_hash = models.CharField(
        max_length=64,
        blank=True,
        help_text="SHA-256 over the issued invoice's critical fields",
    )
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ["-invoice_date", "-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["business", "invoice_number"],
                name="unique_invoice_number_per_business",
            ),
        ]

    def __str__(self):
        return self.invoice_number

    @property
    def discount(self) -> Discount:
        return Discount.from_values(self.discount_type, self.discount_value)

    @property
    def is_draft(self) -> bool:
        return self.status == DocumentStatus.DRAFT


class InvoiceItem(models.Model):
    invoice = models.ForeignKey(
        Invoice,
        on_delete=models.CASCADE,
        related_name="items",
    )
    description = models.CharField(max_length=500)
    quantity = models.DecimalField(max_digits=12, decimal_places=3, default=1)
    unit = models.CharField(max_length=20, blank=True, default="unit")
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    vat_rate = models.DecimalField(max_digits=5, decimal_places=4, default=0)
    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["sort_order", "id"]

    def __str__(self):
        return self.description


class Payment(TimestampedModel):
    """A payment received against an issued invoice. Never edited."""

    class Method(models.TextChoices):
        BANK_TRANSFER = "bank_transfer", "Bank transfer"
        CARD = "card", "Card"
        CASH = "cash", "Cash"
        CHEQUE = "cheque", "Cheque"
        OTHER = "other", "Other"

    invoice = models.ForeignKey(
        Invoice,
        on_delete=models.PROTECT,
        related_name="payments",
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    payment_date = models.DateField()
    method = models.CharField(
        max_length=20,
        choices=Method.choices,
        default=Method.BANK_TRANSFER,
    )
    reference = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ["-payment_date", "-created_at"]

    def __str__(self):
        return f"{self.amount} on {self.payment_date} for {self.invoice}"


class PaymentReminder(TimestampedModel):
    """A payment reminder scheduled for an unpaid invoice. Delivery happens elsewhere."""

    invoice = models.ForeignKey(
        Invoice,
        on_delete=models.CASCADE,
        related_name="reminders",
    )
    level = models.CharField(max_length=10, choices=ReminderLevel.choices)
    reminder_date = models.DateField()
    days_overdue = models.IntegerField(help_text="Negative before the due date")
    outstanding_amount = _money_field()

    class Meta:
        ordering = ["-reminder_date", "-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["invoice", "reminder_date"],
                name="one_reminder_per_invoice_per_day",
            ),
        ]

    def __str__(self):
        return f"{self.level} reminder for {self.invoice} on {self.reminder_date}"


class CreditNote(BusinessModel):
    """A credit against an invoice, or a standalone credit for a customer."""

    class Type(models.TextChoices):
        INVOICE_ADJUSTMENT = "invoice_adjustment", "Invoice adjustment"
        CUSTOMER_CREDIT = "customer_credit", "Customer credit"

    class Status(models.TextChoices):
        DRAFT = "draft", "Draft"
        ISSUED = "issued", "Issued"

    customer = models.ForeignKey(
        "customers.Customer",
        on_delete=models.PROTECT,
        related_name="credit_notes",
    )
    invoice = models.ForeignKey(
        Invoice,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="credit_notes",
    )
    credit_note_number = models.CharField(max_length=50)
    number_is_fallback = models.BooleanField(
        default=False,
        help_text="Number was assigned from the timestamp fallback, not the counter",
    )
    type = models.CharField(
        max_length=20,
        choices=Type.choices,
        default=Type.INVOICE_ADJUSTMENT,
    )

    amount = _money_field(help_text="Net amount")
    vat_rate = models.DecimalField(max_digits=5, decimal_places=4, default=0)
    vat_amount = _money_field()
    total_amount = _money_field()

    reason_code = models.CharField(
        max_length=30,
        choices=CreditNoteReason.choices,
        blank=True,
    )
    reason = models.TextField(blank=True)
    description = models.TextField(blank=True)
    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.DRAFT,
    )
    credit_note_date = models.DateField()
    issued_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-credit_note_date", "-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["business", "credit_note_number"],
                name="unique_credit_note_number_per_business",
            ),
        ]

    def __str__(self):
        return self.credit_note_number

    @property
    def gross(self):
        """Stored gross total; derived from net and rate for rows saved without one."""
        if self.total_amount:
            return self.total_amount
        return credit_note_gross(self.amount, self.vat_rate)


class CreditNoteItem(models.Model):
    credit_note = models.ForeignKey(
        CreditNote,
        on_delete=models.CASCADE,
        related_name="items",
    )
    description = models.CharField(max_length=500)
    quantity = models.DecimalField(max_digits=12, decimal_places=3, default=1)
    unit = models.CharField(max_length=20, blank=True, default="unit")
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    vat_rate = models.DecimalField(max_digits=5, decimal_places=4, default=0)

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return self.description


class Quotation(BusinessModel):
    class Status(models.TextChoices):
        DRAFT = "draft", "Draft"
        SENT = "sent", "Sent"
        ACCEPTED = "accepted", "Accepted"
        CONVERTED = "converted", "Converted"
        EXPIRED = "expired", "Expired"

    customer = models.ForeignKey(
        "customers.Customer",
        on_delete=models.PROTECT,
        related_name="quotations",
    )
    quotation_number = models.CharField(max_length=50)
    number_is_fallback = models.BooleanField(
        default=False,
        help_text="Number was assigned from the timestamp fallback, not the counter",
    )
    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.DRAFT,
    )
    quotation_date = models.DateField()
    valid_until = models.DateField(null=True, blank=True)

    discount_type = models.CharField(
        max_length=10,
        choices=DISCOUNT_TYPE_CHOICES,
        default=DiscountType.NONE.value,
    )
    discount_value = _money_field()

    subtotal = _money_field()
    discount_amount = _money_field()
    taxable_amount = _money_field()
    vat_amount = _money_field()
    total_amount = _money_field()

    notes = models.TextField(blank=True)
    converted_invoice = models.OneToOneField(
        Invoice,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="source_quotation",
    )

    class Meta:
        ordering = ["-quotation_date", "-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["business", "quotation_number"],
                name="unique_quotation_number_per_business",
            ),
        ]

    def __str__(self):
        return self.quotation_number

    @property
    def discount(self) -> Discount:
        return Discount.from_values(self.discount_type, self.discount_value)


class QuotationItem(models.Model):
    quotation = models.ForeignKey(
        Quotation,
        on_delete=models.CASCADE,
        related_name="items",
    )
    description = models.CharField(max_length=500)
    quantity = models.DecimalField(max_digits=12, decimal_places=3, default=1)
    unit = models.CharField(max_length=20, blank=True, default="unit")
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    vat_rate = models.DecimalField(max_digits=5, decimal_places=4, default=0)
    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["sort_order", "id"]

    def __str__(self):
        return self.description


class InvoiceAuditLog(models.Model):
    """Append-only trail of invoice lifecycle events."""

    class Action(models.TextChoices):
        CREATED = "created", "Created"
        UPDATED = "updated", "Updated"
        ISSUED = "issued", "Issued"
        VOIDED = "voided", "Voided"
        PAYMENT_RECORDED = "payment_recorded", "Payment recorded"
        CREDITED = "credited", "Credited"

    invoice = models.ForeignKey(
        Invoice,
        on_delete=models.CASCADE,
        related_name="audit_logs",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    action = models.CharField(max_length=20, choices=Action.choices)
    old_data = models.JSONField(null=True, blank=True)
    new_data = models.JSONField(null=True, blank=True)
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-timestamp", "-id"]

    def __str__(self):
        return f"{self.invoice} {self.action}"
