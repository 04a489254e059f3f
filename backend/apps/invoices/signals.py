"""Model-level guards that keep issued documents immutable."""
from django.core.exceptions import ValidationError
from django.db.models.signals import pre_delete, pre_save
from django.dispatch import receiver

from apps.invoices.models import (
    CreditNote,
    CreditNoteItem,
    Invoice,
    InvoiceItem,
    Payment,
)
from apps.invoices.status import DocumentStatus

INVOICE_LOCKED_FIELDS = [
    "invoice_number",
    "customer_id",
    "invoice_date",
    "due_date",
    "discount_type",
    "discount_value",
    "subtotal",
    "discount_amount",
    "taxable_amount",
    "vat_amount",
    "total_amount",
    "invoice_hash",
]

CREDIT_NOTE_LOCKED_FIELDS = [
    "credit_note_number",
    "customer_id",
    "invoice_id",
    "type",
    "amount",
    "vat_rate",
    "vat_amount",
    "total_amount",
    "reason_code",
    "credit_note_date",
    "status",
]


def _changed_fields(sender, instance, fields):
    """Return (stored row, changed field names); (None, []) for new rows."""
    if instance._state.adding or instance.pk is None:
        return None, []
    stored = sender.objects.filter(pk=instance.pk).values("status", *fields).first()
    if stored is None:
        return None, []
    changed = [f for f in fields if stored[f] != getattr(instance, f)]
    return stored, changed


@receiver(pre_save, sender=Invoice)
def guard_issued_invoice(sender, instance, **kwargs):
    stored, changed = _changed_fields(sender, instance, INVOICE_LOCKED_FIELDS)
    if stored is None or stored["status"] == DocumentStatus.DRAFT:
        return
    if changed:
        raise ValidationError(
            f"Cannot modify issued invoice {instance.invoice_number} "
            f"({', '.join(changed)}). Use credit notes for corrections."
        )
    if stored["status"] == DocumentStatus.VOID and instance.status != DocumentStatus.VOID:
        raise ValidationError(f"Invoice {instance.invoice_number} is void.")
    if instance.status == DocumentStatus.DRAFT:
        raise ValidationError(
            f"Issued invoice {instance.invoice_number} cannot return to draft."
        )


@receiver(pre_delete, sender=Invoice)
def guard_issued_invoice_delete(sender, instance, **kwargs):
    if instance.status != DocumentStatus.DRAFT:
        raise ValidationError(
            f"Cannot delete issued invoice {instance.invoice_number}. Void it instead."
        )


@receiver(pre_save, sender=InvoiceItem)
@receiver(pre_delete, sender=InvoiceItem)
def guard_issued_invoice_items(sender, instance, **kwargs):
    status = Invoice.objects.filter(pk=instance.invoice_id).values_list(
        "status", flat=True
    ).first()
    if status is not None and status != DocumentStatus.DRAFT:
        raise ValidationError("Items of an issued invoice cannot be changed.")


@receiver(pre_save, sender=CreditNote)
def guard_issued_credit_note(sender, instance, **kwargs):
    stored, changed = _changed_fields(sender, instance, CREDIT_NOTE_LOCKED_FIELDS)
    if stored is None or stored["status"] != CreditNote.Status.ISSUED:
        return
    if changed:
        raise ValidationError(
            f"Cannot modify issued credit note {instance.credit_note_number}."
        )


@receiver(pre_delete, sender=CreditNote)
def guard_issued_credit_note_delete(sender, instance, **kwargs):
    if instance.status == CreditNote.Status.ISSUED:
        raise ValidationError(
            f"Cannot delete issued credit note {instance.credit_note_number}."
        )


@receiver(pre_save, sender=CreditNoteItem)
@receiver(pre_delete, sender=CreditNoteItem)
def guard_issued_credit_note_items(sender, instance, **kwargs):
    status = CreditNote.objects.filter(pk=instance.credit_note_id).values_list(
        "status", flat=True
    ).first()
    if status == CreditNote.Status.ISSUED:
        raise ValidationError("Items of an issued credit note cannot be changed.")


@receiver(pre_save, sender=Payment)
def guard_payment_update(sender, instance, **kwargs):
    if not instance._state.adding:
        raise ValidationError("Payments cannot be edited. Record a new payment instead.")


@receiver(pre_delete, sender=Payment)
def guard_payment_delete(sender, instance, **kwargs):
    raise ValidationError(
        "Payments cannot be deleted. Record a credit note or a correcting entry instead."
    )
