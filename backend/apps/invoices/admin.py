from django.contrib import admin

from .models import (
    CreditNote,
    CreditNoteItem,
    DocumentCounter,
    Invoice,
    InvoiceAuditLog,
    InvoiceItem,
    Payment,
    PaymentReminder,
    Quotation,
    QuotationItem,
)


class InvoiceItemInline(admin.TabularInline):
    model = InvoiceItem
    extra = 0


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0
    can_delete = False
    readonly_fields = ["amount", "payment_date", "method", "reference", "created_at"]

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False


class PaymentReminderInline(admin.TabularInline):
    model = PaymentReminder
    extra = 0
    can_delete = False
    readonly_fields = ["level", "reminder_date", "days_overdue", "outstanding_amount"]

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ["invoice_number", "business", "customer", "status", "invoice_date", "total_amount"]
    list_filter = ["business", "status", "number_is_fallback"]
    search_fields = ["invoice_number", "customer__name"]
    inlines = [InvoiceItemInline, PaymentInline, PaymentReminderInline]


class CreditNoteItemInline(admin.TabularInline):
    model = CreditNoteItem
    extra = 0


@admin.register(CreditNote)
class CreditNoteAdmin(admin.ModelAdmin):
    list_display = ["credit_note_number", "business", "customer", "invoice", "status", "total_amount"]
    list_filter = ["business", "status", "type"]
    search_fields = ["credit_note_number", "customer__name"]
    inlines = [CreditNoteItemInline]


class QuotationItemInline(admin.TabularInline):
    model = QuotationItem
    extra = 0


@admin.register(Quotation)
class QuotationAdmin(admin.ModelAdmin):
    list_display = ["quotation_number", "business", "customer", "status", "valid_until", "total_amount"]
    list_filter = ["business", "status"]
    inlines = [QuotationItemInline]


@admin.register(DocumentCounter)
class DocumentCounterAdmin(admin.ModelAdmin):
    list_display = ["business", "prefix", "year", "last_seq"]
    list_filter = ["business"]


@admin.register(InvoiceAuditLog)
class InvoiceAuditLogAdmin(admin.ModelAdmin):
    list_display = ["invoice", "action", "user", "timestamp"]
    list_filter = ["action"]
    readonly_fields = ["invoice", "user", "action", "old_data", "new_data", "timestamp"]
