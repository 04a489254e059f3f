"""Customer models."""
from django.db import models

from apps.core.models import BusinessModel
from .codes import generate_customer_code, make_code_unique


class Customer(BusinessModel):
    """A customer invoiced by a business."""

    name = models.CharField(max_length=255)
    code = models.CharField(
        max_length=10,
        blank=True,
        help_text="Short reference, generated from the name when left empty",
    )
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=50, blank=True)
    vat_number = models.CharField(
        max_length=20,
        blank=True,
        help_text="Customer VAT number, required for B2B reverse charge",
    )
    address = models.JSONField(default=dict, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]
        constraints = [
            models.UniqueConstraint(
                fields=["business", "code"],
                condition=~models.Q(code=""),
                name="unique_customer_code_per_business",
            ),
        ]

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if self._state.adding and not self.code:
            existing = Customer.objects.filter(business_id=self.business_id).values_list(
                "code", flat=True
            )
            self.code = make_code_unique(generate_customer_code(self.name), existing)
        super().save(*args, **kwargs)
