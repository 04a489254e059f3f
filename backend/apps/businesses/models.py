"""Business and User models for multi-business support."""
from functools import cached_property

from django.contrib.auth.models import AbstractUser, BaseUserManager
from django.db import models

from apps.core.models import TimestampedModel
from apps.invoices.config import DocumentSettings


class Business(TimestampedModel):
    """A business issuing invoices through the system."""

    name = models.CharField(max_length=255)
    currency = models.CharField(max_length=3, default="EUR")
    vat_number = models.CharField(
        max_length=20,
        blank=True,
        help_text="Malta VAT number (e.g., 'MT12345678')",
    )
    address = models.JSONField(default=dict, blank=True)
    settings = models.JSONField(
        default=dict,
        blank=True,
        help_text="Document settings (numbering, payment terms, VAT rates)",
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "Businesses"

    def __str__(self):
        return self.name

    @property
    def currency_symbol(self) -> str:
        """Return the currency symbol for the business currency."""
        symbols = {
            "EUR": "€",
            "USD": "$",
            "GBP": "£",
        }
        return symbols.get(self.currency, self.currency + " ")

    @property
    def document_settings(self) -> DocumentSettings:
        """Typed document settings with defaults applied."""
        return DocumentSettings.from_mapping(self.settings)

    def save_document_settings(self, document_settings: DocumentSettings) -> None:
        self.settings = document_settings.to_dict()
        self.save(update_fields=["settings", "updated_at"])


class Role(TimestampedModel):
    """Roles for permission management within a business."""

    business = models.ForeignKey(
        Business,
        on_delete=models.CASCADE,
        related_name="roles",
    )
    name = models.CharField(max_length=100)
    permissions = models.JSONField(default=dict, blank=True)
    is_system = models.BooleanField(default=False)

    class Meta:
        ordering = ["business", "name"]
        unique_together = ["business", "name"]

    def __str__(self):
        return f"{self.business.name} - {self.name}"


class UserManager(BaseUserManager):
    """Custom user manager for email-based authentication."""

    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError("The Email field must be set")
        email = self.normalize_email(email)
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)
        return self.create_user(email, password, **extra_fields)


class User(AbstractUser):
    """Custom user model with business association."""

    username = None
    email = models.EmailField(unique=True)

    business = models.ForeignKey(
        Business,
        on_delete=models.CASCADE,
        related_name="users",
        null=True,
        blank=True,
    )
    roles = models.ManyToManyField(
        Role,
        blank=True,
        related_name="users",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        ordering = ["email"]

    def __str__(self):
        return self.email

    @cached_property
    def effective_permissions(self) -> set[str]:
        """Compute the union of all permissions from assigned roles."""
        perms = set()
        for role in self.roles.all():
            for key, granted in (role.permissions or {}).items():
                if granted:
                    perms.add(key)
        return perms

    def has_perm_check(self, resource: str, action: str) -> bool:
        """Check if user has a specific permission via their roles."""
        if self.is_superuser:
            return True
        return f"{resource}.{action}" in self.effective_permissions
