"""Typed per-business document settings."""
from dataclasses import asdict, dataclass, fields
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping


@dataclass(frozen=True)
class DocumentSettings:
    """Numbering, payment terms and VAT defaults for a business.

    Stored as JSON on ``Business.settings``. Build instances with
    ``from_mapping`` so missing or malformed keys fall back to defaults.
    """

    invoice_prefix: str = "INV-"
    credit_note_prefix: str = "CN-"
    quotation_prefix: str = "QUO-"
    number_pattern: str = "{NNNNNN}"
    default_payment_days: int = 30
    quotation_validity_days: int = 30
    vat_rate_standard: Decimal = Decimal("0.18")
    vat_rate_reduced: Decimal = Decimal("0.05")
    vat_rate_zero: Decimal = Decimal("0")
    allow_void_from_draft: bool = False
    allow_fallback_numbering: bool = False
    invoice_footer_text: str = ""
    default_invoice_notes: str = ""
    reminders_enabled: bool = False
    reminder_days_before_due: int = 3
    reminder_days_after_due_first: int = 7
    reminder_days_after_due_second: int = 14
    reminder_days_after_due_final: int = 21
    max_reminders: int = 5

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> "DocumentSettings":
        """Build settings from a loosely-typed mapping, applying defaults."""
        defaults = cls()
        if not raw:
            return defaults

        values = {}
        for f in fields(cls):
            if f.name not in raw or raw[f.name] is None:
                continue
            default = getattr(defaults, f.name)
            coerced = _coerce(raw[f.name], default)
            if coerced is not None:
                values[f.name] = coerced
        return cls(**values)

    def to_dict(self) -> dict:
        """JSON-serializable representation."""
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Decimal):
                data[key] = str(value)
        return data

    def prefix_for(self, kind: str) -> str:
        """Number prefix for a document kind (``invoice``, ``credit_note``, ``quotation``)."""
        prefixes = {
            "invoice": self.invoice_prefix,
            "credit_note": self.credit_note_prefix,
            "quotation": self.quotation_prefix,
        }
        try:
            return prefixes[kind]
        except KeyError:
            raise ValueError(f"Unknown document kind: {kind}") from None

    @property
    def vat_rates(self) -> list[Decimal]:
        return [self.vat_rate_standard, self.vat_rate_reduced, self.vat_rate_zero]


def _coerce(value: Any, default: Any) -> Any:
    """Coerce ``value`` to the type of ``default``; None when impossible."""
    # bool is checked before int since bool is an int subclass
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return None
    if isinstance(default, int):
        try:
            result = int(value)
        except (TypeError, ValueError):
            return None
        return result if result >= 0 else None
    if isinstance(default, Decimal):
        try:
            rate = Decimal(str(value))
        except (InvalidOperation, ValueError):
            return None
        if not rate.is_finite():
            return None
        if rate > 1:
            rate = rate / Decimal("100")
        return rate if 0 <= rate <= 1 else None
    if isinstance(default, str):
        return str(value)
    return None
