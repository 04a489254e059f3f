"""Invoice totals: subtotal, pre-VAT discount and per-rate VAT.

Everything here is a pure function of its inputs. The same totals are
computed for on-screen previews and for the persisted snapshot, so results
must not depend on anything but the arguments.

Order of computation: subtotal, discount, taxable, VAT, total. The discount
is applied at document level before VAT and is spread across VAT rates in
proportion to each rate's share of the subtotal.
"""
from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Iterable

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Any) -> Decimal:
    """Convert a numeric input to Decimal. None counts as zero."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # str() keeps 0.1 as 0.1 instead of its binary expansion
        return Decimal(str(value))
    return Decimal(value)


def round_money(value: Any) -> Decimal:
    """Round half-up to cents."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def normalize_rate(rate: Any) -> Decimal:
    """Return a VAT rate as a fraction. Rates above 1 are percentages (18 -> 0.18)."""
    r = to_decimal(rate)
    return r / HUNDRED if r > 1 else r


class DiscountType(str, Enum):
    NONE = "none"
    AMOUNT = "amount"
    PERCENT = "percent"


@dataclass(frozen=True)
class Discount:
    """Document-level discount, applied before VAT."""

    type: DiscountType = DiscountType.NONE
    value: Decimal = ZERO

    @classmethod
    def none(cls) -> "Discount":
        return cls()

    @classmethod
    def from_values(cls, type: str | DiscountType | None, value: Any) -> "Discount":
        """Build from persisted or user-supplied values; unknown types mean no discount."""
        try:
            discount_type = DiscountType(type or DiscountType.NONE)
        except ValueError:
            discount_type = DiscountType.NONE
        return cls(type=discount_type, value=to_decimal(value))


@dataclass(frozen=True)
class LineItem:
    """A priced line on an invoice, credit note or quotation."""

    quantity: Decimal
    unit_price: Decimal
    vat_rate: Decimal

    @property
    def net(self) -> Decimal:
        return to_decimal(self.quantity) * to_decimal(self.unit_price)


@dataclass(frozen=True)
class VatBucket:
    """Totals for all lines sharing one VAT rate."""

    rate: Decimal
    net: Decimal
    discount: Decimal
    taxable: Decimal
    vat: Decimal


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    discount_amount: Decimal
    taxable: Decimal
    vat_amount: Decimal
    total: Decimal
    vat_breakdown: tuple[VatBucket, ...] = ()

    def as_dict(self) -> dict:
        return asdict(self)


def calculate_discount_amount(subtotal: Decimal, discount: Discount | None) -> Decimal:
    """Discount in currency, clamped to ``[0, subtotal]``."""
    if discount is None or discount.type == DiscountType.NONE:
        return ZERO

    value = to_decimal(discount.value)
    if not value:
        return ZERO

    if discount.type == DiscountType.PERCENT:
        pct = min(max(value, ZERO), HUNDRED)
        amount = round_money(subtotal * pct / HUNDRED)
    elif discount.type == DiscountType.AMOUNT:
        amount = round_money(min(max(value, ZERO), subtotal))
    else:
        return ZERO

    return round_money(max(min(amount, subtotal), ZERO))


def _allocate_discount(
    per_rate: dict[Decimal, Decimal], subtotal: Decimal, discount_amount: Decimal
) -> dict[Decimal, Decimal]:
    """Split the discount across rate buckets by net share.

    Shares are rounded to cents; the rounding residue goes to the bucket with
    the largest net (the first one on ties) so shares sum to the discount.
    """
    if subtotal == 0 or discount_amount == 0:
        return {rate: ZERO for rate in per_rate}

    shares = {
        rate: round_money(discount_amount * rate_net / subtotal)
        for rate, rate_net in per_rate.items()
    }
    residue = discount_amount - sum(shares.values(), ZERO)
    if residue:
        largest = max(per_rate, key=per_rate.get)
        shares[largest] = round_money(shares[largest] + residue)
    return shares


def calculate_totals(
    items: Iterable[LineItem], discount: Discount | None = None
) -> InvoiceTotals:
    """Compute net, discount, taxable, VAT and gross totals for line items.

    An empty item list yields all-zero totals. Negative quantities or prices
    are not rejected here; item validation belongs to the caller.
    """
    per_rate: dict[Decimal, Decimal] = {}
    subtotal = ZERO

    for item in items or ():
        line_net = item.net
        subtotal += line_net
        rate = normalize_rate(item.vat_rate)
        per_rate[rate] = per_rate.get(rate, ZERO) + line_net

    subtotal = round_money(subtotal)
    discount_amount = calculate_discount_amount(subtotal, discount)
    shares = _allocate_discount(per_rate, subtotal, discount_amount)

    buckets = []
    vat_amount = ZERO
    for rate, rate_net in per_rate.items():
        share = shares[rate]
        rate_taxable = round_money(max(rate_net - share, ZERO))
        rate_vat = round_money(rate_taxable * rate)
        vat_amount += rate_vat
        buckets.append(
            VatBucket(
                rate=rate,
                net=round_money(rate_net),
                discount=share,
                taxable=rate_taxable,
                vat=rate_vat,
            )
        )

    vat_amount = round_money(vat_amount)
    taxable = round_money(subtotal - discount_amount)
    total = round_money(taxable + vat_amount)

    return InvoiceTotals(
        subtotal=subtotal,
        discount_amount=discount_amount,
        taxable=taxable,
        vat_amount=vat_amount,
        total=total,
        vat_breakdown=tuple(buckets),
    )


def line_items_from_rows(rows: Iterable[Any]) -> list[LineItem]:
    """Build LineItems from item model instances or dicts."""
    items = []
    for row in rows:
        if isinstance(row, dict):
            get = row.get
        else:
            def get(name, row=row):
                return getattr(row, name, None)
        items.append(
            LineItem(
                quantity=to_decimal(get("quantity")),
                unit_price=to_decimal(get("unit_price")),
                vat_rate=normalize_rate(get("vat_rate")),
            )
        )
    return items


def vat_label(items: Iterable[LineItem]) -> str:
    """``"VAT (18%)"`` when all items share one rate, otherwise ``"VAT"``."""
    rates = {normalize_rate(item.vat_rate) for item in items}
    if len(rates) != 1:
        return "VAT"
    pct = (rates.pop() * HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return f"VAT ({pct}%)"
