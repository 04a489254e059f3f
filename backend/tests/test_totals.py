"""Tests for invoice totals calculation."""
from decimal import Decimal

import pytest

from apps.invoices.totals import (
    Discount,
    DiscountType,
    LineItem,
    calculate_discount_amount,
    calculate_totals,
    line_items_from_rows,
    normalize_rate,
    round_money,
    vat_label,
)


def item(qty, price, rate):
    return LineItem(Decimal(qty), Decimal(price), Decimal(rate))


class TestCalculateTotals:
    def test_single_rate(self):
        totals = calculate_totals([item("2", "50.00", "0.18")])
        assert totals.subtotal == Decimal("100.00")
        assert totals.discount_amount == Decimal("0")
        assert totals.taxable == Decimal("100.00")
        assert totals.vat_amount == Decimal("18.00")
        assert totals.total == Decimal("118.00")

    def test_mixed_rates_with_percent_discount(self):
        items = [item("1", "100", "0.18"), item("1", "100", "0")]
        totals = calculate_totals(items, Discount(DiscountType.PERCENT, Decimal("10")))

        assert totals.subtotal == Decimal("200.00")
        assert totals.discount_amount == Decimal("20.00")
        assert totals.taxable == Decimal("180.00")
        assert totals.vat_amount == Decimal("16.20")
        assert totals.total == Decimal("196.20")

        buckets = {b.rate: b for b in totals.vat_breakdown}
        assert buckets[Decimal("0.18")].discount == Decimal("10.00")
        assert buckets[Decimal("0.18")].taxable == Decimal("90.00")
        assert buckets[Decimal("0.18")].vat == Decimal("16.20")
        assert buckets[Decimal("0")].taxable == Decimal("90.00")
        assert buckets[Decimal("0")].vat == Decimal("0.00")

    def test_empty_items_with_discount(self):
        totals = calculate_totals([], Discount(DiscountType.PERCENT, Decimal("50")))
        assert totals.subtotal == 0
        assert totals.discount_amount == 0
        assert totals.taxable == 0
        assert totals.vat_amount == 0
        assert totals.total == 0
        assert totals.vat_breakdown == ()

    def test_amount_discount_clamped_to_subtotal(self):
        totals = calculate_totals(
            [item("1", "40", "0.18")], Discount(DiscountType.AMOUNT, Decimal("100"))
        )
        assert totals.discount_amount == Decimal("40.00")
        assert totals.taxable == Decimal("0.00")
        assert totals.total == Decimal("0.00")

    def test_discount_shares_sum_to_discount(self):
        items = [
            item("1", "33.33", "0.18"),
            item("1", "33.33", "0.05"),
            item("1", "33.34", "0"),
        ]
        totals = calculate_totals(items, Discount(DiscountType.AMOUNT, Decimal("10")))
        shares = sum(b.discount for b in totals.vat_breakdown)
        assert shares == Decimal("10.00")
        assert totals.taxable == Decimal("90.00")

    def test_percentage_rates_are_normalized(self):
        totals = calculate_totals([item("1", "100", "18")])
        assert totals.vat_amount == Decimal("18.00")

    def test_half_up_rounding(self):
        # 0.125 rounds up to 0.13
        totals = calculate_totals([item("1", "0.125", "0")])
        assert totals.subtotal == Decimal("0.13")


MIXED_ITEMS = [
    ("3", "19.99", "0.18"),
    ("1.5", "12.345", "0.05"),
    ("2", "7.10", "0"),
    ("0.333", "100", "0.07"),
]


class TestTotalsInvariants:
    def test_same_input_same_totals(self):
        items = [item(*row) for row in MIXED_ITEMS]
        discount = Discount(DiscountType.PERCENT, Decimal("12.5"))
        assert calculate_totals(items, discount) == calculate_totals(items, discount)

    @pytest.mark.parametrize(
        "rows,discount",
        [
            (MIXED_ITEMS, None),
            (MIXED_ITEMS, Discount(DiscountType.PERCENT, Decimal("7.5"))),
            (MIXED_ITEMS, Discount(DiscountType.PERCENT, Decimal("150"))),
            (MIXED_ITEMS, Discount(DiscountType.AMOUNT, Decimal("33.33"))),
            (MIXED_ITEMS, Discount(DiscountType.AMOUNT, Decimal("10000"))),
            (MIXED_ITEMS[:1], Discount(DiscountType.AMOUNT, Decimal("-5"))),
            (MIXED_ITEMS[1:3], Discount(DiscountType.PERCENT, Decimal("100"))),
            (
                [("1", "0.01", "0.18"), ("1", "0.01", "0")],
                Discount(DiscountType.AMOUNT, Decimal("0.01")),
            ),
            ([], Discount(DiscountType.AMOUNT, Decimal("10"))),
        ],
    )
    def test_invariants_hold(self, rows, discount):
        totals = calculate_totals([item(*row) for row in rows], discount)

        assert 0 <= totals.discount_amount <= totals.subtotal
        assert totals.taxable >= 0
        assert totals.taxable == totals.subtotal - totals.discount_amount
        assert totals.total >= totals.taxable
        assert totals.total == totals.taxable + totals.vat_amount
        assert totals.vat_amount == sum((b.vat for b in totals.vat_breakdown), Decimal("0"))
        if totals.vat_breakdown:
            assert sum(b.discount for b in totals.vat_breakdown) == totals.discount_amount
        for value in (totals.subtotal, totals.discount_amount, totals.taxable, totals.total):
            assert value == round_money(value)


class TestDiscountAmount:
    def test_none(self):
        assert calculate_discount_amount(Decimal("100"), Discount.none()) == 0

    def test_percent_clamped_to_hundred(self):
        discount = Discount(DiscountType.PERCENT, Decimal("150"))
        assert calculate_discount_amount(Decimal("80"), discount) == Decimal("80.00")

    def test_negative_value_is_zero(self):
        discount = Discount(DiscountType.AMOUNT, Decimal("-5"))
        assert calculate_discount_amount(Decimal("80"), discount) == Decimal("0.00")

    def test_unknown_type_means_no_discount(self):
        discount = Discount.from_values("bogus", "10")
        assert discount.type == DiscountType.NONE


class TestHelpers:
    def test_round_money_from_float(self):
        assert round_money(0.1 + 0.2) == Decimal("0.30")

    def test_normalize_rate(self):
        assert normalize_rate(18) == Decimal("0.18")
        assert normalize_rate(Decimal("0.05")) == Decimal("0.05")

    def test_line_items_from_dicts(self):
        rows = [{"quantity": "2", "unit_price": "10", "vat_rate": "5"}]
        items = line_items_from_rows(rows)
        assert items[0].vat_rate == Decimal("0.05")
        assert items[0].net == Decimal("20")

    def test_vat_label_single_rate(self):
        assert vat_label([item("1", "10", "0.18"), item("2", "5", "0.18")]) == "VAT (18%)"

    def test_vat_label_mixed_rates(self):
        assert vat_label([item("1", "10", "0.18"), item("1", "10", "0.05")]) == "VAT"
