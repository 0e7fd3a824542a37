"""
app/pricing.py

Quotation pricing: per-line amounts and quotation totals.

Rules:
- Money is Decimal, quantized to 0.01 with ROUND_HALF_UP.
- Rounding happens at every derived step (discount, GST, line total),
  not only at the end, so cent-level outputs match what the UI shows.
- Inputs are NOT validated here. Negative or >100 percent values simply
  flow through the formulas; the calling layer owns input checks.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, NamedTuple

ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def to_decimal(value: Any) -> Decimal:
    """Convert int/float/str/Numeric/None to Decimal (None => 0.00)."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def money(x: Decimal) -> Decimal:
    return x.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------
# Line-item calculator
# ---------------------------------------------------------------------
class LinePricing(NamedTuple):
    discounted_value: Decimal
    gst_value: Decimal
    total_price: Decimal


def price_line_item(quantity, unit_rate, discount_percent, gst_percent) -> LinePricing:
    """
    Price one quotation row.

        base           = quantity * unit_rate
        discount       = round2(base * discount% / 100)
        after_discount = base - discount
        gst            = round2(after_discount * gst% / 100)
        total          = round2(after_discount + gst)
    """
    base_amount = to_decimal(quantity) * to_decimal(unit_rate)

    discounted_value = money(base_amount * to_decimal(discount_percent) / HUNDRED)
    after_discount = base_amount - discounted_value

    gst_value = money(after_discount * to_decimal(gst_percent) / HUNDRED)
    total_price = money(after_discount + gst_value)

    return LinePricing(discounted_value, gst_value, total_price)


@dataclass
class LineItem:
    """
    In-memory quotation row.

    Derived fields start at zero and are stale after any input change
    until recalculate() runs.
    """

    quantity: Decimal = Decimal("0")
    unit_rate: Decimal = ZERO
    discount_percent: Decimal = ZERO
    gst_percent: Decimal = ZERO

    discounted_value: Decimal = ZERO
    gst_value: Decimal = ZERO
    total_price: Decimal = ZERO

    def recalculate(self) -> "LineItem":
        pricing = price_line_item(
            self.quantity, self.unit_rate, self.discount_percent, self.gst_percent
        )
        self.discounted_value = pricing.discounted_value
        self.gst_value = pricing.gst_value
        self.total_price = pricing.total_price
        return self

    @classmethod
    def from_mapping(cls, data: dict) -> "LineItem":
        """Build a priced LineItem from a JSON-like dict (missing keys => 0)."""
        item = cls(
            quantity=to_decimal(data.get("quantity")),
            unit_rate=to_decimal(data.get("unit_rate")),
            discount_percent=to_decimal(data.get("discount_percent")),
            gst_percent=to_decimal(data.get("gst_percent")),
        )
        return item.recalculate()


# ---------------------------------------------------------------------
# Aggregator
# ---------------------------------------------------------------------
class QuotationTotals(NamedTuple):
    sub_total: Decimal
    total_tax: Decimal
    grand_total: Decimal


def aggregate_quotation(line_items: Iterable[Any]) -> QuotationTotals:
    """
    Fold already-priced rows into quotation totals.

    Any object exposing quantity, unit_rate, gst_value and total_price works
    (LineItem, QuotationLine). Holds no state; call again after every change
    to the row list.
    """
    sub_total = ZERO
    total_tax = ZERO
    grand_total = ZERO

    for line in line_items:
        sub_total += to_decimal(line.quantity) * to_decimal(line.unit_rate)
        total_tax += to_decimal(line.gst_value)
        grand_total += to_decimal(line.total_price)

    return QuotationTotals(money(sub_total), money(total_tax), money(grand_total))
