from decimal import Decimal

import pytest

from app.pricing import LineItem, aggregate_quotation, money, price_line_item


def D(value):
    return Decimal(value)


def test_discount_then_gst():
    pricing = price_line_item(2, 100, 10, 18)

    assert pricing.discounted_value == D("20.00")
    assert pricing.gst_value == D("32.40")
    assert pricing.total_price == D("212.40")


def test_zero_rate_line_is_free():
    pricing = price_line_item(1, 0, 0, 18)

    assert pricing == (D("0.00"), D("0.00"), D("0.00"))


def test_rounds_half_up_at_each_step():
    # 10.05 * 50% = 5.025 -> 5.03 ; 5.02 * 18% = 0.9036 -> 0.90
    pricing = price_line_item(1, "10.05", 50, 18)

    assert pricing.discounted_value == D("5.03")
    assert pricing.gst_value == D("0.90")
    assert pricing.total_price == D("5.92")


@pytest.mark.parametrize(
    "qty, rate, disc, gst",
    [
        (3, "199.99", "12.5", 28),
        (7, "0.35", 0, 5),
        (1, "1234.56", 100, 18),
        ("2.5", "40.10", "7", 12),
    ],
)
def test_total_matches_closed_form(qty, rate, disc, gst):
    base = D(str(qty)) * D(str(rate))
    expected = money(money(base - money(base * D(str(disc)) / 100)) * (1 + D(str(gst)) / 100))

    pricing = price_line_item(qty, rate, disc, gst)

    assert pricing.total_price == expected
    assert pricing.total_price >= 0


def test_same_inputs_same_outputs():
    assert price_line_item("3", "19.99", "5", "12") == price_line_item("3", "19.99", "5", "12")


def test_negative_inputs_propagate():
    pricing = price_line_item(-1, 100, 0, 18)

    assert pricing.gst_value == D("-18.00")
    assert pricing.total_price == D("-118.00")


def test_discount_over_hundred_is_not_clamped():
    pricing = price_line_item(1, 100, 150, 0)

    assert pricing.discounted_value == D("150.00")
    assert pricing.total_price == D("-50.00")


def test_line_item_is_stale_until_recalculated():
    item = LineItem(quantity=D("2"), unit_rate=D("100"), discount_percent=D("10"), gst_percent=D("18"))
    assert item.total_price == D("0.00")

    item.recalculate()
    assert item.total_price == D("212.40")

    item.quantity = D("1")
    assert item.total_price == D("212.40")

    item.recalculate()
    assert item.total_price == D("106.20")


def test_line_item_from_mapping_defaults_missing_values_to_zero():
    item = LineItem.from_mapping({"quantity": 4, "unit_rate": "25"})

    assert item.discounted_value == D("0.00")
    assert item.gst_value == D("0.00")
    assert item.total_price == D("100.00")


def _three_lines():
    return [
        LineItem.from_mapping({"quantity": 2, "unit_rate": 100, "discount_percent": 10, "gst_percent": 18}),
        LineItem.from_mapping({"quantity": 1, "unit_rate": 0, "gst_percent": 18}),
        LineItem.from_mapping({"quantity": 1, "unit_rate": 50, "gst_percent": 18}),
    ]


def test_aggregate_three_lines():
    lines = _three_lines()
    assert [line.total_price for line in lines] == [D("212.40"), D("0.00"), D("59.00")]

    totals = aggregate_quotation(lines)

    assert totals.sub_total == D("250.00")
    assert totals.total_tax == D("41.40")
    assert totals.grand_total == D("271.40")


def test_aggregate_empty():
    assert aggregate_quotation([]) == (D("0.00"), D("0.00"), D("0.00"))


def test_aggregate_is_additive_over_split_lists():
    lines = _three_lines() + [
        LineItem.from_mapping({"quantity": 3, "unit_rate": "15.75", "discount_percent": 5, "gst_percent": 12}),
    ]

    whole = aggregate_quotation(lines)
    left = aggregate_quotation(lines[:2])
    right = aggregate_quotation(lines[2:])

    assert whole.sub_total == left.sub_total + right.sub_total
    assert whole.total_tax == left.total_tax + right.total_tax
    assert whole.grand_total == left.grand_total + right.grand_total


def test_aggregate_accepts_any_priced_objects():
    class Row:
        quantity = "2"
        unit_rate = "10"
        gst_value = "3.60"
        total_price = "23.60"

    totals = aggregate_quotation([Row(), Row()])

    assert totals == (D("40.00"), D("7.20"), D("47.20"))
