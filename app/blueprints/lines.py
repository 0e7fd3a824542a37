"""
app/blueprints/lines.py

Line-item request handling shared by the quotation and invoice routes.

Numeric inputs are checked against the scale of the columns they are stored
in (see models.INPUT_PLACES) BEFORE pricing, so a reloaded line reprices to
the same amounts it was saved with.
"""

from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..models import INPUT_PLACES, Item
from ..pricing import LineItem
from ..utils import clean_str, exceeds_places, model_to_dict, parse_decimal, parse_optional_int, to_jsonable

LINE_TEXT_FIELDS = ("cat_no", "pack_size", "description", "hsn_code", "make", "lead_time")

# field -> integer digits the column holds
LINE_NUMBER_FIELDS = {
    "quantity": 10,
    "unit_rate": 10,
    "discount_percent": 3,
    "gst_percent": 3,
}


def resolve_fk(model, raw_id, label: str):
    """
    Return (instance, error). None id => (None, None).

    Prevents forging an id that doesn't exist.
    """
    if raw_id in (None, ""):
        return None, None
    obj_id = parse_optional_int(raw_id)
    obj = db.session.get(model, obj_id) if obj_id is not None else None
    if obj is None:
        return None, f"Unknown {label}."
    return obj, None


def parse_line_number(field: str, raw) -> tuple[Decimal | None, str | None]:
    value = parse_decimal(raw)
    if value is None:
        return None, f"Invalid {field}."
    if exceeds_places(value, INPUT_PLACES):
        return None, f"{field} allows at most {INPUT_PLACES} decimal places."
    if abs(value) >= Decimal(10) ** LINE_NUMBER_FIELDS[field]:
        return None, f"{field} is out of range."
    return value, None


def apply_line_payload(line, data: dict) -> str | None:
    """Copy editable line fields from payload. Returns an error message or None."""
    for field in LINE_TEXT_FIELDS:
        if field in data:
            setattr(line, field, clean_str(data.get(field)))

    for field in LINE_NUMBER_FIELDS:
        if field not in data:
            continue
        value, err = parse_line_number(field, data.get(field))
        if err:
            return err
        setattr(line, field, value)

    if not line.description:
        return "Line description is required."
    return None


def new_line(line_cls, data: dict):
    """Build (line, error) from payload, optionally seeded from a catalogue item."""
    line = line_cls(
        quantity=Decimal("1"),
        unit_rate=Decimal("0"),
        discount_percent=Decimal("0"),
        gst_percent=Decimal("0"),
    )

    item, err = resolve_fk(Item, data.get("item_id"), "catalogue item")
    if err:
        return None, err
    if item is not None:
        line.copy_from_item(item)

    err = apply_line_payload(line, data)
    if err:
        return None, err
    return line, None


def new_lines(line_cls, raw_items) -> tuple[list, str | None]:
    if not isinstance(raw_items, list):
        return [], "items must be a list."

    lines = []
    for idx, raw in enumerate(raw_items, start=1):
        if not isinstance(raw, dict):
            return [], f"Item {idx}: invalid payload."
        line, err = new_line(line_cls, raw)
        if err:
            return [], f"Item {idx}: {err}"
        lines.append(line)
    return lines, None


def preview_items(raw_items) -> tuple[list[LineItem], str | None]:
    """Priced LineItems for unsaved rows; same input rules as stored lines."""
    if not isinstance(raw_items, list):
        return [], "items must be a list."

    items = []
    for idx, raw in enumerate(raw_items, start=1):
        if not isinstance(raw, dict):
            return [], f"Item {idx}: invalid payload."
        values = {}
        for field in LINE_NUMBER_FIELDS:
            if raw.get(field) in (None, ""):
                continue
            values[field], err = parse_line_number(field, raw.get(field))
            if err:
                return [], f"Item {idx}: {err}"
        items.append(LineItem.from_mapping(values))
    return items, None


def find_line(document, line_id: int):
    for line in document.lines:
        if line.id == line_id:
            return line
    return None


def line_json(line) -> dict:
    return model_to_dict(line, exclude=("created_at",))


def totals_json(totals) -> dict:
    return {
        "sub_total": to_jsonable(totals.sub_total),
        "tax": to_jsonable(totals.total_tax),
        "grand_total": to_jsonable(totals.grand_total),
    }
