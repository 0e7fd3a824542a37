"""
Utility functions shared across the blueprints:
- request parsing (decimal/int/date/str) for JSON payloads
- JSON error responses
- JSON-safe value conversion (Decimal -> "12.50", date -> ISO)
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from flask import jsonify, request


def json_payload() -> dict:
    """Request body as dict (empty dict for missing/invalid JSON)."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def error_response(message: str, status: int = 400):
    return jsonify({"error": message}), status


def parse_decimal(value: Any) -> Decimal | None:
    """Parse decimal from user input (accepts comma or dot, numbers or strings)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    raw = str(value).strip().replace(",", ".")
    if raw == "":
        return None
    try:
        parsed = Decimal(raw)
    except (InvalidOperation, ValueError):
        return None
    if not parsed.is_finite():
        return None
    return parsed


def parse_optional_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    raw = str(value).strip()
    if raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def parse_date(value: Any) -> date | None:
    """Parse YYYY-MM-DD; None for empty/invalid."""
    if not value:
        return None
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def clean_str(value: Any) -> str | None:
    """Strip strings; empty => None."""
    if value is None:
        return None
    return str(value).strip() or None


def exceeds_places(value: Decimal, places: int) -> bool:
    """True when value carries more decimal places than a column of that scale keeps."""
    return value.normalize().as_tuple().exponent < -places


def to_jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        # two decimals for money, more only when the value needs them ("0.125")
        exponent = value.normalize().as_tuple().exponent
        if isinstance(exponent, int) and exponent < -2:
            return format(value.normalize(), "f")
        return f"{value:.2f}"
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def model_to_dict(instance: Any, exclude: tuple = ()) -> dict:
    """Column values of a model instance, JSON-safe."""
    return {
        column.name: to_jsonable(getattr(instance, column.name))
        for column in instance.__table__.columns
        if column.name not in exclude
    }
