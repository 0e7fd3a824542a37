"""
app/blueprints/quotations/routes.py

Quotation routes (JSON API for the SPA).

Includes:
- List / create / view / update / delete
- Status, payment and delivery updates
- Line add / edit / delete / reorder (totals recomputed on every mutation)
- Totals preview (no persistence), bare references and sequence numbers

IMPORTANT:
- Derived amounts (discount, GST, totals) are never taken from the payload.
- Audit pattern: flush -> log_action -> commit.
"""

from __future__ import annotations

import logging
from datetime import datetime

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload

from ...audit import log_action, serialize_model
from ...extensions import db
from ...models import (
    INPUT_PLACES,
    QUOTATION_STATUSES,
    SHIPPING_STATUSES,
    Client,
    Company,
    Quotation,
    QuotationLine,
)
from ...numbering import (
    COUNTER_QUOTATION,
    KNOWN_COUNTERS,
    SqlCounterStore,
    generate_reference,
    next_sequence_number,
)
from ...pricing import aggregate_quotation
from ...utils import (
    clean_str,
    error_response,
    exceeds_places,
    json_payload,
    model_to_dict,
    parse_date,
    parse_decimal,
    parse_optional_int,
    to_jsonable,
)
from ..lines import (
    apply_line_payload,
    find_line,
    line_json,
    new_line,
    new_lines,
    preview_items,
    resolve_fk,
    totals_json,
)

log = logging.getLogger(__name__)

quotations_bp = Blueprint("quotations", __name__, url_prefix="/quotations")


# ---------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------
def _quotation_json(quotation: Quotation, with_lines: bool = True) -> dict:
    data = model_to_dict(quotation)
    data["outstanding"] = to_jsonable(quotation.outstanding)
    data["company_name"] = quotation.company.name if quotation.company else None
    data["client_name"] = quotation.client.name if quotation.client else None
    if with_lines:
        data["items"] = [line_json(line) for line in quotation.lines]
    return data


# ---------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------
def _apply_header_payload(quotation: Quotation, data: dict) -> str | None:
    if "client_id" in data:
        client, err = resolve_fk(Client, data.get("client_id"), "client")
        if err:
            return err
        quotation.client_id = client.id if client else None

    for field in ("quotation_date", "valid_till"):
        if field in data:
            raw = data.get(field)
            value = parse_date(raw)
            if raw and value is None:
                return f"Invalid {field} (expected YYYY-MM-DD)."
            if value is not None or field == "valid_till":
                setattr(quotation, field, value)

    for field in ("payment_terms", "notes"):
        if field in data:
            setattr(quotation, field, clean_str(data.get(field)))

    if "shipping_status" in data:
        shipping = str(data.get("shipping_status") or "").strip().upper()
        if shipping not in SHIPPING_STATUSES:
            return "Invalid shipping_status."
        quotation.shipping_status = shipping

    return None


def _load_quotation(quotation_id: int) -> Quotation:
    return Quotation.query.options(
        joinedload(Quotation.company), joinedload(Quotation.client)
    ).filter_by(id=quotation_id).first_or_404()


def _save_quotation(quotation: Quotation, action: str, before=None):
    """recalc -> flush -> audit -> commit."""
    quotation.renumber_lines()
    quotation.recalc_totals()
    db.session.flush()
    log_action(quotation, action, before=before, after=serialize_model(quotation))
    db.session.commit()


# ---------------------------------------------------------------------
# List
# ---------------------------------------------------------------------
@quotations_bp.route("/")
def list_quotations():
    q = Quotation.query.options(joinedload(Quotation.company), joinedload(Quotation.client))

    status = (request.args.get("status") or "").strip().upper()
    if status:
        q = q.filter(Quotation.status == status)

    client_id = parse_optional_int(request.args.get("client_id"))
    if client_id:
        q = q.filter(Quotation.client_id == client_id)

    company_id = parse_optional_int(request.args.get("company_id"))
    if company_id:
        q = q.filter(Quotation.company_id == company_id)

    ref = (request.args.get("q") or "").strip()
    if ref:
        q = q.filter(Quotation.quotation_ref.ilike(f"%{ref}%"))

    quotations = q.order_by(Quotation.created_at.desc(), Quotation.id.desc()).all()
    return jsonify([_quotation_json(x, with_lines=False) for x in quotations])


# ---------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------
@quotations_bp.route("/", methods=["POST"])
def create_quotation():
    data = json_payload()

    company, err = resolve_fk(Company, data.get("company_id"), "company")
    if err:
        return error_response(err)

    lines, err = new_lines(QuotationLine, data.get("items") or [])
    if err:
        return error_response(err)

    quotation = Quotation(status="PENDING", payment_status="PENDING", shipping_status="NOT_STARTED")
    quotation.company_id = company.id if company else None

    err = _apply_header_payload(quotation, data)
    if err:
        return error_response(err)

    quotation.quotation_date = quotation.quotation_date or datetime.now().date()
    quotation.apply_default_validity(current_app.config["QUOTATION_VALIDITY_DAYS"])
    quotation.lines = lines

    # Numbering last: an issued counter value is never reused.
    quotation.quotation_ref = generate_reference(
        COUNTER_QUOTATION, company.short_code if company else None
    )

    db.session.add(quotation)
    try:
        _save_quotation(quotation, "CREATE")
    except IntegrityError:
        db.session.rollback()
        log.error("Duplicate quotation reference %s", quotation.quotation_ref)
        return error_response("Quotation reference already exists, please retry.", 409)

    log.info("Created quotation %s (grand total %s)", quotation.quotation_ref, quotation.grand_total)
    return jsonify(_quotation_json(quotation)), 201


# ---------------------------------------------------------------------
# View / update / delete
# ---------------------------------------------------------------------
@quotations_bp.route("/<int:quotation_id>")
def get_quotation(quotation_id: int):
    return jsonify(_quotation_json(_load_quotation(quotation_id)))


@quotations_bp.route("/<int:quotation_id>", methods=["POST"])
def update_quotation(quotation_id: int):
    quotation = _load_quotation(quotation_id)
    before = serialize_model(quotation)

    err = _apply_header_payload(quotation, json_payload())
    if err:
        db.session.rollback()
        return error_response(err)

    _save_quotation(quotation, "UPDATE", before=before)
    return jsonify(_quotation_json(quotation))


@quotations_bp.route("/<int:quotation_id>/delete", methods=["POST"])
def delete_quotation(quotation_id: int):
    quotation = _load_quotation(quotation_id)
    before = serialize_model(quotation)

    db.session.delete(quotation)
    db.session.flush()
    log_action(quotation, "DELETE", before=before)
    db.session.commit()

    return jsonify({"deleted": quotation_id})


# ---------------------------------------------------------------------
# Status / payment
# ---------------------------------------------------------------------
@quotations_bp.route("/<int:quotation_id>/status", methods=["POST"])
def change_status(quotation_id: int):
    quotation = _load_quotation(quotation_id)
    data = json_payload()

    status = str(data.get("status") or "").strip().upper()
    if status not in QUOTATION_STATUSES:
        return error_response("Invalid status.")

    before = serialize_model(quotation)
    quotation.status = status

    if status == "CANCELLED":
        quotation.cancellation_reason = clean_str(data.get("reason"))
        quotation.cancelled_at = datetime.utcnow()
    elif status == "COMPLETED":
        quotation.completed_at = datetime.utcnow()

    db.session.flush()
    log_action(quotation, "UPDATE", before=before, after=serialize_model(quotation))
    db.session.commit()

    return jsonify(_quotation_json(quotation, with_lines=False))


@quotations_bp.route("/<int:quotation_id>/payment", methods=["POST"])
def record_payment(quotation_id: int):
    quotation = _load_quotation(quotation_id)
    data = json_payload()

    amount = parse_decimal(data.get("amount"))
    if amount is None or amount <= 0:
        return error_response("Payment amount must be a positive number.")
    if exceeds_places(amount, 2):
        return error_response("Payment amount allows at most 2 decimal places.")

    raw_date = data.get("date")
    paid_on = parse_date(raw_date)
    if raw_date and paid_on is None:
        return error_response("Invalid date (expected YYYY-MM-DD).")

    before = serialize_model(quotation)
    quotation.record_payment(amount, paid_on)

    db.session.flush()
    log_action(quotation, "UPDATE", before=before, after=serialize_model(quotation))
    db.session.commit()

    return jsonify(_quotation_json(quotation, with_lines=False))


# ---------------------------------------------------------------------
# Lines
# ---------------------------------------------------------------------
@quotations_bp.route("/<int:quotation_id>/lines", methods=["POST"])
def add_line(quotation_id: int):
    quotation = _load_quotation(quotation_id)
    before = serialize_model(quotation)

    line, err = new_line(QuotationLine, json_payload())
    if err:
        return error_response(err)

    quotation.lines.append(line)
    _save_quotation(quotation, "UPDATE", before=before)
    return jsonify(_quotation_json(quotation)), 201


@quotations_bp.route("/<int:quotation_id>/lines/<int:line_id>", methods=["POST"])
def edit_line(quotation_id: int, line_id: int):
    quotation = _load_quotation(quotation_id)
    line = find_line(quotation, line_id)
    if line is None:
        return error_response("Line not found.", 404)

    before = serialize_model(quotation)
    err = apply_line_payload(line, json_payload())
    if err:
        db.session.rollback()
        return error_response(err)

    _save_quotation(quotation, "UPDATE", before=before)
    return jsonify(_quotation_json(quotation))


@quotations_bp.route("/<int:quotation_id>/lines/<int:line_id>/delete", methods=["POST"])
def delete_line(quotation_id: int, line_id: int):
    quotation = _load_quotation(quotation_id)
    line = find_line(quotation, line_id)
    if line is None:
        return error_response("Line not found.", 404)

    before = serialize_model(quotation)
    quotation.lines.remove(line)
    _save_quotation(quotation, "UPDATE", before=before)
    return jsonify(_quotation_json(quotation))


@quotations_bp.route("/<int:quotation_id>/lines/reorder", methods=["POST"])
def reorder_lines(quotation_id: int):
    quotation = _load_quotation(quotation_id)
    order = json_payload().get("order")

    current = {line.id: line for line in quotation.lines}
    if not isinstance(order, list) or sorted(map(str, order)) != sorted(map(str, current)):
        return error_response("order must list every line id exactly once.")

    before = serialize_model(quotation)
    quotation.lines = [current[int(line_id)] for line_id in order]
    _save_quotation(quotation, "UPDATE", before=before)
    return jsonify(_quotation_json(quotation))


@quotations_bp.route("/<int:quotation_id>/lines/<int:line_id>/delivery", methods=["POST"])
def record_delivery(quotation_id: int, line_id: int):
    quotation = _load_quotation(quotation_id)
    line = find_line(quotation, line_id)
    if line is None:
        return error_response("Line not found.", 404)

    data = json_payload()
    qty = parse_decimal(data.get("quantity"))
    if qty is None or qty <= 0:
        return error_response("Delivered quantity must be a positive number.")
    if exceeds_places(qty, INPUT_PLACES):
        return error_response(f"Delivered quantity allows at most {INPUT_PLACES} decimal places.")

    raw_date = data.get("date")
    delivered_on = parse_date(raw_date)
    if raw_date and delivered_on is None:
        return error_response("Invalid date (expected YYYY-MM-DD).")

    before = serialize_model(line)
    line.record_delivery(qty, delivered_on, clean_str(data.get("notes")))

    db.session.flush()
    log_action(line, "UPDATE", before=before, after=serialize_model(line))
    db.session.commit()

    return jsonify(line_json(line))


# ---------------------------------------------------------------------
# Stateless helpers for the editor
# ---------------------------------------------------------------------
@quotations_bp.route("/preview-totals", methods=["POST"])
def preview_totals():
    """Price rows as the user types; nothing is stored."""
    items, err = preview_items(json_payload().get("items") or [])
    if err:
        return error_response(err)

    return jsonify(
        {
            "items": [
                {
                    "discounted_value": to_jsonable(item.discounted_value),
                    "gst_value": to_jsonable(item.gst_value),
                    "total_price": to_jsonable(item.total_price),
                }
                for item in items
            ],
            **totals_json(aggregate_quotation(items)),
        }
    )


@quotations_bp.route("/references/<counter_name>", methods=["POST"])
def new_reference(counter_name: str):
    if counter_name not in KNOWN_COUNTERS:
        return error_response("Unknown counter.", 404)

    company, err = resolve_fk(Company, json_payload().get("company_id"), "company")
    if err:
        return error_response(err)

    ref = generate_reference(counter_name, company.short_code if company else None)
    return jsonify({"counter": counter_name, "reference": ref}), 201


@quotations_bp.route("/counters")
def counters_status():
    store = SqlCounterStore()
    return jsonify({name: store.peek(name) for name in KNOWN_COUNTERS})


@quotations_bp.route("/counters/<counter_name>/next", methods=["POST"])
def advance_counter(counter_name: str):
    """Bare sequence number (time-derived when the counter is down)."""
    if counter_name not in KNOWN_COUNTERS:
        return error_response("Unknown counter.", 404)

    value = next_sequence_number(counter_name)
    return jsonify({"counter": counter_name, "value": value}), 201
