"""
app/blueprints/invoices/routes.py

Sales and purchase invoices (JSON API).

- SALES invoices are billed to a Client, PURCHASE invoices come from a Vendor.
- A sales invoice can be raised from a quotation: its lines, client and
  company are copied when no items are sent.
- Lines are priced exactly like quotation lines; grand_total also carries
  delivery_charges.
- invoice_number comes from the "invoice" counter (fallback format when the
  counter is down).

Audit pattern: flush -> log_action -> commit.
"""

from __future__ import annotations

import logging
from datetime import date

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload

from ...audit import log_action, serialize_model
from ...extensions import db
from ...models import (
    INVOICE_STATUSES,
    INVOICE_TYPES,
    Client,
    Company,
    Invoice,
    InvoiceLine,
    Quotation,
    Vendor,
)
from ...numbering import COUNTER_INVOICE, generate_reference
from ...utils import (
    clean_str,
    error_response,
    exceeds_places,
    json_payload,
    model_to_dict,
    parse_date,
    parse_decimal,
    to_jsonable,
)
from ..lines import (
    LINE_NUMBER_FIELDS,
    LINE_TEXT_FIELDS,
    apply_line_payload,
    find_line,
    line_json,
    new_line,
    new_lines,
    resolve_fk,
)

log = logging.getLogger(__name__)

invoices_bp = Blueprint("invoices", __name__, url_prefix="/invoices")


def _invoice_json(invoice: Invoice, with_lines: bool = True) -> dict:
    data = model_to_dict(invoice)
    data["outstanding"] = to_jsonable(invoice.outstanding)
    data["overdue"] = invoice.is_overdue()
    data["company_name"] = invoice.company.name if invoice.company else None
    data["party_name"] = invoice.party.name if invoice.party else None
    if with_lines:
        data["items"] = [line_json(line) for line in invoice.lines]
    return data


def _parse_money(raw, label: str):
    value = parse_decimal(raw)
    if value is None or value < 0:
        return None, f"{label} must be a non-negative number."
    if exceeds_places(value, 2):
        return None, f"{label} allows at most 2 decimal places."
    return value, None


def _apply_header_payload(invoice: Invoice, data: dict) -> str | None:
    party_model, party_field = (Client, "client_id") if invoice.invoice_type == "SALES" else (Vendor, "vendor_id")
    if party_field in data:
        party, err = resolve_fk(party_model, data.get(party_field), party_model.__name__.lower())
        if err:
            return err
        setattr(invoice, party_field, party.id if party else None)

    for field in ("invoice_date", "due_date"):
        if field in data:
            raw = data.get(field)
            value = parse_date(raw)
            if raw and value is None:
                return f"Invalid {field} (expected YYYY-MM-DD)."
            if value is not None or field == "due_date":
                setattr(invoice, field, value)

    for field in ("payment_terms", "notes"):
        if field in data:
            setattr(invoice, field, clean_str(data.get(field)))

    if "delivery_charges" in data:
        value, err = _parse_money(data.get("delivery_charges"), "delivery_charges")
        if err:
            return err
        invoice.delivery_charges = value

    return None


def _lines_from_quotation(quotation: Quotation) -> list[InvoiceLine]:
    copied = []
    for source in quotation.lines:
        line = InvoiceLine(item_id=source.item_id)
        for field in LINE_TEXT_FIELDS + tuple(LINE_NUMBER_FIELDS):
            setattr(line, field, getattr(source, field))
        copied.append(line)
    return copied


def _load_invoice(invoice_id: int) -> Invoice:
    return Invoice.query.options(
        joinedload(Invoice.company), joinedload(Invoice.client), joinedload(Invoice.vendor)
    ).filter_by(id=invoice_id).first_or_404()


def _save_invoice(invoice: Invoice, action: str, before=None):
    """recalc -> flush -> audit -> commit."""
    invoice.renumber_lines()
    invoice.recalc_totals()
    db.session.flush()
    log_action(invoice, action, before=before, after=serialize_model(invoice))
    db.session.commit()


# ---------------------------------------------------------------------
# List / create
# ---------------------------------------------------------------------
@invoices_bp.route("/")
def list_invoices():
    q = Invoice.query.options(
        joinedload(Invoice.company), joinedload(Invoice.client), joinedload(Invoice.vendor)
    )

    invoice_type = (request.args.get("type") or "").strip().upper()
    if invoice_type:
        q = q.filter(Invoice.invoice_type == invoice_type)

    status = (request.args.get("status") or "").strip().upper()
    if status:
        q = q.filter(Invoice.status == status)

    payment_status = (request.args.get("payment_status") or "").strip().upper()
    if payment_status:
        q = q.filter(Invoice.payment_status == payment_status)

    if request.args.get("overdue") in ("1", "true"):
        q = q.filter(
            Invoice.due_date < date.today(),
            Invoice.payment_status != "PAID",
            Invoice.status != "CANCELLED",
        )

    number = (request.args.get("q") or "").strip()
    if number:
        q = q.filter(Invoice.invoice_number.ilike(f"%{number}%"))

    invoices = q.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()
    return jsonify([_invoice_json(x, with_lines=False) for x in invoices])


@invoices_bp.route("/", methods=["POST"])
def create_invoice():
    data = json_payload()

    invoice_type = str(data.get("type") or "").strip().upper()
    if invoice_type not in INVOICE_TYPES:
        return error_response("type must be SALES or PURCHASE.")

    quotation, err = resolve_fk(Quotation, data.get("quotation_id"), "quotation")
    if err:
        return error_response(err)
    if quotation is not None and invoice_type != "SALES":
        return error_response("Only sales invoices can be raised from a quotation.")

    company, err = resolve_fk(Company, data.get("company_id"), "company")
    if err:
        return error_response(err)
    if company is None and quotation is not None:
        company = quotation.company

    if data.get("items"):
        lines, err = new_lines(InvoiceLine, data.get("items"))
        if err:
            return error_response(err)
    elif quotation is not None:
        lines = _lines_from_quotation(quotation)
    else:
        lines = []

    invoice = Invoice(invoice_type=invoice_type, status="DRAFT", payment_status="UNPAID")
    invoice.company_id = company.id if company else None
    if quotation is not None:
        invoice.quotation_id = quotation.id
        invoice.client_id = quotation.client_id

    err = _apply_header_payload(invoice, data)
    if err:
        return error_response(err)

    if invoice_type == "SALES" and invoice.client_id is None:
        return error_response("client_id is required for sales invoices.")
    if invoice_type == "PURCHASE" and invoice.vendor_id is None:
        return error_response("vendor_id is required for purchase invoices.")

    invoice.invoice_date = invoice.invoice_date or date.today()
    invoice.apply_default_due_date(current_app.config["INVOICE_DUE_DAYS"])
    invoice.lines = lines

    # Numbering last: an issued counter value is never reused.
    invoice.invoice_number = generate_reference(
        COUNTER_INVOICE, company.short_code if company else None
    )

    db.session.add(invoice)
    try:
        _save_invoice(invoice, "CREATE")
    except IntegrityError:
        db.session.rollback()
        log.error("Duplicate invoice number %s", invoice.invoice_number)
        return error_response("Invoice number already exists, please retry.", 409)

    log.info("Created %s invoice %s (grand total %s)", invoice_type, invoice.invoice_number, invoice.grand_total)
    return jsonify(_invoice_json(invoice)), 201


# ---------------------------------------------------------------------
# View / update / delete
# ---------------------------------------------------------------------
@invoices_bp.route("/<int:invoice_id>")
def get_invoice(invoice_id: int):
    return jsonify(_invoice_json(_load_invoice(invoice_id)))


@invoices_bp.route("/<int:invoice_id>", methods=["POST"])
def update_invoice(invoice_id: int):
    invoice = _load_invoice(invoice_id)
    before = serialize_model(invoice)

    err = _apply_header_payload(invoice, json_payload())
    if err:
        db.session.rollback()
        return error_response(err)

    _save_invoice(invoice, "UPDATE", before=before)
    return jsonify(_invoice_json(invoice))


@invoices_bp.route("/<int:invoice_id>/delete", methods=["POST"])
def delete_invoice(invoice_id: int):
    invoice = _load_invoice(invoice_id)
    before = serialize_model(invoice)

    db.session.delete(invoice)
    db.session.flush()
    log_action(invoice, "DELETE", before=before)
    db.session.commit()

    return jsonify({"deleted": invoice_id})


# ---------------------------------------------------------------------
# Status / payment
# ---------------------------------------------------------------------
@invoices_bp.route("/<int:invoice_id>/status", methods=["POST"])
def change_status(invoice_id: int):
    invoice = _load_invoice(invoice_id)

    status = str(json_payload().get("status") or "").strip().upper()
    if status not in INVOICE_STATUSES:
        return error_response("Invalid status.")
    if status == "PAID" and invoice.payment_status != "PAID":
        return error_response("Record payments to mark an invoice paid.")

    before = serialize_model(invoice)
    invoice.status = status

    db.session.flush()
    log_action(invoice, "UPDATE", before=before, after=serialize_model(invoice))
    db.session.commit()

    return jsonify(_invoice_json(invoice, with_lines=False))


@invoices_bp.route("/<int:invoice_id>/payment", methods=["POST"])
def record_payment(invoice_id: int):
    invoice = _load_invoice(invoice_id)
    data = json_payload()

    if invoice.status == "CANCELLED":
        return error_response("Cancelled invoices cannot take payments.")

    amount, err = _parse_money(data.get("amount"), "Payment amount")
    if err or amount == 0:
        return error_response(err or "Payment amount must be a positive number.")

    raw_date = data.get("date")
    paid_on = parse_date(raw_date)
    if raw_date and paid_on is None:
        return error_response("Invalid date (expected YYYY-MM-DD).")

    before = serialize_model(invoice)
    invoice.record_payment(amount, paid_on)

    db.session.flush()
    log_action(invoice, "UPDATE", before=before, after=serialize_model(invoice))
    db.session.commit()

    return jsonify(_invoice_json(invoice, with_lines=False))


# ---------------------------------------------------------------------
# Lines
# ---------------------------------------------------------------------
@invoices_bp.route("/<int:invoice_id>/lines", methods=["POST"])
def add_line(invoice_id: int):
    invoice = _load_invoice(invoice_id)
    before = serialize_model(invoice)

    line, err = new_line(InvoiceLine, json_payload())
    if err:
        return error_response(err)

    invoice.lines.append(line)
    _save_invoice(invoice, "UPDATE", before=before)
    return jsonify(_invoice_json(invoice)), 201


@invoices_bp.route("/<int:invoice_id>/lines/<int:line_id>", methods=["POST"])
def edit_line(invoice_id: int, line_id: int):
    invoice = _load_invoice(invoice_id)
    line = find_line(invoice, line_id)
    if line is None:
        return error_response("Line not found.", 404)

    before = serialize_model(invoice)
    err = apply_line_payload(line, json_payload())
    if err:
        db.session.rollback()
        return error_response(err)

    _save_invoice(invoice, "UPDATE", before=before)
    return jsonify(_invoice_json(invoice))


@invoices_bp.route("/<int:invoice_id>/lines/<int:line_id>/delete", methods=["POST"])
def delete_line(invoice_id: int, line_id: int):
    invoice = _load_invoice(invoice_id)
    line = find_line(invoice, line_id)
    if line is None:
        return error_response("Line not found.", 404)

    before = serialize_model(invoice)
    invoice.lines.remove(line)
    _save_invoice(invoice, "UPDATE", before=before)
    return jsonify(_invoice_json(invoice))
