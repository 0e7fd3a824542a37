"""
app/blueprints/settings/routes.py

Master data routes (JSON API).

Scope:
- Companies CRUD (short_code drives the quotation reference prefix)
- Clients CRUD
- Vendors CRUD
- Catalogue items CRUD

Rules:
- Required fields validated server-side (400 with "error").
- Unique fields (company short_code, item cat_no) return 409 on conflict.

AUDIT:
- CREATE/UPDATE/DELETE for master data is audited via app/audit.py.
"""

from __future__ import annotations

import re
from typing import Iterable

from flask import Blueprint, jsonify
from sqlalchemy.exc import IntegrityError

from ...audit import log_action, serialize_model
from ...extensions import db
from ...models import INPUT_PLACES, Client, Company, Item, Vendor
from ...utils import clean_str, error_response, exceeds_places, json_payload, model_to_dict, parse_decimal

settings_bp = Blueprint("settings", __name__, url_prefix="/settings")

SHORT_CODE_RE = re.compile(r"^[A-Z0-9]{1,10}$")

COMPANY_FIELDS = (
    "name",
    "address",
    "phone",
    "email",
    "gst",
    "pan",
    "bank_name",
    "account_no",
    "ifsc_code",
    "branch_code",
)
CLIENT_FIELDS = ("name", "company", "contact_person", "address", "phone", "email", "gst")
VENDOR_FIELDS = ("name", "contact_person", "address", "phone", "email", "gst")
ITEM_TEXT_FIELDS = ("cat_no", "description", "pack_size", "hsn_code", "make", "lead_time")


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------
def _copy_text_fields(obj, data: dict, fields: Iterable[str]) -> None:
    """Copy present string fields (stripped, empty => None)."""
    for field in fields:
        if field in data:
            setattr(obj, field, clean_str(data.get(field)))


def _require(obj, *fields: str) -> str | None:
    for field in fields:
        if not getattr(obj, field, None):
            return f"{field} is required."
    return None


def _commit_audited(obj, action: str, before=None, conflict_message: str = "Duplicate record."):
    """flush -> audit -> commit; 409 on unique violations."""
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        return error_response(conflict_message, 409)

    log_action(obj, action, before=before, after=serialize_model(obj) if action != "DELETE" else None)
    db.session.commit()
    return None


def _list(model, order_col):
    return jsonify([model_to_dict(x) for x in model.query.order_by(order_col.asc()).all()])


def _delete(model, obj_id: int):
    obj = db.get_or_404(model, obj_id)
    before = serialize_model(obj)

    db.session.delete(obj)
    failed = _commit_audited(obj, "DELETE", before=before, conflict_message="Record is still referenced.")
    if failed:
        return failed
    return jsonify({"deleted": obj_id})


# ----------------------------------------------------------------------
# COMPANIES
# ----------------------------------------------------------------------
def _apply_company(company: Company, data: dict) -> str | None:
    _copy_text_fields(company, data, COMPANY_FIELDS)

    if "short_code" in data:
        code = (clean_str(data.get("short_code")) or "").upper()
        if code and not SHORT_CODE_RE.match(code):
            return "short_code must be 1-10 letters/digits."
        company.short_code = code or None

    return _require(company, "name")


@settings_bp.route("/companies")
def companies_list():
    return _list(Company, Company.name)


@settings_bp.route("/companies", methods=["POST"])
def company_create():
    company = Company()
    err = _apply_company(company, json_payload())
    if err:
        return error_response(err)

    db.session.add(company)
    failed = _commit_audited(company, "CREATE", conflict_message="short_code already in use.")
    if failed:
        return failed
    return jsonify(model_to_dict(company)), 201


@settings_bp.route("/companies/<int:company_id>")
def company_get(company_id: int):
    return jsonify(model_to_dict(db.get_or_404(Company, company_id)))


@settings_bp.route("/companies/<int:company_id>", methods=["POST"])
def company_edit(company_id: int):
    company = db.get_or_404(Company, company_id)
    before = serialize_model(company)

    err = _apply_company(company, json_payload())
    if err:
        db.session.rollback()
        return error_response(err)

    failed = _commit_audited(company, "UPDATE", before=before, conflict_message="short_code already in use.")
    if failed:
        return failed
    return jsonify(model_to_dict(company))


@settings_bp.route("/companies/<int:company_id>/delete", methods=["POST"])
def company_delete(company_id: int):
    return _delete(Company, company_id)


# ----------------------------------------------------------------------
# CLIENTS
# ----------------------------------------------------------------------
@settings_bp.route("/clients")
def clients_list():
    return _list(Client, Client.name)


@settings_bp.route("/clients", methods=["POST"])
def client_create():
    client = Client()
    _copy_text_fields(client, json_payload(), CLIENT_FIELDS)
    err = _require(client, "name")
    if err:
        return error_response(err)

    db.session.add(client)
    failed = _commit_audited(client, "CREATE")
    if failed:
        return failed
    return jsonify(model_to_dict(client)), 201


@settings_bp.route("/clients/<int:client_id>")
def client_get(client_id: int):
    return jsonify(model_to_dict(db.get_or_404(Client, client_id)))


@settings_bp.route("/clients/<int:client_id>", methods=["POST"])
def client_edit(client_id: int):
    client = db.get_or_404(Client, client_id)
    before = serialize_model(client)

    _copy_text_fields(client, json_payload(), CLIENT_FIELDS)
    err = _require(client, "name")
    if err:
        db.session.rollback()
        return error_response(err)

    failed = _commit_audited(client, "UPDATE", before=before)
    if failed:
        return failed
    return jsonify(model_to_dict(client))


@settings_bp.route("/clients/<int:client_id>/delete", methods=["POST"])
def client_delete(client_id: int):
    return _delete(Client, client_id)


# ----------------------------------------------------------------------
# VENDORS
# ----------------------------------------------------------------------
@settings_bp.route("/vendors")
def vendors_list():
    return _list(Vendor, Vendor.name)


@settings_bp.route("/vendors", methods=["POST"])
def vendor_create():
    vendor = Vendor()
    _copy_text_fields(vendor, json_payload(), VENDOR_FIELDS)
    err = _require(vendor, "name")
    if err:
        return error_response(err)

    db.session.add(vendor)
    failed = _commit_audited(vendor, "CREATE")
    if failed:
        return failed
    return jsonify(model_to_dict(vendor)), 201


@settings_bp.route("/vendors/<int:vendor_id>")
def vendor_get(vendor_id: int):
    return jsonify(model_to_dict(db.get_or_404(Vendor, vendor_id)))


@settings_bp.route("/vendors/<int:vendor_id>", methods=["POST"])
def vendor_edit(vendor_id: int):
    vendor = db.get_or_404(Vendor, vendor_id)
    before = serialize_model(vendor)

    _copy_text_fields(vendor, json_payload(), VENDOR_FIELDS)
    err = _require(vendor, "name")
    if err:
        db.session.rollback()
        return error_response(err)

    failed = _commit_audited(vendor, "UPDATE", before=before)
    if failed:
        return failed
    return jsonify(model_to_dict(vendor))


@settings_bp.route("/vendors/<int:vendor_id>/delete", methods=["POST"])
def vendor_delete(vendor_id: int):
    return _delete(Vendor, vendor_id)


# ----------------------------------------------------------------------
# CATALOGUE ITEMS
# ----------------------------------------------------------------------
def _apply_item(item: Item, data: dict) -> str | None:
    _copy_text_fields(item, data, ITEM_TEXT_FIELDS)

    for field in ("unit_rate", "gst_percent"):
        if field not in data:
            continue
        value = parse_decimal(data.get(field))
        if value is None or value < 0:
            return f"{field} must be a non-negative number."
        if exceeds_places(value, INPUT_PLACES):
            return f"{field} allows at most {INPUT_PLACES} decimal places."
        setattr(item, field, value)

    if "vendor_id" in data:
        vendor_id = data.get("vendor_id")
        if vendor_id in (None, ""):
            item.vendor_id = None
        else:
            vendor = db.session.get(Vendor, int(vendor_id)) if str(vendor_id).isdigit() else None
            if vendor is None:
                return "Unknown vendor."
            item.vendor_id = vendor.id

    return _require(item, "cat_no", "description")


@settings_bp.route("/items")
def items_list():
    return _list(Item, Item.cat_no)


@settings_bp.route("/items", methods=["POST"])
def item_create():
    item = Item()
    err = _apply_item(item, json_payload())
    if err:
        return error_response(err)

    db.session.add(item)
    failed = _commit_audited(item, "CREATE", conflict_message="cat_no already exists.")
    if failed:
        return failed
    return jsonify(model_to_dict(item)), 201


@settings_bp.route("/items/<int:item_id>")
def item_get(item_id: int):
    return jsonify(model_to_dict(db.get_or_404(Item, item_id)))


@settings_bp.route("/items/<int:item_id>", methods=["POST"])
def item_edit(item_id: int):
    item = db.get_or_404(Item, item_id)
    before = serialize_model(item)

    err = _apply_item(item, json_payload())
    if err:
        db.session.rollback()
        return error_response(err)

    failed = _commit_audited(item, "UPDATE", before=before, conflict_message="cat_no already exists.")
    if failed:
        return failed
    return jsonify(model_to_dict(item))


@settings_bp.route("/items/<int:item_id>/delete", methods=["POST"])
def item_delete(item_id: int):
    return _delete(Item, item_id)
