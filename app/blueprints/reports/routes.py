"""
app/blueprints/reports/routes.py

Sales reporting over stored quotation totals.

Cancelled quotations are excluded from every figure.
"""

from __future__ import annotations

from collections import OrderedDict

from flask import Blueprint, jsonify, request

from ...models import Quotation
from ...pricing import ZERO, money, to_decimal
from ...utils import error_response, parse_date, to_jsonable

reports_bp = Blueprint("reports", __name__, url_prefix="/reports")


def _bucket() -> dict:
    return {"count": 0, "quoted": ZERO, "collected": ZERO}


def _add(bucket: dict, quotation: Quotation) -> None:
    bucket["count"] += 1
    bucket["quoted"] += to_decimal(quotation.grand_total)
    bucket["collected"] += to_decimal(quotation.amount_paid)


def _bucket_json(bucket: dict) -> dict:
    return {
        "count": bucket["count"],
        "quoted": to_jsonable(money(bucket["quoted"])),
        "collected": to_jsonable(money(bucket["collected"])),
        "outstanding": to_jsonable(money(bucket["quoted"] - bucket["collected"])),
    }


@reports_bp.route("/sales")
def sales_summary():
    q = Quotation.query.filter(Quotation.status != "CANCELLED")

    raw_from = request.args.get("from")
    raw_to = request.args.get("to")
    date_from = parse_date(raw_from)
    date_to = parse_date(raw_to)

    if (raw_from and date_from is None) or (raw_to and date_to is None):
        return error_response("Invalid date filter (expected YYYY-MM-DD).")
    if date_from:
        q = q.filter(Quotation.quotation_date >= date_from)
    if date_to:
        q = q.filter(Quotation.quotation_date <= date_to)

    totals = _bucket()
    by_status: dict = {}
    by_month: "OrderedDict[str, dict]" = OrderedDict()

    for quotation in q.order_by(Quotation.quotation_date.asc(), Quotation.id.asc()).all():
        _add(totals, quotation)
        _add(by_status.setdefault(quotation.status, _bucket()), quotation)
        _add(by_month.setdefault(quotation.quotation_date.strftime("%Y-%m"), _bucket()), quotation)

    return jsonify(
        {
            **_bucket_json(totals),
            "by_status": {status: _bucket_json(b) for status, b in sorted(by_status.items())},
            "by_month": [{"month": month, **_bucket_json(b)} for month, b in by_month.items()],
        }
    )
