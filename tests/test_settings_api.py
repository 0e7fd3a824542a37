import json

import pytest

from app.models import AuditLog, Company


def test_company_short_code_is_upper_cased(company):
    assert company["short_code"] == "CBL"
    assert company["name"] == "Chembio Labs"


@pytest.mark.parametrize(
    "payload, message",
    [
        ({"short_code": "ABC"}, "name is required."),
        ({"name": "X", "short_code": "bad code"}, "short_code must be 1-10 letters/digits."),
        ({"name": "X", "short_code": "ABCDEFGHIJK"}, "short_code must be 1-10 letters/digits."),
    ],
)
def test_company_validation(client, payload, message):
    resp = client.post("/settings/companies", json=payload)

    assert resp.status_code == 400
    assert resp.get_json()["error"] == message


def test_duplicate_short_code_conflicts(client, company):
    resp = client.post("/settings/companies", json={"name": "Other Labs", "short_code": "CBL"})

    assert resp.status_code == 409
    assert resp.get_json()["error"] == "short_code already in use."


def test_company_without_short_code(client):
    resp = client.post("/settings/companies", json={"name": "No Code Pvt Ltd", "short_code": ""})

    assert resp.status_code == 201
    assert resp.get_json()["short_code"] is None


def test_company_edit_and_get(client, company):
    resp = client.post(
        f"/settings/companies/{company['id']}",
        json={"bank_name": "State Bank", "ifsc_code": "SBIN0000001", "short_code": "cbx"},
    )

    assert resp.status_code == 200
    fetched = client.get(f"/settings/companies/{company['id']}").get_json()
    assert fetched["bank_name"] == "State Bank"
    assert fetched["short_code"] == "CBX"


def test_company_delete_is_audited(client, app, company):
    resp = client.post(f"/settings/companies/{company['id']}/delete")

    assert resp.get_json() == {"deleted": company["id"]}
    assert Company.query.count() == 0

    actions = [
        e.action
        for e in AuditLog.query.filter_by(entity_type="Company", entity_id=company["id"]).order_by(AuditLog.id)
    ]
    assert actions == ["CREATE", "DELETE"]


def test_company_list_sorted_by_name(client, company):
    client.post("/settings/companies", json={"name": "Alpha Biotech", "short_code": "ABT"})

    names = [c["name"] for c in client.get("/settings/companies").get_json()]

    assert names == ["Alpha Biotech", "Chembio Labs"]


def test_missing_company_is_404(client):
    assert client.get("/settings/companies/42").status_code == 404


# ---------------------------------------------------------------------
# Clients / vendors
# ---------------------------------------------------------------------
def test_client_crud(client, customer):
    assert client.get(f"/settings/clients/{customer['id']}").get_json()["email"] == "buy@cityhosp.in"

    resp = client.post(f"/settings/clients/{customer['id']}", json={"contact_person": "  Dr. Rao  "})
    assert resp.get_json()["contact_person"] == "Dr. Rao"

    resp = client.post(f"/settings/clients/{customer['id']}", json={"name": ""})
    assert resp.status_code == 400

    assert client.post(f"/settings/clients/{customer['id']}/delete").status_code == 200
    assert client.get("/settings/clients").get_json() == []


def test_client_requires_name(client):
    resp = client.post("/settings/clients", json={"email": "x@example.com"})

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "name is required."


def test_vendor_crud(client):
    resp = client.post("/settings/vendors", json={"name": "Sigma Supplies", "gst": "27ABCDE1234F1Z5"})
    assert resp.status_code == 201
    vendor_id = resp.get_json()["id"]

    resp = client.post(f"/settings/vendors/{vendor_id}", json={"phone": "022-555-0100"})
    assert resp.get_json()["phone"] == "022-555-0100"

    assert client.get(f"/settings/vendors/{vendor_id}").get_json()["gst"] == "27ABCDE1234F1Z5"
    assert [v["name"] for v in client.get("/settings/vendors").get_json()] == ["Sigma Supplies"]
    assert client.post(f"/settings/vendors/{vendor_id}/delete").get_json() == {"deleted": vendor_id}


# ---------------------------------------------------------------------
# Catalogue items
# ---------------------------------------------------------------------
@pytest.fixture
def vendor(client):
    return client.post("/settings/vendors", json={"name": "Sigma Supplies"}).get_json()


def test_item_create_with_vendor(client, vendor):
    resp = client.post(
        "/settings/items",
        json={
            "cat_no": "TQ-100",
            "description": "Taq polymerase 100U",
            "unit_rate": "450,50",
            "vendor_id": vendor["id"],
        },
    )

    assert resp.status_code == 201
    data = resp.get_json()
    assert data["unit_rate"] == "450.50"
    assert data["gst_percent"] == "18.00"
    assert data["vendor_id"] == vendor["id"]


def test_duplicate_cat_no_conflicts(client):
    payload = {"cat_no": "TQ-100", "description": "Taq"}
    assert client.post("/settings/items", json=payload).status_code == 201

    resp = client.post("/settings/items", json=payload)

    assert resp.status_code == 409
    assert resp.get_json()["error"] == "cat_no already exists."


@pytest.mark.parametrize(
    "payload, message",
    [
        ({"description": "Taq"}, "cat_no is required."),
        ({"cat_no": "TQ-1"}, "description is required."),
        ({"cat_no": "TQ-1", "description": "Taq", "unit_rate": "-1"}, "unit_rate must be a non-negative number."),
        ({"cat_no": "TQ-1", "description": "Taq", "gst_percent": "abc"}, "gst_percent must be a non-negative number."),
        ({"cat_no": "TQ-1", "description": "Taq", "vendor_id": 999}, "Unknown vendor."),
        ({"cat_no": "TQ-1", "description": "Taq", "vendor_id": "x"}, "Unknown vendor."),
        ({"cat_no": "TQ-1", "description": "Taq", "unit_rate": "0.12345"}, "unit_rate allows at most 4 decimal places."),
    ],
)
def test_item_validation(client, payload, message):
    resp = client.post("/settings/items", json=payload)

    assert resp.status_code == 400
    assert resp.get_json()["error"] == message


def test_item_edit_is_audited_with_snapshots(client, app):
    item_id = client.post("/settings/items", json={"cat_no": "TQ-100", "description": "Taq"}).get_json()["id"]

    resp = client.post(f"/settings/items/{item_id}", json={"unit_rate": "99.90"})
    assert resp.get_json()["unit_rate"] == "99.90"

    entry = AuditLog.query.filter_by(entity_type="Item", action="UPDATE").one()
    assert json.loads(entry.before_data)["unit_rate"] == "0.00"
    assert json.loads(entry.after_data)["unit_rate"] == "99.90"
    assert entry.ip_address == "127.0.0.1"


def test_item_delete(client):
    item_id = client.post("/settings/items", json={"cat_no": "TQ-100", "description": "Taq"}).get_json()["id"]

    assert client.post(f"/settings/items/{item_id}/delete").status_code == 200
    assert client.get("/settings/items").get_json() == []


# ---------------------------------------------------------------------
# App-level endpoints
# ---------------------------------------------------------------------
def test_index_and_csrf_token(client):
    assert client.get("/").get_json()["status"] == "ok"
    assert client.get("/csrf-token").get_json()["csrf_token"]


def test_log_action_guards(app):
    from app.audit import log_action

    with pytest.raises(ValueError):
        log_action(Company(name="Unsaved"), "CREATE")

    with pytest.raises(ValueError):
        log_action(Company(id=1, name="Saved"), "ARCHIVE")


def test_item_get_keeps_sub_cent_rate(client):
    item_id = client.post(
        "/settings/items", json={"cat_no": "MT-15", "description": "Microtube 1.5ml", "unit_rate": "0.125"}
    ).get_json()["id"]

    data = client.get(f"/settings/items/{item_id}").get_json()

    assert data["cat_no"] == "MT-15"
    assert data["unit_rate"] == "0.125"
    assert client.get("/settings/items/999").status_code == 404
