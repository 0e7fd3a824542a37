"""
Shared pytest fixtures.

Each test gets a fresh app on an in-memory SQLite database.
"""
import pytest

from app import create_app
from app.extensions import db as _db


@pytest.fixture
def app():
    app = create_app("config.TestConfig")
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def company(client):
    resp = client.post("/settings/companies", json={"name": "Chembio Labs", "short_code": "cbl"})
    assert resp.status_code == 201
    return resp.get_json()


@pytest.fixture
def customer(client):
    resp = client.post("/settings/clients", json={"name": "City Hospital", "email": "buy@cityhosp.in"})
    assert resp.status_code == 201
    return resp.get_json()
