"""
Pytest fixtures for the TrustCota API test suite.

Provides:
- app: one application per test, parametrized over both storage backends
  ("sql" on in-memory SQLite, "memory" on MemoryStorage)
- client / storage / ctx
- make_user, make_supplier, make_request factories (they return ids, so rows
  never outlive the app context that loaded them)
- login helper for the JSON auth endpoints
- xlsx_bytes / csv_bytes spreadsheet builders

No network: TestConfig leaves OPENAI_API_KEY unset (fallback content) and
suppresses mail (messages land in the notifier outbox).
"""

from __future__ import annotations

import io
import itertools
from datetime import datetime

import openpyxl
import pytest

from trustcota import create_app
from trustcota.extensions import db
from trustcota.models import ROLE_REQUESTER, STATUS_DRAFT, SUPPLIER_ACTIVE
from trustcota.services.lifecycle import QuotationLifecycle
from trustcota.storage import MemoryStorage

DEFAULT_PASSWORD = "secret123"
FIXED_NOW = datetime(2026, 10, 17, 9, 30)


@pytest.fixture(params=["sql", "memory"])
def app(request):
    storage = MemoryStorage() if request.param == "memory" else None
    application = create_app("config.TestConfig", storage=storage)
    yield application
    if request.param == "sql":
        with application.app_context():
            db.session.remove()
            db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def storage(app):
    return app.extensions["storage"]


@pytest.fixture
def ctx(app):
    """Application context for service-level tests (not used together with client)."""
    with app.app_context():
        yield


@pytest.fixture
def notifier(app):
    return app.extensions["notifier"]


@pytest.fixture
def lifecycle(app, storage, notifier):
    return QuotationLifecycle(
        storage,
        notifier,
        app.extensions["ai_advisor"],
        supplier_notification_limit=app.config["SUPPLIER_NOTIFICATION_LIMIT"],
        clock=lambda: FIXED_NOW,
    )


# ---------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------
@pytest.fixture
def make_user(app, storage):
    counter = itertools.count(1)

    def _make(role=ROLE_REQUESTER, username=None, password=DEFAULT_PASSWORD, email="", is_active=True):
        username = username or f"{role}{next(counter)}"
        if email == "":
            email = f"{username}@example.com"
        with app.app_context():
            user = storage.create_user(
                {"username": username, "email": email, "role": role, "is_active": is_active},
                password,
            )
            return user.id

    return _make


@pytest.fixture
def make_supplier(app, storage):
    counter = itertools.count(1)

    def _make(name=None, status=SUPPLIER_ACTIVE, email=None, **extra):
        n = next(counter)
        with app.app_context():
            supplier = storage.create_supplier(
                {
                    "name": name or f"Fornecedor {n}",
                    "status": status,
                    "email": email if email is not None else f"vendas{n}@fornecedor.com.br",
                    **extra,
                }
            )
            return supplier.id

    return _make


@pytest.fixture
def make_request(app, storage):
    def _make(requester_id, title="Papel A4", status=STATUS_DRAFT, **extra):
        with app.app_context():
            request = storage.create_quotation_request(
                {"title": title, "requester_id": requester_id, "status": status, **extra}
            )
            return request.id

    return _make


@pytest.fixture
def login(client):
    def _login(username, password=DEFAULT_PASSWORD):
        client.post("/api/auth/logout")
        response = client.post("/api/auth/login", json={"username": username, "password": password})
        assert response.status_code == 200, response.get_json()
        return response.get_json()

    return _login


# ---------------------------------------------------------------------
# Spreadsheet builders
# ---------------------------------------------------------------------
def build_xlsx(rows) -> bytes:
    wb = openpyxl.Workbook()
    ws = wb.active
    for row in rows:
        ws.append(list(row))
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def build_csv(rows, delimiter=";", encoding="utf-8-sig") -> bytes:
    lines = [delimiter.join("" if v is None else str(v) for v in row) for row in rows]
    return ("\r\n".join(lines) + "\r\n").encode(encoding)


@pytest.fixture
def xlsx_bytes():
    return build_xlsx


@pytest.fixture
def csv_bytes():
    return build_csv
