from decimal import Decimal

import pytest
import requests
from sqlalchemy.exc import DataError

from trustcota.errors import ConflictError, ValidationError
from trustcota.extensions import db
from trustcota.models import ORDER_PENDING, QuotationRequest, Supplier, User
from trustcota.seed import DEFAULT_CATEGORIES, seed_default_categories
from trustcota.services.ai import FALLBACK_INSIGHTS, AiAdvisor, AiServiceError
from trustcota.services.notifications import EmailNotifier
from trustcota.services.side_effects import run_best_effort


def _notifier():
    return EmailNotifier("smtp.example.com", 587, "sistema@trustcota.com", suppress=True)


def _request():
    return QuotationRequest(id=1, request_number="REQ-202610-001", title="Papel A4", urgency="alta", requester_id=1)


# ---------------------------------------------------------------------
# Side effects
# ---------------------------------------------------------------------
def test_run_best_effort_reports_success_and_failure():
    ok = run_best_effort("sum", lambda a, b: a + b, 1, 2)
    assert (ok.ok, ok.value, ok.error) == (True, 3, None)

    def fail():
        raise ValueError("nope")

    failed = run_best_effort("fail", fail)
    assert (failed.ok, failed.error) == (False, "nope")
    assert failed.to_dict() == {"name": "fail", "ok": False, "error": "nope"}


# ---------------------------------------------------------------------
# E-mail
# ---------------------------------------------------------------------
def test_suppressed_mail_goes_to_outbox():
    notifier = _notifier()
    requester = User(username="ana", email="ana@example.com")

    assert notifier.send_approval_notification(_request(), requester) == 1
    message = notifier.outbox[0]
    assert message["To"] == "ana@example.com"
    assert message["Subject"] == "Cotação Aprovada - REQ-202610-001"


def test_requester_without_email_is_an_error():
    with pytest.raises(ValueError):
        _notifier().send_rejection_notification(_request(), User(username="ana"), "Fora do orçamento")


def test_suppliers_without_email_are_skipped():
    notifier = _notifier()
    suppliers = [Supplier(name="A", email="a@a.com"), Supplier(name="B"), Supplier(name="C", email="c@c.com")]
    assert notifier.send_quotation_request_notification(suppliers, _request()) == 2
    assert [m["To"] for m in notifier.outbox] == ["a@a.com", "c@c.com"]


# ---------------------------------------------------------------------
# AI advisor
# ---------------------------------------------------------------------
class _FakeResponse:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")

    def json(self):
        return self.payload


class _FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


def _completion(content):
    return _FakeResponse({"choices": [{"message": {"content": content}}]})


def test_advisor_without_key_uses_fallbacks():
    advisor = AiAdvisor(api_key=None, session=_FakeSession(error=AssertionError("no network")))
    assert advisor.generate_dashboard_insights() == FALLBACK_INSIGHTS
    assert "costSavings" in advisor.analyze_quotation_request(_request())


def test_advisor_parses_json_completion():
    session = _FakeSession(_completion('{"insights": [{"type": "trend", "title": "Papel em alta"}]}'))
    advisor = AiAdvisor(api_key="sk-test", session=session)

    assert advisor.generate_dashboard_insights() == [{"type": "trend", "title": "Papel em alta"}]
    url, kwargs = session.calls[0]
    assert kwargs["headers"]["Authorization"] == "Bearer sk-test"
    assert kwargs["json"]["response_format"] == {"type": "json_object"}


def test_advisor_network_failure():
    advisor = AiAdvisor(api_key="sk-test", session=_FakeSession(error=requests.ConnectionError("down")))

    assert advisor.generate_dashboard_insights() == FALLBACK_INSIGHTS
    assert advisor.analyze_market_trends("Papel A4")["confidence"] == 0.75
    with pytest.raises(AiServiceError):
        advisor.analyze_quotation_request(_request())


def test_advisor_garbage_completion():
    advisor = AiAdvisor(api_key="sk-test", session=_FakeSession(_completion("not json")))
    with pytest.raises(AiServiceError):
        advisor.analyze_quotation_request(_request())


# ---------------------------------------------------------------------
# Storage rules not covered by the workflow tests
# ---------------------------------------------------------------------
def test_supplier_with_orders_cannot_be_deleted(ctx, storage, make_user, make_request, make_supplier):
    supplier_id = make_supplier()
    request_id = make_request(make_user())
    storage.create_purchase_order(
        {"quotation_request_id": request_id, "supplier_id": supplier_id, "total_amount": Decimal("10"), "status": ORDER_PENDING}
    )
    with pytest.raises(ConflictError):
        storage.delete_supplier(supplier_id)


def test_deleting_supplier_removes_its_quotations(ctx, storage, make_user, make_request, make_supplier):
    supplier_id = make_supplier()
    request_id = make_request(make_user())
    storage.create_supplier_quotation(
        {"quotation_request_id": request_id, "supplier_id": supplier_id, "total_amount": Decimal("10")}
    )
    storage.delete_supplier(supplier_id)
    assert storage.list_supplier_quotations(request_id) == []


def test_database_value_errors_are_validation_errors(ctx, storage, monkeypatch):
    if storage.backend_name != "sql":
        pytest.skip("column limits are enforced by the database")

    def too_long():
        raise DataError("INSERT INTO suppliers", {}, Exception("value too long for type character varying(255)"))

    monkeypatch.setattr(db.session, "commit", too_long)
    with pytest.raises(ValidationError, match="value too long"):
        storage.create_supplier({"name": "X" * 300})


def test_search_is_case_insensitive(ctx, storage, make_supplier):
    make_supplier(name="Papelaria Central", cnpj="12.345.678/0001-90")
    make_supplier(name="Distribuidora Nova")
    assert [s.name for s in storage.search_suppliers("PAPEL")] == ["Papelaria Central"]
    assert [s.name for s in storage.search_suppliers("678/0001")] == ["Papelaria Central"]


# ---------------------------------------------------------------------
# Seeding and CLI
# ---------------------------------------------------------------------
def test_seed_categories_is_idempotent(ctx, storage):
    assert seed_default_categories(storage) == len(DEFAULT_CATEGORIES)
    assert seed_default_categories(storage) == 0
    assert len(storage.list_categories()) == len(DEFAULT_CATEGORIES)


def test_cli_commands(app, storage):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["seed-catalog"])
    assert result.exit_code == 0
    assert "created" in result.output

    result = runner.invoke(args=["create-user", "root", "--role", "admin", "--password", "admin123"])
    assert result.exit_code == 0, result.output

    result = runner.invoke(args=["create-user", "root", "--role", "admin", "--password", "admin123"])
    assert result.exit_code != 0
    assert "already exists" in result.output

    with app.app_context():
        assert storage.find_user_by_username("root").role == "admin"
