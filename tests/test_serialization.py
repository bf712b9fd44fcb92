from datetime import datetime
from decimal import Decimal

import pytest

from trustcota.errors import ValidationError
from trustcota.models import QuotationRequest, User
from trustcota.serialization import camel_case, parse_datetime, parse_decimal, parse_payload, to_dict


def test_camel_case():
    assert camel_case("request_number") == "requestNumber"
    assert camel_case("title") == "title"
    assert camel_case("expected_delivery_date") == "expectedDeliveryDate"


def test_to_dict_formats_decimals_and_datetimes():
    row = QuotationRequest(
        id=3,
        request_number="REQ-202610-003",
        requester_id=1,
        title="Toner",
        urgency="alta",
        status="rascunho",
        total_budget=Decimal("1500"),
        created_at=datetime(2026, 10, 1, 8, 0),
    )
    data = to_dict(row)
    assert data["requestNumber"] == "REQ-202610-003"
    assert data["totalBudget"] == "1500.00"
    assert data["createdAt"] == "2026-10-01T08:00:00"
    assert data["approvedAmount"] is None


def test_to_dict_never_exposes_password_hash():
    user = User(id=1, username="ana", role="admin")
    user.set_password("secret123")
    data = to_dict(user)
    assert "passwordHash" not in data
    assert data["username"] == "ana"


def test_parse_decimal_accepts_comma():
    assert parse_decimal("12,5") == Decimal("12.50")
    assert parse_decimal(3) == Decimal("3.00")
    assert parse_decimal("") is None
    with pytest.raises(ValueError):
        parse_decimal("abc")


def test_parse_datetime_normalizes_to_naive_utc():
    assert parse_datetime("2026-10-17T12:00:00Z") == datetime(2026, 10, 17, 12, 0)
    assert parse_datetime("2026-10-17T12:00:00-03:00") == datetime(2026, 10, 17, 15, 0)
    assert parse_datetime("2026-10-17") == datetime(2026, 10, 17)


def test_parse_payload_types_and_ignores_unknown_keys():
    data = parse_payload(
        "quotation_request",
        {"title": " Papel A4 ", "totalBudget": "1234.5", "urgency": "alta", "hacker": True},
    )
    assert data == {"title": "Papel A4", "total_budget": Decimal("1234.50"), "urgency": "alta"}


@pytest.mark.parametrize(
    "payload, message",
    [
        ({}, "Field 'title' is required"),
        ({"title": "   "}, "Field 'title' is required"),
        ({"title": "x", "urgency": "panic"}, "Invalid value for 'urgency'"),
        ({"title": "x", "totalBudget": "-1"}, "Invalid value for 'totalBudget'"),
        ({"title": "x", "approverId": "abc"}, "Invalid value for 'approverId'"),
        ({"title": "x" * 256}, "Invalid value for 'title'"),
    ],
)
def test_parse_payload_rejects_bad_input(payload, message):
    with pytest.raises(ValidationError) as info:
        parse_payload("quotation_request", payload)
    assert message in info.value.message


def test_partial_payload_only_returns_present_keys():
    assert parse_payload("supplier", {"phone": "11 5555-0000"}, partial=True) == {"phone": "11 5555-0000"}
    with pytest.raises(ValidationError):
        parse_payload("supplier", {"name": None}, partial=True)


def test_body_must_be_an_object():
    with pytest.raises(ValidationError):
        parse_payload("supplier", ["not", "an", "object"])
