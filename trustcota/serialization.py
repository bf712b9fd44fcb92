"""
trustcota/serialization.py

JSON <-> row conversion for the REST API.

- to_dict(): model row -> camelCase dict (decimals as strings, datetimes ISO-8601).
- parse_payload(): request JSON -> {attribute: typed value}, driven by the
  per-entity field tables below. Unknown keys are ignored; bad values raise
  ValidationError with the offending key in the message.

Payloads are never trusted: every value is re-typed here before it reaches storage.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, Optional, Tuple

from sqlalchemy import Numeric

from .errors import ValidationError
from .models import ORDER_STATUSES, SUPPLIER_STATUSES, URGENCY_LEVELS, USER_ROLES

HIDDEN_COLUMNS = {"password_hash"}


# ---------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------
def camel_case(name: str) -> str:
    """request_number -> requestNumber"""
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


# ---------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------
def _json_value(column, value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, Decimal):
        scale = getattr(column.type, "scale", None) if isinstance(column.type, Numeric) else None
        if scale is not None:
            value = value.quantize(Decimal(1).scaleb(-scale), rounding=ROUND_HALF_UP)
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def to_dict(instance: Any) -> Dict[str, Any]:
    """Serialize a model row (persistent or in-memory) using its table columns."""
    data: Dict[str, Any] = {}
    for column in instance.__table__.columns:
        if column.name in HIDDEN_COLUMNS:
            continue
        data[camel_case(column.name)] = _json_value(column, getattr(instance, column.name, None))
    return data


def to_list(instances: Iterable[Any]) -> list:
    return [to_dict(i) for i in instances]


# ---------------------------------------------------------------------
# Scalar parsers (shared with the spreadsheet importer where sensible)
# ---------------------------------------------------------------------
def parse_decimal(value: Any, places: int = 2) -> Optional[Decimal]:
    """Parse decimal from user input (accepts comma or dot). Returns None for empty input."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        raw = str(value)
    else:
        raw = str(value).strip().replace(",", ".")
    if raw == "":
        return None
    try:
        number = Decimal(raw)
    except (InvalidOperation, ValueError):
        raise ValueError(f"not a number: {value!r}")
    if not number.is_finite():
        raise ValueError(f"not a number: {value!r}")
    return number.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse ISO-8601 date or datetime; aware values are normalized to naive UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        raw = str(value).strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


# ---------------------------------------------------------------------
# Input schemas
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class Field:
    attr: str
    kind: str = "str"  # str | text | int | decimal | bool | datetime | json
    required: bool = False
    choices: Tuple[str, ...] = ()
    max_length: Optional[int] = None
    places: int = 2
    max_value: Optional[Decimal] = None

    @property
    def key(self) -> str:
        return camel_case(self.attr)


MONEY_MAX = Decimal("9999999999.99")

SCHEMAS: Dict[str, Tuple[Field, ...]] = {
    "user": (
        Field("username", required=True, max_length=80),
        Field("email", max_length=255),
        Field("first_name", max_length=120),
        Field("last_name", max_length=120),
        Field("role", choices=USER_ROLES),
        Field("department", max_length=120),
        Field("is_active", "bool"),
    ),
    "supplier": (
        Field("name", required=True, max_length=255),
        Field("cnpj", max_length=20),
        Field("email", max_length=255),
        Field("phone", max_length=40),
        Field("address", "text"),
        Field("contact_person", max_length=255),
        Field("status", choices=SUPPLIER_STATUSES),
        Field("score", "decimal", max_value=Decimal("9.99")),
        Field("average_delivery_time", "int"),
        Field("notes", "text"),
    ),
    "category": (
        Field("name", required=True, max_length=120),
        Field("description", "text"),
        Field("parent_id", "int"),
    ),
    "product": (
        Field("name", required=True, max_length=255),
        Field("description", "text"),
        Field("unit", required=True, max_length=20),
        Field("category_id", "int"),
        Field("specifications", "json"),
        Field("last_price", "decimal", max_value=Decimal("99999999.99")),
        Field("average_price", "decimal", max_value=Decimal("99999999.99")),
        Field("is_active", "bool"),
    ),
    "quotation_request": (
        Field("title", required=True, max_length=255),
        Field("description", "text"),
        Field("department", max_length=120),
        Field("cost_center", max_length=120),
        Field("urgency", choices=URGENCY_LEVELS),
        Field("expected_delivery_date", "datetime"),
        Field("total_budget", "decimal", max_value=MONEY_MAX),
        Field("approver_id", "int"),
        Field("notes", "text"),
    ),
    "quotation_request_item": (
        Field("product_id", "int"),
        Field("product_name", required=True, max_length=255),
        Field("quantity", "decimal", required=True, places=3, max_value=Decimal("9999999.999")),
        Field("unit", required=True, max_length=20),
        Field("specifications", "text"),
        Field("estimated_price", "decimal", max_value=Decimal("99999999.99")),
    ),
    "supplier_quotation": (
        Field("supplier_id", "int", required=True),
        Field("quotation_number", max_length=80),
        Field("valid_until", "datetime"),
        Field("delivery_time", "int"),
        Field("payment_terms", max_length=255),
        Field("total_amount", "decimal", required=True, max_value=MONEY_MAX),
        Field("observations", "text"),
    ),
    "purchase_order": (
        Field("status", required=True, choices=ORDER_STATUSES),
    ),
    # action bodies
    "approval": (
        Field("approved_amount", "decimal", max_value=MONEY_MAX),
    ),
    "rejection": (
        Field("rejection_reason", "text", required=True),
    ),
    "order_generation": (
        Field("delivery_address", "text"),
    ),
    "market_analysis": (
        Field("product_name", required=True, max_length=255),
        Field("category", max_length=120),
    ),
}


def _coerce(field: Field, value: Any) -> Any:
    if value is None:
        return None

    if field.kind in ("str", "text"):
        if not isinstance(value, (str, int, float)) or isinstance(value, bool):
            raise ValueError("expected text")
        text = str(value).strip()
        if text == "":
            return None
        if field.max_length and len(text) > field.max_length:
            raise ValueError(f"longer than {field.max_length} characters")
        if field.choices and text not in field.choices:
            raise ValueError(f"must be one of: {', '.join(field.choices)}")
        return text

    if field.kind == "int":
        if isinstance(value, bool):
            raise ValueError("expected an integer")
        if isinstance(value, str) and value.strip() == "":
            return None
        try:
            number = int(str(value).strip())
        except ValueError:
            raise ValueError("expected an integer")
        if number < 0:
            raise ValueError("must not be negative")
        return number

    if field.kind == "decimal":
        number = parse_decimal(value, places=field.places)
        if number is None:
            return None
        if number < 0:
            raise ValueError("must not be negative")
        if field.max_value is not None and number > field.max_value:
            raise ValueError(f"must not exceed {field.max_value}")
        return number

    if field.kind == "bool":
        if isinstance(value, bool):
            return value
        raise ValueError("expected true or false")

    if field.kind == "datetime":
        try:
            return parse_datetime(value)
        except (TypeError, ValueError):
            raise ValueError("expected an ISO-8601 date")

    if field.kind == "json":
        if not isinstance(value, (dict, list)):
            raise ValueError("expected an object or a list")
        return value

    raise ValueError(f"unsupported field kind {field.kind}")


def parse_payload(schema: str, data: Any, partial: bool = False) -> Dict[str, Any]:
    """
    Validate and type a JSON payload against SCHEMAS[schema].

    partial=True is used by PUT endpoints: only keys present in the payload are
    returned and "required" only means "may not be cleared".
    """
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")

    result: Dict[str, Any] = {}
    for field in SCHEMAS[schema]:
        present = field.key in data
        if not present:
            if field.required and not partial:
                raise ValidationError(f"Field '{field.key}' is required")
            continue

        try:
            value = _coerce(field, data[field.key])
        except ValueError as exc:
            raise ValidationError(f"Invalid value for '{field.key}': {exc}")

        if value is None and field.required:
            raise ValidationError(f"Field '{field.key}' is required")
        result[field.attr] = value

    return result
