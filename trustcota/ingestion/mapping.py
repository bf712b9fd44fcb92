"""
trustcota/ingestion/mapping.py

Pure row mappers: raw spreadsheet row (header -> value) -> RowOutcome.

No storage access here, so every heuristic can be unit-tested on plain dicts.

Rules:
- Each target field has an ordered list of header synonyms (Portuguese and
  English). Headers are compared without accents, case or punctuation; the first
  synonym with a non-empty value wins.
- Rows whose title / supplier is empty, shorter than MIN_NAME_LENGTH or carries a
  metadata marker ("EMPRESA:", "CONTATO:", ...) are skipped, not errors.
- Unparseable or out-of-range numbers become None instead of failing the row.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

AMOUNT_MAX = Decimal("99999999.99")
QUANTITY_MAX = Decimal("9999999.999")
MIN_NAME_LENGTH = 3
MAX_TITLE_LENGTH = 255

METADATA_MARKERS = ("EMPRESA:", "CONTATO:", "CNPJ:", "TELEFONE:", "E-MAIL:", "EMAIL:", "ENDERECO:", "DATA:")

URGENCY_SYNONYMS = {
    "baixa": "baixa",
    "low": "baixa",
    "normal": "normal",
    "media": "normal",
    "medium": "normal",
    "alta": "alta",
    "high": "alta",
    "urgente": "alta",
    "critica": "critica",
    "critical": "critica",
    "emergencia": "critica",
}

REQUISITION_FIELDS: Dict[str, Tuple[str, ...]] = {
    "title": ("titulo", "title", "nome", "requisicao", "solicitacao", "assunto"),
    "description": ("descricao", "description", "detalhes", "especificacao", "observacoes", "obs"),
    "department": ("departamento", "department", "setor", "area"),
    "cost_center": ("centro de custo", "centro custo", "cost center", "cc"),
    "urgency": ("urgencia", "urgency", "prioridade", "priority"),
    "total_budget": ("orcamento", "orcamento total", "budget", "valor", "valor total", "valor estimado", "total"),
    "expected_delivery_date": ("data de entrega", "data entrega", "prazo", "data necessaria", "delivery date"),
    "product": ("produto", "product", "item", "material"),
    "quantity": ("quantidade", "qtd", "qtde", "quant", "quantity", "qty"),
    "unit": ("unidade", "un", "und", "unid", "unit"),
    "unit_price": ("preco unitario", "valor unitario", "unit price"),
}

SUPPLIER_QUOTATION_FIELDS: Dict[str, Tuple[str, ...]] = {
    "supplier": ("fornecedor", "supplier", "nome do fornecedor", "razao social", "empresa fornecedora", "vendor"),
    "request": (
        "requisicao",
        "numero da requisicao",
        "numero requisicao",
        "n requisicao",
        "id requisicao",
        "request",
        "request number",
        "request id",
        "quotation request",
        "req",
    ),
    "product": ("produto", "product", "item", "material", "descricao"),
    "quantity": ("quantidade", "qtd", "qtde", "quant", "quantity", "qty"),
    "unit_price": ("preco unitario", "valor unitario", "preco", "unit price", "price"),
    "total_price": ("valor total", "preco total", "total", "total price", "total amount", "valor"),
    "delivery_time": ("prazo de entrega", "prazo entrega", "prazo", "entrega", "delivery time", "dias"),
    "payment_terms": (
        "condicoes de pagamento",
        "condicao de pagamento",
        "forma de pagamento",
        "pagamento",
        "payment terms",
    ),
    "observations": ("observacoes", "observacao", "obs", "observations", "notes"),
    "quotation_number": ("numero da cotacao", "numero cotacao", "n cotacao", "quotation number"),
    "valid_until": ("validade", "valida ate", "valid until"),
}

# Column order used when the sheet has no usable header row.
REQUISITION_POSITIONAL = ("title", "description", "department", "cost_center", "urgency", "total_budget")
SUPPLIER_QUOTATION_POSITIONAL = (
    "supplier",
    "request",
    "product",
    "quantity",
    "unit_price",
    "total_price",
    "delivery_time",
    "payment_terms",
    "observations",
)


# ---------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------
@dataclass
class RequisitionItemRecord:
    product_name: str
    quantity: Decimal
    unit: str
    estimated_price: Optional[Decimal] = None


@dataclass
class RequisitionRecord:
    title: str
    description: Optional[str] = None
    department: Optional[str] = None
    cost_center: Optional[str] = None
    urgency: str = "normal"
    total_budget: Optional[Decimal] = None
    expected_delivery_date: Optional[datetime] = None
    item: Optional[RequisitionItemRecord] = None

    def request_values(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "department": self.department,
            "cost_center": self.cost_center,
            "urgency": self.urgency,
            "total_budget": self.total_budget,
            "expected_delivery_date": self.expected_delivery_date,
        }


@dataclass
class SupplierQuotationRecord:
    supplier_name: str
    request_ref: str
    total_amount: Decimal
    product_name: Optional[str] = None
    quantity: Optional[Decimal] = None
    unit_price: Optional[Decimal] = None
    delivery_time: Optional[int] = None
    payment_terms: Optional[str] = None
    observations: Optional[str] = None
    quotation_number: Optional[str] = None
    valid_until: Optional[datetime] = None


@dataclass
class RowOutcome:
    """Result of mapping one row: a record, a skip (not an error) or an error."""

    status: str  # "ok" | "skip" | "error"
    record: Any = None
    reason: Optional[str] = None

    @classmethod
    def ok(cls, record: Any) -> "RowOutcome":
        return cls("ok", record=record)

    @classmethod
    def skip(cls, reason: str) -> "RowOutcome":
        return cls("skip", reason=reason)

    @classmethod
    def error(cls, reason: str) -> "RowOutcome":
        return cls("error", reason=reason)

    @property
    def is_ok(self) -> bool:
        return self.status == "ok"


# ---------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------
def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_header(value: Any) -> str:
    """'Centro de Custo:' -> 'centro de custo', 'Nº_Requisição' -> 'n requisicao'."""
    text = str(value).replace("º", "").replace("°", "")
    text = strip_accents(text).lower()
    text = re.sub(r"[_\-./:#()]+", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def _known_headers(fields: Mapping[str, Sequence[str]]) -> frozenset:
    return frozenset(normalize_header(s) for synonyms in fields.values() for s in synonyms)


KNOWN_REQUISITION_HEADERS = _known_headers(REQUISITION_FIELDS)
KNOWN_SUPPLIER_QUOTATION_HEADERS = _known_headers(SUPPLIER_QUOTATION_FIELDS)


def is_requisition_header(value: Any) -> bool:
    return isinstance(value, str) and normalize_header(value) in KNOWN_REQUISITION_HEADERS


def is_supplier_quotation_header(value: Any) -> bool:
    return isinstance(value, str) and normalize_header(value) in KNOWN_SUPPLIER_QUOTATION_HEADERS


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    text = str(value).strip()
    return text or None


def _truncate(text: Optional[str], length: int) -> Optional[str]:
    return text[:length] if text is not None else None


def has_metadata_marker(text: str) -> bool:
    upper = strip_accents(text).upper()
    return any(marker in upper for marker in METADATA_MARKERS)


def resolve_fields(raw: Mapping[str, Any], fields: Mapping[str, Sequence[str]]) -> Dict[str, Any]:
    """
    Pick a value per target field: synonyms in order, first non-empty value wins.

    Keys already equal to a target field name (positional rows) are taken as is.
    """
    by_header: Dict[str, Any] = {}
    for key, value in raw.items():
        by_header.setdefault(normalize_header(key), value)

    resolved: Dict[str, Any] = {}
    for target, synonyms in fields.items():
        if target in raw and _text(raw[target]) is not None:
            resolved[target] = raw[target]
            continue
        for synonym in synonyms:
            value = by_header.get(normalize_header(synonym))
            if _text(value) is not None:
                resolved[target] = value
                break
    return resolved


# ---------------------------------------------------------------------
# Value coercion (None instead of errors)
# ---------------------------------------------------------------------
def parse_amount(value: Any, places: int = 2, maximum: Decimal = AMOUNT_MAX) -> Optional[Decimal]:
    """
    Lenient number parsing for hand-edited sheets.

    "R$ 1.234,56" -> 1234.56, "1,234.56" -> 1234.56, "12,5" -> 12.50,
    "1.234.567" -> 1234567, "R$ 1.500" -> 1500 (a lone dot before exactly three
    digits groups thousands). Native numbers are taken as they are.
    Negative, out-of-range or unparseable -> None.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float, Decimal)):
        raw = str(value)
    else:
        raw = re.sub(r"[^0-9,.\-]", "", str(value))
        if not raw:
            return None
        if "," in raw and "." in raw:
            # the right-most separator is the decimal one
            if raw.rfind(",") > raw.rfind("."):
                raw = raw.replace(".", "").replace(",", ".")
            else:
                raw = raw.replace(",", "")
        elif "," in raw:
            if raw.count(",") > 1:
                return None
            raw = raw.replace(",", ".")
        elif raw.count(".") > 1 or re.fullmatch(r"-?[1-9]\d{0,2}\.\d{3}", raw):
            # dots group thousands: "1.234.567", "R$ 1.500"
            raw = raw.replace(".", "")

    try:
        number = Decimal(raw)
    except InvalidOperation:
        return None
    if not number.is_finite() or number < 0 or number > maximum:
        return None
    return number.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def parse_quantity(value: Any) -> Optional[Decimal]:
    number = parse_amount(value, places=3, maximum=QUANTITY_MAX)
    if number is None or number == 0:
        return None
    return number


def parse_days(value: Any) -> Optional[int]:
    """'15', 15, '15 dias' -> 15."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, (float, Decimal)):
        return int(value) if value >= 0 else None
    match = re.search(r"\d+", str(value))
    return int(match.group()) if match else None


def parse_date(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = _text(value)
    if text is None:
        return None
    for fmt in ("%d/%m/%Y", "%d/%m/%y", "%Y-%m-%d", "%d-%m-%Y"):
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def normalize_urgency(value: Any) -> str:
    text = _text(value)
    if text is None:
        return "normal"
    return URGENCY_SYNONYMS.get(normalize_header(text), "normal")


def _check_name(name: Optional[str], label: str) -> Optional[RowOutcome]:
    if name is None:
        return RowOutcome.skip(f"Missing {label}")
    if has_metadata_marker(name):
        return RowOutcome.skip(f"Metadata row ({name[:40]})")
    if len(name) < MIN_NAME_LENGTH:
        return RowOutcome.skip(f"{label.capitalize()} too short")
    return None


# ---------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------
def map_requisition_row(raw: Mapping[str, Any]) -> RowOutcome:
    """One requisition row -> RequisitionRecord (plus an optional item)."""
    values = resolve_fields(raw, REQUISITION_FIELDS)

    product = _text(values.get("product"))
    title = _text(values.get("title")) or product
    rejected = _check_name(title, "title")
    if rejected is not None:
        return rejected
    if len(title) > MAX_TITLE_LENGTH:
        return RowOutcome.error(f"Title longer than {MAX_TITLE_LENGTH} characters")

    item = None
    if product is not None:
        item = RequisitionItemRecord(
            product_name=product[:255],
            quantity=parse_quantity(values.get("quantity")) or Decimal("1.000"),
            unit=(_text(values.get("unit")) or "un")[:20],
            estimated_price=parse_amount(values.get("unit_price")),
        )

    record = RequisitionRecord(
        title=title,
        description=_text(values.get("description")),
        department=_truncate(_text(values.get("department")), 120),
        cost_center=_truncate(_text(values.get("cost_center")), 120),
        urgency=normalize_urgency(values.get("urgency")),
        total_budget=parse_amount(values.get("total_budget")),
        expected_delivery_date=parse_date(values.get("expected_delivery_date")),
        item=item,
    )
    return RowOutcome.ok(record)


def map_supplier_quotation_row(raw: Mapping[str, Any]) -> RowOutcome:
    """One supplier-quotation row -> SupplierQuotationRecord."""
    values = resolve_fields(raw, SUPPLIER_QUOTATION_FIELDS)

    supplier = _text(values.get("supplier"))
    rejected = _check_name(supplier, "supplier")
    if rejected is not None:
        return rejected

    request_ref = _text(values.get("request"))
    if request_ref is None:
        return RowOutcome.error("Missing quotation request reference")

    quantity = parse_quantity(values.get("quantity"))
    unit_price = parse_amount(values.get("unit_price"))
    total = parse_amount(values.get("total_price"))
    if total is None and quantity is not None and unit_price is not None:
        total = parse_amount(quantity * unit_price)
    if total is None:
        return RowOutcome.error("Missing total amount (total price or quantity x unit price)")

    record = SupplierQuotationRecord(
        supplier_name=supplier[:255],
        request_ref=request_ref,
        total_amount=total,
        product_name=_text(values.get("product")),
        quantity=quantity,
        unit_price=unit_price,
        delivery_time=parse_days(values.get("delivery_time")),
        payment_terms=_truncate(_text(values.get("payment_terms")), 255),
        observations=_text(values.get("observations")),
        quotation_number=_truncate(_text(values.get("quotation_number")), 80),
        valid_until=parse_date(values.get("valid_until")),
    )
    return RowOutcome.ok(record)


def positional_row(cells: Iterable[Any], columns: Sequence[str]) -> Dict[str, Any]:
    """Zip positional cells to field names (extra cells are ignored)."""
    return dict(zip(columns, cells))


def row_has_header(cells: Iterable[Any], fields: Mapping[str, Sequence[str]]) -> bool:
    """True when a positional row is really a header line (first cell is a column name)."""
    known = _known_headers(fields)
    first = next(iter(cells), None)
    return isinstance(first, str) and normalize_header(first) in known


def summarize_items(record: SupplierQuotationRecord) -> Optional[str]:
    """Observations text carrying the priced line of a quotation row."""
    parts: List[str] = []
    if record.product_name:
        parts.append(f"Produto: {record.product_name}")
    if record.quantity is not None:
        parts.append(f"Quantidade: {record.quantity.normalize():f}")
    if record.unit_price is not None:
        parts.append(f"Preço unitário: {record.unit_price}")
    line = "; ".join(parts)
    if record.observations and line:
        return f"{record.observations}\n{line}"
    return record.observations or line or None
