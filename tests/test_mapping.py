from datetime import datetime
from decimal import Decimal

import pytest

from trustcota.ingestion.mapping import (
    has_metadata_marker,
    map_requisition_row,
    map_supplier_quotation_row,
    normalize_header,
    normalize_urgency,
    parse_amount,
    parse_date,
    parse_days,
    parse_quantity,
    resolve_fields,
    REQUISITION_FIELDS,
    summarize_items,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("R$ 1.234,56", Decimal("1234.56")),
        ("1,234.56", Decimal("1234.56")),
        ("12,5", Decimal("12.50")),
        ("1.234.567", Decimal("1234567.00")),
        ("R$ 1.500", Decimal("1500.00")),
        ("0.500", Decimal("0.50")),
        ("1.5", Decimal("1.50")),
        ("12.50", Decimal("12.50")),
        (Decimal("1.500"), Decimal("1.50")),
        (250, Decimal("250.00")),
        (99.999, Decimal("100.00")),
        ("1,2,3", None),
        ("-10", None),
        ("abc", None),
        ("", None),
        (None, None),
        ("999999999", None),
    ],
)
def test_parse_amount(raw, expected):
    assert parse_amount(raw) == expected


def test_parse_quantity_rejects_zero():
    assert parse_quantity("0") is None
    assert parse_quantity("2,5") == Decimal("2.500")


def test_parse_days_and_dates():
    assert parse_days("15 dias") == 15
    assert parse_days(7) == 7
    assert parse_days("a combinar") is None
    assert parse_date("31/12/2026") == datetime(2026, 12, 31)
    assert parse_date("2026-12-31") == datetime(2026, 12, 31)
    assert parse_date("amanhã") is None


def test_normalize_header_ignores_accents_case_and_punctuation():
    assert normalize_header("Centro de Custo:") == "centro de custo"
    assert normalize_header("Nº_Requisição") == "n requisicao"
    assert normalize_header("  ORÇAMENTO  ") == "orcamento"


def test_urgency_synonyms():
    assert normalize_urgency("Alta") == "alta"
    assert normalize_urgency("URGENTE") == "alta"
    assert normalize_urgency("Crítica") == "critica"
    assert normalize_urgency("") == "normal"
    assert normalize_urgency("whenever") == "normal"


def test_metadata_markers():
    assert has_metadata_marker("EMPRESA: ACME Ltda")
    assert has_metadata_marker("Endereço: Rua A, 10")
    assert not has_metadata_marker("Papel sulfite A4")


def test_resolve_fields_first_non_empty_synonym_wins():
    values = resolve_fields({"Título": "", "Nome": "Cadeiras", "Setor": "RH"}, REQUISITION_FIELDS)
    assert values["title"] == "Cadeiras"
    assert values["department"] == "RH"


def test_requisition_row_is_mapped():
    outcome = map_requisition_row(
        {
            "Título": "Papel A4",
            "Descrição": "Caixas com 10 resmas",
            "Departamento": "Administrativo",
            "Urgência": "alta",
            "Orçamento": "R$ 1.234,56",
            "Data de Entrega": "30/11/2026",
        }
    )
    assert outcome.is_ok
    record = outcome.record
    assert record.title == "Papel A4"
    assert record.urgency == "alta"
    assert record.total_budget == Decimal("1234.56")
    assert record.expected_delivery_date == datetime(2026, 11, 30)
    assert record.item is None


def test_requisition_row_with_product_creates_item():
    outcome = map_requisition_row({"Produto": "Toner HP 85A", "Qtd": "4", "Unidade": "cx"})
    assert outcome.is_ok
    assert outcome.record.title == "Toner HP 85A"
    assert outcome.record.item.quantity == Decimal("4.000")
    assert outcome.record.item.unit == "cx"


def test_requisition_item_defaults():
    outcome = map_requisition_row({"Título": "Material de limpeza", "Produto": "Detergente"})
    assert outcome.record.item.quantity == Decimal("1.000")
    assert outcome.record.item.unit == "un"


@pytest.mark.parametrize(
    "raw, reason",
    [
        ({"Título": ""}, "Missing title"),
        ({"Título": "EMPRESA: ACME Ltda"}, "Metadata row"),
        ({"Título": "ab"}, "Title too short"),
    ],
)
def test_requisition_rows_that_are_skipped(raw, reason):
    outcome = map_requisition_row(raw)
    assert outcome.status == "skip"
    assert outcome.reason.startswith(reason)


def test_requisition_title_too_long_is_an_error():
    outcome = map_requisition_row({"Título": "x" * 300})
    assert outcome.status == "error"


def test_supplier_quotation_total_from_quantity_and_unit_price():
    outcome = map_supplier_quotation_row(
        {
            "Fornecedor": "Papelaria Central",
            "Requisição": "REQ-202610-001",
            "Produto": "Papel A4",
            "Quantidade": "10",
            "Preço Unitário": "25,90",
            "Prazo de Entrega": "5 dias",
            "Condições de Pagamento": "30 dias",
        }
    )
    assert outcome.is_ok
    record = outcome.record
    assert record.total_amount == Decimal("259.00")
    assert record.delivery_time == 5
    assert record.payment_terms == "30 dias"
    assert "Produto: Papel A4" in summarize_items(record)


def test_supplier_quotation_total_column_wins():
    outcome = map_supplier_quotation_row(
        {"Fornecedor": "Papelaria Central", "Requisição": "7", "Quantidade": 2, "Preço Unitário": 10, "Valor Total": "19,00"}
    )
    assert outcome.record.total_amount == Decimal("19.00")


def test_supplier_quotation_errors():
    missing_request = map_supplier_quotation_row({"Fornecedor": "Papelaria Central", "Valor Total": "10"})
    assert missing_request.status == "error"

    missing_total = map_supplier_quotation_row({"Fornecedor": "Papelaria Central", "Requisição": "1"})
    assert missing_total.status == "error"
    assert missing_total.reason.startswith("Missing total amount")


def test_supplier_quotation_metadata_row_is_skipped():
    outcome = map_supplier_quotation_row({"Fornecedor": "CNPJ: 12.345.678/0001-90", "Requisição": "1"})
    assert outcome.status == "skip"
