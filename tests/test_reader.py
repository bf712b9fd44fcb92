import pytest

from trustcota.ingestion.mapping import is_requisition_header
from trustcota.ingestion.reader import SpreadsheetError, build_headers, read_spreadsheet

from conftest import build_csv, build_xlsx


def test_build_headers_placeholders_and_duplicates():
    assert build_headers(["Título", "", "Título", "", "Título"]) == [
        "Título",
        "__EMPTY",
        "Título_1",
        "__EMPTY_1",
        "Título_2",
    ]


def test_xlsx_header_found_below_metadata_rows():
    content = build_xlsx(
        [
            ["EMPRESA: ACME Ltda", None],
            [None, None],
            ["Título", "Departamento"],
            ["Papel A4", "Administrativo"],
            [None, None],
            ["Toner", "TI"],
        ]
    )
    sheet = read_spreadsheet("requisicoes.xlsx", content, is_requisition_header)

    assert sheet.header_row_number == 3
    assert not sheet.malformed
    assert [r.row_number for r in sheet.rows] == [4, 6]
    assert sheet.rows[0].values == {"Título": "Papel A4", "Departamento": "Administrativo"}


def test_xlsx_numbers_keep_their_type():
    content = build_xlsx([["Título", "Orçamento"], ["Cadeiras", 1500.0]])
    sheet = read_spreadsheet("r.xlsx", content, is_requisition_header)
    assert sheet.rows[0].values["Orçamento"] == 1500


def test_csv_semicolon_with_bom():
    content = build_csv([["Título", "Urgência", "Orçamento"], ["Papel A4", "alta", "1.234,56"]])
    sheet = read_spreadsheet("r.csv", content, is_requisition_header)
    assert sheet.headers == ["Título", "Urgência", "Orçamento"]
    assert sheet.rows[0].values["Orçamento"] == "1.234,56"
    assert sheet.rows[0].row_number == 2


def test_csv_in_windows_encoding():
    content = build_csv([["Título", "Descrição"], ["Caneta", "Azul"]], encoding="cp1252")
    sheet = read_spreadsheet("r.csv", content, is_requisition_header)
    assert sheet.rows[0].values == {"Título": "Caneta", "Descrição": "Azul"}


def test_sheet_without_known_header_is_malformed():
    content = build_xlsx([[None, None, None], ["Papel A4", "Compra mensal", "Adm"]])
    sheet = read_spreadsheet("r.xlsx", content, is_requisition_header)
    assert sheet.malformed
    assert [r.row_number for r in sheet.positional_rows()] == [2]


def test_sheet_with_only_placeholder_headers_is_malformed():
    content = build_xlsx([[None, None], ["Papel A4", "Adm"]])
    sheet = read_spreadsheet("r.xlsx", content)
    assert sheet.headers == ["__EMPTY", "__EMPTY_1"]
    assert sheet.malformed


def test_unsupported_extension():
    with pytest.raises(SpreadsheetError):
        read_spreadsheet("notes.txt", b"hello")


def test_corrupt_workbook():
    with pytest.raises(SpreadsheetError):
        read_spreadsheet("broken.xlsx", b"this is not a zip file")
