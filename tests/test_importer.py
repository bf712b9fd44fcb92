from decimal import Decimal

from trustcota.audit import BULK_UPLOAD_ID
from trustcota.ingestion.importer import import_requisitions, import_supplier_quotations
from trustcota.models import (
    ROLE_BUYER,
    STATUS_APPROVED,
    STATUS_AWAITING_APPROVAL,
    STATUS_DRAFT,
    STATUS_IN_QUOTATION,
    SUPPLIER_PENDING,
)

from conftest import build_csv, build_xlsx

REQUISITION_HEADER = ["Título", "Descrição", "Departamento", "Urgência", "Orçamento"]


def test_requisitions_partial_success(ctx, storage, make_user):
    actor = storage.get_user(make_user())
    content = build_xlsx(
        [
            REQUISITION_HEADER,
            ["EMPRESA: ACME Ltda", None, None, None, None],
            ["Papel A4", "10 caixas", "Administrativo", "alta", "R$ 1.234,56"],
            ["x" * 300, None, None, None, None],
            ["ab", None, None, None, None],
            ["Toner HP 85A", None, "TI", "crítica", "890"],
        ]
    )

    result = import_requisitions(storage, actor, "requisicoes.xlsx", content)

    assert result.to_dict() == {
        "processed": 5,
        "created": 2,
        "skipped": 2,
        "errors": [{"row": 4, "message": "Title longer than 255 characters"}],
        "skippedRows": [
            {"row": 2, "reason": "Metadata row (EMPRESA: ACME Ltda)"},
            {"row": 5, "reason": "Title too short"},
        ],
    }

    created = sorted(storage.list_quotation_requests(), key=lambda r: r.id)
    assert [r.title for r in created] == ["Papel A4", "Toner HP 85A"]
    assert all(r.status == STATUS_DRAFT and r.requester_id == actor.id for r in created)
    assert created[0].total_budget == Decimal("1234.56")
    assert created[1].urgency == "critica"
    assert created[0].request_number != created[1].request_number


def test_requisition_upload_writes_one_batch_audit_entry(ctx, storage, make_user):
    actor = storage.get_user(make_user())
    content = build_csv([REQUISITION_HEADER, ["Papel A4", "", "", "", ""], ["Canetas", "", "", "", ""]])

    import_requisitions(storage, actor, "lote.csv", content)

    logs = storage.list_audit_logs(BULK_UPLOAD_ID)
    assert len(logs) == 1
    assert logs[0].action == "upload"
    assert logs[0].entity_type == "quotation_request"
    assert logs[0].user_id == actor.id
    assert logs[0].changes == {"filename": "lote.csv", "processed": 2, "created": 2, "skipped": 0, "errors": 0}


def test_requisition_with_product_columns_creates_item(ctx, storage, make_user):
    actor = storage.get_user(make_user())
    content = build_xlsx([["Produto", "Quantidade", "Unidade"], ["Detergente neutro", 12, "fr"]])

    result = import_requisitions(storage, actor, "itens.xlsx", content)

    assert result.created == 1
    request = storage.list_quotation_requests()[0]
    items = storage.list_quotation_request_items(request.id)
    assert len(items) == 1
    assert items[0].product_name == "Detergente neutro"
    assert items[0].quantity == Decimal("12.000")
    assert items[0].unit == "fr"


def test_headerless_sheet_is_read_by_position(ctx, storage, make_user):
    actor = storage.get_user(make_user())
    content = build_xlsx(
        [
            [None, None, None, None, None, None],
            ["Cadeiras ergonômicas", "Para o call center", "Atendimento", "CC-10", "alta", "4500"],
        ]
    )

    result = import_requisitions(storage, actor, "sem_cabecalho.xlsx", content)

    assert result.created == 1
    request = storage.list_quotation_requests()[0]
    assert request.title == "Cadeiras ergonômicas"
    assert request.cost_center == "CC-10"
    assert request.total_budget == Decimal("4500.00")


def test_supplier_quotations_upsert_and_advance(ctx, storage, lifecycle, make_user, make_request, make_supplier):
    requester = make_user()
    actor = storage.get_user(make_user(role=ROLE_BUYER))
    request_id = make_request(requester)
    request_number = storage.get_quotation_request(request_id).request_number
    make_supplier(name="Papelaria Central")

    header = ["Fornecedor", "Requisição", "Quantidade", "Preço Unitário", "Valor Total", "Prazo de Entrega"]
    first = build_xlsx(
        [
            header,
            ["Papelaria Central", request_number, 10, "25,90", None, "5 dias"],
            ["Distribuidora Nova", str(request_id), None, None, "300,00", "10"],
            ["Sem Requisição Ltda", None, None, None, "10", None],
            ["Fornecedor Fantasma", "REQ-190001-001", None, None, "10", None],
            ["Papelaria Sul", request_number, None, None, None, None],
        ]
    )

    result = import_supplier_quotations(storage, lifecycle, actor, "cotacoes.xlsx", first)

    assert result.processed == 5
    assert result.created == 2
    assert result.updated == 0
    assert [e["row"] for e in result.errors] == [4, 5, 6]
    assert storage.get_quotation_request(request_id).status == STATUS_IN_QUOTATION

    implicit = storage.find_supplier_by_name("Distribuidora Nova")
    assert implicit is not None and implicit.status == SUPPLIER_PENDING

    quotations = storage.list_supplier_quotations(request_id)
    totals = sorted(q.total_amount for q in quotations)
    assert totals == [Decimal("259.00"), Decimal("300.00")]

    second = build_xlsx([header, ["Papelaria Central", request_number, None, None, "240,00", "3"]])
    again = import_supplier_quotations(storage, lifecycle, actor, "cotacoes_rev.xlsx", second)

    assert again.to_dict(include_updated=True)["updated"] == 1
    assert again.created == 0
    central = storage.find_supplier_by_name("Papelaria Central")
    quotation = storage.find_supplier_quotation(request_id, central.id)
    assert quotation.total_amount == Decimal("240.00")
    assert quotation.delivery_time == 3
    assert len(storage.list_supplier_quotations(request_id)) == 2

    batch = [log for log in storage.list_audit_logs(BULK_UPLOAD_ID) if log.entity_type == "supplier_quotation"]
    assert len(batch) == 2
    first_batch = min(batch, key=lambda log: log.id)
    assert first_batch.changes["advancedRequests"] == [request_number]
    assert first_batch.changes["suppliersCreated"] == 1


def test_supplier_quotations_for_closed_request_are_row_errors(ctx, storage, lifecycle, make_user, make_request):
    actor = storage.get_user(make_user(role=ROLE_BUYER))
    request_id = make_request(make_user(), status=STATUS_APPROVED)

    content = build_csv([["Fornecedor", "Requisição", "Valor Total"], ["Papelaria Central", str(request_id), "100"]])
    result = import_supplier_quotations(storage, lifecycle, actor, "c.csv", content)

    assert result.created == 0
    assert len(result.errors) == 1
    assert "does not accept quotations" in result.errors[0]["message"]
    assert storage.list_supplier_quotations(request_id) == []


def test_non_numeric_budget_leaves_the_budget_empty(ctx, storage, make_user):
    actor = storage.get_user(make_user())
    content = build_xlsx([REQUISITION_HEADER, ["Cadeiras", None, "RH", "normal", "a definir"]])

    result = import_requisitions(storage, actor, "requisicoes.xlsx", content)

    assert (result.created, result.errors) == (1, [])
    (request,) = storage.list_quotation_requests()
    assert request.total_budget is None


def test_department_and_cost_center_are_cut_to_column_size(ctx, storage, make_user):
    actor = storage.get_user(make_user())
    content = build_xlsx([["Título", "Departamento", "Centro de Custo"], ["Papel A4", "D" * 300, "C" * 200]])

    result = import_requisitions(storage, actor, "requisicoes.xlsx", content)

    assert result.created == 1
    (request,) = storage.list_quotation_requests()
    assert request.department == "D" * 120
    assert request.cost_center == "C" * 120


def test_uploaded_first_quotation_notifies_suppliers(
    ctx, storage, lifecycle, notifier, make_user, make_request, make_supplier
):
    actor = storage.get_user(make_user(role=ROLE_BUYER))
    request_id = make_request(make_user())
    request_number = storage.get_quotation_request(request_id).request_number
    make_supplier(name="Papelaria Central")
    content = build_xlsx(
        [["Fornecedor", "Requisição", "Valor Total"], ["Papelaria Central", request_number, "100,00"]]
    )

    result = import_supplier_quotations(storage, lifecycle, actor, "cotacoes.xlsx", content)

    assert result.created == 1
    assert storage.get_quotation_request(request_id).status == STATUS_IN_QUOTATION
    assert result.to_dict(include_updated=True)["sideEffects"] == [
        {"name": "supplier_notification", "ok": True, "error": None}
    ]
    assert len(notifier.outbox) == 1

    again = import_supplier_quotations(storage, lifecycle, actor, "cotacoes.xlsx", content)
    assert again.updated == 1
    assert again.side_effects == []
    assert len(notifier.outbox) == 1


def test_reuploaded_selected_quotation_moves_the_budget(
    ctx, storage, lifecycle, make_user, make_request, make_supplier
):
    buyer = storage.get_user(make_user(role=ROLE_BUYER))
    request_id = make_request(make_user())
    supplier_id = make_supplier(name="Papelaria Central")
    quotation = lifecycle.submit_quotation(
        buyer, request_id, {"supplier_id": supplier_id, "total_amount": Decimal("500.00")}
    ).entity
    lifecycle.select_quotation(buyer, quotation.id)

    content = build_csv([["Fornecedor", "Requisição", "Valor Total"], ["Papelaria Central", str(request_id), "450,00"]])
    result = import_supplier_quotations(storage, lifecycle, buyer, "cotacoes.csv", content)

    assert result.updated == 1
    request = storage.get_quotation_request(request_id)
    assert request.status == STATUS_AWAITING_APPROVAL
    assert request.total_budget == Decimal("450.00")
