"""
trustcota/ingestion/importer.py

Batch import of uploaded spreadsheets.

Guarantees:
- Partial success: a bad row is reported (errors / skippedRows) and the batch
  continues. Rows created before a failing row stay committed.
- Every reported row carries its 1-based row number in the source sheet.
- Exactly one AuditLog row per batch (action "upload", entity id "bulk_upload").
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from ..audit import BULK_UPLOAD_ID, log_action
from ..errors import AppError, NotFoundError
from ..models import STATUS_DRAFT, SUPPLIER_PENDING, QuotationRequest, User
from ..services.lifecycle import QuotationLifecycle, require_state
from ..services.side_effects import SideEffectResult
from ..storage import Storage
from .mapping import (
    REQUISITION_FIELDS,
    REQUISITION_POSITIONAL,
    SUPPLIER_QUOTATION_FIELDS,
    SUPPLIER_QUOTATION_POSITIONAL,
    RowOutcome,
    SupplierQuotationRecord,
    is_requisition_header,
    is_supplier_quotation_header,
    map_requisition_row,
    map_supplier_quotation_row,
    positional_row,
    row_has_header,
    summarize_items,
)
from .reader import Sheet, SheetRow, read_spreadsheet

logger = logging.getLogger(__name__)


class RowError(AppError):
    """A data row references something that does not exist or is not usable."""


@dataclass
class ImportResult:
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)
    skipped_rows: List[Dict[str, Any]] = field(default_factory=list)
    side_effects: List[SideEffectResult] = field(default_factory=list)

    def skip(self, row: int, reason: str) -> None:
        self.skipped += 1
        self.skipped_rows.append({"row": row, "reason": reason})
        logger.info("Row %d skipped: %s", row, reason)

    def error(self, row: int, message: str) -> None:
        self.errors.append({"row": row, "message": message})
        logger.warning("Row %d rejected: %s", row, message)

    def to_dict(self, include_updated: bool = False) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "processed": self.processed,
            "created": self.created,
            "skipped": self.skipped,
            "errors": self.errors,
            "skippedRows": self.skipped_rows,
        }
        if include_updated:
            body["updated"] = self.updated
        if self.side_effects:
            body["sideEffects"] = [r.to_dict() for r in self.side_effects]
        return body

    @property
    def failed_side_effects(self) -> List[SideEffectResult]:
        return [r for r in self.side_effects if not r.ok]

    def audit_summary(self, filename: str) -> Dict[str, Any]:
        return {
            "filename": filename,
            "processed": self.processed,
            "created": self.created,
            "skipped": self.skipped,
            "errors": len(self.errors),
        }


def _data_rows(sheet: Sheet, fields, columns) -> List[SheetRow]:
    """Keyed rows, or positional rows zipped to `columns` for malformed sheets."""
    if not sheet.malformed:
        return sheet.rows

    logger.info("No usable header row, reading columns by position")
    rows = []
    for row in sheet.positional_rows():
        if row_has_header(row.cells, fields):
            continue
        rows.append(SheetRow(row_number=row.row_number, cells=row.cells, values=positional_row(row.cells, columns)))
    return rows


# ---------------------------------------------------------------------
# Requisitions
# ---------------------------------------------------------------------
def import_requisitions(storage: Storage, actor: User, filename: str, content: bytes) -> ImportResult:
    """Create one draft QuotationRequest (and optional item) per valid row."""
    sheet = read_spreadsheet(filename, content, is_requisition_header)
    result = ImportResult()

    for row in _data_rows(sheet, REQUISITION_FIELDS, REQUISITION_POSITIONAL):
        result.processed += 1
        outcome: RowOutcome = map_requisition_row(row.values)
        if outcome.status == "skip":
            result.skip(row.row_number, outcome.reason)
            continue
        if outcome.status == "error":
            result.error(row.row_number, outcome.reason)
            continue

        record = outcome.record
        try:
            request = storage.create_quotation_request(
                {**record.request_values(), "requester_id": actor.id, "status": STATUS_DRAFT}
            )
            if record.item is not None:
                storage.create_quotation_request_item(
                    {
                        "quotation_request_id": request.id,
                        "product_name": record.item.product_name,
                        "quantity": record.item.quantity,
                        "unit": record.item.unit,
                        "estimated_price": record.item.estimated_price,
                    }
                )
        except AppError as exc:
            result.error(row.row_number, exc.message)
            continue
        result.created += 1

    log_action(
        "upload",
        "quotation_request",
        BULK_UPLOAD_ID,
        result.audit_summary(filename),
        user_id=actor.id,
        storage=storage,
    )
    logger.info(
        "Requisition upload %s: processed=%d created=%d skipped=%d errors=%d",
        filename, result.processed, result.created, result.skipped, len(result.errors),
    )
    return result


# ---------------------------------------------------------------------
# Supplier quotations
# ---------------------------------------------------------------------
def _resolve_request(storage: Storage, ref: str) -> QuotationRequest:
    ref = ref.strip()
    if ref.isdigit():
        try:
            return storage.get_quotation_request(int(ref))
        except NotFoundError:
            raise RowError(f"Quotation request {ref} not found")

    found = storage.find_quotation_request_by_number(ref.upper())
    if found is None:
        raise RowError(f"Quotation request {ref} not found")
    return found


def _quotation_values(record: SupplierQuotationRecord) -> Dict[str, Any]:
    values = {
        "total_amount": record.total_amount,
        "delivery_time": record.delivery_time,
        "payment_terms": record.payment_terms,
        "observations": summarize_items(record),
        "quotation_number": record.quotation_number,
        "valid_until": record.valid_until,
    }
    return {k: v for k, v in values.items() if v is not None}


def import_supplier_quotations(
    storage: Storage,
    lifecycle: QuotationLifecycle,
    actor: User,
    filename: str,
    content: bytes,
) -> ImportResult:
    """
    Upsert one SupplierQuotation per valid row.

    The (request, supplier) pair is the upsert key. Unknown suppliers are created
    with status "pendente". A new quotation on a draft request advances it to
    em_cotacao; those requests are listed in the batch audit entry. The first
    quotation of a request notifies suppliers as an API submission does; the
    outcomes are reported under sideEffects.
    """
    sheet = read_spreadsheet(filename, content, is_supplier_quotation_header)
    result = ImportResult()
    advanced: List[str] = []
    suppliers_created = 0

    for row in _data_rows(sheet, SUPPLIER_QUOTATION_FIELDS, SUPPLIER_QUOTATION_POSITIONAL):
        result.processed += 1
        outcome = map_supplier_quotation_row(row.values)
        if outcome.status == "skip":
            result.skip(row.row_number, outcome.reason)
            continue
        if outcome.status == "error":
            result.error(row.row_number, outcome.reason)
            continue

        record: SupplierQuotationRecord = outcome.record
        try:
            request = _resolve_request(storage, record.request_ref)
            require_state(
                request,
                "submit_quotation",
                f"Quotation request {request.request_number} is '{request.status}' and does not accept quotations",
            )

            supplier = storage.find_supplier_by_name(record.supplier_name)
            if supplier is None:
                supplier = storage.create_supplier({"name": record.supplier_name, "status": SUPPLIER_PENDING})
                suppliers_created += 1

            values = _quotation_values(record)
            existing = storage.find_supplier_quotation(request.id, supplier.id)
            if existing is not None:
                lifecycle.revise_quotation(request, existing, values)
                result.updated += 1
                continue

            recorded, was_advanced = lifecycle.record_quotation(request, {**values, "supplier_id": supplier.id})
        except AppError as exc:
            result.error(row.row_number, exc.message)
            continue

        result.created += 1
        result.side_effects.extend(recorded.side_effects)
        if was_advanced:
            advanced.append(request.request_number)

    summary = result.audit_summary(filename)
    summary.update({"updated": result.updated, "suppliersCreated": suppliers_created, "advancedRequests": advanced})
    log_action(
        "upload",
        "supplier_quotation",
        BULK_UPLOAD_ID,
        summary,
        user_id=actor.id,
        storage=storage,
    )
    logger.info(
        "Supplier quotation upload %s: processed=%d created=%d updated=%d skipped=%d errors=%d",
        filename, result.processed, result.created, result.updated, result.skipped, len(result.errors),
    )
    return result
