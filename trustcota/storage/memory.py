"""
trustcota/storage/memory.py

In-process Storage used when no database is configured (STORAGE_BACKEND=memory)
and by the test-suite.

NOTES:
- Rows are ordinary (transient) model instances kept in one dict per table,
  so serialization and services treat both backends alike.
- Column defaults are applied here because no flush ever happens.
- A single re-entrant lock makes every method one unit of work, which gives the
  same guarantees as SqlStorage for selection and number allocation.
- Data is lost when the process exits.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Type

from sqlalchemy import DateTime

from ..errors import ConflictError, NotFoundError
from ..models import (
    STATUS_APPROVED,
    STATUS_AWAITING_APPROVAL,
    STATUS_IN_QUOTATION,
    SUPPLIER_ACTIVE,
    AiAnalysis,
    AuditLog,
    Category,
    Product,
    PurchaseOrder,
    QuotationRequest,
    QuotationRequestItem,
    Supplier,
    SupplierQuotation,
    User,
    utcnow,
)
from ..services.numbering import ORDER_PREFIX, REQUEST_PREFIX, next_number
from .base import SAVINGS_PLACEHOLDER, Data, Storage, start_of_month

MODELS = (
    User,
    Category,
    Product,
    Supplier,
    QuotationRequest,
    QuotationRequestItem,
    SupplierQuotation,
    PurchaseOrder,
    AuditLog,
    AiAnalysis,
)


def _newest_first(rows: Iterable[Any], attr: str = "created_at") -> List[Any]:
    return sorted(rows, key=lambda r: (getattr(r, attr) or datetime.min, r.id), reverse=True)


def _contains(needle: str, *values: Optional[str]) -> bool:
    needle = needle.lower()
    return any(needle in (value or "").lower() for value in values)


class MemoryStorage(Storage):
    backend_name = "memory"

    def __init__(self):
        self._lock = threading.RLock()
        self._tables: Dict[Type[Any], Dict[int, Any]] = {model: {} for model in MODELS}
        self._ids: Dict[Type[Any], int] = {model: 0 for model in MODELS}

    # -----------------------------------------------------------------
    # Generic helpers
    # -----------------------------------------------------------------
    def _rows(self, model: Type[Any]) -> List[Any]:
        return list(self._tables[model].values())

    def _where(self, model: Type[Any], predicate: Callable[[Any], bool]) -> List[Any]:
        return [row for row in self._tables[model].values() if predicate(row)]

    def _get(self, model: Type[Any], entity: str, row_id: int):
        row = self._tables[model].get(row_id)
        if row is None:
            raise NotFoundError(entity, row_id)
        return row

    def _apply_defaults(self, row: Any) -> None:
        now = utcnow()
        for column in row.__table__.columns:
            if column.primary_key or getattr(row, column.name) is not None:
                continue
            default = column.default
            if default is None:
                continue
            if default.is_scalar:
                setattr(row, column.name, default.arg)
            elif isinstance(column.type, DateTime):
                setattr(row, column.name, now)

    def _touch(self, row: Any) -> None:
        if "updated_at" in row.__table__.columns:
            row.updated_at = utcnow()

    def _insert(self, model: Type[Any], data: Data):
        with self._lock:
            row = model(**data)
            self._apply_defaults(row)
            self._ids[model] += 1
            row.id = self._ids[model]
            self._tables[model][row.id] = row
            return row

    def _update(self, row: Any, data: Data):
        for key, value in data.items():
            setattr(row, key, value)
        self._touch(row)
        return row

    def _ensure_unique(self, model: Type[Any], attr: str, value: Any, message: str, exclude_id: Optional[int] = None):
        if value is None:
            return
        for row in self._tables[model].values():
            if row.id != exclude_id and getattr(row, attr) == value:
                raise ConflictError(message)

    def _insert_numbered(self, model: Type[Any], number_attr: str, prefix: str, data: Data):
        with self._lock:
            issued = [getattr(row, number_attr) for row in self._tables[model].values()]
            number = next_number(prefix, issued, utcnow())
            return self._insert(model, {**data, number_attr: number})

    # -----------------------------------------------------------------
    # Users
    # -----------------------------------------------------------------
    def get_user(self, user_id: int) -> User:
        return self._get(User, "user", user_id)

    def find_user_by_username(self, username: str) -> Optional[User]:
        matches = self._where(User, lambda u: u.username == username)
        return matches[0] if matches else None

    def list_users(self) -> List[User]:
        return sorted(self._rows(User), key=lambda u: u.username)

    def _check_user_unique(self, data: Data, exclude_id: Optional[int] = None) -> None:
        message = "Username or e-mail already in use"
        self._ensure_unique(User, "username", data.get("username"), message, exclude_id)
        self._ensure_unique(User, "email", data.get("email"), message, exclude_id)

    def create_user(self, data: Data, password: str) -> User:
        with self._lock:
            self._check_user_unique(data)
            user = User(**data)
            user.set_password(password)
            self._apply_defaults(user)
            self._ids[User] += 1
            user.id = self._ids[User]
            self._tables[User][user.id] = user
            return user

    def update_user(self, user_id: int, data: Data, password: Optional[str] = None) -> User:
        with self._lock:
            user = self.get_user(user_id)
            self._check_user_unique(data, exclude_id=user.id)
            if password:
                user.set_password(password)
            return self._update(user, data)

    def count_users(self) -> int:
        return len(self._tables[User])

    # -----------------------------------------------------------------
    # Suppliers
    # -----------------------------------------------------------------
    def list_suppliers(self) -> List[Supplier]:
        return _newest_first(self._rows(Supplier))

    def get_supplier(self, supplier_id: int) -> Supplier:
        return self._get(Supplier, "supplier", supplier_id)

    def find_supplier_by_name(self, name: str) -> Optional[Supplier]:
        matches = sorted(self._where(Supplier, lambda s: s.name == name), key=lambda s: s.id)
        return matches[0] if matches else None

    def create_supplier(self, data: Data) -> Supplier:
        with self._lock:
            self._ensure_unique(Supplier, "cnpj", data.get("cnpj"), "A supplier with this CNPJ already exists")
            return self._insert(Supplier, data)

    def update_supplier(self, supplier_id: int, data: Data) -> Supplier:
        with self._lock:
            supplier = self.get_supplier(supplier_id)
            self._ensure_unique(
                Supplier, "cnpj", data.get("cnpj"), "A supplier with this CNPJ already exists", exclude_id=supplier.id
            )
            return self._update(supplier, data)

    def delete_supplier(self, supplier_id: int) -> None:
        with self._lock:
            supplier = self.get_supplier(supplier_id)
            if self._where(PurchaseOrder, lambda o: o.supplier_id == supplier.id):
                raise ConflictError("Supplier has purchase orders and cannot be deleted")

            quotations = self._tables[SupplierQuotation]
            for quotation in self._where(SupplierQuotation, lambda q: q.supplier_id == supplier.id):
                del quotations[quotation.id]
            del self._tables[Supplier][supplier.id]

    def search_suppliers(self, query: str) -> List[Supplier]:
        rows = self._where(Supplier, lambda s: _contains(query, s.name, s.cnpj, s.email))
        return sorted(rows, key=lambda s: s.name)

    # -----------------------------------------------------------------
    # Categories & products
    # -----------------------------------------------------------------
    def list_categories(self) -> List[Category]:
        return sorted(self._rows(Category), key=lambda c: c.name)

    def get_category(self, category_id: int) -> Category:
        return self._get(Category, "category", category_id)

    def create_category(self, data: Data) -> Category:
        return self._insert(Category, data)

    def list_products(self) -> List[Product]:
        return _newest_first(self._rows(Product))

    def get_product(self, product_id: int) -> Product:
        return self._get(Product, "product", product_id)

    def create_product(self, data: Data) -> Product:
        return self._insert(Product, data)

    def update_product(self, product_id: int, data: Data) -> Product:
        with self._lock:
            return self._update(self.get_product(product_id), data)

    def delete_product(self, product_id: int) -> None:
        with self._lock:
            product = self.get_product(product_id)
            for item in self._where(QuotationRequestItem, lambda i: i.product_id == product.id):
                item.product_id = None
            del self._tables[Product][product.id]

    def search_products(self, query: str) -> List[Product]:
        rows = self._where(Product, lambda p: _contains(query, p.name, p.description))
        return sorted(rows, key=lambda p: p.name)

    def list_products_by_category(self, category_id: int) -> List[Product]:
        return sorted(self._where(Product, lambda p: p.category_id == category_id), key=lambda p: p.name)

    # -----------------------------------------------------------------
    # Quotation requests
    # -----------------------------------------------------------------
    def list_quotation_requests(self) -> List[QuotationRequest]:
        return _newest_first(self._rows(QuotationRequest))

    def get_quotation_request(self, request_id: int) -> QuotationRequest:
        return self._get(QuotationRequest, "quotation_request", request_id)

    def find_quotation_request_by_number(self, request_number: str) -> Optional[QuotationRequest]:
        matches = self._where(QuotationRequest, lambda r: r.request_number == request_number)
        return matches[0] if matches else None

    def create_quotation_request(self, data: Data) -> QuotationRequest:
        return self._insert_numbered(QuotationRequest, "request_number", REQUEST_PREFIX, data)

    def update_quotation_request(self, request_id: int, data: Data) -> QuotationRequest:
        with self._lock:
            return self._update(self.get_quotation_request(request_id), data)

    def list_quotation_requests_by_user(self, user_id: int) -> List[QuotationRequest]:
        return _newest_first(self._where(QuotationRequest, lambda r: r.requester_id == user_id))

    def list_quotation_requests_for_approval(self, approver_id: int) -> List[QuotationRequest]:
        return _newest_first(
            self._where(
                QuotationRequest,
                lambda r: r.status == STATUS_AWAITING_APPROVAL and r.approver_id == approver_id,
            )
        )

    def list_recent_quotation_requests(self, limit: int = 5) -> List[QuotationRequest]:
        return self.list_quotation_requests()[:limit]

    def list_quotation_request_items(self, request_id: int) -> List[QuotationRequestItem]:
        rows = self._where(QuotationRequestItem, lambda i: i.quotation_request_id == request_id)
        return sorted(rows, key=lambda i: i.id)

    def create_quotation_request_item(self, data: Data) -> QuotationRequestItem:
        return self._insert(QuotationRequestItem, data)

    # -----------------------------------------------------------------
    # Supplier quotations
    # -----------------------------------------------------------------
    def list_supplier_quotations(self, request_id: int) -> List[SupplierQuotation]:
        rows = self._where(SupplierQuotation, lambda q: q.quotation_request_id == request_id)
        return sorted(rows, key=lambda q: (q.submitted_at or datetime.min, q.id))

    def get_supplier_quotation(self, quotation_id: int) -> SupplierQuotation:
        return self._get(SupplierQuotation, "supplier_quotation", quotation_id)

    def find_supplier_quotation(self, request_id: int, supplier_id: int) -> Optional[SupplierQuotation]:
        matches = self._where(
            SupplierQuotation,
            lambda q: q.quotation_request_id == request_id and q.supplier_id == supplier_id,
        )
        return matches[0] if matches else None

    def create_supplier_quotation(self, data: Data) -> SupplierQuotation:
        with self._lock:
            quotation = self._insert(SupplierQuotation, data)
            supplier = self._tables[Supplier].get(quotation.supplier_id)
            if supplier is not None:
                supplier.total_quotations = (supplier.total_quotations or 0) + 1
            return quotation

    def update_supplier_quotation(self, quotation_id: int, data: Data) -> SupplierQuotation:
        with self._lock:
            return self._update(self.get_supplier_quotation(quotation_id), data)

    def select_supplier_quotation(self, quotation_id: int, request_changes: Data) -> SupplierQuotation:
        with self._lock:
            quotation = self.get_supplier_quotation(quotation_id)
            request = self.get_quotation_request(quotation.quotation_request_id)

            for sibling in self._where(
                SupplierQuotation, lambda q: q.quotation_request_id == quotation.quotation_request_id
            ):
                sibling.is_selected = sibling.id == quotation.id
            self._update(request, request_changes)
            return quotation

    # -----------------------------------------------------------------
    # Purchase orders
    # -----------------------------------------------------------------
    def list_purchase_orders(self) -> List[PurchaseOrder]:
        return _newest_first(self._rows(PurchaseOrder))

    def get_purchase_order(self, order_id: int) -> PurchaseOrder:
        return self._get(PurchaseOrder, "purchase_order", order_id)

    def find_purchase_order_for_request(self, request_id: int) -> Optional[PurchaseOrder]:
        matches = self._where(PurchaseOrder, lambda o: o.quotation_request_id == request_id)
        return matches[0] if matches else None

    def create_purchase_order(self, data: Data) -> PurchaseOrder:
        return self._insert_numbered(PurchaseOrder, "order_number", ORDER_PREFIX, data)

    def update_purchase_order(self, order_id: int, data: Data) -> PurchaseOrder:
        with self._lock:
            return self._update(self.get_purchase_order(order_id), data)

    # -----------------------------------------------------------------
    # History
    # -----------------------------------------------------------------
    def create_audit_log(self, data: Data) -> AuditLog:
        return self._insert(AuditLog, data)

    def list_audit_logs(self, entity_id: Optional[str] = None) -> List[AuditLog]:
        rows = self._rows(AuditLog)
        if entity_id:
            rows = [r for r in rows if r.entity_id == str(entity_id)]
        return _newest_first(rows)

    def create_ai_analysis(self, data: Data) -> AiAnalysis:
        return self._insert(AiAnalysis, data)

    def list_ai_analyses(self, entity_type: Optional[str] = None, entity_id: Optional[str] = None) -> List[AiAnalysis]:
        rows = self._rows(AiAnalysis)
        if entity_type:
            rows = [r for r in rows if r.entity_type == entity_type]
            if entity_id:
                rows = [r for r in rows if r.entity_id == str(entity_id)]
        return _newest_first(rows)

    # -----------------------------------------------------------------
    # Dashboard
    # -----------------------------------------------------------------
    def get_dashboard_stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        month_start = start_of_month(now or utcnow())
        requests = self._rows(QuotationRequest)

        monthly_spending = sum(
            float(r.approved_amount or 0)
            for r in requests
            if r.status == STATUS_APPROVED and r.approved_at is not None and r.approved_at >= month_start
        )
        return {
            "monthlySpending": monthly_spending,
            "activeQuotations": sum(1 for r in requests if r.status in (STATUS_IN_QUOTATION, STATUS_AWAITING_APPROVAL)),
            "savings": SAVINGS_PLACEHOLDER,
            "activeSuppliers": sum(1 for s in self._rows(Supplier) if s.status == SUPPLIER_ACTIVE),
            "pendingApprovals": sum(1 for r in requests if r.status == STATUS_AWAITING_APPROVAL),
        }
