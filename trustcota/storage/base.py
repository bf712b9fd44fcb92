"""
trustcota/storage/base.py

Storage contract shared by the SQLAlchemy and in-memory implementations.

Rules every implementation follows:
- get_*/update_*/delete_* raise NotFoundError for unknown ids.
- find_* return None instead of raising.
- search_* do case-insensitive substring matching, OR-combined over the listed columns.
- No pagination: lists return every row (entity counts are small).
- Request / order numbers are allocated inside create_quotation_request /
  create_purchase_order (PREFIX-YYYYMM-NNN).
- Audit logs are append-only: there is no update or delete for them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..models import (
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
)

# Dashboard "savings" is not derived from data yet (needs historical price comparison).
SAVINGS_PLACEHOLDER = 18420

Data = Dict[str, Any]


class Storage(ABC):
    """CRUD + aggregate façade over the entity schema."""

    backend_name = "abstract"

    # -----------------------------------------------------------------
    # Users
    # -----------------------------------------------------------------
    @abstractmethod
    def get_user(self, user_id: int) -> User: ...

    @abstractmethod
    def find_user_by_username(self, username: str) -> Optional[User]: ...

    @abstractmethod
    def list_users(self) -> List[User]: ...

    @abstractmethod
    def create_user(self, data: Data, password: str) -> User: ...

    @abstractmethod
    def update_user(self, user_id: int, data: Data, password: Optional[str] = None) -> User: ...

    @abstractmethod
    def count_users(self) -> int: ...

    # -----------------------------------------------------------------
    # Suppliers
    # -----------------------------------------------------------------
    @abstractmethod
    def list_suppliers(self) -> List[Supplier]: ...

    @abstractmethod
    def get_supplier(self, supplier_id: int) -> Supplier: ...

    @abstractmethod
    def find_supplier_by_name(self, name: str) -> Optional[Supplier]: ...

    @abstractmethod
    def create_supplier(self, data: Data) -> Supplier: ...

    @abstractmethod
    def update_supplier(self, supplier_id: int, data: Data) -> Supplier: ...

    @abstractmethod
    def delete_supplier(self, supplier_id: int) -> None: ...

    @abstractmethod
    def search_suppliers(self, query: str) -> List[Supplier]: ...

    # -----------------------------------------------------------------
    # Categories & products
    # -----------------------------------------------------------------
    @abstractmethod
    def list_categories(self) -> List[Category]: ...

    @abstractmethod
    def get_category(self, category_id: int) -> Category: ...

    @abstractmethod
    def create_category(self, data: Data) -> Category: ...

    @abstractmethod
    def list_products(self) -> List[Product]: ...

    @abstractmethod
    def get_product(self, product_id: int) -> Product: ...

    @abstractmethod
    def create_product(self, data: Data) -> Product: ...

    @abstractmethod
    def update_product(self, product_id: int, data: Data) -> Product: ...

    @abstractmethod
    def delete_product(self, product_id: int) -> None: ...

    @abstractmethod
    def search_products(self, query: str) -> List[Product]: ...

    @abstractmethod
    def list_products_by_category(self, category_id: int) -> List[Product]: ...

    # -----------------------------------------------------------------
    # Quotation requests
    # -----------------------------------------------------------------
    @abstractmethod
    def list_quotation_requests(self) -> List[QuotationRequest]: ...

    @abstractmethod
    def get_quotation_request(self, request_id: int) -> QuotationRequest: ...

    @abstractmethod
    def find_quotation_request_by_number(self, request_number: str) -> Optional[QuotationRequest]: ...

    @abstractmethod
    def create_quotation_request(self, data: Data) -> QuotationRequest: ...

    @abstractmethod
    def update_quotation_request(self, request_id: int, data: Data) -> QuotationRequest: ...

    @abstractmethod
    def list_quotation_requests_by_user(self, user_id: int) -> List[QuotationRequest]: ...

    @abstractmethod
    def list_quotation_requests_for_approval(self, approver_id: int) -> List[QuotationRequest]: ...

    @abstractmethod
    def list_recent_quotation_requests(self, limit: int = 5) -> List[QuotationRequest]: ...

    @abstractmethod
    def list_quotation_request_items(self, request_id: int) -> List[QuotationRequestItem]: ...

    @abstractmethod
    def create_quotation_request_item(self, data: Data) -> QuotationRequestItem: ...

    def list_pending_approvals(self, user_id: int, limit: int = 5) -> List[QuotationRequest]:
        """Requests awaiting this approver, earliest expected delivery first (undated last)."""
        rows = self.list_quotation_requests_for_approval(user_id)
        rows.sort(key=lambda r: (r.expected_delivery_date is None, r.expected_delivery_date or datetime.max))
        return rows[:limit]

    # -----------------------------------------------------------------
    # Supplier quotations
    # -----------------------------------------------------------------
    @abstractmethod
    def list_supplier_quotations(self, request_id: int) -> List[SupplierQuotation]: ...

    @abstractmethod
    def get_supplier_quotation(self, quotation_id: int) -> SupplierQuotation: ...

    @abstractmethod
    def find_supplier_quotation(self, request_id: int, supplier_id: int) -> Optional[SupplierQuotation]: ...

    @abstractmethod
    def create_supplier_quotation(self, data: Data) -> SupplierQuotation:
        """Insert the quotation and increment the supplier's total_quotations."""

    @abstractmethod
    def update_supplier_quotation(self, quotation_id: int, data: Data) -> SupplierQuotation: ...

    @abstractmethod
    def select_supplier_quotation(self, quotation_id: int, request_changes: Data) -> SupplierQuotation:
        """
        One unit of work: unselect every other quotation of the same request,
        select this one and apply request_changes to the parent request.
        """

    # -----------------------------------------------------------------
    # Purchase orders
    # -----------------------------------------------------------------
    @abstractmethod
    def list_purchase_orders(self) -> List[PurchaseOrder]: ...

    @abstractmethod
    def get_purchase_order(self, order_id: int) -> PurchaseOrder: ...

    @abstractmethod
    def find_purchase_order_for_request(self, request_id: int) -> Optional[PurchaseOrder]: ...

    @abstractmethod
    def create_purchase_order(self, data: Data) -> PurchaseOrder: ...

    @abstractmethod
    def update_purchase_order(self, order_id: int, data: Data) -> PurchaseOrder: ...

    # -----------------------------------------------------------------
    # History
    # -----------------------------------------------------------------
    @abstractmethod
    def create_audit_log(self, data: Data) -> AuditLog: ...

    @abstractmethod
    def list_audit_logs(self, entity_id: Optional[str] = None) -> List[AuditLog]: ...

    @abstractmethod
    def create_ai_analysis(self, data: Data) -> AiAnalysis: ...

    @abstractmethod
    def list_ai_analyses(self, entity_type: Optional[str] = None, entity_id: Optional[str] = None) -> List[AiAnalysis]: ...

    # -----------------------------------------------------------------
    # Dashboard
    # -----------------------------------------------------------------
    @abstractmethod
    def get_dashboard_stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """monthlySpending, activeQuotations, savings, activeSuppliers, pendingApprovals."""


def start_of_month(now: datetime) -> datetime:
    return datetime(now.year, now.month, 1)
