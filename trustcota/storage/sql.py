"""
trustcota/storage/sql.py

SQLAlchemy-backed Storage (Flask-SQLAlchemy session).

Transaction boundaries:
- Every public method is its own unit of work and commits before returning.
- select_supplier_quotation() and number allocation are single commits, so a
  failure leaves no partial state behind.
- Sequence numbers rely on the UNIQUE constraint on request_number/order_number:
  a collision with a concurrent writer rolls back and retries with a fresh number.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Type

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import DataError, IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
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
from ..services.numbering import ORDER_PREFIX, REQUEST_PREFIX, bucket_prefix, next_number
from .base import SAVINGS_PLACEHOLDER, Data, Storage, start_of_month

logger = logging.getLogger(__name__)

NUMBER_ALLOCATION_ATTEMPTS = 5


class SqlStorage(Storage):
    backend_name = "sql"

    # -----------------------------------------------------------------
    # Generic helpers
    # -----------------------------------------------------------------
    def _get(self, model: Type[Any], entity: str, row_id: int):
        row = db.session.get(model, row_id)
        if row is None:
            raise NotFoundError(entity, row_id)
        return row

    def _commit(self, conflict_message: str = "Duplicate value") -> None:
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError(conflict_message)
        except DataError as exc:
            # value too long or out of range for its column
            db.session.rollback()
            raise ValidationError(f"Value rejected by the database: {exc.orig}")

    def _insert(self, model: Type[Any], data: Data, conflict_message: str = "Duplicate value"):
        row = model(**data)
        db.session.add(row)
        self._commit(conflict_message)
        return row

    def _update(self, row: Any, data: Data, conflict_message: str = "Duplicate value"):
        for key, value in data.items():
            setattr(row, key, value)
        self._commit(conflict_message)
        return row

    def _insert_numbered(self, model: Type[Any], number_attr: str, prefix: str, data: Data):
        """Insert with the next PREFIX-YYYYMM-NNN number, retrying on unique collisions."""
        column = getattr(model, number_attr)
        for attempt in range(1, NUMBER_ALLOCATION_ATTEMPTS + 1):
            now = utcnow()
            issued = db.session.scalars(select(column).where(column.like(f"{bucket_prefix(prefix, now)}%"))).all()
            number = next_number(prefix, issued, now)

            row = model(**data)
            setattr(row, number_attr, number)
            db.session.add(row)
            try:
                db.session.commit()
                return row
            except IntegrityError:
                db.session.rollback()
                logger.warning("Number %s already taken (attempt %d), retrying", number, attempt)
            except DataError as exc:
                db.session.rollback()
                raise ValidationError(f"Value rejected by the database: {exc.orig}")

        raise ConflictError(f"Could not allocate a unique {prefix} number, try again")

    # -----------------------------------------------------------------
    # Users
    # -----------------------------------------------------------------
    def get_user(self, user_id: int) -> User:
        return self._get(User, "user", user_id)

    def find_user_by_username(self, username: str) -> Optional[User]:
        return User.query.filter_by(username=username).first()

    def list_users(self) -> List[User]:
        return User.query.order_by(User.username.asc()).all()

    def create_user(self, data: Data, password: str) -> User:
        user = User(**data)
        user.set_password(password)
        db.session.add(user)
        self._commit("Username or e-mail already in use")
        return user

    def update_user(self, user_id: int, data: Data, password: Optional[str] = None) -> User:
        user = self.get_user(user_id)
        if password:
            user.set_password(password)
        return self._update(user, data, "Username or e-mail already in use")

    def count_users(self) -> int:
        return db.session.scalar(select(func.count(User.id))) or 0

    # -----------------------------------------------------------------
    # Suppliers
    # -----------------------------------------------------------------
    def list_suppliers(self) -> List[Supplier]:
        return Supplier.query.order_by(Supplier.created_at.desc(), Supplier.id.desc()).all()

    def get_supplier(self, supplier_id: int) -> Supplier:
        return self._get(Supplier, "supplier", supplier_id)

    def find_supplier_by_name(self, name: str) -> Optional[Supplier]:
        return Supplier.query.filter(Supplier.name == name).order_by(Supplier.id.asc()).first()

    def create_supplier(self, data: Data) -> Supplier:
        return self._insert(Supplier, data, "A supplier with this CNPJ already exists")

    def update_supplier(self, supplier_id: int, data: Data) -> Supplier:
        return self._update(self.get_supplier(supplier_id), data, "A supplier with this CNPJ already exists")

    def delete_supplier(self, supplier_id: int) -> None:
        supplier = self.get_supplier(supplier_id)
        if PurchaseOrder.query.filter_by(supplier_id=supplier.id).first() is not None:
            raise ConflictError("Supplier has purchase orders and cannot be deleted")

        SupplierQuotation.query.filter_by(supplier_id=supplier.id).delete(synchronize_session=False)
        db.session.delete(supplier)
        db.session.commit()

    def search_suppliers(self, query: str) -> List[Supplier]:
        pattern = f"%{query}%"
        return (
            Supplier.query.filter(
                or_(
                    func.coalesce(Supplier.name, "").ilike(pattern),
                    func.coalesce(Supplier.cnpj, "").ilike(pattern),
                    func.coalesce(Supplier.email, "").ilike(pattern),
                )
            )
            .order_by(Supplier.name.asc())
            .all()
        )

    # -----------------------------------------------------------------
    # Categories & products
    # -----------------------------------------------------------------
    def list_categories(self) -> List[Category]:
        return Category.query.order_by(Category.name.asc()).all()

    def get_category(self, category_id: int) -> Category:
        return self._get(Category, "category", category_id)

    def create_category(self, data: Data) -> Category:
        return self._insert(Category, data)

    def list_products(self) -> List[Product]:
        return Product.query.order_by(Product.created_at.desc(), Product.id.desc()).all()

    def get_product(self, product_id: int) -> Product:
        return self._get(Product, "product", product_id)

    def create_product(self, data: Data) -> Product:
        return self._insert(Product, data)

    def update_product(self, product_id: int, data: Data) -> Product:
        return self._update(self.get_product(product_id), data)

    def delete_product(self, product_id: int) -> None:
        product = self.get_product(product_id)
        db.session.execute(
            update(QuotationRequestItem)
            .where(QuotationRequestItem.product_id == product.id)
            .values(product_id=None)
        )
        db.session.delete(product)
        db.session.commit()

    def search_products(self, query: str) -> List[Product]:
        pattern = f"%{query}%"
        return (
            Product.query.filter(
                or_(
                    func.coalesce(Product.name, "").ilike(pattern),
                    func.coalesce(Product.description, "").ilike(pattern),
                )
            )
            .order_by(Product.name.asc())
            .all()
        )

    def list_products_by_category(self, category_id: int) -> List[Product]:
        return Product.query.filter_by(category_id=category_id).order_by(Product.name.asc()).all()

    # -----------------------------------------------------------------
    # Quotation requests
    # -----------------------------------------------------------------
    def list_quotation_requests(self) -> List[QuotationRequest]:
        return QuotationRequest.query.order_by(QuotationRequest.created_at.desc(), QuotationRequest.id.desc()).all()

    def get_quotation_request(self, request_id: int) -> QuotationRequest:
        return self._get(QuotationRequest, "quotation_request", request_id)

    def find_quotation_request_by_number(self, request_number: str) -> Optional[QuotationRequest]:
        return QuotationRequest.query.filter_by(request_number=request_number).first()

    def create_quotation_request(self, data: Data) -> QuotationRequest:
        return self._insert_numbered(QuotationRequest, "request_number", REQUEST_PREFIX, data)

    def update_quotation_request(self, request_id: int, data: Data) -> QuotationRequest:
        return self._update(self.get_quotation_request(request_id), data)

    def list_quotation_requests_by_user(self, user_id: int) -> List[QuotationRequest]:
        return (
            QuotationRequest.query.filter_by(requester_id=user_id)
            .order_by(QuotationRequest.created_at.desc(), QuotationRequest.id.desc())
            .all()
        )

    def list_quotation_requests_for_approval(self, approver_id: int) -> List[QuotationRequest]:
        return (
            QuotationRequest.query.filter_by(status=STATUS_AWAITING_APPROVAL, approver_id=approver_id)
            .order_by(QuotationRequest.created_at.desc(), QuotationRequest.id.desc())
            .all()
        )

    def list_recent_quotation_requests(self, limit: int = 5) -> List[QuotationRequest]:
        return (
            QuotationRequest.query.order_by(QuotationRequest.created_at.desc(), QuotationRequest.id.desc())
            .limit(limit)
            .all()
        )

    def list_quotation_request_items(self, request_id: int) -> List[QuotationRequestItem]:
        return (
            QuotationRequestItem.query.filter_by(quotation_request_id=request_id)
            .order_by(QuotationRequestItem.id.asc())
            .all()
        )

    def create_quotation_request_item(self, data: Data) -> QuotationRequestItem:
        return self._insert(QuotationRequestItem, data)

    # -----------------------------------------------------------------
    # Supplier quotations
    # -----------------------------------------------------------------
    def list_supplier_quotations(self, request_id: int) -> List[SupplierQuotation]:
        return (
            SupplierQuotation.query.filter_by(quotation_request_id=request_id)
            .order_by(SupplierQuotation.submitted_at.asc(), SupplierQuotation.id.asc())
            .all()
        )

    def get_supplier_quotation(self, quotation_id: int) -> SupplierQuotation:
        return self._get(SupplierQuotation, "supplier_quotation", quotation_id)

    def find_supplier_quotation(self, request_id: int, supplier_id: int) -> Optional[SupplierQuotation]:
        return SupplierQuotation.query.filter_by(quotation_request_id=request_id, supplier_id=supplier_id).first()

    def create_supplier_quotation(self, data: Data) -> SupplierQuotation:
        quotation = SupplierQuotation(**data)
        db.session.add(quotation)
        db.session.execute(
            update(Supplier)
            .where(Supplier.id == quotation.supplier_id)
            .values(total_quotations=func.coalesce(Supplier.total_quotations, 0) + 1)
        )
        db.session.commit()
        return quotation

    def update_supplier_quotation(self, quotation_id: int, data: Data) -> SupplierQuotation:
        return self._update(self.get_supplier_quotation(quotation_id), data)

    def select_supplier_quotation(self, quotation_id: int, request_changes: Data) -> SupplierQuotation:
        quotation = self.get_supplier_quotation(quotation_id)
        request = self.get_quotation_request(quotation.quotation_request_id)

        db.session.execute(
            update(SupplierQuotation)
            .where(
                SupplierQuotation.quotation_request_id == quotation.quotation_request_id,
                SupplierQuotation.id != quotation.id,
            )
            .values(is_selected=False)
        )
        quotation.is_selected = True
        for key, value in request_changes.items():
            setattr(request, key, value)

        db.session.commit()
        return quotation

    # -----------------------------------------------------------------
    # Purchase orders
    # -----------------------------------------------------------------
    def list_purchase_orders(self) -> List[PurchaseOrder]:
        return PurchaseOrder.query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()).all()

    def get_purchase_order(self, order_id: int) -> PurchaseOrder:
        return self._get(PurchaseOrder, "purchase_order", order_id)

    def find_purchase_order_for_request(self, request_id: int) -> Optional[PurchaseOrder]:
        return PurchaseOrder.query.filter_by(quotation_request_id=request_id).first()

    def create_purchase_order(self, data: Data) -> PurchaseOrder:
        return self._insert_numbered(PurchaseOrder, "order_number", ORDER_PREFIX, data)

    def update_purchase_order(self, order_id: int, data: Data) -> PurchaseOrder:
        return self._update(self.get_purchase_order(order_id), data)

    # -----------------------------------------------------------------
    # History
    # -----------------------------------------------------------------
    def create_audit_log(self, data: Data) -> AuditLog:
        return self._insert(AuditLog, data)

    def list_audit_logs(self, entity_id: Optional[str] = None) -> List[AuditLog]:
        q = AuditLog.query
        if entity_id:
            q = q.filter(AuditLog.entity_id == str(entity_id))
        return q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).all()

    def create_ai_analysis(self, data: Data) -> AiAnalysis:
        return self._insert(AiAnalysis, data)

    def list_ai_analyses(self, entity_type: Optional[str] = None, entity_id: Optional[str] = None) -> List[AiAnalysis]:
        q = AiAnalysis.query
        if entity_type:
            q = q.filter(AiAnalysis.entity_type == entity_type)
            if entity_id:
                q = q.filter(AiAnalysis.entity_id == str(entity_id))
        return q.order_by(AiAnalysis.created_at.desc(), AiAnalysis.id.desc()).all()

    # -----------------------------------------------------------------
    # Dashboard
    # -----------------------------------------------------------------
    def get_dashboard_stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        month_start = start_of_month(now or utcnow())

        monthly_spending = db.session.scalar(
            select(func.sum(QuotationRequest.approved_amount)).where(
                QuotationRequest.status == STATUS_APPROVED,
                QuotationRequest.approved_at >= month_start,
            )
        )
        active_quotations = db.session.scalar(
            select(func.count(QuotationRequest.id)).where(
                QuotationRequest.status.in_([STATUS_IN_QUOTATION, STATUS_AWAITING_APPROVAL])
            )
        )
        active_suppliers = db.session.scalar(
            select(func.count(Supplier.id)).where(Supplier.status == SUPPLIER_ACTIVE)
        )
        pending_approvals = db.session.scalar(
            select(func.count(QuotationRequest.id)).where(QuotationRequest.status == STATUS_AWAITING_APPROVAL)
        )

        return {
            "monthlySpending": float(monthly_spending or 0),
            "activeQuotations": active_quotations or 0,
            "savings": SAVINGS_PLACEHOLDER,
            "activeSuppliers": active_suppliers or 0,
            "pendingApprovals": pending_approvals or 0,
        }
