"""
TrustCota – Domain Models

Relational schema for the procurement / quotation workflow:
- Users (local accounts with a role)
- Catalog: Category, Product, Supplier
- Workflow: QuotationRequest (+ items), SupplierQuotation, PurchaseOrder
- History: AuditLog (append-only), AiAnalysis (cached AI output)

IMPORTANT:
- "At most one selected SupplierQuotation per QuotationRequest" is enforced by
  the storage layer, not by a constraint here.
- QuotationRequest.status changes only through services/lifecycle.py.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from .extensions import db


def utcnow() -> datetime:
    """Naive UTC timestamp; DateTime columns store no timezone."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ---------------------------------------------------------------------
# Enumerations (stored as plain strings, values are part of the API)
# ---------------------------------------------------------------------
ROLE_ADMIN = "admin"
ROLE_REQUESTER = "requisitante"
ROLE_BUYER = "cotador"
ROLE_APPROVER = "aprovador"
USER_ROLES = (ROLE_ADMIN, ROLE_REQUESTER, ROLE_BUYER, ROLE_APPROVER)

STATUS_DRAFT = "rascunho"
STATUS_IN_QUOTATION = "em_cotacao"
STATUS_AWAITING_APPROVAL = "aguardando_aprovacao"
STATUS_APPROVED = "aprovado"
STATUS_REJECTED = "rejeitado"
STATUS_CANCELLED = "cancelado"
QUOTATION_STATUSES = (
    STATUS_DRAFT,
    STATUS_IN_QUOTATION,
    STATUS_AWAITING_APPROVAL,
    STATUS_APPROVED,
    STATUS_REJECTED,
    STATUS_CANCELLED,
)

SUPPLIER_ACTIVE = "ativo"
SUPPLIER_INACTIVE = "inativo"
SUPPLIER_PENDING = "pendente"
SUPPLIER_BLOCKED = "bloqueado"
SUPPLIER_STATUSES = (SUPPLIER_ACTIVE, SUPPLIER_INACTIVE, SUPPLIER_PENDING, SUPPLIER_BLOCKED)

URGENCY_LEVELS = ("baixa", "normal", "alta", "critica")

ORDER_PENDING = "pendente"
ORDER_CONFIRMED = "confirmado"
ORDER_DELIVERED = "entregue"
ORDER_CANCELLED = "cancelado"
ORDER_STATUSES = (ORDER_PENDING, ORDER_CONFIRMED, ORDER_DELIVERED, ORDER_CANCELLED)


# ---------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------
class User(UserMixin, db.Model):
    """System login user with a single role."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    email = db.Column(db.String(255), unique=True, nullable=True)
    first_name = db.Column(db.String(120))
    last_name = db.Column(db.String(120))
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(20), nullable=False, default=ROLE_REQUESTER, index=True)
    department = db.Column(db.String(120))
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    @property
    def is_authenticated(self) -> bool:
        # UserMixin ties this to is_active. A disabled account is still a known
        # identity; the capability gates answer 403 for it.
        return True

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def full_name(self):
        return f"{self.first_name or ''} {self.last_name or ''}".strip() or self.username

    def __repr__(self):
        return f"<User {self.username} ({self.role})>"


# ---------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------
class Category(db.Model):
    __tablename__ = "categories"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, index=True)
    description = db.Column(db.Text)
    parent_id = db.Column(db.Integer, db.ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow)


class Product(db.Model):
    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False, index=True)
    description = db.Column(db.Text)
    unit = db.Column(db.String(20), nullable=False)  # un, kg, m, ...
    category_id = db.Column(
        db.Integer,
        db.ForeignKey("categories.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    specifications = db.Column(db.JSON)

    last_price = db.Column(db.Numeric(10, 2))
    average_price = db.Column(db.Numeric(10, 2))

    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Product {self.name}>"


class Supplier(db.Model):
    __tablename__ = "suppliers"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False, index=True)
    cnpj = db.Column(db.String(20), unique=True, nullable=True, index=True)
    email = db.Column(db.String(255))
    phone = db.Column(db.String(40))
    address = db.Column(db.Text)
    contact_person = db.Column(db.String(255))

    status = db.Column(db.String(20), nullable=False, default=SUPPLIER_ACTIVE, index=True)
    score = db.Column(db.Numeric(3, 2), default=Decimal("0.00"))
    total_quotations = db.Column(db.Integer, nullable=False, default=0)
    average_delivery_time = db.Column(db.Integer)  # days
    notes = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Supplier {self.cnpj or '-'} - {self.name}>"


# ---------------------------------------------------------------------
# Quotation workflow
# ---------------------------------------------------------------------
class QuotationRequest(db.Model):
    __tablename__ = "quotation_requests"

    id = db.Column(db.Integer, primary_key=True)

    # REQ-YYYYMM-NNN, allocated by storage on insert
    request_number = db.Column(db.String(30), unique=True, nullable=False, index=True)

    requester_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    department = db.Column(db.String(120))
    cost_center = db.Column(db.String(120))
    urgency = db.Column(db.String(20), nullable=False, default="normal")
    expected_delivery_date = db.Column(db.DateTime)

    status = db.Column(db.String(30), nullable=False, default=STATUS_DRAFT, index=True)

    total_budget = db.Column(db.Numeric(12, 2))
    approved_amount = db.Column(db.Numeric(12, 2))
    approver_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    approved_at = db.Column(db.DateTime)

    notes = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<QuotationRequest {self.request_number} [{self.status}]>"


class QuotationRequestItem(db.Model):
    __tablename__ = "quotation_request_items"

    id = db.Column(db.Integer, primary_key=True)

    quotation_request_id = db.Column(
        db.Integer,
        db.ForeignKey("quotation_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True)

    product_name = db.Column(db.String(255), nullable=False)  # free text for products not in the catalog
    quantity = db.Column(db.Numeric(10, 3), nullable=False)
    unit = db.Column(db.String(20), nullable=False)
    specifications = db.Column(db.Text)
    estimated_price = db.Column(db.Numeric(10, 2))

    created_at = db.Column(db.DateTime, default=utcnow)


class SupplierQuotation(db.Model):
    __tablename__ = "supplier_quotations"

    id = db.Column(db.Integer, primary_key=True)

    quotation_request_id = db.Column(
        db.Integer,
        db.ForeignKey("quotation_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    supplier_id = db.Column(
        db.Integer,
        db.ForeignKey("suppliers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    quotation_number = db.Column(db.String(80))
    valid_until = db.Column(db.DateTime)
    delivery_time = db.Column(db.Integer)  # days
    payment_terms = db.Column(db.String(255))
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    observations = db.Column(db.Text)

    is_selected = db.Column(db.Boolean, nullable=False, default=False)

    submitted_at = db.Column(db.DateTime, default=utcnow, index=True)


class PurchaseOrder(db.Model):
    __tablename__ = "purchase_orders"

    id = db.Column(db.Integer, primary_key=True)

    # PO-YYYYMM-NNN, allocated by storage on insert
    order_number = db.Column(db.String(30), unique=True, nullable=False, index=True)

    quotation_request_id = db.Column(db.Integer, db.ForeignKey("quotation_requests.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)

    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    delivery_address = db.Column(db.Text)
    expected_delivery_date = db.Column(db.DateTime)
    status = db.Column(db.String(20), nullable=False, default=ORDER_PENDING, index=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)


# ---------------------------------------------------------------------
# History
# ---------------------------------------------------------------------
class AuditLog(db.Model):
    """Append-only record of state-changing actions."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    action = db.Column(db.String(30), nullable=False, index=True)  # create, update, approve, upload, ...
    entity_type = db.Column(db.String(50), nullable=False, index=True)
    # String so that batch entries can use "bulk_upload"
    entity_id = db.Column(db.String(64), nullable=False, index=True)

    changes = db.Column(db.JSON)

    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)


class AiAnalysis(db.Model):
    __tablename__ = "ai_analyses"

    id = db.Column(db.Integer, primary_key=True)

    type = db.Column(db.String(50), nullable=False)  # quotation_analysis, market_analysis, ...
    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.String(64), nullable=False, index=True)

    analysis = db.Column(db.JSON, nullable=False)
    confidence = db.Column(db.Numeric(3, 2))

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
