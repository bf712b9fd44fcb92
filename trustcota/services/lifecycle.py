"""
trustcota/services/lifecycle.py

Quotation request lifecycle.

    rascunho --(first supplier quotation)--> em_cotacao
    em_cotacao / aguardando_aprovacao --(select)--> aguardando_aprovacao
    aguardando_aprovacao --(approve)--> aprovado
    aguardando_aprovacao / aprovado without order --(reject)--> rejeitado
    rascunho / em_cotacao / aguardando_aprovacao --(cancel)--> cancelado
    aprovado + selected quotation --(generate purchase order)--> new PurchaseOrder

IMPORTANT:
- This is the only module that writes QuotationRequest.status.
- Preconditions are checked before anything is written; a TransitionError
  leaves state untouched.
- Every transition appends exactly one AuditLog row.
- AI analysis and e-mails run after the state change as best-effort side
  effects and are reported in TransitionResult.side_effects.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Tuple

from flask import current_app

from ..audit import log_action
from ..errors import ConflictError, TransitionError, ValidationError
from ..models import (
    ORDER_CANCELLED,
    ORDER_CONFIRMED,
    ORDER_DELIVERED,
    ORDER_PENDING,
    STATUS_APPROVED,
    STATUS_AWAITING_APPROVAL,
    STATUS_CANCELLED,
    STATUS_DRAFT,
    STATUS_IN_QUOTATION,
    STATUS_REJECTED,
    SUPPLIER_ACTIVE,
    PurchaseOrder,
    QuotationRequest,
    SupplierQuotation,
    User,
    utcnow,
)
from ..storage import Storage, get_storage
from .ai import QUOTATION_ANALYSIS_CONFIDENCE, AiAdvisor, get_advisor
from .notifications import EmailNotifier, get_notifier
from .side_effects import TransitionResult, run_best_effort

logger = logging.getLogger(__name__)

# action -> states it may start from
TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    "submit_quotation": (STATUS_DRAFT, STATUS_IN_QUOTATION, STATUS_AWAITING_APPROVAL),
    "select": (STATUS_IN_QUOTATION, STATUS_AWAITING_APPROVAL),
    "approve": (STATUS_AWAITING_APPROVAL,),
    "reject": (STATUS_AWAITING_APPROVAL, STATUS_APPROVED),
    "cancel": (STATUS_DRAFT, STATUS_IN_QUOTATION, STATUS_AWAITING_APPROVAL),
    "edit": (STATUS_DRAFT, STATUS_IN_QUOTATION, STATUS_AWAITING_APPROVAL),
    "add_item": (STATUS_DRAFT, STATUS_IN_QUOTATION),
    "generate_purchase_order": (STATUS_APPROVED,),
}

ORDER_TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    ORDER_PENDING: (ORDER_CONFIRMED, ORDER_CANCELLED),
    ORDER_CONFIRMED: (ORDER_DELIVERED, ORDER_CANCELLED),
    ORDER_DELIVERED: (),
    ORDER_CANCELLED: (),
}

# Keys that only transitions may change (camelCase, as sent by clients).
PROTECTED_REQUEST_KEYS = ("status", "requestNumber", "requesterId", "approverId", "approvedAmount", "approvedAt")


def require_state(request: QuotationRequest, action: str, message: Optional[str] = None) -> None:
    allowed = TRANSITIONS[action]
    if request.status not in allowed:
        raise TransitionError(
            message or f"Cannot {action.replace('_', ' ')} a quotation request in status '{request.status}'",
            payload={"status": request.status},
        )


class QuotationLifecycle:
    """Transition functions bound to one storage backend and its side-effect services."""

    def __init__(
        self,
        storage: Storage,
        notifier: EmailNotifier,
        advisor: AiAdvisor,
        supplier_notification_limit: int = 5,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.storage = storage
        self.notifier = notifier
        self.advisor = advisor
        self.supplier_notification_limit = supplier_notification_limit
        self.clock = clock

    def _audit(self, actor: Optional[User], action: str, entity_type: str, entity_id: Any, changes: Dict[str, Any]):
        log_action(
            action,
            entity_type,
            entity_id,
            changes,
            user_id=actor.id if actor is not None else None,
            storage=self.storage,
        )

    def _log_transition(self, request: QuotationRequest, previous: str, action: str) -> None:
        logger.info("%s %s: %s -> %s", action, request.request_number, previous, request.status)

    # -----------------------------------------------------------------
    # Request creation and editing
    # -----------------------------------------------------------------
    def create_request(self, actor: User, data: Dict[str, Any]) -> TransitionResult:
        values = {**data, "requester_id": actor.id, "status": STATUS_DRAFT}
        request = self.storage.create_quotation_request(values)
        self._audit(actor, "create", "quotation_request", request.id, data)
        logger.info("create %s by %s", request.request_number, actor.username)

        analysis = run_best_effort("ai_analysis", self._store_request_analysis, request)
        return TransitionResult(request, [analysis])

    def _store_request_analysis(self, request: QuotationRequest):
        analysis = self.advisor.analyze_quotation_request(request)
        return self.storage.create_ai_analysis(
            {
                "type": "quotation_analysis",
                "entity_type": "quotation_request",
                "entity_id": str(request.id),
                "analysis": analysis,
                "confidence": Decimal(QUOTATION_ANALYSIS_CONFIDENCE),
            }
        )

    def update_request(self, actor: User, request_id: int, raw: Dict[str, Any], data: Dict[str, Any]) -> QuotationRequest:
        """Partial update of descriptive fields. `raw` is the client payload, `data` its parsed form."""
        protected = [key for key in PROTECTED_REQUEST_KEYS if key in raw]
        if protected:
            raise ValidationError(
                f"Field(s) {', '.join(protected)} can only be changed through workflow actions"
            )

        request = self.storage.get_quotation_request(request_id)
        require_state(request, "edit", f"A quotation request in status '{request.status}' can no longer be edited")

        request = self.storage.update_quotation_request(request.id, data)
        self._audit(actor, "update", "quotation_request", request.id, data)
        return request

    def add_item(self, actor: User, request_id: int, data: Dict[str, Any]):
        request = self.storage.get_quotation_request(request_id)
        require_state(request, "add_item", f"Items cannot be added to a quotation request in status '{request.status}'")
        if data.get("product_id") is not None:
            self.storage.get_product(data["product_id"])

        item = self.storage.create_quotation_request_item({**data, "quotation_request_id": request.id})
        self._audit(actor, "create", "quotation_request_item", item.id, {**data, "quotationRequestId": request.id})
        return item

    # -----------------------------------------------------------------
    # Supplier quotations
    # -----------------------------------------------------------------
    def record_quotation(self, request: QuotationRequest, data: Dict[str, Any]) -> Tuple[TransitionResult, bool]:
        """
        Insert a quotation and advance a draft request to em_cotacao.

        The first quotation of a request notifies the first active suppliers
        (best effort). No audit row is written here: API submissions audit per
        quotation, spreadsheet imports audit per batch.
        Returns (TransitionResult(quotation, side_effects), advanced).
        """
        require_state(request, "submit_quotation", f"Quotation request in status '{request.status}' does not accept quotations")

        quotation = self.storage.create_supplier_quotation({**data, "quotation_request_id": request.id})

        advanced = False
        if request.status == STATUS_DRAFT:
            self.storage.update_quotation_request(request.id, {"status": STATUS_IN_QUOTATION})
            self._log_transition(request, STATUS_DRAFT, "submit_quotation")
            advanced = True

        side_effects = []
        if len(self.storage.list_supplier_quotations(request.id)) == 1:
            side_effects.append(run_best_effort("supplier_notification", self._notify_suppliers, request))
        return TransitionResult(quotation, side_effects), advanced

    def submit_quotation(self, actor: User, request_id: int, data: Dict[str, Any]) -> TransitionResult:
        request = self.storage.get_quotation_request(request_id)
        supplier = self.storage.get_supplier(data["supplier_id"])
        if self.storage.find_supplier_quotation(request.id, supplier.id) is not None:
            raise ConflictError(f"Supplier {supplier.id} already quoted request {request.request_number}")

        result, advanced = self.record_quotation(request, data)
        quotation = result.entity

        changes = {**data, "quotationRequestId": request.id}
        if advanced:
            changes["requestStatus"] = {"from": STATUS_DRAFT, "to": STATUS_IN_QUOTATION}
        self._audit(actor, "create", "supplier_quotation", quotation.id, changes)
        return result

    def _notify_suppliers(self, request: QuotationRequest) -> int:
        active = [s for s in self.storage.list_suppliers() if s.status == SUPPLIER_ACTIVE]
        return self.notifier.send_quotation_request_notification(active[: self.supplier_notification_limit], request)

    def update_quotation(self, actor: User, quotation_id: int, data: Dict[str, Any]) -> SupplierQuotation:
        quotation = self.storage.get_supplier_quotation(quotation_id)
        request = self.storage.get_quotation_request(quotation.quotation_request_id)
        require_state(request, "submit_quotation", f"Quotations of a request in status '{request.status}' are closed")

        data = {k: v for k, v in data.items() if k != "supplier_id"}
        quotation = self.revise_quotation(request, quotation, data)
        self._audit(actor, "update", "supplier_quotation", quotation.id, data)
        return quotation

    def revise_quotation(self, request: QuotationRequest, quotation: SupplierQuotation, data: Dict[str, Any]) -> SupplierQuotation:
        """Update a quotation. A selected quotation keeps the request budget equal to its total."""
        quotation = self.storage.update_supplier_quotation(quotation.id, data)
        if quotation.is_selected and "total_amount" in data:
            self.storage.update_quotation_request(request.id, {"total_budget": quotation.total_amount})
        return quotation

    def select_quotation(self, actor: User, quotation_id: int) -> TransitionResult:
        quotation = self.storage.get_supplier_quotation(quotation_id)
        request = self.storage.get_quotation_request(quotation.quotation_request_id)
        require_state(request, "select")

        previous = request.status
        quotation = self.storage.select_supplier_quotation(
            quotation.id,
            {"status": STATUS_AWAITING_APPROVAL, "total_budget": quotation.total_amount},
        )
        self._audit(
            actor,
            "select",
            "supplier_quotation",
            quotation.id,
            {"isSelected": True, "quotationRequestId": request.id, "totalBudget": quotation.total_amount},
        )
        self._log_transition(request, previous, "select")
        return TransitionResult(quotation)

    # -----------------------------------------------------------------
    # Decisions
    # -----------------------------------------------------------------
    def approve(self, actor: User, request_id: int, approved_amount: Optional[Decimal] = None) -> TransitionResult:
        request = self.storage.get_quotation_request(request_id)
        require_state(request, "approve", "Only quotation requests awaiting approval can be approved")

        amount = approved_amount if approved_amount is not None else request.total_budget
        request = self.storage.update_quotation_request(
            request.id,
            {
                "status": STATUS_APPROVED,
                "approver_id": actor.id,
                "approved_amount": amount,
                "approved_at": self.clock(),
            },
        )
        self._audit(actor, "approve", "quotation_request", request.id, {"status": STATUS_APPROVED, "approvedAmount": amount})
        self._log_transition(request, STATUS_AWAITING_APPROVAL, "approve")

        email = run_best_effort("approval_email", self._send_approval, request)
        return TransitionResult(request, [email])

    def _send_approval(self, request: QuotationRequest) -> int:
        return self.notifier.send_approval_notification(request, self.storage.get_user(request.requester_id))

    def reject(self, actor: User, request_id: int, reason: Optional[str]) -> TransitionResult:
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Field 'rejectionReason' is required")

        request = self.storage.get_quotation_request(request_id)
        require_state(request, "reject", "Only quotation requests awaiting approval or approved can be rejected")
        if request.status == STATUS_APPROVED and self.storage.find_purchase_order_for_request(request.id) is not None:
            raise TransitionError("A purchase order was already generated for this request")

        previous = request.status
        request = self.storage.update_quotation_request(
            request.id,
            {"status": STATUS_REJECTED, "approver_id": actor.id, "notes": reason},
        )
        self._audit(actor, "reject", "quotation_request", request.id, {"status": STATUS_REJECTED, "rejectionReason": reason})
        self._log_transition(request, previous, "reject")

        email = run_best_effort("rejection_email", self._send_rejection, request, reason)
        return TransitionResult(request, [email])

    def _send_rejection(self, request: QuotationRequest, reason: str) -> int:
        return self.notifier.send_rejection_notification(request, self.storage.get_user(request.requester_id), reason)

    def cancel(self, actor: User, request_id: int) -> TransitionResult:
        request = self.storage.get_quotation_request(request_id)
        require_state(request, "cancel", f"A quotation request in status '{request.status}' cannot be cancelled")

        previous = request.status
        request = self.storage.update_quotation_request(request.id, {"status": STATUS_CANCELLED})
        self._audit(actor, "cancel", "quotation_request", request.id, {"status": {"from": previous, "to": STATUS_CANCELLED}})
        self._log_transition(request, previous, "cancel")
        return TransitionResult(request)

    # -----------------------------------------------------------------
    # Purchase orders
    # -----------------------------------------------------------------
    def generate_purchase_order(self, actor: User, request_id: int, delivery_address: Optional[str] = None) -> TransitionResult:
        request = self.storage.get_quotation_request(request_id)
        require_state(request, "generate_purchase_order", "Quotation request must be approved first")

        if self.storage.find_purchase_order_for_request(request.id) is not None:
            raise ConflictError("A purchase order already exists for this quotation request")

        selected = next((q for q in self.storage.list_supplier_quotations(request.id) if q.is_selected), None)
        if selected is None:
            raise TransitionError("No supplier quotation selected")

        expected = None
        if selected.delivery_time:
            expected = self.clock() + timedelta(days=selected.delivery_time)

        order = self.storage.create_purchase_order(
            {
                "quotation_request_id": request.id,
                "supplier_id": selected.supplier_id,
                "total_amount": selected.total_amount,
                "delivery_address": delivery_address,
                "expected_delivery_date": expected,
                "status": ORDER_PENDING,
            }
        )
        self._audit(
            actor,
            "create",
            "purchase_order",
            order.id,
            {"orderNumber": order.order_number, "supplierId": selected.supplier_id, "quotationRequestId": request.id},
        )
        logger.info("generate_purchase_order %s for %s", order.order_number, request.request_number)
        return TransitionResult(order)

    def update_order_status(self, actor: User, order_id: int, status: str) -> PurchaseOrder:
        order = self.storage.get_purchase_order(order_id)
        if status == order.status:
            return order
        if status not in ORDER_TRANSITIONS.get(order.status, ()):
            raise TransitionError(
                f"Purchase order cannot move from '{order.status}' to '{status}'",
                payload={"status": order.status},
            )

        previous = order.status
        order = self.storage.update_purchase_order(order.id, {"status": status})
        self._audit(actor, "update", "purchase_order", order.id, {"status": {"from": previous, "to": status}})
        logger.info("purchase order %s: %s -> %s", order.order_number, previous, status)
        return order


def get_lifecycle() -> QuotationLifecycle:
    return QuotationLifecycle(
        storage=get_storage(),
        notifier=get_notifier(),
        advisor=get_advisor(),
        supplier_notification_limit=int(current_app.config.get("SUPPLIER_NOTIFICATION_LIMIT", 5)),
    )
