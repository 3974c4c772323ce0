# backend/pointonsale/services/stock_request_service.py
"""
Stock request workflow.

WHY: A scope replenishes stock by requesting it from a supplier scope higher
up the tree. The supplier decides, then fulfils: goods move down and payment
moves up in a single DB transaction.

LIFECYCLE:
1. DRAFT: Request created with its items (requester scope)
2. SUBMITTED: Sent to the supplier
3. APPROVED: Supplier accepted
4. REJECTED: Supplier declined (terminal)
5. FULFILLED: Stock and payment booked (terminal)

FULFILLMENT (one atomic unit):
- per item: supplier leg -qty (must have the stock), requester leg +qty
- price resolved at the supplier scope, summed over items
- requester FUND -> supplier INCOME for the total (skipped when zero)
Any failure rolls back every leg and the request stays APPROVED.
"""
from __future__ import annotations

from flask import current_app

from ..context import CallerContext
from ..errors import InvalidHierarchyError, InvalidStateError, NotFoundError, UnauthorizedError
from ..extensions import db
from ..models import Product, StockRequest, StockRequestItem
from ..models.inventory import TXN_TYPE_TRANSFER
from ..models.requests import (
    STOCK_REQUEST_STATUS_APPROVED,
    STOCK_REQUEST_STATUS_DRAFT,
    STOCK_REQUEST_STATUS_FULFILLED,
    STOCK_REQUEST_STATUS_REJECTED,
    STOCK_REQUEST_STATUS_SUBMITTED,
)
from ..models.wallets import WALLET_TYPE_FUND, WALLET_TYPE_INCOME
from ..time_utils import utcnow
from ..validation import normalize_items
from . import inventory_service, pricing_service, scope_service, wallet_service
from .concurrency import lock_for_update, unit_of_work


REF_TYPE = "StockRequest"


def get_request(request_id: int) -> StockRequest:
    request = db.session.query(StockRequest).filter_by(id=request_id).first()
    if request is None:
        raise NotFoundError(f"Stock request {request_id} not found")
    return request


def _lock_request(request_id: int) -> StockRequest:
    request = lock_for_update(db.session.query(StockRequest).filter_by(id=request_id)).first()
    if request is None:
        raise NotFoundError(f"Stock request {request_id} not found")
    return request


def _require_supplier(request: StockRequest, acting_scope_id: int, action: str) -> None:
    if request.to_scope_id != acting_scope_id:
        raise UnauthorizedError(f"Only the supplier scope can {action} stock request {request.id}")


def _require_status(request: StockRequest, expected: str, action: str) -> None:
    if request.status != expected:
        raise InvalidStateError(
            f"Cannot {action} stock request {request.id} in {request.status} status"
        )


def create(
    from_scope_id: int,
    to_scope_id: int,
    items,
    *,
    caller: CallerContext | None = None,
) -> StockRequest:
    """
    Create a DRAFT stock request.

    Raises:
        ValidationError: empty items, non-positive or duplicate lines
        NotFoundError: scope or product missing
        InvalidHierarchyError: requester level may not order from supplier level
        UnauthorizedError: caller cannot act for the requester scope
    """
    lines = normalize_items(items)
    scope_service.ensure_can_access(caller, from_scope_id)

    if not scope_service.is_valid_request_pair(from_scope_id, to_scope_id):
        from_node = scope_service.get_node(from_scope_id)
        to_node = scope_service.get_node(to_scope_id)
        raise InvalidHierarchyError(
            f"Invalid request hierarchy: {from_node.level} scope {from_node.id} "
            f"cannot request from {to_node.level} scope {to_node.id}"
        )

    with unit_of_work():
        product_ids = [product_id for product_id, _ in lines]
        found = {
            product_id
            for (product_id,) in db.session.query(Product.id).filter(Product.id.in_(product_ids)).all()
        }
        missing = [product_id for product_id in product_ids if product_id not in found]
        if missing:
            raise NotFoundError(f"Products not found: {missing}")

        request = StockRequest(
            from_scope_id=from_scope_id,
            to_scope_id=to_scope_id,
            status=STOCK_REQUEST_STATUS_DRAFT,
            requested_at=utcnow(),
        )
        db.session.add(request)
        db.session.flush()

        for product_id, qty in lines:
            db.session.add(StockRequestItem(stock_request_id=request.id, product_id=product_id, qty=qty))

    current_app.logger.info(
        "Stock request %s created: scope %s -> scope %s (%s items)",
        request.id, from_scope_id, to_scope_id, len(lines),
    )
    return request


def submit(request_id: int, *, caller: CallerContext | None = None) -> StockRequest:
    request = get_request(request_id)
    scope_service.ensure_can_access(caller, request.from_scope_id)
    _require_status(request, STOCK_REQUEST_STATUS_DRAFT, "submit")

    with unit_of_work():
        request = _lock_request(request_id)
        _require_status(request, STOCK_REQUEST_STATUS_DRAFT, "submit")
        request.status = STOCK_REQUEST_STATUS_SUBMITTED
        request.submitted_at = utcnow()

    current_app.logger.info("Stock request %s submitted", request_id)
    return request


def approve(request_id: int, approver_scope_id: int, *, caller: CallerContext | None = None) -> StockRequest:
    request = get_request(request_id)
    scope_service.ensure_can_access(caller, approver_scope_id)
    _require_supplier(request, approver_scope_id, "approve")
    _require_status(request, STOCK_REQUEST_STATUS_SUBMITTED, "approve")

    with unit_of_work():
        request = _lock_request(request_id)
        _require_status(request, STOCK_REQUEST_STATUS_SUBMITTED, "approve")
        request.status = STOCK_REQUEST_STATUS_APPROVED
        request.approved_at = utcnow()

    current_app.logger.info("Stock request %s approved by scope %s", request_id, approver_scope_id)
    return request


def reject(
    request_id: int,
    rejector_scope_id: int,
    reason: str | None = None,
    *,
    caller: CallerContext | None = None,
) -> StockRequest:
    request = get_request(request_id)
    scope_service.ensure_can_access(caller, rejector_scope_id)
    _require_supplier(request, rejector_scope_id, "reject")
    _require_status(request, STOCK_REQUEST_STATUS_SUBMITTED, "reject")

    with unit_of_work():
        request = _lock_request(request_id)
        _require_status(request, STOCK_REQUEST_STATUS_SUBMITTED, "reject")
        request.status = STOCK_REQUEST_STATUS_REJECTED
        request.rejection_reason = reason
        request.rejected_at = utcnow()

    current_app.logger.info("Stock request %s rejected by scope %s", request_id, rejector_scope_id)
    return request


def fulfill(request_id: int, fulfiller_scope_id: int, *, caller: CallerContext | None = None) -> StockRequest:
    """
    Move the goods and book the payment in one DB transaction.

    Raises:
        UnauthorizedError / InvalidStateError: checked before any write
        InsufficientStockError: supplier is short on an item
        InsufficientBalanceError: requester FUND account cannot pay
    """
    request = get_request(request_id)
    scope_service.ensure_can_access(caller, fulfiller_scope_id)
    _require_supplier(request, fulfiller_scope_id, "fulfill")
    _require_status(request, STOCK_REQUEST_STATUS_APPROVED, "fulfill")

    with unit_of_work():
        request = _lock_request(request_id)
        _require_status(request, STOCK_REQUEST_STATUS_APPROVED, "fulfill")

        ref_id = str(request.id)
        total_amount_cents = 0

        for item in request.items:
            inventory_service.move(
                request.to_scope_id,
                item.product_id,
                -item.qty,
                TXN_TYPE_TRANSFER,
                REF_TYPE,
                ref_id,
                allow_negative=False,
                note=f"Stock request {request.id} to scope {request.from_scope_id}",
                commit=False,
            )
            inventory_service.move(
                request.from_scope_id,
                item.product_id,
                item.qty,
                TXN_TYPE_TRANSFER,
                REF_TYPE,
                ref_id,
                allow_negative=True,
                note=f"Stock request {request.id} from scope {request.to_scope_id}",
                commit=False,
            )

            # Supplier sells at its own price
            unit_price_cents = pricing_service.effective_unit_price_cents(request.to_scope_id, item.product_id)
            item.unit_price_cents = unit_price_cents
            total_amount_cents += unit_price_cents * item.qty

        if total_amount_cents > 0:
            requester_account = wallet_service.get_or_create_account(
                request.from_scope_id, WALLET_TYPE_FUND, commit=False
            )
            supplier_account = wallet_service.get_or_create_account(
                request.to_scope_id, WALLET_TYPE_INCOME, commit=False
            )
            wallet_service.transfer(
                requester_account.id,
                supplier_account.id,
                total_amount_cents,
                REF_TYPE,
                ref_id,
                "Stock Request Fulfillment Payment",
                commit=False,
            )

        request.status = STOCK_REQUEST_STATUS_FULFILLED
        request.fulfilled_at = utcnow()
        request.total_amount_cents = total_amount_cents

    current_app.logger.info(
        "Stock request %s fulfilled by scope %s, total_amount_cents=%s",
        request_id, fulfiller_scope_id, total_amount_cents,
    )
    return request


def list_as_requester(scope_id: int, status: str | None = None) -> list[StockRequest]:
    """Outgoing requests raised by scope_id."""
    q = db.session.query(StockRequest).filter_by(from_scope_id=scope_id)
    if status is not None:
        q = q.filter_by(status=status)
    return q.order_by(StockRequest.requested_at.desc(), StockRequest.id.desc()).all()


def list_as_supplier(scope_id: int, status: str | None = None) -> list[StockRequest]:
    """Incoming requests addressed to scope_id."""
    q = db.session.query(StockRequest).filter_by(to_scope_id=scope_id)
    if status is not None:
        q = q.filter_by(status=status)
    return q.order_by(StockRequest.requested_at.desc(), StockRequest.id.desc()).all()
