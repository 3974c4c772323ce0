# backend/pointonsale/services/fund_request_service.py
"""
Fund request workflow.

LIFECYCLE:
1. PENDING: Requester asks a funder scope for cash
2. APPROVED: funder FUND -> requester FUND transfer booked (terminal)
3. REJECTED: declined with a reason, no money moves (terminal)

Approval and its transfer share one DB transaction; if the funder cannot
cover the amount nothing commits and the request stays PENDING.
"""
from __future__ import annotations

from flask import current_app

from ..context import CallerContext
from ..errors import InvalidStateError, NotFoundError, UnauthorizedError, ValidationError
from ..extensions import db
from ..models import FundRequest
from ..models.requests import (
    FUND_REQUEST_STATUS_APPROVED,
    FUND_REQUEST_STATUS_PENDING,
    FUND_REQUEST_STATUS_REJECTED,
)
from ..models.wallets import WALLET_TYPE_FUND
from ..time_utils import utcnow
from ..validation import require_positive_int
from . import scope_service, wallet_service
from .concurrency import lock_for_update, unit_of_work


REF_TYPE = "FundRequest"


def get_request(request_id: int) -> FundRequest:
    request = db.session.query(FundRequest).filter_by(id=request_id).first()
    if request is None:
        raise NotFoundError(f"Fund request {request_id} not found")
    return request


def _lock_request(request_id: int) -> FundRequest:
    request = lock_for_update(db.session.query(FundRequest).filter_by(id=request_id)).first()
    if request is None:
        raise NotFoundError(f"Fund request {request_id} not found")
    return request


def _require_funder(request: FundRequest, acting_scope_id: int, action: str) -> None:
    if request.to_scope_id != acting_scope_id:
        raise UnauthorizedError(f"Only the funder scope can {action} fund request {request.id}")


def _require_pending(request: FundRequest, action: str) -> None:
    if request.status != FUND_REQUEST_STATUS_PENDING:
        raise InvalidStateError(f"Cannot {action} fund request {request.id} in {request.status} status")


def create(
    from_scope_id: int,
    to_scope_id: int,
    amount_cents: int,
    notes: str | None = None,
    *,
    caller: CallerContext | None = None,
) -> FundRequest:
    require_positive_int(amount_cents, "amount_cents")
    if from_scope_id == to_scope_id:
        raise ValidationError("A scope cannot request funds from itself")

    scope_service.ensure_can_access(caller, from_scope_id)
    scope_service.get_node(from_scope_id)
    scope_service.get_node(to_scope_id)

    with unit_of_work():
        request = FundRequest(
            from_scope_id=from_scope_id,
            to_scope_id=to_scope_id,
            amount_cents=amount_cents,
            status=FUND_REQUEST_STATUS_PENDING,
            notes=notes,
            requested_at=utcnow(),
        )
        db.session.add(request)

    current_app.logger.info(
        "Fund request %s created: scope %s asks scope %s for %s cents",
        request.id, from_scope_id, to_scope_id, amount_cents,
    )
    return request


def approve(request_id: int, approver_scope_id: int, *, caller: CallerContext | None = None) -> FundRequest:
    request = get_request(request_id)
    scope_service.ensure_can_access(caller, approver_scope_id)
    _require_funder(request, approver_scope_id, "approve")
    _require_pending(request, "approve")

    with unit_of_work():
        request = _lock_request(request_id)
        _require_pending(request, "approve")

        funder_account = wallet_service.get_or_create_account(request.to_scope_id, WALLET_TYPE_FUND, commit=False)
        requester_account = wallet_service.get_or_create_account(request.from_scope_id, WALLET_TYPE_FUND, commit=False)

        entry = wallet_service.transfer(
            funder_account.id,
            requester_account.id,
            request.amount_cents,
            REF_TYPE,
            str(request.id),
            f"Fund Request Approved: {request.notes}" if request.notes else "Fund Request Approved",
            commit=False,
        )

        request.status = FUND_REQUEST_STATUS_APPROVED
        request.processed_at = utcnow()
        request.ledger_entry_id = entry.id

    current_app.logger.info("Fund request %s approved by scope %s", request_id, approver_scope_id)
    return request


def reject(
    request_id: int,
    rejector_scope_id: int,
    reason: str | None = None,
    *,
    caller: CallerContext | None = None,
) -> FundRequest:
    request = get_request(request_id)
    scope_service.ensure_can_access(caller, rejector_scope_id)
    _require_funder(request, rejector_scope_id, "reject")
    _require_pending(request, "reject")

    with unit_of_work():
        request = _lock_request(request_id)
        _require_pending(request, "reject")
        request.status = FUND_REQUEST_STATUS_REJECTED
        request.rejection_reason = reason
        request.processed_at = utcnow()

    current_app.logger.info("Fund request %s rejected by scope %s", request_id, rejector_scope_id)
    return request


def list_as_requester(scope_id: int, status: str | None = None) -> list[FundRequest]:
    q = db.session.query(FundRequest).filter_by(from_scope_id=scope_id)
    if status is not None:
        q = q.filter_by(status=status)
    return q.order_by(FundRequest.requested_at.desc(), FundRequest.id.desc()).all()


def list_as_supplier(scope_id: int, status: str | None = None) -> list[FundRequest]:
    """Requests waiting on scope_id as the funder."""
    q = db.session.query(FundRequest).filter_by(to_scope_id=scope_id)
    if status is not None:
        q = q.filter_by(status=status)
    return q.order_by(FundRequest.requested_at.desc(), FundRequest.id.desc()).all()
