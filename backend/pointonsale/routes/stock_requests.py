# backend/pointonsale/routes/stock_requests.py
"""
Stock request API routes.

The acting scope for approve/reject/fulfill is the caller's own scope; the
service checks it is the supplier named on the request.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_caller, require_permission
from ..errors import CoreError
from ..extensions import db
from ..services import scope_service, stock_request_service
from ..services.concurrency import run_with_configured_retry
from ..validation import json_object


stock_requests_bp = Blueprint("stock_requests", __name__, url_prefix="/api/stock-requests")


def _run(action: str, func, success_status: int = 200):
    try:
        stock_request = run_with_configured_retry(func)
        return jsonify(stock_request.to_dict()), success_status
    except CoreError:
        raise
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Stock request %s failed", action)
        return jsonify({"error": "Internal server error"}), 500


@stock_requests_bp.route("", methods=["POST"])
@require_caller
@require_permission("STOCK_REQUESTS_CREATE")
def create_stock_request():
    """
    Create a DRAFT stock request.

    Request body:
    {
        "from_scope_id": int (optional, defaults to the caller's scope),
        "to_scope_id": int,
        "items": [{"product_id": int, "qty": int}, ...]
    }

    Returns:
        201: Request created
        400: Invalid items or hierarchy
        403: Caller cannot act for from_scope_id
    """
    data = json_object(request.get_json(silent=True))

    try:
        from_scope_id = data.get("from_scope_id", g.caller.scope_id)
        to_scope_id = data["to_scope_id"]
        items = data["items"]
    except KeyError as e:
        return jsonify({"error": "validation", "message": f"Missing required field: {e}"}), 400

    return _run(
        "create",
        lambda: stock_request_service.create(from_scope_id, to_scope_id, items, caller=g.caller),
        success_status=201,
    )


@stock_requests_bp.get("/outgoing")
@require_caller
@require_permission("STOCK_REQUESTS_VIEW")
def outgoing():
    """Requests raised by ?scope_id= (defaults to the caller's scope), optional ?status=."""
    scope_id = request.args.get("scope_id", default=g.caller.scope_id, type=int)
    scope_service.ensure_can_access(g.caller, scope_id)
    requests_ = stock_request_service.list_as_requester(scope_id, request.args.get("status"))
    return jsonify({"scope_id": scope_id, "requests": [r.to_dict() for r in requests_]}), 200


@stock_requests_bp.get("/incoming")
@require_caller
@require_permission("STOCK_REQUESTS_VIEW")
def incoming():
    """Requests addressed to ?scope_id= as supplier."""
    scope_id = request.args.get("scope_id", default=g.caller.scope_id, type=int)
    scope_service.ensure_can_access(g.caller, scope_id)
    requests_ = stock_request_service.list_as_supplier(scope_id, request.args.get("status"))
    return jsonify({"scope_id": scope_id, "requests": [r.to_dict() for r in requests_]}), 200


@stock_requests_bp.route("/<int:request_id>/submit", methods=["POST"])
@require_caller
@require_permission("STOCK_REQUESTS_CREATE")
def submit(request_id: int):
    return _run("submit", lambda: stock_request_service.submit(request_id, caller=g.caller))


@stock_requests_bp.route("/<int:request_id>/approve", methods=["POST"])
@require_caller
@require_permission("STOCK_REQUESTS_APPROVE")
def approve(request_id: int):
    return _run(
        "approve",
        lambda: stock_request_service.approve(request_id, g.caller.scope_id, caller=g.caller),
    )


@stock_requests_bp.route("/<int:request_id>/reject", methods=["POST"])
@require_caller
@require_permission("STOCK_REQUESTS_APPROVE")
def reject(request_id: int):
    """Request body: {"reason": str (optional)}"""
    data = json_object(request.get_json(silent=True))
    return _run(
        "reject",
        lambda: stock_request_service.reject(
            request_id, g.caller.scope_id, data.get("reason"), caller=g.caller
        ),
    )


@stock_requests_bp.route("/<int:request_id>/fulfill", methods=["POST"])
@require_caller
@require_permission("STOCK_REQUESTS_APPROVE")
def fulfill(request_id: int):
    """
    Move the goods and book the payment.

    Returns:
        200: Request FULFILLED
        409: Wrong status, insufficient supplier stock or requester funds
    """
    return _run(
        "fulfill",
        lambda: stock_request_service.fulfill(request_id, g.caller.scope_id, caller=g.caller),
    )
