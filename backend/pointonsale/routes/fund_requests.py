# backend/pointonsale/routes/fund_requests.py
"""
Fund request API routes.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_caller, require_permission
from ..errors import CoreError
from ..extensions import db
from ..services import fund_request_service, scope_service
from ..services.concurrency import run_with_configured_retry
from ..validation import json_object


fund_requests_bp = Blueprint("fund_requests", __name__, url_prefix="/api/fund-requests")


def _run(action: str, func, success_status: int = 200):
    try:
        fund_request = run_with_configured_retry(func)
        return jsonify(fund_request.to_dict()), success_status
    except CoreError:
        raise
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Fund request %s failed", action)
        return jsonify({"error": "Internal server error"}), 500


@fund_requests_bp.route("", methods=["POST"])
@require_caller
@require_permission("FUND_REQUESTS_CREATE")
def create_fund_request():
    """
    Request body:
    {
        "from_scope_id": int (optional, defaults to the caller's scope),
        "to_scope_id": int,
        "amount_cents": int,
        "notes": str (optional)
    }
    """
    data = json_object(request.get_json(silent=True))

    try:
        from_scope_id = data.get("from_scope_id", g.caller.scope_id)
        to_scope_id = data["to_scope_id"]
        amount_cents = data["amount_cents"]
    except KeyError as e:
        return jsonify({"error": "validation", "message": f"Missing required field: {e}"}), 400

    return _run(
        "create",
        lambda: fund_request_service.create(
            from_scope_id, to_scope_id, amount_cents, data.get("notes"), caller=g.caller
        ),
        success_status=201,
    )


@fund_requests_bp.get("/outgoing")
@require_caller
@require_permission("FUND_REQUESTS_CREATE")
def outgoing():
    scope_id = request.args.get("scope_id", default=g.caller.scope_id, type=int)
    scope_service.ensure_can_access(g.caller, scope_id)
    requests_ = fund_request_service.list_as_requester(scope_id, request.args.get("status"))
    return jsonify({"scope_id": scope_id, "requests": [r.to_dict() for r in requests_]}), 200


@fund_requests_bp.get("/incoming")
@require_caller
@require_permission("FUND_REQUESTS_APPROVE")
def incoming():
    scope_id = request.args.get("scope_id", default=g.caller.scope_id, type=int)
    scope_service.ensure_can_access(g.caller, scope_id)
    requests_ = fund_request_service.list_as_supplier(scope_id, request.args.get("status"))
    return jsonify({"scope_id": scope_id, "requests": [r.to_dict() for r in requests_]}), 200


@fund_requests_bp.route("/<int:request_id>/approve", methods=["POST"])
@require_caller
@require_permission("FUND_REQUESTS_APPROVE")
def approve(request_id: int):
    return _run(
        "approve",
        lambda: fund_request_service.approve(request_id, g.caller.scope_id, caller=g.caller),
    )


@fund_requests_bp.route("/<int:request_id>/reject", methods=["POST"])
@require_caller
@require_permission("FUND_REQUESTS_APPROVE")
def reject(request_id: int):
    data = json_object(request.get_json(silent=True))
    return _run(
        "reject",
        lambda: fund_request_service.reject(
            request_id, g.caller.scope_id, data.get("reason"), caller=g.caller
        ),
    )
