# backend/pointonsale/routes/inventory.py
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_caller, require_permission
from ..errors import CoreError
from ..extensions import db
from ..services import inventory_service, scope_service
from ..services.concurrency import run_with_configured_retry
from ..validation import json_object


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/scope/<int:scope_id>/balances")
@require_caller
@require_permission("INVENTORY_VIEW")
def scope_balances(scope_id: int):
    scope_service.ensure_can_access(g.caller, scope_id)
    balances = inventory_service.list_balances(scope_id)
    return jsonify({"scope_id": scope_id, "balances": [b.to_dict() for b in balances]}), 200


@inventory_bp.get("/scope/<int:scope_id>/ledger")
@require_caller
@require_permission("INVENTORY_VIEW")
def scope_ledger(scope_id: int):
    """Most recent movements first; optional ?product_id= and ?limit=."""
    scope_service.ensure_can_access(g.caller, scope_id)
    product_id = request.args.get("product_id", type=int)
    limit = request.args.get("limit", default=200, type=int)
    entries = inventory_service.list_ledger(scope_id, product_id, limit=limit)
    return jsonify({"scope_id": scope_id, "entries": [e.to_dict() for e in entries]}), 200


@inventory_bp.route("/adjust", methods=["POST"])
@require_caller
@require_permission("INVENTORY_ADJUST")
def adjust():
    """
    Manual stock adjustment (may take on-hand negative).

    Request body:
    {
        "scope_id": int,
        "product_id": int,
        "qty_change": int (non-zero, signed),
        "note": str (optional)
    }
    """
    data = json_object(request.get_json(silent=True))

    try:
        params = dict(
            scope_id=data["scope_id"],
            product_id=data["product_id"],
            qty_change=data["qty_change"],
            note=data.get("note"),
        )
    except KeyError as e:
        return jsonify({"error": "validation", "message": f"Missing required field: {e}"}), 400

    try:
        entry = run_with_configured_retry(lambda: inventory_service.adjust_stock(g.caller, **params))
        return jsonify(entry.to_dict()), 201

    except CoreError:
        raise
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Inventory adjustment failed")
        return jsonify({"error": "Internal server error"}), 500
