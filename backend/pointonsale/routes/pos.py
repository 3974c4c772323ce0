# backend/pointonsale/routes/pos.py
"""
Point-of-sale API routes (cash sales at LOCAL scopes).
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_caller, require_permission
from ..errors import CoreError
from ..extensions import db
from ..services import sales_service
from ..services.concurrency import run_with_configured_retry
from ..validation import json_object


pos_bp = Blueprint("pos", __name__, url_prefix="/api/pos")


@pos_bp.route("/sales", methods=["POST"])
@require_caller
@require_permission("POS_SALES_CREATE")
def create_sale():
    """
    Record a cash sale.

    Request body:
    {
        "scope_id": int (optional, defaults to the caller's scope),
        "items": [{"product_id": int, "qty": int}, ...],
        "payment_ref": str (optional, generated when absent)
    }

    Returns:
        201: Receipt with totals and the INCOME ledger entry id
        400: Invalid items or non-LOCAL scope
        409: Insufficient stock or product not sellable here
    """
    data = json_object(request.get_json(silent=True))

    try:
        scope_id = data.get("scope_id", g.caller.scope_id)
        items = data["items"]
    except KeyError as e:
        return jsonify({"error": "validation", "message": f"Missing required field: {e}"}), 400

    try:
        receipt = run_with_configured_retry(
            lambda: sales_service.record_cash_sale(
                g.caller,
                scope_id=scope_id,
                items=items,
                payment_ref=data.get("payment_ref"),
            )
        )
        return jsonify(receipt.to_dict()), 201

    except CoreError:
        raise
    except Exception:
        db.session.rollback()
        current_app.logger.exception("POS sale failed")
        return jsonify({"error": "Internal server error"}), 500
