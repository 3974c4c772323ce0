# backend/pointonsale/routes/wallets.py
"""
Wallet account API routes.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_caller, require_permission
from ..errors import CoreError
from ..extensions import db
from ..services import scope_service, wallet_service
from ..services.concurrency import run_with_configured_retry
from ..validation import json_object


wallets_bp = Blueprint("wallets", __name__, url_prefix="/api/wallets")


@wallets_bp.get("/scope/<int:scope_id>")
@require_caller
@require_permission("WALLET_ACCOUNTS_VIEW")
def scope_accounts(scope_id: int):
    """
    List the FUND, INCOME and SALES_INCENTIVE accounts of a scope.

    Accounts are created on first read.
    """
    scope_service.ensure_can_access(g.caller, scope_id)
    accounts = run_with_configured_retry(lambda: wallet_service.list_accounts(scope_id))
    return jsonify({"scope_id": scope_id, "accounts": [a.to_dict() for a in accounts]}), 200


@wallets_bp.get("/<int:account_id>/ledger")
@require_caller
@require_permission("WALLET_ACCOUNTS_VIEW")
def account_ledger(account_id: int):
    limit = request.args.get("limit", default=200, type=int)
    entries = wallet_service.list_ledger_for_caller(g.caller, account_id, limit=limit)
    return jsonify({"account_id": account_id, "entries": [e.to_dict() for e in entries]}), 200


@wallets_bp.route("/transfer", methods=["POST"])
@require_caller
@require_permission("WALLET_ACCOUNTS_TRANSFER")
def manual_transfer():
    """
    Book a manual transfer between two scope accounts.

    Request body:
    {
        "from_scope_id": int,
        "from_wallet_type": "FUND" | "INCOME" | "SALES_INCENTIVE",
        "to_scope_id": int,
        "to_wallet_type": "FUND" | "INCOME" | "SALES_INCENTIVE",
        "amount_cents": int,
        "notes": str (optional)
    }

    Returns:
        201: Ledger entry created
        400: Invalid request
        403: Forbidden
        409: Insufficient balance
    """
    data = json_object(request.get_json(silent=True))

    try:
        params = dict(
            from_scope_id=data["from_scope_id"],
            from_wallet_type=data["from_wallet_type"],
            to_scope_id=data["to_scope_id"],
            to_wallet_type=data["to_wallet_type"],
            amount_cents=data["amount_cents"],
            notes=data.get("notes"),
        )
    except KeyError as e:
        return jsonify({"error": "validation", "message": f"Missing required field: {e}"}), 400

    try:
        entry = run_with_configured_retry(
            lambda: wallet_service.transfer_between_scopes(g.caller, **params)
        )
        return jsonify(entry.to_dict()), 201

    except CoreError:
        raise
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Manual wallet transfer failed")
        return jsonify({"error": "Internal server error"}), 500
