# backend/pointonsale/routes/scopes.py
from flask import Blueprint, jsonify, g

from ..decorators import require_caller, require_permission
from ..services import scope_service


scopes_bp = Blueprint("scopes", __name__, url_prefix="/api/scopes")


@scopes_bp.get("/<int:scope_id>/tree")
@require_caller
@require_permission("SCOPES_VIEW")
def scope_tree(scope_id: int):
    """Nested scope tree rooted at scope_id (must be reachable from the caller)."""
    scope_service.ensure_can_access(g.caller, scope_id)
    return jsonify(scope_service.get_scope_tree(scope_id)), 200
