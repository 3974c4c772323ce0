# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .context import CallerContext
from .permissions import PERMISSION_CODES


def _is_identified() -> bool:
    return hasattr(g, 'caller')


def _parse_permissions(raw: str | None) -> frozenset:
    if not raw:
        return frozenset()
    return frozenset(code.strip() for code in raw.split(",") if code.strip())


def require_caller(f):
    """
    Establish the caller context forwarded by the trusted gateway.

    Sets g.caller (CallerContext) from:
    - X-Scope-Id: the scope the caller acts from - REQUIRED
    - X-Permissions: comma-separated permission codes (may be empty)

    Returns 401 if the scope header is missing or not an integer.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw_scope_id = request.headers.get("X-Scope-Id")
        if not raw_scope_id:
            return jsonify({"error": "Caller scope required"}), 401

        try:
            scope_id = int(raw_scope_id)
        except ValueError:
            return jsonify({"error": "Invalid caller scope"}), 401

        g.caller = CallerContext(
            scope_id=scope_id,
            permissions=_parse_permissions(request.headers.get("X-Permissions")),
        )

        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """Require a specific permission on g.caller (apply after @require_caller)."""
    if permission_code not in PERMISSION_CODES:
        raise ValueError(f"Unknown permission code {permission_code!r}")

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_caller was called first
            if not _is_identified():
                return jsonify({"error": "Caller scope required"}), 401

            if not g.caller.has_permission(permission_code):
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": permission_code,
                    "message": f"Missing permission {permission_code}"
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
