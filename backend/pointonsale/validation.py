from __future__ import annotations

from typing import Any, Iterable

from .errors import ValidationError


def is_strict_int(value: Any) -> bool:
    # bool is a subclass of int; reject it explicitly
    return isinstance(value, int) and not isinstance(value, bool)


def require_positive_int(value: Any, field_name: str) -> int:
    if not is_strict_int(value):
        raise ValidationError(f"{field_name} must be an integer")
    if value <= 0:
        raise ValidationError(f"{field_name} must be positive")
    return value


def normalize_items(items: Iterable[Any] | None) -> list[tuple[int, int]]:
    """
    Validate request/sale lines.

    Accepts dicts ({"product_id": .., "qty": ..}) or (product_id, qty) pairs.
    At least one line, positive integer quantities, each product once.
    """
    if not items:
        raise ValidationError("At least one item is required")
    if not isinstance(items, (list, tuple)):
        raise ValidationError("items must be a list")

    normalized: list[tuple[int, int]] = []
    seen: set[int] = set()
    for item in items:
        if isinstance(item, dict):
            product_id, qty = item.get("product_id"), item.get("qty")
        elif isinstance(item, (list, tuple)) and len(item) == 2:
            product_id, qty = item
        else:
            raise ValidationError("Each item must be an object with product_id and qty")

        if not is_strict_int(product_id):
            raise ValidationError("product_id must be an integer")
        if not is_strict_int(qty) or qty <= 0:
            raise ValidationError(f"Quantity for product {product_id} must be a positive integer")
        if product_id in seen:
            raise ValidationError(f"Product {product_id} appears more than once")
        seen.add(product_id)
        normalized.append((product_id, qty))

    return normalized


def json_object(payload: Any) -> dict:
    """Request body as a dict; a missing body reads as empty."""
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload
