"""
Scope hierarchy service (ScopeGraph).

WHY: Every workflow is gated by where two scopes sit in the
Company -> State -> District -> Local tree. This module is the single place
that answers ancestry, descendant and level-transition questions.

ACCESS RULE:
A caller acting from scope X may act on X itself and on any descendant of X.
"""
from __future__ import annotations

from ..context import CallerContext
from ..errors import InvalidHierarchyError, InvalidStateError, NotFoundError, UnauthorizedError, ValidationError
from ..extensions import db
from ..models import Company, ScopeNode
from ..models.tenancy import (
    SCOPE_LEVEL_COMPANY,
    SCOPE_LEVEL_DISTRICT,
    SCOPE_LEVEL_LOCAL,
    SCOPE_LEVEL_STATE,
    SCOPE_LEVELS,
)
from .concurrency import unit_of_work


# requester level -> supplier levels it may request stock from
_REQUEST_PAIRS = {
    SCOPE_LEVEL_STATE: {SCOPE_LEVEL_COMPANY},
    SCOPE_LEVEL_DISTRICT: {SCOPE_LEVEL_STATE},
    SCOPE_LEVEL_LOCAL: {SCOPE_LEVEL_DISTRICT, SCOPE_LEVEL_STATE, SCOPE_LEVEL_COMPANY},
}

# child level -> parent levels it may attach under
_PARENT_LEVELS = {
    SCOPE_LEVEL_STATE: {SCOPE_LEVEL_COMPANY},
    SCOPE_LEVEL_DISTRICT: {SCOPE_LEVEL_STATE},
    # Small companies may skip intermediate levels for their shops
    SCOPE_LEVEL_LOCAL: {SCOPE_LEVEL_DISTRICT, SCOPE_LEVEL_STATE, SCOPE_LEVEL_COMPANY},
}


def get_node(scope_id: int) -> ScopeNode:
    node = db.session.query(ScopeNode).filter_by(id=scope_id).first()
    if node is None:
        raise NotFoundError(f"Scope {scope_id} not found")
    return node


def is_ancestor_or_self(candidate_ancestor_id: int, node_id: int) -> bool:
    """Walk parent links upward from node_id looking for candidate_ancestor_id."""
    node = get_node(node_id)
    seen: set[int] = set()
    while node is not None and node.id not in seen:
        if node.id == candidate_ancestor_id:
            return True
        seen.add(node.id)
        if node.parent_id is None:
            return False
        node = db.session.query(ScopeNode).filter_by(id=node.parent_id).first()
    return False


def is_valid_request_pair(from_scope_id: int, to_scope_id: int) -> bool:
    """
    Stock request hierarchy rule.

    STATE may request from COMPANY, DISTRICT from STATE, LOCAL from DISTRICT,
    STATE or COMPANY. Both scopes must belong to the same company.
    """
    from_node = get_node(from_scope_id)
    to_node = get_node(to_scope_id)

    if from_node.company_id != to_node.company_id:
        return False

    return to_node.level in _REQUEST_PAIRS.get(from_node.level, set())


def is_valid_child_level(parent_level: str | None, child_level: str) -> bool:
    if child_level not in SCOPE_LEVELS:
        return False
    if parent_level is None:
        return child_level == SCOPE_LEVEL_COMPANY
    return parent_level in _PARENT_LEVELS.get(child_level, set())


def get_descendant_ids(scope_id: int, *, include_self: bool = True) -> list[int]:
    root = get_node(scope_id)
    nodes = db.session.query(ScopeNode.id, ScopeNode.parent_id).filter_by(company_id=root.company_id).all()

    children_map: dict[int, list[int]] = {}
    for node_id, parent_id in nodes:
        if parent_id is None:
            continue
        children_map.setdefault(parent_id, []).append(node_id)

    result: list[int] = []
    if include_self:
        result.append(scope_id)

    seen = {scope_id}
    stack = list(children_map.get(scope_id, []))
    while stack:
        current = stack.pop()
        if current in seen:
            continue
        seen.add(current)
        result.append(current)
        stack.extend(children_map.get(current, []))

    return result


def ensure_can_access(caller: CallerContext | None, scope_id: int) -> None:
    """
    Raise UnauthorizedError unless the caller's scope is scope_id or one of its ancestors.

    caller=None means a trusted internal call (CLI, tests, other services).
    """
    if caller is None:
        return
    get_node(scope_id)
    if not is_ancestor_or_self(caller.scope_id, scope_id):
        raise UnauthorizedError(f"Scope {caller.scope_id} has no access to scope {scope_id}")


def create_company(name: str, code: str | None = None) -> ScopeNode:
    """Create a company together with its COMPANY root scope."""
    if not name:
        raise ValidationError("Company name is required")

    with unit_of_work():
        company = Company(name=name, code=code, is_active=True)
        db.session.add(company)
        db.session.flush()

        root = ScopeNode(
            company_id=company.id,
            parent_id=None,
            level=SCOPE_LEVEL_COMPANY,
            name=name,
            is_active=True,
        )
        db.session.add(root)
    return root


def create_scope(parent_id: int, level: str, name: str) -> ScopeNode:
    if not name:
        raise ValidationError("Scope name is required")
    if level not in SCOPE_LEVELS:
        raise ValidationError(f"Unknown scope level {level!r}")

    with unit_of_work():
        parent = get_node(parent_id)
        if not parent.is_active:
            raise InvalidStateError(f"Parent scope {parent_id} is inactive")
        if not is_valid_child_level(parent.level, level):
            raise InvalidHierarchyError(f"A {level} scope cannot be placed under a {parent.level} scope")

        node = ScopeNode(
            company_id=parent.company_id,
            parent_id=parent.id,
            level=level,
            name=name,
            is_active=True,
        )
        db.session.add(node)
    return node


def deactivate_scope(scope_id: int) -> ScopeNode:
    with unit_of_work():
        node = get_node(scope_id)
        node.is_active = False
    return node


def get_scope_tree(scope_id: int) -> dict:
    root = get_node(scope_id)

    def _build(node: ScopeNode) -> dict:
        return {
            "scope": node.to_dict(),
            "children": [_build(child) for child in sorted(node.children, key=lambda c: c.id)],
        }

    return _build(root)
