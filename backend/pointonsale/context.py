from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class CallerContext:
    """
    Identity of the caller as established by the boundary layer.

    Passed explicitly into every workflow call. Services never look up the
    caller from request globals.
    """
    scope_id: int
    permissions: frozenset[str] = field(default_factory=frozenset)

    def has_permission(self, code: str) -> bool:
        return code in self.permissions
