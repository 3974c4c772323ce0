from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


SCOPE_LEVEL_COMPANY = "COMPANY"
SCOPE_LEVEL_STATE = "STATE"
SCOPE_LEVEL_DISTRICT = "DISTRICT"
SCOPE_LEVEL_LOCAL = "LOCAL"

# Fixed chain, top to bottom
SCOPE_LEVELS = (
    SCOPE_LEVEL_COMPANY,
    SCOPE_LEVEL_STATE,
    SCOPE_LEVEL_DISTRICT,
    SCOPE_LEVEL_LOCAL,
)


class Company(db.Model):
    """
    Multi-tenant root: every tenant is a Company.

    DESIGN:
    - Each company owns exactly one COMPANY-level ScopeNode (the tree root)
    - Scope nodes, products and everything hanging off them carry company_id
    - No data may cross company boundaries
    """
    __tablename__ = "companies"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Company id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class ScopeNode(db.Model):
    """
    Node in the Company -> State -> District -> Local tree.

    INVARIANTS:
    - parent_id is NULL only for the COMPANY root
    - level is exactly one step below the parent's level, except LOCAL,
      which may also attach directly under STATE or COMPANY
    - nodes are never reparented; they are deactivated, not deleted
    """
    __tablename__ = "scope_nodes"
    __table_args__ = (
        db.Index("ix_scope_nodes_company_level", "company_id", "level"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("scope_nodes.id"), nullable=True, index=True)

    # COMPANY, STATE, DISTRICT, LOCAL
    level = db.Column(db.String(16), nullable=False)
    name = db.Column(db.String(120), nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    company = db.relationship("Company", backref=db.backref("scope_nodes", lazy=True))
    parent = db.relationship("ScopeNode", remote_side=[id], backref=db.backref("children", lazy=True))

    def __repr__(self) -> str:
        return f"<ScopeNode id={self.id} level={self.level} parent_id={self.parent_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "parent_id": self.parent_id,
            "level": self.level,
            "name": self.name,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
