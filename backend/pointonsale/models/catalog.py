from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data (read-only input to pricing and sales).

    MULTI-TENANT: Products are scoped to a company via company_id.
    SKUs are unique within a company.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("company_id", "sku", name="uq_products_company_sku"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    # Default sale price; authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    gst_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    company = db.relationship("Company", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} company_id={self.company_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "sku": self.sku,
            "name": self.name,
            "price_cents": self.price_cents,
            "gst_percent": str(self.gst_percent) if self.gst_percent is not None else None,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class ProductAssignment(db.Model):
    """
    Per-scope product availability and optional price override.

    The override is the price this scope sells the product at (to downstream
    scopes and at the till).
    """
    __tablename__ = "product_assignments"
    __table_args__ = (
        db.UniqueConstraint("scope_id", "product_id", name="uq_product_assignments_scope_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    scope_id = db.Column(db.Integer, db.ForeignKey("scope_nodes.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    is_allowed = db.Column(db.Boolean, nullable=False, default=True)
    price_override_cents = db.Column(db.Integer, nullable=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "scope_id": self.scope_id,
            "product_id": self.product_id,
            "is_allowed": self.is_allowed,
            "price_override_cents": self.price_override_cents,
        }
