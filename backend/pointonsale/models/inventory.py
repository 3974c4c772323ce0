from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


TXN_TYPE_SALE = "SALE"
TXN_TYPE_ADJUSTMENT = "ADJUSTMENT"
TXN_TYPE_TRANSFER = "TRANSFER"

TXN_TYPES = (TXN_TYPE_SALE, TXN_TYPE_ADJUSTMENT, TXN_TYPE_TRANSFER)


class StockBalance(db.Model):
    """
    On-hand quantity of one product at one scope.

    One row per (scope_id, product_id), created lazily on first movement.
    qty_on_hand is only written by inventory_service.move(); it may be
    negative only when a movement explicitly allowed it.
    """
    __tablename__ = "stock_balances"
    __table_args__ = (
        db.UniqueConstraint("scope_id", "product_id", name="uq_stock_balances_scope_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    scope_id = db.Column(db.Integer, db.ForeignKey("scope_nodes.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    qty_on_hand = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product")

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<StockBalance scope_id={self.scope_id} product_id={self.product_id} qty={self.qty_on_hand}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "scope_id": self.scope_id,
            "product_id": self.product_id,
            "qty_on_hand": self.qty_on_hand,
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryLedgerEntry(db.Model):
    """Append-only record of one quantity change to one stock balance."""
    __tablename__ = "inventory_ledger_entries"
    __table_args__ = (
        db.Index("ix_invledger_scope_product_created", "scope_id", "product_id", "created_at"),
        db.Index("ix_invledger_ref", "ref_type", "ref_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    scope_id = db.Column(db.Integer, db.ForeignKey("scope_nodes.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    qty_change = db.Column(db.Integer, nullable=False)

    # SALE, ADJUSTMENT, TRANSFER
    txn_type = db.Column(db.String(16), nullable=False, index=True)

    ref_type = db.Column(db.String(64), nullable=False)
    ref_id = db.Column(db.String(64), nullable=False)
    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "scope_id": self.scope_id,
            "product_id": self.product_id,
            "qty_change": self.qty_change,
            "txn_type": self.txn_type,
            "ref_type": self.ref_type,
            "ref_id": self.ref_id,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
