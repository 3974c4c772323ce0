from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


STOCK_REQUEST_STATUS_DRAFT = "DRAFT"
STOCK_REQUEST_STATUS_SUBMITTED = "SUBMITTED"
STOCK_REQUEST_STATUS_APPROVED = "APPROVED"
STOCK_REQUEST_STATUS_REJECTED = "REJECTED"
STOCK_REQUEST_STATUS_FULFILLED = "FULFILLED"

FUND_REQUEST_STATUS_PENDING = "PENDING"
FUND_REQUEST_STATUS_APPROVED = "APPROVED"
FUND_REQUEST_STATUS_REJECTED = "REJECTED"


class StockRequest(db.Model):
    """
    Request for goods from a supplier scope (an ancestor level).

    LIFECYCLE:
    1. DRAFT: Created with its items by the requester scope
    2. SUBMITTED: Sent to the supplier for a decision
    3. APPROVED / REJECTED: Supplier decision
    4. FULFILLED: Stock moved supplier -> requester and payment booked
       requester FUND -> supplier INCOME, all in one DB transaction

    Items are fixed at creation. Once FULFILLED the request is history.
    """
    __tablename__ = "stock_requests"
    __table_args__ = (
        db.Index("ix_stock_requests_from_status", "from_scope_id", "status"),
        db.Index("ix_stock_requests_to_status", "to_scope_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Requester and supplier scopes
    from_scope_id = db.Column(db.Integer, db.ForeignKey("scope_nodes.id"), nullable=False, index=True)
    to_scope_id = db.Column(db.Integer, db.ForeignKey("scope_nodes.id"), nullable=False, index=True)

    # DRAFT, SUBMITTED, APPROVED, REJECTED, FULFILLED
    status = db.Column(db.String(16), nullable=False, default=STOCK_REQUEST_STATUS_DRAFT, index=True)

    requested_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    fulfilled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    rejection_reason = db.Column(db.Text, nullable=True)

    # Snapshot of the amount charged at fulfillment
    total_amount_cents = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    from_scope = db.relationship("ScopeNode", foreign_keys=[from_scope_id])
    to_scope = db.relationship("ScopeNode", foreign_keys=[to_scope_id])
    items = db.relationship(
        "StockRequestItem",
        backref="stock_request",
        lazy=True,
        order_by="StockRequestItem.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<StockRequest id={self.id} from={self.from_scope_id} to={self.to_scope_id} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "from_scope_id": self.from_scope_id,
            "to_scope_id": self.to_scope_id,
            "status": self.status,
            "requested_at": to_utc_z(self.requested_at),
            "submitted_at": to_utc_z(self.submitted_at),
            "approved_at": to_utc_z(self.approved_at),
            "rejected_at": to_utc_z(self.rejected_at),
            "fulfilled_at": to_utc_z(self.fulfilled_at),
            "rejection_reason": self.rejection_reason,
            "total_amount_cents": self.total_amount_cents,
            "items": [item.to_dict() for item in self.items],
        }


class StockRequestItem(db.Model):
    __tablename__ = "stock_request_items"
    __table_args__ = (
        db.UniqueConstraint("stock_request_id", "product_id", name="uq_stock_request_items_request_product"),
        db.CheckConstraint("qty > 0", name="ck_stock_request_items_qty_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    stock_request_id = db.Column(db.Integer, db.ForeignKey("stock_requests.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    qty = db.Column(db.Integer, nullable=False)

    # Supplier price captured at fulfillment
    unit_price_cents = db.Column(db.Integer, nullable=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stock_request_id": self.stock_request_id,
            "product_id": self.product_id,
            "qty": self.qty,
            "unit_price_cents": self.unit_price_cents,
        }


class FundRequest(db.Model):
    """
    Request for cash from a funder scope.

    LIFECYCLE:
    1. PENDING: Created by the requester
    2. APPROVED: Funder FUND -> requester FUND transfer booked (terminal)
    3. REJECTED: Declined with a reason, no money moves (terminal)
    """
    __tablename__ = "fund_requests"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_fund_requests_amount_positive"),
        db.Index("ix_fund_requests_to_status", "to_scope_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    from_scope_id = db.Column(db.Integer, db.ForeignKey("scope_nodes.id"), nullable=False, index=True)
    to_scope_id = db.Column(db.Integer, db.ForeignKey("scope_nodes.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)

    # PENDING, APPROVED, REJECTED
    status = db.Column(db.String(16), nullable=False, default=FUND_REQUEST_STATUS_PENDING, index=True)

    notes = db.Column(db.Text, nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    requested_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    ledger_entry_id = db.Column(db.Integer, db.ForeignKey("wallet_ledger_entries.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<FundRequest id={self.id} from={self.from_scope_id} to={self.to_scope_id} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "from_scope_id": self.from_scope_id,
            "to_scope_id": self.to_scope_id,
            "amount_cents": self.amount_cents,
            "status": self.status,
            "notes": self.notes,
            "rejection_reason": self.rejection_reason,
            "requested_at": to_utc_z(self.requested_at),
            "processed_at": to_utc_z(self.processed_at),
            "ledger_entry_id": self.ledger_entry_id,
        }
