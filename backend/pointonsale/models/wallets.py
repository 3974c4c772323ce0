from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


WALLET_TYPE_FUND = "FUND"
WALLET_TYPE_INCOME = "INCOME"
WALLET_TYPE_SALES_INCENTIVE = "SALES_INCENTIVE"

WALLET_TYPES = (WALLET_TYPE_FUND, WALLET_TYPE_INCOME, WALLET_TYPE_SALES_INCENTIVE)


class WalletAccount(db.Model):
    """
    Typed money account owned by one scope.

    INVARIANTS:
    - Exactly one account per (scope_id, wallet_type), enforced by a unique constraint
    - balance_cents never goes negative
    - balance_cents is only written by wallet_service.transfer()
    """
    __tablename__ = "wallet_accounts"
    __table_args__ = (
        db.UniqueConstraint("scope_id", "wallet_type", name="uq_wallet_accounts_scope_type"),
        db.CheckConstraint("balance_cents >= 0", name="ck_wallet_accounts_balance_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    scope_id = db.Column(db.Integer, db.ForeignKey("scope_nodes.id"), nullable=False, index=True)

    # FUND, INCOME, SALES_INCENTIVE
    wallet_type = db.Column(db.String(32), nullable=False)

    balance_cents = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    scope = db.relationship("ScopeNode", backref=db.backref("wallet_accounts", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<WalletAccount id={self.id} scope_id={self.scope_id} type={self.wallet_type} balance_cents={self.balance_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "scope_id": self.scope_id,
            "wallet_type": self.wallet_type,
            "balance_cents": self.balance_cents,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class WalletLedgerEntry(db.Model):
    """
    Append-only record of one money movement.

    - from_account_id NULL means money entering the system (e.g. a till sale)
    - Written before the balances it explains, inside the same DB transaction
    - admin/tax/commission are an informational breakdown, not separately booked
    """
    __tablename__ = "wallet_ledger_entries"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_wallet_ledger_amount_positive"),
        db.CheckConstraint(
            "from_account_id IS NOT NULL OR to_account_id IS NOT NULL",
            name="ck_wallet_ledger_has_account",
        ),
        db.Index("ix_wallet_ledger_ref", "ref_type", "ref_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    from_account_id = db.Column(db.Integer, db.ForeignKey("wallet_accounts.id"), nullable=True, index=True)
    to_account_id = db.Column(db.Integer, db.ForeignKey("wallet_accounts.id"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)

    ref_type = db.Column(db.String(64), nullable=False)
    ref_id = db.Column(db.String(64), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    admin_charge_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    commission_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    from_account = db.relationship("WalletAccount", foreign_keys=[from_account_id])
    to_account = db.relationship("WalletAccount", foreign_keys=[to_account_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "from_account_id": self.from_account_id,
            "to_account_id": self.to_account_id,
            "amount_cents": self.amount_cents,
            "ref_type": self.ref_type,
            "ref_id": self.ref_id,
            "notes": self.notes,
            "admin_charge_cents": self.admin_charge_cents,
            "tax_cents": self.tax_cents,
            "commission_cents": self.commission_cents,
            "created_at": to_utc_z(self.created_at),
        }
