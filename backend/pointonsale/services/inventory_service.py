# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

# backend/pointonsale/services/inventory_service.py

"""
Inventory Invariants (authoritative)

Inventory model:
- On-hand quantity is stored per (scope_id, product_id) in StockBalance,
  one row per pair, created lazily by the first movement.
- move() is the single mutation primitive. Sales, adjustments and transfers
  all funnel through it, so InventoryLedgerEntry is a complete ordered audit
  trail per scope/product.

Business invariants:
- qty_on_hand never goes below zero unless the movement passed
  allow_negative=True (administrative adjustments, inbound transfer legs).
- A rejected movement writes nothing: no balance row, no ledger entry.
- The balance row is locked FOR UPDATE before the check, so the
  check-then-mutate sequence is race-free under concurrent callers.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..context import CallerContext
from ..errors import InsufficientStockError, NotFoundError, TransientStoreFailure, ValidationError
from ..extensions import db
from ..models import InventoryLedgerEntry, Product, StockBalance
from ..models.inventory import TXN_TYPE_ADJUSTMENT, TXN_TYPES
from . import scope_service
from .concurrency import lock_for_update, unit_of_work


def get_balance(scope_id: int, product_id: int) -> StockBalance | None:
    """Absent means zero, not an error."""
    return db.session.query(StockBalance).filter_by(scope_id=scope_id, product_id=product_id).first()


def get_quantity_on_hand(scope_id: int, product_id: int) -> int:
    balance = get_balance(scope_id, product_id)
    return balance.qty_on_hand if balance is not None else 0


def move(
    scope_id: int,
    product_id: int,
    qty_change: int,
    txn_type: str,
    ref_type: str,
    ref_id: str,
    allow_negative: bool = False,
    *,
    note: str | None = None,
    commit: bool = True,
) -> InventoryLedgerEntry:
    """
    Apply one signed quantity change and record it in the inventory ledger.

    Raises:
        ValidationError: zero/non-integer change or unknown txn_type
        InsufficientStockError: change would take on-hand below zero and
            allow_negative is False (message states available vs requested)
        TransientStoreFailure: another writer created the stock row first
    """
    if isinstance(qty_change, bool) or not isinstance(qty_change, int):
        raise ValidationError("qty_change must be an integer")
    if qty_change == 0:
        raise ValidationError("qty_change must be non-zero")
    if txn_type not in TXN_TYPES:
        raise ValidationError(f"Unknown txn_type {txn_type!r}")

    with unit_of_work(commit=commit):
        balance = lock_for_update(
            db.session.query(StockBalance).filter_by(scope_id=scope_id, product_id=product_id)
        ).first()

        if balance is None:
            if qty_change < 0 and not allow_negative:
                raise InsufficientStockError(
                    f"Insufficient stock for product {product_id} at scope {scope_id}. "
                    f"Available: 0, Requested: {-qty_change}",
                    available=0,
                    requested=-qty_change,
                )
            balance = StockBalance(scope_id=scope_id, product_id=product_id, qty_on_hand=qty_change)
            db.session.add(balance)
            try:
                db.session.flush()
            except IntegrityError as exc:
                raise TransientStoreFailure(
                    f"Concurrent stock row creation for scope {scope_id} product {product_id}"
                ) from exc
        else:
            if not allow_negative and balance.qty_on_hand + qty_change < 0:
                raise InsufficientStockError(
                    f"Insufficient stock for product {product_id} at scope {scope_id}. "
                    f"Available: {balance.qty_on_hand}, Requested: {-qty_change}",
                    available=balance.qty_on_hand,
                    requested=-qty_change,
                )
            balance.qty_on_hand += qty_change

        entry = InventoryLedgerEntry(
            scope_id=scope_id,
            product_id=product_id,
            qty_change=qty_change,
            txn_type=txn_type,
            ref_type=ref_type,
            ref_id=str(ref_id),
            note=note,
        )
        db.session.add(entry)
        db.session.flush()

    current_app.logger.debug(
        "Stock move scope=%s product=%s change=%s type=%s ref=%s:%s",
        scope_id, product_id, qty_change, txn_type, ref_type, ref_id,
    )
    return entry


def adjust_stock(
    caller: CallerContext | None,
    *,
    scope_id: int,
    product_id: int,
    qty_change: int,
    note: str | None = None,
) -> InventoryLedgerEntry:
    """
    Administrative correction (shrink, found stock, opening balance).

    Adjustments are trusted to take on-hand negative; the permission gate
    for them lives at the boundary.
    """
    scope_service.ensure_can_access(caller, scope_id)
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")

    ref_id = str(caller.scope_id) if caller is not None else "0"
    return move(
        scope_id,
        product_id,
        qty_change,
        TXN_TYPE_ADJUSTMENT,
        "ManualAdjustment",
        ref_id,
        allow_negative=True,
        note=note or "Manual Adjustment",
    )


def list_balances(scope_id: int) -> list[StockBalance]:
    scope_service.get_node(scope_id)
    return (
        db.session.query(StockBalance)
        .filter_by(scope_id=scope_id)
        .order_by(StockBalance.product_id.asc())
        .all()
    )


def list_ledger(scope_id: int, product_id: int | None = None, *, limit: int = 200) -> list[InventoryLedgerEntry]:
    scope_service.get_node(scope_id)
    q = db.session.query(InventoryLedgerEntry).filter_by(scope_id=scope_id)
    if product_id is not None:
        q = q.filter_by(product_id=product_id)

    return q.order_by(
        InventoryLedgerEntry.created_at.desc(),
        InventoryLedgerEntry.id.desc(),
    ).limit(limit).all()
