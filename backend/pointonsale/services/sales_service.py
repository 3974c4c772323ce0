"""
Point-of-sale cash sales at LOCAL scopes.

A sale is one DB transaction: a SALE stock movement per line (no negative
stock) plus an external credit of the grand total into the shop's INCOME
account. The two ledgers are the record of the sale.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from decimal import Decimal

from flask import current_app

from ..context import CallerContext
from ..errors import InvalidHierarchyError, InvalidStateError, NotFoundError
from ..extensions import db
from ..models import Product, ProductAssignment
from ..models.inventory import TXN_TYPE_SALE
from ..models.tenancy import SCOPE_LEVEL_LOCAL
from ..models.wallets import WALLET_TYPE_INCOME
from ..validation import normalize_items
from . import inventory_service, pricing_service, scope_service, wallet_service
from .concurrency import unit_of_work
from .pricing_service import InvoiceLine, InvoiceTotals


REF_TYPE = "POSSale"


@dataclass
class SaleReceipt:
    ref_id: str
    scope_id: int
    lines: list[InvoiceLine] = field(default_factory=list)
    totals: InvoiceTotals = field(default_factory=InvoiceTotals)
    ledger_entry_id: int | None = None

    def to_dict(self) -> dict:
        return {
            "ref_id": self.ref_id,
            "scope_id": self.scope_id,
            "lines": [
                {
                    "product_id": line.product_id,
                    "qty": line.qty,
                    "unit_price_cents": line.unit_price_cents,
                    "tax_percent": str(line.tax_percent),
                }
                for line in self.lines
            ],
            "totals": self.totals.to_dict(),
            "ledger_entry_id": self.ledger_entry_id,
        }


def _price_lines(scope_id: int, items: list[tuple[int, int]]) -> list[InvoiceLine]:
    lines: list[InvoiceLine] = []
    for product_id, qty in items:
        product = db.session.query(Product).filter_by(id=product_id).first()
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")

        assignment = db.session.query(ProductAssignment).filter_by(
            scope_id=scope_id,
            product_id=product_id,
        ).first()
        if assignment is None:
            raise InvalidStateError(f"Product {product_id} is not assigned to scope {scope_id}")
        if not assignment.is_allowed:
            raise InvalidStateError(f"Product {product_id} is not allowed for sale at scope {scope_id}")

        lines.append(
            InvoiceLine(
                product_id=product_id,
                qty=qty,
                unit_price_cents=pricing_service.effective_unit_price_cents(scope_id, product_id),
                tax_percent=Decimal(str(product.gst_percent or 0)),
            )
        )
    return lines


def record_cash_sale(
    caller: CallerContext | None,
    *,
    scope_id: int,
    items,
    payment_ref: str | None = None,
) -> SaleReceipt:
    pairs = normalize_items(items)
    scope_service.ensure_can_access(caller, scope_id)

    scope = scope_service.get_node(scope_id)
    if scope.level != SCOPE_LEVEL_LOCAL:
        raise InvalidHierarchyError("Sales can only be recorded at a LOCAL scope")

    lines = _price_lines(scope_id, pairs)
    totals = pricing_service.calculate_totals(lines)
    receipt = SaleReceipt(ref_id=payment_ref or uuid.uuid4().hex, scope_id=scope_id, lines=lines, totals=totals)

    with unit_of_work():
        for line in lines:
            inventory_service.move(
                scope_id,
                line.product_id,
                -line.qty,
                TXN_TYPE_SALE,
                REF_TYPE,
                receipt.ref_id,
                allow_negative=False,
                commit=False,
            )

        if totals.grand_total_cents > 0:
            entry = wallet_service.credit_account(
                scope_id,
                WALLET_TYPE_INCOME,
                totals.grand_total_cents,
                REF_TYPE,
                receipt.ref_id,
                "POS Sale Confirmation: CASH",
                wallet_service.LedgerCharges(tax_cents=totals.tax_cents),
                commit=False,
            )
            receipt.ledger_entry_id = entry.id

    current_app.logger.info(
        "POS sale %s at scope %s, grand_total_cents=%s",
        receipt.ref_id, scope_id, totals.grand_total_cents,
    )
    return receipt
