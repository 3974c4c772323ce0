from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app

from ..extensions import db
from ..models import Product, ProductAssignment


def effective_unit_price_cents(scope_id: int, product_id: int) -> int:
    """
    Price a scope charges for a product.

    Order: the scope's assignment override, then the product default price.
    A missing product yields 0; callers validate products first, so that path
    is logged as anomalous.
    """
    assignment = db.session.query(ProductAssignment).filter_by(
        scope_id=scope_id,
        product_id=product_id,
    ).first()
    if assignment is not None and assignment.price_override_cents is not None:
        return assignment.price_override_cents

    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        current_app.logger.warning(
            "Pricing fallback to zero: product %s not found (scope %s)", product_id, scope_id
        )
        return 0

    return product.price_cents


def calculate_tax_cents(amount_cents: int, tax_percent) -> int:
    """Tax on an amount, nearest cent (half-up)."""
    tax = Decimal(amount_cents) * Decimal(str(tax_percent)) / Decimal(100)
    return int(tax.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class InvoiceLine:
    product_id: int
    qty: int
    unit_price_cents: int
    tax_percent: Decimal = Decimal("0")
    discount_cents: int = 0


@dataclass
class InvoiceTotals:
    subtotal_cents: int = 0
    discount_cents: int = 0
    tax_cents: int = 0
    grand_total_cents: int = 0
    # "GST 5%" -> tax cents at that rate
    tax_lines: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "grand_total_cents": self.grand_total_cents,
            "tax_lines": dict(self.tax_lines),
        }


def _rate_label(tax_percent) -> str:
    rate = Decimal(str(tax_percent)).normalize()
    return f"GST {rate:f}%"


def calculate_totals(lines: list[InvoiceLine]) -> InvoiceTotals:
    totals = InvoiceTotals()
    for line in lines:
        line_total = line.unit_price_cents * line.qty
        taxable = line_total - line.discount_cents
        tax = calculate_tax_cents(taxable, line.tax_percent)

        totals.subtotal_cents += line_total
        totals.discount_cents += line.discount_cents
        totals.tax_cents += tax

        label = _rate_label(line.tax_percent)
        totals.tax_lines[label] = totals.tax_lines.get(label, 0) + tax

    totals.grand_total_cents = totals.subtotal_cents - totals.discount_cents + totals.tax_cents
    return totals
