"""
Cart resolution shared by the sale, quotation and layby workflows.

Turns caller input (product ids, quantities, discount ids) into priced
lines, and writes a PricingResult onto a document and its item rows.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Branch, Discount, Product
from .pricing_service import PricingLine, PricingResult, calculate_totals
from .settings_service import EffectiveSettings


@dataclass(frozen=True)
class CartItem:
    product_id: int
    quantity: int
    discount_id: int | None = None


@dataclass(frozen=True)
class ResolvedLine:
    product_id: int
    discount_id: int | None
    pricing: PricingLine


@dataclass(frozen=True)
class PricedCart:
    lines: tuple[ResolvedLine, ...]
    order_discount_id: int | None
    result: PricingResult


def get_active_branch(branch_id: int) -> Branch:
    branch = db.session.get(Branch, branch_id)
    if branch is None:
        raise NotFoundError("Branch not found", details={"branch_id": branch_id})
    if not branch.is_active:
        raise ValidationError("Branch is inactive", details={"branch_id": branch_id})
    return branch


def resolve_discount(branch_id: int, discount_id: int | None) -> int:
    """Return the discount's percentage in basis points (0 when no discount)."""
    if discount_id is None:
        return 0
    discount = db.session.get(Discount, discount_id)
    if discount is None or discount.branch_id != branch_id:
        raise NotFoundError("Discount not found", details={"discount_id": discount_id})
    if not discount.is_active:
        raise ValidationError("Discount is inactive", details={"discount_id": discount_id})
    return discount.percentage_bps


def order_discount_for_update(current_id: int | None, discount_id: int | None, clear_discount: bool) -> int | None:
    """Order discount a re-priced document should carry: new, kept, or none."""
    if clear_discount:
        if discount_id is not None:
            raise ValidationError("Cannot set and clear the order discount at once")
        return None
    return discount_id if discount_id is not None else current_id


def load_active_products(product_ids: Iterable[int]) -> dict[int, Product]:
    ids = sorted(set(product_ids))
    products = {p.id: p for p in db.session.query(Product).filter(Product.id.in_(ids)).all()}

    missing = [pid for pid in ids if pid not in products]
    if missing:
        raise NotFoundError("Product not found", details={"product_ids": missing})

    inactive = [pid for pid in ids if not products[pid].is_active]
    if inactive:
        raise ValidationError("Product is inactive", details={"product_ids": inactive})
    return products


def price_cart(
    *,
    branch_id: int,
    items: Sequence[CartItem],
    settings: EffectiveSettings,
    order_discount_id: int | None = None,
) -> PricedCart:
    """Price a cart at current catalog prices."""
    if not items:
        raise ValidationError("At least one item is required")

    products = load_active_products(item.product_id for item in items)

    lines = []
    for item in items:
        if item.quantity is None or item.quantity <= 0:
            raise ValidationError(
                "Quantity must be greater than zero",
                details={"product_id": item.product_id, "quantity": item.quantity},
            )
        lines.append(ResolvedLine(
            product_id=item.product_id,
            discount_id=item.discount_id,
            pricing=PricingLine(
                unit_price_cents=products[item.product_id].price_cents,
                quantity=item.quantity,
                discount_bps=resolve_discount(branch_id, item.discount_id),
            ),
        ))

    order_discount_bps = resolve_discount(branch_id, order_discount_id)
    result = calculate_totals(
        [line.pricing for line in lines],
        tax_mode=settings.tax_mode,
        tax_rate_bps=settings.tax_rate_bps,
        order_discount_bps=order_discount_bps,
    )
    return PricedCart(lines=tuple(lines), order_discount_id=order_discount_id, result=result)


def price_locked(document) -> PricedCart:
    """
    Re-price a document's own snapshot (prices, discounts, tax terms).

    Used when a quotation converts: the new document must carry exactly the
    quoted amounts, whatever the catalog says today.
    """
    lines = tuple(
        ResolvedLine(
            product_id=item.product_id,
            discount_id=item.discount_id,
            pricing=PricingLine(
                unit_price_cents=item.unit_price_cents,
                quantity=item.quantity,
                discount_bps=item.discount_bps,
            ),
        )
        for item in document.items
    )
    result = calculate_totals(
        [line.pricing for line in lines],
        tax_mode=document.tax_mode,
        tax_rate_bps=document.tax_rate_bps,
        order_discount_bps=document.discount_bps,
    )
    return PricedCart(lines=lines, order_discount_id=document.discount_id, result=result)


def apply_cart(document, cart: PricedCart, item_cls) -> None:
    """
    Write totals onto ``document`` and replace its items with ``item_cls`` rows.

    Documents that track a balance get amount_due recomputed against what is
    already paid, so paid + due = total holds whenever the row is flushed.
    """
    result = cart.result
    # Replacing the collection lazy-loads the old items; no flush until the header is consistent.
    with db.session.no_autoflush:
        document.subtotal_cents = result.subtotal_cents
        document.discount_id = cart.order_discount_id
        document.discount_bps = result.discount_bps
        document.discount_amount_cents = result.discount_amount_cents
        document.tax_mode = result.tax_mode
        document.tax_rate_bps = result.tax_rate_bps
        document.tax_amount_cents = result.tax_amount_cents
        document.total_cents = result.total_cents
        if hasattr(document, "amount_due_cents"):
            document.amount_due_cents = result.total_cents - (document.amount_paid_cents or 0)

        document.items = [
            item_cls(
                product_id=line.product_id,
                quantity=priced.quantity,
                unit_price_cents=priced.unit_price_cents,
                discount_id=line.discount_id,
                discount_bps=priced.discount_bps,
                discount_amount_cents=priced.discount_amount_cents,
                line_total_cents=priced.line_total_cents,
            )
            for line, priced in zip(cart.lines, result.lines)
        ]


def items_from_document(document) -> list[CartItem]:
    """Same products, quantities and discounts as an existing document."""
    return [
        CartItem(product_id=item.product_id, quantity=item.quantity, discount_id=item.discount_id)
        for item in document.items
    ]
