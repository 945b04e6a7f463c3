from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from sqlalchemy import event

from ..extensions import db
from ..time_utils import to_utc_z

SALE_TYPE_CREDIT = "credit"
SALE_TYPE_TILL = "till"

SALE_DRAFT = "draft"
SALE_CONFIRMED = "confirmed"
SALE_PARTIALLY_PAID = "partially_paid"
SALE_FULLY_PAID = "fully_paid"
SALE_COMPLETED = "completed"
SALE_CANCELLED = "cancelled"

QUOTATION_DRAFT = "draft"
QUOTATION_SENT = "sent"
QUOTATION_ACCEPTED = "accepted"
QUOTATION_REJECTED = "rejected"
QUOTATION_EXPIRED = "expired"

LAYBY_DRAFT = "draft"
LAYBY_ACTIVE = "active"
LAYBY_PARTIALLY_PAID = "partially_paid"
LAYBY_FULLY_PAID = "fully_paid"
LAYBY_COLLECTED = "collected"
LAYBY_CANCELLED = "cancelled"


class Sale(db.Model):
    """
    Sale document (credit invoice or till sale).

    LIFECYCLE:
    - draft: editable, no stock effect
    - confirmed: stock deducted, awaiting payment
    - partially_paid / fully_paid: payments recorded
    - completed: till sale paid in full at the counter
    - cancelled: draft abandoned, items removed

    INVARIANT: amount_paid_cents + amount_due_cents == total_cents and
    amount_due_cents >= 0 (also enforced by CHECK constraints).
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_branch_status_date", "branch_id", "status", "sale_date"),
        db.CheckConstraint("amount_paid_cents + amount_due_cents = total_cents", name="ck_sales_balance"),
        db.CheckConstraint("amount_due_cents >= 0", name="ck_sales_due_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(32), nullable=False, unique=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    sale_type = db.Column(db.String(16), nullable=False, default=SALE_TYPE_CREDIT)
    status = db.Column(db.String(16), nullable=False, default=SALE_DRAFT, index=True)
    sale_date = db.Column(db.DateTime(timezone=True), nullable=False)

    # Totals (cents); percentages in basis points
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_id = db.Column(db.Integer, db.ForeignKey("discounts.id"), nullable=True)
    discount_bps = db.Column(db.Integer, nullable=False, default=0)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_mode = db.Column(db.String(16), nullable=False)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    tax_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_due_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)
    quotation_id = db.Column(db.Integer, db.ForeignKey("quotations.id", use_alter=True, name="fk_sales_quotation_id_quotations"), nullable=True)

    created_by = db.Column(db.Integer, nullable=True)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "SaleItem",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleItem.id",
    )
    customer = db.relationship("Customer")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "branch_id": self.branch_id,
            "customer_id": self.customer_id,
            "sale_type": self.sale_type,
            "status": self.status,
            "sale_date": to_utc_z(self.sale_date),
            "subtotal_cents": self.subtotal_cents,
            "discount_id": self.discount_id,
            "discount_bps": self.discount_bps,
            "discount_amount_cents": self.discount_amount_cents,
            "tax_mode": self.tax_mode,
            "tax_rate_bps": self.tax_rate_bps,
            "tax_amount_cents": self.tax_amount_cents,
            "total_cents": self.total_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "amount_due_cents": self.amount_due_cents,
            "notes": self.notes,
            "quotation_id": self.quotation_id,
            "created_by": self.created_by,
            "confirmed_at": to_utc_z(self.confirmed_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancelled_by": self.cancelled_by,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """Sale line. unit_price_cents is a snapshot taken at creation."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_id = db.Column(db.Integer, db.ForeignKey("discounts.id"), nullable=True)
    discount_bps = db.Column(db.Integer, nullable=False, default=0)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship("Sale", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_id": self.discount_id,
            "discount_bps": self.discount_bps,
            "discount_amount_cents": self.discount_amount_cents,
            "line_total_cents": self.line_total_cents,
        }


class Quotation(db.Model):
    """
    Non-binding, price-locked offer.

    LIFECYCLE: draft -> sent -> accepted | rejected | expired
    A sent quotation past expiry_date is flipped to expired on the next read.
    Quotations never touch inventory.
    """
    __tablename__ = "quotations"
    __table_args__ = (
        db.Index("ix_quotations_branch_status", "branch_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    quotation_number = db.Column(db.String(32), nullable=False, unique=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=QUOTATION_DRAFT, index=True)
    quotation_date = db.Column(db.DateTime(timezone=True), nullable=False)
    expiry_date = db.Column(db.DateTime(timezone=True), nullable=False)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_id = db.Column(db.Integer, db.ForeignKey("discounts.id"), nullable=True)
    discount_bps = db.Column(db.Integer, nullable=False, default=0)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_mode = db.Column(db.String(16), nullable=False)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    tax_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)

    # Conversion / recreation trail
    converted_to_sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True)
    converted_to_layby_id = db.Column(db.Integer, db.ForeignKey("laybys.id", use_alter=True, name="fk_quotations_converted_to_layby_id_laybys"), nullable=True)
    converted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    recreated_from_id = db.Column(db.Integer, db.ForeignKey("quotations.id"), nullable=True)

    created_by = db.Column(db.Integer, nullable=True)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "QuotationItem",
        back_populates="quotation",
        cascade="all, delete-orphan",
        order_by="QuotationItem.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "quotation_number": self.quotation_number,
            "branch_id": self.branch_id,
            "customer_id": self.customer_id,
            "status": self.status,
            "quotation_date": to_utc_z(self.quotation_date),
            "expiry_date": to_utc_z(self.expiry_date),
            "subtotal_cents": self.subtotal_cents,
            "discount_id": self.discount_id,
            "discount_bps": self.discount_bps,
            "discount_amount_cents": self.discount_amount_cents,
            "tax_mode": self.tax_mode,
            "tax_rate_bps": self.tax_rate_bps,
            "tax_amount_cents": self.tax_amount_cents,
            "total_cents": self.total_cents,
            "notes": self.notes,
            "converted_to_sale_id": self.converted_to_sale_id,
            "converted_to_layby_id": self.converted_to_layby_id,
            "converted_at": to_utc_z(self.converted_at),
            "recreated_from_id": self.recreated_from_id,
            "created_by": self.created_by,
            "sent_at": to_utc_z(self.sent_at),
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class QuotationItem(db.Model):
    __tablename__ = "quotation_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_quotation_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    quotation_id = db.Column(db.Integer, db.ForeignKey("quotations.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_id = db.Column(db.Integer, db.ForeignKey("discounts.id"), nullable=True)
    discount_bps = db.Column(db.Integer, nullable=False, default=0)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)

    quotation = db.relationship("Quotation", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_id": self.discount_id,
            "discount_bps": self.discount_bps,
            "discount_amount_cents": self.discount_amount_cents,
            "line_total_cents": self.line_total_cents,
        }


class Layby(db.Model):
    """
    Deposit-based reservation sale.

    LIFECYCLE:
    - draft: editable while nothing has been paid
    - active: stock reserved per item
    - partially_paid / fully_paid: instalments recorded
    - collected: customer took the goods
    - cancelled: from draft/active/partially_paid/fully_paid; reserved stock returned

    INVARIANT: amount_paid_cents + amount_due_cents == total_cents.
    """
    __tablename__ = "laybys"
    __table_args__ = (
        db.Index("ix_laybys_branch_status", "branch_id", "status"),
        db.CheckConstraint("amount_paid_cents + amount_due_cents = total_cents", name="ck_laybys_balance"),
        db.CheckConstraint("amount_due_cents >= 0", name="ck_laybys_due_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    layby_number = db.Column(db.String(32), nullable=False, unique=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=LAYBY_DRAFT, index=True)
    layby_date = db.Column(db.DateTime(timezone=True), nullable=False)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_id = db.Column(db.Integer, db.ForeignKey("discounts.id"), nullable=True)
    discount_bps = db.Column(db.Integer, nullable=False, default=0)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_mode = db.Column(db.String(16), nullable=False)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    tax_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_due_cents = db.Column(db.Integer, nullable=False, default=0)

    # Terms captured from effective settings at creation
    deposit_required_cents = db.Column(db.Integer, nullable=False, default=0)
    cancellation_fee_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)
    quotation_id = db.Column(db.Integer, db.ForeignKey("quotations.id"), nullable=True)

    created_by = db.Column(db.Integer, nullable=True)
    activated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    collected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    collected_by = db.Column(db.Integer, nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by = db.Column(db.Integer, nullable=True)
    cancellation_reason = db.Column(db.String(255), nullable=True)
    refund_amount_cents = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "LaybyItem",
        back_populates="layby",
        cascade="all, delete-orphan",
        order_by="LaybyItem.id",
    )
    customer = db.relationship("Customer")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "layby_number": self.layby_number,
            "branch_id": self.branch_id,
            "customer_id": self.customer_id,
            "status": self.status,
            "layby_date": to_utc_z(self.layby_date),
            "subtotal_cents": self.subtotal_cents,
            "discount_id": self.discount_id,
            "discount_bps": self.discount_bps,
            "discount_amount_cents": self.discount_amount_cents,
            "tax_mode": self.tax_mode,
            "tax_rate_bps": self.tax_rate_bps,
            "tax_amount_cents": self.tax_amount_cents,
            "total_cents": self.total_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "amount_due_cents": self.amount_due_cents,
            "deposit_required_cents": self.deposit_required_cents,
            "cancellation_fee_cents": self.cancellation_fee_cents,
            "notes": self.notes,
            "quotation_id": self.quotation_id,
            "created_by": self.created_by,
            "activated_at": to_utc_z(self.activated_at),
            "collected_at": to_utc_z(self.collected_at),
            "collected_by": self.collected_by,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancelled_by": self.cancelled_by,
            "cancellation_reason": self.cancellation_reason,
            "refund_amount_cents": self.refund_amount_cents,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class LaybyItem(db.Model):
    """Layby line; stock_reserved tells cancellation whether to return stock."""
    __tablename__ = "layby_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_layby_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    layby_id = db.Column(db.Integer, db.ForeignKey("laybys.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_id = db.Column(db.Integer, db.ForeignKey("discounts.id"), nullable=True)
    discount_bps = db.Column(db.Integer, nullable=False, default=0)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)
    stock_reserved = db.Column(db.Boolean, nullable=False, default=False)
    stock_reserved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    layby = db.relationship("Layby", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_id": self.discount_id,
            "discount_bps": self.discount_bps,
            "discount_amount_cents": self.discount_amount_cents,
            "line_total_cents": self.line_total_cents,
            "stock_reserved": self.stock_reserved,
            "stock_reserved_at": to_utc_z(self.stock_reserved_at),
        }


# =============================================================================
# PAYMENTS
# =============================================================================

@dataclass(frozen=True)
class SaleTarget:
    sale_id: int


@dataclass(frozen=True)
class LaybyTarget:
    layby_id: int


PaymentTarget = Union[SaleTarget, LaybyTarget]


class Payment(db.Model):
    """
    Money received against exactly one sale or one layby.

    WHY: Payments are immutable. Corrections are new offsetting payments,
    never edits, so shift and day-end totals can always be recomputed from
    the rows that exist.

    amount_cents is in the payment currency; amount_base_cents is
    amount_cents * exchange_rate (rate snapshotted at payment time).
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint(
            "(sale_id IS NULL AND layby_id IS NOT NULL) OR (sale_id IS NOT NULL AND layby_id IS NULL)",
            name="ck_payments_single_target",
        ),
        db.CheckConstraint("amount_cents > 0", name="ck_payments_amount_positive"),
        db.Index("ix_payments_shift_method", "shift_id", "payment_method_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    receipt_number = db.Column(db.String(32), nullable=False, unique=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    layby_id = db.Column(db.Integer, db.ForeignKey("laybys.id"), nullable=True, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    currency_id = db.Column(db.Integer, db.ForeignKey("currencies.id"), nullable=False)
    exchange_rate = db.Column(db.Numeric(18, 6), nullable=False)
    amount_base_cents = db.Column(db.Integer, nullable=False)
    payment_method_id = db.Column(db.Integer, db.ForeignKey("payment_methods.id"), nullable=False)

    reference_number = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    payment_date = db.Column(db.DateTime(timezone=True), nullable=False)
    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def target(self) -> PaymentTarget:
        if self.sale_id is not None:
            return SaleTarget(self.sale_id)
        return LaybyTarget(self.layby_id)

    @target.setter
    def target(self, value: PaymentTarget) -> None:
        if isinstance(value, SaleTarget):
            self.sale_id, self.layby_id = value.sale_id, None
        elif isinstance(value, LaybyTarget):
            self.sale_id, self.layby_id = None, value.layby_id
        else:
            raise TypeError(f"Unsupported payment target: {value!r}")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "receipt_number": self.receipt_number,
            "branch_id": self.branch_id,
            "sale_id": self.sale_id,
            "layby_id": self.layby_id,
            "shift_id": self.shift_id,
            "amount_cents": self.amount_cents,
            "currency_id": self.currency_id,
            "exchange_rate": str(self.exchange_rate),
            "amount_base_cents": self.amount_base_cents,
            "payment_method_id": self.payment_method_id,
            "reference_number": self.reference_number,
            "notes": self.notes,
            "payment_date": to_utc_z(self.payment_date),
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(Payment, "before_update")
def _reject_payment_update(mapper, connection, target):
    raise ValueError(f"Payment {target.receipt_number} is immutable; record an offsetting payment instead")
