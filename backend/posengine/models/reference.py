from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

TAX_MODE_INCLUSIVE = "inclusive"
TAX_MODE_EXCLUSIVE = "exclusive"
TAX_MODES = (TAX_MODE_INCLUSIVE, TAX_MODE_EXCLUSIVE)


class Branch(db.Model):
    """
    Trading location inside a tenant.

    Every transaction, till, inventory row and day-end belongs to one branch.
    Read-only from the engine's point of view.
    """
    __tablename__ = "branches"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=False, unique=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class TenantSettings(db.Model):
    """
    Tenant-wide defaults (single row).

    WHY: Base currency and the cash payment method are explicit ids rather
    than lookups by name, so expected-cash never depends on a method being
    called "Cash".
    """
    __tablename__ = "tenant_settings"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tax_mode = db.Column(db.String(16), nullable=False, default=TAX_MODE_EXCLUSIVE)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    quotation_validity_days = db.Column(db.Integer, nullable=False, default=30)
    layby_deposit_bps = db.Column(db.Integer, nullable=False, default=0)
    cancellation_fee_cents = db.Column(db.Integer, nullable=False, default=0)

    base_currency_id = db.Column(db.Integer, db.ForeignKey("currencies.id"), nullable=True)
    cash_payment_method_id = db.Column(db.Integer, db.ForeignKey("payment_methods.id"), nullable=True)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())


class BranchSettings(db.Model):
    """Per-branch overrides; NULL means "use the tenant default"."""
    __tablename__ = "branch_settings"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, unique=True)
    tax_mode = db.Column(db.String(16), nullable=True)
    tax_rate_bps = db.Column(db.Integer, nullable=True)
    quotation_validity_days = db.Column(db.Integer, nullable=True)
    layby_deposit_bps = db.Column(db.Integer, nullable=True)
    cancellation_fee_cents = db.Column(db.Integer, nullable=True)

    branch = db.relationship("Branch", backref=db.backref("settings", uselist=False))


class ProductCategory(db.Model):
    __tablename__ = "product_categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)


class Product(db.Model):
    __tablename__ = "products"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    category_id = db.Column(db.Integer, db.ForeignKey("product_categories.id"), nullable=True, index=True)

    # Price/cost in cents; catalog changes never touch existing documents
    price_cents = db.Column(db.Integer, nullable=False)
    cost_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    category = db.relationship("ProductCategory")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "category_id": self.category_id,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "is_active": self.is_active,
        }


class Currency(db.Model):
    """
    Currency with its rate to the tenant's base currency.

    The rate is snapshotted onto each payment; cash movements are converted
    at the rate current when expected cash is calculated.
    """
    __tablename__ = "currencies"
    __table_args__ = (
        # At most one default currency per tenant store
        db.Index(
            "uq_currencies_single_default",
            "is_default",
            unique=True,
            sqlite_where=db.text("is_default = 1"),
            postgresql_where=db.text("is_default"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(3), nullable=False, unique=True)
    name = db.Column(db.String(64), nullable=False)
    exchange_rate = db.Column(db.Numeric(18, 6), nullable=False, default=1)
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "exchange_rate": str(self.exchange_rate),
            "is_default": self.is_default,
            "is_active": self.is_active,
        }


class PaymentMethod(db.Model):
    __tablename__ = "payment_methods"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)


class Discount(db.Model):
    """Named branch-scoped percentage discount (basis points)."""
    __tablename__ = "discounts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    percentage_bps = db.Column(db.Integer, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)


class Customer(db.Model):
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_branch_walk_in", "branch_id", "is_walk_in"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    is_walk_in = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_purchase_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "is_walk_in": self.is_walk_in,
            "is_active": self.is_active,
            "last_purchase_at": to_utc_z(self.last_purchase_at),
        }


class Till(db.Model):
    """Physical cash drawer at a branch; shifts are opened against a till."""
    __tablename__ = "tills"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "name", name="uq_tills_branch_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    name = db.Column(db.String(64), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    branch = db.relationship("Branch", backref=db.backref("tills", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "name": self.name,
            "is_active": self.is_active,
        }
