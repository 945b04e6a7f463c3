"""Initial transaction engine schema

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_initial"
down_revision = None
branch_labels = None
depends_on = None


def _ts(name, nullable=True, **kwargs):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable, **kwargs)


def _now(name):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def _priced_lines(table, parent_table, parent_column):
    """Shared shape of sale/quotation/layby lines (prices snapshotted)."""
    return (
        table,
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(parent_column, sa.Integer(), sa.ForeignKey(f"{parent_table}.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("discount_id", sa.Integer(), sa.ForeignKey("discounts.id"), nullable=True),
        sa.Column("discount_bps", sa.Integer(), nullable=False),
        sa.Column("discount_amount_cents", sa.Integer(), nullable=False),
        sa.Column("line_total_cents", sa.Integer(), nullable=False),
        sa.CheckConstraint("quantity > 0", name=f"ck_{table}_quantity_positive"),
    )


def _totals():
    return [
        sa.Column("subtotal_cents", sa.Integer(), nullable=False),
        sa.Column("discount_id", sa.Integer(), sa.ForeignKey("discounts.id"), nullable=True),
        sa.Column("discount_bps", sa.Integer(), nullable=False),
        sa.Column("discount_amount_cents", sa.Integer(), nullable=False),
        sa.Column("tax_mode", sa.String(16), nullable=False),
        sa.Column("tax_rate_bps", sa.Integer(), nullable=False),
        sa.Column("tax_amount_cents", sa.Integer(), nullable=False),
        sa.Column("total_cents", sa.Integer(), nullable=False),
    ]


def upgrade():
    # Reference data
    op.create_table(
        "branches",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("code", sa.String(32), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _now("created_at"),
    )
    op.create_index("ix_branches_code", "branches", ["code"], unique=True)

    op.create_table(
        "currencies",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(3), nullable=False, unique=True),
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column("exchange_rate", sa.Numeric(18, 6), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
    )
    op.create_index(
        "uq_currencies_single_default",
        "currencies",
        ["is_default"],
        unique=True,
        sqlite_where=sa.text("is_default = 1"),
        postgresql_where=sa.text("is_default"),
    )

    op.create_table(
        "payment_methods",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(64), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
    )

    op.create_table(
        "tenant_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tax_mode", sa.String(16), nullable=False),
        sa.Column("tax_rate_bps", sa.Integer(), nullable=False),
        sa.Column("quotation_validity_days", sa.Integer(), nullable=False),
        sa.Column("layby_deposit_bps", sa.Integer(), nullable=False),
        sa.Column("cancellation_fee_cents", sa.Integer(), nullable=False),
        sa.Column("base_currency_id", sa.Integer(), sa.ForeignKey("currencies.id"), nullable=True),
        sa.Column("cash_payment_method_id", sa.Integer(), sa.ForeignKey("payment_methods.id"), nullable=True),
        _now("updated_at"),
    )

    op.create_table(
        "branch_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=False, unique=True),
        sa.Column("tax_mode", sa.String(16), nullable=True),
        sa.Column("tax_rate_bps", sa.Integer(), nullable=True),
        sa.Column("quotation_validity_days", sa.Integer(), nullable=True),
        sa.Column("layby_deposit_bps", sa.Integer(), nullable=True),
        sa.Column("cancellation_fee_cents", sa.Integer(), nullable=True),
    )

    op.create_table(
        "product_categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(120), nullable=False, unique=True),
    )

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sku", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("product_categories.id"), nullable=True),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("cost_cents", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
    )
    op.create_index("ix_products_sku", "products", ["sku"], unique=True)
    op.create_index("ix_products_category_id", "products", ["category_id"])

    op.create_table(
        "discounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("percentage_bps", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
    )
    op.create_index("ix_discounts_branch_id", "discounts", ["branch_id"])

    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("is_walk_in", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _ts("last_purchase_at"),
    )
    op.create_index("ix_customers_branch_id", "customers", ["branch_id"])
    op.create_index("ix_customers_branch_walk_in", "customers", ["branch_id", "is_walk_in"])

    op.create_table(
        "tills",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=False),
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.UniqueConstraint("branch_id", "name", name="uq_tills_branch_name"),
    )
    op.create_index("ix_tills_branch_id", "tills", ["branch_id"])

    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("series", sa.String(16), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False),
        sa.UniqueConstraint("series", "year", name="uq_document_sequences_series_year"),
    )

    # Inventory ledger
    op.create_table(
        "branch_inventory",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        _now("updated_at"),
        sa.UniqueConstraint("branch_id", "product_id", name="uq_branch_inventory_branch_product"),
        sa.CheckConstraint("quantity >= 0", name="ck_branch_inventory_non_negative"),
    )
    op.create_index("ix_branch_inventory_branch_id", "branch_inventory", ["branch_id"])
    op.create_index("ix_branch_inventory_product_id", "branch_inventory", ["product_id"])

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("movement_type", sa.String(32), nullable=False),
        sa.Column("quantity_delta", sa.Integer(), nullable=False),
        sa.Column("quantity_after", sa.Integer(), nullable=False),
        sa.Column("reference_type", sa.String(32), nullable=True),
        sa.Column("reference_id", sa.Integer(), nullable=True),
        sa.Column("reason", sa.String(255), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        _ts("occurred_at", nullable=False),
    )
    op.create_index("ix_stock_movements_branch_product", "stock_movements", ["branch_id", "product_id"])
    op.create_index("ix_stock_movements_reference", "stock_movements", ["reference_type", "reference_id"])

    op.create_table(
        "inventory_losses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("loss_number", sa.String(32), nullable=False, unique=True),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=False),
        sa.Column("reason", sa.String(64), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("total_cost_cents", sa.Integer(), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("approved_by", sa.Integer(), nullable=True),
        _ts("approved_at"),
        _now("created_at"),
        sa.Column("version_id", sa.Integer(), nullable=False),
    )
    op.create_index("ix_inventory_losses_branch_id", "inventory_losses", ["branch_id"])
    op.create_index("ix_inventory_losses_status", "inventory_losses", ["status"])

    op.create_table(
        "inventory_loss_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("loss_id", sa.Integer(), sa.ForeignKey("inventory_losses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_cost_cents", sa.Integer(), nullable=False),
        sa.Column("line_cost_cents", sa.Integer(), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_inventory_loss_items_quantity_positive"),
    )
    op.create_index("ix_inventory_loss_items_loss_id", "inventory_loss_items", ["loss_id"])

    # Documents. sales <-> quotations <-> laybys reference each other; the
    # back references are added once all three tables exist.
    op.create_table(
        "sales",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("invoice_number", sa.String(32), nullable=False, unique=True),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=False),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("sale_type", sa.String(16), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        _ts("sale_date", nullable=False),
        *_totals(),
        sa.Column("amount_paid_cents", sa.Integer(), nullable=False),
        sa.Column("amount_due_cents", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("quotation_id", sa.Integer(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        _ts("confirmed_at"),
        _ts("completed_at"),
        _ts("cancelled_at"),
        sa.Column("cancelled_by", sa.Integer(), nullable=True),
        _now("created_at"),
        _now("updated_at"),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.CheckConstraint("amount_paid_cents + amount_due_cents = total_cents", name="ck_sales_balance"),
        sa.CheckConstraint("amount_due_cents >= 0", name="ck_sales_due_non_negative"),
    )
    op.create_index("ix_sales_branch_id", "sales", ["branch_id"])
    op.create_index("ix_sales_customer_id", "sales", ["customer_id"])
    op.create_index("ix_sales_status", "sales", ["status"])
    op.create_index("ix_sales_branch_status_date", "sales", ["branch_id", "status", "sale_date"])

    table, *columns = _priced_lines("sale_items", "sales", "sale_id")
    op.create_table(table, *columns)
    op.create_index("ix_sale_items_sale_id", "sale_items", ["sale_id"])

    op.create_table(
        "quotations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("quotation_number", sa.String(32), nullable=False, unique=True),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=False),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        _ts("quotation_date", nullable=False),
        _ts("expiry_date", nullable=False),
        *_totals(),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("converted_to_sale_id", sa.Integer(), sa.ForeignKey("sales.id"), nullable=True),
        sa.Column("converted_to_layby_id", sa.Integer(), nullable=True),
        _ts("converted_at"),
        sa.Column("recreated_from_id", sa.Integer(), sa.ForeignKey("quotations.id"), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        _ts("sent_at"),
        _now("created_at"),
        _now("updated_at"),
        sa.Column("version_id", sa.Integer(), nullable=False),
    )
    op.create_index("ix_quotations_branch_id", "quotations", ["branch_id"])
    op.create_index("ix_quotations_customer_id", "quotations", ["customer_id"])
    op.create_index("ix_quotations_status", "quotations", ["status"])
    op.create_index("ix_quotations_branch_status", "quotations", ["branch_id", "status"])

    table, *columns = _priced_lines("quotation_items", "quotations", "quotation_id")
    op.create_table(table, *columns)
    op.create_index("ix_quotation_items_quotation_id", "quotation_items", ["quotation_id"])

    op.create_table(
        "laybys",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("layby_number", sa.String(32), nullable=False, unique=True),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=False),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        _ts("layby_date", nullable=False),
        *_totals(),
        sa.Column("amount_paid_cents", sa.Integer(), nullable=False),
        sa.Column("amount_due_cents", sa.Integer(), nullable=False),
        sa.Column("deposit_required_cents", sa.Integer(), nullable=False),
        sa.Column("cancellation_fee_cents", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("quotation_id", sa.Integer(), sa.ForeignKey("quotations.id"), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        _ts("activated_at"),
        _ts("collected_at"),
        sa.Column("collected_by", sa.Integer(), nullable=True),
        _ts("cancelled_at"),
        sa.Column("cancelled_by", sa.Integer(), nullable=True),
        sa.Column("cancellation_reason", sa.String(255), nullable=True),
        sa.Column("refund_amount_cents", sa.Integer(), nullable=True),
        _now("created_at"),
        _now("updated_at"),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.CheckConstraint("amount_paid_cents + amount_due_cents = total_cents", name="ck_laybys_balance"),
        sa.CheckConstraint("amount_due_cents >= 0", name="ck_laybys_due_non_negative"),
    )
    op.create_index("ix_laybys_branch_id", "laybys", ["branch_id"])
    op.create_index("ix_laybys_customer_id", "laybys", ["customer_id"])
    op.create_index("ix_laybys_status", "laybys", ["status"])
    op.create_index("ix_laybys_branch_status", "laybys", ["branch_id", "status"])

    table, *columns = _priced_lines("layby_items", "laybys", "layby_id")
    op.create_table(
        table,
        *columns,
        sa.Column("stock_reserved", sa.Boolean(), nullable=False),
        _ts("stock_reserved_at"),
    )
    op.create_index("ix_layby_items_layby_id", "layby_items", ["layby_id"])

    with op.batch_alter_table("sales") as batch_op:
        batch_op.create_foreign_key("fk_sales_quotation_id_quotations", "quotations", ["quotation_id"], ["id"])
    with op.batch_alter_table("quotations") as batch_op:
        batch_op.create_foreign_key(
            "fk_quotations_converted_to_layby_id_laybys", "laybys", ["converted_to_layby_id"], ["id"]
        )

    # Tills, shifts and cash
    op.create_table(
        "shifts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("till_id", sa.Integer(), sa.ForeignKey("tills.id"), nullable=False),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=False),
        sa.Column("cashier_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("opening_balance_cents", sa.Integer(), nullable=False),
        sa.Column("closing_balance_cents", sa.Integer(), nullable=True),
        sa.Column("expected_cash_cents", sa.Integer(), nullable=True),
        sa.Column("variance_cents", sa.Integer(), nullable=True),
        _ts("opened_at", nullable=False),
        _ts("closed_at"),
        sa.Column("closed_by", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
    )
    op.create_index("ix_shifts_till_id", "shifts", ["till_id"])
    op.create_index("ix_shifts_branch_status", "shifts", ["branch_id", "status"])
    op.create_index(
        "uq_shifts_cashier_open",
        "shifts",
        ["cashier_id"],
        unique=True,
        sqlite_where=sa.text("status = 'open'"),
        postgresql_where=sa.text("status = 'open'"),
    )

    op.create_table(
        "cash_movements",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("shift_id", sa.Integer(), sa.ForeignKey("shifts.id"), nullable=False),
        sa.Column("movement_type", sa.String(16), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("currency_id", sa.Integer(), sa.ForeignKey("currencies.id"), nullable=False),
        sa.Column("reason", sa.String(255), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=False),
        _ts("created_at", nullable=False),
        sa.Column("approved_by", sa.Integer(), nullable=True),
        _ts("approved_at"),
        sa.CheckConstraint("amount_cents > 0", name="ck_cash_movements_amount_positive"),
    )
    op.create_index("ix_cash_movements_shift_id", "cash_movements", ["shift_id"])

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("receipt_number", sa.String(32), nullable=False, unique=True),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=False),
        sa.Column("sale_id", sa.Integer(), sa.ForeignKey("sales.id"), nullable=True),
        sa.Column("layby_id", sa.Integer(), sa.ForeignKey("laybys.id"), nullable=True),
        sa.Column("shift_id", sa.Integer(), sa.ForeignKey("shifts.id"), nullable=True),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("currency_id", sa.Integer(), sa.ForeignKey("currencies.id"), nullable=False),
        sa.Column("exchange_rate", sa.Numeric(18, 6), nullable=False),
        sa.Column("amount_base_cents", sa.Integer(), nullable=False),
        sa.Column("payment_method_id", sa.Integer(), sa.ForeignKey("payment_methods.id"), nullable=False),
        sa.Column("reference_number", sa.String(128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _ts("payment_date", nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=True),
        _now("created_at"),
        sa.CheckConstraint(
            "(sale_id IS NULL AND layby_id IS NOT NULL) OR (sale_id IS NOT NULL AND layby_id IS NULL)",
            name="ck_payments_single_target",
        ),
        sa.CheckConstraint("amount_cents > 0", name="ck_payments_amount_positive"),
    )
    op.create_index("ix_payments_branch_id", "payments", ["branch_id"])
    op.create_index("ix_payments_sale_id", "payments", ["sale_id"])
    op.create_index("ix_payments_layby_id", "payments", ["layby_id"])
    op.create_index("ix_payments_shift_id", "payments", ["shift_id"])
    op.create_index("ix_payments_shift_method", "payments", ["shift_id", "payment_method_id"])

    # Day-end
    op.create_table(
        "day_ends",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=False),
        sa.Column("business_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("total_sales_cents", sa.Integer(), nullable=False),
        sa.Column("total_cash_cents", sa.Integer(), nullable=False),
        sa.Column("total_variance_cents", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("reviewed_by", sa.Integer(), nullable=True),
        _ts("reviewed_at"),
        sa.Column("approved_by", sa.Integer(), nullable=True),
        _ts("approved_at"),
        sa.Column("reopened_by", sa.Integer(), nullable=True),
        _ts("reopened_at"),
        _ts("closed_at"),
        _ts("can_edit_until"),
        _now("created_at"),
        _now("updated_at"),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.UniqueConstraint("branch_id", "business_date", name="uq_day_ends_branch_date"),
    )
    op.create_index("ix_day_ends_branch_id", "day_ends", ["branch_id"])
    op.create_index("ix_day_ends_status", "day_ends", ["status"])

    op.create_table(
        "day_end_shifts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("day_end_id", sa.Integer(), sa.ForeignKey("day_ends.id", ondelete="CASCADE"), nullable=False),
        sa.Column("shift_id", sa.Integer(), sa.ForeignKey("shifts.id"), nullable=False),
        sa.UniqueConstraint("shift_id", name="uq_day_end_shifts_shift"),
    )
    op.create_index("ix_day_end_shifts_day_end_id", "day_end_shifts", ["day_end_id"])

    op.create_table(
        "day_end_payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("day_end_id", sa.Integer(), sa.ForeignKey("day_ends.id", ondelete="CASCADE"), nullable=False),
        sa.Column("payment_method_id", sa.Integer(), sa.ForeignKey("payment_methods.id"), nullable=False),
        sa.Column("currency_id", sa.Integer(), sa.ForeignKey("currencies.id"), nullable=False),
        sa.Column("expected_amount_cents", sa.Integer(), nullable=False),
        sa.Column("actual_amount_cents", sa.Integer(), nullable=False),
        sa.Column("variance_cents", sa.Integer(), nullable=False),
        sa.Column("transaction_count", sa.Integer(), nullable=False),
        sa.UniqueConstraint(
            "day_end_id", "payment_method_id", "currency_id", name="uq_day_end_payments_method_currency"
        ),
    )
    op.create_index("ix_day_end_payments_day_end_id", "day_end_payments", ["day_end_id"])


def downgrade():
    for table in (
        "day_end_payments",
        "day_end_shifts",
        "day_ends",
        "payments",
        "cash_movements",
        "shifts",
    ):
        op.drop_table(table)

    with op.batch_alter_table("quotations") as batch_op:
        batch_op.drop_constraint("fk_quotations_converted_to_layby_id_laybys", type_="foreignkey")
    with op.batch_alter_table("sales") as batch_op:
        batch_op.drop_constraint("fk_sales_quotation_id_quotations", type_="foreignkey")

    for table in (
        "layby_items",
        "laybys",
        "quotation_items",
        "quotations",
        "sale_items",
        "sales",
        "inventory_loss_items",
        "inventory_losses",
        "stock_movements",
        "branch_inventory",
        "document_sequences",
        "tills",
        "customers",
        "discounts",
        "products",
        "product_categories",
        "branch_settings",
        "tenant_settings",
        "payment_methods",
        "currencies",
        "branches",
    ):
        op.drop_table(table)
