from __future__ import annotations

from ..extensions import db
from ..time_utils import to_iso_date, to_utc_z

DAY_END_DRAFT = "draft"
DAY_END_REVIEWED = "reviewed"
DAY_END_APPROVED = "approved"
DAY_END_REOPENED = "reopened"


class DayEnd(db.Model):
    """
    Branch close for one business date.

    WHY: One auditable record per (branch, date) that every shift closing
    on that date rolls into. Approval locks it; a reopen is only possible
    while can_edit_until has not passed.

    LIFECYCLE: draft -> reviewed -> approved -> reopened -> reviewed -> ...
    """
    __tablename__ = "day_ends"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "business_date", name="uq_day_ends_branch_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    business_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=DAY_END_DRAFT, index=True)

    # Aggregates (base currency cents)
    total_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cash_cents = db.Column(db.Integer, nullable=False, default=0)
    total_variance_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.Integer, nullable=True)
    reviewed_by = db.Column(db.Integer, nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by = db.Column(db.Integer, nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reopened_by = db.Column(db.Integer, nullable=True)
    reopened_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    can_edit_until = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    shift_links = db.relationship("DayEndShift", cascade="all, delete-orphan", order_by="DayEndShift.id")
    payments = db.relationship(
        "DayEndPayment",
        back_populates="day_end",
        cascade="all, delete-orphan",
        order_by="DayEndPayment.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def shift_ids(self) -> list[int]:
        return [link.shift_id for link in self.shift_links]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "business_date": to_iso_date(self.business_date),
            "status": self.status,
            "total_sales_cents": self.total_sales_cents,
            "total_cash_cents": self.total_cash_cents,
            "total_variance_cents": self.total_variance_cents,
            "shift_ids": self.shift_ids,
            "notes": self.notes,
            "created_by": self.created_by,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": to_utc_z(self.reviewed_at),
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at),
            "reopened_by": self.reopened_by,
            "reopened_at": to_utc_z(self.reopened_at),
            "closed_at": to_utc_z(self.closed_at),
            "can_edit_until": to_utc_z(self.can_edit_until),
            "version_id": self.version_id,
            "payments": [row.to_dict() for row in self.payments],
        }


class DayEndShift(db.Model):
    """Join row; the day-end references its shifts but does not own them."""
    __tablename__ = "day_end_shifts"
    __table_args__ = (
        db.UniqueConstraint("shift_id", name="uq_day_end_shifts_shift"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    day_end_id = db.Column(db.Integer, db.ForeignKey("day_ends.id", ondelete="CASCADE"), nullable=False, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False)


class DayEndPayment(db.Model):
    """Reconciliation row per (payment method, currency); replaced on every edit."""
    __tablename__ = "day_end_payments"
    __table_args__ = (
        db.UniqueConstraint("day_end_id", "payment_method_id", "currency_id", name="uq_day_end_payments_method_currency"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    day_end_id = db.Column(db.Integer, db.ForeignKey("day_ends.id", ondelete="CASCADE"), nullable=False, index=True)
    payment_method_id = db.Column(db.Integer, db.ForeignKey("payment_methods.id"), nullable=False)
    currency_id = db.Column(db.Integer, db.ForeignKey("currencies.id"), nullable=False)
    expected_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    actual_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    variance_cents = db.Column(db.Integer, nullable=False, default=0)
    transaction_count = db.Column(db.Integer, nullable=False, default=0)

    day_end = db.relationship("DayEnd", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "payment_method_id": self.payment_method_id,
            "currency_id": self.currency_id,
            "expected_amount_cents": self.expected_amount_cents,
            "actual_amount_cents": self.actual_amount_cents,
            "variance_cents": self.variance_cents,
            "transaction_count": self.transaction_count,
        }
