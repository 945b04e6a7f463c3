from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

SHIFT_OPEN = "open"
SHIFT_CLOSED = "closed"

MOVEMENT_CASH_IN = "cash_in"
MOVEMENT_CASH_OUT = "cash_out"
MOVEMENT_BANK_DEPOSIT = "bank_deposit"
MOVEMENT_PETTY_CASH = "petty_cash"
MOVEMENT_TYPES = (MOVEMENT_CASH_IN, MOVEMENT_CASH_OUT, MOVEMENT_BANK_DEPOSIT, MOVEMENT_PETTY_CASH)


class Shift(db.Model):
    """
    Cashier shift on a till.

    WHY: Cashier accountability. Each shift has an opening float, a counted
    closing balance, and the expected cash derived from payments and
    approved movements; the difference is the variance.

    LIFECYCLE:
    - open: payments and cash movements can be recorded
    - closed: balances frozen; the shift is rolled into the branch day-end

    INVARIANT: a cashier holds at most one open shift (partial unique index).
    """
    __tablename__ = "shifts"
    __table_args__ = (
        db.Index(
            "uq_shifts_cashier_open",
            "cashier_id",
            unique=True,
            sqlite_where=db.text("status = 'open'"),
            postgresql_where=db.text("status = 'open'"),
        ),
        db.Index("ix_shifts_branch_status", "branch_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    till_id = db.Column(db.Integer, db.ForeignKey("tills.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)
    cashier_id = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=SHIFT_OPEN)

    # Cash tracking (base currency cents)
    opening_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    closing_balance_cents = db.Column(db.Integer, nullable=True)  # counted by the cashier
    expected_cash_cents = db.Column(db.Integer, nullable=True)
    variance_cents = db.Column(db.Integer, nullable=True)  # closing - expected

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_by = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    till = db.relationship("Till")
    movements = db.relationship("CashMovement", back_populates="shift", order_by="CashMovement.id")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "till_id": self.till_id,
            "branch_id": self.branch_id,
            "cashier_id": self.cashier_id,
            "status": self.status,
            "opening_balance_cents": self.opening_balance_cents,
            "closing_balance_cents": self.closing_balance_cents,
            "expected_cash_cents": self.expected_cash_cents,
            "variance_cents": self.variance_cents,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at),
            "closed_by": self.closed_by,
            "notes": self.notes,
            "version_id": self.version_id,
        }


class CashMovement(db.Model):
    """
    Non-sale cash in or out of a drawer.

    Pending until approved_by is set; approval is one-way.
    """
    __tablename__ = "cash_movements"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_cash_movements_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False, index=True)
    movement_type = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    currency_id = db.Column(db.Integer, db.ForeignKey("currencies.id"), nullable=False)
    reason = db.Column(db.String(255), nullable=False)

    created_by = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    approved_by = db.Column(db.Integer, nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    shift = db.relationship("Shift", back_populates="movements")
    currency = db.relationship("Currency")

    @property
    def is_approved(self) -> bool:
        return self.approved_by is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shift_id": self.shift_id,
            "movement_type": self.movement_type,
            "amount_cents": self.amount_cents,
            "currency_id": self.currency_id,
            "reason": self.reason,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at),
            "is_approved": self.is_approved,
        }
