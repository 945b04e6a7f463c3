# Overview: Customer lookups used by the sale/layby/quotation workflows.

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Customer
from ..time_utils import utcnow

WALK_IN_NAME = "Walk-in Customer"


def get_active_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError("Customer not found", details={"customer_id": customer_id})
    if not customer.is_active:
        raise ValidationError("Customer is inactive", details={"customer_id": customer_id})
    return customer


def get_or_create_walk_in_customer(branch_id: int) -> Customer:
    """
    Return the branch's walk-in customer, creating it on first use.

    Till sales always need a customer row; anonymous counter sales are
    attributed to this one.
    """
    customer = (
        db.session.query(Customer)
        .filter_by(branch_id=branch_id, is_walk_in=True)
        .order_by(Customer.id)
        .first()
    )
    if customer is None:
        customer = Customer(branch_id=branch_id, name=WALK_IN_NAME, is_walk_in=True, is_active=True)
        db.session.add(customer)
        db.session.flush()
    return customer


def touch_last_purchase(customer_id: int, when: datetime | None = None) -> None:
    customer = db.session.get(Customer, customer_id)
    if customer is not None:
        customer.last_purchase_at = when or utcnow()
