# Overview: Effective settings resolution (branch override -> tenant default).

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Branch, BranchSettings, Currency, PaymentMethod, TenantSettings
from ..models.reference import TAX_MODES, TAX_MODE_EXCLUSIVE


@dataclass(frozen=True)
class EffectiveSettings:
    """Settings that apply to one branch after overrides."""
    branch_id: int
    tax_mode: str
    tax_rate_bps: int
    quotation_validity_days: int
    layby_deposit_bps: int
    cancellation_fee_cents: int


@dataclass(frozen=True)
class CashContext:
    """Tenant-level ids used by expected-cash and reconciliation."""
    base_currency_id: int
    cash_payment_method_id: int


def get_tenant_settings() -> TenantSettings:
    """Return the tenant settings row, creating it with defaults on first use."""
    settings = db.session.query(TenantSettings).order_by(TenantSettings.id).first()
    if settings is None:
        settings = TenantSettings(
            tax_mode=TAX_MODE_EXCLUSIVE,
            tax_rate_bps=0,
            quotation_validity_days=current_app.config.get("DEFAULT_QUOTATION_VALIDITY_DAYS", 30),
            layby_deposit_bps=0,
            cancellation_fee_cents=0,
        )
        db.session.add(settings)
        db.session.flush()
    return settings


def get_effective_settings(branch_id: int) -> EffectiveSettings:
    branch = db.session.get(Branch, branch_id)
    if branch is None:
        raise NotFoundError("Branch not found", details={"branch_id": branch_id})

    tenant = get_tenant_settings()
    override = db.session.query(BranchSettings).filter_by(branch_id=branch_id).first()

    def pick(field: str):
        if override is not None and getattr(override, field) is not None:
            return getattr(override, field)
        return getattr(tenant, field)

    tax_mode = pick("tax_mode")
    if tax_mode not in TAX_MODES:
        raise ValidationError(f"Invalid tax mode configured: {tax_mode}", details={"branch_id": branch_id})

    return EffectiveSettings(
        branch_id=branch_id,
        tax_mode=tax_mode,
        tax_rate_bps=pick("tax_rate_bps"),
        quotation_validity_days=pick("quotation_validity_days"),
        layby_deposit_bps=pick("layby_deposit_bps"),
        cancellation_fee_cents=pick("cancellation_fee_cents"),
    )


def get_cash_context() -> CashContext:
    """
    Resolve base currency and cash method from explicit tenant settings.

    Falls back to the currency flagged is_default when base_currency_id is
    unset. The cash method has no fallback: it must be configured.
    """
    tenant = get_tenant_settings()

    base_currency_id = tenant.base_currency_id
    if base_currency_id is None:
        default = db.session.query(Currency).filter_by(is_default=True).first()
        if default is None:
            raise ValidationError("No base currency configured")
        base_currency_id = default.id

    if tenant.cash_payment_method_id is None:
        raise ValidationError("No cash payment method configured")
    if db.session.get(PaymentMethod, tenant.cash_payment_method_id) is None:
        raise NotFoundError("Configured cash payment method not found")

    return CashContext(
        base_currency_id=base_currency_id,
        cash_payment_method_id=tenant.cash_payment_method_id,
    )
