import unittest
from decimal import Decimal

from flask import Flask

from posengine import create_app
from posengine.errors import NotFoundError, ValidationError
from posengine.extensions import db
from posengine.models import Branch, BranchSettings, Currency, PaymentMethod, TenantSettings
from posengine.models.reference import TAX_MODE_EXCLUSIVE, TAX_MODE_INCLUSIVE
from posengine.services import settings_service


class SettingsServiceTests(unittest.TestCase):
    """Effective settings resolution against a plain single-store app."""

    @classmethod
    def setUpClass(cls):
        # Another app registering a tenant bind on the shared db must not leak in here.
        create_app({"SQLALCHEMY_DATABASE_URI": "sqlite://", "TENANT_STORES": {"elsewhere": "sqlite://"}, "LOG_LEVEL": "WARNING"})

        cls.app = Flask(__name__)
        cls.app.config.update(
            SECRET_KEY="test",
            SQLALCHEMY_DATABASE_URI="sqlite:///:memory:",
            SQLALCHEMY_TRACK_MODIFICATIONS=False,
            DEFAULT_QUOTATION_VALIDITY_DAYS=14,
            TESTING=True,
        )
        db.init_app(cls.app)
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        from posengine import models  # noqa: F401
        db.create_all(bind_key=None)

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all(bind_key=None)
        cls.ctx.pop()

    def setUp(self):
        db.session.query(BranchSettings).delete()
        db.session.query(TenantSettings).delete()
        db.session.query(Branch).delete()
        db.session.query(PaymentMethod).delete()
        db.session.query(Currency).delete()
        db.session.commit()

        self.main = Branch(name="Main", code="MAIN")
        self.north = Branch(name="North", code="NORTH")
        db.session.add_all([self.main, self.north])
        db.session.commit()

    def test_tenant_settings_created_with_defaults(self):
        settings = settings_service.get_tenant_settings()

        self.assertEqual(settings.tax_mode, TAX_MODE_EXCLUSIVE)
        self.assertEqual(settings.tax_rate_bps, 0)
        self.assertEqual(settings.quotation_validity_days, 14)
        self.assertEqual(db.session.query(TenantSettings).count(), 1)

        # Second call returns the same row
        self.assertEqual(settings_service.get_tenant_settings().id, settings.id)

    def test_branch_override_wins_field_by_field(self):
        tenant = settings_service.get_tenant_settings()
        tenant.tax_rate_bps = 1500
        tenant.layby_deposit_bps = 2000
        db.session.add(BranchSettings(branch_id=self.north.id, tax_mode=TAX_MODE_INCLUSIVE, layby_deposit_bps=1000))
        db.session.commit()

        north = settings_service.get_effective_settings(self.north.id)
        main = settings_service.get_effective_settings(self.main.id)

        self.assertEqual(north.tax_mode, TAX_MODE_INCLUSIVE)
        self.assertEqual(north.layby_deposit_bps, 1000)
        # Not overridden: falls through to the tenant value
        self.assertEqual(north.tax_rate_bps, 1500)
        self.assertEqual(main.tax_mode, TAX_MODE_EXCLUSIVE)
        self.assertEqual(main.layby_deposit_bps, 2000)

    def test_unknown_branch(self):
        with self.assertRaises(NotFoundError):
            settings_service.get_effective_settings(9999)

    def test_cash_context_requires_cash_method(self):
        db.session.add(Currency(code="USD", name="US Dollar", exchange_rate=Decimal("1"), is_default=True))
        db.session.commit()

        with self.assertRaises(ValidationError):
            settings_service.get_cash_context()

    def test_cash_context_falls_back_to_default_currency(self):
        usd = Currency(code="USD", name="US Dollar", exchange_rate=Decimal("1"), is_default=True)
        cash = PaymentMethod(name="Cash")
        db.session.add_all([usd, cash])
        db.session.flush()
        settings_service.get_tenant_settings().cash_payment_method_id = cash.id
        db.session.commit()

        context = settings_service.get_cash_context()

        self.assertEqual(context.base_currency_id, usd.id)
        self.assertEqual(context.cash_payment_method_id, cash.id)

    def test_explicit_base_currency_is_used(self):
        usd = Currency(code="USD", name="US Dollar", exchange_rate=Decimal("1"), is_default=True)
        zar = Currency(code="ZAR", name="Rand", exchange_rate=Decimal("0.055"))
        cash = PaymentMethod(name="Cash")
        db.session.add_all([usd, zar, cash])
        db.session.flush()
        tenant = settings_service.get_tenant_settings()
        tenant.base_currency_id = zar.id
        tenant.cash_payment_method_id = cash.id
        db.session.commit()

        self.assertEqual(settings_service.get_cash_context().base_currency_id, zar.id)


if __name__ == "__main__":
    unittest.main()
