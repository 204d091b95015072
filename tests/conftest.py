"""Pytest fixtures for decorabake tests."""

import json
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from decorabake.common.db.session import init_db, make_engine, make_session_factory
from decorabake.common.errors import NotificationError
from decorabake.common.models import Product, ProductVariant, PromoCode
from decorabake.common.services.ledger_service import LedgerService
from decorabake.common.services.notification_service import NotificationDispatcher
from decorabake.common.services.order_service import OrderService
from decorabake.common.services.refund_service import RefundService
from decorabake.common.services.reporting_service import ReportingService
from decorabake.services import DEFAULT_SETTINGS, NotificationLogRepository, SettingsStore


class FakeTransport:
    """Records messages instead of talking to an SMTP server."""

    def __init__(self, outbox, fail_with=None):
        self.outbox = outbox
        self.fail_with = fail_with

    def send(self, message):
        if self.fail_with:
            raise NotificationError(self.fail_with)
        self.outbox.append(message)

    def verify(self):
        if self.fail_with:
            raise NotificationError(self.fail_with)


class TransportFactory:
    """Stands in for ``SmtpTransport``; flip ``fail_with`` to simulate an outage."""

    def __init__(self):
        self.outbox = []
        self.fail_with = None
        self.settings_seen = []

    def __call__(self, settings):
        self.settings_seen.append(settings)
        return FakeTransport(self.outbox, self.fail_with)


def _html_of(message):
    return message.get_body(preferencelist=("html",)).get_content()


@pytest.fixture
def html_of():
    return _html_of


@pytest.fixture
def data_dir(tmp_path):
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def settings_file(data_dir):
    """Settings with email switched on and an SMTP account configured."""
    settings = dict(DEFAULT_SETTINGS)
    settings.update(
        {
            "SITE_URL": "https://decorabake.test",
            "EMAIL_ENABLED": True,
            "SMTP_HOST": "smtp.decorabake.test",
            "SMTP_PORT": 587,
            "SMTP_USER": "orders@decorabake.test",
            "SMTP_PASSWORD": "app-password",
            "EMAIL_FROM": "orders@decorabake.test",
            "ADMIN_EMAIL": "owner@decorabake.test",
        }
    )
    path = data_dir / "settings.json"
    path.write_text(json.dumps(settings, indent=2), encoding="utf-8")
    return path


@pytest.fixture
def settings_store(settings_file):
    return SettingsStore(settings_file)


@pytest.fixture
def notification_log(data_dir):
    return NotificationLogRepository(data_dir / "notification_log.json")


@pytest.fixture
def transport():
    return TransportFactory()


@pytest.fixture
def session_factory(tmp_path):
    """Isolated SQLite database file per test."""
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def dispatcher(settings_store, transport, notification_log):
    return NotificationDispatcher(settings_store, transport_factory=transport, log_repo=notification_log)


@pytest.fixture
def ledger(session_factory):
    return LedgerService(session_factory)


@pytest.fixture
def order_service(dispatcher, ledger, session_factory):
    return OrderService(dispatcher, ledger=ledger, session_factory=session_factory)


@pytest.fixture
def refund_service(dispatcher, session_factory):
    return RefundService(dispatcher, session_factory=session_factory)


@pytest.fixture
def reporting(session_factory):
    return ReportingService(session_factory)


@pytest.fixture
def products(session_factory):
    """A tracked-stock topper, an untracked cake kit and a variant with its own stock."""
    with session_factory() as session:
        session.add_all(
            [
                Product(id="prod-topper", name="Rose Gold Cake Topper", price=Decimal("149.00"), stock=5),
                Product(id="prod-kit", name="Sprinkle Kit", price=Decimal("24.50"), stock=None),
                Product(id="prod-stencil", name="Lace Stencil", price=Decimal("18.00"), stock=None),
            ]
        )
        session.flush()
        session.add(ProductVariant(id="var-stencil-lg", product_id="prod-stencil", name="Large", stock=2))
    return {"topper": "prod-topper", "kit": "prod-kit", "stencil": "prod-stencil", "stencil_large": "var-stencil-lg"}


@pytest.fixture
def add_promo(session_factory):
    def _add(code, **fields):
        values = {
            "id": str(uuid4()),
            "code": code.upper(),
            "discount_type": "fixed",
            "discount_value": Decimal("5.00"),
            "min_order": Decimal("0"),
            "usage_limit": 0,
            "usage_count": 0,
            "active": True,
            "expiry_date": datetime.utcnow() + timedelta(days=30),
        }
        values.update(fields)
        with session_factory() as session:
            session.add(PromoCode(**values))
        return code.upper()

    return _add


def order_payload(**overrides):
    payload = {
        "order_code": "DB-1001",
        "items": [{"product_id": "prod-topper", "name": "Rose Gold Cake Topper", "unit_price": 149.00, "quantity": 1}],
        "subtotal": 149.00,
        "shipping_cost": 9.95,
        "promo_discount": 0,
        "total": 158.95,
        "currency": "AUD",
        "customer": {"email": "Jane.Citizen@example.com", "first_name": "Jane", "last_name": "Citizen"},
        "shipping": {"address": "12 Baker St", "city": "Sydney", "state": "NSW", "postcode": "2000"},
        "payment_method": "card",
        "payment_status": "paid",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_order(order_service, products):
    def _make(**overrides):
        return order_service.create_order(order_payload(**overrides))

    return _make


@pytest.fixture
def app(data_dir, settings_file, session_factory, transport):
    from decorabake.app import create_app
    from decorabake.config import StoreConfig

    config = StoreConfig.load(data_dir=data_dir)
    app = create_app(config=config, session_factory=session_factory, transport_factory=transport)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def build_payload():
    return order_payload
