"""DecoraBake order and refund lifecycle Flask application."""

from __future__ import annotations

import os
from typing import Callable, Optional

from flask import Flask

from .common.db.session import init_db, make_engine, make_session_factory
from .common.services.ledger_service import LedgerService
from .common.services.notification_service import NotificationDispatcher, SmtpTransport
from .common.services.order_service import OrderService
from .common.services.refund_service import RefundService
from .common.services.reporting_service import ReportingService
from .config import StoreConfig
from .routes import admin, api
from .services import NotificationLogRepository, SettingsStore


def create_app(
    config: Optional[StoreConfig] = None,
    session_factory: Optional[Callable] = None,
    transport_factory: Callable = SmtpTransport,
) -> Flask:
    config = config or StoreConfig.load()
    app = Flask(__name__)
    app.config["SECRET_KEY"] = config.secret_key
    app.config["STORE_CONFIG"] = config

    if session_factory is None:
        engine = make_engine(config.database_url)
        init_db(engine)
        session_factory = make_session_factory(engine)

    settings_store = SettingsStore(config.settings_file)
    notification_log = NotificationLogRepository(config.notification_log_file)
    dispatcher = NotificationDispatcher(settings_store, transport_factory=transport_factory, log_repo=notification_log)
    ledger = LedgerService(session_factory)

    components = {
        "settings_store": settings_store,
        "notification_log": notification_log,
        "dispatcher": dispatcher,
        "ledger": ledger,
        "order_service": OrderService(dispatcher, ledger=ledger, session_factory=session_factory),
        "refund_service": RefundService(dispatcher, session_factory=session_factory),
        "reporting": ReportingService(session_factory),
    }
    app.extensions["decorabake_components"] = components

    app.register_blueprint(admin.admin_bp)
    app.register_blueprint(api.api_bp)

    return app


def main() -> None:
    app = create_app()
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", "5000")), debug=False)


if __name__ == "__main__":
    main()
