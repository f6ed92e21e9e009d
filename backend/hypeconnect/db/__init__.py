"""
Database package for HypeConnect.

Exports engine lifecycle, models, and session management.
"""
from .init_db import (
    init_engine,
    initialize_database,
    dispose_engine,
    create_tables,
    create_engine_for_url,
    get_session_factory,
)
from .models import (
    Base,
    PaymentTransactionModel,
    FraudAlertModel,
    BookingModel,
    HypeModel,
    WalletModel,
    PlatformEarningsModel,
    WithdrawalModel,
    WebhookLogModel,
    utcnow,
)

__all__ = [
    "init_engine",
    "initialize_database",
    "dispose_engine",
    "create_tables",
    "create_engine_for_url",
    "get_session_factory",
    "Base",
    "PaymentTransactionModel",
    "FraudAlertModel",
    "BookingModel",
    "HypeModel",
    "WalletModel",
    "PlatformEarningsModel",
    "WithdrawalModel",
    "WebhookLogModel",
    "utcnow",
]
