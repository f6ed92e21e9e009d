"""
Payment Core Container

Builds the ledger, fraud engine, and settlement coordinator around one
session factory. The application constructs a single PaymentCore during
startup and hands it to request handlers; tests build one around a
throwaway database.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import async_sessionmaker

from .fraud_alerts import FraudAlertStore
from .payment_validator import PaymentValidator
from .paystack_client import PaystackClient
from .settlement_service import SettlementCoordinator
from .transaction_ledger import TransactionLedger


@dataclass
class PaymentCore:
    session_factory: async_sessionmaker
    ledger: TransactionLedger
    alerts: FraudAlertStore
    validator: PaymentValidator
    settlement: SettlementCoordinator
    paystack: PaystackClient


def build_payment_core(
    session_factory: async_sessionmaker,
    paystack: Optional[PaystackClient] = None,
    platform_fee_percent: Optional[int] = None
) -> PaymentCore:
    """Wire the payment components together around a session factory."""
    ledger = TransactionLedger(session_factory)
    alerts = FraudAlertStore(session_factory)
    return PaymentCore(
        session_factory=session_factory,
        ledger=ledger,
        alerts=alerts,
        validator=PaymentValidator(session_factory, ledger, alerts),
        settlement=SettlementCoordinator(session_factory, platform_fee_percent),
        paystack=paystack or PaystackClient(),
    )


def get_payment_core(request: Request) -> PaymentCore:
    """FastAPI dependency returning the core built at startup."""
    return request.app.state.payment_core
