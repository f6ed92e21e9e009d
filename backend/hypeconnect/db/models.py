"""
SQLAlchemy ORM Models for HypeConnect

Payment ledger, fraud alerts, and the settlement targets (bookings, hypes,
wallets, withdrawals) the webhook handler writes to.
"""
from datetime import datetime, timezone
from sqlalchemy import (
    Column, String, Integer, Float, DateTime, Text, JSON, CheckConstraint, Index
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp; SQLite stores datetimes without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class PaymentTransactionModel(Base):
    """
    ORM model for payment_transactions table.

    One row per payment attempt, keyed by the Paystack reference.
    expected_amount and metadata are written once at initialization.
    """
    __tablename__ = "payment_transactions"

    reference = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    email = Column(String, nullable=False)
    expected_amount = Column(Integer, nullable=False)
    payment_metadata = Column("metadata", JSON, nullable=False, default=dict)
    status = Column(String, nullable=False, index=True)
    initiated_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    verified_at = Column(DateTime)
    completed_at = Column(DateTime)
    failed_at = Column(DateTime)
    rejected_at = Column(DateTime)
    failure_reason = Column(Text)
    gateway_response = Column(JSON)
    environment = Column(String)

    __table_args__ = (
        CheckConstraint(
            "status IN ('initialized', 'verified', 'completed', 'failed', 'rejected')",
            name="payment_status_check"
        ),
        Index("idx_payment_user_initiated", "user_id", "initiated_at"),
        Index("idx_payment_status_initiated", "status", "initiated_at"),
    )


class FraudAlertModel(Base):
    """
    ORM model for fraud_alerts table.

    Created only by the validation engine; resolved once by an admin.
    """
    __tablename__ = "fraud_alerts"

    id = Column(String, primary_key=True)
    reference = Column(String, nullable=False, index=True)
    alert_type = Column("type", String, nullable=False, index=True)
    expected_amount = Column(Float, nullable=False, default=0)
    actual_amount = Column(Float, nullable=False, default=0)
    discrepancy = Column(Float, nullable=False, default=0)
    severity = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, default="unreviewed", index=True)
    resolution = Column(String)
    description = Column(Text, nullable=False)
    timestamp = Column(DateTime, nullable=False, default=utcnow, index=True)
    reviewed_at = Column(DateTime)
    environment = Column(String)

    __table_args__ = (
        CheckConstraint(
            "type IN ('amount_mismatch', 'unknown_transaction', 'metadata_tampering', 'double_charge_attempt')",
            name="fraud_type_check"
        ),
        CheckConstraint("severity IN ('critical', 'high', 'medium')", name="fraud_severity_check"),
        CheckConstraint("status IN ('unreviewed', 'reviewed')", name="fraud_status_check"),
    )


class BookingModel(Base):
    """
    ORM model for bookings table.

    Video-hype bookings awaiting payment. The pending <-> processing
    sub-transition belongs to the settlement coordinator.
    """
    __tablename__ = "bookings"

    id = Column(String, primary_key=True)
    name = Column(String)
    email = Column(String)
    hypeman_id = Column(String, nullable=False, index=True)
    occasion = Column(String)
    video_details = Column(Text)
    amount = Column(Integer, nullable=False)
    platform_fee = Column(Integer)
    hypeman_amount = Column(Integer)
    status = Column(String, nullable=False, default="pending", index=True)
    processed_at = Column(DateTime)
    lock_token = Column(String)
    payment_reference = Column(String, index=True)
    payment_url = Column(String)
    paystack_reference = Column(String)
    confirmed_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'confirmed', 'completed', 'failed', 'cancelled')",
            name="booking_status_check"
        ),
    )


class HypeModel(Base):
    """ORM model for hypes table (paid shoutouts at events)."""
    __tablename__ = "hypes"

    id = Column(String, primary_key=True)
    event_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    amount = Column(Integer, nullable=False)
    sender_name = Column(String, nullable=False, default="Anonymous")
    paystack_reference = Column(String, nullable=False, unique=True)
    status = Column(String, nullable=False, default="confirmed")
    timestamp = Column(DateTime, nullable=False, default=utcnow)


class WalletModel(Base):
    """ORM model for wallets table (hypeman balances)."""
    __tablename__ = "wallets"

    hypeman_id = Column(String, primary_key=True)
    balance = Column(Integer, nullable=False, default=0)
    total_earned = Column(Integer, nullable=False, default=0)
    last_updated = Column(DateTime, nullable=False, default=utcnow)


class PlatformEarningsModel(Base):
    """ORM model for platform_earnings table. Single row with id 'main'."""
    __tablename__ = "platform_earnings"

    id = Column(String, primary_key=True)
    booking_fees = Column(Integer, nullable=False, default=0)
    total_earned = Column(Integer, nullable=False, default=0)
    last_updated = Column(DateTime, nullable=False, default=utcnow)


class WithdrawalModel(Base):
    """ORM model for withdrawals table (hypeman payouts via Paystack transfers)."""
    __tablename__ = "withdrawals"

    id = Column(String, primary_key=True)
    hypeman_id = Column(String, nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default="pending", index=True)
    transfer_code = Column(String)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime)
    failed_at = Column(DateTime)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', 'reversed')",
            name="withdrawal_status_check"
        ),
    )


class WebhookLogModel(Base):
    """
    ORM model for webhook_logs table.

    Idempotency log so redelivered Paystack webhooks are not reprocessed.
    """
    __tablename__ = "webhook_logs"

    webhook_id = Column(String, primary_key=True)
    event = Column(String, nullable=False)
    status = Column(String, nullable=False)
    error = Column(Text)
    processed_at = Column(DateTime, nullable=False, default=utcnow)
    environment = Column(String)
