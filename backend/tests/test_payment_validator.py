"""
Fraud / Validation Engine Tests

Amount and metadata checks against the ledger, double-charge detection,
and the fraud alert store.
"""
import pytest

from hypeconnect.exceptions import FraudAlertAlreadyReviewedError, FraudAlertNotFoundError
from hypeconnect.services.fraud_alerts import FraudAlertStore
from hypeconnect.services.payment_validator import PaymentValidator
from hypeconnect.services.transaction_ledger import TransactionLedger

BOOKING_METADATA = {"userId": "user_1", "bookingId": "B1", "hypemanId": "H1"}


class TestValidateAmount:

    @pytest.mark.asyncio
    async def test_exact_match_is_valid(self, core):
        await core.ledger.record_initialized("T1", "user_1", "fan@example.com", 25000, BOOKING_METADATA)

        result = await core.validator.validate_amount("T1", 25000)

        assert result.valid
        assert not result.fraud_detected
        assert result.discrepancy == 0
        assert result.expected_amount == 25000
        assert await core.alerts.get_alerts() == []

    @pytest.mark.asyncio
    async def test_one_naira_over_is_critical(self, core):
        await core.ledger.record_initialized("T2", "user_1", "fan@example.com", 25000)

        result = await core.validator.validate_amount("T2", 25001)

        assert not result.valid
        assert result.fraud_detected
        assert result.discrepancy == 1

        alerts = await core.alerts.get_alerts()
        assert len(alerts) == 1
        assert alerts[0].type == "amount_mismatch"
        assert alerts[0].severity == "critical"
        assert alerts[0].discrepancy == 1
        assert alerts[0].reference == "T2"

    @pytest.mark.asyncio
    async def test_underpayment_negative_discrepancy(self, core):
        await core.ledger.record_initialized("T3", "user_1", "fan@example.com", 25000)

        result = await core.validator.validate_amount("T3", 100)

        assert not result.valid
        assert result.discrepancy == -24900

    @pytest.mark.asyncio
    async def test_variance_tolerance(self, core):
        await core.ledger.record_initialized("T4", "user_1", "fan@example.com", 25000)

        result = await core.validator.validate_amount("T4", 25002, max_variance=5)

        assert result.valid
        assert result.discrepancy == 2
        assert await core.alerts.get_alerts() == []

    @pytest.mark.asyncio
    async def test_fractional_naira_is_not_rounded(self, core):
        await core.ledger.record_initialized("T5", "user_1", "fan@example.com", 25000)

        result = await core.validator.validate_amount("T5", 25000.5)

        assert not result.valid
        assert result.discrepancy == 0.5

    @pytest.mark.asyncio
    async def test_unknown_reference(self, core):
        result = await core.validator.validate_amount("T_UNKNOWN", 25000)

        assert not result.valid
        assert result.fraud_detected
        assert not result.transaction_found
        assert result.expected_amount == 0

        alerts = await core.alerts.get_alerts()
        assert len(alerts) == 1
        assert alerts[0].type == "unknown_transaction"
        assert alerts[0].severity == "high"
        assert alerts[0].actual_amount == 25000

    @pytest.mark.asyncio
    async def test_ledger_unreadable_fails_closed(self, broken_session_factory, session_factory):
        ledger = TransactionLedger(broken_session_factory)
        alerts = FraudAlertStore(session_factory)
        validator = PaymentValidator(broken_session_factory, ledger, alerts)

        result = await validator.validate_amount("T6", 25000)

        assert not result.valid
        assert result.fraud_detected


class TestValidateMetadata:

    @pytest.mark.asyncio
    async def test_matching_metadata(self, core):
        await core.ledger.record_initialized("T10", "user_1", "fan@example.com", 25000, BOOKING_METADATA)

        result = await core.validator.validate_metadata("T10", dict(BOOKING_METADATA, extra="ignored"))

        assert result.valid
        assert result.tampered_fields == []
        assert result.stored_metadata == BOOKING_METADATA

    @pytest.mark.asyncio
    async def test_single_tampered_field(self, core):
        await core.ledger.record_initialized("T11", "user_1", "fan@example.com", 25000, BOOKING_METADATA)

        webhook_metadata = {"userId": "user_1", "bookingId": "B2", "hypemanId": "H1"}
        result = await core.validator.validate_metadata("T11", webhook_metadata)

        assert not result.valid
        assert result.tampered_fields == ["bookingId"]

        alerts = await core.alerts.get_alerts()
        assert len(alerts) == 1
        assert alerts[0].type == "metadata_tampering"
        assert "bookingId" in alerts[0].description

    @pytest.mark.asyncio
    async def test_one_alert_per_tampered_field(self, core):
        await core.ledger.record_initialized("T12", "user_1", "fan@example.com", 25000, BOOKING_METADATA)

        result = await core.validator.validate_metadata("T12", {"userId": "attacker", "bookingId": "B9"})

        assert sorted(result.tampered_fields) == ["bookingId", "hypemanId", "userId"]
        assert len(await core.alerts.get_alerts()) == 3

    @pytest.mark.asyncio
    async def test_unset_stored_fields_are_not_checked(self, core):
        await core.ledger.record_initialized("T13", "user_1", "fan@example.com", 2000, {"eventId": "E1"})

        result = await core.validator.validate_metadata(
            "T13", {"eventId": "E1", "userId": "anyone", "bookingId": "whatever"}
        )

        assert result.valid
        assert await core.alerts.get_alerts() == []

    @pytest.mark.asyncio
    async def test_missing_webhook_metadata(self, core):
        await core.ledger.record_initialized("T14", "user_1", "fan@example.com", 2000, {"eventId": "E1"})

        result = await core.validator.validate_metadata("T14", None)

        assert not result.valid
        assert result.tampered_fields == ["eventId"]

    @pytest.mark.asyncio
    async def test_unknown_reference_is_invalid(self, core):
        result = await core.validator.validate_metadata("T_UNKNOWN", BOOKING_METADATA)

        assert not result.valid
        assert await core.alerts.get_alerts() == []


class TestIsAlreadyPaid:

    @pytest.mark.asyncio
    async def test_pending_booking(self, core, make_booking):
        booking_id = await make_booking(status="pending")

        assert await core.validator.is_already_paid(booking_id) is False
        assert await core.alerts.get_alerts() == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["confirmed", "completed"])
    async def test_paid_booking_raises_alert(self, core, make_booking, status):
        booking_id = await make_booking(status=status, paystack_reference="T_PREVIOUS")

        assert await core.validator.is_already_paid(booking_id) is True

        alerts = await core.alerts.get_alerts()
        assert len(alerts) == 1
        assert alerts[0].type == "double_charge_attempt"
        assert alerts[0].reference == "T_PREVIOUS"

    @pytest.mark.asyncio
    async def test_paid_booking_without_reference(self, core, make_booking):
        booking_id = await make_booking(status="confirmed")

        assert await core.validator.is_already_paid(booking_id) is True
        alerts = await core.alerts.get_alerts()
        assert alerts[0].reference == "unknown"

    @pytest.mark.asyncio
    async def test_missing_booking(self, core):
        assert await core.validator.is_already_paid("no_such_booking") is False

    @pytest.mark.asyncio
    async def test_unreadable_booking_fails_open(self, broken_session_factory, session_factory):
        ledger = TransactionLedger(broken_session_factory)
        validator = PaymentValidator(broken_session_factory, ledger, FraudAlertStore(session_factory))

        assert await validator.is_already_paid("B1") is False


class TestFraudAlertStore:

    @pytest.mark.asyncio
    async def test_discrepancy_is_actual_minus_expected(self, core):
        alert = await core.alerts.create_alert("T20", "amount_mismatch", 25000, 30000, "too much")

        assert alert.discrepancy == 5000
        assert alert.status == "unreviewed"
        assert alert.resolution is None
        assert alert.id.startswith("alert_")

    @pytest.mark.asyncio
    async def test_create_failure_returns_none(self, broken_session_factory):
        store = FraudAlertStore(broken_session_factory)
        assert await store.create_alert("T21", "amount_mismatch", 1, 2, "x") is None

    @pytest.mark.asyncio
    async def test_filters(self, core):
        await core.alerts.create_alert("T22", "amount_mismatch", 100, 200, "a")
        await core.alerts.create_alert("T23", "unknown_transaction", 0, 200, "b")
        await core.alerts.create_alert("T24", "metadata_tampering", 0, 0, "c")

        assert len(await core.alerts.get_alerts()) == 3
        assert [a.reference for a in await core.alerts.get_alerts(severity="critical")] == ["T22"]
        assert [a.reference for a in await core.alerts.get_alerts(alert_type="metadata_tampering")] == ["T24"]
        assert len(await core.alerts.get_alerts(limit=2)) == 2
        assert await core.alerts.get_alerts(status="reviewed") == []

    @pytest.mark.asyncio
    async def test_resolve_once(self, core):
        alert = await core.alerts.create_alert("T25", "amount_mismatch", 100, 200, "a")

        resolved = await core.alerts.resolve_alert(alert.id, "confirmed_fraud")
        assert resolved.status == "reviewed"
        assert resolved.resolution == "confirmed_fraud"
        assert resolved.reviewed_at is not None

        with pytest.raises(FraudAlertAlreadyReviewedError):
            await core.alerts.resolve_alert(alert.id, "false_positive")

        [stored] = await core.alerts.get_alerts()
        assert stored.resolution == "confirmed_fraud"

    @pytest.mark.asyncio
    async def test_resolve_unknown_alert(self, core):
        with pytest.raises(FraudAlertNotFoundError):
            await core.alerts.resolve_alert("alert_missing", "other")
