"""
Tests for Paystack payload models and the reconciliation job.
"""
import pytest

from hypeconnect.models.fraud import severity_for
from hypeconnect.models.payments import PaystackEvent, kobo_to_naira
from hypeconnect.services.scheduler import (
    RECONCILIATION_JOB_ID,
    ReconciliationScheduler,
    run_reconciliation,
)
from hypeconnect.services.transaction_ledger import TransactionLedger


class TestKoboConversion:

    def test_whole_naira_stays_int(self):
        assert kobo_to_naira(2500000) == 25000
        assert isinstance(kobo_to_naira(2500000), int)

    def test_fractional_naira(self):
        assert kobo_to_naira(2500050) == 25000.5


class TestPaystackEvent:

    def test_webhook_id_prefers_event_id(self):
        event = PaystackEvent.model_validate({"event": "charge.success", "id": 123, "data": {"reference": "T1"}})
        assert event.webhook_id == "123"

    def test_webhook_id_falls_back_to_reference(self):
        event = PaystackEvent.model_validate({"event": "charge.success", "data": {"reference": "T1"}})
        assert event.webhook_id == "charge.success-T1"

    def test_empty_string_metadata(self):
        event = PaystackEvent.model_validate({"event": "charge.success", "data": {"reference": "T1", "metadata": ""}})
        assert event.data.metadata == {}

    def test_extra_gateway_fields_kept(self):
        event = PaystackEvent.model_validate({
            "event": "charge.success",
            "data": {"reference": "T1", "channel": "card"},
        })
        assert event.data.model_dump()["channel"] == "card"


class TestSeverity:

    def test_amount_mismatch_is_critical(self):
        assert severity_for("amount_mismatch") == "critical"

    @pytest.mark.parametrize("alert_type", ["unknown_transaction", "metadata_tampering", "double_charge_attempt"])
    def test_other_types_are_high(self, alert_type):
        assert severity_for(alert_type) == "high"


class TestReconciliationJob:

    @pytest.mark.asyncio
    async def test_run_reconciliation(self, session_factory):
        ledger = TransactionLedger(session_factory)
        await ledger.record_initialized("T1", "user_1", "fan@example.com", 100)
        await ledger.mark_failed("T1", "Declined")

        await run_reconciliation(ledger, hours_back=24)

    @pytest.mark.asyncio
    async def test_scheduler_registers_job(self, session_factory):
        scheduler = ReconciliationScheduler(TransactionLedger(session_factory), interval_hours=6)

        scheduler.start()
        try:
            assert scheduler.running
            job = scheduler.get_job()
            assert job is not None
            assert job.id == RECONCILIATION_JOB_ID
        finally:
            scheduler.shutdown(wait=False)
