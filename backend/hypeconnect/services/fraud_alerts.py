"""
Fraud Alert Store

Append-only creation of fraud alerts by the validation engine plus a
one-time admin resolution.
"""
import logging
import uuid
from typing import Optional, List

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..config import settings
from ..db.models import FraudAlertModel, utcnow
from ..exceptions import FraudAlertAlreadyReviewedError, FraudAlertNotFoundError
from ..models.fraud import FraudAlert, severity_for

logger = logging.getLogger(__name__)


def _to_alert(row: FraudAlertModel) -> FraudAlert:
    return FraudAlert(
        id=row.id,
        reference=row.reference,
        type=row.alert_type,
        expected_amount=row.expected_amount,
        actual_amount=row.actual_amount,
        discrepancy=row.discrepancy,
        severity=row.severity,
        status=row.status,
        resolution=row.resolution,
        description=row.description,
        timestamp=row.timestamp,
        reviewed_at=row.reviewed_at,
    )


class FraudAlertStore:
    """fraud_alerts table access."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def create_alert(
        self,
        reference: str,
        alert_type: str,
        expected_amount: float,
        actual_amount: float,
        description: str
    ) -> Optional[FraudAlert]:
        """
        Persist a fraud alert.

        A failed write is logged and returns None; it never changes the
        validation outcome that triggered it.
        """
        row = FraudAlertModel(
            id=f"alert_{uuid.uuid4().hex[:16]}",
            reference=reference,
            alert_type=alert_type,
            expected_amount=expected_amount,
            actual_amount=actual_amount,
            discrepancy=actual_amount - expected_amount,
            description=description,
            severity=severity_for(alert_type),
            status="unreviewed",
            timestamp=utcnow(),
            environment=settings.environment,
        )

        try:
            async with self._session_factory() as session:
                session.add(row)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"[FraudAlert] Failed to create fraud alert: {e}", exc_info=True)
            return None

        logger.warning(f"[FraudAlert] {alert_type}: {description}")
        return _to_alert(row)

    async def get_alerts(
        self,
        limit: int = 50,
        status: Optional[str] = None,
        severity: Optional[str] = None,
        alert_type: Optional[str] = None
    ) -> List[FraudAlert]:
        """Alerts for admin review, newest first, optionally filtered."""
        query = select(FraudAlertModel)
        if status:
            query = query.where(FraudAlertModel.status == status)
        if severity:
            query = query.where(FraudAlertModel.severity == severity)
        if alert_type:
            query = query.where(FraudAlertModel.alert_type == alert_type)
        query = query.order_by(FraudAlertModel.timestamp.desc()).limit(limit)

        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                return [_to_alert(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"[FraudAlerts] Error fetching fraud alerts: {e}")
            return []

    async def resolve_alert(self, alert_id: str, resolution: str) -> FraudAlert:
        """
        Mark an alert reviewed. Succeeds at most once per alert.

        Raises:
            FraudAlertNotFoundError: unknown alert ID
            FraudAlertAlreadyReviewedError: alert was already resolved
        """
        async with self._session_factory() as session:
            result = await session.execute(
                update(FraudAlertModel)
                .where(FraudAlertModel.id == alert_id)
                .where(FraudAlertModel.status == "unreviewed")
                .values(status="reviewed", resolution=resolution, reviewed_at=utcnow())
                .execution_options(synchronize_session=False)
            )

            if result.rowcount != 1:
                existing = await session.get(FraudAlertModel, alert_id)
                if existing is None:
                    raise FraudAlertNotFoundError(
                        f"No fraud alert with ID {alert_id}",
                        details={"alert_id": alert_id}
                    )
                raise FraudAlertAlreadyReviewedError(
                    f"Fraud alert {alert_id} was already resolved as {existing.resolution}",
                    details={"alert_id": alert_id, "resolution": existing.resolution}
                )

            await session.commit()
            row = await session.get(FraudAlertModel, alert_id, populate_existing=True)
            alert = _to_alert(row)

        logger.info(f"[FraudAlert] Alert {alert_id} marked as reviewed: {resolution}")
        return alert
