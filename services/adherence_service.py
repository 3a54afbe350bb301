"""
Adherence Service
Business logic for medication adherence logging and analysis
"""

import logging
from typing import Dict, List, Optional, Any
from datetime import datetime, date, timedelta
from zoneinfo import ZoneInfo
from sqlalchemy.orm import Session
from sqlalchemy import and_, func

from database import get_db_context
import models
from models import AdherenceStatus
from tools.schedule_normalizer import local_day_bounds, to_utc_naive, utcnow


logger = logging.getLogger(__name__)


def adherence_percentage(taken: int, missed: int) -> int:
    """round(taken / (taken + missed) * 100), 0 when nothing was logged"""
    total = taken + missed
    if total == 0:
        return 0
    return round(taken / total * 100)


class AdherenceService:
    """
    Service for adherence tracking and analysis
    """

    async def log_adherence(
        self,
        patient_id: int,
        medication_id: Optional[int],
        status: AdherenceStatus,
        timestamp: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> models.AdherenceLog:
        """
        Log an adherence event

        Args:
            patient_id: Patient ID
            medication_id: Medication ID, None if it could not be resolved
            status: taken or missed
            timestamp: When it happened (default: now)
            db: Database session

        Returns:
            Created AdherenceLog object
        """
        def _log(session: Session) -> models.AdherenceLog:
            log = models.AdherenceLog(
                patient_id=patient_id,
                medication_id=medication_id,
                status=status,
                timestamp=to_utc_naive(timestamp or utcnow()),
            )

            session.add(log)
            session.commit()
            session.refresh(log)

            logger.info(
                f"Logged adherence for patient {patient_id}, "
                f"medication {medication_id}: {status.value}"
            )
            return log

        if db:
            return _log(db)

        with get_db_context() as session:
            return _log(session)

    async def log_dose_taken(
        self,
        patient_id: int,
        medication_id: Optional[int],
        taken_at: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> models.AdherenceLog:
        """Convenience method to log a taken dose"""
        return await self.log_adherence(
            patient_id=patient_id,
            medication_id=medication_id,
            status=AdherenceStatus.TAKEN,
            timestamp=taken_at,
            db=db
        )

    async def log_dose_missed(
        self,
        patient_id: int,
        medication_id: Optional[int],
        missed_at: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> models.AdherenceLog:
        """Log a missed dose"""
        return await self.log_adherence(
            patient_id=patient_id,
            medication_id=medication_id,
            status=AdherenceStatus.MISSED,
            timestamp=missed_at,
            db=db
        )

    async def has_taken_on(
        self,
        medication_id: int,
        day: date,
        tz: Optional[ZoneInfo] = None,
        db: Optional[Session] = None
    ) -> bool:
        """Whether a 'taken' log exists for the medication on a local day"""
        start, end = local_day_bounds(day, tz)

        def _check(session: Session) -> bool:
            return session.query(models.AdherenceLog.id).filter(
                and_(
                    models.AdherenceLog.medication_id == medication_id,
                    models.AdherenceLog.status == AdherenceStatus.TAKEN,
                    models.AdherenceLog.timestamp >= start,
                    models.AdherenceLog.timestamp < end
                )
            ).first() is not None

        if db:
            return _check(db)

        with get_db_context() as session:
            return _check(session)

    async def get_logs(
        self,
        patient_id: int,
        start: datetime,
        end: datetime,
        db: Optional[Session] = None
    ) -> List[models.AdherenceLog]:
        """Logs of a patient in [start, end)"""
        start_utc, end_utc = to_utc_naive(start), to_utc_naive(end)

        def _get(session: Session) -> List[models.AdherenceLog]:
            return session.query(models.AdherenceLog).filter(
                and_(
                    models.AdherenceLog.patient_id == patient_id,
                    models.AdherenceLog.timestamp >= start_utc,
                    models.AdherenceLog.timestamp < end_utc
                )
            ).order_by(models.AdherenceLog.timestamp).all()

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def get_adherence_summary(
        self,
        patient_id: int,
        days: int = 7,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """
        Count taken vs missed over the trailing window

        Returns:
            {"taken", "missed", "percentage", "days", "period_start", "period_end"}
        """
        end = to_utc_naive(now or utcnow())
        start = end - timedelta(days=days)

        def _summarize(session: Session) -> Dict[str, Any]:
            rows = session.query(
                models.AdherenceLog.status,
                func.count(models.AdherenceLog.id)
            ).filter(
                and_(
                    models.AdherenceLog.patient_id == patient_id,
                    models.AdherenceLog.timestamp >= start,
                    models.AdherenceLog.timestamp <= end
                )
            ).group_by(models.AdherenceLog.status).all()

            counts = {status: count for status, count in rows}
            taken = counts.get(AdherenceStatus.TAKEN, 0)
            missed = counts.get(AdherenceStatus.MISSED, 0)

            return {
                "taken": taken,
                "missed": missed,
                "percentage": adherence_percentage(taken, missed),
                "days": days,
                "period_start": start,
                "period_end": end,
            }

        if db:
            return _summarize(db)

        with get_db_context() as session:
            return _summarize(session)


# Singleton instance
adherence_service = AdherenceService()
