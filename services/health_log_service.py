"""
Health Log Service
Append-only biomarker readings
"""

import logging
from typing import List, Optional
from datetime import datetime
from sqlalchemy.orm import Session
from sqlalchemy import and_

from database import get_db_context
import models
from tools.schedule_normalizer import to_utc_naive, utcnow


logger = logging.getLogger(__name__)


class HealthLogService:
    """
    Service for health log entries
    """

    async def add_entry(
        self,
        patient_id: int,
        log_type: str,
        value: str,
        timestamp: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> models.HealthLog:
        def _add(session: Session) -> models.HealthLog:
            entry = models.HealthLog(
                patient_id=patient_id,
                type=log_type.strip(),
                value=str(value).strip(),
                timestamp=to_utc_naive(timestamp or utcnow()),
            )
            session.add(entry)
            session.commit()
            session.refresh(entry)

            logger.info(f"Logged {entry.type} for patient {patient_id}")
            return entry

        if db:
            return _add(db)

        with get_db_context() as session:
            return _add(session)

    async def get_entries(
        self,
        patient_id: int,
        start: datetime,
        end: datetime,
        db: Optional[Session] = None
    ) -> List[models.HealthLog]:
        """Entries of a patient in [start, end]"""
        start_utc, end_utc = to_utc_naive(start), to_utc_naive(end)

        def _get(session: Session) -> List[models.HealthLog]:
            return session.query(models.HealthLog).filter(
                and_(
                    models.HealthLog.patient_id == patient_id,
                    models.HealthLog.timestamp >= start_utc,
                    models.HealthLog.timestamp <= end_utc
                )
            ).order_by(models.HealthLog.timestamp).all()

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)


# Singleton instance
health_log_service = HealthLogService()
