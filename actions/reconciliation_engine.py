"""
Reconciliation Engine
End-of-day sweep: backfill missed doses, then expire finished courses
"""

import logging
from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from config import settings
from services.medication_service import MedicationService, medication_service
from services.adherence_service import AdherenceService, adherence_service
from tools.schedule_normalizer import get_zone, is_due_today, local_today, utcnow


logger = logging.getLogger(__name__)


@dataclass
class ReconciliationResult:
    """Outcome of one daily run"""
    run_at: datetime
    checked: int = 0
    missed_logged: List[int] = field(default_factory=list)
    expired: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_at": self.run_at.isoformat(),
            "checked": self.checked,
            "missed_logged": self.missed_logged,
            "expired": self.expired,
            "failed": self.failed,
        }


class ReconciliationEngine:
    """
    Converts the absence of a 'taken' log into an explicit 'missed' log.

    The sweep is not idempotent for untaken medications: two runs on the
    same day insert two missed rows, so it must be scheduled once a day.
    Backfilled misses are not escalated to caregivers.
    """

    def __init__(
        self,
        medications: Optional[MedicationService] = None,
        adherence: Optional[AdherenceService] = None,
        apply_day_gate: Optional[bool] = None,
        tz: Optional[ZoneInfo] = None
    ):
        self.medications = medications or medication_service
        self.adherence = adherence or adherence_service
        self.apply_day_gate = (
            settings.RECONCILIATION_APPLY_DAY_GATE if apply_day_gate is None else apply_day_gate
        )
        self.tz = tz

    @property
    def zone(self) -> ZoneInfo:
        return self.tz or get_zone()

    async def backfill_missed(
        self,
        now: datetime,
        result: ReconciliationResult,
        db: Optional[Session] = None
    ):
        """Insert one 'missed' log per active medication not taken today"""
        today = local_today(now, self.zone)
        active = await self.medications.get_active_medications(today, db=db)

        for medication in active:
            result.checked += 1
            try:
                if self.apply_day_gate and not is_due_today(
                    medication.created_at, medication.frequency, now, self.zone
                ):
                    continue

                if await self.adherence.has_taken_on(medication.id, today, tz=self.zone, db=db):
                    continue

                await self.adherence.log_dose_missed(
                    medication.patient_id, medication.id, missed_at=now, db=db
                )
                result.missed_logged.append(medication.id)
            except Exception:
                result.failed.append(medication.id)
                logger.exception(f"Missed-dose backfill failed for medication {medication.id}")

    async def expire_courses(
        self,
        now: datetime,
        result: ReconciliationResult,
        db: Optional[Session] = None
    ):
        """Delete medications whose end date has passed; their logs stay"""
        today = local_today(now, self.zone)
        try:
            expired = await self.medications.delete_expired(today, db=db)
            result.expired.extend(m.id for m in expired)
        except Exception:
            logger.exception("Course expiry failed")

    async def run(
        self,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> ReconciliationResult:
        """Backfill first, expire second"""
        now = now or utcnow()
        result = ReconciliationResult(run_at=now)

        await self.backfill_missed(now, result, db=db)
        await self.expire_courses(now, result, db=db)

        logger.info(
            f"Reconciliation: {result.checked} checked, {len(result.missed_logged)} missed logged, "
            f"{len(result.expired)} expired, {len(result.failed)} failed"
        )
        return result


# Singleton instance
reconciliation_engine = ReconciliationEngine()
