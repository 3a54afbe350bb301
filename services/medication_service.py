"""
Medication Service
Business logic for medication management
"""

import logging
from typing import Dict, List, Optional, Any
from datetime import datetime, date
from sqlalchemy.orm import Session
from sqlalchemy import and_, or_

from database import get_db_context
import models
from tools.schedule_normalizer import normalize_frequency, normalize_time, to_utc_naive


logger = logging.getLogger(__name__)


def _active_filter(today: date):
    """Reminders on, course not over"""
    return and_(
        models.Medication.reminder_enabled.is_(True),
        or_(
            models.Medication.end_date.is_(None),
            models.Medication.end_date >= today
        )
    )


def is_active(medication: models.Medication, today: date) -> bool:
    """_active_filter applied to a loaded row"""
    return bool(medication.reminder_enabled) and (
        medication.end_date is None or medication.end_date >= today
    )


class MedicationService:
    """
    Service for medication-related operations
    """

    @staticmethod
    def _build(
        patient_id: int,
        name: str,
        dosage: Optional[str],
        time: Any,
        frequency: Any,
        end_date: Optional[date],
        created_at: Optional[datetime]
    ) -> models.Medication:
        medication = models.Medication(
            patient_id=patient_id,
            name=name.strip(),
            dosage=(dosage or "").strip(),
            schedule_time=normalize_time(time, name),
            frequency=normalize_frequency(frequency),
            end_date=end_date,
        )
        if created_at is not None:
            medication.created_at = to_utc_naive(created_at)
        return medication

    async def add_medication(
        self,
        patient_id: int,
        name: str,
        dosage: Optional[str] = None,
        time: Any = None,
        frequency: Any = None,
        end_date: Optional[date] = None,
        created_at: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> models.Medication:
        """
        Add a new medication for a patient

        Time and frequency are normalized here, so callers may pass whatever
        the inference service produced.

        Args:
            patient_id: Patient (chat user) ID
            name: Medication name
            dosage: Free-text dosage (e.g., "10mg")
            time: Raw schedule time, "8:00", None...
            frequency: Raw frequency, 2, "every other day", None...
            end_date: Last day of the course, if any
            created_at: Override of the frequency anchor
            db: Database session

        Returns:
            Created Medication object
        """
        def _add(session: Session) -> models.Medication:
            medication = self._build(patient_id, name, dosage, time, frequency, end_date, created_at)

            session.add(medication)
            session.commit()
            session.refresh(medication)

            logger.info(
                f"Added medication {medication.id} ({medication.name}) for patient {patient_id} "
                f"at {medication.schedule_time} every {medication.frequency}d"
            )
            return medication

        if db:
            return _add(db)

        with get_db_context() as session:
            return _add(session)

    async def add_medications(
        self,
        patient_id: int,
        entries: List[Dict[str, Any]],
        db: Optional[Session] = None
    ) -> List[models.Medication]:
        """
        Add several medications in one transaction.

        Each entry holds add_medication's keyword arguments (name, dosage,
        time, frequency, end_date). Either every row is stored or, when the
        store rejects one, none is and the error propagates.
        """
        def _add_all(session: Session) -> List[models.Medication]:
            medications = [
                self._build(
                    patient_id,
                    entry["name"],
                    entry.get("dosage"),
                    entry.get("time"),
                    entry.get("frequency"),
                    entry.get("end_date"),
                    entry.get("created_at"),
                )
                for entry in entries
            ]

            try:
                session.add_all(medications)
                session.commit()
            except Exception:
                session.rollback()
                raise

            for medication in medications:
                session.refresh(medication)

            logger.info(f"Added {len(medications)} medications for patient {patient_id}")
            return medications

        if db:
            return _add_all(db)

        with get_db_context() as session:
            return _add_all(session)

    async def get_medication(
        self,
        medication_id: int,
        db: Optional[Session] = None
    ) -> Optional[models.Medication]:
        """Get medication by ID"""
        def _get(session: Session) -> Optional[models.Medication]:
            return session.query(models.Medication).filter(
                models.Medication.id == medication_id
            ).first()

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def list_medications(
        self,
        patient_id: int,
        db: Optional[Session] = None
    ) -> List[models.Medication]:
        """All medications of a patient, ordered by time of day"""
        def _list(session: Session) -> List[models.Medication]:
            return session.query(models.Medication).filter(
                models.Medication.patient_id == patient_id
            ).order_by(models.Medication.schedule_time, models.Medication.id).all()

        if db:
            return _list(db)

        with get_db_context() as session:
            return _list(session)

    async def find_by_name(
        self,
        patient_id: int,
        name: Optional[str],
        db: Optional[Session] = None
    ) -> Optional[models.Medication]:
        """Case-insensitive substring match on the patient's medications"""
        if not name or not name.strip():
            return None

        def _find(session: Session) -> Optional[models.Medication]:
            return session.query(models.Medication).filter(
                and_(
                    models.Medication.patient_id == patient_id,
                    models.Medication.name.ilike(f"%{name.strip()}%")
                )
            ).order_by(models.Medication.id).first()

        if db:
            return _find(db)

        with get_db_context() as session:
            return _find(session)

    async def update_medication(
        self,
        patient_id: int,
        name: str,
        new_name: Optional[str] = None,
        dosage: Optional[str] = None,
        time: Any = None,
        frequency: Any = None,
        db: Optional[Session] = None
    ) -> Optional[models.Medication]:
        """
        Update name/dosage/time/frequency of a medication found by name.
        Only fields that were supplied change. Returns None when not found.
        """
        def _update(session: Session) -> Optional[models.Medication]:
            medication = session.query(models.Medication).filter(
                and_(
                    models.Medication.patient_id == patient_id,
                    models.Medication.name.ilike(f"%{name.strip()}%")
                )
            ).order_by(models.Medication.id).first()

            if not medication:
                return None

            if new_name:
                medication.name = new_name.strip()
            if dosage:
                medication.dosage = dosage.strip()
            if time is not None:
                medication.schedule_time = normalize_time(time, medication.name)
            if frequency is not None:
                medication.frequency = normalize_frequency(frequency)

            session.commit()
            session.refresh(medication)
            logger.info(f"Updated medication {medication.id} for patient {patient_id}")
            return medication

        if not name or not name.strip():
            return None

        if db:
            return _update(db)

        with get_db_context() as session:
            return _update(session)

    async def remove_medication(
        self,
        patient_id: int,
        name: str,
        db: Optional[Session] = None
    ) -> Optional[models.Medication]:
        """
        Delete a medication found by name together with its adherence logs.
        Returns the removed medication, or None when not found.
        """
        def _remove(session: Session) -> Optional[models.Medication]:
            medication = session.query(models.Medication).filter(
                and_(
                    models.Medication.patient_id == patient_id,
                    models.Medication.name.ilike(f"%{name.strip()}%")
                )
            ).order_by(models.Medication.id).first()

            if not medication:
                return None

            removed_logs = session.query(models.AdherenceLog).filter(
                models.AdherenceLog.medication_id == medication.id
            ).delete(synchronize_session=False)
            session.delete(medication)
            session.commit()

            logger.info(
                f"Removed medication {medication.id} for patient {patient_id} "
                f"with {removed_logs} adherence logs"
            )
            return medication

        if not name or not name.strip():
            return None

        if db:
            return _remove(db)

        with get_db_context() as session:
            return _remove(session)

    async def get_active_medications(
        self,
        today: date,
        db: Optional[Session] = None
    ) -> List[models.Medication]:
        """Every active medication across all patients"""
        def _get(session: Session) -> List[models.Medication]:
            return session.query(models.Medication).filter(
                _active_filter(today)
            ).order_by(models.Medication.id).all()

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def get_on_time_medications(
        self,
        hhmm: str,
        today: date,
        db: Optional[Session] = None
    ) -> List[models.Medication]:
        """Active medications whose schedule time is exactly hhmm"""
        def _get(session: Session) -> List[models.Medication]:
            return session.query(models.Medication).filter(
                and_(
                    _active_filter(today),
                    models.Medication.schedule_time == hhmm
                )
            ).order_by(models.Medication.id).all()

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def get_woken_snoozes(
        self,
        now: datetime,
        today: date,
        db: Optional[Session] = None
    ) -> List[models.Medication]:
        """Active medications whose snooze has run out"""
        cutoff = to_utc_naive(now)

        def _get(session: Session) -> List[models.Medication]:
            return session.query(models.Medication).filter(
                and_(
                    _active_filter(today),
                    models.Medication.snoozed_until.isnot(None),
                    models.Medication.snoozed_until <= cutoff
                )
            ).order_by(models.Medication.id).all()

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def set_snooze(
        self,
        medication_id: int,
        until: Optional[datetime],
        db: Optional[Session] = None
    ) -> Optional[models.Medication]:
        """Set (or clear, with None) the snooze of a medication"""
        def _set(session: Session) -> Optional[models.Medication]:
            medication = session.query(models.Medication).filter(
                models.Medication.id == medication_id
            ).first()
            if not medication:
                return None

            medication.snoozed_until = to_utc_naive(until) if until else None
            session.commit()
            session.refresh(medication)
            return medication

        if db:
            return _set(db)

        with get_db_context() as session:
            return _set(session)

    async def clear_snooze(
        self,
        medication_id: int,
        db: Optional[Session] = None
    ) -> Optional[models.Medication]:
        return await self.set_snooze(medication_id, None, db=db)

    async def delete_expired(
        self,
        today: date,
        db: Optional[Session] = None
    ) -> List[models.Medication]:
        """
        Delete medications whose course ended before today.
        Their adherence logs are kept and keep pointing at the old id.
        """
        def _delete(session: Session) -> List[models.Medication]:
            expired = session.query(models.Medication).filter(
                and_(
                    models.Medication.end_date.isnot(None),
                    models.Medication.end_date < today
                )
            ).all()

            for medication in expired:
                session.delete(medication)
            session.commit()

            if expired:
                logger.info(f"Deleted {len(expired)} expired medications")
            return expired

        if db:
            return _delete(db)

        with get_db_context() as session:
            return _delete(session)

    async def get_patients_with_medications(
        self,
        db: Optional[Session] = None
    ) -> List[int]:
        """Distinct patient IDs owning at least one medication"""
        def _get(session: Session) -> List[int]:
            rows = session.query(models.Medication.patient_id).distinct().order_by(
                models.Medication.patient_id
            ).all()
            return [row[0] for row in rows]

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)


# Singleton instance
medication_service = MedicationService()
