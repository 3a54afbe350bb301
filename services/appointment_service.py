"""
Appointment Service
Business logic for doctor appointments
"""

import logging
from typing import List, Optional
from datetime import datetime, timedelta
from sqlalchemy.orm import Session
from sqlalchemy import and_

from database import get_db_context
import models
from tools.schedule_normalizer import to_utc_naive, utcnow


logger = logging.getLogger(__name__)


class AppointmentService:
    """
    Service for appointment operations
    """

    async def add_appointment(
        self,
        patient_id: int,
        title: str,
        date_time: datetime,
        db: Optional[Session] = None
    ) -> models.Appointment:
        """Create an appointment; date_time is stored as UTC"""
        def _add(session: Session) -> models.Appointment:
            appointment = models.Appointment(
                patient_id=patient_id,
                title=title.strip(),
                date_time=to_utc_naive(date_time),
                reminded=False,
            )
            session.add(appointment)
            session.commit()
            session.refresh(appointment)

            logger.info(f"Added appointment {appointment.id} for patient {patient_id}")
            return appointment

        if db:
            return _add(db)

        with get_db_context() as session:
            return _add(session)

    async def find_by_title(
        self,
        patient_id: int,
        title: Optional[str],
        db: Optional[Session] = None
    ) -> Optional[models.Appointment]:
        """Case-insensitive substring match, earliest first"""
        if not title or not title.strip():
            return None

        def _find(session: Session) -> Optional[models.Appointment]:
            return session.query(models.Appointment).filter(
                and_(
                    models.Appointment.patient_id == patient_id,
                    models.Appointment.title.ilike(f"%{title.strip()}%")
                )
            ).order_by(models.Appointment.date_time).first()

        if db:
            return _find(db)

        with get_db_context() as session:
            return _find(session)

    async def update_appointment(
        self,
        patient_id: int,
        title: str,
        new_title: Optional[str] = None,
        date_time: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> Optional[models.Appointment]:
        """Rename or reschedule an appointment found by title"""
        if not title or not title.strip():
            return None

        def _update(session: Session) -> Optional[models.Appointment]:
            appointment = session.query(models.Appointment).filter(
                and_(
                    models.Appointment.patient_id == patient_id,
                    models.Appointment.title.ilike(f"%{title.strip()}%")
                )
            ).order_by(models.Appointment.date_time).first()

            if not appointment:
                return None

            if new_title:
                appointment.title = new_title.strip()
            if date_time is not None:
                appointment.date_time = to_utc_naive(date_time)

            session.commit()
            session.refresh(appointment)
            logger.info(f"Updated appointment {appointment.id} for patient {patient_id}")
            return appointment

        if db:
            return _update(db)

        with get_db_context() as session:
            return _update(session)

    async def cancel_appointment(
        self,
        patient_id: int,
        title: str,
        db: Optional[Session] = None
    ) -> Optional[models.Appointment]:
        """Delete an appointment found by title"""
        if not title or not title.strip():
            return None

        def _cancel(session: Session) -> Optional[models.Appointment]:
            appointment = session.query(models.Appointment).filter(
                and_(
                    models.Appointment.patient_id == patient_id,
                    models.Appointment.title.ilike(f"%{title.strip()}%")
                )
            ).order_by(models.Appointment.date_time).first()

            if not appointment:
                return None

            session.delete(appointment)
            session.commit()
            logger.info(f"Cancelled appointment {appointment.id} for patient {patient_id}")
            return appointment

        if db:
            return _cancel(db)

        with get_db_context() as session:
            return _cancel(session)

    async def list_upcoming(
        self,
        patient_id: int,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> List[models.Appointment]:
        """Future appointments of a patient"""
        cutoff = to_utc_naive(now or utcnow())

        def _list(session: Session) -> List[models.Appointment]:
            return session.query(models.Appointment).filter(
                and_(
                    models.Appointment.patient_id == patient_id,
                    models.Appointment.date_time >= cutoff
                )
            ).order_by(models.Appointment.date_time).all()

        if db:
            return _list(db)

        with get_db_context() as session:
            return _list(session)

    async def get_due_for_reminder(
        self,
        now: datetime,
        lookahead_hours: int,
        db: Optional[Session] = None
    ) -> List[models.Appointment]:
        """Unreminded appointments starting within the lookahead window"""
        start = to_utc_naive(now)
        end = start + timedelta(hours=lookahead_hours)

        def _get(session: Session) -> List[models.Appointment]:
            return session.query(models.Appointment).filter(
                and_(
                    models.Appointment.reminded.is_(False),
                    models.Appointment.date_time >= start,
                    models.Appointment.date_time <= end
                )
            ).order_by(models.Appointment.date_time).all()

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def mark_reminded(
        self,
        appointment_id: int,
        db: Optional[Session] = None
    ) -> bool:
        """Flip the reminded flag; it is never reset"""
        def _mark(session: Session) -> bool:
            updated = session.query(models.Appointment).filter(
                and_(
                    models.Appointment.id == appointment_id,
                    models.Appointment.reminded.is_(False)
                )
            ).update({models.Appointment.reminded: True}, synchronize_session=False)
            session.commit()
            return updated == 1

        if db:
            return _mark(db)

        with get_db_context() as session:
            return _mark(session)


# Singleton instance
appointment_service = AppointmentService()
