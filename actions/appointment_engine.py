"""
Appointment Engine
Hourly reminder for appointments starting within the lookahead window
"""

import logging
from typing import List, Optional
from dataclasses import dataclass, field
from datetime import datetime
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

import models
from config import settings
from services.appointment_service import AppointmentService, appointment_service
from services.caregiver_service import CaregiverService, caregiver_service
from tools.notification_service import Messenger, messenger as default_messenger
from tools.schedule_normalizer import get_zone, to_local, utcnow


logger = logging.getLogger(__name__)


@dataclass
class AppointmentRunResult:
    run_at: datetime
    reminded: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)


class AppointmentEngine:
    """
    Flags each upcoming appointment exactly once.

    The reminded flag is flipped before delivery so a failed send is
    logged but never repeated on the next run.
    """

    def __init__(
        self,
        messenger: Optional[Messenger] = None,
        appointments: Optional[AppointmentService] = None,
        caregivers: Optional[CaregiverService] = None,
        lookahead_hours: Optional[int] = None,
        tz: Optional[ZoneInfo] = None
    ):
        self.messenger = messenger or default_messenger
        self.appointments = appointments or appointment_service
        self.caregivers = caregivers or caregiver_service
        self.lookahead_hours = lookahead_hours or settings.APPOINTMENT_LOOKAHEAD_HOURS
        self.tz = tz

    def format_reminder(self, appointment: models.Appointment, for_caregiver: bool = False) -> str:
        when = to_local(appointment.date_time, self.tz or get_zone()).strftime("%a %d %b at %H:%M")
        if for_caregiver:
            return f"📅 Patient {appointment.patient_id} has an appointment: {appointment.title} on {when}."
        return f"📅 Reminder: {appointment.title} on {when}."

    async def run(
        self,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> AppointmentRunResult:
        now = now or utcnow()
        result = AppointmentRunResult(run_at=now)
        upcoming = await self.appointments.get_due_for_reminder(now, self.lookahead_hours, db=db)

        for appointment in upcoming:
            try:
                if not await self.appointments.mark_reminded(appointment.id, db=db):
                    continue
                result.reminded.append(appointment.id)

                delivery = await self.messenger.send_message(
                    appointment.patient_id, self.format_reminder(appointment)
                )
                if not delivery.success:
                    logger.error(f"Appointment reminder {appointment.id} not delivered: {delivery.error}")

                link = await self.caregivers.get_caregiver(appointment.patient_id, db=db)
                if link:
                    copy = await self.messenger.send_message(
                        link.caregiver_id, self.format_reminder(appointment, for_caregiver=True)
                    )
                    if not copy.success:
                        logger.error(
                            f"Caregiver copy of appointment {appointment.id} not delivered: {copy.error}"
                        )
            except Exception:
                result.failed.append(appointment.id)
                logger.exception(f"Appointment reminder {appointment.id} failed")

        if upcoming:
            logger.info(f"Appointment reminders: {len(result.reminded)} sent, {len(result.failed)} failed")
        return result


# Singleton instance
appointment_engine = AppointmentEngine()
