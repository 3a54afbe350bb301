"""
Reminder Engine
Due-dose scanner: finds the medications due this minute and sends reminders,
then records the patient's taken / skipped / snooze response
"""

import logging
from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

import models
from config import scheduling_config
from actions.alert_engine import Alert, AlertEngine, AlertStatus, alert_engine
from services.medication_service import MedicationService, medication_service
from services.adherence_service import AdherenceService, adherence_service
from tools.notification_service import (
    ActionKind,
    Messenger,
    NotificationResult,
    messenger as default_messenger,
    reminder_buttons,
)
from tools.schedule_normalizer import (
    get_zone,
    is_due_today,
    local_hhmm,
    local_today,
    utcnow,
)


logger = logging.getLogger(__name__)


@dataclass
class DueDose:
    """A medication that should be presented to its patient now"""
    medication_id: int
    patient_id: int
    name: str
    dosage: str
    schedule_time: str
    woken_from_snooze: bool = False
    has_snooze: bool = False

    @classmethod
    def from_medication(cls, medication: models.Medication, woken_from_snooze: bool) -> "DueDose":
        return cls(
            medication_id=medication.id,
            patient_id=medication.patient_id,
            name=medication.name,
            dosage=medication.dosage or "",
            schedule_time=medication.schedule_time,
            woken_from_snooze=woken_from_snooze,
            has_snooze=medication.snoozed_until is not None,
        )


@dataclass
class TickResult:
    """Outcome of one scan"""
    checked_at: datetime
    local_time: str
    due: List[DueDose] = field(default_factory=list)
    sent: int = 0
    failed: int = 0
    gated_out: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "checked_at": self.checked_at.isoformat(),
            "local_time": self.local_time,
            "due": [d.medication_id for d in self.due],
            "sent": self.sent,
            "failed": self.failed,
            "gated_out": self.gated_out,
        }


@dataclass
class ResponseOutcome:
    """What happened after a reminder button press"""
    text: str
    found: bool = True
    log: Optional[models.AdherenceLog] = None
    alert: Optional[Alert] = None
    snoozed_until: Optional[datetime] = None


class ReminderEngine:
    """
    Engine for due-dose reminders

    Responsibilities:
    - Select on-time and woken-snooze medications each minute
    - Apply the frequency day gate to on-time doses
    - Deliver reminders with taken / skip / snooze buttons
    - Record responses and escalate skipped doses
    """

    def __init__(
        self,
        messenger: Optional[Messenger] = None,
        medications: Optional[MedicationService] = None,
        adherence: Optional[AdherenceService] = None,
        alerts: Optional[AlertEngine] = None,
        snooze_minutes: int = scheduling_config.SNOOZE_MINUTES,
        tz: Optional[ZoneInfo] = None
    ):
        self.messenger = messenger or default_messenger
        self.medications = medications or medication_service
        self.adherence = adherence or adherence_service
        self.alerts = alerts or alert_engine
        self.snooze_minutes = snooze_minutes
        self.tz = tz

    @property
    def zone(self) -> ZoneInfo:
        return self.tz or get_zone()

    # ==================== SCANNING ====================

    async def collect_due(
        self,
        now: datetime,
        db: Optional[Session] = None
    ) -> List[DueDose]:
        """
        Medications due at `now`.

        Woken snoozes always fire; on-time doses must also fall on one of
        the medication's scheduled days. A medication in both sets is
        returned once.
        """
        due, _ = await self._collect(now, db)
        return due

    async def _collect(self, now: datetime, db: Optional[Session]):
        zone = self.zone
        hhmm = local_hhmm(now, zone)
        today = local_today(now, zone)

        on_time = await self.medications.get_on_time_medications(hhmm, today, db=db)
        woken = await self.medications.get_woken_snoozes(now, today, db=db)

        candidates: Dict[int, DueDose] = {}
        for medication in woken:
            candidates[medication.id] = DueDose.from_medication(medication, woken_from_snooze=True)

        gated_out = 0
        for medication in on_time:
            if medication.id in candidates:
                continue
            if not is_due_today(medication.created_at, medication.frequency, now, zone):
                gated_out += 1
                continue
            candidates[medication.id] = DueDose.from_medication(medication, woken_from_snooze=False)

        return list(candidates.values()), gated_out

    async def send_reminder(self, dose: DueDose) -> NotificationResult:
        """Deliver one reminder with its response buttons"""
        text = f"💊 Time for your {dose.name}"
        if dose.dosage:
            text += f" ({dose.dosage})"
        text += "."
        if dose.woken_from_snooze:
            text += " This is your snoozed reminder."

        return await self.messenger.send_message(
            dose.patient_id,
            text,
            buttons=reminder_buttons(dose.medication_id, self.snooze_minutes),
        )

    async def run_tick(
        self,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> TickResult:
        """One scan: clear snoozes of due doses and send their reminders"""
        now = now or utcnow()
        due, gated_out = await self._collect(now, db)
        result = TickResult(
            checked_at=now,
            local_time=local_hhmm(now, self.zone),
            due=due,
            gated_out=gated_out,
        )

        for dose in due:
            try:
                if dose.has_snooze:
                    await self.medications.clear_snooze(dose.medication_id, db=db)

                delivery = await self.send_reminder(dose)
                if delivery.success:
                    result.sent += 1
                else:
                    result.failed += 1
                    logger.error(
                        f"Reminder for medication {dose.medication_id} to patient "
                        f"{dose.patient_id} not delivered: {delivery.error}"
                    )
            except Exception:
                result.failed += 1
                logger.exception(f"Reminder for medication {dose.medication_id} failed")

        if due:
            logger.info(
                f"Reminder tick {result.local_time}: {len(due)} due, {result.sent} sent, "
                f"{result.failed} failed, {gated_out} outside their day"
            )
        return result

    # ==================== RESPONSES ====================

    async def handle_response(
        self,
        patient_id: int,
        medication_id: int,
        action: ActionKind,
        now: Optional[datetime] = None,
        patient_name: Optional[str] = None,
        db: Optional[Session] = None
    ) -> ResponseOutcome:
        """
        Apply a taken / skip / snooze button press.

        Snooze only moves snoozed_until; taken and skip append a log, and a
        skip additionally alerts the caregiver.
        """
        now = now or utcnow()
        medication = await self.medications.get_medication(medication_id, db=db)
        if not medication or medication.patient_id != patient_id:
            return ResponseOutcome(text="That medicine is no longer on your list.", found=False)

        if action == ActionKind.SNOOZE:
            until = now + timedelta(minutes=self.snooze_minutes)
            await self.medications.set_snooze(medication.id, until, db=db)
            logger.info(f"Medication {medication.id} snoozed until {until.isoformat()}")
            return ResponseOutcome(
                text=f"⏰ OK, I'll remind you about {medication.name} again in {self.snooze_minutes} minutes.",
                snoozed_until=until,
            )

        if action == ActionKind.TAKEN:
            log = await self.adherence.log_dose_taken(patient_id, medication.id, taken_at=now, db=db)
            return ResponseOutcome(text=f"✅ Great! {medication.name} marked as taken.", log=log)

        if action == ActionKind.SKIP:
            log = await self.adherence.log_dose_missed(patient_id, medication.id, missed_at=now, db=db)
            alert = await self.alerts.escalate_missed_dose(
                patient_id, medication_name=medication.name, patient_name=patient_name, db=db
            )
            text = f"❌ {medication.name} marked as skipped."
            if alert.status == AlertStatus.SENT:
                text += " I've notified your caregiver."
            return ResponseOutcome(text=text, log=log, alert=alert)

        raise ValueError(f"Not a reminder response: {action}")


# Singleton instance
reminder_engine = ReminderEngine()
