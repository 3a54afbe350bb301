"""
Assistant Service
Turns inbound chat interactions (text, button presses, shared contacts,
photos) into operations on the patient's data and a reply
"""

import logging
from typing import List, Optional
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from api.schemas.intent import (
    AddAppointmentCommand,
    AddMedicationCommand,
    CancelAppointmentCommand,
    CommandBase,
    LogHealthCommand,
    LogIntakeCommand,
    ProposedMedication,
    QueryScheduleCommand,
    RemoveMedicationCommand,
    SosCommand,
    UpdateAppointmentCommand,
    UpdateMedicationCommand,
)
from actions.alert_engine import AlertEngine, AlertStatus, alert_engine
from actions.confirmation_engine import ConfirmationEngine, confirmation_engine, course_end_date
from actions.reminder_engine import ReminderEngine, reminder_engine
from services.adherence_service import AdherenceService, adherence_service
from services.appointment_service import AppointmentService, appointment_service
from services.caregiver_service import CaregiverService, caregiver_service
from services.health_log_service import HealthLogService, health_log_service
from services.llm_service import LLMService, llm_service
from services.medication_service import MedicationService, medication_service
from tools.notification_service import (
    ActionKind,
    Button,
    Messenger,
    SHARE_CAREGIVER_REQUEST_ID,
    SHARE_PATIENT_REQUEST_ID,
    confirm_buttons,
    decode_action,
    encode_action,
    messenger as default_messenger,
)
from tools.schedule_normalizer import get_zone, local_today, to_local, utcnow


logger = logging.getLogger(__name__)


WELCOME_MESSAGE = (
    "👋 Hi! I'm your medication assistant.\n\n"
    "Tell me about your medicines in plain words and I'll remind you when it's time.\n"
    "Send /help to see what I can do."
)

HELP_MESSAGE = (
    "Here's what I can do:\n"
    "• \"Add Lisinopril 10mg every morning\"\n"
    "• \"Change my Metformin to 8pm\" / \"Stop taking Aspirin\"\n"
    "• \"I took my Metformin\"\n"
    "• \"What's my schedule?\"\n"
    "• \"Doctor's appointment tomorrow at 3pm\"\n"
    "• \"My blood pressure is 120/80\"\n"
    "• Send a photo of a prescription to import it\n\n"
    "/caregiver - choose who gets alerted when you miss a dose\n"
    "/care_for - ask to become someone's caregiver\n"
    "/sos - alert your caregiver right away"
)

UNKNOWN_MESSAGE = "Sorry, I didn't understand that.\n\n" + HELP_MESSAGE

ERROR_MESSAGE = "Something went wrong on my side. Please try again in a moment."


@dataclass
class Subject:
    """Who is acting, and whose data the interaction touches"""
    acting_user_id: int
    patient_id: int
    masquerading: bool = False


@dataclass
class Reply:
    """Text (and optional buttons) to send back to the acting user"""
    text: Optional[str]
    buttons: Optional[List[List[Button]]] = None


def describe_frequency(frequency: int) -> str:
    if frequency <= 1:
        return "every day"
    if frequency == 2:
        return "every other day"
    return f"every {frequency} days"


class AssistantService:
    """
    Conversational front door.

    Every interaction first resolves its Subject: a caregiver acting in
    the chat operates on the linked patient's data.
    """

    def __init__(
        self,
        messenger: Optional[Messenger] = None,
        llm: Optional[LLMService] = None,
        medications: Optional[MedicationService] = None,
        adherence: Optional[AdherenceService] = None,
        caregivers: Optional[CaregiverService] = None,
        appointments: Optional[AppointmentService] = None,
        health_logs: Optional[HealthLogService] = None,
        reminders: Optional[ReminderEngine] = None,
        alerts: Optional[AlertEngine] = None,
        confirmations: Optional[ConfirmationEngine] = None
    ):
        self.messenger = messenger or default_messenger
        self.llm = llm or llm_service
        self.medications = medications or medication_service
        self.adherence = adherence or adherence_service
        self.caregivers = caregivers or caregiver_service
        self.appointments = appointments or appointment_service
        self.health_logs = health_logs or health_log_service
        self.reminders = reminders or reminder_engine
        self.alerts = alerts or alert_engine
        self.confirmations = confirmations or confirmation_engine

    # ==================== SUBJECT ====================

    async def resolve_subject(self, actor_id: int, db: Optional[Session] = None) -> Subject:
        """Map the acting user to the patient whose data they operate on"""
        patient_id = await self.caregivers.get_patient_for_caregiver(actor_id, db=db)
        if patient_id is not None and patient_id != actor_id:
            return Subject(acting_user_id=actor_id, patient_id=patient_id, masquerading=True)
        return Subject(acting_user_id=actor_id, patient_id=actor_id)

    @staticmethod
    def _for_subject(subject: Subject, reply: Reply) -> Reply:
        if subject.masquerading and reply.text:
            reply.text = f"👤 Acting for patient {subject.patient_id}\n\n{reply.text}"
        return reply

    # ==================== TEXT ====================

    async def handle_text(
        self,
        actor_id: int,
        text: str,
        first_name: Optional[str] = None,
        db: Optional[Session] = None
    ) -> Reply:
        """Slash commands first, everything else goes through intent parsing"""
        text = (text or "").strip()
        try:
            if text.startswith("/"):
                return await self._handle_command(actor_id, text, first_name, db)

            subject = await self.resolve_subject(actor_id, db=db)
            command = await self.llm.parse_intent(text)
            reply = await self.dispatch(subject, command, first_name=first_name, db=db)
            return self._for_subject(subject, reply)
        except Exception:
            logger.exception(f"Failed to handle message from {actor_id}")
            return Reply(ERROR_MESSAGE)

    async def _handle_command(
        self,
        actor_id: int,
        text: str,
        first_name: Optional[str],
        db: Optional[Session]
    ) -> Reply:
        name = text.split()[0].split("@")[0].lower()

        if name == "/start":
            return Reply(WELCOME_MESSAGE)
        if name == "/sos":
            return await self._sos(actor_id, first_name, db)
        if name == "/caregiver":
            return Reply(
                "Tap the button below and pick the person who should be alerted "
                "if you miss a dose.",
                buttons=[[Button("👤 Choose my caregiver", request_users_id=SHARE_CAREGIVER_REQUEST_ID)]],
            )
        if name == "/care_for":
            return Reply(
                "Tap the button below and pick the patient you look after. "
                "They will be asked to approve.",
                buttons=[[Button("🧑‍⚕️ Choose patient", request_users_id=SHARE_PATIENT_REQUEST_ID)]],
            )
        return Reply(HELP_MESSAGE)

    async def dispatch(
        self,
        subject: Subject,
        command: CommandBase,
        first_name: Optional[str] = None,
        db: Optional[Session] = None
    ) -> Reply:
        """Run one parsed command against the subject's data"""
        if isinstance(command, LogIntakeCommand):
            return await self._log_intake(subject, command, db)
        if isinstance(command, AddMedicationCommand):
            return await self._add_medication(subject, command, db)
        if isinstance(command, UpdateMedicationCommand):
            return await self._update_medication(subject, command, db)
        if isinstance(command, RemoveMedicationCommand):
            return await self._remove_medication(subject, command, db)
        if isinstance(command, QueryScheduleCommand):
            return await self._query_schedule(subject, db)
        if isinstance(command, AddAppointmentCommand):
            return await self._add_appointment(subject, command, db)
        if isinstance(command, UpdateAppointmentCommand):
            return await self._update_appointment(subject, command, db)
        if isinstance(command, CancelAppointmentCommand):
            return await self._cancel_appointment(subject, command, db)
        if isinstance(command, LogHealthCommand):
            return await self._log_health(subject, command, db)
        if isinstance(command, SosCommand):
            return await self._sos(subject.acting_user_id, first_name, db)
        return Reply(UNKNOWN_MESSAGE)

    # ==================== MEDICATIONS ====================

    async def _log_intake(self, subject: Subject, command: LogIntakeCommand, db) -> Reply:
        if not command.medication_name:
            return Reply("Which medicine did you take?")

        medication = await self.medications.find_by_name(subject.patient_id, command.medication_name, db=db)
        if not medication:
            return Reply(f"I couldn't find {command.medication_name} in your medicines.")

        await self.adherence.log_dose_taken(subject.patient_id, medication.id, db=db)
        return Reply(f"✅ Logged {medication.name} as taken.")

    async def _add_medication(self, subject: Subject, command: AddMedicationCommand, db) -> Reply:
        if not command.medication_name or not command.medication_name.strip():
            return Reply("Which medicine should I add?")

        proposal = ProposedMedication.from_command(command)
        safety = await self.llm.check_dosage_safety(proposal.name, proposal.dosage)
        if not safety.safe:
            await self.confirmations.propose_medication(subject.patient_id, proposal)
            warning = safety.warning or "This dosage looks unusual."
            label = f"{proposal.name} {proposal.dosage}" if proposal.dosage else proposal.name
            return Reply(
                f"⚠️ {warning}\n\nAdd {label} anyway?",
                buttons=confirm_buttons(ActionKind.CONFIRM_MEDICATION, ActionKind.CANCEL_MEDICATION),
            )

        today = local_today(utcnow(), get_zone())
        medication = await self.medications.add_medication(
            subject.patient_id,
            proposal.name,
            dosage=proposal.dosage,
            time=proposal.time,
            frequency=proposal.frequency,
            end_date=course_end_date(today, proposal.duration_days),
            db=db,
        )
        text = f"✅ Added {medication.name}"
        if medication.dosage:
            text += f" ({medication.dosage})"
        text += f" at {medication.schedule_time}, {describe_frequency(medication.frequency)}."
        if medication.end_date:
            text += f" Last dose on {medication.end_date.strftime('%d %b')}."
        return Reply(text)

    async def _update_medication(self, subject: Subject, command: UpdateMedicationCommand, db) -> Reply:
        if not command.medication_name:
            return Reply("Which medicine should I change?")

        medication = await self.medications.update_medication(
            subject.patient_id,
            command.medication_name,
            new_name=command.new_name,
            dosage=command.dosage,
            time=command.time,
            frequency=command.frequency,
            db=db,
        )
        if not medication:
            return Reply(f"I couldn't find {command.medication_name} in your medicines.")

        return Reply(
            f"✏️ Updated {medication.name}: {medication.dosage or 'no dosage'} at "
            f"{medication.schedule_time}, {describe_frequency(medication.frequency)}."
        )

    async def _remove_medication(self, subject: Subject, command: RemoveMedicationCommand, db) -> Reply:
        if not command.medication_name:
            return Reply("Which medicine should I remove?")

        medication = await self.medications.remove_medication(subject.patient_id, command.medication_name, db=db)
        if not medication:
            return Reply(f"I couldn't find {command.medication_name} in your medicines.")
        return Reply(f"🗑️ Removed {medication.name} and its history.")

    async def _query_schedule(self, subject: Subject, db) -> Reply:
        medications = await self.medications.list_medications(subject.patient_id, db=db)
        appointments = await self.appointments.list_upcoming(subject.patient_id, db=db)

        if not medications and not appointments:
            return Reply("You have nothing scheduled yet. Tell me about a medicine to get started.")

        lines = []
        if medications:
            lines.append("💊 Your medicines:")
            for m in medications:
                line = f"• {m.schedule_time} {m.name}"
                if m.dosage:
                    line += f" ({m.dosage})"
                line += f", {describe_frequency(m.frequency)}"
                if not m.reminder_enabled:
                    line += ", reminders off"
                lines.append(line)

        if appointments:
            if lines:
                lines.append("")
            lines.append("📅 Upcoming appointments:")
            zone = get_zone()
            for a in appointments:
                lines.append(f"• {to_local(a.date_time, zone).strftime('%a %d %b %H:%M')} {a.title}")

        return Reply("\n".join(lines))

    # ==================== APPOINTMENTS ====================

    @staticmethod
    def _as_local(value: datetime) -> datetime:
        """Inferred datetimes without an offset are local wall-clock times"""
        if value.tzinfo is None:
            return value.replace(tzinfo=get_zone())
        return value

    def _format_when(self, value: datetime) -> str:
        return to_local(value, get_zone()).strftime("%a %d %b at %H:%M")

    async def _add_appointment(self, subject: Subject, command: AddAppointmentCommand, db) -> Reply:
        if not command.title or command.date_time is None:
            return Reply("What is the appointment, and when is it?")

        appointment = await self.appointments.add_appointment(
            subject.patient_id, command.title, self._as_local(command.date_time), db=db
        )
        return Reply(f"📅 Saved {appointment.title} on {self._format_when(appointment.date_time)}.")

    async def _update_appointment(self, subject: Subject, command: UpdateAppointmentCommand, db) -> Reply:
        if not command.title:
            return Reply("Which appointment should I change?")

        appointment = await self.appointments.update_appointment(
            subject.patient_id,
            command.title,
            new_title=command.new_title,
            date_time=self._as_local(command.date_time) if command.date_time else None,
            db=db,
        )
        if not appointment:
            return Reply(f"I couldn't find an appointment called {command.title}.")
        return Reply(f"✏️ {appointment.title} is now on {self._format_when(appointment.date_time)}.")

    async def _cancel_appointment(self, subject: Subject, command: CancelAppointmentCommand, db) -> Reply:
        if not command.title:
            return Reply("Which appointment should I cancel?")

        appointment = await self.appointments.cancel_appointment(subject.patient_id, command.title, db=db)
        if not appointment:
            return Reply(f"I couldn't find an appointment called {command.title}.")
        return Reply(f"🗑️ Cancelled {appointment.title}.")

    # ==================== HEALTH / SOS ====================

    async def _log_health(self, subject: Subject, command: LogHealthCommand, db) -> Reply:
        if not command.metric_type or not command.value:
            return Reply("What would you like me to log? For example: \"blood sugar 110\".")

        entry = await self.health_logs.add_entry(subject.patient_id, command.metric_type, command.value, db=db)
        return Reply(f"📝 Logged {entry.type}: {entry.value}.")

    async def _sos(self, actor_id: int, first_name: Optional[str], db) -> Reply:
        alert = await self.alerts.escalate_sos(actor_id, patient_name=first_name, db=db)
        if alert.status == AlertStatus.SENT:
            return Reply("🚨 Your caregiver has been alerted.")
        if alert.status == AlertStatus.NO_CAREGIVER:
            # The patient was already told there is nobody to alert
            return Reply(None)
        return Reply(
            "I couldn't reach your caregiver. If this is an emergency, "
            "call your local emergency number."
        )

    # ==================== BUTTONS ====================

    async def handle_callback(
        self,
        actor_id: int,
        token: str,
        first_name: Optional[str] = None,
        db: Optional[Session] = None
    ) -> Reply:
        """Handle an inline button press; the reply replaces the pressed message"""
        kind, target_id = decode_action(token)
        if kind is None:
            return Reply("This button is no longer valid.")

        try:
            if kind in (ActionKind.TAKEN, ActionKind.SKIP, ActionKind.SNOOZE):
                if target_id is None:
                    return Reply("This button is no longer valid.")
                outcome = await self.reminders.handle_response(
                    actor_id, target_id, kind, patient_name=first_name, db=db
                )
                return Reply(outcome.text)

            if kind in (ActionKind.CAREGIVER_ACCEPT, ActionKind.CAREGIVER_DENY):
                if target_id is None:
                    return Reply("This button is no longer valid.")
                return await self._answer_caregiver_request(actor_id, target_id, kind, db)

            subject = await self.resolve_subject(actor_id, db=db)
            retry = None
            if kind == ActionKind.CONFIRM_MEDICATION:
                outcome = await self.confirmations.confirm_medication(subject.patient_id, db=db)
                retry = confirm_buttons(ActionKind.CONFIRM_MEDICATION, ActionKind.CANCEL_MEDICATION)
            elif kind == ActionKind.CANCEL_MEDICATION:
                outcome = await self.confirmations.cancel_medication(subject.patient_id)
            elif kind == ActionKind.CONFIRM_IMPORT:
                outcome = await self.confirmations.confirm_import(subject.patient_id, db=db)
                retry = confirm_buttons(ActionKind.CONFIRM_IMPORT, ActionKind.CANCEL_IMPORT)
            else:
                outcome = await self.confirmations.cancel_import(subject.patient_id)

            reply = Reply(outcome.text, buttons=retry if outcome.failed else None)
            return self._for_subject(subject, reply)
        except Exception:
            logger.exception(f"Failed to handle button {token!r} from {actor_id}")
            return Reply(ERROR_MESSAGE)

    # ==================== CAREGIVER LINKING ====================

    async def handle_shared_user(
        self,
        actor_id: int,
        request_id: int,
        shared_user_id: int,
        first_name: Optional[str] = None,
        db: Optional[Session] = None
    ) -> Reply:
        """A user picked with a share-user button (or sent as a contact)"""
        if shared_user_id == actor_id:
            return Reply("Please choose someone other than yourself.")

        try:
            if request_id == SHARE_PATIENT_REQUEST_ID:
                return await self._request_to_care_for(actor_id, shared_user_id, first_name)
            return await self._link_caregiver(actor_id, shared_user_id, first_name, db)
        except Exception:
            logger.exception(f"Failed to handle shared user from {actor_id}")
            return Reply(ERROR_MESSAGE)

    async def _link_caregiver(self, patient_id: int, caregiver_id: int, first_name: Optional[str], db) -> Reply:
        await self.caregivers.link(patient_id, caregiver_id, db=db)

        who = first_name or f"Patient {patient_id}"
        notice = await self.messenger.send_message(
            caregiver_id,
            f"👋 {who} added you as their caregiver. You'll be alerted about missed doses and SOS calls.",
        )
        if not notice.success:
            logger.warning(f"Caregiver {caregiver_id} could not be notified of the link: {notice.error}")

        return Reply("✅ Caregiver saved. They'll be alerted if you miss a dose or send /sos.")

    async def _request_to_care_for(self, caregiver_id: int, patient_id: int, first_name: Optional[str]) -> Reply:
        who = first_name or f"User {caregiver_id}"
        prompt = await self.messenger.send_message(
            patient_id,
            f"🤝 {who} would like to be your caregiver and receive alerts when you miss a dose. Allow?",
            buttons=[[
                Button("✅ Accept", encode_action(ActionKind.CAREGIVER_ACCEPT, caregiver_id)),
                Button("❌ Deny", encode_action(ActionKind.CAREGIVER_DENY, caregiver_id)),
            ]],
        )
        if not prompt.success:
            return Reply("I couldn't reach that person. They need to start a chat with me first.")
        return Reply("📨 Request sent. I'll let you know when they answer.")

    async def _answer_caregiver_request(
        self,
        patient_id: int,
        caregiver_id: int,
        kind: ActionKind,
        db: Optional[Session]
    ) -> Reply:
        if kind == ActionKind.CAREGIVER_DENY:
            await self.messenger.send_message(caregiver_id, f"Patient {patient_id} declined your caregiver request.")
            logger.info(f"Patient {patient_id} denied caregiver request from {caregiver_id}")
            return Reply("👍 Request declined.")

        await self.caregivers.link(patient_id, caregiver_id, db=db)
        await self.messenger.send_message(
            caregiver_id, f"✅ Patient {patient_id} accepted. You are now their caregiver."
        )
        return Reply("✅ Done. They are now your caregiver.")

    # ==================== PRESCRIPTIONS ====================

    async def handle_photo(
        self,
        actor_id: int,
        file_id: str,
        db: Optional[Session] = None
    ) -> Reply:
        """Read a prescription photo and offer to import its medicines"""
        try:
            subject = await self.resolve_subject(actor_id, db=db)
            image = await self.messenger.download_file(file_id)
            if not image:
                return Reply("I couldn't download that photo. Please try again.")

            analysis = await self.llm.analyze_prescription_image(image)
            if not analysis.is_legit or not analysis.medications:
                return Reply("That doesn't look like a prescription, so I didn't import anything.")

            await self.confirmations.propose_import(subject.patient_id, analysis.medications)

            lines = ["📄 I found these medicines:"]
            for proposal in analysis.medications:
                line = f"• {proposal.name}"
                if proposal.dosage:
                    line += f" ({proposal.dosage})"
                if proposal.time:
                    line += f" at {proposal.time}"
                lines.append(line)
            lines.append("")
            lines.append("Add all of them?")

            return self._for_subject(subject, Reply(
                "\n".join(lines),
                buttons=confirm_buttons(ActionKind.CONFIRM_IMPORT, ActionKind.CANCEL_IMPORT),
            ))
        except Exception:
            logger.exception(f"Failed to handle photo from {actor_id}")
            return Reply(ERROR_MESSAGE)


# Singleton instance
assistant_service = AssistantService()
