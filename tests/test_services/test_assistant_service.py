"""
Tests for Assistant Service
Tests intent dispatch, masquerading, button handling and caregiver linking
"""

import pytest
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch

from actions.alert_engine import AlertEngine
from actions.confirmation_engine import ConfirmationEngine
from actions.reminder_engine import ReminderEngine
from api.schemas.intent import (
    AddAppointmentCommand,
    AddMedicationCommand,
    DosageSafety,
    LogHealthCommand,
    LogIntakeCommand,
    PrescriptionAnalysis,
    QueryScheduleCommand,
    UnknownCommand,
)
from models import AdherenceLog, AdherenceStatus, Appointment, Caregiver, HealthLog, Medication
from services.assistant_service import AssistantService, HELP_MESSAGE, UNKNOWN_MESSAGE, WELCOME_MESSAGE
from tools.notification_service import ActionKind, NotificationResult, encode_action
from tests.conftest import CAREGIVER_ID, KOLKATA, PATIENT_ID, sent_texts


@pytest.fixture
def mock_llm():
    llm = MagicMock()
    llm.parse_intent = AsyncMock(return_value=UnknownCommand())
    llm.check_dosage_safety = AsyncMock(return_value=DosageSafety(safe=True))
    llm.analyze_prescription_image = AsyncMock(return_value=PrescriptionAnalysis())
    return llm


@pytest.fixture
def assistant(fake_messenger, mock_llm):
    alerts = AlertEngine(messenger=fake_messenger)
    return AssistantService(
        messenger=fake_messenger,
        llm=mock_llm,
        alerts=alerts,
        reminders=ReminderEngine(messenger=fake_messenger, alerts=alerts, tz=KOLKATA),
        confirmations=ConfirmationEngine(ttl_minutes=30, tz=KOLKATA),
    )


# =============================================================================
# Commands
# =============================================================================

@pytest.mark.unit
class TestSlashCommands:
    """Tests for slash commands handled without inference"""

    @pytest.mark.asyncio
    async def test_start(self, assistant, mock_llm, db_session):
        reply = await assistant.handle_text(PATIENT_ID, "/start", db=db_session)

        assert reply.text == WELCOME_MESSAGE
        mock_llm.parse_intent.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_command_shows_help(self, assistant, db_session):
        reply = await assistant.handle_text(PATIENT_ID, "/frobnicate", db=db_session)
        assert reply.text == HELP_MESSAGE

    @pytest.mark.asyncio
    async def test_caregiver_offers_share_button(self, assistant, db_session):
        reply = await assistant.handle_text(PATIENT_ID, "/caregiver", db=db_session)

        assert reply.buttons[0][0].request_users_id == 1

    @pytest.mark.asyncio
    async def test_sos_without_caregiver(self, assistant, fake_messenger, db_session):
        reply = await assistant.handle_text(PATIENT_ID, "/sos", first_name="Asha", db=db_session)

        assert reply.text is None
        assert len(sent_texts(fake_messenger, PATIENT_ID)) == 1


# =============================================================================
# Intents
# =============================================================================

@pytest.mark.database
class TestDispatch:
    """Tests for parsed intents acting on the store"""

    @pytest.mark.asyncio
    async def test_unknown_intent(self, assistant, db_session):
        reply = await assistant.handle_text(PATIENT_ID, "blah", db=db_session)
        assert reply.text == UNKNOWN_MESSAGE

    @pytest.mark.asyncio
    async def test_add_medication(self, assistant, mock_llm, db_session):
        mock_llm.parse_intent.return_value = AddMedicationCommand(
            medication_name="Metformin", dosage="500mg", time="8:00", frequency="daily"
        )

        reply = await assistant.handle_text(PATIENT_ID, "add metformin 500mg at 8", db=db_session)

        medication = db_session.query(Medication).one()
        assert medication.schedule_time == "08:00"
        assert medication.patient_id == PATIENT_ID
        assert "Metformin" in reply.text

    @pytest.mark.asyncio
    async def test_unsafe_dosage_is_held(self, assistant, mock_llm, db_session):
        mock_llm.parse_intent.return_value = AddMedicationCommand(medication_name="Paracetamol", dosage="5000mg")
        mock_llm.check_dosage_safety.return_value = DosageSafety(safe=False, warning="Above the daily maximum")

        reply = await assistant.handle_text(PATIENT_ID, "add paracetamol 5000mg", db=db_session)

        assert db_session.query(Medication).count() == 0
        assert "Above the daily maximum" in reply.text
        assert reply.buttons[0][0].callback_data == ActionKind.CONFIRM_MEDICATION.value

        confirmed = await assistant.handle_callback(PATIENT_ID, "confirm_med", db=db_session)

        assert "Paracetamol" in confirmed.text
        assert db_session.query(Medication).one().dosage == "5000mg"

    @pytest.mark.asyncio
    async def test_log_intake(self, assistant, mock_llm, db_session, lisinopril):
        mock_llm.parse_intent.return_value = LogIntakeCommand(medication_name="lisinopril")

        reply = await assistant.handle_text(PATIENT_ID, "took my lisinopril", db=db_session)

        log = db_session.query(AdherenceLog).one()
        assert log.status == AdherenceStatus.TAKEN
        assert log.medication_id == lisinopril.id
        assert "Lisinopril" in reply.text

    @pytest.mark.asyncio
    async def test_appointment_time_is_local(self, assistant, mock_llm, db_session):
        mock_llm.parse_intent.return_value = AddAppointmentCommand(
            title="Cardiology", date_time=datetime(2030, 5, 14, 10, 30)
        )

        reply = await assistant.handle_text(PATIENT_ID, "cardiology may 14 2030 10:30", db=db_session)

        assert db_session.query(Appointment).count() == 1
        assert "10:30" in reply.text

    @pytest.mark.asyncio
    async def test_log_health(self, assistant, mock_llm, db_session):
        mock_llm.parse_intent.return_value = LogHealthCommand(metric_type="blood_pressure", value="120/80")

        await assistant.handle_text(PATIENT_ID, "bp 120/80", db=db_session)

        assert db_session.query(HealthLog).one().value == "120/80"

    @pytest.mark.asyncio
    async def test_failure_returns_error_message(self, assistant, mock_llm, db_session):
        mock_llm.parse_intent.side_effect = RuntimeError("boom")

        reply = await assistant.handle_text(PATIENT_ID, "hello", db=db_session)

        assert "went wrong" in reply.text


@pytest.mark.database
class TestMasquerade:
    """Tests for caregivers operating on their patient's data"""

    @pytest.mark.asyncio
    async def test_caregiver_acts_for_patient(self, assistant, mock_llm, db_session, caregiver_link, lisinopril):
        mock_llm.parse_intent.return_value = QueryScheduleCommand()

        reply = await assistant.handle_text(CAREGIVER_ID, "what's the schedule?", db=db_session)

        assert reply.text.startswith(f"👤 Acting for patient {PATIENT_ID}")
        assert "Lisinopril" in reply.text

    @pytest.mark.asyncio
    async def test_caregiver_adds_to_patient(self, assistant, mock_llm, db_session, caregiver_link):
        mock_llm.parse_intent.return_value = AddMedicationCommand(medication_name="Aspirin", dosage="75mg")

        await assistant.handle_text(CAREGIVER_ID, "add aspirin for mum", db=db_session)

        assert db_session.query(Medication).one().patient_id == PATIENT_ID

    @pytest.mark.asyncio
    async def test_caregiver_confirms_unsafe_dosage_for_patient(self, assistant, mock_llm, db_session,
                                                                caregiver_link):
        mock_llm.parse_intent.return_value = AddMedicationCommand(medication_name="Paracetamol", dosage="5000mg")
        mock_llm.check_dosage_safety.return_value = DosageSafety(safe=False, warning="Above the daily maximum")
        pending = assistant.confirmations.unsafe_dosage

        warning = await assistant.handle_text(CAREGIVER_ID, "add paracetamol 5000mg for mum", db=db_session)

        assert warning.text.startswith(f"👤 Acting for patient {PATIENT_ID}")
        assert db_session.query(Medication).count() == 0
        assert pending.peek(PATIENT_ID).name == "Paracetamol"
        assert pending.peek(CAREGIVER_ID) is None

        reply = await assistant.handle_callback(
            CAREGIVER_ID, encode_action(ActionKind.CONFIRM_MEDICATION), db=db_session
        )

        medication = db_session.query(Medication).one()
        assert (medication.patient_id, medication.dosage) == (PATIENT_ID, "5000mg")
        assert reply.text.startswith(f"👤 Acting for patient {PATIENT_ID}")
        assert pending.peek(PATIENT_ID) is None

    @pytest.mark.asyncio
    async def test_caregiver_imports_prescription_for_patient(self, assistant, mock_llm, db_session,
                                                              caregiver_link):
        mock_llm.analyze_prescription_image.return_value = PrescriptionAnalysis(
            is_legit=True,
            medications=[{"name": "Metformin", "dosage": "500mg"}, {"name": "Melatonin", "dosage": "3mg"}],
        )
        pending = assistant.confirmations.bulk_import

        proposal = await assistant.handle_photo(CAREGIVER_ID, "file-1", db=db_session)

        assert proposal.text.startswith(f"👤 Acting for patient {PATIENT_ID}")
        assert len(pending.peek(PATIENT_ID)) == 2
        assert pending.peek(CAREGIVER_ID) is None

        await assistant.handle_callback(CAREGIVER_ID, encode_action(ActionKind.CONFIRM_IMPORT), db=db_session)

        medications = db_session.query(Medication).all()
        assert len(medications) == 2
        assert {m.patient_id for m in medications} == {PATIENT_ID}
        assert pending.peek(PATIENT_ID) is None

    @pytest.mark.asyncio
    async def test_patient_is_not_masquerading(self, assistant, db_session, caregiver_link):
        subject = await assistant.resolve_subject(PATIENT_ID, db=db_session)

        assert subject.patient_id == PATIENT_ID
        assert subject.masquerading is False


# =============================================================================
# Buttons
# =============================================================================

@pytest.mark.database
class TestCallbacks:
    """Tests for inline button presses"""

    @pytest.mark.asyncio
    async def test_taken_button(self, assistant, db_session, lisinopril):
        reply = await assistant.handle_callback(PATIENT_ID, encode_action(ActionKind.TAKEN, lisinopril.id),
                                                db=db_session)

        assert "taken" in reply.text
        assert db_session.query(AdherenceLog).one().status == AdherenceStatus.TAKEN

    @pytest.mark.asyncio
    async def test_garbage_token(self, assistant, db_session):
        reply = await assistant.handle_callback(PATIENT_ID, "not-a-button", db=db_session)
        assert "no longer valid" in reply.text

    @pytest.mark.asyncio
    async def test_stale_confirmation(self, assistant, db_session):
        reply = await assistant.handle_callback(PATIENT_ID, "confirm_import", db=db_session)
        assert "expired" in reply.text


# =============================================================================
# Caregiver linking
# =============================================================================

@pytest.mark.database
class TestCaregiverLinking:
    """Tests for both directions of the caregiver handshake"""

    @pytest.mark.asyncio
    async def test_patient_picks_caregiver(self, assistant, fake_messenger, db_session):
        reply = await assistant.handle_shared_user(PATIENT_ID, 1, CAREGIVER_ID, first_name="Asha", db=db_session)

        assert db_session.query(Caregiver).one().caregiver_id == CAREGIVER_ID
        assert "Asha" in sent_texts(fake_messenger, CAREGIVER_ID)[0]
        assert "saved" in reply.text

    @pytest.mark.asyncio
    async def test_sharing_yourself_is_rejected(self, assistant, db_session):
        reply = await assistant.handle_shared_user(PATIENT_ID, 1, PATIENT_ID, db=db_session)

        assert "other than yourself" in reply.text
        assert db_session.query(Caregiver).count() == 0

    @pytest.mark.asyncio
    async def test_care_for_request_then_accept(self, assistant, fake_messenger, db_session):
        await assistant.handle_shared_user(CAREGIVER_ID, 2, PATIENT_ID, first_name="Ravi", db=db_session)

        assert db_session.query(Caregiver).count() == 0
        prompt = fake_messenger.send_message.await_args_list[-1]
        accept = prompt.kwargs["buttons"][0][0].callback_data
        assert accept == f"cg_accept:{CAREGIVER_ID}"

        reply = await assistant.handle_callback(PATIENT_ID, accept, db=db_session)

        link = db_session.query(Caregiver).one()
        assert (link.patient_id, link.caregiver_id) == (PATIENT_ID, CAREGIVER_ID)
        assert "now your caregiver" in reply.text

    @pytest.mark.asyncio
    async def test_deny_does_not_link(self, assistant, fake_messenger, db_session):
        reply = await assistant.handle_callback(PATIENT_ID, f"cg_deny:{CAREGIVER_ID}", db=db_session)

        assert db_session.query(Caregiver).count() == 0
        assert "declined" in sent_texts(fake_messenger, CAREGIVER_ID)[0]
        assert "declined" in reply.text

    @pytest.mark.asyncio
    async def test_unreachable_patient(self, assistant, fake_messenger, db_session):
        fake_messenger.send_message = AsyncMock(return_value=NotificationResult(success=False, error="chat not found"))

        reply = await assistant.handle_shared_user(CAREGIVER_ID, 2, PATIENT_ID, db=db_session)

        assert "couldn't reach" in reply.text


# =============================================================================
# Prescriptions
# =============================================================================

@pytest.mark.database
class TestPrescriptionPhoto:
    """Tests for importing medicines from a photo"""

    @pytest.mark.asyncio
    async def test_not_a_prescription(self, assistant, db_session):
        reply = await assistant.handle_photo(PATIENT_ID, "file-1", db=db_session)

        assert "doesn't look like a prescription" in reply.text

    @pytest.mark.asyncio
    async def test_import_after_confirmation(self, assistant, mock_llm, db_session):
        mock_llm.analyze_prescription_image.return_value = PrescriptionAnalysis(
            is_legit=True,
            medications=[{"name": "Metformin", "dosage": "500mg"}, {"name": "Melatonin", "dosage": "3mg"}],
        )

        proposal = await assistant.handle_photo(PATIENT_ID, "file-1", db=db_session)

        assert "Metformin (500mg)" in proposal.text
        assert db_session.query(Medication).count() == 0

        await assistant.handle_callback(PATIENT_ID, "confirm_import", db=db_session)

        assert db_session.query(Medication).count() == 2

    @pytest.mark.asyncio
    async def test_failed_import_offers_confirm_again(self, assistant, mock_llm, db_session):
        mock_llm.analyze_prescription_image.return_value = PrescriptionAnalysis(
            is_legit=True,
            medications=[{"name": "Metformin", "dosage": "500mg"}],
        )
        await assistant.handle_photo(PATIENT_ID, "file-1", db=db_session)
        confirm = encode_action(ActionKind.CONFIRM_IMPORT)

        store = assistant.confirmations.medications
        with patch.object(store, "add_medications", AsyncMock(side_effect=RuntimeError("database is locked"))):
            failed = await assistant.handle_callback(PATIENT_ID, confirm, db=db_session)

        assert "confirm again" in failed.text
        assert failed.buttons[0][0].callback_data == confirm
        assert db_session.query(Medication).count() == 0

        await assistant.handle_callback(PATIENT_ID, confirm, db=db_session)

        assert db_session.query(Medication).one().name == "Metformin"
