"""
Pytest Configuration and Shared Fixtures
========================================

This module provides shared fixtures for all MedAssist tests.
Fixtures include database sessions, test clients, sample data, and mocks.
"""

import os
import sys
from datetime import datetime, timezone
from typing import Generator
from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker, Session

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import Base, create_db_engine, init_db
from models import Medication, AdherenceLog, AdherenceStatus, Caregiver
from api.deps import get_db, get_messenger, get_assistant, get_scheduler
from tools.notification_service import Messenger, NotificationResult
from app import app


PATIENT_ID = 1001
CAREGIVER_ID = 2002
OTHER_PATIENT_ID = 3003

KOLKATA = ZoneInfo("Asia/Kolkata")
NEW_YORK = ZoneInfo("America/New_York")


def local_to_utc(year, month, day, hour, minute, tz=KOLKATA) -> datetime:
    """Aware UTC datetime for a local wall-clock time"""
    return datetime(year, month, day, hour, minute, tzinfo=tz).astimezone(timezone.utc)


# ==================== DATABASE FIXTURES ====================

@pytest.fixture(scope="function")
def test_engine():
    """Create a test database engine with in-memory SQLite"""
    engine = create_db_engine("sqlite:///:memory:")
    init_db(bind=engine)

    yield engine

    # Cleanup
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(test_engine) -> Generator[Session, None, None]:
    """Create a test database session"""
    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=test_engine
    )

    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.rollback()
        session.close()


# ==================== MESSAGING FIXTURES ====================

@pytest.fixture
def fake_messenger():
    """Messenger whose every call succeeds"""
    messenger = MagicMock(spec=Messenger)
    messenger.configured = True
    messenger.send_message = AsyncMock(
        side_effect=lambda recipient_id, text, buttons=None: NotificationResult(
            success=True, recipient_id=recipient_id, message_id=1
        )
    )
    messenger.edit_message = AsyncMock(
        side_effect=lambda chat_id, message_id, text, buttons=None: NotificationResult(
            success=True, recipient_id=chat_id, message_id=message_id
        )
    )
    messenger.answer_callback = AsyncMock(return_value=NotificationResult(success=True))
    messenger.download_file = AsyncMock(return_value=b"\x89PNG fake image")
    messenger.close = AsyncMock()
    return messenger


@pytest.fixture
def failing_messenger():
    """Messenger whose sends are all rejected"""
    messenger = MagicMock(spec=Messenger)
    messenger.send_message = AsyncMock(
        return_value=NotificationResult(success=False, error="Forbidden: bot was blocked by the user")
    )
    return messenger


def sent_texts(messenger, recipient_id=None):
    """Texts passed to send_message, optionally for one recipient"""
    texts = []
    for call in messenger.send_message.await_args_list:
        args = call.args
        recipient = args[0] if args else call.kwargs.get("recipient_id")
        text = args[1] if len(args) > 1 else call.kwargs.get("text")
        if recipient_id is None or recipient == recipient_id:
            texts.append(text)
    return texts


# ==================== SAMPLE DATA FIXTURES ====================

@pytest.fixture
def lisinopril(db_session: Session) -> Medication:
    """Daily 09:00 medication created a week before the test clock"""
    medication = Medication(
        patient_id=PATIENT_ID,
        name="Lisinopril",
        dosage="10mg",
        schedule_time="09:00",
        frequency=1,
        created_at=datetime(2026, 3, 1, 3, 0),
    )
    db_session.add(medication)
    db_session.commit()
    db_session.refresh(medication)
    return medication


@pytest.fixture
def caregiver_link(db_session: Session) -> Caregiver:
    link = Caregiver(patient_id=PATIENT_ID, caregiver_id=CAREGIVER_ID)
    db_session.add(link)
    db_session.commit()
    db_session.refresh(link)
    return link


def add_log(db_session: Session, medication_id, status: AdherenceStatus, timestamp: datetime,
            patient_id: int = PATIENT_ID) -> AdherenceLog:
    log = AdherenceLog(
        patient_id=patient_id,
        medication_id=medication_id,
        status=status,
        timestamp=timestamp.astimezone(timezone.utc).replace(tzinfo=None) if timestamp.tzinfo else timestamp,
    )
    db_session.add(log)
    db_session.commit()
    return log


# ==================== API FIXTURES ====================

@pytest.fixture(scope="function")
def client(db_session: Session, fake_messenger) -> Generator[TestClient, None, None]:
    """Create a FastAPI test client with database and messenger overrides"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_messenger] = lambda: fake_messenger

    # No lifespan: the scheduler must not start during tests
    test_client = TestClient(app)
    yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def mock_assistant():
    """Assistant double for routing tests"""
    from services.assistant_service import Reply

    assistant = MagicMock()
    assistant.handle_text = AsyncMock(return_value=Reply("text reply"))
    assistant.handle_callback = AsyncMock(return_value=Reply("callback reply"))
    assistant.handle_shared_user = AsyncMock(return_value=Reply("shared reply"))
    assistant.handle_photo = AsyncMock(return_value=Reply("photo reply"))
    return assistant


@pytest.fixture
def override_assistant(mock_assistant):
    app.dependency_overrides[get_assistant] = lambda: mock_assistant
    yield mock_assistant
    app.dependency_overrides.pop(get_assistant, None)


@pytest.fixture
def override_scheduler():
    from actions.job_scheduler import JobScheduler, JobSchedule, ScheduleKind

    scheduler = JobScheduler(tz=KOLKATA)
    calls = []

    async def ping(scheduled_for=None):
        calls.append("ping")
        return {"pinged": len(calls)}

    scheduler.add_job("ping", ping, JobSchedule(ScheduleKind.INTERVAL, minutes=5))
    scheduler.calls = calls
    app.dependency_overrides[get_scheduler] = lambda: scheduler
    yield scheduler
    app.dependency_overrides.pop(get_scheduler, None)


# ==================== PYTEST CONFIGURATION ====================

def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "api: mark test as an API test")
    config.addinivalue_line("markers", "database: mark test as requiring database")
