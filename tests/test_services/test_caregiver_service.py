"""
Tests for Caregiver Service
"""

import pytest

from services.caregiver_service import CaregiverService
from models import Caregiver
from tests.conftest import CAREGIVER_ID, OTHER_PATIENT_ID, PATIENT_ID


@pytest.fixture
def caregiver_service():
    return CaregiverService()


@pytest.mark.database
class TestCaregiverLinks:
    """Tests for the one-caregiver-per-patient link"""

    @pytest.mark.asyncio
    async def test_link_creates(self, caregiver_service, db_session):
        link = await caregiver_service.link(PATIENT_ID, CAREGIVER_ID, db=db_session)

        assert link.caregiver_id == CAREGIVER_ID
        assert (await caregiver_service.get_caregiver(PATIENT_ID, db=db_session)).caregiver_id == CAREGIVER_ID

    @pytest.mark.asyncio
    async def test_relink_overwrites(self, caregiver_service, db_session):
        await caregiver_service.link(PATIENT_ID, CAREGIVER_ID, db=db_session)
        await caregiver_service.link(PATIENT_ID, 4004, db=db_session)

        links = db_session.query(Caregiver).all()
        assert len(links) == 1
        assert links[0].caregiver_id == 4004

    @pytest.mark.asyncio
    async def test_no_link(self, caregiver_service, db_session):
        assert await caregiver_service.get_caregiver(PATIENT_ID, db=db_session) is None
        assert await caregiver_service.get_patient_for_caregiver(CAREGIVER_ID, db=db_session) is None

    @pytest.mark.asyncio
    async def test_patient_for_caregiver_prefers_latest_link(self, caregiver_service, db_session):
        await caregiver_service.link(PATIENT_ID, CAREGIVER_ID, db=db_session)
        await caregiver_service.link(OTHER_PATIENT_ID, CAREGIVER_ID, db=db_session)

        assert await caregiver_service.get_patient_for_caregiver(CAREGIVER_ID, db=db_session) == OTHER_PATIENT_ID
