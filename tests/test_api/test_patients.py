"""
Tests for Patients API Router
Tests medication listing and adherence summary endpoints
"""

import pytest
from datetime import timedelta

from models import AdherenceStatus, Medication
from tools.schedule_normalizer import local_today, utcnow
from tests.conftest import OTHER_PATIENT_ID, PATIENT_ID, add_log


@pytest.mark.api
class TestPatientMedications:
    """Tests for GET /patients/{patient_id}/medications"""

    def test_lists_medications(self, client, lisinopril):
        response = client.get(f"/api/v1/patients/{PATIENT_ID}/medications")

        assert response.status_code == 200
        data = response.json()
        assert data["patient_id"] == PATIENT_ID
        assert data["total"] == 1
        assert data["medications"][0]["name"] == "Lisinopril"
        assert data["medications"][0]["schedule_time"] == "09:00"
        assert data["due_today"] == 1

    def test_finished_course_is_not_due(self, client, db_session, lisinopril):
        today = local_today(utcnow())
        db_session.add_all([
            Medication(patient_id=PATIENT_ID, name="Amoxicillin", schedule_time="08:00",
                       end_date=today - timedelta(days=2)),
            Medication(patient_id=PATIENT_ID, name="Prednisone", schedule_time="08:00", end_date=today),
        ])
        db_session.commit()

        data = client.get(f"/api/v1/patients/{PATIENT_ID}/medications").json()

        assert data["total"] == 3
        assert data["due_today"] == 2

    def test_unknown_patient_is_empty(self, client, lisinopril):
        response = client.get(f"/api/v1/patients/{OTHER_PATIENT_ID}/medications")

        assert response.status_code == 200
        assert response.json()["total"] == 0


@pytest.mark.api
class TestPatientAdherence:
    """Tests for GET /patients/{patient_id}/adherence"""

    def test_summary(self, client, db_session, lisinopril):
        now = utcnow()
        for hours in (6, 30, 54):
            add_log(db_session, lisinopril.id, AdherenceStatus.TAKEN, now - timedelta(hours=hours))
        add_log(db_session, lisinopril.id, AdherenceStatus.MISSED, now - timedelta(hours=78))
        add_log(db_session, lisinopril.id, AdherenceStatus.TAKEN, now - timedelta(days=20))

        response = client.get(f"/api/v1/patients/{PATIENT_ID}/adherence?days=7")

        assert response.status_code == 200
        data = response.json()
        assert (data["taken"], data["missed"], data["percentage"]) == (3, 1, 75)
        assert len(data["logs"]) == 4
        assert data["logs"][-1]["status"] == "taken"

    def test_no_logs(self, client):
        response = client.get(f"/api/v1/patients/{PATIENT_ID}/adherence")

        assert response.status_code == 200
        assert response.json()["percentage"] == 0

    @pytest.mark.parametrize("days", [0, 91])
    def test_window_is_bounded(self, client, days):
        response = client.get(f"/api/v1/patients/{PATIENT_ID}/adherence?days={days}")
        assert response.status_code == 422
