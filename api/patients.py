"""
Patients API Router
Read-only views of a patient's medications and adherence
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from api.deps import get_db, services
from api.schemas.medication import MedicationResponse, MedicationList
from api.schemas.adherence import AdherenceLogResponse, AdherenceSummary
from services.medication_service import is_active
from tools.schedule_normalizer import get_zone, is_due_today, local_today, utcnow


router = APIRouter(prefix="/patients", tags=["patients"])


@router.get("/{patient_id}/medications", response_model=MedicationList)
async def get_patient_medications(
    patient_id: int,
    db: Session = Depends(get_db)
):
    """
    Get all medications for a patient

    - **due_today**: how many pass the frequency day gate today
    """
    medication_service = services.get_medication_service()
    medications = await medication_service.list_medications(patient_id, db=db)

    now = utcnow()
    zone = get_zone()
    today = local_today(now, zone)
    due_today = sum(
        1 for m in medications
        if is_active(m, today) and is_due_today(m.created_at, m.frequency, now, zone)
    )

    return MedicationList(
        patient_id=patient_id,
        medications=[MedicationResponse.model_validate(m) for m in medications],
        total=len(medications),
        due_today=due_today,
    )


@router.get("/{patient_id}/adherence", response_model=AdherenceSummary)
async def get_patient_adherence(
    patient_id: int,
    days: int = Query(7, ge=1, le=90, description="Trailing window in days"),
    db: Session = Depends(get_db)
):
    """
    Get adherence summary for a patient

    - **percentage**: taken / (taken + missed), 0 when there are no logs
    """
    adherence_service = services.get_adherence_service()
    summary = await adherence_service.get_adherence_summary(patient_id, days=days, db=db)
    logs = await adherence_service.get_logs(
        patient_id, summary["period_start"], summary["period_end"], db=db
    )

    return AdherenceSummary(
        patient_id=patient_id,
        days=days,
        period_start=summary["period_start"],
        period_end=summary["period_end"],
        taken=summary["taken"],
        missed=summary["missed"],
        percentage=summary["percentage"],
        logs=[AdherenceLogResponse.model_validate(log) for log in logs],
    )
