"""
Medication Schemas
Pydantic models for medication-related API responses
"""

from typing import Optional, List
from datetime import datetime, date
from pydantic import BaseModel, Field, ConfigDict


class MedicationResponse(BaseModel):
    """Schema for medication response"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    name: str
    dosage: Optional[str] = None
    schedule_time: str = Field(..., description="HH:MM in the configured timezone")
    frequency: int = Field(..., ge=1, description="Interval in days")
    reminder_enabled: bool = True
    end_date: Optional[date] = None
    snoozed_until: Optional[datetime] = None
    created_at: datetime


class MedicationList(BaseModel):
    """Schema for a patient's medications"""
    patient_id: int
    medications: List[MedicationResponse]
    total: int
    due_today: int = Field(..., description="Medications whose day gate passes today")
