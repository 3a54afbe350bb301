"""
Adherence Schemas
Pydantic models for adherence-related API responses
"""

from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict

from models import AdherenceStatus


class AdherenceLogResponse(BaseModel):
    """Schema for a single adherence log"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    medication_id: Optional[int] = None
    status: AdherenceStatus
    timestamp: datetime


class AdherenceSummary(BaseModel):
    """Schema for adherence over a trailing window"""
    patient_id: int
    days: int
    period_start: datetime
    period_end: datetime
    taken: int = Field(..., ge=0)
    missed: int = Field(..., ge=0)
    percentage: int = Field(..., ge=0, le=100)
    logs: List[AdherenceLogResponse] = Field(default_factory=list)
