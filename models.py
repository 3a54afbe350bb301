"""
Database Models
SQLAlchemy ORM models for MedAssist
"""

from sqlalchemy import Column, Integer, BigInteger, String, Boolean, DateTime, Date, Text, Enum, Index
from datetime import datetime
from enum import Enum as PyEnum

from config import TableNames
from database import Base


# ==================== ENUMS ====================

class AdherenceStatus(str, PyEnum):
    """Outcome recorded for a dose"""
    TAKEN = "taken"
    MISSED = "missed"


# ==================== MODELS ====================

class Medication(Base):
    """A recurring medication regimen owned by one patient"""
    __tablename__ = TableNames.MEDICATIONS

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(BigInteger, nullable=False, index=True)  # chat user id

    name = Column(String(255), nullable=False)
    dosage = Column(String(100), nullable=False, default="")

    # Canonical HH:MM in the configured timezone
    schedule_time = Column(String(5), nullable=False, default="09:00")
    # Days between doses, 1 = daily
    frequency = Column(Integer, nullable=False, default=1)

    # Anchors the frequency offset (UTC)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    end_date = Column(Date)
    snoozed_until = Column(DateTime)  # UTC
    reminder_enabled = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("ix_medications_schedule_time", "schedule_time"),
    )

    def __repr__(self) -> str:
        return f"<Medication {self.id} {self.name!r} {self.schedule_time} every {self.frequency}d>"


class AdherenceLog(Base):
    """Append-only record of a taken or missed dose"""
    __tablename__ = TableNames.ADHERENCE_LOGS

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(BigInteger, nullable=False)
    # No foreign key: expired courses leave a dangling reference behind
    medication_id = Column(Integer, nullable=True)

    status = Column(Enum(AdherenceStatus), nullable=False)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_adherence_patient_time", "patient_id", "timestamp"),
        Index("ix_adherence_medication_time", "medication_id", "timestamp"),
    )


class Caregiver(Base):
    """Link between a patient and their single caregiver"""
    __tablename__ = TableNames.CAREGIVERS

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(BigInteger, unique=True, nullable=False)
    caregiver_id = Column(BigInteger, nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Appointment(Base):
    """Doctor appointment with a one-shot reminder flag"""
    __tablename__ = TableNames.APPOINTMENTS

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(BigInteger, nullable=False, index=True)

    title = Column(String(255), nullable=False)
    date_time = Column(DateTime, nullable=False)  # UTC
    reminded = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)


class HealthLog(Base):
    """Free-form biomarker reading (blood pressure, sugar, weight...)"""
    __tablename__ = TableNames.HEALTH_LOGS

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(BigInteger, nullable=False)

    type = Column(String(100), nullable=False)
    value = Column(Text, nullable=False)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_health_logs_patient_time", "patient_id", "timestamp"),
    )
