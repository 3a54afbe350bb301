"""
Services Module
Data access and inference layer for the MedAssist application
"""

from services.medication_service import MedicationService, medication_service
from services.adherence_service import AdherenceService, adherence_service
from services.caregiver_service import CaregiverService, caregiver_service
from services.appointment_service import AppointmentService, appointment_service
from services.health_log_service import HealthLogService, health_log_service


__all__ = [
    # Service classes
    "MedicationService",
    "AdherenceService",
    "CaregiverService",
    "AppointmentService",
    "HealthLogService",
    # Singleton instances
    "medication_service",
    "adherence_service",
    "caregiver_service",
    "appointment_service",
    "health_log_service",
]
