"""
Alert Engine
Caregiver escalation for missed doses and SOS signals
"""

import logging
from typing import Dict, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from sqlalchemy.orm import Session

from services.caregiver_service import CaregiverService, caregiver_service
from tools.notification_service import Messenger, messenger as default_messenger


logger = logging.getLogger(__name__)


class AlertType(str, Enum):
    """Types of alerts"""
    MISSED_DOSE = "missed_dose"
    SOS = "sos"


class AlertStatus(str, Enum):
    """Alert status"""
    SENT = "sent"
    FAILED = "failed"
    NO_CAREGIVER = "no_caregiver"


@dataclass
class Alert:
    """Alert data structure"""
    patient_id: int
    alert_type: AlertType
    message: str
    status: AlertStatus
    caregiver_id: Optional[int] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patient_id": self.patient_id,
            "alert_type": self.alert_type.value,
            "message": self.message,
            "status": self.status.value,
            "caregiver_id": self.caregiver_id,
            "created_at": self.created_at.isoformat(),
            "error": self.error,
            "metadata": self.metadata
        }


NO_CAREGIVER_MESSAGE = (
    "I couldn't alert anyone because you have no caregiver set up yet. "
    "Use /caregiver to choose one."
)


class AlertEngine:
    """
    Sends one alert per escalation to the patient's linked caregiver.

    Delivery failures are recorded on the Alert and logged; they are never
    retried and never escalated further.
    """

    def __init__(
        self,
        messenger: Optional[Messenger] = None,
        caregivers: Optional[CaregiverService] = None
    ):
        self.messenger = messenger or default_messenger
        self.caregivers = caregivers or caregiver_service

    @staticmethod
    def _describe_patient(patient_id: int, patient_name: Optional[str]) -> str:
        if patient_name:
            return f"{patient_name} (id {patient_id})"
        return f"Patient {patient_id}"

    def _format_message(
        self,
        alert_type: AlertType,
        patient_id: int,
        patient_name: Optional[str],
        medication_name: Optional[str]
    ) -> str:
        who = self._describe_patient(patient_id, patient_name)
        if alert_type == AlertType.SOS:
            return f"🚨 SOS: {who} is asking for help. Please check on them right away."
        if medication_name:
            return f"⚠️ ALERT: {who} has missed a dose of {medication_name}!"
        return f"⚠️ ALERT: {who} has missed a dose!"

    async def escalate(
        self,
        patient_id: int,
        alert_type: AlertType,
        medication_name: Optional[str] = None,
        patient_name: Optional[str] = None,
        db: Optional[Session] = None
    ) -> Alert:
        """Resolve the caregiver link and send a single alert"""
        message = self._format_message(alert_type, patient_id, patient_name, medication_name)
        link = await self.caregivers.get_caregiver(patient_id, db=db)

        if not link:
            logger.info(f"No caregiver for patient {patient_id}, {alert_type.value} not escalated")
            await self.messenger.send_message(patient_id, NO_CAREGIVER_MESSAGE)
            alert = Alert(
                patient_id=patient_id,
                alert_type=alert_type,
                message=message,
                status=AlertStatus.NO_CAREGIVER,
                metadata={"medication_name": medication_name}
            )
            return alert

        result = await self.messenger.send_message(link.caregiver_id, message)
        alert = Alert(
            patient_id=patient_id,
            alert_type=alert_type,
            message=message,
            status=AlertStatus.SENT if result.success else AlertStatus.FAILED,
            caregiver_id=link.caregiver_id,
            error=result.error,
            metadata={"medication_name": medication_name}
        )

        if result.success:
            logger.info(f"Escalated {alert_type.value} for patient {patient_id} to {link.caregiver_id}")
        else:
            logger.error(
                f"Failed to alert caregiver {link.caregiver_id} of patient {patient_id}: {result.error}"
            )

        return alert

    async def escalate_missed_dose(
        self,
        patient_id: int,
        medication_name: Optional[str] = None,
        patient_name: Optional[str] = None,
        db: Optional[Session] = None
    ) -> Alert:
        return await self.escalate(
            patient_id, AlertType.MISSED_DOSE,
            medication_name=medication_name, patient_name=patient_name, db=db
        )

    async def escalate_sos(
        self,
        patient_id: int,
        patient_name: Optional[str] = None,
        db: Optional[Session] = None
    ) -> Alert:
        return await self.escalate(patient_id, AlertType.SOS, patient_name=patient_name, db=db)


# Singleton instance
alert_engine = AlertEngine()
