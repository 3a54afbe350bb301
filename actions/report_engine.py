"""
Report Engine
Weekly adherence summaries for patients and their caregivers
"""

import logging
from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

import models
from config import scheduling_config
from services.adherence_service import AdherenceService, adherence_service
from services.caregiver_service import CaregiverService, caregiver_service
from services.health_log_service import HealthLogService, health_log_service
from services.medication_service import MedicationService, medication_service
from tools.notification_service import Messenger, messenger as default_messenger
from tools.schedule_normalizer import get_zone, to_local, utcnow


logger = logging.getLogger(__name__)


@dataclass
class AdherenceReport:
    """One patient's weekly numbers"""
    patient_id: int
    period_start: datetime
    period_end: datetime
    taken: int
    missed: int
    percentage: int
    health_entries: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patient_id": self.patient_id,
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "taken": self.taken,
            "missed": self.missed,
            "percentage": self.percentage,
            "health_entries": self.health_entries,
        }


@dataclass
class ReportRunResult:
    """Outcome of one weekly run"""
    run_at: datetime
    reports: List[AdherenceReport] = field(default_factory=list)
    patient_deliveries: int = 0
    caregiver_deliveries: int = 0
    failures: List[str] = field(default_factory=list)


class ReportEngine:
    """
    Aggregates the trailing week of adherence and health logs.

    Each patient and each recipient is handled in isolation; a delivery
    failure is logged and never retried.
    """

    def __init__(
        self,
        messenger: Optional[Messenger] = None,
        medications: Optional[MedicationService] = None,
        adherence: Optional[AdherenceService] = None,
        health_logs: Optional[HealthLogService] = None,
        caregivers: Optional[CaregiverService] = None,
        window_days: int = scheduling_config.REPORT_WINDOW_DAYS,
        tz: Optional[ZoneInfo] = None
    ):
        self.messenger = messenger or default_messenger
        self.medications = medications or medication_service
        self.adherence = adherence or adherence_service
        self.health_logs = health_logs or health_log_service
        self.caregivers = caregivers or caregiver_service
        self.window_days = window_days
        self.tz = tz

    async def build_report(
        self,
        patient_id: int,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> AdherenceReport:
        """Numbers for the trailing window ending at now"""
        now = now or utcnow()
        summary = await self.adherence.get_adherence_summary(
            patient_id, days=self.window_days, now=now, db=db
        )
        entries = await self.health_logs.get_entries(
            patient_id, summary["period_start"], summary["period_end"], db=db
        )

        return AdherenceReport(
            patient_id=patient_id,
            period_start=summary["period_start"],
            period_end=summary["period_end"],
            taken=summary["taken"],
            missed=summary["missed"],
            percentage=summary["percentage"],
            health_entries=[self._entry_to_dict(e) for e in entries],
        )

    def _entry_to_dict(self, entry: models.HealthLog) -> Dict[str, Any]:
        return {
            "type": entry.type,
            "value": entry.value,
            "timestamp": to_local(entry.timestamp, self.tz or get_zone()).strftime("%a %d %b %H:%M"),
        }

    def _body(self, report: AdherenceReport) -> str:
        lines = [
            f"Adherence: {report.percentage}%",
            f"✅ Taken: {report.taken}",
            f"❌ Missed: {report.missed}",
        ]
        if report.health_entries:
            lines.append("")
            lines.append("Health logs:")
            for entry in report.health_entries:
                lines.append(f"• {entry['timestamp']}: {entry['type']} {entry['value']}")
        return "\n".join(lines)

    def format_patient_report(self, report: AdherenceReport) -> str:
        return f"📊 Your weekly report\n\n{self._body(report)}"

    def format_caregiver_report(self, report: AdherenceReport) -> str:
        return f"📊 Weekly report for patient {report.patient_id}\n\n{self._body(report)}"

    async def _deliver(self, recipient_id: int, text: str, label: str, result: ReportRunResult) -> bool:
        try:
            delivery = await self.messenger.send_message(recipient_id, text)
        except Exception as e:
            logger.exception(f"Weekly report to {label} {recipient_id} raised")
            result.failures.append(f"{label}:{recipient_id}:{e}")
            return False

        if not delivery.success:
            logger.error(f"Weekly report to {label} {recipient_id} not delivered: {delivery.error}")
            result.failures.append(f"{label}:{recipient_id}:{delivery.error}")
        return delivery.success

    async def run(
        self,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> ReportRunResult:
        """Build and send the report of every patient with medications"""
        now = now or utcnow()
        result = ReportRunResult(run_at=now)
        patient_ids = await self.medications.get_patients_with_medications(db=db)

        for patient_id in patient_ids:
            try:
                report = await self.build_report(patient_id, now=now, db=db)
                link = await self.caregivers.get_caregiver(patient_id, db=db)
            except Exception as e:
                logger.exception(f"Weekly report for patient {patient_id} could not be built")
                result.failures.append(f"build:{patient_id}:{e}")
                continue

            result.reports.append(report)

            if await self._deliver(patient_id, self.format_patient_report(report), "patient", result):
                result.patient_deliveries += 1

            if link and await self._deliver(
                link.caregiver_id, self.format_caregiver_report(report), "caregiver", result
            ):
                result.caregiver_deliveries += 1

        logger.info(
            f"Weekly reports: {len(result.reports)} built, {result.patient_deliveries} to patients, "
            f"{result.caregiver_deliveries} to caregivers, {len(result.failures)} failures"
        )
        return result


# Singleton instance
report_engine = ReportEngine()
