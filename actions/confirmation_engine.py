"""
Confirmation Engine
Holds proposals that need an explicit yes/no from the patient:
a medication with a dosage warning, or a bulk import read off a prescription
"""

import asyncio
import logging
from typing import Any, Dict, Generic, List, Optional, TypeVar
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

import models
from config import settings
from api.schemas.intent import ProposedMedication
from services.medication_service import MedicationService, medication_service
from tools.schedule_normalizer import get_zone, local_today, utcnow


logger = logging.getLogger(__name__)

T = TypeVar("T")

SESSION_EXPIRED_MESSAGE = "⌛ This request has expired. Please send it again."
SAVE_FAILED_MESSAGE = "⚠️ I couldn't save that right now. Please press confirm again."


@dataclass
class PendingEntry(Generic[T]):
    payload: T
    created_at: datetime


class PendingConfirmationStore(Generic[T]):
    """
    One payload per owner, process-local.

    A new put overwrites the previous payload. Entries older than the TTL
    are treated as absent and removed by sweep().
    """

    def __init__(self, name: str, ttl_minutes: Optional[int] = None):
        self.name = name
        self.ttl = timedelta(minutes=ttl_minutes or settings.PENDING_CONFIRMATION_TTL_MINUTES)
        self._entries: Dict[int, PendingEntry[T]] = {}
        self._locks: Dict[int, asyncio.Lock] = {}

    def lock(self, owner_id: int) -> asyncio.Lock:
        """Per-owner lock; callers hold it across a lookup and its side effects"""
        if owner_id not in self._locks:
            self._locks[owner_id] = asyncio.Lock()
        return self._locks[owner_id]

    def _expired(self, entry: PendingEntry[T], now: datetime) -> bool:
        return now - entry.created_at > self.ttl

    def put(self, owner_id: int, payload: T, now: Optional[datetime] = None):
        if owner_id in self._entries:
            logger.info(f"Replacing pending {self.name} for {owner_id}")
        self._entries[owner_id] = PendingEntry(payload=payload, created_at=now or utcnow())

    def peek(self, owner_id: int, now: Optional[datetime] = None) -> Optional[T]:
        entry = self._entries.get(owner_id)
        if entry is None or self._expired(entry, now or utcnow()):
            return None
        return entry.payload

    def discard(self, owner_id: int) -> bool:
        return self._entries.pop(owner_id, None) is not None

    def sweep(self, now: Optional[datetime] = None) -> int:
        """Drop expired entries and idle locks; returns how many entries were dropped"""
        now = now or utcnow()
        stale = [owner for owner, entry in self._entries.items() if self._expired(entry, now)]
        for owner in stale:
            del self._entries[owner]

        for owner in list(self._locks):
            if owner not in self._entries and not self._locks[owner].locked():
                del self._locks[owner]

        return len(stale)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, owner_id: int) -> bool:
        return self.peek(owner_id) is not None


@dataclass
class ConfirmationOutcome:
    """Reply text plus whatever was written"""
    text: str
    expired: bool = False
    failed: bool = False
    created: List[models.Medication] = field(default_factory=list)


def course_end_date(start: date, duration_days: Optional[int]) -> Optional[date]:
    """Last day of an N-day course starting on `start`"""
    if not duration_days:
        return None
    return start + timedelta(days=duration_days - 1)


class ConfirmationEngine:
    """
    Two independent flows keyed by patient id:

    - unsafe dosage: a single proposal held until the patient overrides
      the warning or cancels
    - bulk import: the whole list from a prescription, all or nothing
    """

    def __init__(
        self,
        medications: Optional[MedicationService] = None,
        ttl_minutes: Optional[int] = None,
        tz: Optional[ZoneInfo] = None
    ):
        self.medications = medications or medication_service
        self.unsafe_dosage: PendingConfirmationStore[ProposedMedication] = PendingConfirmationStore(
            "medication", ttl_minutes
        )
        self.bulk_import: PendingConfirmationStore[List[ProposedMedication]] = PendingConfirmationStore(
            "import", ttl_minutes
        )
        self.tz = tz

    def _entry(self, proposal: ProposedMedication, now: datetime) -> Dict[str, Any]:
        """Keyword arguments for the medication service, course end resolved"""
        today = local_today(now, self.tz or get_zone())
        return {
            "name": proposal.name,
            "dosage": proposal.dosage,
            "time": proposal.time,
            "frequency": proposal.frequency,
            "end_date": course_end_date(today, proposal.duration_days),
        }

    # ==================== UNSAFE DOSAGE ====================

    async def propose_medication(
        self,
        patient_id: int,
        proposal: ProposedMedication,
        now: Optional[datetime] = None
    ):
        async with self.unsafe_dosage.lock(patient_id):
            self.unsafe_dosage.put(patient_id, proposal, now)
        logger.info(f"Holding {proposal.name} for patient {patient_id} pending dosage confirmation")

    async def confirm_medication(
        self,
        patient_id: int,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> ConfirmationOutcome:
        """
        Insert the held proposal exactly as parsed.
        The proposal is released only once the row is stored.
        """
        now = now or utcnow()
        async with self.unsafe_dosage.lock(patient_id):
            proposal = self.unsafe_dosage.peek(patient_id, now)
            if proposal is None:
                self.unsafe_dosage.discard(patient_id)
                return ConfirmationOutcome(text=SESSION_EXPIRED_MESSAGE, expired=True)

            try:
                medication = await self.medications.add_medication(
                    patient_id, db=db, **self._entry(proposal, now)
                )
            except Exception:
                logger.exception(f"Could not store confirmed {proposal.name} for patient {patient_id}")
                return ConfirmationOutcome(text=SAVE_FAILED_MESSAGE, failed=True)

            self.unsafe_dosage.discard(patient_id)

        return ConfirmationOutcome(
            text=f"✅ Added {medication.name} at {medication.schedule_time}.",
            created=[medication],
        )

    async def cancel_medication(self, patient_id: int) -> ConfirmationOutcome:
        async with self.unsafe_dosage.lock(patient_id):
            if not self.unsafe_dosage.discard(patient_id):
                return ConfirmationOutcome(text=SESSION_EXPIRED_MESSAGE, expired=True)
        return ConfirmationOutcome(text="👍 Cancelled. Nothing was added.")

    # ==================== BULK IMPORT ====================

    async def propose_import(
        self,
        patient_id: int,
        proposals: List[ProposedMedication],
        now: Optional[datetime] = None
    ):
        async with self.bulk_import.lock(patient_id):
            self.bulk_import.put(patient_id, list(proposals), now)
        logger.info(f"Holding {len(proposals)} imported medications for patient {patient_id}")

    async def confirm_import(
        self,
        patient_id: int,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> ConfirmationOutcome:
        """
        Insert every held entry in one transaction.

        If the store rejects any entry nothing is inserted and the list stays
        pending, so the patient can press confirm again.
        """
        now = now or utcnow()
        async with self.bulk_import.lock(patient_id):
            proposals = self.bulk_import.peek(patient_id, now)
            if proposals is None:
                self.bulk_import.discard(patient_id)
                return ConfirmationOutcome(text=SESSION_EXPIRED_MESSAGE, expired=True)

            try:
                created = await self.medications.add_medications(
                    patient_id, [self._entry(p, now) for p in proposals], db=db
                )
            except Exception:
                logger.exception(f"Import of {len(proposals)} medications for patient {patient_id} failed")
                return ConfirmationOutcome(text=SAVE_FAILED_MESSAGE, failed=True)

            self.bulk_import.discard(patient_id)

        lines = [f"✅ Imported {len(created)} medications:"]
        lines.extend(f"• {m.name} at {m.schedule_time}" for m in created)
        return ConfirmationOutcome(text="\n".join(lines), created=created)

    async def cancel_import(self, patient_id: int) -> ConfirmationOutcome:
        async with self.bulk_import.lock(patient_id):
            if not self.bulk_import.discard(patient_id):
                return ConfirmationOutcome(text=SESSION_EXPIRED_MESSAGE, expired=True)
        return ConfirmationOutcome(text="👍 Import cancelled.")

    # ==================== MAINTENANCE ====================

    def sweep(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Expire abandoned proposals in both flows"""
        now = now or utcnow()
        dropped = {
            "medication": self.unsafe_dosage.sweep(now),
            "import": self.bulk_import.sweep(now),
        }
        if any(dropped.values()):
            logger.info(f"Expired pending confirmations: {dropped}")
        return dropped


# Singleton instance
confirmation_engine = ConfirmationEngine()
