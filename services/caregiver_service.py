"""
Caregiver Service
Patient <-> caregiver links (one caregiver per patient, re-linking overwrites)
"""

import logging
from typing import Optional
from sqlalchemy.orm import Session

from database import get_db_context
import models


logger = logging.getLogger(__name__)


class CaregiverService:
    """
    Service for caregiver link storage
    """

    async def link(
        self,
        patient_id: int,
        caregiver_id: int,
        db: Optional[Session] = None
    ) -> models.Caregiver:
        """
        Upsert the caregiver of a patient. The patient is the conflict
        target: an existing link is overwritten, never duplicated.
        """
        def _link(session: Session) -> models.Caregiver:
            link = session.query(models.Caregiver).filter(
                models.Caregiver.patient_id == patient_id
            ).first()

            if link:
                previous = link.caregiver_id
                link.caregiver_id = caregiver_id
                logger.info(f"Re-linked patient {patient_id}: caregiver {previous} -> {caregiver_id}")
            else:
                link = models.Caregiver(patient_id=patient_id, caregiver_id=caregiver_id)
                session.add(link)
                logger.info(f"Linked patient {patient_id} to caregiver {caregiver_id}")

            session.commit()
            session.refresh(link)
            return link

        if db:
            return _link(db)

        with get_db_context() as session:
            return _link(session)

    async def get_caregiver(
        self,
        patient_id: int,
        db: Optional[Session] = None
    ) -> Optional[models.Caregiver]:
        """Current link of a patient, if any"""
        def _get(session: Session) -> Optional[models.Caregiver]:
            return session.query(models.Caregiver).filter(
                models.Caregiver.patient_id == patient_id
            ).first()

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def get_patient_for_caregiver(
        self,
        caregiver_id: int,
        db: Optional[Session] = None
    ) -> Optional[int]:
        """Patient the user cares for; the most recent link wins if there are several"""
        def _get(session: Session) -> Optional[int]:
            link = session.query(models.Caregiver).filter(
                models.Caregiver.caregiver_id == caregiver_id
            ).order_by(models.Caregiver.id.desc()).first()
            return link.patient_id if link else None

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)


# Singleton instance
caregiver_service = CaregiverService()
