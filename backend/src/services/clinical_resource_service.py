"""
Clinical resource services for consultations and medical records.

Both kinds share one read/write path: every read goes through the
authorization gate, every update or delete goes through the gate and then the
ownership rule. Subclasses only say which model they serve, which fields may
change, and how a delete is recorded.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.exceptions import InvalidTransitionError, NotFoundError, UnauthorizedError
from models.consultation import Consultation, ConsultationStatus
from models.medical_record import MedicalRecord, RecordType
from models.user import User, UserRole
from services.access_state import ConnectionEvent
from services.authorization import AccessDecision, Actor, require_read, visibility_filter
from services.connection_service import ConnectionService
from services.ownership import ensure_can_mutate
from utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


class ClinicalResourceService:
    """
    Gated get/list/update/delete for one clinical model.

    Subclasses set ``model``, ``resource_name`` and ``updatable_fields`` and
    may override ``_active_clause``, ``_mark_deleted`` and ``_touch``.
    """

    model: Any = None
    resource_name: str = "resource"
    updatable_fields: frozenset = frozenset()

    @classmethod
    def _active_clause(cls):
        return None

    @classmethod
    def _mark_deleted(cls, db: Session, resource, now: datetime) -> None:
        db.delete(resource)

    @classmethod
    def _touch(cls, db: Session, resource, now: datetime) -> None:
        pass

    @classmethod
    def _load(cls, db: Session, resource_id: int):
        stmt = select(cls.model).where(cls.model.id == resource_id)
        active = cls._active_clause()
        if active is not None:
            stmt = stmt.where(active)
        resource = db.execute(stmt).scalar_one_or_none()
        if resource is None:
            raise NotFoundError(f"{cls.resource_name.capitalize()} not found")
        return resource

    @classmethod
    def get(cls, db: Session, actor: Actor, resource_id: int) -> Tuple[Any, AccessDecision]:
        """
        Load a resource the actor may read.

        Raises:
            NotFoundError: If it does not exist
            UnauthorizedError: Concealed, if the gate denies the read
        """
        resource = cls._load(db, resource_id)
        decision = require_read(db, actor, resource, cls.resource_name)
        return resource, decision

    @classmethod
    def list_for_patient(
        cls,
        db: Session,
        actor: Actor,
        patient_id: int,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Any]:
        """
        List a patient's resources visible to the actor, newest first.

        A provider without full access sees only what they created.
        """
        if actor.is_patient and actor.id != patient_id:
            raise UnauthorizedError("Patient not found", conceal=True)

        stmt = select(cls.model).where(
            cls.model.patient_id == patient_id,
            visibility_filter(db, actor, cls.model, patient_id=patient_id),
        )
        active = cls._active_clause()
        if active is not None:
            stmt = stmt.where(active)
        for column_name, value in (filters or {}).items():
            if value is not None:
                stmt = stmt.where(getattr(cls.model, column_name) == value)
        stmt = stmt.order_by(cls.model.date.desc(), cls.model.id.desc())
        return list(db.execute(stmt).scalars().all())

    @classmethod
    def update(cls, db: Session, actor: Actor, resource_id: int, changes: Dict[str, Any]):
        """
        Apply ``changes`` to a resource owned by the actor.

        Raises:
            ValueError: If a field may not be changed
            UnauthorizedError: If the actor cannot read it (concealed) or did not create it
        """
        unknown = set(changes) - cls.updatable_fields
        if unknown:
            raise ValueError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        resource, _ = cls.get(db, actor, resource_id)
        ensure_can_mutate(actor, resource)

        now = utc_now()
        for key, value in changes.items():
            setattr(resource, key, value)
        cls._touch(db, resource, now)
        db.commit()

        logger.info(f"Updated {cls.resource_name} {resource.id} by provider {actor.id}")
        return resource

    @classmethod
    def delete(cls, db: Session, actor: Actor, resource_id: int) -> None:
        """Delete a resource owned by the actor, as the subclass records deletes."""
        resource, _ = cls.get(db, actor, resource_id)
        ensure_can_mutate(actor, resource)

        now = utc_now()
        cls._touch(db, resource, now)
        cls._mark_deleted(db, resource, now)
        db.commit()

        logger.info(f"Deleted {cls.resource_name} {resource_id} by provider {actor.id}")


class ConsultationService(ClinicalResourceService):
    """Consultations. Deleting archives the consultation."""

    model = Consultation
    resource_name = "consultation"
    updatable_fields = frozenset({"date", "specialty", "reason_for_visit", "notes", "status"})

    @classmethod
    def _mark_deleted(cls, db: Session, resource: Consultation, now: datetime) -> None:
        resource.status = ConsultationStatus.archived.value
        resource.archived_at = now

    @classmethod
    def _touch(cls, db: Session, resource: Consultation, now: datetime) -> None:
        resource.last_updated = now

    @classmethod
    def update(cls, db: Session, actor: Actor, resource_id: int, changes: Dict[str, Any]):
        if "status" in changes:
            changes = {**changes, "status": ConsultationStatus(changes["status"]).value}
        return super().update(db, actor, resource_id, changes)

    @classmethod
    def list_for_patient(
        cls,
        db: Session,
        actor: Actor,
        patient_id: int,
        filters: Optional[Dict[str, Any]] = None,
        include_archived: bool = False,
    ) -> List[Consultation]:
        consultations = super().list_for_patient(db, actor, patient_id, filters)
        if include_archived:
            return consultations
        return [c for c in consultations if c.status != ConsultationStatus.archived.value]

    @staticmethod
    def create(
        db: Session,
        actor: Actor,
        patient_id: int,
        date: datetime,
        specialty: Optional[str] = None,
        reason_for_visit: Optional[str] = None,
        notes: Optional[str] = None,
        status: str = ConsultationStatus.draft.value,
    ) -> Tuple[Consultation, List[ConnectionEvent]]:
        """
        Record a consultation; the acting provider becomes its owner.

        Connects the provider to the patient at limited access if they were not
        connected yet, and returns that connection's events for dispatch.
        """
        if not actor.is_provider:
            raise UnauthorizedError("Only providers can create consultations")

        patient = db.query(User).filter(
            User.id == patient_id,
            User.role == UserRole.patient.value,
            User.is_active.is_(True),
        ).first()
        if not patient:
            raise NotFoundError("Patient not found")

        outcome = ConnectionService.ensure_connection(db, patient.id, actor.id, commit=False)

        now = utc_now()
        consultation = Consultation(
            patient_id=patient.id,
            provider_id=actor.id,
            date=date,
            specialty=specialty,
            reason_for_visit=reason_for_visit,
            notes=notes,
            status=ConsultationStatus(status).value,
            last_updated=now,
        )
        db.add(consultation)
        db.commit()

        logger.info(f"Created consultation {consultation.id} for patient {patient.id} by provider {actor.id}")
        return consultation, outcome.events


class MedicalRecordService(ClinicalResourceService):
    """
    Medical records of every type. Deletes are soft.

    Records stay listed after their consultation is archived; only new
    records under an archived consultation are refused.
    """

    model = MedicalRecord
    resource_name = "medical record"
    updatable_fields = frozenset({"date", "notes", "data"})

    @classmethod
    def _active_clause(cls):
        return MedicalRecord.is_deleted.is_(False)

    @classmethod
    def _mark_deleted(cls, db: Session, resource: MedicalRecord, now: datetime) -> None:
        resource.is_deleted = True
        resource.deleted_at = now

    @classmethod
    def _touch(cls, db: Session, resource: MedicalRecord, now: datetime) -> None:
        if resource.consultation_id is not None:
            consultation = db.get(Consultation, resource.consultation_id)
            if consultation is not None:
                consultation.last_updated = now

    @classmethod
    def list_for_patient(
        cls,
        db: Session,
        actor: Actor,
        patient_id: int,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[MedicalRecord]:
        filters = dict(filters or {})
        if filters.get("record_type") is not None:
            filters["record_type"] = RecordType(filters["record_type"]).value
        return super().list_for_patient(db, actor, patient_id, filters)

    @staticmethod
    def create(
        db: Session,
        actor: Actor,
        consultation_id: int,
        record_type: str,
        date: datetime,
        notes: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> MedicalRecord:
        """
        Add a record under one of the actor's own consultations.

        The record inherits the consultation's patient and is owned by the actor.

        Raises:
            ValueError: If ``record_type`` is unknown
            UnauthorizedError: If the actor did not create the consultation
            InvalidTransitionError: If the consultation is archived
        """
        record_type = RecordType(record_type).value
        consultation, _ = ConsultationService.get(db, actor, consultation_id)
        ensure_can_mutate(actor, consultation)
        if consultation.status == ConsultationStatus.archived.value:
            raise InvalidTransitionError(
                "Cannot add records to an archived consultation",
                operation="create_medical_record",
                current_state=consultation.status,
            )

        now = utc_now()
        record = MedicalRecord(
            record_type=record_type,
            patient_id=consultation.patient_id,
            provider_id=actor.id,
            consultation_id=consultation.id,
            date=date,
            notes=notes,
            data=data or {},
            is_deleted=False,
        )
        db.add(record)
        consultation.last_updated = now
        db.commit()

        logger.info(
            f"Created {record_type} record {record.id} under consultation {consultation.id} by provider {actor.id}"
        )
        return record
