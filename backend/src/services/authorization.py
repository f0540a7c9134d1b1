"""
Authorization gate for consultations and medical records.

``authorize`` decides what an actor may do with one resource, reading the
connection row on every call so that a revocation applies to the very next
request. ``visibility_filter`` expresses the same read rule as a SQL clause
for list endpoints.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Protocol

from sqlalchemy import and_, exists, false, or_, select, true
from sqlalchemy.orm import Session

from core.exceptions import UnauthorizedError
from models.connection import AccessLevel, Connection, FullAccessStatus
from models.user import UserRole

logger = logging.getLogger(__name__)

# Admin decisions are always allowed, so they are always recorded
audit_logger = logging.getLogger("access.audit")


class AccessDecision(str, Enum):
    deny = "deny"
    read_only = "read_only"
    read_write = "read_write"

    @property
    def can_read(self) -> bool:
        return self is not AccessDecision.deny

    @property
    def can_write(self) -> bool:
        return self is AccessDecision.read_write


@dataclass(frozen=True)
class Actor:
    """Who is acting: the authenticated user's id and role."""

    id: int
    role: UserRole

    @property
    def is_patient(self) -> bool:
        return self.role == UserRole.patient

    @property
    def is_provider(self) -> bool:
        return self.role == UserRole.provider

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin


class OwnedResource(Protocol):
    """Anything the gate can judge: a consultation, a medical record."""

    id: Any
    patient_id: int

    @property
    def creator_provider_id(self) -> int: ...


def has_full_access(db: Session, patient_id: int, provider_id: int) -> bool:
    """True only for a (full, approved) connection between the two."""
    return db.execute(
        select(
            exists().where(
                Connection.patient_id == patient_id,
                Connection.provider_id == provider_id,
                Connection.access_level == AccessLevel.full.value,
                Connection.full_access_status == FullAccessStatus.approved.value,
            )
        )
    ).scalar()


def authorize(db: Session, actor: Actor, resource: OwnedResource) -> AccessDecision:
    """
    Decide the actor's access to a single resource.

    1. admin: read_write (audited)
    2. patient: read_write on their own resources, deny otherwise
    3. provider who created the resource: read_write, whatever the connection
    4. any other provider: read_only with a (full, approved) connection to the
       patient, deny otherwise. Limited access never reveals another
       provider's work.
    """
    if actor.is_admin:
        audit_logger.info(
            f"Admin {actor.id} granted read_write on {type(resource).__name__} {resource.id} "
            f"of patient {resource.patient_id}"
        )
        return AccessDecision.read_write

    if actor.is_patient:
        if actor.id == resource.patient_id:
            return AccessDecision.read_write
        return AccessDecision.deny

    if actor.is_provider:
        if actor.id == resource.creator_provider_id:
            return AccessDecision.read_write
        if has_full_access(db, resource.patient_id, actor.id):
            return AccessDecision.read_only
        return AccessDecision.deny

    logger.warning(f"Unknown role for actor {actor.id}")
    return AccessDecision.deny


def require_read(db: Session, actor: Actor, resource: OwnedResource, resource_name: str) -> AccessDecision:
    """
    Authorize a read, hiding the resource's existence on deny.

    Raises:
        UnauthorizedError: Concealed, so callers answer exactly as for a missing resource
    """
    decision = authorize(db, actor, resource)
    if not decision.can_read:
        logger.info(f"Read denied: actor {actor.id} on {resource_name} {resource.id}")
        raise UnauthorizedError(f"{resource_name.capitalize()} not found", conceal=True)
    return decision


def visibility_filter(db: Session, actor: Actor, model, patient_id: Optional[int] = None):
    """
    SQL clause selecting the rows of ``model`` the actor may read.

    When ``patient_id`` is given the provider's connection is looked up once
    instead of correlated per row.
    """
    if actor.is_admin:
        audit_logger.info(f"Admin {actor.id} listed {model.__tablename__} for patient {patient_id}")
        return true()

    if actor.is_patient:
        return model.patient_id == actor.id

    if not actor.is_provider:
        return false()

    if patient_id is not None:
        if has_full_access(db, patient_id, actor.id):
            return true()
        return model.provider_id == actor.id

    full_connection = exists().where(
        and_(
            Connection.patient_id == model.patient_id,
            Connection.provider_id == actor.id,
            Connection.access_level == AccessLevel.full.value,
            Connection.full_access_status == FullAccessStatus.approved.value,
        )
    )
    return or_(model.provider_id == actor.id, full_connection)
