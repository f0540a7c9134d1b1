"""
Connection service.

Orchestrates every change to a connection: load the row, check the actor,
run the pure transition from ``services.access_state``, then write it back
with a version check. Each operation commits and returns the connection with
the events the caller must hand to the notification dispatcher. Nothing here
sends notifications.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.exceptions import (
    AlreadyExistsError,
    NotFoundError,
    UnauthorizedError,
)
from models.connection import AccessLevel, Connection, FullAccessStatus
from models.user import User, UserRole
from services import access_state
from services.access_state import ConnectionEvent, Operation, Transition
from services.authorization import Actor, audit_logger
from services.connection_store import ConnectionStore
from utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)

RESPOND_ACTIONS = {
    "approve": Operation.approve_full_access,
    "deny": Operation.deny_full_access,
}


@dataclass
class ConnectionOutcome:
    """Result of a connection operation. ``connection`` is None once deleted."""

    connection: Optional[Connection]
    events: List[ConnectionEvent] = field(default_factory=list)


def _build_events(
    connection_id: int,
    patient_id: int,
    provider_id: int,
    notes: Optional[str],
    transition: Transition,
    actor_id: int,
    now: datetime,
) -> List[ConnectionEvent]:
    return [
        ConnectionEvent(
            event_type=event_type,
            connection_id=connection_id,
            patient_id=patient_id,
            provider_id=provider_id,
            actor_id=actor_id,
            occurred_at=now,
            notes=notes,
            direct_grant=transition.direct_grant,
        )
        for event_type in transition.events
    ]


class ConnectionService:
    """Service class for connection lifecycle and queries."""

    @staticmethod
    def _resolve_patient(
        db: Session,
        patient_id: Optional[int] = None,
        patient_email: Optional[str] = None,
    ) -> User:
        if patient_id is None and not patient_email:
            raise ValueError("patient_id or patient_email is required")

        query = db.query(User).filter(User.role == UserRole.patient.value, User.is_active.is_(True))
        if patient_id is not None:
            patient = query.filter(User.id == patient_id).first()
        else:
            patient = query.filter(func.lower(User.email) == patient_email.strip().lower()).first()

        # Non-patient accounts are reported the same as unknown ones
        if not patient:
            raise NotFoundError("Patient not found")
        return patient

    @staticmethod
    def create_connection(
        db: Session,
        actor: Actor,
        patient_id: Optional[int] = None,
        patient_email: Optional[str] = None,
        notes: Optional[str] = None,
        request_full_access: bool = False,
    ) -> ConnectionOutcome:
        """
        Connect the acting provider to a patient, optionally requesting full access.

        Raises:
            UnauthorizedError: If the actor is not a provider
            NotFoundError: If no active patient matches
            AlreadyExistsError: If the pair is already connected; the existing
                connection is left unchanged
        """
        if not actor.is_provider:
            raise UnauthorizedError("Only providers can create connections")

        patient = ConnectionService._resolve_patient(db, patient_id, patient_email)
        transition = access_state.create_connection(request_full_access)
        now = utc_now()

        connection = ConnectionStore.insert(
            db,
            patient_id=patient.id,
            provider_id=actor.id,
            initiated_by_user_id=actor.id,
            state=transition.state,
            now=now,
            notes=notes,
        )
        db.commit()

        logger.info(
            f"Created connection {connection.id} between patient {patient.id} and provider {actor.id} "
            f"({access_state.state_label(transition.state)})"
        )
        events = _build_events(
            connection.id, patient.id, actor.id, notes, transition, actor.id, now
        )
        return ConnectionOutcome(connection, events)

    @staticmethod
    def ensure_connection(
        db: Session,
        patient_id: int,
        provider_id: int,
        commit: bool = True,
    ) -> ConnectionOutcome:
        """
        Return the pair's connection, creating a (limited, none) one if missing.

        Used when a provider records a consultation for a patient they are not
        yet connected to. Events are only produced when a row was created.
        """
        existing = ConnectionStore.get_by_pair(db, patient_id, provider_id)
        if existing:
            return ConnectionOutcome(existing)

        transition = access_state.create_connection(False)
        now = utc_now()
        try:
            connection = ConnectionStore.insert(
                db,
                patient_id=patient_id,
                provider_id=provider_id,
                initiated_by_user_id=provider_id,
                state=transition.state,
                now=now,
            )
        except AlreadyExistsError:
            existing = ConnectionStore.get_by_pair(db, patient_id, provider_id)
            if existing is None:
                raise
            return ConnectionOutcome(existing)

        if commit:
            db.commit()

        logger.info(
            f"Auto-created connection {connection.id} between patient {patient_id} and provider {provider_id}"
        )
        events = _build_events(
            connection.id, patient_id, provider_id, None, transition, provider_id, now
        )
        return ConnectionOutcome(connection, events)

    @staticmethod
    def _load_for_party(db: Session, connection_id: int, actor: Actor) -> Connection:
        connection = ConnectionStore.get(db, connection_id)
        if connection is None:
            raise NotFoundError("Connection not found")
        if not connection.is_party(actor.id):
            logger.info(f"Actor {actor.id} is not a party to connection {connection_id}")
            raise UnauthorizedError("Connection not found", conceal=True)
        return connection

    @staticmethod
    def _apply(
        db: Session,
        connection_id: int,
        actor: Actor,
        operation: Operation,
        acting_party: str,
    ) -> ConnectionOutcome:
        """
        Shared read, check, transition, compare-and-set sequence.

        ``acting_party`` is "patient", "provider" or "either".
        """
        connection = ConnectionService._load_for_party(db, connection_id, actor)

        if acting_party == "patient" and actor.id != connection.patient_id:
            raise UnauthorizedError(f"Only the patient can {operation.value.replace('_', ' ')}")
        if acting_party == "provider" and actor.id != connection.provider_id:
            raise UnauthorizedError(f"Only the provider can {operation.value.replace('_', ' ')}")

        current = access_state.from_columns(connection.access_level, connection.full_access_status)
        transition = access_state.apply(operation, current)
        now = utc_now()

        # Keep identifiers; the row may be gone after a delete
        patient_id, provider_id, notes = connection.patient_id, connection.provider_id, connection.notes

        if transition.state is None:
            ConnectionStore.delete_if_version(db, connection.id, connection.version)
            updated = None
        else:
            updated = ConnectionStore.compare_and_set(
                db, connection.id, connection.version, transition.state, now
            )
        db.commit()

        new_label = access_state.state_label(transition.state) if transition.state else "removed"
        logger.info(
            f"Connection {connection_id} {operation.value} by user {actor.id}: "
            f"{access_state.state_label(current)} -> {new_label}"
        )
        events = _build_events(
            connection_id, patient_id, provider_id, notes, transition, actor.id, now
        )
        return ConnectionOutcome(updated, events)

    @staticmethod
    def request_full_access(db: Session, connection_id: int, actor: Actor) -> ConnectionOutcome:
        """Provider asks for full access: (limited, none|denied) -> (limited, pending)."""
        return ConnectionService._apply(
            db, connection_id, actor, Operation.request_full_access, "provider"
        )

    @staticmethod
    def respond_to_full_access(
        db: Session, connection_id: int, actor: Actor, action: str
    ) -> ConnectionOutcome:
        """
        Patient approves or denies a pending request.

        Raises:
            ValueError: If ``action`` is not "approve" or "deny"
            InvalidTransitionError: If the connection is not pending
        """
        operation = RESPOND_ACTIONS.get(action)
        if operation is None:
            raise ValueError(f"Invalid action: {action}. Must be 'approve' or 'deny'")
        return ConnectionService._apply(db, connection_id, actor, operation, "patient")

    @staticmethod
    def approve_full_access(db: Session, connection_id: int, actor: Actor) -> ConnectionOutcome:
        return ConnectionService.respond_to_full_access(db, connection_id, actor, "approve")

    @staticmethod
    def deny_full_access(db: Session, connection_id: int, actor: Actor) -> ConnectionOutcome:
        return ConnectionService.respond_to_full_access(db, connection_id, actor, "deny")

    @staticmethod
    def revoke_access(db: Session, connection_id: int, actor: Actor) -> ConnectionOutcome:
        """Patient steps full access down to (limited, none)."""
        return ConnectionService._apply(
            db, connection_id, actor, Operation.revoke_access, "patient"
        )

    @staticmethod
    def grant_full_access_direct(db: Session, connection_id: int, actor: Actor) -> ConnectionOutcome:
        """Patient grants full access without a pending request."""
        return ConnectionService._apply(
            db, connection_id, actor, Operation.grant_full_access_direct, "patient"
        )

    @staticmethod
    def delete_connection(db: Session, connection_id: int, actor: Actor) -> ConnectionOutcome:
        """
        Remove a connection with no live grant or pending request.

        Either party may delete. Full access must be revoked first.
        """
        return ConnectionService._apply(
            db, connection_id, actor, Operation.delete_connection, "either"
        )

    @staticmethod
    def get_connection(db: Session, connection_id: int, actor: Actor) -> Connection:
        if actor.is_admin:
            connection = ConnectionStore.get(db, connection_id)
            if connection is None:
                raise NotFoundError("Connection not found")
            audit_logger.info(f"Admin {actor.id} read connection {connection_id}")
            return connection
        return ConnectionService._load_for_party(db, connection_id, actor)

    @staticmethod
    def list_connections(
        db: Session,
        actor: Actor,
        access_level: Optional[str] = None,
        full_access_status: Optional[str] = None,
    ) -> List[Connection]:
        """
        List the actor's connections; admins see all of them.

        Raises:
            ValueError: If a filter value is not a known level or status
        """
        if access_level is not None:
            access_level = AccessLevel(access_level).value
        if full_access_status is not None:
            full_access_status = FullAccessStatus(full_access_status).value

        if actor.is_patient:
            return ConnectionStore.list_for_party(
                db, patient_id=actor.id,
                access_level=access_level, full_access_status=full_access_status,
            )
        if actor.is_provider:
            return ConnectionStore.list_for_party(
                db, provider_id=actor.id,
                access_level=access_level, full_access_status=full_access_status,
            )
        if actor.is_admin:
            audit_logger.info(f"Admin {actor.id} listed all connections")
            return ConnectionStore.list_for_party(
                db, access_level=access_level, full_access_status=full_access_status,
            )
        return []

    @staticmethod
    def list_pending_requests(db: Session, actor: Actor) -> List[Connection]:
        """Patient's pending full-access requests, most recent status change first."""
        if not actor.is_patient:
            raise UnauthorizedError("Only patients have a request inbox")
        return ConnectionStore.list_pending_for_patient(db, actor.id)

