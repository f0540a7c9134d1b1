"""
Persistence for connections.

All access-state writes go through ``compare_and_set``: a single UPDATE keyed
by id and version, so two actors racing on the same connection cannot both
succeed. Callers own the transaction; nothing here commits.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.exceptions import AlreadyExistsError, NotFoundError, StoreConflictError
from models.connection import Connection, FullAccessStatus
from services.access_state import AccessState

logger = logging.getLogger(__name__)


class ConnectionStore:
    """Queries and atomic writes over the connections table."""

    @staticmethod
    def get(db: Session, connection_id: int) -> Optional[Connection]:
        return db.execute(
            select(Connection)
            .where(Connection.id == connection_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    @staticmethod
    def get_by_pair(db: Session, patient_id: int, provider_id: int) -> Optional[Connection]:
        return db.execute(
            select(Connection).where(
                Connection.patient_id == patient_id,
                Connection.provider_id == provider_id,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    @staticmethod
    def list_pending_for_patient(db: Session, patient_id: int) -> List[Connection]:
        """Patient's request inbox, most recent status change first."""
        stmt = (
            select(Connection)
            .where(
                Connection.patient_id == patient_id,
                Connection.full_access_status == FullAccessStatus.pending.value,
            )
            .order_by(
                Connection.full_access_status_updated_at.desc(),
                Connection.created_at.desc(),
                Connection.id.desc(),
            )
        )
        return list(db.execute(stmt).scalars().all())

    @staticmethod
    def list_for_party(
        db: Session,
        patient_id: Optional[int] = None,
        provider_id: Optional[int] = None,
        access_level: Optional[str] = None,
        full_access_status: Optional[str] = None,
    ) -> List[Connection]:
        """
        List connections, newest first.

        With neither ``patient_id`` nor ``provider_id`` every connection matches;
        only admin-facing callers should do that.
        """
        stmt = select(Connection)
        if patient_id is not None:
            stmt = stmt.where(Connection.patient_id == patient_id)
        if provider_id is not None:
            stmt = stmt.where(Connection.provider_id == provider_id)
        if access_level is not None:
            stmt = stmt.where(Connection.access_level == access_level)
        if full_access_status is not None:
            stmt = stmt.where(Connection.full_access_status == full_access_status)
        stmt = stmt.order_by(Connection.created_at.desc(), Connection.id.desc())
        return list(db.execute(stmt).scalars().all())

    @staticmethod
    def insert(
        db: Session,
        patient_id: int,
        provider_id: int,
        initiated_by_user_id: int,
        state: AccessState,
        now: datetime,
        notes: Optional[str] = None,
    ) -> Connection:
        """
        Insert a new connection in ``state``.

        Raises:
            AlreadyExistsError: If the pair already has a connection, whether
                found up front or reported by the unique index on flush
        """
        existing = ConnectionStore.get_by_pair(db, patient_id, provider_id)
        if existing:
            raise AlreadyExistsError(
                "A connection already exists for this patient and provider",
                existing_id=existing.id,
            )

        connection = Connection(
            patient_id=patient_id,
            provider_id=provider_id,
            initiated_by_user_id=initiated_by_user_id,
            access_level=state.access_level.value,
            full_access_status=state.full_access_status.value,
            notes=notes,
            patient_notified=False,
            full_access_status_updated_at=now,
            version=1,
        )
        try:
            # A duplicate rolls back this savepoint only
            with db.begin_nested():
                db.add(connection)
                db.flush()
        except IntegrityError:
            # Lost the race against a concurrent insert for the same pair
            existing = ConnectionStore.get_by_pair(db, patient_id, provider_id)
            logger.info(
                f"Concurrent connection insert for patient {patient_id} and provider {provider_id}"
            )
            raise AlreadyExistsError(
                "A connection already exists for this patient and provider",
                existing_id=existing.id if existing else None,
            ) from None
        return connection

    @staticmethod
    def _raise_lost_write(db: Session, connection_id: int, expected_version: int) -> None:
        current = db.execute(
            select(Connection.version).where(Connection.id == connection_id)
        ).scalar_one_or_none()
        if current is None:
            raise NotFoundError("Connection not found")
        logger.warning(
            f"Version conflict on connection {connection_id}: expected {expected_version}, found {current}"
        )
        raise StoreConflictError("Connection was modified concurrently; please retry")

    @staticmethod
    def compare_and_set(
        db: Session,
        connection_id: int,
        expected_version: int,
        state: AccessState,
        now: datetime,
    ) -> Connection:
        """
        Write ``state`` only if the stored version still equals ``expected_version``.

        Raises:
            StoreConflictError: If another write landed since the caller's read
            NotFoundError: If the connection has been deleted meanwhile
        """
        result = db.execute(
            update(Connection)
            .where(Connection.id == connection_id, Connection.version == expected_version)
            .values(
                access_level=state.access_level.value,
                full_access_status=state.full_access_status.value,
                full_access_status_updated_at=now,
                updated_at=now,
                version=Connection.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            ConnectionStore._raise_lost_write(db, connection_id, expected_version)

        return db.execute(
            select(Connection)
            .where(Connection.id == connection_id)
            .execution_options(populate_existing=True)
        ).scalar_one()

    @staticmethod
    def delete_if_version(db: Session, connection_id: int, expected_version: int) -> None:
        """Delete the connection only if it is unchanged since the caller's read."""
        result = db.execute(
            delete(Connection)
            .where(Connection.id == connection_id, Connection.version == expected_version)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            ConnectionStore._raise_lost_write(db, connection_id, expected_version)

        stale = db.identity_map.get(db.identity_key(Connection, connection_id))
        if stale is not None:
            db.expunge(stale)

    @staticmethod
    def mark_patient_notified(db: Session, connection_id: int, now: datetime) -> bool:
        """
        Record that the patient has been told about the connection.

        Does not bump ``version``: notification tracking must never make a
        concurrent transition fail. Returns False if the connection is gone.
        """
        result = db.execute(
            update(Connection)
            .where(Connection.id == connection_id)
            .values(patient_notified=True, patient_notified_at=now)
        )
        return result.rowcount > 0
