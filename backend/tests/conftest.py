"""
Test configuration and shared fixtures for the Care Connect test suite.

Each test gets its own in-memory SQLite database built from the models, so
tests never share rows. The application engine in core.database is pointed at
SQLite as well and is never used for test data.
"""

import os

# Must be set before core.config is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("NOTIFICATION_SCHEDULER_ENABLED", "false")

import itertools
from datetime import datetime
from typing import Callable, Generator, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from core.database import Base, get_db
import models  # noqa: F401  Registers every model on Base.metadata
from models import Connection, Consultation, MedicalRecord, User, UserRole
from services.authorization import Actor
from utils.datetime_utils import utc_now


@pytest.fixture(scope="function")
def db_engine():
    """
    In-memory SQLite engine for one test.

    StaticPool keeps the single connection alive so the schema survives
    across sessions, including the one the TestClient thread uses.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    @event.listens_for(engine, "connect")
    def enable_foreign_keys(dbapi_connection, connection_record):  # type: ignore
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Session over the test database; services commit into it freely."""
    TestingSession = sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)
    session = TestingSession()
    yield session
    session.close()


_email_counter = itertools.count(1)


@pytest.fixture
def make_user(db_session) -> Callable[..., User]:
    """Factory for users of any role."""

    def _make_user(
        role: str,
        full_name: Optional[str] = None,
        email: Optional[str] = None,
        specialty: Optional[str] = None,
        is_active: bool = True,
    ) -> User:
        n = next(_email_counter)
        user = User(
            email=email or f"{role}{n}@example.com",
            full_name=full_name or f"{role.capitalize()} {n}",
            role=role,
            specialty=specialty,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make_user


@pytest.fixture
def patient(make_user) -> User:
    return make_user(UserRole.patient.value, full_name="Alice Patient", email="alice@example.com")


@pytest.fixture
def provider(make_user) -> User:
    return make_user(
        UserRole.provider.value, full_name="Dr. Paul Provider", email="paul@clinic.example.com",
        specialty="Cardiology",
    )


@pytest.fixture
def other_provider(make_user) -> User:
    return make_user(
        UserRole.provider.value, full_name="Dr. Quinn Other", email="quinn@clinic.example.com",
        specialty="Neurology",
    )


@pytest.fixture
def admin(make_user) -> User:
    return make_user(UserRole.admin.value, full_name="Ada Admin", email="ada@example.com")


def actor_of(user: User) -> Actor:
    return Actor(id=user.id, role=UserRole(user.role))


@pytest.fixture
def as_actor() -> Callable[[User], Actor]:
    """Turn a user row into the Actor the services expect."""
    return actor_of


@pytest.fixture
def make_connection(db_session) -> Callable[..., Connection]:
    """
    Insert a connection directly in a given state, bypassing the service.

    Used to set up authorization scenarios without replaying the workflow.
    """

    def _make_connection(
        patient: User,
        provider: User,
        access_level: str = "limited",
        full_access_status: str = "none",
        notes: Optional[str] = None,
    ) -> Connection:
        connection = Connection(
            patient_id=patient.id,
            provider_id=provider.id,
            initiated_by_user_id=provider.id,
            access_level=access_level,
            full_access_status=full_access_status,
            notes=notes,
            patient_notified=False,
            full_access_status_updated_at=utc_now(),
            version=1,
        )
        db_session.add(connection)
        db_session.commit()
        return connection

    return _make_connection


@pytest.fixture
def api_client(db_session) -> Generator[Callable[[Optional[User]], TestClient], None, None]:
    """
    TestClient factory bound to the test session.

    ``api_client(user)`` returns a client authenticated as ``user``; with no
    user the real bearer-token dependency is used.
    """
    from auth.dependencies import UserContext, get_current_user
    from main import app

    app.dependency_overrides[get_db] = lambda: db_session

    def _client(user: Optional[User] = None) -> TestClient:
        context = None
        if user is not None:
            context = UserContext(
                user_id=user.id, email=user.email, role=user.role, name=user.full_name
            )

        def _bind_identity() -> None:
            # Each client re-installs its own identity before every request,
            # so clients created later in a test do not change who earlier
            # clients act as.
            if context is None:
                app.dependency_overrides.pop(get_current_user, None)
            else:
                app.dependency_overrides[get_current_user] = lambda: context

        class _UserClient(TestClient):
            def request(self, *args, **kwargs):  # type: ignore[override]
                _bind_identity()
                return super().request(*args, **kwargs)

        _bind_identity()
        return _UserClient(app)

    yield _client

    app.dependency_overrides.clear()


@pytest.fixture
def make_consultation(db_session) -> Callable[..., Consultation]:
    """Insert a consultation owned by ``provider``."""

    def _make_consultation(
        patient: User,
        provider: User,
        status: str = "draft",
        specialty: Optional[str] = None,
        date: Optional[datetime] = None,
    ) -> Consultation:
        now = utc_now()
        consultation = Consultation(
            patient_id=patient.id,
            provider_id=provider.id,
            date=date or now,
            specialty=specialty or provider.specialty,
            reason_for_visit="Routine check",
            status=status,
            last_updated=now,
        )
        db_session.add(consultation)
        db_session.commit()
        return consultation

    return _make_consultation


@pytest.fixture
def make_record(db_session) -> Callable[..., MedicalRecord]:
    """Insert a medical record under ``consultation``, owned by its provider."""

    def _make_record(
        consultation: Consultation,
        record_type: str = "vitals",
        data: Optional[dict] = None,
        date: Optional[datetime] = None,
    ) -> MedicalRecord:
        record = MedicalRecord(
            record_type=record_type,
            patient_id=consultation.patient_id,
            provider_id=consultation.provider_id,
            consultation_id=consultation.id,
            date=date or utc_now(),
            data=data or {"heart_rate": 72},
            is_deleted=False,
        )
        db_session.add(record)
        db_session.commit()
        return record

    return _make_record
