"""
Unit tests for the authorization gate and the ownership rule.
"""

import logging

import pytest
from sqlalchemy import select, update

from core.exceptions import UnauthorizedError
from models import Connection, Consultation, MedicalRecord
from services.authorization import (
    AccessDecision,
    authorize,
    has_full_access,
    require_read,
    visibility_filter,
)
from services.ownership import can_mutate, ensure_can_mutate

CONNECTION_STATES = [
    ("limited", "none"),
    ("limited", "pending"),
    ("limited", "denied"),
    ("full", "approved"),
]


class TestAccessDecision:

    def test_flags(self):
        assert not AccessDecision.deny.can_read
        assert AccessDecision.read_only.can_read and not AccessDecision.read_only.can_write
        assert AccessDecision.read_write.can_read and AccessDecision.read_write.can_write


class TestAuthorize:

    def test_patient_owns_their_records(self, db_session, patient, provider, make_consultation, as_actor):
        consultation = make_consultation(patient, provider)
        assert authorize(db_session, as_actor(patient), consultation) == AccessDecision.read_write

    def test_patient_cannot_see_another_patient(
        self, db_session, make_user, patient, provider, make_consultation, as_actor
    ):
        consultation = make_consultation(patient, provider)
        stranger = make_user("patient")
        assert authorize(db_session, as_actor(stranger), consultation) == AccessDecision.deny

    @pytest.mark.parametrize("access_level,full_access_status", CONNECTION_STATES)
    def test_creator_has_read_write_in_every_state(
        self, db_session, patient, provider, make_connection, make_consultation, as_actor,
        access_level, full_access_status,
    ):
        make_connection(patient, provider, access_level, full_access_status)
        consultation = make_consultation(patient, provider)
        assert authorize(db_session, as_actor(provider), consultation) == AccessDecision.read_write

    def test_creator_keeps_access_without_any_connection(
        self, db_session, patient, provider, make_consultation, as_actor
    ):
        consultation = make_consultation(patient, provider)
        assert authorize(db_session, as_actor(provider), consultation) == AccessDecision.read_write

    def test_full_approved_reads_other_providers_work(
        self, db_session, patient, provider, other_provider, make_connection, make_consultation, as_actor
    ):
        make_connection(patient, other_provider, "full", "approved")
        consultation = make_consultation(patient, provider)
        assert authorize(db_session, as_actor(other_provider), consultation) == AccessDecision.read_only

    @pytest.mark.parametrize("access_level,full_access_status", CONNECTION_STATES[:3])
    def test_limited_never_reveals_other_providers_work(
        self, db_session, patient, provider, other_provider, make_connection, make_consultation, as_actor,
        access_level, full_access_status,
    ):
        make_connection(patient, other_provider, access_level, full_access_status)
        consultation = make_consultation(patient, provider)
        assert authorize(db_session, as_actor(other_provider), consultation) == AccessDecision.deny

    def test_unconnected_provider_is_denied(
        self, db_session, patient, provider, other_provider, make_consultation, as_actor
    ):
        consultation = make_consultation(patient, provider)
        assert authorize(db_session, as_actor(other_provider), consultation) == AccessDecision.deny

    def test_revocation_applies_to_the_next_check(
        self, db_session, patient, provider, other_provider, make_connection, make_consultation, as_actor
    ):
        connection = make_connection(patient, other_provider, "full", "approved")
        consultation = make_consultation(patient, provider)
        assert authorize(db_session, as_actor(other_provider), consultation) == AccessDecision.read_only

        db_session.execute(
            update(Connection).where(Connection.id == connection.id)
            .values(access_level="limited", full_access_status="none", version=Connection.version + 1)
        )
        db_session.commit()

        assert authorize(db_session, as_actor(other_provider), consultation) == AccessDecision.deny

    def test_medical_records_follow_the_same_rules(
        self, db_session, patient, provider, other_provider, make_connection,
        make_consultation, make_record, as_actor,
    ):
        record = make_record(make_consultation(patient, provider))
        assert authorize(db_session, as_actor(other_provider), record) == AccessDecision.deny

        make_connection(patient, other_provider, "full", "approved")
        assert authorize(db_session, as_actor(other_provider), record) == AccessDecision.read_only

    def test_admin_is_allowed_and_audited(
        self, db_session, patient, provider, admin, make_consultation, as_actor, caplog
    ):
        consultation = make_consultation(patient, provider)

        with caplog.at_level(logging.INFO, logger="access.audit"):
            decision = authorize(db_session, as_actor(admin), consultation)

        assert decision == AccessDecision.read_write
        audit = [r for r in caplog.records if r.name == "access.audit"]
        assert len(audit) == 1
        assert f"Admin {admin.id}" in audit[0].getMessage()


class TestHasFullAccess:

    @pytest.mark.parametrize("access_level,full_access_status,expected", [
        ("limited", "none", False),
        ("limited", "pending", False),
        ("limited", "denied", False),
        ("full", "approved", True),
    ])
    def test_only_full_approved_counts(
        self, db_session, patient, provider, make_connection, access_level, full_access_status, expected
    ):
        make_connection(patient, provider, access_level, full_access_status)
        assert has_full_access(db_session, patient.id, provider.id) is expected

    def test_is_directional(self, db_session, patient, provider, make_connection):
        make_connection(patient, provider, "full", "approved")
        assert has_full_access(db_session, provider.id, patient.id) is False


class TestRequireRead:

    def test_denied_read_is_concealed(
        self, db_session, patient, provider, other_provider, make_consultation, as_actor
    ):
        consultation = make_consultation(patient, provider)

        with pytest.raises(UnauthorizedError) as exc_info:
            require_read(db_session, as_actor(other_provider), consultation, "consultation")

        assert exc_info.value.conceal is True
        assert exc_info.value.message == "Consultation not found"

    def test_allowed_read_returns_decision(
        self, db_session, patient, provider, make_consultation, as_actor
    ):
        consultation = make_consultation(patient, provider)
        assert require_read(db_session, as_actor(patient), consultation, "consultation") == AccessDecision.read_write


class TestVisibilityFilter:

    def _visible_ids(self, db_session, actor, model, patient_id=None):
        stmt = select(model.id).where(visibility_filter(db_session, actor, model, patient_id=patient_id))
        return set(db_session.execute(stmt).scalars().all())

    def test_matches_authorize_for_every_actor(
        self, db_session, make_user, patient, provider, other_provider, admin,
        make_connection, make_consultation, as_actor,
    ):
        second_patient = make_user("patient")
        make_connection(patient, provider, "limited", "none")
        make_connection(second_patient, other_provider, "full", "approved")
        make_connection(patient, other_provider, "limited", "pending")

        consultations = [
            make_consultation(patient, provider),
            make_consultation(patient, other_provider),
            make_consultation(second_patient, provider),
            make_consultation(second_patient, other_provider),
        ]

        for user in (patient, second_patient, provider, other_provider, admin):
            actor = as_actor(user)
            expected = {
                c.id for c in consultations
                if authorize(db_session, actor, c).can_read
            }
            assert self._visible_ids(db_session, actor, Consultation) == expected

    def test_patient_scoped_lookup_for_limited_provider(
        self, db_session, patient, provider, other_provider, make_connection, make_consultation, as_actor
    ):
        make_connection(patient, other_provider, "limited", "denied")
        own = make_consultation(patient, other_provider)
        make_consultation(patient, provider)

        visible = self._visible_ids(db_session, as_actor(other_provider), Consultation, patient_id=patient.id)
        assert visible == {own.id}

    def test_patient_scoped_lookup_for_full_provider(
        self, db_session, patient, provider, other_provider, make_connection,
        make_consultation, make_record, as_actor,
    ):
        make_connection(patient, other_provider, "full", "approved")
        records = [make_record(make_consultation(patient, provider)) for _ in range(2)]

        visible = self._visible_ids(db_session, as_actor(other_provider), MedicalRecord, patient_id=patient.id)
        assert visible == {r.id for r in records}


class TestOwnership:
    """Write access belongs to the creating provider alone."""

    @pytest.mark.parametrize("access_level,full_access_status", CONNECTION_STATES)
    def test_creator_may_mutate_in_every_state(
        self, db_session, patient, provider, make_connection, make_consultation, as_actor,
        access_level, full_access_status,
    ):
        make_connection(patient, provider, access_level, full_access_status)
        consultation = make_consultation(patient, provider)
        assert can_mutate(as_actor(provider), consultation) is True
        ensure_can_mutate(as_actor(provider), consultation)

    def test_full_access_is_not_write_access(
        self, db_session, patient, provider, other_provider, make_connection, make_consultation, as_actor
    ):
        make_connection(patient, other_provider, "full", "approved")
        consultation = make_consultation(patient, provider)

        assert can_mutate(as_actor(other_provider), consultation) is False
        with pytest.raises(UnauthorizedError) as exc_info:
            ensure_can_mutate(as_actor(other_provider), consultation)
        assert exc_info.value.conceal is False

    def test_patient_cannot_mutate_own_records(
        self, db_session, patient, provider, make_consultation, as_actor
    ):
        consultation = make_consultation(patient, provider)
        assert can_mutate(as_actor(patient), consultation) is False

    def test_admin_is_not_exempt(self, db_session, patient, provider, admin, make_consultation, as_actor):
        consultation = make_consultation(patient, provider)
        with pytest.raises(UnauthorizedError):
            ensure_can_mutate(as_actor(admin), consultation)
