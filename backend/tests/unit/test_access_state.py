"""
Unit tests for the connection access state machine.

These run without a database: every transition is a pure function.
"""

import pytest
from hypothesis import given, settings, strategies as st

from core.exceptions import InvalidTransitionError
from services import access_state
from services.access_state import (
    EventType,
    FullApproved,
    IllegalStateError,
    LimitedDenied,
    LimitedNone,
    LimitedPending,
    Operation,
    TRANSITIONS,
)

ALL_STATES = [LimitedNone(), LimitedPending(), LimitedDenied(), FullApproved()]


def assert_invariants(state):
    if state.access_level.value == "full":
        assert state.full_access_status.value == "approved"
    if state.full_access_status.value == "pending":
        assert state.access_level.value == "limited"


class TestFromColumns:
    """Decoding stored columns into a state."""

    @pytest.mark.parametrize("state", ALL_STATES)
    def test_round_trips_legal_states(self, state):
        decoded = access_state.from_columns(state.access_level.value, state.full_access_status.value)
        assert decoded == state

    @pytest.mark.parametrize("access_level,full_access_status", [
        ("full", "none"),
        ("full", "pending"),
        ("full", "denied"),
        ("limited", "approved"),
        ("partial", "none"),
    ])
    def test_rejects_illegal_pairs(self, access_level, full_access_status):
        with pytest.raises(IllegalStateError):
            access_state.from_columns(access_level, full_access_status)


class TestCreateConnection:

    def test_without_request_starts_limited_none(self):
        t = access_state.create_connection(False)
        assert t.state == LimitedNone()
        assert t.events == (EventType.connection_created,)

    def test_with_request_starts_pending(self):
        t = access_state.create_connection(True)
        assert t.state == LimitedPending()
        assert t.events == (EventType.connection_created, EventType.full_access_requested)


class TestRequestFullAccess:

    @pytest.mark.parametrize("state", [LimitedNone(), LimitedDenied()])
    def test_from_none_or_denied(self, state):
        t = access_state.request_full_access(state)
        assert t.state == LimitedPending()
        assert t.events == (EventType.full_access_requested,)

    def test_already_pending_is_rejected(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            access_state.request_full_access(LimitedPending())
        assert exc_info.value.operation == "request_full_access"
        assert exc_info.value.current_state == "limited/pending"

    def test_already_full_is_rejected(self):
        with pytest.raises(InvalidTransitionError):
            access_state.request_full_access(FullApproved())


class TestRespond:

    def test_approve_pending(self):
        t = access_state.approve_full_access(LimitedPending())
        assert t.state == FullApproved()
        assert t.events == (EventType.full_access_approved,)
        assert t.direct_grant is False

    def test_deny_pending(self):
        t = access_state.deny_full_access(LimitedPending())
        assert t.state == LimitedDenied()
        assert t.events == (EventType.full_access_denied,)

    @pytest.mark.parametrize("state", [LimitedNone(), LimitedDenied(), FullApproved()])
    def test_approve_requires_pending(self, state):
        with pytest.raises(InvalidTransitionError):
            access_state.approve_full_access(state)

    @pytest.mark.parametrize("state", [LimitedNone(), LimitedDenied(), FullApproved()])
    def test_deny_requires_pending(self, state):
        with pytest.raises(InvalidTransitionError):
            access_state.deny_full_access(state)


class TestRevoke:

    def test_full_steps_down_and_resets_workflow(self):
        t = access_state.revoke_access(FullApproved())
        assert t.state == LimitedNone()
        assert t.events == (EventType.full_access_revoked,)

    @pytest.mark.parametrize("state", [LimitedNone(), LimitedPending(), LimitedDenied()])
    def test_limited_is_an_error_not_a_no_op(self, state):
        with pytest.raises(InvalidTransitionError):
            access_state.revoke_access(state)


class TestGrantDirect:

    @pytest.mark.parametrize("state", [LimitedNone(), LimitedPending(), LimitedDenied()])
    def test_any_limited_state_becomes_full(self, state):
        t = access_state.grant_full_access_direct(state)
        assert t.state == FullApproved()
        assert t.events == (EventType.full_access_approved,)
        assert t.direct_grant is True

    def test_already_full_is_rejected(self):
        with pytest.raises(InvalidTransitionError):
            access_state.grant_full_access_direct(FullApproved())


class TestDelete:

    @pytest.mark.parametrize("state", [LimitedNone(), LimitedDenied()])
    def test_allowed_without_live_grant(self, state):
        t = access_state.delete_connection(state)
        assert t.state is None
        assert t.events == (EventType.connection_removed,)

    @pytest.mark.parametrize("state", [LimitedPending(), FullApproved()])
    def test_guarded_states_are_rejected(self, state):
        with pytest.raises(InvalidTransitionError):
            access_state.delete_connection(state)

    def test_delete_succeeds_after_revoke(self):
        with pytest.raises(InvalidTransitionError):
            access_state.delete_connection(FullApproved())
        revoked = access_state.revoke_access(FullApproved()).state
        assert access_state.delete_connection(revoked).state is None


class TestApplyProperties:
    """Properties over arbitrary operation sequences."""

    @settings(max_examples=300)
    @given(st.booleans(), st.lists(st.sampled_from(list(TRANSITIONS)), max_size=30))
    def test_invariants_hold_after_every_step(self, request_on_create, operations):
        state = access_state.create_connection(request_on_create).state
        assert_invariants(state)

        for operation in operations:
            try:
                transition = access_state.apply(operation, state)
            except InvalidTransitionError:
                continue
            if transition.state is None:
                break
            state = transition.state
            assert_invariants(state)

    @settings(max_examples=300)
    @given(st.lists(st.sampled_from(list(TRANSITIONS)), max_size=30))
    def test_approval_only_follows_pending(self, operations):
        state = LimitedNone()
        for operation in operations:
            previous = state
            try:
                transition = access_state.apply(operation, state)
            except InvalidTransitionError:
                continue
            if transition.state is None:
                break
            if operation == Operation.approve_full_access:
                assert previous == LimitedPending()
            state = transition.state

    @given(st.sampled_from(ALL_STATES), st.sampled_from(list(TRANSITIONS)))
    def test_every_transition_emits_events(self, state, operation):
        try:
            transition = access_state.apply(operation, state)
        except InvalidTransitionError:
            return
        assert len(transition.events) >= 1
