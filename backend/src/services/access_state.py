"""
Connection access state and its transition rules.

The two stored columns (``access_level``, ``full_access_status``) are decoded
into exactly one of four state classes. Every transition is a pure function
from a state to a ``Transition``: the next state (``None`` when the connection
is removed) and the event types the caller must publish. Nothing in this
module reads or writes the database.

    LimitedNone ──request──> LimitedPending ──approve──> FullApproved
         ^                      │                          │
         │                      └──deny──> LimitedDenied   │
         └──────────────────────revoke─────────────────────┘

``grant_full_access_direct`` jumps from any limited state to FullApproved.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Optional, Tuple, Union

from core.exceptions import InvalidTransitionError
from models.connection import AccessLevel, FullAccessStatus


class IllegalStateError(Exception):
    """Stored columns hold a combination no access state can represent."""


class EventType(str, Enum):
    """Notification events produced by connection transitions."""

    connection_created = "connection_created"
    full_access_requested = "full_access_requested"
    full_access_approved = "full_access_approved"
    full_access_denied = "full_access_denied"
    full_access_revoked = "full_access_revoked"
    connection_removed = "connection_removed"


class Operation(str, Enum):
    """Connection operations, named as they appear in error messages and logs."""

    create_connection = "create_connection"
    request_full_access = "request_full_access"
    approve_full_access = "approve_full_access"
    deny_full_access = "deny_full_access"
    revoke_access = "revoke_access"
    grant_full_access_direct = "grant_full_access_direct"
    delete_connection = "delete_connection"


@dataclass(frozen=True)
class LimitedNone:
    access_level = AccessLevel.limited
    full_access_status = FullAccessStatus.none


@dataclass(frozen=True)
class LimitedPending:
    access_level = AccessLevel.limited
    full_access_status = FullAccessStatus.pending


@dataclass(frozen=True)
class LimitedDenied:
    access_level = AccessLevel.limited
    full_access_status = FullAccessStatus.denied


@dataclass(frozen=True)
class FullApproved:
    access_level = AccessLevel.full
    full_access_status = FullAccessStatus.approved


AccessState = Union[LimitedNone, LimitedPending, LimitedDenied, FullApproved]

_STATES_BY_COLUMNS: Dict[Tuple[str, str], AccessState] = {
    (state.access_level.value, state.full_access_status.value): state
    for state in (LimitedNone(), LimitedPending(), LimitedDenied(), FullApproved())
}


def from_columns(access_level: str, full_access_status: str) -> AccessState:
    """
    Decode stored column values into an access state.

    Raises:
        IllegalStateError: If the pair is not one of the four legal states
    """
    try:
        return _STATES_BY_COLUMNS[(access_level, full_access_status)]
    except KeyError:
        raise IllegalStateError(
            f"Illegal connection state: access_level={access_level!r}, "
            f"full_access_status={full_access_status!r}"
        ) from None


def state_label(state: AccessState) -> str:
    return f"{state.access_level.value}/{state.full_access_status.value}"


@dataclass(frozen=True)
class Transition:
    """Outcome of a pure transition: the next state (None once removed) and its events."""

    state: Optional[AccessState]
    events: Tuple[EventType, ...]
    direct_grant: bool = False


@dataclass(frozen=True)
class ConnectionEvent:
    """
    Event handed to the notification dispatcher after a transition commits.

    ``notes`` is the initiating provider's free text and is only ever used for
    rendering; it must not be logged.
    """

    event_type: EventType
    connection_id: int
    patient_id: int
    provider_id: int
    actor_id: int
    occurred_at: datetime
    notes: Optional[str] = field(default=None, repr=False)
    direct_grant: bool = False

    def to_payload(self) -> dict:
        return {
            "event_type": self.event_type.value,
            "connection_id": self.connection_id,
            "patient_id": self.patient_id,
            "provider_id": self.provider_id,
            "actor_id": self.actor_id,
            "notes": self.notes,
            "occurred_at": self.occurred_at.isoformat(),
            "direct_grant": self.direct_grant,
        }


def _reject(operation: Operation, state: AccessState, reason: str) -> InvalidTransitionError:
    return InvalidTransitionError(
        f"Cannot {operation.value.replace('_', ' ')}: {reason}",
        operation=operation.value,
        current_state=state_label(state),
    )


def create_connection(request_full_access: bool = False) -> Transition:
    if request_full_access:
        return Transition(
            LimitedPending(),
            (EventType.connection_created, EventType.full_access_requested),
        )
    return Transition(LimitedNone(), (EventType.connection_created,))


def request_full_access(state: AccessState) -> Transition:
    # A second request while one is pending is rejected, not merged
    if isinstance(state, (LimitedNone, LimitedDenied)):
        return Transition(LimitedPending(), (EventType.full_access_requested,))
    if isinstance(state, LimitedPending):
        raise _reject(Operation.request_full_access, state, "a request is already pending")
    raise _reject(Operation.request_full_access, state, "full access is already granted")


def approve_full_access(state: AccessState) -> Transition:
    if isinstance(state, LimitedPending):
        return Transition(FullApproved(), (EventType.full_access_approved,))
    raise _reject(Operation.approve_full_access, state, "no pending request")


def deny_full_access(state: AccessState) -> Transition:
    if isinstance(state, LimitedPending):
        return Transition(LimitedDenied(), (EventType.full_access_denied,))
    raise _reject(Operation.deny_full_access, state, "no pending request")


def revoke_access(state: AccessState) -> Transition:
    # Steps down to limited and resets the workflow rather than leaving it denied
    if isinstance(state, FullApproved):
        return Transition(LimitedNone(), (EventType.full_access_revoked,))
    raise _reject(Operation.revoke_access, state, "access is already limited")


def grant_full_access_direct(state: AccessState) -> Transition:
    if isinstance(state, FullApproved):
        raise _reject(Operation.grant_full_access_direct, state, "full access is already granted")
    return Transition(FullApproved(), (EventType.full_access_approved,), direct_grant=True)


def delete_connection(state: AccessState) -> Transition:
    if isinstance(state, (LimitedNone, LimitedDenied)):
        return Transition(None, (EventType.connection_removed,))
    if isinstance(state, LimitedPending):
        raise _reject(Operation.delete_connection, state, "a full access request is pending")
    raise _reject(Operation.delete_connection, state, "full access must be revoked first")


TRANSITIONS: Dict[Operation, Callable[[AccessState], Transition]] = {
    Operation.request_full_access: request_full_access,
    Operation.approve_full_access: approve_full_access,
    Operation.deny_full_access: deny_full_access,
    Operation.revoke_access: revoke_access,
    Operation.grant_full_access_direct: grant_full_access_direct,
    Operation.delete_connection: delete_connection,
}


def apply(operation: Operation, state: AccessState) -> Transition:
    """Run the transition named by ``operation`` against ``state``."""
    return TRANSITIONS[operation](state)
