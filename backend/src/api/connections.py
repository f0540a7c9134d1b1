# pyright: reportMissingTypeStubs=false
"""
Connection management API endpoints.

Every state change commits first and only then hands its events to the
notification dispatcher, so a notification failure can never undo it.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from api.responses import (
    ConnectionActionResponse,
    ConnectionCreateRequest,
    ConnectionListResponse,
    ConnectionResponse,
    RespondRequest,
    SuccessResponse,
)
from auth.dependencies import UserContext, get_current_user
from auth.permissions import require_patient, require_provider
from core.database import get_db
from services.connection_service import ConnectionOutcome, ConnectionService
from services.notification_dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)

router = APIRouter()

require_patient_user = require_patient()
require_provider_user = require_provider()


def _dispatch(db: Session, outcome: ConnectionOutcome) -> None:
    NotificationDispatcher.enqueue(db, outcome.events)


def _action_response(outcome: ConnectionOutcome, message: str) -> ConnectionActionResponse:
    return ConnectionActionResponse(
        connection=ConnectionResponse.model_validate(outcome.connection),
        message=message,
    )


@router.post(
    "",
    summary="Connect to a patient",
    response_model=ConnectionActionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_connection(
    request: ConnectionCreateRequest,
    current_user: UserContext = Depends(require_provider_user),
    db: Session = Depends(get_db),
) -> ConnectionActionResponse:
    """Create a limited connection to a patient, optionally requesting full access."""
    outcome = ConnectionService.create_connection(
        db,
        current_user.actor,
        patient_id=request.patient_id,
        patient_email=request.patient_email,
        notes=request.notes,
        request_full_access=request.request_full_access,
    )
    _dispatch(db, outcome)
    message = (
        "Connection created with limited access. Full access request sent to patient."
        if request.request_full_access
        else "Connection created with limited access."
    )
    return _action_response(outcome, message)


@router.get("", summary="List connections", response_model=ConnectionListResponse)
async def list_connections(
    access_level: Optional[str] = Query(None, description="limited or full"),
    full_access_status: Optional[str] = Query(None, description="none, pending, approved or denied"),
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ConnectionListResponse:
    connections = ConnectionService.list_connections(
        db, current_user.actor,
        access_level=access_level, full_access_status=full_access_status,
    )
    return ConnectionListResponse(
        connections=[ConnectionResponse.model_validate(c) for c in connections]
    )


@router.get("/requests", summary="Pending full access requests", response_model=ConnectionListResponse)
async def list_pending_requests(
    current_user: UserContext = Depends(require_patient_user),
    db: Session = Depends(get_db),
) -> ConnectionListResponse:
    """The patient's inbox, most recent status change first."""
    connections = ConnectionService.list_pending_requests(db, current_user.actor)
    return ConnectionListResponse(
        connections=[ConnectionResponse.model_validate(c) for c in connections]
    )


@router.get("/{connection_id}", summary="Get a connection", response_model=ConnectionResponse)
async def get_connection(
    connection_id: int,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ConnectionResponse:
    connection = ConnectionService.get_connection(db, connection_id, current_user.actor)
    return ConnectionResponse.model_validate(connection)


@router.post(
    "/{connection_id}/request-full-access",
    summary="Request full access",
    response_model=ConnectionActionResponse,
)
async def request_full_access(
    connection_id: int,
    current_user: UserContext = Depends(require_provider_user),
    db: Session = Depends(get_db),
) -> ConnectionActionResponse:
    outcome = ConnectionService.request_full_access(db, connection_id, current_user.actor)
    _dispatch(db, outcome)
    return _action_response(outcome, "Full access request sent to patient.")


@router.post(
    "/{connection_id}/respond",
    summary="Approve or deny a full access request",
    response_model=ConnectionActionResponse,
)
async def respond_to_full_access(
    connection_id: int,
    request: RespondRequest,
    current_user: UserContext = Depends(require_patient_user),
    db: Session = Depends(get_db),
) -> ConnectionActionResponse:
    outcome = ConnectionService.respond_to_full_access(
        db, connection_id, current_user.actor, request.action
    )
    _dispatch(db, outcome)
    verb = "approved" if request.action == "approve" else "denied"
    return _action_response(outcome, f"Full access request {verb}.")


@router.post(
    "/{connection_id}/revoke",
    summary="Revoke full access",
    response_model=ConnectionActionResponse,
)
async def revoke_access(
    connection_id: int,
    current_user: UserContext = Depends(require_patient_user),
    db: Session = Depends(get_db),
) -> ConnectionActionResponse:
    outcome = ConnectionService.revoke_access(db, connection_id, current_user.actor)
    _dispatch(db, outcome)
    return _action_response(outcome, "Full access revoked. The provider keeps limited access.")


@router.post(
    "/{connection_id}/grant-full-access",
    summary="Grant full access directly",
    response_model=ConnectionActionResponse,
)
async def grant_full_access(
    connection_id: int,
    current_user: UserContext = Depends(require_patient_user),
    db: Session = Depends(get_db),
) -> ConnectionActionResponse:
    outcome = ConnectionService.grant_full_access_direct(db, connection_id, current_user.actor)
    _dispatch(db, outcome)
    return _action_response(outcome, "Full access granted.")


@router.delete("/{connection_id}", summary="Remove a connection", response_model=SuccessResponse)
async def delete_connection(
    connection_id: int,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SuccessResponse:
    """Remove a connection. Full access must be revoked first."""
    outcome = ConnectionService.delete_connection(db, connection_id, current_user.actor)
    _dispatch(db, outcome)
    return SuccessResponse(message="Connection removed.")
