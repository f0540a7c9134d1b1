# pyright: reportMissingTypeStubs=false
"""
Consultation API endpoints.

Reads are gated by connection access; changes are limited to the provider
who recorded the consultation.
"""

import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from api.responses import (
    ConsultationCreateRequest,
    ConsultationListResponse,
    ConsultationResponse,
    ConsultationUpdateRequest,
    SuccessResponse,
)
from auth.dependencies import UserContext, get_current_user
from auth.permissions import require_provider
from core.database import get_db
from services.clinical_resource_service import ConsultationService
from services.notification_dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)

router = APIRouter()

require_provider_user = require_provider()


@router.get(
    "/patients/{patient_id}/consultations",
    summary="List a patient's consultations",
    response_model=ConsultationListResponse,
)
async def list_consultations(
    patient_id: int,
    include_archived: bool = Query(False),
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ConsultationListResponse:
    consultations = ConsultationService.list_for_patient(
        db, current_user.actor, patient_id, include_archived=include_archived
    )
    return ConsultationListResponse(
        consultations=[ConsultationResponse.model_validate(c) for c in consultations]
    )


@router.post(
    "/patients/{patient_id}/consultations",
    summary="Record a consultation",
    response_model=ConsultationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_consultation(
    patient_id: int,
    request: ConsultationCreateRequest,
    current_user: UserContext = Depends(require_provider_user),
    db: Session = Depends(get_db),
) -> ConsultationResponse:
    """Create a consultation, connecting the provider to the patient if needed."""
    consultation, events = ConsultationService.create(
        db,
        current_user.actor,
        patient_id,
        date=request.date,
        specialty=request.specialty,
        reason_for_visit=request.reason_for_visit,
        notes=request.notes,
        status=request.status,
    )
    NotificationDispatcher.enqueue(db, events)
    return ConsultationResponse.model_validate(consultation)


@router.get(
    "/consultations/{consultation_id}",
    summary="Get a consultation",
    response_model=ConsultationResponse,
)
async def get_consultation(
    consultation_id: int,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ConsultationResponse:
    consultation, decision = ConsultationService.get(db, current_user.actor, consultation_id)
    response = ConsultationResponse.model_validate(consultation)
    response.access = decision.value
    return response


@router.patch(
    "/consultations/{consultation_id}",
    summary="Update a consultation",
    response_model=ConsultationResponse,
)
async def update_consultation(
    consultation_id: int,
    request: ConsultationUpdateRequest,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ConsultationResponse:
    consultation = ConsultationService.update(
        db, current_user.actor, consultation_id, request.model_dump(exclude_unset=True)
    )
    return ConsultationResponse.model_validate(consultation)


@router.delete(
    "/consultations/{consultation_id}",
    summary="Archive a consultation",
    response_model=SuccessResponse,
)
async def delete_consultation(
    consultation_id: int,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SuccessResponse:
    ConsultationService.delete(db, current_user.actor, consultation_id)
    return SuccessResponse(message="Consultation archived successfully")
