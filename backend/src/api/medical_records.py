# pyright: reportMissingTypeStubs=false
"""
Medical record API endpoints.

All record types share these routes; ``record_type`` selects the kind.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from api.responses import (
    MedicalRecordCreateRequest,
    MedicalRecordListResponse,
    MedicalRecordResponse,
    MedicalRecordUpdateRequest,
    SuccessResponse,
)
from auth.dependencies import UserContext, get_current_user
from auth.permissions import require_provider
from core.database import get_db
from services.clinical_resource_service import MedicalRecordService

logger = logging.getLogger(__name__)

router = APIRouter()

require_provider_user = require_provider()


@router.get(
    "/patients/{patient_id}/medical-records",
    summary="List a patient's medical records",
    response_model=MedicalRecordListResponse,
)
async def list_medical_records(
    patient_id: int,
    record_type: Optional[str] = Query(None, description="Filter by record type"),
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MedicalRecordListResponse:
    records = MedicalRecordService.list_for_patient(
        db, current_user.actor, patient_id, {"record_type": record_type}
    )
    return MedicalRecordListResponse(
        records=[MedicalRecordResponse.model_validate(r) for r in records]
    )


@router.post(
    "/consultations/{consultation_id}/medical-records",
    summary="Add a medical record to a consultation",
    response_model=MedicalRecordResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_medical_record(
    consultation_id: int,
    request: MedicalRecordCreateRequest,
    current_user: UserContext = Depends(require_provider_user),
    db: Session = Depends(get_db),
) -> MedicalRecordResponse:
    record = MedicalRecordService.create(
        db,
        current_user.actor,
        consultation_id,
        record_type=request.record_type,
        date=request.date,
        notes=request.notes,
        data=request.data,
    )
    return MedicalRecordResponse.model_validate(record)


@router.get(
    "/medical-records/{record_id}",
    summary="Get a medical record",
    response_model=MedicalRecordResponse,
)
async def get_medical_record(
    record_id: int,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MedicalRecordResponse:
    record, decision = MedicalRecordService.get(db, current_user.actor, record_id)
    response = MedicalRecordResponse.model_validate(record)
    response.access = decision.value
    return response


@router.patch(
    "/medical-records/{record_id}",
    summary="Update a medical record",
    response_model=MedicalRecordResponse,
)
async def update_medical_record(
    record_id: int,
    request: MedicalRecordUpdateRequest,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MedicalRecordResponse:
    record = MedicalRecordService.update(
        db, current_user.actor, record_id, request.model_dump(exclude_unset=True)
    )
    return MedicalRecordResponse.model_validate(record)


@router.delete(
    "/medical-records/{record_id}",
    summary="Delete a medical record",
    response_model=SuccessResponse,
)
async def delete_medical_record(
    record_id: int,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SuccessResponse:
    MedicalRecordService.delete(db, current_user.actor, record_id)
    return SuccessResponse(message="Medical record deleted successfully")
