# pyright: reportMissingTypeStubs=false
"""
Access probe endpoint.

Lets a client ask what the caller may do with one consultation or record
before offering edit controls. A denied read answers like a missing resource.
"""

from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from api.responses import AccessCheckResponse
from auth.dependencies import UserContext, get_current_user
from core.database import get_db
from services.clinical_resource_service import ConsultationService, MedicalRecordService
from services.ownership import can_mutate

router = APIRouter()

RESOURCE_SERVICES = {
    "consultation": ConsultationService,
    "medical_record": MedicalRecordService,
}


@router.get("/check", summary="Check access to a resource", response_model=AccessCheckResponse)
async def check_access(
    resource_type: Literal["consultation", "medical_record"] = Query(...),
    resource_id: int = Query(...),
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AccessCheckResponse:
    actor = current_user.actor
    resource, decision = RESOURCE_SERVICES[resource_type].get(db, actor, resource_id)
    return AccessCheckResponse(
        resource_type=resource_type,
        resource_id=resource_id,
        decision=decision.value,
        can_read=decision.can_read,
        can_write=decision.can_write and can_mutate(actor, resource),
    )
