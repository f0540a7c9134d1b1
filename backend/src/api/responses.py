"""
Shared request and response models for API endpoints.

Response models read straight from ORM rows (``from_attributes``).
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from core.constants import MAX_NOTES_LENGTH, MAX_STRING_LENGTH


class UserSummary(BaseModel):
    """Minimal identity shown next to a connection."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: str
    role: str
    specialty: Optional[str] = None  # Providers only


class ConnectionResponse(BaseModel):
    """Response model for a connection."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    provider_id: int
    access_level: str
    full_access_status: str
    initiated_by_user_id: int
    notes: Optional[str] = None
    patient_notified: bool
    patient_notified_at: Optional[datetime] = None
    full_access_status_updated_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    version: int
    patient: Optional[UserSummary] = None
    provider: Optional[UserSummary] = None


class ConnectionListResponse(BaseModel):
    """Response model for listing connections."""
    connections: List[ConnectionResponse]


class ConnectionCreateRequest(BaseModel):
    """Request model for a provider connecting to a patient."""
    patient_id: Optional[int] = None
    patient_email: Optional[EmailStr] = None
    notes: Optional[str] = Field(None, max_length=MAX_NOTES_LENGTH)
    request_full_access: bool = False

    @field_validator("patient_email")
    @classmethod
    def normalize_email(cls, v: Optional[str]) -> Optional[str]:
        # Emails are stored lower-cased
        return v.lower() if v else v


class RespondRequest(BaseModel):
    """Request model for a patient answering a full access request."""
    action: Literal["approve", "deny"]


class ConnectionActionResponse(BaseModel):
    """Connection after a state change, with a short confirmation message."""
    connection: ConnectionResponse
    message: str


class SuccessResponse(BaseModel):
    success: bool = True
    message: str


class ConsultationResponse(BaseModel):
    """Response model for a consultation."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    provider_id: int
    date: datetime
    specialty: Optional[str] = None
    reason_for_visit: Optional[str] = None
    notes: Optional[str] = None
    status: str
    last_updated: Optional[datetime] = None
    archived_at: Optional[datetime] = None
    created_at: datetime
    access: Optional[str] = None  # AccessDecision for the caller, on single reads


class ConsultationListResponse(BaseModel):
    consultations: List[ConsultationResponse]


class ConsultationCreateRequest(BaseModel):
    date: datetime
    specialty: Optional[str] = Field(None, max_length=MAX_STRING_LENGTH)
    reason_for_visit: Optional[str] = Field(None, max_length=MAX_NOTES_LENGTH)
    notes: Optional[str] = Field(None, max_length=MAX_NOTES_LENGTH)
    status: Literal["draft", "completed", "archived"] = "draft"


class ConsultationUpdateRequest(BaseModel):
    date: Optional[datetime] = None
    specialty: Optional[str] = Field(None, max_length=MAX_STRING_LENGTH)
    reason_for_visit: Optional[str] = Field(None, max_length=MAX_NOTES_LENGTH)
    notes: Optional[str] = Field(None, max_length=MAX_NOTES_LENGTH)
    status: Optional[Literal["draft", "completed", "archived"]] = None


class MedicalRecordResponse(BaseModel):
    """Response model for a medical record."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    record_type: str
    patient_id: int
    provider_id: int
    consultation_id: Optional[int] = None
    date: datetime
    notes: Optional[str] = None
    data: Dict[str, Any]
    created_at: datetime
    updated_at: datetime
    access: Optional[str] = None


class MedicalRecordListResponse(BaseModel):
    records: List[MedicalRecordResponse]


class MedicalRecordCreateRequest(BaseModel):
    record_type: Literal[
        "vitals", "medication", "immunization", "lab_result",
        "radiology_report", "hospital", "surgery",
    ]
    date: datetime
    notes: Optional[str] = Field(None, max_length=MAX_NOTES_LENGTH)
    data: Dict[str, Any] = Field(default_factory=dict)


class MedicalRecordUpdateRequest(BaseModel):
    date: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=MAX_NOTES_LENGTH)
    data: Optional[Dict[str, Any]] = None


class AccessCheckResponse(BaseModel):
    """Result of probing the authorization gate for one resource."""
    resource_type: str
    resource_id: int
    decision: str
    can_read: bool
    can_write: bool
