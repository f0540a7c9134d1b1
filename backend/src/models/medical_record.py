"""
Medical Record model.

Every record kind (vitals, medications, lab results and so on) shares one
table. The kind-specific body lives in ``data`` and is never inspected by
access control.
"""

from enum import Enum
from datetime import datetime
from typing import Any, Dict, Optional, TYPE_CHECKING

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, Text, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base

if TYPE_CHECKING:
    from models.consultation import Consultation


class RecordType(str, Enum):
    vitals = "vitals"
    medication = "medication"
    immunization = "immunization"
    lab_result = "lab_result"
    radiology_report = "radiology_report"
    hospital = "hospital"
    surgery = "surgery"


class MedicalRecord(Base):
    """
    Medical record entity representing one clinical entry for a patient.
    """
    __tablename__ = "medical_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    record_type: Mapped[str] = mapped_column(String(32), nullable=False)

    patient_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    provider_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    """Creating provider; set once at insert."""

    consultation_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("consultations.id", ondelete="SET NULL"), nullable=True
    )

    date: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Kind-specific values
    data: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    patient = relationship("User", foreign_keys=[patient_id])
    provider = relationship("User", foreign_keys=[provider_id])
    consultation: Mapped[Optional["Consultation"]] = relationship("Consultation", back_populates="medical_records")

    __table_args__ = (
        Index("idx_medical_records_patient", "patient_id"),
        Index("idx_medical_records_provider", "provider_id"),
        Index("idx_medical_records_consultation", "consultation_id"),
        Index("idx_medical_records_deleted", "patient_id", "record_type", "is_deleted"),
    )

    @property
    def creator_provider_id(self) -> int:
        return self.provider_id

    def __repr__(self) -> str:
        return f"<MedicalRecord(id={self.id}, record_type='{self.record_type}', patient_id={self.patient_id})>"
