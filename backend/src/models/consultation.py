"""
Consultation model.

Only the fields that express ownership and listing are modelled here; the
clinical body of a consultation is free text and stays opaque to access control.
"""

from enum import Enum
from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import ForeignKey, Index, Integer, String, Text, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base

if TYPE_CHECKING:
    from models.medical_record import MedicalRecord


class ConsultationStatus(str, Enum):
    draft = "draft"
    completed = "completed"
    archived = "archived"


class Consultation(Base):
    """
    A single visit between a patient and the provider who recorded it.

    ``provider_id`` is the creator and never changes after insert.
    """

    __tablename__ = "consultations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    patient_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    provider_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    date: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    specialty: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    reason_for_visit: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=ConsultationStatus.draft.value)

    last_updated: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    """Refreshed whenever the consultation or one of its records changes."""

    archived_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    """Set when the owning provider deletes the consultation; rows are never removed."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    patient = relationship("User", foreign_keys=[patient_id])
    provider = relationship("User", foreign_keys=[provider_id])
    medical_records: Mapped[list["MedicalRecord"]] = relationship("MedicalRecord", back_populates="consultation")

    __table_args__ = (
        Index("idx_consultations_patient", "patient_id"),
        Index("idx_consultations_provider", "provider_id"),
        Index("idx_consultations_patient_date", "patient_id", "date"),
    )

    @property
    def creator_provider_id(self) -> int:
        return self.provider_id

    def __repr__(self) -> str:
        return f"<Consultation(id={self.id}, patient_id={self.patient_id}, provider_id={self.provider_id})>"
