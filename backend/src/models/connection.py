"""
Connection model.

A connection is the relationship between exactly one provider and one
patient, and carries the current access state of that provider over the
patient's records.
"""

from enum import Enum
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Integer, String, Text, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class AccessLevel(str, Enum):
    """Ceiling of read access a provider holds over the patient's records."""

    limited = "limited"
    full = "full"


class FullAccessStatus(str, Enum):
    """Workflow state of a request to raise the ceiling to full."""

    none = "none"
    pending = "pending"
    approved = "approved"
    denied = "denied"


class Connection(Base):
    """
    Provider/patient connection.

    ``access_level`` and ``full_access_status`` are only ever written through
    ConnectionService, which decodes them into a single AccessState. The
    check constraints below reject the combinations that state cannot express.
    """

    __tablename__ = "connections"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the connection."""

    patient_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    provider_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    access_level: Mapped[str] = mapped_column(String(16), nullable=False, default=AccessLevel.limited.value)
    full_access_status: Mapped[str] = mapped_column(String(16), nullable=False, default=FullAccessStatus.none.value)

    initiated_by_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    """Whichever party created the connection (a provider in the current workflow)."""

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    """Free-text rationale from the initiating provider. Display only."""

    patient_notified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    patient_notified_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    full_access_status_updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    """Stamped by every transition; orders the patient's request inbox."""

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    """Incremented on every write; compare-and-set key for concurrent transitions."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    patient = relationship("User", foreign_keys=[patient_id])
    provider = relationship("User", foreign_keys=[provider_id])

    __table_args__ = (
        # At most one connection per patient/provider pair
        Index("uq_connections_patient_provider", "patient_id", "provider_id", unique=True),
        Index("idx_connections_patient_access", "patient_id", "access_level"),
        Index("idx_connections_provider_access", "provider_id", "access_level"),
        Index("idx_connections_patient_status", "patient_id", "full_access_status"),
        Index("idx_connections_provider_status", "provider_id", "full_access_status"),
        CheckConstraint(
            "access_level <> 'full' OR full_access_status = 'approved'",
            name="ck_connections_full_requires_approval",
        ),
        CheckConstraint(
            "full_access_status <> 'pending' OR access_level = 'limited'",
            name="ck_connections_pending_is_limited",
        ),
    )

    def is_party(self, user_id: int) -> bool:
        return user_id in (self.patient_id, self.provider_id)

    def __repr__(self) -> str:
        return (
            f"<Connection(id={self.id}, patient_id={self.patient_id}, provider_id={self.provider_id}, "
            f"access_level='{self.access_level}', full_access_status='{self.full_access_status}')>"
        )
