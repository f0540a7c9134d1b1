"""
Notification outbox model.

One row per connection event waiting to be delivered. Rows are written after
the access-state change has committed and are drained by NotificationScheduler.
"""

from enum import Enum
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from core.database import Base


class OutboxStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    sent = "sent"
    failed = "failed"


class NotificationOutbox(Base):
    """Queued outbound message for a connection event."""

    __tablename__ = "notification_outbox"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    event_type: Mapped[str] = mapped_column(String(50), nullable=False)

    connection_id: Mapped[int] = mapped_column(Integer, nullable=False)
    """Not a foreign key: connection_removed rows outlive their connection."""

    recipient_user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    payload: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    """Event fields used for templating (ids, notes, occurred_at)."""

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=OutboxStatus.pending.value)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    next_attempt_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_notification_outbox_due", "status", "next_attempt_at"),
        Index("idx_notification_outbox_connection", "connection_id"),
    )

    def __repr__(self) -> str:
        return f"<NotificationOutbox(id={self.id}, event_type='{self.event_type}', status='{self.status}')>"
