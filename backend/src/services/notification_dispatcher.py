"""
Notification dispatcher: outbox writes and delivery.

``enqueue`` is called by route handlers after a connection change has
committed. It writes one outbox row per event and never raises: a failure
here is logged and the access change stands. ``deliver_due`` is run by
NotificationScheduler to send what is queued, retrying with exponential
backoff.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Protocol

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from core.config import EMAIL_FROM, FRONTEND_URL, NOTIFICATION_MAX_ATTEMPTS, NOTIFICATION_RETRY_BASE_SECONDS
from core.constants import NOTIFICATION_CLAIM_LEASE_SECONDS, NOTIFICATION_MAX_BACKOFF_SECONDS
from models.notification_outbox import NotificationOutbox, OutboxStatus
from models.user import User
from services.access_state import ConnectionEvent, EventType
from services.connection_store import ConnectionStore
from services.notification_templates import NotificationTemplateService
from utils.datetime_utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)

# Events that count as informing the patient about the connection
PATIENT_NOTICE_EVENTS = {EventType.connection_created, EventType.full_access_requested}


@dataclass
class OutboundEmail:
    outbox_id: int
    recipient_user_id: int
    to: str
    sender: str
    subject: str
    body: str


class EmailSender(Protocol):
    def send(self, message: OutboundEmail) -> None: ...


class LoggingEmailSender:
    """Default sender: records that a message would go out, without its body."""

    def send(self, message: OutboundEmail) -> None:
        logger.info(
            f"Email for user {message.recipient_user_id} (outbox {message.outbox_id}): {message.subject}"
        )


def retry_delay(attempts: int) -> timedelta:
    """Exponential backoff after ``attempts`` failed tries, capped."""
    seconds = NOTIFICATION_RETRY_BASE_SECONDS * (2 ** max(attempts - 1, 0))
    return timedelta(seconds=min(seconds, NOTIFICATION_MAX_BACKOFF_SECONDS))


def _recipient_id(event: ConnectionEvent) -> int:
    # The party who did not act; provider-side system actions go to the patient
    if event.actor_id == event.patient_id:
        return event.provider_id
    return event.patient_id


class NotificationDispatcher:
    """Outbox producer and delivery loop."""

    @staticmethod
    def _coalesce(events: Iterable[ConnectionEvent]) -> List[ConnectionEvent]:
        """Drop connection_created when the same batch already asks for full access."""
        events = list(events)
        requested = {
            e.connection_id for e in events if e.event_type == EventType.full_access_requested
        }
        return [
            e for e in events
            if not (e.event_type == EventType.connection_created and e.connection_id in requested)
        ]

    @staticmethod
    def enqueue(db: Session, events: Iterable[ConnectionEvent]) -> int:
        """
        Queue one outbox row per event.

        Must be called after the transition has been committed. Returns the
        number of rows queued; 0 on failure, which is logged and not raised.
        """
        events = list(events)
        if not events:
            return 0

        try:
            now = utc_now()
            queued = NotificationDispatcher._coalesce(events)
            for event in queued:
                db.add(NotificationOutbox(
                    event_type=event.event_type.value,
                    connection_id=event.connection_id,
                    recipient_user_id=_recipient_id(event),
                    payload=event.to_payload(),
                    status=OutboxStatus.pending.value,
                    attempts=0,
                    max_attempts=NOTIFICATION_MAX_ATTEMPTS,
                    next_attempt_at=now,
                ))

            notified = {
                e.connection_id for e in queued
                if e.event_type in PATIENT_NOTICE_EVENTS and _recipient_id(e) == e.patient_id
            }
            for connection_id in notified:
                ConnectionStore.mark_patient_notified(db, connection_id, now)

            db.commit()
        except Exception as e:
            db.rollback()
            logger.exception(
                f"Failed to enqueue notifications for connections "
                f"{sorted({ev.connection_id for ev in events})}: {type(e).__name__}"
            )
            return 0

        logger.info(
            f"Queued {len(queued)} notification(s): "
            f"{', '.join(f'{e.event_type.value}#{e.connection_id}' for e in queued)}"
        )
        return len(queued)

    @staticmethod
    def _claim_due(db: Session, now: datetime, batch_size: int) -> List[NotificationOutbox]:
        """
        Mark due rows as processing and return them.

        Rows left in processing by a worker that died before finishing them
        are claimed again once their lease has expired.
        """
        lease_expired_before = ensure_utc(now) - timedelta(seconds=NOTIFICATION_CLAIM_LEASE_SECONDS)
        rows = list(db.execute(
            select(NotificationOutbox)
            .where(or_(
                and_(
                    NotificationOutbox.status == OutboxStatus.pending.value,
                    NotificationOutbox.next_attempt_at <= now,
                ),
                and_(
                    NotificationOutbox.status == OutboxStatus.processing.value,
                    NotificationOutbox.updated_at <= lease_expired_before,
                ),
            ))
            .order_by(NotificationOutbox.next_attempt_at, NotificationOutbox.id)
            .limit(batch_size)
            .with_for_update(skip_locked=True)
        ).scalars().all())
        claimed_at = utc_now()
        for row in rows:
            if row.status == OutboxStatus.processing.value:
                logger.warning(f"Outbox {row.id} lease expired; claiming again")
            row.status = OutboxStatus.processing.value
            row.updated_at = claimed_at
        db.commit()
        return rows

    @staticmethod
    def _render(db: Session, row: NotificationOutbox) -> Optional[OutboundEmail]:
        recipient = db.get(User, row.recipient_user_id)
        if recipient is None or not recipient.is_active:
            return None

        payload = row.payload or {}
        patient = db.get(User, payload.get("patient_id"))
        provider = db.get(User, payload.get("provider_id"))
        context = NotificationTemplateService.build_context(
            payload,
            recipient_name=recipient.full_name,
            patient_name=patient.full_name if patient else "Your patient",
            provider_name=provider.full_name if provider else "Your provider",
            provider_specialty=provider.specialty if provider else None,
            frontend_url=FRONTEND_URL,
        )
        subject, body = NotificationTemplateService.render(row.event_type, context)
        return OutboundEmail(
            outbox_id=row.id,
            recipient_user_id=recipient.id,
            to=recipient.email,
            sender=EMAIL_FROM,
            subject=subject,
            body=body,
        )

    @staticmethod
    def deliver_due(
        db: Session,
        sender: EmailSender,
        now: Optional[datetime] = None,
        batch_size: int = 50,
    ) -> int:
        """
        Send due outbox rows. Returns how many were sent.

        A failed send is retried with backoff until ``max_attempts``, then the
        row is marked failed. Only the message is retried; the connection is
        never touched here.
        """
        now = now or utc_now()
        sent = 0
        for row in NotificationDispatcher._claim_due(db, now, batch_size):
            row.attempts += 1
            try:
                message = NotificationDispatcher._render(db, row)
                if message is None:
                    row.status = OutboxStatus.failed.value
                    row.last_error = "Recipient missing or inactive"
                    logger.warning(f"Outbox {row.id} dropped: recipient {row.recipient_user_id} unavailable")
                else:
                    sender.send(message)
                    row.status = OutboxStatus.sent.value
                    row.sent_at = utc_now()
                    row.last_error = None
                    sent += 1
            except Exception as e:
                row.last_error = f"{type(e).__name__}: {e}"[:500]
                if row.attempts >= row.max_attempts:
                    row.status = OutboxStatus.failed.value
                    logger.error(f"Outbox {row.id} failed permanently after {row.attempts} attempts")
                else:
                    row.status = OutboxStatus.pending.value
                    row.next_attempt_at = ensure_utc(now) + retry_delay(row.attempts)
                    logger.warning(f"Outbox {row.id} attempt {row.attempts} failed; retrying at {row.next_attempt_at}")
            db.commit()

        if sent:
            logger.info(f"Delivered {sent} notification(s)")
        return sent
