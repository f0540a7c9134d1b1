# Package initialization
# Import all models to ensure relationships are properly established
from .user import User, UserRole
from .connection import Connection, AccessLevel, FullAccessStatus
from .consultation import Consultation, ConsultationStatus
from .medical_record import MedicalRecord, RecordType
from .notification_outbox import NotificationOutbox, OutboxStatus

__all__ = [
    "User",
    "UserRole",
    "Connection",
    "AccessLevel",
    "FullAccessStatus",
    "Consultation",
    "ConsultationStatus",
    "MedicalRecord",
    "RecordType",
    "NotificationOutbox",
    "OutboxStatus",
]
