"""
Services package for shared business logic.

This package contains service classes that encapsulate business logic
shared across multiple API endpoints.
"""

from .connection_service import ConnectionService, ConnectionOutcome
from .clinical_resource_service import ConsultationService, MedicalRecordService
from .notification_dispatcher import NotificationDispatcher

__all__ = [
    "ConnectionService",
    "ConnectionOutcome",
    "ConsultationService",
    "MedicalRecordService",
    "NotificationDispatcher",
]
