"""
Message templates for connection notifications.

Templates use ``{placeholder}`` names filled from a context built per outbox
row. Subjects never contain notes or other free text.
"""

from typing import Any, Dict, Optional, Tuple

from services.access_state import EventType


TEMPLATES: Dict[str, Tuple[str, str]] = {
    EventType.connection_created.value: (
        "New Healthcare Provider Connection",
        "Dear {recipient_name},\n\n"
        "{provider_name} ({provider_specialty}) has connected with you on Care Connect "
        "with limited access. They can only see records they create for you.\n\n"
        "Log in to review your connections: {connections_url}",
    ),
    EventType.full_access_requested.value: (
        "Healthcare Provider Requesting Full Access",
        "Dear {recipient_name},\n\n"
        "{provider_name} ({provider_specialty}) has requested full access to your medical records.\n\n"
        "Notes from your provider: {notes}\n\n"
        "Log in to approve or deny this request: {requests_url}",
    ),
    EventType.full_access_approved.value: (
        "Full Access Granted",
        "Hello {recipient_name},\n\n"
        "{patient_name} has granted you full access to their medical records. "
        "You can now view all of their consultations and records.",
    ),
    EventType.full_access_denied.value: (
        "Full Access Request Denied",
        "Hello {recipient_name},\n\n"
        "{patient_name} has denied your request for full access. "
        "You keep limited access to the records you created.",
    ),
    EventType.full_access_revoked.value: (
        "Full Access Revoked",
        "Hello {recipient_name},\n\n"
        "{patient_name} has revoked your full access. "
        "You keep limited access to the records you created.",
    ),
    EventType.connection_removed.value: (
        "Connection Removed",
        "Hello {recipient_name},\n\n"
        "Your connection between {patient_name} and {provider_name} has been removed.",
    ),
}


class NotificationTemplateService:
    """Render notification subjects and bodies."""

    @staticmethod
    def render_message(template: str, context: Dict[str, Any]) -> str:
        """
        Render a template with placeholders.

        Replacement order: longest placeholders first, so ``{provider_name}``
        can never be clobbered by a shorter key that is a prefix of it.
        """
        message = template
        for key in sorted(context.keys(), key=len, reverse=True):
            placeholder = f"{{{key}}}"
            value = str(context.get(key) or "")
            message = message.replace(placeholder, value)
        return message

    @staticmethod
    def build_context(
        payload: Dict[str, Any],
        recipient_name: str,
        patient_name: str,
        provider_name: str,
        provider_specialty: Optional[str],
        frontend_url: str,
    ) -> Dict[str, Any]:
        return {
            "recipient_name": recipient_name,
            "patient_name": patient_name,
            "provider_name": provider_name,
            "provider_specialty": provider_specialty or "Healthcare Provider",
            "notes": payload.get("notes") or "No additional notes",
            "connections_url": f"{frontend_url}/connections",
            "requests_url": f"{frontend_url}/connections/requests",
        }

    @staticmethod
    def render(event_type: str, context: Dict[str, Any]) -> Tuple[str, str]:
        """
        Returns:
            (subject, body) for the event type

        Raises:
            ValueError: If there is no template for ``event_type``
        """
        try:
            subject, body = TEMPLATES[event_type]
        except KeyError:
            raise ValueError(f"No notification template for event type: {event_type}") from None
        return (
            NotificationTemplateService.render_message(subject, context),
            NotificationTemplateService.render_message(body, context),
        )
