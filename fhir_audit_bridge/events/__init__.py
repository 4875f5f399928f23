"""Host event types and their normalization."""

from fhir_audit_bridge.events.extractor import EventExtractor, UserLookup, resolve_display_name
from fhir_audit_bridge.events.models import AdminEvent, AuthDetails, NormalizedEvent, UserEvent

__all__ = [
    "AdminEvent",
    "AuthDetails",
    "EventExtractor",
    "NormalizedEvent",
    "UserEvent",
    "UserLookup",
    "resolve_display_name",
]
