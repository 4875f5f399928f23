"""
FHIR Audit Bridge - turns identity-provider events into FHIR R4 AuditEvents.

Authentication, logout, password and administrative events are normalized,
mapped through a YAML rule table and delivered to a FHIR collector endpoint.
"""

from fhir_audit_bridge.constants import SERVER_NAME, SERVER_VERSION

__version__ = SERVER_VERSION
__app_name__ = SERVER_NAME

__all__ = [
    "SERVER_NAME",
    "SERVER_VERSION",
    "__version__",
    "__app_name__",
]
