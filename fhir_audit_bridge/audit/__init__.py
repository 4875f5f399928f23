"""FHIR R4 AuditEvent record construction.

Public API
----------
- :class:`AuditEventBuilder` - NormalizedEvent → AuditEvent dict
- :func:`to_json` / :func:`to_pretty_json` - serialization helpers
"""

from fhir_audit_bridge.audit.builder import AuditEventBuilder, AuditRecord
from fhir_audit_bridge.audit.serialization import parse_json, to_json, to_pretty_json

__all__ = [
    "AuditEventBuilder",
    "AuditRecord",
    "parse_json",
    "to_json",
    "to_pretty_json",
]
