"""Delivery of AuditEvent records to the FHIR server."""

from fhir_audit_bridge.client.auth import (
    AuthProvider,
    BasicAuthProvider,
    BearerTokenProvider,
    DynamicTokenProvider,
    NoAuthProvider,
    TokenProvider,
    create_auth_provider,
)
from fhir_audit_bridge.client.fhir_client import FhirClient

__all__ = [
    "AuthProvider",
    "BasicAuthProvider",
    "BearerTokenProvider",
    "DynamicTokenProvider",
    "FhirClient",
    "NoAuthProvider",
    "TokenProvider",
    "create_auth_provider",
]
