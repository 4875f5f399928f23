"""Process configuration and mapping-document models for FHIR Audit Bridge."""

from fhir_audit_bridge.config.schema import (
    AuthType,
    BridgeSettings,
    MappingDocument,
    MappingEntry,
    SubtypeEntry,
)
from fhir_audit_bridge.config.settings import get_bool_config, get_config, load_settings

__all__ = [
    "AuthType",
    "BridgeSettings",
    "MappingDocument",
    "MappingEntry",
    "SubtypeEntry",
    "get_bool_config",
    "get_config",
    "load_settings",
]
