"""Pydantic models for process settings and the event-mapping document."""

from __future__ import annotations

from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fhir_audit_bridge.constants import CONNECTION_TIMEOUT_SECONDS, REQUEST_TIMEOUT_SECONDS

# ── Process settings ─────────────────────────────────────────────────────


class AuthType(str, Enum):
    """Outgoing authentication strategies supported by the delivery client."""

    NONE = "none"
    BASIC = "basic"
    BEARER = "bearer"
    DYNAMIC = "dynamic"


class BridgeSettings(BaseModel):
    """Resolved process configuration.

    Built by :func:`fhir_audit_bridge.config.settings.load_settings`, which
    applies override > environment > default precedence per key.
    """

    model_config = ConfigDict(frozen=True)

    server_url: str = Field(..., min_length=1, description="Complete AuditEvent endpoint URL.")
    auth_type: AuthType = AuthType.NONE
    auth_username: str = ""
    auth_password: str = ""
    auth_token: str = ""
    admin_events_enabled: bool = False
    async_enabled: bool = True
    debug_enabled: bool = False
    connect_timeout: float = Field(default=CONNECTION_TIMEOUT_SECONDS, gt=0)
    request_timeout: float = Field(default=REQUEST_TIMEOUT_SECONDS, gt=0)
    mappings_file: Optional[str] = Field(
        default=None,
        description="Path to an event-mappings YAML file; the bundled file is used if unset.",
    )

    def redacted_repr(self) -> str:
        """Human-readable description with credentials masked."""
        return (
            f"BridgeSettings(server_url={self.server_url!r}, "
            f"auth_type={self.auth_type.value!r}, "
            f"auth_username={self.auth_username!r}, "
            f"auth_password={'****' if self.auth_password else ''!r}, "
            f"auth_token={'****' if self.auth_token else ''!r}, "
            f"admin_events_enabled={self.admin_events_enabled}, "
            f"async_enabled={self.async_enabled}, "
            f"debug_enabled={self.debug_enabled})"
        )


# ── Event-mapping document ───────────────────────────────────────────────


class SubtypeEntry(BaseModel):
    """Raw ``subtype`` block of a mapping entry."""

    system: Optional[str] = None
    code: Optional[str] = None
    display: Optional[str] = None


class MappingEntry(BaseModel):
    """Raw mapping entry as written in YAML, before variable substitution."""

    code: Optional[str] = None
    display: Optional[str] = None
    action: Optional[str] = None
    outcome: Optional[str] = None
    subtype: Optional[SubtypeEntry] = None

    @field_validator("code", "display", "action", "outcome", mode="before")
    @classmethod
    def _coerce_scalar(cls, v: object) -> object:
        # YAML reads unquoted ``outcome: 0`` or ``code: 110114`` as ints.
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


class MappingDocument(BaseModel):
    """Top-level structure of the event-mappings YAML resource."""

    values: Dict[str, Optional[str]] = Field(default_factory=dict)
    event_mappings: Dict[str, MappingEntry] = Field(default_factory=dict, alias="eventMappings")
    admin_event_mappings: Dict[str, MappingEntry] = Field(
        default_factory=dict, alias="adminEventMappings"
    )
    default_mapping: Optional[MappingEntry] = Field(default=None, alias="defaultMapping")

    @field_validator("values", mode="before")
    @classmethod
    def _stringify_values(cls, v: object) -> object:
        if v is None:
            return {}
        if isinstance(v, dict):
            return {str(k): (None if val is None else str(val)) for k, val in v.items()}
        return v

    @field_validator("event_mappings", "admin_event_mappings", mode="before")
    @classmethod
    def _none_to_empty(cls, v: object) -> object:
        return {} if v is None else v
