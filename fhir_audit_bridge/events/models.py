"""Event data types.

``UserEvent`` / ``AdminEvent`` mirror what the identity provider emits
(JSON keys are the host's camelCase names).  ``NormalizedEvent`` is the
single canonical shape handed from the extractor to the builder.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from fhir_audit_bridge.constants import UNKNOWN


def _opt_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _details(raw: Any) -> Dict[str, str]:
    if not isinstance(raw, dict):
        return {}
    return {str(k): str(v) for k, v in raw.items() if v is not None}


# ── Raw host events ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class UserEvent:
    """An event caused by or against an end user (login, logout, …)."""

    type: Optional[str]
    time: int = 0
    user_id: Optional[str] = None
    ip_address: Optional[str] = None
    realm_id: Optional[str] = None
    client_id: Optional[str] = None
    session_id: Optional[str] = None
    error: Optional[str] = None
    details: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> UserEvent:
        """Construct from the host's JSON shape (tolerant of missing keys)."""
        return cls(
            type=_opt_str(data.get("type")),
            time=int(data.get("time") or 0),
            user_id=_opt_str(data.get("userId")),
            ip_address=_opt_str(data.get("ipAddress")),
            realm_id=_opt_str(data.get("realmId")),
            client_id=_opt_str(data.get("clientId")),
            session_id=_opt_str(data.get("sessionId")),
            error=_opt_str(data.get("error")),
            details=_details(data.get("details")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "time": self.time,
            "userId": self.user_id,
            "ipAddress": self.ip_address,
            "realmId": self.realm_id,
            "clientId": self.client_id,
            "sessionId": self.session_id,
            "error": self.error,
            "details": dict(self.details),
        }


@dataclass(frozen=True)
class AuthDetails:
    """Who performed an admin operation, and from where."""

    user_id: Optional[str] = None
    ip_address: Optional[str] = None
    client_id: Optional[str] = None
    realm_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AuthDetails:
        return cls(
            user_id=_opt_str(data.get("userId")),
            ip_address=_opt_str(data.get("ipAddress")),
            client_id=_opt_str(data.get("clientId")),
            realm_id=_opt_str(data.get("realmId")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "ipAddress": self.ip_address,
            "clientId": self.client_id,
            "realmId": self.realm_id,
        }


@dataclass(frozen=True)
class AdminEvent:
    """A CRUD/administrative operation on a managed resource."""

    operation_type: Optional[str]
    resource_type: Optional[str] = None
    time: int = 0
    realm_id: Optional[str] = None
    resource_path: Optional[str] = None
    error: Optional[str] = None
    representation: Optional[str] = None
    auth_details: Optional[AuthDetails] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AdminEvent:
        """Construct from the host's JSON shape.

        ``representation`` may arrive either as an already-encoded JSON
        string or as a nested object; it is kept as text.
        """
        auth_raw = data.get("authDetails")
        representation = data.get("representation")
        if representation is not None and not isinstance(representation, str):
            representation = json.dumps(representation)
        return cls(
            operation_type=_opt_str(data.get("operationType")),
            resource_type=_opt_str(data.get("resourceType")),
            time=int(data.get("time") or 0),
            realm_id=_opt_str(data.get("realmId")),
            resource_path=_opt_str(data.get("resourcePath")),
            error=_opt_str(data.get("error")),
            representation=representation,
            auth_details=AuthDetails.from_dict(auth_raw) if isinstance(auth_raw, dict) else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operationType": self.operation_type,
            "resourceType": self.resource_type,
            "time": self.time,
            "realmId": self.realm_id,
            "resourcePath": self.resource_path,
            "error": self.error,
            "representation": self.representation,
            "authDetails": self.auth_details.to_dict() if self.auth_details else None,
        }


# ── Canonical event ──────────────────────────────────────────────────────


_ADMIN_ONLY_FIELDS = ("resource_type", "resource_path", "operation_type", "representation")


class NormalizedEvent(BaseModel):
    """Canonical, immutable event consumed by the AuditEvent builder.

    The ``resource_*``, ``operation_type`` and ``representation`` fields
    are meaningful only when ``is_admin_event`` is set and must be left
    empty otherwise.
    """

    model_config = ConfigDict(frozen=True)

    type: str
    time: int
    subject_id: Optional[str] = None
    display_name: str = UNKNOWN
    source_address: str = UNKNOWN
    realm: str = UNKNOWN
    client_id: Optional[str] = None
    session_id: Optional[str] = None
    error: Optional[str] = None
    auth_method: Optional[str] = None
    is_admin_event: bool = False
    resource_type: Optional[str] = None
    resource_path: Optional[str] = None
    operation_type: Optional[str] = None
    representation: Optional[str] = None
    details: Dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _admin_fields_only_on_admin_events(self) -> NormalizedEvent:
        if not self.is_admin_event:
            populated = [name for name in _ADMIN_ONLY_FIELDS if getattr(self, name) is not None]
            if populated:
                raise ValueError(
                    f"Admin-only fields set on a non-admin event: {', '.join(populated)}"
                )
        return self
