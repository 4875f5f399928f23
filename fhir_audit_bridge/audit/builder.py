"""FHIR R4 AuditEvent construction.

Turns a :class:`NormalizedEvent` into a plain ``dict`` shaped like a FHIR
R4 ``AuditEvent`` resource.  Apart from the generated ``id`` the output is
a pure function of the event and the mapping table.
"""

from __future__ import annotations

import base64
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from fhir_audit_bridge.audit.serialization import parse_json
from fhir_audit_bridge.constants import UNKNOWN
from fhir_audit_bridge.events.models import NormalizedEvent
from fhir_audit_bridge.mapping.loader import EventTypeMapping, MappingTable, get_mapping_table

logger = logging.getLogger(__name__)

AuditRecord = Dict[str, Any]

# ── Code systems ─────────────────────────────────────────────────────────

DICOM_SYSTEM = "http://dicom.nema.org/resources/ontology/DCM"
SECURITY_ROLE_SYSTEM = "http://terminology.hl7.org/CodeSystem/extra-security-role-type"
SECURITY_SOURCE_SYSTEM = "http://terminology.hl7.org/CodeSystem/security-source-type"
RESOURCE_TYPES_SYSTEM = "http://hl7.org/fhir/resource-types"
KEYCLOAK_SYSTEM = "https://keycloak.org/fhir/audit-event"
KEYCLOAK_USERS_SYSTEM = KEYCLOAK_SYSTEM + "/users"
KEYCLOAK_REALM_SYSTEM = KEYCLOAK_SYSTEM + "/realm"

OBSERVER_DISPLAY = "Keycloak"
NETWORK_TYPE_IP = "2"
SOURCE_TYPE_SECURITY_SERVER = ("6", "Security Server")
DEFAULT_OUTCOME = "0"

_FHIR_RESOURCE_TYPES = {
    "USER": "Person",
    "CLIENT": "Device",
    "CLIENT_SCOPE": "Device",
    "REALM": "Organization",
    "REALM_ROLE": "Organization",
    "CLIENT_ROLE": "Organization",
    "GROUP": "Group",
}


def format_timestamp(epoch_millis: int) -> str:
    """UTC ``YYYY-MM-DDTHH:MM:SSZ``; sub-second precision is dropped.

    Raises
    ------
    OverflowError, ValueError or OSError
        If *epoch_millis* lies outside the years 1-9999 (or the platform's
        ``gmtime`` range).  Such an event cannot be represented as a FHIR
        instant.
    """
    moment = datetime.fromtimestamp(epoch_millis // 1000, tz=timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%SZ")


def format_event_type(event_type: Optional[str]) -> str:
    """``LOGIN_ERROR`` -> ``Login error``."""
    if not event_type:
        return "Unknown Event"
    text = event_type.replace("_", " ").lower()
    return text[:1].upper() + text[1:]


def to_fhir_resource_type(resource_type: Optional[str]) -> str:
    """Map an identity-provider resource type onto a FHIR resource type code."""
    if resource_type is None:
        return "Resource"
    return _FHIR_RESOURCE_TYPES.get(resource_type.upper(), "Resource")


def extract_resource_id(resource_path: str) -> str:
    """Last path segment, e.g. ``users/1234`` -> ``1234``.

    A path without ``/`` or ending in ``/`` is returned unchanged.
    """
    last_slash = resource_path.rfind("/")
    if 0 <= last_slash < len(resource_path) - 1:
        return resource_path[last_slash + 1 :]
    return resource_path


def extract_display_name(
    resource_type: Optional[str], representation: Optional[str]
) -> Optional[str]:
    """Best-effort display name from an admin event's resource snapshot."""
    rep = parse_json(representation)
    if not isinstance(rep, dict):
        if representation and representation.strip():
            logger.debug("Representation is not a JSON object, no display name")
        return None

    candidates: List[str] = []
    if resource_type == "USER":
        candidates += ["username", "email"]
    if resource_type == "CLIENT":
        candidates.append("clientId")
    candidates.append("name")

    for key in candidates:
        value = rep.get(key)
        if isinstance(value, str):
            return value
    return None


class AuditEventBuilder:
    """Builds FHIR R4 AuditEvent dicts from normalized events.

    Parameters
    ----------
    table:
        Mapping rules.  Defaults to the cached process-wide table.
    """

    def __init__(self, table: Optional[MappingTable] = None) -> None:
        self._table = table if table is not None else get_mapping_table()

    def resolve_mapping(self, event: NormalizedEvent) -> EventTypeMapping:
        """Rule for *event*.

        Admin types are looked up in the admin rules, never in the
        subject-event rules; both fall back to the default.
        """
        if event.is_admin_event:
            return self._table.get_admin(event.type)
        return self._table.get(event.type)

    def build(self, event: Optional[NormalizedEvent]) -> Optional[AuditRecord]:
        """Build the AuditEvent, or return ``None`` for a ``None`` event.

        Raises the error of :func:`format_timestamp` when the event time
        cannot be represented.
        """
        if event is None:
            logger.warning("Cannot build AuditEvent from null event")
            return None

        mapping = self.resolve_mapping(event)

        record: AuditRecord = {
            "resourceType": "AuditEvent",
            "id": str(uuid4()),
            "type": {
                "system": DICOM_SYSTEM,
                "code": mapping.code,
                "display": mapping.display,
            },
        }

        if not event.is_admin_event:
            record["subtype"] = [self._subtype(event, mapping)]

        record["action"] = mapping.action
        record["recorded"] = format_timestamp(event.time)
        record["outcome"] = mapping.outcome if mapping.outcome is not None else DEFAULT_OUTCOME
        if event.error is not None:
            record["outcomeDesc"] = event.error

        record["agent"] = [self._agent(event)]
        record["source"] = self._source(event)

        if event.is_admin_event:
            entities = self._entities(event)
            if entities:
                record["entity"] = entities

        return record

    # ── Sections ────────────────────────────────────────────────────────

    @staticmethod
    def _subtype(event: NormalizedEvent, mapping: EventTypeMapping) -> Dict[str, Any]:
        if mapping.subtype is not None:
            return {
                "system": mapping.subtype.system,
                "code": mapping.subtype.code,
                "display": mapping.subtype.display,
            }
        return {
            "system": KEYCLOAK_SYSTEM,
            "code": event.type,
            "display": format_event_type(event.type),
        }

    @staticmethod
    def _agent(event: NormalizedEvent) -> Dict[str, Any]:
        who_value = event.subject_id if event.is_admin_event else event.display_name
        agent: Dict[str, Any] = {
            "type": {
                "coding": [
                    {
                        "system": SECURITY_ROLE_SYSTEM,
                        "code": "humanuser",
                        "display": "human user",
                    }
                ]
            },
            "who": {
                "identifier": {
                    "system": KEYCLOAK_USERS_SYSTEM,
                    "value": who_value if who_value is not None else UNKNOWN,
                }
            },
        }
        if event.display_name is not None:
            agent["altId"] = event.display_name
        agent["requestor"] = True

        address = event.source_address
        if address is not None and address != UNKNOWN:
            agent["network"] = {"address": address, "type": NETWORK_TYPE_IP}
        return agent

    @staticmethod
    def _source(event: NormalizedEvent) -> Dict[str, Any]:
        realm = event.realm if event.realm else UNKNOWN
        code, display = SOURCE_TYPE_SECURITY_SERVER
        return {
            "site": realm,
            "observer": {
                "display": OBSERVER_DISPLAY,
                "identifier": {"system": KEYCLOAK_REALM_SYSTEM, "value": realm},
            },
            "type": [{"system": SECURITY_SOURCE_SYSTEM, "code": code, "display": display}],
        }

    @staticmethod
    def _entities(event: NormalizedEvent) -> List[Dict[str, Any]]:
        path = event.resource_path
        if path is None:
            return []

        resource_type = event.resource_type or "UNKNOWN"
        what: Dict[str, Any] = {
            "identifier": {
                "system": f"{KEYCLOAK_SYSTEM}/{resource_type.lower()}",
                "value": extract_resource_id(path),
            }
        }
        display = extract_display_name(event.resource_type, event.representation)
        if display is not None:
            what["display"] = display

        # FHIR R4 sev-1: name and query must not both be set, so the path
        # goes into description (readable) and query (base64), never name.
        return [
            {
                "what": what,
                "type": {
                    "system": RESOURCE_TYPES_SYSTEM,
                    "code": to_fhir_resource_type(event.resource_type),
                    "display": event.resource_type,
                },
                "description": path,
                "query": base64.b64encode(path.encode("utf-8")).decode("ascii"),
            }
        ]
