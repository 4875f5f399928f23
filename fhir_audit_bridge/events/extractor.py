"""Normalization of raw host events into :class:`NormalizedEvent`.

Subject events are filtered against the mapping table's supported types;
admin events are always normalized (whether they are processed at all is
decided by the listener's ``admin_events_enabled`` setting).
"""

from __future__ import annotations

import logging
from typing import Callable, Mapping, Optional

from fhir_audit_bridge.constants import UNKNOWN
from fhir_audit_bridge.events.models import AdminEvent, NormalizedEvent, UserEvent
from fhir_audit_bridge.mapping.loader import MappingTable, get_mapping_table

logger = logging.getLogger(__name__)

# (realm, subject_id) -> username, or None when the user is not found
UserLookup = Callable[[str, str], Optional[str]]

ADMIN_TYPE_PREFIX = "ADMIN_"
DEFAULT_ADMIN_NAME = "admin"


def resolve_display_name(
    details: Mapping[str, str],
    subject_id: Optional[str],
    realm: Optional[str],
    lookup: Optional[UserLookup] = None,
) -> str:
    """Pick the human-readable name for the acting subject.

    Priority: ``username`` detail, *lookup* result, *subject_id*,
    ``email`` detail, then ``"unknown"``.  An explicit ``username`` is used
    verbatim even when it is the literal ``"unknown"``.
    """
    username = details.get("username")
    if username:
        return username

    if subject_id is not None and lookup is not None and realm is not None:
        try:
            found = lookup(realm, subject_id)
        except Exception as exc:
            logger.debug(
                "Failed to look up user %s in realm %s: %s", subject_id, realm, exc
            )
            found = None
        if found:
            logger.debug("Resolved username from user lookup: %s", found)
            return found

    if subject_id is not None:
        return subject_id

    email = details.get("email")
    if email:
        return email

    return UNKNOWN


class EventExtractor:
    """Turns raw :class:`UserEvent` / :class:`AdminEvent` objects into
    :class:`NormalizedEvent` instances.

    Parameters
    ----------
    table:
        Mapping table whose keys define the supported subject-event
        types.  Defaults to the cached process-wide table.
    lookup:
        Default user lookup used when a call does not pass its own.
    """

    def __init__(
        self,
        table: Optional[MappingTable] = None,
        lookup: Optional[UserLookup] = None,
    ) -> None:
        self._table = table if table is not None else get_mapping_table()
        self._lookup = lookup

    @property
    def table(self) -> MappingTable:
        return self._table

    def is_supported(self, event_type: Optional[str]) -> bool:
        """``True`` exactly when *event_type* is a key of the mapping table."""
        return bool(event_type) and event_type in self._table

    def extract_subject_event(
        self,
        event: Optional[UserEvent],
        lookup: Optional[UserLookup] = None,
    ) -> Optional[NormalizedEvent]:
        """Normalize a user event, or return ``None`` if it is unsupported."""
        if event is None:
            logger.warning("Received null user event")
            return None

        event_type = event.type if event.type is not None else "UNKNOWN"
        if not self.is_supported(event_type):
            logger.debug("Unsupported user event type: %s", event_type)
            return None

        details = dict(event.details or {})
        display_name = resolve_display_name(
            details, event.user_id, event.realm_id, lookup or self._lookup
        )

        return NormalizedEvent(
            type=event_type,
            time=event.time,
            subject_id=event.user_id,
            display_name=display_name,
            source_address=event.ip_address if event.ip_address is not None else UNKNOWN,
            realm=event.realm_id if event.realm_id is not None else UNKNOWN,
            client_id=event.client_id,
            session_id=event.session_id,
            error=event.error,
            auth_method=details.get("auth_method", details.get("auth_type", UNKNOWN)),
            is_admin_event=False,
            details=details,
        )

    def extract_admin_event(
        self,
        event: Optional[AdminEvent],
        lookup: Optional[UserLookup] = None,
    ) -> Optional[NormalizedEvent]:
        """Normalize an admin event.  Only a ``None`` input yields ``None``."""
        if event is None:
            logger.warning("Received null admin event")
            return None

        operation_type = event.operation_type if event.operation_type is not None else "UNKNOWN"
        resource_type = event.resource_type if event.resource_type is not None else "UNKNOWN"
        auth = event.auth_details

        admin_user_id = auth.user_id if auth is not None else None
        if admin_user_id is not None:
            display_name = resolve_display_name(
                {}, admin_user_id, event.realm_id, lookup or self._lookup
            )
        else:
            display_name = DEFAULT_ADMIN_NAME

        representation = event.representation
        if representation is not None and representation.strip():
            logger.debug(
                "Representation received for %s operation on %s: %d bytes",
                operation_type,
                resource_type,
                len(representation),
            )
        else:
            representation = None
            logger.debug(
                "No representation available for %s operation on %s",
                operation_type,
                resource_type,
            )

        ip_address = auth.ip_address if auth is not None else None

        return NormalizedEvent(
            type=ADMIN_TYPE_PREFIX + operation_type,
            time=event.time,
            subject_id=admin_user_id,
            display_name=display_name,
            source_address=ip_address if ip_address is not None else UNKNOWN,
            realm=event.realm_id if event.realm_id is not None else UNKNOWN,
            client_id=auth.client_id if auth is not None else None,
            error=event.error,
            is_admin_event=True,
            resource_type=resource_type,
            resource_path=event.resource_path,
            operation_type=operation_type,
            representation=representation,
        )
