"""Event listener wiring: raw host event -> normalized -> AuditEvent -> FHIR.

The host creates one :class:`AuditEventListenerFactory` per process and
asks it for a listener per unit of work.  Listeners never raise out of
their ``on_*`` callbacks; processing failures are logged and the event is
dropped.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from fhir_audit_bridge.audit.builder import AuditEventBuilder
from fhir_audit_bridge.audit.serialization import to_pretty_json
from fhir_audit_bridge.client.auth import TokenProvider
from fhir_audit_bridge.client.fhir_client import FhirClient
from fhir_audit_bridge.config.schema import BridgeSettings
from fhir_audit_bridge.config.settings import load_settings
from fhir_audit_bridge.constants import PROVIDER_ID
from fhir_audit_bridge.events.extractor import EventExtractor, UserLookup
from fhir_audit_bridge.events.models import AdminEvent, UserEvent
from fhir_audit_bridge.mapping.loader import MappingTable, get_mapping_table

logger = logging.getLogger(__name__)


class AuditEventListener:
    """Converts host events to AuditEvents and hands them to a client.

    Parameters
    ----------
    client:
        Delivery client.  Normally shared across listeners and owned by
        the factory.
    settings:
        Resolved process settings (admin/debug switches).
    lookup:
        Optional ``(realm, subject_id) -> username`` resolver.
    table:
        Mapping rules; defaults to the cached table for
        ``settings.mappings_file``.
    owns_client:
        Close *client* in :meth:`close`.
    """

    def __init__(
        self,
        client: FhirClient,
        settings: BridgeSettings,
        lookup: Optional[UserLookup] = None,
        *,
        table: Optional[MappingTable] = None,
        owns_client: bool = False,
    ) -> None:
        table = table if table is not None else get_mapping_table(settings.mappings_file)
        self._client = client
        self._settings = settings
        self._extractor = EventExtractor(table, lookup)
        self._builder = AuditEventBuilder(table)
        self._owns_client = owns_client
        logger.debug(
            "AuditEventListener created, admin events: %s, debug: %s",
            settings.admin_events_enabled,
            settings.debug_enabled,
        )

    @property
    def admin_events_enabled(self) -> bool:
        return self._settings.admin_events_enabled

    @property
    def debug_enabled(self) -> bool:
        return self._settings.debug_enabled

    def on_event(self, event: Optional[UserEvent]) -> None:
        """Handle a user event."""
        if event is None:
            logger.warning("Received null event")
            return

        try:
            logger.debug(
                "Processing user event: %s for user: %s in realm: %s",
                event.type,
                event.user_id,
                event.realm_id,
            )
            if self.debug_enabled:
                self._dump("Original user event", event.to_dict())

            normalized = self._extractor.extract_subject_event(event)
            if normalized is None:
                logger.debug("Event type %s not supported for AuditEvent conversion", event.type)
                return

            record = self._builder.build(normalized)
            if record is None:
                logger.warning("Failed to build AuditEvent for event type: %s", event.type)
                return
            if self.debug_enabled:
                self._dump("Generated AuditEvent", record)

            self._client.send(record)
            logger.info(
                "Processed %s event for user %s in realm %s",
                event.type,
                event.user_id,
                event.realm_id,
            )
        except Exception as exc:
            logger.error(
                "Error processing user event %s: %s - %s", event.type, type(exc).__name__, exc
            )
            logger.debug("Full error:", exc_info=True)

    def on_admin_event(self, event: Optional[AdminEvent], include_representation: bool = False) -> None:
        """Handle an admin event.

        *include_representation* reflects the host's own setting; the
        representation is used whenever the event carries one.
        """
        if event is None:
            logger.warning("Received null admin event")
            return
        if not self.admin_events_enabled:
            logger.debug("Admin events disabled, skipping: %s", event.operation_type)
            return

        try:
            logger.debug(
                "Processing admin event: %s on resource: %s in realm: %s (includeRepresentation: %s)",
                event.operation_type,
                event.resource_path,
                event.realm_id,
                include_representation,
            )
            if self.debug_enabled:
                raw = event.to_dict()
                raw["includeRepresentation"] = include_representation
                self._dump("Original admin event", raw)

            normalized = self._extractor.extract_admin_event(event)
            if normalized is None:
                logger.warning("Failed to extract admin event data")
                return

            record = self._builder.build(normalized)
            if record is None:
                logger.warning("Failed to build AuditEvent for admin event: %s", event.operation_type)
                return
            if self.debug_enabled:
                self._dump("Generated AuditEvent", record)

            self._client.send(record)
            logger.info(
                "Processed admin %s event on %s in realm %s",
                event.operation_type,
                event.resource_path,
                event.realm_id,
            )
        except Exception as exc:
            logger.error(
                "Error processing admin event %s: %s - %s",
                event.operation_type,
                type(exc).__name__,
                exc,
            )
            logger.debug("Full error:", exc_info=True)

    def close(self) -> None:
        logger.debug("Closing AuditEventListener")
        if self._owns_client:
            self._client.close()

    @staticmethod
    def _dump(label: str, payload: Dict[str, Any]) -> None:
        try:
            logger.info("[DEBUG] %s:\n%s", label, to_pretty_json(payload))
        except (TypeError, ValueError) as exc:
            logger.warning("Failed to serialize %s for debug logging: %s", label.lower(), exc)


class AuditEventListenerFactory:
    """Process-wide owner of settings and the shared delivery client.

    Parameters
    ----------
    settings:
        Pre-resolved settings; :meth:`init` loads them from the
        environment when omitted.
    transport:
        Optional ``httpx`` transport passed to every client it builds.
    """

    PROVIDER_ID = PROVIDER_ID

    def __init__(
        self,
        settings: Optional[BridgeSettings] = None,
        *,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._client: Optional[FhirClient] = None

    @property
    def id(self) -> str:
        return self.PROVIDER_ID

    @property
    def settings(self) -> Optional[BridgeSettings]:
        return self._settings

    @property
    def client(self) -> Optional[FhirClient]:
        return self._client

    def init(self) -> None:
        """Resolve settings, log them and build the shared client.

        Raises
        ------
        ConfigurationError
            If settings cannot be resolved.
        """
        logger.info("Initializing AuditEventListenerFactory")
        if self._settings is None:
            self._settings = load_settings()
        settings = self._settings
        logger.info("FHIR Server URL: %s", settings.server_url)
        logger.info("Auth Type: %s", settings.auth_type.value)
        logger.info("Admin Events Enabled: %s", settings.admin_events_enabled)
        logger.info("Async Enabled: %s", settings.async_enabled)

        self._client = FhirClient.from_settings(settings, transport=self._transport)

    def create(
        self,
        lookup: Optional[UserLookup] = None,
        token_provider: Optional[TokenProvider] = None,
    ) -> AuditEventListener:
        """Return a listener.

        With a *token_provider* the listener gets its own client (closed
        with the listener) that mints tokens through it; otherwise the
        shared client is used.
        """
        if self._client is None or self._settings is None:
            self.init()
        logger.debug("Creating AuditEventListener")
        if token_provider is not None:
            client = FhirClient.from_settings(
                self._settings, token_provider=token_provider, transport=self._transport
            )
            return AuditEventListener(client, self._settings, lookup, owns_client=True)
        return AuditEventListener(self._client, self._settings, lookup)

    def close(self) -> None:
        logger.info("Closing AuditEventListenerFactory")
        if self._client is not None:
            self._client.close()
