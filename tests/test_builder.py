"""Tests for FHIR AuditEvent construction."""

from __future__ import annotations

import base64
import uuid

import pytest

from fhir_audit_bridge.audit.builder import (
    DICOM_SYSTEM,
    KEYCLOAK_SYSTEM,
    AuditEventBuilder,
    extract_display_name,
    extract_resource_id,
    format_event_type,
    format_timestamp,
    to_fhir_resource_type,
)
from fhir_audit_bridge.events.extractor import EventExtractor
from fhir_audit_bridge.events.models import AdminEvent, AuthDetails, NormalizedEvent, UserEvent
from fhir_audit_bridge.mapping.loader import EventTypeMapping, MappingTable

T0 = 1700000000000


def _login(**overrides) -> NormalizedEvent:
    fields = dict(
        type="LOGIN",
        time=T0,
        subject_id="u-1",
        display_name="alice",
        source_address="10.0.0.1",
        realm="demo",
    )
    fields.update(overrides)
    return NormalizedEvent(**fields)


def _admin(**overrides) -> NormalizedEvent:
    fields = dict(
        type="ADMIN_CREATE",
        time=T0,
        subject_id="admin-1",
        display_name="root",
        source_address="10.0.0.9",
        realm="demo",
        is_admin_event=True,
        resource_type="USER",
        resource_path="users/abc-123",
        operation_type="CREATE",
        representation='{"username": "carol", "email": "c@example.org"}',
    )
    fields.update(overrides)
    return NormalizedEvent(**fields)


# ── Helpers ─────────────────────────────────────────────────────────────


class TestHelpers:
    def test_format_timestamp_floors_to_seconds(self) -> None:
        assert format_timestamp(T0) == "2023-11-14T22:13:20Z"
        assert format_timestamp(T0 + 999) == "2023-11-14T22:13:20Z"
        assert format_timestamp(0) == "1970-01-01T00:00:00Z"

    def test_format_timestamp_out_of_range(self) -> None:
        with pytest.raises((OverflowError, ValueError, OSError)):
            format_timestamp(10**20)
        with pytest.raises((OverflowError, ValueError, OSError)):
            AuditEventBuilder().build(_login(time=10**20))

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("LOGIN_ERROR", "Login error"),
            ("CLIENT_LOGIN", "Client login"),
            ("X", "X"),
            ("", "Unknown Event"),
            (None, "Unknown Event"),
        ],
    )
    def test_format_event_type(self, raw, expected) -> None:
        assert format_event_type(raw) == expected

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("USER", "Person"),
            ("user", "Person"),
            ("CLIENT", "Device"),
            ("CLIENT_SCOPE", "Device"),
            ("REALM", "Organization"),
            ("REALM_ROLE", "Organization"),
            ("CLIENT_ROLE", "Organization"),
            ("GROUP", "Group"),
            ("COMPONENT", "Resource"),
            (None, "Resource"),
        ],
    )
    def test_to_fhir_resource_type(self, raw, expected) -> None:
        assert to_fhir_resource_type(raw) == expected

    def test_extract_resource_id(self) -> None:
        assert extract_resource_id("users/1234") == "1234"
        assert extract_resource_id("clients/a/roles/b") == "b"
        assert extract_resource_id("realm") == "realm"
        assert extract_resource_id("users/") == "users/"

    def test_extract_display_name(self) -> None:
        assert extract_display_name("USER", '{"username": "u", "name": "n"}') == "u"
        assert extract_display_name("USER", '{"email": "e@x"}') == "e@x"
        assert extract_display_name("CLIENT", '{"clientId": "app", "name": "App"}') == "app"
        assert extract_display_name("GROUP", '{"name": "staff"}') == "staff"
        assert extract_display_name("GROUP", '{"username": "u"}') is None
        assert extract_display_name("USER", "not json") is None
        assert extract_display_name("USER", None) is None
        assert extract_display_name("USER", "[1, 2]") is None


# ── Subject events ──────────────────────────────────────────────────────


class TestBuildSubjectEvent:
    def test_login_scenario(self) -> None:
        record = AuditEventBuilder().build(_login())
        assert record is not None
        assert record["resourceType"] == "AuditEvent"
        uuid.UUID(record["id"])
        assert record["type"] == {
            "system": DICOM_SYSTEM,
            "code": "110114",
            "display": "User Authentication",
        }
        assert record["subtype"] == [{"system": DICOM_SYSTEM, "code": "110122", "display": "Login"}]
        assert record["action"] == "E"
        assert record["recorded"] == "2023-11-14T22:13:20Z"
        assert record["outcome"] == "0"
        assert "outcomeDesc" not in record
        assert "entity" not in record

        agent = record["agent"][0]
        assert agent["type"]["coding"][0]["code"] == "humanuser"
        assert agent["who"]["identifier"] == {
            "system": KEYCLOAK_SYSTEM + "/users",
            "value": "alice",
        }
        assert agent["altId"] == "alice"
        assert agent["requestor"] is True
        assert agent["network"] == {"address": "10.0.0.1", "type": "2"}

        source = record["source"]
        assert source["site"] == "demo"
        assert source["observer"]["display"] == "Keycloak"
        assert source["observer"]["identifier"]["value"] == "demo"
        assert source["type"][0]["code"] == "6"

    def test_login_error_scenario(self) -> None:
        record = AuditEventBuilder().build(_login(type="LOGIN_ERROR", error="invalid_user_credentials"))
        assert record is not None
        assert record["outcome"] == "4"
        assert record["outcomeDesc"] == "invalid_user_credentials"

    def test_no_network_for_unknown_address(self) -> None:
        record = AuditEventBuilder().build(_login(source_address="unknown"))
        assert record is not None
        assert "network" not in record["agent"][0]

    def test_rule_without_subtype_gets_synthesized_one(self) -> None:
        table = MappingTable(
            mappings={
                "CUSTOM_THING": EventTypeMapping(code="1", display="Custom", action="R", outcome=None)
            }
        )
        record = AuditEventBuilder(table).build(_login(type="CUSTOM_THING"))
        assert record is not None
        assert record["action"] == "R"
        assert record["outcome"] == "0"
        assert record["subtype"] == [
            {"system": KEYCLOAK_SYSTEM, "code": "CUSTOM_THING", "display": "Custom thing"}
        ]

    def test_default_rule_for_unmapped_type(self) -> None:
        record = AuditEventBuilder(MappingTable()).build(_login(type="REGISTER"))
        assert record is not None
        assert record["type"]["code"] == "110100"
        assert record["action"] == "E"

    def test_idempotent_except_id(self) -> None:
        builder = AuditEventBuilder()
        event = _login()
        first = builder.build(event)
        second = builder.build(event)
        assert first is not None and second is not None
        assert first["id"] != second["id"]
        first.pop("id")
        second.pop("id")
        assert first == second

    def test_none_event(self) -> None:
        assert AuditEventBuilder().build(None) is None


# ── Admin events ────────────────────────────────────────────────────────


class TestBuildAdminEvent:
    def test_admin_create_scenario(self) -> None:
        record = AuditEventBuilder().build(_admin())
        assert record is not None
        assert record["action"] == "C"
        assert record["type"]["code"] == "110100"
        assert "subtype" not in record

        agent = record["agent"][0]
        assert agent["who"]["identifier"]["value"] == "admin-1"
        assert agent["altId"] == "root"

        entity = record["entity"][0]
        assert entity["what"]["identifier"] == {
            "system": KEYCLOAK_SYSTEM + "/user",
            "value": "abc-123",
        }
        assert entity["what"]["display"] == "carol"
        assert entity["type"]["code"] == "Person"
        assert entity["type"]["display"] == "USER"
        assert entity["description"] == "users/abc-123"
        assert base64.b64decode(entity["query"]).decode("utf-8") == "users/abc-123"
        assert "name" not in entity

    def test_admin_without_path_has_no_entity(self) -> None:
        record = AuditEventBuilder().build(_admin(resource_path=None))
        assert record is not None
        assert "entity" not in record

    def test_admin_without_representation_has_no_display(self) -> None:
        record = AuditEventBuilder().build(_admin(representation=None))
        assert record is not None
        assert "display" not in record["entity"][0]["what"]

    def test_admin_type_not_matched_against_subject_rules(self) -> None:
        rule = EventTypeMapping(code="9", display="Nine", action="R", outcome="0")
        table = MappingTable(mappings={"ADMIN_CREATE": rule})
        record = AuditEventBuilder(table).build(_admin())
        assert record is not None
        assert record["type"]["code"] == table.default.code

    def test_admin_who_unknown_without_subject(self) -> None:
        record = AuditEventBuilder().build(_admin(subject_id=None, display_name="admin"))
        assert record is not None
        assert record["agent"][0]["who"]["identifier"]["value"] == "unknown"


# ── Extractor + builder ─────────────────────────────────────────────────


class TestPipeline:
    def test_raw_login_to_record(self) -> None:
        raw = UserEvent(
            type="LOGIN",
            time=T0,
            user_id="u-1",
            ip_address="10.0.0.1",
            realm_id="demo",
            details={"username": "alice"},
        )
        normalized = EventExtractor().extract_subject_event(raw)
        record = AuditEventBuilder().build(normalized)
        assert record is not None
        assert record["agent"][0]["altId"] == "alice"
        assert record["recorded"] == "2023-11-14T22:13:20Z"

    def test_raw_admin_without_ip(self) -> None:
        raw = AdminEvent(
            operation_type="DELETE",
            resource_type="GROUP",
            time=T0,
            realm_id="demo",
            resource_path="groups/g-1",
            auth_details=AuthDetails(user_id="admin-1"),
        )
        record = AuditEventBuilder().build(EventExtractor().extract_admin_event(raw))
        assert record is not None
        assert record["action"] == "D"
        assert "network" not in record["agent"][0]
        assert record["entity"][0]["type"]["code"] == "Group"
