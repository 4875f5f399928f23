"""Tests for the ``fhir-audit-bridge`` command line."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest

from fhir_audit_bridge import cli
from fhir_audit_bridge.errors import DeliveryError


@pytest.fixture(autouse=True)
def _no_logging_setup():
    with patch.object(cli, "setup_logging") as mocked:
        yield mocked


def _event_file(tmp_path: Path, payload: dict) -> str:
    path = tmp_path / "event.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return str(path)


class TestMappingsCommand:
    def test_lists_rules(self, capsys: pytest.CaptureFixture) -> None:
        assert cli.main(["mappings"]) == 0
        out = capsys.readouterr().out
        assert "LOGIN" in out
        assert "ADMIN_CREATE" in out
        assert "(default)" in out


class TestBuildCommand:
    def test_user_event(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        path = _event_file(
            tmp_path,
            {"type": "LOGIN", "time": 1700000000000, "userId": "u-1", "details": {"username": "alice"}},
        )
        assert cli.main(["build", path]) == 0
        record = json.loads(capsys.readouterr().out)
        assert record["recorded"] == "2023-11-14T22:13:20Z"
        assert record["agent"][0]["altId"] == "alice"

    def test_admin_event_detected(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        path = _event_file(
            tmp_path,
            {"operationType": "CREATE", "resourceType": "USER", "resourcePath": "users/1"},
        )
        assert cli.main(["build", path]) == 0
        record = json.loads(capsys.readouterr().out)
        assert record["action"] == "C"
        assert record["entity"][0]["type"]["code"] == "Person"

    def test_unsupported_event(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        path = _event_file(tmp_path, {"type": "CODE_TO_TOKEN"})
        assert cli.main(["build", path]) == 1
        assert "not supported" in capsys.readouterr().err

    def test_missing_file(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        assert cli.main(["build", str(tmp_path / "missing.json")]) == 1
        assert "Error:" in capsys.readouterr().err

    def test_not_an_object(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        path = tmp_path / "list.json"
        path.write_text("[1, 2]", encoding="utf-8")
        assert cli.main(["build", str(path)]) == 1


class TestSendCommand:
    def test_sends_synchronously(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        path = _event_file(tmp_path, {"type": "LOGIN", "userId": "u-1"})
        with patch.object(cli.FhirClient, "send_sync", return_value=201) as send_sync:
            assert cli.main(["send", path]) == 0
        record = send_sync.call_args.args[0]
        assert record["resourceType"] == "AuditEvent"
        assert "Sent AuditEvent" in capsys.readouterr().out

    def test_delivery_failure(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        path = _event_file(tmp_path, {"type": "LOGIN", "userId": "u-1"})
        with patch.object(cli.FhirClient, "send_sync", side_effect=DeliveryError("refused")):
            assert cli.main(["send", path]) == 1
        assert "refused" in capsys.readouterr().err

    def test_server_rejection_fails(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        path = _event_file(tmp_path, {"type": "LOGIN", "userId": "u-1"})
        transport = httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))
        real_from_settings = cli.FhirClient.from_settings
        with patch.object(
            cli.FhirClient,
            "from_settings",
            side_effect=lambda settings: real_from_settings(settings, transport=transport),
        ):
            assert cli.main(["send", path]) == 1
        captured = capsys.readouterr()
        assert "status 500" in captured.err
        assert "Sent AuditEvent" not in captured.out


def test_no_command_prints_help(capsys: pytest.CaptureFixture) -> None:
    assert cli.main([]) == 1
    assert "usage" in capsys.readouterr().out
