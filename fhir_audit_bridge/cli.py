"""CLI argument parsing and main entry point.

Offline helpers around the event pipeline:

* ``fhir-audit-bridge mappings`` - print the loaded event-type rules.
* ``fhir-audit-bridge build FILE`` - print the AuditEvent for a raw event.
* ``fhir-audit-bridge send FILE`` - build and POST it synchronously.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from fhir_audit_bridge.audit.builder import AuditEventBuilder, AuditRecord
from fhir_audit_bridge.audit.serialization import to_pretty_json
from fhir_audit_bridge.client.fhir_client import FhirClient
from fhir_audit_bridge.config.settings import FHIR_ASYNC_ENABLED, load_settings
from fhir_audit_bridge.constants import SERVER_NAME, SERVER_VERSION
from fhir_audit_bridge.display.logging_config import setup_logging
from fhir_audit_bridge.errors import BridgeBaseError
from fhir_audit_bridge.events.extractor import EventExtractor
from fhir_audit_bridge.events.models import AdminEvent, UserEvent
from fhir_audit_bridge.mapping.loader import MappingTable, get_mapping_table

module_logger = logging.getLogger(__name__)


def _read_raw_event(path: str) -> Dict[str, Any]:
    if path == "-":
        data = json.load(sys.stdin)
    else:
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a JSON object")
    return data


def _build_record(raw: Dict[str, Any], table: MappingTable) -> Optional[AuditRecord]:
    """Normalize and build; a raw event with ``operationType`` is an admin event."""
    extractor = EventExtractor(table)
    if "operationType" in raw:
        normalized = extractor.extract_admin_event(AdminEvent.from_dict(raw))
    else:
        normalized = extractor.extract_subject_event(UserEvent.from_dict(raw))
    if normalized is None:
        return None
    return AuditEventBuilder(table).build(normalized)


# ── ``fhir-audit-bridge mappings`` ─────────────────────────────────────


def _cmd_mappings(args: argparse.Namespace) -> int:
    table = get_mapping_table(args.mappings)
    rows: List[tuple] = [
        (name, m.code, m.display, m.action, m.outcome) for name, m in sorted(table.mappings.items())
    ]
    rows += [
        (name, m.code, m.display, m.action, m.outcome)
        for name, m in sorted(table.admin_mappings.items())
    ]
    d = table.default
    rows.append(("(default)", d.code, d.display, d.action, d.outcome))

    width = max(len(r[0]) for r in rows)
    for name, code, display, action, outcome in rows:
        print(f"{name:<{width}}  {code or '-':<8}  {action or '-':<2}  {outcome or '-':<2}  {display or ''}")
    return 0


# ── ``fhir-audit-bridge build`` / ``send`` ─────────────────────────────


def _cmd_build(args: argparse.Namespace) -> int:
    raw = _read_raw_event(args.file)
    record = _build_record(raw, get_mapping_table(args.mappings))
    if record is None:
        print(f"Event type {raw.get('type')!r} is not supported", file=sys.stderr)
        return 1
    print(to_pretty_json(record))
    return 0


def _cmd_send(args: argparse.Namespace) -> int:
    settings = load_settings({FHIR_ASYNC_ENABLED: "false"})
    raw = _read_raw_event(args.file)
    record = _build_record(raw, get_mapping_table(args.mappings or settings.mappings_file))
    if record is None:
        print(f"Event type {raw.get('type')!r} is not supported", file=sys.stderr)
        return 1

    client = FhirClient.from_settings(settings)
    try:
        status = client.send_sync(record)
    finally:
        client.close()
    if status is None or not 200 <= status < 300:
        print(f"FHIR server rejected AuditEvent {record['id']}: status {status}", file=sys.stderr)
        return 1
    print(f"Sent AuditEvent {record['id']} to {client.endpoint} (status {status})")
    return 0


# ── CLI parser construction ──────────────────────────────────────────────


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser with mappings/build/send subcommands."""
    parser = argparse.ArgumentParser(
        prog="fhir-audit-bridge",
        description=f"{SERVER_NAME} v{SERVER_VERSION}",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="warning",
        choices=["debug", "info", "warning", "error", "critical"],
        help="Set logging level (default: warning)",
    )
    parser.add_argument(
        "--mappings",
        type=str,
        default=None,
        metavar="PATH",
        help="Event-mappings YAML file (default: bundled mappings)",
    )

    subparsers = parser.add_subparsers(dest="command")

    sp_mappings = subparsers.add_parser("mappings", help="Print the loaded event-type mappings")
    sp_mappings.set_defaults(func=_cmd_mappings)

    sp_build = subparsers.add_parser(
        "build",
        help="Print the FHIR AuditEvent built from a raw event JSON file",
    )
    sp_build.add_argument("file", metavar="FILE", help="Raw event JSON ('-' for stdin)")
    sp_build.set_defaults(func=_cmd_build)

    sp_send = subparsers.add_parser(
        "send",
        help="Build an AuditEvent and POST it using FHIR_* environment settings",
    )
    sp_send.add_argument("file", metavar="FILE", help="Raw event JSON ('-' for stdin)")
    sp_send.set_defaults(func=_cmd_send)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Program entry point: parse arguments and dispatch to subcommand."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    setup_logging(args.log_level)
    try:
        return args.func(args)
    except (BridgeBaseError, OSError, ValueError) as exc:
        module_logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
