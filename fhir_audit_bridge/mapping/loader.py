"""Event-mapping table loading.

Reads the YAML rule set that maps event types to AuditEvent type/action/
outcome codes, substitutes ``$name`` variables from its ``values`` section
and returns an immutable :class:`MappingTable`.

The loader never raises: a missing or malformed resource is logged and
degrades to an empty table with the hardcoded default mapping.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Dict, FrozenSet, Mapping, Optional

import yaml
from pydantic import ValidationError

from fhir_audit_bridge.config.schema import MappingDocument, MappingEntry

logger = logging.getLogger(__name__)

MAPPINGS_RESOURCE = "event-mappings.yaml"
_BUNDLED_MAPPINGS = Path(__file__).resolve().parent / MAPPINGS_RESOURCE


# ── Models ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SubtypeMapping:
    """Explicit AuditEvent subtype coding for an event type."""

    system: Optional[str]
    code: Optional[str]
    display: Optional[str]


@dataclass(frozen=True)
class EventTypeMapping:
    """AuditEvent type coding, action and outcome for one event type."""

    code: Optional[str]
    display: Optional[str]
    action: Optional[str]
    outcome: Optional[str]
    subtype: Optional[SubtypeMapping] = None


FALLBACK_DEFAULT_MAPPING = EventTypeMapping(
    code="110100",
    display="Application Activity",
    action="E",
    outcome="0",
    subtype=None,
)


def _freeze(mappings: Optional[Mapping[str, EventTypeMapping]]) -> Mapping[str, EventTypeMapping]:
    return MappingProxyType(dict(mappings or {}))


@dataclass(frozen=True)
class MappingTable:
    """Read-only event-type lookup with a single default fallback.

    ``mappings`` holds the subject-event rules; its key set is the set of
    supported subject-event types.  ``admin_mappings`` holds the optional
    ``ADMIN_<OPERATION>`` rules and is never part of that set.
    """

    mappings: Mapping[str, EventTypeMapping] = field(default_factory=dict)
    default: EventTypeMapping = FALLBACK_DEFAULT_MAPPING
    admin_mappings: Mapping[str, EventTypeMapping] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "mappings", _freeze(self.mappings))
        object.__setattr__(self, "admin_mappings", _freeze(self.admin_mappings))

    @property
    def supported_event_types(self) -> FrozenSet[str]:
        return frozenset(self.mappings)

    def get(self, event_type: Optional[str]) -> EventTypeMapping:
        """Return the rule for *event_type*, or the default rule."""
        if event_type is None:
            return self.default
        return self.mappings.get(event_type, self.default)

    def get_admin(self, event_type: Optional[str]) -> EventTypeMapping:
        """Return the admin rule for *event_type*, or the default rule."""
        if event_type is None:
            return self.default
        return self.admin_mappings.get(event_type, self.default)

    def __contains__(self, event_type: object) -> bool:
        return event_type in self.mappings

    def __len__(self) -> int:
        return len(self.mappings)


# ── Variable substitution ────────────────────────────────────────────────


def replace_variables(value: Optional[str], variables: Mapping[str, str]) -> Optional[str]:
    """Replace every ``$name`` in *value* with ``variables[name]``.

    Variables are applied one after another in mapping order; replacement
    text is not re-expanded and there is no escape for a literal ``$``.
    """
    if not value or not variables:
        return value
    result = value
    for name, replacement in variables.items():
        result = result.replace(f"${name}", replacement)
    return result


def _to_mapping(entry: MappingEntry, variables: Mapping[str, str]) -> EventTypeMapping:
    subtype = None
    if entry.subtype is not None:
        subtype = SubtypeMapping(
            system=replace_variables(entry.subtype.system, variables),
            code=replace_variables(entry.subtype.code, variables),
            display=replace_variables(entry.subtype.display, variables),
        )
    return EventTypeMapping(
        code=replace_variables(entry.code, variables),
        display=replace_variables(entry.display, variables),
        action=replace_variables(entry.action, variables),
        outcome=replace_variables(entry.outcome, variables),
        subtype=subtype,
    )


# ── Reading ──────────────────────────────────────────────────────────────


def _read_text(path: Optional[str]) -> Optional[str]:
    if path is None:
        if not _BUNDLED_MAPPINGS.is_file():
            logger.warning("Event mappings resource %s not found", _BUNDLED_MAPPINGS)
            return None
        return _BUNDLED_MAPPINGS.read_text(encoding="utf-8")
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read()
    except FileNotFoundError:
        logger.warning("Event mappings file %s not found", path)
        return None


def read_mapping_document(path: Optional[str] = None) -> Optional[MappingDocument]:
    """Read and validate the mapping document.

    *path* selects a YAML file on disk; the bundled resource is used when
    it is ``None``.  Returns ``None`` (after logging) when the document is
    missing, unreadable or does not have the expected shape.
    """
    source = path or MAPPINGS_RESOURCE
    try:
        text = _read_text(path)
        if text is None:
            return None
        data = yaml.safe_load(text)
    except Exception as exc:
        logger.error("Failed to read event mappings from %s: %s", source, exc)
        return None

    if not isinstance(data, dict):
        logger.error("Event mappings in %s must be a YAML mapping", source)
        return None

    try:
        return MappingDocument.model_validate(data)
    except ValidationError as exc:
        logger.error(
            "Event mappings in %s are malformed (%d error(s)): %s",
            source,
            len(exc.errors()),
            exc,
        )
        return None


def _variables(document: MappingDocument) -> Dict[str, str]:
    variables = {k: v for k, v in document.values.items() if v is not None}
    logger.debug("Loaded %d mapping variable(s)", len(variables))
    return variables


def build_mapping_table(document: Optional[MappingDocument]) -> MappingTable:
    """Turn a parsed document into a :class:`MappingTable`."""
    if document is None:
        return MappingTable()

    variables = _variables(document)
    mappings = {k: _to_mapping(v, variables) for k, v in document.event_mappings.items()}
    admin_mappings = {
        k: _to_mapping(v, variables) for k, v in document.admin_event_mappings.items()
    }
    default = (
        _to_mapping(document.default_mapping, variables)
        if document.default_mapping is not None
        else FALLBACK_DEFAULT_MAPPING
    )
    logger.info(
        "Loaded %d event type mapping(s) and %d admin mapping(s)",
        len(mappings),
        len(admin_mappings),
    )
    return MappingTable(mappings=mappings, default=default, admin_mappings=admin_mappings)


# ── Public API ───────────────────────────────────────────────────────────


def load_mapping_table(path: Optional[str] = None) -> MappingTable:
    """Parse the mapping resource into a fresh table (no caching)."""
    return build_mapping_table(read_mapping_document(path))


def load_default_mapping(path: Optional[str] = None) -> EventTypeMapping:
    """Return the configured default rule, or the hardcoded fallback."""
    return load_mapping_table(path).default


def load_supported_event_types(path: Optional[str] = None) -> FrozenSet[str]:
    """Return the key set of :func:`load_mapping_table`."""
    return load_mapping_table(path).supported_event_types


@functools.lru_cache(maxsize=None)
def get_mapping_table(path: Optional[str] = None) -> MappingTable:
    """Process-wide cached table for *path*.

    The extractor and builder share this instance by default so the YAML
    is parsed once per process.
    """
    return load_mapping_table(path)


def reset_mapping_cache() -> None:
    """Drop cached tables so the next :func:`get_mapping_table` re-reads."""
    get_mapping_table.cache_clear()
