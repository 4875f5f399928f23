"""Event-type mapping rules.

Public API
----------
- :class:`MappingTable` - immutable event type → rule lookup with default
- :class:`EventTypeMapping` / :class:`SubtypeMapping` - rule records
- :func:`get_mapping_table` - cached process-wide table
- :func:`load_mapping_table` / :func:`load_default_mapping` /
  :func:`load_supported_event_types` - uncached loaders
"""

from fhir_audit_bridge.mapping.loader import (
    FALLBACK_DEFAULT_MAPPING,
    EventTypeMapping,
    MappingTable,
    SubtypeMapping,
    build_mapping_table,
    get_mapping_table,
    load_default_mapping,
    load_mapping_table,
    load_supported_event_types,
    read_mapping_document,
    replace_variables,
    reset_mapping_cache,
)

__all__ = [
    "FALLBACK_DEFAULT_MAPPING",
    "EventTypeMapping",
    "MappingTable",
    "SubtypeMapping",
    "build_mapping_table",
    "get_mapping_table",
    "load_default_mapping",
    "load_mapping_table",
    "load_supported_event_types",
    "read_mapping_document",
    "replace_variables",
    "reset_mapping_cache",
]
