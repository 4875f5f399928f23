"""Shared fixtures for the FHIR Audit Bridge test suite."""

from __future__ import annotations

from typing import Iterator

import pytest

from fhir_audit_bridge.display.logging_config import secret_redaction_filter
from fhir_audit_bridge.mapping.loader import reset_mapping_cache


@pytest.fixture(autouse=True)
def _fresh_process_state() -> Iterator[None]:
    reset_mapping_cache()
    yield
    reset_mapping_cache()
    secret_redaction_filter.clear()
