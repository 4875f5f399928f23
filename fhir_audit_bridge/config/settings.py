"""Process configuration lookup.

Every setting is read from an explicit override mapping first, then from
the environment, then from a hardcoded default.  Blank values are treated
as absent at each level.

Usage::

    from fhir_audit_bridge.config.settings import load_settings

    settings = load_settings({"FHIR_AUTH_TYPE": "bearer", "FHIR_AUTH_TOKEN": "abc"})
    settings.auth_type  # AuthType.BEARER
"""

from __future__ import annotations

import logging
import os
from typing import List, Mapping, Optional

from pydantic import ValidationError

from fhir_audit_bridge.config.schema import AuthType, BridgeSettings
from fhir_audit_bridge.constants import CONNECTION_TIMEOUT_SECONDS, REQUEST_TIMEOUT_SECONDS
from fhir_audit_bridge.errors import ConfigurationError

logger = logging.getLogger(__name__)

# ── Environment variable names ───────────────────────────────────────────

FHIR_SERVER_URL = "FHIR_SERVER_URL"
FHIR_AUTH_TYPE = "FHIR_AUTH_TYPE"
FHIR_AUTH_USERNAME = "FHIR_AUTH_USERNAME"
FHIR_AUTH_PASSWORD = "FHIR_AUTH_PASSWORD"
FHIR_AUTH_TOKEN = "FHIR_AUTH_TOKEN"
FHIR_ADMIN_EVENTS_ENABLED = "FHIR_ADMIN_EVENTS_ENABLED"
FHIR_ASYNC_ENABLED = "FHIR_ASYNC_ENABLED"
FHIR_DEBUG_ENABLED = "FHIR_DEBUG_ENABLED"
FHIR_CONNECT_TIMEOUT = "FHIR_CONNECT_TIMEOUT"
FHIR_REQUEST_TIMEOUT = "FHIR_REQUEST_TIMEOUT"
FHIR_MAPPINGS_FILE = "FHIR_MAPPINGS_FILE"

# ── Defaults ─────────────────────────────────────────────────────────────

DEFAULT_FHIR_SERVER_URL = "http://localhost:8080/fhir"
DEFAULT_AUTH_TYPE = "none"
DEFAULT_ADMIN_EVENTS_ENABLED = False
DEFAULT_ASYNC_ENABLED = True
DEFAULT_DEBUG_ENABLED = False

# Older deployments select dynamic tokens with FHIR_AUTH_TYPE=keycloak.
_AUTH_TYPE_ALIASES = {"keycloak": AuthType.DYNAMIC.value}


def get_config(
    key: str,
    default: Optional[str] = None,
    *,
    overrides: Optional[Mapping[str, str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Optional[str]:
    """Return the trimmed value for *key*, or *default* when unset or blank."""
    env = os.environ if environ is None else environ
    for source in (overrides or {}, env):
        value = source.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return default


def get_bool_config(
    key: str,
    default: bool,
    *,
    overrides: Optional[Mapping[str, str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> bool:
    """Boolean variant of :func:`get_config`.

    Only ``true`` (any case) is truthy; every other non-blank value is
    ``False``.
    """
    value = get_config(key, None, overrides=overrides, environ=environ)
    if value is None:
        return default
    return value.lower() == "true"


def _get_float(
    key: str,
    default: float,
    overrides: Optional[Mapping[str, str]],
    environ: Optional[Mapping[str, str]],
) -> float:
    value = get_config(key, None, overrides=overrides, environ=environ)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ConfigurationError(f"{key} must be a number of seconds, got {value!r}") from exc


def _format_validation_errors(exc: ValidationError) -> str:
    """Format Pydantic validation errors into a readable multi-line string."""
    lines: List[str] = []
    for err in exc.errors():
        loc = " → ".join(str(part) for part in err["loc"])
        lines.append(f"  • {loc}: {err['msg']}")
    return "\n".join(lines)


def load_settings(
    overrides: Optional[Mapping[str, str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> BridgeSettings:
    """Resolve all settings into a validated :class:`BridgeSettings`.

    Parameters
    ----------
    overrides:
        Process-level values (for example host system properties).  These
        win over *environ*.
    environ:
        Environment mapping; defaults to :data:`os.environ`.

    Raises
    ------
    ConfigurationError
        On an unknown auth type, a non-numeric timeout or a failed
        model validation.
    """

    def _str(key: str, default: Optional[str] = None) -> Optional[str]:
        return get_config(key, default, overrides=overrides, environ=environ)

    def _bool(key: str, default: bool) -> bool:
        return get_bool_config(key, default, overrides=overrides, environ=environ)

    auth_raw = (_str(FHIR_AUTH_TYPE, DEFAULT_AUTH_TYPE) or DEFAULT_AUTH_TYPE).lower()
    auth_raw = _AUTH_TYPE_ALIASES.get(auth_raw, auth_raw)
    try:
        auth_type = AuthType(auth_raw)
    except ValueError as exc:
        allowed = ", ".join(a.value for a in AuthType)
        raise ConfigurationError(
            f"Unknown {FHIR_AUTH_TYPE} {auth_raw!r} (expected one of: {allowed})"
        ) from exc

    raw = {
        "server_url": _str(FHIR_SERVER_URL, DEFAULT_FHIR_SERVER_URL),
        "auth_type": auth_type,
        "auth_username": _str(FHIR_AUTH_USERNAME, ""),
        "auth_password": _str(FHIR_AUTH_PASSWORD, ""),
        "auth_token": _str(FHIR_AUTH_TOKEN, ""),
        "admin_events_enabled": _bool(FHIR_ADMIN_EVENTS_ENABLED, DEFAULT_ADMIN_EVENTS_ENABLED),
        "async_enabled": _bool(FHIR_ASYNC_ENABLED, DEFAULT_ASYNC_ENABLED),
        "debug_enabled": _bool(FHIR_DEBUG_ENABLED, DEFAULT_DEBUG_ENABLED),
        "connect_timeout": _get_float(
            FHIR_CONNECT_TIMEOUT, CONNECTION_TIMEOUT_SECONDS, overrides, environ
        ),
        "request_timeout": _get_float(
            FHIR_REQUEST_TIMEOUT, REQUEST_TIMEOUT_SECONDS, overrides, environ
        ),
        "mappings_file": _str(FHIR_MAPPINGS_FILE),
    }

    try:
        settings = BridgeSettings.model_validate(raw)
    except ValidationError as exc:
        error_summary = _format_validation_errors(exc)
        raise ConfigurationError(
            f"Configuration validation failed ({len(exc.errors())} error(s)):\n" f"{error_summary}"
        ) from exc

    logger.debug("Settings resolved: %s", settings.redacted_repr())
    return settings
