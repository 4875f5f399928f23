"""Authentication for outgoing AuditEvent deliveries.

Implements the fixed set of strategies selected by :class:`AuthType`:

* **NoAuthProvider** – no ``Authorization`` header.
* **BasicAuthProvider** – ``Basic base64(username:password)``.
* **BearerTokenProvider** – ``Bearer <static token>``.
* **DynamicTokenProvider** – ``Bearer <token>`` minted on every request by
  a host-supplied callable.
* **create_auth_provider** – factory that picks one of the above.
"""

from __future__ import annotations

import abc
import base64
import logging
from typing import Callable, Optional

from fhir_audit_bridge.config.schema import AuthType
from fhir_audit_bridge.display.logging_config import secret_redaction_filter

logger = logging.getLogger(__name__)

# Returns a fresh bearer token (without the "Bearer " prefix) or None
TokenProvider = Callable[[], Optional[str]]


# ── Abstract base ─────────────────────────────────────────────────────


class AuthProvider(abc.ABC):
    """Base class for outgoing-authentication strategies."""

    auth_type: AuthType

    @abc.abstractmethod
    def get_header(self) -> Optional[str]:
        """Return the ``Authorization`` header value, or ``None`` to omit it."""

    @abc.abstractmethod
    def redacted_repr(self) -> str:
        """Human-readable description with sensitive values masked."""


class NoAuthProvider(AuthProvider):
    auth_type = AuthType.NONE

    def get_header(self) -> Optional[str]:
        return None

    def redacted_repr(self) -> str:
        return "NoAuthProvider()"


# ── Static credentials ───────────────────────────────────────────────


class BasicAuthProvider(AuthProvider):
    """HTTP Basic credentials, encoded once at construction.

    An empty *username* disables the header (with a warning); the request
    is still sent.
    """

    auth_type = AuthType.BASIC

    def __init__(self, username: str, password: str) -> None:
        self._username = username or ""
        self._header: Optional[str] = None
        if self._username:
            credentials = f"{self._username}:{password or ''}"
            encoded = base64.b64encode(credentials.encode("utf-8")).decode("ascii")
            self._header = f"Basic {encoded}"
            secret_redaction_filter.register(password or "")
            secret_redaction_filter.register(encoded)
        else:
            logger.warning("Basic auth configured but no username provided")

    def get_header(self) -> Optional[str]:
        return self._header

    def redacted_repr(self) -> str:
        return f"BasicAuthProvider(username={self._username!r}, password=****)"


class BearerTokenProvider(AuthProvider):
    """Fixed bearer token from configuration."""

    auth_type = AuthType.BEARER

    def __init__(self, token: str) -> None:
        self._token = token or ""
        if self._token:
            secret_redaction_filter.register(self._token)
        else:
            logger.warning("Bearer auth configured but no token provided")

    def get_header(self) -> Optional[str]:
        if not self._token:
            return None
        return f"Bearer {self._token}"

    def redacted_repr(self) -> str:
        return f"BearerTokenProvider(token={_redact(self._token)})"


# ── Dynamic token ────────────────────────────────────────────────────


class DynamicTokenProvider(AuthProvider):
    """Bearer token minted by *token_provider* for every single request.

    Nothing is cached.  A failed or empty mint omits the header and the
    request goes out without credentials.
    """

    auth_type = AuthType.DYNAMIC

    def __init__(self, token_provider: Optional[TokenProvider]) -> None:
        self._token_provider = token_provider
        if token_provider is None:
            logger.warning("Dynamic auth configured but no token provider was supplied")

    def get_header(self) -> Optional[str]:
        if self._token_provider is None:
            logger.warning("Dynamic auth configured but token provider not initialized")
            return None

        logger.debug("Requesting bearer token from token provider")
        try:
            token = self._token_provider()
        except Exception as exc:
            logger.warning("Token provider failed: %s - %s", type(exc).__name__, exc)
            token = None

        if not token:
            logger.warning("Dynamic auth configured but failed to obtain token")
            return None

        secret_redaction_filter.register(token, transient=True)
        logger.debug("Obtained bearer token (length: %d)", len(token))
        return f"Bearer {token}"

    def redacted_repr(self) -> str:
        return f"DynamicTokenProvider(token_provider={self._token_provider is not None})"


# ── Factory ──────────────────────────────────────────────────────────


def create_auth_provider(
    auth_type: AuthType | str,
    *,
    username: str = "",
    password: str = "",
    token: str = "",
    token_provider: Optional[TokenProvider] = None,
) -> AuthProvider:
    """Build the :class:`AuthProvider` for *auth_type*.

    Raises :class:`ValueError` for an unknown type.
    """
    try:
        kind = AuthType(auth_type)
    except ValueError:
        raise ValueError(f"Unknown auth type: {auth_type!r}") from None

    if kind is AuthType.NONE:
        return NoAuthProvider()
    if kind is AuthType.BASIC:
        return BasicAuthProvider(username, password)
    if kind is AuthType.BEARER:
        return BearerTokenProvider(token)
    return DynamicTokenProvider(token_provider)


# ── Helpers ──────────────────────────────────────────────────────────


def _redact(value: str, visible: int = 4) -> str:
    """Mask all but the last *visible* characters."""
    if len(value) <= visible:
        return "****"
    return "*" * (len(value) - visible) + value[-visible:]
