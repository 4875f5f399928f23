"""Tests for outgoing authentication providers."""

from __future__ import annotations

import base64
from typing import List, Optional

import pytest

from fhir_audit_bridge.client.auth import (
    BasicAuthProvider,
    BearerTokenProvider,
    DynamicTokenProvider,
    NoAuthProvider,
    _redact,
    create_auth_provider,
)
from fhir_audit_bridge.config.schema import AuthType
from fhir_audit_bridge.constants import TRANSIENT_SECRET_LIMIT
from fhir_audit_bridge.display.logging_config import secret_redaction_filter

# ── Static providers ────────────────────────────────────────────────────


class TestNoAuthProvider:
    def test_no_header(self) -> None:
        assert NoAuthProvider().get_header() is None


class TestBasicAuthProvider:
    def test_header(self) -> None:
        header = BasicAuthProvider("user", "s3cret").get_header()
        assert header == "Basic " + base64.b64encode(b"user:s3cret").decode("ascii")

    def test_empty_password_still_sends(self) -> None:
        header = BasicAuthProvider("user", "").get_header()
        assert header == "Basic " + base64.b64encode(b"user:").decode("ascii")

    def test_empty_username_omits_header(self, caplog: pytest.LogCaptureFixture) -> None:
        provider = BasicAuthProvider("", "pw")
        assert provider.get_header() is None
        assert "no username" in caplog.text

    def test_redacted_repr_hides_password(self) -> None:
        r = BasicAuthProvider("user", "hunter22").redacted_repr()
        assert "hunter22" not in r
        assert "user" in r

    def test_registers_secrets(self) -> None:
        BasicAuthProvider("user", "hunter22")
        assert "hunter22" in secret_redaction_filter._secrets


class TestBearerTokenProvider:
    def test_header(self) -> None:
        assert BearerTokenProvider("abc123").get_header() == "Bearer abc123"

    def test_empty_token_omits_header(self) -> None:
        assert BearerTokenProvider("").get_header() is None

    def test_redacted_repr(self) -> None:
        r = BearerTokenProvider("ghp_1234567890abcdef").redacted_repr()
        assert "ghp_1234567890abcdef" not in r
        assert r.endswith("cdef)")


# ── Dynamic provider ────────────────────────────────────────────────────


class TestDynamicTokenProvider:
    def test_mints_per_call(self) -> None:
        tokens = iter(["tok-1", "tok-2"])
        provider = DynamicTokenProvider(lambda: next(tokens))
        assert provider.get_header() == "Bearer tok-1"
        assert provider.get_header() == "Bearer tok-2"

    def test_no_provider(self) -> None:
        assert DynamicTokenProvider(None).get_header() is None

    def test_empty_token_omits_header(self) -> None:
        assert DynamicTokenProvider(lambda: "").get_header() is None
        assert DynamicTokenProvider(lambda: None).get_header() is None

    def test_provider_exception_omits_header(self, caplog: pytest.LogCaptureFixture) -> None:
        def boom() -> Optional[str]:
            raise RuntimeError("token endpoint down")

        assert DynamicTokenProvider(boom).get_header() is None
        assert "token endpoint down" in caplog.text

    def test_minted_token_registered_for_redaction(self) -> None:
        DynamicTokenProvider(lambda: "minted-token").get_header()
        assert "minted-token" in secret_redaction_filter._transient
        assert "minted-token" not in secret_redaction_filter._secrets

    def test_minted_tokens_do_not_accumulate(self) -> None:
        counter = iter(range(1000))
        provider = DynamicTokenProvider(lambda: f"minted-token-{next(counter)}")
        for _ in range(200):
            provider.get_header()
        assert len(secret_redaction_filter._transient) == TRANSIENT_SECRET_LIMIT
        assert "minted-token-199" in secret_redaction_filter._transient
        assert "minted-token-0" not in secret_redaction_filter._transient


# ── Factory ─────────────────────────────────────────────────────────────


class TestCreateAuthProvider:
    def test_none(self) -> None:
        assert isinstance(create_auth_provider("none"), NoAuthProvider)

    def test_basic(self) -> None:
        p = create_auth_provider(AuthType.BASIC, username="u", password="p")
        assert isinstance(p, BasicAuthProvider)

    def test_bearer(self) -> None:
        p = create_auth_provider("bearer", token="t")
        assert isinstance(p, BearerTokenProvider)
        assert p.get_header() == "Bearer t"

    def test_dynamic(self) -> None:
        calls: List[int] = []

        def provider() -> str:
            calls.append(1)
            return "x"

        p = create_auth_provider("dynamic", token_provider=provider)
        assert isinstance(p, DynamicTokenProvider)
        p.get_header()
        assert calls == [1]

    def test_unknown_type_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown auth type"):
            create_auth_provider("oauth2")


class TestRedact:
    def test_short_value(self) -> None:
        assert _redact("abc") == "****"

    def test_long_value(self) -> None:
        assert _redact("abcdefgh") == "****efgh"
