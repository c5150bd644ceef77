"""Tests for PKCE, state and request-id generation."""

from __future__ import annotations

import base64
import hashlib
import re

import pytest

from ocalogin import __version__
from ocalogin.auth.pkce import (
    ALNUM,
    URL_SAFE,
    build_request_headers,
    code_challenge,
    generate_code_verifier,
    generate_pkce_pair,
    generate_request_id,
    generate_state,
    random_string,
)
from ocalogin.models import AuthSession, OcaMode


class TestRandomValues:
    def test_state_is_32_alphanumeric_chars(self) -> None:
        state = generate_state()
        assert len(state) == 32
        assert all(c in ALNUM for c in state)

    def test_states_differ(self) -> None:
        assert len({generate_state() for _ in range(20)}) == 20

    def test_verifier_uses_unreserved_characters(self) -> None:
        verifier = generate_code_verifier()
        assert 43 <= len(verifier) <= 128
        assert all(c in URL_SAFE for c in verifier)

    def test_random_string_honours_alphabet(self) -> None:
        assert random_string(16, "ab").strip("ab") == ""

    def test_empty_alphabet_rejected(self) -> None:
        with pytest.raises(ValueError):
            random_string(8, "")


class TestCodeChallenge:
    def test_rfc7636_example(self) -> None:
        # Appendix B of RFC 7636.
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert code_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_pair_matches(self) -> None:
        verifier, challenge = generate_pkce_pair()
        digest = hashlib.sha256(verifier.encode()).digest()
        expected = base64.urlsafe_b64encode(digest).rstrip(b"=").decode()
        assert challenge == expected
        assert "=" not in challenge

    def test_session_begin_carries_fresh_values(self) -> None:
        first = AuthSession.begin(OcaMode.INTERNAL, "")
        second = AuthSession.begin(OcaMode.INTERNAL, "")
        assert first.base_url is None
        assert first.state != second.state
        assert code_challenge(first.code_verifier) == first.code_challenge


class TestRequestId:
    def test_layout(self) -> None:
        request_id = generate_request_id("models-refresh", "token", now=0x01020304)
        assert re.fullmatch(r"[0-9a-f]{32}", request_id)
        assert request_id[:8] == hashlib.sha256(b"token").digest()[:4].hex()
        assert request_id[8:16] == hashlib.sha256(b"models-refresh").digest()[:4].hex()
        assert request_id[16:24] == "01020304"

    def test_random_suffix_varies(self) -> None:
        ids = {generate_request_id("s", "c", now=1) for _ in range(10)}
        assert len(ids) > 1

    def test_headers(self) -> None:
        headers = build_request_headers("secret", "models-refresh")
        assert headers["Authorization"] == "Bearer secret"
        assert headers["client"] == "ocalogin"
        assert headers["client-version"] == f"ocalogin-{__version__}"
        assert len(headers["opc-request-id"]) == 32
