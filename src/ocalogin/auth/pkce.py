"""PKCE, state and request-id helpers.

Everything here draws from :mod:`secrets`, so values are safe to use as
OAuth state/nonce and PKCE verifiers. :func:`generate_request_id` is the
exception: it builds the ``opc-request-id`` correlation header that support
staff use to trace a request, and it must never be treated as a secret.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
import struct
import time
from typing import Optional

from ocalogin import __version__

ALNUM = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"
URL_SAFE = ALNUM + "-._~"

STATE_LENGTH = 32
VERIFIER_LENGTH = 128

CLIENT_NAME = "ocalogin"


def random_string(length: int = STATE_LENGTH, alphabet: str = ALNUM) -> str:
    """Return *length* characters, one per random byte, mapped through *alphabet*."""
    if not alphabet:
        raise ValueError("alphabet must not be empty")
    return "".join(alphabet[b % len(alphabet)] for b in secrets.token_bytes(length))


def generate_state() -> str:
    """Generate a 32-character state/nonce value."""
    return random_string(STATE_LENGTH, ALNUM)


def generate_code_verifier(length: int = VERIFIER_LENGTH) -> str:
    """Generate a PKCE code verifier from the RFC 7636 unreserved characters."""
    return random_string(length, URL_SAFE)


def code_challenge(verifier: str) -> str:
    """Return the S256 challenge for *verifier* (base64url, no padding)."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_pkce_pair() -> tuple[str, str]:
    """Generate a PKCE code_verifier and code_challenge (S256).

    Returns:
        A tuple of ``(code_verifier, code_challenge)``.
    """
    verifier = generate_code_verifier()
    return verifier, code_challenge(verifier)


def _hash8(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).digest()[:4].hex()


def generate_request_id(
    session_id: str, credential: str, *, now: Optional[float] = None
) -> str:
    """Build a 32-hex-character ``opc-request-id``.

    Layout, 8 hex characters each: SHA-256 prefix of *credential*, SHA-256
    prefix of *session_id*, Unix seconds (big-endian), random.

    Args:
        session_id: Identifies the calling operation (e.g. ``"models-refresh"``).
        credential: The bearer token sent with the request.
        now: Override for the timestamp, in seconds since the epoch.
    """
    seconds = int(time.time() if now is None else now) & 0xFFFFFFFF
    timestamp = struct.pack(">I", seconds).hex()
    return _hash8(credential) + _hash8(session_id) + timestamp + secrets.token_bytes(4).hex()


def build_request_headers(credential: str, session_id: str) -> dict[str, str]:
    """Return the headers sent with every catalog request."""
    return {
        "Authorization": f"Bearer {credential}",
        "Content-Type": "application/json",
        "client": CLIENT_NAME,
        "client-version": f"{CLIENT_NAME}-{__version__}",
        "opc-request-id": generate_request_id(session_id, credential),
    }
