"""Signed tokens and password hashing.

Token wire format::

    base64url(json payload) "." base64url(hmac_sha256(secret, encoded payload))

Payloads are signed, not encrypted: they only carry a type tag, an expiry
(``exp``, epoch milliseconds) and for share tokens a read-only flag, a random
nonce and an optional password digest. Every signature and digest comparison
goes through ``hmac.compare_digest``.
"""

import base64
import binascii
import hashlib
import hmac
import json
import re
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from passlib.context import CryptContext

SESSION_TOKEN_TYPE = "session"
SHARE_TOKEN_TYPE = "share"

MAX_TOKEN_LENGTH = 2048
# Keeps opaque session signatures distinct from signed-payload signatures
_OPAQUE_PREFIX = "sid:"
_SEGMENT_RE = re.compile(r"^[A-Za-z0-9_-]+$")

Clock = Callable[[], float]


# =============================================================================
# Password hashing
# =============================================================================


def build_password_context(rounds: int = 12) -> CryptContext:
    """bcrypt context for stored account passwords."""
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


def constant_time_equals(a: str, b: str) -> bool:
    """Compare two strings without leaking the mismatch position."""
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


# =============================================================================
# Token payloads
# =============================================================================


def _ms_to_datetime(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


@dataclass(frozen=True)
class SessionPayload:
    """Full-access session token contents."""

    exp: int

    @property
    def expires_at(self) -> datetime:
        return _ms_to_datetime(self.exp)


@dataclass(frozen=True)
class SharePayload:
    """Read-only share token contents."""

    exp: int
    read_only: bool = True
    password_digest: str | None = None

    @property
    def expires_at(self) -> datetime:
        return _ms_to_datetime(self.exp)

    @property
    def password_protected(self) -> bool:
        return self.password_digest is not None


TokenPayload = SessionPayload | SharePayload


def is_well_formed_token(token: str | None) -> bool:
    """Cheap shape check: two non-empty base64url segments, bounded length."""
    if not token or len(token) > MAX_TOKEN_LENGTH:
        return False
    parts = token.split(".")
    return len(parts) == 2 and all(_SEGMENT_RE.match(part) for part in parts)


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64decode(segment: str) -> bytes:
    padded = segment + "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


# =============================================================================
# Token codec
# =============================================================================


class TokenCodec:
    """Issues and verifies HMAC-signed session and share tokens.

    The secret is fixed for the life of the codec. Rotating it invalidates
    every outstanding session and share token.
    """

    SESSION_TTL_MS = 7 * 24 * 60 * 60 * 1000

    def __init__(
        self,
        secret: str,
        clock: Clock = time.time,
        session_ttl_ms: int = SESSION_TTL_MS,
    ):
        if not secret:
            raise ValueError("TokenCodec requires a non-empty secret")
        self._key = secret.encode("utf-8")
        self._clock = clock
        self.session_ttl_ms = session_ttl_ms

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _sign(self, data: str) -> str:
        return _b64encode(hmac.new(self._key, data.encode("ascii"), hashlib.sha256).digest())

    def _encode(self, payload: dict) -> str:
        body = _b64encode(json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8"))
        return f"{body}.{self._sign(body)}"

    def password_digest(self, password: str) -> str:
        """Keyed digest of a share password, hex encoded."""
        return hmac.new(self._key, password.encode("utf-8"), hashlib.sha256).hexdigest()

    # Issuance

    def issue_session_token(self, ttl_ms: int | None = None) -> str:
        ttl = self.session_ttl_ms if ttl_ms is None else ttl_ms
        return self._encode({"type": SESSION_TOKEN_TYPE, "exp": self.now_ms() + ttl})

    def issue_share(self, expires_in_hours: float, password: str | None = None) -> tuple[str, SharePayload]:
        """Issue a share token and return it along with its payload."""
        exp = self.now_ms() + int(expires_in_hours * 60 * 60 * 1000)
        digest = self.password_digest(password) if password else None
        # The nonce gives every link its own token, and so its own revocation record
        payload: dict = {"type": SHARE_TOKEN_TYPE, "exp": exp, "readOnly": True, "nonce": secrets.token_urlsafe(9)}
        if digest:
            payload["passwordDigest"] = digest
        return self._encode(payload), SharePayload(exp=exp, read_only=True, password_digest=digest)

    def issue_share_token(self, expires_in_hours: float, password: str | None = None) -> str:
        return self.issue_share(expires_in_hours, password)[0]

    # Verification

    def verify(self, token: str | None) -> TokenPayload | None:
        """Return the typed payload of a valid token, otherwise None.

        Never raises: malformed, forged, expired and unknown-type tokens
        all come back as None.
        """
        if not is_well_formed_token(token):
            return None

        body, _, signature = token.rpartition(".")
        if not constant_time_equals(signature, self._sign(body)):
            return None

        try:
            data = json.loads(_b64decode(body))
        except (binascii.Error, ValueError):
            return None
        if not isinstance(data, dict):
            return None

        exp = data.get("exp")
        if isinstance(exp, bool) or not isinstance(exp, (int, float)):
            return None
        if self.now_ms() >= exp:
            return None

        token_type = data.get("type")
        if token_type == SESSION_TOKEN_TYPE:
            return SessionPayload(exp=int(exp))
        if token_type == SHARE_TOKEN_TYPE:
            digest = data.get("passwordDigest")
            if digest is not None and not isinstance(digest, str):
                return None
            return SharePayload(exp=int(exp), read_only=True, password_digest=digest)
        return None

    def verify_session(self, token: str | None) -> SessionPayload | None:
        payload = self.verify(token)
        return payload if isinstance(payload, SessionPayload) else None

    def verify_share(self, token: str | None) -> SharePayload | None:
        payload = self.verify(token)
        return payload if isinstance(payload, SharePayload) else None

    def verify_share_password(self, candidate: str, digest: str) -> bool:
        return constant_time_equals(self.password_digest(candidate), digest)

    # Opaque persisted-session tokens

    def sign_opaque(self, value: str) -> str:
        """Append a signature to a random session identifier."""
        return f"{value}.{self._sign(_OPAQUE_PREFIX + value)}"

    def unsign_opaque(self, signed: str | None) -> str | None:
        """Return the identifier inside ``sign_opaque`` output, or None if tampered."""
        if not is_well_formed_token(signed):
            return None
        value, _, signature = signed.rpartition(".")
        if not constant_time_equals(signature, self._sign(_OPAQUE_PREFIX + value)):
            return None
        return value


def generate_session_identifier() -> str:
    """Random opaque identifier stored in the sessions table."""
    return secrets.token_urlsafe(32)
