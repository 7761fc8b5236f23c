"""Double-submit CSRF protection.

Token format: ``<random hex>.<issued-at ms, hex>.<hmac_sha256 hex>``.

A mutating request must send the same token in the ``aud_csrf`` cookie and
the ``x-csrf-token`` header, and the token must carry a valid signature and
be younger than the configured max age. Safe methods skip the check.
"""

import hashlib
import hmac
import secrets
import time

from usage_dashboard.core.request_context import RequestContext
from usage_dashboard.core.security import Clock, constant_time_equals

CSRF_COOKIE_NAME = "aud_csrf"
CSRF_HEADER_NAME = "x-csrf-token"


class CsrfGuard:
    """Issues and validates CSRF tokens signed with a CSRF-only key."""

    def __init__(self, secret: str, max_age_seconds: int = 24 * 60 * 60, clock: Clock = time.time):
        if not secret:
            raise ValueError("CsrfGuard requires a non-empty secret")
        self._key = secret.encode("utf-8")
        self.max_age_ms = max_age_seconds * 1000
        self._clock = clock

    def _signature(self, data: str) -> str:
        return hmac.new(self._key, data.encode("ascii"), hashlib.sha256).hexdigest()

    def issue(self) -> str:
        issued_at = format(int(self._clock() * 1000), "x")
        data = f"{secrets.token_hex(32)}.{issued_at}"
        return f"{data}.{self._signature(data)}"

    def verify_token(self, token: str | None) -> bool:
        """Check signature and age of a token on its own."""
        if not token:
            return False
        parts = token.split(".")
        if len(parts) != 3 or not all(parts):
            return False
        random_part, issued_at, signature = parts
        try:
            issued_at_ms = int(issued_at, 16)
            bytes.fromhex(random_part)
        except ValueError:
            return False

        if not constant_time_equals(signature, self._signature(f"{random_part}.{issued_at}")):
            return False

        age = int(self._clock() * 1000) - issued_at_ms
        return 0 <= age <= self.max_age_ms

    def validate(self, context: RequestContext) -> bool:
        if context.is_safe_method:
            return True

        cookie_token = context.cookie(CSRF_COOKIE_NAME)
        header_token = context.header(CSRF_HEADER_NAME)
        if not cookie_token or not header_token:
            return False
        if not constant_time_equals(cookie_token, header_token):
            return False
        return self.verify_token(cookie_token)
