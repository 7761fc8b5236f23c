"""Security middleware for share-token redaction and response hardening.

Share tokens travel in the ``?share=`` query string, so they show up in
access logs, exception messages and Referer headers unless removed. A leaked
share token grants read access until it expires or is revoked.
"""

import logging
import re
from typing import Callable, Iterable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

# Matches share=<token> in query strings and full URLs (raw or percent-encoded)
SHARE_TOKEN_PATTERN = re.compile(r"(share=)([A-Za-z0-9_\-.%]+)")
TOKEN_REDACTED = "[TOKEN_REDACTED]"

SHARE_QUERY_PARAM = "share"


def redact_share_tokens(value: str) -> str:
    """Replace every share token in ``value`` with [TOKEN_REDACTED]."""
    return SHARE_TOKEN_PATTERN.sub(rf"\1{TOKEN_REDACTED}", value)


def sanitize_for_log(value: str | None) -> str:
    """Mask a secret for logging, keeping 4 characters at each end.

    Values of 8 characters or fewer are masked entirely.
    """
    if not value:
        return ""
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:4]}{'*' * 8}{value[-4:]}"


class ShareTokenRedactionFilter(logging.Filter):
    """Logging filter that redacts share tokens from log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Filter and redact tokens from log record."""
        if isinstance(record.msg, str):
            record.msg = redact_share_tokens(record.msg)

        if record.args:
            if isinstance(record.args, tuple):
                record.args = tuple(
                    redact_share_tokens(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )
            elif isinstance(record.args, dict):
                record.args = {
                    k: redact_share_tokens(v) if isinstance(v, str) else v
                    for k, v in record.args.items()
                }

        # Always allow the record through (after redaction)
        return True


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add standard security headers to all responses.

    Requests that carry a share token additionally get
    ``Referrer-Policy: no-referrer`` so the token never leaks to third parties.
    Responses under ``api_prefix`` get a locked-down CSP and default to
    ``no-store`` unless the handler set its own Cache-Control.
    """

    def __init__(self, app, api_prefix: str = "/api"):
        super().__init__(app)
        self.api_prefix = api_prefix.rstrip("/") + "/"

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        # X-XSS-Protection disabled - can cause vulnerabilities, CSP is preferred
        response.headers["X-XSS-Protection"] = "0"
        response.headers["Permissions-Policy"] = (
            "accelerometer=(), camera=(), geolocation=(), gyroscope=(), "
            "magnetometer=(), microphone=(), payment=(), usb=()"
        )

        if SHARE_QUERY_PARAM in request.query_params:
            response.headers["Referrer-Policy"] = "no-referrer"
        else:
            response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        if request.url.path.startswith(self.api_prefix):
            response.headers["Content-Security-Policy"] = (
                "default-src 'none'; frame-ancestors 'none'"
            )
            if "Cache-Control" not in response.headers:
                response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, private"

        return response


def install_token_redaction_logging(
    handlers: Iterable[logging.Handler] | None = None,
) -> ShareTokenRedactionFilter:
    """Install the share-token redaction filter on log handlers.

    Logger filters only see records created on that exact logger, so the
    filter goes on handlers, which see every record propagated to them.
    Defaults to the root logger's handlers.
    """
    redaction_filter = ShareTokenRedactionFilter()
    if handlers is None:
        handlers = logging.getLogger().handlers

    for handler in handlers:
        if not any(isinstance(f, ShareTokenRedactionFilter) for f in handler.filters):
            handler.addFilter(redaction_filter)

    return redaction_filter


def redact_exception_args(exc: Exception) -> Exception:
    """Redact share tokens from exception arguments."""
    if exc.args:
        exc.args = tuple(
            redact_share_tokens(arg) if isinstance(arg, str) else arg
            for arg in exc.args
        )
    return exc
