"""Structured security event logging.

All security events follow a consistent schema:
- timestamp: ISO8601 UTC timestamp
- event_type: Hierarchical event type (e.g., security.auth.login_success)
- severity: info, warning, error, critical
- user_id: User who triggered the event (if known)
- ip_address: Client IP address
- user_agent: Client user agent
- details: Event-specific additional data

Share tokens are never logged in full; they pass through ``sanitize_for_log``.

Usage:
    from usage_dashboard.core.security_events import SecurityEventLogger

    events = SecurityEventLogger()
    events.log_login_failure(identifier="a@b.c", ip_address="10.0.0.1")
"""

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from usage_dashboard.core.middleware import sanitize_for_log

# Dedicated security logger - configure to send to SIEM
security_logger = logging.getLogger("security.events")


class EventSeverity(str, Enum):
    """Security event severity levels."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class SecurityEventType(str, Enum):
    """Enumeration of all security event types.

    Hierarchical naming: category.subcategory.event
    """
    # Authentication events
    AUTH_LOGIN_SUCCESS = "security.auth.login_success"
    AUTH_LOGIN_FAILURE = "security.auth.login_failure"
    AUTH_LOGOUT = "security.auth.logout"
    AUTH_SESSION_INVALID = "security.auth.session_invalid"
    AUTH_CSRF_FAILURE = "security.auth.csrf_failure"

    # Access control events
    ACCESS_DENIED = "security.access.denied"

    # Share link events
    SHARE_CREATED = "security.share.created"
    SHARE_ACCESSED = "security.share.accessed"
    SHARE_DENIED = "security.share.denied"
    SHARE_REVOKED = "security.share.revoked"

    # Rate limiting events
    RATE_LIMIT_EXCEEDED = "security.rate.limit_exceeded"

    # Admin events
    ADMIN_USER_CREATED = "security.admin.user_created"
    ADMIN_USER_MODIFIED = "security.admin.user_modified"
    ADMIN_USER_DELETED = "security.admin.user_deleted"


_LOG_LEVELS = {
    EventSeverity.INFO: logging.INFO,
    EventSeverity.WARNING: logging.WARNING,
    EventSeverity.ERROR: logging.ERROR,
    EventSeverity.CRITICAL: logging.CRITICAL,
}


class SecurityEventLogger:
    """Structured security event logger."""

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or security_logger

    def _log_event(
        self,
        event_type: SecurityEventType,
        severity: EventSeverity,
        user_id: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        resource_type: str | None = None,
        resource_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Log a security event with structured data.

        Returns:
            The logged event data for testing/verification
        """
        event = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type.value,
            "severity": severity.value,
            "user_id": user_id,
            "ip_address": ip_address,
            "user_agent": user_agent[:500] if user_agent else None,
            "resource_type": resource_type,
            "resource_id": resource_id,
            "details": details or {},
        }

        self.logger.log(
            _LOG_LEVELS.get(severity, logging.INFO),
            json.dumps(event),
            extra={"event_type": event_type.value},
        )
        return event

    # Authentication events

    def log_login_success(
        self,
        user_id: str | None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        mode: str = "legacy",
    ) -> dict[str, Any]:
        """Log successful login."""
        return self._log_event(
            event_type=SecurityEventType.AUTH_LOGIN_SUCCESS,
            severity=EventSeverity.INFO,
            user_id=user_id,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"mode": mode},
        )

    def log_login_failure(
        self,
        identifier: str | None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        reason: str = "invalid_credentials",
    ) -> dict[str, Any]:
        """Log failed login attempt."""
        return self._log_event(
            event_type=SecurityEventType.AUTH_LOGIN_FAILURE,
            severity=EventSeverity.WARNING,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"identifier": identifier, "reason": reason},
        )

    def log_logout(self, user_id: str | None, ip_address: str | None = None) -> dict[str, Any]:
        """Log user logout."""
        return self._log_event(
            event_type=SecurityEventType.AUTH_LOGOUT,
            severity=EventSeverity.INFO,
            user_id=user_id,
            ip_address=ip_address,
        )

    def log_csrf_failure(
        self,
        method: str,
        path: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> dict[str, Any]:
        """Log a rejected double-submit CSRF check."""
        return self._log_event(
            event_type=SecurityEventType.AUTH_CSRF_FAILURE,
            severity=EventSeverity.WARNING,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"method": method, "path": path},
        )

    # Access control events

    def log_access_denied(
        self,
        user_id: str,
        required_permission: str,
        resource_type: str,
        ip_address: str | None = None,
    ) -> dict[str, Any]:
        """Log authorization denial."""
        return self._log_event(
            event_type=SecurityEventType.ACCESS_DENIED,
            severity=EventSeverity.WARNING,
            user_id=user_id,
            resource_type=resource_type,
            ip_address=ip_address,
            details={"required_permission": required_permission},
        )

    # Share link events

    def log_share_created(
        self,
        created_by: str,
        token: str,
        expires_at: str,
        password_protected: bool,
        ip_address: str | None = None,
    ) -> dict[str, Any]:
        """Log share link creation."""
        return self._log_event(
            event_type=SecurityEventType.SHARE_CREATED,
            severity=EventSeverity.INFO,
            user_id=created_by,
            resource_type="share_link",
            resource_id=sanitize_for_log(token),
            ip_address=ip_address,
            details={"expires_at": expires_at, "password_protected": password_protected},
        )

    def log_share_accessed(
        self,
        token: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> dict[str, Any]:
        """Log read-only access through a share link."""
        return self._log_event(
            event_type=SecurityEventType.SHARE_ACCESSED,
            severity=EventSeverity.INFO,
            resource_type="share_link",
            resource_id=sanitize_for_log(token),
            ip_address=ip_address,
            user_agent=user_agent,
        )

    def log_share_denied(
        self,
        token: str,
        reason: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> dict[str, Any]:
        """Log invalid/revoked/password-failed share access attempt."""
        return self._log_event(
            event_type=SecurityEventType.SHARE_DENIED,
            severity=EventSeverity.WARNING,
            resource_type="share_link",
            resource_id=sanitize_for_log(token),
            ip_address=ip_address,
            user_agent=user_agent,
            details={"reason": reason},
        )

    def log_share_revoked(
        self,
        revoked_by: str,
        token: str,
        ip_address: str | None = None,
    ) -> dict[str, Any]:
        """Log early revocation of a share link."""
        return self._log_event(
            event_type=SecurityEventType.SHARE_REVOKED,
            severity=EventSeverity.INFO,
            user_id=revoked_by,
            resource_type="share_link",
            resource_id=sanitize_for_log(token),
            ip_address=ip_address,
        )

    # Rate limiting events

    def log_rate_limit_exceeded(
        self,
        ip_address: str,
        endpoint: str,
        limit: int | None = None,
    ) -> dict[str, Any]:
        """Log rate limit exceeded."""
        return self._log_event(
            event_type=SecurityEventType.RATE_LIMIT_EXCEEDED,
            severity=EventSeverity.WARNING,
            ip_address=ip_address,
            details={"endpoint": endpoint, "limit": limit},
        )

    # Admin events

    def log_user_created(
        self,
        admin_user_id: str,
        created_user_id: str,
        email: str,
        role: str,
        ip_address: str | None = None,
    ) -> dict[str, Any]:
        """Log user account creation."""
        return self._log_event(
            event_type=SecurityEventType.ADMIN_USER_CREATED,
            severity=EventSeverity.INFO,
            user_id=admin_user_id,
            resource_type="user",
            resource_id=created_user_id,
            ip_address=ip_address,
            details={"email": email, "role": role},
        )

    def log_user_modified(
        self,
        admin_user_id: str,
        target_user_id: str,
        changed_fields: list[str],
        ip_address: str | None = None,
    ) -> dict[str, Any]:
        """Log user account change (role, activation, password)."""
        return self._log_event(
            event_type=SecurityEventType.ADMIN_USER_MODIFIED,
            severity=EventSeverity.INFO,
            user_id=admin_user_id,
            resource_type="user",
            resource_id=target_user_id,
            ip_address=ip_address,
            details={"changed_fields": changed_fields},
        )

    def log_user_deleted(
        self,
        admin_user_id: str,
        target_user_id: str,
        ip_address: str | None = None,
    ) -> dict[str, Any]:
        """Log hard deletion of a user account."""
        return self._log_event(
            event_type=SecurityEventType.ADMIN_USER_DELETED,
            severity=EventSeverity.INFO,
            user_id=admin_user_id,
            resource_type="user",
            resource_id=target_user_id,
            ip_address=ip_address,
        )


# Global instance for convenience
security_events = SecurityEventLogger()
