"""Database models."""

from usage_dashboard.models.share_link import ShareLink
from usage_dashboard.models.user import User, UserSession

__all__ = ["ShareLink", "User", "UserSession"]
