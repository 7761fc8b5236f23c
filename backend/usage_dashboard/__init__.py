"""Usage dashboard API: authentication, sessions, share links and dashboard data."""

__version__ = "1.0.0"
