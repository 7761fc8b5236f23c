"""Core security primitives, configuration and logging."""
