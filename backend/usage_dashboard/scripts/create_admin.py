#!/usr/bin/env python3
"""
Create an admin account for accounts mode.

SECURITY: This script is blocked from running in production/staging.
For those environments use BOOTSTRAP_ADMIN_EMAIL/BOOTSTRAP_ADMIN_PASSWORD
or the /api/users endpoints with an existing admin session.

Usage:
    usage-dashboard-create-admin

    Or with environment variables (for CI/automation in dev):
        ADMIN_EMAIL=admin@example.com ADMIN_PASSWORD=secret123 usage-dashboard-create-admin
"""

import asyncio
import getpass
import os
import secrets
import sys

from usage_dashboard.core.config import Settings, get_settings
from usage_dashboard.core.permissions import Role
from usage_dashboard.core.security import build_password_context
from usage_dashboard.db.session import build_engine, build_session_factory, create_tables
from usage_dashboard.schemas.user import MIN_PASSWORD_LENGTH
from usage_dashboard.services.credential_store import Conflict, NewUser, SqlCredentialStore

# Environments where this script must NOT run
BLOCKED_ENVIRONMENTS = {"production", "staging"}


def check_environment(settings: Settings) -> None:
    """Fail if running in a secure environment."""
    env = settings.ENVIRONMENT.lower()
    if env in BLOCKED_ENVIRONMENTS:
        print(
            f"ERROR: create-admin cannot run in '{env}' environment.\n"
            f"Use BOOTSTRAP_ADMIN_EMAIL/BOOTSTRAP_ADMIN_PASSWORD for {env} deployments.",
            file=sys.stderr,
        )
        sys.exit(1)


def get_input(prompt: str, env_var: str, default: str | None = None) -> str:
    """Get input from env var, interactive prompt, or default."""
    value = os.environ.get(env_var, "").strip()
    if value:
        return value

    if default:
        user_input = input(f"{prompt} [{default}]: ").strip()
        return user_input if user_input else default
    while True:
        user_input = input(f"{prompt}: ").strip()
        if user_input:
            return user_input
        print("This field is required.")


def get_password(env_var: str) -> tuple[str, bool]:
    """
    Get password from env var, interactive prompt, or generate one.

    Returns:
        tuple of (password, was_generated)
    """
    value = os.environ.get(env_var, "").strip()
    if value:
        if len(value) < MIN_PASSWORD_LENGTH:
            print(f"ERROR: {env_var} must be at least {MIN_PASSWORD_LENGTH} characters.", file=sys.stderr)
            sys.exit(1)
        return value, False

    print("\nPassword options:")
    print("  1. Enter a password")
    print("  2. Generate a random password")

    choice = input("Choose [1/2] (default: 2): ").strip()

    if choice == "1":
        while True:
            password = getpass.getpass("Enter password: ")
            if len(password) < MIN_PASSWORD_LENGTH:
                print(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
                continue
            confirm = getpass.getpass("Confirm password: ")
            if password != confirm:
                print("Passwords do not match. Try again.")
                continue
            return password, False

    return secrets.token_urlsafe(16), True


async def create_admin_user(settings: Settings) -> int:
    """Create the admin account. Returns a process exit code."""
    check_environment(settings)

    print("=" * 50)
    print("Create Admin User")
    print(f"Environment: {settings.ENVIRONMENT}")
    print(f"Database:    {settings.DATABASE_URL}")
    print("=" * 50)
    print()

    email = get_input("Email", "ADMIN_EMAIL", "admin@example.com")
    name = get_input("Name", "ADMIN_NAME", "Admin User")
    password, was_generated = get_password("ADMIN_PASSWORD")

    engine = build_engine(settings.DATABASE_URL)
    try:
        await create_tables(engine)
        store = SqlCredentialStore(build_session_factory(engine))
        result = await store.create_user(
            NewUser(
                email=email,
                password_hash=build_password_context(settings.BCRYPT_ROUNDS).hash(password),
                name=name,
                role=Role.ADMIN.value,
            )
        )
    finally:
        await engine.dispose()

    if isinstance(result, Conflict):
        print(f"\nERROR: A user with this {result.field} already exists!", file=sys.stderr)
        return 1

    print()
    print("=" * 50)
    print("Admin user created successfully!")
    print("=" * 50)
    print(f"  ID:    {result.id}")
    print(f"  Email: {result.email}")

    if was_generated:
        # Print generated password to stderr (won't appear in logs if stdout is captured)
        print(f"\n  Generated password: {password}", file=sys.stderr)
        print("\n  (Save this password - it will not be shown again)", file=sys.stderr)
    return 0


def main() -> None:
    sys.exit(asyncio.run(create_admin_user(get_settings())))


if __name__ == "__main__":
    main()
