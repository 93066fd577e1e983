"""Global pytest configuration for environment defaults."""
from __future__ import annotations

import os


def _set_test_env_defaults() -> None:
    """Ensure Settings env vars point at test-safe values before imports."""
    defaults = {
        "DATABASE_URL": "sqlite+aiosqlite:///./roomkeeper_test.db",
        "ENV": "test",
        "LOG_LEVEL": "WARNING",
        "PROPERTY_TIMEZONE": "Asia/Dubai",
        "REJECT_PAST_CHECK_IN": "true",
        "SAME_DAY_TURNOVER": "false",
        "ELEVATED_ROLES": "ADMIN,MANAGER",
    }

    for key, value in defaults.items():
        os.environ.setdefault(key, value)


_set_test_env_defaults()
