"""
Configuration module for privsalary.

Centralizes all configuration with environment variable support,
validation, and caching.
"""

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

# ============================================================
# Environment Configuration
# ============================================================

ENV_PREFIX = "PRIVSALARY_"

DEFAULT_COOLDOWN_SECONDS = 60
DEFAULT_PROCESS_ID = "privsalary-aggregator-001"
DEFAULT_OWNER_ADDRESS = "0x0000000000000000000000000000000000000001"
DEFAULT_DB_PATH = "data/privsalary.db"
DEFAULT_ORACLE_KEY_PATH = "secrets/oracle_signing_key.json"

EVENT_LOG_BACKENDS = ("memory", "sqlite_hash_chain")


def _env(name: str, default: str) -> str:
    return os.getenv(ENV_PREFIX + name, default)


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None:
        return default
    return raw.lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class Settings:
    """Resolved process settings."""
    env: str = "dev"  # dev|stage|prod
    cooldown_seconds: int = DEFAULT_COOLDOWN_SECONDS
    process_id: str = DEFAULT_PROCESS_ID
    owner_address: str = DEFAULT_OWNER_ADDRESS
    db_path: str = DEFAULT_DB_PATH
    event_log_backend: str = "memory"
    oracle_key_path: Optional[str] = None
    log_level: str = "INFO"
    log_json: bool = True
    debug: bool = False


def load_settings() -> Settings:
    """Read settings from the environment. Raises ValueError on malformed integers."""
    return Settings(
        env=_env("ENV", "dev"),
        cooldown_seconds=int(_env("COOLDOWN_SECONDS", str(DEFAULT_COOLDOWN_SECONDS))),
        process_id=_env("PROCESS_ID", DEFAULT_PROCESS_ID),
        owner_address=_env("OWNER_ADDRESS", DEFAULT_OWNER_ADDRESS),
        db_path=_env("DB_PATH", DEFAULT_DB_PATH),
        event_log_backend=_env("EVENT_LOG_BACKEND", "memory"),
        oracle_key_path=os.getenv(ENV_PREFIX + "ORACLE_KEY_PATH") or None,
        log_level=_env("LOG_LEVEL", "INFO"),
        log_json=_env_bool("LOG_JSON", True),
        debug=_env_bool("DEBUG", False),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings for the running process. Call ``get_settings.cache_clear()`` to reload."""
    return load_settings()


# ============================================================
# Validation
# ============================================================

def validate_settings(settings: Settings) -> List[str]:
    """
    Check settings for problems.

    Returns:
        List of human-readable problems (empty when valid)
    """
    problems = []
    if settings.env not in ("dev", "stage", "prod"):
        problems.append(f"unknown env {settings.env!r}")
    if settings.cooldown_seconds <= 0:
        problems.append("cooldown_seconds must be strictly positive")
    if not settings.process_id:
        problems.append("process_id must not be empty")
    if not settings.owner_address:
        problems.append("owner_address must not be empty")
    if settings.event_log_backend not in EVENT_LOG_BACKENDS:
        problems.append(f"unknown event log backend {settings.event_log_backend!r}")
    if settings.oracle_key_path and not Path(settings.oracle_key_path).exists():
        problems.append(f"oracle key file missing: {settings.oracle_key_path}")
    return problems


# ============================================================
# Feature Flags
# ============================================================

def is_production(settings: Optional[Settings] = None) -> bool:
    """Check if running in production mode."""
    return (settings or get_settings()).env == "prod"
