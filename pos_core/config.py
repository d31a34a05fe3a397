# =============================================================================
# pos_core/config.py
# Application configuration
# =============================================================================
"""
Configuration for the POS core.

Values come from an optional TOML file and are then overridden by
environment variables. The backend mode is decided here, once, and never
re-derived at call time.

Example pos_core.toml:

    use_mocks = false
    demo_fallback = false
    storage_path = "data/pos_core.db"

    [supabase]
    url = "https://xyz.supabase.co"
    key = "..."
    poll_interval = 5.0

    [pin_lock]
    default_timeout_minutes = 5
    hash_scheme = "legacy"
"""

from __future__ import annotations
import logging
import os
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import toml

from pos_core.errors import ConfigurationError

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

CACHE_MAX_AGE = timedelta(hours=24)

PIN_MIN_LENGTH = 4
PIN_TIMEOUT_DEFAULT_MINUTES = 5
PIN_TIMEOUT_MIN_MINUTES = 1
PIN_TIMEOUT_MAX_MINUTES = 60

DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_CONFIG_PATH = Path("pos_core.toml")
DEFAULT_STORAGE_PATH = Path("data") / "pos_core.db"

HASH_SCHEMES = ("legacy", "bcrypt")

_TRUE_VALUES = {"1", "true", "yes", "on"}


class BackendMode(Enum):
    """Which document store the façade talks to."""
    MOCK = "mock"
    SUPABASE = "supabase"


@dataclass
class SupabaseSettings:
    url: str = ""
    key: str = ""
    poll_interval: float = DEFAULT_POLL_INTERVAL
    table_mapping: Dict[str, str] = field(default_factory=dict)

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.key)


@dataclass
class PinLockSettings:
    default_timeout_minutes: int = PIN_TIMEOUT_DEFAULT_MINUTES
    min_timeout_minutes: int = PIN_TIMEOUT_MIN_MINUTES
    max_timeout_minutes: int = PIN_TIMEOUT_MAX_MINUTES
    min_pin_length: int = PIN_MIN_LENGTH
    hash_scheme: str = "legacy"
    bcrypt_rounds: int = 12


@dataclass
class AppConfig:
    """Resolved application configuration."""
    backend_mode: BackendMode = BackendMode.MOCK
    demo_fallback: bool = False
    cache_max_age: timedelta = CACHE_MAX_AGE
    storage_path: Path = DEFAULT_STORAGE_PATH
    log_level: str = "INFO"
    log_to_file: bool = False
    supabase: SupabaseSettings = field(default_factory=SupabaseSettings)
    pin_lock: PinLockSettings = field(default_factory=PinLockSettings)

    def validate(self) -> None:
        """Raise ConfigurationError on inconsistent settings."""
        pin = self.pin_lock
        if pin.min_timeout_minutes < 1 or pin.min_timeout_minutes > pin.max_timeout_minutes:
            raise ConfigurationError(
                f"Invalid PIN timeout bounds {pin.min_timeout_minutes}-{pin.max_timeout_minutes}",
                config_key="pin_lock.min_timeout_minutes",
            )
        if not pin.min_timeout_minutes <= pin.default_timeout_minutes <= pin.max_timeout_minutes:
            raise ConfigurationError(
                f"Default PIN timeout {pin.default_timeout_minutes} outside "
                f"{pin.min_timeout_minutes}-{pin.max_timeout_minutes}",
                config_key="pin_lock.default_timeout_minutes",
            )
        if pin.min_pin_length < 1:
            raise ConfigurationError("PIN length must be positive", config_key="pin_lock.min_pin_length")
        if pin.hash_scheme not in HASH_SCHEMES:
            raise ConfigurationError(
                f"Unknown hash scheme '{pin.hash_scheme}' (expected one of {', '.join(HASH_SCHEMES)})",
                config_key="pin_lock.hash_scheme",
            )
        if self.cache_max_age.total_seconds() <= 0:
            raise ConfigurationError("Cache max age must be positive", config_key="cache_max_age_hours")
        if self.backend_mode is BackendMode.SUPABASE and not self.supabase.is_configured:
            raise ConfigurationError(
                "Supabase mode needs both SUPABASE_URL and SUPABASE_KEY",
                config_key="supabase",
            )


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_VALUES


def _load_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        return toml.load(path)
    except (toml.TomlDecodeError, OSError) as e:
        raise ConfigurationError(f"Could not read config file {path}: {e}", config_key=str(path))


def load_config(path: Optional[Path] = None, environ: Optional[Dict[str, str]] = None) -> AppConfig:
    """
    Build an AppConfig from a TOML file and environment variables.

    Args:
        path: TOML file (default: $POS_CORE_CONFIG or ./pos_core.toml)
        environ: Environment mapping (default: os.environ)

    Returns:
        Validated AppConfig with the backend mode resolved
    """
    env = os.environ if environ is None else environ
    path = Path(path or env.get("POS_CORE_CONFIG") or DEFAULT_CONFIG_PATH)
    raw = _load_file(path)

    supabase_raw = raw.get("supabase", {})
    supabase = SupabaseSettings(
        url=env.get("SUPABASE_URL") or supabase_raw.get("url", ""),
        key=env.get("SUPABASE_KEY") or supabase_raw.get("key", ""),
        poll_interval=float(supabase_raw.get("poll_interval", DEFAULT_POLL_INTERVAL)),
        table_mapping=dict(supabase_raw.get("table_mapping", {})),
    )

    pin_raw = raw.get("pin_lock", {})
    try:
        pin_lock = PinLockSettings(
            default_timeout_minutes=int(pin_raw.get("default_timeout_minutes", PIN_TIMEOUT_DEFAULT_MINUTES)),
            min_timeout_minutes=int(pin_raw.get("min_timeout_minutes", PIN_TIMEOUT_MIN_MINUTES)),
            max_timeout_minutes=int(pin_raw.get("max_timeout_minutes", PIN_TIMEOUT_MAX_MINUTES)),
            min_pin_length=int(pin_raw.get("min_pin_length", PIN_MIN_LENGTH)),
            hash_scheme=env.get("POS_PIN_HASH_SCHEME") or pin_raw.get("hash_scheme", "legacy"),
            bcrypt_rounds=int(pin_raw.get("bcrypt_rounds", 12)),
        )
        cache_hours = float(raw.get("cache_max_age_hours", CACHE_MAX_AGE.total_seconds() / 3600))
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid numeric setting in {path}: {e}")

    use_mocks = _as_bool(env.get("POS_USE_MOCKS", raw.get("use_mocks", False)))
    if use_mocks or not supabase.is_configured:
        backend_mode = BackendMode.MOCK
    else:
        backend_mode = BackendMode.SUPABASE

    config = AppConfig(
        backend_mode=backend_mode,
        demo_fallback=_as_bool(env.get("POS_DEMO_FALLBACK", raw.get("demo_fallback", False))),
        cache_max_age=timedelta(hours=cache_hours),
        storage_path=Path(env.get("POS_STORAGE_PATH") or raw.get("storage_path") or DEFAULT_STORAGE_PATH),
        log_level=env.get("POS_LOG_LEVEL") or raw.get("log_level", "INFO"),
        log_to_file=_as_bool(raw.get("log_to_file", False)),
        supabase=supabase,
        pin_lock=pin_lock,
    )
    config.validate()

    logger.info(f"Configuration loaded: backend={config.backend_mode.value}, demo_fallback={config.demo_fallback}")
    return config
