# =============================================================================
# delivery_core/config/settings.py
# Tracker configuration from secrets.toml, .env and environment variables
# =============================================================================
"""
Configuration for the delivery tracker.

Sources, lowest to highest precedence:
1. Defaults on TrackerConfig
2. secrets.toml (path from argument, TRACKER_SECRETS_PATH, or project root)
3. Environment variables (a .env file is loaded first if present)

Expected secrets.toml format:

    [supabase]
    url = "https://your-project.supabase.co"
    key = "your-anon-key"

    [tracker]
    startup_mode = "strict"          # or "best-effort"
    refresh_interval_seconds = 60
    cleanup_hour = 23
    local_db_path = "local_data/delivery_tracker.db"
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
import logging

from dotenv import load_dotenv

try:
    import tomllib
except ImportError:
    import tomli as tomllib

from delivery_core.errors import ConfigurationError

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent.parent
DEFAULT_SECRETS_PATH = PROJECT_ROOT / "secrets.toml"
DEFAULT_DB_PATH = PROJECT_ROOT / "local_data" / "delivery_tracker.db"


class StartupMode(Enum):
    """What initialize() does when the remote store is unreachable."""
    STRICT = "strict"              # Unreachable remote at startup is fatal
    BEST_EFFORT = "best-effort"    # Serve the local cache, reconnect in background

    @classmethod
    def parse(cls, value: Any) -> StartupMode:
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower().replace("_", "-")
        for mode in cls:
            if mode.value == normalized:
                return mode
        raise ConfigurationError(
            f"Unknown startup mode: {value!r}",
            config_key="startup_mode",
            expected_type="strict | best-effort",
        )


@dataclass
class TrackerConfig:
    """Runtime settings shared by every component."""
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    startup_mode: StartupMode = StartupMode.STRICT
    refresh_interval_seconds: float = 60.0
    cleanup_hour: int = 23
    cleanup_check_interval_seconds: float = 3600.0
    remote_timeout_seconds: float = 10.0
    background_reconnect: bool = True
    local_db_path: Path = field(default_factory=lambda: DEFAULT_DB_PATH)
    schema_rpc: str = "exec_sql"

    def __post_init__(self):
        self.startup_mode = StartupMode.parse(self.startup_mode)
        self.local_db_path = Path(self.local_db_path)

        if not 0 <= int(self.cleanup_hour) <= 23:
            raise ConfigurationError(
                f"cleanup_hour must be between 0 and 23, got {self.cleanup_hour}",
                config_key="cleanup_hour",
                expected_type="int",
            )
        for name in ("refresh_interval_seconds", "cleanup_check_interval_seconds", "remote_timeout_seconds"):
            if float(getattr(self, name)) <= 0:
                raise ConfigurationError(
                    f"{name} must be positive",
                    config_key=name,
                    expected_type="float",
                )

    @property
    def has_remote_credentials(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


# Environment variable -> config field
ENV_OVERRIDES = {
    "SUPABASE_URL": "supabase_url",
    "SUPABASE_KEY": "supabase_key",
    "TRACKER_STARTUP_MODE": "startup_mode",
    "TRACKER_REFRESH_INTERVAL": "refresh_interval_seconds",
    "TRACKER_CLEANUP_HOUR": "cleanup_hour",
    "TRACKER_REMOTE_TIMEOUT": "remote_timeout_seconds",
    "TRACKER_BACKGROUND_RECONNECT": "background_reconnect",
    "TRACKER_DB_PATH": "local_db_path",
}


def _load_secrets(path: Path) -> Dict[str, Any]:
    """Read secrets.toml into config field values."""
    if not path.exists():
        return {}

    try:
        with open(path, "rb") as f:
            secrets = tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as e:
        raise ConfigurationError(f"Could not read secrets file {path}: {e}") from e

    values: Dict[str, Any] = {}
    supabase = secrets.get("supabase", {})
    if supabase.get("url"):
        values["supabase_url"] = supabase["url"]
    if supabase.get("key"):
        values["supabase_key"] = supabase["key"]

    known = {f.name for f in fields(TrackerConfig)}
    for key, value in secrets.get("tracker", {}).items():
        if key not in known:
            logger.warning(f"Ignoring unknown tracker setting: {key}")
            continue
        values[key] = value

    return values


def _coerce(name: str, raw: str) -> Any:
    """Convert an environment string to the field's type."""
    try:
        if name in ("refresh_interval_seconds", "remote_timeout_seconds"):
            return float(raw)
        if name == "cleanup_hour":
            return int(raw)
        if name == "background_reconnect":
            return raw.strip().lower() in ("1", "true", "yes", "on")
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {name}: {raw!r}", config_key=name) from e
    return raw


def load_config(secrets_path: Optional[Path] = None, use_dotenv: bool = True) -> TrackerConfig:
    """
    Build the tracker configuration.

    Args:
        secrets_path: Explicit secrets.toml path
        use_dotenv: Whether to load a .env file into the environment first

    Returns:
        Validated TrackerConfig
    """
    if use_dotenv:
        load_dotenv()

    path = Path(secrets_path or os.getenv("TRACKER_SECRETS_PATH") or DEFAULT_SECRETS_PATH)
    values = _load_secrets(path)

    for env_name, field_name in ENV_OVERRIDES.items():
        raw = os.getenv(env_name)
        if raw:
            values[field_name] = _coerce(field_name, raw)

    try:
        config = TrackerConfig(**values)
    except TypeError as e:
        raise ConfigurationError(f"Invalid tracker configuration: {e}") from e

    if not config.has_remote_credentials:
        logger.warning("Supabase credentials not configured; remote store will be unavailable")

    return config
