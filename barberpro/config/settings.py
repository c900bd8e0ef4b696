# =============================================================================
# barberpro/config/settings.py
# Settings loaded from .env, secrets.toml and the environment
# =============================================================================
"""
Configuration for the sync core.

Resolution order (later wins):
1. Dataclass defaults
2. ``.barberpro/secrets.toml``::

    [supabase]
    url = "https://your-project.supabase.co"
    key = "your-anon-key"

    [sync]
    db_path = "local_data/barberpro.db"
    poll_interval = 5
    snapshot_ttl = 3600

3. Environment variables (``.env`` is loaded first via python-dotenv):
   SUPABASE_URL, SUPABASE_KEY, BARBERPRO_DB_PATH, BARBERPRO_POLL_INTERVAL,
   BARBERPRO_LOG_LEVEL
"""

from __future__ import annotations
import os
import tomllib
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from barberpro.errors import ConfigurationError

DEFAULT_SECRETS_PATH = Path(".barberpro") / "secrets.toml"
DEFAULT_DB_PATH = Path("local_data") / "barberpro.db"

# Environment variable -> Settings field
ENV_OVERRIDES = {
    "SUPABASE_URL": "supabase_url",
    "SUPABASE_KEY": "supabase_key",
    "BARBERPRO_DB_PATH": "db_path",
    "BARBERPRO_POLL_INTERVAL": "poll_interval",
    "BARBERPRO_PROBE_TIMEOUT": "probe_timeout",
    "BARBERPRO_SNAPSHOT_TTL": "snapshot_ttl",
    "BARBERPRO_LOG_LEVEL": "log_level",
}


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the offline sync core."""
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    db_path: Path = DEFAULT_DB_PATH
    poll_interval: float = 5.0          # Seconds between reachability checks
    probe_timeout: float = 5.0          # Timeout for one reachability probe
    snapshot_ttl: float = 3600.0        # Analytics cache freshness window (seconds)
    operation_retention_days: int = 7   # Confirmed operations kept before purge
    log_level: str = "INFO"
    log_to_file: bool = False

    @property
    def has_remote(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw toml/env value to the type of the Settings field."""
    if value is None:
        return None
    try:
        if name == "db_path":
            return Path(value)
        if name in ("poll_interval", "probe_timeout", "snapshot_ttl"):
            return float(value)
        if name == "operation_retention_days":
            return int(value)
        if name == "log_to_file":
            if isinstance(value, str):
                return value.strip().lower() in ("1", "true", "yes", "on")
            return bool(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"Invalid value for {name}: {value!r}", config_key=name
        ) from e
    return str(value)


def _read_secrets(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}

    try:
        with open(path, "rb") as f:
            secrets = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Malformed secrets file: {e}", config_key=str(path)) from e

    values: Dict[str, Any] = {}
    supabase = secrets.get("supabase", {})
    if "url" in supabase:
        values["supabase_url"] = supabase["url"]
    if "key" in supabase:
        values["supabase_key"] = supabase["key"]

    known = {f.name for f in fields(Settings)}
    for key, value in secrets.get("sync", {}).items():
        if key in known:
            values[key] = value
    return values


def load_settings(
    secrets_path: Optional[Path] = None,
    env: Optional[Dict[str, str]] = None,
    load_env_file: bool = True,
) -> Settings:
    """
    Build Settings from secrets.toml and the environment.

    Args:
        secrets_path: Path to secrets.toml (default: .barberpro/secrets.toml)
        env: Mapping to read overrides from (default: os.environ)
        load_env_file: Whether to load a .env file into os.environ first

    Returns:
        Settings instance
    """
    if load_env_file and env is None:
        load_dotenv()

    values = _read_secrets(secrets_path or DEFAULT_SECRETS_PATH)

    source = os.environ if env is None else env
    for env_key, field_name in ENV_OVERRIDES.items():
        if source.get(env_key):
            values[field_name] = source[env_key]

    coerced = {name: _coerce(name, value) for name, value in values.items()}
    return replace(Settings(), **coerced)
