"""Configuration file management.

Config is stored in TOML format at:
- macOS/Linux: ~/.config/annotlearn/config.toml
- Windows: %APPDATA%\\annotlearn\\config.toml

Worker timing can be overridden per process through ANNOTLEARN_* environment
variables, which take precedence over the file.

Usage:
    config = load_config()
    settings = load_worker_settings(config)
    db_path = get_value(config, "storage.database")
"""

import copy
import os
import platform
import tomllib
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

import tomli_w

from annotlearn.constants import (
    APP_NAME,
    BUILDER_STARTUP_DELAY,
    CORRELATION_PAUSE_SECONDS,
    DEFAULT_DB_NAME,
    ERROR_SLEEP,
    FINGERPRINT_STARTUP_DELAY,
    LONG_PAUSE,
    MAX_NLP_FINGERPRINTS,
    PAUSE_EVERY_TARGETS,
    PAUSE_SECONDS,
    SHORT_PAUSE,
    STOP_JOIN_TIMEOUT,
)
from annotlearn.exceptions import ConfigError


def get_config_dir() -> Path:
    """Get platform-appropriate config directory."""
    if platform.system() == "Windows":
        base = Path.home() / "AppData" / "Roaming"
    else:
        base = Path.home() / ".config"
    return base / APP_NAME


def get_config_path() -> Path:
    """Get path to config file."""
    return get_config_dir() / "config.toml"


DEFAULT_CONFIG = {
    "storage": {
        "database": str(get_config_dir() / DEFAULT_DB_NAME),
    },
    "workers": {
        "fingerprint_startup_delay": FINGERPRINT_STARTUP_DELAY,
        "builder_startup_delay": BUILDER_STARTUP_DELAY,
        "short_pause": SHORT_PAUSE,
        "long_pause": LONG_PAUSE,
        "pause_every": PAUSE_EVERY_TARGETS,
        "pause_seconds": PAUSE_SECONDS,
        "correlation_pause_seconds": CORRELATION_PAUSE_SECONDS,
        "error_sleep": ERROR_SLEEP,
        "stop_timeout": STOP_JOIN_TIMEOUT,
    },
    "modelling": {
        "max_nlp_fingerprints": MAX_NLP_FINGERPRINTS,
    },
    "nlp": {
        "spacy_model": "en_core_web_sm",
    },
    "ontology": {
        "path": "",
    },
}


def load_config() -> dict:
    """Load configuration from file.

    Creates default config if file doesn't exist.

    Returns:
        Dict with configuration values

    Raises:
        ConfigError: If config file is malformed
    """
    config_path = get_config_path()

    if not config_path.exists():
        save_config(DEFAULT_CONFIG)
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(config_path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Failed to load config: {e}") from e


def save_config(config: dict) -> None:
    """Save configuration to file.

    Args:
        config: Dict with configuration values
    """
    config_path = get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "wb") as f:
        tomli_w.dump(config, f)


def get_value(config: dict, key: str, default: Any = None) -> Any:
    """Get a nested config value using dot notation.

    Args:
        config: Config dict
        key: Dot-separated key (e.g., "workers.long_pause")
        default: Default value if key not found

    Returns:
        Config value or default

    Example:
        >>> config = {"workers": {"long_pause": 60.0}}
        >>> get_value(config, "workers.long_pause")
        60.0
    """
    current = config
    for part in key.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return default
    return current


def set_value(config: dict, key: str, value: Any) -> None:
    """Set a nested config value using dot notation.

    Args:
        config: Config dict (modified in place)
        key: Dot-separated key
        value: Value to set

    Raises:
        ConfigError: If an intermediate key holds a plain value
    """
    parts = key.split(".")
    current = config

    for part in parts[:-1]:
        if part not in current:
            current[part] = {}
        if not isinstance(current[part], dict):
            raise ConfigError(f"Cannot set {key}: '{part}' is not a section")
        current = current[part]

    current[parts[-1]] = value


@dataclass(frozen=True)
class WorkerSettings:
    """Immutable worker timing and limits, resolved once at startup."""

    # --- Startup ---
    fingerprint_startup_delay: float = FINGERPRINT_STARTUP_DELAY
    builder_startup_delay: float = BUILDER_STARTUP_DELAY

    # --- Polling / sleep ---
    short_pause: float = SHORT_PAUSE
    long_pause: float = LONG_PAUSE
    error_sleep: float = ERROR_SLEEP
    stop_timeout: float = STOP_JOIN_TIMEOUT

    # --- Cooperative pauses during sweeps ---
    pause_every: int = PAUSE_EVERY_TARGETS
    pause_seconds: float = PAUSE_SECONDS
    correlation_pause_seconds: float = CORRELATION_PAUSE_SECONDS

    # --- Modelling ---
    max_nlp_fingerprints: int = MAX_NLP_FINGERPRINTS

    def to_dict(self) -> dict:
        return asdict(self)


def _env_number(key: str, default: float, cast: type) -> Any:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigError(f"Invalid value for {key}: {raw!r}") from e


def load_worker_settings(config: dict | None = None) -> WorkerSettings:
    """Build WorkerSettings from a config dict and the environment.

    Args:
        config: Loaded config (defaults used when None)

    Returns:
        WorkerSettings with environment overrides applied
    """
    config = config if config is not None else DEFAULT_CONFIG
    workers = get_value(config, "workers", {}) or {}

    values: dict[str, Any] = {}
    for item in fields(WorkerSettings):
        name, default, cast = item.name, item.default, item.type
        if name == "max_nlp_fingerprints":
            from_file = get_value(config, "modelling.max_nlp_fingerprints", default)
        else:
            from_file = workers.get(name, default)
        try:
            from_file = cast(from_file)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid value for {name}: {from_file!r}") from e
        values[name] = _env_number(f"ANNOTLEARN_{name.upper()}", from_file, cast)

    if values["pause_every"] < 1:
        raise ConfigError("pause_every must be at least 1")
    if values["max_nlp_fingerprints"] < 1:
        raise ConfigError("max_nlp_fingerprints must be at least 1")
    return WorkerSettings(**values)
