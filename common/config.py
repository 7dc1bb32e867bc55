"""Ping configuration for ping-testkit.

Contains:
- PingConfig: Engine parameters with validation
- parse_duration: Parse "500ms" / "2s" / "1.5" durations
- apply_env: Override a config from PING_* environment variables
- load_config: Load a single-target YAML configuration file
"""

import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import yaml

from common.protocol import (
    DEFAULT_INTERVAL_S,
    DEFAULT_TIMEOUT_S,
    MAX_PAYLOAD_SIZE,
    MIN_PAYLOAD_SIZE,
    PingError,
)
from common.resolver import NETWORKS

logger = logging.getLogger(__name__)

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d*)?|\.\d+)\s*(ms|s|m)?\s*$")
_UNIT_SCALE = {None: 1.0, "s": 1.0, "ms": 0.001, "m": 60.0}

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off", ""}


class ConfigError(PingError):
    """Raised when configuration values are missing or invalid."""

    pass


@dataclass
class PingConfig:
    """Parameters for one ping run."""

    interval_s: float = DEFAULT_INTERVAL_S
    timeout_s: float | None = DEFAULT_TIMEOUT_S  # None = run until stopped
    count: int = 0  # 0 = unbounded
    size: int = MIN_PAYLOAD_SIZE  # Payload bytes, including the 16-byte prefix
    privileged: bool = False
    record_rtts: bool = True
    source: str | None = None
    network: str = "ip"

    def validate(self) -> "PingConfig":
        """Check invariants. Returns self for chaining.

        Raises:
            ConfigError: On the first invalid value found.
        """
        if self.size < MIN_PAYLOAD_SIZE:
            raise ConfigError(f"size must be at least {MIN_PAYLOAD_SIZE} bytes, got {self.size}")
        if self.size > MAX_PAYLOAD_SIZE:
            raise ConfigError(f"size must be at most {MAX_PAYLOAD_SIZE} bytes, got {self.size}")
        if self.interval_s < 0:
            raise ConfigError(f"interval must not be negative, got {self.interval_s}")
        if self.count < 0:
            raise ConfigError(f"count must not be negative, got {self.count}")
        if self.timeout_s is not None and self.timeout_s <= 0:
            raise ConfigError(f"timeout must be positive, got {self.timeout_s}")
        if self.network not in NETWORKS:
            raise ConfigError(f"network must be one of {sorted(NETWORKS)}, got {self.network!r}")
        return self


def parse_duration(text: str) -> float:
    """Parse a duration in seconds. Accepts "500ms", "2s", "1m" or bare seconds."""
    match = _DURATION_RE.match(text)
    if match is None:
        raise ConfigError(f"Invalid duration: {text!r}")
    value, unit = match.groups()
    return float(value) * _UNIT_SCALE[unit]


def _parse_bool(name: str, text: str) -> bool:
    lowered = text.strip().lower()
    if lowered in _TRUE_STRINGS:
        return True
    if lowered in _FALSE_STRINGS:
        return False
    raise ConfigError(f"{name} must be a boolean, got {text!r}")


def _parse_int(name: str, text: str) -> int:
    try:
        return int(text)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {text!r}")


def apply_env(config: PingConfig, environ: Mapping[str, str] | None = None) -> PingConfig:
    """Return a copy of config with PING_* environment overrides applied.

    PING_INTERVAL_MS, PING_TIMEOUT_MS, PING_COUNT, PING_SIZE, PING_PRIVILEGED.
    """
    env: Mapping[str, str] = os.environ if environ is None else environ
    changes: dict[str, Any] = {}

    if "PING_INTERVAL_MS" in env:
        changes["interval_s"] = _parse_int("PING_INTERVAL_MS", env["PING_INTERVAL_MS"]) / 1000
    if "PING_TIMEOUT_MS" in env:
        changes["timeout_s"] = _parse_int("PING_TIMEOUT_MS", env["PING_TIMEOUT_MS"]) / 1000
    if "PING_COUNT" in env:
        changes["count"] = _parse_int("PING_COUNT", env["PING_COUNT"])
    if "PING_SIZE" in env:
        changes["size"] = _parse_int("PING_SIZE", env["PING_SIZE"])
    if "PING_PRIVILEGED" in env:
        changes["privileged"] = _parse_bool("PING_PRIVILEGED", env["PING_PRIVILEGED"])

    if changes:
        logger.debug(f"Environment overrides: {changes}")
    return replace(config, **changes)


# YAML key -> (PingConfig field, expected type, converter)
_YAML_KEYS: dict[str, tuple[str, tuple[type, ...], Any]] = {
    "interval": ("interval_s", (int, float), lambda ms: ms / 1000),
    "timeout": ("timeout_s", (int, float, type(None)), lambda ms: None if ms is None else ms / 1000),
    "count": ("count", (int,), int),
    "size": ("size", (int,), int),
    "privileged": ("privileged", (bool,), bool),
    "record_rtts": ("record_rtts", (bool,), bool),
    "source": ("source", (str, type(None)), lambda s: s),
    "network": ("network", (str,), str),
}


def _check_type(key: str, value: Any, types: tuple[type, ...]) -> None:
    # bool is an int subclass, but only accept it where bool is expected
    if isinstance(value, bool) and bool not in types:
        raise ConfigError(f"{key} has wrong type: bool")
    if not isinstance(value, types):
        raise ConfigError(f"{key} has wrong type: {type(value).__name__}")


def load_config(path: str | Path) -> tuple[str, PingConfig]:
    """Load a single-target YAML configuration.

    Example file::

        host: www.github.com
        interval: 500   # milliseconds
        timeout: 10000  # milliseconds
        count: 5
        privileged: false

    Returns (host, config). The config is validated.

    Raises:
        ConfigError: If the file cannot be read or parsed, the host is
            missing, or any key is unknown or has the wrong type.
    """
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must be a mapping")

    settings: dict[str, Any] = {}
    for key, value in data.items():
        key = str(key).strip().lower()
        if key in settings:
            raise ConfigError(f"Duplicate config key {key!r}")
        settings[key] = value

    host = settings.pop("host", None)
    if isinstance(host, list):
        raise ConfigError("Only one host per config file is supported")
    if not isinstance(host, str) or not host:
        raise ConfigError(f"Config {path} must set 'host'")

    changes: dict[str, Any] = {}
    for key, value in settings.items():
        if key not in _YAML_KEYS:
            raise ConfigError(f"Unknown config key {key!r}")
        field_name, types, convert = _YAML_KEYS[key]
        _check_type(key, value, types)
        changes[field_name] = convert(value)

    config = replace(PingConfig(), **changes).validate()
    logger.debug(f"Loaded config for {host} from {path}")
    return host, config
