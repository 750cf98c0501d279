import math
import os
import re
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any
from typing import Final

from loguru import logger
from pydantic import Field

from imbue.condition_waiter.errors import WaiterConfigError
from imbue.condition_waiter.primitives import FrozenModel
from imbue.condition_waiter.primitives import pure

DEFAULT_TIMEOUT_SECONDS: Final[float] = 5.0
DEFAULT_POLL_INTERVAL_SECONDS: Final[float] = 0.1
DEFAULT_LOG_LEVEL: Final[str] = "INFO"

CONFIG_PATH_ENV_VAR: Final[str] = "CONDITION_WAITER_CONFIG"
TIMEOUT_ENV_VAR: Final[str] = "CONDITION_WAITER_TIMEOUT"
POLL_INTERVAL_ENV_VAR: Final[str] = "CONDITION_WAITER_POLL_INTERVAL"
LOG_LEVEL_ENV_VAR: Final[str] = "CONDITION_WAITER_LOG_LEVEL"

_TOOL_TABLE_NAME: Final[str] = "condition_waiter"
_PYPROJECT_TOP_LEVEL_KEYS: Final[frozenset[str]] = frozenset({"tool", "project", "build-system"})
_KNOWN_KEYS: Final[frozenset[str]] = frozenset({"timeout", "poll_interval", "log_level"})
_LOG_LEVELS: Final[frozenset[str]] = frozenset({"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"})

_NUMBER = r"(\d+(?:\.\d+)?)"
_DURATION_PATTERN = re.compile(
    rf"^(?:{_NUMBER}\s*h)?\s*(?:{_NUMBER}\s*m(?!s))?\s*(?:{_NUMBER}\s*s)?\s*(?:{_NUMBER}\s*ms)?$",
    re.IGNORECASE,
)


class WaiterSettings(FrozenModel):
    """Default budgets applied by the pytest fixtures and other configured waiters."""

    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    poll_interval_seconds: float = Field(default=DEFAULT_POLL_INTERVAL_SECONDS, gt=0)
    log_level: str = Field(default=DEFAULT_LOG_LEVEL)


@pure
def parse_duration_to_seconds(duration_str: str) -> float:
    """Parse a human-readable duration string into seconds.

    Plain numbers are seconds. Otherwise any combination of hours (h),
    minutes (m), seconds (s) and milliseconds (ms), in that order.
    Examples: '5', '0.25', '250ms', '2s', '1.5s', '1m30s', '1h'.
    """
    stripped = duration_str.strip()
    if not stripped:
        raise WaiterConfigError(f"Invalid duration: '{duration_str}' (empty string)")

    try:
        total_seconds = float(stripped)
    except ValueError:
        match = _DURATION_PATTERN.match(stripped)
        if match is None or match.group(0) == "":
            raise WaiterConfigError(
                f"Invalid duration: '{duration_str}'. Expected format like '5', '250ms', '2s', '1m30s', '1h'."
            ) from None
        hours, minutes, seconds, milliseconds = (float(group) if group else 0.0 for group in match.groups())
        total_seconds = hours * 3600 + minutes * 60 + seconds + milliseconds / 1000

    if not math.isfinite(total_seconds) or total_seconds <= 0:
        raise WaiterConfigError(f"Invalid duration: '{duration_str}'. Duration must be greater than zero.")
    return total_seconds


@pure
def _coerce_duration(key: str, value: Any) -> float:
    if isinstance(value, bool):
        raise WaiterConfigError(f"{key} must be a duration, got {value!r}")
    if isinstance(value, (int, float)):
        return parse_duration_to_seconds(str(value))
    if isinstance(value, str):
        return parse_duration_to_seconds(value)
    raise WaiterConfigError(f"{key} must be a number of seconds or a duration string, got {value!r}")


@pure
def _coerce_log_level(value: Any) -> str:
    level = str(value).strip().upper()
    if level not in _LOG_LEVELS:
        raise WaiterConfigError(f"log_level must be one of {sorted(_LOG_LEVELS)}, got {value!r}")
    return level


def _load_toml(path: Path) -> dict[str, Any]:
    """Load a TOML file, turning missing or malformed files into WaiterConfigError."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError as e:
        raise WaiterConfigError(f"Waiter config file not found: {path}") from e
    except tomllib.TOMLDecodeError as e:
        raise WaiterConfigError(f"Waiter config file is not valid TOML: {path}: {e}") from e


@pure
def _extract_settings_table(data: Mapping[str, Any]) -> Mapping[str, Any]:
    """Find the waiter settings in a standalone config file or a pyproject.toml.

    In a pyproject.toml they live under [tool.condition_waiter]; a pyproject.toml
    without that table contributes nothing.
    """
    tool_table = data.get("tool")
    if isinstance(tool_table, Mapping) and _TOOL_TABLE_NAME in tool_table:
        table = tool_table[_TOOL_TABLE_NAME]
        if not isinstance(table, Mapping):
            raise WaiterConfigError(f"[tool.{_TOOL_TABLE_NAME}] must be a table")
        return table
    if set(data) & _PYPROJECT_TOP_LEVEL_KEYS:
        return {}
    return data


@pure
def _settings_updates_from_table(table: Mapping[str, Any], source: str) -> dict[str, Any]:
    unknown_keys = set(table) - _KNOWN_KEYS
    if unknown_keys:
        raise WaiterConfigError(f"Unknown waiter settings in {source}: {sorted(unknown_keys)}")
    updates: dict[str, Any] = {}
    if "timeout" in table:
        updates["timeout_seconds"] = _coerce_duration("timeout", table["timeout"])
    if "poll_interval" in table:
        updates["poll_interval_seconds"] = _coerce_duration("poll_interval", table["poll_interval"])
    if "log_level" in table:
        updates["log_level"] = _coerce_log_level(table["log_level"])
    return updates


@pure
def _settings_updates_from_environ(environ: Mapping[str, str]) -> dict[str, Any]:
    updates: dict[str, Any] = {}
    if environ.get(TIMEOUT_ENV_VAR):
        updates["timeout_seconds"] = _coerce_duration(TIMEOUT_ENV_VAR, environ[TIMEOUT_ENV_VAR])
    if environ.get(POLL_INTERVAL_ENV_VAR):
        updates["poll_interval_seconds"] = _coerce_duration(POLL_INTERVAL_ENV_VAR, environ[POLL_INTERVAL_ENV_VAR])
    if environ.get(LOG_LEVEL_ENV_VAR):
        updates["log_level"] = _coerce_log_level(environ[LOG_LEVEL_ENV_VAR])
    return updates


def load_waiter_settings(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> WaiterSettings:
    """Build WaiterSettings from defaults, an optional TOML file, and environment overrides.

    The file is config_path if given, else the path named by CONDITION_WAITER_CONFIG.
    Environment variables win over the file.
    """
    environ = os.environ if environ is None else environ
    if config_path is None and environ.get(CONFIG_PATH_ENV_VAR):
        config_path = Path(environ[CONFIG_PATH_ENV_VAR])

    updates: dict[str, Any] = {}
    if config_path is not None:
        table = _extract_settings_table(_load_toml(config_path))
        updates.update(_settings_updates_from_table(table, source=str(config_path)))
        logger.debug("Loaded waiter settings from {}", config_path)
    updates.update(_settings_updates_from_environ(environ))

    return WaiterSettings(**updates)
