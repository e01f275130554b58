"""
Environment-driven settings.

Values are read at call time so tests and long-running callers can change the
environment without reloading the module:

- STACKFLAME_TARGET_SAMPLE_SIZE    minimum samples wanted from a downsampled index
- STACKFLAME_MAX_DOWNSAMPLE_LEVEL  highest downsample level N (sampleRate 1/5^N)
- STACKFLAME_TELEMETRY_DB          span database, defaults under XDG_DATA_HOME
- STACKFLAME_DISABLE_TELEMETRY     skip span export entirely
"""

import os
from dataclasses import dataclass

from .errors import ConfigError

SERVICE_NAME = "stackflame"
DEFAULT_TARGET_SAMPLE_SIZE = 20000
DEFAULT_MAX_DOWNSAMPLE_LEVEL = 11

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_VALUES


def default_data_dir() -> str:
    xdg = os.environ.get("XDG_DATA_HOME", os.path.expanduser("~/.local/share"))
    return os.path.join(xdg, SERVICE_NAME)


@dataclass(frozen=True)
class Settings:
    target_sample_size: int = DEFAULT_TARGET_SAMPLE_SIZE
    max_downsample_level: int = DEFAULT_MAX_DOWNSAMPLE_LEVEL
    telemetry_db: str = ""
    telemetry_enabled: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from STACKFLAME_* environment variables."""
        db = os.environ.get("STACKFLAME_TELEMETRY_DB")
        if db:
            db = os.path.expanduser(db)
        else:
            db = os.path.join(default_data_dir(), "telemetry.db")
        return cls(
            target_sample_size=_env_int(
                "STACKFLAME_TARGET_SAMPLE_SIZE", DEFAULT_TARGET_SAMPLE_SIZE, minimum=1
            ),
            max_downsample_level=_env_int(
                "STACKFLAME_MAX_DOWNSAMPLE_LEVEL", DEFAULT_MAX_DOWNSAMPLE_LEVEL
            ),
            telemetry_db=db,
            telemetry_enabled=not _env_flag("STACKFLAME_DISABLE_TELEMETRY"),
        )
