"""
Tokenlock Configuration

All settings come from TOKENLOCK_* environment variables. ``load_settings``
reads them on each call so the CLI and tests can change them per process.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

VALID_ENVIRONMENTS = ("development", "testing", "production")
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

DEFAULT_STATE_FILE = Path.home() / ".tokenlock" / "state.json"
DEFAULT_TOKEN_DECIMALS = 18


def _get_int(env_var: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(env_var, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(
            f"{env_var} must be an integer, got {raw!r}",
            details={"env_var": env_var},
        ) from exc
    if value < minimum:
        raise ConfigurationError(
            f"{env_var} must be >= {minimum}, got {value}",
            details={"env_var": env_var},
        )
    return value


def _get_choice(env_var: str, default: str, choices: tuple[str, ...], upper: bool = False) -> str:
    value = os.getenv(env_var, default).strip() or default
    value = value.upper() if upper else value.lower()
    if value not in choices:
        raise ConfigurationError(
            f"{env_var} must be one of {', '.join(choices)}, got {value!r}",
            details={"env_var": env_var},
        )
    return value


@dataclass(frozen=True)
class Settings:
    """Resolved runtime settings."""

    environment: str
    log_level: str
    log_file: str | None
    state_file: Path
    token_decimals: int
    # 0 = unlimited
    max_lock_seconds: int


def load_settings() -> Settings:
    """Read settings from the environment.

    Raises:
        ConfigurationError: If any variable holds an invalid value
    """
    decimals = _get_int("TOKENLOCK_TOKEN_DECIMALS", DEFAULT_TOKEN_DECIMALS)
    if decimals > 18:
        raise ConfigurationError(
            f"TOKENLOCK_TOKEN_DECIMALS must be <= 18, got {decimals}",
            details={"env_var": "TOKENLOCK_TOKEN_DECIMALS"},
        )

    state_file = os.getenv("TOKENLOCK_STATE_FILE", "").strip()
    log_file = os.getenv("TOKENLOCK_LOG_FILE", "").strip() or None

    settings = Settings(
        environment=_get_choice("TOKENLOCK_ENV", "development", VALID_ENVIRONMENTS),
        log_level=_get_choice("TOKENLOCK_LOG_LEVEL", "INFO", VALID_LOG_LEVELS, upper=True),
        log_file=log_file,
        state_file=Path(state_file).expanduser() if state_file else DEFAULT_STATE_FILE,
        token_decimals=decimals,
        max_lock_seconds=_get_int("TOKENLOCK_MAX_LOCK_SECONDS", 0),
    )
    logger.debug(
        "Settings loaded",
        extra={"event": "config.loaded", "environment": settings.environment},
    )
    return settings
