"""Configuration management for the Messagely service."""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Dict, Optional

import yaml

from .database import resolve_database_path
from .errors import ConfigurationError

DEFAULT_WORK_FACTOR = 12
MIN_WORK_FACTOR = 4
MAX_WORK_FACTOR = 31


@dataclass(frozen=True)
class Settings:
    """Process-wide settings shared by the stores and the token issuer."""

    database_path: Path
    signing_secret: str
    work_factor: int = DEFAULT_WORK_FACTOR
    token_ttl: Optional[timedelta] = None

    def __post_init__(self) -> None:
        if not self.signing_secret:
            raise ConfigurationError(
                "A token signing secret is required. Set MESSAGELY_SECRET_KEY or 'signing_secret'."
            )
        if not MIN_WORK_FACTOR <= self.work_factor <= MAX_WORK_FACTOR:
            raise ConfigurationError(
                f"Work factor must be between {MIN_WORK_FACTOR} and {MAX_WORK_FACTOR}, "
                f"got {self.work_factor}"
            )
        if self.token_ttl is not None and self.token_ttl <= timedelta(0):
            raise ConfigurationError("Token TTL must be a positive duration")

    @staticmethod
    def from_dict(data: Dict[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from raw dictionary data."""

        raw_db_path = data.get("database_path")
        if raw_db_path:
            expanded = Path(str(raw_db_path)).expanduser()
            if not expanded.is_absolute() and base_path is not None:
                expanded = base_path / expanded
            database_path = expanded.resolve(strict=False)
        else:
            database_path = resolve_database_path(None)

        work_factor = _to_int(data.get("work_factor"), "work_factor")
        ttl_seconds = _to_int(data.get("token_ttl"), "token_ttl")

        return Settings(
            database_path=database_path,
            signing_secret=str(data.get("signing_secret") or ""),
            work_factor=DEFAULT_WORK_FACTOR if work_factor is None else work_factor,
            token_ttl=None if ttl_seconds is None else timedelta(seconds=ttl_seconds),
        )


def _to_int(value: object, name: str) -> Optional[int]:
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return None
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid integer value {value!r} for setting '{name}'") from exc


def _read_config_file(config_path: Path) -> Dict[str, object]:
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Configuration file {config_path} must contain a mapping")
    return raw


def load_settings(config_path: Optional[Path] = None) -> Settings:
    """Load settings from an optional YAML file, then apply environment overrides.

    Recognised variables: ``MESSAGELY_CONFIG``, ``MESSAGELY_DB_PATH``,
    ``MESSAGELY_SECRET_KEY``, ``MESSAGELY_BCRYPT_WORK_FACTOR`` and
    ``MESSAGELY_TOKEN_TTL`` (seconds).
    """

    if config_path is None:
        env_config = os.getenv("MESSAGELY_CONFIG")
        if env_config:
            config_path = Path(env_config).expanduser().resolve(strict=False)

    data: Dict[str, object] = {}
    base_path: Path | None = None
    if config_path is not None:
        data = _read_config_file(config_path)
        base_path = config_path.parent

    env_db_path = os.getenv("MESSAGELY_DB_PATH")
    overrides = {
        "database_path": str(resolve_database_path(env_db_path)) if env_db_path else None,
        "signing_secret": os.getenv("MESSAGELY_SECRET_KEY"),
        "work_factor": os.getenv("MESSAGELY_BCRYPT_WORK_FACTOR"),
        "token_ttl": os.getenv("MESSAGELY_TOKEN_TTL"),
    }
    for key, value in overrides.items():
        if value is not None and value.strip() != "":
            data[key] = value.strip()

    return Settings.from_dict(data, base_path=base_path)


__all__ = ["Settings", "load_settings"]
