"""Runtime settings read from the environment and an optional ``.env`` file."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from .enrichment import DEFAULT_BASE_URL, DEFAULT_RATE_LIMIT, DEFAULT_TIMEOUT

__all__ = ["LOG_FORMAT", "Settings", "configure_logging"]

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"", "0", "false", "no", "off"}


def configure_logging(level: str | int = logging.INFO) -> None:
    if isinstance(level, str):
        resolved = logging.getLevelName(level.strip().upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level '{level}'")
        level = resolved
    logging.basicConfig(level=level, format=LOG_FORMAT)


def _get(environ: Mapping[str, str], name: str, default: str) -> str:
    value = environ.get(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _get_int(environ: Mapping[str, str], name: str, default: int, *, minimum: int = 1) -> int:
    raw = _get(environ, name, str(default))
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got '{raw}'") from exc
    if value < minimum:
        raise ValueError(f"{name} must be at least {minimum}, got {value}")
    return value


def _get_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = _get(environ, name, str(default))
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got '{raw}'") from exc
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def _get_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    raw = environ.get(name)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ValueError(f"{name} must be a boolean flag, got '{raw}'")


@dataclass(frozen=True)
class Settings:
    data_file: Path = Path("characters.json")
    equipment_csv: Path = Path("data/5e-SRD-Equipment.csv")
    spells_csv: Path = Path("data/5e-SRD-Spells.csv")
    api_base_url: str = DEFAULT_BASE_URL
    rate_limit: int = DEFAULT_RATE_LIMIT
    http_timeout: float = DEFAULT_TIMEOUT
    enrichment_timeout: float = 10.0
    offline: bool = False
    log_level: Optional[str] = None
    port: int = 8080

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        *,
        load_env_file: bool = True,
    ) -> "Settings":
        """Build settings from ``environ`` (``os.environ`` by default).

        ``.env`` is only consulted when reading the process environment.
        """

        if environ is None:
            if load_env_file:
                load_dotenv()
            environ = os.environ

        log_level = environ.get("CHARGEN_LOG_LEVEL")
        return cls(
            data_file=Path(_get(environ, "CHARGEN_DATA_FILE", str(cls.data_file))),
            equipment_csv=Path(_get(environ, "CHARGEN_EQUIPMENT_CSV", str(cls.equipment_csv))),
            spells_csv=Path(_get(environ, "CHARGEN_SPELLS_CSV", str(cls.spells_csv))),
            api_base_url=_get(environ, "CHARGEN_API_BASE_URL", DEFAULT_BASE_URL),
            rate_limit=_get_int(environ, "CHARGEN_RATE_LIMIT", DEFAULT_RATE_LIMIT),
            http_timeout=_get_float(environ, "CHARGEN_HTTP_TIMEOUT", DEFAULT_TIMEOUT),
            enrichment_timeout=_get_float(environ, "CHARGEN_ENRICHMENT_TIMEOUT", 10.0),
            offline=_get_bool(environ, "CHARGEN_OFFLINE", False),
            log_level=log_level.strip() if log_level and log_level.strip() else None,
            port=_get_int(environ, "PORT", 8080),
        )
