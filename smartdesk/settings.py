"""Runtime configuration for the SmartDesk table reservation service.

Values come from the environment with defaults suitable for local development.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

DEFAULT_PORT = 4000
DEFAULT_HOST = "127.0.0.1"
DEFAULT_DATA_FILE = Path("data") / "tables.yaml"
DEFAULT_LOG_LEVEL = "INFO"


@dataclass(frozen=True)
class AppSettings:
    host: str
    port: int
    data_file: Path
    log_level: str


def _to_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value.strip())
    except ValueError:
        return default


def load_settings(env: Mapping[str, str] | None = None) -> AppSettings:
    """Load configuration from the environment and fall back to defaults."""
    if env is None:
        env = os.environ

    return AppSettings(
        host=env.get("SMARTDESK_HOST", DEFAULT_HOST),
        port=_to_int(env.get("PORT"), DEFAULT_PORT),
        data_file=Path(env.get("SMARTDESK_DATA_FILE", str(DEFAULT_DATA_FILE))),
        log_level=env.get("SMARTDESK_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper(),
    )
