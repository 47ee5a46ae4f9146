"""Configuration paths and defaults for pacdump."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("PACDUMP_HOME", str(Path.home() / ".pacdump"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"

# libalpm names the local database "local"
LOCAL_DB_NAME = "local"

DEFAULT_ROOT = "/"
DEFAULT_DBPATH = "/var/lib/pacman/"

# Environment overrides, checked before config.toml and pacman-conf
ENV_ROOT = "PACDUMP_ROOT"
ENV_DBPATH = "PACDUMP_DBPATH"
ENV_FIXTURE = "PACDUMP_FIXTURE"


def ensure_base_dirs() -> None:
    """Create the configuration directory if needed."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)
