"""Configuration manager for pacdump using TOML files.

The file has two sections::

    [pacman]
    root = "/"
    dbpath = "/var/lib/pacman/"
    repos = ["core", "extra"]
    fixture = "/path/to/universe.json"

    [defaults]
    sync = false
    all = false
    plain = false

Every key is optional. Values under ``[pacman]`` override what ``pacman-conf``
reports; environment variables override both.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import toml

from . import config

logger = logging.getLogger(__name__)

DEFAULT_FILTERS = {"sync": False, "all": False, "plain": False}


@dataclass
class Settings:
    """Effective settings after merging config.toml and the environment."""

    root: Optional[str] = None
    dbpath: Optional[str] = None
    repos: Optional[List[str]] = None
    fixture: Optional[Path] = None
    defaults: Dict[str, bool] = field(default_factory=lambda: dict(DEFAULT_FILTERS))

    def as_dict(self) -> Dict[str, Any]:
        return {
            "config_file": str(config.CONFIG_FILE),
            "root": self.root,
            "dbpath": self.dbpath,
            "repos": self.repos,
            "fixture": str(self.fixture) if self.fixture else None,
            "defaults": dict(self.defaults),
        }


def load_full_config() -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    if not config.CONFIG_FILE.exists():
        return {}
    try:
        with open(config.CONFIG_FILE, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", config.CONFIG_FILE, exc)
        return {}


def _save_full_config(payload: Dict[str, Any]) -> bool:
    config.ensure_base_dirs()
    try:
        with open(config.CONFIG_FILE, "w", encoding="utf-8") as f:
            toml.dump(payload, f)
        return True
    except OSError as exc:
        logger.warning("Cannot write config %s: %s", config.CONFIG_FILE, exc)
        return False


def save_pacman_config(
    root: Optional[str] = None,
    dbpath: Optional[str] = None,
    repos: Optional[List[str]] = None,
    fixture: Optional[str] = None,
) -> bool:
    """Update the ``[pacman]`` section, keeping other sections.

    Only the given values are written; ``None`` leaves a key untouched.
    """
    payload = load_full_config()
    section = payload.setdefault("pacman", {})
    for key, value in (("root", root), ("dbpath", dbpath), ("repos", repos), ("fixture", fixture)):
        if value is not None:
            section[key] = value
    return _save_full_config(payload)


def save_default_filters(**flags: bool) -> bool:
    """Update the ``[defaults]`` section with known filter flags."""
    unknown = set(flags) - set(DEFAULT_FILTERS)
    if unknown:
        raise ValueError(f"Unknown default filter(s): {', '.join(sorted(unknown))}")
    payload = load_full_config()
    payload.setdefault("defaults", {}).update(flags)
    return _save_full_config(payload)


def clear_config() -> bool:
    """Remove the config file, resetting to defaults."""
    if config.CONFIG_FILE.exists():
        config.CONFIG_FILE.unlink()
        return True
    return False


def load_settings() -> Settings:
    full = load_full_config()
    pacman = full.get("pacman", {})
    defaults = dict(DEFAULT_FILTERS)
    for key, value in full.get("defaults", {}).items():
        if key in defaults:
            defaults[key] = bool(value)
        else:
            logger.warning("Unknown key [defaults].%s in %s", key, config.CONFIG_FILE)

    fixture = os.environ.get(config.ENV_FIXTURE) or pacman.get("fixture")
    repos = pacman.get("repos")
    return Settings(
        root=os.environ.get(config.ENV_ROOT) or pacman.get("root"),
        dbpath=os.environ.get(config.ENV_DBPATH) or pacman.get("dbpath"),
        repos=list(repos) if repos is not None else None,
        fixture=Path(fixture).expanduser() if fixture else None,
        defaults=defaults,
    )
