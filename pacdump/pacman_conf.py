"""Thin wrapper around the ``pacman-conf`` executable."""

from __future__ import annotations

import logging
import os
import subprocess
from typing import List, Sequence

logger = logging.getLogger(__name__)

PACMAN_CONF = "pacman-conf"


def read_conf(args: Sequence[str]) -> str:
    """Run ``pacman-conf`` with ``args`` and return its output.

    Raises ``OSError`` if the executable is missing or exits with an error.
    A single trailing newline is stripped.
    """
    env = dict(os.environ)
    # user locales must not leak into the parsed output
    env["LC_ALL"] = "C.UTF-8"
    env["LANGUAGE"] = "C.UTF-8"
    try:
        proc = subprocess.run(
            [PACMAN_CONF, *args],
            capture_output=True,
            env=env,
            check=True,
        )
    except subprocess.CalledProcessError as exc:
        stderr = exc.stderr.decode("utf-8", errors="replace").strip()
        raise OSError(f"{PACMAN_CONF} {' '.join(args)} failed: {stderr}") from exc

    out = proc.stdout.decode("utf-8", errors="replace")
    if out.endswith("\n"):
        out = out[:-1]
    return out


def root_dir() -> str:
    return read_conf(["RootDir"])


def db_path() -> str:
    return read_conf(["DBPath"])


def repo_list() -> List[str]:
    return [line for line in read_conf(["--repo-list"]).split("\n") if line]
