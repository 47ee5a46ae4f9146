"""Pytest configuration and fixtures for pacdump tests."""

import base64
import json
import shutil
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Optional

import pytest

from pacdump.storage import FixtureHandle


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch, tmp_path: Path):
    """Keep every test away from the user's ~/.pacdump and PACDUMP_* variables."""
    base_dir = tmp_path / "pacdump-home"
    monkeypatch.setattr("pacdump.config.BASE_DIR", base_dir)
    monkeypatch.setattr("pacdump.config.CONFIG_FILE", base_dir / "config.toml")
    for var in ("PACDUMP_ROOT", "PACDUMP_DBPATH", "PACDUMP_FIXTURE"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def config_file() -> Path:
    """Path of the (isolated) config.toml."""
    from pacdump import config

    return config.CONFIG_FILE


@pytest.fixture
def universe_path() -> Path:
    """Path to the sample package universe."""
    return Path(__file__).parent / "fixtures" / "universe.json"


@pytest.fixture
def universe(universe_path: Path) -> FixtureHandle:
    """The sample universe loaded as a database handle."""
    return FixtureHandle.load(universe_path)


def _pkg(name: str, version: str = "1.0-1", **extra: Any) -> Dict[str, Any]:
    return {"name": name, "version": version, **extra}


@pytest.fixture
def pkg() -> Callable[..., Dict[str, Any]]:
    """Build a fixture package entry: ``pkg("a", depends=["b"])``."""
    return _pkg


@pytest.fixture
def make_handle() -> Callable[..., FixtureHandle]:
    """Build a handle from package entries, one sync database per keyword."""

    def _make(local: Optional[List[Dict[str, Any]]] = None, **sync: List[Dict[str, Any]]) -> FixtureHandle:
        return FixtureHandle.from_dict({"local": local or [], "sync": sync})

    return _make


@pytest.fixture
def write_universe(temp_dir: Path) -> Callable[[Dict[str, Any]], Path]:
    """Write a universe document to disk and return its path."""

    def _write(payload: Dict[str, Any]) -> Path:
        path = temp_dir / "universe.json"
        path.write_text(json.dumps(payload), encoding="utf-8")
        return path

    return _write


def _signature(
    key_id: str,
    fingerprint: Optional[str] = None,
    old_format: bool = False,
    fingerprint_version: int = 4,
) -> str:
    # v4 signature: creation time (and issuer fingerprint) hashed, issuer unhashed
    hashed = bytes([5, 2]) + (1718000000).to_bytes(4, "big")
    if fingerprint is not None:
        fpr = bytes.fromhex(fingerprint)
        hashed += bytes([2 + len(fpr), 33, fingerprint_version]) + fpr
    unhashed = bytes([9, 16]) + bytes.fromhex(key_id)
    body = (
        bytes([4, 0x00, 1, 8])
        + len(hashed).to_bytes(2, "big") + hashed
        + len(unhashed).to_bytes(2, "big") + unhashed
        + b"\xab\xcd"
        + b"\x00\x08\xff"
    )
    if old_format:
        packet = bytes([0x80 | (2 << 2), len(body)]) + body
    else:
        packet = bytes([0xC0 | 2, len(body)]) + body
    return base64.b64encode(packet).decode("ascii")


@pytest.fixture
def make_signature() -> Callable[..., str]:
    """Build a base64 OpenPGP signature packet naming the given issuer."""
    return _signature
