"""Access layer for pacman package databases.

Two backends share one interface:

- :class:`AlpmHandle` wraps a live libalpm handle through ``pyalpm``
  (the local database plus the sync databases listed by ``pacman-conf``).
- :class:`FixtureHandle` serves an in-memory package universe loaded from a
  JSON file, for offline inspection and tests.

Both expose the local database, the sync databases in registration order, and
a satisfier lookup that follows libalpm: exact name matches across all
databases win over ``provides`` matches.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .config import LOCAL_DB_NAME
from .errors import DatabaseRegistrationError
from .models import DepSpec, parse_deps
from .version import provision_satisfies, version_satisfies

logger = logging.getLogger(__name__)

try:
    import pyalpm
    PYALPM_AVAILABLE = True
except ImportError:
    PYALPM_AVAILABLE = False


# ===================================================================
# Database interface
# ===================================================================

class PackageDatabase:
    """One package database: either the local one or a sync repository."""

    name: str = ""
    is_local: bool = False

    def get_package(self, name: str) -> Optional[Any]:
        raise NotImplementedError

    def all_packages(self) -> Iterator[Any]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"


class DatabaseHandle:
    """The local database plus the registered sync databases."""

    localdb: PackageDatabase
    syncdbs: List[PackageDatabase]

    def databases(self, sync: bool) -> List[PackageDatabase]:
        """Sync databases in registration order, or just the local one."""
        return list(self.syncdbs) if sync else [self.localdb]

    def find_satisfier(
        self,
        dep: DepSpec,
        databases: Optional[Sequence[PackageDatabase]] = None,
    ) -> Optional[Any]:
        """Find a package satisfying ``dep`` in ``databases`` (default: sync).

        Exact name matches in any database take precedence over providers.
        """
        dbs = list(self.syncdbs if databases is None else databases)
        for db in dbs:
            pkg = db.get_package(dep.name)
            if pkg is not None and version_satisfies(str(pkg.version), dep):
                return pkg
        for db in dbs:
            for pkg in db.all_packages():
                if pkg.name == dep.name:
                    continue
                if any(provision_satisfies(p, dep) for p in parse_deps(pkg.provides)):
                    return pkg
        return None

    def close(self) -> None:
        pass


# ===================================================================
# Fixture backend (JSON universe, in memory)
# ===================================================================

@dataclass
class StoredPackage:
    """A package as described in a fixture file; attribute names follow pyalpm."""

    name: str
    version: str
    desc: str = ""
    arch: str = ""
    url: str = ""
    licenses: List[str] = field(default_factory=list)
    groups: List[str] = field(default_factory=list)
    provides: List[str] = field(default_factory=list)
    depends: List[str] = field(default_factory=list)
    optdepends: List[str] = field(default_factory=list)
    makedepends: List[str] = field(default_factory=list)
    checkdepends: List[str] = field(default_factory=list)
    conflicts: List[str] = field(default_factory=list)
    replaces: List[str] = field(default_factory=list)
    size: int = 0
    isize: int = 0
    packager: str = ""
    builddate: int = 0
    installdate: Optional[int] = None
    reason: Any = 0
    has_scriptlet: bool = False
    md5sum: str = ""
    sha256sum: str = ""
    base64_sig: str = ""
    validation: Any = None
    db: Optional["FixtureDatabase"] = field(default=None, repr=False, compare=False)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "StoredPackage":
        known = {f.name for f in fields(cls)} - {"db"}
        unknown = set(payload) - known
        if unknown:
            logger.debug("Ignoring unknown fields for %s: %s", payload.get("name"), sorted(unknown))
        if "name" not in payload or "version" not in payload:
            raise ValueError(f"Fixture package needs 'name' and 'version': {payload!r}")
        return cls(**{k: v for k, v in payload.items() if k in known})


class FixtureDatabase(PackageDatabase):
    def __init__(self, name: str, packages: Iterable[StoredPackage], is_local: bool = False):
        self.name = name
        self.is_local = is_local
        self._packages: Dict[str, StoredPackage] = {}
        for pkg in packages:
            if pkg.name in self._packages:
                raise DatabaseRegistrationError(
                    f"Duplicate package '{pkg.name}' in database '{name}'"
                )
            pkg.db = self
            self._packages[pkg.name] = pkg

    def get_package(self, name: str) -> Optional[StoredPackage]:
        return self._packages.get(name)

    def all_packages(self) -> Iterator[StoredPackage]:
        return iter(self._packages.values())

    def __len__(self) -> int:
        return len(self._packages)


class FixtureHandle(DatabaseHandle):
    """Package universe read from a JSON document.

    Layout::

        {
          "local": [{"name": "bash", "version": "5.2-1", ...}, ...],
          "sync": {"core": [...], "extra": [...]}
        }

    Sync databases are registered in the order they appear.
    """

    def __init__(self, local: Iterable[StoredPackage], sync: Iterable[Tuple[str, Iterable[StoredPackage]]]):
        self.localdb = FixtureDatabase(LOCAL_DB_NAME, local, is_local=True)
        self.syncdbs = []
        for name, packages in sync:
            if name == LOCAL_DB_NAME or any(db.name == name for db in self.syncdbs):
                raise DatabaseRegistrationError(f"Cannot register sync database '{name}' twice")
            self.syncdbs.append(FixtureDatabase(name, packages))

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "FixtureHandle":
        local = [StoredPackage.from_dict(p) for p in payload.get("local", [])]
        sync = [
            (name, [StoredPackage.from_dict(p) for p in packages])
            for name, packages in (payload.get("sync") or {}).items()
        ]
        return cls(local, sync)

    @classmethod
    def load(cls, path: Path) -> "FixtureHandle":
        try:
            payload = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise DatabaseRegistrationError(f"Cannot read package fixture {path}: {exc}") from exc
        try:
            handle = cls.from_dict(payload)
        except (TypeError, ValueError, AttributeError) as exc:
            raise DatabaseRegistrationError(f"Malformed package fixture {path}: {exc}") from exc
        logger.info(
            "Loaded fixture %s: %d local, %d sync database(s)",
            path, len(handle.localdb), len(handle.syncdbs),
        )
        return handle


# ===================================================================
# Live backend (libalpm through pyalpm)
# ===================================================================

class AlpmDatabase(PackageDatabase):
    def __init__(self, db: Any, is_local: bool = False):
        self._db = db
        self.name = db.name
        self.is_local = is_local

    def get_package(self, name: str) -> Optional[Any]:
        return self._db.get_pkg(name)

    @property
    def pkgcache(self) -> List[Any]:
        return self._db.pkgcache

    def all_packages(self) -> Iterator[Any]:
        return iter(self._db.pkgcache)


class AlpmHandle(DatabaseHandle):
    """Live pacman databases opened through ``pyalpm``."""

    def __init__(self, root: str, dbpath: str, repos: Sequence[Tuple[str, int]] = ()):
        if not PYALPM_AVAILABLE:
            raise DatabaseRegistrationError(
                "pyalpm is not installed; install pacdump[alpm] or pass --fixture"
            )
        try:
            self._handle = pyalpm.Handle(root, dbpath)
        except pyalpm.error as exc:
            raise DatabaseRegistrationError(f"Cannot open pacman handle at {dbpath}: {exc}") from exc

        self.localdb = AlpmDatabase(self._handle.get_localdb(), is_local=True)
        self.syncdbs = []
        for repo, siglevel in repos:
            try:
                db = self._handle.register_syncdb(repo, siglevel)
            except pyalpm.error as exc:
                raise DatabaseRegistrationError(f"Cannot register sync database '{repo}': {exc}") from exc
            logger.debug("Registered %s with SigLevel %#x", repo, siglevel)
            self.syncdbs.append(AlpmDatabase(db))

    def find_satisfier(
        self,
        dep: DepSpec,
        databases: Optional[Sequence[PackageDatabase]] = None,
    ) -> Optional[Any]:
        dbs = list(self.syncdbs if databases is None else databases)
        for db in dbs:
            pkg = db.get_package(dep.name)
            if pkg is not None and pyalpm.find_satisfier([pkg], dep.dep_string) is not None:
                return pkg
        for db in dbs:
            pkg = pyalpm.find_satisfier(db.pkgcache, dep.dep_string)
            if pkg is not None:
                return pkg
        return None


def open_handle(
    fixture: Optional[Path] = None,
    root: str = "/",
    dbpath: str = "/var/lib/pacman",
    repos: Sequence[Tuple[str, int]] = (),
) -> DatabaseHandle:
    """Open the fixture universe if one is given, otherwise the live system."""
    if fixture is not None:
        return FixtureHandle.load(fixture)
    return AlpmHandle(root, dbpath, repos)
