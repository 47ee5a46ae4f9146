"""Query driver coordinating databases, enrichment, and closure resolution."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator, List, Optional, TypeVar, Union

from . import pacman_conf
from .closure import ClosureResolver, ClosureState
from .config import DEFAULT_DBPATH, DEFAULT_ROOT
from .config_manager import Settings
from .errors import DatabaseRegistrationError, NotExplicitError, PackageNotFoundError
from .models import PackageRecord
from .reconcile import is_local, reconcile
from .reverse_deps import ReverseDepsDatabase
from .siglevel import default_siglevel, repo_siglevel
from .signature import SignatureReader, decode_keyid
from .storage import DatabaseHandle, PackageDatabase, open_handle

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class PackageFilters:
    """Which packages to emit and how much to enrich them.

    ``recurse`` names a root package whose dependency closure is emitted
    instead of a whole database; it implies ``all``. ``optional`` and
    ``summary`` only make sense together with ``recurse``.
    """

    sync: bool = False
    all: bool = False
    plain: bool = False
    recurse: Optional[str] = None
    optional: bool = False
    summary: bool = False

    def __post_init__(self) -> None:
        if self.recurse is None and (self.optional or self.summary):
            raise ValueError("--optional and --summary require --recurse")

    @property
    def include_all(self) -> bool:
        return self.all or self.recurse is not None


def find_in_databases(databases: Iterable[PackageDatabase], name: str) -> Any:
    """First package called ``name`` in ``databases``, in order."""
    dbs = list(databases)
    for db in dbs:
        pkg = db.get_package(name)
        if pkg is not None:
            return pkg
    where = ", ".join(db.name for db in dbs) or "no databases"
    raise PackageNotFoundError(name, where)


class QueryOrchestrator:
    """Turns database packages into enriched records according to filters."""

    def __init__(
        self,
        handle: DatabaseHandle,
        filters: Optional[PackageFilters] = None,
        reader: Optional[SignatureReader] = None,
        reverse_deps: Optional[ReverseDepsDatabase] = None,
    ):
        self.handle = handle
        self.filters = filters or PackageFilters()
        self.reader = reader or SignatureReader()
        self.reverse_deps = reverse_deps or ReverseDepsDatabase.from_handle(handle)

    def databases(self) -> List[PackageDatabase]:
        return self.handle.databases(self.filters.sync)

    # ------------------------------------------------------------------
    # Single package
    # ------------------------------------------------------------------

    def generate_pkg_info(self, pkg: Any, check_explicit: bool = True) -> PackageRecord:
        """Build the emitted record for one database package.

        Raises:
            NotExplicitError: the package is a dependency and the filters
                only ask for explicitly installed packages.
        """
        record = PackageRecord.from_package(pkg)
        if check_explicit and not self.filters.include_all and not record.is_explicit:
            raise NotExplicitError(record.name)
        if not is_local(record):
            record = decode_keyid(record, self.reader)
        if not self.filters.plain:
            record = self.enrich_pkg_info(record)
        return self.reverse_deps.attach(record)

    def enrich_pkg_info(self, record: PackageRecord) -> PackageRecord:
        """Reconcile ``record`` with the same package from the other side."""
        counterpart = None
        try:
            pkg = find_in_databases(self.handle.databases(is_local(record)), record.name)
        except PackageNotFoundError:
            # reconcile() reports the missing counterpart
            pass
        else:
            counterpart = PackageRecord.from_package(pkg)
            if not is_local(counterpart):
                counterpart = decode_keyid(counterpart, self.reader)
        return reconcile(record, counterpart, plain=self.filters.plain)

    def lookup(self, name: str) -> PackageRecord:
        """Enriched record for ``name`` from the selected databases, ignoring the explicit filter."""
        return self.generate_pkg_info(find_in_databases(self.databases(), name), check_explicit=False)

    # ------------------------------------------------------------------
    # Batch and closure queries
    # ------------------------------------------------------------------

    def dump(self) -> Iterator[PackageRecord]:
        """Records for every package of the selected databases that passes the filters."""
        for db in self.databases():
            for pkg in db.all_packages():
                try:
                    yield self.generate_pkg_info(pkg)
                except NotExplicitError as exc:
                    logger.debug("%s", exc)
                except Exception as exc:
                    logger.warning("Skipping '%s' from %s: %s", pkg.name, db.name, exc)

    def recurse(self, name: str) -> ClosureState:
        """Resolve the dependency closure of ``name``.

        Raises:
            PackageNotFoundError: ``name`` is in none of the selected databases.
        """
        root_pkg = find_in_databases(self.databases(), name)
        root = self.generate_pkg_info(root_pkg)
        resolver = ClosureResolver(
            self.handle,
            enrich=self.generate_pkg_info,
            databases=self.databases(),
            include_optional=self.filters.optional,
            summary=self.filters.summary,
        )
        return resolver.resolve(root, pkg=root_pkg)

    def run(self) -> Union[List[str], List[dict]]:
        """JSON-ready output for the configured query."""
        if self.filters.recurse is not None:
            state = self.recurse(self.filters.recurse)
            if self.filters.summary:
                return state.ordered_keys()
            return [record.to_dict() for record in state.packages]
        return [record.to_dict() for record in self.dump()]


# ----------------------------------------------------------------------
# Opening databases
# ----------------------------------------------------------------------

def _from_pacman_conf(read: Callable[[], T], fallback: T, what: str) -> T:
    try:
        return read()
    except OSError as exc:
        logger.warning("Cannot read %s from pacman-conf (%s); using %r", what, exc, fallback)
        return fallback


def open_from_settings(settings: Settings) -> DatabaseHandle:
    """Open the fixture named in ``settings`` or the live pacman databases.

    Raises:
        DatabaseRegistrationError: a database cannot be opened or registered.
    """
    if settings.fixture is not None:
        return open_handle(fixture=settings.fixture)

    root = settings.root or _from_pacman_conf(pacman_conf.root_dir, DEFAULT_ROOT, "RootDir")
    dbpath = settings.dbpath or _from_pacman_conf(pacman_conf.db_path, DEFAULT_DBPATH, "DBPath")
    repos = settings.repos
    if repos is None:
        repos = _from_pacman_conf(pacman_conf.repo_list, [], "the repository list")
    logger.info("RootDir: %s", root)
    logger.info("DBPath: %s", dbpath)

    try:
        default = default_siglevel()
        registered = [(repo, int(repo_siglevel(repo, default))) for repo in repos]
    except ValueError as exc:
        raise DatabaseRegistrationError(str(exc)) from exc
    logger.info("Repositories: %s", ", ".join(repos) or "none")
    return open_handle(root=root, dbpath=dbpath, repos=registered)
