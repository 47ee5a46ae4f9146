"""Reverse dependency maps over the sync databases.

libalpm can compute reverse dependencies per package (``compute_requiredby``),
but it walks the whole database on every call. Dumping a whole database that
way is quadratic, so the maps here are built with one pass over every sync
package and looked up in constant time afterwards.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Callable, Dict, FrozenSet, Iterable, Mapping, Set

from .models import PackageRecord, parse_deps
from .storage import DatabaseHandle

logger = logging.getLogger(__name__)

ReverseDepsMap = Mapping[str, FrozenSet[str]]

_EMPTY: FrozenSet[str] = frozenset()

# dependency kind -> pyalpm attribute holding it
DEPENDENCY_KINDS = {
    "required_by": "depends",
    "optional_for": "optdepends",
    "required_by_make": "makedepends",
    "required_by_check": "checkdepends",
}


def build_reverse_deps_map(
    packages: Iterable[Any],
    get_dependencies: Callable[[Any], Iterable[Any]],
) -> ReverseDepsMap:
    """Map each dependency name to the names of the packages depending on it.

    Version constraints are ignored: ``foo>=2`` counts as a dependency on
    ``foo``.
    """
    reverse: Dict[str, Set[str]] = {}
    for pkg in packages:
        for dep in parse_deps(get_dependencies(pkg)):
            reverse.setdefault(dep.name, set()).add(pkg.name)
    return MappingProxyType({name: frozenset(dependents) for name, dependents in reverse.items()})


def _sync_packages(handle: DatabaseHandle) -> Iterable[Any]:
    for db in handle.syncdbs:
        yield from db.all_packages()


@dataclass(frozen=True)
class ReverseDepsDatabase:
    """All four kinds of reverse dependency maps, built once per run."""

    required_by: ReverseDepsMap = field(default_factory=lambda: MappingProxyType({}))
    optional_for: ReverseDepsMap = field(default_factory=lambda: MappingProxyType({}))
    required_by_make: ReverseDepsMap = field(default_factory=lambda: MappingProxyType({}))
    required_by_check: ReverseDepsMap = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_handle(cls, handle: DatabaseHandle) -> "ReverseDepsDatabase":
        maps = {
            kind: build_reverse_deps_map(
                _sync_packages(handle),
                lambda pkg, attr=attr: getattr(pkg, attr, None) or [],
            )
            for kind, attr in DEPENDENCY_KINDS.items()
        }
        logger.debug(
            "Reverse dependency maps: %s",
            ", ".join(f"{kind}={len(m)}" for kind, m in maps.items()),
        )
        return cls(**maps)

    def lookup(self, kind: str, name: str) -> FrozenSet[str]:
        """Dependents of ``name`` for one kind; empty when there are none."""
        if kind not in DEPENDENCY_KINDS:
            raise KeyError(f"Unknown dependency kind: {kind}")
        return getattr(self, kind).get(name, _EMPTY)

    def for_package(self, name: str) -> Dict[str, list]:
        return {kind: sorted(self.lookup(kind, name)) for kind in DEPENDENCY_KINDS}

    def attach(self, record: PackageRecord) -> PackageRecord:
        """Return ``record`` with its reverse dependency lists filled in."""
        return replace(record, **self.for_package(record.name))
