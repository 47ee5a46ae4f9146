"""Transitive dependency closure of a package.

Starting from a root record, every dependency is resolved to the package that
satisfies it, and each newly found package is expanded in turn. The walk is
depth-first and uses an explicit stack, so long dependency chains do not
consume interpreter stack.

Ordering: a package's key enters ``visited`` before its dependencies are
expanded (discovery order), and the package is appended to ``packages`` only
after all of them are done, so ``packages`` lists dependencies before their
dependents. Reversing the discovery order gives the same guarantee for the
flat key list. With shared (diamond) dependencies a package is expanded only
once, so the order is useful for presentation but is not a strict
topological sort.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence, Tuple

from .models import DepSpec, PackageRecord, package_key
from .storage import DatabaseHandle, PackageDatabase

logger = logging.getLogger(__name__)

Enricher = Callable[[Any], PackageRecord]


@dataclass
class ClosureState:
    """Visited ``name=version`` keys (insertion ordered) and resolved records."""

    visited: Dict[str, None] = field(default_factory=dict)
    packages: List[PackageRecord] = field(default_factory=list)

    def __contains__(self, key: str) -> bool:
        return key in self.visited

    def mark(self, key: str) -> None:
        self.visited[key] = None

    def keys(self) -> List[str]:
        """Visited keys in discovery order."""
        return list(self.visited)

    def ordered_keys(self) -> List[str]:
        """Visited keys, most recently discovered first."""
        return list(reversed(self.visited))


@dataclass
class _Frame:
    record: PackageRecord
    depth: int
    pending: Deque[Tuple[str, DepSpec]]
    resolved: Dict[str, List[DepSpec]]


class ClosureResolver:
    """Expands dependency specifications into concrete packages."""

    def __init__(
        self,
        handle: DatabaseHandle,
        enrich: Optional[Enricher] = None,
        databases: Optional[Sequence[PackageDatabase]] = None,
        include_optional: bool = False,
        summary: bool = False,
    ):
        self.handle = handle
        self.enrich = enrich or PackageRecord.from_package
        self.databases = list(databases) if databases is not None else None
        self.include_optional = include_optional
        self.summary = summary

    @property
    def dependency_fields(self) -> Tuple[str, ...]:
        if self.include_optional:
            return ("depends_on", "optional_deps")
        return ("depends_on",)

    def resolve(
        self,
        root: PackageRecord,
        state: Optional[ClosureState] = None,
        depth: int = 0,
        pkg: Optional[Any] = None,
    ) -> ClosureState:
        """Resolve the closure of ``root`` into ``state`` (a fresh one by default).

        ``pkg`` is the database package ``root`` was built from. When given,
        its ``name=version`` is the visited key and its dependency lists are
        the ones expanded, so a reconciled ``root`` whose base comes from the
        other side is keyed like any satisfier found in ``databases``.
        """
        state = state if state is not None else ClosureState()
        if pkg is None:
            stack: List[_Frame] = [self._enter(root, root.key, root, depth, state)]
        else:
            stack = [self._enter(root, package_key(pkg), PackageRecord.from_package(pkg), depth, state)]

        while stack:
            frame = stack[-1]
            if not frame.pending:
                stack.pop()
                self._leave(frame, state)
                continue

            field_name, dep = frame.pending.popleft()
            found = self.handle.find_satisfier(dep, self.databases)
            if found is None:
                logger.info(
                    "level %d: no package satisfies '%s' (required by '%s')",
                    frame.depth + 1, dep.dep_string, frame.record.name,
                )
                frame.resolved[field_name].append(dep)
                continue

            satisfier = package_key(found)
            frame.resolved[field_name].append(dep.with_satisfier(satisfier))
            if satisfier in state:
                logger.debug(
                    "level %d: duplicated dependency: '%s' provides '%s'",
                    frame.depth + 1, satisfier, dep.dep_string,
                )
                continue
            stack.append(self._enter(
                self._record_for(found), satisfier, PackageRecord.from_package(found),
                frame.depth + 1, state,
            ))

        return state

    def _record_for(self, pkg: Any) -> PackageRecord:
        try:
            return self.enrich(pkg)
        except Exception as exc:
            logger.warning("Falling back to bare record for '%s': %s", pkg.name, exc)
            return PackageRecord.from_package(pkg)

    def _enter(
        self,
        record: PackageRecord,
        key: str,
        source: PackageRecord,
        depth: int,
        state: ClosureState,
    ) -> _Frame:
        # dependencies come from the package found in the queried databases,
        # which differs from ``record`` when reconciliation based it on the other side
        logger.debug("level %d: recursing into '%s': %s", depth, key,
                     [str(d) for d in source.depends_on])
        state.mark(key)
        pending = deque(
            (field_name, dep)
            for field_name in self.dependency_fields
            for dep in getattr(source, field_name)
        )
        resolved = {field_name: [] for field_name in self.dependency_fields}
        return _Frame(record=record, depth=depth, pending=pending, resolved=resolved)

    def _leave(self, frame: _Frame, state: ClosureState) -> None:
        if self.summary:
            return
        state.packages.append(replace(frame.record, **frame.resolved))


def resolve_dependencies(
    handle: DatabaseHandle,
    root: PackageRecord,
    enrich: Optional[Enricher] = None,
    databases: Optional[Sequence[PackageDatabase]] = None,
    include_optional: bool = False,
    summary: bool = False,
    pkg: Optional[Any] = None,
) -> ClosureState:
    """Convenience wrapper: resolve ``root`` with a one-off resolver."""
    resolver = ClosureResolver(
        handle,
        enrich=enrich,
        databases=databases,
        include_optional=include_optional,
        summary=summary,
    )
    return resolver.resolve(root, pkg=pkg)
