"""Signature levels of pacman repositories, as reported by ``pacman-conf``.

``pacman-conf`` resolves coarse settings such as ``SigLevel = Required`` into
fine-grained lines (``PackageRequired`` and ``DatabaseRequired``). Only that
fine-grained subset is accepted here; plain ``Required`` is rejected.

Re-implements ``process_siglevel`` from pacman's ``conf.c``.
"""

from __future__ import annotations

import enum
import logging

from .pacman_conf import read_conf

logger = logging.getLogger(__name__)


class SigLevel(enum.IntFlag):
    """libalpm's ``alpm_siglevel_t`` bits."""

    PACKAGE = 1 << 0
    PACKAGE_OPTIONAL = 1 << 1
    PACKAGE_MARGINAL_OK = 1 << 2
    PACKAGE_UNKNOWN_OK = 1 << 3
    DATABASE = 1 << 10
    DATABASE_OPTIONAL = 1 << 11
    DATABASE_MARGINAL_OK = 1 << 12
    DATABASE_UNKNOWN_OK = 1 << 13
    USE_DEFAULT = 1 << 30


PACKAGE_TRUST_ALL = SigLevel.PACKAGE_MARGINAL_OK | SigLevel.PACKAGE_UNKNOWN_OK
DATABASE_TRUST_ALL = SigLevel.DATABASE_MARGINAL_OK | SigLevel.DATABASE_UNKNOWN_OK


def process_siglevel(default: SigLevel, siglevel: str) -> SigLevel:
    """Apply a single ``SigLevel`` line on top of ``default``.

    An empty or whitespace-only line leaves ``default`` unchanged. Unknown
    keywords raise ``ValueError``.

    >>> process_siglevel(SigLevel.USE_DEFAULT, "PackageRequired") == SigLevel.PACKAGE
    True
    """
    base = int(default)
    use_default = int(SigLevel.USE_DEFAULT)

    def slset(bits: int) -> int:
        return (base | bits) & ~use_default

    def slunset(bits: int) -> int:
        return (base & ~bits) & ~use_default

    pkg, pkg_opt = int(SigLevel.PACKAGE), int(SigLevel.PACKAGE_OPTIONAL)
    db, db_opt = int(SigLevel.DATABASE), int(SigLevel.DATABASE_OPTIONAL)

    keyword = siglevel.strip()
    if keyword == "":
        return default
    table = {
        "PackageNever": lambda: slunset(pkg),
        "PackageOptional": lambda: slset(pkg | pkg_opt),
        "PackageRequired": lambda: slset(pkg) & ~pkg_opt,
        "PackageTrustedOnly": lambda: slunset(int(PACKAGE_TRUST_ALL)),
        "PackageTrustAll": lambda: slset(int(PACKAGE_TRUST_ALL)),
        "DatabaseNever": lambda: slunset(db),
        "DatabaseOptional": lambda: slset(db | db_opt),
        "DatabaseRequired": lambda: slset(db) & ~db_opt,
        "DatabaseTrustedOnly": lambda: slunset(int(DATABASE_TRUST_ALL)),
        "DatabaseTrustAll": lambda: slset(int(DATABASE_TRUST_ALL)),
    }
    if keyword not in table:
        raise ValueError(f"failed to parse the signature level: {keyword}")
    return SigLevel(table[keyword]())


def fold_siglevels(default: SigLevel, siglevels: str) -> SigLevel:
    """Apply every line of a multi-line ``SigLevel`` output in order."""
    level = default
    for line in siglevels.split("\n"):
        level = process_siglevel(level, line)
    return level


def default_siglevel() -> SigLevel:
    """Global SigLevel from pacman.conf, or ``USE_DEFAULT`` if unavailable."""
    try:
        siglevels = read_conf(["SigLevel"])
    except OSError as exc:
        logger.warning("Cannot read default SigLevel: %s", exc)
        siglevels = ""
    return fold_siglevels(SigLevel.USE_DEFAULT, siglevels)


def repo_siglevel(repo: str, default: SigLevel) -> SigLevel:
    """SigLevel of one repository, stacked on ``default``."""
    try:
        siglevels = read_conf([f"--repo={repo}", "SigLevel"])
    except OSError as exc:
        logger.warning("Cannot read SigLevel of %s: %s", repo, exc)
        siglevels = ""
    return fold_siglevels(default, siglevels)
