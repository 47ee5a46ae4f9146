"""Pacman version comparison.

Mirrors libalpm's ``alpm_pkg_vercmp``: versions are ``[epoch:]version[-release]``
and each part is compared segment by segment, numeric segments numerically
and alphabetic segments lexically.
"""

from __future__ import annotations

from typing import Optional, Tuple

from .models import DepSpec


def _parse_evr(evr: str) -> Tuple[str, str, Optional[str]]:
    idx = 0
    while idx < len(evr) and evr[idx].isdigit():
        idx += 1
    if idx < len(evr) and evr[idx] == ":":
        epoch = evr[:idx] or "0"
        rest = evr[idx + 1:]
    else:
        epoch = "0"
        rest = evr
    version, sep, release = rest.rpartition("-")
    if not sep:
        return epoch, rest, None
    return epoch, version, release


def _isalnum(ch: str) -> bool:
    return ch.isascii() and ch.isalnum()


def _isalpha(ch: str) -> bool:
    return ch.isascii() and ch.isalpha()


def rpmvercmp(a: str, b: str) -> int:
    """Compare two version fragments. Returns -1, 0 or 1."""
    if a == b:
        return 0

    one = two = 0
    prev1 = prev2 = 0
    len1, len2 = len(a), len(b)

    while one < len1 and two < len2:
        while one < len1 and not _isalnum(a[one]):
            one += 1
        while two < len2 and not _isalnum(b[two]):
            two += 1
        if one >= len1 or two >= len2:
            break

        # different separator lengths settle it
        if one - prev1 != two - prev2:
            return -1 if one - prev1 < two - prev2 else 1

        end1, end2 = one, two
        if a[end1].isdigit():
            while end1 < len1 and a[end1].isdigit():
                end1 += 1
            while end2 < len2 and b[end2].isdigit():
                end2 += 1
            isnum = True
        else:
            while end1 < len1 and _isalpha(a[end1]):
                end1 += 1
            while end2 < len2 and _isalpha(b[end2]):
                end2 += 1
            isnum = False

        seg1, seg2 = a[one:end1], b[two:end2]
        if not seg1:
            return -1
        if not seg2:
            return 1 if isnum else -1

        if isnum:
            seg1 = seg1.lstrip("0")
            seg2 = seg2.lstrip("0")
            if len(seg1) != len(seg2):
                return 1 if len(seg1) > len(seg2) else -1
        if seg1 != seg2:
            return -1 if seg1 < seg2 else 1

        one, two = end1, end2
        prev1, prev2 = one, two

    if one >= len1 and two >= len2:
        return 0
    # a remaining alpha segment never beats an empty string
    if (one >= len1 and not _isalpha(b[two])) or (one < len1 and _isalpha(a[one])):
        return -1
    return 1


def vercmp(a: str, b: str) -> int:
    """Compare two full package versions. Returns -1, 0 or 1."""
    if a == b:
        return 0
    epoch1, ver1, rel1 = _parse_evr(a)
    epoch2, ver2, rel2 = _parse_evr(b)
    ret = rpmvercmp(epoch1, epoch2)
    if ret == 0:
        ret = rpmvercmp(ver1, ver2)
        if ret == 0 and rel1 and rel2:
            ret = rpmvercmp(rel1, rel2)
    return ret


def version_satisfies(version: str, dep: DepSpec) -> bool:
    """Check a concrete version against the constraint carried by ``dep``."""
    if dep.depmod == "Any" or dep.version is None:
        return True
    cmp = vercmp(version, dep.version)
    return {
        "Eq": cmp == 0,
        "Ge": cmp >= 0,
        "Le": cmp <= 0,
        "Gt": cmp > 0,
        "Lt": cmp < 0,
    }[dep.depmod]


def provision_satisfies(provision: DepSpec, dep: DepSpec) -> bool:
    """Check whether a ``provides`` entry satisfies ``dep``.

    An unversioned provision only satisfies unversioned dependencies.
    """
    if provision.name != dep.name:
        return False
    if dep.depmod == "Any":
        return True
    if provision.depmod != "Eq" or provision.version is None:
        return False
    return version_satisfies(provision.version, dep)
