"""Merge the local and sync views of the same package.

A package that is both installed and available from a repository has two
records. When they describe the same build (same packager and version) the
sync record is the base, since it carries signatures and checksums, and the
install-time fields come from the local record. Otherwise the local record
stays the base and the sync record is attached untouched, so the mismatch
remains visible.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

from .config import LOCAL_DB_NAME
from .models import PackageRecord

logger = logging.getLogger(__name__)


def is_local(record: PackageRecord) -> bool:
    return record.repository == LOCAL_DB_NAME


def _detached(record: PackageRecord) -> PackageRecord:
    # companions never carry companions of their own
    return replace(record, companion=None)


def add_local_info(sync_info: PackageRecord, local_info: PackageRecord) -> PackageRecord:
    """Sync record as the base, with the install fields of the local record."""
    return replace(
        sync_info,
        install_date=local_info.install_date,
        install_reason=local_info.install_reason,
        install_script=local_info.install_script,
        companion=_detached(local_info),
    )


def add_sync_info(local_info: PackageRecord, sync_info: PackageRecord) -> PackageRecord:
    """Local record as the base, with the sync record attached as is."""
    return replace(local_info, companion=_detached(sync_info))


def same_build(local_info: PackageRecord, sync_info: PackageRecord) -> bool:
    return local_info.packager == sync_info.packager and local_info.version == sync_info.version


def reconcile(
    primary: PackageRecord,
    secondary: Optional[PackageRecord],
    plain: bool = False,
) -> PackageRecord:
    """Combine ``primary`` with its counterpart from the complementary database.

    Args:
        primary: Record from the database being queried.
        secondary: Record with the same name from the other side, if any.
        plain: Skip reconciliation and return ``primary`` as is.

    Returns:
        The merged record. ``primary`` and ``secondary`` are not modified.
    """
    if plain:
        return primary
    if secondary is None:
        logger.info("'%s' has no counterpart in the complementary databases", primary.name)
        return primary
    if secondary.name != primary.name:
        raise ValueError(f"Cannot reconcile '{primary.name}' with '{secondary.name}'")
    if is_local(primary) == is_local(secondary):
        logger.warning(
            "'%s': both records come from %s databases, not reconciling",
            primary.name, "local" if is_local(primary) else "sync",
        )
        return primary

    local_info, sync_info = (primary, secondary) if is_local(primary) else (secondary, primary)
    if same_build(local_info, sync_info):
        return add_local_info(sync_info, local_info)
    logger.debug(
        "'%s': local %s (%s) differs from sync %s (%s)",
        local_info.name, local_info.version, local_info.packager,
        sync_info.version, sync_info.packager,
    )
    return add_sync_info(local_info, sync_info)
