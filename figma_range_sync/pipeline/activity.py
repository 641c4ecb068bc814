"""
Activity extraction: which files changed, and who changed them.
"""

from collections.abc import Iterable
from datetime import datetime

from figma_range_sync.infrastructure.observability.logging import get_logger
from figma_range_sync.models.domain.design_domain import DesignFile, Version, VersionUser

logger = get_logger(__name__)


def filter_recent_files(files: Iterable[DesignFile], marker: datetime) -> list[DesignFile]:
    """Keep the files modified strictly after the marker."""
    recent = [file for file in files if file.is_modified_after(marker)]
    if recent:
        logger.info("Files changed since marker", file_count=len(recent), marker=marker.isoformat())
    else:
        logger.info("No files changed since marker", marker=marker.isoformat())
    return recent


def extract_active_users(versions: list[Version], marker: datetime) -> list[VersionUser]:
    """
    Distinct authors active since the marker.

    The newest version (index 0) always counts, even when its timestamp is not
    after the marker, so a file flagged as modified reports at least one
    author. Authors are keyed by user id: the first discovery fixes the
    position, the last one seen fixes the handle spelling.

    Args:
        versions: Version history, newest first
        marker: Lower bound for recent activity

    Returns:
        list[VersionUser]: Distinct authors in discovery order
    """
    users_by_id: dict[str, VersionUser] = {}
    for index, version in enumerate(versions):
        if index == 0 or version.is_created_after(marker):
            users_by_id[version.user.id] = version.user
    return list(users_by_id.values())
