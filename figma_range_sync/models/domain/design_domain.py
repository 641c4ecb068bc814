# figma_range_sync/models/domain/design_domain.py
"""
Design Domain Models
Lightweight shapes for Figma listings and the per-cycle sync aggregates.
Built from raw API objects by the Figma client and consumed by the pipeline.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

MARKER_SKEW_BACKOFF = timedelta(minutes=1)


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed) into an aware UTC datetime."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


@dataclass(slots=True, frozen=True)
class Project:
    """A Figma project owned by the configured team."""

    id: str
    name: str

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Project":
        return cls(id=str(data["id"]), name=data.get("name", ""))


@dataclass(slots=True, frozen=True)
class DesignFile:
    """A Figma file listed under a project. Identified by ``key``."""

    key: str
    name: str
    last_modified: datetime | None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "DesignFile":
        return cls(
            key=str(data["key"]),
            name=data.get("name", ""),
            last_modified=parse_timestamp(data.get("last_modified")),
        )

    def is_modified_after(self, marker: datetime) -> bool:
        if self.last_modified is None:
            return False
        return self.last_modified > marker


@dataclass(slots=True, frozen=True)
class VersionUser:
    """Author of a file version."""

    id: str
    handle: str


@dataclass(slots=True, frozen=True)
class Version:
    """One entry of a file's version history (newest first from the API)."""

    id: str
    created_at: datetime | None
    user: VersionUser

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Version":
        user = data["user"]
        return cls(
            id=str(data["id"]),
            created_at=parse_timestamp(data.get("created_at")),
            user=VersionUser(id=str(user["id"]), handle=user.get("handle", "")),
        )

    def is_created_after(self, marker: datetime) -> bool:
        if self.created_at is None:
            return False
        return self.created_at > marker


@dataclass(slots=True)
class FileVersions:
    """A recently modified file together with its version history."""

    file: DesignFile
    versions: list[Version]


@dataclass(slots=True, frozen=True)
class Editor:
    """A version author resolved to a configured email address."""

    name: str
    email: str


@dataclass(slots=True)
class SyncEntry:
    """Per-cycle aggregate; discarded once payloads are built."""

    file: DesignFile
    versions: list[Version]
    editors: list[Editor] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class SyncMarker:
    """Lower bound for "recent" activity. Never moves backwards."""

    value: datetime

    @classmethod
    def initial(cls, now: datetime, history_minutes: int) -> "SyncMarker":
        return cls(value=now - timedelta(minutes=history_minutes))

    def advance(self, cycle_start: datetime) -> "SyncMarker":
        candidate = cycle_start - MARKER_SKEW_BACKOFF
        if candidate <= self.value:
            return self
        return SyncMarker(value=candidate)


class SyncStage(str, Enum):
    """Stages of one poll cycle, in execution order."""

    IDLE = "idle"
    FETCHING_PROJECTS = "fetching_projects"
    FETCHING_FILES = "fetching_files"
    FILTERING = "filtering"
    FETCHING_VERSIONS = "fetching_versions"
    EXTRACTING_EDITORS = "extracting_editors"
    BUILDING_PAYLOADS = "building_payloads"
    DISPATCHING = "dispatching"
    ADVANCE_MARKER = "advance_marker"
    FAILED = "failed"
