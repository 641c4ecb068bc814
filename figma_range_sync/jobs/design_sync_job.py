"""
Design Sync Job - Figma edit activity to Range.
Runs periodically: finds Figma files edited since the sync marker, works out
who edited them and posts one Range activity event per editor.
"""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime

from figma_range_sync.config import Settings, get_settings
from figma_range_sync.infrastructure.observability.logging import get_logger
from figma_range_sync.models.api.range_payload import RangeActivityPayload
from figma_range_sync.models.domain.design_domain import (
    DesignFile,
    FileVersions,
    Project,
    SyncEntry,
    SyncMarker,
    SyncStage,
)
from figma_range_sync.pipeline.activity import extract_active_users, filter_recent_files
from figma_range_sync.pipeline.payloads import build_payloads_for_entries
from figma_range_sync.services.figma.figma_client import (
    FigmaApiError,
    FigmaClient,
    FigmaNetworkError,
)
from figma_range_sync.services.identity_service import IdentityResolver
from figma_range_sync.services.range.webhook_dispatcher import (
    RangeDispatchError,
    RangeWebhookDispatcher,
)

logger = get_logger(__name__)

JOB_NAME = "design_sync"


def utc_now() -> datetime:
    return datetime.now(UTC)


class SyncMetrics:
    """Counters for one sync cycle."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self.reset()

    def reset(self, marker: datetime | None = None, start_time: datetime | None = None):
        """Reset all metrics for new cycle."""
        self.start_time = start_time or self._clock()
        self.marker = marker
        self.projects_fetched = 0
        self.files_fetched = 0
        self.files_changed = 0
        self.editors_found = 0
        self.editors_unresolved = 0
        self.payloads_built = 0
        self.payloads_sent = 0
        self.success = False
        self.failure_category: str | None = None
        self.failed_stage: str | None = None
        self.error: str | None = None
        self.total_duration_seconds = 0.0

    def record_failure(self, category: str, stage: SyncStage, error: BaseException):
        self.success = False
        self.failure_category = category
        self.failed_stage = stage.value
        self.error = str(error) or type(error).__name__

    def finalize(self):
        self.total_duration_seconds = (self._clock() - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        """Convert metrics to dictionary for logging."""
        data = {
            "job_run": JOB_NAME,
            "start_time": self.start_time.isoformat(),
            "marker": self.marker.isoformat() if self.marker else None,
            "total_duration_seconds": round(self.total_duration_seconds, 2),
            "success": self.success,
            "projects_fetched": self.projects_fetched,
            "files_fetched": self.files_fetched,
            "files_changed": self.files_changed,
            "editors_found": self.editors_found,
            "editors_unresolved": self.editors_unresolved,
            "payloads_built": self.payloads_built,
            "payloads_sent": self.payloads_sent,
        }
        if not self.success and self.failure_category:
            data["failure_category"] = self.failure_category
            data["failed_stage"] = self.failed_stage
            data["error"] = self.error
        return data


class DesignSyncJob:
    """
    Poll cycle orchestrator.

    Owns the sync marker and chains the pipeline stages. Each stage consumes
    the complete output of the previous one. The marker moves forward only
    after every payload of a cycle was accepted, to the cycle start time minus
    one minute. A failed cycle leaves it alone so the next cycle re-covers the
    same window.
    """

    def __init__(
        self,
        figma_client: FigmaClient,
        dispatcher: RangeWebhookDispatcher,
        identity_resolver: IdentityResolver,
        team_id: str,
        initial_history_minutes: int = 60,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.figma_client = figma_client
        self.dispatcher = dispatcher
        self.identity_resolver = identity_resolver
        self.team_id = team_id
        self._clock = clock

        self.marker = SyncMarker.initial(clock(), initial_history_minutes)
        self.stage = SyncStage.IDLE
        self.is_running = False
        self.last_run_time: datetime | None = None
        self.last_success_time: datetime | None = None
        self.job_metrics = SyncMetrics(clock)

    def _enter(self, stage: SyncStage) -> None:
        self.stage = stage
        logger.debug("Sync stage", stage=stage.value)

    async def run_once(self) -> dict:
        """
        Run a single sync cycle.

        Never raises for cycle failures: the failure is logged and reported in
        the returned metrics, and the marker is left where it was.

        Returns:
            dict: Cycle metrics, or a skip notice when a cycle is already in flight
        """
        if self.is_running:
            logger.warning("Design sync already running, skipping this trigger")
            return {"skipped": True, "reason": "already_running"}

        self.is_running = True
        sync_start = self._clock()
        marker = self.marker
        self.job_metrics.reset(marker.value, start_time=sync_start)

        try:
            logger.info(
                "Syncing Figma to Range",
                team_id=self.team_id,
                since=marker.value.isoformat(),
            )

            self._enter(SyncStage.FETCHING_PROJECTS)
            projects = await self._fetch_projects()

            self._enter(SyncStage.FETCHING_FILES)
            files = await self._fetch_files(projects)

            self._enter(SyncStage.FILTERING)
            recent_files = self._filter_files(files, marker)

            self._enter(SyncStage.FETCHING_VERSIONS)
            file_versions = await self._fetch_versions(recent_files)

            self._enter(SyncStage.EXTRACTING_EDITORS)
            entries = self._extract_editors(file_versions, marker)

            self._enter(SyncStage.BUILDING_PAYLOADS)
            payloads = self._build_payloads(entries)

            self._enter(SyncStage.DISPATCHING)
            self.job_metrics.payloads_sent = await self.dispatcher.dispatch(payloads)

            self._enter(SyncStage.ADVANCE_MARKER)
            self.marker = marker.advance(sync_start)
            self.last_success_time = sync_start
            self.job_metrics.success = True

            logger.info("Sync successful", next_marker=self.marker.value.isoformat())

        except FigmaNetworkError as e:
            self._fail("network", e)
            logger.error(
                "Network connection reset or aborted",
                stage=self.job_metrics.failed_stage,
                operation=e.operation,
                error=str(e),
            )
        except FigmaApiError as e:
            self._fail("remote_api", e)
            logger.error(
                "Figma API request failed",
                stage=self.job_metrics.failed_stage,
                operation=e.operation,
                status_code=e.status_code,
                error=str(e),
            )
        except RangeDispatchError as e:
            if e.is_network_error:
                self._fail("network", e)
                message = "Network connection reset or aborted"
            else:
                self._fail("dispatch", e)
                message = "Range dispatch failed"
            logger.error(
                message,
                stage=self.job_metrics.failed_stage,
                accepted=e.accepted,
                rejected=e.rejected,
                network_failures=e.network_failures,
                error=str(e),
            )
        except Exception as e:
            self._fail("unexpected", e)
            logger.error(
                "Unexpected sync error",
                stage=self.job_metrics.failed_stage,
                error=str(e),
                error_type=type(e).__name__,
            )

        finally:
            self.job_metrics.finalize()
            self.last_run_time = sync_start
            self.stage = SyncStage.IDLE
            self.is_running = False

        metrics = self.job_metrics.to_dict()
        if not self.job_metrics.success:
            logger.error("Sync unsuccessful", marker=marker.value.isoformat())
        logger.info("Design sync cycle completed", **metrics)
        return metrics

    def _fail(self, category: str, error: BaseException) -> None:
        failed_stage = self.stage
        self.stage = SyncStage.FAILED
        self.job_metrics.record_failure(category, failed_stage, error)

    async def _fetch_projects(self) -> list[Project]:
        projects = await self.figma_client.list_projects(self.team_id)
        self.job_metrics.projects_fetched = len(projects)
        return projects

    async def _fetch_files(self, projects: list[Project]) -> list[DesignFile]:
        files = await self.figma_client.list_files_for_projects(projects)
        self.job_metrics.files_fetched = len(files)
        return files

    def _filter_files(self, files: list[DesignFile], marker: SyncMarker) -> list[DesignFile]:
        recent_files = filter_recent_files(files, marker.value)
        self.job_metrics.files_changed = len(recent_files)
        return recent_files

    async def _fetch_versions(self, files: list[DesignFile]) -> list[FileVersions]:
        if not files:
            return []
        return await self.figma_client.list_versions_for_files(files)

    def _extract_editors(
        self, file_versions: list[FileVersions], marker: SyncMarker
    ) -> list[SyncEntry]:
        entries = []
        for item in file_versions:
            if not item.versions:
                logger.warning("File has no versions", file_key=item.file.key, file_name=item.file.name)

            users = extract_active_users(item.versions, marker.value)
            editors = self.identity_resolver.resolve_editors(item.file.name, users)

            self.job_metrics.editors_found += len(editors)
            self.job_metrics.editors_unresolved += len(users) - len(editors)
            entries.append(SyncEntry(file=item.file, versions=item.versions, editors=editors))
        return entries

    def _build_payloads(self, entries: list[SyncEntry]) -> list[RangeActivityPayload]:
        payloads = build_payloads_for_entries(entries)
        self.job_metrics.payloads_built = len(payloads)
        return payloads

    def get_job_status(self) -> dict:
        """
        Get current job status and metrics.

        Returns:
            Dict: Current job status information
        """
        return {
            "job_name": JOB_NAME,
            "is_running": self.is_running,
            "stage": self.stage.value,
            "marker": self.marker.value.isoformat(),
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "last_success_time": (
                self.last_success_time.isoformat() if self.last_success_time else None
            ),
            "last_run_metrics": self.job_metrics.to_dict() if self.last_run_time else None,
        }

    async def close(self) -> None:
        """Close the HTTP clients of both ends."""
        await self.figma_client.close()
        await self.dispatcher.close()


def build_design_sync_job(settings: Settings) -> DesignSyncJob:
    """Wire a DesignSyncJob from settings."""
    figma_client = FigmaClient(
        access_token=settings.figma_access_token,
        base_url=settings.figma_api_base_url,
        timeout_seconds=settings.figma_request_timeout_seconds,
        requests_per_second=settings.figma_requests_per_second,
    )
    dispatcher = RangeWebhookDispatcher(
        webhook_url=settings.range_webhook_url,
        timeout_seconds=settings.range_request_timeout_seconds,
    )
    return DesignSyncJob(
        figma_client=figma_client,
        dispatcher=dispatcher,
        identity_resolver=IdentityResolver(settings.users),
        team_id=settings.figma_team_id,
        initial_history_minutes=settings.initial_history_minutes,
    )


async def run_sync_scheduler(
    job: DesignSyncJob, interval_seconds: float, max_ticks: int | None = None
) -> None:
    """
    Trigger a cycle now and then once every interval.

    Triggers fire on a fixed cadence whatever the cycle duration; a trigger
    that lands while a cycle is still in flight is skipped by the job.

    Args:
        job: Job to trigger
        interval_seconds: Time between triggers
        max_ticks: Stop after this many triggers (runs forever when None)
    """
    in_flight: set[asyncio.Task] = set()
    ticks = 0
    try:
        while max_ticks is None or ticks < max_ticks:
            task = asyncio.create_task(job.run_once())
            in_flight.add(task)
            task.add_done_callback(in_flight.discard)
            ticks += 1

            if max_ticks is not None and ticks >= max_ticks:
                break
            await asyncio.sleep(interval_seconds)

        if in_flight:
            await asyncio.gather(*in_flight)
    finally:
        for task in in_flight:
            task.cancel()


async def start_design_sync_scheduler() -> None:
    """Long-running entry point: sync now, then every polling interval."""
    settings = get_settings()
    job = build_design_sync_job(settings)

    logger.info(
        "Figma to Range sync service started",
        team_id=settings.figma_team_id,
        interval_minutes=settings.polling_interval_minutes,
        initial_history_minutes=settings.initial_history_minutes,
        known_users=len(job.identity_resolver),
    )

    try:
        await run_sync_scheduler(job, settings.polling_interval_seconds())
    finally:
        await job.close()


async def run_design_sync_once() -> None:
    """Run a single cycle and exit."""
    job = build_design_sync_job(get_settings())
    try:
        await job.run_once()
    finally:
        await job.close()
