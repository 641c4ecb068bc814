"""
Tests for the sync cycle orchestration: marker bookkeeping, failure handling
and the re-entrancy guard.
"""

import asyncio
from datetime import timedelta

import httpx
import pytest

from conftest import START, WEBHOOK_URL
from figma_range_sync.jobs.design_sync_job import run_sync_scheduler
from figma_range_sync.models.domain.design_domain import SyncStage
from figma_range_sync.services.range.webhook_dispatcher import RangeWebhookDispatcher


def _seed_recent_edit(figma_api, key: str = "k1", handle: str = "Alice", user_id: str = "u1"):
    figma_api.add_project("p1")
    figma_api.add_file("p1", key, "Homepage", START - timedelta(minutes=10))
    figma_api.add_version(key, "v1", user_id, handle, START - timedelta(minutes=10))


@pytest.mark.asyncio
async def test_marker_starts_at_history_window(make_job):
    job = make_job(initial_history_minutes=30)

    assert job.marker.value == START - timedelta(minutes=30)
    assert job.stage is SyncStage.IDLE


@pytest.mark.asyncio
async def test_successful_cycle_advances_marker_from_cycle_start(make_job, figma_api, clock):
    _seed_recent_edit(figma_api)
    job = make_job()
    clock.advance(minutes=5)
    cycle_start = clock.now

    original_list_projects = job.figma_client.list_projects

    async def slow_list_projects(team_id):
        clock.advance(minutes=3)
        return await original_list_projects(team_id)

    job.figma_client.list_projects = slow_list_projects

    metrics = await job.run_once()

    assert metrics["success"] is True
    assert job.marker.value == cycle_start - timedelta(minutes=1)
    assert job.stage is SyncStage.IDLE
    assert job.is_running is False


@pytest.mark.asyncio
async def test_network_failure_keeps_marker(make_job, figma_api, range_webhook):
    figma_api.add_project("p1")
    figma_api.add_project("p2")
    figma_api.failures["/projects/p2/files"] = httpx.ReadError("Connection reset by peer")
    job = make_job()
    marker = job.marker

    metrics = await job.run_once()

    assert metrics["success"] is False
    assert metrics["failure_category"] == "network"
    assert metrics["failed_stage"] == SyncStage.FETCHING_FILES.value
    assert job.marker == marker
    assert range_webhook.bodies == []


@pytest.mark.asyncio
async def test_api_error_keeps_marker(make_job, figma_api):
    figma_api.failures["/teams/team-1/projects"] = 500
    job = make_job()
    marker = job.marker

    metrics = await job.run_once()

    assert metrics["failure_category"] == "remote_api"
    assert metrics["failed_stage"] == SyncStage.FETCHING_PROJECTS.value
    assert job.marker == marker


@pytest.mark.asyncio
async def test_dispatch_rejection_keeps_marker_but_sends_everything(
    make_job, figma_api, range_webhook
):
    _seed_recent_edit(figma_api, key="k1")
    figma_api.add_file("p1", "k2", "Pricing", START - timedelta(minutes=5))
    figma_api.add_version("k2", "v9", "u2", "Bob", START - timedelta(minutes=5))
    range_webhook.status_by_source["k1"] = 500
    job = make_job()
    marker = job.marker

    metrics = await job.run_once()

    assert metrics["failure_category"] == "dispatch"
    assert job.marker == marker
    assert len(range_webhook.bodies) == 2


@pytest.mark.asyncio
async def test_unexpected_error_is_contained(make_job, figma_api, monkeypatch):
    _seed_recent_edit(figma_api)
    job = make_job()

    def explode(entries):
        raise RuntimeError("bad entry")

    monkeypatch.setattr("figma_range_sync.jobs.design_sync_job.build_payloads_for_entries", explode)

    metrics = await job.run_once()

    assert metrics["failure_category"] == "unexpected"
    assert metrics["failed_stage"] == SyncStage.BUILDING_PAYLOADS.value
    assert job.is_running is False


@pytest.mark.asyncio
async def test_failed_cycle_window_is_retried_next_time(make_job, figma_api, range_webhook, clock):
    _seed_recent_edit(figma_api)
    range_webhook.status_by_source["k1"] = 503
    job = make_job()

    first = await job.run_once()
    assert first["success"] is False

    range_webhook.status_by_source.clear()
    clock.advance(minutes=5)
    second = await job.run_once()

    assert second["success"] is True
    assert second["marker"] == first["marker"]
    assert len(range_webhook.bodies) == 2
    assert job.marker.value == clock.now - timedelta(minutes=1)


@pytest.mark.asyncio
async def test_unknown_editor_is_skipped_and_cycle_succeeds(make_job, figma_api, range_webhook):
    _seed_recent_edit(figma_api, handle="Mallory", user_id="u9")
    job = make_job()
    marker = job.marker

    metrics = await job.run_once()

    assert metrics["success"] is True
    assert metrics["editors_unresolved"] == 1
    assert metrics["payloads_sent"] == 0
    assert range_webhook.bodies == []
    assert job.marker.value > marker.value


@pytest.mark.asyncio
async def test_file_without_versions_is_not_fatal(make_job, figma_api, range_webhook):
    figma_api.add_project("p1")
    figma_api.add_file("p1", "k1", "Empty", START - timedelta(minutes=1))
    job = make_job()

    metrics = await job.run_once()

    assert metrics["success"] is True
    assert metrics["files_changed"] == 1
    assert range_webhook.bodies == []


@pytest.mark.asyncio
async def test_no_recent_files_skips_version_requests(make_job, figma_api):
    figma_api.add_project("p1")
    figma_api.add_file("p1", "k1", "Old", START - timedelta(days=2))
    job = make_job()

    metrics = await job.run_once()

    assert metrics["success"] is True
    assert not any("/versions" in request.url.path for request in figma_api.requests)


@pytest.mark.asyncio
async def test_overlapping_trigger_is_skipped(make_job, figma_api):
    _seed_recent_edit(figma_api)
    job = make_job()
    release = asyncio.Event()
    original_list_projects = job.figma_client.list_projects

    async def blocked_list_projects(team_id):
        await release.wait()
        return await original_list_projects(team_id)

    job.figma_client.list_projects = blocked_list_projects

    first = asyncio.create_task(job.run_once())
    await asyncio.sleep(0)
    assert job.is_running is True
    assert job.stage is SyncStage.FETCHING_PROJECTS

    second = await job.run_once()
    release.set()
    first_result = await first

    assert second == {"skipped": True, "reason": "already_running"}
    assert first_result["success"] is True


@pytest.mark.asyncio
async def test_scheduler_runs_immediately_then_on_interval(make_job, figma_api, range_webhook):
    _seed_recent_edit(figma_api)
    job = make_job()
    runs = []
    original_run_once = job.run_once

    async def counting_run_once():
        runs.append(True)
        return await original_run_once()

    job.run_once = counting_run_once

    await run_sync_scheduler(job, interval_seconds=0.01, max_ticks=3)

    assert len(runs) == 3
    assert job.is_running is False


@pytest.mark.asyncio
async def test_job_status_reports_marker_and_last_run(make_job, figma_api):
    _seed_recent_edit(figma_api)
    job = make_job()

    assert job.get_job_status()["last_run_metrics"] is None

    await job.run_once()
    status = job.get_job_status()

    assert status["job_name"] == "design_sync"
    assert status["stage"] == "idle"
    assert status["marker"] == job.marker.value.isoformat()
    assert status["last_success_time"] == START.isoformat()
    assert status["last_run_metrics"]["payloads_sent"] == 1


@pytest.mark.asyncio
async def test_webhook_connection_reset_is_a_network_failure(make_job, figma_api):
    _seed_recent_edit(figma_api)

    def reset_connection(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadError("Connection reset by peer")

    dispatcher = RangeWebhookDispatcher(
        WEBHOOK_URL,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(reset_connection)),
    )
    job = make_job(dispatcher=dispatcher)
    marker = job.marker

    metrics = await job.run_once()

    assert metrics["success"] is False
    assert metrics["failure_category"] == "network"
    assert metrics["failed_stage"] == SyncStage.DISPATCHING.value
    assert job.marker == marker


@pytest.mark.asyncio
async def test_metrics_are_timed_with_the_job_clock(make_job, figma_api, clock):
    _seed_recent_edit(figma_api)
    job = make_job()
    original_list_projects = job.figma_client.list_projects

    async def slow_list_projects(team_id):
        clock.advance(minutes=3)
        return await original_list_projects(team_id)

    job.figma_client.list_projects = slow_list_projects

    metrics = await job.run_once()

    assert metrics["start_time"] == START.isoformat()
    assert metrics["total_duration_seconds"] == 180.0
