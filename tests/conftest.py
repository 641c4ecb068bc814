import json
from datetime import UTC, datetime, timedelta

import httpx
import pytest

from figma_range_sync.jobs.design_sync_job import DesignSyncJob
from figma_range_sync.services.figma.figma_client import FigmaClient
from figma_range_sync.services.figma.request_throttle import RequestThrottle
from figma_range_sync.services.identity_service import IdentityResolver
from figma_range_sync.services.range.webhook_dispatcher import RangeWebhookDispatcher

FIGMA_BASE_URL = "https://figma.test/v1"
WEBHOOK_URL = "https://range.test/webhook"
TEAM_ID = "team-1"
START = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)


def iso(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


class FakeClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeFigmaApi:
    """In-memory Figma listing endpoints served through httpx.MockTransport."""

    def __init__(self):
        self.projects: dict[str, list[dict]] = {}
        self.files: dict[str, list[dict]] = {}
        self.versions: dict[str, list[dict]] = {}
        self.failures: dict[str, Exception | int] = {}
        self.requests: list[httpx.Request] = []

    def add_project(self, project_id: str, name: str = "Project") -> None:
        self.projects.setdefault(TEAM_ID, []).append({"id": project_id, "name": name})
        self.files.setdefault(project_id, [])

    def add_file(self, project_id: str, key: str, name: str, last_modified: datetime) -> None:
        self.files.setdefault(project_id, []).append(
            {"key": key, "name": name, "last_modified": iso(last_modified)}
        )
        self.versions.setdefault(key, [])

    def add_version(self, key: str, version_id: str, user_id: str, handle: str, created_at: datetime):
        self.versions.setdefault(key, []).append(
            {
                "id": version_id,
                "created_at": iso(created_at),
                "user": {"id": user_id, "handle": handle},
            }
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/v1")

        failure = self.failures.get(path)
        if isinstance(failure, Exception):
            raise failure
        if isinstance(failure, int):
            return httpx.Response(failure, json={"status": failure, "err": "boom"})

        parts = path.strip("/").split("/")
        if len(parts) != 3:
            return httpx.Response(404, json={"status": 404, "err": "Not found"})
        if parts[0] == "teams" and parts[2] == "projects":
            return httpx.Response(200, json={"projects": self.projects.get(parts[1], [])})
        if parts[0] == "projects" and parts[2] == "files":
            return httpx.Response(200, json={"files": self.files.get(parts[1], [])})
        if parts[0] == "files" and parts[2] == "versions":
            return httpx.Response(200, json={"versions": self.versions.get(parts[1], [])})
        return httpx.Response(404, json={"status": 404, "err": "Not found"})


class FakeRangeWebhook:
    """Records posted bodies; answers 200 unless a source id is set to fail."""

    def __init__(self):
        self.bodies: list[dict] = []
        self.status_by_source: dict[str, int] = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.bodies.append(body)
        status = self.status_by_source.get(body["attachment"]["source_id"], 200)
        return httpx.Response(status, json={"ok": status == 200})


@pytest.fixture
def figma_api():
    return FakeFigmaApi()


@pytest.fixture
def range_webhook():
    return FakeRangeWebhook()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def figma_client(figma_api):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(figma_api.handler))
    return FigmaClient(
        access_token="figma-token",
        base_url=FIGMA_BASE_URL,
        timeout_seconds=5,
        http_client=http_client,
        throttle=RequestThrottle(1000),
    )


@pytest.fixture
def dispatcher(range_webhook):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(range_webhook.handler))
    return RangeWebhookDispatcher(WEBHOOK_URL, timeout_seconds=5, http_client=http_client)


@pytest.fixture
def users():
    return {"Alice": "alice@example.com", "Bob": "bob@example.com"}


@pytest.fixture
def make_job(figma_client, dispatcher, users, clock):
    def _make(initial_history_minutes: int = 60, **overrides) -> DesignSyncJob:
        return DesignSyncJob(
            figma_client=overrides.get("figma_client", figma_client),
            dispatcher=overrides.get("dispatcher", dispatcher),
            identity_resolver=IdentityResolver(overrides.get("users", users)),
            team_id=TEAM_ID,
            initial_history_minutes=initial_history_minutes,
            clock=clock,
        )

    return _make
