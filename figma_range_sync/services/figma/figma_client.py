"""
Figma REST API client for project, file and version listings.
Read-only, throttled and timeout-bounded. Batch helpers fan requests out
concurrently and fail the whole batch if any single request fails.
"""

import asyncio
from typing import Any

import httpx

from figma_range_sync.infrastructure.observability.logging import get_logger
from figma_range_sync.models.domain.design_domain import (
    DesignFile,
    FileVersions,
    Project,
    Version,
)
from figma_range_sync.services.figma.request_throttle import RequestThrottle
from figma_range_sync.services.http_errors import NETWORK_ERRORS

logger = get_logger(__name__)

# Figma API configuration
FIGMA_API_BASE_URL = "https://api.figma.com/v1"
FIGMA_TOKEN_HEADER = "X-Figma-Token"

REQUEST_TIMEOUT = 30  # seconds
REQUESTS_PER_SECOND = 5


class FigmaApiError(Exception):
    """Custom exception for Figma API errors."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.status_code = status_code
        self.response_data = response_data or {}


class FigmaNetworkError(FigmaApiError):
    """Connection reset, refused, aborted or timed out before a response arrived."""


class FigmaClient:
    """
    Client for the Figma listing endpoints.

    Every request passes through one shared RequestThrottle and carries a
    fixed timeout. Failed requests are not retried; the sync cycle is the
    unit of retry.
    """

    def __init__(
        self,
        access_token: str,
        base_url: str = FIGMA_API_BASE_URL,
        timeout_seconds: float = REQUEST_TIMEOUT,
        requests_per_second: float = REQUESTS_PER_SECOND,
        http_client: httpx.AsyncClient | None = None,
        throttle: RequestThrottle | None = None,
    ):
        self._access_token = access_token
        self._base_url = base_url.rstrip("/")
        self._timeout = httpx.Timeout(timeout_seconds)
        self._client = http_client or self._create_client()
        self.throttle = throttle or RequestThrottle(requests_per_second)

    def _create_client(self) -> httpx.AsyncClient:
        """Create async HTTP client with keep-alive connection reuse."""
        limits = httpx.Limits(max_keepalive_connections=10, max_connections=20)
        return httpx.AsyncClient(timeout=self._timeout, limits=limits)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    def _get_auth_headers(self) -> dict:
        return {
            FIGMA_TOKEN_HEADER: self._access_token,
            "Accept": "application/json",
        }

    async def _get(self, path: str, operation: str) -> dict[str, Any]:
        """Throttled GET returning the decoded JSON body."""
        url = f"{self._base_url}{path}"
        await self.throttle.acquire()

        try:
            response = await self._client.get(
                url, headers=self._get_auth_headers(), timeout=self._timeout
            )
        except NETWORK_ERRORS as e:
            logger.warning(
                f"Figma API {operation} network failure",
                path=path,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise FigmaNetworkError(
                f"Network error during {operation}: {type(e).__name__}", operation=operation
            ) from e
        except httpx.HTTPError as e:
            raise FigmaApiError(f"HTTP error during {operation}: {e}", operation=operation) from e

        return self._handle_api_response(response, operation)

    def _handle_api_response(self, response: httpx.Response, operation: str) -> dict[str, Any]:
        """
        Validate a Figma API response.

        Raises:
            FigmaApiError: Non-2xx status or a body that is not a JSON object
        """
        logger.debug(
            f"Figma API {operation} response",
            status_code=response.status_code,
            response_size=len(response.content),
        )

        if not response.is_success:
            try:
                error_data = response.json() if response.content else {}
            except ValueError:
                error_data = {}
            if not isinstance(error_data, dict):
                error_data = {}

            error_message = error_data.get("err") or error_data.get("message") or "Unknown error"
            logger.error(
                f"Figma API {operation} failed",
                status_code=response.status_code,
                error_message=error_message,
            )
            raise FigmaApiError(
                f"Figma API {operation} failed (HTTP {response.status_code}): {error_message}",
                operation=operation,
                status_code=response.status_code,
                response_data=error_data,
            )

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Failed to parse Figma API {operation} response", error=str(e))
            raise FigmaApiError(
                f"Invalid response format: {e}",
                operation=operation,
                status_code=response.status_code,
            ) from e

        if not isinstance(data, dict):
            raise FigmaApiError(
                f"Unexpected {operation} response body",
                operation=operation,
                status_code=response.status_code,
            )
        return data

    def _parse_items(self, data: dict[str, Any], key: str, factory, operation: str) -> list:
        items = data.get(key)
        if not isinstance(items, list):
            raise FigmaApiError(
                f"Malformed {operation} response: missing '{key}' list",
                operation=operation,
                response_data=data,
            )
        try:
            return [factory(item) for item in items]
        except (KeyError, TypeError, AttributeError) as e:
            raise FigmaApiError(
                f"Malformed {operation} response item: {e}",
                operation=operation,
                response_data=data,
            ) from e

    async def list_projects(self, team_id: str) -> list[Project]:
        """List the projects owned by a team."""
        data = await self._get(f"/teams/{team_id}/projects", "list_projects")
        projects = self._parse_items(data, "projects", Project.from_api, "list_projects")
        logger.info("Fetched projects", team_id=team_id, project_count=len(projects))
        return projects

    async def list_files(self, project_id: str) -> list[DesignFile]:
        """List the files in a project."""
        data = await self._get(f"/projects/{project_id}/files", "list_files")
        return self._parse_items(data, "files", DesignFile.from_api, "list_files")

    async def list_versions(self, file_key: str) -> list[Version]:
        """List a file's version history, newest first."""
        data = await self._get(f"/files/{file_key}/versions", "list_versions")
        return self._parse_items(data, "versions", Version.from_api, "list_versions")

    async def _run_batch(self, coros: list) -> list:
        """
        Run requests concurrently and return their results in input order.

        The first failure cancels the requests still queued or in flight, so
        nothing from a failed batch outlives it.
        """
        try:
            async with asyncio.TaskGroup() as group:
                tasks = [group.create_task(coro) for coro in coros]
        except ExceptionGroup as batch_error:
            failures = list(batch_error.exceptions)
            api_errors = [error for error in failures if isinstance(error, FigmaApiError)]
            raise (api_errors or failures)[0]
        return [task.result() for task in tasks]

    async def list_files_for_projects(self, projects: list[Project]) -> list[DesignFile]:
        """
        Fetch the files of every project concurrently.

        Returns:
            list[DesignFile]: Files of all projects, in project order

        Raises:
            FigmaApiError: If any project's listing fails
        """
        batches = await self._run_batch([self.list_files(project.id) for project in projects])
        files = [file for batch in batches for file in batch]
        logger.info("Fetched files", project_count=len(projects), file_count=len(files))
        return files

    async def list_versions_for_files(self, files: list[DesignFile]) -> list[FileVersions]:
        """
        Fetch the version history of every file concurrently.

        Raises:
            FigmaApiError: If any file's listing fails
        """

        async def _fetch(file: DesignFile) -> FileVersions:
            return FileVersions(file=file, versions=await self.list_versions(file.key))

        entries = await self._run_batch([_fetch(file) for file in files])
        logger.info("Fetched versions", file_count=len(entries))
        return entries
