"""
Range webhook dispatcher.
Posts every payload of a cycle concurrently, once each, and reports the
batch as failed if any single delivery was not accepted.
"""

import asyncio

import httpx

from figma_range_sync.infrastructure.observability.logging import get_logger
from figma_range_sync.models.api.range_payload import RangeActivityPayload
from figma_range_sync.services.http_errors import is_network_error

logger = get_logger(__name__)

REQUEST_TIMEOUT = 30  # seconds
ACCEPTED_STATUS_CODE = 200


class RangeDispatchError(Exception):
    """Raised when one or more webhook deliveries were not accepted."""

    def __init__(
        self,
        message: str,
        accepted: int,
        rejected: int,
        failures: list[dict] | None = None,
        network_failures: int = 0,
    ):
        super().__init__(message)
        self.accepted = accepted
        self.rejected = rejected
        self.failures = failures or []
        self.network_failures = network_failures

    @property
    def is_network_error(self) -> bool:
        """True when at least one delivery never got a response from Range."""
        return self.network_failures > 0


class RangeWebhookDispatcher:
    """Single-attempt delivery of activity payloads to a Range webhook."""

    def __init__(
        self,
        webhook_url: str,
        timeout_seconds: float = REQUEST_TIMEOUT,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.webhook_url = webhook_url
        self._timeout = httpx.Timeout(timeout_seconds)
        self._client = http_client or httpx.AsyncClient(timeout=self._timeout)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def _deliver(self, payload: RangeActivityPayload) -> httpx.Response:
        return await self._client.post(
            self.webhook_url, json=payload.to_body(), timeout=self._timeout
        )

    async def dispatch(self, payloads: list[RangeActivityPayload]) -> int:
        """
        Deliver every payload, all at once.

        All deliveries run to completion before the outcome is decided, so an
        early rejection does not stop the others.

        Returns:
            int: Number of payloads sent

        Raises:
            RangeDispatchError: If any delivery failed or was not answered with HTTP 200
        """
        if not payloads:
            logger.info("No payloads to send to Range")
            return 0

        results = await asyncio.gather(
            *(self._deliver(payload) for payload in payloads), return_exceptions=True
        )

        failures = []
        for payload, result in zip(payloads, results):
            if isinstance(result, BaseException):
                failures.append(
                    {
                        "source_id": payload.attachment.source_id,
                        "error": str(result),
                        "error_type": type(result).__name__,
                        "network": is_network_error(result),
                    }
                )
            elif result.status_code != ACCEPTED_STATUS_CODE:
                failures.append(
                    {
                        "source_id": payload.attachment.source_id,
                        "status_code": result.status_code,
                        "response_text": result.text[:200],
                    }
                )

        accepted = len(payloads) - len(failures)
        network_failures = sum(1 for failure in failures if failure.get("network"))
        if failures:
            logger.error(
                "Range webhook deliveries rejected",
                accepted=accepted,
                rejected=len(failures),
                network_failures=network_failures,
                failures=failures,
            )
            raise RangeDispatchError(
                f"{len(failures)} of {len(payloads)} Range deliveries failed",
                accepted=accepted,
                rejected=len(failures),
                failures=failures,
                network_failures=network_failures,
            )

        logger.info("Sent payloads to Range", payload_count=len(payloads))
        return len(payloads)
