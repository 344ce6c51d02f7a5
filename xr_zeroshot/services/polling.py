"""Polling: wait for an accepted invocation to produce its archive."""

import asyncio
from collections.abc import Callable

import httpx

from ..core.cancellation import CancellationToken
from ..core.errors import NetworkError, PollError, PollTimeout
from ..core.logging import ZeroShotLogger
from ..models import InvocationTicket
from .http_client import bearer_headers

logger = ZeroShotLogger(__name__)

AttemptCallback = Callable[[int, int], None]


class PollingStage:
    """Fixed-interval, bounded polling of the NVCF status endpoint.

    No backoff or jitter: the service signals nothing but "not ready yet".
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_key: str,
        polling_url_base: str,
        timeout: httpx.Timeout | None = None,
    ):
        self._client = client
        self._api_key = api_key
        self._polling_url_base = polling_url_base
        self._timeout = timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT

    def polling_url(self, ticket: InvocationTicket) -> str:
        return f"{self._polling_url_base}{ticket.request_id}"

    async def poll(
        self,
        ticket: InvocationTicket,
        interval_seconds: float,
        max_attempts: int,
        on_attempt: AttemptCallback | None = None,
        cancellation: CancellationToken | None = None,
    ) -> bytes:
        """Poll ``ticket`` until its result is ready.

        Each attempt sleeps ``interval_seconds`` first, then issues one GET.

        Returns:
            The result archive bytes

        Raises:
            PollError: On any status other than 200 or 202
            PollTimeout: After ``max_attempts`` consecutive 202s
            RequestCancelled: If ``cancellation`` fires between attempts
            NetworkError: On transport failure
        """
        url = self.polling_url(ticket)
        headers = bearer_headers(self._api_key, "application/zip")

        for attempt in range(1, max_attempts + 1):
            if cancellation is not None:
                await cancellation.sleep(interval_seconds)
            else:
                await asyncio.sleep(interval_seconds)

            if on_attempt is not None:
                on_attempt(attempt, max_attempts)
            if cancellation is not None:
                cancellation.raise_if_cancelled()
            logger.debug(
                "Polling for result",
                request_id=ticket.request_id,
                attempt=attempt,
                max_attempts=max_attempts,
            )

            try:
                response = await self._client.get(url, headers=headers, timeout=self._timeout)
            except httpx.HTTPError as e:
                logger.error("Failed to reach status endpoint", error=str(e))
                raise NetworkError("polling", str(e)) from e

            if response.status_code == httpx.codes.OK:
                logger.info(
                    "Result ready", request_id=ticket.request_id, attempt=attempt
                )
                return response.content
            if response.status_code == httpx.codes.ACCEPTED:
                continue

            logger.error(
                "Error polling for result",
                status_code=response.status_code,
                body=response.text,
            )
            raise PollError(response.status_code, response.text)

        logger.error(
            "Polling timed out. The result was not ready in time.",
            request_id=ticket.request_id,
            attempts=max_attempts,
        )
        raise PollTimeout(max_attempts)
