"""Cooperative cancellation shared between the orchestrator and its stages."""

import asyncio

from .errors import RequestCancelled


class CancellationToken:
    """One-shot cancellation flag for a single request.

    Stages call ``raise_if_cancelled()`` before issuing a network call and use
    ``sleep()`` for waits that must end early on cancellation. A call that is
    already in flight is never interrupted.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason = "Request cancelled"

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str | None = None) -> None:
        if self._event.is_set():
            return
        if reason:
            self.reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RequestCancelled(self.reason)

    async def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds`` or until cancelled, whichever comes first.

        Raises:
            RequestCancelled: If the token is cancelled before or during the wait
        """
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except TimeoutError:
            return
        self.raise_if_cancelled()
