"""
RequestOrchestrator - sequences upload, invoke, poll, decode, filter and project.

One orchestrator owns at most one in-flight request. Starting a new request
cancels the previous one first, so stale asset handles or detections from a
superseded request never reach the visualizer. Cancellation is cooperative:
the pipeline stops before its next network call, and a call already in
flight is allowed to finish with its result discarded.

Usage:
    orchestrator = RequestOrchestrator(visualizer=overlay)
    request = orchestrator.start(image, "a cat, a dog", threshold=0.3)
    async for update in request.updates():
        print(update.state, update.message)
    detections = await request.result()
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator, Callable
from typing import Protocol

import httpx

from ..core.cancellation import CancellationToken
from ..core.errors import ConfigurationError, InvokeRejected, RequestCancelled, ZeroShotError
from ..core.logging import ZeroShotLogger
from ..core.settings import Settings
from ..core.settings import settings as default_settings
from ..models import (
    AcceptedOutcome,
    AnchorMode,
    DetectionSet,
    ImageBuffer,
    ImmediateOutcome,
    PipelineState,
    PollConfig,
    RejectedOutcome,
    StatusUpdate,
)
from ..services.assets import AssetUploadStage
from ..services.http_client import build_timeout, get_http_client
from ..services.invocation import InvocationStage
from ..services.polling import PollingStage
from .archive import ArchiveDecoder
from .filtering import DetectionFilter
from .projection import CameraProjection, CoordinateProjector, SurfaceRaycaster

logger = ZeroShotLogger(__name__)

StatusCallback = Callable[[StatusUpdate], None]

# Forward edges of the state machine; FAILED is reachable from any non-terminal state
_TRANSITIONS: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.IDLE: frozenset({PipelineState.UPLOADING_ASSET}),
    PipelineState.UPLOADING_ASSET: frozenset({PipelineState.UPLOADED}),
    PipelineState.UPLOADED: frozenset({PipelineState.INVOKING}),
    PipelineState.INVOKING: frozenset({PipelineState.DIRECT_RESULT, PipelineState.POLLING}),
    PipelineState.DIRECT_RESULT: frozenset({PipelineState.DECODING}),
    # POLLING -> POLLING carries per-attempt progress
    PipelineState.POLLING: frozenset({PipelineState.POLLING, PipelineState.DECODING}),
    PipelineState.DECODING: frozenset({PipelineState.FILTERING}),
    PipelineState.FILTERING: frozenset({PipelineState.PROJECTING}),
    PipelineState.PROJECTING: frozenset({PipelineState.COMPLETED}),
}


class Visualizer(Protocol):
    """Host-side renderer for 2D boxes and/or 3D anchors."""

    def clear(self) -> None: ...

    def render(self, detections: DetectionSet) -> None: ...


class DetectionRequest:
    """State and outcome of one invocation. Never reused."""

    def __init__(
        self,
        image: ImageBuffer,
        prompt: str,
        threshold: float,
        poll_config: PollConfig,
        overlay_size: tuple[int, int],
        anchor_mode: AnchorMode,
        notify: StatusCallback,
    ):
        self.id = uuid.uuid4().hex
        self.image = image
        self.prompt = prompt
        self.threshold = threshold
        self.poll_config = poll_config
        self.overlay_size = overlay_size
        self.anchor_mode = anchor_mode
        self.token = CancellationToken()

        self.state = PipelineState.IDLE
        self.history: list[StatusUpdate] = []
        self._notify = notify
        self._queues: list[asyncio.Queue[StatusUpdate]] = []
        self._done = asyncio.Event()
        self._result: DetectionSet | None = None
        self._error: BaseException | None = None

    def __repr__(self) -> str:
        return f"DetectionRequest(id={self.id!r}, state={self.state.value})"

    @property
    def done(self) -> bool:
        return self.state.is_terminal

    @property
    def error(self) -> BaseException | None:
        return self._error

    def _emit(self, update: StatusUpdate) -> None:
        self.history.append(update)
        for queue in self._queues:
            queue.put_nowait(update)
        self._notify(update)

    def advance(self, state: PipelineState, message: str, **extra) -> StatusUpdate:
        """Move forward to ``state``.

        Raises:
            RequestCancelled: If the request was cancelled meanwhile
            RuntimeError: If ``state`` is not a legal successor
        """
        self.token.raise_if_cancelled()
        if state not in _TRANSITIONS.get(self.state, frozenset()):
            raise RuntimeError(f"Illegal transition {self.state.value} -> {state.value}")
        self.state = state
        update = StatusUpdate(request_id=self.id, state=state, message=message, **extra)
        self._emit(update)
        return update

    def complete(self, detections: DetectionSet) -> None:
        self.token.raise_if_cancelled()
        if self.state is not PipelineState.PROJECTING:
            raise RuntimeError(f"Cannot complete from {self.state.value}")
        self._result = detections
        self.state = PipelineState.COMPLETED
        self._emit(
            StatusUpdate(
                request_id=self.id,
                state=PipelineState.COMPLETED,
                message="Done!",
                result=detections,
            )
        )
        self._done.set()

    def fail(self, error: BaseException) -> bool:
        """Collapse to FAILED. Returns False if the request had already ended."""
        if self.done:
            return False
        self._error = error
        self.state = PipelineState.FAILED
        message = getattr(error, "message", None) or str(error) or type(error).__name__
        self._emit(
            StatusUpdate(
                request_id=self.id,
                state=PipelineState.FAILED,
                message=f"Error: {message}",
                error=error,
            )
        )
        self._done.set()
        return True

    def cancel(self, reason: str = "Request cancelled") -> bool:
        """Stop the request at its next suspension point and fail it now."""
        self.token.cancel(reason)
        return self.fail(RequestCancelled(reason))

    async def result(self) -> DetectionSet:
        """Wait for the terminal state.

        Raises:
            The originating stage error if the request failed
        """
        await self._done.wait()
        if self._error is not None:
            raise self._error
        if self._result is None:
            raise RuntimeError(f"Request {self.id} finished without a result")
        return self._result

    async def updates(self) -> AsyncIterator[StatusUpdate]:
        """Replay past updates, then follow live ones up to the terminal update."""
        queue: asyncio.Queue[StatusUpdate] = asyncio.Queue()
        for update in self.history:
            queue.put_nowait(update)
        if not self.done:
            self._queues.append(queue)
        try:
            while True:
                update = await queue.get()
                yield update
                if update.state.is_terminal:
                    return
        finally:
            if queue in self._queues:
                self._queues.remove(queue)


class RequestOrchestrator:
    """Top-level state machine for zero-shot detection requests."""

    def __init__(
        self,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
        camera: CameraProjection | None = None,
        raycaster: SurfaceRaycaster | None = None,
        visualizer: Visualizer | None = None,
    ):
        self.settings = settings or default_settings
        self._client = client
        self.visualizer = visualizer
        self.decoder = ArchiveDecoder()
        self.detection_filter = DetectionFilter()
        self.projector = CoordinateProjector(camera=camera, raycaster=raycaster)

        self._listeners: list[StatusCallback] = []
        self._current: DetectionRequest | None = None
        self._tasks: set[asyncio.Task] = set()

    # =========================================================================
    # Public interface
    # =========================================================================

    @property
    def current(self) -> DetectionRequest | None:
        return self._current

    @property
    def state(self) -> PipelineState:
        return self._current.state if self._current is not None else PipelineState.IDLE

    def subscribe(self, callback: StatusCallback) -> None:
        self._listeners.append(callback)

    def unsubscribe(self, callback: StatusCallback) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def start(
        self,
        image: ImageBuffer,
        prompt: str,
        threshold: float | None = None,
        poll_config: PollConfig | None = None,
        overlay_size: tuple[int, int] | None = None,
        anchor_mode: AnchorMode | None = None,
    ) -> DetectionRequest:
        """Begin a request on the running event loop and return immediately.

        An in-flight request is cancelled first and its results discarded.
        """
        loop = asyncio.get_running_loop()

        previous = self._current
        if previous is not None and not previous.done:
            logger.info("Superseding in-flight request", request_id=previous.id)
            previous.cancel("Superseded by a newer request")

        request = DetectionRequest(
            image=image,
            prompt=prompt,
            threshold=self.settings.threshold if threshold is None else threshold,
            poll_config=poll_config
            or PollConfig(
                interval_seconds=self.settings.polling_interval_seconds,
                max_attempts=self.settings.polling_max_retries,
            ),
            overlay_size=overlay_size or (image.width, image.height),
            anchor_mode=anchor_mode or self.settings.anchor_mode,
            notify=self._broadcast,
        )
        self._current = request

        if self.visualizer is not None:
            self.visualizer.clear()

        task = loop.create_task(self._run(request), name=f"detection-{request.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info("Detection request started", request_id=request.id, prompt=prompt)
        return request

    async def run(self, image: ImageBuffer, prompt: str, **kwargs) -> DetectionSet:
        """Start a request and wait for its detections."""
        request = self.start(image, prompt, **kwargs)
        return await request.result()

    def cancel(self, reason: str = "Request cancelled") -> bool:
        """Cancel the in-flight request, if any."""
        if self._current is None or self._current.done:
            return False
        logger.info("Cancelling request", request_id=self._current.id, reason=reason)
        return self._current.cancel(reason)

    async def aclose(self) -> None:
        """Cancel any in-flight request and wait for background work to stop."""
        self.cancel("Orchestrator closed")
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    # =========================================================================
    # Pipeline
    # =========================================================================

    def _broadcast(self, update: StatusUpdate) -> None:
        logger.debug(
            "Request status",
            request_id=update.request_id,
            state=update.state.value,
            message=update.message,
        )
        for callback in list(self._listeners):
            try:
                callback(update)
            except Exception:
                logger.warning("Status listener failed", exc_info=True)

    def _validate(self, request: DetectionRequest) -> None:
        if not self.settings.NVIDIA_API_KEY:
            raise ConfigurationError("API key is missing")
        if not request.image.data:
            raise ConfigurationError("Source image is missing or empty")
        if request.image.width <= 0 or request.image.height <= 0:
            raise ConfigurationError(
                f"Source image has invalid dimensions "
                f"({request.image.width}x{request.image.height})"
            )
        if not request.prompt or not request.prompt.strip():
            raise ConfigurationError("Detection prompt is empty")
        if not 0.0 <= request.threshold <= 1.0:
            raise ConfigurationError(f"Threshold must be within [0, 1], got {request.threshold}")
        if request.poll_config.interval_seconds <= 0:
            raise ConfigurationError("Polling interval must be positive")
        if request.poll_config.max_attempts < 1:
            raise ConfigurationError("Polling needs at least one attempt")

    async def _run(self, request: DetectionRequest) -> None:
        log = logger.bind(request_id=request.id)
        try:
            detections = await self._execute(request)
            request.complete(detections)
        except RequestCancelled as e:
            if request.fail(e):
                log.info("Request cancelled", reason=e.message)
        except ZeroShotError as e:
            if request.fail(e):
                log.error("Detection request failed", code=e.code, error=e.message)
        except asyncio.CancelledError:
            request.fail(RequestCancelled("Request task was cancelled"))
            raise
        except Exception as e:
            log.error("Unexpected error in detection pipeline", exc_info=True)
            request.fail(e)
        else:
            log.info("Detection request completed", detections=len(detections.records))
            if self.visualizer is not None:
                try:
                    self.visualizer.render(detections)
                except Exception:
                    log.warning("Visualizer failed to render detections", exc_info=True)

    async def _execute(self, request: DetectionRequest) -> DetectionSet:
        self._validate(request)

        cfg = self.settings
        client = self._client or await get_http_client()
        timeout = build_timeout(cfg.request_timeout_seconds)
        uploader = AssetUploadStage(
            client,
            api_key=cfg.NVIDIA_API_KEY,
            asset_url=cfg.asset_url,
            description=cfg.asset_description,
            timeout=timeout,
        )
        invoker = InvocationStage(
            client,
            api_key=cfg.NVIDIA_API_KEY,
            invoke_url=cfg.invoke_url,
            model=cfg.detection_model,
            timeout=timeout,
        )
        poller = PollingStage(
            client,
            api_key=cfg.NVIDIA_API_KEY,
            polling_url_base=cfg.polling_url_base,
            timeout=timeout,
        )

        request.advance(PipelineState.UPLOADING_ASSET, "Uploading image...")
        asset = await uploader.upload(request.image, cancellation=request.token)
        request.advance(PipelineState.UPLOADED, "Image uploaded")

        request.advance(PipelineState.INVOKING, "Invoking model...")
        outcome = await invoker.invoke(asset, request.prompt, request.threshold)
        request.token.raise_if_cancelled()

        if isinstance(outcome, RejectedOutcome):
            raise InvokeRejected(outcome.status_code, outcome.body)

        if isinstance(outcome, AcceptedOutcome):
            request.advance(PipelineState.POLLING, "Waiting for result...")

            def on_attempt(attempt: int, max_attempts: int) -> None:
                request.advance(
                    PipelineState.POLLING,
                    f"Polling for result... (Attempt {attempt}/{max_attempts})",
                    attempt=attempt,
                    max_attempts=max_attempts,
                )

            raw = await poller.poll(
                outcome.ticket,
                request.poll_config.interval_seconds,
                request.poll_config.max_attempts,
                on_attempt=on_attempt,
                cancellation=request.token,
            )
        elif isinstance(outcome, ImmediateOutcome):
            request.advance(PipelineState.DIRECT_RESULT, "Success! Processing response...")
            raw = outcome.raw
        else:
            raise RuntimeError(f"Unknown invoke outcome: {outcome!r}")

        request.advance(PipelineState.DECODING, "Processing response...")
        payload = self.decoder.decode(raw)
        if payload.ignored_entries:
            logger.debug("Ignoring extra archive entries", entries=list(payload.ignored_entries))

        request.advance(PipelineState.FILTERING, "Filtering detections...")
        records = self.detection_filter.filter(payload, request.threshold)

        request.advance(PipelineState.PROJECTING, f"Projecting {len(records)} detection(s)...")
        source_size = (request.image.width, request.image.height)
        overlay, anchors = self.projector.project(
            records, source_size, request.overlay_size, request.anchor_mode
        )

        return DetectionSet(
            request_id=request.id,
            records=records,
            overlay=overlay,
            anchors=anchors,
            frame_width=payload.content.frame_width,
            frame_height=payload.content.frame_height,
            summary=payload.summary(),
        )
