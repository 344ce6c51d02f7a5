"""
Detections Router - HTTP surface for hosts that drive the orchestrator remotely.

Endpoints:
- POST   /detections          start a request (multipart image + prompt)
- GET    /detections/current  latest status, with detections once completed
- DELETE /detections/current  cancel the in-flight request
"""

from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import APIRouter, Depends, FastAPI, File, Form, HTTPException, Request, UploadFile

from ..core.errors import ConfigurationError
from ..core.logging import ZeroShotLogger, setup_logging
from ..core.settings import settings
from ..imaging import decode_image_bytes
from ..pipeline.orchestrator import RequestOrchestrator
from ..services.http_client import close_http_client
from .types import RequestStatusResponse

logger = ZeroShotLogger(__name__)

router = APIRouter(prefix="/detections", tags=["detections"])


def get_orchestrator(request: Request) -> RequestOrchestrator:
    return request.app.state.orchestrator


Orchestrator = Annotated[RequestOrchestrator, Depends(get_orchestrator)]


def _latest_status(orchestrator: RequestOrchestrator) -> RequestStatusResponse:
    current = orchestrator.current
    if current is None or not current.history:
        raise HTTPException(status_code=404, detail="No detection request has been started")
    return RequestStatusResponse.from_update(current.history[-1])


@router.post("", status_code=202)
async def start_detection(
    orchestrator: Orchestrator,
    file: Annotated[UploadFile, File(description="Image to run detection on")],
    prompt: Annotated[str, Form(description="Objects to detect, e.g. 'a cat, a dog'")],
    threshold: Annotated[float | None, Form(ge=0.0, le=1.0)] = None,
    overlay_width: Annotated[int | None, Form(gt=0)] = None,
    overlay_height: Annotated[int | None, Form(gt=0)] = None,
) -> RequestStatusResponse:
    """Start a detection request, superseding any request still in flight."""
    content = await file.read()
    try:
        image = decode_image_bytes(content)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=e.message) from e

    overlay_size = None
    if overlay_width is not None and overlay_height is not None:
        overlay_size = (overlay_width, overlay_height)

    request = orchestrator.start(
        image, prompt, threshold=threshold, overlay_size=overlay_size
    )
    logger.info("Detection request accepted over HTTP", request_id=request.id)
    return RequestStatusResponse(
        request_id=request.id,
        state=request.state.value,
        message="Processing...",
    )


@router.get("/current")
async def get_current_detection(orchestrator: Orchestrator) -> RequestStatusResponse:
    return _latest_status(orchestrator)


@router.delete("/current")
async def cancel_current_detection(orchestrator: Orchestrator) -> RequestStatusResponse:
    orchestrator.cancel("Cancelled over HTTP")
    return _latest_status(orchestrator)


def create_app(orchestrator: RequestOrchestrator | None = None) -> FastAPI:
    """Build a FastAPI app around one orchestrator."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(json_logs=settings.LOG_JSON_FORMAT, log_level=settings.LOG_LEVEL)
        logger.info("Starting xr-zeroshot API")
        yield
        await app.state.orchestrator.aclose()
        await close_http_client()
        logger.info("Shutdown complete")

    app = FastAPI(title="xr-zeroshot", lifespan=lifespan)
    app.state.orchestrator = orchestrator or RequestOrchestrator()
    app.include_router(router, prefix="/v1")
    return app
