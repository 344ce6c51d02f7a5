"""
Pydantic models for the detection HTTP endpoints.
"""

from pydantic import BaseModel

from ..models import DetectionSet, StatusUpdate


class OverlayBox(BaseModel):
    label: str
    x: float
    y: float
    width: float
    height: float


class SpatialAnchor(BaseModel):
    label: str
    point: tuple[float, float, float]
    normal: tuple[float, float, float]
    rotation: tuple[float, float, float, float]


class DetectionItem(BaseModel):
    label: str
    confidence: float
    box: tuple[float, float, float, float]  # x, y, width, height in source pixels


class DetectionSetResponse(BaseModel):
    summary: str
    detections: list[DetectionItem]
    overlay: list[OverlayBox]
    anchors: list[SpatialAnchor]

    @classmethod
    def from_detection_set(cls, detections: DetectionSet) -> "DetectionSetResponse":
        return cls(
            summary=detections.summary,
            detections=[
                DetectionItem(
                    label=record.label,
                    confidence=record.confidence,
                    box=record.box.as_tuple(),
                )
                for record in detections.records
            ],
            overlay=[
                OverlayBox(label=item.label, **vars(item.rect)) for item in detections.overlay
            ],
            anchors=[
                SpatialAnchor(
                    label=item.label,
                    point=item.world_point,
                    normal=item.world_normal,
                    rotation=item.rotation,
                )
                for item in detections.anchors
            ],
        )


class RequestStatusResponse(BaseModel):
    request_id: str
    state: str
    message: str
    attempt: int | None = None
    max_attempts: int | None = None
    error_code: str | None = None
    result: DetectionSetResponse | None = None

    @classmethod
    def from_update(cls, update: StatusUpdate) -> "RequestStatusResponse":
        return cls(
            request_id=update.request_id,
            state=update.state.value,
            message=update.message,
            attempt=update.attempt,
            max_attempts=update.max_attempts,
            error_code=getattr(update.error, "code", None) if update.error else None,
            result=(
                DetectionSetResponse.from_detection_set(update.result)
                if update.result is not None
                else None
            ),
        )
