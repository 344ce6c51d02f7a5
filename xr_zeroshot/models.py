"""
Data model for the zero-shot detection pipeline.

Wire schemas (the JSON inside the result archive) are pydantic models so that
decoding fails closed. Request-scoped values passed between stages are frozen
dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from .core.settings import AnchorMode

__all__ = [
    "AcceptedOutcome",
    "AnchorMode",
    "AssetHandle",
    "BoundingBoxGroup",
    "Choice",
    "ChoiceMessage",
    "DetectionContent",
    "DetectionPayload",
    "DetectionRecord",
    "DetectionResponse",
    "DetectionSet",
    "ImageBuffer",
    "ImmediateOutcome",
    "InvocationTicket",
    "InvokeOutcome",
    "PipelineState",
    "PollConfig",
    "ProjectedDetection2D",
    "ProjectedDetection3D",
    "Rect",
    "RejectedOutcome",
    "StatusUpdate",
]


# =============================================================================
# Request inputs and stage hand-offs
# =============================================================================


@dataclass(frozen=True)
class ImageBuffer:
    """Encoded image bytes plus the pixel size of the source frame."""

    data: bytes
    width: int
    height: int
    content_type: str = "image/jpeg"

    def __repr__(self) -> str:
        size = f"{self.width}x{self.height}"
        return f"ImageBuffer({len(self.data)} bytes, {size}, {self.content_type})"


@dataclass(frozen=True)
class AssetHandle:
    """Server-issued reference to an uploaded image. Valid for one invocation."""

    asset_id: str
    upload_url: str


@dataclass(frozen=True)
class InvocationTicket:
    """Correlation id returned with a 202 from the invoke endpoint."""

    request_id: str


@dataclass(frozen=True)
class ImmediateOutcome:
    """Invoke answered synchronously with the result archive."""

    raw: bytes


@dataclass(frozen=True)
class AcceptedOutcome:
    """Invoke accepted the job; the result must be polled for."""

    ticket: InvocationTicket


@dataclass(frozen=True)
class RejectedOutcome:
    """Invoke refused the request."""

    status_code: int
    body: str


InvokeOutcome = ImmediateOutcome | AcceptedOutcome | RejectedOutcome


@dataclass(frozen=True)
class PollConfig:
    """Fixed-interval, bounded polling policy."""

    interval_seconds: float = 1.0
    max_attempts: int = 20


# =============================================================================
# Result archive schema
# =============================================================================


class BoundingBoxGroup(BaseModel):
    """One phrase's candidate boxes with parallel confidences."""

    phrase: str
    bboxes: list[list[float]]
    confidence: list[float] | None = None

    def confidence_at(self, index: int) -> float:
        """Confidence for box ``index``; 1.0 when the server sent none."""
        if self.confidence is not None and index < len(self.confidence):
            return self.confidence[index]
        return 1.0


class DetectionContent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    frame_no: int = Field(default=0, alias="frameNo")
    frame_width: int = Field(alias="frameWidth")
    frame_height: int = Field(alias="frameHeight")
    message: str = ""
    bounding_boxes: list[BoundingBoxGroup] = Field(default_factory=list, alias="boundingBoxes")


class ChoiceMessage(BaseModel):
    role: str
    content: DetectionContent


class Choice(BaseModel):
    index: int
    message: ChoiceMessage


class DetectionResponse(BaseModel):
    """Top-level JSON document inside the ``.response`` archive entry."""

    id: str
    choices: list[Choice] = Field(min_length=1)


@dataclass(frozen=True)
class DetectionPayload:
    """Decoded result: the first choice's content plus archive bookkeeping."""

    response_id: str
    content: DetectionContent
    entry_name: str
    ignored_entries: tuple[str, ...] = ()

    @property
    def groups(self) -> list[BoundingBoxGroup]:
        return self.content.bounding_boxes

    @property
    def total_boxes(self) -> int:
        return sum(len(group.bboxes) for group in self.groups)

    def summary(self) -> str:
        """Human-readable one-glance summary of the raw (unfiltered) response."""
        if not self.groups:
            return "No objects found in response."
        return (
            f"Grounding DINO Response\nObjects: {self.total_boxes}\n"
            f"Labels: {self.content.message}"
        )


# =============================================================================
# Filtered and projected detections
# =============================================================================


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width * 0.5, self.y + self.height * 0.5)

    def as_tuple(self) -> tuple[float, float, float, float]:
        return (self.x, self.y, self.width, self.height)


@dataclass(frozen=True)
class DetectionRecord:
    """An accepted detection in source-image pixel space."""

    label: str
    confidence: float
    box: Rect

    @property
    def display_label(self) -> str:
        return f"{self.label} ({self.confidence:.2f})"


@dataclass(frozen=True)
class ProjectedDetection2D:
    """Detection rectangle in overlay-widget coordinates (top-left anchored, y inverted)."""

    label: str
    rect: Rect


@dataclass(frozen=True)
class ProjectedDetection3D:
    """Detection anchored on a real-world surface."""

    label: str
    world_point: tuple[float, float, float]
    world_normal: tuple[float, float, float]
    # Quaternion (x, y, z, w) whose forward axis is the surface normal
    rotation: tuple[float, float, float, float]


@dataclass(frozen=True)
class DetectionSet:
    """Everything a visualizer needs for one completed request."""

    request_id: str
    records: list[DetectionRecord]
    overlay: list[ProjectedDetection2D] = field(default_factory=list)
    anchors: list[ProjectedDetection3D] = field(default_factory=list)
    frame_width: int = 0
    frame_height: int = 0
    summary: str = ""


# =============================================================================
# Pipeline status
# =============================================================================


class PipelineState(str, Enum):
    """Request state machine. Declaration order is the forward order."""

    IDLE = "idle"
    UPLOADING_ASSET = "uploading_asset"
    UPLOADED = "uploaded"
    INVOKING = "invoking"
    DIRECT_RESULT = "direct_result"
    POLLING = "polling"
    DECODING = "decoding"
    FILTERING = "filtering"
    PROJECTING = "projecting"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineState.COMPLETED, PipelineState.FAILED)


@dataclass(frozen=True)
class StatusUpdate:
    """One state transition (or progress tick) of a request."""

    request_id: str
    state: PipelineState
    message: str
    attempt: int | None = None
    max_attempts: int | None = None
    error: Exception | None = None
    result: DetectionSet | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
