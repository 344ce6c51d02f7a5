"""
xr-zeroshot

Client for remote zero-shot object detection (NVIDIA Grounding DINO on NVCF)
that turns detections into 2D overlay boxes and 3D world anchors.
"""

__version__ = "0.1.0"

from .core.errors import (
    ArchiveFormatError,
    AssetPutError,
    AssetRequestError,
    ConfigurationError,
    InvokeProtocolError,
    InvokeRejected,
    NetworkError,
    PayloadParseError,
    PollError,
    PollTimeout,
    RequestCancelled,
    ZeroShotError,
)
from .core.settings import AnchorMode, Settings
from .models import (
    DetectionRecord,
    DetectionSet,
    ImageBuffer,
    PipelineState,
    PollConfig,
    ProjectedDetection2D,
    ProjectedDetection3D,
    Rect,
    StatusUpdate,
)
from .pipeline import DetectionRequest, RequestOrchestrator

__all__ = [
    "AnchorMode",
    "ArchiveFormatError",
    "AssetPutError",
    "AssetRequestError",
    "ConfigurationError",
    "DetectionRecord",
    "DetectionRequest",
    "DetectionSet",
    "ImageBuffer",
    "InvokeProtocolError",
    "InvokeRejected",
    "NetworkError",
    "PayloadParseError",
    "PipelineState",
    "PollConfig",
    "PollError",
    "PollTimeout",
    "ProjectedDetection2D",
    "ProjectedDetection3D",
    "Rect",
    "RequestCancelled",
    "RequestOrchestrator",
    "Settings",
    "StatusUpdate",
    "ZeroShotError",
]
