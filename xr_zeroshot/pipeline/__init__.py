"""Result decoding, filtering, projection and request orchestration."""

from .archive import ArchiveDecoder
from .filtering import DetectionFilter
from .orchestrator import DetectionRequest, RequestOrchestrator, Visualizer
from .projection import (
    CameraProjection,
    CoordinateProjector,
    Ray,
    SurfaceHit,
    SurfaceRaycaster,
    look_rotation,
)

__all__ = [
    "ArchiveDecoder",
    "CameraProjection",
    "CoordinateProjector",
    "DetectionFilter",
    "DetectionRequest",
    "Ray",
    "RequestOrchestrator",
    "SurfaceHit",
    "SurfaceRaycaster",
    "Visualizer",
    "look_rotation",
]
