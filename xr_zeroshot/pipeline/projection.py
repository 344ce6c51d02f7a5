"""
Coordinate projection of pixel-space detections.

Two independent targets:
- 2D: a top-left anchored overlay widget laid over the source image
- 3D: a world-space anchor found by casting a camera ray at real surfaces

The camera and the surface raycaster belong to the host application and are
only described here by protocol.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import numpy as np

from ..core.errors import ConfigurationError
from ..core.logging import ZeroShotLogger
from ..models import (
    AnchorMode,
    DetectionRecord,
    ProjectedDetection2D,
    ProjectedDetection3D,
    Rect,
)

logger = ZeroShotLogger(__name__)

WORLD_UP = np.array([0.0, 1.0, 0.0])
WORLD_FORWARD = np.array([0.0, 0.0, 1.0])


@dataclass(frozen=True)
class Ray:
    origin: tuple[float, float, float]
    direction: tuple[float, float, float]


@dataclass(frozen=True)
class SurfaceHit:
    point: tuple[float, float, float]
    normal: tuple[float, float, float]


class CameraProjection(Protocol):
    """Maps a camera screen pixel (origin bottom-left) to a world-space ray."""

    def screen_point_to_ray(self, point: tuple[int, int]) -> Ray: ...


class SurfaceRaycaster(Protocol):
    """Finds the first real-world surface along a ray. Must not block."""

    def raycast(self, ray: Ray) -> SurfaceHit | None: ...


def look_rotation(
    forward: tuple[float, float, float] | np.ndarray,
    up: np.ndarray = WORLD_UP,
) -> tuple[float, float, float, float]:
    """Quaternion (x, y, z, w) whose +Z axis points along ``forward``.

    Uses a left-handed, Y-up basis. When ``forward`` is parallel to ``up``
    (a floor or ceiling hit) world forward is used as the up reference.
    """
    f = np.asarray(forward, dtype=float)
    norm = np.linalg.norm(f)
    if norm == 0.0:
        return (0.0, 0.0, 0.0, 1.0)
    f = f / norm

    right = np.cross(up, f)
    if np.linalg.norm(right) < 1e-6:
        right = np.cross(WORLD_FORWARD, f)
    right = right / np.linalg.norm(right)
    new_up = np.cross(f, right)

    m = np.column_stack((right, new_up, f))
    trace = m[0, 0] + m[1, 1] + m[2, 2]

    if trace > 0.0:
        s = np.sqrt(trace + 1.0) * 2.0
        w = 0.25 * s
        x = (m[2, 1] - m[1, 2]) / s
        y = (m[0, 2] - m[2, 0]) / s
        z = (m[1, 0] - m[0, 1]) / s
    elif m[0, 0] > m[1, 1] and m[0, 0] > m[2, 2]:
        s = np.sqrt(1.0 + m[0, 0] - m[1, 1] - m[2, 2]) * 2.0
        w = (m[2, 1] - m[1, 2]) / s
        x = 0.25 * s
        y = (m[0, 1] + m[1, 0]) / s
        z = (m[0, 2] + m[2, 0]) / s
    elif m[1, 1] > m[2, 2]:
        s = np.sqrt(1.0 + m[1, 1] - m[0, 0] - m[2, 2]) * 2.0
        w = (m[0, 2] - m[2, 0]) / s
        x = (m[0, 1] + m[1, 0]) / s
        y = 0.25 * s
        z = (m[1, 2] + m[2, 1]) / s
    else:
        s = np.sqrt(1.0 + m[2, 2] - m[0, 0] - m[1, 1]) * 2.0
        w = (m[1, 0] - m[0, 1]) / s
        x = (m[0, 2] + m[2, 0]) / s
        y = (m[1, 2] + m[2, 1]) / s
        z = 0.25 * s

    return (float(x), float(y), float(z), float(w))


def _check_size(size: tuple[int, int], what: str) -> None:
    width, height = size
    if width <= 0 or height <= 0:
        raise ConfigurationError(f"{what} size must be positive, got {width}x{height}")


class CoordinateProjector:
    """Projects detection records into overlay and/or world space."""

    def __init__(
        self,
        camera: CameraProjection | None = None,
        raycaster: SurfaceRaycaster | None = None,
    ):
        self.camera = camera
        self.raycaster = raycaster

    @property
    def supports_3d(self) -> bool:
        return self.camera is not None and self.raycaster is not None

    def project_2d(
        self,
        record: DetectionRecord,
        source_size: tuple[int, int],
        target_size: tuple[int, int],
    ) -> ProjectedDetection2D:
        """Scale the box into the overlay; the y origin is negated for top-left anchoring."""
        _check_size(source_size, "Source image")
        _check_size(target_size, "Overlay")
        scale_x = target_size[0] / source_size[0]
        scale_y = target_size[1] / source_size[1]

        box = record.box
        rect = Rect(
            x=box.x * scale_x,
            y=-(box.y * scale_y),
            width=box.width * scale_x,
            height=box.height * scale_y,
        )
        return ProjectedDetection2D(label=record.display_label, rect=rect)

    @staticmethod
    def screen_point(record: DetectionRecord, source_size: tuple[int, int]) -> tuple[int, int]:
        """Box center in camera screen pixels (vertical axis flipped)."""
        center_x, center_y = record.box.center
        cx = round(center_x)
        cy = round(center_y)
        return (cx, source_size[1] - cy)

    def project_3d(
        self, record: DetectionRecord, source_size: tuple[int, int]
    ) -> ProjectedDetection3D | None:
        """Anchor the record on the surface behind its box center.

        Returns None when no surface lies along the ray.
        """
        if not self.supports_3d:
            raise ConfigurationError("3D projection needs a camera and a surface raycaster")
        _check_size(source_size, "Source image")

        point = self.screen_point(record, source_size)
        ray = self.camera.screen_point_to_ray(point)
        hit = self.raycaster.raycast(ray)
        if hit is None:
            logger.debug("No surface hit for detection", label=record.label, screen_point=point)
            return None

        return ProjectedDetection3D(
            label=record.display_label,
            world_point=tuple(hit.point),
            world_normal=tuple(hit.normal),
            rotation=look_rotation(hit.normal),
        )

    def project(
        self,
        records: list[DetectionRecord],
        source_size: tuple[int, int],
        target_size: tuple[int, int],
        anchor_mode: AnchorMode,
    ) -> tuple[list[ProjectedDetection2D], list[ProjectedDetection3D]]:
        overlay: list[ProjectedDetection2D] = []
        anchors: list[ProjectedDetection3D] = []

        if anchor_mode.wants_2d:
            overlay = [self.project_2d(record, source_size, target_size) for record in records]

        if anchor_mode.wants_3d:
            if not self.supports_3d:
                logger.warning(
                    "Spatial anchors requested but no camera/raycaster configured",
                    anchor_mode=anchor_mode.value,
                )
            else:
                for record in records:
                    anchor = self.project_3d(record, source_size)
                    if anchor is not None:
                        anchors.append(anchor)

        return overlay, anchors
