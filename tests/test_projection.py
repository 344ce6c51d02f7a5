"""Tests for 2D overlay and 3D anchor projection."""

import math

import numpy as np
import pytest
from conftest import FakeCamera, FakeRaycaster

from xr_zeroshot.core.errors import ConfigurationError
from xr_zeroshot.models import AnchorMode, DetectionRecord, Rect
from xr_zeroshot.pipeline.projection import CoordinateProjector, SurfaceHit, look_rotation

CAT = DetectionRecord(label="cat", confidence=0.42, box=Rect(10, 20, 100, 80))


def rotate(quaternion, vector):
    """Rotate ``vector`` by unit quaternion (x, y, z, w)."""
    x, y, z, w = quaternion
    q_vec = np.array([x, y, z])
    v = np.asarray(vector, dtype=float)
    t = 2.0 * np.cross(q_vec, v)
    return v + w * t + np.cross(q_vec, t)


class TestProject2D:
    """Test overlay projection."""

    def test_scales_and_inverts_y(self):
        projected = CoordinateProjector().project_2d(CAT, (640, 480), (320, 240))

        assert projected.rect.as_tuple() == (5.0, -10.0, 50.0, 40.0)
        assert projected.label == "cat (0.42)"

    def test_identity_scale_only_inverts_y(self):
        projected = CoordinateProjector().project_2d(CAT, (640, 480), (640, 480))

        assert projected.rect == Rect(10, -20, 100, 80)

    def test_non_uniform_scale(self):
        projected = CoordinateProjector().project_2d(CAT, (640, 480), (1280, 240))

        assert projected.rect == Rect(20, -10, 200, 40)

    @pytest.mark.parametrize("source,target", [((0, 480), (320, 240)), ((640, 480), (320, 0))])
    def test_zero_sizes_are_rejected(self, source, target):
        with pytest.raises(ConfigurationError):
            CoordinateProjector().project_2d(CAT, source, target)


class TestProject3D:
    """Test world anchoring through the camera and raycaster collaborators."""

    def test_screen_point_is_box_center_with_flipped_y(self):
        assert CoordinateProjector.screen_point(CAT, (640, 480)) == (60, 420)

    def test_hit_produces_anchor(self):
        camera = FakeCamera()
        raycaster = FakeRaycaster([SurfaceHit(point=(1.0, 0.5, 2.0), normal=(0.0, 0.0, -1.0))])
        projector = CoordinateProjector(camera=camera, raycaster=raycaster)

        anchor = projector.project_3d(CAT, (640, 480))

        assert camera.points == [(60, 420)]
        assert len(raycaster.rays) == 1
        assert anchor.label == "cat (0.42)"
        assert anchor.world_point == (1.0, 0.5, 2.0)
        assert anchor.world_normal == (0.0, 0.0, -1.0)
        forward = rotate(anchor.rotation, (0.0, 0.0, 1.0))
        assert forward == pytest.approx([0.0, 0.0, -1.0], abs=1e-9)

    def test_miss_is_omitted(self):
        projector = CoordinateProjector(camera=FakeCamera(), raycaster=FakeRaycaster([None]))

        assert projector.project_3d(CAT, (640, 480)) is None

    def test_requires_collaborators(self):
        with pytest.raises(ConfigurationError):
            CoordinateProjector(camera=FakeCamera()).project_3d(CAT, (640, 480))


class TestProject:
    """Test anchor mode selection."""

    def test_2d_only(self):
        raycaster = FakeRaycaster([SurfaceHit((0, 0, 1), (0, 0, -1))])
        projector = CoordinateProjector(camera=FakeCamera(), raycaster=raycaster)

        overlay, anchors = projector.project(
            [CAT], (640, 480), (320, 240), AnchorMode.BOUNDING_BOX_2D
        )

        assert len(overlay) == 1
        assert anchors == []
        assert raycaster.rays == []

    def test_both_skips_misses(self):
        dog = DetectionRecord(label="dog", confidence=0.9, box=Rect(0, 0, 10, 10))
        raycaster = FakeRaycaster([None, SurfaceHit((0, 0, 1), (0, 0, -1))])
        projector = CoordinateProjector(camera=FakeCamera(), raycaster=raycaster)

        overlay, anchors = projector.project([CAT, dog], (640, 480), (640, 480), AnchorMode.BOTH)

        assert [item.label for item in overlay] == ["cat (0.42)", "dog (0.90)"]
        assert [item.label for item in anchors] == ["dog (0.90)"]

    def test_3d_without_collaborators_yields_nothing(self):
        overlay, anchors = CoordinateProjector().project(
            [CAT], (640, 480), (640, 480), AnchorMode.SPATIAL_LABEL_3D
        )

        assert overlay == []
        assert anchors == []


class TestLookRotation:
    """Test quaternion construction from a surface normal."""

    def test_forward_is_identity(self):
        assert look_rotation((0.0, 0.0, 1.0)) == pytest.approx((0.0, 0.0, 0.0, 1.0))

    def test_right_is_quarter_turn_about_y(self):
        half = math.sqrt(0.5)
        assert look_rotation((1.0, 0.0, 0.0)) == pytest.approx((0.0, half, 0.0, half))

    @pytest.mark.parametrize(
        "normal",
        [(0.0, 1.0, 0.0), (0.0, -1.0, 0.0), (0.3, -0.2, -0.9), (-1.0, 0.0, 0.0)],
    )
    def test_forward_axis_follows_normal(self, normal):
        rotation = look_rotation(normal)
        expected = np.asarray(normal) / np.linalg.norm(normal)

        assert all(math.isfinite(component) for component in rotation)
        assert np.linalg.norm(rotation) == pytest.approx(1.0)
        assert rotate(rotation, (0.0, 0.0, 1.0)) == pytest.approx(expected, abs=1e-9)
