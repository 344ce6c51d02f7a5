"""
Shared pytest fixtures for xr-zeroshot tests.
"""

import io
import json
import zipfile
from typing import Any

import httpx
import pytest

from xr_zeroshot.core.settings import Settings
from xr_zeroshot.models import ImageBuffer
from xr_zeroshot.pipeline.projection import Ray, SurfaceHit

ASSET_URL = "https://assets.test/v2/nvcf/assets"
INVOKE_URL = "https://invoke.test/v1/cv/nvidia/nv-grounding-dino"
POLLING_URL_BASE = "https://status.test/v2/nvcf/pexec/status/"
UPLOAD_URL = "https://bucket.test/upload/asset-1?signature=abc"


def build_response_json(
    groups: list[dict[str, Any]],
    frame_width: int = 640,
    frame_height: int = 480,
    message: str = "cat",
) -> dict[str, Any]:
    """Detection JSON in the shape returned by the Grounding DINO endpoint."""
    return {
        "id": "resp-1",
        "choices": [
            {
                "index": 0,
                "message": {
                    "role": "assistant",
                    "content": {
                        "frameNo": 0,
                        "frameWidth": frame_width,
                        "frameHeight": frame_height,
                        "message": message,
                        "boundingBoxes": groups,
                    },
                },
            }
        ],
    }


def build_archive(entries: dict[str, bytes | str]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for name, data in entries.items():
            archive.writestr(name, data)
    return buffer.getvalue()


def build_result_archive(groups: list[dict[str, Any]], **kwargs) -> bytes:
    return build_archive(
        {"4f1c2a.response": json.dumps(build_response_json(groups, **kwargs))}
    )


@pytest.fixture
def test_settings():
    return Settings(
        NVIDIA_API_KEY="test-key",
        asset_url=ASSET_URL,
        invoke_url=INVOKE_URL,
        polling_url_base=POLLING_URL_BASE,
    )


@pytest.fixture
def sample_image():
    return ImageBuffer(data=b"\xff\xd8fake-jpeg\xff\xd9", width=640, height=480)


@pytest.fixture
def cat_archive():
    return build_result_archive(
        [{"phrase": "cat", "bboxes": [[10, 20, 100, 80]], "confidence": [0.42]}]
    )


def mock_client(handler) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by ``handler`` (sync or async)."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class FakeCamera:
    """Camera stub: records screen points and returns a ray straight ahead."""

    def __init__(self):
        self.points: list[tuple[int, int]] = []

    def screen_point_to_ray(self, point):
        self.points.append(point)
        return Ray(origin=(0.0, 0.0, 0.0), direction=(0.0, 0.0, 1.0))


class FakeRaycaster:
    """Raycaster stub returning the queued hits in order (None = miss)."""

    def __init__(self, hits: list[SurfaceHit | None]):
        self._hits = list(hits)
        self.rays: list[Ray] = []

    def raycast(self, ray):
        self.rays.append(ray)
        return self._hits.pop(0) if self._hits else None
