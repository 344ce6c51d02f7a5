from enum import Enum

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings

load_dotenv()


class AnchorMode(str, Enum):
    """How accepted detections are handed to the visualizer."""

    BOUNDING_BOX_2D = "bounding_box_2d"
    SPATIAL_LABEL_3D = "spatial_label_3d"
    BOTH = "both"

    @property
    def wants_2d(self) -> bool:
        return self in (AnchorMode.BOUNDING_BOX_2D, AnchorMode.BOTH)

    @property
    def wants_3d(self) -> bool:
        return self in (AnchorMode.SPATIAL_LABEL_3D, AnchorMode.BOTH)


class Settings(BaseSettings, env_file=".env"):
    LOG_JSON_FORMAT: bool = False
    LOG_LEVEL: str = "INFO"

    # NVIDIA Cloud Functions credentials
    NVIDIA_API_KEY: str = ""

    invoke_url: str = "https://ai.api.nvidia.com/v1/cv/nvidia/nv-grounding-dino"
    asset_url: str = "https://api.nvcf.nvidia.com/v2/nvcf/assets"
    polling_url_base: str = "https://api.nvcf.nvidia.com/v2/nvcf/pexec/status/"

    detection_model: str = "Grounding-Dino"
    asset_description: str = "Image for GroundingDino"

    # Sent to the server in the invoke payload and applied again client-side
    threshold: float = Field(default=0.3, ge=0.0, le=1.0)

    polling_max_retries: int = Field(default=20, ge=1, le=120)
    polling_interval_seconds: float = Field(default=1.0, ge=0.1, le=10.0)

    anchor_mode: AnchorMode = AnchorMode.BOUNDING_BOX_2D

    request_timeout_seconds: float = Field(default=60.0, gt=0)


settings = Settings()
