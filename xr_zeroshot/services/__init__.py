"""Network stages of the detection request pipeline."""

from .assets import AssetUploadStage
from .http_client import close_http_client, get_http_client
from .invocation import InvocationStage
from .polling import PollingStage

__all__ = [
    "AssetUploadStage",
    "InvocationStage",
    "PollingStage",
    "close_http_client",
    "get_http_client",
]
