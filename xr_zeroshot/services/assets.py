"""Asset upload: exchange image bytes for a single-use NVCF asset id."""

import httpx
from pydantic import BaseModel, Field, ValidationError

from ..core.cancellation import CancellationToken
from ..core.errors import AssetPutError, AssetRequestError, NetworkError
from ..core.logging import ZeroShotLogger
from ..models import AssetHandle, ImageBuffer
from .http_client import bearer_headers

logger = ZeroShotLogger(__name__)

# Header the storage endpoint folds into the pre-signed URL signature
DESCRIPTION_HEADER = "x-amz-meta-nvcf-asset-description"


class AssetUploadResponse(BaseModel):
    asset_id: str = Field(alias="assetId", min_length=1)
    upload_url: str = Field(alias="uploadUrl", min_length=1)


class AssetUploadStage:
    """Two-step upload: request a pre-signed target, then PUT the bytes to it.

    The PUT must repeat the exact content type and description sent in the
    first step, otherwise the storage endpoint rejects the signature.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_key: str,
        asset_url: str,
        description: str,
        timeout: httpx.Timeout | None = None,
    ):
        self._client = client
        self._api_key = api_key
        self._asset_url = asset_url
        self._description = description
        self._timeout = timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT

    async def upload(
        self,
        image: ImageBuffer,
        cancellation: CancellationToken | None = None,
    ) -> AssetHandle:
        """Upload ``image`` and return the handle to reference it by.

        Raises:
            AssetRequestError: If requesting the upload target fails
            AssetPutError: If the storage endpoint rejects the bytes
            NetworkError: On transport failure in either step
            RequestCancelled: If ``cancellation`` fires before the PUT
        """
        handle = await self._request_upload_target(image.content_type)
        if cancellation is not None:
            cancellation.raise_if_cancelled()
        await self._put_bytes(handle, image)
        logger.info("Asset uploaded", asset_id=handle.asset_id, size=len(image.data))
        return handle

    async def _request_upload_target(self, content_type: str) -> AssetHandle:
        payload = {"contentType": content_type, "description": self._description}
        try:
            response = await self._client.post(
                self._asset_url,
                json=payload,
                headers=bearer_headers(self._api_key, "application/json"),
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            logger.error("Failed to reach asset service", error=str(e))
            raise NetworkError("asset request", str(e)) from e

        if not response.is_success:
            logger.error(
                "Error getting asset upload URL",
                status_code=response.status_code,
                body=response.text,
            )
            raise AssetRequestError(response.status_code, response.text)

        try:
            info = AssetUploadResponse.model_validate_json(response.content)
        except ValidationError as e:
            raise AssetRequestError(
                response.status_code, f"Malformed asset response: {e}"
            ) from e

        logger.debug("Received asset upload target", asset_id=info.asset_id)
        return AssetHandle(asset_id=info.asset_id, upload_url=info.upload_url)

    async def _put_bytes(self, handle: AssetHandle, image: ImageBuffer) -> None:
        headers = {
            "Content-Type": image.content_type,
            DESCRIPTION_HEADER: self._description,
        }
        try:
            response = await self._client.put(
                handle.upload_url, content=image.data, headers=headers, timeout=self._timeout
            )
        except httpx.HTTPError as e:
            logger.error("Failed to reach asset storage", error=str(e))
            raise NetworkError("asset upload", str(e)) from e

        if not response.is_success:
            body = response.text or "No response body"
            logger.error(
                "Error uploading asset",
                status_code=response.status_code,
                body=body,
            )
            raise AssetPutError(response.status_code, body)
