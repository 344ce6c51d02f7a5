"""Model invocation: submit the prompt against an uploaded asset."""

from typing import Any

import httpx

from ..core.errors import InvokeProtocolError, NetworkError
from ..core.logging import ZeroShotLogger
from ..models import (
    AcceptedOutcome,
    AssetHandle,
    ImmediateOutcome,
    InvocationTicket,
    InvokeOutcome,
    RejectedOutcome,
)
from .http_client import bearer_headers

logger = ZeroShotLogger(__name__)

REQUEST_ID_HEADER = "NVCF-REQID"
INPUT_ASSET_REFERENCES_HEADER = "NVCF-INPUT-ASSET-REFERENCES"
FUNCTION_ASSET_IDS_HEADER = "NVCF-FUNCTION-ASSET-IDS"


def build_invoke_payload(
    model: str, asset_id: str, prompt: str, threshold: float
) -> dict[str, Any]:
    """Chat-style request body referencing the image by asset id."""
    return {
        "model": model,
        "messages": [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {
                        "type": "media_url",
                        "media_url": {"url": f"data:image/jpeg;asset_id,{asset_id}"},
                    },
                ],
            }
        ],
        "threshold": threshold,
    }


class InvocationStage:
    """POSTs the detection request and classifies the reply.

    ``threshold`` is forwarded to the server, which may filter on its own;
    the client-side filter runs regardless.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_key: str,
        invoke_url: str,
        model: str,
        timeout: httpx.Timeout | None = None,
    ):
        self._client = client
        self._api_key = api_key
        self._invoke_url = invoke_url
        self._model = model
        self._timeout = timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT

    async def invoke(
        self, asset: AssetHandle, prompt: str, threshold: float
    ) -> InvokeOutcome:
        """Invoke the model.

        Returns:
            ImmediateOutcome with the archive bytes, AcceptedOutcome with a
            polling ticket, or RejectedOutcome with the error status and body

        Raises:
            InvokeProtocolError: If a 202 arrives without a request id
            NetworkError: On transport failure
        """
        headers = bearer_headers(self._api_key, "application/zip")
        headers[INPUT_ASSET_REFERENCES_HEADER] = asset.asset_id
        headers[FUNCTION_ASSET_IDS_HEADER] = asset.asset_id

        payload = build_invoke_payload(self._model, asset.asset_id, prompt, threshold)

        try:
            response = await self._client.post(
                self._invoke_url, json=payload, headers=headers, timeout=self._timeout
            )
        except httpx.HTTPError as e:
            logger.error("Failed to reach invoke endpoint", error=str(e))
            raise NetworkError("invocation", str(e)) from e

        if response.status_code == httpx.codes.ACCEPTED:
            request_id = response.headers.get(REQUEST_ID_HEADER)
            if not request_id:
                raise InvokeProtocolError(
                    f"Server returned 202 Accepted but did not provide an "
                    f"{REQUEST_ID_HEADER} header for polling."
                )
            logger.info("Invocation accepted, polling required", request_id=request_id)
            return AcceptedOutcome(ticket=InvocationTicket(request_id=request_id))

        if response.is_success:
            logger.info("Invocation returned result directly", size=len(response.content))
            return ImmediateOutcome(raw=response.content)

        logger.error(
            "Error during model invocation",
            status_code=response.status_code,
            body=response.text,
        )
        return RejectedOutcome(status_code=response.status_code, body=response.text)
