"""Error taxonomy for the detection request pipeline.

Every stage raises one of these; the orchestrator surfaces the raised
instance unchanged as the terminal failure reason.
"""


class ZeroShotError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code


class HTTPStatusError(ZeroShotError):
    """A remote endpoint answered with an unexpected status code."""

    def __init__(self, message: str, status_code: int, body: str, code: str):
        super().__init__(f"{message}: {status_code}\n{body}", code=code)
        self.status_code = status_code
        self.body = body


class ConfigurationError(ZeroShotError):
    """Missing credential or unusable input, detected before any network call."""

    def __init__(self, message: str):
        super().__init__(message, code="CONFIGURATION_ERROR")


class NetworkError(ZeroShotError):
    """Transport-level failure (connect, timeout, reset) during a stage."""

    def __init__(self, stage: str, detail: str):
        super().__init__(f"Network failure during {stage}: {detail}", code="NETWORK_ERROR")
        self.stage = stage


class AssetRequestError(HTTPStatusError):
    """Requesting an asset upload URL failed."""

    def __init__(self, status_code: int, body: str):
        super().__init__(
            "Error getting asset upload URL", status_code, body, code="ASSET_REQUEST_FAILED"
        )


class AssetPutError(HTTPStatusError):
    """The storage endpoint rejected the image upload."""

    def __init__(self, status_code: int, body: str):
        super().__init__("Error uploading asset", status_code, body, code="ASSET_PUT_FAILED")


class InvokeProtocolError(ZeroShotError):
    """The invoke endpoint broke the accept/poll protocol."""

    def __init__(self, message: str):
        super().__init__(message, code="INVOKE_PROTOCOL_ERROR")


class InvokeRejected(HTTPStatusError):
    """The invoke endpoint refused the request."""

    def __init__(self, status_code: int, body: str):
        super().__init__(
            "Error during model invocation", status_code, body, code="INVOKE_REJECTED"
        )


class PollError(HTTPStatusError):
    """A poll returned neither "ready" nor "still processing"."""

    def __init__(self, status_code: int, body: str):
        super().__init__("Error polling for result", status_code, body, code="POLL_FAILED")


class PollTimeout(ZeroShotError):
    """The result was not ready within the configured number of polls."""

    def __init__(self, attempts: int):
        super().__init__(
            f"Polling timed out after {attempts} attempts. The result was not ready in time.",
            code="POLL_TIMEOUT",
        )
        self.attempts = attempts


class ArchiveFormatError(ZeroShotError):
    """The result bytes are not a usable zip archive."""

    def __init__(self, message: str):
        super().__init__(message, code="ARCHIVE_FORMAT_ERROR")


class PayloadParseError(ZeroShotError):
    """The archive has no usable result entry or its JSON does not match the schema."""

    def __init__(self, message: str):
        super().__init__(message, code="PAYLOAD_PARSE_ERROR")


class RequestCancelled(ZeroShotError):
    """The request was cancelled or superseded by a newer one."""

    def __init__(self, message: str = "Request cancelled"):
        super().__init__(message, code="CANCELLED")
