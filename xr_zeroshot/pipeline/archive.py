"""Result archive decoding.

The invoke and status endpoints return a zip archive. One entry (named
``<something>.response``) holds the JSON detection payload; others, such as
a rendered overlay image, are listed but not read.

Security: entry names are validated before anything is read so that an
archive cannot smuggle in paths outside its own root.
"""

import io
import zipfile
from pathlib import PurePosixPath, PureWindowsPath

from pydantic import ValidationError

from ..core.errors import ArchiveFormatError, PayloadParseError
from ..core.logging import ZeroShotLogger
from ..models import DetectionPayload, DetectionResponse

logger = ZeroShotLogger(__name__)

RESULT_SUFFIX = ".response"

# Raised by zipfile for corrupt, encrypted or unsupported (compression method, zip64) entries
ZIP_READ_ERRORS = (
    zipfile.BadZipFile,
    zipfile.LargeZipFile,
    OSError,
    RuntimeError,
    NotImplementedError,
    EOFError,
)


def is_safe_entry_name(name: str) -> bool:
    """Check that an archive entry name stays inside the archive root.

    Rejects absolute paths, drive-qualified Windows paths and any ``..``
    component, for both separator styles.
    """
    if not name:
        return False
    windows = PureWindowsPath(name)
    if windows.drive or windows.root:
        return False
    posix = PurePosixPath(name.replace("\\", "/"))
    if posix.is_absolute():
        return False
    return ".." not in posix.parts


class ArchiveDecoder:
    """Turns raw result bytes into a validated ``DetectionPayload``."""

    def __init__(self, result_suffix: str = RESULT_SUFFIX):
        self.result_suffix = result_suffix

    def decode(self, raw: bytes) -> DetectionPayload:
        """Decode a result archive.

        Raises:
            ArchiveFormatError: If ``raw`` is not a zip archive or an entry
                name escapes the archive root
            PayloadParseError: If no entry ends in the result suffix, or the
                first such entry is not JSON of the expected shape
        """
        if not raw:
            raise ArchiveFormatError("Result archive is empty")

        try:
            archive = zipfile.ZipFile(io.BytesIO(raw))
        except ZIP_READ_ERRORS as e:
            raise ArchiveFormatError(f"Result is not a valid zip archive: {e}") from e

        with archive:
            entries = archive.infolist()
            logger.debug("Archive opened", entries=[entry.filename for entry in entries])

            for entry in entries:
                if not is_safe_entry_name(entry.filename):
                    raise ArchiveFormatError(
                        f"Archive entry '{entry.filename}' resolves outside the archive root"
                    )

            result_entry = next(
                (
                    entry
                    for entry in entries
                    if not entry.is_dir() and entry.filename.endswith(self.result_suffix)
                ),
                None,
            )
            if result_entry is None:
                raise PayloadParseError(
                    f"Archive contains no '{self.result_suffix}' entry "
                    f"({len(entries)} file(s) present)"
                )

            try:
                data = archive.read(result_entry)
            except ZIP_READ_ERRORS as e:
                raise ArchiveFormatError(
                    f"Could not read archive entry '{result_entry.filename}': {e}"
                ) from e

            ignored = tuple(
                entry.filename for entry in entries if entry is not result_entry
            )

        payload = self._parse(data, result_entry.filename)
        return DetectionPayload(
            response_id=payload.id,
            content=payload.choices[0].message.content,
            entry_name=result_entry.filename,
            ignored_entries=ignored,
        )

    @staticmethod
    def _parse(data: bytes, entry_name: str) -> DetectionResponse:
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise PayloadParseError(f"Entry '{entry_name}' is not UTF-8 text") from e

        try:
            return DetectionResponse.model_validate_json(text)
        except ValidationError as e:
            logger.error("Failed to parse detection payload", entry=entry_name, error=str(e))
            raise PayloadParseError(
                f"Entry '{entry_name}' does not match the detection schema: {e}"
            ) from e
