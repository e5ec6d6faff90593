"""Checks an uploaded file's name, type and size before it is read."""
import re
from dataclasses import dataclass
from http import HTTPStatus
from typing import Optional

MAX_FILE_SIZE = 10 * 1024 * 1024

ALLOWED_CONTENT_TYPES = (
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel",
)

_EXCEL_NAME = re.compile(r"\.(xlsx|xls)$", re.IGNORECASE)


@dataclass(frozen=True)
class UploadRejection:
    message: str
    status_code: HTTPStatus = HTTPStatus.BAD_REQUEST


def check_upload(
    filename: Optional[str],
    content_type: Optional[str],
    size: int,
    max_size: int = MAX_FILE_SIZE,
) -> Optional[UploadRejection]:
    """
    Validate an upload candidate.

    Args:
        filename: Original file name from the client
        content_type: MIME type reported for the file
        size: File size in bytes
        max_size: Upper bound on the file size in bytes

    Returns:
        The first problem found (413 for an oversized file, 400 otherwise),
        or None if the file may be decoded.
    """
    if not filename:
        return UploadRejection("No file selected")
    if not _EXCEL_NAME.search(filename):
        return UploadRejection("Only Excel files (.xlsx, .xls) are allowed")
    if content_type not in ALLOWED_CONTENT_TYPES:
        return UploadRejection("Invalid file type. Only Excel files are allowed")
    if size == 0:
        return UploadRejection("The file is empty")
    if size > max_size:
        return UploadRejection(
            f"File size should not exceed {max_size / (1024 * 1024):g}MB",
            HTTPStatus.REQUEST_ENTITY_TOO_LARGE,
        )
    return None
