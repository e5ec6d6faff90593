"""
Client side of the upload API.

ImportClient runs the same validation functions locally before sending a
file, then turns every kind of failure (local findings, HTTP error payloads,
connection problems) into a single display message.
"""
import logging
import mimetypes
import os
from http import HTTPStatus
from typing import Any, Dict, List, Mapping, Optional

import httpx
from pydantic import ValidationError

from excel_file_process import ValidationReport, WorkbookProcessor
from file_guard import ALLOWED_CONTENT_TYPES, check_upload
from utils.result import Result
from validation import Finding, check_columns_only, errors_only

logger = logging.getLogger(__name__)

STATUS_MESSAGES: Dict[int, str] = {
    400: "Invalid data format. Please check your Excel file structure.",
    401: "Unauthorized. Please log in again.",
    403: "You do not have permission to perform this action.",
    404: "The requested resource was not found.",
    413: "The file is too large. Please split it into smaller files.",
    422: "The uploaded file contains invalid data. Please check the file contents.",
    429: "Too many requests. Please try again later.",
    500: "Server error. Please try again later.",
}

NO_RESPONSE_MESSAGE = "No response from server. Please check your connection."
TIMEOUT_MESSAGE = "Request timed out. The file might be too large."


def describe_failure(status_code: int, payload: Any, default: str = "An error occurred") -> str:
    """
    Pick the message to show for an HTTP error response.

    Priority: the first error-severity entry of ``errors``, then ``error``,
    then ``message``, then the fixed text for the status code.
    """
    if isinstance(payload, Mapping):
        entries = payload.get("errors")
        for entry in entries if isinstance(entries, list) else []:
            if isinstance(entry, Mapping) and entry.get("severity") == "error" and entry.get("message"):
                return entry["message"]
        if payload.get("error"):
            return str(payload["error"])
        if payload.get("message"):
            return str(payload["message"])
    if status_code in STATUS_MESSAGES:
        return STATUS_MESSAGES[status_code]
    if status_code:
        return f"Server error ({status_code}). Please try again later."
    return default


def describe_exception(exc: BaseException, default: str = "An error occurred") -> str:
    """Map a transport-level exception to a display message."""
    if isinstance(exc, httpx.TimeoutException):
        return TIMEOUT_MESSAGE
    if isinstance(exc, httpx.RequestError):
        return NO_RESPONSE_MESSAGE
    return str(exc) or default


def _payload(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _findings(payload: Any) -> List[Finding]:
    """Parse the ``errors`` list of a response, skipping entries that are not findings."""
    if not isinstance(payload, Mapping):
        return []
    entries = payload.get("errors")
    if not isinstance(entries, list):
        return []
    findings = []
    for entry in entries:
        try:
            findings.append(Finding.model_validate(entry))
        except ValidationError:
            logger.debug(f"Ignoring malformed error entry: {entry!r}")
    return findings


def _guess_content_type(path: str) -> str:
    guessed, _ = mimetypes.guess_type(path)
    if guessed in ALLOWED_CONTENT_TYPES:
        return guessed
    if path.lower().endswith(".xls"):
        return ALLOWED_CONTENT_TYPES[1]
    return ALLOWED_CONTENT_TYPES[0]


class ImportClient:
    """
    Talks to the upload API.

    Requests are not retried; callers re-invoke a method after a failure.

    Args:
        base_url: Root URL of the API
        client: Preconfigured httpx client (base_url is ignored when given)
    """

    def __init__(self, base_url: str = "http://localhost:8000", client: Optional[httpx.Client] = None):
        self._client = client or httpx.Client(base_url=base_url, headers={"Accept": "application/json"})

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ImportClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @staticmethod
    def precheck(path: str, content: Optional[bytes] = None) -> Result[ValidationReport]:
        """
        Validate a file locally with the same rules the server applies.

        Args:
            path: Path of the workbook (its name and extension are checked)
            content: File bytes; read from ``path`` when omitted

        Returns:
            Result[ValidationReport]: the local report, or a failure whose
            message is the first blocking finding
        """
        if content is None:
            with open(path, "rb") as fh:
                content = fh.read()
        filename = os.path.basename(path)

        rejection = check_upload(filename, _guess_content_type(path), len(content))
        if rejection:
            return Result.fail(rejection.message, status_code=rejection.status_code)

        decoded = WorkbookProcessor.decode(content)
        if decoded.is_failure():
            return decoded

        header_findings: List[Finding] = []
        for sheet in decoded.data:
            header_findings.extend(
                f.model_copy(update={"sheet_name": sheet.name}) for f in check_columns_only(sheet.rows)
            )
        if header_findings:
            return Result.unprocessable(header_findings[0].message, findings=header_findings)

        return WorkbookProcessor.validate(decoded.data)

    def validate(self, path: str) -> Result[Dict[str, Any]]:
        """
        Pre-check a file and, if it passes, submit it for server validation.

        Returns:
            Result with the server's response body (including the import
            token) or a failure with a single display message
        """
        local = self.precheck(path)
        if local.is_failure():
            logger.info(f"Local pre-check failed: {local.error}")
            return Result(success=False, error=local.error, status_code=local.status_code, findings=local.findings)

        with open(path, "rb") as fh:
            files = {"file": (os.path.basename(path), fh.read(), _guess_content_type(path))}
        return self._post("/api/upload/validate", files=files)

    def import_rows(self, token: str) -> Result[Dict[str, Any]]:
        """Redeem a validation token and persist its rows."""
        return self._post("/api/upload/import", json={"token": token})

    def _post(self, url: str, **kwargs) -> Result[Dict[str, Any]]:
        try:
            response = self._client.post(url, **kwargs)
        except httpx.HTTPError as exc:
            logger.error(f"Request to {url} failed: {exc}")
            return Result.fail(describe_exception(exc), status_code=HTTPStatus.SERVICE_UNAVAILABLE)

        body = _payload(response)
        if response.is_success and isinstance(body, Mapping) and body.get("success"):
            return Result.ok(dict(body), status_code=response.status_code)

        message = describe_failure(response.status_code, body)
        findings = _findings(body)
        logger.warning(f"Request to {url} rejected ({response.status_code}): {message}")
        status = response.status_code if response.status_code >= 400 else HTTPStatus.BAD_GATEWAY
        return Result(success=False, error=message, status_code=status, findings=errors_only(findings) or findings)
