import io
import logging
import math
import time
import uuid
from datetime import datetime
from http import HTTPStatus
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field

from file_guard import MAX_FILE_SIZE, check_upload
from storage import ImportedRecord
from utils.result import Result
from validation import (
    Finding,
    Sheet,
    check_structure,
    errors_only,
    has_errors,
    normalize_rows,
    to_canonical,
    validate_rows,
)

logger = logging.getLogger(__name__)

class LogContext:
    """Context manager for tracking and logging pipeline stage timings"""
    def __init__(self, operation_name: str, **kwargs):
        self.operation_name = operation_name
        self.start_time = None
        self.request_id = kwargs.pop('request_id', None) or str(uuid.uuid4())[:8]
        self.extra = kwargs

    def __enter__(self):
        self.start_time = time.perf_counter()
        logger.info(f"Starting {self.operation_name}", extra={"request_id": self.request_id, **self.extra})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.perf_counter() - self.start_time
        if exc_type:
            logger.error(
                f"Failed {self.operation_name} in {duration:.2f}s: {exc_val}",
                extra={"request_id": self.request_id, "duration": duration, **self.extra},
                exc_info=(exc_type, exc_val, exc_tb)
            )
        else:
            logger.info(
                f"Completed {self.operation_name} in {duration:.2f}s",
                extra={"request_id": self.request_id, "duration": duration, **self.extra}
            )

class ValidationReport(BaseModel):
    """
    Everything one validation pass produced for a workbook.

    Attributes:
        sheets: Normalized preview rows keyed by sheet name, in workbook order
        findings: All findings, errors first then warnings
        records: Typed records ready to persist (only when nothing blocks import)
    """
    sheets: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)
    findings: List[Finding] = Field(default_factory=list)
    records: List[ImportedRecord] = Field(default_factory=list)

    @property
    def row_count(self) -> int:
        return sum(len(rows) for rows in self.sheets.values())

    @property
    def warnings(self) -> List[Finding]:
        return [f for f in self.findings if not f.is_error]

def _cell(value: Any) -> Any:
    """Convert a pandas cell into a plain Python value."""
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and math.isnan(value):
        return None
    return value

def _stamp(findings: List[Finding], sheet_name: str) -> List[Finding]:
    return [f.model_copy(update={"sheet_name": sheet_name}) for f in findings]

class WorkbookProcessor:
    """
    Decodes uploaded workbooks and runs the validation pipeline on them.

    Stages:
    - File guard on name, type and size
    - Decoding every sheet into row records
    - Structural checks, row rules and normalization per sheet
    - Conversion of accepted rows into records for import
    """

    @staticmethod
    def process_upload(
        filename: Optional[str],
        content_type: Optional[str],
        content: bytes,
        max_size: int = MAX_FILE_SIZE,
        now: Optional[datetime] = None
    ) -> Result[ValidationReport]:
        """
        Guard, decode and validate an uploaded file.

        Args:
            filename: Original file name
            content_type: MIME type sent with the file
            content: Raw file bytes
            max_size: Largest accepted size in bytes
            now: Reference time for the future-date rule

        Returns:
            Result[ValidationReport]: the report, or the failure that stopped the pass
        """
        log_context = {"request_id": str(uuid.uuid4())[:8], "file_name": filename, "size": len(content)}
        loaded = WorkbookProcessor.load_upload(filename, content_type, content, max_size, log_context)
        if loaded.is_failure():
            return loaded

        with LogContext("workbook validation", **log_context):
            return WorkbookProcessor.validate(loaded.data, now=now)

    @staticmethod
    def preview_upload(
        filename: Optional[str],
        content_type: Optional[str],
        content: bytes,
        max_size: int = MAX_FILE_SIZE,
        now: Optional[datetime] = None
    ) -> Result[ValidationReport]:
        """
        Guard and decode an uploaded file, then report on it without judging it.

        Only guard and decoding problems make the Result fail; findings of any
        severity are returned inside the report.
        """
        log_context = {"request_id": str(uuid.uuid4())[:8], "file_name": filename, "size": len(content)}
        loaded = WorkbookProcessor.load_upload(filename, content_type, content, max_size, log_context)
        if loaded.is_failure():
            return loaded

        with LogContext("workbook preview", **log_context):
            return Result.ok(WorkbookProcessor.inspect(loaded.data, now=now))

    @staticmethod
    def load_upload(
        filename: Optional[str],
        content_type: Optional[str],
        content: bytes,
        max_size: int = MAX_FILE_SIZE,
        log_context: Optional[Dict[str, Any]] = None
    ) -> Result[List[Sheet]]:
        """
        Apply the file guard and decode the workbook.

        Returns:
            Result containing the decoded sheets; 413 for oversized files,
            400 for any other guard or decoding failure
        """
        log_context = log_context or {"file_name": filename, "size": len(content)}
        logger.info("Processing uploaded workbook", extra=log_context)

        rejection = check_upload(filename, content_type, len(content), max_size)
        if rejection:
            logger.warning(f"Upload rejected: {rejection.message}", extra=log_context)
            return Result.fail(rejection.message, status_code=rejection.status_code)

        with LogContext("workbook decoding", **log_context):
            return WorkbookProcessor.decode(content)

    @staticmethod
    def decode(content: bytes) -> Result[List[Sheet]]:
        """
        Read every sheet of a workbook into row records.

        The first row of each sheet is the header; each following row becomes
        a mapping from header text to cell value. A workbook that cannot be
        read yields no sheets at all.

        Args:
            content: Raw workbook bytes

        Returns:
            Result containing the sheets in workbook order, or an error message
        """
        try:
            frames = pd.read_excel(io.BytesIO(content), sheet_name=None, dtype=object)
        except Exception as e:
            logger.exception("Failed to read Excel workbook", extra={"error_type": type(e).__name__})
            return Result.fail(f"Error processing Excel file: {e}", status_code=HTTPStatus.BAD_REQUEST)

        if not frames:
            return Result.invalid_input("The Excel file is empty")

        sheets = []
        for name, df in frames.items():
            headers = [str(column) for column in df.columns]
            rows = [
                {header: _cell(value) for header, value in zip(headers, record)}
                for record in df.itertuples(index=False, name=None)
            ]
            logger.debug(f"Decoded sheet {name!r}", extra={"row_count": len(rows), "columns": headers})
            sheets.append(Sheet(name=str(name), rows=rows))
        return Result.ok(sheets)

    @staticmethod
    def inspect(sheets: List[Sheet], now: Optional[datetime] = None) -> ValidationReport:
        """
        Run structural checks, row rules and normalization on every sheet.

        Sheets with a structural error contribute only that finding; their
        rows are not checked.

        Args:
            sheets: Decoded sheets in workbook order
            now: Reference time for the future-date rule

        Returns:
            ValidationReport with preview rows and findings (no records)
        """
        preview: Dict[str, List[Dict[str, Any]]] = {}
        findings: List[Finding] = []

        for sheet in sheets:
            structural = _stamp(check_structure(sheet.rows), sheet.name)
            findings.extend(structural)
            preview[sheet.name] = normalize_rows(sheet.rows) if sheet.rows else []
            if has_errors(structural):
                logger.warning(f"Sheet {sheet.name!r} failed structural checks", extra={"sheet": sheet.name})
                continue
            findings.extend(validate_rows(sheet.rows, sheet_name=sheet.name, now=now))

        errors = errors_only(findings)
        ordered = errors + [f for f in findings if not f.is_error]
        return ValidationReport(sheets=preview, findings=ordered)

    @staticmethod
    def validate(sheets: List[Sheet], now: Optional[datetime] = None) -> Result[ValidationReport]:
        """
        Authoritative validation of a workbook before import.

        Args:
            sheets: Decoded sheets in workbook order
            now: Reference time for the future-date rule

        Returns:
            Result[ValidationReport]: success with records to import, 422 when a
            sheet's structure is unusable, 400 when rows break field rules
        """
        report = WorkbookProcessor.inspect(sheets, now=now)
        errors = errors_only(report.findings)

        structural = [f for f in errors if f.row == 0]
        if structural:
            logger.warning(f"Workbook structure rejected: {structural[0].message}")
            return Result.unprocessable(structural[0].message, findings=structural)

        if errors:
            logger.warning(
                "Workbook rows rejected",
                extra={"error_count": len(errors), "warning_count": len(report.findings) - len(errors)}
            )
            return Result.rejected(report.findings, error=errors[0].message)

        records = []
        for sheet in sheets:
            for row in sheet.rows:
                canonical = to_canonical(row)
                records.append(ImportedRecord(**canonical.model_dump(), sheet_name=sheet.name))

        logger.info(f"Workbook accepted with {len(records)} rows", extra={"warning_count": len(report.findings)})
        return Result.ok(report.model_copy(update={"records": records}))
