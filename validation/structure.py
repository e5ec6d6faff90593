"""Sheet-level shape checks. The first failing check ends the pass."""
import logging
from collections.abc import Mapping, Sequence
from typing import Any, List

from validation.models import Finding, Severity
from validation.schema import MAX_ROWS, REQUIRED_COLUMNS

logger = logging.getLogger(__name__)


def _is_row_collection(rows: Any) -> bool:
    return isinstance(rows, Sequence) and not isinstance(rows, (str, bytes))


def _missing_columns(first_row: Mapping) -> List[str]:
    return [column for column in REQUIRED_COLUMNS if column not in first_row]


def _sheet_error(message: str) -> Finding:
    return Finding(row=0, message=message, severity=Severity.ERROR)


def check_structure(rows: Any) -> List[Finding]:
    """
    Check that a decoded sheet has the shape required for row validation.

    Args:
        rows: Ordered row records; the keys of the first row are the header

    Returns:
        At most one error (invalid format, empty, too many rows, missing
        columns), or an extra-columns warning when the header has more than
        the required columns. An empty list means the sheet is well formed.
    """
    if not _is_row_collection(rows) or (rows and not isinstance(rows[0], Mapping)):
        return [_sheet_error("Invalid file format: Expected Excel data")]

    if len(rows) == 0:
        return [_sheet_error("Sheet is empty")]

    if len(rows) > MAX_ROWS:
        logger.debug("Sheet rejected with %d rows", len(rows))
        return [_sheet_error(
            f"Sheet contains too many rows (>{MAX_ROWS:,}). Please split the data into smaller files."
        )]

    missing = _missing_columns(rows[0])
    if missing:
        return [_sheet_error(f"Missing required columns: {', '.join(missing)}")]

    extra = [column for column in rows[0] if column not in REQUIRED_COLUMNS]
    if extra:
        return [Finding(
            row=0,
            message=f"Found extra columns that will be ignored: {', '.join(str(c) for c in extra)}",
            severity=Severity.WARNING,
        )]
    return []


def check_columns_only(rows: Any) -> List[Finding]:
    """Fast pre-check of the header alone; sheets without a header row pass."""
    if not _is_row_collection(rows) or not rows or not isinstance(rows[0], Mapping):
        return []
    missing = _missing_columns(rows[0])
    if missing:
        return [_sheet_error(f"Missing required columns: {', '.join(missing)}")]
    return []
