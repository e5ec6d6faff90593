"""
Spreadsheet validation core.

Pure functions shared by the server pipeline and the client pre-check:
- normalize: coerce raw cell values into canonical field values
- check_structure / check_columns_only: sheet shape checks
- validate_rows: per-row field rules
- format_findings: group findings by sheet for display
"""
from validation.aggregator import errors_only, format_findings, has_errors
from validation.models import CanonicalRow, Finding, Severity, Sheet
from validation.normalizer import normalize, normalize_row, normalize_rows
from validation.rows import to_canonical, validate_rows
from validation.schema import MAX_ROWS, REQUIRED_COLUMNS, SCHEMA, FieldRole, FieldRule
from validation.structure import check_columns_only, check_structure

__all__ = [
    "CanonicalRow",
    "FieldRole",
    "FieldRule",
    "Finding",
    "MAX_ROWS",
    "REQUIRED_COLUMNS",
    "SCHEMA",
    "Severity",
    "Sheet",
    "check_columns_only",
    "check_structure",
    "errors_only",
    "format_findings",
    "has_errors",
    "normalize",
    "normalize_row",
    "normalize_rows",
    "to_canonical",
    "validate_rows",
]
