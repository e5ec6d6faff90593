"""
Per-row field rules.

Every field of every row is checked independently; a row can report several
findings. Errors are returned before warnings, each group in row order.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from validation.models import CanonicalRow, Finding, Severity
from validation.normalizer import is_missing, parse_date, parse_flag, to_number
from validation.schema import SCHEMA, FieldRole, FieldRule

logger = logging.getLogger(__name__)

# (severity, message) for a single field, or None when the value is fine
Verdict = Optional[tuple]


def _is_blank(value: Any) -> bool:
    return is_missing(value) or value == ""


def _check_text(rule: FieldRule, value: Any, now: datetime) -> Verdict:
    if _is_blank(value):
        return Severity.ERROR, f"{rule.column} is required"
    if not isinstance(value, str):
        return Severity.ERROR, f"{rule.column} must be text"
    if not value.strip():
        return Severity.ERROR, f"{rule.column} cannot be empty"
    if rule.max_length is not None and len(value) > rule.max_length:
        return Severity.WARNING, f"{rule.column} is unusually long (>{rule.max_length} characters)"
    return None


def _check_amount(rule: FieldRule, value: Any, now: datetime) -> Verdict:
    if is_missing(value):
        return Severity.ERROR, f"{rule.column} is required"
    number = to_number(value)
    if number is None:
        return Severity.ERROR, f"{rule.column} must be a number"
    if rule.minimum is not None and number <= rule.minimum:
        return Severity.ERROR, f"{rule.column} must be positive"
    if rule.warn_above is not None and number > rule.warn_above:
        return Severity.WARNING, f"{rule.column} is unusually large (>{rule.warn_above:,.0f})"
    return None


def _check_date(rule: FieldRule, value: Any, now: datetime) -> Verdict:
    if _is_blank(value):
        return Severity.ERROR, f"{rule.column} is required"
    parsed = parse_date(value)
    if parsed is None:
        return Severity.ERROR, "Invalid date format"
    if parsed > now:
        return Severity.WARNING, f"{rule.column} is in the future"
    return None


def _check_flag(rule: FieldRule, value: Any, now: datetime) -> Verdict:
    if is_missing(value):
        return Severity.ERROR, f"{rule.column} status is required"
    if isinstance(value, str):
        if parse_flag(value) is None:
            return Severity.ERROR, f"{rule.column} must be Yes/No or True/False"
        return None
    if not isinstance(value, bool):
        return Severity.ERROR, f"{rule.column} must be a boolean value"
    return None


_CHECKS: Dict[FieldRole, Callable[[FieldRule, Any, datetime], Verdict]] = {
    FieldRole.TEXT: _check_text,
    FieldRole.AMOUNT: _check_amount,
    FieldRole.DATE: _check_date,
    FieldRole.FLAG: _check_flag,
}


def validate_rows(
    rows: Sequence[Mapping[str, Any]],
    sheet_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> List[Finding]:
    """
    Apply the field rules to every row.

    Args:
        rows: Raw or normalized row records in sheet order
        sheet_name: Stamped on every finding when given
        now: Reference time for the future-date warning (defaults to now)

    Returns:
        All error findings in row order followed by all warnings in row order.
        Row numbers are 1-based display positions.
    """
    now = now or datetime.now()
    errors: List[Finding] = []
    warnings: List[Finding] = []

    for index, row in enumerate(rows):
        for rule in SCHEMA:
            verdict = _CHECKS[rule.role](rule, row.get(rule.column), now)
            if verdict is None:
                continue
            severity, message = verdict
            finding = Finding(
                row=index + 1,
                column=rule.column,
                message=message,
                sheet_name=sheet_name,
                severity=severity,
            )
            (errors if severity == Severity.ERROR else warnings).append(finding)

    logger.debug("Validated %d rows: %d errors, %d warnings", len(rows), len(errors), len(warnings))
    return errors + warnings


def to_canonical(row: Mapping[str, Any]) -> CanonicalRow:
    """
    Build the typed record for a row that passed validate_rows without errors.

    Raises:
        ValueError: If a required field cannot be coerced
    """
    values: Dict[str, Any] = {}
    for rule in SCHEMA:
        value = row.get(rule.column)
        if rule.role == FieldRole.AMOUNT:
            value = to_number(value)
        elif rule.role == FieldRole.DATE:
            parsed = parse_date(value)
            value = parsed.date() if parsed is not None else None
        elif rule.role == FieldRole.FLAG:
            value = parse_flag(value)
        elif isinstance(value, str):
            value = value.strip()
        if value is None:
            raise ValueError(f"{rule.column} cannot be converted")
        values[rule.key] = value
    return CanonicalRow(**values)
