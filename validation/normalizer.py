"""
Normalization of raw spreadsheet cells into canonical field values.

The coercion helpers here (parse_date, to_number, parse_flag) are also used
by the row rules, so a value accepted by one is accepted by the other.
"""
import logging
import math
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pandas as pd

from validation.models import RawRow
from validation.schema import FieldRole, resolve_roles, role_for

logger = logging.getLogger(__name__)

# Day 0 of the 1900 spreadsheet date system
SERIAL_EPOCH = datetime(1899, 12, 30)

TRUE_TOKENS = frozenset({"yes", "true"})
FALSE_TOKENS = frozenset({"no", "false"})


def is_missing(value: Any) -> bool:
    """True for absent cells: None and float NaN."""
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return value is pd.NaT


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_date(value: Any) -> Optional[datetime]:
    """
    Interpret a cell as a point in time.

    Numbers are spreadsheet serial dates, strings are date literals and
    date/datetime objects are taken as-is. Anything else, or a value that
    cannot be parsed, gives None.
    """
    if is_missing(value):
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if _is_number(value):
        if not math.isfinite(value):
            return None
        try:
            return SERIAL_EPOCH + timedelta(days=float(value))
        except OverflowError:
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = date.fromisoformat(text)
            return datetime(parsed.year, parsed.month, parsed.day)
        except ValueError:
            pass
        parsed = pd.to_datetime(text, errors="coerce")
        if pd.isna(parsed):
            return None
        if parsed.tzinfo is not None:
            parsed = parsed.tz_convert(None)
        return parsed.to_pydatetime()
    return None


def to_number(value: Any) -> Optional[float]:
    """Coerce numbers and numeric strings to a finite float, else None."""
    if _is_number(value):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def parse_flag(value: Any) -> Optional[bool]:
    """Map Yes/No/True/False tokens (any case, padded) and booleans to bool."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        token = value.strip().lower()
        if token in TRUE_TOKENS:
            return True
        if token in FALSE_TOKENS:
            return False
    return None


def _normalize_flag(value: Any) -> Any:
    if isinstance(value, str):
        flag = parse_flag(value)
        # Unrecognised text is kept so the row rules can report it
        return value if flag is None else flag
    if isinstance(value, bool):
        return value
    return None


def _normalize_date(value: Any) -> Optional[str]:
    parsed = parse_date(value)
    if parsed is None:
        return None
    return parsed.date().isoformat()


def normalize_value(value: Any, role: Optional[FieldRole]) -> Any:
    """Normalize a cell given an already-resolved column role."""
    if role == FieldRole.FLAG:
        return _normalize_flag(value)
    if role == FieldRole.DATE:
        return _normalize_date(value)
    return value


def normalize(value: Any, field: str) -> Any:
    """
    Convert one raw cell value into its canonical form.

    Args:
        value: Raw cell value as decoded from the workbook
        field: Column header or record key the value belongs to

    Returns:
        ``YYYY-MM-DD`` for date columns, a bool for recognised Verified
        tokens, or the value unchanged for other columns. Date cells that
        cannot be parsed and Verified cells of an unsupported type give None.
    """
    return normalize_value(value, role_for(field))


def normalize_row(row: Mapping[str, Any], roles: Optional[Mapping[str, Optional[FieldRole]]] = None) -> RawRow:
    """Return a normalized copy of a row; the input mapping is left untouched."""
    if roles is None:
        roles = resolve_roles(row.keys())
    return {
        column: normalize_value(value, roles[column] if column in roles else role_for(column))
        for column, value in row.items()
    }


def normalize_rows(rows: Sequence[Mapping[str, Any]]) -> List[RawRow]:
    """Normalize every row of a sheet, resolving column roles once."""
    columns: Dict[str, None] = {}
    for row in rows:
        columns.update(dict.fromkeys(row.keys()))
    roles = resolve_roles(columns)
    logger.debug("Normalizing %d rows with roles %s", len(rows), roles)
    return [normalize_row(row, roles) for row in rows]
