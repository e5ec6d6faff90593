"""
Field rule table for uploaded sheets.

Each required column is described once here and consumed by the normalizer,
the structural checks and the row rules, so every caller judges a row by the
same definitions.
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple


class FieldRole(str, Enum):
    """Semantic role of a column, used to pick coercion and rules."""
    TEXT = "text"
    AMOUNT = "amount"
    DATE = "date"
    FLAG = "flag"


@dataclass(frozen=True)
class FieldRule:
    """
    Rule definition for one spreadsheet column.

    Attributes:
        column: Header text as it appears in the sheet
        key: Field name on the canonical/persisted record
        role: How values of this column are coerced and checked
        required: Whether a missing value is an error
        minimum: Values must be strictly greater than this (numeric roles)
        warn_above: Values above this produce a warning (numeric roles)
        max_length: Text longer than this produces a warning (text roles)
    """
    column: str
    key: str
    role: FieldRole
    required: bool = True
    minimum: Optional[float] = None
    warn_above: Optional[float] = None
    max_length: Optional[int] = None


SCHEMA: Tuple[FieldRule, ...] = (
    FieldRule(column="Name", key="name", role=FieldRole.TEXT, max_length=100),
    FieldRule(column="Amount", key="amount", role=FieldRole.AMOUNT, minimum=0, warn_above=1_000_000),
    FieldRule(column="Date", key="date", role=FieldRole.DATE),
    FieldRule(column="Verified", key="verified", role=FieldRole.FLAG),
)

REQUIRED_COLUMNS: Tuple[str, ...] = tuple(rule.column for rule in SCHEMA)

MAX_ROWS = 10_000

# Extra columns that look like dates are still converted for the preview
_DATE_LIKE = re.compile(r"date|dt|time", re.IGNORECASE)

_RULES_BY_NAME: Dict[str, FieldRule] = {}
for _rule in SCHEMA:
    _RULES_BY_NAME[_rule.column.lower()] = _rule
    _RULES_BY_NAME[_rule.key.lower()] = _rule


def rule_for(field: str) -> Optional[FieldRule]:
    """Look up the rule for a column header or record key (case-insensitive)."""
    if not isinstance(field, str):
        return None
    return _RULES_BY_NAME.get(field.strip().lower())


def role_for(field: str) -> Optional[FieldRole]:
    """
    Resolve the role of a single column.

    Schema columns use their declared role. Any other column whose name
    contains "date", "dt" or "time" is treated as a date; the rest have no
    role and pass through unchanged.
    """
    rule = rule_for(field)
    if rule is not None:
        return rule.role
    if isinstance(field, str) and _DATE_LIKE.search(field):
        return FieldRole.DATE
    return None


def resolve_roles(columns: Iterable[str]) -> Dict[str, Optional[FieldRole]]:
    """Resolve roles for every column of a sheet in one pass."""
    return {column: role_for(column) for column in columns}
