"""Data shapes passed between the validation functions and their callers."""
import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

RawRow = Dict[str, Any]


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class Finding(BaseModel):
    """
    One validation result.

    Attributes:
        row: 1-based display row, or 0 for file/sheet-level findings
        column: Column the finding is about, if any
        message: Human-readable description
        sheet_name: Sheet the row belongs to (``sheetName`` on the wire)
        severity: error, warning or info
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    row: int = Field(ge=0)
    column: Optional[str] = None
    message: str
    sheet_name: Optional[str] = Field(default=None, alias="sheetName")
    severity: Severity = Severity.ERROR

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR

    def to_payload(self) -> Dict[str, Any]:
        """Serialize for JSON responses, dropping empty optional fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Sheet(BaseModel):
    """A named table from an uploaded workbook."""
    name: str
    rows: List[RawRow] = Field(default_factory=list)

    @property
    def columns(self) -> List[str]:
        """Header as seen on the first row."""
        return list(self.rows[0].keys()) if self.rows else []


class CanonicalRow(BaseModel):
    """A row whose four required fields hold their final types."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    amount: float = Field(gt=0, allow_inf_nan=False)
    date: datetime.date
    verified: bool
