"""Grouping and display formatting of findings."""
from typing import Dict, Iterable, List

from validation.models import Finding

UNKNOWN_SHEET = "Unknown Sheet"


def format_findings(findings: Iterable[Finding]) -> Dict[str, List[Finding]]:
    """
    Group findings by sheet and prefix messages with their column.

    Sheets appear in order of first occurrence and findings keep their
    relative order. The input findings are not modified; each entry in the
    result is a copy whose message reads ``"{column}: {message}"`` when the
    finding names a column.
    """
    grouped: Dict[str, List[Finding]] = {}
    for finding in findings:
        sheet = finding.sheet_name or UNKNOWN_SHEET
        message = f"{finding.column}: {finding.message}" if finding.column else finding.message
        grouped.setdefault(sheet, []).append(finding.model_copy(update={"message": message}))
    return grouped


def errors_only(findings: Iterable[Finding]) -> List[Finding]:
    return [finding for finding in findings if finding.is_error]


def has_errors(findings: Iterable[Finding]) -> bool:
    """Only error-severity findings block an import; warnings are informational."""
    return any(finding.is_error for finding in findings)
