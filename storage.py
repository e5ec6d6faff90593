"""
Document store for imported records.

Each record is kept as a JSON document in SQLite. Bulk inserts are unordered:
a row that fails to store does not stop the others, and only the totals are
reported back.
"""
import datetime
import logging
import os
import sqlite3
from contextlib import closing
from dataclasses import dataclass
from typing import Iterable, List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class ImportedRecord(BaseModel):
    """
    Persisted shape of an accepted row.

    Attributes:
        name: Row name
        amount: Non-negative amount
        date: Calendar date of the row
        verified: Verified flag
        sheet_name: Sheet the row came from
        imported_at: When the row was stored (UTC); set again by insert_many
    """
    name: str
    amount: float = Field(ge=0)
    date: datetime.date
    verified: bool = False
    sheet_name: str
    imported_at: datetime.datetime = Field(default_factory=_utcnow)


@dataclass(frozen=True)
class InsertOutcome:
    inserted: int
    failed: int

    @property
    def total(self) -> int:
        return self.inserted + self.failed


class SQLiteDocumentStore:
    """
    JSON documents in a single SQLite table.

    The database file and table are created on first use.

    Args:
        path: Location of the SQLite database file
    """

    def __init__(self, path: str):
        self.path = path
        self._initialized = False

    def _connect(self) -> sqlite3.Connection:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        if not self._initialized:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS records (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    sheet_name TEXT NOT NULL,
                    data TEXT NOT NULL
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_records_sheet ON records (sheet_name)")
            conn.commit()
            self._initialized = True
        return conn

    def insert_many(
        self,
        records: Iterable[ImportedRecord],
        imported_at: Optional[datetime.datetime] = None,
    ) -> InsertOutcome:
        """
        Store records without stopping at the first failure.

        Every record in the batch is stamped with the same ``imported_at``,
        the time of this call unless one is given.

        Returns:
            Counts of stored and failed rows
        """
        imported_at = imported_at or _utcnow()
        inserted = 0
        failed = 0
        with closing(self._connect()) as conn:
            for record in records:
                stamped = record.model_copy(update={"imported_at": imported_at})
                try:
                    conn.execute(
                        "INSERT INTO records (sheet_name, data) VALUES (?, ?)",
                        (stamped.sheet_name, stamped.model_dump_json()),
                    )
                    inserted += 1
                except (sqlite3.Error, ValueError) as exc:
                    failed += 1
                    logger.error("Failed to store record", extra={"sheet_name": record.sheet_name, "error": str(exc)})
            conn.commit()
        logger.info(f"Bulk insert finished: {inserted} stored, {failed} failed")
        return InsertOutcome(inserted=inserted, failed=failed)

    def find_all(self) -> List[ImportedRecord]:
        with closing(self._connect()) as conn:
            rows = conn.execute("SELECT data FROM records ORDER BY id").fetchall()
        return [ImportedRecord.model_validate_json(row["data"]) for row in rows]

    def count(self) -> int:
        with closing(self._connect()) as conn:
            return conn.execute("SELECT COUNT(*) FROM records").fetchone()[0]

    def ping(self) -> bool:
        """True when the database can be opened and queried."""
        try:
            with closing(self._connect()) as conn:
                conn.execute("SELECT 1")
            return True
        except (sqlite3.Error, OSError) as exc:
            logger.warning(f"Database check failed: {exc}")
            return False
