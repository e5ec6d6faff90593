"""
Hand-off of validated rows from the validate call to the import call.

Validation returns an opaque token; the import call redeems it. A token can
be redeemed once and only before it expires.
"""
import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from storage import ImportedRecord

logger = logging.getLogger(__name__)


@dataclass
class _PendingImport:
    records: List[ImportedRecord]
    expires_at: float


class PendingImportStore:
    """
    Token-keyed holding area for validated records.

    Args:
        ttl_seconds: Lifetime of each token
        clock: Monotonic time source, replaceable in tests
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, _PendingImport] = {}
        self._lock = threading.Lock()

    def issue(self, records: List[ImportedRecord]) -> str:
        """Store records and return the token that redeems them."""
        token = secrets.token_urlsafe(24)
        with self._lock:
            self._purge_locked()
            self._entries[token] = _PendingImport(list(records), self._clock() + self.ttl_seconds)
        logger.info("Issued import token", extra={"row_count": len(records), "ttl_seconds": self.ttl_seconds})
        return token

    def consume(self, token: str) -> Optional[List[ImportedRecord]]:
        """
        Redeem a token.

        Returns:
            The stored records, or None if the token is unknown, expired or
            already redeemed.
        """
        with self._lock:
            entry = self._entries.pop(token, None)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            logger.warning("Import token expired before use")
            return None
        return entry.records

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_locked()

    def _purge_locked(self) -> int:
        now = self._clock()
        expired = [token for token, entry in self._entries.items() if entry.expires_at <= now]
        for token in expired:
            del self._entries[token]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
