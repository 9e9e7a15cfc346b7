"""SQLite storage for resumption tokens.

Tokens are the only state shared between requests. Each one is written once
by a single INSERT and read back by a single primary-key lookup, so several
worker processes can share one database file.
"""
from __future__ import annotations

import logging
import sqlite3
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Generator, Optional

from oairepo.pmh.dates import minutes_from, utcnow

logger = logging.getLogger(__name__)

RESUMABLE_VERBS = ("ListIdentifiers", "ListRecords", "ListSets")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS resumption_tokens (
    id TEXT PRIMARY KEY,
    verb TEXT NOT NULL,
    metadata_prefix TEXT NOT NULL,
    cursor INTEGER NOT NULL,
    set_spec TEXT,
    date_from TEXT,
    date_until TEXT,
    expiration INTEGER NOT NULL  -- unix seconds
);

CREATE INDEX IF NOT EXISTS idx_resumption_tokens_expiration ON resumption_tokens(expiration);
"""


class TokenStoreError(Exception):
    """Raised when the token database cannot be read or written."""


@dataclass(frozen=True)
class ResumptionToken:
    id: str
    verb: str
    metadata_prefix: str
    cursor: int
    set_spec: Optional[str]
    date_from: Optional[str]
    date_until: Optional[str]
    expiration: datetime

    def is_valid(self, now: datetime) -> bool:
        return self.expiration > now


class ResumptionTokenStore:
    def __init__(
        self,
        db_path: Path,
        expiration_minutes: int = 10,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db_path = Path(db_path)
        self.expiration_minutes = expiration_minutes
        self.clock = clock
        self._initialized = False

    def _init_db(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect(init=False) as conn:
            conn.executescript(SCHEMA_SQL)
        self._initialized = True

    @contextmanager
    def _connect(self, init: bool = True) -> Generator[sqlite3.Connection, None, None]:
        if init and not self._initialized:
            self._init_db()
        try:
            conn = sqlite3.connect(self.db_path, timeout=30)
        except sqlite3.Error as error:
            raise TokenStoreError(f"Cannot open token database {self.db_path}: {error}") from error
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as error:
            conn.rollback()
            raise TokenStoreError(f"Token database operation failed: {error}") from error
        finally:
            conn.close()

    def create(
        self,
        verb: str,
        metadata_prefix: str,
        cursor: int,
        set_spec: Optional[str] = None,
        date_from: Optional[str] = None,
        date_until: Optional[str] = None,
    ) -> ResumptionToken:
        if verb not in RESUMABLE_VERBS:
            raise ValueError(f"{verb} cannot be resumed")
        token = ResumptionToken(
            id=uuid.uuid4().hex,
            verb=verb,
            metadata_prefix=metadata_prefix,
            cursor=cursor,
            set_spec=set_spec or None,
            date_from=date_from or None,
            date_until=date_until or None,
            expiration=minutes_from(self.clock(), self.expiration_minutes),
        )
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO resumption_tokens "
                "(id, verb, metadata_prefix, cursor, set_spec, date_from, date_until, expiration) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    token.id,
                    token.verb,
                    token.metadata_prefix,
                    token.cursor,
                    token.set_spec,
                    token.date_from,
                    token.date_until,
                    int(token.expiration.timestamp()),
                ),
            )
        logger.info("Minted resumption token", extra={"token": token.id, "verb": verb, "cursor": cursor})
        return token

    def resolve(self, token_id: str) -> Optional[ResumptionToken]:
        """Return the live token named `token_id`, or None if unknown or expired."""
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM resumption_tokens WHERE id = ?", (token_id,)).fetchone()
        if row is None:
            return None
        token = _row_to_token(row)
        if not token.is_valid(self.clock()):
            return None
        return token

    def purge_expired(self) -> int:
        now = int(self.clock().timestamp())
        with self._connect() as conn:
            deleted = conn.execute("DELETE FROM resumption_tokens WHERE expiration <= ?", (now,)).rowcount
        if deleted:
            logger.info("Purged expired resumption tokens", extra={"count": deleted})
        return deleted


def _row_to_token(row: sqlite3.Row) -> ResumptionToken:
    return ResumptionToken(
        id=row["id"],
        verb=row["verb"],
        metadata_prefix=row["metadata_prefix"],
        cursor=row["cursor"],
        set_spec=row["set_spec"],
        date_from=row["date_from"],
        date_until=row["date_until"],
        expiration=datetime.fromtimestamp(row["expiration"], tz=timezone.utc),
    )
