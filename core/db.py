import json
import sqlite3
from datetime import datetime
from typing import List, Optional

from core.exceptions import CacheUnavailable
from core.logger import setup_logger
from core.schema import CacheEntry, ClassificationResult

logger = setup_logger(__name__)


class CacheStore:
    """Durable SQLite store behind the classification cache."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    def get_connection(self) -> sqlite3.Connection:
        """Create a database connection."""
        try:
            conn = sqlite3.connect(self.db_path, timeout=5)
        except sqlite3.Error as e:
            raise CacheUnavailable(
                f"Cannot open cache database: {e}",
                details={"db_path": self.db_path},
            )
        conn.row_factory = sqlite3.Row
        return conn

    def _execute(self, sql: str, params: tuple = (), fetch: bool = False) -> List[sqlite3.Row]:
        conn = self.get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(sql, params)
            rows = cursor.fetchall() if fetch else []
            conn.commit()
            return rows
        except sqlite3.Error as e:
            logger.error(f"Cache store query failed: {e}")
            raise CacheUnavailable(
                f"Cache store query failed: {e}",
                details={"db_path": self.db_path},
            )
        finally:
            conn.close()

    def init_db(self) -> None:
        """Initialize database tables."""
        self._execute("""
            CREATE TABLE IF NOT EXISTS classification_cache (
                signature TEXT PRIMARY KEY,
                result_json TEXT NOT NULL,
                last_updated TIMESTAMP NOT NULL,
                usage_count INTEGER NOT NULL DEFAULT 0
            )
        """)
        logger.info("Cache database initialized successfully")

    def upsert_entry(self, entry: CacheEntry) -> None:
        """Insert or replace a cache entry, never lowering its usage count."""
        self._execute(
            """
            INSERT INTO classification_cache (signature, result_json, last_updated, usage_count)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(signature) DO UPDATE SET
                result_json = excluded.result_json,
                last_updated = excluded.last_updated,
                usage_count = MAX(classification_cache.usage_count, excluded.usage_count)
            """,
            (
                entry.signature,
                entry.result.model_dump_json(),
                entry.last_updated.isoformat(),
                entry.usage_count,
            ),
        )

    def get_entry(self, signature: str) -> Optional[CacheEntry]:
        """Load a single entry by signature."""
        rows = self._execute(
            "SELECT * FROM classification_cache WHERE signature = ?",
            (signature,),
            fetch=True,
        )
        if not rows:
            return None
        return self._row_to_entry(rows[0])

    def load_entries(self) -> List[CacheEntry]:
        """Load every stored entry."""
        rows = self._execute("SELECT * FROM classification_cache", fetch=True)
        entries = []
        for row in rows:
            entry = self._row_to_entry(row)
            if entry is not None:
                entries.append(entry)
        return entries

    def increment_usage(self, signature: str) -> None:
        self._execute(
            "UPDATE classification_cache SET usage_count = usage_count + 1 WHERE signature = ?",
            (signature,),
        )

    def delete_older_than(self, cutoff: datetime) -> None:
        """Delete entries last updated before the cutoff."""
        self._execute(
            "DELETE FROM classification_cache WHERE last_updated < ?",
            (cutoff.isoformat(),),
        )

    def _row_to_entry(self, row: sqlite3.Row) -> Optional[CacheEntry]:
        try:
            return CacheEntry(
                signature=row["signature"],
                result=ClassificationResult.model_validate(json.loads(row["result_json"])),
                last_updated=datetime.fromisoformat(row["last_updated"]),
                usage_count=row["usage_count"],
            )
        except (ValueError, TypeError) as e:
            logger.warning(f"Skipping corrupt cache row {row['signature']}: {e}")
            return None
