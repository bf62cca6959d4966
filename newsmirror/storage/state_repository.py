"""
Crawler State Repository
========================

Durable watermark storage, one row per source slug.
"""

import sqlite3
from datetime import datetime, timezone
from typing import Optional

from ..database.connection import DatabaseConnection
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode


class CrawlerStateRepository:
    """Reads and writes the last successful publication timestamp."""

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection
        self.logger = get_logger_for_component("state_repository")

    def load_watermark(self, source_slug: str) -> Optional[datetime]:
        """Get the stored watermark for a source, or None on first run."""
        try:
            row = self.db.execute_one(
                "SELECT last_published_at FROM crawler_state WHERE source_slug = ?",
                (source_slug,),
            )
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to load watermark for {source_slug}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

        if not row or not row["last_published_at"]:
            return None

        value = datetime.fromisoformat(row["last_published_at"])
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value

    def save_watermark(self, source_slug: str, published_at: datetime) -> None:
        """Upsert the watermark for a source.

        Raises:
            DatabaseError: If the write fails
        """
        try:
            with self.db.transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO crawler_state (source_slug, last_published_at, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(source_slug) DO UPDATE SET
                        last_published_at = excluded.last_published_at,
                        updated_at = excluded.updated_at
                    """,
                    (source_slug, published_at, datetime.now(timezone.utc)),
                )
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to save watermark for {source_slug}: {e}",
                error_code=ErrorCode.DATABASE_TRANSACTION,
            ) from e

        self.logger.debug(f"Watermark for {source_slug} set to {published_at.isoformat()}")
