"""
News Repository
===============

Content store for ingested articles, categories and sources.

The unique ``slug`` column is the authoritative dedup check: a record that
already exists is found by ``find_by_slug`` and a racing insert fails with
a constraint error instead of duplicating content.
"""

import sqlite3
from typing import Optional

from ..database.models import ContentRecord, NewsCategory, NewsSource
from ..database.connection import DatabaseConnection
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode

# Message SQLite reports when the news.slug unique index rejects an insert
SLUG_CONFLICT = "UNIQUE constraint failed: news.slug"


class NewsRepository:
    """Repository for news records and their category/source lookups."""

    def __init__(self, db_connection: DatabaseConnection):
        """Initialize news repository.

        Args:
            db_connection: Database connection manager
        """
        self.db = db_connection
        self.logger = get_logger_for_component("news_repository")

    def find_by_slug(self, slug: str) -> Optional[ContentRecord]:
        """Get a stored record by slug.

        Args:
            slug: Slug to look up

        Returns:
            ContentRecord or None if not stored yet

        Raises:
            DatabaseError: If the lookup itself fails
        """
        try:
            with self.db.get_connection() as conn:
                row = conn.execute(
                    "SELECT * FROM news WHERE slug = ?", (slug,)
                ).fetchone()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to look up news {slug}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
                context={"slug": slug},
            ) from e

        return ContentRecord.from_db_row(row) if row else None

    def create(self, record: ContentRecord) -> ContentRecord:
        """Insert a fully assembled record in a single transaction.

        Args:
            record: Record to store

        Returns:
            The stored record

        Raises:
            DatabaseError: If the insert fails. Only a collision on ``slug``
                carries ``ErrorCode.DATABASE_CONSTRAINT``; foreign-key, CHECK
                and NOT NULL violations carry ``ErrorCode.DATABASE_TRANSACTION``
        """
        try:
            with self.db.transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO news (id, title, slug, short_text, content,
                                      main_image_url, category_id, source_id,
                                      created_at, ingested_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.id, record.title, record.slug, record.short_text,
                        record.content, record.main_image_url, record.category_id,
                        record.source_id, record.created_at, record.ingested_at,
                    ),
                )
        except sqlite3.Error as e:
            slug_taken = isinstance(e, sqlite3.IntegrityError) and SLUG_CONFLICT in str(e)
            raise DatabaseError(
                f"Failed to create news {record.slug}: {e}",
                error_code=ErrorCode.DATABASE_CONSTRAINT if slug_taken else ErrorCode.DATABASE_TRANSACTION,
                context={"slug": record.slug},
            ) from e

        self.logger.debug(f"Created news record: {record.slug}")
        return record

    def ensure_category(self, slug: str, name: str) -> str:
        """Return the id of the category with ``slug``, creating it once.

        Args:
            slug: Category slug
            name: Display name used when the category is created

        Returns:
            Category id
        """
        category = NewsCategory(slug=slug, name=name)
        try:
            with self.db.transaction() as conn:
                conn.execute(
                    """
                    INSERT OR IGNORE INTO news_categories (id, slug, name, is_active, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (category.id, category.slug, category.name, category.is_active, category.created_at),
                )
                row = conn.execute(
                    "SELECT id FROM news_categories WHERE slug = ?", (slug,)
                ).fetchone()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to ensure category {slug}: {e}",
                error_code=ErrorCode.DATABASE_TRANSACTION,
            ) from e

        return row["id"]

    def ensure_source(self, slug: str, name: str) -> NewsSource:
        """Return the source with ``slug``, creating it active on first use.

        Args:
            slug: Source slug
            name: Display name used when the source is created

        Returns:
            NewsSource with its current ``is_active`` flag
        """
        source = NewsSource(slug=slug, name=name)
        try:
            with self.db.transaction() as conn:
                conn.execute(
                    """
                    INSERT OR IGNORE INTO news_sources (id, slug, name, is_active, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (source.id, source.slug, source.name, source.is_active, source.created_at),
                )
                row = conn.execute(
                    "SELECT * FROM news_sources WHERE slug = ?", (slug,)
                ).fetchone()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to ensure source {slug}: {e}",
                error_code=ErrorCode.DATABASE_TRANSACTION,
            ) from e

        return NewsSource(**dict(row))

    def set_source_active(self, slug: str, active: bool) -> bool:
        """Enable or disable ingestion for a source.

        Returns:
            True if a source was updated
        """
        updated = self.db.execute_update(
            "UPDATE news_sources SET is_active = ? WHERE slug = ?", (active, slug)
        )
        if updated:
            self.logger.info(f"Source {slug} is_active set to {active}")
        return updated > 0

    def count_by_source(self, source_id: str) -> int:
        """Number of stored records ingested from a source."""
        row = self.db.execute_one(
            "SELECT COUNT(*) AS total FROM news WHERE source_id = ?", (source_id,)
        )
        return row["total"] if row else 0
