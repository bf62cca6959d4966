"""
NewsMirror Database Schema
==========================

SQLite database schema with foreign key constraints and indexes.

Tables:
- news_categories: categories new articles are filed under
- news_sources: upstream sites, each with an is_active switch
- news: ingested articles, slug is the dedup key of record
- crawler_state: durable watermark per source
"""

import sqlite3
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


EXPECTED_TABLES = {"crawler_state", "news", "news_categories", "news_sources"}


class DatabaseSchema:
    """Database schema manager for the NewsMirror SQLite database."""

    def __init__(self, db_path: str = "data/newsmirror.db"):
        """Initialize database schema manager.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables with proper schema."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("PRAGMA foreign_keys = ON")

            self._create_categories_table(conn)
            self._create_sources_table(conn)
            self._create_news_table(conn)
            self._create_crawler_state_table(conn)

            self._create_indexes(conn)

            conn.commit()
            logger.info("Database schema created successfully")

    def _create_categories_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS news_categories (
                id TEXT PRIMARY KEY,
                slug TEXT UNIQUE NOT NULL,
                name TEXT NOT NULL,
                is_active BOOLEAN DEFAULT TRUE,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

    def _create_sources_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS news_sources (
                id TEXT PRIMARY KEY,
                slug TEXT UNIQUE NOT NULL,
                name TEXT NOT NULL,
                is_active BOOLEAN DEFAULT TRUE,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

    def _create_news_table(self, conn: sqlite3.Connection) -> None:
        """Create news table; created_at holds the original publication time."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS news (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                slug TEXT UNIQUE NOT NULL,
                short_text TEXT,
                content TEXT NOT NULL CHECK (length(content) > 0),
                main_image_url TEXT,
                category_id TEXT NOT NULL,
                source_id TEXT,
                created_at TIMESTAMP NOT NULL,
                ingested_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (category_id) REFERENCES news_categories(id) ON DELETE RESTRICT,
                FOREIGN KEY (source_id) REFERENCES news_sources(id) ON DELETE SET NULL
            )
        """
        )

    def _create_crawler_state_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS crawler_state (
                source_slug TEXT PRIMARY KEY,
                last_published_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

    def _create_indexes(self, conn: sqlite3.Connection) -> None:
        """Create database indexes for listing queries."""
        indexes = [
            "CREATE INDEX IF NOT EXISTS idx_news_created ON news(created_at)",
            "CREATE INDEX IF NOT EXISTS idx_news_category_created ON news(category_id, created_at)",
            "CREATE INDEX IF NOT EXISTS idx_news_source ON news(source_id)",
            "CREATE INDEX IF NOT EXISTS idx_sources_active ON news_sources(is_active)",
        ]

        for index_sql in indexes:
            conn.execute(index_sql)

    def drop_tables(self) -> None:
        """Drop all tables (for testing/reset purposes)."""
        with sqlite3.connect(self.db_path) as conn:
            for table in ["crawler_state", "news", "news_sources", "news_categories"]:
                conn.execute(f"DROP TABLE IF EXISTS {table}")

            conn.commit()
            logger.info("All database tables dropped")

    def verify_schema(self) -> bool:
        """Verify database schema is correctly created."""
        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.execute(
                    """
                    SELECT name FROM sqlite_master
                    WHERE type='table' AND name NOT LIKE 'sqlite_%'
                    ORDER BY name
                """
                )

                tables = {row[0] for row in cursor.fetchall()}

                if not EXPECTED_TABLES.issubset(tables):
                    logger.error(
                        f"Missing tables. Expected: {EXPECTED_TABLES}, Found: {tables}"
                    )
                    return False

                conn.execute("PRAGMA foreign_key_check")

                logger.info("Database schema verification passed")
                return True

        except sqlite3.Error as e:
            logger.error(f"Schema verification failed: {e}")
            return False
