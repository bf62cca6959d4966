"""
Unit Tests for the Database Schema
==================================
"""

import sqlite3

from newsmirror.database.connection import DatabaseConnection
from newsmirror.database.schema import DatabaseSchema


class TestDatabaseSchema:

    def test_create_and_verify(self, tmp_path):
        schema = DatabaseSchema(str(tmp_path / "nested" / "test.db"))

        schema.create_tables()

        assert schema.verify_schema()

    def test_create_is_idempotent(self, db_path):
        DatabaseSchema(db_path).create_tables()

        assert DatabaseSchema(db_path).verify_schema()

    def test_missing_tables_fail_verification(self, db_path):
        schema = DatabaseSchema(db_path)
        schema.drop_tables()

        assert not schema.verify_schema()

    def test_empty_content_is_rejected(self, db_path):
        with sqlite3.connect(db_path) as conn:
            conn.execute(
                "INSERT INTO news_categories (id, slug, name) VALUES ('c1', 'cat', 'Cat')"
            )
            try:
                conn.execute(
                    "INSERT INTO news (id, title, slug, content, category_id, created_at) "
                    "VALUES ('n1', 't', 's', '', 'c1', '2024-09-05T12:00:00+00:00')"
                )
            except sqlite3.IntegrityError:
                rejected = True
            else:
                rejected = False

        assert rejected


class TestDatabaseConnection:

    def test_database_info(self, db_connection):
        info = db_connection.get_database_info()

        assert set(info["table_counts"]) == {"news", "news_categories", "news_sources", "crawler_state"}
        assert all(count == 0 for count in info["table_counts"].values())

    def test_transaction_rolls_back(self, db_connection):
        try:
            with db_connection.transaction() as conn:
                conn.execute(
                    "INSERT INTO news_sources (id, slug, name) VALUES ('s1', 'example', 'Example')"
                )
                raise RuntimeError("abort")
        except RuntimeError:
            pass

        assert db_connection.execute_one("SELECT * FROM news_sources WHERE id = 's1'") is None

    def test_connection_returns_to_pool(self, db_path):
        connection = DatabaseConnection(db_path, pool_size=1)
        try:
            with connection.get_connection():
                assert connection.pool.empty()
            assert connection.pool.qsize() == 1
        finally:
            connection.close_all_connections()
