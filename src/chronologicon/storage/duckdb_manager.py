#!/usr/bin/env python3
"""
DuckDB Manager - Database initialization and connection management.

Handles DuckDB database setup, schema creation from the packaged SQL file,
query execution and transactions for the event store and the job repository.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import duckdb

from chronologicon.constants import IN_MEMORY_DATABASE
from chronologicon.errors import (
    ConstraintViolationError,
    StoreError,
    StoreUnavailableError,
)
from chronologicon.logger import get_logger
from chronologicon.utils.paths import normalize_database_path

db_logger = get_logger("chronologicon.duckdb")

SCHEMA_DIR = Path(__file__).resolve().parent.parent / "schemas" / "sql"
REQUIRED_TABLES = ("historical_events", "ingestion_jobs")

_UNAVAILABLE_ERRORS = (
    duckdb.ConnectionException,
    duckdb.IOException,
    duckdb.InternalException,
    duckdb.FatalException,
)


def translate_error(exc: duckdb.Error) -> StoreError:
    """Map a DuckDB exception onto the store error hierarchy."""
    if isinstance(exc, duckdb.ConstraintException):
        return ConstraintViolationError(str(exc))
    if isinstance(exc, _UNAVAILABLE_ERRORS):
        return StoreUnavailableError(str(exc))
    return StoreError(str(exc))


class DuckDBManager:
    """
    Manages DuckDB database initialization, connections, and schema setup.

    Features:
    - Schema initialization from schemas/sql/init_database.sql
    - Connection management and reuse
    - Query execution returning rows as dictionaries
    - Transaction support for batch operations
    - ':memory:' databases for tests
    """

    def __init__(self, database_path: str | Path = IN_MEMORY_DATABASE):
        self.database_path = normalize_database_path(database_path)
        self.connection: duckdb.DuckDBPyConnection | None = None
        self._schema_initialized = False
        self._in_transaction = False

        if self.database_path != IN_MEMORY_DATABASE:
            Path(self.database_path).parent.mkdir(parents=True, exist_ok=True)

        db_logger.status("DuckDB Manager initialized")
        db_logger.config(f"Database path: {self.database_path}")

    @property
    def is_initialized(self) -> bool:
        return self._schema_initialized

    def initialize_database(self) -> None:
        """Initialize database and create schema from the SQL file."""
        if self._schema_initialized:
            db_logger.debug("Database already initialized")
            return

        db_logger.startup("[INIT] Initializing DuckDB database and schema...")

        try:
            self._connect()
            self._create_schema()
            self._verify_schema()
        except duckdb.Error as e:
            db_logger.error(f"Failed to initialize database: {e}")
            raise translate_error(e) from e

        if self.database_path != IN_MEMORY_DATABASE:
            try:
                self.connection.execute("CHECKPOINT")
                db_logger.success("Database checkpoint completed")
            except duckdb.Error as e:
                db_logger.warning(f"Database checkpoint failed: {e}")

        self._schema_initialized = True
        db_logger.success("Database schema initialized successfully")

    def _connect(self) -> None:
        """Establish database connection."""
        if self.connection:
            return

        try:
            self.connection = duckdb.connect(self.database_path)
            db_logger.success(f"Connected to database: {self.database_path}")
        except duckdb.Error as e:
            db_logger.error(f"Failed to connect to database: {e}")
            raise StoreUnavailableError(
                f"Cannot open database {self.database_path}: {e}"
            ) from e

    def _create_schema(self) -> None:
        init_script = SCHEMA_DIR / "init_database.sql"
        if not init_script.exists():
            msg = f"Schema file not found: {init_script}"
            raise FileNotFoundError(msg)

        db_logger.config(f"Executing schema: {init_script.name}")
        self._execute_sql_file(init_script)

    def _execute_sql_file(self, file_path: Path) -> None:
        """Execute SQL commands from a file."""
        with open(file_path, encoding="utf-8") as f:
            sql_content = f.read()

        statements = [stmt.strip() for stmt in sql_content.split(";") if stmt.strip()]

        for i, statement in enumerate(statements):
            sql_lines = []
            for raw_line in statement.split("\n"):
                clean_line = raw_line.strip()
                if not clean_line or clean_line.startswith("--"):
                    continue
                if "--" in clean_line:
                    clean_line = clean_line.split("--")[0].strip()
                if clean_line:
                    sql_lines.append(clean_line)

            if sql_lines:
                cleaned_statement = " ".join(sql_lines)
                db_logger.debug(f"Executing statement {i+1}: {cleaned_statement[:50]}...")
                self.connection.execute(cleaned_statement)

    def _verify_schema(self) -> None:
        """Verify that required tables exist."""
        for table in REQUIRED_TABLES:
            self.connection.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
            db_logger.tracking(f"Table '{table}' exists and accessible")

    def execute_query(
        self, query: str, parameters: list | None = None
    ) -> list[dict[str, Any]]:
        """
        Execute a query and return results as a list of dictionaries.

        Raises:
            StoreError: or one of its subclasses when DuckDB rejects the query
        """
        self._ensure_connected()

        try:
            if parameters:
                result = self.connection.execute(query, parameters)
            else:
                result = self.connection.execute(query)

            columns = (
                [desc[0] for desc in result.description] if result.description else []
            )
            rows = result.fetchall() if columns else []
        except duckdb.Error as e:
            db_logger.debug(f"Query execution failed: {e}")
            db_logger.debug(f"Query: {' '.join(query.split())[:200]}")
            raise translate_error(e) from e

        return [dict(zip(columns, row, strict=False)) for row in rows]

    def execute(self, query: str, parameters: list | None = None) -> None:
        """Execute a statement whose result is not needed."""
        self._ensure_connected()
        try:
            if parameters:
                self.connection.execute(query, parameters)
            else:
                self.connection.execute(query)
        except duckdb.Error as e:
            db_logger.debug(f"Statement failed: {e}")
            raise translate_error(e) from e

    def get_table_count(self, table_name: str) -> int:
        """Get the number of rows in a table."""
        result = self.execute_query(f"SELECT COUNT(*) AS count FROM {table_name}")
        return result[0]["count"] if result else 0

    def begin_transaction(self) -> None:
        self._ensure_connected()
        try:
            self.connection.begin()
        except duckdb.Error as e:
            raise translate_error(e) from e
        self._in_transaction = True

    def commit_transaction(self) -> None:
        self._ensure_connected()
        try:
            self.connection.commit()
        except duckdb.Error as e:
            raise translate_error(e) from e
        finally:
            self._in_transaction = False

    def rollback_transaction(self) -> None:
        if not self.connection or not self._in_transaction:
            return
        try:
            self.connection.rollback()
        except duckdb.Error as e:
            db_logger.warning(f"Rollback failed: {e}")
        finally:
            self._in_transaction = False

    @contextmanager
    def transaction(self) -> Iterator[DuckDBManager]:
        """
        Run a block atomically; nested use joins the outer transaction.

        Any exception rolls the transaction back and propagates.
        """
        if self._in_transaction:
            yield self
            return

        self.begin_transaction()
        try:
            yield self
        except BaseException:
            self.rollback_transaction()
            raise
        self.commit_transaction()

    def _ensure_connected(self) -> None:
        if not self.connection:
            self._connect()

    def close(self) -> None:
        """Close the database connection."""
        if self.connection:
            self.connection.close()
            self.connection = None
            self._schema_initialized = False
            db_logger.config("Database connection closed")

    def __enter__(self):
        self._ensure_connected()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
