"""DuckDB-backed table adapter.

Stores each host table as a DuckDB table with an integer ``id`` primary key,
so sync snapshots survive across sessions without a spreadsheet host.
"""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import duckdb

from mapsync.core.errors import PersistenceError
from mapsync.core.interfaces import ColumnarTable
from mapsync.infrastructure.tables.adapter import BaseTableAdapter

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Host column types -> DuckDB types
COLUMN_TYPES = {
    "Text": "VARCHAR",
    "Numeric": "DOUBLE",
    "Int": "BIGINT",
    "Bool": "BOOLEAN",
    "Date": "DOUBLE",
    "DateTime": "DOUBLE",
    "Choice": "VARCHAR",
    "Any": "VARCHAR",
}


def _quote(identifier: str) -> str:
    if not _IDENTIFIER.match(identifier):
        raise PersistenceError(f"Invalid identifier: {identifier!r}")
    return f'"{identifier}"'


class DuckDBTableAdapter(BaseTableAdapter):
    """Manages host-style tables in a DuckDB database file (or ``:memory:``)."""

    def __init__(self, db_path: Optional[str] = None):
        if db_path is None:
            self.db_path = ":memory:"
        else:
            self.db_path = str(db_path)
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn: Optional[duckdb.DuckDBPyConnection] = None

    def start(self) -> None:
        """Open the database connection."""
        self.conn = duckdb.connect(self.db_path)
        logger.info(f"Table database opened: {self.db_path}")

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None

    def _connection(self) -> duckdb.DuckDBPyConnection:
        if self.conn is None:
            self.start()
        return self.conn

    # ========== Reads ==========

    async def list_tables(self) -> List[str]:
        result = self._connection().execute("""
            SELECT table_name FROM information_schema.tables
            WHERE table_schema = 'main'
            ORDER BY table_name
        """).fetchall()
        return [row[0] for row in result]

    async def fetch_table(self, name: str) -> ColumnarTable:
        conn = self._connection()
        try:
            cursor = conn.execute(f"SELECT * FROM {_quote(name)} ORDER BY id")
        except duckdb.CatalogException as exc:
            raise PersistenceError(f"Table not found: {name}") from exc
        columns = [desc[0] for desc in cursor.description]
        rows = cursor.fetchall()
        return {col: [row[idx] for row in rows] for idx, col in enumerate(columns)}

    def _column_names(self, table: str) -> List[str]:
        result = self._connection().execute("""
            SELECT column_name FROM information_schema.columns
            WHERE table_schema = 'main' AND table_name = ?
            ORDER BY ordinal_position
        """, (table,)).fetchall()
        if not result:
            raise PersistenceError(f"Table not found: {table}")
        return [row[0] for row in result]

    # ========== Actions ==========

    def _add_table(self, table: str, columns: Sequence[Dict[str, Any]]) -> str:
        col_defs = ["id BIGINT PRIMARY KEY"]
        for col in columns:
            col_type = COLUMN_TYPES.get(col.get("type", "Any"), "VARCHAR")
            col_defs.append(f"{_quote(col['id'])} {col_type}")
        try:
            self._connection().execute(f"CREATE TABLE {_quote(table)} ({', '.join(col_defs)})")
        except duckdb.CatalogException as exc:
            raise PersistenceError(f"Table already exists: {table}") from exc
        logger.debug(f"Created table {table} with {len(columns)} column(s)")
        return table

    def _add_column(self, table: str, col_id: str, col_info: Optional[Dict[str, Any]] = None) -> str:
        if col_id in self._column_names(table):
            return col_id
        col_type = COLUMN_TYPES.get((col_info or {}).get("type", "Any"), "VARCHAR")
        self._connection().execute(
            f"ALTER TABLE {_quote(table)} ADD COLUMN {_quote(col_id)} {col_type}"
        )
        return col_id

    def _ensure_columns(self, table: str, fields: Dict[str, Any]) -> None:
        existing = set(self._column_names(table))
        for col in fields:
            if col not in existing:
                self._add_column(table, col)

    def _add_record(self, table: str, row_id: Optional[int], fields: Dict[str, Any]) -> int:
        conn = self._connection()
        self._ensure_columns(table, fields)
        if row_id is None:
            row_id = conn.execute(
                f"SELECT COALESCE(MAX(id), 0) + 1 FROM {_quote(table)}"
            ).fetchone()[0]
        cols = ["id", *fields.keys()]
        placeholders = ", ".join("?" for _ in cols)
        col_sql = ", ".join(_quote(c) for c in cols)
        try:
            conn.execute(
                f"INSERT INTO {_quote(table)} ({col_sql}) VALUES ({placeholders})",
                [row_id, *fields.values()],
            )
        except duckdb.ConstraintException as exc:
            raise PersistenceError(f"Row {row_id} already exists in {table}") from exc
        return int(row_id)

    def _update_record(self, table: str, row_id: int, fields: Dict[str, Any]) -> None:
        if not fields:
            return
        conn = self._connection()
        self._ensure_columns(table, fields)
        exists = conn.execute(
            f"SELECT id FROM {_quote(table)} WHERE id = ?", (row_id,)
        ).fetchone()
        if not exists:
            raise PersistenceError(f"Row {row_id} not found in {table}")
        assignments = ", ".join(f"{_quote(col)} = ?" for col in fields)
        conn.execute(
            f"UPDATE {_quote(table)} SET {assignments} WHERE id = ?",
            [*fields.values(), row_id],
        )

    def _remove_record(self, table: str, row_id: int) -> None:
        self._connection().execute(f"DELETE FROM {_quote(table)} WHERE id = ?", (row_id,))
