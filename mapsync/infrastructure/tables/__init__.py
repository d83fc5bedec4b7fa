"""Host table adapters."""

from mapsync.infrastructure.tables.adapter import (
    BaseTableAdapter,
    InMemoryTableAdapter,
    columns_to_rows,
    find_row,
    rows_to_columns,
)
from mapsync.infrastructure.tables.duckdb_adapter import DuckDBTableAdapter

__all__ = [
    "BaseTableAdapter",
    "DuckDBTableAdapter",
    "InMemoryTableAdapter",
    "columns_to_rows",
    "find_row",
    "rows_to_columns",
]
