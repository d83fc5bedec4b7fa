"""
Table adapter base and in-memory implementation.

Adapters speak the host document's user-action vocabulary
(``AddTable``, ``AddColumn``, ``AddRecord``, ``BulkAddRecord``,
``UpdateRecord``, ``RemoveRecord``) and return tables column-major, the way
the host's ``fetchTable`` does. ``columns_to_rows`` pivots them for use.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from mapsync.core.errors import PersistenceError
from mapsync.core.interfaces import ColumnarTable, UserAction

logger = logging.getLogger(__name__)


# ============================================================================
# Pivot helpers
# ============================================================================


def columns_to_rows(table: ColumnarTable) -> List[Dict[str, Any]]:
    """Pivot ``{col: [v0, v1]}`` into ``[{col: v0}, {col: v1}]``."""
    if not table:
        return []
    length = max((len(values) for values in table.values()), default=0)
    rows: List[Dict[str, Any]] = []
    for idx in range(length):
        rows.append({
            col: (values[idx] if idx < len(values) else None)
            for col, values in table.items()
        })
    return rows


def rows_to_columns(rows: Sequence[Dict[str, Any]]) -> ColumnarTable:
    """Inverse of ``columns_to_rows``; missing cells become None."""
    columns: List[str] = []
    for row in rows:
        for col in row:
            if col not in columns:
                columns.append(col)
    return {col: [row.get(col) for row in rows] for col in columns}


def find_row(table: ColumnarTable, column: str, value: Any) -> Optional[Dict[str, Any]]:
    """First row whose ``column`` equals ``value``, or None."""
    values = table.get(column) or []
    for idx, cell in enumerate(values):
        if cell == value:
            return {col: (vals[idx] if idx < len(vals) else None) for col, vals in table.items()}
    return None


# ============================================================================
# Base adapter
# ============================================================================


class BaseTableAdapter(ABC):
    """Dispatches user actions to storage primitives.

    Subclasses implement the primitives; ``apply_user_actions`` collects each
    action's return value into ``retValues`` like the host API.
    """

    async def apply_user_actions(self, actions: Sequence[UserAction]) -> Dict[str, Any]:
        ret_values: List[Any] = []
        for action in actions:
            if not action:
                raise ValueError("Empty user action")
            name, args = action[0], list(action[1:])
            handler = self._handlers().get(name)
            if handler is None:
                raise ValueError(f"Unsupported user action: {name}")
            ret_values.append(handler(*args))
        return {"retValues": ret_values}

    def _handlers(self):
        return {
            "AddTable": self._add_table,
            "AddColumn": self._add_column,
            "AddRecord": self._add_record,
            "BulkAddRecord": self._bulk_add_record,
            "UpdateRecord": self._update_record,
            "RemoveRecord": self._remove_record,
        }

    def _bulk_add_record(
        self,
        table: str,
        row_ids: Sequence[Optional[int]],
        columns: Dict[str, List[Any]],
    ) -> List[int]:
        new_ids = []
        for idx, row_id in enumerate(row_ids):
            fields = {col: values[idx] for col, values in columns.items()}
            new_ids.append(self._add_record(table, row_id, fields))
        return new_ids

    @abstractmethod
    async def list_tables(self) -> List[str]: ...

    @abstractmethod
    async def fetch_table(self, name: str) -> ColumnarTable: ...

    @abstractmethod
    def _add_table(self, table: str, columns: Sequence[Dict[str, Any]]) -> str: ...

    @abstractmethod
    def _add_column(self, table: str, col_id: str, col_info: Optional[Dict[str, Any]] = None) -> str: ...

    @abstractmethod
    def _add_record(self, table: str, row_id: Optional[int], fields: Dict[str, Any]) -> int: ...

    @abstractmethod
    def _update_record(self, table: str, row_id: int, fields: Dict[str, Any]) -> None: ...

    @abstractmethod
    def _remove_record(self, table: str, row_id: int) -> None: ...


# ============================================================================
# In-memory adapter
# ============================================================================


class InMemoryTableAdapter(BaseTableAdapter):
    """Dict-backed tables. Used by tests and for local-only sessions."""

    def __init__(self) -> None:
        # table -> ordered column ids, table -> row id -> fields
        self._columns: Dict[str, List[str]] = {}
        self._rows: Dict[str, Dict[int, Dict[str, Any]]] = {}
        self.actions_applied: List[UserAction] = []

    async def apply_user_actions(self, actions: Sequence[UserAction]) -> Dict[str, Any]:
        result = await super().apply_user_actions(actions)
        self.actions_applied.extend(actions)
        return result

    async def list_tables(self) -> List[str]:
        return list(self._columns)

    async def fetch_table(self, name: str) -> ColumnarTable:
        self._require(name)
        row_ids = sorted(self._rows[name])
        table: ColumnarTable = {"id": row_ids}
        for col in self._columns[name]:
            table[col] = [self._rows[name][rid].get(col) for rid in row_ids]
        return table

    def _require(self, table: str) -> None:
        if table not in self._columns:
            raise PersistenceError(f"Table not found: {table}")

    def _add_table(self, table: str, columns: Sequence[Dict[str, Any]]) -> str:
        if table in self._columns:
            raise PersistenceError(f"Table already exists: {table}")
        self._columns[table] = [col["id"] for col in columns]
        self._rows[table] = {}
        logger.debug(f"Created table {table} with {len(columns)} column(s)")
        return table

    def _add_column(self, table: str, col_id: str, col_info: Optional[Dict[str, Any]] = None) -> str:
        self._require(table)
        if col_id not in self._columns[table]:
            self._columns[table].append(col_id)
        return col_id

    def _add_record(self, table: str, row_id: Optional[int], fields: Dict[str, Any]) -> int:
        self._require(table)
        rows = self._rows[table]
        new_id = row_id if row_id is not None else max(rows, default=0) + 1
        if new_id in rows:
            raise PersistenceError(f"Row {new_id} already exists in {table}")
        for col in fields:
            if col not in self._columns[table]:
                self._columns[table].append(col)
        rows[new_id] = dict(fields)
        return new_id

    def _update_record(self, table: str, row_id: int, fields: Dict[str, Any]) -> None:
        self._require(table)
        if row_id not in self._rows[table]:
            raise PersistenceError(f"Row {row_id} not found in {table}")
        for col in fields:
            if col not in self._columns[table]:
                self._columns[table].append(col)
        self._rows[table][row_id].update(fields)

    def _remove_record(self, table: str, row_id: int) -> None:
        self._require(table)
        self._rows[table].pop(row_id, None)
