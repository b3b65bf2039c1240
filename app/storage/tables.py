from __future__ import annotations

import copy
import json
import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List

from app.core.models import Row

_TABLE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class TableStoreError(RuntimeError):
    def __init__(self, table: str, message: str) -> None:
        super().__init__(f"{table}: {message}")
        self.table = table
        self.message = message


class TableReadError(TableStoreError):
    pass


class TableWriteError(TableStoreError):
    pass


class TableStore(ABC):
    """Uniform read/write access to the live application tables."""

    @abstractmethod
    def list_rows(self, table: str) -> List[Row]:
        raise NotImplementedError

    @abstractmethod
    def delete_all(self, table: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def insert_rows(self, table: str, rows: List[Row]) -> None:
        raise NotImplementedError

    def replace_rows(self, table: str, rows: List[Row]) -> None:
        self.delete_all(table)
        self.insert_rows(table, rows)


def check_table_name(table: str) -> str:
    if not isinstance(table, str) or not _TABLE_NAME_RE.match(table):
        raise TableStoreError(str(table), "invalid table name")
    return table


def check_rows(table: str, rows: object) -> List[Row]:
    if not isinstance(rows, list):
        raise TableReadError(table, "expected a JSON array of rows")
    if not all(isinstance(row, dict) for row in rows):
        raise TableReadError(table, "every row must be a JSON object")
    return rows


class InMemoryTableStore(TableStore):
    def __init__(self, tables: Dict[str, List[Row]] | None = None) -> None:
        self._tables: Dict[str, List[Row]] = copy.deepcopy(tables) if tables else {}

    def list_rows(self, table: str) -> List[Row]:
        return copy.deepcopy(self._tables.get(table, []))

    def delete_all(self, table: str) -> None:
        self._tables[table] = []

    def insert_rows(self, table: str, rows: List[Row]) -> None:
        self._tables.setdefault(table, []).extend(copy.deepcopy(rows))


class JsonFileTableStore(TableStore):
    """One JSON array per table under ``root``; every write replaces the file atomically."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def list_rows(self, table: str) -> List[Row]:
        path = self._path(table)
        if not path.exists():
            return []
        try:
            with path.open("r", encoding="utf-8") as handle:
                rows = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise TableReadError(table, f"cannot read table file: {exc}") from exc
        return check_rows(table, rows)

    def delete_all(self, table: str) -> None:
        self._write(table, [])

    def insert_rows(self, table: str, rows: List[Row]) -> None:
        try:
            current = self.list_rows(table)
        except TableReadError as exc:
            raise TableWriteError(table, exc.message) from exc
        self._write(table, current + list(rows))

    def _path(self, table: str) -> Path:
        return self.root / f"{check_table_name(table)}.json"

    def _write(self, table: str, rows: List[Row]) -> None:
        path = self._path(table)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{table}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(rows, handle, ensure_ascii=False, default=str)
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except (OSError, TypeError, ValueError) as exc:
            raise TableWriteError(table, f"cannot write table file: {exc}") from exc
