from __future__ import annotations

from typing import Any, Dict, List, Mapping

import requests

from app.core.models import Row
from app.storage.tables import TableReadError, TableStore, TableWriteError, check_rows, check_table_name


class PostgrestTableStore(TableStore):
    """Table access over a PostgREST endpoint, the API a Supabase backend exposes."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        key_column: str = "id",
        key_columns: Mapping[str, str] | None = None,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("PostgREST base URL is required")
        self.base_url = base_url.rstrip("/")
        self.key_column = key_column
        self.key_columns: Dict[str, str] = dict(key_columns or {})
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Accept": "application/json",
            }
        )

    def list_rows(self, table: str) -> List[Row]:
        response = self._call("GET", table, TableReadError, params={"select": "*"})
        try:
            rows = response.json()
        except ValueError as exc:
            raise TableReadError(table, "response is not JSON") from exc
        return check_rows(table, rows)

    def delete_all(self, table: str) -> None:
        # PostgREST refuses unfiltered deletes
        self._call(
            "DELETE",
            table,
            TableWriteError,
            params={self.key_columns.get(table, self.key_column): "not.is.null"},
            headers={"Prefer": "return=minimal"},
        )

    def insert_rows(self, table: str, rows: List[Row]) -> None:
        if not rows:
            return
        self._call(
            "POST",
            table,
            TableWriteError,
            json=rows,
            headers={"Prefer": "return=minimal", "Content-Type": "application/json"},
        )

    def _call(self, method: str, table: str, error_cls: type, **kwargs: Any) -> requests.Response:
        url = f"{self.base_url}/{check_table_name(table)}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise error_cls(table, f"request failed: {exc}") from exc
        if response.status_code >= 400:
            raise error_cls(table, f"HTTP {response.status_code}: {_error_message(response)}")
        return response


def _error_message(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return response.text[:200]
