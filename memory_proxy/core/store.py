"""
Durable store adapters.

The store is an ordered list of rows with a header row at position 0. Row
indices passed to the mutating calls are 0-based positions within the live
store at call time, never stable identifiers. Ranges are half-open.

update_cell and delete_rows take an optional expected_id: the ID cell at the
target position must still hold it, otherwise StaleRowPosition is raised and
nothing is written.
"""

import json
import sqlite3
from abc import ABC, abstractmethod
from typing import List, Optional

import httpx

from .config import (
    DB_PATH,
    MEMORY_SHEET_ID,
    SHEET_NAME,
    SHEETS_API_BASE,
    SPREADSHEET_ID,
    UPSTREAM_TIMEOUT_SEC,
    get_store_backend,
)
from .credentials import CredentialProvider, EnvCredentialProvider
from .db import get_db, init_db, health_check
from .errors import AuthError, NotFound, StaleRowPosition, UpstreamUnavailable
from .schema import COLUMNS, parse_record_id
from util.logging import logger


def column_letter(index: int) -> str:
    """Convert a 0-based column index to A1 notation (0 -> A, 26 -> AA)."""
    letters = ""
    index += 1
    while index > 0:
        index, remainder = divmod(index - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


def _check_range(start: int, end: int):
    if start < 0 or end <= start:
        raise ValueError(f"Invalid row range [{start}, {end})")


def _check_row_id(cells: Optional[List], row_index: int, expected_id: int):
    actual = parse_record_id(cells[0]) if cells else None
    if actual != expected_id:
        raise StaleRowPosition(
            f"Row {row_index} holds record {actual}, expected {expected_id}"
        )


class StoreAdapter(ABC):
    """Uniform interface to the durable store."""

    def __init__(self, columns: List[str] = None):
        self.columns = list(columns or COLUMNS)

    def column_index(self, column: str) -> int:
        try:
            return self.columns.index(column)
        except ValueError:
            raise ValueError(f"Unknown column '{column}'. Schema: {self.columns}")

    @abstractmethod
    def read_all(self) -> List[List[str]]:
        """Return every row in store order, header row included."""
        pass

    @abstractmethod
    def append(self, row: List) -> None:
        """Append one row at the end of the store."""
        pass

    @abstractmethod
    def update_cell(self, row_index: int, column: str, value, expected_id: int = None) -> None:
        """Overwrite a single cell."""
        pass

    @abstractmethod
    def delete_rows(self, start_index: int, end_index: int, expected_id: int = None) -> None:
        """Remove rows [start_index, end_index); later rows shift up.

        expected_id is checked against the first row of the range.
        """
        pass

    @abstractmethod
    def clear_rows(self, start_index: int, end_index: int) -> None:
        """Blank the values of rows [start_index, end_index) without removing them."""
        pass

    def health(self) -> bool:
        """Check whether the store can be read."""
        try:
            self.read_all()
            return True
        except (UpstreamUnavailable, AuthError):
            return False

    def close(self) -> None:
        pass


class SqliteSheetStore(StoreAdapter):
    """Local-first store keeping the sheet as ordered JSON rows in SQLite."""

    def __init__(self, db_path: str = None, columns: List[str] = None, timeout: float = None):
        super().__init__(columns)
        self.db_path = db_path or DB_PATH
        self.timeout = timeout or UPSTREAM_TIMEOUT_SEC

        try:
            init_db(self.db_path)
            self._ensure_header()
        except sqlite3.Error as e:
            logger.log_upstream_failure("init", e, {"db_path": self.db_path})
            raise UpstreamUnavailable(f"Could not open store at {self.db_path}: {e}") from e

    def _ensure_header(self):
        with get_db(self.db_path, self.timeout) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) FROM sheet_rows")
            if cursor.fetchone()[0] == 0:
                cursor.execute("INSERT INTO sheet_rows (cells) VALUES (?)", (json.dumps(self.columns),))
                conn.commit()

    def _seqs_in_range(self, cursor, start: int, end: int) -> List[int]:
        cursor.execute(
            "SELECT seq FROM sheet_rows ORDER BY seq LIMIT ? OFFSET ?",
            (end - start, start)
        )
        return [row[0] for row in cursor.fetchall()]

    def read_all(self) -> List[List[str]]:
        try:
            with get_db(self.db_path, self.timeout) as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT cells FROM sheet_rows ORDER BY seq")
                return [json.loads(row[0]) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            logger.log_upstream_failure("read_all", e)
            raise UpstreamUnavailable(f"Store read failed: {e}") from e

    def append(self, row: List) -> None:
        cells = ["" if v is None else str(v) for v in row]
        try:
            with get_db(self.db_path, self.timeout) as conn:
                conn.execute("INSERT INTO sheet_rows (cells) VALUES (?)", (json.dumps(cells),))
                conn.commit()
        except sqlite3.Error as e:
            logger.log_upstream_failure("append", e)
            raise UpstreamUnavailable(f"Store append failed: {e}") from e

    def update_cell(self, row_index: int, column: str, value, expected_id: int = None) -> None:
        col = self.column_index(column)
        try:
            with get_db(self.db_path, self.timeout) as conn:
                # Write lock up front so the ID check and the write see the same rows
                conn.execute("BEGIN IMMEDIATE")
                cursor = conn.cursor()
                cursor.execute(
                    "SELECT seq, cells FROM sheet_rows ORDER BY seq LIMIT 1 OFFSET ?",
                    (row_index,)
                )
                found = cursor.fetchone()
                if not found:
                    if expected_id is not None:
                        raise StaleRowPosition(f"Row position {row_index} no longer exists")
                    raise NotFound(f"Row position {row_index} no longer exists")

                seq, cells_json = found
                cells = json.loads(cells_json)
                if expected_id is not None:
                    _check_row_id(cells, row_index, expected_id)
                cells.extend([""] * (len(self.columns) - len(cells)))
                cells[col] = "" if value is None else str(value)

                cursor.execute("UPDATE sheet_rows SET cells = ? WHERE seq = ?", (json.dumps(cells), seq))
                conn.commit()
        except sqlite3.Error as e:
            logger.log_upstream_failure("update_cell", e, {"row_index": row_index, "column": column})
            raise UpstreamUnavailable(f"Store update failed: {e}") from e

    def delete_rows(self, start_index: int, end_index: int, expected_id: int = None) -> None:
        _check_range(start_index, end_index)
        try:
            with get_db(self.db_path, self.timeout) as conn:
                conn.execute("BEGIN IMMEDIATE")
                cursor = conn.cursor()
                cursor.execute(
                    "SELECT seq, cells FROM sheet_rows ORDER BY seq LIMIT ? OFFSET ?",
                    (end_index - start_index, start_index)
                )
                found = cursor.fetchall()
                if expected_id is not None:
                    _check_row_id(json.loads(found[0][1]) if found else None, start_index, expected_id)

                seqs = [row[0] for row in found]
                cursor.executemany("DELETE FROM sheet_rows WHERE seq = ?", [(s,) for s in seqs])
                conn.commit()
        except sqlite3.Error as e:
            logger.log_upstream_failure("delete_rows", e, {"start": start_index, "end": end_index})
            raise UpstreamUnavailable(f"Store delete failed: {e}") from e

    def clear_rows(self, start_index: int, end_index: int) -> None:
        _check_range(start_index, end_index)
        blank = json.dumps([""] * len(self.columns))
        try:
            with get_db(self.db_path, self.timeout) as conn:
                cursor = conn.cursor()
                seqs = self._seqs_in_range(cursor, start_index, end_index)
                cursor.executemany("UPDATE sheet_rows SET cells = ? WHERE seq = ?", [(blank, s) for s in seqs])
                conn.commit()
        except sqlite3.Error as e:
            logger.log_upstream_failure("clear_rows", e, {"start": start_index, "end": end_index})
            raise UpstreamUnavailable(f"Store clear failed: {e}") from e

    def health(self) -> bool:
        return health_check(self.db_path)


class SheetsStore(StoreAdapter):
    """Google Sheets v4 REST backend.

    The bearer token is fetched once per session from the credential provider
    and dropped when the API rejects it, so the next call opens a new session.
    """

    def __init__(
        self,
        credential_provider: CredentialProvider,
        spreadsheet_id: str = None,
        sheet_name: str = None,
        sheet_gid: int = None,
        columns: List[str] = None,
        client: Optional[httpx.Client] = None,
        base_url: str = None,
        timeout: float = None,
    ):
        super().__init__(columns)
        self.credential_provider = credential_provider
        self.spreadsheet_id = spreadsheet_id or SPREADSHEET_ID
        self.sheet_name = sheet_name or SHEET_NAME
        self.sheet_gid = MEMORY_SHEET_ID if sheet_gid is None else sheet_gid
        self.timeout = timeout or UPSTREAM_TIMEOUT_SEC

        self._owns_client = client is None
        self.client = client or httpx.Client(base_url=base_url or SHEETS_API_BASE, timeout=self.timeout)
        self._token: Optional[str] = None
        self._header_ready = False

    @property
    def full_range(self) -> str:
        return f"{self.sheet_name}!A:{column_letter(len(self.columns) - 1)}"

    def _values_path(self, a1_range: str) -> str:
        return f"/v4/spreadsheets/{self.spreadsheet_id}/values/{a1_range}"

    def _auth_headers(self) -> dict:
        if self._token is None:
            self._token = self.credential_provider.get_credentials()
        return {"Authorization": f"Bearer {self._token}"}

    def _request(self, operation: str, method: str, path: str, **kwargs) -> httpx.Response:
        headers = self._auth_headers()
        try:
            response = self.client.request(method, path, headers=headers, timeout=self.timeout, **kwargs)
        except httpx.TimeoutException as e:
            logger.log_upstream_failure(operation, e)
            raise UpstreamUnavailable(f"Sheets {operation} timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            logger.log_upstream_failure(operation, e)
            raise UpstreamUnavailable(f"Sheets {operation} failed: {e}") from e

        if response.status_code in (401, 403):
            self._token = None
            error = AuthError(f"Sheets rejected credentials ({response.status_code})")
            logger.log_upstream_failure(operation, error)
            raise error

        if response.status_code >= 400:
            error = UpstreamUnavailable(f"Sheets {operation} returned {response.status_code}: {response.text[:200]}")
            logger.log_upstream_failure(operation, error)
            raise error

        return response

    def _fetch_rows(self) -> List[List[str]]:
        response = self._request("read_all", "GET", self._values_path(self.full_range))
        return response.json().get("values", [])

    def _is_header(self, row: List) -> bool:
        cells = [str(c).strip().lower() for c in row]
        return cells[:len(self.columns)] == [c.lower() for c in self.columns]

    def _ensure_header(self, rows: List[List[str]] = None) -> List[List[str]]:
        """Make sure row 0 is the header, writing it on first use if missing.

        Returns the rows as they stand after the header is in place.
        """
        if self._header_ready:
            return rows
        if rows is None:
            rows = self._fetch_rows()

        if not rows or not self._is_header(rows[0]):
            if rows:
                # Data already starts at row 0; open a row above it
                self._request(
                    "ensure_header",
                    "POST",
                    f"/v4/spreadsheets/{self.spreadsheet_id}:batchUpdate",
                    json={
                        "requests": [
                            {
                                "insertDimension": {
                                    "range": {
                                        "sheetId": self.sheet_gid,
                                        "dimension": "ROWS",
                                        "startIndex": 0,
                                        "endIndex": 1,
                                    },
                                    "inheritFromBefore": False,
                                }
                            }
                        ]
                    },
                )
            header_range = f"{self.sheet_name}!A1:{column_letter(len(self.columns) - 1)}1"
            self._request(
                "ensure_header",
                "PUT",
                self._values_path(header_range),
                params={"valueInputOption": "RAW"},
                json={"values": [list(self.columns)]},
            )
            logger.info(f"Wrote header row to sheet '{self.sheet_name}'")
            rows = [list(self.columns)] + rows

        self._header_ready = True
        return rows

    def _check_id_cell(self, row_index: int, expected_id: int):
        response = self._request("check_row", "GET", self._values_path(f"{self.sheet_name}!A{row_index + 1}"))
        values = response.json().get("values", [])
        _check_row_id(values[0] if values else None, row_index, expected_id)

    def read_all(self) -> List[List[str]]:
        return self._ensure_header(self._fetch_rows())

    def append(self, row: List) -> None:
        if not self._header_ready:
            self._ensure_header()
        self._request(
            "append",
            "POST",
            self._values_path(self.full_range) + ":append",
            params={"valueInputOption": "RAW", "insertDataOption": "INSERT_ROWS"},
            json={"values": [row]},
        )

    def update_cell(self, row_index: int, column: str, value, expected_id: int = None) -> None:
        # A1 rows are 1-based
        cell = f"{self.sheet_name}!{column_letter(self.column_index(column))}{row_index + 1}"
        if expected_id is not None:
            # Narrows, but cannot close, the window between check and write
            self._check_id_cell(row_index, expected_id)
        self._request(
            "update_cell",
            "PUT",
            self._values_path(cell),
            params={"valueInputOption": "RAW"},
            json={"values": [[value]]},
        )

    def delete_rows(self, start_index: int, end_index: int, expected_id: int = None) -> None:
        _check_range(start_index, end_index)
        if expected_id is not None:
            self._check_id_cell(start_index, expected_id)
        self._request(
            "delete_rows",
            "POST",
            f"/v4/spreadsheets/{self.spreadsheet_id}:batchUpdate",
            json={
                "requests": [
                    {
                        "deleteDimension": {
                            "range": {
                                "sheetId": self.sheet_gid,
                                "dimension": "ROWS",
                                "startIndex": start_index,
                                "endIndex": end_index,
                            }
                        }
                    }
                ]
            },
        )

    def clear_rows(self, start_index: int, end_index: int) -> None:
        _check_range(start_index, end_index)
        last_col = column_letter(len(self.columns) - 1)
        a1_range = f"{self.sheet_name}!A{start_index + 1}:{last_col}{end_index}"
        self._request("clear_rows", "POST", self._values_path(a1_range) + ":clear")

    def close(self) -> None:
        if self._owns_client:
            self.client.close()


def build_store(backend: str = None) -> StoreAdapter:
    """Create the store adapter selected by STORE_BACKEND."""
    backend = backend or get_store_backend()

    if backend == "sqlite":
        return SqliteSheetStore()
    elif backend == "sheets":
        return SheetsStore(credential_provider=EnvCredentialProvider())
    else:
        raise ValueError(f"Unknown store backend: {backend}")
