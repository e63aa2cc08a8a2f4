from __future__ import annotations

import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterable, Mapping
from zipfile import BadZipFile

from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from .constants import DATA_XLSX_PATH, ROW_HEADERS, STUDENTS_SHEET
from .errors import StoreError

log = logging.getLogger(__name__)

Row = dict[str, str]


def _matches(row: Mapping[str, Any], match: Mapping[str, Any]) -> bool:
    return all(str(row.get(k, "") or "") == str(v) for k, v in match.items())


class RowStore:
    """Capability set every backend offers the reconciler.

    Rows are flat ``dict[str, str]``. ``search`` returns ``[]`` when nothing
    matches; ``update`` and ``delete`` return the number of rows touched and
    treat zero matches as a no-op.
    """

    # False when update/delete can only match on a single column.
    supports_composite_match = True

    def __init__(self, headers: Iterable[str] = ROW_HEADERS):
        self.headers = list(headers)

    def fetch_all(self) -> list[Row]:
        raise NotImplementedError

    def search(self, match: Mapping[str, Any]) -> list[Row]:
        raise NotImplementedError

    def insert(self, row: Mapping[str, Any]) -> None:
        raise NotImplementedError

    def update(self, match: Mapping[str, Any], fields: Mapping[str, Any]) -> int:
        raise NotImplementedError

    def delete(self, match: Mapping[str, Any]) -> int:
        raise NotImplementedError

    def close(self) -> None:
        pass

    # ---------------- Shared argument checks ----------------
    def _check_row(self, row: Mapping[str, Any]) -> Row:
        if not str(row.get("id", "") or "").strip():
            raise StoreError("Row is missing its 'id' identity field")
        self._check_columns(row)
        return {h: "" if row.get(h) is None else str(row.get(h)) for h in self.headers}

    def _check_columns(self, fields: Mapping[str, Any]) -> None:
        unknown = sorted(set(fields) - set(self.headers))
        if unknown:
            raise StoreError(f"Unknown column(s): {', '.join(unknown)}")

    def _check_match(self, match: Mapping[str, Any], write: bool) -> None:
        if not match:
            raise StoreError("An empty match would select every row")
        self._check_columns(match)
        if write and len(match) > 1 and not self.supports_composite_match:
            raise StoreError(f"{type(self).__name__} can only match writes on one column")


class MemoryRowStore(RowStore):
    """Rows kept in process memory, in insertion order."""

    def __init__(self, headers: Iterable[str] = ROW_HEADERS, rows: Iterable[Mapping[str, Any]] = ()):
        super().__init__(headers)
        self._rows: list[Row] = []
        for r in rows:
            self._rows.append(self._check_row(r))

    def fetch_all(self) -> list[Row]:
        return [dict(r) for r in self._rows]

    def search(self, match: Mapping[str, Any]) -> list[Row]:
        self._check_match(match, write=False)
        return [dict(r) for r in self._rows if _matches(r, match)]

    def insert(self, row: Mapping[str, Any]) -> None:
        self._rows.append(self._check_row(row))

    def update(self, match: Mapping[str, Any], fields: Mapping[str, Any]) -> int:
        self._check_match(match, write=True)
        self._check_columns(fields)
        count = 0
        for r in self._rows:
            if _matches(r, match):
                r.update({k: "" if v is None else str(v) for k, v in fields.items()})
                count += 1
        return count

    def delete(self, match: Mapping[str, Any]) -> int:
        self._check_match(match, write=True)
        kept = [r for r in self._rows if not _matches(r, match)]
        count = len(self._rows) - len(kept)
        self._rows = kept
        return count


def cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        if value.time() == datetime.min.time():
            return value.date().isoformat()
        return value.isoformat(timespec="seconds")
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _ensure_sheet_headers(ws, headers: list[str]) -> list[str]:
    # If the sheet is empty (or has an empty first row), ensure row 1 contains headers.
    if ws.max_row < 1 or ws.max_column < 1 or all(c.value is None for c in ws[1]):
        if ws.max_row >= 2:
            row2_vals = [ws.cell(row=2, column=c).value for c in range(1, len(headers) + 1)]
            if row2_vals == headers:
                ws.delete_rows(1, 1)
                return headers
        for col, h in enumerate(headers, start=1):
            ws.cell(row=1, column=col, value=h)
        return list(headers)

    existing = [cell.value for cell in ws[1]]
    # Sheet already holds data: never reorder, only append missing columns.
    for h in headers:
        if h not in existing:
            ws.cell(row=1, column=len(existing) + 1, value=h)
            existing.append(h)
    return existing


def _cleanup_sheet(ws, headers: list[str]) -> None:
    """Remove empty rows and duplicated header rows after the header."""

    if ws.max_row <= 1:
        return

    # Delete bottom-up to avoid skipping rows.
    for row in range(ws.max_row, 1, -1):
        vals = [ws.cell(row=row, column=c).value for c in range(1, len(headers) + 1)]
        if vals == headers:
            ws.delete_rows(row, 1)
            continue
        if all(v is None or v == "" for v in vals):
            ws.delete_rows(row, 1)


class ExcelRowStore(RowStore):
    """One worksheet of an ``.xlsx`` workbook used as a flat row table."""

    def __init__(
        self,
        path: Path = DATA_XLSX_PATH,
        sheet_name: str = STUDENTS_SHEET,
        headers: Iterable[str] = ROW_HEADERS,
    ):
        super().__init__(headers)
        self.path = Path(path)
        self.sheet_name = sheet_name
        self._wb = None

    def invalidate_cache(self) -> None:
        """Force the next operation to re-load the workbook from disk."""
        self._wb = None

    def ensure_workbook(self) -> None:
        try:
            if self.path.exists():
                wb = load_workbook(self.path)
            else:
                wb = Workbook()
                # remove default sheet
                wb.remove(wb.active)
        except (OSError, InvalidFileException, BadZipFile) as e:
            raise StoreError(f"Cannot open workbook {self.path}: {e}") from e

        if self.sheet_name not in wb.sheetnames:
            ws = wb.create_sheet(self.sheet_name)
        else:
            ws = wb[self.sheet_name]
        _ensure_sheet_headers(ws, self.headers)
        _cleanup_sheet(ws, self.headers)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._save(wb)
        log.info("Workbook ready at %s (sheet %s)", self.path, self.sheet_name)

    def _load(self):
        if self._wb is not None:
            return self._wb
        if not self.path.exists():
            self.ensure_workbook()
            return self._wb
        try:
            self._wb = load_workbook(self.path)
        except (OSError, InvalidFileException, BadZipFile) as e:
            raise StoreError(f"Cannot open workbook {self.path}: {e}") from e
        if self.sheet_name not in self._wb.sheetnames:
            self.ensure_workbook()
        return self._wb

    def _save(self, wb) -> None:
        try:
            wb.save(self.path)
        except OSError as e:
            # The in-memory copy may now differ from disk; reload next time.
            self._wb = None
            raise StoreError(f"Cannot save workbook {self.path}: {e}") from e
        self._wb = wb

    def _sheet(self):
        wb = self._load()
        return wb, wb[self.sheet_name]

    @staticmethod
    def _sheet_headers(ws) -> list[str]:
        return [c.value for c in ws[1]]

    @staticmethod
    def _sheet_to_dicts(ws) -> list[Row]:
        headers = [c.value for c in ws[1]]
        rows: list[Row] = []
        for r in ws.iter_rows(min_row=2, values_only=True):
            if all(v is None for v in r):
                continue
            d = {headers[i]: cell_text(r[i]) for i in range(min(len(headers), len(r))) if headers[i]}
            rows.append(d)
        return rows

    def _matching_row_numbers(self, ws, match: Mapping[str, Any]) -> list[int]:
        headers = self._sheet_headers(ws)
        found: list[int] = []
        for idx, r in enumerate(ws.iter_rows(min_row=2, values_only=True), start=2):
            if all(v is None for v in r):
                continue
            d = {headers[i]: cell_text(r[i]) for i in range(min(len(headers), len(r))) if headers[i]}
            if _matches(d, match):
                found.append(idx)
        return found

    def fetch_all(self) -> list[Row]:
        _, ws = self._sheet()
        return self._sheet_to_dicts(ws)

    def search(self, match: Mapping[str, Any]) -> list[Row]:
        self._check_match(match, write=False)
        return [r for r in self.fetch_all() if _matches(r, match)]

    def insert(self, row: Mapping[str, Any]) -> None:
        clean = self._check_row(row)
        wb, ws = self._sheet()
        headers = _ensure_sheet_headers(ws, self.headers)
        ws.append([clean.get(h, "") if h else "" for h in headers])
        self._save(wb)

    def update(self, match: Mapping[str, Any], fields: Mapping[str, Any]) -> int:
        self._check_match(match, write=True)
        self._check_columns(fields)
        wb, ws = self._sheet()
        headers = _ensure_sheet_headers(ws, self.headers)
        targets = self._matching_row_numbers(ws, match)
        if not targets:
            return 0
        for row in targets:
            for col, h in enumerate(headers, start=1):
                if h in fields:
                    v = fields[h]
                    ws.cell(row=row, column=col, value="" if v is None else str(v))
        self._save(wb)
        return len(targets)

    def delete(self, match: Mapping[str, Any]) -> int:
        self._check_match(match, write=True)
        wb, ws = self._sheet()
        targets = self._matching_row_numbers(ws, match)
        if not targets:
            return 0
        # Delete bottom-up so earlier row numbers stay valid.
        for row in reversed(targets):
            ws.delete_rows(row, 1)
        self._save(wb)
        return len(targets)
