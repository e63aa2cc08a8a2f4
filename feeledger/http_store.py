from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping
from urllib.parse import quote

import httpx

from .constants import ROW_HEADERS, STUDENTS_SHEET
from .errors import StoreError
from .storage import Row, RowStore, cell_text

log = logging.getLogger(__name__)


class HttpRowStore(RowStore):
    """Row store behind a small spreadsheet-over-HTTP service.

    Endpoints::

        GET    /rows?sheet=<name>
        GET    /rows/search?<field>=<value>&...
        POST   /rows
        PATCH  /rows/match/<field>/<value>
        DELETE /rows/match/<field>/<value>

    Writes match on a single column only.
    """

    supports_composite_match = False

    def __init__(
        self,
        base_url: str,
        sheet_name: str = STUDENTS_SHEET,
        headers: Iterable[str] = ROW_HEADERS,
        token: str = "",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        super().__init__(headers)
        if not base_url:
            raise StoreError("No row store URL configured")
        self.sheet_name = sheet_name
        http_headers = {"Accept": "application/json"}
        if token:
            http_headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=http_headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, url: str, *, empty_on_404: bool = False, **kwargs: Any) -> Any:
        params = dict(kwargs.pop("params", None) or {})
        params.setdefault("sheet", self.sheet_name)
        try:
            resp = self._client.request(method, url, params=params, **kwargs)
        except httpx.HTTPError as e:
            log.error("%s %s failed: %s", method, url, e)
            raise StoreError(f"Row store unreachable: {e}") from e

        if resp.status_code == 404 and empty_on_404:
            # Some sheet services answer "no rows matched" with a 404.
            return []
        if resp.is_error:
            raise StoreError(f"Row store answered {resp.status_code} to {method} {url}: {_error_text(resp)}")
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise StoreError(f"Row store sent invalid JSON for {method} {url}") from e

    @staticmethod
    def _rows(payload: Any) -> list[Row]:
        if isinstance(payload, dict):
            payload = payload.get("data", payload.get("rows", []))
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise StoreError("Row store returned something other than a list of rows")
        return [{str(k): cell_text(v) for k, v in r.items()} for r in payload if isinstance(r, dict)]

    @staticmethod
    def _match_path(match: Mapping[str, Any]) -> str:
        ((field, value),) = match.items()
        return f"/rows/match/{quote(str(field), safe='')}/{quote(str(value), safe='')}"

    def fetch_all(self) -> list[Row]:
        return self._rows(self._request("GET", "/rows", empty_on_404=True))

    def search(self, match: Mapping[str, Any]) -> list[Row]:
        self._check_match(match, write=False)
        params = {k: str(v) for k, v in match.items()}
        return self._rows(self._request("GET", "/rows/search", params=params, empty_on_404=True))

    def insert(self, row: Mapping[str, Any]) -> None:
        clean = self._check_row(row)
        self._request("POST", "/rows", json=clean)

    def update(self, match: Mapping[str, Any], fields: Mapping[str, Any]) -> int:
        self._check_match(match, write=True)
        self._check_columns(fields)
        body = {k: "" if v is None else str(v) for k, v in fields.items()}
        payload = self._request("PATCH", self._match_path(match), json=body)
        count = _count(payload, "updated")
        if count is None:
            # The match column is never part of ``fields``, so a search still sees the rows.
            count = len(self.search(match))
        return count

    def delete(self, match: Mapping[str, Any]) -> int:
        self._check_match(match, write=True)
        before = len(self.search(match))
        payload = self._request("DELETE", self._match_path(match))
        count = _count(payload, "deleted")
        return before if count is None else count


def _count(payload: Any, key: str) -> int | None:
    if isinstance(payload, dict) and key in payload:
        try:
            return int(payload[key])
        except (TypeError, ValueError):
            return None
    return None


def _error_text(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(data, dict):
        return str(data.get("error") or data.get("message") or data)
    return str(data)[:200]
