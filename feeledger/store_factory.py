from __future__ import annotations

import logging
from pathlib import Path

import httpx

from .constants import ROW_HEADERS
from .http_store import HttpRowStore
from .identity import IdentityScheme, scheme_for
from .settings_store import Settings
from .storage import ExcelRowStore, MemoryRowStore, RowStore

log = logging.getLogger(__name__)

DEFAULT_SCHEMES = {
    "memory": "composite",
    "xlsx": "composite",
    # The HTTP surface only matches writes on one column.
    "http": "derived_key",
}


def build_scheme(settings: Settings) -> IdentityScheme:
    return scheme_for(settings.identity_scheme or DEFAULT_SCHEMES[settings.backend])


def open_store(
    settings: Settings,
    scheme: IdentityScheme,
    transport: httpx.BaseTransport | None = None,
) -> RowStore:
    headers = ROW_HEADERS + [c for c in scheme.extra_columns if c not in ROW_HEADERS]
    log.info("Opening %s row store with %s identity scheme", settings.backend, scheme.name)
    if settings.backend == "memory":
        return MemoryRowStore(headers)
    if settings.backend == "http":
        return HttpRowStore(
            settings.store_url,
            sheet_name=settings.sheet_name,
            headers=headers,
            token=settings.store_token,
            timeout=settings.request_timeout,
            transport=transport,
        )
    store = ExcelRowStore(Path(settings.xlsx_path), sheet_name=settings.sheet_name, headers=headers)
    store.ensure_workbook()
    return store
