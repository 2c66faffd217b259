"""
Airtable table source.

Records are read with the ``list records`` endpoint, following the ``offset``
cursor until the table is exhausted. Airtable does not order records by
recency, so the source is paginated but never incremental: every batch sync
rewrites the store.
"""

from __future__ import annotations

import os
from logging import LoggerAdapter
from typing import Any, Dict, Mapping, Optional, Sequence
from urllib.parse import quote

import httpx

from ...config import DEFAULT_HTTP_RETRIES, DEFAULT_HTTP_TIMEOUT
from ...core.errors import ConfigurationError, ValidationError
from ...core.logging import bind_extra, get_logger
from ...schemas.records import AirtableRecord
from ...sync.filters import CollectionFilter, FilterFields
from ...sync.normalize import NormalizationPipeline, PydanticValidator
from ...sync.pagination import Page
from .base import BaseAPIClient

AIRTABLE_API_BASE_URL = "https://api.airtable.com/v0"
PAGE_SIZE = 100

AIRTABLE_FILTER_FIELDS = FilterFields(
    date="created_time",
    categories=(),
    authors=(),
    text=("fields",),
    url=None,
)


def shape_record(record: Mapping[str, Any], context: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "id": context["id"],
        "created_time": record.get("createdTime"),
        "fields": dict(record.get("fields") or {}),
    }


class AirtableClient(BaseAPIClient):
    """Client for the Airtable REST API."""

    def __init__(
        self,
        token: str,
        *,
        base_url: str = AIRTABLE_API_BASE_URL,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        retries: int = DEFAULT_HTTP_RETRIES,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
            "User-Agent": "content-loaders",
        }
        super().__init__(base_url=base_url, timeout=timeout, default_headers=headers, retries=retries, transport=transport)

    def list_records(
        self,
        base: str,
        table: str,
        *,
        offset: Optional[str] = None,
        query: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"pageSize": PAGE_SIZE}
        params.update({key: value for key, value in (query or {}).items() if value is not None})
        if offset:
            params["offset"] = offset
        path = f"/{quote(base, safe='')}/{quote(table, safe='')}"
        data = self._get_json(path, params=params)
        if not isinstance(data, dict) or not isinstance(data.get("records"), list):
            raise ValidationError("Unexpected payload for Airtable list records", source_url=self._full_url(path))
        return data


class AirtableSource:
    """Offset-paginated Airtable table."""

    incremental = False
    newest_first = False

    def __init__(
        self,
        base: str,
        table: str,
        *,
        token: Optional[str] = None,
        view: Optional[str] = None,
        filter_by_formula: Optional[str] = None,
        fields: Optional[Sequence[str]] = None,
        max_records: Optional[int] = None,
        name: Optional[str] = None,
        client: Optional[AirtableClient] = None,
        logger: Optional[LoggerAdapter] = None,
    ) -> None:
        if not base or not table:
            raise ConfigurationError("Airtable sources require both 'base' and 'table'")
        resolved_token = token or os.getenv("AIRTABLE_TOKEN")
        if client is None and not resolved_token:
            raise ConfigurationError(
                "Missing Airtable token. Set it in the AIRTABLE_TOKEN environment variable or pass it as an option.",
                source_url=f"{AIRTABLE_API_BASE_URL}/{base}/{table}",
            )
        self.base = base
        self.table = table
        self.query: Dict[str, Any] = {
            "view": view,
            "filterByFormula": filter_by_formula,
            "fields[]": list(fields) if fields else None,
            "maxRecords": max_records,
        }
        self.client = client or AirtableClient(resolved_token or "")
        self.name = name or f"airtable-{table}"
        self.logger = bind_extra(logger or get_logger(f"{__name__}.{self.__class__.__name__}"), source=self.name)
        self.pipeline = NormalizationPipeline(
            id_fields=("id",),
            validator=PydanticValidator(AirtableRecord),
            shape=shape_record,
            render_html=lambda record: "",
            logger=self.logger,
        )
        self.filter_fields = AIRTABLE_FILTER_FIELDS

    @property
    def source_url(self) -> str:
        return f"{self.client.base_url.rstrip('/')}/{self.base}/{self.table}"

    def fetch_page(self, cursor: Optional[str], collection_filter: Optional[CollectionFilter]) -> Page:
        query = dict(self.query)
        if collection_filter is not None and collection_filter.option("formula"):
            query["filterByFormula"] = collection_filter.option("formula")
        data = self.client.list_records(self.base, self.table, offset=cursor, query=query)
        return Page(records=data["records"], next_cursor=data.get("offset") or None)

    def watermark_key(self, record: Mapping[str, Any]) -> Optional[str]:
        return record.get("id")


__all__ = ["AIRTABLE_FILTER_FIELDS", "AirtableClient", "AirtableSource", "shape_record"]
