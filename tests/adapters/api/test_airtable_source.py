from __future__ import annotations

import httpx
import pytest

from content_loaders.adapters.api.airtable import AirtableClient, AirtableSource
from content_loaders.core.context import LoaderContext
from content_loaders.core.errors import ConfigurationError
from content_loaders.core.stores import InMemoryEntryStore, InMemoryMetaStore
from content_loaders.sync.filters import CollectionFilter, EntryFilter
from content_loaders.sync.orchestrator import SyncMode, SyncOrchestrator

PAGES = {
    None: {
        "records": [
            {"id": "rec1", "createdTime": "2024-01-01T00:00:00.000Z", "fields": {"Name": "Alpha", "Seats": 3}},
            {"id": "rec2", "createdTime": "2024-02-01T00:00:00.000Z", "fields": {"Name": "Beta"}},
        ],
        "offset": "itr1/rec2",
    },
    "itr1/rec2": {
        "records": [{"id": "rec3", "createdTime": "2024-03-01T00:00:00.000Z", "fields": {"Name": "Gamma"}}],
    },
}


class _AirtableApi:
    def __init__(self):
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.headers.get("Authorization") != "Bearer pat-test":
            return httpx.Response(401, json={"error": {"type": "AUTHENTICATION_REQUIRED", "message": "Authentication required"}})
        return httpx.Response(200, json=PAGES[request.url.params.get("offset")])


def _source(server, token="pat-test", **kwargs) -> AirtableSource:
    client = AirtableClient(token, transport=httpx.MockTransport(server))
    return AirtableSource("appBase", "Events", client=client, **kwargs)


def test_missing_token_or_table():
    with pytest.raises(ConfigurationError):
        AirtableSource("appBase", "Events")
    with pytest.raises(ConfigurationError):
        AirtableSource("appBase", "", token="pat-test")


def test_token_from_environment(monkeypatch):
    monkeypatch.setenv("AIRTABLE_TOKEN", "pat-env")

    source = AirtableSource("appBase", "Events")

    assert source.client.default_headers["Authorization"] == "Bearer pat-env"


def test_batch_sync_follows_offsets_and_rewrites_store():
    server = _AirtableApi()
    context = LoaderContext(store=InMemoryEntryStore(), meta=InMemoryMetaStore())
    context.store.set("recOld", {"fields": {}})

    result = SyncOrchestrator(_source(server, view="Grid view", fields=["Name"]), context).sync(SyncMode.BATCH)

    assert [item.id for item in result.items] == ["rec1", "rec2", "rec3"]
    assert sorted(context.store.keys()) == ["rec1", "rec2", "rec3"]
    assert context.store.get("rec1").data["fields"] == {"Name": "Alpha", "Seats": 3}
    assert context.meta.get("last-fetched") is None
    first = server.requests[0]
    assert first.url.path == "/v0/appBase/Events"
    assert first.url.params["view"] == "Grid view"
    assert first.url.params.get_list("fields[]") == ["Name"]
    assert first.url.params["pageSize"] == "100"
    assert server.requests[1].url.params["offset"] == "itr1/rec2"


def test_live_query_with_formula_option_and_search():
    server = _AirtableApi()

    result = SyncOrchestrator(_source(server)).sync(
        SyncMode.LIVE,
        CollectionFilter(search="gamma", options={"formula": "{Name} != ''"}),
    )

    assert [item.id for item in result.items] == ["rec3"]
    assert server.requests[0].url.params["filterByFormula"] == "{Name} != ''"


def test_lookup_scans_records():
    orchestrator = SyncOrchestrator(_source(_AirtableApi()))

    assert orchestrator.lookup(EntryFilter(id="rec2")).data.fields == {"Name": "Beta"}


def test_authentication_errors_are_reported():
    result = SyncOrchestrator(_source(_AirtableApi(), token="wrong")).sync(SyncMode.LIVE)

    assert result.error.kind == "http-status"
    assert result.error.details["status_code"] == 401
    assert result.error.details["api_error"] == "Authentication required"
