from __future__ import annotations

import json
from unittest.mock import patch

from pydantic import BaseModel
from typer.testing import CliRunner

from content_loaders.cli.main import app
from content_loaders.core.errors import ErrorRecord
from content_loaders.services import SourceRunReport
from content_loaders.sync import NOT_FOUND, NormalizedItem, SyncResult


class _Entry(BaseModel):
    id: str
    title: str


def _item(identifier: str, title: str) -> NormalizedItem:
    return NormalizedItem(id=identifier, data=_Entry(id=identifier, title=title), rendered_html=f"<p>{title}</p>")


def invoke(cli_runner: CliRunner, args: list[str]):
    return cli_runner.invoke(app, args)


def _base(registry_file, tmp_path) -> list[str]:
    return ["--registry", str(registry_file), "--cache-dir", str(tmp_path / "stores")]


def test_sources_list(cli_runner, registry_file, tmp_path):
    result = invoke(cli_runner, [*_base(registry_file, tmp_path), "sources", "list"])

    assert result.exit_code == 0
    assert "example-feed" in result.stdout
    assert "paused" in result.stdout


def test_sources_list_by_type(cli_runner, registry_file, tmp_path):
    result = invoke(cli_runner, [*_base(registry_file, tmp_path), "sources", "list", "--type", "csv"])

    assert result.exit_code == 0
    assert "example-csv" in result.stdout
    assert "example-feed" not in result.stdout

    invalid = invoke(cli_runner, [*_base(registry_file, tmp_path), "sources", "list", "--type", "gopher"])
    assert invalid.exit_code != 0


def test_sources_list_uses_packaged_catalogue(cli_runner, tmp_path):
    result = invoke(cli_runner, ["--cache-dir", str(tmp_path / "stores"), "sources", "list"])

    assert result.exit_code == 0
    assert "python-insider" in result.stdout


def test_sources_describe_json(cli_runner, registry_file, tmp_path):
    result = invoke(cli_runner, [*_base(registry_file, tmp_path), "sources", "describe", "example-feed", "--json"])

    assert result.exit_code == 0
    assert json.loads(result.stdout)["options"] == {"url": "https://example.org/feed.xml"}

    missing = invoke(cli_runner, [*_base(registry_file, tmp_path), "sources", "describe", "nope"])
    assert missing.exit_code == 1


def test_sync_dry_run_prints_plan(cli_runner, registry_file, tmp_path):
    result = invoke(cli_runner, [*_base(registry_file, tmp_path), "--dry-run", "sync", "--all"])

    assert result.exit_code == 0
    plan = json.loads(result.stdout)
    assert [entry["source"] for entry in plan] == ["example-feed", "example-csv"]


def test_sync_requires_ids_or_all(cli_runner, registry_file, tmp_path):
    result = invoke(cli_runner, [*_base(registry_file, tmp_path), "sync"])

    assert result.exit_code != 0


def test_sync_single_source_summary(cli_runner, registry_file, tmp_path):
    with patch(
        "content_loaders.cli.main.SyncServices.sync_source",
        return_value=SyncResult(items=[_item("a", "A")], watermark=None),
    ):
        result = invoke(cli_runner, [*_base(registry_file, tmp_path), "sync", "example-feed"])

    assert result.exit_code == 0
    assert json.loads(result.stdout) == [{"source": "example-feed", "items": 1, "not_modified": False, "watermark": None}]


def test_sync_all_exits_non_zero_on_failures(cli_runner, registry_file, tmp_path):
    reports = [
        SourceRunReport("example-feed", result=SyncResult(not_modified=True)),
        SourceRunReport("example-csv", error=ErrorRecord(kind="validation", source_url="catalogue.csv", message="File not found: catalogue.csv")),
    ]
    with patch("content_loaders.cli.main.SyncServices.sync_all", return_value=reports):
        result = invoke(cli_runner, [*_base(registry_file, tmp_path), "sync", "--all"])

    assert result.exit_code == 1
    assert "File not found" in result.stdout


def test_sync_unknown_source_fails(cli_runner, registry_file, tmp_path):
    result = invoke(cli_runner, [*_base(registry_file, tmp_path), "sync", "missing"])

    assert result.exit_code == 1
    assert "not registered" in result.output


def test_query_outputs_items_and_forwards_filter(cli_runner, registry_file, tmp_path):
    with patch(
        "content_loaders.cli.main.SyncServices.query_source",
        return_value=SyncResult(items=[_item("a", "Alpha")]),
    ) as query_source:
        result = invoke(
            cli_runner,
            [
                *_base(registry_file, tmp_path),
                "query",
                "example-feed",
                "--limit",
                "5",
                "--since",
                "2024-01-01",
                "--search",
                "alpha",
                "--option",
                "identifier=alice.example.org",
            ],
        )

    assert result.exit_code == 0
    assert json.loads(result.stdout) == [{"id": "a", "data": {"id": "a", "title": "Alpha"}, "rendered": {"html": "<p>Alpha</p>"}}]
    source_id, collection_filter = query_source.call_args.args
    assert source_id == "example-feed"
    assert collection_filter.limit == 5
    assert collection_filter.since.year == 2024
    assert collection_filter.search == "alpha"
    assert collection_filter.options == {"identifier": "alice.example.org"}


def test_query_reports_errors(cli_runner, registry_file, tmp_path):
    error = ErrorRecord(kind="transport", source_url="https://example.org/feed.xml", message="Network error while calling GET")
    with patch("content_loaders.cli.main.SyncServices.query_source", return_value=SyncResult(error=error)):
        result = invoke(cli_runner, [*_base(registry_file, tmp_path), "query", "example-feed"])

    assert result.exit_code == 1
    assert "Network error" in result.output


def test_query_rejects_malformed_options(cli_runner, registry_file, tmp_path):
    bad_option = invoke(cli_runner, [*_base(registry_file, tmp_path), "query", "example-feed", "--option", "oops"])
    bad_date = invoke(cli_runner, [*_base(registry_file, tmp_path), "query", "example-feed", "--since", "yesterday"])

    assert bad_option.exit_code != 0
    assert bad_date.exit_code != 0


def test_lookup_exit_codes(cli_runner, registry_file, tmp_path):
    args = [*_base(registry_file, tmp_path), "lookup", "example-feed", "--id", "a"]

    with patch("content_loaders.cli.main.SyncServices.lookup_entry", return_value=_item("a", "Alpha")):
        found = invoke(cli_runner, args)
    with patch("content_loaders.cli.main.SyncServices.lookup_entry", return_value=NOT_FOUND):
        missing = invoke(cli_runner, args)
    with patch(
        "content_loaders.cli.main.SyncServices.lookup_entry",
        return_value=ErrorRecord(kind="validation", source_url=None, message="Entry lookup requires an 'id' or 'url' filter"),
    ):
        failed = invoke(cli_runner, args)

    assert found.exit_code == 0
    assert json.loads(found.stdout)["id"] == "a"
    assert missing.exit_code == 3
    assert failed.exit_code == 1
