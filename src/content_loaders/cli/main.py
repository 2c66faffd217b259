"""
Primary Typer application wiring for the content loaders CLI.

Commands cover the source catalogue (``sources list`` / ``sources describe``),
batch synchronisation into the per-source JSON stores (``sync``), live
filtered queries (``query``) and single-entry lookups (``lookup``).
"""

from __future__ import annotations

import json
from datetime import datetime
from importlib import resources
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Optional

import typer

from ..core import (
    ConfigurationError,
    ErrorRecord,
    ExecutionContext,
    ExecutionOptions,
    LoaderError,
    RegistryLoadError,
    SourceDescriptor,
    SourceRegistry,
    SourceType,
    configure_logging,
)
from ..services import SyncServices
from ..sync import CollectionFilter, EntryFilter, NormalizedItem, NotFound, SyncResult

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Incremental content synchronisation for feeds, Bluesky, YouTube, Airtable and CSV sources.\n\n"
        "Command groups:\n"
        "- sources: inspect the source catalogue.\n"
        "- sync: batch-sync sources into their local stores.\n"
        "- query / lookup: run live filtered queries and single-entry lookups."
    ),
)
sources_app = typer.Typer(help="Inspect the catalogue of configured sources.")
app.add_typer(sources_app, name="sources")

EXIT_ERROR = 1
EXIT_NOT_FOUND = 3


def _load_registry(registry_file: Optional[Path]) -> SourceRegistry:
    if registry_file:
        return SourceRegistry.from_yaml(registry_file)
    sources_pkg = "content_loaders.resources.sources"
    with resources.as_file(resources.files(sources_pkg) / "default.yaml") as resolved:
        return SourceRegistry.from_yaml(resolved)


def _parse_datetime(value: Optional[str], option: str) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise typer.BadParameter(f"{option} must be an ISO 8601 date or datetime, got '{value}'.") from None


def _parse_options(values: Optional[List[str]]) -> Dict[str, str]:
    options: Dict[str, str] = {}
    for entry in values or []:
        if "=" not in entry:
            raise typer.BadParameter(f"Option '{entry}' must use key=value format.")
        key, value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise typer.BadParameter(f"Option '{entry}' is missing a key.")
        options[key] = value
    return options


def _item_payload(item: NormalizedItem) -> Dict[str, Any]:
    return {"id": item.id, "data": item.as_data(), "rendered": {"html": item.rendered_html}}


def _echo_json(payload: Any, *, err: bool = False) -> None:
    typer.echo(json.dumps(payload, ensure_ascii=False, indent=2, default=str), err=err)


def _fail(error: ErrorRecord) -> NoReturn:
    _echo_json({"error": error.as_dict()}, err=True)
    raise typer.Exit(code=EXIT_ERROR)


@app.callback(invoke_without_command=False)
def main(
    ctx: typer.Context,
    registry_file: Optional[Path] = typer.Option(
        None,
        "--registry",
        "-r",
        help="Override source catalogue YAML file.",
        exists=True,
        dir_okay=False,
        readable=True,
    ),
    cache_dir: Optional[Path] = typer.Option(
        None,
        "--cache-dir",
        help="Directory holding one JSON store per source.",
        file_okay=False,
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level (DEBUG, INFO, WARNING...)."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Emit execution plans without contacting sources."),
    max_workers: int = typer.Option(4, "--max-workers", min=1, help="Sources synced concurrently by 'sync --all'."),
) -> None:
    """
    Configure global execution context.

    The callback stores the resolved execution context in Typer's state so child
    commands can retrieve it via :class:`typer.Context`.
    """

    if log_level:
        configure_logging(log_level, force=True)
    try:
        registry = _load_registry(registry_file)
    except RegistryLoadError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=EXIT_ERROR) from exc

    context = ExecutionContext.build_default(
        cache_dir=cache_dir,
        options=ExecutionOptions(dry_run=dry_run, max_workers=max_workers),
    )
    state = ctx.ensure_object(dict)
    state["registry"] = registry
    state["context"] = context


def _require_registry(ctx: typer.Context) -> SourceRegistry:
    state = ctx.ensure_object(dict)
    registry = state.get("registry")
    if not isinstance(registry, SourceRegistry):
        raise typer.Exit(code=2)
    return registry


def _require_services(ctx: typer.Context) -> SyncServices:
    state = ctx.ensure_object(dict)
    context = state.get("context")
    if not isinstance(context, ExecutionContext):
        raise typer.Exit(code=2)
    return SyncServices(registry=_require_registry(ctx), context=context)


@sources_app.command("list")
def sources_list(
    ctx: typer.Context,
    source_type: Optional[str] = typer.Option(None, "--type", "-t", help="Filter by source type."),
) -> None:
    """List registered sources with basic metadata."""

    registry = _require_registry(ctx)
    type_filter: Optional[SourceType] = None
    if source_type:
        try:
            type_filter = SourceType(source_type.lower())
        except ValueError:
            raise typer.BadParameter(f"Unknown type '{source_type}'. Expected one of: {', '.join(item.value for item in SourceType)}.") from None

    entries = registry.list(source_type=type_filter)
    if not entries:
        typer.echo("No sources match the requested filters.")
        raise typer.Exit(code=0)

    header = f"{'ID':<22} {'Type':<9} {'Status':<8} Name"
    typer.echo(header)
    typer.echo("-" * len(header))
    for entry in entries:
        legacy = " (legacy)" if entry.legacy else ""
        typer.echo(f"{entry.source_id:<22} {entry.source_type.value:<9} {entry.status.value:<8} {entry.name}{legacy}")


@sources_app.command("describe")
def sources_describe(
    ctx: typer.Context,
    source_id: str = typer.Argument(..., help="Identifier of the source."),
    output_json: bool = typer.Option(False, "--json", help="Emit descriptor in JSON format."),
) -> None:
    """Show detailed metadata for a specific source."""

    registry = _require_registry(ctx)
    descriptor: Optional[SourceDescriptor] = registry.get(source_id)
    if not descriptor:
        typer.echo(f"Source '{source_id}' is not registered.", err=True)
        raise typer.Exit(code=EXIT_ERROR)

    if output_json:
        typer.echo(descriptor.to_json())
        return

    typer.echo(f"ID: {descriptor.source_id}")
    typer.echo(f"Name: {descriptor.name}")
    typer.echo(f"Type: {descriptor.source_type.value}")
    typer.echo(f"Status: {descriptor.status.value}")
    typer.echo(f"Legacy output: {descriptor.legacy}")
    if descriptor.description:
        typer.echo(f"Description: {descriptor.description}")
    for key, value in descriptor.options.items():
        typer.echo(f"Option {key}: {value}")
    if descriptor.tags:
        typer.echo(f"Tags: {', '.join(descriptor.tags)}")


def _summary(source_id: str, result: SyncResult) -> Dict[str, Any]:
    return {
        "source": source_id,
        "items": len(result.items),
        "not_modified": result.not_modified,
        "watermark": result.watermark,
    }


@app.command("sync")
def sync_command(
    ctx: typer.Context,
    source_ids: Optional[List[str]] = typer.Argument(None, help="Sources to sync. Omit together with --all to sync everything."),
    sync_all: bool = typer.Option(False, "--all", help="Sync every active source concurrently."),
) -> None:
    """Batch-sync sources into their local JSON stores."""

    services = _require_services(ctx)
    if not source_ids and not sync_all:
        raise typer.BadParameter("Pass one or more source ids or --all.")

    if services.context.options.dry_run:
        try:
            _echo_json(services.plan(list(source_ids or [])))
        except ConfigurationError as exc:
            _fail(exc.to_record())
        return

    if sync_all:
        reports = services.sync_all()
        _echo_json([report.as_dict() for report in reports])
        if any(not report.ok for report in reports):
            raise typer.Exit(code=EXIT_ERROR)
        return

    summaries = []
    for source_id in source_ids or []:
        try:
            result = services.sync_source(source_id)
        except LoaderError as exc:
            _fail(exc.to_record())
        summaries.append(_summary(source_id, result))
    _echo_json(summaries)


@app.command("query")
def query_command(
    ctx: typer.Context,
    source_id: str = typer.Argument(..., help="Source to query."),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", min=1, help="Maximum number of items."),
    since: Optional[str] = typer.Option(None, "--since", help="Only items at or after this ISO 8601 timestamp."),
    until: Optional[str] = typer.Option(None, "--until", help="Only items at or before this ISO 8601 timestamp."),
    category: Optional[str] = typer.Option(None, "--category", help="Case-insensitive category substring."),
    author: Optional[str] = typer.Option(None, "--author", help="Case-insensitive author substring."),
    search: Optional[str] = typer.Option(None, "--search", "-q", help="Case-insensitive title/description substring."),
    option: Optional[List[str]] = typer.Option(None, "--option", "-o", help="Source-specific key=value refinement. Can be repeated."),
) -> None:
    """Run a live filtered query without touching the local store."""

    services = _require_services(ctx)
    collection_filter = CollectionFilter(
        limit=limit,
        since=_parse_datetime(since, "--since"),
        until=_parse_datetime(until, "--until"),
        category=category,
        author=author,
        search=search,
        options=_parse_options(option),
    )
    try:
        result = services.query_source(source_id, collection_filter)
    except ConfigurationError as exc:
        _fail(exc.to_record())
    if result.error is not None:
        _fail(result.error)
    _echo_json([_item_payload(item) for item in result.items])


@app.command("lookup")
def lookup_command(
    ctx: typer.Context,
    source_id: str = typer.Argument(..., help="Source to search."),
    entry_id: Optional[str] = typer.Option(None, "--id", help="Entry identifier."),
    url: Optional[str] = typer.Option(None, "--url", help="Entry permalink."),
) -> None:
    """Look up a single entry by id or URL."""

    services = _require_services(ctx)
    try:
        outcome = services.lookup_entry(source_id, EntryFilter(id=entry_id, url=url))
    except ConfigurationError as exc:
        _fail(exc.to_record())
    if isinstance(outcome, ErrorRecord):
        _fail(outcome)
    if isinstance(outcome, NotFound):
        typer.echo(f"No entry matches in '{source_id}'.", err=True)
        raise typer.Exit(code=EXIT_NOT_FOUND)
    _echo_json(_item_payload(outcome))


__all__ = ["app"]
