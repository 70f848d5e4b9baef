"""graphtransfer CLI entry point."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

import typer
from tqdm import tqdm

from graphtransfer import __version__
from graphtransfer.config.settings import Settings, SettingsManager, SettingsNotFound
from graphtransfer.core.client import ApiClient
from graphtransfer.core.client_factory import build_api_client, configure_logging
from graphtransfer.core.exceptions import SessionExpiredError, TransferError
from graphtransfer.paging.models import PagingState
from graphtransfer.paging.page_fetcher import (
    PageFetcher,
    compose,
    with_headers,
    with_query,
)
from graphtransfer.paging.page_iterator import PageIterator
from graphtransfer.upload.chunked_upload import ChunkedUploadEngine
from graphtransfer.upload.models import UploadResult, UploadSession
from graphtransfer.upload.session_client import UploadSessionClient

app = typer.Typer(
    add_completion=False,
    help="Upload large files and page through collections of a Graph-style API.",
)


def _version_callback(value: bool) -> bool:
    if value:
        typer.echo(__version__)
        raise typer.Exit()
    return value


@app.callback()
def callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show the graphtransfer version and exit.",
        callback=_version_callback,
        is_eager=True,
        is_flag=True,
    ),
    settings_file: Path | None = typer.Option(
        None, "--settings", help="Settings YAML file to use instead of the defaults."
    ),
    debug: bool = typer.Option(
        False, "--debug", help="Log every request and response."
    ),
) -> None:
    """Handle global CLI options."""
    ctx.obj = {"settings_file": settings_file, "debug": debug}


def _load_settings(ctx: typer.Context, **overrides: Any) -> Settings:
    options = ctx.obj or {}
    if options.get("debug"):
        overrides["debug_log"] = True
    try:
        settings = SettingsManager(settings_path=options.get("settings_file")).load(
            overrides
        )
    except (SettingsNotFound, ValueError) as exc:
        typer.echo(f"Could not load settings: {exc}", err=True)
        raise typer.Exit(1) from exc
    configure_logging(logging.INFO if settings.debug_log else logging.WARNING)
    return settings


def _build_client(settings: Settings) -> ApiClient:
    if not settings.access_token:
        typer.echo(
            "No access token configured. Set GRAPHTRANSFER_ACCESS_TOKEN or "
            "access_token in the settings file.",
            err=True,
        )
        raise typer.Exit(1)
    return build_api_client(settings)


def _run_upload(
    transfer: Callable[..., UploadResult],
    session: UploadSession,
    file: Path,
    settings: Settings,
) -> None:
    total_length = file.stat().st_size
    with file.open("rb") as stream, tqdm(
        total=total_length, unit="B", unit_scale=True, desc=file.name
    ) as pbar:

        def on_progress(uploaded: int) -> None:
            pbar.update(uploaded - pbar.n)

        try:
            result = transfer(
                session,
                stream,
                slice_size=settings.slice_size,
                progress_callback=on_progress,
            )
        except SessionExpiredError as exc:
            typer.echo(f"Upload session expired: {exc}", err=True)
            raise typer.Exit(1) from exc
        except TransferError as exc:
            typer.echo(f"Error uploading: {exc}", err=True)
            typer.echo(
                f"Resume with: graphtransfer resume {file} "
                f"--upload-url '{session.upload_url}'",
                err=True,
            )
            raise typer.Exit(1) from exc

    if not result.succeeded:
        typer.echo("Upload failed", err=True)
        raise typer.Exit(1)
    item_id = (result.created_resource or {}).get("id")
    if item_id:
        typer.echo(f"Upload complete, item ID: {item_id}")
    else:
        typer.echo("Upload complete")


@app.command("upload")
def upload(
    ctx: typer.Context,
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    item_path: str = typer.Argument(..., help="Destination path in the drive."),
    drive_id: str | None = typer.Option(
        None, "--drive-id", help="Drive to upload to (default: your own drive)."
    ),
    slice_size: str | None = typer.Option(
        None, "--slice-size", help="Bytes per slice, e.g. 3200k or 10mb."
    ),
    conflict_behavior: str = typer.Option(
        "replace", "--conflict-behavior", help="replace, rename or fail."
    ),
) -> None:
    """Upload a file to a drive path in resumable slices."""
    settings = _load_settings(ctx, slice_size=slice_size)
    client = _build_client(settings)
    session_client = UploadSessionClient(client, settings.api_url)
    engine = ChunkedUploadEngine(client, settings.max_retries, session_client)
    try:
        ChunkedUploadEngine.validate_slice_size(settings.slice_size)
        session = session_client.create_drive_item_session(
            item_path, drive_id=drive_id, conflict_behavior=conflict_behavior
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--slice-size") from exc
    except TransferError as exc:
        typer.echo(f"Could not create upload session: {exc}", err=True)
        raise typer.Exit(1) from exc
    _run_upload(engine.upload, session, file, settings)


@app.command("resume")
def resume(
    ctx: typer.Context,
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    upload_url: str = typer.Option(
        ..., "--upload-url", help="Upload URL of the interrupted session."
    ),
    slice_size: str | None = typer.Option(
        None, "--slice-size", help="Bytes per slice, e.g. 3200k or 10mb."
    ),
) -> None:
    """Resume an interrupted upload from where the server left off."""
    settings = _load_settings(ctx, slice_size=slice_size)
    client = _build_client(settings)
    try:
        ChunkedUploadEngine.validate_slice_size(settings.slice_size)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--slice-size") from exc
    engine = ChunkedUploadEngine(client, settings.max_retries)
    _run_upload(engine.resume, UploadSession(upload_url=upload_url), file, settings)


def _parse_headers(values: list[str] | None) -> dict[str, str]:
    headers: dict[str, str] = {}
    for value in values or []:
        name, sep, header_value = value.partition(":")
        if not sep or not name.strip():
            raise typer.BadParameter(
                f"Expected 'Name: value', got {value!r}", param_hint="--header"
            )
        headers[name.strip()] = header_value.strip()
    return headers


def _describe(item: Any, fields: list[str]) -> str:
    if not isinstance(item, dict):
        return str(item)
    return "\t".join(str(item.get(field, "")) for field in fields)


@app.command("list")
def list_items(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Collection URL, e.g. .../me/messages."),
    top: int | None = typer.Option(None, "--top", help="Items per page."),
    select: list[str] | None = typer.Option(
        None, "--select", help="Property to select; repeatable."
    ),
    header: list[str] | None = typer.Option(
        None, "--header", help="'Name: value' header for every page; repeatable."
    ),
    pause_after: int | None = typer.Option(
        None, "--pause-after", min=1, help="Pause and resume every N items."
    ),
    field: list[str] | None = typer.Option(
        None, "--field", help="Property to print per item (default: id)."
    ),
) -> None:
    """Print every item of a collection, following continuation links."""
    settings = _load_settings(ctx)
    client = _build_client(settings)
    configurator = compose(
        with_headers(_parse_headers(header)),
        with_query(top=top or settings.page_size, select=select),
    )
    fetcher = PageFetcher(client, configurator)
    fields = field or ["id"]
    count = 0

    def visit(item: Any) -> bool:
        nonlocal count
        typer.echo(_describe(item, fields))
        count += 1
        return pause_after is None or count < pause_after

    try:
        iterator = PageIterator(fetcher.fetch(url), fetcher, visit)
        iterator.iterate()
        while iterator.state is not PagingState.COMPLETE:
            typer.echo(f"Iteration paused after {count} items, resuming...")
            count = 0
            iterator.resume()
    except TransferError as exc:
        typer.echo(f"Error listing {url}: {exc}", err=True)
        raise typer.Exit(1) from exc

    if iterator.delta_link:
        typer.echo(f"Delta link: {iterator.delta_link}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
