from __future__ import annotations

from dataclasses import dataclass
import json
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.table import Table

from qoverlay.channel.server_http import run_http_server
from qoverlay.channel.server_stdio import run_stdio_server
from qoverlay.config import default_config_path, load_config, write_default_config
from qoverlay.errors import OverlayError
from qoverlay.models import ViewMode
from qoverlay.result import Result
from qoverlay.service import OverlayService
from qoverlay.util.logging import setup_logging, use_color

app = typer.Typer(help="qoverlay: trash and hide overlay for a local media catalog")

# Commands whose stdout is machine-read; the logo would corrupt it.
_QUIET_COMMANDS = {"serve", "thumb"}


@dataclass(slots=True)
class AppState:
    service: OverlayService
    console: Console
    config_path: Path


def _print_logo(console: Console, show_logo: bool) -> None:
    if not show_logo:
        return
    logo = (
        "  ██████   ██████  ██    ██ ██      \n"
        " ██    ██ ██    ██ ██    ██ ██      \n"
        " ██ ▄▄ ██ ██    ██  ██  ██  ██      \n"
        "  ██████   ██████    ████   ███████ \n"
        "    ▀▀                              "
    )
    console.print()
    console.print(f"[bold cyan]{logo}[/bold cyan]")
    console.print("[dim]trash • hidden • albums • thumbnails[/dim]")
    console.print()


def _state(ctx: typer.Context) -> AppState:
    st = ctx.obj
    if not isinstance(st, AppState):
        raise RuntimeError("app state not initialized")
    return st


def _unwrap(console: Console, label: str, result: Result[Any]) -> Any:
    if not result.ok:
        console.print(f"[red]{label} failed:[/red] {result.message}")
        raise typer.Exit(1)
    return result.value


def _emit_obj(console: Console, obj: dict, json_out: bool) -> None:
    if json_out:
        typer.echo(json.dumps(obj, indent=2))
        return
    for k, v in obj.items():
        console.print(f"[bold]{k}[/bold]: {v}")


def _view_mode(trashed: bool, hidden: bool) -> ViewMode:
    if trashed:
        return ViewMode.TRASHED_ONLY
    if hidden:
        return ViewMode.HIDDEN_ONLY
    return ViewMode.NORMAL


@app.callback()
def main(
    ctx: typer.Context,
    config: Annotated[Path | None, typer.Option("--config", help="Config YAML path")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Verbose logging")] = False,
) -> None:
    setup_logging(verbose)
    cfg_path = config.expanduser() if config else default_config_path()
    if not cfg_path.exists():
        write_default_config(cfg_path)
    cfg = load_config(cfg_path)
    color_on = use_color()
    console = Console(color_system="auto" if color_on else None, force_terminal=color_on)
    try:
        svc = OverlayService(cfg)
    except OverlayError as exc:
        console.print(f"[red]startup failed:[/red] {exc}")
        raise typer.Exit(1) from exc
    if ctx.invoked_subcommand not in _QUIET_COMMANDS:
        _print_logo(console, show_logo=bool(getattr(cfg.ui, "show_logo", True)))
    ctx.obj = AppState(
        service=svc,
        console=console,
        config_path=cfg_path,
    )


@app.command("init-config")
def init_config(
    ctx: typer.Context,
    path: Annotated[Path | None, typer.Option("--path", help="Write config to this path")] = None,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    written = write_default_config(path.expanduser() if path else None)
    if json_out:
        typer.echo(json.dumps({"config_path": str(written)}, indent=2))
        return
    st.console.print(f"[green]config:[/green] {written}")


@app.command("update")
def update_cmd(
    ctx: typer.Context,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    if not st.service.config.catalog.roots:
        st.console.print("[yellow]no library roots configured; add catalog.roots to the config[/yellow]")
    try:
        stats = st.service.update()
    except OverlayError as exc:
        st.console.print(f"[red]update failed:[/red] {exc}")
        raise typer.Exit(1) from exc
    _emit_obj(st.console, stats, json_out)


@app.command("status")
def status_cmd(
    ctx: typer.Context,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    try:
        status = st.service.status()
    except OverlayError as exc:
        st.console.print(f"[red]status failed:[/red] {exc}")
        raise typer.Exit(1) from exc
    _emit_obj(st.console, status, json_out)


@app.command("ls")
def ls_cmd(
    ctx: typer.Context,
    album: Annotated[str | None, typer.Option("--album", help="Bucket id to list")] = None,
    media_type: Annotated[str | None, typer.Option("--type", help="image|video")] = None,
    limit: Annotated[int | None, typer.Option("--limit", "-n")] = None,
    offset: Annotated[int, typer.Option("--offset")] = 0,
    search: Annotated[str | None, typer.Option("--search", "-q", help="Case-insensitive name filter")] = None,
    trashed: Annotated[bool, typer.Option("--trashed", help="List the recycle bin")] = False,
    hidden: Annotated[bool, typer.Option("--hidden", help="List hidden items")] = False,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    rows = _unwrap(
        st.console,
        "ls",
        st.service.list_assets(
            album_id=album,
            media_kind=media_type,
            limit=limit,
            offset=offset,
            view_mode=_view_mode(trashed, hidden),
            search_query=search,
        ),
    )
    if json_out:
        typer.echo(json.dumps(rows, indent=2))
        return
    if not rows:
        st.console.print("[dim]no results[/dim]")
        return
    table = Table(title="media")
    table.add_column("id")
    table.add_column("type")
    table.add_column("name")
    table.add_column("size", justify="right")
    table.add_column("dims")
    table.add_column("uri")
    if trashed:
        table.add_column("deletedAt")
    for row in rows:
        dims = f"{row['width']}x{row['height']}" if row.get("width") and row.get("height") else ""
        cells = [
            str(row["id"]),
            str(row["type"]),
            str(row["name"]),
            str(row["size"]),
            dims,
            str(row["uri"]),
        ]
        if trashed:
            cells.append(str((row.get("metadata") or {}).get("deletedAt", "")))
        table.add_row(*cells)
    st.console.print(table)


@app.command("albums")
def albums_cmd(
    ctx: typer.Context,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    rows = _unwrap(st.console, "albums", st.service.list_albums())
    if json_out:
        typer.echo(json.dumps(rows, indent=2))
        return
    table = Table(title="albums")
    table.add_column("id")
    table.add_column("name")
    table.add_column("type")
    table.add_column("count", justify="right")
    table.add_column("cover")
    for row in rows:
        table.add_row(
            str(row["id"]),
            str(row["name"]),
            str(row["type"]),
            str(row["mediaCount"]),
            str(row.get("coverUri") or ""),
        )
    st.console.print(table)


def _mutate(ctx: typer.Context, label: str, result: Result[bool], done: str) -> None:
    st = _state(ctx)
    value = _unwrap(st.console, label, result)
    if value:
        st.console.print(f"[green]{done}[/green]")
    else:
        st.console.print(f"[yellow]{label}: catalog did not delete every item[/yellow]")
        raise typer.Exit(1)


@app.command("trash")
def trash_cmd(ctx: typer.Context, media_id: str) -> None:
    _mutate(ctx, "trash", _state(ctx).service.trash(media_id), f"moved {media_id} to recycle bin")


@app.command("restore")
def restore_cmd(ctx: typer.Context, media_id: str) -> None:
    _mutate(ctx, "restore", _state(ctx).service.restore(media_id), f"restored {media_id}")


@app.command("purge")
def purge_cmd(ctx: typer.Context, media_id: str) -> None:
    _mutate(ctx, "purge", _state(ctx).service.purge(media_id), f"deleted {media_id}")


@app.command("empty-trash")
def empty_trash_cmd(ctx: typer.Context) -> None:
    _mutate(ctx, "empty-trash", _state(ctx).service.empty_trash(), "recycle bin emptied")


@app.command("hide")
def hide_cmd(ctx: typer.Context, media_id: str) -> None:
    _mutate(ctx, "hide", _state(ctx).service.hide(media_id), f"hid {media_id}")


@app.command("unhide")
def unhide_cmd(ctx: typer.Context, media_id: str) -> None:
    _mutate(ctx, "unhide", _state(ctx).service.unhide(media_id), f"unhid {media_id}")


@app.command("thumb")
def thumb_cmd(
    ctx: typer.Context,
    uri: Annotated[str, typer.Argument(help="Content URI or absolute path")],
    out: Annotated[Path, typer.Option("--out", "-o", help="Write the JPEG here")],
    width: Annotated[int, typer.Option("--width")] = 200,
    height: Annotated[int, typer.Option("--height")] = 200,
) -> None:
    st = _state(ctx)
    data = _unwrap(st.console, "thumb", st.service.thumbnail(uri, width=width, height=height))
    out.expanduser().write_bytes(data)
    typer.echo(str(out))


@app.command("serve")
def serve_cmd(
    ctx: typer.Context,
    http: Annotated[bool, typer.Option("--http", help="Use HTTP transport")] = False,
    host: Annotated[str, typer.Option("--host")] = "127.0.0.1",
    port: Annotated[int, typer.Option("--port")] = 8282,
) -> None:
    st = _state(ctx)
    if http:
        code = run_http_server(st.service, host=host, port=port)
        raise typer.Exit(code)

    code = run_stdio_server(st.service)
    raise typer.Exit(code)


if __name__ == "__main__":
    app()
