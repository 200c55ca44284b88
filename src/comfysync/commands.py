"""CLI commands for comfysync.

- status/connect
- list <category>
- headers list/set/remove
- config show/set-host
- upload <file>
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .catalog import CATEGORY_DEFINITIONS, ResourceCategory
from .catalog.records import Origin, RecordKind
from .config import Settings, config_path
from .controller import ConnectionController, SyncReport
from .errors import (
    AuthenticationRedirect,
    InferenceClientError,
    NonJsonResponse,
    SyncFailure,
    TransportFailure,
)
from .headers import HeaderParseError, mask_value, parse_headers, valid_headers
from .index import DirectoryModelIndex, IndexEvents
from .urls import is_insecure

console = Console()


def build_controller(settings: Optional[Settings] = None) -> ConnectionController:
    """Controller over the configured models directory, with Local sources loaded."""
    settings = settings or Settings.load()
    events = IndexEvents()
    index = DirectoryModelIndex(Path(settings.models_dir), events) if settings.models_dir else None
    controller = ConnectionController(settings, index=index, events=events)
    controller.reset_local()
    return controller


def _failure_hint(failure: SyncFailure) -> str:
    if isinstance(failure, AuthenticationRedirect):
        return (
            "The server redirected to its access-control login page.\n"
            "Authentication headers are likely missing or incorrect; "
            "see [bold]comfysync headers list[/bold]."
        )
    if isinstance(failure, NonJsonResponse):
        return (
            "The server returned an HTML page instead of JSON.\n"
            "Check that the URL uses HTTPS and that authentication headers are configured."
        )
    if isinstance(failure, TransportFailure):
        return "The server could not be reached. Check the host and that ComfyUI is running."
    return "The server rejected the request."


def _connect(controller: ConnectionController) -> Optional[SyncReport]:
    uri = controller.settings.server_uri()
    console.print(f"Connecting to {uri}...")
    try:
        controller.connect()
    except SyncFailure as e:
        console.print(Panel(f"[red]{e}[/red]\n\n{_failure_hint(e)}", title="Connection failed", border_style="red"))
        return None
    return controller.last_report


# --- Connection Commands ---

def cmd_status(args: argparse.Namespace) -> int:
    """Show configuration and backend reachability."""
    settings = Settings.load()
    uri = settings.server_uri()
    headers = valid_headers(settings.auth_headers)

    lines = [f"[bold]Server:[/bold] {uri}"]
    if is_insecure(uri):
        lines.append("  [yellow]Plain HTTP to a remote host; consider HTTPS[/yellow]")
    lines.append(f"[bold]Auth headers:[/bold] {len(headers)} configured")
    lines.append(f"[bold]Login domain:[/bold] {settings.login_domain}")
    lines.append(f"[bold]Models dir:[/bold] {settings.models_dir or '[dim]not set[/dim]'}")
    lines.append("")

    controller = ConnectionController(settings)
    try:
        controller.connect()
    except SyncFailure as e:
        lines.append(f"[bold]Backend:[/bold] [red]Unavailable[/red] ({e.kind.value})")
    else:
        stats = controller.client.system_stats if controller.client else {}
        system = stats.get("system", {}) if isinstance(stats, dict) else {}
        lines.append("[bold]Backend:[/bold] [green]Connected[/green]")
        if system.get("comfyui_version"):
            lines.append(f"  ComfyUI: {system['comfyui_version']}")
        if system.get("python_version"):
            lines.append(f"  Python: {system['python_version'].split()[0]}")
        ws_url, ws_headers = controller.streaming_endpoint()
        lines.append(f"  Streaming: {ws_url.split('?')[0]} ({len(ws_headers)} auth headers)")
        report = controller.last_report
        if report is not None:
            lines.append(f"  Categories synced: {len(report.synced)}, failed: {len(report.failed)}")
    finally:
        controller.shutdown()

    console.print(Panel("\n".join(lines), title="comfysync status", border_style="cyan"))
    return 0


def cmd_connect(args: argparse.Namespace) -> int:
    """Connect, sync every category and print per-category counts."""
    controller = build_controller()
    try:
        report = _connect(controller)
        if report is None:
            return 1

        table = Table(title="Catalog")
        table.add_column("Category", style="cyan")
        table.add_column("Records", justify="right")
        table.add_column("Changes", justify="right")
        table.add_column("Status")

        for definition in CATEGORY_DEFINITIONS:
            name = definition.category.value
            count = len(controller.catalog.view(definition.category))
            if name in report.synced:
                status = "[green]synced[/green]"
                changes = str(report.synced[name])
            elif name in report.failed:
                status = f"[red]{report.failed[name]}[/red]"
                changes = "-"
            elif name in report.skipped:
                status = "[yellow]skipped[/yellow]"
                changes = "-"
            else:
                status = "[dim]local only[/dim]"
                changes = "-"
            table.add_row(name, str(count), changes, status)

        console.print(table)
        console.print(f"\nTotal changes: {report.total_changes}")
        return 0
    finally:
        controller.shutdown()


def cmd_list(args: argparse.Namespace) -> int:
    """List one category's merged view."""
    try:
        category = ResourceCategory(args.category)
    except ValueError:
        console.print(f"[red]Unknown category:[/red] {args.category}")
        return 1

    controller = build_controller()
    try:
        if args.remote and _connect(controller) is None:
            return 1

        view = controller.catalog.view(category)
        if not len(view):
            console.print("[yellow]No entries.[/yellow]")
            return 0

        table = Table(title=controller.catalog.definitions[category].label)
        table.add_column("Name", style="bold")
        table.add_column("Value", style="cyan")
        table.add_column("Origin")

        for record in view:
            if record.kind in (RecordKind.NONE, RecordKind.DEFAULT):
                origin = "[dim]placeholder[/dim]"
            elif record.origin == Origin.DOWNLOADABLE:
                origin = "[yellow]downloadable[/yellow]"
            elif record.origin == Origin.REMOTE:
                origin = "[green]remote[/green]"
            else:
                origin = "local"
            table.add_row(record.display_name, record.name, origin)

        console.print(table)
        console.print(f"\nTotal: {len(view)} entr{'y' if len(view) == 1 else 'ies'}")
        return 0
    finally:
        controller.shutdown()


def cmd_upload(args: argparse.Namespace) -> int:
    """Upload an input image to the backend."""
    path = Path(args.file)
    if not path.is_file():
        console.print(f"[red]File not found:[/red] {path}")
        return 1

    controller = ConnectionController(Settings.load())
    try:
        if _connect(controller) is None:
            return 1
        try:
            name = controller.upload_input_image(path)
        except InferenceClientError as e:
            console.print(f"[red]Upload failed:[/red] {e}")
            return 1
        console.print(f"[green]Uploaded[/green] {path.name} as [bold]{name}[/bold]")
        return 0
    finally:
        controller.shutdown()


# --- Header Commands ---

def cmd_headers_list(args: argparse.Namespace) -> int:
    settings = Settings.load()
    if not settings.auth_headers:
        console.print("[yellow]No auth headers configured.[/yellow]")
        return 0

    table = Table(title="Auth headers")
    table.add_column("Name", style="cyan")
    table.add_column("Value")
    for name, value in settings.auth_headers.items():
        shown = mask_value(value) if value else "[red](empty, skipped)[/red]"
        table.add_row(name or "[red](empty, skipped)[/red]", shown)
    console.print(table)
    return 0


def cmd_headers_set(args: argparse.Namespace) -> int:
    settings = Settings.load()

    if args.text:
        try:
            parsed = parse_headers(args.text)
        except HeaderParseError as e:
            console.print(f"[red]Invalid headers:[/red] {e}")
            return 1
        settings.auth_headers.update(parsed)
        names = list(parsed)
    else:
        if not args.name or args.value is None:
            console.print("[red]Give NAME VALUE or --text.[/red]")
            return 1
        settings.auth_headers[args.name] = args.value
        names = [args.name]

    path = settings.save()
    console.print(f"[green]Saved[/green] {', '.join(names)} to {path}")
    return 0


def cmd_headers_remove(args: argparse.Namespace) -> int:
    settings = Settings.load()
    if args.name not in settings.auth_headers:
        console.print(f"[yellow]Header not configured:[/yellow] {args.name}")
        return 1
    del settings.auth_headers[args.name]
    settings.save()
    console.print(f"[green]Removed[/green] {args.name}")
    return 0


# --- Config Commands ---

def cmd_config_show(args: argparse.Namespace) -> int:
    settings = Settings.load()
    table = Table(title=str(config_path()))
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    table.add_row("host", settings.host or "[dim](default)[/dim]")
    table.add_row("port", settings.port or "[dim](default)[/dim]")
    table.add_row("server_uri", settings.server_uri())
    table.add_row("auth_headers", ", ".join(settings.auth_headers) or "[dim]none[/dim]")
    table.add_row("login_domain", settings.login_domain)
    table.add_row("session_cookies", ", ".join(settings.session_cookies))
    table.add_row("timeout_s", str(settings.timeout_s))
    table.add_row("models_dir", settings.models_dir or "[dim]not set[/dim]")
    console.print(table)
    return 0


def cmd_config_set_host(args: argparse.Namespace) -> int:
    settings = Settings.load()
    settings.host = args.host
    if args.port is not None:
        settings.port = args.port
    settings.save()
    console.print(f"[green]Server set to[/green] {settings.server_uri()}")
    if is_insecure(settings.server_uri()):
        console.print("[yellow]Plain HTTP to a remote host; consider HTTPS.[/yellow]")
    return 0


def add_commands(subparsers: argparse._SubParsersAction) -> None:
    """Register every command on the main parser."""

    # status
    p_status = subparsers.add_parser("status", help="Show configuration and backend status")
    p_status.set_defaults(func=cmd_status)

    # connect
    p_connect = subparsers.add_parser("connect", help="Connect and sync the catalog")
    p_connect.set_defaults(func=cmd_connect)

    # list
    p_list = subparsers.add_parser("list", help="List a catalog category")
    p_list.add_argument(
        "category",
        choices=[c.value for c in ResourceCategory],
        help="Category to list",
    )
    p_list.add_argument("--remote", "-r", action="store_true", help="Connect and include backend entries")
    p_list.set_defaults(func=cmd_list)

    # upload
    p_upload = subparsers.add_parser("upload", help="Upload an input image")
    p_upload.add_argument("file", help="Image file")
    p_upload.set_defaults(func=cmd_upload)

    # headers
    p_headers = subparsers.add_parser("headers", help="Manage auth headers")
    headers_sub = p_headers.add_subparsers(dest="headers_cmd")

    p_hlist = headers_sub.add_parser("list", help="List configured headers (masked)")
    p_hlist.set_defaults(func=cmd_headers_list)

    p_hset = headers_sub.add_parser("set", help="Set a header")
    p_hset.add_argument("name", nargs="?", help="Header name")
    p_hset.add_argument("value", nargs="?", help="Header value")
    p_hset.add_argument("--text", help="JSON object or 'Key: value' lines")
    p_hset.set_defaults(func=cmd_headers_set)

    p_hremove = headers_sub.add_parser("remove", help="Remove a header")
    p_hremove.add_argument("name", help="Header name")
    p_hremove.set_defaults(func=cmd_headers_remove)

    # config
    p_config = subparsers.add_parser("config", help="Show or change configuration")
    config_sub = p_config.add_subparsers(dest="config_cmd")

    p_cshow = config_sub.add_parser("show", help="Show configuration")
    p_cshow.set_defaults(func=cmd_config_show)

    p_chost = config_sub.add_parser("set-host", help="Set server host or URL")
    p_chost.add_argument("host", help="Host, host:port or full URL")
    p_chost.add_argument("--port", help="Port (when host has none)")
    p_chost.set_defaults(func=cmd_config_set_host)


def run_command(args: argparse.Namespace) -> int:
    """Run the selected command if func is set."""
    if hasattr(args, "func") and args.func:
        return args.func(args)
    return -1
