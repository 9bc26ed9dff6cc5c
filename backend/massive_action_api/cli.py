"""Command-line console for the massive action bridge.

Talks to a running bridge (``BRIDGE_BASE_URL``) and to the host for the
action subforms (``HOST_BASE_URL``), authenticating with ``SESSION_TOKEN``.
"""

import argparse
import asyncio
import logging
import signal
import sys

import httpx
from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.table import Table

from massive_action_api.api.dependencies.auth import SESSION_HEADER
from massive_action_api.api.schemas.fields import FieldSchema
from massive_action_api.core.config import Settings, get_settings
from massive_action_api.core.errors import BridgeError, ValidationError
from massive_action_api.services.batch_engine import BatchJob
from massive_action_api.services.console import ConsoleService
from massive_action_api.utils.ids import parse_ids

logger = logging.getLogger(__name__)
console = Console()

TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


def parse_assignments(pairs: list[str] | None, fields: list[FieldSchema]) -> dict:
    """Turn ``--set name=value`` pairs into form values typed after the schema.

    List fields take comma-separated values; checkbox/radio fields take a
    boolean word (1/true/yes/on, anything else is false).
    """
    by_name = {field.name: field for field in fields}
    values: dict = {}
    for pair in pairs or []:
        name, separator, raw = pair.partition("=")
        name = name.strip()
        if not separator or not name:
            raise ValidationError(f"Invalid assignment {pair!r}, expected name=value")
        field = by_name.get(name)
        if field is None:
            raise ValidationError(f"Unknown action field: {name}")
        if field.is_list:
            values[name] = [part.strip() for part in raw.split(",") if part.strip()]
        elif field.type in ("checkbox", "radio"):
            values[name] = raw.strip().lower() in TRUE_VALUES
        else:
            values[name] = raw
    return values


def _settings(args) -> Settings:
    settings = get_settings()
    overrides = {}
    if args.api_url:
        overrides["bridge_base_url"] = args.api_url.rstrip("/")
    if args.host_url:
        overrides["host_base_url"] = args.host_url.rstrip("/")
    if args.session_token:
        overrides["session_token"] = args.session_token
    return settings.model_copy(update=overrides) if overrides else settings


def _headers(settings: Settings) -> dict[str, str]:
    return {SESSION_HEADER: settings.session_token} if settings.session_token else {}


def _describe_default(field: FieldSchema) -> str:
    if isinstance(field.default, list):
        return ", ".join(field.default)
    return str(field.default)


async def cmd_itemtypes(args, service: ConsoleService, settings: Settings) -> int:
    itemtypes = await service.discovery.list_item_types()
    for itemtype in itemtypes:
        console.print(itemtype)
    console.print(f"\n[dim]{len(itemtypes)} item type(s)[/dim]")
    return 0


async def cmd_actions(args, service: ConsoleService, settings: Settings) -> int:
    actions = await service.discovery.list_actions(
        args.itemtype, int(args.deleted), int(args.single)
    )
    table = Table(title=f"{args.itemtype} - {len(actions)} action(s)")
    table.add_column("key", style="cyan")
    table.add_column("label")
    table.add_column("category", style="dim")
    for action in actions:
        table.add_row(action.key, action.label, action.category)
    console.print(table)
    return 0


async def cmd_schema(args, service: ConsoleService, settings: Settings) -> int:
    ids = parse_ids(args.ids)
    if not ids:
        raise ValidationError("Please enter valid item IDs")
    form = await service.derive_form(args.itemtype, ids, args.action)
    if form.error:
        console.print(f"[yellow]⚠️  {form.error}[/yellow]")
        return 0
    if not form.fields:
        console.print("[dim]This action takes no parameters[/dim]")
        return 0

    table = Table(title=f"{args.action} parameters")
    table.add_column("name", style="cyan")
    table.add_column("label")
    table.add_column("type")
    table.add_column("required")
    table.add_column("default")
    table.add_column("options", style="dim")
    for field in form.fields:
        options = ", ".join(option.value for option in field.options or [])
        table.add_row(
            field.name,
            field.label,
            field.type + (" (multiple)" if field.multiple else ""),
            "yes" if field.required else "",
            _describe_default(field),
            options,
        )
    console.print(table)
    return 0


async def cmd_run(args, service: ConsoleService, settings: Settings) -> int:
    ids = parse_ids(args.ids)
    form = await service.derive_form(args.itemtype, ids, args.action)
    if form.error:
        console.print(f"[yellow]⚠️  {form.error}[/yellow]")

    job = service.prepare_job(
        args.itemtype,
        ids,
        args.action,
        form,
        values=parse_assignments(args.set, form.fields),
        batch_size=settings.batch_size if args.batch_size is None else args.batch_size,
        has_ids_input=bool(args.ids and args.ids.strip()),
    )
    concurrency = settings.batch_concurrency if args.concurrency is None else args.concurrency
    console.print(
        f"\n▶️  {job.action} on {job.total_count} {job.itemtype} item(s) "
        f"in {len(job.chunks)} chunk(s)\n"
    )

    progress = Progress(
        TextColumn("⏳ {task.description}"),
        BarColumn(bar_width=40),
        TaskProgressColumn(),
        TextColumn("{task.fields[suffix]}", justify="right"),
        console=console,
        transient=True,
    )
    task_id = progress.add_task(job.itemtype, total=job.total_count, suffix="starting...")

    def on_progress(current: BatchJob) -> None:
        eta = f"{current.eta:.0f}s left" if current.eta is not None else "eta ?"
        suffix = f"ok {current.ok} • ko {current.ko} • noright {current.noright} • {eta}"
        progress.update(task_id, completed=current.processed_count, suffix=suffix)

    service.engine.on_progress = on_progress

    loop = asyncio.get_running_loop()
    handles_sigint = True
    try:
        loop.add_signal_handler(signal.SIGINT, job.cancel)
    except NotImplementedError:
        handles_sigint = False
        logger.debug("Signal handlers unavailable; Ctrl-C will interrupt without summary")

    try:
        with progress:
            await service.run(job, concurrency)
    finally:
        if handles_sigint:
            loop.remove_signal_handler(signal.SIGINT)

    _print_summary(job)
    if job.cancelled:
        return 130
    return 1 if job.errors else 0


def _print_summary(job: BatchJob) -> None:
    status_style = {"completed": "green", "cancelled": "yellow"}.get(job.status, "red")
    console.print(
        f"[{status_style}]{job.status}[/{status_style}]: "
        f"{job.processed_count}/{job.total_count} item(s) in {job.elapsed:.1f}s"
    )

    table = Table()
    table.add_column("ok", style="green")
    table.add_column("ko", style="red")
    table.add_column("noright", style="yellow")
    table.add_column("errors")
    table.add_row(str(job.ok), str(job.ko), str(job.noright), str(len(job.errors)))
    console.print(table)

    for message in job.messages:
        console.print(f"  {message}")
    for error in job.errors:
        console.print(f"  [red]❌ {error}[/red]")


async def _dispatch(args) -> int:
    settings = _settings(args)
    async with httpx.AsyncClient(timeout=settings.http_timeout) as client:
        service = ConsoleService.from_settings(client, settings, headers=_headers(settings))
        return await args.func(args, service, settings)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="massive-action-console",
        description="Run ITSM massive actions over large selections",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  massive-action-console itemtypes
  massive-action-console actions Computer
  massive-action-console schema Computer MassiveAction:update --ids "1,2,3"
  massive-action-console run Computer MassiveAction:update --ids "1,2,3 7 9" \\
      --set field=comment --set value="Audited" --batch-size 25 --concurrency 4
""",
    )
    parser.add_argument("--api-url", help="Bridge URL (default: BRIDGE_BASE_URL)")
    parser.add_argument("--host-url", help="Host URL for subforms (default: HOST_BASE_URL)")
    parser.add_argument("--session-token", help="Session token (default: SESSION_TOKEN)")
    parser.add_argument("--log-level", default=None, help="Logging level (default: LOG_LEVEL)")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")
    subparsers.required = True

    itemtypes_parser = subparsers.add_parser("itemtypes", help="List item types")
    itemtypes_parser.set_defaults(func=cmd_itemtypes)

    actions_parser = subparsers.add_parser("actions", help="List actions for an item type")
    actions_parser.add_argument("itemtype", help="Item type, e.g. Computer")
    actions_parser.add_argument("--deleted", action="store_true", help="Actions for deleted items")
    actions_parser.add_argument("--single", action="store_true", help="Actions for a single item")
    actions_parser.set_defaults(func=cmd_actions)

    schema_parser = subparsers.add_parser("schema", help="Show an action's parameters")
    schema_parser.add_argument("itemtype", help="Item type")
    schema_parser.add_argument("action", help="Action key (processor:action)")
    schema_parser.add_argument("--ids", required=True, help="Item IDs (comma/space separated)")
    schema_parser.set_defaults(func=cmd_schema)

    run_parser = subparsers.add_parser("run", help="Run an action in batches")
    run_parser.add_argument("itemtype", help="Item type")
    run_parser.add_argument("action", help="Action key (processor:action)")
    run_parser.add_argument("--ids", required=True, help="Item IDs (comma/space separated)")
    run_parser.add_argument(
        "--set", action="append", metavar="NAME=VALUE", help="Action parameter (repeatable)"
    )
    run_parser.add_argument("--batch-size", type=int, default=None, help="Items per chunk")
    run_parser.add_argument(
        "--concurrency", type=int, default=None, help="Parallel chunk requests (max 4)"
    )
    run_parser.set_defaults(func=cmd_run)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=(args.log_level or get_settings().log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        return asyncio.run(_dispatch(args))
    except BridgeError as exc:
        console.print(f"[red]❌ {exc}[/red]")
        return 1
    except httpx.HTTPStatusError as exc:
        console.print(f"[red]❌ HTTP {exc.response.status_code}: {exc.response.text[:200]}[/red]")
        return 1
    except httpx.RequestError as exc:
        console.print(f"[red]❌ Request failed: {exc}[/red]")
        return 1
    except KeyboardInterrupt:
        console.print("\n⚠️  Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
