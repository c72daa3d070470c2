"""CLI entry point for miionet."""

import asyncio
import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .core.config import Config, get_config, set_config
from .core.exceptions import MiioError
from .core.utils import validate_token
from .network import MiioNetwork
from .session import NO_PARAMS
from .tokens import TokenStore

console = Console()


def print_error(message: str) -> None:
    """Print error message in red."""
    console.print(f"[red]Error:[/red] {message}")


def print_success(message: str) -> None:
    """Print success message in green."""
    console.print(f"[green]✓[/green] {message}")


def print_warning(message: str) -> None:
    """Print warning message in yellow."""
    console.print(f"[yellow]Warning:[/yellow] {message}")


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def run(coro):
    """Run a coroutine, turning library errors into a red message and exit code 1."""
    try:
        return asyncio.run(coro)
    except MiioError as e:
        print_error(str(e))
        sys.exit(1)


def save_json(output: str, data: dict) -> None:
    output_path = Path(output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        json.dump(data, f, indent=2)
    print_success(f"Results saved to {output_path}")


@click.group()
@click.version_option(version=__version__, prog_name="miionet")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Configuration file (default: $MIIONET_CONFIG or .miionet.json)",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, config_path: Path | None) -> None:
    """miionet - discover and control Xiaomi miIO devices on the local network."""
    ctx.ensure_object(dict)
    if config_path is not None:
        set_config(Config.from_file(config_path))
    config = get_config()
    config.verbose = verbose or config.verbose
    setup_logging(config.verbose)
    ctx.obj["config"] = config


@main.command()
@click.option("--timeout", type=float, default=None, help="Discovery timeout in seconds")
@click.option(
    "--method",
    type=click.Choice(["miio", "mdns", "all"]),
    default="all",
    help="Discovery method (default: all)",
)
@click.option("--output", "-o", type=click.Path(), help="Output file (JSON)")
@click.pass_context
def discover(ctx: click.Context, timeout: float | None, method: str, output: str | None) -> None:
    """Discover miIO devices with a broadcast handshake and mDNS."""
    from .discovery import discover_all

    config: Config = ctx.obj["config"]
    timeout = timeout if timeout is not None else config.network.discovery_timeout
    methods = ["miio", "mdns"] if method == "all" else [method]

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task(f"Discovering for {timeout:.0f}s...", total=None)
        result = discover_all(timeout=timeout, methods=methods)
        progress.update(task, completed=True)

    if not result.devices:
        console.print("[yellow]No devices discovered.[/yellow]")
        return

    table = Table(title=f"Discovered Devices ({result.total_count})")
    table.add_column("IP Address", style="cyan")
    table.add_column("Device ID", style="green")
    table.add_column("Model", style="yellow")
    table.add_column("Token", style="magenta")

    for device in result.devices:
        table.add_row(
            device.ip,
            device.device_id or "-",
            device.model or "-",
            device.token if device.is_token_available else "[dim]hidden[/dim]",
        )

    console.print(table)

    if output:
        save_json(output, result.to_dict())


@main.command()
@click.argument("address")
@click.option("--token", "-t", help="Device token (32 hex characters)")
@click.pass_context
def info(ctx: click.Context, address: str, token: str | None) -> None:
    """Connect to a device and show its miIO.info."""
    from .devices.models import MiioDeviceInfo

    config: Config = ctx.obj["config"]

    async def fetch() -> MiioDeviceInfo:
        async with MiioNetwork(config) as network:
            session = await network.connect(address, token)
            return MiioDeviceInfo.from_info(
                session.address, session.device_id, session.token.hex(), session.info or {}
            )

    device = run(fetch())

    table = Table(title=f"Device {device.ip}", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Device ID", device.device_id)
    table.add_row("Model", device.model or "-")
    table.add_row("Type", device.device_type.value)
    table.add_row("Firmware", device.firmware or "-")
    table.add_row("Hardware", device.hardware or "-")
    table.add_row("MAC", device.mac or "-")
    table.add_row("Token", device.token or "-")
    console.print(table)


@main.command()
@click.argument("address")
@click.argument("method")
@click.argument("params", required=False)
@click.option("--token", "-t", help="Device token (32 hex characters)")
@click.option("--retries", type=int, default=None, help="Extra attempts after the first")
@click.option("--sid", help="Sub-device id (gateways)")
@click.pass_context
def call(
    ctx: click.Context,
    address: str,
    method: str,
    params: str | None,
    token: str | None,
    retries: int | None,
    sid: str | None,
) -> None:
    """Call METHOD on a device. PARAMS is a JSON value, e.g. '["power","bright"]'."""
    config: Config = ctx.obj["config"]

    if params is None:
        parsed = NO_PARAMS
    else:
        try:
            parsed = json.loads(params)
        except json.JSONDecodeError as e:
            print_error(f"PARAMS is not valid JSON: {e}")
            sys.exit(1)

    async def invoke():
        async with MiioNetwork(config) as network:
            session = network.session(await network.resolve(address), token)
            return await session.call(method, parsed, retries=retries, sid=sid)

    result = run(invoke())
    console.print_json(json.dumps(result))


@main.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the state of every device in the configuration file."""
    from .devices import create_device

    config: Config = ctx.obj["config"]
    if not config.devices:
        print_warning("No devices configured.")
        return

    async def poll() -> list[tuple[str, str, str]]:
        rows = []
        async with MiioNetwork(config) as network:
            for entry in config.devices:
                try:
                    device = create_device(entry.type, network, entry.name)
                    await device.connect(entry.address, entry.token)
                except MiioError as e:
                    rows.append((entry.name, entry.address, f"[red]{e}[/red]"))
                    continue
                props = ", ".join(f"{k}={v}" for k, v in device.properties.items())
                rows.append((entry.name, entry.address, props or "-"))
        return rows

    rows = run(poll())

    table = Table(title="Devices")
    table.add_column("Name", style="cyan")
    table.add_column("Address", style="green")
    table.add_column("State")
    for row in rows:
        table.add_row(*row)
    console.print(table)


@main.group()
def tokens() -> None:
    """Manage stored device tokens."""


@tokens.command("list")
@click.pass_context
def tokens_list(ctx: click.Context) -> None:
    """List stored tokens."""
    config: Config = ctx.obj["config"]
    store = TokenStore.from_config(config.tokens)
    stored = run(store.all())

    if not stored:
        console.print(f"[yellow]No tokens stored in {store.path}.[/yellow]")
        return

    table = Table(title=f"Tokens ({store.path})")
    table.add_column("Device ID", style="cyan")
    table.add_column("Token", style="magenta")
    for device_id, token in sorted(stored.items()):
        table.add_row(device_id, token)
    console.print(table)


@tokens.command("set")
@click.argument("device_id")
@click.argument("token")
@click.pass_context
def tokens_set(ctx: click.Context, device_id: str, token: str) -> None:
    """Store TOKEN for DEVICE_ID."""
    if not validate_token(token):
        print_error("Token must be 32 hexadecimal characters")
        sys.exit(1)

    config: Config = ctx.obj["config"]
    store = TokenStore.from_config(config.tokens)
    run(store.update(device_id, token))
    print_success(f"Token for {device_id} saved to {store.path}")


if __name__ == "__main__":
    main()
