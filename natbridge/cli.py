"""
natbridge CLI - Command line interface for the NAT to Hue bridge.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional
from uuid import UUID

import click
from rich.console import Console
from rich.table import Table

from .config import Config, default_data_dir, set_config
from .lighting.client import HueClient
from .lighting.models import TargetType
from .logs import setup_logging
from .mapping.models import Binding, BindingType
from .mapping.registry import MappingRegistry
from .nat import serial
from .nat.codec import FrameCodec
from .nat.models import AnalogChanged, ColorChanged, DigitalChanged, NatCommandType, RawFrame

console = Console()


def run_async(coro):
    """Run an async function."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        return loop.run_until_complete(coro)


def _parse_int(text: str) -> int:
    return int(text, 0)


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--data-dir', type=click.Path(), envvar='NATBRIDGE_DATA_DIR', help='Data directory')
@click.pass_context
def main(ctx, verbose: bool, data_dir: Optional[str]):
    """NAT field bus to Hue lighting bridge."""
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    ctx.obj['data_dir'] = Path(data_dir).expanduser() if data_dir else default_data_dir()
    setup_logging(logging.DEBUG if verbose else logging.WARNING)


def _load_config(ctx) -> Config:
    config = Config.load(ctx.obj['data_dir'])
    set_config(config)
    return config


@main.command()
@click.option('--mock/--no-mock', default=None, help='Simulate bus traffic')
@click.option('--force', '-f', is_flag=True, help='Overwrite an existing configuration')
@click.pass_context
def init(ctx, mock: Optional[bool], force: bool):
    """Write a default configuration."""
    data_dir = ctx.obj['data_dir']

    if Config.exists(data_dir) and not force:
        console.print(f"[yellow]Configuration already exists in {data_dir}[/yellow]")
        console.print("   Use --force to overwrite it.")
        return

    config = Config(data_dir=data_dir)
    if mock is not None:
        config.bus.mock_mode = mock
    config.save()

    console.print("\n[bold green]✓ Configuration written[/bold green]\n")
    table = Table(show_header=False, box=None)
    table.add_column("Key", style="dim")
    table.add_column("Value")
    table.add_row("Config", str(config.config_path))
    table.add_row("Mappings", str(config.mappings_path))
    table.add_row("Bus", f"{config.bus.interface} @ {config.bus.bitrate} ({'mock' if config.bus.mock_mode else 'live'})")
    table.add_row("API", f"http://{config.server.host}:{config.server.port}")
    console.print(table)

    console.print("\n[dim]Next steps:[/dim]")
    console.print("  natbridge lighting discover   Find the Hue bridge")
    console.print("  natbridge lighting pair       Pair (press the link button first)")
    console.print("  natbridge run                 Start the bridge")
    console.print()


@main.command()
@click.option('--host', '-h', default=None, help='Host to bind to')
@click.option('--port', '-p', default=None, type=int, help='Port to bind to')
@click.option('--mock', is_flag=True, help='Simulate bus traffic')
@click.pass_context
def run(ctx, host: Optional[str], port: Optional[int], mock: bool):
    """Start the bridge and its API server."""
    config = _load_config(ctx)
    if mock:
        config.bus.mock_mode = True

    level = logging.DEBUG if ctx.obj['verbose'] else config.log_level
    setup_logging(
        level,
        log_dir=config.log_dir if config.enable_file_logging else None,
        retention_days=config.log_retention_days,
    )

    host = host or config.server.host
    port = port or config.server.port
    console.print("\n[bold blue]Starting natbridge[/bold blue]")
    console.print(f"   Listening on: http://{host}:{port}")
    console.print(f"   Bus: {'mock' if config.bus.mock_mode else config.bus.interface}")
    console.print("   Press Ctrl+C to stop\n")

    from .api.server import run_server
    run_server(config, host=host, port=port)


# ============ Mappings ============

@main.group()
def mappings():
    """Manage field device mappings."""


async def _load_registry(config: Config) -> MappingRegistry:
    registry = MappingRegistry()
    await registry.load(config.mappings_path)
    return registry


@mappings.command('list')
@click.pass_context
def mappings_list(ctx):
    """List all mappings."""
    config = _load_config(ctx)

    async def _list():
        registry = await _load_registry(config)
        return await registry.list()

    bindings = sorted(run_async(_list()), key=lambda b: b.key)

    if not bindings:
        console.print("[dim]No mappings[/dim]")
        return

    table = Table(title=f"Mappings ({len(bindings)})")
    table.add_column("Extension", style="cyan")
    table.add_column("Device", style="cyan")
    table.add_column("Target")
    table.add_column("Type")
    table.add_column("Binding")
    table.add_column("Name", style="dim")
    for b in bindings:
        table.add_row(
            b.extension_serial,
            b.device_serial,
            str(b.target_id),
            b.target_type.value,
            b.binding_type.value,
            b.name,
        )
    console.print(table)


@mappings.command('add')
@click.argument('extension_serial')
@click.argument('device_serial')
@click.argument('target_id')
@click.option('--target-type', type=click.Choice([t.value for t in TargetType]), default='light')
@click.option('--binding-type', type=click.Choice([t.value for t in BindingType]), default='digital')
@click.option('--name', default=None, help='Display name')
@click.option('--replace', is_flag=True, help='Replace an existing mapping')
@click.pass_context
def mappings_add(ctx, extension_serial: str, device_serial: str, target_id: str,
                 target_type: str, binding_type: str, name: Optional[str], replace: bool):
    """Map a field device to a lighting target."""
    config = _load_config(ctx)

    try:
        binding = Binding(
            extension_serial=extension_serial,
            device_serial=device_serial,
            target_id=UUID(target_id),
            target_type=TargetType(target_type),
            binding_type=BindingType(binding_type),
            options={"name": name, "auto_generated": False} if name else {"auto_generated": False},
        ).normalized()
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    async def _add():
        registry = await _load_registry(config)
        if not replace and await registry.get(*binding.key) is not None:
            return False
        await registry.add(binding)
        return await registry.save(config.mappings_path)

    if not run_async(_add()):
        console.print(
            f"[red]Could not add mapping for {binding.extension_serial}/{binding.device_serial} "
            f"(already mapped? use --replace)[/red]"
        )
        sys.exit(1)

    console.print(
        f"[green]✓[/green] {binding.extension_serial}/{binding.device_serial} -> "
        f"{binding.target_type.value} {binding.target_id} ({binding.binding_type.value})"
    )


@mappings.command('remove')
@click.argument('extension_serial')
@click.argument('device_serial')
@click.pass_context
def mappings_remove(ctx, extension_serial: str, device_serial: str):
    """Remove a mapping."""
    config = _load_config(ctx)

    async def _remove():
        registry = await _load_registry(config)
        if not await registry.remove(extension_serial, device_serial):
            return False
        return await registry.save(config.mappings_path)

    if not run_async(_remove()):
        console.print(f"[yellow]No mapping for {extension_serial}/{device_serial}[/yellow]")
        sys.exit(1)
    console.print(f"[green]✓[/green] Removed {extension_serial.upper()}/{device_serial.upper()}")


# ============ Protocol tools ============

@main.command()
@click.argument('command_type')
@click.argument('device_id')
@click.argument('payload', default='')
@click.option('--bus-id', default='0x0', help='Bus identifier')
def decode(command_type: str, device_id: str, payload: str, bus_id: str):
    """
    Decode a NAT frame.

    PAYLOAD is hex, e.g. "natbridge decode 0x84 7 40420f00".
    """
    try:
        frame = RawFrame(
            bus_id=_parse_int(bus_id),
            command_type=NatCommandType.parse(_parse_int(command_type)),
            device_id=_parse_int(device_id),
            payload=bytes.fromhex(payload.replace(':', '').replace(' ', '')),
        )
    except ValueError as e:
        console.print(f"[red]Invalid frame: {e}[/red]")
        sys.exit(1)

    reasons = []
    event = FrameCodec(on_skipped=lambda f, reason: reasons.append(reason)).decode(frame)

    if event is None:
        reason = reasons[0] if reasons else f"unknown command type {frame.command_name}"
        console.print(f"[yellow]Frame skipped: {reason}[/yellow]")
        sys.exit(2)

    table = Table(show_header=False, box=None)
    table.add_column("Key", style="dim")
    table.add_column("Value")
    table.add_row("Event", type(event).__name__)
    table.add_row("Device", str(event.device_id))
    if isinstance(event, DigitalChanged):
        table.add_row("Value", "on" if event.value else "off")
    elif isinstance(event, AnalogChanged):
        table.add_row("Value", f"{event.value:g}")
    elif isinstance(event, ColorChanged):
        table.add_row("RGBW", f"{event.red} {event.green} {event.blue} {event.white}")
    console.print(table)


@main.group('serial')
def serial_group():
    """Convert serial numbers."""


@serial_group.command('to-hex')
@click.argument('value')
def serial_to_hex(value: str):
    """Format a number (decimal or 0x...) as XX:XX:XX:XX."""
    try:
        console.print(serial.to_hex(_parse_int(value)))
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)


@serial_group.command('from-hex')
@click.argument('text')
def serial_from_hex(text: str):
    """Parse XX:XX:XX:XX into a number."""
    try:
        value = serial.from_hex(text)
    except serial.FormatError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    console.print(f"{value} (0x{value:08X})")


# ============ Lighting ============

@main.group()
def lighting():
    """Hue bridge discovery and pairing."""


@lighting.command('discover')
@click.option('--timeout', '-t', default=5.0, type=float, help='Seconds to wait')
def lighting_discover(timeout: float):
    """Find Hue bridges on the network."""

    async def _discover():
        client = HueClient()
        try:
            return await client.discover_all(timeout=timeout)
        finally:
            await client.close()

    with console.status("Discovering Hue bridges..."):
        bridges = run_async(_discover())

    if not bridges:
        console.print("[yellow]No Hue bridge found[/yellow]")
        return

    table = Table(title="Hue bridges")
    table.add_column("IP", style="cyan")
    table.add_column("Bridge ID")
    table.add_column("Port")
    for b in bridges:
        table.add_row(b.ip_address, b.bridge_id or "-", str(b.port))
    console.print(table)


@lighting.command('pair')
@click.option('--ip', 'ip_address', default=None, help='Bridge IP (discovered if omitted)')
@click.pass_context
def lighting_pair(ctx, ip_address: Optional[str]):
    """Pair with the bridge. Press its link button first."""
    config = _load_config(ctx)

    async def _pair():
        client = HueClient(config.lighting)
        try:
            if ip_address is None and not await client.discover():
                return None, None
            app_key = await client.pair(ip_address)
            return app_key, client.status.ip_address if client.status else None
        finally:
            await client.close()

    app_key, ip = run_async(_pair())
    if app_key is None:
        console.print("[red]Pairing failed. Press the link button on the bridge and try again.[/red]")
        sys.exit(1)

    config.update_lighting(ip_address=ip, app_key=app_key, auto_discover=False)
    console.print(f"[green]✓ Paired with bridge at {ip}[/green]")


@lighting.command('lights')
@click.pass_context
def lighting_lights(ctx):
    """List the bridge's lights."""
    config = _load_config(ctx)
    if not config.lighting.app_key:
        console.print("[yellow]Not paired. Run 'natbridge lighting pair' first.[/yellow]")
        sys.exit(1)

    async def _lights():
        client = HueClient(config.lighting)
        try:
            if client.base_url is None:
                await client.discover()
            return await client.get_lights()
        finally:
            await client.close()

    lights = run_async(_lights())
    if not lights:
        console.print("[dim]No lights[/dim]")
        return

    table = Table(title=f"Lights ({len(lights)})")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Color")
    table.add_column("Dimming")
    table.add_column("State")
    for light in lights:
        table.add_row(
            str(light.id),
            light.display_name,
            "yes" if light.supports_color else "-",
            "yes" if light.supports_dimming else "-",
            {True: "on", False: "off"}.get(light.is_on, "?"),
        )
    console.print(table)


if __name__ == "__main__":
    main()
