"""chatbox-stats CLI - broadcast system stats to an OSC chatbox."""

import asyncio
import logging
import sys
from dataclasses import replace
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .agent import Agent
from .config import load_config
from .exceptions import ChatboxStatsError
from .sources import SourceKind, SourceRegistry, build_sources, list_sources

console = Console()

SOURCE_INFO = {
    SourceKind.TIME: "Local time with UTC offset",
    SourceKind.CPU: "CPU utilization and process count via psutil",
    SourceKind.RAM: "Used memory and share of total via psutil",
    SourceKind.GPU: "NVIDIA GPU utilization, power, temperature and memory via NVML",
}

SAMPLE_CONFIG = """# chatbox-stats configuration

# Seconds between snapshots (whole number, >= 1)
interval: 3

# Sources to include, in this fixed order: time, cpu, ram, gpu
sources:
  time: true
  cpu: true
  ram: true
  gpu: true

# NVML device index used by the gpu source
gpu_index: 0

# OSC destination and the local address messages are sent from
osc:
  address: /chatbox/input
  host: 127.0.0.1
  port: 9000
  bind_host: 127.0.0.1
  bind_port: 9001

log_level: INFO
"""


def setup_logging(level: str):
    """Configure logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )


@click.group()
@click.version_option(version=__version__, prog_name="chatbox-stats")
def main():
    """chatbox-stats - send CPU, RAM, GPU and clock stats to an OSC chatbox."""
    pass


@main.command()
@click.option("--no-time", "-t", is_flag=True, help="Do not show time")
@click.option("--no-cpu", "-c", is_flag=True, help="Do not show cpu usage")
@click.option("--no-ram", "-r", is_flag=True, help="Do not show ram usage")
@click.option("--no-gpu", "-g", is_flag=True, help="Do not show gpu usage")
@click.option(
    "--interval", "-i",
    type=click.IntRange(min=1),
    default=None,
    help="Time interval in seconds  [default: 3]",
)
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="Path to config file")
@click.option("--log-level", default=None, help="Log level")
@click.option("--once", is_flag=True, help="Print one snapshot and exit without sending")
def run(
    no_time: bool,
    no_cpu: bool,
    no_ram: bool,
    no_gpu: bool,
    interval: Optional[int],
    config_path: Optional[str],
    log_level: Optional[str],
    once: bool,
):
    """Run the stats broadcaster."""
    try:
        config = load_config(config_path)
        if interval is not None:
            config = replace(config, interval=interval)
        if log_level:
            config = replace(config, log_level=log_level)
    except ChatboxStatsError as e:
        console.print(f"[red]x {e}[/red]")
        sys.exit(1)

    disabled = [
        kind for kind, off in (
            (SourceKind.TIME, no_time),
            (SourceKind.CPU, no_cpu),
            (SourceKind.RAM, no_ram),
            (SourceKind.GPU, no_gpu),
        ) if off
    ]
    config = config.without(*disabled)

    setup_logging(config.log_level)

    if once:
        _print_once(config)
        return

    agent = Agent(config)
    try:
        agent.setup()
    except ChatboxStatsError as e:
        console.print(f"[red]x Startup failed: {e}[/red]")
        sys.exit(1)

    source_names = [s.name for s in agent.sources]
    console.print(Panel(
        f"[bold green]chatbox-stats v{__version__}[/bold green]\n"
        f"Target: {config.endpoint.host}:{config.endpoint.port}{config.endpoint.address}\n"
        f"Sources: {', '.join(source_names) or 'none'}\n"
        f"Interval: {config.interval}s",
        title="Starting",
    ))

    try:
        asyncio.run(agent.run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Shutting down...[/yellow]")
        agent.close()

    console.print("bye")


def _print_once(config):
    """Build and display a single snapshot."""
    try:
        agent = Agent(config, sources=build_sources(config))
    except ChatboxStatsError as e:
        console.print(f"[red]x Startup failed: {e}[/red]")
        sys.exit(1)

    try:
        snapshot = agent.collect_once()
    finally:
        agent.close()

    if not snapshot:
        console.print("[yellow]Empty snapshot (no sources produced output)[/yellow]")
        return
    console.print(Panel(snapshot, title="Snapshot"))


@main.command()
def sources():
    """List available metric sources."""
    console.print("[bold]Available Metric Sources:[/bold]\n")

    table = Table(show_header=True)
    table.add_column("Source", style="cyan")
    table.add_column("Description")
    table.add_column("Disable with", style="dim")

    for kind, desc in SOURCE_INFO.items():
        status = "[green]+" if SourceRegistry.is_registered(kind) else "[red]x"
        table.add_row(f"{status} {kind.value}", desc, f"--no-{kind.value}")

    console.print(table)
    console.print("\n[dim]+ = available, x = not available (missing dependencies)[/dim]")


@main.command()
@click.option("--output", "-o", type=click.Path(), help="Output file path")
def init(output: Optional[str]):
    """Generate a sample configuration file."""
    output_path = output or "chatbox-stats.yaml"

    with open(output_path, "w") as f:
        f.write(SAMPLE_CONFIG)

    console.print(f"[green]+ Created config file: {output_path}[/green]")
    console.print("\nEdit the file to choose your sources, then run:")
    console.print(f"  [cyan]chatbox-stats run --config {output_path}[/cyan]")


@main.command()
def status():
    """Show system info and GPU availability."""
    import platform

    import psutil
    import pynvml

    console.print(Panel(
        f"[bold]chatbox-stats v{__version__}[/bold]",
        title="Status",
    ))

    table = Table(title="System Information", show_header=False)
    table.add_column("Property", style="cyan")
    table.add_column("Value")

    table.add_row("Platform", platform.platform())
    table.add_row("Python", platform.python_version())
    table.add_row("CPU Cores", str(psutil.cpu_count()))
    table.add_row("CPU Usage", f"{psutil.cpu_percent(interval=0.1):.1f}%")

    mem = psutil.virtual_memory()
    table.add_row("Memory Total", f"{mem.total / 1024**3:.1f} GB")
    table.add_row("Memory Used", f"{mem.percent:.1f}%")

    try:
        pynvml.nvmlInit()
    except pynvml.NVMLError as e:
        table.add_row("GPU", f"[yellow]unavailable ({e})[/yellow]")
    else:
        try:
            for i in range(pynvml.nvmlDeviceGetCount()):
                name = pynvml.nvmlDeviceGetName(pynvml.nvmlDeviceGetHandleByIndex(i))
                if isinstance(name, bytes):
                    name = name.decode()
                table.add_row(f"GPU {i}", name)
        finally:
            pynvml.nvmlShutdown()

    console.print(table)
    console.print(f"\n[bold]Available Sources:[/bold] {', '.join(list_sources())}")


if __name__ == "__main__":
    main()
