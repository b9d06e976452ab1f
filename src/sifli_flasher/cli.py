"""
SiFli Flasher CLI

Command-line front end (`sftool`) for flashing SiFli chips over serial.
"""

import sys
import json
import logging
from typing import Dict, List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.logging import RichHandler
from rich.progress import Progress, BarColumn, TextColumn, DownloadColumn

from sifli_flasher import __version__
from sifli_flasher.core import (
    OperationResult,
    ResetMode,
    SessionConfig,
    WriteFlashParams,
    flash_firmware,
    inspect_images,
)
from sifli_flasher.image import FlashChunk
from sifli_flasher.models import CHIP_PROFILES
from sifli_flasher.probe import BootstrapError, list_probe_ids
from sifli_flasher.protocol import DEFAULT_BAUD_RATE
from sifli_flasher.utils import parse_baud

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
)
logger = logging.getLogger("sifli_flasher")

# Setup Rich console
console = Console()

app = typer.Typer(help="SiFli SF32 serial flasher")


def print_header(text: str) -> None:
    """Print fancy header."""
    console.print(Panel(text, expand=False, style="bold blue"))


def print_warning(text: str) -> None:
    console.print(f"⚠️  {text}", style="yellow")


def print_error(text: str) -> None:
    console.print(f"❌ {text}", style="red")


def print_result(result: OperationResult) -> None:
    """Print an OperationResult summary (warnings and errors included)."""
    style = "green" if result.ok else "red"
    console.print(result.to_summary(), style=style)


def validate_baud(value: int) -> int:
    """Typer callback turning parse errors into BadParameter."""
    try:
        return parse_baud(str(value))
    except ValueError as e:
        raise typer.BadParameter(str(e))


def set_verbose(verbose: bool) -> None:
    if verbose:
        logger.setLevel(logging.DEBUG)


class ChunkProgress:
    """Maps write_flash progress events onto rich Progress tasks."""

    def __init__(self, progress: Progress):
        self.progress = progress
        self.tasks: Dict[int, int] = {}

    def __call__(self, event: str, chunk: FlashChunk, done: int, total: int) -> None:
        label = f"0x{chunk.address:08X}"
        if event == "skip":
            self.progress.console.print(f"[dim]{label} unchanged, skipped[/dim]")
            return
        if chunk.address not in self.tasks:
            self.tasks[chunk.address] = self.progress.add_task(f"Download {label}", total=total)
        task = self.tasks[chunk.address]
        self.progress.update(task, completed=done)
        if event == "done":
            self.progress.update(task, description=f"Done {label}")


@app.command("write-flash")
def write_flash_cmd(
    files: List[str] = typer.Argument(..., help="Images as FILE or FILE@ADDRESS (BIN needs an address)"),
    chip: str = typer.Option(..., "--chip", "-c", help="Target chip (e.g., SF32LB52)"),
    port: str = typer.Option(..., "--port", "-p", help="Serial port / debug probe ID"),
    memory: str = typer.Option("nor", "--memory", "-m", help="Memory type: nor, nand, sd"),
    baud: int = typer.Option(DEFAULT_BAUD_RATE, "--baud", "-b", callback=validate_baud, help="Flashing baud rate"),
    before: ResetMode = typer.Option(ResetMode.NO_RESET, "--before", help="Reset mode before connecting"),
    after: ResetMode = typer.Option(ResetMode.SOFT_RESET, "--after", help="Reset mode when done"),
    connect_attempts: int = typer.Option(3, "--connect-attempts", help="Bootstrap attempts, <= 0 for unlimited"),
    compat: bool = typer.Option(False, "--compat", help="Compatibility mode: small packets, extra delays"),
    verify: bool = typer.Option(True, "--verify/--no-verify", help="Verify every written chunk"),
    no_compress: bool = typer.Option(False, "--no-compress", "-u", help="Accepted for compatibility, no effect"),
    erase_all: bool = typer.Option(False, "--erase-all", "-e", help="Erase every touched flash bank first"),
    stub_dir: Optional[str] = typer.Option(None, "--stub-dir", help="Directory with RAM stub images"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Print the result as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging with wire traces"),
) -> None:
    """Write BIN/HEX/ELF images to flash."""
    set_verbose(verbose)
    config = SessionConfig(
        port=port,
        chip=chip,
        memory=memory,
        baud=baud,
        compat=compat,
        before=before,
        after=after,
        connect_attempts=connect_attempts,
        stub_dir=stub_dir,
    )
    params = WriteFlashParams(files=list(files), verify=verify, no_compress=no_compress, erase_all=erase_all)

    if not output_json:
        print_header(f"write_flash → {chip}/{memory} on {port}")

    with Progress(
        TextColumn("[{task.description}]"),
        BarColumn(),
        DownloadColumn(),
        TextColumn("[{task.percentage:.0f}%]"),
        console=console,
        disable=output_json,
    ) as progress:
        result = flash_firmware(config, params, progress_cb=ChunkProgress(progress))

    if output_json:
        console.print(json.dumps(result.to_dict(), indent=2))
    else:
        print_result(result)
    if not result.ok:
        raise typer.Exit(1)


@app.command()
def inspect(
    files: List[str] = typer.Argument(..., help="Images as FILE or FILE@ADDRESS"),
    chip: str = typer.Option("SF32LB52", "--chip", "-c", help="Target chip"),
    memory: str = typer.Option("nor", "--memory", "-m", help="Memory type: nor, nand, sd"),
) -> None:
    """Show the flash chunks the given images normalize to, without hardware."""
    result = inspect_images(files, chip, memory)
    if not result.ok:
        print_result(result)
        raise typer.Exit(1)

    chunks: List[FlashChunk] = result.metadata["chunks"]
    table = Table(title="Flash Chunks")
    table.add_column("Address", style="cyan")
    table.add_column("End", style="cyan")
    table.add_column("Length", style="green", justify="right")
    table.add_column("CRC32", style="magenta")
    for chunk in chunks:
        table.add_row(
            f"0x{chunk.address:08X}",
            f"0x{chunk.end_address:08X}",
            f"{len(chunk):,}",
            f"0x{chunk.crc32:08X}",
        )
    console.print(table)
    for warn in result.warnings:
        print_warning(warn)


@app.command("list-chips")
def list_chips() -> None:
    """List supported chip and memory combinations."""
    table = Table(title="Supported Targets")
    table.add_column("Chip", style="cyan", no_wrap=True)
    table.add_column("Memory", style="magenta")
    table.add_column("Stub", style="green", no_wrap=True)
    table.add_column("Load Addr", style="yellow", no_wrap=True)
    table.add_column("Notes")

    for _, profile in sorted(CHIP_PROFILES.items()):
        table.add_row(
            profile.chip,
            profile.memory.value,
            profile.stub_file,
            f"0x{profile.stub_load_address:08X}",
            "; ".join(profile.notes),
        )
    console.print(table)


@app.command()
def ports() -> None:
    """List available serial ports."""
    import serial.tools.list_ports

    ports_list = list(serial.tools.list_ports.comports())
    if not ports_list:
        print_warning("No serial ports found")
        return

    table = Table(title="Serial Ports")
    table.add_column("Port", style="cyan")
    table.add_column("Serial", style="magenta")
    table.add_column("Description", style="green")
    for port in ports_list:
        table.add_row(port.device, port.serial_number or "-", port.description or "-")
    console.print(table)


@app.command()
def probes() -> None:
    """List attached debug probes."""
    try:
        ids = list_probe_ids()
    except BootstrapError as e:
        print_error(str(e))
        raise typer.Exit(1)
    if not ids:
        print_warning("No debug probes found")
        return
    for unique_id in ids:
        console.print(f"  • {unique_id}")


@app.command()
def version() -> None:
    """Show the version."""
    console.print(f"sftool {__version__}")


def main() -> None:
    """Main entry point."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
