"""
mtk-uartboot - Command-Line Interface
=====================================

Uploads and executes binaries over UART on MediaTek SoCs. The payload
(typically a BL2 built with UART download support) is sent to the
BootROM; if a FIP is given, it is then sent to that BL2.

Usage Examples
--------------
List available serial ports:
    $ mtk-uartboot --list-ports

Load and run an AArch64 BL2, then boot a FIP through it:
    $ mtk-uartboot -s /dev/ttyUSB0 -p bl2.bin -a -f fip.bin

Load a payload to a custom address:
    $ mtk-uartboot -s /dev/ttyUSB0 -p payload.bin -l 0x201000

The board can be powered on after starting the tool; the BootROM
handshake is retried until the device answers.

Exit Codes
----------
0 - Success
1 - Connection, protocol or device error
2 - Invalid arguments or missing files
3 - Internal error
4 - BL2 did not print an expected message
"""

import dataclasses
import logging
from pathlib import Path
from typing import Optional

import click

from mtk_uartboot import __version__
from mtk_uartboot.cli.errors import ExitCode, handle_cli_exception
from mtk_uartboot.comms.serial import find_serial_port, format_port_list, list_serial_ports
from mtk_uartboot.config import SessionConfig, parse_int
from mtk_uartboot.errors import UartBootError
from mtk_uartboot.session import run_session

# Configure logging
logger = logging.getLogger(__name__)


# =============================================================================
# CLI Utilities
# =============================================================================

class AddressType(click.ParamType):
    """
    Click parameter type for 32-bit addresses.

    Accepts hex ("0x201000") or decimal ("2101248").
    """
    name = "address"

    def convert(self, value, param: Optional[click.Parameter],
                ctx: Optional[click.Context]) -> int:
        if isinstance(value, int):
            return value
        try:
            address = parse_int(value)
        except ValueError:
            self.fail(f"'{value}' is not a valid hex or decimal address", param, ctx)
        if not 0 <= address <= 0xFFFFFFFF:
            self.fail(f"address 0x{address:X} does not fit in 32 bits", param, ctx)
        return address


ADDRESS = AddressType()


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s" if verbose else "%(message)s",
    )


def progress_bar(current: int, total: int) -> None:
    """Simple text progress bar for uploads."""
    if total == 0:
        return
    percent = current * 100 // total
    filled = percent // 2
    bar = "=" * filled + "-" * (50 - filled)
    click.echo(f"\r[{bar}] {percent:3d}% ({current}/{total} bytes)", nl=False)
    if current >= total:
        click.echo()


def echo_device_line(line: str) -> None:
    """Print a line of device log output."""
    click.echo(line.rstrip("\r\n"))


def show_ports() -> None:
    """List serial ports and the one auto-detection would pick."""
    port_list = list_serial_ports()
    if not port_list:
        click.echo("No serial ports found.")
        return

    click.echo("Available serial ports:")
    click.echo(format_port_list(port_list, verbose=True))

    auto_port = find_serial_port()
    if auto_port:
        click.echo(f"\nSuggested port: {auto_port}")


# =============================================================================
# Main Command
# =============================================================================

@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "-s", "--serial",
    type=str,
    default=None,
    help="Serial port (auto-detect if not specified)",
)
@click.option(
    "-p", "--payload",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to the binary code to be executed",
)
@click.option(
    "-l", "--load-addr",
    type=ADDRESS,
    default=None,
    help="Load address of the payload (default: 0x201000)",
)
@click.option(
    "-a", "--aarch64",
    is_flag=True,
    help="Whether this is an aarch64 payload",
)
@click.option(
    "-f", "--fip",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to an FIP payload. When using MTK BL2 built with UART download support",
)
@click.option(
    "--brom-load-baudrate",
    type=click.IntRange(min=1),
    default=None,
    help="Baud rate for loading bootrom payload (default: 460800)",
)
@click.option(
    "--bl2-load-baudrate",
    type=click.IntRange(min=1),
    default=None,
    help="Baud rate for loading bl2 payload (default: 921600)",
)
@click.option(
    "--list-ports",
    is_flag=True,
    help="List available serial ports and exit",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Enable verbose output",
)
@click.version_option(version=__version__, prog_name="mtk-uartboot")
def main(
    serial: Optional[str],
    payload: Optional[Path],
    load_addr: Optional[int],
    aarch64: bool,
    fip: Optional[Path],
    brom_load_baudrate: Optional[int],
    bl2_load_baudrate: Optional[int],
    list_ports: bool,
    verbose: bool,
) -> None:
    """
    Utility to upload and execute binaries over UART for Mediatek SoCs.

    Defaults for the port, load address and baud rates can also be set
    with the MTK_UARTBOOT_PORT, MTK_UARTBOOT_LOAD_ADDR,
    MTK_UARTBOOT_BROM_BAUDRATE and MTK_UARTBOOT_BL2_BAUDRATE environment
    variables.
    """
    setup_logging(verbose)

    if list_ports:
        show_ports()
        return

    if payload is None:
        raise click.UsageError("Missing option '-p' / '--payload'.")

    config = SessionConfig.from_env()
    overrides = {
        "serial": serial,
        "load_addr": load_addr,
        "brom_load_baudrate": brom_load_baudrate,
        "bl2_load_baudrate": bl2_load_baudrate,
    }
    config = dataclasses.replace(
        config,
        payload=payload,
        fip=fip,
        aarch64=aarch64,
        **{k: v for k, v in overrides.items() if v is not None},
    )

    if config.serial is None:
        config.serial = find_serial_port()
        if config.serial is None:
            click.echo("Error: No serial port specified and auto-detect failed.", err=True)
            click.echo("Use --serial or --list-ports to find available ports.", err=True)
            raise SystemExit(ExitCode.INVALID_ARGS)

    logger.debug("Session config: %s", config)

    try:
        completed = run_session(config, progress=progress_bar, echo=echo_device_line)
    except (UartBootError, OSError, ValueError) as e:
        handle_cli_exception(e, verbose)

    if not completed:
        raise SystemExit(ExitCode.INCOMPLETE)


# =============================================================================
# Entry Point
# =============================================================================

if __name__ == "__main__":
    main()
