"""
mtk-uartboot - UART Boot Loader for MediaTek SoCs
=================================================

This package uploads and executes binaries over the debug UART of
MediaTek SoCs (MT7981, MT7986, MT7988 and relatives), without touching
the on-board flash.

Booting happens in two stages:

1. The mask-ROM **BootROM** receives a download agent, usually a BL2
   built with UART download support, and jumps to it.
2. That **BL2** then receives a firmware image package (FIP) at a
   higher baud rate and boots it.

Main Components
---------------
- **comms**: Protocol engines for both stages, checksum, log scanning
  and serial port utilities
- **config**: Session configuration (defaults, environment variables)
- **session**: Orchestration of a complete boot
- **cli**: The `mtk-uartboot` command

Quick Start
-----------
    >>> from mtk_uartboot import SessionConfig, run_session
    >>> config = SessionConfig(serial="/dev/ttyUSB0", payload="bl2.bin",
    ...                        aarch64=True, fip="fip.bin")
    >>> run_session(config)

Or from the command line:
    $ mtk-uartboot -s /dev/ttyUSB0 -p bl2.bin -a -f fip.bin
"""

__version__ = "0.1.0"

# =============================================================================
# Public API Exports
# =============================================================================

from mtk_uartboot.comms import (
    BL2,
    BootROM,
    HwDict,
    TargetConfig,
    fip_checksum,
    find_serial_port,
    list_serial_ports,
    open_serial_port,
    close_serial_port,
    wait_for_line,
)
from mtk_uartboot.config import SessionConfig, parse_int
from mtk_uartboot.errors import (
    UartBootError,
    CommsError,
    ConnectionError as UartBootConnectionError,  # Avoid collision with builtin
    TimeoutError as UartBootTimeoutError,  # Avoid collision with builtin
    ProtocolError,
    EchoMismatchError,
    DeviceStatusError,
    TransferError,
    SecurityConfigError,
)
from mtk_uartboot.session import load_bl2, load_fip, run_session, wait_bl2_handshake

__all__ = [
    "__version__",
    # Protocol engines
    "BootROM",
    "BL2",
    "HwDict",
    "TargetConfig",
    "fip_checksum",
    "wait_for_line",
    # Serial ports
    "list_serial_ports",
    "find_serial_port",
    "open_serial_port",
    "close_serial_port",
    # Configuration
    "SessionConfig",
    "parse_int",
    # Session
    "run_session",
    "load_bl2",
    "wait_bl2_handshake",
    "load_fip",
    # Exception hierarchy
    "UartBootError",
    "CommsError",
    "UartBootConnectionError",
    "UartBootTimeoutError",
    "ProtocolError",
    "EchoMismatchError",
    "DeviceStatusError",
    "TransferError",
    "SecurityConfigError",
]
