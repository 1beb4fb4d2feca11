"""
Serial Port Utilities
=====================

MediaTek boards expose the BootROM on their debug UART, usually wired to
the host through a USB-serial adapter. This module finds such adapters
and opens them the way the BootROM expects.

Serial Port Settings
--------------------
The BootROM listens at 115200 baud, 8N1, without flow control. Faster
rates are negotiated later through the loader protocols themselves, so
any positive baud rate is accepted when opening a port.

Adapter Detection
-----------------
Ports are ranked by USB vendor: FTDI first, then Silicon Labs (the
chips found on most vendor debug boards), then any other USB-serial
adapter. Built-in UARTs are never picked automatically.
"""

import logging
from dataclasses import dataclass
from typing import Final, Optional

import serial
import serial.tools.list_ports

from mtk_uartboot.errors import ConnectionError

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Rate the BootROM uses after reset
DEFAULT_BAUD_RATE: Final[int] = 115200

# Default read timeout in seconds
DEFAULT_TIMEOUT: Final[float] = 2.0

# Known USB-serial bridge vendors, most preferred first
ADAPTER_VENDORS: Final[tuple[tuple[int, str], ...]] = (
    (0x0403, "FTDI"),
    (0x10C4, "Silicon Labs"),
    (0x1A86, "QinHeng"),      # CH340/CH341
    (0x067B, "Prolific"),     # PL2303
)

# Vendors picked ahead of other USB adapters by find_serial_port()
PREFERRED_VENDORS: Final[tuple[int, ...]] = (0x0403, 0x10C4)

# Hints for common open() failures, matched against the lowercased error
_OPEN_ERROR_HINTS: Final[tuple[tuple[str, str], ...]] = (
    ("permission denied",
     "Permission denied accessing {device}. Add your user to the 'dialout' "
     "group (sudo usermod -a -G dialout $USER) and log in again."),
    ("no such file",
     "Serial port not found: {device}. "
     "Run 'mtk-uartboot --list-ports' to see what is attached."),
    ("could not find",
     "Serial port not found: {device}. "
     "Run 'mtk-uartboot --list-ports' to see what is attached."),
    ("busy",
     "Serial port {device} is busy. Close the terminal program using it."),
    ("in use",
     "Serial port {device} is busy. Close the terminal program using it."),
)


# =============================================================================
# Port Information
# =============================================================================

@dataclass(frozen=True)
class PortInfo:
    """
    A serial port found on the host.

    Attributes:
        device: Device path ('/dev/ttyUSB0', 'COM3', ...)
        description: Driver description
        manufacturer: USB manufacturer string, if any
        product: USB product string, if any
        serial_number: USB serial number, if any
        vid: USB vendor ID, None for built-in UARTs
        pid: USB product ID, None for built-in UARTs
    """

    device: str
    description: str
    manufacturer: Optional[str]
    product: Optional[str]
    serial_number: Optional[str]
    vid: Optional[int]
    pid: Optional[int]

    @classmethod
    def from_comport(cls, port) -> "PortInfo":
        """Build from a pyserial ListPortInfo."""
        return cls(
            device=port.device,
            description=port.description or "",
            manufacturer=port.manufacturer,
            product=port.product,
            serial_number=port.serial_number,
            vid=port.vid,
            pid=port.pid,
        )

    @property
    def is_usb(self) -> bool:
        return self.vid is not None

    @property
    def vendor_name(self) -> Optional[str]:
        """Name of a known USB-serial vendor, else None."""
        return dict(ADAPTER_VENDORS).get(self.vid)

    @property
    def rank(self) -> int:
        """Detection preference; lower is better."""
        if self.vid in PREFERRED_VENDORS:
            return PREFERRED_VENDORS.index(self.vid)
        return len(PREFERRED_VENDORS)

    def details(self) -> list[str]:
        """Detail lines for verbose listings."""
        lines = []
        if self.description:
            lines.append(f"Description: {self.description}")
        if self.manufacturer:
            lines.append(f"Manufacturer: {self.manufacturer}")
        if self.is_usb:
            usb_id = f"USB VID:PID: {self.vid:04X}:{self.pid or 0:04X}"
            if self.vendor_name:
                usb_id += f" ({self.vendor_name})"
            lines.append(usb_id)
        if self.serial_number:
            lines.append(f"Serial: {self.serial_number}")
        return lines

    def __str__(self) -> str:
        text = self.device
        if self.description:
            text += f" - {self.description}"
        if self.vendor_name:
            text += f" ({self.vendor_name})"
        return text


# =============================================================================
# Enumeration and Detection
# =============================================================================

def list_serial_ports() -> list[PortInfo]:
    """Return every serial port pyserial can see."""
    ports = [PortInfo.from_comport(p) for p in serial.tools.list_ports.comports()]
    for info in ports:
        logger.debug(
            "Found port: %s (vid=%s, pid=%s)",
            info.device,
            f"{info.vid:04X}" if info.vid is not None else "N/A",
            f"{info.pid:04X}" if info.pid is not None else "N/A",
        )
    return ports


def find_serial_port() -> Optional[str]:
    """
    Guess which port the board is attached to.

    Returns:
        Device path of the best-ranked USB-serial adapter, or None if no
        USB adapter is present. Ties keep enumeration order.
    """
    candidates = [p for p in list_serial_ports() if p.is_usb]
    if not candidates:
        logger.debug("No USB serial adapter found")
        return None

    best = min(candidates, key=lambda p: p.rank)
    logger.info("Auto-detected port: %s (%s)", best.device,
                best.vendor_name or best.description)
    return best.device


def format_port_list(ports: list[PortInfo], verbose: bool = False) -> str:
    """
    Render ports for the terminal, one per line.

    With verbose, each port is followed by indented detail lines.
    """
    if not ports:
        return "No serial ports found."

    if not verbose:
        return "\n".join(f"  {port}" for port in ports)

    blocks = []
    for port in ports:
        blocks.append("\n".join(
            [f"  {port.device}"] + [f"    {line}" for line in port.details()]
        ))
    return "\n".join(blocks)


# =============================================================================
# Opening and Closing
# =============================================================================

def _open_error_message(device: str, error: Exception) -> str:
    text = str(error).lower()
    for needle, template in _OPEN_ERROR_HINTS:
        if needle in text:
            return template.format(device=device)
    return f"Cannot open {device}: {error}"


def open_serial_port(
    device: str,
    baud_rate: int = DEFAULT_BAUD_RATE,
    timeout: float = DEFAULT_TIMEOUT,
) -> serial.Serial:
    """
    Open a port for talking to the BootROM.

    Args:
        device: Device path.
        baud_rate: Initial rate; the BootROM starts at 115200.
        timeout: Read timeout in seconds. The engines override it per
                 operation.

    Returns:
        The opened port. The caller closes it.

    Raises:
        ValueError: If baud_rate is not positive.
        ConnectionError: If the port cannot be opened.
    """
    if baud_rate <= 0:
        raise ValueError(f"Invalid baud rate: {baud_rate}")

    logger.info("Opening serial port: %s at %d baud", device, baud_rate)
    try:
        port = serial.Serial(
            port=device,
            baudrate=baud_rate,
            bytesize=serial.EIGHTBITS,
            parity=serial.PARITY_NONE,
            stopbits=serial.STOPBITS_ONE,
            timeout=timeout,
            xonxoff=False,
            rtscts=False,
            dsrdtr=False,
        )
    except serial.SerialException as e:
        raise ConnectionError(_open_error_message(device, e)) from e

    return port


def close_serial_port(port: Optional[serial.Serial]) -> None:
    """Close a port if it is open; failures are only logged."""
    if port is None or not port.is_open:
        return
    try:
        port.close()
    except (serial.SerialException, OSError) as e:
        logger.warning("Error closing serial port: %s", e)
    else:
        logger.debug("Serial port closed")
