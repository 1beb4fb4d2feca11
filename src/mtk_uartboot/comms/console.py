"""
Console Log Scanning
====================

After a jump, the serial line stops carrying protocol bytes and carries
the plain-text log of whatever is now running on the device. The boot
flow uses that log as a gate: BL2 announces "Starting UART download
handshake" before it listens for the FIP, and prints "Received FIP"
once the image has been accepted.
"""

import logging
from typing import TYPE_CHECKING, Callable, Final, Optional

from mtk_uartboot.comms.link import TRANSPORT_ERRORS
from mtk_uartboot.errors import ConnectionError

if TYPE_CHECKING:
    from serial import Serial

# Configure module logger
logger = logging.getLogger(__name__)

# Log line printed by BL2 before it expects the "mudl" handshake
BL2_HANDSHAKE_BANNER: Final[str] = "Starting UART download handshake"

# Log line printed by BL2 after it has accepted the FIP
BL2_FIP_RECEIVED_BANNER: Final[str] = "Received FIP"

# Type alias for line output callback
LineCallback = Callable[[str], None]


def _log_line(line: str) -> None:
    logger.info("%s", line.rstrip("\r\n"))


def wait_for_line(
    port: "Serial",
    pattern: str,
    echo: Optional[LineCallback] = None,
    timeout: Optional[float] = None,
) -> bool:
    """
    Read device log lines until one contains `pattern`.

    Every line read, including the matching one, is passed to `echo`.
    A read that returns nothing means the device went quiet for a whole
    read timeout, which ends the scan.

    Args:
        port: Serial port the device log arrives on.
        pattern: Substring to look for.
        echo: Callback receiving each decoded line (with line ending).
              Defaults to logging at INFO level.
        timeout: If given, set as the port read timeout first.

    Returns:
        True if a matching line was seen, False if the device went quiet.
    """
    if echo is None:
        echo = _log_line
    try:
        if timeout is not None:
            port.timeout = timeout
    except TRANSPORT_ERRORS as e:
        raise ConnectionError(f"failed to set read timeout: {e}") from e

    while True:
        try:
            raw = port.readline()
        except TRANSPORT_ERRORS as e:
            raise ConnectionError(f"failed to read from port: {e}") from e
        if not raw:
            logger.debug("No more output while waiting for %r", pattern)
            return False

        line = raw.decode("utf-8", errors="replace")
        echo(line)
        if pattern in line:
            return True
