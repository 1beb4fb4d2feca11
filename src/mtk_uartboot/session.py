"""
UART Boot Session
=================

This module sequences a complete boot over UART:

1. Open the serial port at the BootROM rate
2. **BootROM stage**: handshake, identify, check security configuration,
   upload the payload (usually a BL2 with UART download support) at a
   faster rate, return to 115200 and jump to it
3. Wait for BL2 to print "Starting UART download handshake"
4. **BL2 stage** (only with a FIP): handshake, switch baud rate, send
   the FIP, tell BL2 to boot it and wait for "Received FIP"

The serial port passes from one engine to the next through explicit
`release()` calls, so no two stages can ever talk on it at once.
"""

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Final, Optional

from mtk_uartboot.comms.bl2 import BL2
from mtk_uartboot.comms.bootrom import BootROM
from mtk_uartboot.comms.console import (
    BL2_FIP_RECEIVED_BANNER,
    BL2_HANDSHAKE_BANNER,
    LineCallback,
    wait_for_line,
)
from mtk_uartboot.comms.link import ProgressCallback
from mtk_uartboot.comms.serial import close_serial_port, open_serial_port
from mtk_uartboot.config import SessionConfig
from mtk_uartboot.errors import ConnectionError

if TYPE_CHECKING:
    from serial import Serial

logger = logging.getLogger(__name__)

# Printed around device log output
LOG_SEPARATOR: Final[str] = "=" * 34


def load_bl2(
    port: "Serial",
    config: SessionConfig,
    payload: bytes,
    progress: Optional[ProgressCallback] = None,
) -> "Serial":
    """
    Run the BootROM stage: upload `payload` and jump to it.

    Args:
        port: Serial port at the BootROM rate.
        config: Session configuration (load address, rates, AArch64).
        payload: Download agent image.
        progress: Optional progress callback for the upload.

    Returns:
        The serial port, released by the BootROM engine.

    Raises:
        SecurityConfigError: If the target requires signed images.
        CommsError: On any protocol or device failure.
    """
    brom = BootROM(port)
    brom.handshake()

    hw_code = brom.get_hw_code()
    logger.info("hw code: 0x%x", hw_code)
    hw_dict = brom.get_hw_dict()
    logger.info("hw sub code: 0x%x", hw_dict.hw_sub_code)
    logger.info("hw ver: 0x%x", hw_dict.hw_ver)
    logger.info("sw ver: 0x%x", hw_dict.sw_ver)

    brom.get_target_config().check()

    brom.set_baudrate(config.brom_load_baudrate)
    logger.info("Sending payload to 0x%x...", config.load_addr)
    checksum = brom.send_da(config.load_addr, 0, payload, progress)
    logger.info("Checksum: 0x%x", checksum)

    logger.info("Setting baudrate back to %d", config.initial_baudrate)
    brom.set_baudrate(config.initial_baudrate)

    if config.aarch64:
        brom.jump_da64(config.load_addr)
    else:
        brom.jump_da(config.load_addr)

    return brom.release()


def scan_log(
    port: "Serial",
    pattern: str,
    echo: Optional[LineCallback] = None,
    timeout: Optional[float] = None,
) -> bool:
    """Show the device log between separators until `pattern` appears."""
    if echo:
        echo(LOG_SEPARATOR)
    found = wait_for_line(port, pattern, echo=echo, timeout=timeout)
    if echo:
        echo(LOG_SEPARATOR)
    if not found:
        logger.warning("Timeout waiting for specified message.")
    return found


def wait_bl2_handshake(
    port: "Serial",
    timeout: float,
    echo: Optional[LineCallback] = None,
) -> bool:
    """Wait until BL2 announces its UART download handshake."""
    logger.info("Waiting for BL2. Message below:")
    return scan_log(port, BL2_HANDSHAKE_BANNER, echo=echo, timeout=timeout)


def load_fip(
    port: "Serial",
    baudrate: int,
    fip: bytes,
    progress: Optional[ProgressCallback] = None,
    echo: Optional[LineCallback] = None,
) -> bool:
    """
    Run the BL2 stage: send `fip` at `baudrate` and boot it.

    Returns:
        True if BL2 confirmed reception of the FIP in its log.
    """
    bl2 = BL2(port)
    bl2.handshake()
    logger.info("BL2 UART DL version: 0x%x", bl2.version())
    bl2.set_baudrate(baudrate)
    bl2.handshake()
    logger.info("Baudrate set to: %d", baudrate)

    bl2.send_fip(fip, progress=progress)
    logger.info("FIP sent.")
    bl2.go()

    return scan_log(bl2.release(), BL2_FIP_RECEIVED_BANNER, echo=echo)


def run_session(
    config: SessionConfig,
    progress: Optional[ProgressCallback] = None,
    echo: Optional[LineCallback] = None,
) -> bool:
    """
    Boot a device over UART as described by `config`.

    Input files are read before the port is opened so that a missing
    file fails before the device is touched.

    Returns:
        True if every stage completed; False if BL2 never printed an
        expected milestone.

    Raises:
        FileNotFoundError: If the payload or FIP file is missing.
        CommsError: On any serial, protocol or device failure.
    """
    if config.serial is None:
        raise ConnectionError("No serial port specified")
    if config.payload is None:
        raise ValueError("No payload specified")

    payload = Path(config.payload).read_bytes()
    fip = Path(config.fip).read_bytes() if config.fip is not None else None
    logger.debug("Payload %s: %d bytes", config.payload, len(payload))

    port = open_serial_port(config.serial, baud_rate=config.initial_baudrate)
    try:
        port = load_bl2(port, config, payload, progress)
        if fip is None:
            return True

        if not wait_bl2_handshake(port, config.line_timeout, echo):
            return False
        return load_fip(port, config.bl2_load_baudrate, fip, progress, echo)
    finally:
        close_serial_port(port)
