"""
MediaTek UART Boot Communication Module
=======================================

This module implements the two loader protocols used to boot a MediaTek
SoC over its debug UART:

- **BootROM**: the mask-ROM loader, which receives a download agent
  (typically a BL2 with UART download support) and jumps to it
- **BL2**: the second stage, which receives a firmware image package
  (FIP) at a higher, negotiated baud rate and boots it

Module Structure
----------------
- **checksum**: 16-bit additive checksum for FIP packets
- **link**: Echo-acknowledged link primitives shared by both stages
- **bootrom**: BootROM command set
- **bl2**: BL2 command set and adaptive FIP transfer
- **console**: Scanning the device's text log between stages
- **serial**: Serial port utilities (detection, configuration)

Quick Start
-----------
    from mtk_uartboot.comms import BootROM, BL2, open_serial_port, wait_for_line

    port = open_serial_port('/dev/ttyUSB0')
    brom = BootROM(port)
    brom.handshake()
    brom.get_target_config().check()
    brom.send_da(0x201000, 0, bl2_image)
    brom.jump_da64(0x201000)

    port = brom.release()
    if wait_for_line(port, BL2_HANDSHAKE_BANNER):
        bl2 = BL2(port)
        bl2.handshake()
        bl2.send_fip(fip_image)
        bl2.go()

Error Handling
--------------
All communication errors inherit from `CommsError`, defined in
`mtk_uartboot.errors`. Apart from handshake retries and FIP packet
retransmission, every error ends the session.

Thread Safety
-------------
The engines are NOT thread-safe. Exactly one engine owns the serial port
at a time; `release()` hands it to the next one.
"""

# =============================================================================
# Public API Exports
# =============================================================================

# Checksum utilities
from mtk_uartboot.comms.checksum import (
    checksum_combine,
    checksum_fold,
    checksum_from_bytes,
    checksum_partial,
    checksum_to_bytes,
    fip_checksum,
)

# Link primitives
from mtk_uartboot.comms.link import (
    SYNC_SETTLE_DELAY,
    ProgressCallback,
    SerialLink,
)

# BootROM protocol
from mtk_uartboot.comms.bootrom import (
    BROM_HANDSHAKE,
    BROM_HANDSHAKE_RESPONSE,
    CMD_GET_HW_CODE,
    CMD_GET_HW_DICT,
    CMD_GET_TARGET_CONFIG,
    CMD_JUMP_DA,
    CMD_JUMP_DA64,
    CMD_SEND_DA,
    BootROM,
    HwDict,
    TargetConfig,
)

# BL2 protocol
from mtk_uartboot.comms.bl2 import (
    BL2_HANDSHAKE_REQUEST,
    BL2_HANDSHAKE_RESPONSE,
    INITIAL_PACKET_SIZE,
    MAX_PACKET_SIZE,
    PACKET_SIZE_DOUBLING_LIMIT,
    PACKET_SIZE_STEP,
    BL2,
    next_packet_size,
)

# Console scanning
from mtk_uartboot.comms.console import (
    BL2_FIP_RECEIVED_BANNER,
    BL2_HANDSHAKE_BANNER,
    LineCallback,
    wait_for_line,
)

# Serial port utilities
from mtk_uartboot.comms.serial import (
    DEFAULT_BAUD_RATE,
    DEFAULT_TIMEOUT,
    PortInfo,
    close_serial_port,
    find_serial_port,
    format_port_list,
    list_serial_ports,
    open_serial_port,
)

__all__ = [
    # Checksum
    "fip_checksum",
    "checksum_partial",
    "checksum_fold",
    "checksum_combine",
    "checksum_to_bytes",
    "checksum_from_bytes",
    # Link
    "SYNC_SETTLE_DELAY",
    "ProgressCallback",
    "SerialLink",
    # BootROM
    "BROM_HANDSHAKE",
    "BROM_HANDSHAKE_RESPONSE",
    "CMD_GET_HW_CODE",
    "CMD_GET_HW_DICT",
    "CMD_GET_TARGET_CONFIG",
    "CMD_SEND_DA",
    "CMD_JUMP_DA",
    "CMD_JUMP_DA64",
    "BootROM",
    "HwDict",
    "TargetConfig",
    # BL2
    "BL2_HANDSHAKE_REQUEST",
    "BL2_HANDSHAKE_RESPONSE",
    "INITIAL_PACKET_SIZE",
    "PACKET_SIZE_DOUBLING_LIMIT",
    "PACKET_SIZE_STEP",
    "MAX_PACKET_SIZE",
    "BL2",
    "next_packet_size",
    # Console
    "BL2_HANDSHAKE_BANNER",
    "BL2_FIP_RECEIVED_BANNER",
    "LineCallback",
    "wait_for_line",
    # Serial
    "DEFAULT_BAUD_RATE",
    "DEFAULT_TIMEOUT",
    "PortInfo",
    "list_serial_ports",
    "find_serial_port",
    "format_port_list",
    "open_serial_port",
    "close_serial_port",
]
