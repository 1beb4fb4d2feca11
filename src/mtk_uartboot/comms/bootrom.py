"""
MediaTek BootROM UART Download Protocol
=======================================

This module drives the ROM-resident first-stage loader of MediaTek SoCs
over UART. The BootROM accepts a raw download-agent (DA) image into RAM
and jumps to it; here the "download agent" is usually a BL2 built with
UART download support.

Protocol Overview
-----------------
1. **Handshake**: Send A0 0A 50 05 one byte at a time; the BootROM
   answers each byte with its bitwise complement (5F F5 AF FA)
2. **Identify**: Query hardware code, hardware/software versions and the
   target configuration (security flags)
3. **Install**: Upload the DA (echoed header, raw data stream, device
   checksum)
4. **Execute**: Jump to the DA in AArch32 or AArch64 state

Command Format
--------------
Every opcode and argument field is echoed back by the BootROM. Results
are big-endian integers followed by a 16-bit status word:

    Opcode  Command            Arguments                  Response
    ------  -----------------  -------------------------  ----------------------
    0xFD    get hw code        -                          code:u16 status:u16
    0xFC    get hw dict        -                          sub:u16 hw:u16 sw:u16 status:u16
    0xD8    get target config  -                          config:u32 status:u16
    0xDC    set baud rate      rate:u32                   status:u16
    0xD7    send DA            addr:u32 len:u32 sig:u32   status:u16 [data] csum:u16 status:u16
    0xD5    jump DA            addr:u32                   status:u16
    0xDE    jump DA (64-bit)   addr:u32 1                 status:u16, then 100 -> status:u16

The DA checksum is computed by the device and returned for reporting
only; unlike the BL2 FIP path the host does not verify it.
"""

import logging
import time
from typing import Final, NamedTuple, Optional

from mtk_uartboot.comms.link import ProgressCallback, SerialLink
from mtk_uartboot.errors import SecurityConfigError

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# BootROM Protocol Constants
# =============================================================================

# Handshake probe; the BootROM answers with the complement of each byte
BROM_HANDSHAKE: Final[bytes] = bytes([0xA0, 0x0A, 0x50, 0x05])
BROM_HANDSHAKE_RESPONSE: Final[bytes] = bytes(~b & 0xFF for b in BROM_HANDSHAKE)

# Command opcodes
CMD_GET_HW_CODE: Final[int] = 0xFD
CMD_GET_HW_DICT: Final[int] = 0xFC
CMD_GET_TARGET_CONFIG: Final[int] = 0xD8
CMD_SET_BAUDRATE: Final[int] = 0xDC
CMD_SEND_DA: Final[int] = 0xD7
CMD_JUMP_DA: Final[int] = 0xD5
CMD_JUMP_DA64: Final[int] = 0xDE

# jump_da64 arguments: execution width marker and the magic number the
# BootROM checks before resetting the CPU into AArch64
JUMP_DA64_WIDTH_64BIT: Final[int] = 1
JUMP_DA64_MAGIC: Final[int] = 100

# Target configuration bits
TARGET_CONFIG_SBC: Final[int] = 0x01
TARGET_CONFIG_SLA: Final[int] = 0x02
TARGET_CONFIG_DAA: Final[int] = 0x04


# =============================================================================
# Result Types
# =============================================================================

class HwDict(NamedTuple):
    """Hardware and software versions reported by the BootROM."""

    hw_sub_code: int
    hw_ver: int
    sw_ver: int


class TargetConfig(NamedTuple):
    """
    Security configuration reported by the BootROM.

    Any of these flags means the device only accepts signed download
    agents, which this tool does not produce.

    Attributes:
        secure_boot: Secure boot check enabled (bit 0)
        serial_link_authorization: SLA enabled (bit 1)
        download_agent_authorization: DAA enabled (bit 2)
        raw: Full bitmask as returned by the device
    """

    secure_boot: bool
    serial_link_authorization: bool
    download_agent_authorization: bool
    raw: int = 0

    @classmethod
    def from_bitmask(cls, value: int) -> "TargetConfig":
        """Decode the 32-bit target configuration word."""
        return cls(
            secure_boot=bool(value & TARGET_CONFIG_SBC),
            serial_link_authorization=bool(value & TARGET_CONFIG_SLA),
            download_agent_authorization=bool(value & TARGET_CONFIG_DAA),
            raw=value,
        )

    @property
    def any_enabled(self) -> bool:
        """Return True if the device requires any kind of authentication."""
        return (
            self.secure_boot
            or self.serial_link_authorization
            or self.download_agent_authorization
        )

    def check(self) -> None:
        """
        Require an unsecured target.

        Raises:
            SecurityConfigError: If any security flag is set.
        """
        if self.any_enabled:
            raise SecurityConfigError(self)


# =============================================================================
# BootROM Engine
# =============================================================================

class BootROM(SerialLink):
    """
    First-stage protocol engine.

    The session is linear: handshake, identify, install, execute. Any
    error raised by a method leaves the BootROM in an unknown state; the
    device has to be reset and the session started again.

    Example:
        port = open_serial_port('/dev/ttyUSB0')
        brom = BootROM(port)
        brom.handshake()
        brom.get_target_config().check()
        brom.send_da(0x201000, 0, payload)
        brom.jump_da64(0x201000)
        port = brom.release()
    """

    # Read timeout for each handshake probe
    HANDSHAKE_TIMEOUT: Final[float] = 0.005

    # Read timeout applied before every echo
    ECHO_TIMEOUT = 0.1

    # Poll interval while the DA image drains out of the transmit buffer
    TX_POLL_INTERVAL: Final[float] = 0.2

    # Settle time after switching baud rate
    BAUDRATE_SETTLE_DELAY: Final[float] = 0.1

    def handshake(self, max_attempts: Optional[int] = None) -> None:
        """
        Synchronize with the BootROM.

        Blocks until the device answers all four probe bytes, which allows
        starting the tool before the board is powered on.

        Args:
            max_attempts: Optional bound on probe bytes sent.

        Raises:
            ConnectionError: If max_attempts was reached.
        """
        logger.info("Handshake...")
        self._sync(
            BROM_HANDSHAKE,
            BROM_HANDSHAKE_RESPONSE,
            self.HANDSHAKE_TIMEOUT,
            max_attempts,
        )
        logger.info("BootROM handshake complete")

    def get_hw_code(self) -> int:
        """Return the 16-bit hardware (SoC) code."""
        self.echo_byte(CMD_GET_HW_CODE)
        code = self.read_be16()
        self.expect_status("get_hw_code")
        return code

    def get_hw_dict(self) -> HwDict:
        """Return hardware sub code, hardware version and software version."""
        self.echo_byte(CMD_GET_HW_DICT)
        hw_sub_code = self.read_be16()
        hw_ver = self.read_be16()
        sw_ver = self.read_be16()
        self.expect_status("get_hw_dict")
        return HwDict(hw_sub_code, hw_ver, sw_ver)

    def get_target_config(self) -> TargetConfig:
        """Return the decoded security configuration of the target."""
        self.echo_byte(CMD_GET_TARGET_CONFIG)
        bitmask = self.read_be32()
        self.expect_status("get_target_config")
        config = TargetConfig.from_bitmask(bitmask)
        logger.debug("Target config: 0x%08X", bitmask)
        return config

    def set_baudrate(self, baudrate: int) -> None:
        """
        Switch the BootROM UART to another baud rate.

        The local port follows once the device has accepted the rate.

        Args:
            baudrate: New baud rate.
        """
        self.echo_byte(CMD_SET_BAUDRATE)
        self.echo_be32(baudrate)
        self.expect_status("set_baudrate")
        self.set_port_baudrate(baudrate)
        time.sleep(self.BAUDRATE_SETTLE_DELAY)
        self._flush_input()
        logger.info("Baud rate set to %d", baudrate)

    def send_da(
        self,
        address: int,
        signature_length: int,
        buffer: bytes,
        progress: Optional[ProgressCallback] = None,
    ) -> int:
        """
        Upload a download agent into device RAM.

        Args:
            address: Load address.
            signature_length: Bytes of signature at the end of buffer.
            buffer: DA image including any signature.
            progress: Optional callback, invoked once the image has been
                      written out.

        Returns:
            Checksum computed by the device over the received image.

        Raises:
            ValueError: If signature_length exceeds the buffer size.
            DeviceStatusError: If the device rejects the header or the data.
        """
        if not 0 <= signature_length <= len(buffer):
            raise ValueError(
                f"Signature length {signature_length} exceeds DA size {len(buffer)}"
            )

        logger.info("Sending DA to 0x%08X (%d bytes)", address, len(buffer))
        self.echo_byte(CMD_SEND_DA)
        self.echo_be32(address)
        self.echo_be32(len(buffer) - signature_length)
        self.echo_be32(signature_length)
        self.expect_status("send_da")

        self.write_raw(buffer)
        self.wait_tx_drained(self.TX_POLL_INTERVAL)
        if progress:
            progress(len(buffer), len(buffer))

        checksum = self.read_be16()
        self.expect_status("send_da")
        logger.info("DA checksum: 0x%04X", checksum)
        return checksum

    def jump_da(self, address: int) -> None:
        """Start the DA at `address` in AArch32 state."""
        logger.info("Jumping to 0x%08X in aarch32...", address)
        self.echo_byte(CMD_JUMP_DA)
        self.echo_be32(address)
        self.expect_status("jump_da")

    def jump_da64(self, address: int) -> None:
        """Start the DA at `address` in AArch64 state."""
        logger.info("Jumping to 0x%08X in aarch64...", address)
        self.echo_byte(CMD_JUMP_DA64)
        self.echo_be32(address)
        self.echo_byte(JUMP_DA64_WIDTH_64BIT)
        self.expect_status("jump_da64")
        self.echo_byte(JUMP_DA64_MAGIC)
        self.expect_status("jump_da64 magic")
