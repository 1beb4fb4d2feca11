"""
BL2 UART Download Protocol
==========================

This module drives the UART download mode of a MediaTek BL2 (ARM
Trusted Firmware second stage) to receive a firmware image package (FIP).
Once BL2 prints "Starting UART download handshake" it listens for this
protocol on the same serial line the BootROM used.

Protocol Overview
-----------------
1. **Handshake**: Send "mudl" one byte at a time; BL2 answers each byte
   with the matching byte of "TF-A"
2. **Version**: Query the download protocol version
3. **Baud rate** (optional): Switch to a faster rate, then handshake again
4. **Transfer**: Send the FIP as a series of checksummed packets
5. **Go**: Tell BL2 to boot the received FIP

Command Format
--------------
Opcodes and argument fields are echoed back by BL2, as on the BootROM:

    Opcode  Command        Arguments
    ------  -------------  -------------------------------------------
    1       version        -                 -> version:u8
    2       set baud rate  rate:u32
    3       send FIP       total_length:u32  followed by packets
    4       go             -

Packet Format
-------------
    ┌───────────┬───────────┬────────────┬────────────┐
    │ index u32 │ length u16│ csum u16   │ raw data   │
    │  (echoed) │  (echoed) │  (echoed)  │ (not echo) │
    └───────────┴───────────┴────────────┴────────────┘

After the raw data BL2 replies with the index and checksum it saw
(u32 + u16). The packet is accepted only if both match; otherwise the
same packet is sent again.

Packet sizes start small and grow after each accepted packet: doubling
up to 32 KiB, then +1 KiB steps up to 63 KiB. A failed packet keeps its
index and size, so a retransmission never costs more than one packet.
"""

import logging
from typing import Final, Optional

from mtk_uartboot.comms.checksum import fip_checksum
from mtk_uartboot.comms.link import ProgressCallback, SerialLink
from mtk_uartboot.errors import TransferError

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# BL2 Protocol Constants
# =============================================================================

# Handshake probe and the answer BL2 gives for each byte
BL2_HANDSHAKE_REQUEST: Final[bytes] = b"mudl"
BL2_HANDSHAKE_RESPONSE: Final[bytes] = b"TF-A"

# Command opcodes
CMD_VERSION: Final[int] = 1
CMD_SET_BAUDRATE: Final[int] = 2
CMD_SEND_FIP: Final[int] = 3
CMD_GO: Final[int] = 4

# Packet size ramp
INITIAL_PACKET_SIZE: Final[int] = 128
PACKET_SIZE_DOUBLING_LIMIT: Final[int] = 32768
PACKET_SIZE_STEP: Final[int] = 1024
MAX_PACKET_SIZE: Final[int] = 65536 - PACKET_SIZE_STEP


def next_packet_size(size: int) -> int:
    """
    Return the packet size to use after a successfully sent packet.

    Example:
        >>> next_packet_size(128)
        256
        >>> next_packet_size(32768)
        33792
        >>> next_packet_size(MAX_PACKET_SIZE) == MAX_PACKET_SIZE
        True
    """
    if size < PACKET_SIZE_DOUBLING_LIMIT:
        return size * 2
    if size < MAX_PACKET_SIZE:
        return size + PACKET_SIZE_STEP
    return size


# =============================================================================
# BL2 Engine
# =============================================================================

class BL2(SerialLink):
    """
    Second-stage protocol engine.

    Usage:
        bl2 = BL2(port)
        bl2.handshake()
        version = bl2.version()
        bl2.set_baudrate(921600)
        bl2.handshake()           # required after every baud rate change
        bl2.send_fip(fip_data)
        bl2.go()
        port = bl2.release()
    """

    # Read timeout for each handshake byte
    HANDSHAKE_TIMEOUT: Final[float] = 0.5

    # Read timeout during FIP transfer
    TRANSFER_TIMEOUT: Final[float] = 2.0

    # Poll interval while a packet drains out of the transmit buffer
    TX_POLL_INTERVAL: Final[float] = 0.05

    def handshake(self, max_attempts: Optional[int] = None) -> None:
        """
        Synchronize with BL2.

        Args:
            max_attempts: Optional bound on probe bytes sent.

        Raises:
            ConnectionError: If max_attempts was reached.
        """
        self._sync(
            BL2_HANDSHAKE_REQUEST,
            BL2_HANDSHAKE_RESPONSE,
            self.HANDSHAKE_TIMEOUT,
            max_attempts,
        )
        logger.info("BL2 handshake complete")

    def version(self) -> int:
        """Return the BL2 UART download protocol version."""
        self.echo_byte(CMD_VERSION)
        return self.read_byte()

    def set_baudrate(self, baudrate: int) -> None:
        """
        Switch BL2 and the local port to another baud rate.

        BL2 restarts its UART after the switch, so handshake() has to be
        called again before the next command.
        """
        self.echo_byte(CMD_SET_BAUDRATE)
        self.echo_be32(baudrate)
        self.set_port_baudrate(baudrate)
        logger.debug("BL2 baud rate switched to %d, handshake required", baudrate)

    def send_fip_packet(self, index: int, chunk: bytes) -> bool:
        """
        Send one FIP packet and check BL2's verdict.

        Args:
            index: Packet index.
            chunk: Packet payload (at most MAX_PACKET_SIZE bytes).

        Returns:
            True if BL2 reported the same index and checksum.
        """
        checksum = fip_checksum(chunk)
        self.echo_be32(index)
        self.echo_be16(len(chunk))
        self.echo_be16(checksum)
        self.write_raw(chunk)
        self.wait_tx_drained(self.TX_POLL_INTERVAL)

        received_index = self.read_be32()
        received_checksum = self.read_be16()
        if received_index != index:
            logger.warning("Incorrect packet index: %d != %d", index, received_index)
            return False
        if received_checksum != checksum:
            logger.warning(
                "Incorrect checksum: 0x%04X != 0x%04X", received_checksum, checksum
            )
            return False

        logger.debug("Packet %d accepted: %d bytes, checksum 0x%04X",
                     index, len(chunk), checksum)
        return True

    def send_fip(
        self,
        buffer: bytes,
        progress: Optional[ProgressCallback] = None,
        max_retries: Optional[int] = None,
    ) -> int:
        """
        Transfer a FIP image.

        Args:
            buffer: FIP image.
            progress: Optional callback (bytes_done, total_bytes), invoked
                      after each accepted packet.
            max_retries: Retransmissions allowed for a single packet before
                         giving up. None retries forever.

        Returns:
            Number of packets accepted.

        Raises:
            TransferError: If max_retries was exceeded.
        """
        total = len(buffer)
        self._set_timeout(self.TRANSFER_TIMEOUT)
        self.echo_byte(CMD_SEND_FIP)
        self.echo_be32(total)
        logger.info("Sending FIP (%d bytes)", total)

        index = 0
        offset = 0
        size = INITIAL_PACKET_SIZE

        while total - offset > size:
            self._send_until_accepted(index, buffer[offset:offset + size], max_retries)
            index += 1
            offset += size
            size = next_packet_size(size)
            if progress:
                progress(offset, total)

        self._send_until_accepted(index, buffer[offset:], max_retries)
        if progress:
            progress(total, total)

        logger.info("FIP sent in %d packets", index + 1)
        return index + 1

    def _send_until_accepted(
        self,
        index: int,
        chunk: bytes,
        max_retries: Optional[int],
    ) -> None:
        """Retransmit one packet unchanged until BL2 accepts it."""
        failures = 0
        while not self.send_fip_packet(index, chunk):
            failures += 1
            if max_retries is not None and failures > max_retries:
                raise TransferError(
                    f"Packet {index} rejected {failures} times, giving up"
                )
            logger.debug("Retrying packet %d (attempt %d)", index, failures + 1)

    def go(self) -> None:
        """Tell BL2 to boot the received FIP; BL2 prints its log afterwards."""
        self.echo_byte(CMD_GO)
        logger.info("BL2 executing FIP")
