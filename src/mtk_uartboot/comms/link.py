"""
Echo-Acknowledged Serial Link
=============================

This module implements the primitives shared by the BootROM and BL2
download protocols. Both protocols are plain byte streams without any
framing; acknowledgment is done by echo:

- Every command byte and every argument field the host sends is
  immediately sent back by the device, byte for byte
- A readback that differs from what was sent means the two sides are
  out of step (or the line corrupted data) and the session is over
- Results come back as raw big-endian integers, usually followed by a
  16-bit status word where zero means success

Synchronization
---------------
Before any command, the host synchronizes with the device by sending a
fixed 4-byte probe one byte at a time. Each probe byte must be answered
with the matching byte of an expected response; a wrong or missing
answer retries the same probe byte. Once all positions have matched,
the host waits 200 ms and discards whatever the device printed while
it switched modes.

Port Ownership
--------------
A SerialLink owns its serial port exclusively. Handing the port to the
next stage is explicit: `release()` returns the port and leaves the old
engine unable to touch it.

    brom = BootROM(port)
    ...
    port = brom.release()
    bl2 = BL2(port)

Transport Contract
------------------
The port is a `serial.Serial`, or any object offering the same members:
`timeout` and `baudrate` attributes, `write()`, `read(n)`,
`reset_input_buffer()` and the `out_waiting` pending-write count. Any
pyserial or OS error raised by one of them surfaces as ConnectionError.
"""

import logging
import time
from typing import TYPE_CHECKING, Callable, Final, Optional

import serial

from mtk_uartboot.errors import (
    ConnectionError,
    DeviceStatusError,
    EchoMismatchError,
    TimeoutError,
)

if TYPE_CHECKING:
    from serial import Serial

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Delay after a completed handshake before flushing the input buffer
SYNC_SETTLE_DELAY: Final[float] = 0.2

# Failures a port can raise once the adapter is gone (OSError from ioctl)
TRANSPORT_ERRORS: Final = (serial.SerialException, OSError)

# Type alias for progress callback: (bytes_done, total_bytes) -> None
ProgressCallback = Callable[[int, int], None]


# =============================================================================
# Link Base Class
# =============================================================================

class SerialLink:
    """
    Base class for the echo-acknowledged download protocols.

    Subclasses implement the command set of one loader stage and use
    the primitives here for all I/O.

    Attributes:
        ECHO_TIMEOUT: Read timeout applied before each echo, or None to
                      keep the port's current timeout.

    Thread Safety
    -------------
    This class is NOT thread-safe. A boot session is strictly sequential.
    """

    ECHO_TIMEOUT: Optional[float] = None

    def __init__(self, port: "Serial"):
        """
        Take ownership of an opened serial port.

        Args:
            port: Opened serial port. The port is used exclusively by this
                  object until release() is called.
        """
        self._port: Optional["Serial"] = port

    # -------------------------------------------------------------------------
    # Port Ownership
    # -------------------------------------------------------------------------

    @property
    def port(self) -> "Serial":
        """The owned serial port."""
        if self._port is None:
            raise ConnectionError(
                f"{type(self).__name__} has released its serial port"
            )
        return self._port

    @property
    def released(self) -> bool:
        """Return True once the port has been handed off."""
        return self._port is None

    def release(self) -> "Serial":
        """
        Hand the serial port to the next stage.

        Returns:
            The port this engine owned.

        Raises:
            ConnectionError: If the port was already released.
        """
        port = self.port
        self._port = None
        logger.debug("%s released serial port", type(self).__name__)
        return port

    # -------------------------------------------------------------------------
    # Raw I/O
    # -------------------------------------------------------------------------

    def write_raw(self, data: bytes) -> None:
        """Write bytes without expecting an echo."""
        try:
            self.port.write(data)
        except TRANSPORT_ERRORS as e:
            raise ConnectionError(f"failed to write to port: {e}") from e

    def read_raw(self, length: int) -> bytes:
        """Read up to `length` bytes; may return fewer on timeout."""
        try:
            return bytes(self.port.read(length))
        except TRANSPORT_ERRORS as e:
            raise ConnectionError(f"failed to read from port: {e}") from e

    def _set_timeout(self, timeout: Optional[float]) -> None:
        try:
            self.port.timeout = timeout
        except TRANSPORT_ERRORS as e:
            raise ConnectionError(f"failed to set read timeout: {e}") from e

    def _flush_input(self) -> None:
        """Discard whatever the device sent that nobody has read."""
        try:
            self.port.reset_input_buffer()
        except TRANSPORT_ERRORS as e:
            raise ConnectionError(f"failed to flush input: {e}") from e

    def _pending_writes(self) -> int:
        try:
            return self.port.out_waiting
        except TRANSPORT_ERRORS as e:
            raise ConnectionError(f"failed to query transmit buffer: {e}") from e

    def read_exact(self, length: int) -> bytes:
        """
        Read exactly `length` bytes.

        Raises:
            TimeoutError: If fewer bytes arrive before the read timeout.
        """
        data = self.read_raw(length)
        if len(data) != length:
            raise TimeoutError(length, len(data))
        return data

    def read_byte(self) -> int:
        """Read a single raw byte."""
        return self.read_exact(1)[0]

    def read_be16(self) -> int:
        """Read a big-endian 16-bit unsigned integer."""
        return int.from_bytes(self.read_exact(2), "big")

    def read_be32(self) -> int:
        """Read a big-endian 32-bit unsigned integer."""
        return int.from_bytes(self.read_exact(4), "big")

    # -------------------------------------------------------------------------
    # Echo Primitive
    # -------------------------------------------------------------------------

    def echo(self, data: bytes) -> None:
        """
        Send bytes and require the device to send them back unchanged.

        Args:
            data: Bytes to send. An empty buffer succeeds trivially.

        Raises:
            EchoMismatchError: If the readback differs (including a short
                               readback caused by a timeout).
        """
        if self.ECHO_TIMEOUT is not None:
            self._set_timeout(self.ECHO_TIMEOUT)
        self.write_raw(data)
        received = self.read_raw(len(data)) if data else b""
        logger.debug("echo tx=%s rx=%s", data.hex(), received.hex())
        if received != data:
            raise EchoMismatchError(data, received)

    def echo_byte(self, value: int) -> None:
        """Echo a single byte (usually an opcode)."""
        self.echo(bytes([value]))

    def echo_be16(self, value: int) -> None:
        """Echo a big-endian 16-bit field."""
        self.echo(value.to_bytes(2, "big"))

    def echo_be32(self, value: int) -> None:
        """Echo a big-endian 32-bit field."""
        self.echo(value.to_bytes(4, "big"))

    def expect_status(self, command: str) -> None:
        """
        Read a 16-bit status word and require it to be zero.

        Args:
            command: Command name used in the error message.

        Raises:
            DeviceStatusError: If the device reported a failure.
        """
        status = self.read_be16()
        if status != 0:
            raise DeviceStatusError(command, status)

    # -------------------------------------------------------------------------
    # Flow Helpers
    # -------------------------------------------------------------------------

    def wait_tx_drained(self, interval: float) -> None:
        """
        Block until the port has no bytes left to transmit.

        pyserial offers no completion notification for writes, so the
        pending-write count is polled at a fixed interval.
        """
        while self._pending_writes() > 0:
            time.sleep(interval)

    def set_port_baudrate(self, baudrate: int) -> None:
        """Reconfigure the local side of the link."""
        try:
            self.port.baudrate = baudrate
        except TRANSPORT_ERRORS + (ValueError,) as e:
            raise ConnectionError(f"failed to switch baud rate: {e}") from e

    def _sync(
        self,
        request: bytes,
        response: bytes,
        timeout: float,
        max_attempts: Optional[int] = None,
    ) -> int:
        """
        Run the byte-by-byte synchronization handshake.

        Args:
            request: Probe bytes, sent one at a time.
            response: Expected answer for each probe byte.
            timeout: Read timeout for each answer.
            max_attempts: Give up after this many probe bytes have been
                          sent. None polls forever, which is what a device
                          powered on at an unknown time needs.

        Returns:
            Number of probe bytes sent.

        Raises:
            ConnectionError: If max_attempts was reached.
        """
        self._set_timeout(timeout)
        position = 0
        attempts = 0

        while position < len(request):
            if max_attempts is not None and attempts >= max_attempts:
                raise ConnectionError(
                    f"Handshake not completed after {attempts} attempts "
                    f"(matched {position} of {len(request)} bytes)"
                )
            attempts += 1
            self.write_raw(request[position:position + 1])
            received = self.read_raw(1)
            if len(received) == 1 and received[0] == response[position]:
                position += 1

        time.sleep(SYNC_SETTLE_DELAY)
        self._flush_input()
        logger.debug("Handshake completed after %d attempts", attempts)
        return attempts
