"""
mtk-uartboot Error Hierarchy
============================

This module defines the exception hierarchy for the UART boot tool.
All exceptions inherit from UartBootError, allowing callers to catch all
tool-related errors with a single except clause if desired.

Exception Hierarchy
-------------------
UartBootError (base)
└── CommsError (serial communication)
    ├── ConnectionError - cannot open port, port released, handshake gave up
    ├── TimeoutError - fewer bytes received than a fixed-width field needs
    ├── ProtocolError - protocol violation
    │   └── EchoMismatchError - device echo differs from what was sent
    ├── DeviceStatusError - device rejected a command (nonzero status)
    ├── TransferError - bulk transfer gave up after a retry limit
    └── SecurityConfigError - target requires signed payloads

Design Philosophy
-----------------
Nearly every failure inside a boot session is unrecoverable: the device
is left in an unknown protocol state and the run must be restarted from
the BootROM handshake. The engines therefore raise at the first fatal
condition and never try to resynchronize. The command-line front end is
the only place that turns these exceptions into process termination.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mtk_uartboot.comms.bootrom import TargetConfig


# =============================================================================
# Base Exception Class
# =============================================================================

class UartBootError(Exception):
    """
    Base exception for all mtk-uartboot errors.

    All exceptions raised by the tool inherit from this class:

        try:
            run_session(config)
        except UartBootError as e:
            print(f"Error: {e}")
    """
    pass


# =============================================================================
# Communication Exceptions
# =============================================================================

class CommsError(UartBootError):
    """Base exception for serial communication errors."""
    pass


class ConnectionError(CommsError):
    """
    Cannot use the serial link.

    Raised when:
    - Serial port not found or permission denied
    - An engine is used after it handed its port to the next stage
    - A handshake with an attempt limit did not complete
    """
    pass


class TimeoutError(CommsError):
    """
    Short read on a fixed-width field.

    Raised when the device returns fewer bytes than a status word,
    packet index or checksum requires. This usually means:
    - Device not in download mode
    - Wrong baud rate on one side
    - Cable disconnected

    Note:
        This is distinct from the Python builtin TimeoutError. It
        inherits from CommsError for consistent error handling.
    """

    def __init__(self, expected: int, actual: int, message: str = ""):
        self.expected = expected
        self.actual = actual
        if not message:
            message = f"Not enough data returned: expected {expected} bytes, got {actual}"
        super().__init__(message)


class ProtocolError(CommsError):
    """
    Protocol violation.

    Raised when the device sends an unexpected response and the two
    sides can no longer be assumed to agree on the byte stream.
    """
    pass


class EchoMismatchError(ProtocolError):
    """
    Returned data isn't the same as what was sent.

    Every command and argument byte must be echoed back by the device.
    A mismatch means either desynchronization or line corruption, and
    there is no way to recover within the session.
    """

    def __init__(self, sent: bytes, received: bytes):
        self.sent = bytes(sent)
        self.received = bytes(received)
        super().__init__(
            f"Returned data isn't the same: tx={self.sent.hex()} rx={self.received.hex()}"
        )


class DeviceStatusError(CommsError):
    """
    Device reported a nonzero status for a command.

    Attributes:
        command: Name of the command that failed (e.g. "send_da")
        status: 16-bit status word returned by the device
    """

    def __init__(self, command: str, status: int):
        self.command = command
        self.status = status
        super().__init__(f"{command} status: 0x{status:04X}")


class TransferError(CommsError):
    """
    Bulk transfer failed.

    Only raised when a retry limit was given; by default a packet is
    retransmitted until the device accepts it.
    """
    pass


class SecurityConfigError(CommsError):
    """
    Target requires authentication this tool does not implement.

    Raised when the BootROM target configuration reports secure boot,
    serial link authorization or download agent authorization. The
    device would reject an unsigned download agent.
    """

    def __init__(self, config: "TargetConfig"):
        self.config = config
        enabled = []
        if config.secure_boot:
            enabled.append("Secure boot")
        if config.serial_link_authorization:
            enabled.append("Serial link authorization")
        if config.download_agent_authorization:
            enabled.append("Download agent authorization")
        super().__init__(", ".join(enabled) + " enabled.")
