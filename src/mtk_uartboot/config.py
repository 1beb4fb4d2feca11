"""
mtk-uartboot - Session Configuration
====================================

Parameters of one boot session. Configuration can come from:
- Default values (defined here)
- Environment variables
- Command-line options (which override both)

Baud rates:
- 115200: BootROM rate after reset, also used when jumping to the DA
- 460800: default rate for uploading the DA to the BootROM
- 921600: default rate for sending the FIP to BL2
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import os

# Default DA load address (SRAM on MT7981/MT7986)
DEFAULT_LOAD_ADDR = 0x201000

DEFAULT_BROM_LOAD_BAUDRATE = 460800
DEFAULT_BL2_LOAD_BAUDRATE = 921600
INITIAL_BAUDRATE = 115200

# Read timeout while scanning the device log between stages (seconds)
DEFAULT_LINE_TIMEOUT = 2.0


def parse_int(value: str) -> int:
    """
    Parse a hex ("0x201000") or decimal ("2101248") integer.

    Only a 0x/0X prefix selects hex; anything else is plain decimal, so
    "010" is ten. Signs, underscores and other Python literal forms are
    rejected.

    Raises:
        ValueError: If the string is not a valid integer.
    """
    text = value.strip()
    if text[:2] in ("0x", "0X"):
        digits, base = text[2:], 16
    else:
        digits, base = text, 10
    if not (digits.isascii() and digits.isalnum()):
        raise ValueError(f"invalid integer: {value!r}")
    return int(digits, base)


@dataclass
class SessionConfig:
    """
    Configuration for one UART boot session.

    Attributes:
        serial: Serial port device (None to auto-detect)
        payload: Path to the DA / BL2 image loaded through the BootROM
        load_addr: DA load and entry address
        aarch64: Jump to the DA in AArch64 state
        fip: Optional path to a FIP image for BL2 UART download
        brom_load_baudrate: Baud rate while uploading the DA
        bl2_load_baudrate: Baud rate while uploading the FIP
        initial_baudrate: BootROM rate after reset
        line_timeout: Log read timeout while waiting for BL2 milestones
    """

    serial: Optional[str] = None
    payload: Optional[Path] = None
    load_addr: int = DEFAULT_LOAD_ADDR
    aarch64: bool = False
    fip: Optional[Path] = None
    brom_load_baudrate: int = DEFAULT_BROM_LOAD_BAUDRATE
    bl2_load_baudrate: int = DEFAULT_BL2_LOAD_BAUDRATE
    initial_baudrate: int = INITIAL_BAUDRATE
    line_timeout: float = DEFAULT_LINE_TIMEOUT

    def __post_init__(self) -> None:
        if not 0 <= self.load_addr <= 0xFFFFFFFF:
            raise ValueError(f"Load address 0x{self.load_addr:X} does not fit in 32 bits")
        for name in ("brom_load_baudrate", "bl2_load_baudrate", "initial_baudrate"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.payload is not None:
            self.payload = Path(self.payload)
        if self.fip is not None:
            self.fip = Path(self.fip)

    @classmethod
    def from_env(cls) -> "SessionConfig":
        """
        Create SessionConfig from environment variables.

        Environment variables (all optional):
            MTK_UARTBOOT_PORT: Serial port device
            MTK_UARTBOOT_LOAD_ADDR: Load address (hex or decimal)
            MTK_UARTBOOT_BROM_BAUDRATE: DA upload baud rate
            MTK_UARTBOOT_BL2_BAUDRATE: FIP upload baud rate

        Returns:
            SessionConfig with values from environment variables
        """
        config = cls()

        if port := os.environ.get("MTK_UARTBOOT_PORT"):
            config.serial = port

        if load_addr := os.environ.get("MTK_UARTBOOT_LOAD_ADDR"):
            try:
                value = parse_int(load_addr)
            except ValueError:
                value = -1
            if 0 <= value <= 0xFFFFFFFF:
                config.load_addr = value

        if baudrate := os.environ.get("MTK_UARTBOOT_BROM_BAUDRATE"):
            try:
                if int(baudrate) > 0:
                    config.brom_load_baudrate = int(baudrate)
            except ValueError:
                pass  # Ignore invalid values

        if baudrate := os.environ.get("MTK_UARTBOOT_BL2_BAUDRATE"):
            try:
                if int(baudrate) > 0:
                    config.bl2_load_baudrate = int(baudrate)
            except ValueError:
                pass  # Ignore invalid values

        return config
