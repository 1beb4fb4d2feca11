"""
FIP Packet Checksum
===================

This module implements the 16-bit additive checksum that the BL2 UART
download protocol attaches to every FIP packet. The host computes it,
sends it ahead of the packet, and the device echoes back the value it
computed over the bytes it actually received.

Technical Details
-----------------
- Data is summed as big-endian 16-bit words
- An odd trailing byte is the high byte of a final word (low byte zero)
- Carries above bit 15 are folded back in until none remain
- Unlike the Internet checksum (RFC 1071), the result is NOT complemented

Because the sum is a one's-complement addition, it can be computed in
pieces: the checksum of a buffer split at an even offset equals the
folded sum of the checksums of the two halves.

Usage
-----
    from mtk_uartboot.comms.checksum import fip_checksum

    checksum = fip_checksum(b"\\x12\\x34\\x56")   # 0x1234 + 0x5600 = 0x6834
"""

from typing import Final

# Mask for 16-bit values
CHECKSUM_MASK: Final[int] = 0xFFFF


def checksum_partial(data: bytes) -> int:
    """
    Sum big-endian 16-bit words without folding.

    Args:
        data: Bytes to sum. An odd trailing byte counts as the high byte
              of a word whose low byte is zero.

    Returns:
        The raw word sum (may exceed 16 bits).
    """
    end = len(data) & ~1
    total = sum(int.from_bytes(data[i:i + 2], "big") for i in range(0, end, 2))
    if end != len(data):
        total += data[-1] << 8
    return total


def checksum_fold(value: int) -> int:
    """Fold carries above bit 15 back into the low 16 bits until none remain."""
    while value >> 16:
        value = (value >> 16) + (value & CHECKSUM_MASK)
    return value


def checksum_combine(first: int, second: int) -> int:
    """
    Combine two checksums into the checksum of the concatenated data.

    Only valid when the first buffer has an even length.
    """
    return checksum_fold(first + second)


def fip_checksum(data: bytes) -> int:
    """
    Calculate the BL2 FIP packet checksum.

    Args:
        data: Packet payload.

    Returns:
        16-bit checksum (0x0000 to 0xFFFF). The empty payload gives 0.

    Example:
        >>> hex(fip_checksum(bytes([0xFF, 0xFF, 0x00, 0x01])))
        '0x1'
    """
    return checksum_fold(checksum_partial(data))


def checksum_to_bytes(checksum: int) -> bytes:
    """Convert a checksum to big-endian bytes for transmission."""
    return (checksum & CHECKSUM_MASK).to_bytes(2, "big")


def checksum_from_bytes(data: bytes) -> int:
    """
    Convert big-endian bytes to a checksum value.

    Raises:
        ValueError: If data is less than 2 bytes.
    """
    if len(data) < 2:
        raise ValueError(f"Checksum requires 2 bytes, got {len(data)}")
    return (data[0] << 8) | data[1]
