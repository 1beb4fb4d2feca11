"""
Tests for boot session orchestration.

A complete device conversation is scripted on one FakePort: the BootROM
exchange, the BL2 log, the BL2 exchange and the final log line. The
port factory in the session module is patched to return it.
"""

from unittest.mock import patch

import pytest

from fakes import FakePort, be16, be32
from mtk_uartboot.comms.bl2 import BL2_HANDSHAKE_RESPONSE
from mtk_uartboot.comms.bootrom import BROM_HANDSHAKE_RESPONSE
from mtk_uartboot.comms.checksum import fip_checksum
from mtk_uartboot.config import SessionConfig
from mtk_uartboot.errors import (
    ConnectionError,
    DeviceStatusError,
    SecurityConfigError,
)
from mtk_uartboot.session import LOG_SEPARATOR, load_bl2, load_fip, run_session

OK = be16(0)
PAYLOAD = bytes(range(256)) * 2
FIP = bytes((i * 7) & 0xFF for i in range(300))

BL2_BOOT_LOG = (
    b"NOTICE:  BL2: v2.10.0(release):\r\n"
    b"NOTICE:  Starting UART download handshake ...\r\n"
)
BL2_DONE_LOG = b"NOTICE:  Received FIP 0x12c @ 0x40400000 ...\r\n"


def brom_script(config, payload=PAYLOAD, target_config=0):
    """BootROM replies for a complete first stage."""
    addr = be32(config.load_addr)
    script = (
        BROM_HANDSHAKE_RESPONSE
        + b"\xFD" + be16(0x7986) + OK
        + b"\xFC" + be16(0x8A00) + be16(0xCA00) + be16(0) + OK
        + b"\xD8" + be32(target_config) + OK
    )
    if target_config:
        return script
    script += (
        b"\xDC" + be32(config.brom_load_baudrate) + OK
        + b"\xD7" + addr + be32(len(payload)) + be32(0) + OK + be16(0x1234) + OK
        + b"\xDC" + be32(config.initial_baudrate) + OK
    )
    if config.aarch64:
        return script + b"\xDE" + addr + b"\x01" + OK + b"\x64" + OK
    return script + b"\xD5" + addr + OK


def bl2_script(baudrate, fip=FIP):
    """BL2 replies for a FIP transfer, packets split as 128 then the rest."""
    script = (
        BL2_HANDSHAKE_RESPONSE
        + b"\x01\x02"
        + b"\x02" + be32(baudrate)
        + BL2_HANDSHAKE_RESPONSE
        + b"\x03" + be32(len(fip))
    )
    for index, chunk in enumerate([fip[:128], fip[128:]]):
        header = be32(index) + be16(len(chunk)) + be16(fip_checksum(chunk))
        script += header + be32(index) + be16(fip_checksum(chunk))
    return script + b"\x04"


class RecordingPort(FakePort):
    """Records the baud rate in effect when the payload is written."""

    def __init__(self, rx=b""):
        super().__init__(rx)
        self.payload_rates = []

    def write(self, data):
        if data == PAYLOAD:
            self.payload_rates.append(self.baudrate)
        return super().write(data)


@pytest.fixture
def files(tmp_path):
    payload = tmp_path / "bl2.bin"
    payload.write_bytes(PAYLOAD)
    fip = tmp_path / "fip.bin"
    fip.write_bytes(FIP)
    return payload, fip


# =============================================================================
# BootROM Stage
# =============================================================================

class TestLoadBL2:
    """Tests for load_bl2()."""

    def test_aarch64(self):
        """Full stage with an AArch64 jump; the port is handed back."""
        config = SessionConfig(aarch64=True)
        port = FakePort(brom_script(config))
        assert load_bl2(port, config, PAYLOAD) is port
        assert port.rx == b""
        assert port.baudrate == 115200
        assert b"\xDE" in port.writes

    def test_aarch32(self):
        """Without aarch64 the plain jump is used."""
        config = SessionConfig(aarch64=False)
        port = FakePort(brom_script(config))
        load_bl2(port, config, PAYLOAD)
        assert b"\xD5" in port.writes
        assert b"\xDE" not in port.writes

    def test_upload_rate(self):
        """The DA goes out at the BootROM load rate, then the rate drops back."""
        config = SessionConfig(brom_load_baudrate=230400)
        port = RecordingPort(brom_script(config))
        load_bl2(port, config, PAYLOAD)
        assert port.payload_rates == [230400]
        assert port.baudrate == 115200

    def test_secure_target_refused(self):
        """A secured target stops before anything is uploaded."""
        config = SessionConfig()
        port = FakePort(brom_script(config, target_config=0x1))
        with pytest.raises(SecurityConfigError):
            load_bl2(port, config, PAYLOAD)
        assert PAYLOAD not in port.writes

    def test_progress(self):
        """Upload progress is passed through."""
        config = SessionConfig()
        calls = []
        load_bl2(FakePort(brom_script(config)), config, PAYLOAD,
                 progress=lambda *a: calls.append(a))
        assert calls == [(len(PAYLOAD), len(PAYLOAD))]


# =============================================================================
# BL2 Stage
# =============================================================================

class TestLoadFip:
    """Tests for load_fip()."""

    def test_load_fip(self):
        """Handshake, rate switch, second handshake, transfer, go, confirmation."""
        lines = []
        port = FakePort(bl2_script(921600) + BL2_DONE_LOG)
        assert load_fip(port, 921600, FIP, echo=lines.append) is True
        assert port.baudrate == 921600
        assert port.written.count(b"mudl") == 2
        assert port.written.endswith(b"\x04")
        assert lines[0] == LOG_SEPARATOR
        assert lines[-1] == LOG_SEPARATOR

    def test_no_confirmation(self, caplog):
        """A silent BL2 after go is reported, not raised."""
        port = FakePort(bl2_script(921600))
        assert load_fip(port, 921600, FIP, echo=lambda line: None) is False
        assert "Timeout waiting for specified message." in caplog.text


# =============================================================================
# Whole Session
# =============================================================================

class TestRunSession:
    """Tests for run_session()."""

    def test_bootrom_only(self, files):
        """Without a FIP the session ends after the jump."""
        payload, _ = files
        config = SessionConfig(serial="/dev/ttyUSB0", payload=payload)
        port = FakePort(brom_script(config))
        with patch("mtk_uartboot.session.open_serial_port", return_value=port) as opener:
            assert run_session(config) is True
        opener.assert_called_once_with("/dev/ttyUSB0", baud_rate=115200)
        assert not port.is_open

    def test_full_boot(self, files):
        """BootROM stage, BL2 log, BL2 stage, confirmation."""
        payload, fip = files
        config = SessionConfig(
            serial="/dev/ttyUSB0", payload=payload, fip=fip, aarch64=True
        )
        port = FakePort(
            brom_script(config) + BL2_BOOT_LOG + bl2_script(921600) + BL2_DONE_LOG
        )
        lines = []
        with patch("mtk_uartboot.session.open_serial_port", return_value=port):
            assert run_session(config, echo=lines.append) is True
        assert port.rx == b""
        assert not port.is_open
        assert any("Starting UART download handshake" in line for line in lines)
        assert any("Received FIP" in line for line in lines)

    def test_bl2_never_starts(self, files):
        """No handshake banner from BL2 ends the session unsuccessfully."""
        payload, fip = files
        config = SessionConfig(serial="/dev/ttyUSB0", payload=payload, fip=fip)
        port = FakePort(brom_script(config) + b"ERROR:   BL2: Failed to load image\r\n")
        with patch("mtk_uartboot.session.open_serial_port", return_value=port):
            assert run_session(config, echo=lambda line: None) is False
        assert b"mudl" not in port.written
        assert not port.is_open

    def test_device_error_closes_port(self, files):
        """The port is closed even when a stage raises."""
        payload, _ = files
        config = SessionConfig(serial="/dev/ttyUSB0", payload=payload)
        port = FakePort(BROM_HANDSHAKE_RESPONSE + b"\xFD" + be16(0x7986) + be16(0x1D0D))
        with patch("mtk_uartboot.session.open_serial_port", return_value=port):
            with pytest.raises(DeviceStatusError):
                run_session(config)
        assert not port.is_open

    def test_missing_payload_file(self, tmp_path):
        """A missing file fails before the port is opened."""
        config = SessionConfig(serial="/dev/ttyUSB0", payload=tmp_path / "missing.bin")
        with patch("mtk_uartboot.session.open_serial_port") as opener:
            with pytest.raises(FileNotFoundError):
                run_session(config)
        opener.assert_not_called()

    def test_missing_fip_file(self, files, tmp_path):
        """A missing FIP also fails before the port is opened."""
        payload, _ = files
        config = SessionConfig(
            serial="/dev/ttyUSB0", payload=payload, fip=tmp_path / "missing.fip"
        )
        with patch("mtk_uartboot.session.open_serial_port") as opener:
            with pytest.raises(FileNotFoundError):
                run_session(config)
        opener.assert_not_called()

    def test_no_serial_port(self, files):
        """A session needs a port."""
        payload, _ = files
        with pytest.raises(ConnectionError):
            run_session(SessionConfig(payload=payload))

    def test_no_payload(self):
        """A session needs a payload."""
        with pytest.raises(ValueError):
            run_session(SessionConfig(serial="/dev/ttyUSB0"))


# =============================================================================
# Hardware Tests (skipped by default)
# =============================================================================

hardware_marker = pytest.mark.skipif(
    True,  # Always skip by default
    reason="Hardware tests require a MediaTek board on a serial port"
)


@hardware_marker
class TestHardware:
    """Tests that require a real board held in BootROM download mode."""

    def test_real_handshake(self):
        """Handshake and identify a real BootROM."""
        from mtk_uartboot.comms import BootROM, find_serial_port, open_serial_port

        port = open_serial_port(find_serial_port())
        try:
            brom = BootROM(port)
            brom.handshake(max_attempts=10000)
            assert brom.get_hw_code() != 0
        finally:
            port.close()
