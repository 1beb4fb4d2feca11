"""
Tests for the mtk-uartboot command.

The boot session itself is patched out; these tests cover option
parsing, configuration merging and the mapping of outcomes to exit
codes.
"""

from unittest.mock import patch

import pytest
from click.testing import CliRunner

from mtk_uartboot.cli.errors import ExitCode
from mtk_uartboot.cli.uartboot import main, progress_bar
from mtk_uartboot.comms.bootrom import TargetConfig
from mtk_uartboot.comms.serial import PortInfo
from mtk_uartboot.errors import (
    ConnectionError,
    DeviceStatusError,
    EchoMismatchError,
    SecurityConfigError,
)

RUN_SESSION = "mtk_uartboot.cli.uartboot.run_session"
FIND_PORT = "mtk_uartboot.cli.uartboot.find_serial_port"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("MTK_UARTBOOT_PORT", "MTK_UARTBOOT_LOAD_ADDR",
                 "MTK_UARTBOOT_BROM_BAUDRATE", "MTK_UARTBOOT_BL2_BAUDRATE"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def payload(tmp_path):
    path = tmp_path / "bl2.bin"
    path.write_bytes(b"\x00" * 64)
    return path


def invoke(*args):
    return CliRunner().invoke(main, [str(a) for a in args])


# =============================================================================
# Basic Options
# =============================================================================

class TestCliBasics:
    """Tests for help, version and port listing."""

    def test_help(self):
        """--help describes the tool."""
        result = invoke("--help")
        assert result.exit_code == 0
        assert "upload and execute binaries over UART" in result.output
        assert "--brom-load-baudrate" in result.output

    def test_version(self):
        """--version prints the package version."""
        result = invoke("--version")
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_list_ports_empty(self):
        """--list-ports with nothing attached."""
        with patch("mtk_uartboot.cli.uartboot.list_serial_ports", return_value=[]):
            result = invoke("--list-ports")
        assert result.exit_code == 0
        assert "No serial ports found." in result.output

    def test_list_ports(self):
        """--list-ports shows ports and the suggested one."""
        ports = [PortInfo("/dev/ttyUSB0", "FT232R", "FTDI", None, None, 0x0403, 0x6001)]
        with patch("mtk_uartboot.cli.uartboot.list_serial_ports", return_value=ports), \
                patch(FIND_PORT, return_value="/dev/ttyUSB0"):
            result = invoke("--list-ports")
        assert result.exit_code == 0
        assert "/dev/ttyUSB0" in result.output
        assert "Suggested port: /dev/ttyUSB0" in result.output


# =============================================================================
# Argument Validation
# =============================================================================

class TestCliArguments:
    """Tests for option parsing and validation."""

    def test_payload_required(self):
        """Without a payload the command refuses to run."""
        result = invoke("-s", "/dev/ttyUSB0")
        assert result.exit_code == ExitCode.INVALID_ARGS
        assert "--payload" in result.output

    def test_payload_must_exist(self, tmp_path):
        """A missing payload file is rejected before anything runs."""
        with patch(RUN_SESSION) as run:
            result = invoke("-s", "/dev/ttyUSB0", "-p", tmp_path / "missing.bin")
        assert result.exit_code == ExitCode.INVALID_ARGS
        run.assert_not_called()

    @pytest.mark.parametrize("address,expected", [
        ("0x201000", 0x201000),
        ("0x40000000", 0x40000000),
        ("2101248", 0x201000),
    ])
    def test_load_address_formats(self, payload, address, expected):
        """Load addresses are accepted in hex or decimal."""
        with patch(RUN_SESSION, return_value=True) as run:
            result = invoke("-s", "/dev/ttyUSB0", "-p", payload, "-l", address)
        assert result.exit_code == 0
        assert run.call_args.args[0].load_addr == expected

    @pytest.mark.parametrize("address", ["0xZZ", "banana", "0x100000000", "4294967296"])
    def test_bad_load_address(self, payload, address):
        """Invalid or out-of-range addresses are usage errors."""
        with patch(RUN_SESSION) as run:
            result = invoke("-s", "/dev/ttyUSB0", "-p", payload, "-l", address)
        assert result.exit_code == ExitCode.INVALID_ARGS
        run.assert_not_called()

    def test_bad_baudrate(self, payload):
        """Baud rates must be positive integers."""
        result = invoke("-s", "/dev/ttyUSB0", "-p", payload, "--bl2-load-baudrate", "0")
        assert result.exit_code == ExitCode.INVALID_ARGS


# =============================================================================
# Configuration Merging
# =============================================================================

class TestCliConfig:
    """Tests for how options, environment and defaults combine."""

    def test_options_passed(self, payload, tmp_path):
        """Every option ends up in the session configuration."""
        fip = tmp_path / "fip.bin"
        fip.write_bytes(b"\x01")
        with patch(RUN_SESSION, return_value=True) as run:
            result = invoke(
                "-s", "/dev/ttyUSB2", "-p", payload, "-a", "-f", fip,
                "--brom-load-baudrate", "230400", "--bl2-load-baudrate", "1500000",
            )
        assert result.exit_code == 0
        config = run.call_args.args[0]
        assert config.serial == "/dev/ttyUSB2"
        assert config.payload == payload
        assert config.fip == fip
        assert config.aarch64
        assert config.brom_load_baudrate == 230400
        assert config.bl2_load_baudrate == 1500000

    def test_defaults(self, payload):
        """Unset options take the built-in defaults."""
        with patch(RUN_SESSION, return_value=True) as run:
            invoke("-s", "/dev/ttyUSB0", "-p", payload)
        config = run.call_args.args[0]
        assert config.load_addr == 0x201000
        assert config.brom_load_baudrate == 460800
        assert config.bl2_load_baudrate == 921600
        assert not config.aarch64
        assert config.fip is None

    def test_environment(self, payload, monkeypatch):
        """Environment variables fill in unset options."""
        monkeypatch.setenv("MTK_UARTBOOT_PORT", "/dev/ttyACM0")
        monkeypatch.setenv("MTK_UARTBOOT_LOAD_ADDR", "0x40000000")
        with patch(RUN_SESSION, return_value=True) as run:
            result = invoke("-p", payload)
        assert result.exit_code == 0
        config = run.call_args.args[0]
        assert config.serial == "/dev/ttyACM0"
        assert config.load_addr == 0x40000000

    def test_options_override_environment(self, payload, monkeypatch):
        """Command-line options win over the environment."""
        monkeypatch.setenv("MTK_UARTBOOT_PORT", "/dev/ttyACM0")
        with patch(RUN_SESSION, return_value=True) as run:
            invoke("-s", "/dev/ttyUSB5", "-p", payload)
        assert run.call_args.args[0].serial == "/dev/ttyUSB5"

    def test_auto_detect(self, payload):
        """Without a port, auto-detection picks one."""
        with patch(RUN_SESSION, return_value=True) as run, \
                patch(FIND_PORT, return_value="/dev/ttyUSB7"):
            result = invoke("-p", payload)
        assert result.exit_code == 0
        assert run.call_args.args[0].serial == "/dev/ttyUSB7"

    def test_auto_detect_fails(self, payload):
        """No port and nothing detected is an argument error."""
        with patch(RUN_SESSION) as run, patch(FIND_PORT, return_value=None):
            result = invoke("-p", payload)
        assert result.exit_code == ExitCode.INVALID_ARGS
        assert "auto-detect failed" in result.output
        run.assert_not_called()


# =============================================================================
# Exit Codes
# =============================================================================

class TestCliExitCodes:
    """Tests for the mapping of session outcomes to exit codes."""

    def test_success(self, payload):
        """A completed session exits 0."""
        with patch(RUN_SESSION, return_value=True):
            assert invoke("-s", "/dev/ttyUSB0", "-p", payload).exit_code == ExitCode.SUCCESS

    def test_incomplete(self, payload):
        """A missing BL2 milestone exits 4."""
        with patch(RUN_SESSION, return_value=False):
            assert invoke("-s", "/dev/ttyUSB0", "-p", payload).exit_code == ExitCode.INCOMPLETE

    @pytest.mark.parametrize("error,message", [
        (SecurityConfigError(TargetConfig.from_bitmask(1)), "Secure boot enabled."),
        (DeviceStatusError("send_da", 0x1D0C), "send_da status: 0x1D0C"),
        (EchoMismatchError(b"\xD8", b"\x00"), "Returned data isn't the same"),
        (ConnectionError("Serial port not found: /dev/ttyUSB0"), "Connection error"),
    ])
    def test_device_errors(self, payload, error, message):
        """Communication and device failures exit 1 with a message."""
        with patch(RUN_SESSION, side_effect=error):
            result = invoke("-s", "/dev/ttyUSB0", "-p", payload)
        assert result.exit_code == ExitCode.COMMS_ERROR
        assert message in result.output

    def test_file_error(self, payload):
        """A file that vanished before reading exits 2."""
        with patch(RUN_SESSION, side_effect=FileNotFoundError("bl2.bin")):
            result = invoke("-s", "/dev/ttyUSB0", "-p", payload)
        assert result.exit_code == ExitCode.INVALID_ARGS

    def test_internal_error(self, payload):
        """Other OS errors are internal errors."""
        with patch(RUN_SESSION, side_effect=OSError("unexpected")):
            result = invoke("-s", "/dev/ttyUSB0", "-p", payload)
        assert result.exit_code == ExitCode.INTERNAL_ERROR


# =============================================================================
# Progress Bar
# =============================================================================

class TestProgressBar:
    """Tests for the upload progress bar."""

    def test_partial(self, capsys):
        """A partial transfer stays on one line."""
        progress_bar(50, 200)
        out = capsys.readouterr().out
        assert " 25%" in out
        assert "(50/200 bytes)" in out
        assert not out.endswith("\n")

    def test_complete(self, capsys):
        """A finished transfer ends the line."""
        progress_bar(200, 200)
        out = capsys.readouterr().out
        assert "100%" in out
        assert out.endswith("\n")

    def test_empty(self, capsys):
        """Nothing is drawn for an empty transfer."""
        progress_bar(0, 0)
        assert capsys.readouterr().out == ""
