"""
CLI Error Handling
==================

Provides consistent error reporting and exit codes for the command-line
tool. Library code raises; only this module terminates the process.
"""

import sys
import traceback
from enum import IntEnum
from typing import NoReturn

import click


class ExitCode(IntEnum):
    """Exit codes for mtk-uartboot."""
    SUCCESS = 0
    COMMS_ERROR = 1      # Serial, protocol or device-reported error
    INVALID_ARGS = 2     # Invalid arguments or missing files
    INTERNAL_ERROR = 3   # Unexpected internal error
    INCOMPLETE = 4       # Device never printed an expected milestone


def handle_cli_exception(error: Exception, verbose: bool = False) -> NoReturn:
    """
    Report an exception and exit with the matching exit code.

    Args:
        error: The exception that was raised
        verbose: If True, print full traceback for internal errors

    Raises:
        SystemExit: Always exits with an appropriate exit code
    """
    from mtk_uartboot.errors import (
        ConnectionError,
        DeviceStatusError,
        SecurityConfigError,
        UartBootError,
    )

    if isinstance(error, SecurityConfigError):
        click.echo(f"Unsupported target: {error}", err=True)
        sys.exit(ExitCode.COMMS_ERROR)

    elif isinstance(error, DeviceStatusError):
        click.echo(f"Device error: {error}", err=True)
        sys.exit(ExitCode.COMMS_ERROR)

    elif isinstance(error, ConnectionError):
        click.echo(f"Connection error: {error}", err=True)
        sys.exit(ExitCode.COMMS_ERROR)

    elif isinstance(error, UartBootError):
        click.echo(f"Communication error: {error}", err=True)
        sys.exit(ExitCode.COMMS_ERROR)

    elif isinstance(error, (click.BadParameter, ValueError)):
        click.echo(f"Error: {error}", err=True)
        sys.exit(ExitCode.INVALID_ARGS)

    elif isinstance(error, (FileNotFoundError, PermissionError)):
        click.echo(f"Error: {error}", err=True)
        sys.exit(ExitCode.INVALID_ARGS)

    else:
        click.echo(f"Internal error: {error}", err=True)
        if verbose:
            traceback.print_exc()
        sys.exit(ExitCode.INTERNAL_ERROR)
