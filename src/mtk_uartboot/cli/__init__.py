"""
mtk-uartboot Command-Line Interface
===================================

- **uartboot**: The `mtk-uartboot` command
- **errors**: Exit codes and error reporting

The command is a Click application with comprehensive help and
error reporting.
"""

__all__ = ["uartboot", "errors"]
