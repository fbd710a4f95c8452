"""
ebt: command-line backtraces for halted embedded targets.

Connects to a Cortex-M target through a J-Link probe, halts it, unwinds the
call stack with the firmware ELF's debug info and reports how the program
stopped.

Main commands:
- backtrace: Print the backtrace and exit with the outcome's exit code

Entry points:
- ebt: Main CLI entry point (installed via pip)
- Can also be imported and called programmatically via main(argv)
"""

from __future__ import annotations

import sys

from ebt.cli.backtrace_cmds import cmd_backtrace
from ebt.cli.dispatch import main

__all__ = ["cmd_backtrace", "main"]


if __name__ == "__main__":
    sys.exit(main())
