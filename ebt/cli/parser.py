"""Argument parser for the ebt CLI."""

from __future__ import annotations

import argparse

from ..backtrace.settings import BacktraceMode
from .helpers import LOG_LEVELS

# Flags accepted anywhere on the command line
_GLOBAL_FLAGS = ("--json",)
_GLOBAL_OPTIONS = ("--log-level",)


def _parse_address(text: str) -> int:
    """Parse a RAM address given in hex (0x...) or decimal."""
    try:
        value = int(text, 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid address: {text!r}") from None
    if not 0 <= value <= 0xFFFFFFFF:
        raise argparse.ArgumentTypeError(f"address out of 32-bit range: {text!r}")
    return value


def _preprocess_argv(argv: list[str]) -> list[str]:
    """Reorder global flags (--json, --log-level) before the subcommand.

    argparse doesn't support global flags after a subcommand reliably, so
    they are moved to the front.

    Args:
        argv: Raw argument list (without ``sys.argv[0]``).

    Returns:
        Reordered argument list with global flags moved to the front.
    """
    global_args: list[str] = []
    rest: list[str] = []
    i = 0
    while i < len(argv):
        token = argv[i]
        if token in _GLOBAL_FLAGS:
            global_args.append(token)
            i += 1
            continue
        if any(token.startswith(opt + "=") for opt in _GLOBAL_OPTIONS):
            global_args.append(token)
            i += 1
            continue
        if token in _GLOBAL_OPTIONS:
            # Needs a value.
            if i + 1 >= len(argv):
                rest.append(token)
                i += 1
                continue
            global_args.extend([token, argv[i + 1]])
            i += 2
            continue
        rest.append(token)
        i += 1

    return global_args + rest


def _build_parser() -> argparse.ArgumentParser:
    """Build the full argparse parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="ebt", description="Backtraces for halted embedded targets"
    )
    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 1.0.0 (embedded-backtrace)",
    )
    parser.add_argument("--json", action="store_true", help="Output machine-parseable JSON")
    parser.add_argument(
        "--log-level",
        default="info",
        choices=LOG_LEVELS,
        help="Diagnostic log level (default: info)",
    )

    sub = parser.add_subparsers(dest="cmd", required=True)

    p_bt = sub.add_parser(
        "backtrace", help="Halt the target and print its call-stack backtrace via J-Link"
    )
    p_bt.add_argument("--elf", required=True, help="Firmware ELF with debug info")
    p_bt.add_argument("--device", required=True, help="J-Link device string (e.g., NRF52840_XXAA)")
    p_bt.add_argument("--probe-selector", default=None, help="J-Link serial number")
    p_bt.add_argument("--interface", default="SWD", choices=["SWD", "JTAG"], help="Debug interface")
    p_bt.add_argument("--speed", type=int, default=4000, help="Interface speed in kHz (default: 4000)")
    p_bt.add_argument(
        "--backtrace",
        default=None,
        dest="mode",
        metavar="{" + ",".join(m.value for m in BacktraceMode) + "}",
        help="When to print the backtrace (default: $EBT_BACKTRACE or auto)",
    )
    p_bt.add_argument(
        "--backtrace-limit",
        default=None,
        dest="limit",
        help="Maximum frames to print, 0 = all (default: $EBT_BACKTRACE_LIMIT or 50)",
    )
    p_bt.add_argument(
        "--shorten-paths",
        action="store_true",
        help="Show source paths relative to the current directory",
    )
    p_bt.add_argument("--ram-start", type=_parse_address, default=None, help="Stack RAM start (hex)")
    p_bt.add_argument("--ram-end", type=_parse_address, default=None, help="Stack RAM end, inclusive (hex)")

    return parser
