"""Command dispatch for the ebt CLI."""

from __future__ import annotations

import sys
from typing import Optional

from ebt.cli.helpers import _configure_logging
from ebt.cli.parser import _build_parser, _preprocess_argv


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the ``ebt`` CLI.

    Args:
        argv: Argument list to parse.  Defaults to ``sys.argv[1:]``.

    Returns:
        Exit code of the command.
    """
    if argv is None:
        argv = sys.argv[1:]

    argv = _preprocess_argv(argv)

    # Late import to allow tests to monkeypatch ebt.cli.cmd_xxx
    import ebt.cli as cli

    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.log_level)

    if args.cmd == "backtrace":
        return cli.cmd_backtrace(
            elf=args.elf,
            device=args.device,
            probe_selector=args.probe_selector,
            interface=args.interface,
            speed=args.speed,
            mode=args.mode,
            limit=args.limit,
            shorten_paths=args.shorten_paths,
            ram_start=args.ram_start,
            ram_end=args.ram_end,
            json_mode=args.json,
        )

    parser.error(f"Unknown command: {args.cmd}")
    return 2
