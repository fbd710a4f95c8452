"""Backtrace pipeline: unwind -> symbolicate -> classify -> print.

Usage::

    from ebt.backtrace import DisplaySettings, run_backtrace
    from ebt.backtrace.outcome import log_outcome, to_exit_code

    outcome = run_backtrace(target, image, DisplaySettings(), sink=sink,
                            ram_bounds=bounds)
    log_outcome(outcome, sink)
    sys.exit(to_exit_code(outcome))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, TextIO

from ..arch import Architecture
from ..interfaces import LoggerInterface, TargetInterface
from ..program_image import ProgramImage, RamBounds
from .frames import FrameStore, RawFrame, SymbolicatedFrame
from .outcome import (
    NO_RAM_BOUNDS_WARNING,
    Outcome,
    classify,
    log_outcome,
    to_exit_code,
    to_log_line,
)
from .render import print_backtrace
from .settings import BacktraceMode, DisplaySettings, parse_backtrace_mode
from .symbolicate import symbolicate
from .unwind import MAX_FRAMES, unwind

logger = logging.getLogger(__name__)

__all__ = [
    "BacktraceMode",
    "BacktraceReport",
    "DisplaySettings",
    "FrameStore",
    "MAX_FRAMES",
    "Outcome",
    "RawFrame",
    "SymbolicatedFrame",
    "build_report",
    "classify",
    "log_outcome",
    "parse_backtrace_mode",
    "run_backtrace",
    "symbolicate",
    "to_exit_code",
    "to_log_line",
    "unwind",
]


@dataclass(frozen=True)
class BacktraceReport:
    """Everything the pipeline derived from one halted target."""

    store: FrameStore
    frames: list[SymbolicatedFrame]
    outcome: Outcome

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "corrupted": self.store.corrupted,
            "reached_entry": self.store.reached_entry,
            "processing_error": (
                str(self.store.processing_error)
                if self.store.processing_error is not None else None
            ),
            "frames": [frame.to_dict() for frame in self.frames],
        }


def build_report(
    target: TargetInterface,
    image: ProgramImage,
    settings: DisplaySettings,
    *,
    ram_bounds: Optional[RamBounds],
    arch: Optional[Architecture] = None,
) -> BacktraceReport:
    """Unwind, symbolicate and classify without printing anything."""
    store = unwind(target, image, arch)
    frames = symbolicate(store, image, settings)
    outcome = classify(store, ram_bounds)
    logger.debug("outcome %s from %d frames", outcome.name, len(frames))
    return BacktraceReport(store=store, frames=frames, outcome=outcome)


def run_backtrace(
    target: TargetInterface,
    image: ProgramImage,
    settings: DisplaySettings,
    *,
    sink: LoggerInterface,
    ram_bounds: Optional[RamBounds],
    arch: Optional[Architecture] = None,
    out: Optional[TextIO] = None,
) -> Outcome:
    """Run the full pipeline and print the backtrace if the gate opens.

    The outcome line itself is left to the caller (see log_outcome).
    """
    if ram_bounds is None:
        sink.warning(NO_RAM_BOUNDS_WARNING)
    report = build_report(target, image, settings, ram_bounds=ram_bounds, arch=arch)
    print_backtrace(report.frames, report.store, report.outcome, settings, sink, out)
    return report.outcome
