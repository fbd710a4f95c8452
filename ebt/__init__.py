"""
Embedded BackTrace (ebt)

Virtual stack unwinding, symbolication and outcome classification for halted
Cortex-M targets.

Pipeline:
- unwind():      walk the stack from live registers and memory
- symbolicate(): resolve frames to functions, files and lines (with inlining)
- classify():    Ok, HardFault or StackOverflow
- print policy:  decide whether and how much of the backtrace to show
"""

from ebt.backtrace import (
    BacktraceMode,
    DisplaySettings,
    FrameStore,
    Outcome,
    RawFrame,
    SymbolicatedFrame,
    run_backtrace,
)
from ebt.errors import (
    EbtError,
    InvalidBacktraceModeError,
    MissingDebugInfoError,
    ProgramImageError,
    TargetError,
)
from ebt.program_image import ProgramImage, RamBounds

__version__ = "1.0.0"

__all__ = [
    "BacktraceMode",
    "DisplaySettings",
    "EbtError",
    "FrameStore",
    "InvalidBacktraceModeError",
    "MissingDebugInfoError",
    "Outcome",
    "ProgramImage",
    "ProgramImageError",
    "RamBounds",
    "RawFrame",
    "SymbolicatedFrame",
    "TargetError",
    "run_backtrace",
]
