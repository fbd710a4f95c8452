"""Classify how the program stopped and map the result to a log line and exit code."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from ..interfaces import LoggerInterface
from ..program_image import RamBounds
from .frames import FrameStore

# 128 + SIGABRT, what a shell reports for an aborted process
SIGABRT_EXIT_CODE = 134

NO_RAM_BOUNDS_WARNING = (
    "no RAM region appears to contain the stack; "
    "cannot determine if this was a stack overflow"
)


class Outcome(Enum):
    OK = "ok"
    HARD_FAULT = "hard_fault"
    STACK_OVERFLOW = "stack_overflow"


class Severity(Enum):
    INFO = "info"
    ERROR = "error"


_LOG_LINES = {
    Outcome.OK: (Severity.INFO, "device halted without error"),
    Outcome.HARD_FAULT: (Severity.ERROR, "the program panicked"),
    Outcome.STACK_OVERFLOW: (Severity.ERROR, "the program has overflowed its stack"),
}


def classify(store: FrameStore, ram_bounds: Optional[RamBounds]) -> Outcome:
    """Derive the outcome from the unwound frames.

    Stack overflow takes precedence: some frame's stack pointer, the halted
    one included, lies outside the RAM bounds. A stack that overflowed and
    then unwinds back into RAM still counts. Without bounds, overflow cannot
    be detected.
    """
    if ram_bounds is not None and any(
        not ram_bounds.contains(sp) for sp in store.stack_pointers
    ):
        return Outcome.STACK_OVERFLOW
    if store.contains_exception:
        return Outcome.HARD_FAULT
    return Outcome.OK


def to_log_line(outcome: Outcome) -> tuple[Severity, str]:
    return _LOG_LINES[outcome]


def to_exit_code(outcome: Outcome) -> int:
    return 0 if outcome is Outcome.OK else SIGABRT_EXIT_CODE


def log_outcome(outcome: Outcome, sink: LoggerInterface) -> None:
    """Emit exactly one line describing outcome."""
    severity, message = to_log_line(outcome)
    if severity is Severity.ERROR:
        sink.error(message)
    else:
        sink.info(message)
