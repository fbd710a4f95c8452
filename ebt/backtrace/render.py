"""Decide whether to show the backtrace and render it as text."""

from __future__ import annotations

import sys
from typing import Optional, Sequence, TextIO

from ..interfaces import LoggerInterface
from .frames import FrameStore, SymbolicatedFrame
from .outcome import Outcome
from .settings import BacktraceMode, DisplaySettings

HEADER = "stack backtrace:"
EXCEPTION_MARKER = "      <exception entry>"
CORRUPTED_WARNING = "call stack was corrupted; unwinding could not be completed"


def should_render(mode: BacktraceMode, outcome: Outcome, store: FrameStore) -> bool:
    """Print gate. AUTO and NEVER both print only for a failed or damaged run."""
    return (
        mode is BacktraceMode.ALWAYS
        or outcome is Outcome.STACK_OVERFLOW
        or store.corrupted
        or store.contains_exception
    )


def resolve_limit(requested: int, total_frames: int) -> int:
    """0 means no limit: show every frame."""
    return total_frames if requested == 0 else requested


def format_frame(frame: SymbolicatedFrame) -> list[str]:
    if frame.is_inline:
        lines = [f"{frame.index:>4}: {frame.function_name} (inline)"]
    else:
        lines = [f"{frame.index:>4}: 0x{frame.address:08x} @ {frame.function_name}"]
    location = frame.location
    if location is not None:
        lines.append(f"        at {location}")
    if frame.is_exception and not frame.is_inline:
        lines.append(EXCEPTION_MARKER)
    return lines


def format_backtrace(frames: Sequence[SymbolicatedFrame], limit: int) -> list[str]:
    """Render at most limit frames, innermost first."""
    lines = [HEADER]
    shown = frames[:limit]
    for frame in shown:
        lines.extend(format_frame(frame))
    hidden = len(frames) - len(shown)
    if hidden > 0:
        lines.append(f"      ... ({hidden} more frames)")
    return lines


def print_backtrace(
    frames: Sequence[SymbolicatedFrame],
    store: FrameStore,
    outcome: Outcome,
    settings: DisplaySettings,
    sink: LoggerInterface,
    out: Optional[TextIO] = None,
) -> bool:
    """Write the backtrace and its diagnostics if the gate opens.

    Returns:
        True if the backtrace was rendered.
    """
    if not should_render(settings.mode, outcome, store):
        return False

    limit = resolve_limit(settings.frame_limit, len(frames))
    out = out if out is not None else sys.stdout
    for line in format_backtrace(frames, limit):
        print(line, file=out)

    if store.corrupted:
        sink.warning(CORRUPTED_WARNING)
    if store.processing_error is not None:
        sink.error(
            f"error occurred during backtrace creation: {store.processing_error!r}; "
            "the backtrace may be incomplete."
        )
    return True
