"""Frame records produced by the unwinder and the symbolicator."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RawFrame:
    """One unwound frame: register snapshot at the point of the call."""

    program_counter: int
    stack_pointer: int
    link_register: Optional[int] = None
    frame_pointer: Optional[int] = None
    is_exception_frame: bool = False
    # program_counter came from a return address rather than a halted or
    # stacked pc
    is_return_address: bool = False

    @property
    def lookup_address(self) -> int:
        """Address to resolve: inside the call instruction for return addresses."""
        if self.is_return_address:
            return self.program_counter - 1
        return self.program_counter


@dataclass(frozen=True)
class FrameStore:
    """Ordered raw frames (innermost first) plus unwind status.

    Attributes:
        raw_frames:       Frames in unwind order.
        corrupted:        Unwinding stopped early on an invalid address, a
                          stalled step, or the iteration cap.
        processing_error: Non-fatal failure that truncated unwinding.
        reached_entry:    Unwinding ended at the program entry point.
    """

    raw_frames: tuple[RawFrame, ...] = ()
    corrupted: bool = False
    processing_error: Optional[Exception] = None
    reached_entry: bool = False

    def __len__(self) -> int:
        return len(self.raw_frames)

    def __iter__(self):
        return iter(self.raw_frames)

    @property
    def contains_exception(self) -> bool:
        return any(frame.is_exception_frame for frame in self.raw_frames)

    @property
    def last_stack_pointer(self) -> Optional[int]:
        """Stack pointer of the outermost frame, or None for an empty store."""
        if not self.raw_frames:
            return None
        return self.raw_frames[-1].stack_pointer

    @property
    def stack_pointers(self) -> tuple[int, ...]:
        """Every stack pointer seen while unwinding, innermost first."""
        return tuple(frame.stack_pointer for frame in self.raw_frames)


@dataclass(frozen=True)
class SymbolicatedFrame:
    """A source-level frame ready for display."""

    index: int
    address: int
    function_name: str
    file_path: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None
    is_inline: bool = False
    is_exception: bool = False

    @property
    def location(self) -> Optional[str]:
        """Source location as file:line[:column], or None when unknown."""
        if self.file_path is None:
            return None
        text = self.file_path
        if self.line:
            text += f":{self.line}"
            if self.column:
                text += f":{self.column}"
        return text

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "address": f"0x{self.address:08x}",
            "function": self.function_name,
            "file": self.file_path,
            "line": self.line,
            "column": self.column,
            "inline": self.is_inline,
            "exception": self.is_exception,
        }
