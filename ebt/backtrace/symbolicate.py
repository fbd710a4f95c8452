"""Resolve raw frames to functions and source locations."""

from __future__ import annotations

import bisect
import logging
from pathlib import Path
from typing import Optional

from ..program_image import FunctionSymbol, InlineCall, LineEntry, ProgramImage
from .frames import FrameStore, RawFrame, SymbolicatedFrame
from .settings import DisplaySettings

logger = logging.getLogger(__name__)

UNKNOWN_FUNCTION = "<unknown>"

# (file, line, column)
_Location = tuple[Optional[str], Optional[int], Optional[int]]
_NO_LOCATION: _Location = (None, None, None)


def find_function(image: ProgramImage, address: int) -> Optional[FunctionSymbol]:
    """Return the function symbol containing address, or None."""
    index = bisect.bisect_right(image.symbol_starts, address) - 1
    if index < 0:
        return None
    symbol = image.symbols[index]
    return symbol if symbol.contains(address) else None


def find_location(
    image: ProgramImage, address: int, function: Optional[FunctionSymbol] = None
) -> Optional[LineEntry]:
    """Return the nearest line entry at or below address.

    None when there is no such entry, when it ends a sequence, or when it
    lies outside function.
    """
    index = bisect.bisect_right(image.line_addresses, address) - 1
    if index < 0:
        return None
    entry = image.lines[index]
    if entry.end_sequence:
        return None
    if function is not None and not function.contains(entry.address):
        return None
    return entry


def normalize_path(path: Optional[str], settings: DisplaySettings) -> Optional[str]:
    """Make absolute paths under the working directory relative to it."""
    if path is None or not settings.shorten_paths:
        return path
    candidate = Path(path)
    if not candidate.is_absolute():
        return path
    try:
        return str(candidate.relative_to(settings.working_directory))
    except ValueError:
        return path


def _expand(
    raw: RawFrame, image: ProgramImage
) -> list[tuple[str, _Location, bool]]:
    """Expand one raw frame into (function, location, is_inline), innermost first."""
    # return addresses resolve inside the call, not past it
    address = raw.lookup_address
    function = find_function(image, address)
    entry = find_location(image, address, function)
    location = (entry.file, entry.line, entry.column) if entry else _NO_LOCATION

    name = function.name if function else UNKNOWN_FUNCTION
    chain: list[InlineCall] = image.inline_chain(address)
    if not chain:
        return [(name, location, False)]

    # Outermost first: each level sits at the call site of the level it contains
    levels = [(name, _call_site(chain[0]), False)]
    for outer, inner in zip(chain, chain[1:]):
        levels.append((outer.function_name, _call_site(inner), True))
    levels.append((chain[-1].function_name, location, True))
    levels.reverse()
    return levels


def _call_site(call: InlineCall) -> _Location:
    if call.call_file is None:
        return _NO_LOCATION
    return (call.call_file, call.call_line or None, call.call_column)


def symbolicate(
    store: FrameStore, image: ProgramImage, settings: DisplaySettings
) -> list[SymbolicatedFrame]:
    """Resolve every raw frame, splitting inlined calls into their own frames.

    Output is innermost first with sequential indexes; a frame without a
    symbol becomes a ``<unknown>`` placeholder.
    """
    frames: list[SymbolicatedFrame] = []
    for raw in store.raw_frames:
        for function_name, (file_path, line, column), is_inline in _expand(raw, image):
            frames.append(SymbolicatedFrame(
                index=len(frames),
                address=raw.program_counter,
                function_name=function_name,
                file_path=normalize_path(file_path, settings),
                line=line,
                column=column,
                is_inline=is_inline,
                is_exception=raw.is_exception_frame,
            ))
    logger.debug("symbolicated %d raw frames into %d frames", len(store), len(frames))
    return frames
