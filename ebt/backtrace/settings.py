"""Display settings for backtrace rendering."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from ..errors import InvalidBacktraceModeError, InvalidFrameLimitError

DEFAULT_FRAME_LIMIT = 50

# Environment defaults for the CLI options
ENV_BACKTRACE = "EBT_BACKTRACE"
ENV_BACKTRACE_LIMIT = "EBT_BACKTRACE_LIMIT"


class BacktraceMode(Enum):
    """When to print the backtrace."""

    AUTO = "auto"
    NEVER = "never"
    ALWAYS = "always"


def parse_backtrace_mode(value: Union[str, BacktraceMode]) -> BacktraceMode:
    """Parse a user-supplied mode, case-insensitively.

    Raises:
        InvalidBacktraceModeError: value is not auto, never or always.
    """
    if isinstance(value, BacktraceMode):
        return value
    try:
        return BacktraceMode(value.strip().lower())
    except (ValueError, AttributeError):
        raise InvalidBacktraceModeError(value) from None


def parse_frame_limit(value: Union[str, int]) -> int:
    """Parse a frame limit; 0 means unlimited, negatives are rejected."""
    try:
        limit = int(value)
    except (TypeError, ValueError):
        raise InvalidFrameLimitError(value) from None
    if limit < 0:
        raise InvalidFrameLimitError(limit)
    return limit


@dataclass(frozen=True)
class DisplaySettings:
    """How the backtrace is gated and rendered.

    Attributes:
        mode:              Print gate mode.
        frame_limit:       Maximum frames to print; 0 prints every frame.
        shorten_paths:     Show source paths relative to working_directory.
        working_directory: Base for shortened paths.
    """

    mode: BacktraceMode = BacktraceMode.AUTO
    frame_limit: int = DEFAULT_FRAME_LIMIT
    shorten_paths: bool = False
    working_directory: Path = field(default_factory=Path.cwd)

    @classmethod
    def from_options(
        cls,
        mode: Union[str, BacktraceMode, None] = None,
        limit: Union[str, int, None] = None,
        shorten_paths: bool = False,
        working_directory: Optional[Union[str, Path]] = None,
    ) -> "DisplaySettings":
        """Validate raw option values; unset values fall back to the environment.

        Raises:
            InvalidBacktraceModeError: bad mode.
            InvalidFrameLimitError: bad limit.
        """
        if mode is None:
            mode = os.environ.get(ENV_BACKTRACE, BacktraceMode.AUTO.value)
        if limit is None:
            limit = os.environ.get(ENV_BACKTRACE_LIMIT, DEFAULT_FRAME_LIMIT)
        return cls(
            mode=parse_backtrace_mode(mode),
            frame_limit=parse_frame_limit(limit),
            shorten_paths=shorten_paths,
            working_directory=Path(working_directory) if working_directory else Path.cwd(),
        )
