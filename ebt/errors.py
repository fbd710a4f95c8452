"""Exception types raised by the backtrace pipeline and its collaborators."""

from __future__ import annotations


class EbtError(Exception):
    """Base class for all ebt errors."""


class ConfigurationError(EbtError, ValueError):
    """A user-supplied option failed validation before any target access."""


class InvalidBacktraceModeError(ConfigurationError):
    """Raised for a ``--backtrace`` value other than auto/never/always."""

    def __init__(self, value: str):
        self.value = value
        super().__init__(
            f"invalid backtrace mode {value!r}: options for `--backtrace` are "
            "`auto`, `never`, `always`"
        )


class InvalidFrameLimitError(ConfigurationError):
    """Raised for a negative ``--backtrace-limit``."""

    def __init__(self, value: int):
        self.value = value
        super().__init__(f"invalid backtrace limit {value}: must be >= 0 (0 means no limit)")


class TargetError(EbtError):
    """A register or memory read against the target failed."""


class MissingDebugInfoError(EbtError):
    """No call-frame information (and no fallback) exists for an address."""

    def __init__(self, address: int):
        self.address = address
        super().__init__(
            f"debug information for address {address:#010x} is missing. "
            "Likely fix: build the firmware with debug info (-g / debug = 1) "
            "and keep the .debug_frame section"
        )


class ProgramImageError(EbtError):
    """The firmware ELF could not be loaded into a program image."""
