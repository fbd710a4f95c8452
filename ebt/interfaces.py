"""
Interfaces for the Embedded BackTrace pipeline

Abstract base classes that define contracts for the pluggable collaborators
of the unwinder: the halted target and the diagnostic sink.
This enables dependency injection and mock-based testing without hardware.
"""

import struct
from abc import ABC, abstractmethod


class TargetInterface(ABC):
    """
    Abstract interface for a halted target's registers and memory.

    Implementations:
    - JLinkTarget: Wraps pylink for a J-Link probe
    - MockTarget: For unit testing without hardware

    Register names are lowercase: r0-r12, sp, lr, pc, xpsr, msp, psp.
    Every read may fail with TargetError.
    """

    @abstractmethod
    def read_core_register(self, name: str) -> int:
        """Read a core register. Raises TargetError on failure."""
        pass

    @abstractmethod
    def read_memory(self, address: int, size: int) -> bytes:
        """Read size bytes starting at address. Raises TargetError on failure."""
        pass

    def read_u32(self, address: int) -> int:
        """Read one little-endian 32-bit word."""
        return struct.unpack("<I", self.read_memory(address, 4))[0]


class LoggerInterface(ABC):
    """
    Abstract interface for logging.

    The diagnostic sink: separates backtrace logic from log output formatting.
    """

    @abstractmethod
    def debug(self, msg: str) -> None:
        """Log debug message."""
        pass

    @abstractmethod
    def info(self, msg: str) -> None:
        """Log info message."""
        pass

    @abstractmethod
    def warning(self, msg: str) -> None:
        """Log warning message."""
        pass

    @abstractmethod
    def error(self, msg: str) -> None:
        """Log error message."""
        pass
