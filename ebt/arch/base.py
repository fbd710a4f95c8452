"""Base architecture ABC and the frame-pointer record layout.

New architectures implement Architecture to provide:
- DWARF register numbering of the program counter, stack pointer, link
  register and frame pointer
- Return-address conventions (reset marker, exception return, ISA bit)
- Recovery of the interrupted context from an exception frame
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ..interfaces import TargetInterface

Registers = dict[int, int]


@dataclass(frozen=True)
class FramePointerLayout:
    """Where a compiler-generated frame record keeps the caller's state.

    Offsets are relative to the frame pointer; the caller's stack pointer is
    ``fp + caller_sp_offset``.
    """

    saved_fp_offset: int
    saved_lr_offset: int
    caller_sp_offset: int


class Architecture(ABC):
    """Base class for architecture-specific unwinding conventions."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name, e.g. 'ARM Cortex-M'."""

    @property
    @abstractmethod
    def pc_register(self) -> int:
        """DWARF number of the program counter."""

    @property
    @abstractmethod
    def sp_register(self) -> int:
        """DWARF number of the stack pointer."""

    @property
    @abstractmethod
    def lr_register(self) -> int:
        """DWARF number of the link register."""

    @property
    @abstractmethod
    def fp_register(self) -> int:
        """DWARF number of the frame pointer."""

    @abstractmethod
    def core_register_names(self) -> dict[int, str]:
        """Map DWARF register number -> target register name."""

    @property
    def frame_pointer_layout(self) -> Optional[FramePointerLayout]:
        """Frame record layout for the no-CFI fallback, or None."""
        return None

    @abstractmethod
    def is_reset_return(self, value: int) -> bool:
        """True if value is the link-register marker of the outermost frame."""

    @abstractmethod
    def is_exception_return(self, value: int) -> bool:
        """True if value is an exception-return code rather than an address."""

    @abstractmethod
    def is_valid_return_address(self, value: int) -> bool:
        """True if value is well-formed as an ordinary return address."""

    @abstractmethod
    def return_address_to_pc(self, value: int) -> int:
        """Strip ISA-state bits from a return address."""

    @abstractmethod
    def unwind_exception(
        self, target: TargetInterface, regs: Registers, exc_return: int
    ) -> Registers:
        """Recover the interrupted context saved on exception entry.

        Args:
            target:     Halted target; reads may raise TargetError.
            regs:       Registers of the exception handler's caller context,
                        with the stack pointer already unwound.
            exc_return: The exception-return code found as return address.

        Returns:
            Register set of the interrupted code.
        """
