"""ARM Cortex-M unwinding conventions (ARMv6-M / ARMv7-M / ARMv8-M, Thumb).

Covers DWARF register numbering, the EXC_RETURN codes the core loads into LR
on exception entry, the hardware-stacked exception frame, and the frame
record GCC emits in r7 when frame pointers are kept.
"""

from __future__ import annotations

import logging
import struct

from ..interfaces import TargetInterface
from .base import Architecture, FramePointerLayout, Registers

logger = logging.getLogger(__name__)

# =============================================================================
# Register numbering (DWARF for the ARM architecture)
# =============================================================================

SP = 13
LR = 14
PC = 15
FP = 7  # Thumb frame pointer

# =============================================================================
# Return-address conventions
# =============================================================================

LR_END = 0xFFFFFFFF           # reset value of LR: nothing to return to
EXC_RETURN_MASK = 0xFFFFFFE0  # EXC_RETURN codes are 0xFFFFFFE0..0xFFFFFFFE
EXC_RETURN_SPSEL = 1 << 2     # set: frame was pushed on the process stack
EXC_RETURN_FTYPE = 1 << 4     # clear: extended frame with FP state
THUMB_BIT = 1

# =============================================================================
# Exception frame
# =============================================================================

# Words pushed by hardware on exception entry, lowest address first
STACKED_REGISTERS = ("r0", "r1", "r2", "r3", "r12", "lr", "pc", "xpsr")
BASIC_FRAME_SIZE = 0x20
EXTENDED_FRAME_SIZE = 0x68    # basic frame + s0-s15 + FPSCR + reserved
XPSR_STKALIGN = 1 << 9        # padding word inserted to 8-byte align the frame

_STACKED_DWARF = {"r0": 0, "r1": 1, "r2": 2, "r3": 3, "r12": 12, "lr": LR, "pc": PC}


def is_exception_return(value: int) -> bool:
    """True if value is an EXC_RETURN code (not the LR_END marker)."""
    return value & EXC_RETURN_MASK == EXC_RETURN_MASK and value != LR_END


def exception_frame_size(exc_return: int, xpsr: int) -> int:
    """Bytes the core pushed for an exception frame."""
    size = BASIC_FRAME_SIZE if exc_return & EXC_RETURN_FTYPE else EXTENDED_FRAME_SIZE
    if xpsr & XPSR_STKALIGN:
        size += 4
    return size


class CortexM(Architecture):
    """ARM Cortex-M (M0/M0+/M3/M4/M7/M23/M33/M55)."""

    @property
    def name(self) -> str:
        return "ARM Cortex-M"

    @property
    def pc_register(self) -> int:
        return PC

    @property
    def sp_register(self) -> int:
        return SP

    @property
    def lr_register(self) -> int:
        return LR

    @property
    def fp_register(self) -> int:
        return FP

    def core_register_names(self) -> dict[int, str]:
        names = {n: f"r{n}" for n in range(13)}
        names.update({SP: "sp", LR: "lr", PC: "pc"})
        return names

    @property
    def frame_pointer_layout(self) -> FramePointerLayout:
        # push {r7, lr}; mov r7, sp
        return FramePointerLayout(saved_fp_offset=0, saved_lr_offset=4, caller_sp_offset=8)

    def is_reset_return(self, value: int) -> bool:
        return value == LR_END

    def is_exception_return(self, value: int) -> bool:
        return is_exception_return(value)

    def is_valid_return_address(self, value: int) -> bool:
        return bool(value & THUMB_BIT)

    def return_address_to_pc(self, value: int) -> int:
        return value & ~THUMB_BIT

    def unwind_exception(
        self, target: TargetInterface, regs: Registers, exc_return: int
    ) -> Registers:
        if exc_return & EXC_RETURN_SPSEL:
            frame_base = target.read_core_register("psp")
        else:
            frame_base = regs[SP]

        raw = target.read_memory(frame_base, 4 * len(STACKED_REGISTERS))
        stacked = dict(zip(STACKED_REGISTERS, struct.unpack("<8I", raw)))

        caller = dict(regs)
        for name, number in _STACKED_DWARF.items():
            caller[number] = stacked[name]
        caller[SP] = frame_base + exception_frame_size(exc_return, stacked["xpsr"])

        logger.debug(
            "exception frame at %#010x (EXC_RETURN %#010x): pc=%#010x lr=%#010x",
            frame_base, exc_return, stacked["pc"], stacked["lr"],
        )
        return caller
