"""Virtual stack unwinder.

Walks the call stack of a halted target from its live registers and memory,
using call-frame information from the program image and falling back to the
frame-pointer chain where none exists. Exception entries are followed
through the hardware-stacked frame.

Every read of the target may fail; the unwinder never raises for target or
image problems and instead reports them through the returned FrameStore.
"""

from __future__ import annotations

import bisect
import logging
from typing import Optional

from ..arch import Architecture, get_architecture
from ..arch.base import Registers
from ..errors import MissingDebugInfoError, TargetError
from ..interfaces import TargetInterface
from ..program_image import (
    RULE_OFFSET,
    RULE_REGISTER,
    RULE_SAME_VALUE,
    RULE_UNDEFINED,
    RULE_VAL_OFFSET,
    ProgramImage,
    UnwindRow,
)
from .frames import FrameStore, RawFrame

logger = logging.getLogger(__name__)

MAX_FRAMES = 256


class _CorruptedStack(Exception):
    """Internal: the unwound state is not a plausible caller frame."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


def find_unwind_row(image: ProgramImage, pc: int) -> Optional[UnwindRow]:
    """Return the call-frame row describing pc, or None."""
    index = bisect.bisect_right(image.unwind_starts, pc) - 1
    if index < 0:
        return None
    table = image.unwind_tables[index]
    if not table.start <= pc < table.end:
        return None
    return table.row_for(pc)


def _read_core_registers(target: TargetInterface, arch: Architecture) -> Registers:
    return {
        number: target.read_core_register(name)
        for number, name in arch.core_register_names().items()
    }


def _unwind_cfi(
    target: TargetInterface, arch: Architecture, row: UnwindRow, regs: Registers
) -> Registers:
    try:
        cfa = (regs[row.cfa_register] + row.cfa_offset) & 0xFFFFFFFF
    except KeyError:
        raise _CorruptedStack(f"CFA register r{row.cfa_register} is undefined") from None

    caller = dict(regs)
    for number, rule in row.rules.items():
        if rule.kind == RULE_OFFSET:
            caller[number] = target.read_u32((cfa + rule.value) & 0xFFFFFFFF)
        elif rule.kind == RULE_VAL_OFFSET:
            caller[number] = (cfa + rule.value) & 0xFFFFFFFF
        elif rule.kind == RULE_REGISTER:
            if rule.value in regs:
                caller[number] = regs[rule.value]
            else:
                caller.pop(number, None)
        elif rule.kind == RULE_UNDEFINED:
            caller.pop(number, None)
        elif rule.kind == RULE_SAME_VALUE:
            pass
    caller[arch.sp_register] = cfa
    return caller


def _unwind_frame_pointer(
    target: TargetInterface, image: ProgramImage, arch: Architecture, regs: Registers
) -> Registers:
    pc = regs[arch.pc_register]
    layout = arch.frame_pointer_layout
    if layout is None:
        raise MissingDebugInfoError(pc)

    fp = regs.get(arch.fp_register, 0)
    if fp == 0 or not image.in_ram(fp):
        raise _CorruptedStack(f"stale frame pointer {fp:#010x}")

    caller = dict(regs)
    caller[arch.fp_register] = target.read_u32(fp + layout.saved_fp_offset)
    caller[arch.lr_register] = target.read_u32(fp + layout.saved_lr_offset)
    caller[arch.sp_register] = fp + layout.caller_sp_offset
    return caller


def _step(
    target: TargetInterface,
    image: ProgramImage,
    arch: Architecture,
    regs: Registers,
    lookup: int,
) -> tuple[Registers, int]:
    """Unwind one frame. Returns (caller registers, return address).

    lookup is the address the call-frame row is searched for: the pc itself,
    or one byte before it when the pc is a return address.
    """
    pc = regs[arch.pc_register]
    sp = regs[arch.sp_register]

    row = find_unwind_row(image, lookup)
    if row is not None:
        caller = _unwind_cfi(target, arch, row, regs)
    else:
        logger.debug("no CFI for %#010x, following frame pointer", pc)
        caller = _unwind_frame_pointer(target, image, arch, regs)

    return_address = caller.get(arch.lr_register)
    if return_address is None:
        raise _CorruptedStack(f"return address of {pc:#010x} is undefined")

    if (
        row is not None
        and caller[arch.sp_register] == sp
        and arch.return_address_to_pc(return_address) == pc
    ):
        raise _CorruptedStack(f"unwinding stalled at {pc:#010x}")

    return caller, return_address


def _raw_frame(
    regs: Registers, arch: Architecture, is_exception: bool = False, is_return: bool = False
) -> RawFrame:
    return RawFrame(
        program_counter=regs[arch.pc_register],
        stack_pointer=regs[arch.sp_register],
        link_register=regs.get(arch.lr_register),
        frame_pointer=regs.get(arch.fp_register),
        is_exception_frame=is_exception,
        is_return_address=is_return,
    )


def unwind(
    target: TargetInterface,
    image: ProgramImage,
    arch: Optional[Architecture] = None,
    *,
    max_frames: int = MAX_FRAMES,
) -> FrameStore:
    """Unwind the halted target's call stack, innermost frame first.

    Args:
        target:     Halted target handle.
        image:      Program image of the firmware running on the target.
        arch:       Architecture conventions (default: from image.architecture).
        max_frames: Iteration cap; reaching it marks the stack corrupted.

    Returns:
        FrameStore with the frames collected and the unwind status.
    """
    if arch is None:
        arch = get_architecture(image.architecture)

    try:
        regs = _read_core_registers(target, arch)
    except TargetError as exc:
        logger.debug("cannot read core registers: %s", exc)
        return FrameStore(processing_error=exc)


    logger.debug("unwinding with %s conventions", arch.name)
    frames: list[RawFrame] = []
    # The halted pc is exact; callers' pcs are return addresses until an
    # exception frame hands back an interrupted pc.
    is_return = False

    def finish(**status) -> FrameStore:
        store = FrameStore(raw_frames=tuple(frames), **status)
        logger.debug(
            "unwound %d frames (corrupted=%s, entry=%s, error=%r)",
            len(store), store.corrupted, store.reached_entry, store.processing_error,
        )
        return store

    while True:
        pc = regs[arch.pc_register]
        lookup = pc - 1 if is_return else pc

        if image.is_entry(lookup):
            frames.append(_raw_frame(regs, arch, is_return=is_return))
            return finish(reached_entry=True)

        try:
            caller, return_address = _step(target, image, arch, regs, lookup)
        except (TargetError, MissingDebugInfoError) as exc:
            frames.append(_raw_frame(regs, arch, is_return=is_return))
            return finish(processing_error=exc)
        except _CorruptedStack as exc:
            logger.debug("stack corrupted: %s", exc.reason)
            frames.append(_raw_frame(regs, arch, is_return=is_return))
            return finish(corrupted=True)

        is_exception = arch.is_exception_return(return_address)
        frames.append(_raw_frame(regs, arch, is_exception, is_return))
        logger.debug(
            "frame %d: pc=%#010x sp=%#010x ra=%#010x",
            len(frames) - 1, pc, regs[arch.sp_register], return_address,
        )

        if arch.is_reset_return(return_address):
            return finish(reached_entry=True)

        if is_exception:
            try:
                caller = arch.unwind_exception(target, caller, return_address)
            except TargetError as exc:
                return finish(processing_error=exc)
            caller[arch.pc_register] = arch.return_address_to_pc(caller[arch.pc_register])
            is_return = False
        elif not arch.is_valid_return_address(return_address):
            logger.debug("return address %#010x is not a valid code address", return_address)
            return finish(corrupted=True)
        else:
            caller[arch.pc_register] = arch.return_address_to_pc(return_address)
            is_return = True

        caller_pc = caller[arch.pc_register]
        caller_sp = caller[arch.sp_register]
        if not image.in_code(caller_pc - 1 if is_return else caller_pc):
            logger.debug("caller pc %#010x is outside code", caller_pc)
            return finish(corrupted=True)
        if not image.in_ram(caller_sp):
            logger.debug("caller sp %#010x is outside RAM", caller_sp)
            return finish(corrupted=True)

        if len(frames) >= max_frames:
            logger.debug("frame cap of %d reached", max_frames)
            return finish(corrupted=True)

        regs = caller
