"""Shared pytest fixtures: a small synthetic Cortex-M program image and mock targets."""

from __future__ import annotations

from pathlib import Path

import pytest

from ebt.backtrace.settings import BacktraceMode, DisplaySettings
from ebt.mocks import MockLogger, MockTarget
from ebt.program_image import (
    RULE_OFFSET,
    AddressRange,
    FunctionSymbol,
    LineEntry,
    ProgramImage,
    RamBounds,
    RegisterRule,
    UnwindRow,
    UnwindTable,
)

RAM_START = 0x20000000
STACK_TOP = 0x20010000
RAM_BOUNDS = RamBounds(RAM_START, STACK_TOP - 1)

SRC = "/work/app/src/main.c"

# name -> (address, size); every function except no_cfi pushes {r7, lr}
FUNCTIONS = {
    "Reset_Handler": (0x100, 0x40),
    "main": (0x200, 0x60),
    "foo": (0x300, 0x40),
    "bar": (0x400, 0x40),
    "HardFault_Handler": (0x500, 0x40),
    "no_cfi": (0x600, 0x40),
}

LINES = {
    "Reset_Handler": 5,
    "main": 20,
    "foo": 30,
    "bar": 40,
    "HardFault_Handler": 50,
    "no_cfi": 60,
}

# Return addresses (Thumb bit set) into each function, past the prologue
RET_MAIN = 0x211
RET_FOO = 0x311
RET_BAR = 0x411
RET_RESET = 0x105
RET_NO_CFI = 0x611


def push_r7_lr_table(start: int, end: int) -> UnwindTable:
    """CFI for a function whose whole body runs after `push {r7, lr}`."""
    row = UnwindRow(
        address=start,
        cfa_register=13,
        cfa_offset=8,
        rules={7: RegisterRule(RULE_OFFSET, -8), 14: RegisterRule(RULE_OFFSET, -4)},
    )
    return UnwindTable(start=start, end=end, rows=(row,))


def build_image(**overrides) -> ProgramImage:
    symbols = [FunctionSymbol(name, addr, size) for name, (addr, size) in FUNCTIONS.items()]
    lines = [
        LineEntry(addr, SRC, LINES[name], column=5)
        for name, (addr, _size) in FUNCTIONS.items()
    ]
    lines.append(LineEntry(0x640, None, 0, end_sequence=True))
    tables = [
        push_r7_lr_table(addr, addr + size)
        for name, (addr, size) in FUNCTIONS.items()
        if name != "no_cfi"
    ]
    fields = dict(
        symbols=symbols,
        lines=lines,
        unwind_tables=tables,
        entry_point=0x100,
        code_ranges=[AddressRange(0x0, 0x10000)],
        ram_ranges=[AddressRange(RAM_START, STACK_TOP)],
        initial_stack_pointer=STACK_TOP,
    )
    fields.update(overrides)
    return ProgramImage(**fields)


def make_target(pc: int, sp: int, lr: int = 0, r7: int = 0) -> MockTarget:
    """MockTarget with the full r0-r15 register file populated."""
    target = MockTarget({f"r{n}": 0 for n in range(13)})
    target.set_register("r7", r7)
    target.set_register("sp", sp)
    target.set_register("lr", lr)
    target.set_register("pc", pc)
    return target


def push_frames(target: MockTarget, sp: int, return_addresses: list[int]) -> int:
    """Lay out consecutive {r7, lr} records from sp; returns the final sp."""
    for ra in return_addresses:
        target.write_words(sp, [0, ra])
        sp += 8
    return sp


@pytest.fixture
def image() -> ProgramImage:
    return build_image()


@pytest.fixture
def sink() -> MockLogger:
    return MockLogger()


@pytest.fixture
def settings() -> DisplaySettings:
    return DisplaySettings(mode=BacktraceMode.AUTO, working_directory=Path("/work/app"))


@pytest.fixture
def healthy_target() -> MockTarget:
    """Halted in bar <- foo <- main <- Reset_Handler."""
    sp = STACK_TOP - 0x100
    target = make_target(pc=0x410, sp=sp, lr=RET_FOO)
    push_frames(target, sp, [RET_FOO, RET_MAIN, RET_RESET])
    return target


@pytest.fixture
def hardfault_target() -> MockTarget:
    """HardFault_Handler entered from bar <- foo <- main <- Reset_Handler."""
    sp = STACK_TOP - 0x100
    target = make_target(pc=0x510, sp=sp, lr=0xFFFFFFF9)
    target.write_words(sp, [0, 0xFFFFFFF9])
    frame = sp + 8
    # r0 r1 r2 r3 r12 lr pc xpsr
    target.write_words(frame, [1, 2, 3, 4, 12, RET_FOO, 0x410, 0x01000000])
    push_frames(target, frame + 0x20, [RET_FOO, RET_MAIN, RET_RESET])
    return target
