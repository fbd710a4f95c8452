"""Program-image model: the debug metadata the unwinder and symbolicator read.

A ProgramImage is built once (from an ELF by ebt.elf_image, or directly in
tests) and never modified afterwards:

    symbols        function symbols, sorted by start address
    lines          line-number rows, sorted by address
    inline_calls   inlined-subroutine ranges with their call sites
    unwind_tables  call-frame information, one table per FDE
    entry_point    reset entry address (Thumb bit cleared)
    code_ranges    executable address ranges
    ram_ranges     address ranges the stack may legally live in
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass, field
from functools import cached_property
from typing import Mapping, Optional


@dataclass(frozen=True)
class AddressRange:
    """Half-open address range [start, end)."""

    start: int
    end: int

    def contains(self, address: int) -> bool:
        return self.start <= address < self.end


@dataclass(frozen=True)
class RamBounds:
    """Region the target's stack may occupy; both bounds inclusive."""

    start: int
    end: int

    def contains(self, address: int) -> bool:
        return self.start <= address <= self.end


@dataclass(frozen=True)
class FunctionSymbol:
    """A function from the ELF symbol table."""

    name: str
    address: int
    size: int

    @property
    def end(self) -> int:
        return self.address + self.size

    def contains(self, address: int) -> bool:
        return self.address <= address < self.end


@dataclass(frozen=True)
class LineEntry:
    """One row of the line-number program.

    ``end_sequence`` rows mark the first address past a sequence and carry
    no location.
    """

    address: int
    file: Optional[str]
    line: int
    column: Optional[int] = None
    end_sequence: bool = False


@dataclass(frozen=True)
class InlineCall:
    """An inlined subroutine instance.

    Attributes:
        function_name: Name of the inlined callee.
        ranges:        Code ranges the inlined body occupies.
        call_file:     Source file of the call site in the caller.
        call_line:     Line of the call site.
        call_column:   Column of the call site, if recorded.
        depth:         Nesting depth inside the containing function (0 =
                       inlined directly into a real function).
    """

    function_name: str
    ranges: tuple[AddressRange, ...]
    call_file: Optional[str] = None
    call_line: int = 0
    call_column: Optional[int] = None
    depth: int = 0

    def contains(self, address: int) -> bool:
        return any(r.contains(address) for r in self.ranges)


# Register rule kinds (DWARF call-frame instructions, expressions excluded)
RULE_UNDEFINED = "undefined"
RULE_SAME_VALUE = "same_value"
RULE_OFFSET = "offset"
RULE_VAL_OFFSET = "val_offset"
RULE_REGISTER = "register"


@dataclass(frozen=True)
class RegisterRule:
    """How to recover one caller register from the callee frame."""

    kind: str
    value: int = 0


@dataclass(frozen=True)
class UnwindRow:
    """Call-frame rules valid from ``address`` up to the next row."""

    address: int
    cfa_register: int
    cfa_offset: int
    rules: Mapping[int, RegisterRule] = field(default_factory=dict)


@dataclass(frozen=True)
class UnwindTable:
    """Decoded rows of one frame description entry covering [start, end)."""

    start: int
    end: int
    rows: tuple[UnwindRow, ...]

    def row_for(self, address: int) -> Optional[UnwindRow]:
        """Return the last row whose address is <= address."""
        keys = [row.address for row in self.rows]
        index = bisect.bisect_right(keys, address) - 1
        if index < 0:
            return None
        return self.rows[index]


@dataclass(frozen=True)
class ProgramImage:
    """Debug metadata of the firmware running on the target."""

    symbols: tuple[FunctionSymbol, ...] = ()
    lines: tuple[LineEntry, ...] = ()
    inline_calls: tuple[InlineCall, ...] = ()
    unwind_tables: tuple[UnwindTable, ...] = ()
    entry_point: Optional[int] = None
    code_ranges: tuple[AddressRange, ...] = ()
    ram_ranges: tuple[AddressRange, ...] = ()
    initial_stack_pointer: Optional[int] = None
    architecture: str = "cortex-m"

    def __post_init__(self) -> None:
        object.__setattr__(self, "symbols", tuple(sorted(self.symbols, key=lambda s: s.address)))
        # end_sequence rows sort first so a sequence starting at the same
        # address wins the nearest-not-greater lookup
        object.__setattr__(
            self, "lines",
            tuple(sorted(self.lines, key=lambda e: (e.address, not e.end_sequence))),
        )
        object.__setattr__(
            self, "unwind_tables",
            tuple(sorted(self.unwind_tables, key=lambda t: t.start)),
        )
        object.__setattr__(self, "inline_calls", tuple(self.inline_calls))
        object.__setattr__(self, "code_ranges", tuple(self.code_ranges))
        object.__setattr__(self, "ram_ranges", tuple(self.ram_ranges))

    @cached_property
    def symbol_starts(self) -> list[int]:
        return [s.address for s in self.symbols]

    @cached_property
    def line_addresses(self) -> list[int]:
        return [e.address for e in self.lines]

    @cached_property
    def unwind_starts(self) -> list[int]:
        return [t.start for t in self.unwind_tables]

    @cached_property
    def entry_function(self) -> Optional[FunctionSymbol]:
        """The function symbol containing the entry point, if any."""
        if self.entry_point is None:
            return None
        index = bisect.bisect_right(self.symbol_starts, self.entry_point) - 1
        if index >= 0 and self.symbols[index].contains(self.entry_point):
            return self.symbols[index]
        return None

    def is_entry(self, address: int) -> bool:
        """True if address lies in the entry-point function."""
        if self.entry_point is None:
            return False
        function = self.entry_function
        if function is not None:
            return function.contains(address)
        return address == self.entry_point

    def inline_chain(self, address: int) -> list[InlineCall]:
        """Inlined calls whose ranges contain address, outermost first."""
        chain = [call for call in self.inline_calls if call.contains(address)]
        chain.sort(key=lambda call: call.depth)
        return chain

    def in_code(self, address: int) -> bool:
        """True if address is executable. Unknown code ranges accept anything."""
        if not self.code_ranges:
            return True
        return any(r.contains(address) for r in self.code_ranges)

    def in_ram(self, address: int) -> bool:
        """True if address may hold stack. Unknown RAM ranges accept anything."""
        if not self.ram_ranges:
            return True
        return any(r.contains(address) for r in self.ram_ranges)
