"""Build a ProgramImage from a firmware ELF with pyelftools.

    load_program_image()
        -> _load_symbols()       : STT_FUNC entries of .symtab
        -> _load_sections()      : code and RAM ranges from section flags
        -> _initial_stack_pointer(): first word of the vector table
        -> _load_unwind_tables() : decoded .debug_frame / .eh_frame FDEs
        -> _load_lines()         : line-number programs of every CU
        -> _collect_inline_calls(): DW_TAG_inlined_subroutine DIEs
"""

from __future__ import annotations

import logging
import os
import struct
from pathlib import Path
from typing import Any, Optional, Union

# ---------------------------------------------------------------------------
# pyelftools: optional
# ---------------------------------------------------------------------------
try:
    from elftools.common.exceptions import DWARFError, ELFError
    from elftools.dwarf.callframe import FDE
    from elftools.dwarf.callframe import RegisterRule as DwarfRegisterRule
    from elftools.dwarf.ranges import BaseAddressEntry, RangeEntry
    from elftools.elf.constants import SH_FLAGS
    from elftools.elf.elffile import ELFFile
    from elftools.elf.sections import SymbolTableSection

    _PYELFTOOLS_AVAILABLE = True
except ImportError:
    _PYELFTOOLS_AVAILABLE = False

from .errors import ProgramImageError
from .program_image import (
    RULE_OFFSET,
    RULE_REGISTER,
    RULE_SAME_VALUE,
    RULE_UNDEFINED,
    RULE_VAL_OFFSET,
    AddressRange,
    FunctionSymbol,
    InlineCall,
    LineEntry,
    ProgramImage,
    RamBounds,
    RegisterRule,
    UnwindRow,
    UnwindTable,
)

logger = logging.getLogger(__name__)

# Section names linker scripts commonly use for the Cortex-M vector table
VECTOR_TABLE_SECTIONS = (".vector_table", ".isr_vector", ".vectors", ".intvecs")

_THUMB_BIT = 1


def _ensure_pyelftools() -> None:
    if not _PYELFTOOLS_AVAILABLE:
        raise ImportError(
            "pyelftools is required for ELF parsing. "
            "Install it with: pip install pyelftools"
        )


def _decode(value: Union[bytes, str, None]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


# =============================================================================
# Symbols and sections
# =============================================================================


def _load_symbols(elf: Any) -> list[FunctionSymbol]:
    symtab = elf.get_section_by_name(".symtab")
    if not isinstance(symtab, SymbolTableSection):
        return []
    symbols = []
    for sym in symtab.iter_symbols():
        if sym["st_info"]["type"] != "STT_FUNC" or sym["st_size"] <= 0 or not sym.name:
            continue
        symbols.append(FunctionSymbol(
            name=sym.name,
            address=sym["st_value"] & ~_THUMB_BIT,
            size=sym["st_size"],
        ))
    return symbols


def _load_sections(elf: Any) -> tuple[list[AddressRange], list[AddressRange]]:
    """Return (code ranges, writable RAM ranges) of allocated sections."""
    code: list[AddressRange] = []
    ram: list[AddressRange] = []
    for section in elf.iter_sections():
        flags = section["sh_flags"]
        size = section["sh_size"]
        if not flags & SH_FLAGS.SHF_ALLOC or size == 0:
            continue
        rng = AddressRange(section["sh_addr"], section["sh_addr"] + size)
        if flags & SH_FLAGS.SHF_EXECINSTR:
            code.append(rng)
        elif flags & SH_FLAGS.SHF_WRITE:
            ram.append(rng)
    return sorted(code, key=lambda r: r.start), sorted(ram, key=lambda r: r.start)


def _initial_stack_pointer(elf: Any) -> Optional[int]:
    for name in VECTOR_TABLE_SECTIONS:
        section = elf.get_section_by_name(name)
        if section is None or section["sh_type"] == "SHT_NOBITS":
            continue
        data = section.data()
        if len(data) >= 4:
            return struct.unpack("<I", data[:4])[0]
    return None


def _stack_ram_range(
    ram: list[AddressRange], initial_sp: Optional[int]
) -> list[AddressRange]:
    """Extend RAM to the top of the stack, which has no section of its own."""
    if not ram:
        return []
    if initial_sp is None:
        return ram
    low = min(r.start for r in ram)
    high = max(max(r.end for r in ram), initial_sp + 1)
    if initial_sp < low:
        return ram
    return [AddressRange(low, high)]


# =============================================================================
# Call-frame information
# =============================================================================

_RULE_KINDS = {
    "UNDEFINED": RULE_UNDEFINED,
    "SAME_VALUE": RULE_SAME_VALUE,
    "OFFSET": RULE_OFFSET,
    "VAL_OFFSET": RULE_VAL_OFFSET,
    "REGISTER": RULE_REGISTER,
}


def _convert_rule(rule: Any) -> Optional[RegisterRule]:
    """Map a pyelftools RegisterRule; expression rules are not supported."""
    kind = _RULE_KINDS.get(rule.type)
    if kind is None:
        return None
    return RegisterRule(kind=kind, value=rule.arg if rule.arg is not None else 0)


def _convert_fde(fde: Any) -> Optional[UnwindTable]:
    start = fde.header["initial_location"] & ~_THUMB_BIT
    end = start + fde.header["address_range"]
    rows = []
    for entry in fde.get_decoded().table:
        cfa = entry["cfa"]
        if cfa.reg is None:
            # DW_CFA_def_cfa_expression
            continue
        rules = {}
        for number, dwarf_rule in entry.items():
            if not isinstance(number, int) or not isinstance(dwarf_rule, DwarfRegisterRule):
                continue
            rule = _convert_rule(dwarf_rule)
            if rule is not None:
                rules[number] = rule
        rows.append(UnwindRow(
            address=entry["pc"] & ~_THUMB_BIT,
            cfa_register=cfa.reg,
            cfa_offset=cfa.offset or 0,
            rules=rules,
        ))
    if not rows:
        return None
    return UnwindTable(start=start, end=end, rows=tuple(rows))


def _load_unwind_tables(dwarf: Any) -> list[UnwindTable]:
    if dwarf.has_CFI():
        entries = dwarf.CFI_entries()
    elif dwarf.has_EH_CFI():
        entries = dwarf.EH_CFI_entries()
    else:
        return []
    tables = []
    for entry in entries:
        if not isinstance(entry, FDE):
            continue
        table = _convert_fde(entry)
        if table is not None:
            tables.append(table)
    return tables


# =============================================================================
# Line tables
# =============================================================================


def _comp_dir(cu: Any) -> Optional[str]:
    attr = cu.get_top_DIE().attributes.get("DW_AT_comp_dir")
    return _decode(attr.value) if attr else None


def _file_path(lineprog: Any, file_index: int, comp_dir: Optional[str]) -> Optional[str]:
    """Resolve a line-program file index to a path.

    DWARF 5 indexes files from 0 and lists the compilation directory as
    directory 0; earlier versions index files from 1.
    """
    version = lineprog["version"]
    index = file_index if version >= 5 else file_index - 1
    files = lineprog["file_entry"]
    if not 0 <= index < len(files):
        return None
    entry = files[index]
    name = _decode(entry.name)

    dirs = [_decode(d) for d in lineprog["include_directory"]]
    dir_index = entry.dir_index
    if version >= 5:
        directory = dirs[dir_index] if dir_index < len(dirs) else comp_dir
    elif dir_index == 0:
        directory = comp_dir
    else:
        directory = dirs[dir_index - 1] if dir_index - 1 < len(dirs) else None

    if directory and not os.path.isabs(name):
        if comp_dir and not os.path.isabs(directory):
            directory = os.path.join(comp_dir, directory)
        return os.path.join(directory, name)
    return name


def _load_lines(dwarf: Any) -> list[LineEntry]:
    lines = []
    for cu in dwarf.iter_CUs():
        lineprog = dwarf.line_program_for_CU(cu)
        if lineprog is None:
            continue
        comp_dir = _comp_dir(cu)
        paths: dict[int, Optional[str]] = {}
        for entry in lineprog.get_entries():
            state = entry.state
            if state is None:
                continue
            if state.file not in paths:
                paths[state.file] = _file_path(lineprog, state.file, comp_dir)
            lines.append(LineEntry(
                address=state.address,
                file=None if state.end_sequence else paths[state.file],
                line=state.line,
                column=state.column or None,
                end_sequence=bool(state.end_sequence),
            ))
    return lines


# =============================================================================
# Inlined subroutines
# =============================================================================


def _die_name(die: Any) -> Optional[str]:
    attrs = die.attributes
    if "DW_AT_name" in attrs:
        return _decode(attrs["DW_AT_name"].value)
    for ref in ("DW_AT_abstract_origin", "DW_AT_specification"):
        if ref in attrs:
            return _die_name(die.get_DIE_from_attribute(ref))
    return None


def _cu_base(cu: Any) -> int:
    attr = cu.get_top_DIE().attributes.get("DW_AT_low_pc")
    return attr.value if attr else 0


def _die_ranges(dwarf: Any, cu: Any, die: Any) -> list[AddressRange]:
    attrs = die.attributes
    if "DW_AT_low_pc" in attrs and "DW_AT_high_pc" in attrs:
        low = attrs["DW_AT_low_pc"].value
        high_attr = attrs["DW_AT_high_pc"]
        # DWARF 4+: high_pc is an offset from low_pc unless it is an address
        high = high_attr.value if high_attr.form == "DW_FORM_addr" else low + high_attr.value
        return [AddressRange(low, high)]

    ranges_attr = attrs.get("DW_AT_ranges")
    if ranges_attr is None or ranges_attr.form == "DW_FORM_rnglistx":
        return []
    range_lists = dwarf.range_lists()
    if range_lists is None:
        return []

    base = _cu_base(cu)
    result = []
    for entry in range_lists.get_range_list_at_offset(ranges_attr.value, cu=cu):
        if isinstance(entry, BaseAddressEntry):
            base = entry.base_address
        elif isinstance(entry, RangeEntry):
            if getattr(entry, "is_absolute", False):
                result.append(AddressRange(entry.begin_offset, entry.end_offset))
            else:
                result.append(AddressRange(base + entry.begin_offset, base + entry.end_offset))
    return result


def _collect_inline_calls(dwarf: Any) -> list[InlineCall]:
    calls: list[InlineCall] = []

    for cu in dwarf.iter_CUs():
        lineprog = dwarf.line_program_for_CU(cu)
        comp_dir = _comp_dir(cu)

        def walk(die: Any, depth: int) -> None:
            for child in die.iter_children():
                if child.tag == "DW_TAG_subprogram":
                    walk(child, 0)
                elif child.tag == "DW_TAG_inlined_subroutine":
                    attrs = child.attributes
                    call_file = None
                    if lineprog is not None and "DW_AT_call_file" in attrs:
                        call_file = _file_path(lineprog, attrs["DW_AT_call_file"].value, comp_dir)
                    ranges = _die_ranges(dwarf, cu, child)
                    if ranges:
                        calls.append(InlineCall(
                            function_name=_die_name(child) or "<unknown>",
                            ranges=tuple(ranges),
                            call_file=call_file,
                            call_line=attrs["DW_AT_call_line"].value if "DW_AT_call_line" in attrs else 0,
                            call_column=attrs["DW_AT_call_column"].value if "DW_AT_call_column" in attrs else None,
                            depth=depth,
                        ))
                    walk(child, depth + 1)
                else:
                    walk(child, depth)

        walk(cu.get_top_DIE(), 0)
    return calls


# =============================================================================
# Public API
# =============================================================================


def load_program_image(elf_path: Union[str, Path], architecture: str = "cortex-m") -> ProgramImage:
    """Load symbols, sections and DWARF debug info from a firmware ELF.

    Args:
        elf_path:     Path to the ELF firmware file.
        architecture: Architecture name recorded in the image.

    Returns:
        ProgramImage ready for unwinding and symbolication.

    Raises:
        FileNotFoundError: If elf_path does not exist.
        ProgramImageError: If the file is not a usable ELF.
        ImportError: If pyelftools is not installed.
    """
    _ensure_pyelftools()

    path = Path(elf_path)
    if not path.exists():
        raise FileNotFoundError(f"ELF file not found: {elf_path}")

    try:
        with open(path, "rb") as f:
            elf = ELFFile(f)
            symbols = _load_symbols(elf)
            code, ram = _load_sections(elf)
            initial_sp = _initial_stack_pointer(elf)
            tables: list[UnwindTable] = []
            lines: list[LineEntry] = []
            inline_calls: list[InlineCall] = []
            if elf.has_dwarf_info() or elf.get_section_by_name(".debug_frame"):
                dwarf = elf.get_dwarf_info()
                tables = _load_unwind_tables(dwarf)
                if dwarf.debug_info_sec is not None:
                    lines = _load_lines(dwarf)
                    inline_calls = _collect_inline_calls(dwarf)
            entry_point = elf.header["e_entry"] & ~_THUMB_BIT
    except (ELFError, DWARFError) as exc:
        raise ProgramImageError(f"cannot parse {path}: {exc}") from exc

    if not symbols:
        raise ProgramImageError(f"{path} has no function symbols (stripped ELF?)")
    if not tables:
        logger.warning("%s has no call-frame information; unwinding will rely on frame pointers", path)

    logger.debug(
        "loaded %s: %d symbols, %d line rows, %d inline calls, %d unwind tables",
        path, len(symbols), len(lines), len(inline_calls), len(tables),
    )
    return ProgramImage(
        symbols=symbols,
        lines=lines,
        inline_calls=inline_calls,
        unwind_tables=tables,
        entry_point=entry_point,
        code_ranges=code,
        ram_ranges=_stack_ram_range(ram, initial_sp),
        initial_stack_pointer=initial_sp,
        architecture=architecture,
    )


def derive_ram_bounds(image: ProgramImage) -> Optional[RamBounds]:
    """Bounds for overflow detection: lowest RAM address up to the initial SP.

    Returns None when the image has no RAM ranges.
    """
    if not image.ram_ranges:
        return None
    start = min(r.start for r in image.ram_ranges)
    if image.initial_stack_pointer is not None and image.initial_stack_pointer >= start:
        end = image.initial_stack_pointer
    else:
        end = max(r.end for r in image.ram_ranges) - 1
    return RamBounds(start=start, end=end)
