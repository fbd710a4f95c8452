"""
Mock implementations for testing.

These classes implement the abstract interfaces with in-memory behavior
suitable for unit testing without hardware.
"""

import struct
from typing import Dict, List, Optional, Set

from .errors import TargetError
from .interfaces import LoggerInterface, TargetInterface


class MockTarget(TargetInterface):
    """
    Mock halted target for testing.

    Registers live in a dict, memory in a sparse byte map. Reads of unmapped
    bytes or of registers never set raise TargetError, like a probe would.
    Test code can inject failures with set_fail_on_address() and
    set_fail_after(), and inspect traffic with get_reads().
    """

    def __init__(self, registers: Optional[Dict[str, int]] = None):
        self._registers: Dict[str, int] = {}
        self._memory: Dict[int, int] = {}
        self._fail_addresses: Set[int] = set()
        self._fail_registers: Set[str] = set()
        self._reads_left: Optional[int] = None
        self._reads: List[tuple] = []
        for name, value in (registers or {}).items():
            self.set_register(name, value)

    def read_core_register(self, name: str) -> int:
        name = name.lower()
        self._reads.append(("reg", name))
        if name in self._fail_registers:
            raise TargetError(f"failed to read register {name}")
        if name not in self._registers:
            raise TargetError(f"register {name!r} is not exposed by the probe")
        return self._registers[name]

    def read_memory(self, address: int, size: int) -> bytes:
        self._reads.append(("mem", address, size))
        if self._reads_left is not None:
            if self._reads_left <= 0:
                raise TargetError(f"probe disconnected reading {address:#010x}")
            self._reads_left -= 1
        data = bytearray()
        for addr in range(address, address + size):
            if addr in self._fail_addresses or addr not in self._memory:
                raise TargetError(f"failed to read {size} bytes at {address:#010x}")
            data.append(self._memory[addr])
        return bytes(data)

    # Test helper methods

    def set_register(self, name: str, value: int) -> None:
        """Set a register value (name is case-insensitive)."""
        self._registers[name.lower()] = value & 0xFFFFFFFF

    def load(self, address: int, data: bytes) -> None:
        """Map raw bytes at address."""
        for offset, byte in enumerate(data):
            self._memory[address + offset] = byte

    def write_u32(self, address: int, value: int) -> None:
        """Map one little-endian word at address."""
        self.load(address, struct.pack("<I", value & 0xFFFFFFFF))

    def write_words(self, address: int, values: List[int]) -> None:
        """Map consecutive little-endian words starting at address."""
        for i, value in enumerate(values):
            self.write_u32(address + 4 * i, value)

    def set_fail_on_address(self, address: int) -> None:
        """Make any read touching address fail."""
        self._fail_addresses.add(address)

    def set_fail_on_register(self, name: str) -> None:
        """Make reads of a register fail."""
        self._fail_registers.add(name.lower())

    def set_fail_after(self, reads: int) -> None:
        """Fail every memory read after the next `reads` succeed."""
        self._reads_left = reads

    def get_reads(self) -> List[tuple]:
        """Get recorded reads: ("reg", name) or ("mem", address, size)."""
        return self._reads.copy()


class MockLogger(LoggerInterface):
    """
    Logger that captures all messages for testing.
    """

    def __init__(self):
        self._messages: List[tuple] = []

    def debug(self, msg: str) -> None:
        self._messages.append(("DEBUG", msg))

    def info(self, msg: str) -> None:
        self._messages.append(("INFO", msg))

    def warning(self, msg: str) -> None:
        self._messages.append(("WARNING", msg))

    def error(self, msg: str) -> None:
        self._messages.append(("ERROR", msg))

    # Test helper methods

    def get_messages(self, level: Optional[str] = None) -> List[tuple]:
        """Get logged messages, optionally filtered by level."""
        if level:
            return [(l, m) for l, m in self._messages if l == level]
        return self._messages.copy()

    def clear(self) -> None:
        """Clear all logged messages."""
        self._messages.clear()

    def contains(self, substring: str, level: Optional[str] = None) -> bool:
        """Check if any message contains substring."""
        messages = self.get_messages(level)
        return any(substring in m for _, m in messages)
