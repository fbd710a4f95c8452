"""Tests for the in-memory MockTarget and MockLogger."""

from __future__ import annotations

import pytest

from ebt.errors import TargetError
from ebt.mocks import MockLogger, MockTarget


class TestMockTarget:
    def test_registers_case_insensitive(self):
        target = MockTarget({"PC": 0x410})
        assert target.read_core_register("pc") == 0x410

    def test_registers_masked(self):
        target = MockTarget()
        target.set_register("lr", -1)
        assert target.read_core_register("lr") == 0xFFFFFFFF

    def test_missing_register(self):
        with pytest.raises(TargetError):
            MockTarget().read_core_register("r3")

    def test_words_little_endian(self):
        target = MockTarget()
        target.write_words(0x1000, [0x11223344, 0x211])
        assert target.read_memory(0x1000, 4) == b"\x44\x33\x22\x11"
        assert target.read_u32(0x1004) == 0x211

    def test_unmapped_memory(self):
        target = MockTarget()
        target.write_u32(0x1000, 1)
        with pytest.raises(TargetError):
            target.read_memory(0x1002, 4)

    def test_fail_on_address(self):
        target = MockTarget()
        target.write_words(0x1000, [1, 2])
        target.set_fail_on_address(0x1006)
        assert target.read_u32(0x1000) == 1
        with pytest.raises(TargetError):
            target.read_u32(0x1004)

    def test_fail_on_register(self):
        target = MockTarget({"sp": 0x2000F000})
        target.set_fail_on_register("SP")
        with pytest.raises(TargetError):
            target.read_core_register("sp")

    def test_fail_after(self):
        target = MockTarget()
        target.write_words(0x1000, [1, 2, 3])
        target.set_fail_after(2)
        target.read_u32(0x1000)
        target.read_u32(0x1004)
        with pytest.raises(TargetError):
            target.read_u32(0x1008)

    def test_reads_recorded(self):
        target = MockTarget({"pc": 0})
        target.write_u32(0x1000, 0)
        target.read_core_register("pc")
        target.read_memory(0x1000, 4)
        assert target.get_reads() == [("reg", "pc"), ("mem", 0x1000, 4)]


class TestMockLogger:
    def test_levels(self):
        sink = MockLogger()
        sink.debug("d")
        sink.info("i")
        sink.warning("w")
        sink.error("e")
        assert sink.get_messages() == [("DEBUG", "d"), ("INFO", "i"), ("WARNING", "w"), ("ERROR", "e")]
        assert sink.get_messages("ERROR") == [("ERROR", "e")]

    def test_contains(self):
        sink = MockLogger()
        sink.warning("call stack was corrupted")
        assert sink.contains("corrupted")
        assert sink.contains("corrupted", level="WARNING")
        assert not sink.contains("corrupted", level="ERROR")

    def test_clear(self):
        sink = MockLogger()
        sink.info("x")
        sink.clear()
        assert sink.get_messages() == []
