"""Tests for outcome classification and its log line / exit code mappings."""

from __future__ import annotations

import pytest

from ebt.backtrace.frames import FrameStore, RawFrame
from ebt.backtrace.outcome import (
    SIGABRT_EXIT_CODE,
    Outcome,
    Severity,
    classify,
    log_outcome,
    to_exit_code,
    to_log_line,
)
from ebt.mocks import MockLogger
from ebt.program_image import RamBounds

BOUNDS = RamBounds(0x20000000, 0x2000FFFF)


def _store(*sps, exception=False, **status):
    frames = tuple(
        RawFrame(0x400 + 0x10 * i, sp, is_exception_frame=exception and i == 0)
        for i, sp in enumerate(sps)
    )
    return FrameStore(raw_frames=frames, **status)


class TestClassify:
    def test_ok(self):
        assert classify(_store(0x2000F000, 0x2000F008), BOUNDS) is Outcome.OK

    def test_hard_fault(self):
        assert classify(_store(0x2000F000, 0x2000F028, exception=True), BOUNDS) is Outcome.HARD_FAULT

    def test_stack_overflow_below(self):
        assert classify(_store(0x1FFFFFF0), BOUNDS) is Outcome.STACK_OVERFLOW

    def test_stack_overflow_above(self):
        assert classify(_store(0x20010000), BOUNDS) is Outcome.STACK_OVERFLOW

    def test_bounds_inclusive(self):
        assert classify(_store(0x20000000), BOUNDS) is Outcome.OK
        assert classify(_store(0x2000FFFF), BOUNDS) is Outcome.OK

    def test_overflow_beats_hard_fault(self):
        store = _store(0x20000100, 0x1FFFFF00, exception=True)
        assert classify(store, BOUNDS) is Outcome.STACK_OVERFLOW

    def test_halted_frame_below_ram(self):
        # the halted sp left RAM; its callers sit back inside it
        store = _store(0x1FFFFFFC, 0x20000004, 0x2000000C)
        assert classify(store, BOUNDS) is Outcome.STACK_OVERFLOW

    def test_middle_frame_outside_ram(self):
        store = _store(0x20000100, 0x1FFFFF00, 0x20000200)
        assert classify(store, BOUNDS) is Outcome.STACK_OVERFLOW

    def test_every_frame_inside_ram(self):
        store = _store(0x20000000, 0x20008000, 0x2000FFFF)
        assert classify(store, BOUNDS) is Outcome.OK

    def test_no_bounds_never_overflows(self):
        assert classify(_store(0x1FFFFFF0), None) is Outcome.OK
        assert classify(_store(0x1FFFFFF0, exception=True), None) is Outcome.HARD_FAULT

    def test_empty_store(self):
        assert classify(FrameStore(processing_error=RuntimeError("x")), BOUNDS) is Outcome.OK

    def test_corruption_alone_is_ok(self):
        assert classify(_store(0x2000F000, corrupted=True), BOUNDS) is Outcome.OK


class TestMappings:
    @pytest.mark.parametrize("outcome,severity,message", [
        (Outcome.OK, Severity.INFO, "device halted without error"),
        (Outcome.HARD_FAULT, Severity.ERROR, "the program panicked"),
        (Outcome.STACK_OVERFLOW, Severity.ERROR, "the program has overflowed its stack"),
    ])
    def test_log_line(self, outcome, severity, message):
        assert to_log_line(outcome) == (severity, message)

    def test_exit_codes(self):
        assert to_exit_code(Outcome.OK) == 0
        assert to_exit_code(Outcome.HARD_FAULT) == SIGABRT_EXIT_CODE == 134
        assert to_exit_code(Outcome.STACK_OVERFLOW) == 134


class TestLogOutcome:
    def test_ok_is_info(self):
        sink = MockLogger()
        log_outcome(Outcome.OK, sink)
        assert sink.get_messages() == [("INFO", "device halted without error")]

    def test_fault_is_error(self):
        sink = MockLogger()
        log_outcome(Outcome.HARD_FAULT, sink)
        assert sink.get_messages() == [("ERROR", "the program panicked")]

    def test_overflow_is_error(self):
        sink = MockLogger()
        log_outcome(Outcome.STACK_OVERFLOW, sink)
        assert sink.get_messages() == [("ERROR", "the program has overflowed its stack")]
