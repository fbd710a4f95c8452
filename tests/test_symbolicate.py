"""Tests for symbolication: function lookup, line lookup, inline expansion, paths."""

from __future__ import annotations

from pathlib import Path

from conftest import SRC, build_image
from ebt.backtrace.frames import FrameStore, RawFrame
from ebt.backtrace.settings import DisplaySettings
from ebt.backtrace.symbolicate import (
    UNKNOWN_FUNCTION,
    find_function,
    find_location,
    normalize_path,
    symbolicate,
)
from ebt.program_image import AddressRange, InlineCall, LineEntry

UTIL_H = "/work/app/include/util.h"


def _store(*pcs, exception=()):
    return FrameStore(raw_frames=tuple(
        RawFrame(pc, 0x2000F000 + 8 * i, is_exception_frame=i in exception)
        for i, pc in enumerate(pcs)
    ))


def _inline_image():
    """foo (0x300) inlines helper at 0x310-0x320, which inlines inner at 0x312-0x318."""
    calls = [
        InlineCall("helper", (AddressRange(0x310, 0x320),), SRC, 33, 9, depth=0),
        InlineCall("inner", (AddressRange(0x312, 0x318),), UTIL_H, 7, None, depth=1),
    ]
    lines = [
        LineEntry(0x300, SRC, 30, 5),
        LineEntry(0x312, UTIL_H, 3, 12),
        LineEntry(0x340, None, 0, end_sequence=True),
    ]
    return build_image(inline_calls=calls, lines=lines)


# =============================================================================
# Lookups
# =============================================================================

class TestFindFunction:
    def test_containment(self, image):
        assert find_function(image, 0x300).name == "foo"
        assert find_function(image, 0x33F).name == "foo"

    def test_past_end(self, image):
        # main is 0x200..0x260
        assert find_function(image, 0x260) is None

    def test_below_first(self, image):
        assert find_function(image, 0x10) is None


class TestFindLocation:
    def test_nearest_not_greater(self, image):
        entry = find_location(image, 0x320)
        assert entry.file == SRC
        assert entry.line == 30

    def test_before_first_entry(self, image):
        assert find_location(image, 0x50) is None

    def test_end_sequence_has_no_location(self, image):
        assert find_location(image, 0x650) is None

    def test_entry_outside_function(self, image):
        foo = find_function(image, 0x300)
        # nearest entry for 0x360 is foo's, but 0x360 is not in foo
        assert find_location(image, 0x360, find_function(image, 0x360)) is not None
        assert find_location(image, 0x410, foo) is None

    def test_sequence_starting_at_end_sequence_address(self):
        lines = [
            LineEntry(0x300, SRC, 30),
            LineEntry(0x400, None, 0, end_sequence=True),
            LineEntry(0x400, SRC, 40),
        ]
        image = build_image(lines=lines)
        assert find_location(image, 0x400).line == 40


class TestNormalizePath:
    def test_under_working_directory(self):
        settings = DisplaySettings(shorten_paths=True, working_directory=Path("/work/app"))
        assert normalize_path("/work/app/src/main.c", settings) == "src/main.c"

    def test_outside_working_directory(self):
        settings = DisplaySettings(shorten_paths=True, working_directory=Path("/work/app"))
        assert normalize_path("/opt/sdk/lib.c", settings) == "/opt/sdk/lib.c"

    def test_relative_unchanged(self):
        settings = DisplaySettings(shorten_paths=True, working_directory=Path("/work/app"))
        assert normalize_path("src/main.c", settings) == "src/main.c"

    def test_disabled(self):
        settings = DisplaySettings(shorten_paths=False, working_directory=Path("/work/app"))
        assert normalize_path("/work/app/src/main.c", settings) == "/work/app/src/main.c"

    def test_none(self, settings):
        assert normalize_path(None, settings) is None


# =============================================================================
# symbolicate()
# =============================================================================

class TestSymbolicate:
    def test_one_frame_per_raw_frame(self, image, settings):
        frames = symbolicate(_store(0x410, 0x310, 0x210), image, settings)
        assert [f.function_name for f in frames] == ["bar", "foo", "main"]
        assert [f.index for f in frames] == [0, 1, 2]
        assert all(not f.is_inline for f in frames)
        assert frames[0].file_path == SRC
        assert frames[0].line == 40
        assert frames[0].column == 5

    def test_unknown_function(self, image, settings):
        frames = symbolicate(_store(0x9000), image, settings)
        assert frames[0].function_name == UNKNOWN_FUNCTION
        assert frames[0].address == 0x9000
        assert not frames[0].is_inline

    def test_unknown_function_keeps_line_info(self, image, settings):
        # 0x260 is past main but the nearest line row is main's
        frames = symbolicate(_store(0x260), image, settings)
        assert frames[0].function_name == UNKNOWN_FUNCTION
        assert frames[0].line == 20

    def test_return_address_past_function_end(self, image, settings):
        # call to a noreturn function as foo's last instruction (foo is 0x300-0x340)
        store = FrameStore(raw_frames=(
            RawFrame(0x410, 0x2000F000),
            RawFrame(0x340, 0x2000F008, is_return_address=True),
        ))
        frames = symbolicate(store, image, settings)
        assert frames[1].function_name == "foo"
        assert frames[1].line == 30
        assert frames[1].address == 0x340

    def test_exact_pc_at_function_end_is_unknown(self, image, settings):
        frames = symbolicate(_store(0x340), image, settings)
        assert frames[0].function_name == UNKNOWN_FUNCTION

    def test_exception_flag_propagates(self, image, settings):
        frames = symbolicate(_store(0x510, 0x410, exception=(0,)), image, settings)
        assert frames[0].is_exception
        assert not frames[1].is_exception

    def test_empty_store(self, image, settings):
        assert symbolicate(FrameStore(), image, settings) == []

    def test_shortened_paths(self, image):
        settings = DisplaySettings(shorten_paths=True, working_directory=Path("/work/app"))
        frames = symbolicate(_store(0x410), image, settings)
        assert frames[0].file_path == "src/main.c"

    def test_deterministic(self, image, settings):
        store = _store(0x410, 0x310, 0x210)
        assert symbolicate(store, image, settings) == symbolicate(store, image, settings)


class TestInlineExpansion:
    def test_nested_inline_chain(self, settings):
        frames = symbolicate(_store(0x314, 0x210), _inline_image(), settings)
        assert [f.function_name for f in frames] == ["inner", "helper", "foo", "main"]
        assert [f.is_inline for f in frames] == [True, True, False, False]
        assert [f.index for f in frames] == [0, 1, 2, 3]
        assert all(f.address == 0x314 for f in frames[:3])

    def test_inline_locations(self, settings):
        inner, helper, foo = symbolicate(_store(0x314), _inline_image(), settings)
        # innermost at the line table location
        assert (inner.file_path, inner.line, inner.column) == (UTIL_H, 3, 12)
        # helper at the call site of inner
        assert (helper.file_path, helper.line, helper.column) == (UTIL_H, 7, None)
        # foo at the call site of helper
        assert (foo.file_path, foo.line, foo.column) == (SRC, 33, 9)

    def test_single_level(self, settings):
        frames = symbolicate(_store(0x31A), _inline_image(), settings)
        assert [f.function_name for f in frames] == ["helper", "foo"]
        assert frames[1].line == 33

    def test_outside_inline_ranges(self, settings):
        frames = symbolicate(_store(0x304), _inline_image(), settings)
        assert [f.function_name for f in frames] == ["foo"]

    def test_exception_flag_on_whole_expansion(self, settings):
        frames = symbolicate(_store(0x314, exception=(0,)), _inline_image(), settings)
        assert all(f.is_exception for f in frames)
