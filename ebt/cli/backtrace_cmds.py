"""Backtrace command for the ebt CLI."""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..backtrace import build_report, run_backtrace
from ..backtrace.outcome import NO_RAM_BOUNDS_WARNING, log_outcome, to_exit_code
from ..backtrace.settings import DisplaySettings
from ..elf_image import derive_ram_bounds, load_program_image
from ..errors import ConfigurationError, EbtError
from ..implementations import JLinkTarget, PythonLogger, halt_core, open_jlink
from ..program_image import RamBounds
from .helpers import _print, _print_error

logger = logging.getLogger(__name__)

EXIT_CONFIG_ERROR = 2
EXIT_ERROR = 1


def _resolve_ram_bounds(
    image: Any, ram_start: Optional[int], ram_end: Optional[int]
) -> Optional[RamBounds]:
    if ram_start is None and ram_end is None:
        return derive_ram_bounds(image)
    if ram_start is None or ram_end is None:
        raise ConfigurationError("--ram-start and --ram-end must be given together")
    if ram_end < ram_start:
        raise ConfigurationError(f"--ram-end {ram_end:#x} is below --ram-start {ram_start:#x}")
    return RamBounds(start=ram_start, end=ram_end)


def cmd_backtrace(
    *,
    elf: str,
    device: str,
    probe_selector: Optional[str],
    interface: str,
    speed: int,
    mode: Optional[str],
    limit: Optional[str],
    shorten_paths: bool,
    ram_start: Optional[int],
    ram_end: Optional[int],
    json_mode: bool,
) -> int:
    """Halt the target, unwind its stack and report how the program stopped.

    Options are validated before the probe is touched.

    Args:
        elf:            Firmware ELF with debug info.
        device:         J-Link device string.
        probe_selector: Optional J-Link serial number.
        interface:      "SWD" or "JTAG".
        speed:          Interface speed in kHz.
        mode:           Backtrace print mode (auto, never, always).
        limit:          Frame limit, 0 for all frames.
        shorten_paths:  Show paths relative to the working directory.
        ram_start:      Stack RAM start override.
        ram_end:        Stack RAM end override (inclusive).
        json_mode:      Emit machine-parseable JSON output.

    Returns:
        Exit code: 0 when the device halted without error, 134 on a fault or
        stack overflow, 2 on invalid options, 1 on other errors.
    """
    try:
        settings = DisplaySettings.from_options(mode, limit, shorten_paths)
    except ConfigurationError as exc:
        _print_error(str(exc), json_mode=json_mode)
        return EXIT_CONFIG_ERROR

    try:
        image = load_program_image(elf)
        ram_bounds = _resolve_ram_bounds(image, ram_start, ram_end)
    except ConfigurationError as exc:
        _print_error(str(exc), json_mode=json_mode)
        return EXIT_CONFIG_ERROR
    except (EbtError, FileNotFoundError, ImportError) as exc:
        _print_error(str(exc), json_mode=json_mode)
        return EXIT_ERROR

    sink = PythonLogger()
    jlink = None
    try:
        jlink = open_jlink(device, probe_selector=probe_selector, interface=interface, speed=speed)
        halt_core(jlink)
        target = JLinkTarget(jlink)

        if json_mode:
            if ram_bounds is None:
                sink.warning(NO_RAM_BOUNDS_WARNING)
            report = build_report(target, image, settings, ram_bounds=ram_bounds)
            outcome = report.outcome
            result = report.to_dict()
            result["exit_code"] = to_exit_code(outcome)
            _print(result, json_mode=True)
        else:
            outcome = run_backtrace(target, image, settings, sink=sink, ram_bounds=ram_bounds)
            log_outcome(outcome, sink)
    except (EbtError, ImportError) as exc:
        _print_error(str(exc), json_mode=json_mode)
        return EXIT_ERROR
    finally:
        if jlink is not None:
            try:
                jlink.close()
            except Exception as exc:
                logger.debug("closing J-Link failed: %s", exc)

    return to_exit_code(outcome)
