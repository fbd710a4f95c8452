"""
Real implementations of interfaces for production use.

These classes wrap actual resources (a J-Link probe, the logging module)
and implement the abstract interfaces.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

from .errors import TargetError
from .interfaces import LoggerInterface, TargetInterface

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# pylink: optional (hardware-only dependency)
# ---------------------------------------------------------------------------

try:
    import pylink
except ImportError:
    pylink = None  # type: ignore

# Register labels the J-Link DLL reports, e.g. "R13 (SP)", "R15 (PC)", "XPSR"
_REG_TOKEN_RE = re.compile(r"[a-z]+\d*")
_CANONICAL_ALIASES = {"r13": "sp", "r14": "lr", "r15": "pc"}


def _ensure_pylink_available() -> None:
    """Raise helpful ImportError if pylink is not installed."""
    if pylink is None:
        raise ImportError(
            "pylink module not found. Install with: pip install pylink-square"
        )


def _jlink_errors() -> tuple:
    if pylink is None:
        return ()
    return (pylink.errors.JLinkException,)


def _register_aliases(label: str) -> list[str]:
    """Return the lowercase names a J-Link register label answers to."""
    aliases = _REG_TOKEN_RE.findall(label.lower())
    for token in list(aliases):
        canonical = _CANONICAL_ALIASES.get(token)
        if canonical and canonical not in aliases:
            aliases.append(canonical)
    return aliases


class JLinkTarget(TargetInterface):
    """
    Target handle backed by a connected, halted pylink.JLink instance.

    Example::

        jl = open_jlink("NRF52840_XXAA")
        jl.halt()
        target = JLinkTarget(jl)
        pc = target.read_core_register("pc")
    """

    def __init__(self, jlink: Any):
        _ensure_pylink_available()
        self._jl = jlink
        self._indices: Optional[dict[str, int]] = None

    def _register_index(self, name: str) -> int:
        if self._indices is None:
            indices: dict[str, int] = {}
            try:
                for index in self._jl.register_list():
                    for alias in _register_aliases(self._jl.register_name(index)):
                        indices.setdefault(alias, index)
            except _jlink_errors() as exc:
                raise TargetError(f"cannot list core registers: {exc}") from exc
            self._indices = indices
            logger.debug("J-Link exposes %d register aliases", len(indices))
        try:
            return self._indices[name.lower()]
        except KeyError:
            raise TargetError(f"register {name!r} is not exposed by the probe") from None

    def read_core_register(self, name: str) -> int:
        index = self._register_index(name)
        try:
            return self._jl.register_read(index) & 0xFFFFFFFF
        except _jlink_errors() as exc:
            raise TargetError(f"failed to read register {name}: {exc}") from exc

    def read_memory(self, address: int, size: int) -> bytes:
        try:
            data = self._jl.memory_read8(address, size)
        except _jlink_errors() as exc:
            raise TargetError(
                f"failed to read {size} bytes at {address:#010x}: {exc}"
            ) from exc
        return bytes(data)


def open_jlink(
    device: str,
    probe_selector: Optional[str] = None,
    interface: str = "SWD",
    speed: int = 4000,
) -> "pylink.JLink":  # type: ignore[name-defined]
    """Open and connect a pylink.JLink instance.

    Args:
        device:         J-Link device string (e.g., "NRF52840_XXAA").
        probe_selector: Optional serial number for multi-probe setups.
        interface:      Debug interface ("SWD" or "JTAG").
        speed:          Interface speed in kHz (default: 4000).

    Returns:
        Connected pylink.JLink instance.

    Raises:
        ImportError: If pylink-square is not installed.
        TargetError: If the J-Link connection fails.
    """
    _ensure_pylink_available()

    jlink = pylink.JLink()

    open_kwargs: dict = {}
    if probe_selector:
        open_kwargs["serial_no"] = int(probe_selector)

    try:
        jlink.open(**open_kwargs)
        jlink.set_tif(pylink.enums.JLinkInterfaces.SWD if interface == "SWD"
                      else pylink.enums.JLinkInterfaces.JTAG)
        jlink.connect(device, speed=speed)
    except pylink.errors.JLinkException as exc:
        raise TargetError(f"cannot connect to {device}: {exc}") from exc
    logger.debug("Connected to %s via J-Link", device)
    return jlink


def halt_core(jlink: Any) -> None:
    """Halt the core unless it is already halted."""
    try:
        if not jlink.halted():
            jlink.halt()
            logger.debug("Core halted by ebt")
    except _jlink_errors() as exc:
        raise TargetError(f"cannot halt core: {exc}") from exc


class PythonLogger(LoggerInterface):
    """
    Diagnostic sink that forwards to the logging module.
    """

    def __init__(self, name: str = "ebt"):
        self._logger = logging.getLogger(name)

    def debug(self, msg: str) -> None:
        self._logger.debug(msg)

    def info(self, msg: str) -> None:
        self._logger.info(msg)

    def warning(self, msg: str) -> None:
        self._logger.warning(msg)

    def error(self, msg: str) -> None:
        self._logger.error(msg)
