"""Pluggable architecture registry.

An ABC + registry dict + factory. Add a new architecture by dropping in one
file and registering it here.
"""

from .base import Architecture, FramePointerLayout
from .cortex_m import CortexM

__all__ = [
    "Architecture",
    "FramePointerLayout",
    "CortexM",
    "get_architecture",
]

# Registry: architecture or chip name -> architecture class
_ARCHITECTURES: dict[str, type[Architecture]] = {
    "cortex-m": CortexM,
    "armv6-m": CortexM,
    "armv7-m": CortexM,
    "armv7e-m": CortexM,
    "armv8-m": CortexM,
    "thumbv6m": CortexM,
    "thumbv7m": CortexM,
    "thumbv7em": CortexM,
    "thumbv8m": CortexM,
    "nrf52840": CortexM,
    "nrf5340": CortexM,
    "stm32": CortexM,
    "rp2040": CortexM,
    # Future:
    # "riscv32": RiscV32,
}


def get_architecture(name: str = "cortex-m") -> Architecture:
    """Get architecture conventions by name. Defaults to CortexM for unknown names."""
    cls = _ARCHITECTURES.get(name.lower(), CortexM)
    return cls()
