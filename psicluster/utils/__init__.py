"""
Utility modules for psicluster.
"""

from .constants import (
    ATOMIC_VOLUME,
    BOLTZMANN_CONSTANT_EV,
    LATTICE_CONSTANT,
    PI,
    format_quantity,
    parse_quantity,
    pint,
    ureg,
)

__all__ = [
    "ATOMIC_VOLUME",
    "BOLTZMANN_CONSTANT_EV",
    "LATTICE_CONSTANT",
    "PI",
    "format_quantity",
    "parse_quantity",
    "ureg",
    "pint",
]
