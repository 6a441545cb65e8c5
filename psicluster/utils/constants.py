"""
Physical constants used in psicluster calculations.
"""

import math

import pint
from scipy.constants import physical_constants, pi

# Create a centralized unit registry
ureg = pint.UnitRegistry()

# %%
# Fundamental constants
BOLTZMANN_CONSTANT_EV = physical_constants["Boltzmann constant in eV/K"][0]  # eV/K
PI = pi

# Tungsten lattice
LATTICE_CONSTANT = 0.317  # nm
ATOMIC_VOLUME = 0.5 * LATTICE_CONSTANT**3  # nm^3, bcc has two atoms per cell

# Reaction radius terms (nm)
HELIUM_RADIUS_OFFSET = 0.3
DEFECT_RADIUS_OFFSET = math.sqrt(3.0) / 4.0 * LATTICE_CONSTANT

# Internal units
ENERGY_UNIT = "eV"
DIFFUSION_UNIT = "nm^2/s"
TEMPERATURE_UNIT = "K"
CONCENTRATION_UNIT = "nm^-3"


# Unit parsing and conversion utilities
def parse_quantity(value, default_unit=None, target_unit=None) -> float:
    """
    Parse a quantity that can be a number or a string with units.

    Parameters
    ----------
    value : Union[float, int, str]
        The value to parse. If string, should include units (e.g., "0.13 eV").
        Strings "inf" and "infinity" are accepted for unknown energies.
    default_unit : str, optional
        Default unit to assume if value is a number. If None, no conversion.
    target_unit : str, optional
        Target unit to convert to. If None, converts to SI base units.

    Returns
    -------
    float
        The value in the target unit (or SI base units if target_unit is None).

    Examples
    --------
    >>> parse_quantity("1000 K")
    1000.0
    >>> parse_quantity("1 nm", target_unit="nm")
    1.0
    >>> parse_quantity(0.13, "eV", "eV")
    0.13
    """
    if isinstance(value, str):
        if value.strip().lower() in ("inf", "infinity"):
            return math.inf
        quantity = ureg(value)
        if not isinstance(quantity, pint.Quantity):
            # dimensionless strings such as "1.5" come back as plain numbers
            return float(quantity)
        if target_unit:
            return quantity.to(target_unit).magnitude
        else:
            return quantity.to_base_units().magnitude
    elif isinstance(value, (int, float)):
        if default_unit:
            quantity = value * ureg(default_unit)
            if target_unit:
                return quantity.to(target_unit).magnitude
            else:
                return quantity.to_base_units().magnitude
        else:
            return float(value)
    else:
        raise ValueError(f"Cannot parse quantity: {value}")


def format_quantity(value, unit, precision=3) -> str:
    """
    Format a quantity with units for display.

    Parameters
    ----------
    value : float
        The value in the internal unit
    unit : str
        The unit to display
    precision : int, optional
        Number of decimal places

    Returns
    -------
    str
        Formatted string with value and unit
    """
    quantity = value * ureg(unit)
    return f"{quantity:~P.{precision}f}"
