"""
Rate constant calculations for cluster reactions and dissociations.
"""

import math
from typing import TYPE_CHECKING

from ..utils.constants import ATOMIC_VOLUME, BOLTZMANN_CONSTANT_EV, PI

if TYPE_CHECKING:
    from .clusters import Cluster


def diffusion_coefficient(diffusion_factor: float, migration_energy: float, temperature: float) -> float:
    """Arrhenius diffusion coefficient D = D0 * exp(-Em / kT) in nm^2/s.

    Immobile clusters (zero diffusion factor or infinite migration energy) give 0.
    """
    if temperature <= 0:
        raise ValueError(f"Temperature must be positive, got {temperature}")
    if diffusion_factor == 0.0 or math.isinf(migration_energy):
        return 0.0
    return diffusion_factor * math.exp(-migration_energy / (BOLTZMANN_CONSTANT_EV * temperature))


def reaction_rate_constant(first: "Cluster", second: "Cluster") -> float:
    """Diffusion limited rate k+ = 4 pi (r1 + r2)(D1 + D2) in nm^3/s."""
    return (
        4.0
        * PI
        * (first.reaction_radius + second.reaction_radius)
        * (first.diffusion_coefficient + second.diffusion_coefficient)
    )


def binding_energy(dissociating: "Cluster", first: "Cluster", second: "Cluster") -> float:
    """Binding energy of the emitted clusters in the dissociating one, in eV."""
    return first.formation_energy + second.formation_energy - dissociating.formation_energy


def dissociation_rate_constant(
    dissociating: "Cluster",
    first: "Cluster",
    second: "Cluster",
    temperature: float,
) -> float:
    """Rate of dissociating --> first + second in 1/s.

    k- = k+(first, second) / atomic_volume * exp(-Eb / kT)

    Missing energy data (infinite formation energies) means the cluster does not dissociate.
    """
    energy = binding_energy(dissociating, first, second)
    if not math.isfinite(energy):
        return 0.0
    k_plus = reaction_rate_constant(first, second)
    if k_plus == 0.0:
        return 0.0
    return k_plus / ATOMIC_VOLUME * math.exp(-energy / (BOLTZMANN_CONSTANT_EV * temperature))
