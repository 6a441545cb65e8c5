"""
Cluster definitions, reaction bookkeeping and flux calculations.
"""

import logging
import math
import weakref
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Iterator, List, Optional, Set, Tuple, TypeAlias

import numpy as np

from ..utils.constants import DEFECT_RADIUS_OFFSET, HELIUM_RADIUS_OFFSET, LATTICE_CONSTANT, PI
from .composition import NO_DISTANCE, ClusterType, Composition, Distance
from .process_coefficients import (
    diffusion_coefficient,
    dissociation_rate_constant,
    reaction_rate_constant,
)

if TYPE_CHECKING:
    from .network import ReactionNetwork

logger = logging.getLogger(__name__)

# (row or column index, factor)
Weight: TypeAlias = Tuple[int, float]
# row index -> {column index -> partial derivative}
PartialRows: TypeAlias = Dict[int, Dict[int, float]]


def helium_reaction_radius(n_he: float) -> float:
    """Reaction radius of a helium cluster in nm."""
    a_cubed = LATTICE_CONSTANT**3
    term_one = ((3.0 / (4.0 * PI)) * (1.0 / 10.0) * a_cubed * n_he) ** (1.0 / 3.0)
    term_two = ((3.0 / (4.0 * PI)) * (1.0 / 10.0) * a_cubed) ** (1.0 / 3.0)
    return HELIUM_RADIUS_OFFSET + term_one - term_two


def defect_reaction_radius(n_defects: float) -> float:
    """Reaction radius of a vacancy or interstitial cluster in nm."""
    a_cubed = LATTICE_CONSTANT**3
    term_one = ((3.0 / (4.0 * PI)) * (1.0 / 2.0) * a_cubed * n_defects) ** (1.0 / 3.0)
    term_two = ((3.0 / (4.0 * PI)) * (1.0 / 2.0) * a_cubed) ** (1.0 / 3.0)
    return DEFECT_RADIUS_OFFSET + term_one - term_two


@dataclass(eq=False)
class ClusterPair:
    """Two clusters taking part in a production, dissociation or emission.

    The distances locate the clusters inside their group (zero for regular clusters).
    ``distance`` is the position of the cluster owning the record.
    """

    first: "Cluster"
    second: "Cluster"
    k_constant: float = 0.0
    first_distance: Distance = NO_DISTANCE
    second_distance: Distance = NO_DISTANCE
    distance: Distance = NO_DISTANCE


@dataclass(eq=False)
class CombiningCluster:
    """A cluster that combines with the owner of the record."""

    combining: "Cluster"
    k_constant: float = 0.0
    combining_distance: Distance = NO_DISTANCE
    distance: Distance = NO_DISTANCE


class Cluster:
    """A single species of the reaction network, identified by its composition.

    Parameters
    ----------
    composition : Composition or tuple
        (helium, vacancy, interstitial) content of the cluster.
    diffusion_factor : float
        Diffusion pre-factor D0 in nm^2/s. Zero means immobile.
    migration_energy : float
        Migration energy in eV. Infinite means immobile.
    formation_energy : float
        Formation energy in eV. Infinite means unknown, the cluster does not dissociate.
    concentration : float
        Initial concentration in nm^-3.
    """

    def __init__(
        self,
        composition: Composition | Tuple[int, int, int],
        diffusion_factor: float = 0.0,
        migration_energy: float = math.inf,
        formation_energy: float = math.inf,
        concentration: float = 0.0,
    ):
        if not isinstance(composition, Composition):
            composition = Composition(*composition)
        self.composition: Composition = composition
        self.type: ClusterType = self._get_type()
        self.id: int = 0
        self.diffusion_factor = diffusion_factor
        self.migration_energy = migration_energy
        self.formation_energy = formation_energy
        self.concentration = concentration
        self.diffusion_coefficient = 0.0
        self.temperature = 0.0
        self.reaction_radius = self._calculate_reaction_radius()
        self._network_ref: Optional[weakref.ReferenceType] = None
        self.reset_connectivity()

    def _get_type(self) -> ClusterType:
        return self.composition.type

    def _calculate_reaction_radius(self) -> float:
        composition = self.composition
        if self.type == ClusterType.HE:
            return helium_reaction_radius(composition.he)
        elif self.type in (ClusterType.V, ClusterType.HEV):
            return defect_reaction_radius(composition.v)
        return defect_reaction_radius(composition.i)

    @property
    def size(self) -> int:
        """Total number of atoms and defects."""
        return self.composition.size

    @property
    def name(self) -> str:
        return self.composition.label

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name}, id={self.id})"

    @property
    def network(self) -> Optional["ReactionNetwork"]:
        """The network owning this cluster, if it is still alive."""
        if self._network_ref is None:
            return None
        return self._network_ref()

    def set_reaction_network(self, network: Optional["ReactionNetwork"]) -> None:
        """Keep a non-owning reference to the owning network."""
        self._network_ref = weakref.ref(network) if network is not None else None

    def clone(self) -> "Cluster":
        """Copy the physical state of the cluster, without id or connectivity."""
        return Cluster(
            self.composition,
            diffusion_factor=self.diffusion_factor,
            migration_energy=self.migration_energy,
            formation_energy=self.formation_energy,
            concentration=self.concentration,
        )

    # ------------------------------------------------------------------
    # Group representation (overridden by super clusters)
    # ------------------------------------------------------------------
    def members(self) -> List[Tuple[Composition, Distance]]:
        """Compositions represented by this cluster with their group distances."""
        return [(self.composition, NO_DISTANCE)]

    def get_concentration(self, distance: Distance = NO_DISTANCE) -> float:
        return self.concentration

    def concentration_partials(self, distance: Distance = NO_DISTANCE) -> Tuple[Weight, ...]:
        """Derivatives of the concentration at ``distance`` with respect to the degrees of freedom."""
        return ((self.id - 1, 1.0),)

    def flux_weights(self, distance: Distance = NO_DISTANCE) -> Tuple[Weight, ...]:
        """Rows receiving a flux computed at ``distance`` and their weights."""
        return ((self.id - 1, 1.0),)

    def get_helium_content(self) -> float:
        """Concentration of helium atoms held by this cluster."""
        return self.composition.he * self.concentration

    # ------------------------------------------------------------------
    # Connectivity bookkeeping
    # ------------------------------------------------------------------
    def reset_connectivity(self) -> None:
        """Forget all reactions, as before connectivity construction."""
        self.reacting_pairs: List[ClusterPair] = []
        self.combining_reactants: List[CombiningCluster] = []
        self.dissociating_pairs: List[ClusterPair] = []
        self.emission_pairs: List[ClusterPair] = []
        self.eff_reacting_pairs: List[ClusterPair] = []
        self.eff_combining_reactants: List[CombiningCluster] = []
        self.eff_dissociating_pairs: List[ClusterPair] = []
        self.eff_emission_pairs: List[ClusterPair] = []
        self._dissociation_keys: Set[tuple] = set()
        self._emission_keys: Set[frozenset] = set()
        self.effective_epoch = -1

    def add_reacting_pair(
        self,
        first: "Cluster",
        second: "Cluster",
        first_distance: Distance = NO_DISTANCE,
        second_distance: Distance = NO_DISTANCE,
        distance: Distance = NO_DISTANCE,
    ) -> None:
        """Record first + second --> this."""
        self.reacting_pairs.append(
            ClusterPair(first, second, 0.0, first_distance, second_distance, distance)
        )

    def add_combining_cluster(
        self,
        combining: "Cluster",
        combining_distance: Distance = NO_DISTANCE,
        distance: Distance = NO_DISTANCE,
    ) -> None:
        """Record this + combining --> product."""
        self.combining_reactants.append(
            CombiningCluster(combining, 0.0, combining_distance, distance)
        )

    def dissociate_cluster(
        self,
        dissociating: Optional["Cluster"],
        emitted: Optional["Cluster"],
        dissociating_distance: Distance = NO_DISTANCE,
        emitted_distance: Distance = NO_DISTANCE,
        distance: Distance = NO_DISTANCE,
    ) -> bool:
        """Record dissociating --> this + emitted, once, if both clusters exist."""
        if dissociating is None or emitted is None:
            return False
        key = (dissociating.id, dissociating_distance, emitted.id, emitted_distance, distance)
        if key in self._dissociation_keys:
            return False
        self._dissociation_keys.add(key)
        self.dissociating_pairs.append(
            ClusterPair(dissociating, emitted, 0.0, dissociating_distance, emitted_distance, distance)
        )
        return True

    def emit_clusters(
        self,
        first: Optional["Cluster"],
        second: Optional["Cluster"],
        first_distance: Distance = NO_DISTANCE,
        second_distance: Distance = NO_DISTANCE,
        distance: Distance = NO_DISTANCE,
    ) -> bool:
        """Record this --> first + second, once, if both clusters exist."""
        if first is None or second is None:
            return False
        key = frozenset(((first.id, first_distance), (second.id, second_distance), ("self", distance)))
        if key in self._emission_keys:
            return False
        self._emission_keys.add(key)
        self.emission_pairs.append(
            ClusterPair(first, second, 0.0, first_distance, second_distance, distance)
        )
        return True

    def get_connectivity(self) -> Set[int]:
        """Degrees of freedom (0-based) the fluxes of this cluster depend on."""
        connectivity = {column for column, _ in self.concentration_partials()}
        for pair in self.reacting_pairs:
            connectivity.update(c for c, _ in pair.first.concentration_partials(pair.first_distance))
            connectivity.update(c for c, _ in pair.second.concentration_partials(pair.second_distance))
        for combining in self.combining_reactants:
            connectivity.update(c for c, _ in self.concentration_partials(combining.distance))
            connectivity.update(
                c for c, _ in combining.combining.concentration_partials(combining.combining_distance)
            )
        for pair in self.dissociating_pairs:
            connectivity.update(c for c, _ in pair.first.concentration_partials(pair.first_distance))
        for pair in self.emission_pairs:
            connectivity.update(c for c, _ in self.concentration_partials(pair.distance))
        return connectivity

    # ------------------------------------------------------------------
    # Rate constants
    # ------------------------------------------------------------------
    def set_temperature(self, temperature: float) -> None:
        """Update the temperature and the diffusion coefficient.

        Rate constants depend on the diffusion coefficients of the partners, so they are
        recomputed separately with :meth:`update_rate_constants` once every cluster is updated.
        """
        self.temperature = temperature
        self.diffusion_coefficient = diffusion_coefficient(
            self.diffusion_factor, self.migration_energy, temperature
        )

    def update_rate_constants(self) -> None:
        """Recompute the rate constant of every reaction this cluster takes part in."""
        for pair in self.reacting_pairs:
            pair.k_constant = reaction_rate_constant(pair.first, pair.second)
        for combining in self.combining_reactants:
            combining.k_constant = reaction_rate_constant(self, combining.combining)
        for pair in self.dissociating_pairs:
            pair.k_constant = dissociation_rate_constant(pair.first, self, pair.second, self.temperature)
        for pair in self.emission_pairs:
            pair.k_constant = dissociation_rate_constant(self, pair.first, pair.second, self.temperature)

    def reset_connectivities(self, rate_floor: float = 0.0, epoch: int = 0) -> None:
        """Rebuild the effective subsets from the current rate constants."""
        self.eff_reacting_pairs = [p for p in self.reacting_pairs if p.k_constant > rate_floor]
        self.eff_combining_reactants = [c for c in self.combining_reactants if c.k_constant > rate_floor]
        self.eff_dissociating_pairs = [p for p in self.dissociating_pairs if p.k_constant > rate_floor]
        self.eff_emission_pairs = [p for p in self.emission_pairs if p.k_constant > rate_floor]
        self.effective_epoch = epoch
        logger.debug(
            f"{self.name} keeps {len(self.eff_reacting_pairs)}/{len(self.reacting_pairs)} productions, "
            f"{len(self.eff_combining_reactants)}/{len(self.combining_reactants)} combinations, "
            f"{len(self.eff_dissociating_pairs)}/{len(self.dissociating_pairs)} dissociations and "
            f"{len(self.eff_emission_pairs)}/{len(self.emission_pairs)} emissions"
        )

    def get_left_side_rate(self) -> float:
        """Sum of the rates where this cluster is on the left side of a reaction."""
        rate = 0.0
        for combining in self.eff_combining_reactants:
            rate += combining.k_constant * combining.combining.get_concentration(combining.combining_distance)
        for pair in self.eff_emission_pairs:
            rate += pair.k_constant
        return rate

    # ------------------------------------------------------------------
    # Fluxes
    # ------------------------------------------------------------------
    def _production_terms(self) -> Iterator[Tuple[float, Distance]]:
        for pair in self.eff_reacting_pairs:
            value = (
                pair.k_constant
                * pair.first.get_concentration(pair.first_distance)
                * pair.second.get_concentration(pair.second_distance)
            )
            yield value, pair.distance

    def _combination_terms(self) -> Iterator[Tuple[float, Distance]]:
        for combining in self.eff_combining_reactants:
            value = (
                combining.k_constant
                * self.get_concentration(combining.distance)
                * combining.combining.get_concentration(combining.combining_distance)
            )
            yield value, combining.distance

    def _dissociation_terms(self) -> Iterator[Tuple[float, Distance]]:
        for pair in self.eff_dissociating_pairs:
            yield pair.k_constant * pair.first.get_concentration(pair.first_distance), pair.distance

    def _emission_terms(self) -> Iterator[Tuple[float, Distance]]:
        for pair in self.eff_emission_pairs:
            yield pair.k_constant * self.get_concentration(pair.distance), pair.distance

    def _flux_terms(self) -> Iterator[Tuple[float, Distance]]:
        """Signed flux of every effective reaction at the position of this cluster."""
        yield from self._production_terms()
        for value, distance in self._combination_terms():
            yield -value, distance
        yield from self._dissociation_terms()
        for value, distance in self._emission_terms():
            yield -value, distance

    def get_production_flux(self) -> float:
        """Flux due to this cluster being produced by other clusters."""
        return sum(value for value, _ in self._production_terms())

    def get_combination_flux(self) -> float:
        """Flux due to this cluster combining with other clusters."""
        return sum(value for value, _ in self._combination_terms())

    def get_dissociation_flux(self) -> float:
        """Flux due to other clusters dissociating into this one."""
        return sum(value for value, _ in self._dissociation_terms())

    def get_emission_flux(self) -> float:
        """Flux due to the dissociation of this cluster."""
        return sum(value for value, _ in self._emission_terms())

    def get_total_flux(self) -> float:
        return (
            self.get_production_flux()
            - self.get_combination_flux()
            + self.get_dissociation_flux()
            - self.get_emission_flux()
        )

    def compute_fluxes(self, output) -> None:
        """Add the fluxes of this cluster to the per grid point ``output`` array."""
        output[self.id - 1] += self.get_total_flux()

    # ------------------------------------------------------------------
    # Partial derivatives
    # ------------------------------------------------------------------
    def _partial_terms(self) -> Iterator[Tuple[Distance, int, float]]:
        """(distance of this cluster, column, derivative) for every effective reaction."""
        for pair in self.eff_reacting_pairs:
            first_concentration = pair.first.get_concentration(pair.first_distance)
            second_concentration = pair.second.get_concentration(pair.second_distance)
            for column, factor in pair.first.concentration_partials(pair.first_distance):
                yield pair.distance, column, pair.k_constant * second_concentration * factor
            for column, factor in pair.second.concentration_partials(pair.second_distance):
                yield pair.distance, column, pair.k_constant * first_concentration * factor

        for combining in self.eff_combining_reactants:
            own_concentration = self.get_concentration(combining.distance)
            other_concentration = combining.combining.get_concentration(combining.combining_distance)
            for column, factor in self.concentration_partials(combining.distance):
                yield combining.distance, column, -combining.k_constant * other_concentration * factor
            for column, factor in combining.combining.concentration_partials(combining.combining_distance):
                yield combining.distance, column, -combining.k_constant * own_concentration * factor

        for pair in self.eff_dissociating_pairs:
            for column, factor in pair.first.concentration_partials(pair.first_distance):
                yield pair.distance, column, pair.k_constant * factor

        for pair in self.eff_emission_pairs:
            for column, factor in self.concentration_partials(pair.distance):
                yield pair.distance, column, -pair.k_constant * factor

    def compute_partials(self, rows: PartialRows) -> None:
        """Accumulate the partial derivatives of this cluster's rows into ``rows``."""
        for distance, column, value in self._partial_terms():
            for row, weight in self.flux_weights(distance):
                row_partials = rows.setdefault(row, {})
                row_partials[column] = row_partials.get(column, 0.0) + weight * value

    def get_partial_derivatives(self, dof: Optional[int] = None) -> np.ndarray:
        """Dense partial derivatives of this cluster's flux with respect to every degree of freedom."""
        if dof is None:
            network = self.network
            if network is None:
                raise ValueError(f"Cluster {self.name} is not part of a network, the number of degrees of freedom is needed")
            dof = network.get_dof()
        rows: PartialRows = {}
        self.compute_partials(rows)
        partials = np.zeros(dof)
        for column, value in rows.get(self.id - 1, {}).items():
            partials[column] = value
        return partials


class SuperCluster(Cluster):
    """A group of helium-vacancy clusters represented by their average and first moments.

    The concentration of the member (he, v) of the group is approximated by

        c(he, v) = c + d_he(he) * m_he + d_v(v) * m_v

    where c is the average concentration, m_he and m_v the helium and vacancy momenta and
    d_he(he) = 2 (he - <he>) / (width_he - 1) the normalized distance to the group center.

    Parameters
    ----------
    he_range : Tuple[int, int]
        Inclusive range of helium content.
    v_range : Tuple[int, int]
        Inclusive range of vacancy content.
    """

    def __init__(
        self,
        he_range: Tuple[int, int],
        v_range: Tuple[int, int],
        diffusion_factor: float = 0.0,
        migration_energy: float = math.inf,
        formation_energy: float = math.inf,
        concentration: float = 0.0,
    ):
        he_low, he_high = he_range
        v_low, v_high = v_range
        if he_low < 1 or v_low < 1 or he_high < he_low or v_high < v_low:
            raise ValueError(f"Invalid super cluster ranges: He {he_range}, V {v_range}")
        self.he_range = (he_low, he_high)
        self.v_range = (v_low, v_high)
        self.he_width = he_high - he_low + 1
        self.v_width = v_high - v_low + 1
        self.average_he = (he_low + he_high) / 2.0
        self.average_v = (v_low + v_high) / 2.0
        self.num_members = self.he_width * self.v_width
        self.he_momentum = 0.0
        self.v_momentum = 0.0
        self.he_momentum_id = 0
        self.v_momentum_id = 0
        self._members = [
            (Composition(he=he, v=v), (self.get_he_distance(he), self.get_v_distance(v)))
            for v in range(v_low, v_high + 1)
            for he in range(he_low, he_high + 1)
        ]
        self.he_distance_norm = self.v_width * sum(
            self.get_he_distance(he) ** 2 for he in range(he_low, he_high + 1)
        )
        self.v_distance_norm = self.he_width * sum(
            self.get_v_distance(v) ** 2 for v in range(v_low, v_high + 1)
        )
        super().__init__(
            Composition(he=int(self.average_he), v=int(self.average_v)),
            diffusion_factor=diffusion_factor,
            migration_energy=migration_energy,
            formation_energy=formation_energy,
            concentration=concentration,
        )

    def _get_type(self) -> ClusterType:
        return ClusterType.SUPER

    def _calculate_reaction_radius(self) -> float:
        return defect_reaction_radius(self.average_v)

    @property
    def name(self) -> str:
        return (
            f"Super_He_{self.he_range[0]}-{self.he_range[1]}"
            f"V_{self.v_range[0]}-{self.v_range[1]}"
        )

    def clone(self) -> "SuperCluster":
        cluster = SuperCluster(
            self.he_range,
            self.v_range,
            diffusion_factor=self.diffusion_factor,
            migration_energy=self.migration_energy,
            formation_energy=self.formation_energy,
            concentration=self.concentration,
        )
        cluster.he_momentum = self.he_momentum
        cluster.v_momentum = self.v_momentum
        return cluster

    def get_he_distance(self, he: int) -> float:
        if self.he_width == 1:
            return 0.0
        return 2.0 * (he - self.average_he) / (self.he_width - 1)

    def get_v_distance(self, v: int) -> float:
        if self.v_width == 1:
            return 0.0
        return 2.0 * (v - self.average_v) / (self.v_width - 1)

    def contains(self, composition: Composition) -> bool:
        return (
            composition.i == 0
            and self.he_range[0] <= composition.he <= self.he_range[1]
            and self.v_range[0] <= composition.v <= self.v_range[1]
        )

    def members(self) -> List[Tuple[Composition, Distance]]:
        return self._members

    def get_concentration(self, distance: Distance = NO_DISTANCE) -> float:
        return self.concentration + distance[0] * self.he_momentum + distance[1] * self.v_momentum

    def get_total_concentration(self) -> float:
        """Sum of the concentrations of every member of the group."""
        return sum(self.get_concentration(distance) for _, distance in self._members)

    def get_helium_content(self) -> float:
        return sum(
            composition.he * self.get_concentration(distance)
            for composition, distance in self._members
        )

    def concentration_partials(self, distance: Distance = NO_DISTANCE) -> Tuple[Weight, ...]:
        partials = [(self.id - 1, 1.0)]
        if distance[0] != 0.0:
            partials.append((self.he_momentum_id - 1, distance[0]))
        if distance[1] != 0.0:
            partials.append((self.v_momentum_id - 1, distance[1]))
        return tuple(partials)

    def flux_weights(self, distance: Distance = NO_DISTANCE) -> Tuple[Weight, ...]:
        weights = [(self.id - 1, 1.0 / self.num_members)]
        if distance[0] != 0.0 and self.he_distance_norm > 0.0:
            weights.append((self.he_momentum_id - 1, distance[0] / self.he_distance_norm))
        if distance[1] != 0.0 and self.v_distance_norm > 0.0:
            weights.append((self.v_momentum_id - 1, distance[1] / self.v_distance_norm))
        return tuple(weights)

    def get_total_flux(self) -> float:
        """Flux of the average concentration of the group."""
        return super().get_total_flux() / self.num_members

    def get_he_momentum_flux(self) -> float:
        if self.he_distance_norm == 0.0:
            return 0.0
        return sum(value * distance[0] for value, distance in self._flux_terms()) / self.he_distance_norm

    def get_v_momentum_flux(self) -> float:
        if self.v_distance_norm == 0.0:
            return 0.0
        return sum(value * distance[1] for value, distance in self._flux_terms()) / self.v_distance_norm

    def compute_fluxes(self, output) -> None:
        for value, distance in self._flux_terms():
            for row, weight in self.flux_weights(distance):
                output[row] += weight * value

    def get_connectivity(self) -> Set[int]:
        connectivity = super().get_connectivity()
        connectivity.update((self.he_momentum_id - 1, self.v_momentum_id - 1))
        return connectivity
