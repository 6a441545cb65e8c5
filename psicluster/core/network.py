"""
Reaction network of point-defect clusters.
"""

import logging
import time
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from scipy.sparse import csr_matrix

from ..utils.constants import TEMPERATURE_UNIT, format_quantity
from .clusters import Cluster, PartialRows, SuperCluster
from .composition import NO_DISTANCE, SINGLE_SPECIES_TYPES, ClusterType, Composition, Distance
from .species import get_species_rules

logger = logging.getLogger(__name__)

HELIUM_BEARING_TYPES = (ClusterType.HE, ClusterType.HEV, ClusterType.HEI, ClusterType.SUPER)
TRAPPING_TYPES = (ClusterType.HEV, ClusterType.HEI, ClusterType.SUPER)

# Property key suffixes per family
FAMILY_KEYS = {
    ClusterType.HE: "he",
    ClusterType.V: "v",
    ClusterType.I: "i",
    ClusterType.HEV: "hev",
    ClusterType.HEI: "hei",
    ClusterType.SUPER: "super",
}


class DuplicateSpeciesError(ValueError):
    """Raised when a composition is inserted twice in the same network."""


class NetworkStateError(RuntimeError):
    """Raised when the network is used before its connectivity or rate constants are ready."""


@dataclass
class NetworkConfiguration:
    """Configuration of the reaction network.

    Maximum sizes left to None use the largest size observed in the network.
    """

    max_he_cluster_size: Optional[int] = None
    max_v_cluster_size: Optional[int] = None
    max_i_cluster_size: Optional[int] = None
    max_hev_cluster_size: Optional[int] = None
    max_hei_cluster_size: Optional[int] = None
    reactions_enabled: bool = True
    dissociations_enabled: bool = True
    rate_floor: float = 0.0

    def __post_init__(self):
        """Validate configuration."""
        for family in ("he", "v", "i", "hev", "hei"):
            value = getattr(self, f"max_{family}_cluster_size")
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError(f"max_{family}_cluster_size must be an integer, got {value!r}")
            if value < 0:
                raise ValueError(f"max_{family}_cluster_size must be non-negative, got {value}")
        for flag in ("reactions_enabled", "dissociations_enabled"):
            if not isinstance(getattr(self, flag), bool):
                raise TypeError(f"{flag} must be a boolean, got {getattr(self, flag)!r}")
        if isinstance(self.rate_floor, bool) or not isinstance(self.rate_floor, (int, float)):
            raise TypeError(f"Rate floor must be a number, got {self.rate_floor!r}")
        if self.rate_floor < 0:
            raise ValueError(f"Rate floor must be non-negative, got {self.rate_floor}")

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "NetworkConfiguration":
        """Create a network configuration from a configuration."""
        known = {f.name for f in fields(cls)}
        unknown = set(config) - known
        if unknown:
            raise ValueError(f"Unknown network configuration keys: {sorted(unknown)}")
        return cls(**config)

    def to_config(self) -> Dict[str, Any]:
        """Convert the network configuration to a configuration."""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def get_max_cluster_size(self, cluster_type: ClusterType) -> Optional[int]:
        if cluster_type == ClusterType.SUPER:
            return None
        return getattr(self, f"max_{FAMILY_KEYS[cluster_type]}_cluster_size")

    def print_summary(self) -> None:
        """Print the summary of the network configuration."""
        print("Network Configuration:")
        print("=" * 50)
        for family in ("he", "v", "i", "hev", "hei"):
            value = getattr(self, f"max_{family}_cluster_size")
            print(f"  Max {family} cluster size: {'observed' if value is None else value}")
        print(f"Reactions enabled: {self.reactions_enabled}")
        print(f"Dissociations enabled: {self.dissociations_enabled}")
        print(f"Rate floor: {self.rate_floor:.2e}")


class ReactionNetwork:
    """
    Collection of clusters and their reactions.

    The network assigns dense 1-based ids in insertion order, indexes clusters by composition
    and by family, builds the reaction connectivity of every cluster, and assembles the fluxes
    and partial derivatives of one grid point from a concentration snapshot.

    The expected order of operations is: add every cluster, build the connectivity, set the
    temperature, then update concentrations and compute fluxes and partials as often as needed.

    Parameters
    ----------
    configuration : NetworkConfiguration, optional
        Maximum cluster sizes and reaction toggles.
    """

    def __init__(self, configuration: Optional[NetworkConfiguration] = None):
        self.configuration: NetworkConfiguration = configuration or NetworkConfiguration()
        self._clusters: List[Cluster] = []
        self._by_composition: Dict[Composition, Cluster] = {}
        self._by_type: Dict[ClusterType, List[Cluster]] = {cluster_type: [] for cluster_type in ClusterType}
        # Member composition -> (super cluster, distance)
        self._super_members: Dict[Composition, Tuple[SuperCluster, Distance]] = {}
        self._max_sizes: Dict[ClusterType, int] = {cluster_type: 0 for cluster_type in ClusterType}
        self.temperature: Optional[float] = None
        self._temperature_epoch = 0
        self._connectivity_built = False

    # ------------------------------------------------------------------
    # Population
    # ------------------------------------------------------------------
    def add(self, cluster: Cluster) -> Cluster:
        """Add a cluster and assign it the next id.

        Raises
        ------
        DuplicateSpeciesError
            If the composition is already in the network.
        """
        if isinstance(cluster, SuperCluster):
            return self.add_super(cluster)
        composition = cluster.composition
        if composition in self._by_composition or composition in self._super_members:
            raise DuplicateSpeciesError(f"Cluster {composition} is already in the network")
        self._insert(cluster, composition)
        self._max_sizes[cluster.type] = max(self._max_sizes[cluster.type], cluster.size)
        logger.debug(f"Added {cluster.name} with id {cluster.id}")
        return cluster

    def add_super(self, cluster: SuperCluster) -> SuperCluster:
        """Add a super cluster and index every composition of its group.

        Raises
        ------
        DuplicateSpeciesError
            If a composition of the group is already tracked or represented by another group.
        """
        if not isinstance(cluster, SuperCluster):
            raise TypeError(f"Expected a SuperCluster, got {type(cluster).__name__}")
        for composition, _ in cluster.members():
            if composition in self._by_composition or composition in self._super_members:
                raise DuplicateSpeciesError(
                    f"Composition {composition} of {cluster.name} is already in the network"
                )
        self._insert(cluster, cluster.composition)
        for composition, distance in cluster.members():
            self._super_members[composition] = (cluster, distance)
        largest_member = cluster.he_range[1] + cluster.v_range[1]
        self._max_sizes[ClusterType.SUPER] = max(self._max_sizes[ClusterType.SUPER], largest_member)
        self._max_sizes[ClusterType.HEV] = max(self._max_sizes[ClusterType.HEV], largest_member)
        self._assign_momentum_ids()
        logger.debug(f"Added {cluster.name} with id {cluster.id}")
        return cluster

    def _insert(self, cluster: Cluster, composition: Composition) -> None:
        self._clusters.append(cluster)
        self._by_type[cluster.type].append(cluster)
        if cluster.type != ClusterType.SUPER:
            self._by_composition[composition] = cluster
        cluster.id = len(self._clusters)
        cluster.set_reaction_network(self)
        cluster.reset_connectivity()
        if self.temperature is not None:
            cluster.set_temperature(self.temperature)
        self._assign_momentum_ids()
        self._connectivity_built = False

    def remove_reactant(self, cluster: Cluster) -> None:
        """Remove a cluster from the network.

        Ids are reassigned and the connectivity must be built again. Any reference kept on
        the removed cluster is no longer part of the network.
        """
        if cluster not in self._clusters:
            logger.warning(f"Cannot remove {cluster.name}: not in the network")
            return
        self._clusters.remove(cluster)
        self._by_type[cluster.type].remove(cluster)
        if isinstance(cluster, SuperCluster):
            for composition, _ in cluster.members():
                self._super_members.pop(composition, None)
        else:
            self._by_composition.pop(cluster.composition, None)
        cluster.set_reaction_network(None)
        cluster.reset_connectivity()
        self._refresh_max_sizes()
        self._connectivity_built = False
        self.reinitialize_network()
        logger.debug(f"Removed {cluster.name}, connectivity must be rebuilt")

    def _refresh_max_sizes(self) -> None:
        self._max_sizes = {cluster_type: 0 for cluster_type in ClusterType}
        for cluster in self._clusters:
            if isinstance(cluster, SuperCluster):
                largest_member = cluster.he_range[1] + cluster.v_range[1]
                self._max_sizes[ClusterType.SUPER] = max(self._max_sizes[ClusterType.SUPER], largest_member)
                self._max_sizes[ClusterType.HEV] = max(self._max_sizes[ClusterType.HEV], largest_member)
            else:
                self._max_sizes[cluster.type] = max(self._max_sizes[cluster.type], cluster.size)

    def reinitialize_network(self) -> None:
        """Reassign dense ids in insertion order, followed by the momentum ids of super clusters."""
        for index, cluster in enumerate(self._clusters):
            cluster.id = index + 1
        self._assign_momentum_ids()

    def _assign_momentum_ids(self) -> None:
        next_id = len(self._clusters) + 1
        for cluster in self._by_type[ClusterType.SUPER]:
            cluster.he_momentum_id = next_id
            cluster.v_momentum_id = next_id + 1
            next_id += 2

    def copy(self) -> "ReactionNetwork":
        """Deep copy of the clusters and configuration.

        The copy keeps the temperature but not the connectivity, which has to be built again.
        """
        network = ReactionNetwork(NetworkConfiguration(**self.configuration.to_config()))
        for cluster in self._clusters:
            network.add(cluster.clone())
        if self.temperature is not None:
            network.set_temperature(self.temperature)
        return network

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get(self, cluster_type: ClusterType | str, size: int) -> Optional[Cluster]:
        """Get a single-species cluster by type and size, or None."""
        cluster_type = ClusterType.parse(cluster_type)
        if cluster_type not in SINGLE_SPECIES_TYPES:
            return None
        try:
            composition = Composition.of(cluster_type, size)
        except (TypeError, ValueError):
            return None
        return self._by_composition.get(composition)

    def get_compound(self, cluster_type: ClusterType | str, sizes: Tuple[int, int, int]) -> Optional[Cluster]:
        """Get a mixed cluster by type and (he, v, i) content, or None."""
        cluster_type = ClusterType.parse(cluster_type)
        composition = self._composition_from_sizes(sizes)
        if composition is None or cluster_type is None or cluster_type.is_single_species:
            return None
        cluster = self._by_composition.get(composition)
        if cluster is None or cluster.type != cluster_type:
            return None
        return cluster

    def get_super(self, cluster_type: ClusterType | str, sizes: Tuple[int, int, int]) -> Optional[SuperCluster]:
        """Get a super cluster by type and the (he, v, i) content of its center, or None."""
        if ClusterType.parse(cluster_type) != ClusterType.SUPER:
            return None
        composition = self._composition_from_sizes(sizes)
        if composition is None:
            return None
        for cluster in self._by_type[ClusterType.SUPER]:
            if cluster.composition == composition:
                return cluster
        return None

    @staticmethod
    def _composition_from_sizes(sizes) -> Optional[Composition]:
        try:
            he, v, i = sizes
            return Composition(he, v, i)
        except (TypeError, ValueError):
            return None

    def find(self, composition: Composition) -> Optional[Tuple[Cluster, Distance]]:
        """Resolve a composition to the cluster representing it and its distance in that cluster."""
        cluster = self._by_composition.get(composition)
        if cluster is not None:
            return cluster, NO_DISTANCE
        return self._super_members.get(composition)

    def get_all(self, cluster_type: Optional[ClusterType | str] = None) -> List[Cluster]:
        """All clusters, or all clusters of a family, in insertion order."""
        if cluster_type is None:
            return list(self._clusters)
        cluster_type = ClusterType.parse(cluster_type)
        if cluster_type is None:
            return []
        return list(self._by_type[cluster_type])

    def get_num_clusters(self, cluster_type: ClusterType) -> int:
        return len(self._by_type[cluster_type])

    def get_max_cluster_size(self, cluster_type: ClusterType) -> int:
        """Configured maximum size of a family, or the largest size observed."""
        configured = self.configuration.get_max_cluster_size(cluster_type)
        if configured is not None:
            return configured
        return self._max_sizes[cluster_type]

    def __len__(self) -> int:
        return len(self._clusters)

    def __iter__(self):
        return iter(self._clusters)

    @property
    def size(self) -> int:
        return len(self._clusters)

    def get_dof(self) -> int:
        """Number of degrees of freedom: one per cluster plus two momenta per super cluster."""
        return len(self._clusters) + 2 * len(self._by_type[ClusterType.SUPER])

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    def get_property(self, key: str) -> Any:
        """Get a configuration value or a counter, for instance ``max_he_cluster_size`` or ``num_hev_clusters``.

        Raises
        ------
        KeyError
            If the key is unknown.
        """
        for cluster_type, family in FAMILY_KEYS.items():
            if key == f"num_{family}_clusters":
                return self.get_num_clusters(cluster_type)
            if key == f"max_{family}_cluster_size":
                return self.get_max_cluster_size(cluster_type)
        if key in ("reactions_enabled", "dissociations_enabled", "rate_floor"):
            return getattr(self.configuration, key)
        raise KeyError(f"Unknown network property: {key}")

    def set_property(self, key: str, value: Any) -> None:
        """Set a configuration value. Counters are derived from the network and are read-only.

        Raises
        ------
        KeyError
            If the key is unknown or read-only.
        """
        configurable = {f.name for f in fields(NetworkConfiguration)}
        if key not in configurable:
            raise KeyError(f"Unknown or read-only network property: {key}")
        # Validated on a copy so a rejected value leaves the configuration untouched
        self.configuration = replace(self.configuration, **{key: value})
        logger.debug(f"Set network property {key} to {value}")
        if key == "rate_floor":
            if self._connectivity_built and self.temperature is not None:
                self.reinitialize_connectivities()
        else:
            self._connectivity_built = False

    # ------------------------------------------------------------------
    # Connectivity and rate constants
    # ------------------------------------------------------------------
    def build_connectivity(self) -> None:
        """Build the reactions of every cluster from scratch.

        All reactions are created before any dissociation. If the temperature is already
        known the rate constants are computed as well.
        """
        start_time = time.time()
        self.reinitialize_network()
        for cluster in self._clusters:
            cluster.reset_connectivity()

        if self.configuration.reactions_enabled:
            for cluster in self._clusters:
                get_species_rules(cluster.type).create_reaction_connectivity(cluster, self)
        if self.configuration.dissociations_enabled:
            for cluster in self._clusters:
                get_species_rules(cluster.type).create_dissociation_connectivity(cluster, self)

        self._connectivity_built = True
        n_reactions = sum(
            len(cluster.reacting_pairs) + len(cluster.emission_pairs) for cluster in self._clusters
        )
        logger.info(
            f"Built connectivity of {len(self._clusters)} clusters with {n_reactions} production and "
            f"emission records in {time.time() - start_time:.3f} seconds"
        )
        if self.temperature is not None:
            self._update_rate_constants()

    def set_temperature(self, temperature: float) -> None:
        """Set the temperature and recompute diffusion coefficients and rate constants."""
        if temperature <= 0:
            raise ValueError(f"Temperature must be positive, got {temperature}")
        if not self._clusters:
            logger.warning("Setting the temperature of an empty network")
        start_time = time.time()
        self.temperature = temperature
        for cluster in self._clusters:
            cluster.set_temperature(temperature)
        self._temperature_epoch += 1
        self._update_rate_constants()
        logger.info(f"Set temperature to {temperature} K in {time.time() - start_time:.3f} seconds")

    def _update_rate_constants(self) -> None:
        for cluster in self._clusters:
            cluster.update_rate_constants()
        self.reinitialize_connectivities()

    def reinitialize_connectivities(self) -> None:
        """Rebuild the effective reaction subsets from the current rate constants."""
        rate_floor = self.configuration.rate_floor
        for cluster in self._clusters:
            cluster.reset_connectivities(rate_floor, self._temperature_epoch)

    def _check_ready(self) -> None:
        if not self._connectivity_built:
            raise NetworkStateError("The connectivity must be built before computing fluxes")
        if self.temperature is None:
            raise NetworkStateError("The temperature must be set before computing fluxes")
        if any(cluster.effective_epoch != self._temperature_epoch for cluster in self._clusters):
            raise NetworkStateError("Rate constants are out of date, reinitialize the connectivities")

    # ------------------------------------------------------------------
    # Grid point data exchange
    # ------------------------------------------------------------------
    def update_concentrations_from_array(self, concentrations) -> None:
        """Copy the concentrations of one grid point into the clusters."""
        if len(concentrations) < self.get_dof():
            raise ValueError(f"Expected {self.get_dof()} concentrations, got {len(concentrations)}")
        for cluster in self._clusters:
            cluster.concentration = concentrations[cluster.id - 1]
        for cluster in self._by_type[ClusterType.SUPER]:
            cluster.he_momentum = concentrations[cluster.he_momentum_id - 1]
            cluster.v_momentum = concentrations[cluster.v_momentum_id - 1]

    def fill_concentrations_array(self, concentrations=None):
        """Copy the cluster concentrations into an array of size dof, created if not given."""
        if concentrations is None:
            concentrations = np.zeros(self.get_dof())
        for cluster in self._clusters:
            concentrations[cluster.id - 1] = cluster.concentration
        for cluster in self._by_type[ClusterType.SUPER]:
            concentrations[cluster.he_momentum_id - 1] = cluster.he_momentum
            concentrations[cluster.v_momentum_id - 1] = cluster.v_momentum
        return concentrations

    def compute_all_fluxes(self, output) -> None:
        """Add the flux of every degree of freedom to ``output``."""
        self._check_ready()
        for cluster in self._clusters:
            cluster.compute_fluxes(output)

    def _compute_partial_rows(self) -> PartialRows:
        self._check_ready()
        rows: PartialRows = {}
        for cluster in self._clusters:
            cluster.compute_partials(rows)
        return rows

    def compute_all_partials(self, values, indices, sizes) -> None:
        """Write the non-zero partial derivatives of every row.

        Row ``r`` holds ``sizes[r]`` entries stored in ``values[r * dof + j]`` with their
        0-based column in ``indices[r * dof + j]``.
        """
        dof = self.get_dof()
        rows = self._compute_partial_rows()
        for row in range(dof):
            count = 0
            for column, value in sorted(rows.get(row, {}).items()):
                if value == 0.0:
                    continue
                values[row * dof + count] = value
                indices[row * dof + count] = column
                count += 1
            sizes[row] = count

    def jacobian_matrix(self) -> csr_matrix:
        """Jacobian of the fluxes at the current concentrations."""
        dof = self.get_dof()
        values = np.zeros(dof * dof)
        indices = np.zeros(dof * dof, dtype=int)
        sizes = np.zeros(dof, dtype=int)
        self.compute_all_partials(values, indices, sizes)
        data, row_indices, column_indices = [], [], []
        for row in range(dof):
            start = row * dof
            data.extend(values[start : start + sizes[row]])
            column_indices.extend(indices[start : start + sizes[row]])
            row_indices.extend([row] * sizes[row])
        return csr_matrix((data, (row_indices, column_indices)), shape=(dof, dof))

    def get_diagonal_fill(self, fill=None):
        """Sparsity pattern of the Jacobian as a flat dof x dof array of 0 and 1.

        The pattern is structural: it includes reactions whose rate is currently zero.
        """
        if not self._connectivity_built:
            raise NetworkStateError("The connectivity must be built before computing the diagonal fill")
        dof = self.get_dof()
        if fill is None:
            fill = np.zeros(dof * dof, dtype=int)
        for row in range(dof):
            fill[row * dof + row] = 1
        for cluster in self._clusters:
            connectivity = cluster.get_connectivity()
            for row, _ in cluster.flux_weights():
                for column in connectivity:
                    fill[row * dof + column] = 1
            if isinstance(cluster, SuperCluster):
                for row in (cluster.he_momentum_id - 1, cluster.v_momentum_id - 1):
                    for column in connectivity:
                        fill[row * dof + column] = 1
        return fill

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------
    def get_total_atom_concentration(self) -> float:
        """Concentration of helium held by every helium-bearing cluster."""
        return sum(
            cluster.get_helium_content()
            for cluster_type in HELIUM_BEARING_TYPES
            for cluster in self._by_type[cluster_type]
        )

    def get_total_trapped_atom_concentration(self) -> float:
        """Concentration of helium trapped in mixed and super clusters."""
        return sum(
            cluster.get_helium_content()
            for cluster_type in TRAPPING_TYPES
            for cluster in self._by_type[cluster_type]
        )

    def get_network_summary(self) -> Dict[str, Any]:
        """Get a summary of the network."""
        summary = {"n_clusters": len(self._clusters), "dof": self.get_dof(), "temperature": self.temperature}
        for cluster_type, family in FAMILY_KEYS.items():
            summary[f"num_{family}_clusters"] = self.get_num_clusters(cluster_type)
            summary[f"max_{family}_cluster_size"] = self.get_max_cluster_size(cluster_type)
        return summary

    def print_summary(self) -> None:
        """Print a summary of the network."""
        summary = self.get_network_summary()
        print("Reaction Network Summary")
        print("==================")
        print(f"Total clusters: {summary['n_clusters']}")
        print(f"Degrees of freedom: {summary['dof']}")
        for family in FAMILY_KEYS.values():
            print(
                f"  {family}: {summary[f'num_{family}_clusters']} clusters, "
                f"max size {summary[f'max_{family}_cluster_size']}"
            )
        temperature = summary["temperature"]
        print(f"Temperature: {'not set' if temperature is None else format_quantity(temperature, TEMPERATURE_UNIT, 1)}")
