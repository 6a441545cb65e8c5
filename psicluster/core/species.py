"""
Connectivity rules of the species families.

Each family knows which clusters it reacts with and how it dissociates. The network
applies the rules of every cluster's family when building connectivity.
"""

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Dict, Tuple

from .composition import (
    HE_ATOM,
    INTERSTITIAL,
    NO_DISTANCE,
    VACANCY,
    ClusterType,
    Composition,
    Distance,
    combine_compositions,
)

if TYPE_CHECKING:
    from .clusters import Cluster
    from .network import ReactionNetwork

logger = logging.getLogger(__name__)

ATOM_COMPOSITIONS = {
    ClusterType.HE: HE_ATOM,
    ClusterType.V: VACANCY,
    ClusterType.I: INTERSTITIAL,
}

ALL_FAMILIES = (
    ClusterType.HE,
    ClusterType.V,
    ClusterType.I,
    ClusterType.HEV,
    ClusterType.HEI,
    ClusterType.SUPER,
)


class SpeciesRules(ABC):
    """Abstract base class for the connectivity rules of a species family."""

    cluster_type: ClusterType
    # Families this one combines with. Kept symmetric across families.
    partner_types: Tuple[ClusterType, ...]

    def create_reaction_connectivity(self, cluster: "Cluster", network: "ReactionNetwork") -> None:
        """Record the production and combination reactions of ``cluster``."""
        self.create_production_connectivity(cluster, network)
        self.combine_with_partners(cluster, network)

    def create_production_connectivity(self, cluster: "Cluster", network: "ReactionNetwork") -> None:
        """Productions that are not pushed by a reactant of another family."""

    @abstractmethod
    def create_dissociation_connectivity(self, cluster: "Cluster", network: "ReactionNetwork") -> None:
        """Record the dissociation and emission reactions of ``cluster``."""
        pass

    def combine_with_partners(self, cluster: "Cluster", network: "ReactionNetwork") -> None:
        """Combine every member of ``cluster`` with every member of the partner families.

        Productions of a cross-family reaction are recorded on the product by the reactant
        with the lower id so each reaction is counted exactly once.
        """
        for composition, distance in cluster.members():
            for partner_type in self.partner_types:
                if partner_type.is_mixed and network.get_num_clusters(partner_type) == 0:
                    continue
                for partner in network.get_all(partner_type):
                    for partner_composition, partner_distance in partner.members():
                        self._combine(
                            cluster, composition, distance, partner, partner_composition, partner_distance, network
                        )
        logger.debug(f"{cluster.name} combines with {len(cluster.combining_reactants)} clusters")

    def _combine(
        self,
        cluster: "Cluster",
        composition: Composition,
        distance: Distance,
        partner: "Cluster",
        partner_composition: Composition,
        partner_distance: Distance,
        network: "ReactionNetwork",
    ) -> None:
        product_composition = combine_compositions(composition, partner_composition)
        product = None
        product_distance = NO_DISTANCE
        if not product_composition.is_empty:
            product_type = product_composition.type
            if product_composition.size > network.get_max_cluster_size(product_type):
                return
            found = network.find(product_composition)
            if found is None:
                return
            product, product_distance = found

        cluster.add_combining_cluster(partner, partner_distance, distance)

        same_family = cluster.type == partner.type and cluster.type.is_single_species
        if product is not None and not same_family and cluster.id < partner.id:
            product.add_reacting_pair(cluster, partner, distance, partner_distance, product_distance)

    def _dissociate_from_mixed_parents(
        self,
        cluster: "Cluster",
        composition: Composition,
        distance: Distance,
        atoms: Tuple[Composition, ...],
        network: "ReactionNetwork",
    ) -> None:
        """Record mixed parents (composition + atom) emitting ``atom`` and leaving ``composition``."""
        for atom in atoms:
            parent_composition = composition.add(atom)
            if parent_composition.v > 0 and parent_composition.i > 0:
                continue
            if not parent_composition.type.is_mixed:
                continue
            found = network.find(parent_composition)
            if found is None:
                continue
            parent, parent_distance = found
            emitted = network.get(atom.type, 1)
            cluster.dissociate_cluster(parent, emitted, parent_distance, NO_DISTANCE, distance)


class SingleSpeciesRules(SpeciesRules):
    """Rules of the He, V and I families.

    A_n is produced by A_a + A_(n-a), dissociates as A_n --> A_(n-1) + A_1, and is produced
    by the dissociation of A_(n+1) and of mixed clusters that contain it plus one atom.
    """

    partner_types = ALL_FAMILIES

    # Mixed families whose members can emit an atom of this family
    emitting_families: Tuple[ClusterType, ...] = ()

    @property
    def atom(self) -> Composition:
        return ATOM_COMPOSITIONS[self.cluster_type]

    def create_production_connectivity(self, cluster: "Cluster", network: "ReactionNetwork") -> None:
        size = cluster.size
        if size > network.get_max_cluster_size(self.cluster_type):
            return
        for first_size in range(1, size // 2 + 1):
            first = network.get(self.cluster_type, first_size)
            second = network.get(self.cluster_type, size - first_size)
            if first is not None and second is not None:
                cluster.add_reacting_pair(first, second)

    def create_dissociation_connectivity(self, cluster: "Cluster", network: "ReactionNetwork") -> None:
        size = cluster.size
        single = network.get(self.cluster_type, 1)

        # A_(n+1) --> A_n + A_1
        cluster.dissociate_cluster(network.get(self.cluster_type, size + 1), single)

        if size == 1:
            # A_m --> A_(m-1) + A_1 seen from the emitted atom. A_2 --> A_1 + A_1 is already recorded.
            for parent in network.get_all(self.cluster_type):
                if parent.size >= 3:
                    cluster.dissociate_cluster(parent, network.get(self.cluster_type, parent.size - 1))
            self._dissociate_atom_from_mixed(cluster, network)
        else:
            # A_n --> A_(n-1) + A_1
            cluster.emit_clusters(single, network.get(self.cluster_type, size - 1))

        # (A_n)(X_1) --> A_n + X_1
        self._dissociate_from_mixed_parents(
            cluster, cluster.composition, NO_DISTANCE, self._mixed_parent_atoms(), network
        )

    def _mixed_parent_atoms(self) -> Tuple[Composition, ...]:
        return tuple(
            atom for cluster_type, atom in ATOM_COMPOSITIONS.items() if cluster_type != self.cluster_type
        )

    def _dissociate_atom_from_mixed(self, cluster: "Cluster", network: "ReactionNetwork") -> None:
        """Mixed clusters emitting this atom, leaving the residual cluster."""
        for family in self.emitting_families:
            for parent in network.get_all(family):
                for composition, parent_distance in parent.members():
                    residual_composition = composition.remove(self.atom)
                    if residual_composition is None:
                        continue
                    found = network.find(residual_composition)
                    if found is None:
                        continue
                    residual, residual_distance = found
                    cluster.dissociate_cluster(parent, residual, parent_distance, residual_distance)


class HeliumRules(SingleSpeciesRules):
    cluster_type = ClusterType.HE
    emitting_families = (ClusterType.HEV, ClusterType.HEI, ClusterType.SUPER)


class VacancyRules(SingleSpeciesRules):
    cluster_type = ClusterType.V
    emitting_families = (ClusterType.HEV, ClusterType.SUPER)


class InterstitialRules(SingleSpeciesRules):
    cluster_type = ClusterType.I
    emitting_families = (ClusterType.HEI,)


class MixedRules(SpeciesRules):
    """Rules of the mixed families, which only react with single-species clusters.

    A mixed cluster emits one helium atom or one of its defects and is produced by the same
    emission from the mixed cluster with one more atom or defect.
    """

    partner_types = (ClusterType.HE, ClusterType.V, ClusterType.I)
    emitted_atoms: Tuple[Composition, ...]

    def create_dissociation_connectivity(self, cluster: "Cluster", network: "ReactionNetwork") -> None:
        for composition, distance in cluster.members():
            for atom in self.emitted_atoms:
                # member --> (member - atom) + atom
                residual_composition = composition.remove(atom)
                if residual_composition is not None:
                    found = network.find(residual_composition)
                    if found is not None:
                        residual, residual_distance = found
                        cluster.emit_clusters(
                            network.get(atom.type, 1), residual, NO_DISTANCE, residual_distance, distance
                        )

            # (member + atom) --> member + atom
            self._dissociate_from_mixed_parents(cluster, composition, distance, self.emitted_atoms, network)


class HeliumVacancyRules(MixedRules):
    cluster_type = ClusterType.HEV
    emitted_atoms = (HE_ATOM, VACANCY)


class HeliumInterstitialRules(MixedRules):
    cluster_type = ClusterType.HEI
    emitted_atoms = (HE_ATOM, INTERSTITIAL)


class SuperRules(MixedRules):
    cluster_type = ClusterType.SUPER
    emitted_atoms = (HE_ATOM, VACANCY)


SPECIES_RULES: Dict[ClusterType, SpeciesRules] = {
    rules.cluster_type: rules
    for rules in (
        HeliumRules(),
        VacancyRules(),
        InterstitialRules(),
        HeliumVacancyRules(),
        HeliumInterstitialRules(),
        SuperRules(),
    )
}


def get_species_rules(cluster_type: ClusterType) -> SpeciesRules:
    """Get the connectivity rules of a species family."""
    return SPECIES_RULES[cluster_type]
