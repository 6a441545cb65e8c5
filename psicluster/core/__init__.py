"""
Core reaction network functionality.
"""

from .clusters import Cluster, ClusterPair, CombiningCluster, SuperCluster
from .composition import ClusterType, Composition, combine_compositions
from .network import DuplicateSpeciesError, NetworkConfiguration, NetworkStateError, ReactionNetwork
from .process_coefficients import diffusion_coefficient, dissociation_rate_constant, reaction_rate_constant
from .species import SpeciesRules, get_species_rules

__all__ = [
    'Cluster', 'SuperCluster', 'ClusterPair', 'CombiningCluster',
    'ClusterType', 'Composition', 'combine_compositions',
    'ReactionNetwork', 'NetworkConfiguration',
    'DuplicateSpeciesError', 'NetworkStateError',
    'diffusion_coefficient', 'reaction_rate_constant', 'dissociation_rate_constant',
    'SpeciesRules', 'get_species_rules',
]
