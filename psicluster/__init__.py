"""
psicluster - Point-defect cluster reaction network

A Python implementation of the helium, vacancy and interstitial cluster reaction
network used in cluster dynamics simulations of irradiated tungsten.
"""

from .core.clusters import Cluster, SuperCluster
from .core.composition import ClusterType, Composition
from .core.network import DuplicateSpeciesError, NetworkConfiguration, NetworkStateError, ReactionNetwork
from .io.parser import InputParser

__version__ = "0.1.0"
__author__ = "psicluster developers"

__all__ = [
    "Cluster",
    "SuperCluster",
    "ClusterType",
    "Composition",
    "ReactionNetwork",
    "NetworkConfiguration",
    "DuplicateSpeciesError",
    "NetworkStateError",
    "InputParser",
]
