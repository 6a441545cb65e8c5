"""
Input file parser for reaction networks.

A network description lists cluster families with their size ranges and physical
properties, optional super cluster groups and the network configuration::

    network_configuration:
      max_he_cluster_size: 8
      dissociations_enabled: true
    temperature: 1000 K
    clusters:
      He:
        sizes: [1, 8]
        diffusion_factor: {1: 2.9e10 nm^2/s, 2: 3.2e10 nm^2/s}
        migration_energy: {1: 0.13 eV, 2: 0.20 eV}
        formation_energy: {1: 6.15 eV, 2: 11.44 eV}
      HeV:
        he: [1, 4]
        v: [1, 2]
        formation_energy: {He_1V_1: 5.14 eV}
    super_clusters:
      - he: [5, 8]
        v: [3, 4]

Properties are numbers in the internal units (nm, eV, nm^-3) or strings with units.
A property given as a mapping is per cluster, keyed by size or by label such as He_1V_2.
Clusters missing from a mapping keep the default: immobile, with unknown formation energy.
"""

import logging
import math
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from ..core.clusters import Cluster, SuperCluster
from ..core.composition import ClusterType, Composition
from ..core.network import NetworkConfiguration, ReactionNetwork
from ..utils.constants import (
    CONCENTRATION_UNIT,
    DIFFUSION_UNIT,
    ENERGY_UNIT,
    TEMPERATURE_UNIT,
    parse_quantity,
)

logger = logging.getLogger(__name__)

# property name -> (internal unit, default)
CLUSTER_PROPERTIES = {
    "diffusion_factor": (DIFFUSION_UNIT, 0.0),
    "migration_energy": (ENERGY_UNIT, math.inf),
    "formation_energy": (ENERGY_UNIT, math.inf),
    "concentration": (CONCENTRATION_UNIT, 0.0),
}


def _parse_range(value: Any, name: str) -> Tuple[int, int]:
    """Parse an inclusive size range given as [low, high], a single size or "low-high"."""
    if isinstance(value, int):
        return value, value
    if isinstance(value, str):
        low, _, high = value.partition("-")
        return int(low), int(high or low)
    if isinstance(value, (list, tuple)) and len(value) == 2:
        return int(value[0]), int(value[1])
    raise ValueError(f"Invalid {name} range: {value}")


def _lookup_property(spec: Dict[str, Any], name: str, composition: Composition) -> float:
    unit, default = CLUSTER_PROPERTIES[name]
    value = spec.get(name)
    if isinstance(value, dict):
        if composition.label in value:
            value = value[composition.label]
        elif composition.type.is_single_species and composition.size in value:
            value = value[composition.size]
        else:
            return default
    if value is None:
        return default
    return parse_quantity(value, default_unit=unit, target_unit=unit)


def _cluster_kwargs(spec: Dict[str, Any], composition: Composition) -> Dict[str, float]:
    return {name: _lookup_property(spec, name, composition) for name in CLUSTER_PROPERTIES}


class InputParser:
    """Parser for reaction network input files."""

    def __init__(self):
        pass

    def _parse_yaml_file(self, file_path: Path) -> Dict[str, Any]:
        """Parse YAML format input file."""
        with open(file_path, "r") as f:
            data = yaml.safe_load(f)
        return data or {}

    def get_network_from_yaml(self, file_path: Union[str, Path]) -> ReactionNetwork:
        """Parse a network YAML file and return the populated network."""
        file_path = Path(file_path)
        data = self._parse_yaml_file(file_path)
        logger.info(f"Loading reaction network from {file_path}")
        return self.get_network_from_config(data)

    def get_network_from_config(self, data: Dict[str, Any]) -> ReactionNetwork:
        """Create, populate and connect a network from a parsed configuration.

        The temperature is set when the configuration gives one.
        """
        configuration = NetworkConfiguration.from_config(data.get("network_configuration") or {})
        network = ReactionNetwork(configuration)

        for cluster in self.get_clusters_from_config(data.get("clusters", {})):
            network.add(cluster)
        for cluster in self.get_super_clusters_from_config(data.get("super_clusters", [])):
            network.add_super(cluster)

        network.build_connectivity()
        if data.get("temperature") is not None:
            temperature = parse_quantity(data["temperature"], default_unit=TEMPERATURE_UNIT, target_unit=TEMPERATURE_UNIT)
            network.set_temperature(temperature)
        return network

    def get_clusters_from_config(self, cluster_specs: Dict[str, Any]) -> List[Cluster]:
        """Generate the clusters of every family in the order given."""
        clusters = []
        for family, specs in cluster_specs.items():
            cluster_type = ClusterType.parse(family)
            if cluster_type is None or cluster_type == ClusterType.SUPER:
                raise ValueError(f"Unknown cluster family: {family}")
            if isinstance(specs, dict):
                specs = [specs]
            for spec in specs:
                for composition in self._generate_compositions(cluster_type, spec):
                    clusters.append(Cluster(composition, **_cluster_kwargs(spec, composition)))
        logger.debug(f"Generated {len(clusters)} clusters")
        return clusters

    def _generate_compositions(self, cluster_type: ClusterType, spec: Dict[str, Any]) -> List[Composition]:
        if cluster_type.is_single_species:
            if "sizes" not in spec:
                raise ValueError(f"Missing sizes for {cluster_type.value} clusters")
            low, high = _parse_range(spec["sizes"], "sizes")
            return [Composition.of(cluster_type, size) for size in range(low, high + 1)]

        defect = "v" if cluster_type == ClusterType.HEV else "i"
        if "he" not in spec or defect not in spec:
            raise ValueError(f"{cluster_type.value} clusters need 'he' and '{defect}' ranges")
        he_low, he_high = _parse_range(spec["he"], "he")
        defect_low, defect_high = _parse_range(spec[defect], defect)
        max_size: Optional[int] = spec.get("max_size")
        compositions = []
        for n_defects in range(defect_low, defect_high + 1):
            for he in range(he_low, he_high + 1):
                if max_size is not None and he + n_defects > max_size:
                    continue
                compositions.append(Composition(he=he, **{defect: n_defects}))
        return compositions

    def get_super_clusters_from_config(self, super_specs: List[Dict[str, Any]]) -> List[SuperCluster]:
        """Generate the super clusters of the configuration."""
        super_clusters = []
        for spec in super_specs:
            he_range = _parse_range(spec["he"], "he")
            v_range = _parse_range(spec["v"], "v")
            center = Composition(he=sum(he_range) // 2, v=sum(v_range) // 2)
            super_clusters.append(SuperCluster(he_range, v_range, **_cluster_kwargs(spec, center)))
        return super_clusters
