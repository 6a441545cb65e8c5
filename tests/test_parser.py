import math
from pathlib import Path

import numpy as np
import pytest
import yaml

from psicluster.core import ClusterType
from psicluster.io import InputParser

EXAMPLES_DIR = Path(__file__).resolve().parents[1] / "examples"

NETWORK_CONFIG = {
    "temperature": "1000 K",
    "network_configuration": {"max_he_cluster_size": 3},
    "clusters": {
        "He": {
            "sizes": [1, 3],
            "diffusion_factor": {1: "2.9e+10 nm^2/s"},
            "migration_energy": {1: "0.13 eV"},
            "formation_energy": {1: "6.15 eV", 2: 11.44, "He_3": "16.35 eV"},
            "concentration": {1: "1e-3 nm^-3"},
        },
        "V": {"sizes": "1-2", "formation_energy": "3.6 eV"},
        "HeV": {"he": [1, 2], "v": 1},
    },
}


@pytest.fixture
def network_file(tmp_path):
    path = tmp_path / "network.yaml"
    path.write_text(yaml.safe_dump(NETWORK_CONFIG, sort_keys=False))
    return path


def test_load_network(network_file):
    network = InputParser().get_network_from_yaml(network_file)
    assert [cluster.name for cluster in network] == ["He_1", "He_2", "He_3", "V_1", "V_2", "He_1V_1", "He_2V_1"]
    assert network.temperature == pytest.approx(1000.0)
    assert network.configuration.max_he_cluster_size == 3

    he1 = network.get("He", 1)
    assert he1.diffusion_factor == pytest.approx(2.9e10)
    assert he1.migration_energy == pytest.approx(0.13)
    assert he1.concentration == pytest.approx(1e-3)
    assert network.get("He", 2).formation_energy == pytest.approx(11.44)
    assert network.get("He", 3).formation_energy == pytest.approx(16.35)
    # Unspecified properties keep their defaults
    assert network.get("He", 2).diffusion_factor == 0.0
    assert math.isinf(network.get("He", 2).migration_energy)
    assert network.get("V", 2).formation_energy == pytest.approx(3.6)
    assert math.isinf(network.get_compound("HeV", (1, 1, 0)).formation_energy)

    # Connectivity is built and the temperature set
    fluxes = np.zeros(network.get_dof())
    network.compute_all_fluxes(fluxes)
    assert fluxes[he1.id - 1] < 0.0


def test_units_are_converted(tmp_path):
    config = {
        "clusters": {
            "He": {"sizes": 1, "diffusion_factor": "2.9e-8 m^2/s", "concentration": "1e21 cm^-3"},
        }
    }
    network = InputParser().get_network_from_config(config)
    he1 = network.get("He", 1)
    assert he1.diffusion_factor == pytest.approx(2.9e10)
    assert he1.concentration == pytest.approx(1.0)
    assert network.temperature is None


def test_super_clusters_and_interstitial_families():
    config = {
        "clusters": {
            "He": {"sizes": [1, 1]},
            "HeI": [{"he": [1, 2], "i": [1, 2], "max_size": 3}],
        },
        "super_clusters": [{"he": [3, 4], "v": "2-3", "formation_energy": "20 eV"}],
    }
    network = InputParser().get_network_from_config(config)
    assert [cluster.name for cluster in network.get_all("HeI")] == ["He_1I_1", "He_2I_1", "He_1I_2"]
    (super_cluster,) = network.get_all(ClusterType.SUPER)
    assert super_cluster.he_range == (3, 4)
    assert super_cluster.v_range == (2, 3)
    assert super_cluster.formation_energy == pytest.approx(20.0)
    assert network.get_dof() == len(network) + 2


def test_empty_network_configuration_uses_defaults(tmp_path):
    path = tmp_path / "network.yaml"
    path.write_text("network_configuration:\nclusters:\n  He:\n    sizes: [1, 2]\n")
    network = InputParser().get_network_from_yaml(path)
    assert network.configuration.max_he_cluster_size is None
    assert network.get_property("max_he_cluster_size") == 2
    assert len(network) == 2


def test_unknown_family_raises():
    with pytest.raises(ValueError):
        InputParser().get_network_from_config({"clusters": {"Xe": {"sizes": [1, 2]}}})
    with pytest.raises(ValueError):
        InputParser().get_network_from_config({"clusters": {"HeV": {"he": [1, 2]}}})


def test_example_network_loads():
    network = InputParser().get_network_from_yaml(EXAMPLES_DIR / "tungsten_network.yaml")
    assert len(network) == 26
    assert network.get_dof() == 28
    assert network.get_property("num_super_clusters") == 1
    assert network.get_property("max_hev_cluster_size") == 12
    assert network.jacobian_matrix().shape == (28, 28)
