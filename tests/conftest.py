import math
from typing import Iterable, Optional, Tuple

import numpy as np
import pytest

from psicluster.core import Cluster, Composition, NetworkConfiguration, ReactionNetwork, SuperCluster

# (D0 in nm^2/s, Em in eV) of the mobile atoms in tungsten
MOBILITY = {
    Composition(he=1): (2.9e10, 0.13),
    Composition(v=1): (1.8e12, 1.30),
    Composition(i=1): (8.8e10, 0.01),
}


def formation_energy(he: int = 0, v: int = 0, i: int = 0) -> float:
    """Formation energies giving a binding energy of 1 eV to every emitted cluster."""
    return 6.0 * he + 3.6 * v + 10.0 * i - 1.0 * (he + v + i - 1)


def make_cluster(he: int = 0, v: int = 0, i: int = 0, **kwargs) -> Cluster:
    composition = Composition(he, v, i)
    diffusion_factor, migration_energy = MOBILITY.get(composition, (0.0, math.inf))
    kwargs.setdefault("diffusion_factor", diffusion_factor)
    kwargs.setdefault("migration_energy", migration_energy)
    kwargs.setdefault("formation_energy", formation_energy(he, v, i))
    return Cluster(composition, **kwargs)


def make_super(he_range: Tuple[int, int], v_range: Tuple[int, int]) -> SuperCluster:
    center_he = (he_range[0] + he_range[1]) // 2
    center_v = (v_range[0] + v_range[1]) // 2
    return SuperCluster(he_range, v_range, formation_energy=formation_energy(center_he, center_v))


def make_network(
    compositions: Iterable[Tuple[int, int, int]],
    supers: Iterable[Tuple[Tuple[int, int], Tuple[int, int]]] = (),
    configuration: Optional[NetworkConfiguration] = None,
    temperature: Optional[float] = 1000.0,
    build: bool = True,
) -> ReactionNetwork:
    network = ReactionNetwork(configuration)
    for he, v, i in compositions:
        network.add(make_cluster(he, v, i))
    for he_range, v_range in supers:
        network.add_super(make_super(he_range, v_range))
    if build:
        network.build_connectivity()
    if temperature is not None:
        network.set_temperature(temperature)
    return network


def numerical_jacobian(network: ReactionNetwork, concentrations: np.ndarray, step: float) -> np.ndarray:
    """Central difference Jacobian of the network fluxes."""
    dof = network.get_dof()
    jacobian = np.zeros((dof, dof))
    for column in range(dof):
        fluxes = []
        for sign in (1.0, -1.0):
            shifted = concentrations.copy()
            shifted[column] += sign * step
            network.update_concentrations_from_array(shifted)
            output = np.zeros(dof)
            network.compute_all_fluxes(output)
            fluxes.append(output)
        jacobian[:, column] = (fluxes[0] - fluxes[1]) / (2.0 * step)
    network.update_concentrations_from_array(concentrations)
    return jacobian


@pytest.fixture
def cluster_factory():
    return make_cluster


@pytest.fixture
def network_factory():
    return make_network


@pytest.fixture
def jacobian_approximation():
    return numerical_jacobian


@pytest.fixture
def helium_network() -> ReactionNetwork:
    """He_1, He_2 and He_3 only."""
    return make_network([(1, 0, 0), (2, 0, 0), (3, 0, 0)])


@pytest.fixture
def mixed_network() -> ReactionNetwork:
    """Every family except super clusters."""
    compositions = [(he, 0, 0) for he in range(1, 4)]
    compositions += [(0, v, 0) for v in range(1, 3)]
    compositions += [(0, 0, i) for i in range(1, 3)]
    compositions += [(he, v, 0) for v in range(1, 3) for he in range(1, 3)]
    compositions += [(1, 0, 1), (2, 0, 1)]
    return make_network(compositions)


@pytest.fixture
def super_network() -> ReactionNetwork:
    """Mobile atoms, He_1V_v clusters and a super cluster grouping He 2-3, V 2-3.

    No family holds two clusters of the same species that can react together, so every
    reaction conserves helium.
    """
    compositions = [(1, 0, 0), (0, 1, 0), (0, 0, 1), (1, 1, 0), (1, 2, 0), (1, 3, 0)]
    return make_network(compositions, supers=[((2, 3), (2, 3))])


@pytest.fixture
def random_concentrations():
    def _concentrations(network: ReactionNetwork, seed: int = 0) -> np.ndarray:
        rng = np.random.default_rng(seed)
        concentrations = rng.uniform(1e-4, 1e-3, network.get_dof())
        network.update_concentrations_from_array(concentrations)
        return concentrations

    return _concentrations
