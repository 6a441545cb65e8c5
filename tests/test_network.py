import numpy as np
import pytest

from psicluster.core import (
    ClusterType,
    Composition,
    DuplicateSpeciesError,
    NetworkConfiguration,
    NetworkStateError,
    ReactionNetwork,
    SuperCluster,
)


class TestPopulation:
    def test_get_after_add(self, cluster_factory):
        network = ReactionNetwork()
        for size in (1, 2, 3):
            added = network.add(cluster_factory(size, 0, 0))
            found = network.get("He", size)
            assert found is added
            assert found.composition == Composition(he=size)
            assert found.id == size
        assert len(network) == 3
        assert network.size == 3

    def test_duplicate_insert_fails(self, cluster_factory):
        network = ReactionNetwork()
        network.add(cluster_factory(1, 1, 0))
        with pytest.raises(DuplicateSpeciesError):
            network.add(cluster_factory(1, 1, 0))
        assert issubclass(DuplicateSpeciesError, ValueError)
        assert len(network) == 1

    def test_missing_lookups_return_none(self, helium_network):
        assert helium_network.get("He", 4) is None
        assert helium_network.get("V", 1) is None
        assert helium_network.get(ClusterType.HEV, 1) is None
        assert helium_network.get("He", 0) is None
        assert helium_network.get("Xe", 1) is None
        assert helium_network.get_compound("HeV", (1, 1, 0)) is None
        assert helium_network.get_super("Super", (2, 2, 0)) is None

    def test_malformed_lookups_return_none(self, mixed_network):
        assert mixed_network.get("He", "1") is None
        assert mixed_network.get("He", 1.5) is None
        assert mixed_network.get("He", -1) is None
        assert mixed_network.get_compound("HeV", ("1", 1, 0)) is None
        assert mixed_network.get_compound("HeV", (-1, 1, 0)) is None
        assert mixed_network.get_compound("HeV", None) is None
        assert mixed_network.get_super("Super", (2.5, 2, 0)) is None

    def test_compound_lookup(self, mixed_network):
        cluster = mixed_network.get_compound("HeV", (2, 1, 0))
        assert cluster is not None and cluster.composition == Composition(he=2, v=1)
        assert mixed_network.get_compound(ClusterType.HEI, (1, 0, 1)).name == "He_1I_1"
        # Wrong family or arity
        assert mixed_network.get_compound("HeI", (2, 1, 0)) is None
        assert mixed_network.get_compound("He", (1, 0, 0)) is None
        assert mixed_network.get_compound("HeV", (2, 1)) is None

    def test_get_all_keeps_insertion_order(self, mixed_network):
        names = [cluster.name for cluster in mixed_network.get_all()]
        assert names[:3] == ["He_1", "He_2", "He_3"]
        assert [cluster.name for cluster in mixed_network.get_all("HeV")] == [
            "He_1V_1",
            "He_2V_1",
            "He_1V_2",
            "He_2V_2",
        ]
        assert mixed_network.get_all(ClusterType.SUPER) == []
        # Copies of the indices
        mixed_network.get_all().clear()
        assert len(mixed_network.get_all()) == len(mixed_network)

    def test_ids_are_dense(self, mixed_network):
        assert [cluster.id for cluster in mixed_network] == list(range(1, len(mixed_network) + 1))
        assert mixed_network.get_dof() == len(mixed_network)


class TestSuperClusters:
    def test_momentum_ids_follow_clusters(self, super_network):
        super_cluster = super_network.get_all("Super")[0]
        size = len(super_network)
        assert super_network.get_dof() == size + 2
        assert super_cluster.he_momentum_id == size + 1
        assert super_cluster.v_momentum_id == size + 2
        assert super_network.get_super("Super", (2, 2, 0)) is super_cluster

    def test_find_member(self, super_network):
        super_cluster = super_network.get_all("Super")[0]
        cluster, distance = super_network.find(Composition(he=3, v=2))
        assert cluster is super_cluster
        assert distance == (pytest.approx(1.0), pytest.approx(-1.0))
        cluster, distance = super_network.find(Composition(he=1, v=2))
        assert cluster.name == "He_1V_2"
        assert distance == (0.0, 0.0)
        assert super_network.find(Composition(he=4, v=2)) is None

    def test_overlapping_groups_are_duplicates(self, super_network, cluster_factory):
        with pytest.raises(DuplicateSpeciesError):
            super_network.add_super(SuperCluster((3, 4), (3, 4)))
        with pytest.raises(DuplicateSpeciesError):
            super_network.add(cluster_factory(2, 3, 0))

    def test_super_clusters_raise_observed_mixed_size(self, super_network):
        assert super_network.get_max_cluster_size(ClusterType.HEV) == 6


class TestProperties:
    def test_counters_and_observed_sizes(self, mixed_network):
        assert mixed_network.get_property("num_he_clusters") == 3
        assert mixed_network.get_property("num_hev_clusters") == 4
        assert mixed_network.get_property("num_super_clusters") == 0
        assert mixed_network.get_property("max_he_cluster_size") == 3
        assert mixed_network.get_property("max_hev_cluster_size") == 4
        assert mixed_network.get_property("dissociations_enabled") is True

    def test_set_property(self, helium_network):
        helium_network.set_property("max_he_cluster_size", 2)
        assert helium_network.get_property("max_he_cluster_size") == 2
        assert helium_network.configuration.max_he_cluster_size == 2

    def test_rejected_value_keeps_configuration(self, network_factory):
        # He_2 and V_2 are immobile: their combination has a zero rate
        network = network_factory([(2, 0, 0), (0, 2, 0), (2, 2, 0)])
        he2 = network.get("He", 2)
        with pytest.raises(ValueError):
            network.set_property("rate_floor", -1.0)
        with pytest.raises(ValueError):
            network.set_property("max_he_cluster_size", -5)
        with pytest.raises(TypeError):
            network.set_property("max_he_cluster_size", "3")
        with pytest.raises(TypeError):
            network.set_property("dissociations_enabled", "yes")
        assert network.get_property("rate_floor") == 0.0
        assert network.configuration.max_he_cluster_size is None
        assert network.get_property("dissociations_enabled") is True

        network.set_temperature(800.0)
        assert he2.combining_reactants[0].k_constant == 0.0
        assert he2.eff_combining_reactants == []
        network.compute_all_fluxes(np.zeros(network.get_dof()))

    def test_unknown_and_read_only_keys(self, helium_network):
        with pytest.raises(KeyError):
            helium_network.get_property("max_xe_cluster_size")
        with pytest.raises(KeyError):
            helium_network.set_property("num_he_clusters", 4)

    def test_configuration_round_trip(self):
        configuration = NetworkConfiguration(max_he_cluster_size=8, dissociations_enabled=False)
        assert NetworkConfiguration.from_config(configuration.to_config()) == configuration
        with pytest.raises(ValueError):
            NetworkConfiguration.from_config({"max_xe_cluster_size": 3})
        with pytest.raises(ValueError):
            NetworkConfiguration(rate_floor=-1.0)


class TestConcentrations:
    def test_round_trip(self, super_network):
        concentrations = np.linspace(0.1, 1.0, super_network.get_dof())
        super_network.update_concentrations_from_array(concentrations)
        np.testing.assert_array_equal(super_network.fill_concentrations_array(), concentrations)

        buffer = np.zeros(super_network.get_dof())
        super_network.fill_concentrations_array(buffer)
        np.testing.assert_array_equal(buffer, concentrations)

    def test_short_array_raises(self, super_network):
        with pytest.raises(ValueError):
            super_network.update_concentrations_from_array(np.zeros(len(super_network)))

    def test_total_atom_concentrations(self, network_factory):
        network = network_factory([(1, 0, 0), (2, 0, 0), (0, 1, 0), (2, 1, 0)])
        network.update_concentrations_from_array(np.array([1.0, 2.0, 3.0, 4.0]))
        assert network.get_total_atom_concentration() == pytest.approx(1.0 + 4.0 + 8.0)
        assert network.get_total_trapped_atom_concentration() == pytest.approx(8.0)


class TestLifecycle:
    def test_fluxes_need_connectivity(self, network_factory):
        network = network_factory([(1, 0, 0), (2, 0, 0)], build=False)
        with pytest.raises(NetworkStateError):
            network.compute_all_fluxes(np.zeros(2))

    def test_fluxes_need_temperature(self, network_factory):
        network = network_factory([(1, 0, 0), (2, 0, 0)], temperature=None)
        with pytest.raises(NetworkStateError):
            network.compute_all_fluxes(np.zeros(2))
        with pytest.raises(NetworkStateError):
            network.jacobian_matrix()
        network.set_temperature(500.0)
        network.compute_all_fluxes(np.zeros(2))

    def test_fluxes_need_current_subsets_on_every_cluster(self, helium_network):
        helium_network.get("He", 2).reset_connectivity()
        with pytest.raises(NetworkStateError):
            helium_network.compute_all_fluxes(np.zeros(3))
        helium_network.build_connectivity()
        helium_network.compute_all_fluxes(np.zeros(3))

    def test_invalid_temperature(self, helium_network):
        with pytest.raises(ValueError):
            helium_network.set_temperature(0.0)

    def test_remove_reactant(self, mixed_network):
        removed = mixed_network.get("He", 2)
        mixed_network.remove_reactant(removed)
        assert mixed_network.get("He", 2) is None
        assert removed.network is None
        assert [cluster.id for cluster in mixed_network] == list(range(1, len(mixed_network) + 1))
        with pytest.raises(NetworkStateError):
            mixed_network.compute_all_fluxes(np.zeros(mixed_network.get_dof()))

        mixed_network.build_connectivity()
        helium = mixed_network.get("He", 1)
        assert all(partner.combining.name != "He_2" for partner in helium.combining_reactants)
        mixed_network.compute_all_fluxes(np.zeros(mixed_network.get_dof()))

    def test_copy_is_deep(self, super_network):
        copy = super_network.copy()
        assert [cluster.name for cluster in copy] == [cluster.name for cluster in super_network]
        for original, cloned in zip(super_network, copy):
            assert cloned is not original
            assert cloned.id == original.id
            assert cloned.network is copy
        assert copy.get_dof() == super_network.get_dof()
        assert copy.temperature == super_network.temperature
        # Derived bookkeeping is not copied
        assert all(not cluster.combining_reactants for cluster in copy)
        with pytest.raises(NetworkStateError):
            copy.compute_all_fluxes(np.zeros(copy.get_dof()))

        copy.build_connectivity()
        concentrations = np.full(copy.get_dof(), 1e-3)
        copy.update_concentrations_from_array(concentrations)
        super_network.update_concentrations_from_array(concentrations)
        copy_fluxes = np.zeros(copy.get_dof())
        original_fluxes = np.zeros(copy.get_dof())
        copy.compute_all_fluxes(copy_fluxes)
        super_network.compute_all_fluxes(original_fluxes)
        np.testing.assert_allclose(copy_fluxes, original_fluxes)
