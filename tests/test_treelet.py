import math

import pytest
from scipy import integrate

from conftest import make_history
from virustree import demography
from virustree import treelet


def make_builder(rng, N0=0.01, force_coalescence=True, run_logger=None):
    return treelet.TreeletBuilder(
        demographic_function=demography.ConstantPopulation(N0=N0),
        rng=rng,
        force_coalescence=force_coalescence,
        max_coalescence_attempts=1000,
        run_logger=run_logger,
    )


class TestTreeletBuilder:
    def test_no_relevant_events(self, rng):
        history = make_history([("A", None, 0.0)], [])
        result = make_builder(rng).build_treelets(history["A"], [])
        assert result.roots == []
        assert result.coalescence_probability == 1.0
        assert result.num_attempts == 0

    def test_single_sample(self, rng):
        history = make_history([("A", None, 1.0)], [("A", 4.0)])
        host = history["A"]
        result = make_builder(rng).build_treelets(host, [(host.child_events[0], 1)])
        assert len(result.roots) == 1
        marker = result.roots[0]
        assert marker.is_infection_node
        assert marker.height == pytest.approx(3.0)
        (tip,) = marker.child_nodes()
        assert tip.is_leaf()
        assert tip.height == 0.0
        assert tip.edge.length == pytest.approx(3.0)
        assert tip.taxon.label == "A_sampled_1_4"
        assert tip.date == 4.0
        assert result.num_attempts == 0

    def test_multiplicity(self, rng, run_logger):
        history = make_history([("H", None, 0.0)], [("H", 5.0, 2)])
        host = history["H"]
        result = make_builder(rng, run_logger=run_logger).build_treelets(host, [(host.child_events[0], 2)])
        assert len(result.roots) == 1
        leaves = result.roots[0].leaf_nodes()
        assert len(leaves) == 2
        assert sorted(nd.taxon.label for nd in leaves) == ["H_sampled_1_5", "H_sampled_2_5"]
        assert leaves[0].height == leaves[1].height == 0.0
        assert leaves[0].parent_node is leaves[1].parent_node
        merge_node = leaves[0].parent_node
        assert 0.0 < merge_node.height <= 5.0
        assert merge_node.parent_node is result.roots[0]
        assert result.num_attempts >= 1

    def test_placeholders_and_samples(self, rng):
        history = make_history(
            [("A", None, 0.0), ("B", "A", 1.0), ("C", "A", 2.0)],
            [("A", 3.0)],
        )
        host = history["A"]
        infect_b, infect_c, sample = host.sorted_child_events()
        result = make_builder(rng).build_treelets(
            host, [(infect_b, 2), (infect_c, 1), (sample, 1)]
        )
        assert len(result.roots) == 1
        leaves = result.roots[0].leaf_nodes()
        assert len(leaves) == 4
        placeholders = [nd for nd in leaves if nd.is_transmission_node]
        assert len(placeholders) == 3
        assert sorted(nd.label for nd in placeholders if nd.event is infect_b) == [
            "B_infected_by_A_1_lineage_1",
            "B_infected_by_A_1_lineage_2",
        ]
        for nd in placeholders:
            assert nd.taxon is None
        heights = {nd.label: nd.height for nd in placeholders}
        assert heights["C_infected_by_A_2_lineage_1"] == pytest.approx(1.0)
        assert heights["B_infected_by_A_1_lineage_1"] == pytest.approx(2.0)
        for nd in result.roots[0].preorder_iter():
            assert nd.host_id == "A"
            assert nd.index is not None

    def test_incomplete_coalescence_gives_several_treelets(self, rng):
        history = make_history([("A", None, 0.0)], [("A", 1.0, 3)])
        host = history["A"]
        builder = make_builder(rng, N0=1e300, force_coalescence=False)
        result = builder.build_treelets(host, [(host.child_events[0], 3)])
        assert len(result.roots) == 3
        for marker in result.roots:
            assert marker.is_infection_node
            assert marker.height == pytest.approx(1.0)
            assert len(marker.child_nodes()) == 1
        assert result.coalescence_probability < 1e-6


class TestHostTimeline:
    # H is infected at time 0 and two sequences are sampled at time 5

    def build_treelets(self, rng, demographic_function):
        history = make_history([("H", None, 0.0)], [("H", 5.0, 2)])
        host = history["H"]
        builder = treelet.TreeletBuilder(
            demographic_function=demographic_function,
            rng=rng,
            force_coalescence=True,
            max_coalescence_attempts=100000,
        )
        return builder.build_treelets(host, [(host.child_events[0], 2)])

    def test_exponential_growth(self, rng):
        df = demography.ExponentialGrowth(N0=1.0, growth_rate=1.0)
        assert df.population_size(0.0) == 1.0
        result = self.build_treelets(rng, df)
        expected = 1.0 - math.exp(-(1.0 - math.exp(-5.0)))
        assert result.coalescence_probability == pytest.approx(expected)
        assert len(result.roots) == 1
        assert result.roots[0].height == pytest.approx(5.0)

    def test_logistic_growth(self, rng):
        N0, r, t50 = 0.5, 2.0, -1.0
        df = demography.LogisticGrowth(N0=N0, growth_rate=r, t50=t50)
        asymptotic_size = N0 * (1.0 + math.exp(-r * t50))

        def population_size(t):
            return asymptotic_size / (1.0 + math.exp(r * (t - t50)))

        assert df.population_size(0.0) == pytest.approx(N0)
        assert df.population_size(t50) == pytest.approx(asymptotic_size / 2.0)
        # sampling lies 5 time units after infection
        total_intensity = integrate.quad(lambda t: 1.0 / population_size(t), -5.0, 0.0)[0]
        result = self.build_treelets(rng, df)
        assert result.coalescence_probability == pytest.approx(1.0 - math.exp(-total_intensity), rel=1e-6)

    def test_constant_population_unchanged(self, rng):
        result = self.build_treelets(rng, demography.ConstantPopulation(N0=2.0))
        assert result.coalescence_probability == pytest.approx(1.0 - math.exp(-2.5))
