import math
import os
import random

import dendropy
import pytest

from conftest import make_history, quiet_config
from virustree import error
from virustree import model
from virustree import reconstruct
from virustree import simplify
from virustree import utility


def make_reconstructor(virustree_model, history, run_logger, **kwargs):
    config_d = quiet_config(run_logger=run_logger, rng=random.Random(42), **kwargs)
    return reconstruct.VirusTreeReconstructor(
        virustree_model=virustree_model,
        history=history,
        config_d=config_d,
        is_verbose_setup=False,
    )


def leaf_labels(tree):
    return sorted(nd.taxon.label for nd in tree.leaf_node_iter())


class TestAssembly:
    def test_chain(self, chain_history, fast_model, run_logger):
        reconstructor = make_reconstructor(fast_model, chain_history, run_logger)
        results = reconstructor.reconstruct()
        assert len(results) == 1
        tree = results[0].detailed_tree
        assert tree.first_case == "A"
        assert leaf_labels(tree) == ["C_sampled_1_3"]
        transmission_nodes = [nd for nd in tree.preorder_node_iter() if nd.is_transmission_node]
        assert sorted(nd.event.infectee.host_id for nd in transmission_nodes) == ["B", "C"]
        assert tree.seed_node.is_infection_node
        assert tree.seed_node.host_id == "A"
        assert tree.seed_node.height == pytest.approx(3.0)
        assert tree.seed_node.date == pytest.approx(0.0)
        simple_tree = results[0].simple_tree
        assert len(simple_tree.nodes()) == 1
        assert simplify.leaf_cumulative_lengths(simple_tree)["C_sampled_1_3"] == pytest.approx(3.0)

    def test_x_scenario(self, x_history, fast_model, run_logger):
        reconstructor = make_reconstructor(fast_model, x_history, run_logger)
        results = reconstructor.reconstruct()
        assert len(results) == 1
        tree = results[0].detailed_tree
        assert tree.first_case == "X0"
        assert leaf_labels(tree) == ["X1_sampled_1_2", "X3_sampled_1_5"]
        # X2 is never sampled, but its transmission to X3 is still a graft point
        graft_points = [
            nd for nd in tree.preorder_node_iter()
            if nd.is_transmission_node and nd.event.infectee.host_id == "X3"
        ]
        assert len(graft_points) == 1
        assert graft_points[0].host_id == "X2"
        assert len(graft_points[0].child_nodes()) == 1
        (x3_sample,) = graft_points[0].child_nodes()
        assert x3_sample.host_id == "X3"
        assert x3_sample.edge.length == pytest.approx(2.0)
        assert tree.seed_node.height == pytest.approx(6.0)
        for leaf in tree.leaf_node_iter():
            assert leaf.height == pytest.approx(5.0 - leaf.date)
        simple_tree = results[0].simple_tree
        assert len(simple_tree.leaf_nodes()) == 2
        assert len(simple_tree.internal_nodes()) == 1
        for nd in simple_tree.preorder_node_iter():
            assert len(nd.child_nodes()) != 1
        lengths = simplify.leaf_cumulative_lengths(simple_tree)
        assert lengths["X1_sampled_1_2"] == pytest.approx(3.0)
        assert lengths["X3_sampled_1_5"] == pytest.approx(6.0)

    def test_subtree_result(self, x_history, fast_model, run_logger):
        reconstructor = make_reconstructor(fast_model, x_history, run_logger)
        result = reconstructor.assemble_subtree(x_history["X2"])
        assert len(result.roots) == 1
        assert result.roots[0].is_infection_node
        assert result.roots[0].host_id == "X2"
        assert 0.0 <= result.coalescence_probability <= 1.0
        unsampled = make_history([("A", None, 0.0), ("B", "A", 1.0)], [])
        reconstructor = make_reconstructor(fast_model, unsampled, run_logger)
        result = reconstructor.assemble_subtree(unsampled["A"])
        assert result.roots == []

    def test_multiple_introductions(self, fast_model, run_logger):
        history = make_history(
            [("A", None, 0.0), ("B", "A", 1.5), ("C", None, 2.0), ("D", "C", 3.0), ("E", None, 0.0)],
            [("B", 4.0), ("B", 4.5), ("A", 3.0), ("D", 6.0)],
        )
        reconstructor = make_reconstructor(fast_model, history, run_logger)
        results = reconstructor.reconstruct()
        assert [r.first_case for r in results] == ["A", "C"]
        assert leaf_labels(results[0].detailed_tree) == ["A_sampled_1_3", "B_sampled_1_4", "B_sampled_1_4.5"]
        assert leaf_labels(results[1].detailed_tree) == ["D_sampled_1_6"]
        # each introduction has its own taxa
        assert len(results[0].detailed_tree.taxon_namespace) == 3
        assert len(results[1].detailed_tree.taxon_namespace) == 1

    def test_introduction_without_sampled_descendants(self, fast_model, run_logger):
        history = make_history(
            [("A", None, 0.0), ("B", "A", 1.0), ("C", None, 0.0)],
            [("C", 1.0)],
        )
        reconstructor = make_reconstructor(fast_model, history, run_logger)
        results = reconstructor.reconstruct()
        assert [r.first_case for r in results] == ["C"]

    def test_incomplete_coalescence_at_introduction(self, run_logger):
        virustree_model = model.VirusTreeModel.create(
            {"demography": {"model": "constant", "N0": 1e300}},
            "python-dict",
        )
        history = make_history(
            [("A", None, 0.0), ("B", "A", 1.0)],
            [("A", 2.0), ("B", 3.0)],
        )
        reconstructor = make_reconstructor(virustree_model, history, run_logger)
        results = reconstructor.reconstruct()
        assert len(results) == 2
        assert all(r.first_case == "A" for r in results)
        labels = sorted(label for r in results for label in leaf_labels(r.detailed_tree))
        assert labels == ["A_sampled_1_2", "B_sampled_1_3"]

    def test_forced_coalescence_exhausted(self, run_logger):
        virustree_model = model.VirusTreeModel.create(
            {
                "demography": {"model": "constant", "N0": 1e300},
                "coalescence": {"force_coalescence": True, "max_attempts": 5},
            },
            "python-dict",
        )
        history = make_history([("A", None, 0.0)], [("A", 1.0, 2)])
        reconstructor = make_reconstructor(virustree_model, history, run_logger)
        with pytest.raises(error.CoalescenceAttemptsExhaustedError):
            reconstructor.reconstruct()

    def test_plausibility_threaded(self, run_logger):
        virustree_model = model.VirusTreeModel.create(
            {
                "demography": {"model": "constant", "N0": 1.0},
                "coalescence": {"force_coalescence": True, "max_attempts": 100000},
            },
            "python-dict",
        )
        history = make_history(
            [("A", None, 0.0), ("B", "A", 1.0)],
            [("A", 1.5), ("B", 2.0, 2)],
        )
        reconstructor = make_reconstructor(virustree_model, history, run_logger)
        (result,) = reconstructor.reconstruct()
        # A: tips at heights 0.5 and 0, infection at 1.5; B: two tips at 0, infection at 1
        expected = (1.0 - math.exp(-1.0)) ** 2
        assert result.detailed_tree.coalescent_plausibility == pytest.approx(expected)
        assert result.detailed_tree.coalescent_attempts >= 2

    def test_placeholder_mismatch(self, fast_model, run_logger, x_history):
        reconstructor = make_reconstructor(fast_model, x_history, run_logger)
        host = x_history["X0"]
        infection = x_history["X1"].infection_event
        treelet_root = model.PathogenLineage(host_id="X0", event=host.infection_event)
        treelet_root.add_child(model.PathogenLineage(host_id="X0", event=infection))
        child_roots = [model.PathogenLineage(), model.PathogenLineage()]
        with pytest.raises(error.AssemblyConsistencyError):
            reconstructor.graft_child_subtrees(host, [treelet_root], [(infection, child_roots)])

    def test_debug_mode(self, x_history, fast_model, run_logger):
        reconstructor = make_reconstructor(fast_model, x_history, run_logger, debug_mode=True)
        assert len(reconstructor.reconstruct()) == 1

    def test_unsupported_configuration(self, x_history, fast_model, run_logger):
        with pytest.raises(TypeError):
            make_reconstructor(fast_model, x_history, run_logger, colour="blue")


class TestLadderMode:
    def test_ladder_trees(self, x_history, fast_model, run_logger):
        reconstructor = make_reconstructor(fast_model, x_history, run_logger, ladder_mode=True)
        results = reconstructor.build_ladder_trees()
        assert len(results) == 1
        assert results[0].detailed_tree.first_case == "X0"


class TestOutput:
    def test_run_writes_files(self, x_history, fast_model, run_logger, tmp_path):
        prefix = str(tmp_path) + os.sep + "run_"
        config_d = {
            "run_logger": run_logger,
            "rng": random.Random(1),
            "output_prefix": prefix,
        }
        reconstructor = reconstruct.VirusTreeReconstructor(
            virustree_model=fast_model,
            history=x_history,
            config_d=config_d,
        )
        reconstructor.run()
        reconstructor.summary_stats_file.close()
        reconstructor.model_description_file.close()
        detailed_path = prefix + "X0_detailed.nex"
        simple_path = prefix + "X0_simple.nex"
        assert os.path.exists(detailed_path)
        assert os.path.exists(simple_path)
        trees = dendropy.TreeList.get(path=simple_path, schema="nexus")
        assert len(trees) == 1
        assert sorted(t.label for t in trees.taxon_namespace) == ["X1_sampled_1_2", "X3_sampled_1_5"]
        with open(prefix + "summary-stats.csv") as src:
            rows = src.read().strip().split("\n")
        assert len(rows) == 2
        assert rows[0].startswith("model.id,name,first_case")
        assert rows[1].startswith("fast,")
        assert os.path.exists(prefix + "model.log.json")

    def test_newick(self, x_history, fast_model, run_logger, tmp_path):
        prefix = str(tmp_path) + os.sep
        reconstructor = make_reconstructor(
            fast_model,
            x_history,
            run_logger,
            output_prefix=prefix,
            tree_schema="newick",
            store_detailed_trees=True,
        )
        reconstructor.run()
        assert os.path.exists(prefix + "X0_detailed.tre")
        assert not os.path.exists(prefix + "X0_simple.tre")
        tree = dendropy.Tree.get(path=prefix + "X0_detailed.tre", schema="newick")
        assert len(tree.leaf_nodes()) == 2

    def test_invalid_schema(self, x_history, fast_model, run_logger):
        with pytest.raises(ValueError):
            make_reconstructor(fast_model, x_history, run_logger, tree_schema="phyloxml")

    def test_run_reconstruction(self, tmp_path):
        prefix = str(tmp_path) + os.sep
        replicates = reconstruct.run_reconstruction(
            output_prefix=prefix,
            transmissions_path=os.path.join(utility.TEST_DATA_PATH, "x-infections.csv"),
            samplings_path=os.path.join(utility.TEST_DATA_PATH, "x-samples.csv"),
            model_definition_source={
                "model_id": "m",
                "demography": {"model": "exponential", "N0": 0.05, "growth_rate": 0.1},
                "coalescence": {"force_coalescence": True, "max_attempts": 1000},
            },
            nreps=2,
            random_seed=3,
            stderr_logging_level="none",
            file_logging_level="none",
        )
        assert len(replicates) == 2
        for rep_idx in range(2):
            assert os.path.exists(prefix + "R{}_X0_detailed.nex".format(rep_idx + 1))
            assert os.path.exists(prefix + "R{}_X0_simple.nex".format(rep_idx + 1))
        with open(prefix + "summary-stats.csv") as src:
            rows = src.read().strip().split("\n")
        assert len(rows) == 3

    def test_run_reconstruction_closes_files_on_failure(self, tmp_path, monkeypatch):
        opened = []

        def recording_open(*args, **kwargs):
            output_file = open(*args, **kwargs)
            opened.append(output_file)
            return output_file

        monkeypatch.setattr(reconstruct, "open", recording_open, raising=False)
        with pytest.raises(error.CoalescenceAttemptsExhaustedError):
            reconstruct.run_reconstruction(
                output_prefix=str(tmp_path) + os.sep,
                transmissions_path=os.path.join(utility.TEST_DATA_PATH, "x-infections.csv"),
                samplings_path=os.path.join(utility.TEST_DATA_PATH, "x-samples.csv"),
                model_definition_source={
                    "demography": {"model": "constant", "N0": 1e300},
                    "coalescence": {"force_coalescence": True, "max_attempts": 2},
                },
                random_seed=3,
                stderr_logging_level="none",
                file_logging_level="none",
                maximum_num_restarts_per_replicate=1,
            )
        assert len(opened) == 2
        assert all(output_file.closed for output_file in opened)
