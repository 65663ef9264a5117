#! /usr/bin/env python
# -*- coding: utf-8 -*-

##############################################################################
##
##  Copyright 2015 Jeet Sukumaran and Mark T. Holder.
##  All rights reserved.
##
##  See "LICENSE.txt" for terms and conditions of usage.
##
##############################################################################

import sys
import os
import random
import collections

import dendropy

import virustree
from virustree import error
from virustree import ladder
from virustree import model
from virustree import records
from virustree import simplify
from virustree import summarize
from virustree import treelet
from virustree import utility

SubtreeResult = collections.namedtuple("SubtreeResult", [
    "roots",                    #   infection marker nodes of the host, grafted with all descendant subtrees
    "coalescence_probability",  #   product over this host and all hosts below it
    "num_attempts",             #   coalescent simulations run, summed over this host and all hosts below it
    ])

ReconstructedTree = collections.namedtuple("ReconstructedTree", [
    "first_case",
    "detailed_tree",
    "simple_tree",
    ])

class VirusTreeReconstructor(object):

    DEFAULT_SUMMARY_STATS_DELIMITER = ","
    TREE_SCHEMA_EXTENSIONS = {
            "nexus": "nex",
            "newick": "tre",
            }

    @staticmethod
    def compose_trees_filepath(output_prefix, first_case, tree_type, tree_schema="nexus"):
        return "{}{}_{}.{}".format(
                output_prefix,
                first_case,
                tree_type,
                VirusTreeReconstructor.TREE_SCHEMA_EXTENSIONS[tree_schema])

    @staticmethod
    def compose_summary_stats_filepath(output_prefix):
        return output_prefix + "summary-stats.csv"

    @staticmethod
    def open_summary_stats_file(output_prefix):
        summary_stats_file = open(VirusTreeReconstructor.compose_summary_stats_filepath(output_prefix), "w")
        return summary_stats_file

    @staticmethod
    def compose_model_description_filepath(output_prefix):
        return output_prefix + "model.log.json"

    def __init__(self,
            virustree_model,
            history,
            config_d,
            is_verbose_setup=True,
            summary_stats_calculator=None):

        # need to be here for logging
        self.current_introduction = None

        # configure
        config_d = dict(config_d) # make copy so we can pop items
        self.configure(config_d, verbose=is_verbose_setup)
        if summary_stats_calculator is None:
            self.summary_stats_calculator = summarize.ReconstructionSummaryCalculator()
        else:
            self.summary_stats_calculator = summary_stats_calculator

        # set up model
        self.model = virustree_model
        self.history = history

        # within-host genealogies
        self.lineage_indexer = utility.IndexGenerator(0)
        self.treelet_builder = treelet.TreeletBuilder(
                demographic_function=self.model.demographic_function,
                rng=self.rng,
                force_coalescence=self.model.force_coalescence,
                max_coalescence_attempts=self.model.max_coalescence_attempts,
                lineage_indexer=self.lineage_indexer,
                run_logger=self.run_logger)

        self.reconstructed_trees = []

        # begin logging
        self.run_logger.system = self

    def configure(self, config_d, verbose=True):

        self.name = config_d.pop("name", None)
        if self.name is None:
            self.name = str(id(self))
        self.output_prefix = config_d.pop("output_prefix", "")

        self.run_logger = config_d.pop("run_logger", None)
        if self.run_logger is None:
            self.run_logger = utility.RunLogger(
                    name="virustree",
                    stderr_logging_level=config_d.pop("standard_error_logging_level", "info"),
                    log_to_file=config_d.pop("log_to_file", True),
                    log_path=self.output_prefix + "virustree.log",
                    file_logging_level=config_d.pop("file_logging_level", "info"),
                    )
        self.run_logger.system = self

        if verbose:
            self.run_logger.info("Configuring reconstruction '{}'".format(self.name))

        self.is_ladder_mode = config_d.pop("ladder_mode", False)
        if verbose and self.is_ladder_mode:
            self.run_logger.info("Transmission trees will be rendered as ladders: no within-host coalescent simulation")

        self.tree_schema = config_d.pop("tree_schema", "nexus")
        if self.tree_schema not in VirusTreeReconstructor.TREE_SCHEMA_EXTENSIONS:
            raise ValueError("Unsupported tree schema: '{}'".format(self.tree_schema))
        self.is_store_detailed_trees = config_d.pop("store_detailed_trees", True)
        self.is_store_simple_trees = config_d.pop("store_simple_trees", True)
        if verbose:
            if not self.is_store_detailed_trees and not self.is_store_simple_trees:
                self.run_logger.warning("No trees will be stored!")
            else:
                self.run_logger.info("Trees will be written in {} format to: {}".format(
                    self.tree_schema,
                    VirusTreeReconstructor.compose_trees_filepath(self.output_prefix, "<first-case>", "<detailed|simple>", self.tree_schema)))

        self.is_process_summary_stats = config_d.pop("store_summary_stats", True)
        if self.is_process_summary_stats:
            self.summary_stats_file = config_d.pop("summary_stats_file", None)
            if self.summary_stats_file is None:
                self.summary_stats_file = VirusTreeReconstructor.open_summary_stats_file(self.output_prefix)
                self.is_summary_stats_header_written = False
                config_d.pop("is_summary_stats_header_written", None)
            else:
                self.is_summary_stats_header_written = config_d.pop("is_summary_stats_header_written", False)
            if verbose:
                self.run_logger.info("Summary statistics filepath: {}".format(self.summary_stats_file.name))
        else:
            self.summary_stats_file = None
            self.is_summary_stats_header_written = False
            config_d.pop("summary_stats_file", None)
            config_d.pop("is_summary_stats_header_written", None)

        self.rng = config_d.pop("rng", None)
        if self.rng is None:
            self.random_seed = config_d.pop("random_seed", None)
            if self.random_seed is None:
                self.random_seed = random.randint(0, sys.maxsize)
            if verbose:
                self.run_logger.info("Initializing with random seed {}".format(self.random_seed))
            self.rng = random.Random(self.random_seed)
        else:
            if "random_seed" in config_d:
                raise TypeError("Cannot specify both 'rng' and 'random_seed'")
            if verbose:
                self.run_logger.info("Using existing random number generator")

        self.debug_mode = config_d.pop("debug_mode", False)
        if verbose and self.debug_mode:
            self.run_logger.info("Running in DEBUG mode")

        if config_d.pop("store_model_description", True):
            self.model_description_file = config_d.pop("model_description_file", None)
            if self.model_description_file is None:
                self.model_description_file = open(VirusTreeReconstructor.compose_model_description_filepath(self.output_prefix), "w")
            if verbose:
                self.run_logger.info("Model description filepath: {}".format(self.model_description_file.name))
        else:
            self.model_description_file = None
            config_d.pop("model_description_file", None)
            if verbose:
                self.run_logger.info("Model description will not be stored")

        if config_d:
            raise TypeError("Unsupported configuration keywords: {}".format(config_d))

    def run(self):
        if self.model_description_file is not None:
            self.model.write_model(self.model_description_file)
            self.model_description_file.flush()
        if self.is_ladder_mode:
            self.build_ladder_trees()
        else:
            self.reconstruct()
        self.write_trees()
        if self.is_process_summary_stats:
            self.store_summary_stats()
        self.run_logger.info("{} tree(s) reconstructed".format(len(self.reconstructed_trees)))
        return self.reconstructed_trees

    def reconstruct(self):
        """
        Reconstructs the pathogen phylogeny descending from each
        introduction that has at least one recorded event, in input order.

        Returns
        -------
        t : list of `ReconstructedTree`
            The detailed and simplified form of each tree. Introductions in
            which lineages did not all coalesce yield more than one tree.
        """
        self.reconstructed_trees = []
        for introduction in self.history.introductions():
            if not introduction.child_events:
                continue
            self.current_introduction = introduction
            self.run_logger.info("Reconstructing pathogen phylogeny descending from case {}".format(introduction.host_id))
            taxon_namespace = dendropy.TaxonNamespace()
            self.treelet_builder.taxon_namespace = taxon_namespace
            subtree_result = self.assemble_subtree(introduction)
            if not subtree_result.roots:
                self.run_logger.info("Case {} has no sampled descendants: no tree produced".format(introduction.host_id))
                continue
            if (self.model.force_coalescence
                    and subtree_result.coalescence_probability < self.model.plausibility_threshold):
                self.run_logger.warning("Forcing coalescence in an implausible situation: probability of coalescence in all hosts is {}".format(
                    subtree_result.coalescence_probability))
            if len(subtree_result.roots) > 1:
                self.run_logger.info("Lineages did not all coalesce within case {}: {} trees produced".format(
                    introduction.host_id, len(subtree_result.roots)))
            for root in subtree_result.roots:
                detailed_tree = model.VirusPhylogeny(
                        seed_node=root,
                        taxon_namespace=taxon_namespace,
                        first_case=introduction.host_id,
                        coalescent_plausibility=subtree_result.coalescence_probability,
                        coalescent_attempts=subtree_result.num_attempts)
                detailed_tree.calc_node_heights()
                detailed_tree.calc_internal_node_dates()
                if self.debug_mode:
                    self._debug_check_tree(detailed_tree)
                simple_tree = simplify.simplify_tree(detailed_tree)
                self.reconstructed_trees.append(ReconstructedTree(
                    first_case=introduction.host_id,
                    detailed_tree=detailed_tree,
                    simple_tree=simple_tree))
        self.current_introduction = None
        return self.reconstructed_trees

    def build_ladder_trees(self):
        self.reconstructed_trees = []
        builder = ladder.LadderTreeBuilder(
                history=self.history,
                lineage_indexer=self.lineage_indexer,
                run_logger=self.run_logger)
        for detailed_tree in builder.build_trees():
            simple_tree = simplify.simplify_tree(detailed_tree)
            self.reconstructed_trees.append(ReconstructedTree(
                first_case=detailed_tree.first_case,
                detailed_tree=detailed_tree,
                simple_tree=simple_tree))
        return self.reconstructed_trees

    def assemble_subtree(self, host):
        """
        Builds the genealogy of all sampled lineages descending from the
        infection of ``host``, working upward from the hosts it infected
        (directly or indirectly) that have no onward transmissions.

        Returns
        -------
        r : `SubtreeResult`
            Roots of the assembled genealogy (the infection marker nodes of
            ``host``), empty if no sampled lineages descend from ``host``.
        """
        results = {}
        for current_host in self.history.postorder_host_iter(host):
            relevant_events = []
            child_subtrees = []
            probability = 1.0
            num_attempts = 0
            for event in current_host.sorted_child_events():
                if event.event_type == "infection":
                    child_result = results.pop(event.infectee.host_id)
                    probability *= child_result.coalescence_probability
                    num_attempts += child_result.num_attempts
                    if child_result.roots:
                        relevant_events.append( (event, len(child_result.roots)) )
                        child_subtrees.append( (event, child_result.roots) )
                else:
                    relevant_events.append( (event, event.count) )
            treelet_result = self.treelet_builder.build_treelets(current_host, relevant_events)
            probability *= treelet_result.coalescence_probability
            num_attempts += treelet_result.num_attempts
            if treelet_result.roots:
                self.graft_child_subtrees(
                        host=current_host,
                        treelet_roots=treelet_result.roots,
                        child_subtrees=child_subtrees)
            results[current_host.host_id] = SubtreeResult(
                    roots=treelet_result.roots,
                    coalescence_probability=probability,
                    num_attempts=num_attempts)
        return results[host.host_id]

    def graft_child_subtrees(self, host, treelet_roots, child_subtrees):
        placeholders = collections.defaultdict(list)
        for treelet_root in treelet_roots:
            for nd in treelet_root.leaf_iter():
                if nd.is_transmission_node:
                    placeholders[nd.event].append(nd)
        for event, child_roots in child_subtrees:
            placeholder_tips = placeholders.get(event, [])
            if len(placeholder_tips) != len(child_roots):
                raise error.AssemblyConsistencyError("Case {}: expecting {} lineage(s) transmitted to case {} but found {}".format(
                    host.host_id,
                    len(child_roots),
                    event.infectee.host_id,
                    len(placeholder_tips)))
            for placeholder_tip, child_root in zip(placeholder_tips, child_roots):
                child_nodes = child_root.child_nodes()
                if len(child_nodes) != 1:
                    raise error.AssemblyConsistencyError("Case {}: infection node has {} children".format(
                        event.infectee.host_id, len(child_nodes)))
                # the infection node of the child subtree is replaced by the placeholder
                child_root.remove_child(child_nodes[0])
                placeholder_tip.add_child(child_nodes[0])
            if self.debug_mode:
                self.run_logger.debug("Case {}: grafted {} lineage(s) of case {}".format(
                    host.host_id, len(child_roots), event.infectee.host_id))

    def write_trees(self):
        trees_by_first_case = collections.OrderedDict()
        for reconstructed_tree in self.reconstructed_trees:
            trees_by_first_case.setdefault(reconstructed_tree.first_case, []).append(reconstructed_tree)
        for first_case in trees_by_first_case:
            if self.is_store_detailed_trees:
                self.write_tree_list(
                        trees=[rt.detailed_tree for rt in trees_by_first_case[first_case]],
                        filepath=VirusTreeReconstructor.compose_trees_filepath(self.output_prefix, first_case, "detailed", self.tree_schema))
            if self.is_store_simple_trees:
                self.write_tree_list(
                        trees=[rt.simple_tree for rt in trees_by_first_case[first_case]],
                        filepath=VirusTreeReconstructor.compose_trees_filepath(self.output_prefix, first_case, "simple", self.tree_schema))

    def write_tree_list(self, trees, filepath):
        tree_list = dendropy.TreeList(taxon_namespace=trees[0].taxon_namespace)
        for tree in trees:
            tree.annotate_nodes()
            tree_list.append(tree)
        tree_list.write(
                path=filepath,
                schema=self.tree_schema,
                suppress_annotations=False,
                suppress_internal_node_labels=False,
                )
        self.run_logger.info("{} tree(s) written to: {}".format(len(trees), filepath))

    def store_summary_stats(self):
        for reconstructed_tree in self.reconstructed_trees:
            ss = self.summary_stats_calculator.calculate(
                    detailed_tree=reconstructed_tree.detailed_tree,
                    simple_tree=reconstructed_tree.simple_tree)
            if not self.is_summary_stats_header_written:
                header = ["model.id", "name"] + list(ss.keys())
                self.summary_stats_file.write(VirusTreeReconstructor.DEFAULT_SUMMARY_STATS_DELIMITER.join(header))
                self.summary_stats_file.write("\n")
                self.is_summary_stats_header_written = True
            self.summary_stats_file.write("{}{}{}{}".format(
                self.model.model_id,
                VirusTreeReconstructor.DEFAULT_SUMMARY_STATS_DELIMITER,
                self.name,
                VirusTreeReconstructor.DEFAULT_SUMMARY_STATS_DELIMITER))
            self.summary_stats_file.write(VirusTreeReconstructor.DEFAULT_SUMMARY_STATS_DELIMITER.join("{}".format(ss[k]) for k in ss))
            self.summary_stats_file.write("\n")
        self.summary_stats_file.flush()

    def _debug_check_tree(self, tree):
        for nd in tree.preorder_node_iter():
            assert nd.host_id is not None, "Node {} has no host".format(nd.index)
            if nd.parent_node is not None:
                assert nd.edge.length is not None and nd.edge.length >= 0, "Node {}: invalid edge length {}".format(nd.index, nd.edge.length)
            if nd.is_leaf():
                assert nd.taxon is not None, "Tip {} is not a sample".format(nd.label)
        self.run_logger.debug("Tree for case {}: {} sampled tips, root height {}".format(
            tree.first_case, len(tree.leaf_nodes()), tree.seed_node.height))

def run_reconstruction(
        output_prefix,
        transmissions_path,
        samplings_path,
        model_definition_source,
        model_definition_type="python-dict",
        nreps=1,
        config_d=None,
        random_seed=None,
        stderr_logging_level="info",
        file_logging_level="debug",
        maximum_num_restarts_per_replicate=0,
        ladder_mode=False,
        debug_mode=False):
    """
    Executes multiple independent reconstructions of the pathogen phylogeny
    over the same transmission history.

    Parameters
    ----------
    output_prefix : str
        Prefix for all output file paths; if there is more than one
        replicate, each replicate's trees are prefixed with 'R<rep>_' in
        addition.
    transmissions_path : str
        Path to the transmission records.
    samplings_path : str
        Path to the sampling records.
    model_definition_source : object
        See 'model_definition_type' argument for values this can take.
    model_definition_type : str
        Whether 'model_definition_source' is:

            - 'python-dict' : a Python dictionary defining the model.
            - 'python-dict-str' : a string providing a Python dictionary
                defining the model.
            - 'python-dict-filepath' : a path to a Python file to be evaluated;
                the file should be a valid Python script containing nothing but a
                dictionary defining the model.
            - 'json-filepath': a path to a JSON file containing a dictionary
                defining the model.

    nreps : integer
        Number of replicates to produce.
    config_d : dict
        Reconstructor configuration parameters as keyword-value pairs. To be
        re-used for each replicate.
    random_seed : integer
        Random seed to be used (for single random number generator across all
        replicates).
    stderr_logging_level : string or None
        Message level threshold for screen logs; if 'none' or `None`, screen
        logs will be suppressed.
    file_logging_level : string or None
        Message level threshold for file logs; if 'none' or `None`, file
        logs will be suppressed.
    maximum_num_restarts_per_replicate : int
        A replicate in which forced coalescence exhausted its attempts will
        be re-run at most this many times before the failure is raised.
    ladder_mode : bool
        If `True`, render the transmission history as ladder trees instead
        of simulating within-host genealogies.

    Returns
    -------
    t : list of lists of `ReconstructedTree`
        The trees of each replicate.
    """
    if config_d is None:
        config_d = {}
    else:
        config_d = dict(config_d)
    if output_prefix is None:
        output_prefix = config_d.pop("output_prefix", "")
    if stderr_logging_level is None or stderr_logging_level.lower() == "none":
        log_to_stderr = False
    else:
        log_to_stderr = True
    if file_logging_level is None or file_logging_level.lower() == "none":
        log_to_file = False
    else:
        log_to_file = True
    if "run_logger" not in config_d:
        config_d["run_logger"] = utility.RunLogger(
                name="virustree",
                log_to_stderr=log_to_stderr,
                stderr_logging_level=stderr_logging_level,
                log_to_file=log_to_file,
                log_path=output_prefix + "virustree.log",
                file_logging_level=file_logging_level,
                )
    config_d["debug_mode"] = debug_mode
    config_d["ladder_mode"] = ladder_mode
    run_logger = config_d["run_logger"]
    run_logger.info("-virustree- Starting: {}".format(virustree.description()))
    if "rng" not in config_d:
        if random_seed is None:
            random_seed = config_d.pop("random_seed", None)
            if random_seed is None:
                random_seed = random.randint(0, sys.maxsize)
        else:
            random_seed = int(random_seed)
        run_logger.info("-virustree- Initializing with random seed: {}".format(random_seed))
        config_d["rng"] = random.Random(random_seed)
    else:
        run_logger.info("-virustree- Using existing RNG: {}".format(config_d["rng"]))
    opened_files = []
    if config_d.get("store_summary_stats", True) and "summary_stats_file" not in config_d:
        config_d["summary_stats_file"] = VirusTreeReconstructor.open_summary_stats_file(output_prefix)
        opened_files.append(config_d["summary_stats_file"])
    if config_d.get("store_model_description", True) and "model_description_file" not in config_d:
        config_d["model_description_file"] = open(VirusTreeReconstructor.compose_model_description_filepath(output_prefix), "w")
        opened_files.append(config_d["model_description_file"])

    try:
        transmissions_path = os.path.normpath(transmissions_path)
        samplings_path = os.path.normpath(samplings_path)
        run_logger.info("-virustree- Reading transmissions from: {}".format(transmissions_path))
        run_logger.info("-virustree- Reading samplings from: {}".format(samplings_path))
        history = records.read_transmission_history(
                transmissions_src=transmissions_path,
                samplings_src=samplings_path)
        run_logger.info("-virustree- {} cases found, of which {} introduction(s)".format(
            len(history), len(history.introductions())))

        replicates = []
        config_d["is_summary_stats_header_written"] = False
        current_rep = 0
        while current_rep < nreps:
            if nreps > 1:
                config_d["output_prefix"] = "{}R{}_".format(output_prefix, current_rep+1)
            else:
                config_d["output_prefix"] = output_prefix
            config_d["name"] = "Run_{}".format(current_rep+1)
            run_logger.info("-virustree- Replicate {} of {}: Starting".format(current_rep+1, nreps))
            num_restarts = 0
            while True:
                if num_restarts == 0 and current_rep == 0:
                    is_verbose_setup = True
                    model_setup_logger = run_logger
                else:
                    is_verbose_setup = False
                    model_setup_logger = None
                virustree_model = model.VirusTreeModel.create(
                        model_definition_source=model_definition_source,
                        model_definition_type=model_definition_type,
                        run_logger=model_setup_logger,
                        )
                reconstructor = VirusTreeReconstructor(
                        virustree_model=virustree_model,
                        history=history,
                        config_d=config_d,
                        is_verbose_setup=is_verbose_setup,
                        )
                if current_rep > 0 or num_restarts > 0:
                    # model description is written once
                    reconstructor.model_description_file = None
                try:
                    reconstructed_trees = reconstructor.run()
                    config_d["is_summary_stats_header_written"] = reconstructor.is_summary_stats_header_written
                    run_logger.system = None
                except error.CoalescenceAttemptsExhaustedError as e:
                    run_logger.system = None
                    run_logger.info("-virustree- Replicate {} of {}: Reconstruction failure: {}".format(current_rep+1, nreps, e))
                    num_restarts += 1
                    if num_restarts > maximum_num_restarts_per_replicate:
                        run_logger.error("-virustree- Replicate {} of {}: Maximum number of restarts exceeded: aborting".format(current_rep+1, nreps))
                        raise
                    run_logger.info("-virustree- Replicate {} of {}: Restarting replicate (number of restarts: {})".format(current_rep+1, nreps, num_restarts))
                else:
                    run_logger.info("-virustree- Replicate {} of {}: Completed".format(current_rep+1, nreps))
                    replicates.append(reconstructed_trees)
                    break
            current_rep += 1
    finally:
        for output_file in opened_files:
            output_file.close()
    return replicates
