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

import collections

from virustree import simplify

class ReconstructionSummaryCalculator(object):

    def __init__(self, stat_name_prefix="", stat_name_delimiter="."):
        self.stat_name_prefix = stat_name_prefix
        self.stat_name_delimiter = stat_name_delimiter

    def _compose_stat_name(self, name):
        if self.stat_name_prefix:
            return "{}{}{}".format(self.stat_name_prefix, self.stat_name_delimiter, name)
        return name

    def calculate(self, detailed_tree, simple_tree):
        """
        Returns an ordered dictionary of summary statistics for a
        reconstructed tree, given in both its detailed and simplified
        forms.
        """
        results = collections.OrderedDict()
        results[self._compose_stat_name("first_case")] = detailed_tree.first_case
        results[self._compose_stat_name("num_samples")] = len(detailed_tree.leaf_nodes())
        results[self._compose_stat_name("num_hosts")] = len(set(nd.host_id for nd in detailed_tree.preorder_node_iter()))
        results[self._compose_stat_name("num_transmission_nodes")] = sum(1 for nd in detailed_tree.preorder_node_iter() if nd.is_transmission_node)
        results[self._compose_stat_name("root_height")] = detailed_tree.seed_node.height
        results[self._compose_stat_name("detailed_tree_length")] = detailed_tree.length()
        results[self._compose_stat_name("simple_tree_length")] = simple_tree.length()
        results[self._compose_stat_name("num_simple_internal_nodes")] = len(simple_tree.internal_nodes())
        results[self._compose_stat_name("max_root_to_tip_length")] = max(simplify.leaf_cumulative_lengths(simple_tree).values())
        results[self._compose_stat_name("coalescent_plausibility")] = detailed_tree.coalescent_plausibility
        results[self._compose_stat_name("coalescent_attempts")] = detailed_tree.coalescent_attempts
        return results
