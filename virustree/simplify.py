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

"""
Reduction of a detailed virus tree, with all its infection and transmission
marker nodes, to a topologically minimal tree.
"""

from virustree import model

def copy_tree(tree):
    """
    Returns a node-by-node copy of ``tree`` sharing its taxa (and taxon
    namespace). Node heights, dates, host and event associations are
    carried over as they are, not recalculated.
    """
    tree_copy = model.VirusPhylogeny(
            taxon_namespace=tree.taxon_namespace,
            first_case=tree.first_case,
            coalescent_plausibility=tree.coalescent_plausibility,
            coalescent_attempts=tree.coalescent_attempts,
            is_simplified=tree.is_simplified)
    node_map = {}
    for nd in tree.preorder_node_iter():
        if nd.parent_node is None:
            nd_copy = tree_copy.seed_node
        else:
            nd_copy = model.PathogenLineage()
            node_map[nd.parent_node].add_child(nd_copy)
        nd_copy.taxon = nd.taxon
        nd_copy.label = nd.label
        nd_copy.edge.length = nd.edge.length
        nd_copy.index = nd.index
        nd_copy.height = nd.height
        nd_copy.date = nd.date
        nd_copy.host_id = nd.host_id
        nd_copy.event = nd.event
        node_map[nd] = nd_copy
    return tree_copy

def simplify_tree(tree):
    """
    Returns a copy of ``tree`` in which every node with a single child has
    been removed, its edge length absorbed into that of its child. If the
    seed node has a single child, the child becomes the seed node. The
    source tree is not modified.
    """
    simple_tree = copy_tree(tree)
    simple_tree.suppress_unifurcations()
    simple_tree.is_simplified = True
    return simple_tree

def leaf_cumulative_lengths(tree):
    """
    Maps each leaf taxon label of ``tree`` to the sum of edge lengths from
    the leaf up to, and including, the edge subtending the seed node.
    """
    lengths = {}
    for leaf in tree.leaf_node_iter():
        total = 0.0
        nd = leaf
        while nd is not None:
            if nd.edge.length is not None:
                total += nd.edge.length
            nd = nd.parent_node
        lengths[leaf.taxon.label if leaf.taxon is not None else leaf.label] = total
    return lengths
