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
Deterministic rendering of a transmission history as a tree, without any
within-host coalescent simulation: each host contributes a "ladder" of its
events, in chronological order, hanging from the node of its infection.
"""

import dendropy

from virustree import model
from virustree import utility

class LadderTreeBuilder(object):

    @staticmethod
    def compose_sample_label(host, sample_event):
        return "{}_sampled_{}".format(host.host_id, utility.format_time(sample_event.time))

    @staticmethod
    def compose_infection_label(infection_event):
        if infection_event.infector is None:
            return "{}_introduced_{}".format(
                    infection_event.infectee.host_id,
                    utility.format_time(infection_event.time))
        return "{}_infected_by_{}_{}".format(
                infection_event.infectee.host_id,
                infection_event.infector.host_id,
                utility.format_time(infection_event.time))

    def __init__(self, history, lineage_indexer=None, run_logger=None):
        self.history = history
        if lineage_indexer is None:
            self.lineage_indexer = utility.IndexGenerator(0)
        else:
            self.lineage_indexer = lineage_indexer
        self.run_logger = run_logger

    def build_trees(self):
        """
        Returns a list of |VirusPhylogeny| objects, one per introduction
        with at least one recorded event following it, in input order.
        """
        latest_event_time = self.history.latest_event_time()
        trees = []
        for introduction in self.history.introductions():
            if not introduction.child_events:
                if self.run_logger is not None:
                    self.run_logger.info("Case {} has no recorded events: no tree produced".format(introduction.host_id))
                continue
            trees.append(self.build_tree(introduction, latest_event_time))
        return trees

    def build_tree(self, introduction, latest_event_time=None):
        if latest_event_time is None:
            latest_event_time = self.history.latest_event_time()
        taxon_namespace = dendropy.TaxonNamespace()
        root = self._new_node(
                event=introduction.infection_event,
                host=introduction,
                latest_event_time=latest_event_time)
        tree = model.VirusPhylogeny(
                seed_node=root,
                taxon_namespace=taxon_namespace,
                first_case=introduction.host_id)
        infection_nodes = {introduction.host_id: root}
        stack = [introduction]
        while stack:
            host = stack.pop()
            last_node = infection_nodes.pop(host.host_id)
            for event in host.sorted_child_events():
                nd = self._new_node(
                        event=event,
                        host=host,
                        latest_event_time=latest_event_time)
                last_node.add_child(nd)
                nd.edge.length = last_node.height - nd.height
                if event.event_type == "sample":
                    nd.taxon = taxon_namespace.new_taxon(label=LadderTreeBuilder.compose_sample_label(host, event))
                else:
                    infection_nodes[event.infectee.host_id] = nd
                    stack.append(event.infectee)
                last_node = nd
        if self.run_logger is not None:
            self.run_logger.debug("Ladder tree for case {}: {} nodes, {} sampled tips".format(
                introduction.host_id,
                len(tree.nodes()),
                len(taxon_namespace)))
        return tree

    def _new_node(self, event, host, latest_event_time):
        nd = model.PathogenLineage(
                index=next(self.lineage_indexer),
                height=latest_event_time - event.time,
                host_id=host.host_id,
                event=event if event.event_type == "infection" else None,
                date=event.time)
        if event.event_type == "infection":
            nd.label = LadderTreeBuilder.compose_infection_label(event)
        return nd
