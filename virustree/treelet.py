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
Construction of the within-host genealogy (treelet) of a single host.
"""

import collections
import dendropy

from virustree import coalescent
from virustree import model
from virustree import utility

TreeletResult = collections.namedtuple("TreeletResult", [
    "roots",                    #   infection marker nodes, one per treelet
    "coalescence_probability",  #   1.0 if no simulation was needed
    "num_attempts",             #   coalescent simulations run
    ])

class TreeletBuilder(object):

    @staticmethod
    def compose_sample_label(host, sample_event, instance_idx):
        return "{}_sampled_{}_{}".format(
                host.host_id,
                instance_idx + 1,
                utility.format_time(sample_event.time))

    @staticmethod
    def compose_transmission_label(infection_event, instance_idx):
        return "{}_infected_by_{}_{}_lineage_{}".format(
                infection_event.infectee.host_id,
                infection_event.infector.host_id,
                utility.format_time(infection_event.time),
                instance_idx + 1)

    def __init__(self,
            demographic_function,
            rng,
            force_coalescence=False,
            max_coalescence_attempts=None,
            taxon_namespace=None,
            lineage_indexer=None,
            run_logger=None):
        self.demographic_function = demographic_function
        self.rng = rng
        self.force_coalescence = force_coalescence
        self.max_coalescence_attempts = max_coalescence_attempts
        if taxon_namespace is None:
            self.taxon_namespace = dendropy.TaxonNamespace()
        else:
            self.taxon_namespace = taxon_namespace
        if lineage_indexer is None:
            self.lineage_indexer = utility.IndexGenerator(0)
        else:
            self.lineage_indexer = lineage_indexer
        self.run_logger = run_logger

    def build_treelets(self, host, relevant_events):
        """
        Builds the genealogy within ``host`` of the lineages leading to
        ``relevant_events``, a list of ``(event, num_lineages)`` tuples:
        sampling events (with their sample counts) and onward infection
        events known to lead to sampled descendants (with the number of
        lineages transmitted).
        """
        if not relevant_events:
            return TreeletResult(roots=[], coalescence_probability=1.0, num_attempts=0)
        last_relevant_event_time = max(event.time for event, num_lineages in relevant_events)
        active_time = last_relevant_event_time - host.infection_time
        tips = []
        for event, num_lineages in sorted(relevant_events, key=lambda x: x[0].time):
            height = last_relevant_event_time - event.time
            for instance_idx in range(num_lineages):
                if event.event_type == "infection":
                    tip = model.PathogenLineage(
                            label=TreeletBuilder.compose_transmission_label(event, instance_idx),
                            height=height,
                            event=event)
                else:
                    taxon = self.taxon_namespace.new_taxon(
                            label=TreeletBuilder.compose_sample_label(host, event, instance_idx))
                    tip = model.PathogenLineage(
                            taxon=taxon,
                            height=height,
                            date=event.time)
                tips.append(tip)
        if len(tips) > 1:
            # demographic time 0 is the infection of the host, at max_height
            result = coalescent.simulate_coalescent(
                    lineages=tips,
                    demographic_function=self.demographic_function,
                    rng=self.rng,
                    max_height=active_time,
                    force_coalescence=self.force_coalescence,
                    max_attempts=self.max_coalescence_attempts,
                    run_logger=self.run_logger)
            treelet_roots = result.roots
            probability = result.coalescence_probability
            num_attempts = result.num_attempts
            if self.run_logger is not None and num_attempts > 1:
                self.run_logger.info("Case {}: {} lineages coalesced after {} attempts".format(
                    host.host_id, len(tips), num_attempts))
        else:
            treelet_roots = tips
            probability = 1.0
            num_attempts = 0
        infection_nodes = []
        for treelet_root in treelet_roots:
            infection_node = model.PathogenLineage(
                    height=active_time,
                    event=host.infection_event)
            infection_node.add_child(treelet_root)
            treelet_root.edge.length = active_time - treelet_root.height
            for nd in infection_node.preorder_iter():
                nd.host_id = host.host_id
                nd.index = next(self.lineage_indexer)
            infection_nodes.append(infection_node)
        if self.run_logger is not None:
            self.run_logger.debug("Case {}: {} relevant events, {} lineages, {} treelet(s) over active time {}".format(
                host.host_id, len(relevant_events), len(tips), len(infection_nodes), active_time))
        return TreeletResult(
                roots=infection_nodes,
                coalescence_probability=probability,
                num_attempts=num_attempts)
