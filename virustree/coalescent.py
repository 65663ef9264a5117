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
Variable-rate Kingman coalescent over a set of (possibly non-contemporaneous)
lineages.
"""

import math
import collections

from virustree import error
from virustree import model

CoalescentResult = collections.namedtuple("CoalescentResult", [
    "roots",                    #   list of root nodes, one if all lineages coalesced
    "num_attempts",             #   number of simulations run (> 1 only when forcing coalescence)
    "coalescence_probability",  #   probability of at least one coalescence before `max_height`
    ])

def coalescence_probability(tip_heights, demographic_function, max_height):
    """
    Probability of at least one coalescence between the earliest tip and
    ``max_height``, the infection of the host and the origin of the
    demographic time axis: ``1 - exp(-(I(0) - I(earliest tip - max_height)))``.
    """
    if max_height is None:
        return 1.0
    earliest_tip_height = max(tip_heights)
    return -math.expm1(-demographic_function.intensity_between(earliest_tip_height - max_height, 0.0))

def simulate_coalescent(
        lineages,
        demographic_function,
        rng,
        max_height=None,
        force_coalescence=False,
        max_attempts=None,
        run_logger=None):
    """
    Simulates the genealogy of ``lineages`` backward in time.

    Parameters
    ----------
    lineages : iterable of |PathogenLineage|
        Tips, each with ``height`` set. A tip only becomes available to
        coalesce once the process reaches its height.
    demographic_function : |DemographicFunction|
        Within-host population size model. Its time 0 lies at
        ``max_height`` (at height 0 if unbounded), so a tip of height ``h``
        is at time ``h - max_height``.
    rng : `random.Random`
        Source of randomness.
    max_height : float or `None`
        Height beyond which lineages can no longer coalesce (the infection
        of the host). If `None`, the process is unbounded.
    force_coalescence : bool
        If `True`, simulations that end with more than one lineage at
        ``max_height`` are discarded and rerun until all lineages coalesce.
    max_attempts : int or `None`
        Maximum number of simulations to run when forcing coalescence. If
        exceeded, |CoalescenceAttemptsExhaustedError| is raised. If `None`,
        there is no limit.

    Returns
    -------
    r : `CoalescentResult`
        Roots of the simulated genealogy, in order; more than one if
        coalescence was not forced and not all lineages coalesced by
        ``max_height``.
    """
    lineages = list(lineages)
    if not lineages:
        raise ValueError("No lineages to coalesce")
    heights = [lineage.height for lineage in lineages]
    if min(heights) < 0:
        raise ValueError("Lineage heights must be non-negative: {}".format(heights))
    if max_height is not None and max(heights) > max_height:
        raise ValueError("Lineage height {} exceeds maximum height {}".format(max(heights), max_height))
    probability = coalescence_probability(heights, demographic_function, max_height)
    num_attempts = 0
    while True:
        num_attempts += 1
        merges, remaining = _simulate_merges(
                heights=heights,
                demographic_function=demographic_function,
                rng=rng,
                max_height=max_height)
        if len(remaining) == 1 or not force_coalescence:
            break
        if run_logger is not None:
            run_logger.debug("Failed to coalesce {} lineages ({} remaining): attempt {}".format(
                len(lineages), len(remaining), num_attempts))
        if max_attempts is not None and num_attempts >= max_attempts:
            raise error.CoalescenceAttemptsExhaustedError(num_attempts=num_attempts, num_lineages=len(lineages))
    roots = _build_genealogy(lineages, merges, remaining)
    return CoalescentResult(
            roots=roots,
            num_attempts=num_attempts,
            coalescence_probability=probability)

def _simulate_merges(heights, demographic_function, rng, max_height):
    """
    Runs a single realization of the coalescent on lineage indexes.
    Ancestors get indexes following the tips, in order of creation.
    Returns the list of merges as ``(child_idx1, child_idx2, height)``
    tuples, and the indexes of the lineages left at the end.
    """
    num_tips = len(heights)
    if max_height is None:
        time_origin = 0.0
    else:
        time_origin = max_height
    # popped from the end: lowest (most recent) first
    pending = sorted(range(num_tips), key=lambda idx: heights[idx], reverse=True)
    active = []
    merges = []
    current_height = heights[pending[-1]]
    while True:
        while pending and heights[pending[-1]] <= current_height:
            active.append(pending.pop())
        if not pending and len(active) == 1:
            break
        if pending:
            next_activation_height = heights[pending[-1]]
        else:
            next_activation_height = float("inf")
        k = len(active)
        if k < 2:
            current_height = next_activation_height
            continue
        waiting_intensity = rng.expovariate(k * (k - 1) / 2.0)
        event_time = demographic_function.inverse_intensity(
                demographic_function.intensity(current_height - time_origin) + waiting_intensity)
        event_height = max(event_time + time_origin, current_height)
        if math.isinf(event_height) and not pending:
            # intensity is bounded: these lineages can never coalesce
            break
        if event_height >= next_activation_height:
            current_height = next_activation_height
            continue
        if max_height is not None and event_height > max_height:
            break
        idx1, idx2 = rng.sample(active, 2)
        active.remove(idx1)
        active.remove(idx2)
        merges.append( (idx1, idx2, event_height) )
        active.append(num_tips + len(merges) - 1)
        current_height = event_height
    return merges, active

def _build_genealogy(lineages, merges, remaining):
    nodes = list(lineages)
    for idx1, idx2, height in merges:
        parent = model.PathogenLineage(height=height)
        for child in (nodes[idx1], nodes[idx2]):
            parent.add_child(child)
            child.edge.length = height - child.height
        nodes.append(parent)
    return [nodes[idx] for idx in remaining]
