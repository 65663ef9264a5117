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
import json
import dendropy

from virustree import demography
from virustree import error

class InfectionEvent(object):
    """
    Transmission of the pathogen from ``infector`` to ``infectee`` at
    ``time``. An infection event with no infector is an introduction.
    """

    event_type = "infection"

    def __init__(self, time, infector, infectee):
        self.time = float(time)
        self.infector = infector
        self.infectee = infectee

    def __repr__(self):
        return "<InfectionEvent: {} -> {} at t = {}>".format(
                self.infector.host_id if self.infector is not None else None,
                self.infectee.host_id,
                self.time)

class SampleEvent(object):
    """
    Draw of ``count`` pathogen sequences from ``host`` at ``time``.
    """

    event_type = "sample"

    def __init__(self, time, host, count=1):
        self.time = float(time)
        self.host = host
        self.count = int(count)
        if self.count < 1:
            raise ValueError("Sample count must be at least 1: {}".format(count))

    def __repr__(self):
        return "<SampleEvent: {} x {} at t = {}>".format(self.host.host_id, self.count, self.time)

class Host(object):
    """
    An infected host, with the event that infected it and the events
    (onward transmissions and samplings) that happened during its
    infection.
    """

    def __init__(self, host_id):
        self.host_id = host_id
        self.infection_event = None
        self.child_events = []
        self.infector = None

    def __repr__(self):
        return "<virustree.model.Host object at {} with id '{}'>".format(id(self), self.host_id)

    @property
    def is_introduction(self):
        return self.infector is None

    @property
    def infection_time(self):
        return self.infection_event.time

    def set_infection_event(self, event):
        for child_event in self.child_events:
            if event.time > child_event.time:
                if child_event.event_type == "sample":
                    raise error.EventBeforeInfectionError("Setting infection time for case {} after its sampling at {}".format(
                        self.host_id, child_event.time))
                else:
                    raise error.EventBeforeInfectionError("Setting infection time for case {} after it infected {} at {}".format(
                        self.host_id, child_event.infectee.host_id, child_event.time))
        self.infection_event = event
        self.infector = event.infector

    def add_child_event(self, event):
        if self.infection_event is not None and event.time < self.infection_event.time:
            raise error.EventBeforeInfectionError("Adding an event to case {} at {} before its infection time at {}".format(
                self.host_id, event.time, self.infection_event.time))
        self.child_events.append(event)

    def sorted_child_events(self):
        return sorted(self.child_events, key=lambda x: x.time)

    def child_host_iter(self):
        for event in self.sorted_child_events():
            if event.event_type == "infection":
                yield event.infectee

class TransmissionHistory(object):
    """
    The transmission forest: all hosts, keyed by id in order of appearance
    in the input.
    """

    @classmethod
    def from_records(cls, transmission_records, sampling_records, validate=True):
        """
        Builds a history from iterables of transmission records (with
        fields ``host_id``, ``infector_id`` and ``time``; an ``infector_id``
        of `None` marks an introduction) and sampling records (with fields
        ``host_id``, ``time`` and ``count``).
        """
        history = cls()
        transmission_records = list(transmission_records)
        for record in transmission_records:
            history.new_host(record.host_id)
        for record in transmission_records:
            history.set_infection(
                    infectee_id=record.host_id,
                    infector_id=record.infector_id,
                    time=record.time)
        for record in sampling_records:
            history.add_sample(
                    host_id=record.host_id,
                    time=record.time,
                    count=record.count)
        if validate:
            history.validate()
        return history

    def __init__(self):
        self.hosts = collections.OrderedDict()

    def __len__(self):
        return len(self.hosts)

    def __getitem__(self, host_id):
        return self.hosts[host_id]

    def __iter__(self):
        return iter(self.hosts.values())

    def new_host(self, host_id):
        if host_id in self.hosts:
            raise error.DuplicateHostError("Case {} appears more than once as an infectee".format(host_id))
        host = Host(host_id)
        self.hosts[host_id] = host
        return host

    def set_infection(self, infectee_id, infector_id, time):
        try:
            infectee = self.hosts[infectee_id]
        except KeyError:
            raise error.UnknownHostError("Case {} has not been declared as an infectee".format(infectee_id))
        if infector_id is None:
            infector = None
        else:
            try:
                infector = self.hosts[infector_id]
            except KeyError:
                raise error.UnknownInfectorError("{} does not appear as an infectee".format(infector_id))
        infection = InfectionEvent(time=time, infector=infector, infectee=infectee)
        if infector is not None:
            infector.add_child_event(infection)
        infectee.set_infection_event(infection)
        return infection

    def add_sample(self, host_id, time, count=1):
        try:
            host = self.hosts[host_id]
        except KeyError:
            raise error.UnknownHostError("Trying to add a sampling event to case {} but this case is not previously defined".format(host_id))
        sample = SampleEvent(time=time, host=host, count=count)
        host.add_child_event(sample)
        return sample

    def introductions(self):
        return [host for host in self.hosts.values() if host.is_introduction]

    def postorder_host_iter(self, host):
        """
        Iterates over ``host`` and all hosts infected downstream of it,
        each host visited only after all the hosts it infected.
        """
        stack = [(host, False)]
        while stack:
            current, is_expanded = stack.pop()
            if is_expanded:
                yield current
                continue
            stack.append((current, True))
            for child_host in reversed(list(current.child_host_iter())):
                stack.append((child_host, False))

    def validate(self):
        for host in self.hosts.values():
            if host.infection_event is None:
                raise error.TransmissionDataError("No infection event recorded for case {}".format(host.host_id))
        introductions = self.introductions()
        if not introductions:
            raise error.MissingIntroductionError("Can't find a first case")
        reached = set()
        for introduction in introductions:
            for host in self.postorder_host_iter(introduction):
                reached.add(host.host_id)
        unreached = [host_id for host_id in self.hosts if host_id not in reached]
        if unreached:
            raise error.CyclicTransmissionError("Cases not descended from any introduction (transmission cycle): {}".format(
                ", ".join(str(i) for i in unreached)))

    def earliest_event_time(self):
        return min(host.infection_time for host in self.hosts.values())

    def latest_event_time(self):
        latest = float("-inf")
        for host in self.hosts.values():
            for event in host.child_events:
                latest = max(latest, event.time)
        return latest

class PathogenLineage(dendropy.Node):
    """
    A node on a virus tree. ``height`` is measured backward in time: within
    a treelet from the host's latest relevant event, and on a whole tree
    from its latest tip. ``event`` is the infection event a placeholder tip
    or an infection marker stands for; ``host_id`` is the host in which the
    lineage lives.
    """

    def __init__(self, **kwargs):
        index = kwargs.pop("index", None)
        height = kwargs.pop("height", 0.0)
        host_id = kwargs.pop("host_id", None)
        event = kwargs.pop("event", None)
        date = kwargs.pop("date", None)
        dendropy.Node.__init__(self, **kwargs)
        self.index = index
        self.height = height
        self.host_id = host_id
        self.event = event
        self.date = date

    @property
    def is_transmission_node(self):
        """
        True for the tip (or, once grafted, the internal node) standing for
        an onward transmission out of ``host_id``.
        """
        return (self.event is not None
                and self.event.infector is not None
                and self.event.infector.host_id == self.host_id)

    @property
    def is_infection_node(self):
        """
        True for the marker node sitting at the infection of ``host_id``.
        """
        return self.event is not None and self.event.infectee.host_id == self.host_id

class VirusPhylogeny(dendropy.Tree):

    def node_factory(cls, **kwargs):
        return PathogenLineage(**kwargs)
    node_factory = classmethod(node_factory)

    def __init__(self, *args, **kwargs):
        first_case = kwargs.pop("first_case", None)
        coalescent_plausibility = kwargs.pop("coalescent_plausibility", 1.0)
        coalescent_attempts = kwargs.pop("coalescent_attempts", 0)
        is_simplified = kwargs.pop("is_simplified", False)
        dendropy.Tree.__init__(self, *args, **kwargs)
        self.first_case = first_case
        self.coalescent_plausibility = coalescent_plausibility
        self.coalescent_attempts = coalescent_attempts
        self.is_simplified = is_simplified
        self.is_rooted = True
        self.annotations.add_bound_attribute("first_case")

    def calc_node_heights(self):
        """
        Sets ``height`` on every node from edge lengths, taking the leaf
        furthest from the root as height 0. Returns the height of the
        seed node.
        """
        self.calc_node_root_distances(return_leaf_distances_only=False)
        max_distance = max(nd.root_distance for nd in self.leaf_node_iter())
        for nd in self.preorder_node_iter():
            nd.height = max_distance - nd.root_distance
        return max_distance

    def calc_internal_node_dates(self):
        """
        Dates internal nodes by their heights below the date of the most
        recent sampled tip. Leaf dates are not changed.
        """
        latest_date = max(nd.date for nd in self.leaf_node_iter() if nd.date is not None)
        latest_height = min(nd.height for nd in self.leaf_node_iter() if nd.date is not None)
        for nd in self.postorder_internal_node_iter():
            nd.date = latest_date - (nd.height - latest_height)

    def annotate_nodes(self):
        for nd in self.preorder_node_iter():
            nd.annotations.drop()
            if nd.host_id is not None:
                nd.annotations.add_new("host", nd.host_id)
            nd.annotations.add_new("height", nd.height)
            if nd.date is not None:
                nd.annotations.add_new("date", nd.date)

class VirusTreeModel(object):

    @classmethod
    def create(
            cls,
            model_definition_source,
            model_definition_type,
            run_logger=None,
            ):
        """
        Create and return a model under which to run a reconstruction.

        Parameters
        ----------
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

        Returns
        -------
        m : VirusTreeModel
            A fully-specified model.

        Example
        -------

            m = VirusTreeModel.create(
                    model_definition_source={
                        "demography": {"model": "exponential", "N0": 2.0, "growth_rate": 0.5},
                        "coalescence": {"force_coalescence": True, "max_attempts": 1000},
                    },
                    model_definition_type="python-dict",
                    )

        """
        if model_definition_type == "python-dict-filepath":
            with open(model_definition_source, "r") as src:
                model_definition = eval(src.read())
        elif model_definition_type == "python-dict-str":
            model_definition = eval(model_definition_source)
        elif model_definition_type == "python-dict":
            model_definition = model_definition_source
        elif model_definition_type == "json-filepath":
            with open(model_definition_source, "r") as src:
                model_definition = json.load(src)
        else:
            raise ValueError("Unrecognized model definition type: '{}'".format(model_definition_type))
        return cls.from_definition_dict(
                model_definition=model_definition,
                run_logger=run_logger)

    @classmethod
    def from_definition_dict(cls, model_definition, run_logger=None):
        virustree_model = cls()
        virustree_model.parse_definition(
                model_definition=model_definition,
                run_logger=run_logger,
        )
        return virustree_model

    def __init__(self):
        self.model_id = "Model1"
        self.demographic_function = demography.ConstantPopulation(N0=1.0)
        self.force_coalescence = False
        self.max_coalescence_attempts = None
        self.plausibility_threshold = 0.9

    def parse_definition(self,
            model_definition,
            run_logger=None):

        # initialize
        if model_definition is None:
            model_definition = {}
        else:
            model_definition = dict(model_definition)

        # model identification
        if "model_id" not in model_definition:
            model_definition["model_id"] = "Model1"
            if run_logger is not None:
                run_logger.warning("Model identifier not specified: defaulting to '{}'".format(model_definition["model_id"]))
        self.model_id = model_definition.pop("model_id", "Model1")
        if run_logger is not None:
            run_logger.info("Setting up model with identifier: '{}'".format(self.model_id))

        # Within-host demography
        demography_d = dict(model_definition.pop("demography", {}))
        self.demographic_function = demography.DemographicFunction.from_definition_dict(demography_d)
        if run_logger is not None:
            run_logger.info("(DEMOGRAPHY) Within-host demographic function: {}".format(
                ", ".join("{} = {}".format(k, v) for k, v in self.demographic_function.as_definition().items())))

        # Coalescence
        coalescence_d = dict(model_definition.pop("coalescence", {}))
        self.force_coalescence = bool(coalescence_d.pop("force_coalescence", False))
        max_attempts = coalescence_d.pop("max_attempts", None)
        if max_attempts is not None:
            max_attempts = int(max_attempts)
            if max_attempts < 1:
                raise ValueError("Maximum number of coalescence attempts must be at least 1: {}".format(max_attempts))
        self.max_coalescence_attempts = max_attempts
        self.plausibility_threshold = float(coalescence_d.pop("plausibility_threshold", 0.9))
        if coalescence_d:
            raise TypeError("Unsupported coalescence keywords: {}".format(coalescence_d))
        if run_logger is not None:
            if self.force_coalescence:
                if self.max_coalescence_attempts is None:
                    run_logger.info("(COALESCENCE) All lineages in a host will be forced to coalesce before its infection, with no limit on the number of attempts")
                else:
                    run_logger.info("(COALESCENCE) All lineages in a host will be forced to coalesce before its infection, in at most {} attempts".format(self.max_coalescence_attempts))
            else:
                run_logger.info("(COALESCENCE) Incomplete within-host bottlenecks allowed")

        if model_definition:
            raise TypeError("Unsupported model keywords: {}".format(model_definition))

    def write_model(self, out):
        json.dump(self.as_definition(), out, indent=4, separators=(',', ': '))

    def as_definition(self):
        model_definition = collections.OrderedDict()
        model_definition["model_id"] = self.model_id
        model_definition["demography"] = self.demographic_function.as_definition()
        model_definition["coalescence"] = self.coalescence_as_definition()
        return model_definition

    def coalescence_as_definition(self):
        d = collections.OrderedDict()
        d["force_coalescence"] = self.force_coalescence
        d["max_attempts"] = self.max_coalescence_attempts
        d["plausibility_threshold"] = self.plausibility_threshold
        return d
