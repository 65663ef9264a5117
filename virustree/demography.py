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
Within-host effective population size models.

Time ``t`` runs backward with ``t = 0`` at the infection of the host: the
host's later events (its samples and onward transmissions) lie at negative
times, down to minus the active time of the host at its latest relevant
event. ``N0`` is thus the population size at infection, and a positive
growth rate is growth since infection.
"""

import math
import collections
from scipy import optimize

class DemographicFunction(object):
    """
    Base class for a within-host demographic model.

    Subclasses provide ``population_size(t)`` and ``intensity(t)``, the
    latter being the integral of ``1/N(s)`` from 0 to ``t`` (negative for
    ``t < 0``). The coalescent simulator works in units of intensity,
    under which each pair of lineages merges at rate 1, and maps back to
    time with ``inverse_intensity``.
    """

    model_name = None

    @classmethod
    def from_definition_dict(cls, demography_d):
        demography_d = dict(demography_d)
        model_name = str(demography_d.pop("model", "constant"))
        demographic_model_type = cls.get_model_type(model_name)
        N0 = float(demography_d.pop("N0", 1.0))
        growth_rate = float(demography_d.pop("growth_rate", 0.0))
        t50 = float(demography_d.pop("t50", 0.0))
        if demography_d:
            raise TypeError("Unsupported demographic model keywords: {}".format(demography_d))
        if demographic_model_type is ConstantPopulation:
            return ConstantPopulation(N0=N0)
        elif demographic_model_type is ExponentialGrowth:
            return ExponentialGrowth(N0=N0, growth_rate=growth_rate)
        else:
            return LogisticGrowth(N0=N0, growth_rate=growth_rate, t50=t50)

    @staticmethod
    def get_model_type(model_name):
        model_name = model_name.lower()
        if model_name.startswith("c"):
            return ConstantPopulation
        elif model_name.startswith("e"):
            return ExponentialGrowth
        elif model_name.startswith("l"):
            return LogisticGrowth
        else:
            raise ValueError("Unrecognized demographic model type: '{}'".format(model_name))

    def __init__(self, N0):
        if N0 <= 0:
            raise ValueError("Effective population size must be positive: {}".format(N0))
        self.N0 = float(N0)

    def population_size(self, t):
        raise NotImplementedError

    def intensity(self, t):
        raise NotImplementedError

    def intensity_between(self, t0, t1):
        return self.intensity(t1) - self.intensity(t0)

    def inverse_intensity(self, y):
        """
        Returns the time ``t`` at which the cumulative intensity reaches
        ``y``, on either side of the origin. The root is bracketed by
        doubling away from 0 and then polished with Brent's method.
        Returns an infinite time if ``I`` is bounded short of ``y``.
        """
        if y == 0:
            return 0.0
        if y > 0:
            lower, upper = 0.0, 1.0
            while self.intensity(upper) < y:
                lower, upper = upper, upper * 2.0
                if math.isinf(upper):
                    return float("inf")
        else:
            lower, upper = -1.0, 0.0
            while self.intensity(lower) > y:
                lower, upper = lower * 2.0, lower
                if math.isinf(lower):
                    return float("-inf")
        return self._solve_intensity(y, lower, upper)

    def _solve_intensity(self, y, lower, upper):
        f = lambda t: self.intensity(t) - y
        if f(upper) == 0:
            return upper
        if f(lower) == 0:
            return lower
        return optimize.brentq(f, lower, upper, xtol=1e-14, maxiter=500)

    def as_definition(self):
        d = collections.OrderedDict()
        d["model"] = self.model_name
        d["N0"] = self.N0
        return d

    def __repr__(self):
        return "<{} {}>".format(self.__class__.__name__, dict(self.as_definition()))

class ConstantPopulation(DemographicFunction):

    model_name = "constant"

    def population_size(self, t):
        return self.N0

    def intensity(self, t):
        return t / self.N0

    def inverse_intensity(self, y):
        return y * self.N0

class ExponentialGrowth(DemographicFunction):
    """
    ``N(t) = N0 exp(-r t)``: with a positive growth rate the population has
    been growing since the host's infection, where it had size ``N0``.
    """

    model_name = "exponential"

    def __init__(self, N0, growth_rate):
        DemographicFunction.__init__(self, N0=N0)
        self.growth_rate = float(growth_rate)

    def population_size(self, t):
        return self.N0 * math.exp(-self.growth_rate * t)

    def intensity(self, t):
        r = self.growth_rate
        if r == 0:
            return t / self.N0
        return math.expm1(r * t) / (r * self.N0)

    def inverse_intensity(self, y):
        r = self.growth_rate
        if r == 0:
            return y * self.N0
        z = r * self.N0 * y
        if z <= -1.0:
            # I is bounded by -1/(r N0): above for r < 0, below for r > 0
            if r < 0:
                return float("inf")
            return float("-inf")
        return math.log1p(z) / r

    def as_definition(self):
        d = DemographicFunction.as_definition(self)
        d["growth_rate"] = self.growth_rate
        return d

class LogisticGrowth(DemographicFunction):
    """
    ``N(t) = K / (1 + exp(r (t - t50)))`` with the asymptotic size
    ``K = N0 (1 + exp(-r t50))`` chosen so that ``N(0) = N0``: ``N0`` is the
    population size at infection and ``t50`` the time (backward, relative
    to infection) at which the population is half its asymptotic size.

    The intensity has the closed form::

        I(t) = (t + (exp(r (t - t50)) - exp(-r t50)) / r) / K

    but its inverse does not, so inversion is by root finding.
    """

    model_name = "logistic"

    def __init__(self, N0, growth_rate, t50):
        DemographicFunction.__init__(self, N0=N0)
        self.growth_rate = float(growth_rate)
        self.t50 = float(t50)

    @property
    def asymptotic_size(self):
        return self.N0 * (1.0 + math.exp(-self.growth_rate * self.t50))

    def population_size(self, t):
        return self.asymptotic_size / (1.0 + math.exp(self.growth_rate * (t - self.t50)))

    def intensity(self, t):
        r = self.growth_rate
        if r == 0:
            return t / self.N0
        return (t + (math.exp(r * (t - self.t50)) - math.exp(-r * self.t50)) / r) / self.asymptotic_size

    def as_definition(self):
        d = DemographicFunction.as_definition(self)
        d["growth_rate"] = self.growth_rate
        d["t50"] = self.t50
        return d
