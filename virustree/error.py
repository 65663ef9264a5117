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


class VirusTreeException(Exception):
    pass

class TransmissionDataError(VirusTreeException):
    pass

class MissingColumnsError(TransmissionDataError):
    pass

class DuplicateHostError(TransmissionDataError):
    pass

class UnknownHostError(TransmissionDataError):
    pass

class UnknownInfectorError(TransmissionDataError):
    pass

class MissingIntroductionError(TransmissionDataError):
    pass

class EventBeforeInfectionError(TransmissionDataError):
    pass

class CyclicTransmissionError(TransmissionDataError):
    pass

class ReconstructionFailure(VirusTreeException):
    pass

class AssemblyConsistencyError(ReconstructionFailure):
    pass

class CoalescenceAttemptsExhaustedError(ReconstructionFailure):

    def __init__(self, num_attempts, num_lineages):
        self.num_attempts = num_attempts
        self.num_lineages = num_lineages
        ReconstructionFailure.__init__(self,
                "Failed to coalesce {} lineages after {} attempts".format(num_lineages, num_attempts))
