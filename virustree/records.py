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
Parsing of transmission and sampling records from delimited text.
"""

import csv
import collections

from virustree import error
from virustree import model

TransmissionRecord = collections.namedtuple("TransmissionRecord", [
    "host_id",          #   infectee
    "infector_id",      #   `None` if an introduction
    "time",             #   time of infection
    ])

SamplingRecord = collections.namedtuple("SamplingRecord", [
    "host_id",
    "time",             #   time of sampling
    "count",            #   number of sequences sampled at this time
    ])

class TransmissionRecordsParser(object):

    INFECTEE_FIELDNAME = "IDREC"
    INFECTOR_FIELDNAME = "IDTR"
    INFECTION_TIME_FIELDNAME = "TIME_TR"
    SAMPLED_HOST_FIELDNAME = "IDPOP"
    SAMPLING_TIME_FIELDNAME = "TIME_SEQ"
    SAMPLE_COUNT_FIELDNAME = "SEQ_COUNT"
    NULL_VALUE = "NA"

    def __init__(self, delimiter=",", null_value=None):
        self.delimiter = delimiter
        if null_value is None:
            self.null_value = TransmissionRecordsParser.NULL_VALUE
        else:
            self.null_value = null_value

    def _read_rows(self, src, required_fieldnames, optional_fieldnames=()):
        if isinstance(src, str):
            with open(src, "r", newline="") as f:
                rows = list(csv.reader(f, delimiter=self.delimiter))
        else:
            rows = list(csv.reader(src, delimiter=self.delimiter))
        rows = [row for row in rows if row and any(cell.strip() for cell in row)]
        if not rows:
            raise error.MissingColumnsError("No header row found")
        header = [cell.replace('"', "").strip() for cell in rows[0]]
        columns = {}
        for fieldname in tuple(required_fieldnames) + tuple(optional_fieldnames):
            if fieldname in header:
                columns[fieldname] = header.index(fieldname)
        missing = [fieldname for fieldname in required_fieldnames if fieldname not in columns]
        if missing:
            raise error.MissingColumnsError("Not all required columns are present: missing {}".format(", ".join(missing)))
        for row_idx, row in enumerate(rows[1:]):
            entry = {}
            for fieldname, column_idx in columns.items():
                try:
                    entry[fieldname] = row[column_idx].strip()
                except IndexError:
                    raise error.TransmissionDataError("Row {}: expecting at least {} fields but found {}".format(
                        row_idx + 2, column_idx + 1, len(row)))
            yield row_idx + 2, entry

    def _parse_float(self, value, row_idx, fieldname):
        try:
            return float(value)
        except ValueError:
            raise error.TransmissionDataError("Row {}: invalid value for '{}': '{}'".format(row_idx, fieldname, value))

    def parse_transmissions(self, src):
        """
        Returns a list of |TransmissionRecord| objects from ``src``, a file
        path or file-like object.
        """
        records = []
        for row_idx, entry in self._read_rows(src, (
                TransmissionRecordsParser.INFECTEE_FIELDNAME,
                TransmissionRecordsParser.INFECTOR_FIELDNAME,
                TransmissionRecordsParser.INFECTION_TIME_FIELDNAME)):
            infector_id = entry[TransmissionRecordsParser.INFECTOR_FIELDNAME]
            if infector_id == self.null_value:
                infector_id = None
            records.append(TransmissionRecord(
                host_id=entry[TransmissionRecordsParser.INFECTEE_FIELDNAME],
                infector_id=infector_id,
                time=self._parse_float(entry[TransmissionRecordsParser.INFECTION_TIME_FIELDNAME], row_idx, TransmissionRecordsParser.INFECTION_TIME_FIELDNAME),
                ))
        return records

    def parse_samplings(self, src):
        """
        Returns a list of |SamplingRecord| objects from ``src``, a file path
        or file-like object. Rows with a null sampling time are skipped; if
        there is no sample count column every row counts as one sample.
        """
        records = []
        for row_idx, entry in self._read_rows(src,
                (TransmissionRecordsParser.SAMPLED_HOST_FIELDNAME,
                 TransmissionRecordsParser.SAMPLING_TIME_FIELDNAME),
                (TransmissionRecordsParser.SAMPLE_COUNT_FIELDNAME,)):
            sampling_time = entry[TransmissionRecordsParser.SAMPLING_TIME_FIELDNAME]
            if sampling_time == self.null_value:
                continue
            count = entry.get(TransmissionRecordsParser.SAMPLE_COUNT_FIELDNAME, "1")
            try:
                count = int(count)
            except ValueError:
                raise error.TransmissionDataError("Row {}: invalid sample count: '{}'".format(row_idx, count))
            records.append(SamplingRecord(
                host_id=entry[TransmissionRecordsParser.SAMPLED_HOST_FIELDNAME],
                time=self._parse_float(sampling_time, row_idx, TransmissionRecordsParser.SAMPLING_TIME_FIELDNAME),
                count=count,
                ))
        return records

def read_transmission_history(transmissions_src, samplings_src, delimiter=",", validate=True):
    parser = TransmissionRecordsParser(delimiter=delimiter)
    return model.TransmissionHistory.from_records(
            transmission_records=parser.parse_transmissions(transmissions_src),
            sampling_records=parser.parse_samplings(samplings_src),
            validate=validate)
