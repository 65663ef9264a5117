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


import os
import logging

_LOGGING_LEVEL_ENVAR = "VIRUSTREE_LOGGING_LEVEL"

TEST_DATA_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), os.pardir, "tests", "data")

def format_time(t):
    """
    Renders an event time for use in labels, dropping a trailing '.0' on
    whole-valued times.
    """
    if float(t).is_integer():
        return "{}".format(int(t))
    return "{}".format(t)

class IndexGenerator(object):

    def __init__(self, start=0):
        self.start = start
        self.index = start

    def __next__(self):
        c = self.index
        self.index += 1
        return c

class RunLogger(object):

    def __init__(self, **kwargs):
        self.name = kwargs.get("name", "RunLog")
        self._log = logging.getLogger(self.name)
        self._log.setLevel(logging.DEBUG)
        # a logger with the same name is shared across instances
        for handler in list(self._log.handlers):
            self._log.removeHandler(handler)
        self._log.propagate = False
        self.handlers = []
        if kwargs.get("log_to_stderr", True):
            handler1 = logging.StreamHandler()
            stderr_logging_level = self.get_logging_level(kwargs.get("stderr_logging_level", logging.INFO))
            handler1.setLevel(stderr_logging_level)
            handler1.setFormatter(self.get_default_formatter())
            self._log.addHandler(handler1)
            self.handlers.append(handler1)
        if kwargs.get("log_to_file", True):
            if "log_stream" in kwargs:
                log_stream = kwargs.get("log_stream")
            else:
                log_stream = open(kwargs.get("log_path", self.name + ".log"), "w")
            handler2 = logging.StreamHandler(log_stream)
            file_logging_level = self.get_logging_level(kwargs.get("file_logging_level", logging.DEBUG))
            handler2.setLevel(file_logging_level)
            handler2.setFormatter(self.get_default_formatter())
            self._log.addHandler(handler2)
            self.handlers.append(handler2)
        self._system = None

    def _get_system(self):
        return self._system

    def _set_system(self, system):
        self._system = system
        if self._system is None:
            for handler in self.handlers:
                handler.setFormatter(self.get_default_formatter())
        else:
            for handler in self.handlers:
                handler.setFormatter(self.get_reconstruction_formatter())

    system = property(_get_system, _set_system)

    def get_logging_level(self, level=None):
        if level in [logging.NOTSET, logging.DEBUG, logging.INFO, logging.WARNING,
            logging.ERROR, logging.CRITICAL]:
            return level
        elif level is not None:
            level_name = str(level).upper()
        elif _LOGGING_LEVEL_ENVAR in os.environ:
            level_name = os.environ[_LOGGING_LEVEL_ENVAR].upper()
        else:
            level_name = "NOTSET"
        if level_name == "NOTSET":
            level = logging.NOTSET
        elif level_name == "DEBUG":
            level = logging.DEBUG
        elif level_name == "INFO":
            level = logging.INFO
        elif level_name == "WARNING":
            level = logging.WARNING
        elif level_name == "ERROR":
            level = logging.ERROR
        elif level_name == "CRITICAL":
            level = logging.CRITICAL
        else:
            level = logging.NOTSET
        return level

    def get_default_formatter(self):
        f = logging.Formatter("[%(asctime)s] %(message)s")
        f.datefmt='%Y-%m-%d %H:%M:%S'
        return f

    def get_reconstruction_formatter(self):
        f = logging.Formatter("[%(asctime)s] %(reconstruction_stage)s%(message)s")
        f.datefmt='%Y-%m-%d %H:%M:%S'
        return f

    def supplemental_info_d(self):
        current_introduction = getattr(self._system, "current_introduction", None)
        if current_introduction is None:
            return {
                    "reconstruction_stage" : "Setup: ",
                    }
        else:
            return {
                    "reconstruction_stage" : "[{}] ".format(current_introduction.host_id),
                    }

    def debug(self, msg):
        self._log.debug("[DEBUG] {}".format(msg), extra=self.supplemental_info_d())

    def info(self, msg):
        self._log.info(msg, extra=self.supplemental_info_d())

    def warning(self, msg):
        self._log.warning(msg, extra=self.supplemental_info_d())

    def error(self, msg):
        self._log.error(msg, extra=self.supplemental_info_d())

    def critical(self, msg):
        self._log.critical(msg, extra=self.supplemental_info_d())

    def close(self):
        for handler in self.handlers:
            handler.flush()
            self._log.removeHandler(handler)
        self.handlers = []
