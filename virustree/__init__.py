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

__project__ = "VirusTree"
__version__ = "0.1.0"
__virustree_revision__ = None
__virustree_description__ = None

from virustree.reconstruct import run_reconstruction as run

VIRUSTREE_HOME = os.path.dirname(os.path.abspath(__file__))

def revision():
    global __virustree_revision__
    if __virustree_revision__ is None:
        from dendropy.utility import vcsinfo
        try:
            __homedir__ = os.path.dirname(os.path.abspath(__file__))
        except OSError:
            __homedir__ = None
        __virustree_revision__ = vcsinfo.Revision(repo_path=__homedir__)
    return __virustree_revision__

def description():
    global __virustree_description__
    if __virustree_description__ is None:
        virustree_revision = revision()
        if virustree_revision.is_available:
            revision_text = " ({})".format(virustree_revision)
        else:
            revision_text = ""
        __virustree_description__  = "{} {}{}".format(__project__, __version__, revision_text)
    return __virustree_description__
