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


from setuptools import setup

setup(
    name="virustree",
    version="0.1.0",
    author="Jeet Sukumaran",
    author_email="jeetsukumaran@gmail.com",
    packages=[
        "virustree",
        ],
    include_package_data = True,
    scripts=[
            "bin/virustree-simulate.py",
            ],
    url="http://pypi.python.org/pypi/virustree/",
    license="LICENSE.txt",
    description="Reconstruction of pathogen phylogenies from transmission histories by within-host coalescent simulation",
    long_description=open("README.md").read(),
    install_requires=[
        "dendropy",
        "scipy",
        ],
    extras_require={
        "test": ["pytest"],
        },
)
