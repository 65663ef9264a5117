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

import sys
import os
import argparse
import collections

import virustree
from virustree import error

def compose_model_definition(args):
    model_definition = collections.OrderedDict()
    if args.model_id is not None:
        model_definition["model_id"] = args.model_id
    demography_d = collections.OrderedDict()
    demography_d["model"] = args.demographic_model
    demography_d["N0"] = args.N0
    # growth rate is meaningless for a constant population, and t50 for
    # anything other than logistic growth
    if not args.demographic_model.lower().startswith("c"):
        demography_d["growth_rate"] = args.growth_rate
    if args.demographic_model.lower().startswith("l"):
        demography_d["t50"] = args.t50
    model_definition["demography"] = demography_d
    coalescence_d = collections.OrderedDict()
    coalescence_d["force_coalescence"] = args.force_coalescence
    coalescence_d["max_attempts"] = args.max_coalescence_attempts
    coalescence_d["plausibility_threshold"] = args.plausibility_threshold
    model_definition["coalescence"] = coalescence_d
    return model_definition

def main():
    parser = argparse.ArgumentParser(
            description="{}: reconstruction of pathogen phylogenies from transmission histories".format(virustree.description()))

    input_options = parser.add_argument_group("Input")
    input_options.add_argument("infections",
            metavar="INFECTIONS-FILE",
            help="Path to comma-separated file of transmissions, with columns 'IDREC' (infectee), 'IDTR' (infector, 'NA' for introductions) and 'TIME_TR' (time of infection).")
    input_options.add_argument("samples",
            metavar="SAMPLES-FILE",
            help="Path to comma-separated file of samplings, with columns 'IDPOP' (host), 'TIME_SEQ' (time of sampling) and, optionally, 'SEQ_COUNT' (number of sequences).")

    output_options = parser.add_argument_group("Output")
    output_options.add_argument("output_prefix",
            metavar="OUTPUT-PREFIX",
            help="Prefix for output files: trees for each first case will be written to '<OUTPUT-PREFIX><CASE>_detailed' and '<OUTPUT-PREFIX><CASE>_simple'.")
    output_options.add_argument("--output-format",
            default="nexus",
            choices=["nexus", "newick"],
            help="Format for output trees (default: %(default)s).")
    output_options.add_argument("--no-summary-stats",
            action="store_true",
            default=False,
            help="Do not calculate and store summary statistics.")

    model_options = parser.add_argument_group("Model")
    model_options.add_argument("--model-definition-file",
            default=None,
            help="Path to JSON file defining the model; if given, model options on the command line are ignored.")
    model_options.add_argument("--model-id",
            default=None,
            help="Identifier for the model.")
    model_options.add_argument("--demographic-model",
            default="constant",
            choices=["constant", "exponential", "logistic"],
            help="Within-host demographic model (default: %(default)s).")
    model_options.add_argument("--N0",
            type=float,
            default=1.0,
            help="Within-host effective population size at the infection of each host (default: %(default)s).")
    model_options.add_argument("--growth-rate",
            type=float,
            default=0.0,
            help="Growth rate of the within-host population since infection; ignored for the constant model (default: %(default)s).")
    model_options.add_argument("--t50",
            type=float,
            default=0.0,
            help="Time (backward, relative to the infection of each host; negative after infection) at which the population is half its asymptotic size; logistic model only (default: %(default)s).")

    coalescence_options = parser.add_argument_group("Coalescence")
    coalescence_options.add_argument("--force-coalescence",
            action="store_true",
            default=False,
            help="Force all lineages in a host to coalesce before its infection, i.e., a complete transmission bottleneck.")
    coalescence_options.add_argument("--max-coalescence-attempts",
            type=int,
            default=None,
            help="Maximum number of coalescent simulations to run in a host when forcing coalescence (default: no limit).")
    coalescence_options.add_argument("--plausibility-threshold",
            type=float,
            default=0.9,
            help="Warn if forcing coalescence when the probability of it happening is below this value (default: %(default)s).")

    run_options = parser.add_argument_group("Run")
    run_options.add_argument("-z", "--random-seed",
            type=int,
            default=None,
            help="Seed for random number generator.")
    run_options.add_argument("--nreps",
            type=int,
            default=1,
            help="Number of replicates (default: %(default)s).")
    run_options.add_argument("--max-restarts",
            type=int,
            default=0,
            help="Number of times to restart a replicate in which forced coalescence failed (default: %(default)s).")
    run_options.add_argument("--ladder",
            action="store_true",
            default=False,
            help="Render the transmission history as a ladder tree, with no within-host coalescent simulation.")
    run_options.add_argument("--log-to-screen-level",
            default="info",
            help="Message level threshold for screen logs (default: %(default)s).")
    run_options.add_argument("--log-to-file-level",
            default="debug",
            help="Message level threshold for file logs (default: %(default)s).")
    run_options.add_argument("--debug-mode",
            action="store_true",
            default=False,
            help="Run in debugging mode.")

    args = parser.parse_args()

    if args.model_definition_file is not None:
        model_definition_source = args.model_definition_file
        model_definition_type = "json-filepath"
    else:
        model_definition_source = compose_model_definition(args)
        model_definition_type = "python-dict"
    config_d = {
            "tree_schema": args.output_format,
            "store_summary_stats": not args.no_summary_stats,
            }
    output_dir = os.path.dirname(args.output_prefix)
    if output_dir and not os.path.exists(output_dir):
        os.makedirs(output_dir)
    try:
        virustree.run(
                output_prefix=args.output_prefix,
                transmissions_path=args.infections,
                samplings_path=args.samples,
                model_definition_source=model_definition_source,
                model_definition_type=model_definition_type,
                nreps=args.nreps,
                config_d=config_d,
                random_seed=args.random_seed,
                stderr_logging_level=args.log_to_screen_level,
                file_logging_level=args.log_to_file_level,
                maximum_num_restarts_per_replicate=args.max_restarts,
                ladder_mode=args.ladder,
                debug_mode=args.debug_mode)
    except error.VirusTreeException as e:
        sys.stderr.write("virustree: {}: {}\n".format(type(e).__name__, e))
        sys.exit(1)

if __name__ == "__main__":
    main()
