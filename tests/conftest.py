import random
import collections

import pytest

from virustree import demography
from virustree import model
from virustree import records
from virustree import utility


@pytest.fixture
def rng():
    return random.Random(12345)


@pytest.fixture
def run_logger():
    return utility.RunLogger(
        name="virustree-test",
        log_to_stderr=False,
        log_to_file=False,
    )


def make_history(transmissions, samplings, validate=True):
    """
    ``transmissions``: list of ``(infectee, infector or None, time)``.
    ``samplings``: list of ``(host, time)`` or ``(host, time, count)``.
    """
    transmission_records = [
        records.TransmissionRecord(host_id=h, infector_id=i, time=t)
        for h, i, t in transmissions
    ]
    sampling_records = []
    for entry in samplings:
        if len(entry) == 2:
            entry = tuple(entry) + (1,)
        sampling_records.append(
            records.SamplingRecord(host_id=entry[0], time=entry[1], count=entry[2])
        )
    return model.TransmissionHistory.from_records(
        transmission_records, sampling_records, validate=validate
    )


@pytest.fixture
def x_history():
    # X0 -> X1 (t=0), X0 -> X2 (t=1), X2 -> X3 (t=3); X1 sampled at 2, X3 at 5
    return make_history(
        transmissions=[
            ("X0", None, -1.0),
            ("X1", "X0", 0.0),
            ("X2", "X0", 1.0),
            ("X3", "X2", 3.0),
        ],
        samplings=[
            ("X1", 2.0),
            ("X3", 5.0),
        ],
    )


@pytest.fixture
def chain_history():
    return make_history(
        transmissions=[
            ("A", None, 0.0),
            ("B", "A", 1.0),
            ("C", "B", 2.0),
        ],
        samplings=[
            ("C", 3.0),
        ],
    )


@pytest.fixture
def fast_model():
    return model.VirusTreeModel.create(
        model_definition_source={
            "model_id": "fast",
            "demography": {"model": "constant", "N0": 0.01},
            "coalescence": {"force_coalescence": True, "max_attempts": 1000},
        },
        model_definition_type="python-dict",
    )


def quiet_config(**kwargs):
    config_d = collections.OrderedDict()
    config_d["store_summary_stats"] = False
    config_d["store_model_description"] = False
    config_d["store_detailed_trees"] = False
    config_d["store_simple_trees"] = False
    config_d.update(kwargs)
    return config_d
