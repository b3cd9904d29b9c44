#!/usr/bin/env python3

from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Ensure we can import tornado_outbreaks without installing the package
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from tornado_outbreaks.utils import build_config


@pytest.fixture
def config():
    return build_config({'processing': {'n_jobs': 1}})


def make_raw(rows):
    """SPC-style raw records from partial dicts"""
    defaults = {
        'om': 0, 'date': '2011-04-27', 'time': '15:00:00', 'tz': 3, 'st': 'AL',
        'mag': 1, 'inj': 0, 'fat': 0, 'slat': 33.0, 'slon': -87.0,
        'len': 2.0, 'wid': 100,
    }
    records = []
    for i, row in enumerate(rows):
        record = dict(defaults, om=i + 1)
        record.update(row)
        records.append(record)
    return pd.DataFrame(records)


def make_events(specs):
    """
    Prepared-style events from (datetime, x, y) tuples

    Extra per-event fields use simple deterministic values so that sums can
    be checked by hand: energy 1.0, casualties 1, one fatality, EF1.
    """
    datetimes = pd.to_datetime([spec[0] for spec in specs])
    events = pd.DataFrame({
        'event_id': np.arange(len(specs)),
        'datetime': datetimes,
        'x_proj': [float(spec[1]) for spec in specs],
        'y_proj': [float(spec[2]) for spec in specs],
    })
    events['date'] = events['datetime'].dt.normalize()
    early = events['datetime'].dt.hour < 6
    events['convective_date'] = (
        events['datetime'] - pd.to_timedelta(np.where(early, 24, 6), unit='h')
    ).dt.normalize()
    events['mag'] = 1
    events['energy_dissipation'] = 1.0
    events['casualties'] = 1
    events['fat'] = 1
    return events


def same_partition(a, b):
    """True when two label vectors group the same events together"""
    a = np.asarray(a)
    b = np.asarray(b)
    pairs = set(zip(a.tolist(), b.tolist()))
    return len(pairs) == len(set(a.tolist())) == len(set(b.tolist()))
