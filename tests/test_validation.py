#!/usr/bin/env python3

import json

import numpy as np
import pandas as pd
import pytest

from tornado_outbreaks.clustering import SingleLinkageClusterer
from tornado_outbreaks.outbreak_characterization import OutbreakCharacterization, OutbreakTables
from tornado_outbreaks.validation import ValidationFramework

from conftest import make_events


@pytest.fixture
def outbreak_events():
    """A 40-event afternoon outbreak plus three isolated reports weeks later"""
    start = pd.Timestamp('2011-04-27 15:00')
    specs = [
        (start + pd.Timedelta(minutes=5 * i), 2000.0 * (i % 5), 3000.0 * (i // 5))
        for i in range(40)
    ]
    specs += [
        (pd.Timestamp('2011-06-01 12:00'), 900000.0, 0.0),
        (pd.Timestamp('2011-07-01 12:00'), -900000.0, 0.0),
        (pd.Timestamp('2011-08-01 12:00'), 0.0, 900000.0),
    ]
    return make_events(specs)


@pytest.fixture
def clustered(config, outbreak_events):
    coords = outbreak_events[['x_proj', 'y_proj']].values
    times = outbreak_events['datetime'].values
    result = SingleLinkageClusterer(config).fit_predict(coords, times)
    return coords, times, result


def test_clustering_validation(config, tmp_path, clustered):
    coords, times, result = clustered
    report = ValidationFramework(config, tmp_path).validate_clustering(coords, times, result)

    assert report['n_groups'] == 4
    assert report['n_singletons'] == 3
    assert report['n_outbreak_sized'] == 1
    assert report['mst_edges_within_cut'] == 39
    assert report['separation']['separated'] is True
    assert report['separation']['min_between_group_distance_s'] > config['clustering']['cut_height_s']


def test_separation_check_can_be_skipped(config, tmp_path, clustered):
    coords, times, result = clustered
    config['validation']['check_separation'] = False

    report = ValidationFramework(config, tmp_path).validate_clustering(coords, times, result)

    assert report['separation'] is None


def test_outbreak_validation(config, tmp_path, outbreak_events, clustered):
    _, _, result = clustered
    tables = OutbreakCharacterization(config).characterize(outbreak_events, result.labels)

    report = ValidationFramework(config, tmp_path).validate_outbreaks(tables)

    assert report['total_outbreaks'] == 1
    assert report['total_big_days'] == 1
    assert report['degenerate_hulls'] == 0
    assert report['is_valid'] is True
    assert report['outbreak_statistics']['n_tornadoes']['max'] == 40.0


def test_undersized_tables_reported(config, tmp_path):
    groups = pd.DataFrame({'group_id': [0], 'n_tornadoes': [5]})
    days = pd.DataFrame({'group_id': [1], 'n_tornadoes': [3], 'hull_area_m2': [0.0]})

    report = ValidationFramework(config, tmp_path).validate_outbreaks(
        OutbreakTables(groups, days, pd.DataFrame())
    )

    assert report['is_valid'] is False
    assert report['degenerate_hulls'] == 1
    assert len(report['issues']) == 3


def test_report_written(config, tmp_path, clustered):
    coords, times, result = clustered
    validator = ValidationFramework(config, tmp_path)
    pipeline_results = {'clustering_validation': validator.validate_clustering(coords, times, result)}

    report_path = validator.generate_validation_report(pipeline_results)

    assert report_path == tmp_path / 'validation' / 'validation_report.json'
    with open(report_path) as f:
        report = json.load(f)
    assert report['clustering_validation']['n_groups'] == 4
    assert report['parameters']['clustering']['speed_m_per_s'] == 15.0
    assert np.isfinite(report['clustering_validation']['separation']['min_between_group_distance_s'])
