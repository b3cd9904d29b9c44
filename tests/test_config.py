#!/usr/bin/env python3

from pathlib import Path

import pytest
import yaml

from tornado_outbreaks.errors import ConfigError
from tornado_outbreaks.utils import (
    DEFAULT_CONFIG, build_config, load_config, validate_config, format_duration,
    save_checkpoint, load_checkpoint
)

ROOT = Path(__file__).resolve().parents[1]


def test_defaults_are_valid():
    config = build_config()
    assert config['clustering']['speed_m_per_s'] == 15.0
    assert config['clustering']['cut_height_s'] == 50000.0
    assert config['outbreaks']['min_group_size'] == 30
    assert config['outbreaks']['min_group_day_size'] == 10


def test_overrides_do_not_touch_defaults():
    config = build_config({'clustering': {'speed_m_per_s': 10.0}})
    assert config['clustering']['speed_m_per_s'] == 10.0
    assert config['clustering']['cut_height_s'] == 50000.0
    assert DEFAULT_CONFIG['clustering']['speed_m_per_s'] == 15.0


@pytest.mark.parametrize('overrides', [
    {'clustering': {'cut_height_s': -1.0}},
    {'clustering': {'speed_m_per_s': 0.0}},
    {'clustering': {'strategy': 'fastest'}},
    {'clustering': {'block_size': 0}},
    {'outbreaks': {'min_group_size': 0}},
    {'outbreaks': {'min_group_day_size': 0}},
    {'outbreaks': {'top_fraction': 1.5}},
    {'preprocessing': {'on_parse_error': 'ignore'}},
    {'preprocessing': {'imputation_length_threshold_mi': -5.0}},
    {'study_area': {'bounding_box': [-66.0, 24.0, -125.0, 50.0]}},
    {'study_area': {'bounding_box': [-125.0, 24.0, -66.0]}},
    {'study_area': {'start_year': '1994'}},
])
def test_invalid_settings_rejected(overrides):
    with pytest.raises(ConfigError):
        build_config(overrides)


def test_validate_config_after_mutation():
    config = build_config()
    config['outbreaks']['top_fraction'] = 0.0
    with pytest.raises(ConfigError):
        validate_config(config)


def test_load_config_merges_yaml(tmp_path):
    path = tmp_path / 'config.yaml'
    path.write_text(yaml.safe_dump({
        'clustering': {'speed_m_per_s': 10.0},
        'outbreaks': {'min_group_size': 20},
    }))

    config = load_config(path)

    assert config['clustering']['speed_m_per_s'] == 10.0
    assert config['clustering']['strategy'] == 'auto'
    assert config['outbreaks']['min_group_size'] == 20
    assert config['outbreaks']['min_group_day_size'] == 10


def test_load_config_errors(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / 'missing.yaml')

    path = tmp_path / 'list.yaml'
    path.write_text('- a\n- b\n')
    with pytest.raises(ConfigError):
        load_config(path)


def test_shipped_config_is_valid():
    config = load_config(ROOT / 'config' / 'config.yaml')
    assert config['counties']['id_column'] == 'FIPS'


def test_checkpoint_round_trip(tmp_path):
    path = tmp_path / 'stage1.pkl'
    save_checkpoint({'labels': [0, 0, 1]}, path, {'stage': 1})

    data, meta = load_checkpoint(path)

    assert data == {'labels': [0, 0, 1]}
    assert meta == {'stage': 1}


def test_format_duration():
    assert format_duration(5) == '5s'
    assert format_duration(125) == '2m 5s'
    assert format_duration(3725) == '1h 2m 5s'
