#!/usr/bin/env python3
"""
Utility functions for tornado outbreak clustering
"""

import sys
import copy
import yaml
import pickle
import logging
import psutil
import time
from datetime import datetime
from pathlib import Path
import pyproj

from .errors import ConfigError

# US Lambert conformal conic, NAD83, metres
DEFAULT_PROJECTION = (
    "+proj=lcc +lat_1=33 +lat_2=45 +lat_0=39 +lon_0=-96 "
    "+x_0=0 +y_0=0 +datum=NAD83 +units=m +no_defs"
)

DEFAULT_CONFIG = {
    'data': {
        'tornado_data_path': 'data/1950-2017_actual_tornadoes.csv',
        'county_data_path': None,
        'output_base_dir': 'outputs',
    },
    'study_area': {
        'start_year': 1994,
        'excluded_states': ['AK', 'HI', 'PR', 'VI'],
        'bounding_box': [-125.0, 24.0, -66.0, 50.0],
        'projection_crs': DEFAULT_PROJECTION,
    },
    'preprocessing': {
        'imputation_length_threshold_mi': 5.0,
        'width_correction_year': 1995,
        'on_parse_error': 'raise',
    },
    'clustering': {
        'speed_m_per_s': 15.0,
        'cut_height_s': 50000.0,
        'strategy': 'auto',
        'dense_max_events': 20000,
        'block_size': 2048,
        'run_sensitivity': False,
        'sensitivity_speeds': [10.0, 15.0],
        'sensitivity_heights': [25000.0, 50000.0, 100000.0],
    },
    'outbreaks': {
        'min_group_size': 30,
        'min_group_day_size': 10,
        'top_fraction': 0.1,
    },
    'validation': {
        'check_separation': True,
        'max_separation_events': 20000,
    },
    'counties': {
        'id_column': 'FIPS',
    },
    'processing': {
        'n_jobs': 1,
    },
    'output': {
        'export_formats': ['csv'],
        'save_geometries': True,
    },
    'checkpoint': {
        'enable_checkpointing': True,
        'max_checkpoint_age_days': 0,
    },
    'logging': {
        'log_level': 'INFO',
        'log_file': None,
        'report_interval_seconds': 60,
    },
}

PARSE_ERROR_POLICIES = ('raise', 'skip')
CLUSTERING_STRATEGIES = ('auto', 'dense', 'streaming')


class PerformanceMonitor:
    """Monitor system resource usage"""

    def __init__(self, log_interval=60):
        self.log_interval = log_interval
        self.start_time = time.time()
        self.last_log_time = self.start_time
        self.logger = logging.getLogger('PerformanceMonitor')

    def log_resources(self, force=False):
        """Log current resource usage"""
        current_time = time.time()
        if not force and (current_time - self.last_log_time) < self.log_interval:
            return

        cpu_percent = psutil.cpu_percent(interval=None)
        memory = psutil.virtual_memory()
        process_rss = psutil.Process().memory_info().rss

        elapsed = (current_time - self.start_time) / 60
        self.logger.info(
            f"Resources - Elapsed: {elapsed:.1f} min | "
            f"CPU: {cpu_percent}% | "
            f"RAM: {memory.used/1e9:.1f}/{memory.total/1e9:.1f} GB ({memory.percent}%) | "
            f"Process: {process_rss/1e9:.2f} GB"
        )
        self.last_log_time = current_time


class SpatialUtils:
    """Utilities for spatial operations"""

    def __init__(self, target_crs=DEFAULT_PROJECTION):
        self.wgs84 = pyproj.CRS('EPSG:4326')
        self.target_crs = pyproj.CRS.from_user_input(target_crs)
        self.transformer_to_target = pyproj.Transformer.from_crs(
            self.wgs84, self.target_crs, always_xy=True
        )
        self.transformer_to_wgs84 = pyproj.Transformer.from_crs(
            self.target_crs, self.wgs84, always_xy=True
        )

    def transform_points(self, lons, lats, to_target=True):
        """Transform points between coordinate systems"""
        if to_target:
            return self.transformer_to_target.transform(lons, lats)
        else:
            return self.transformer_to_wgs84.transform(lons, lats)


def _deep_merge(base, override):
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def build_config(overrides=None):
    """Merge overrides onto DEFAULT_CONFIG and validate the result"""
    config = _deep_merge(DEFAULT_CONFIG, overrides)
    validate_config(config)
    return config


def load_config(config_path):
    """Load configuration from YAML file"""
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f) or {}

    if not isinstance(config, dict):
        raise ConfigError(f"Expected YAML mapping at {config_path}")

    return build_config(config)


def validate_config(config):
    """Check every threshold the pipeline depends on, raising ConfigError"""
    study = config['study_area']
    prep = config['preprocessing']
    cluster = config['clustering']
    outbreaks = config['outbreaks']

    if not isinstance(study['start_year'], int):
        raise ConfigError(f"study_area.start_year must be an integer, got {study['start_year']!r}")

    bbox = study.get('bounding_box')
    if bbox is not None:
        if len(bbox) != 4:
            raise ConfigError("study_area.bounding_box must be [west, south, east, north]")
        west, south, east, north = bbox
        if west >= east or south >= north:
            raise ConfigError(f"study_area.bounding_box is empty: {bbox}")

    if prep['imputation_length_threshold_mi'] < 0:
        raise ConfigError("preprocessing.imputation_length_threshold_mi must be >= 0")
    if prep['on_parse_error'] not in PARSE_ERROR_POLICIES:
        raise ConfigError(
            f"preprocessing.on_parse_error must be one of {PARSE_ERROR_POLICIES}, "
            f"got {prep['on_parse_error']!r}"
        )

    if not cluster['speed_m_per_s'] > 0:
        raise ConfigError(f"clustering.speed_m_per_s must be positive, got {cluster['speed_m_per_s']}")
    if cluster['cut_height_s'] < 0:
        raise ConfigError(f"clustering.cut_height_s must be non-negative, got {cluster['cut_height_s']}")
    if cluster['strategy'] not in CLUSTERING_STRATEGIES:
        raise ConfigError(
            f"clustering.strategy must be one of {CLUSTERING_STRATEGIES}, got {cluster['strategy']!r}"
        )
    if cluster['block_size'] < 1:
        raise ConfigError("clustering.block_size must be >= 1")

    for key in ('min_group_size', 'min_group_day_size'):
        if outbreaks[key] < 1:
            raise ConfigError(f"outbreaks.{key} must be >= 1, got {outbreaks[key]}")
    if not 0 < outbreaks['top_fraction'] <= 1:
        raise ConfigError(f"outbreaks.top_fraction must be in (0, 1], got {outbreaks['top_fraction']}")

    return config


def setup_logging(config):
    """Setup logging configuration"""
    log_config = config.get('logging', {})
    log_level = getattr(logging, log_config.get('log_level', 'INFO'))
    log_file = log_config.get('log_file')

    # Create formatters
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    console_formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    # Setup root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # File handler
    if log_file:
        fh = logging.FileHandler(log_file)
        fh.setLevel(log_level)
        fh.setFormatter(file_formatter)
        root_logger.addHandler(fh)

    # Console handler
    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(log_level)
    ch.setFormatter(console_formatter)
    root_logger.addHandler(ch)

    return root_logger


def create_output_directory(config):
    """Create output directory structure"""
    base_dir = config['data']['output_base_dir']
    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    speed = config['clustering']['speed_m_per_s']

    run_dir = Path(base_dir) / f"run_v{speed:g}_{timestamp}"

    # Create subdirectories
    subdirs = ['tables', 'geometry', 'validation', 'checkpoints', 'logs']
    for subdir in subdirs:
        (run_dir / subdir).mkdir(parents=True, exist_ok=True)

    return run_dir


def save_checkpoint(data, checkpoint_path, metadata=None):
    """Save checkpoint for recovery"""
    checkpoint = {
        'timestamp': datetime.now().isoformat(),
        'data': data,
        'metadata': metadata or {}
    }

    with open(checkpoint_path, 'wb') as f:
        pickle.dump(checkpoint, f)

    logging.info(f"Checkpoint saved to {checkpoint_path}")


def load_checkpoint(checkpoint_path):
    """Load checkpoint for recovery"""
    with open(checkpoint_path, 'rb') as f:
        checkpoint = pickle.load(f)

    logging.info(f"Checkpoint loaded from {checkpoint_path}")
    return checkpoint['data'], checkpoint['metadata']


def format_duration(seconds):
    """Format duration in human-readable format"""
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)

    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    elif minutes > 0:
        return f"{minutes}m {secs}s"
    else:
        return f"{secs}s"
