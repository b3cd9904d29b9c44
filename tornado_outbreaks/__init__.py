"""
Tornado Outbreak Clustering System
Single-linkage space-time clustering of SPC tornado reports
"""

__version__ = "1.0.0"
__author__ = "Tornado Outbreak Analysis Team"

# Import main components
from .data_preparation import EventPreparation, PreparedEvents
from .clustering import SingleLinkageClusterer, ClusteringResult
from .outbreak_characterization import OutbreakCharacterization, OutbreakTables
from .county_intersection import count_hull_intersections, load_counties, CountyCounts
from .validation import ValidationFramework
from .errors import OutbreakError, ParseError, GeometryError, ConfigError
from .utils import (
    load_config,
    build_config,
    setup_logging,
    create_output_directory,
    PerformanceMonitor,
    SpatialUtils
)

__all__ = [
    'EventPreparation',
    'PreparedEvents',
    'SingleLinkageClusterer',
    'ClusteringResult',
    'OutbreakCharacterization',
    'OutbreakTables',
    'count_hull_intersections',
    'load_counties',
    'CountyCounts',
    'ValidationFramework',
    'OutbreakError',
    'ParseError',
    'GeometryError',
    'ConfigError',
    'load_config',
    'build_config',
    'setup_logging',
    'create_output_directory',
    'PerformanceMonitor',
    'SpatialUtils'
]
