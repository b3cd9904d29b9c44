#!/usr/bin/env python3
"""
Validation and quality assessment module for tornado outbreak clustering
"""

import numpy as np
import json
import logging
from pathlib import Path
from datetime import datetime

from .distance import iter_distance_blocks, to_seconds


def _describe(values):
    """Mean, spread and percentiles of a numeric column as plain floats"""
    values = np.asarray(values, dtype=float)
    values = values[np.isfinite(values)]
    if values.size == 0:
        return {}
    return {
        'mean': float(values.mean()),
        'std': float(values.std()),
        'min': float(values.min()),
        'max': float(values.max()),
        'percentiles': {
            '25': float(np.percentile(values, 25)),
            '50': float(np.percentile(values, 50)),
            '75': float(np.percentile(values, 75)),
            '90': float(np.percentile(values, 90))
        }
    }


class ValidationFramework:
    """
    Validate clustering results and outbreak tables and write quality reports
    """

    def __init__(self, config, output_dir):
        self.config = config
        self.output_dir = Path(output_dir)
        self.logger = logging.getLogger('ValidationFramework')

        # Validation settings
        self.validation_config = config['validation']
        self.outbreak_config = config['outbreaks']
        self.block_size = config['clustering']['block_size']
        self.n_jobs = config['processing']['n_jobs']

        # Create validation output directory
        self.validation_dir = self.output_dir / 'validation'
        self.validation_dir.mkdir(parents=True, exist_ok=True)

    def validate_clustering(self, coords, times, result):
        """
        Check the clustering result against single-linkage guarantees
        """
        self.logger.info("Starting clustering validation")

        sizes = result.group_sizes().values if result.n_events else np.zeros(0)
        validation_results = {
            'timestamp': datetime.now().isoformat(),
            'total_events': result.n_events,
            'n_groups': result.n_groups,
            'n_singletons': int((sizes == 1).sum()),
            'n_outbreak_sized': int((sizes >= self.outbreak_config['min_group_size']).sum()),
            'group_size_distribution': _describe(sizes),
            'mst_edges_within_cut': int((result.edges[:, 2] <= result.cut_height).sum()),
            'separation': None
        }

        if (self.validation_config['check_separation'] and
                result.n_events <= self.validation_config['max_separation_events']):
            validation_results['separation'] = self._check_separation(coords, times, result)
        else:
            self.logger.info("Skipping separation check")

        return validation_results

    def _check_separation(self, coords, times, result):
        """Every pair of events in different groups must be farther apart than the cut"""
        seconds = to_seconds(times)
        labels = np.asarray(result.labels)
        min_between = np.inf

        for start, stop, block in iter_distance_blocks(
                coords, seconds, result.speed, self.block_size, self.n_jobs):
            different = labels[start:stop, np.newaxis] != labels[np.newaxis, :]
            if different.any():
                min_between = min(min_between, float(block[different].min()))

        separated = bool(min_between > result.cut_height)
        if not separated:
            self.logger.warning(f"Groups closer than the cut height: {min_between:.1f} s "
                                f"<= {result.cut_height:.1f} s")

        return {
            'min_between_group_distance_s': None if np.isinf(min_between) else min_between,
            'separated': separated
        }

    def validate_outbreaks(self, tables):
        """Validate group and big-day tables"""
        groups_df = tables.groups
        group_days_df = tables.group_days
        self.logger.info(f"Validating {len(groups_df)} outbreaks and {len(group_days_df)} big days")

        min_group = self.outbreak_config['min_group_size']
        min_day = self.outbreak_config['min_group_day_size']

        issues = []
        undersized_groups = groups_df[groups_df['n_tornadoes'] < min_group]
        if len(undersized_groups):
            issues.append(f"{len(undersized_groups)} groups below {min_group} tornadoes")
        undersized_days = group_days_df[group_days_df['n_tornadoes'] < min_day]
        if len(undersized_days):
            issues.append(f"{len(undersized_days)} big days below {min_day} tornadoes")

        if len(group_days_df):
            degenerate = int((group_days_df['hull_area_m2'] <= 0).sum())
            orphan_days = ~group_days_df['group_id'].isin(groups_df['group_id'])
            if orphan_days.any():
                issues.append(f"{int(orphan_days.sum())} big days without a retained group")
        else:
            degenerate = 0

        validation_results = {
            'total_outbreaks': len(groups_df),
            'total_big_days': len(group_days_df),
            'degenerate_hulls': degenerate,
            'outbreak_statistics': {
                col: _describe(groups_df[col])
                for col in ('n_tornadoes', 'ate', 'duration_hours', 'n_convective_days')
                if col in groups_df.columns and len(groups_df)
            },
            'big_day_statistics': {
                col: _describe(group_days_df[col])
                for col in ('n_tornadoes', 'ate', 'hull_area_km2', 'density_per_km2', 'casualties')
                if col in group_days_df.columns and len(group_days_df)
            },
            'issues': issues,
            'is_valid': not issues
        }

        for issue in issues:
            self.logger.warning(issue)

        return validation_results

    def generate_validation_report(self, pipeline_results):
        """Write the validation sections of the pipeline results to JSON"""
        report = {
            'generated': datetime.now().isoformat(),
            'clustering_validation': pipeline_results.get('clustering_validation'),
            'outbreak_validation': pipeline_results.get('outbreak_validation'),
            'parameters': {
                'clustering': self.config['clustering'],
                'outbreaks': self.outbreak_config
            }
        }

        report_path = self.validation_dir / 'validation_report.json'
        with open(report_path, 'w') as f:
            json.dump(report, f, indent=2, default=str)

        self.logger.info(f"Validation report saved to {report_path}")
        return report_path
