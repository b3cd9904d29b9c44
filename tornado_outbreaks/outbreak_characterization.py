#!/usr/bin/env python3
"""
Outbreak characterization module
Rolls clustered tornado events up into outbreak (group) and big-day
(group, convective day) records with energy, casualty and hull geometry metrics
"""

import math
import numpy as np
import pandas as pd
import geopandas as gpd
from shapely.geometry import MultiPoint
from joblib import Parallel, delayed
import logging
from dataclasses import dataclass
from tqdm import tqdm

from .errors import GeometryError
from .utils import SpatialUtils

RATINGS = range(6)


@dataclass(frozen=True)
class OutbreakTables:
    """Outbreak and big-day tables produced by one characterization run"""
    groups: pd.DataFrame
    group_days: pd.DataFrame
    events: pd.DataFrame


def convex_hull(points):
    """
    Convex hull of planar points

    One distinct point gives a Point and two (or collinear) points give a
    LineString, both with zero area.
    """
    points = np.asarray(points, dtype=float).reshape(-1, 2)
    if len(points) == 0:
        raise GeometryError("Cannot build a convex hull from zero points")
    return MultiPoint(points).convex_hull


def hull_metrics(points):
    """Hull geometry, area, centroid and event density for one big day"""
    hull = convex_hull(points)
    area_m2 = hull.area
    area_km2 = area_m2 / 1e6
    centroid = hull.centroid

    return {
        'hull': hull,
        'hull_area_m2': area_m2,
        'hull_area_km2': area_km2,
        'centroid_x': centroid.x,
        'centroid_y': centroid.y,
        'density_per_km2': len(points) / area_km2 if area_km2 > 0 else np.inf
    }


class OutbreakCharacterization:
    """
    Generate outbreak and big-day records from clustered tornado events
    """

    def __init__(self, config):
        self.config = config
        self.logger = logging.getLogger('OutbreakCharacterization')
        self.spatial_utils = SpatialUtils(config['study_area']['projection_crs'])

        outbreak_config = config['outbreaks']
        self.min_group_size = outbreak_config['min_group_size']
        self.min_group_day_size = outbreak_config['min_group_day_size']
        self.top_fraction = outbreak_config['top_fraction']
        self.n_jobs = config['processing']['n_jobs']

    def _label_events(self, events, labels):
        labels = np.asarray(labels)
        if len(labels) != len(events):
            raise ValueError(f"Got {len(labels)} labels for {len(events)} events")
        return events.assign(group_id=labels)

    def characterize_groups(self, events, labels):
        """
        Group-level rollup of clustered events

        Args:
            events: prepared events DataFrame
            labels: group label per event

        Returns:
            groups_df: one row per group with at least min_group_size events
        """
        labeled = self._label_events(events, labels)
        if labeled.empty:
            return self._empty_groups()

        groups_df = labeled.groupby('group_id').agg(
            first_date=('date', 'min'),
            last_date=('date', 'max'),
            n_tornadoes=('event_id', 'size'),
            ate=('energy_dissipation', 'sum'),
            max_ed=('energy_dissipation', 'max'),
            mean_ed=('energy_dissipation', 'mean'),
            n_days=('date', 'nunique'),
            n_convective_days=('convective_date', 'nunique'),
            start_time=('datetime', 'min'),
            end_time=('datetime', 'max'),
            casualties=('casualties', 'sum'),
            fatalities=('fat', 'sum')
        )

        # Tornado counts per EF rating
        rating_counts = (
            pd.crosstab(labeled['group_id'], labeled['mag'])
            .reindex(columns=list(RATINGS), fill_value=0)
        )
        rating_counts.columns = [f'n_ef{rating}' for rating in RATINGS]
        groups_df = groups_df.join(rating_counts)

        n_total = len(groups_df)
        groups_df = groups_df[groups_df['n_tornadoes'] >= self.min_group_size]
        self.logger.info(f"Groups with >= {self.min_group_size} tornadoes: "
                         f"{len(groups_df):,} of {n_total:,}")

        groups_df = groups_df.reset_index()
        groups_df['duration_s'] = (groups_df['end_time'] - groups_df['start_time']).dt.total_seconds()
        groups_df['duration_hours'] = groups_df['duration_s'] / 3600
        groups_df['year'] = groups_df['first_date'].dt.year
        groups_df['month'] = groups_df['first_date'].dt.month
        groups_df['name'] = (
            groups_df['first_date'].dt.strftime('%Y-%m-%d') + ' to ' +
            groups_df['last_date'].dt.strftime('%Y-%m-%d')
        )

        return groups_df.sort_values('start_time').reset_index(drop=True)

    def characterize_group_days(self, events, labels, groups_df):
        """
        Big-day rollup: (group, convective day) pairs within retained groups

        Returns:
            group_days_df: one row per big day with hull geometry
        """
        labeled = self._label_events(events, labels)
        labeled = labeled[labeled['group_id'].isin(groups_df['group_id'])]
        if labeled.empty:
            return self._empty_group_days()

        keys = ['group_id', 'convective_date']
        grouped = labeled.groupby(keys)
        days_df = grouped.agg(
            n_tornadoes=('event_id', 'size'),
            ate=('energy_dissipation', 'sum'),
            max_ed=('energy_dissipation', 'max'),
            mean_ed=('energy_dissipation', 'mean'),
            casualties=('casualties', 'sum'),
            fatalities=('fat', 'sum'),
            start_time=('datetime', 'min'),
            end_time=('datetime', 'max')
        )

        n_total = len(days_df)
        days_df = days_df[days_df['n_tornadoes'] >= self.min_group_day_size]
        self.logger.info(f"Group-days with >= {self.min_group_day_size} tornadoes: "
                         f"{len(days_df):,} of {n_total:,}")
        if days_df.empty:
            return self._empty_group_days()

        # Hull geometry, one independent task per big day
        point_sets = [
            grouped.get_group(key)[['x_proj', 'y_proj']].values
            for key in days_df.index
        ]
        geometry = Parallel(n_jobs=self.n_jobs, prefer='threads')(
            delayed(hull_metrics)(points)
            for points in tqdm(point_sets, desc="Big-day hulls", disable=len(point_sets) < 100)
        )
        geometry_df = pd.DataFrame(geometry, index=days_df.index)
        days_df = days_df.join(geometry_df).reset_index()

        lons, lats = self.spatial_utils.transform_points(
            days_df['centroid_x'].values, days_df['centroid_y'].values, to_target=False
        )
        days_df['centroid_lon'] = lons
        days_df['centroid_lat'] = lats
        days_df['year'] = days_df['convective_date'].dt.year
        days_df['month'] = days_df['convective_date'].dt.month

        return self.rank_group_days(days_df)

    def rank_group_days(self, group_days_df, top_fraction=None):
        """Rank big days by accumulated tornado energy and flag the top fraction"""
        top_fraction = self.top_fraction if top_fraction is None else top_fraction
        ranked = group_days_df.copy()
        if ranked.empty:
            ranked['ate_rank'] = pd.Series(dtype=int)
            ranked['is_top'] = pd.Series(dtype=bool)
            return ranked

        ranked['ate_rank'] = ranked['ate'].rank(ascending=False, method='first').astype(int)
        n_top = max(1, math.ceil(top_fraction * len(ranked)))
        ranked['is_top'] = ranked['ate_rank'] <= n_top

        return ranked.sort_values(['group_id', 'convective_date']).reset_index(drop=True)

    def characterize(self, events, labels):
        """
        Full rollup of clustered events

        Returns:
            OutbreakTables with groups, group days and the member events of
            retained groups (group_id attached)
        """
        self.logger.info("Characterizing tornado outbreaks")

        groups_df = self.characterize_groups(events, labels)
        group_days_df = self.characterize_group_days(events, labels, groups_df)

        labeled = self._label_events(events, labels)
        outbreak_events = labeled[labeled['group_id'].isin(groups_df['group_id'])].reset_index(drop=True)

        self.logger.info(f"Generated {len(groups_df)} outbreaks, {len(group_days_df)} big days "
                         f"from {len(outbreak_events):,} events")

        return OutbreakTables(groups_df, group_days_df, outbreak_events)

    def to_geodataframe(self, group_days_df):
        """Big days as a GeoDataFrame of hulls in the working projection"""
        return gpd.GeoDataFrame(
            group_days_df.copy(),
            geometry='hull',
            crs=self.spatial_utils.target_crs
        )

    def _empty_groups(self):
        columns = [
            'group_id', 'first_date', 'last_date', 'n_tornadoes', 'ate', 'max_ed', 'mean_ed',
            'n_days', 'n_convective_days', 'start_time', 'end_time', 'casualties', 'fatalities'
        ] + [f'n_ef{rating}' for rating in RATINGS] + [
            'duration_s', 'duration_hours', 'year', 'month', 'name'
        ]
        return pd.DataFrame(columns=columns)

    def _empty_group_days(self):
        columns = [
            'group_id', 'convective_date', 'n_tornadoes', 'ate', 'max_ed', 'mean_ed',
            'casualties', 'fatalities', 'start_time', 'end_time', 'hull', 'hull_area_m2',
            'hull_area_km2', 'centroid_x', 'centroid_y', 'density_per_km2',
            'centroid_lon', 'centroid_lat', 'year', 'month', 'ate_rank', 'is_top'
        ]
        return pd.DataFrame(columns=columns)
