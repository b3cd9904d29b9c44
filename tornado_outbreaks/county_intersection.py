#!/usr/bin/env python3
"""
County intersection counts for big-day hulls
"""

import os
import logging
from dataclasses import dataclass
from pathlib import Path

import geopandas as gpd
import pandas as pd

logger = logging.getLogger('CountyIntersection')


@dataclass(frozen=True)
class CountyCounts:
    """Number of big-day hulls intersecting each county"""
    table: gpd.GeoDataFrame
    id_column: str

    def as_series(self):
        return self.table.set_index(self.id_column)['count']


def load_counties(county_path, target_crs, id_column='FIPS'):
    """Load county boundaries and reproject them to the working CRS"""
    county_path = Path(county_path)
    logger.info(f"Loading county data from {county_path}")

    if not county_path.exists():
        raise FileNotFoundError(f"County data file not found: {county_path}")

    # Configure GDAL for large files
    os.environ['OGR_GEOJSON_MAX_OBJ_SIZE'] = '0'

    counties_gdf = gpd.read_file(county_path)
    if id_column not in counties_gdf.columns:
        raise KeyError(f"County id column '{id_column}' not found in {county_path}")

    counties_gdf = counties_gdf.to_crs(target_crs)
    logger.info(f"Loaded {len(counties_gdf):,} counties")

    return counties_gdf


def count_hull_intersections(hulls_gdf, counties_gdf, id_column='FIPS'):
    """
    Count how many hulls intersect each county

    Args:
        hulls_gdf: GeoDataFrame of big-day hulls (Polygon, LineString or Point)
        counties_gdf: GeoDataFrame of county polygons in the same CRS
        id_column: county identifier column

    Returns:
        CountyCounts with every county, zero where no hull intersects it
    """
    if hulls_gdf.crs is not None and counties_gdf.crs is not None and hulls_gdf.crs != counties_gdf.crs:
        logger.info("Reprojecting hulls to county CRS")
        hulls_gdf = hulls_gdf.to_crs(counties_gdf.crs)

    counties = counties_gdf[[id_column, counties_gdf.geometry.name]].copy()
    hulls = hulls_gdf[[hulls_gdf.geometry.name]].copy()
    hulls['hull_index'] = range(len(hulls))

    if hulls.empty or counties.empty:
        counts = pd.Series(0, index=pd.Index(counties[id_column].unique(), name=id_column), name='count')
    else:
        # Spatial join uses the STRtree index on the hulls
        pairs = gpd.sjoin(counties, hulls, how='inner', predicate='intersects')
        counts = pairs.groupby(id_column)['hull_index'].nunique().rename('count')

    table = counties.merge(counts, left_on=id_column, right_index=True, how='left')
    table['count'] = table['count'].fillna(0).astype(int)

    n_hit = int((table['count'] > 0).sum())
    logger.info(f"{n_hit:,} of {len(table):,} counties intersect at least one big day")

    return CountyCounts(table.reset_index(drop=True), id_column)
