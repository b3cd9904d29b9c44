#!/usr/bin/env python3
"""
Data preparation module for tornado outbreak clustering
Handles data loading, record validation, filtering and per-event derived fields
"""

import numpy as np
import pandas as pd
import logging
from dataclasses import dataclass
from pathlib import Path

from .energy import energy_dissipation
from .errors import ParseError
from .utils import SpatialUtils

MILES_TO_METERS = 1609.344
YARDS_TO_METERS = 0.9144
MISSING_RATING = -9

REQUIRED_FIELDS = ['date', 'time', 'slat', 'slon', 'mag', 'len', 'wid', 'inj', 'fat']
NUMERIC_FIELDS = ['slat', 'slon', 'len', 'wid', 'inj', 'fat']
TIMESTAMP_FORMATS = ['%Y-%m-%d %H:%M:%S', '%Y-%m-%d %H:%M']


@dataclass(frozen=True)
class PreparedEvents:
    """Cleaned tornado events ready for clustering"""
    events: pd.DataFrame
    n_raw: int
    n_skipped: int
    min_length_m: float
    min_width_m: float

    def __len__(self):
        return len(self.events)


def convective_date(datetimes):
    """
    Convective day (06:00 to 06:00) of each timestamp

    Events before 06:00 belong to the previous calendar day.
    """
    datetimes = pd.to_datetime(pd.Series(datetimes))
    early = datetimes.dt.hour < 6
    shifted = datetimes - pd.Timedelta(hours=6)
    shifted[early] = datetimes[early] - pd.Timedelta(hours=24)
    return shifted.dt.normalize()


def impute_rating(mag, length_mi, threshold_mi=5.0):
    """Replace missing EF ratings: short paths become EF0, long paths EF1"""
    mag = pd.Series(mag, dtype=float)
    length_mi = pd.Series(length_mi, index=mag.index, dtype=float)
    missing = mag.isna() | (mag == MISSING_RATING)

    imputed = mag.copy()
    imputed[missing & (length_mi <= threshold_mi)] = 0
    imputed[missing & (length_mi > threshold_mi)] = 1
    return imputed.astype(int), missing


def replace_zeros(values):
    """Replace zeros by the smallest positive value present"""
    values = pd.Series(values, dtype=float)
    positive = values[values > 0]
    if positive.empty:
        raise ValueError("No positive values to substitute for zeros")
    minimum = positive.min()
    return values.mask(values <= 0, minimum), minimum


class EventPreparation:
    """Handle tornado record loading and preprocessing"""

    def __init__(self, config):
        self.config = config
        self.logger = logging.getLogger('EventPreparation')
        self.spatial_utils = SpatialUtils(config['study_area']['projection_crs'])

        self.study_area = config['study_area']
        self.prep_params = config['preprocessing']
        self.on_parse_error = self.prep_params['on_parse_error']

    def load_events(self, tornado_path=None):
        """Load the SPC tornado CSV"""
        tornado_path = Path(tornado_path or self.config['data']['tornado_data_path'])
        self.logger.info(f"Loading tornado data from {tornado_path}")

        if not tornado_path.exists():
            raise FileNotFoundError(f"Tornado data file not found: {tornado_path}")

        raw_df = pd.read_csv(tornado_path, dtype={'date': str, 'time': str, 'st': str})
        self.logger.info(f"Loaded {len(raw_df):,} tornado records")

        return raw_df

    def prepare(self, raw_df):
        """
        Validate, filter and derive per-event quantities

        Args:
            raw_df: DataFrame with SPC-style columns (date, time, slat, slon,
                    mag, len, wid, inj, fat and optionally om, st)

        Returns:
            PreparedEvents holding a new DataFrame; raw_df is left untouched
        """
        n_raw = len(raw_df)
        missing = [field for field in REQUIRED_FIELDS if field not in raw_df.columns]
        if missing:
            raise ParseError(None, ','.join(missing),
                             message=f"Missing required fields: {', '.join(missing)}")

        df = raw_df.copy()
        df['record_id'] = df['om'] if 'om' in df.columns else df.index
        # Later steps align rows by label, so labels must be unique
        df = df.reset_index(drop=True)

        # Parse fields
        df = self._parse_numeric_fields(df)
        df = self._parse_timestamps(df)
        n_skipped = n_raw - len(df)

        # Apply filters
        df = self._apply_study_filters(df)

        if df.empty:
            self.logger.warning("No tornado records remain after filtering")
            return PreparedEvents(self._empty_events(df), n_raw, n_skipped, np.nan, np.nan)

        # Add derived fields
        df, min_length, min_width = self._add_path_fields(df)
        df = self._add_computed_fields(df)

        # Sort by datetime
        df = df.sort_values(['datetime', 'record_id'], kind='mergesort').reset_index(drop=True)
        df['event_id'] = np.arange(len(df))

        self.logger.info(f"After preprocessing: {len(df):,} events remain "
                         f"({n_skipped:,} records skipped)")

        return PreparedEvents(df, n_raw, n_skipped, float(min_length), float(min_width))

    def _reject(self, df, bad, field, values):
        """Apply the parse-error policy to records flagged as bad"""
        if not bad.any():
            return df

        if self.on_parse_error == 'raise':
            first = bad[bad].index[0]
            raise ParseError(df.at[first, 'record_id'], field, values.at[first])

        for idx in bad[bad].index:
            self.logger.warning(f"Skipping record {df.at[idx, 'record_id']}: "
                                f"unparseable {field} ({values.at[idx]!r})")
        return df[~bad].copy()

    def _parse_numeric_fields(self, df):
        for field in NUMERIC_FIELDS:
            raw = df[field]
            parsed = pd.to_numeric(raw, errors='coerce')
            df = self._reject(df, parsed.isna(), field, raw)
            df[field] = parsed[df.index]

        # Missing rating is allowed and imputed later
        raw = df['mag']
        parsed = pd.to_numeric(raw, errors='coerce')
        unparseable = parsed.isna() & raw.notna() & (raw.astype(str).str.strip() != '')
        out_of_range = parsed.notna() & (parsed != MISSING_RATING) & ~(parsed.between(0, 5) & (parsed % 1 == 0))
        df = self._reject(df, unparseable | out_of_range, 'mag', raw)
        df['mag'] = parsed[df.index].fillna(MISSING_RATING)

        return df

    def _parse_timestamps(self, df):
        stamp = df['date'].astype(str).str.strip() + ' ' + df['time'].astype(str).str.strip()

        parsed = pd.Series(pd.NaT, index=df.index, dtype='datetime64[ns]')
        for fmt in TIMESTAMP_FORMATS:
            todo = parsed.isna()
            if not todo.any():
                break
            parsed[todo] = pd.to_datetime(stamp[todo], format=fmt, errors='coerce')

        df = self._reject(df, parsed.isna(), 'date/time', stamp)
        df['datetime'] = parsed[df.index]
        return df

    def _apply_study_filters(self, df):
        """Apply start-year, excluded-region and bounding box filters"""
        initial_count = len(df)

        start_year = self.study_area['start_year']
        df = df[df['datetime'].dt.year >= start_year]
        self.logger.info(f"Start year filter (>={start_year}): {initial_count:,} -> {len(df):,}")

        excluded = self.study_area.get('excluded_states') or []
        if excluded and 'st' in df.columns:
            df = df[~df['st'].isin(excluded)]
            self.logger.info(f"Excluded states {excluded}: -> {len(df):,}")

        bbox = self.study_area.get('bounding_box')
        if bbox:
            west, south, east, north = bbox
            mask = (
                (df['slon'] >= west) &
                (df['slon'] <= east) &
                (df['slat'] >= south) &
                (df['slat'] <= north)
            )
            df = df[mask]
            self.logger.info(f"Geographic filter {bbox}: -> {len(df):,}")

        return df.copy()

    def _add_path_fields(self, df):
        """Rating imputation, unit conversion, width correction and zero guard"""
        threshold = self.prep_params['imputation_length_threshold_mi']
        df['mag'], df['mag_imputed'] = impute_rating(df['mag'], df['len'], threshold)
        self.logger.info(f"Imputed EF rating for {int(df['mag_imputed'].sum()):,} events")

        df['length_m'] = df['len'] * MILES_TO_METERS
        width_m = df['wid'] * YARDS_TO_METERS
        # Average width before the correction year, maximum width from then on
        corrected = df['datetime'].dt.year >= self.prep_params['width_correction_year']
        df['width_m'] = width_m.where(~corrected, width_m * np.pi / 4)

        for field, column in (('len', 'length_m'), ('wid', 'width_m')):
            if not (df[column] > 0).any():
                raise ParseError(None, field, message=(
                    f"No record has a positive '{field}', cannot replace zero path dimensions"
                ))
        df['length_m'], min_length = replace_zeros(df['length_m'])
        df['width_m'], min_width = replace_zeros(df['width_m'])

        df['area_m2'] = df['length_m'] * df['width_m']
        df['energy_dissipation'] = energy_dissipation(df['mag'].values, df['area_m2'].values)

        return df, min_length, min_width

    def _add_computed_fields(self, df):
        """Add time and location fields"""
        df['date'] = df['datetime'].dt.normalize()
        df['convective_date'] = convective_date(df['datetime']).values
        df['year'] = df['datetime'].dt.year
        df['month'] = df['datetime'].dt.month
        df['hour'] = df['datetime'].dt.hour

        df['inj'] = df['inj'].astype(int)
        df['fat'] = df['fat'].astype(int)
        df['casualties'] = df['inj'] + df['fat']

        # Projected coordinates
        x, y = self.spatial_utils.transform_points(
            df['slon'].values,
            df['slat'].values,
            to_target=True
        )
        df['x_proj'] = x
        df['y_proj'] = y

        return df

    def _empty_events(self, df):
        columns = list(df.columns) + [
            'mag_imputed', 'length_m', 'width_m', 'area_m2', 'energy_dissipation',
            'convective_date', 'year', 'month', 'hour', 'casualties',
            'x_proj', 'y_proj', 'event_id'
        ]
        return pd.DataFrame(columns=list(dict.fromkeys(columns)))

    def prepare_for_clustering(self, events):
        """Extract the arrays the clusterer needs"""
        coords = events[['x_proj', 'y_proj']].values.astype(float)
        times = events['datetime'].values
        return coords, times

    def get_data_summary(self, prepared):
        """Generate summary statistics of prepared events"""
        events = prepared.events
        summary = {
            'raw_records': prepared.n_raw,
            'skipped_records': prepared.n_skipped,
            'total_events': len(events),
        }
        if events.empty:
            return summary

        summary.update({
            'date_range': {
                'start': events['datetime'].min().isoformat(),
                'end': events['datetime'].max().isoformat(),
            },
            'rating_counts': {
                f"EF{int(k)}": int(v) for k, v in events['mag'].value_counts().sort_index().items()
            },
            'imputed_ratings': int(events['mag_imputed'].sum()),
            'min_length_m': prepared.min_length_m,
            'min_width_m': prepared.min_width_m,
            'energy_stats': {
                'total': float(events['energy_dissipation'].sum()),
                'mean': float(events['energy_dissipation'].mean()),
                'max': float(events['energy_dissipation'].max()),
            },
            'casualties': int(events['casualties'].sum()),
        })
        return summary
