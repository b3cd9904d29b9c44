#!/usr/bin/env python3
"""
Space-time dissimilarity between tornado events

The combined distance between events i and j is

    euclidean(xy_i, xy_j) / speed + |t_i - t_j|

with coordinates in projected metres, times in seconds and speed in m/s, so
that the result is in seconds. Condensed vectors follow scipy's pdist order
(row-major upper triangle without the diagonal).
"""

import logging
import numpy as np
import pandas as pd
from scipy.spatial.distance import pdist
from sklearn.metrics.pairwise import pairwise_distances

from .errors import ConfigError

logger = logging.getLogger('SpaceTimeDistance')


def _check_speed(speed):
    if not speed > 0:
        raise ConfigError(f"Speed constant must be positive, got {speed}")


def to_seconds(times):
    """Convert datetimes to float seconds relative to the earliest time"""
    times = np.asarray(pd.to_datetime(np.asarray(times)), dtype='datetime64[ns]')
    if times.size == 0:
        return np.zeros(0, dtype=float)
    return (times - times.min()) / np.timedelta64(1, 's')


def condensed_size(n):
    return n * (n - 1) // 2


def condensed_index(n, i, j):
    """Position of pair (i, j) in a condensed vector over n observations"""
    if i == j:
        raise ValueError("Diagonal entries are not stored in a condensed vector")
    if i > j:
        i, j = j, i
    if i < 0 or j >= n:
        raise IndexError(f"Pair ({i}, {j}) out of range for n={n}")
    return n * i - i * (i + 1) // 2 + (j - i - 1)


def condensed_row(condensed, n, i):
    """Row i of the square matrix stored in a condensed vector (diagonal = 0)"""
    j = np.arange(n)
    lo = np.minimum(i, j)
    hi = np.maximum(i, j)
    idx = n * lo - lo * (lo + 1) // 2 + (hi - lo - 1)
    row = np.zeros(n, dtype=float)
    mask = j != i
    row[mask] = condensed[idx[mask]]
    return row


def spatiotemporal_distance(coords, seconds, speed):
    """
    Build the condensed combined space-time distance vector

    Args:
        coords: array of shape (n, 2) with projected coordinates in metres
        seconds: array of shape (n,) with event times in seconds
        speed: assumed storm-system travel speed in m/s

    Returns:
        condensed vector of length n(n-1)/2
    """
    _check_speed(speed)
    coords = np.asarray(coords, dtype=float)
    seconds = np.asarray(seconds, dtype=float)

    if len(coords) != len(seconds):
        raise ValueError("coords and seconds must have the same length")

    n = len(coords)
    if n < 2:
        return np.zeros(0, dtype=float)

    logger.info(f"Building condensed space-time distances for {n:,} events "
                f"({condensed_size(n) * 8 / 1e9:.2f} GB)")

    space = pdist(coords, metric='euclidean')
    time = pdist(seconds.reshape(-1, 1), metric='cityblock')

    return space / speed + time


def distance_row(coords, seconds, speed, i):
    """Combined distance from event i to every event"""
    _check_speed(speed)
    coords = np.asarray(coords, dtype=float)
    seconds = np.asarray(seconds, dtype=float)
    diff = coords - coords[i]
    space = np.sqrt(np.einsum('ij,ij->i', diff, diff))
    return space / speed + np.abs(seconds - seconds[i])


def iter_distance_blocks(coords, seconds, speed, block_size=2048, n_jobs=1):
    """
    Yield (start, stop, block) row-blocks of the square combined distance matrix

    Memory is bounded by block_size * n floats. The spatial part of each block
    is computed with sklearn so that it can be spread over n_jobs workers.
    """
    _check_speed(speed)
    coords = np.asarray(coords, dtype=float)
    seconds = np.asarray(seconds, dtype=float)
    n = len(coords)

    for start in range(0, n, block_size):
        stop = min(start + block_size, n)
        space = pairwise_distances(coords[start:stop], coords, metric='euclidean', n_jobs=n_jobs)
        time = np.abs(seconds[start:stop, np.newaxis] - seconds[np.newaxis, :])
        yield start, stop, space / speed + time
