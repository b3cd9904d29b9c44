#!/usr/bin/env python3
"""
Space-time clustering module for tornado outbreak detection
Implements single-linkage agglomerative clustering through a minimum
spanning tree and a union-find cut at a fixed height
"""

import numpy as np
import pandas as pd
import logging
from dataclasses import dataclass
from tqdm import tqdm
from scipy.cluster.hierarchy import DisjointSet

from .distance import (
    spatiotemporal_distance, condensed_row, condensed_size, distance_row, to_seconds
)
from .errors import ConfigError


@dataclass(frozen=True)
class ClusteringResult:
    """Outcome of one clustering run"""
    labels: np.ndarray
    edges: np.ndarray
    cut_height: float
    speed: float
    strategy: str

    @property
    def n_events(self):
        return len(self.labels)

    @property
    def n_groups(self):
        return len(np.unique(self.labels))

    def group_sizes(self):
        """Member count per group label, largest first"""
        return pd.Series(self.labels).value_counts()


def _prim(n, row_fn, show_progress=False):
    """Dense Prim's algorithm over the implicit complete graph"""
    edges = np.empty((max(n - 1, 0), 3), dtype=float)
    if n < 2:
        return edges

    in_tree = np.zeros(n, dtype=bool)
    best = np.full(n, np.inf)
    parent = np.full(n, -1, dtype=np.int64)

    current = 0
    in_tree[current] = True
    steps = range(n - 1)
    if show_progress:
        steps = tqdm(steps, desc="Minimum spanning tree")

    for k in steps:
        row = row_fn(current)
        # Strict comparison keeps the earliest parent on ties
        update = ~in_tree & (row < best)
        best[update] = row[update]
        parent[update] = current

        nxt = int(np.argmin(np.where(in_tree, np.inf, best)))
        a, b = parent[nxt], nxt
        edges[k] = (min(a, b), max(a, b), best[nxt])
        in_tree[nxt] = True
        current = nxt

    order = np.lexsort((edges[:, 1], edges[:, 0], edges[:, 2]))
    return edges[order]


def minimum_spanning_tree(condensed, n=None, show_progress=False):
    """
    Minimum spanning tree of the complete graph given by a condensed vector

    Returns:
        edges: array of shape (n-1, 3) with rows [i, j, weight], i < j,
               sorted ascending by weight
    """
    condensed = np.asarray(condensed, dtype=float)
    if n is None:
        # Invert n(n-1)/2 = m
        n = int(round((1 + np.sqrt(1 + 8 * len(condensed))) / 2)) if len(condensed) else 0
    if condensed_size(n) != len(condensed):
        raise ValueError(f"Condensed vector of length {len(condensed)} does not match n={n}")
    if n < 2:
        return np.empty((0, 3), dtype=float)

    return _prim(n, lambda i: condensed_row(condensed, n, i), show_progress)


def minimum_spanning_tree_streaming(coords, seconds, speed, show_progress=False):
    """Minimum spanning tree computing distance rows on demand (O(n) memory)"""
    coords = np.asarray(coords, dtype=float)
    seconds = np.asarray(seconds, dtype=float)
    n = len(coords)
    if n < 2:
        return np.empty((0, 3), dtype=float)

    return _prim(n, lambda i: distance_row(coords, seconds, speed, i), show_progress)


def cut_tree(edges, n, height):
    """
    Flat cluster labels from MST edges with weight <= height

    Labels run 0..k-1 in order of each component's lowest-index member.
    """
    if height < 0:
        raise ConfigError(f"Cut height must be non-negative, got {height}")

    components = DisjointSet(range(n))
    for i, j, weight in edges:
        if weight > height:
            break
        components.merge(int(i), int(j))

    labels = np.empty(n, dtype=np.int64)
    root_label = {}
    for i in range(n):
        root = components[i]
        if root not in root_label:
            root_label[root] = len(root_label)
        labels[i] = root_label[root]

    return labels


def linkage_matrix(edges, n):
    """
    Single-linkage dendrogram in scipy's linkage format from MST edges

    Row k merges clusters Z[k, 0] and Z[k, 1] at height Z[k, 2] into a new
    cluster n + k holding Z[k, 3] observations.
    """
    Z = np.empty((max(n - 1, 0), 4), dtype=float)
    components = DisjointSet(range(n))
    cluster_of = {i: i for i in range(n)}
    size_of = {i: 1 for i in range(n)}

    for k, (i, j, weight) in enumerate(edges):
        root_i, root_j = components[int(i)], components[int(j)]
        a, b = cluster_of[root_i], cluster_of[root_j]
        size = size_of[root_i] + size_of[root_j]
        Z[k] = (min(a, b), max(a, b), weight, size)

        components.merge(root_i, root_j)
        root = components[int(i)]
        cluster_of[root] = n + k
        size_of[root] = size

    return Z


class SingleLinkageClusterer:
    """
    Single-linkage space-time clustering of tornado events
    """

    def __init__(self, config):
        self.config = config
        self.logger = logging.getLogger('SingleLinkageClusterer')

        # Extract clustering parameters
        cluster_config = config['clustering']
        self.speed = float(cluster_config['speed_m_per_s'])
        self.cut_height = float(cluster_config['cut_height_s'])
        self.strategy = cluster_config['strategy']
        self.dense_max_events = cluster_config['dense_max_events']

        if not self.speed > 0:
            raise ConfigError(f"clustering.speed_m_per_s must be positive, got {self.speed}")
        if self.cut_height < 0:
            raise ConfigError(f"clustering.cut_height_s must be non-negative, got {self.cut_height}")

        self.logger.info(f"Initialized with speed={self.speed} m/s, "
                         f"cut_height={self.cut_height:.0f} s, strategy={self.strategy}")

    def _resolve_strategy(self, n_points):
        if self.strategy != 'auto':
            return self.strategy
        return 'dense' if n_points <= self.dense_max_events else 'streaming'

    def build_tree(self, coords, seconds, speed=None):
        """Minimum spanning tree for the events under the configured strategy"""
        speed = self.speed if speed is None else speed
        n_points = len(coords)
        strategy = self._resolve_strategy(n_points)
        show_progress = n_points > 5000

        if strategy == 'dense':
            condensed = spatiotemporal_distance(coords, seconds, speed)
            edges = minimum_spanning_tree(condensed, n_points, show_progress)
        else:
            self.logger.info("Using streaming distance rows for large dataset")
            edges = minimum_spanning_tree_streaming(coords, seconds, speed, show_progress)

        return edges, strategy

    def fit_predict(self, coords, times):
        """
        Cluster tornado events in space and time

        Args:
            coords: numpy array of shape (n_points, 2) with projected coordinates
            times: array-like of datetimes

        Returns:
            ClusteringResult with one integer label per event
        """
        coords = np.asarray(coords, dtype=float)
        seconds = to_seconds(times)
        n_points = len(coords)
        self.logger.info(f"Clustering {n_points:,} events")

        if n_points < 2:
            labels = np.zeros(n_points, dtype=np.int64)
            edges = np.empty((0, 3), dtype=float)
            strategy = self._resolve_strategy(n_points)
        else:
            edges, strategy = self.build_tree(coords, seconds)
            labels = cut_tree(edges, n_points, self.cut_height)

        labels.setflags(write=False)
        edges.setflags(write=False)
        result = ClusteringResult(
            labels=labels,
            edges=edges,
            cut_height=self.cut_height,
            speed=self.speed,
            strategy=strategy
        )

        self.logger.info(f"Found {result.n_groups:,} groups")
        return result

    def parameter_sensitivity(self, coords, times, speeds, heights, min_group_size):
        """
        Count outbreak-sized groups over a grid of speed constants and cut heights
        """
        self.logger.info("Starting parameter sensitivity analysis")

        coords = np.asarray(coords, dtype=float)
        seconds = to_seconds(times)
        n_points = len(coords)
        results = []

        for speed in speeds:
            edges, _ = self.build_tree(coords, seconds, speed=speed)
            for height in heights:
                labels = cut_tree(edges, n_points, height)
                sizes = np.bincount(labels) if n_points else np.zeros(0, dtype=int)
                outbreak_sizes = sizes[sizes >= min_group_size]

                result = {
                    'speed_m_per_s': speed,
                    'cut_height_s': height,
                    'n_groups': len(sizes),
                    'n_outbreaks': len(outbreak_sizes),
                    'events_in_outbreaks': int(outbreak_sizes.sum()),
                    'largest_group': int(sizes.max()) if len(sizes) else 0
                }
                results.append(result)
                self.logger.info(f"Params: speed={speed} m/s, height={height:.0f} s -> "
                                 f"{result['n_outbreaks']} outbreaks, "
                                 f"{result['events_in_outbreaks']:,} events")

        return pd.DataFrame(results)
