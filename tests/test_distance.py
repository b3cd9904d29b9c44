#!/usr/bin/env python3

import numpy as np
import pandas as pd
import pytest
from scipy.spatial.distance import squareform

from tornado_outbreaks import distance
from tornado_outbreaks.errors import ConfigError


@pytest.fixture
def sample():
    rng = np.random.default_rng(7)
    coords = rng.uniform(0, 500000, size=(25, 2))
    seconds = rng.uniform(0, 5 * 86400, size=25)
    return coords, seconds


def test_combined_distance_formula():
    coords = np.array([[0.0, 0.0], [300.0, 400.0]])
    seconds = np.array([0.0, 100.0])
    result = distance.spatiotemporal_distance(coords, seconds, speed=10.0)

    assert result.shape == (1,)
    assert result[0] == pytest.approx(500.0 / 10.0 + 100.0)


def test_pure_time_difference():
    coords = np.zeros((2, 2))
    seconds = np.array([0.0, 100000.0])
    result = distance.spatiotemporal_distance(coords, seconds, speed=10.0)
    assert result[0] == pytest.approx(100000.0)


def test_condensed_length_and_symmetry(sample):
    coords, seconds = sample
    condensed = distance.spatiotemporal_distance(coords, seconds, 15.0)
    square = squareform(condensed)

    assert len(condensed) == distance.condensed_size(25)
    assert np.all(condensed >= 0)
    np.testing.assert_array_equal(square, square.T)


def test_condensed_index_matches_squareform(sample):
    coords, seconds = sample
    condensed = distance.spatiotemporal_distance(coords, seconds, 15.0)
    square = squareform(condensed)

    for i, j in [(0, 1), (3, 17), (17, 3), (23, 24)]:
        assert condensed[distance.condensed_index(25, i, j)] == square[i, j]

    with pytest.raises(ValueError):
        distance.condensed_index(25, 4, 4)


def test_condensed_row_matches_square_matrix(sample):
    coords, seconds = sample
    condensed = distance.spatiotemporal_distance(coords, seconds, 15.0)
    square = squareform(condensed)

    for i in (0, 12, 24):
        np.testing.assert_array_equal(distance.condensed_row(condensed, 25, i), square[i])


def test_distance_row_matches_condensed(sample):
    coords, seconds = sample
    square = squareform(distance.spatiotemporal_distance(coords, seconds, 15.0))

    np.testing.assert_allclose(distance.distance_row(coords, seconds, 15.0, 5), square[5])


def test_blocks_cover_full_matrix(sample):
    coords, seconds = sample
    square = squareform(distance.spatiotemporal_distance(coords, seconds, 15.0))

    blocks = list(distance.iter_distance_blocks(coords, seconds, 15.0, block_size=7))
    assert [(start, stop) for start, stop, _ in blocks] == [(0, 7), (7, 14), (14, 21), (21, 25)]

    rebuilt = np.vstack([block for _, _, block in blocks])
    np.testing.assert_allclose(rebuilt, square, atol=1e-2)


def test_fewer_than_two_events():
    assert distance.spatiotemporal_distance(np.zeros((0, 2)), np.zeros(0), 15.0).size == 0
    assert distance.spatiotemporal_distance(np.zeros((1, 2)), np.zeros(1), 15.0).size == 0


@pytest.mark.parametrize("speed", [0.0, -10.0])
def test_speed_must_be_positive(speed):
    with pytest.raises(ConfigError):
        distance.spatiotemporal_distance(np.zeros((2, 2)), np.zeros(2), speed)


def test_to_seconds_relative_to_first_time():
    times = pd.to_datetime(['2011-04-27 16:00', '2011-04-27 15:00', '2011-04-28 15:00'])
    np.testing.assert_allclose(distance.to_seconds(times), [3600.0, 0.0, 86400.0])
    assert distance.to_seconds([]).size == 0


def test_distance_row_accepts_lists_and_frames():
    coords = [[0.0, 0.0], [300.0, 400.0], [0.0, 0.0]]
    seconds = [0.0, 100.0, 50.0]

    row = distance.distance_row(coords, seconds, 10.0, 0)
    np.testing.assert_allclose(row, [0.0, 150.0, 50.0])

    frame = pd.DataFrame(coords, columns=['x_proj', 'y_proj'])
    row = distance.distance_row(frame, pd.Series(seconds), 10.0, 1)
    np.testing.assert_allclose(row, [150.0, 0.0, 100.0])
