#!/usr/bin/env python3
"""
Tornado energy dissipation model

Energy dissipated by a tornado is approximated as path area times the
area-weighted cube of the wind speed, with the fraction of the damage path
falling in each EF wind-speed bin taken from the rating of the tornado.
Air density is taken as 1, so the result is in energy-equivalent units
(W when area is in m^2 and speeds in m/s).
"""

import numpy as np

# Fraction of path area in each EF wind-speed bin (columns), by EF rating (rows)
FRACTION_MATRIX = np.array([
    [1.000, 0.000, 0.000, 0.000, 0.000, 0.000],
    [0.772, 0.228, 0.000, 0.000, 0.000, 0.000],
    [0.616, 0.268, 0.115, 0.000, 0.000, 0.000],
    [0.529, 0.271, 0.133, 0.067, 0.000, 0.000],
    [0.543, 0.238, 0.131, 0.056, 0.032, 0.000],
    [0.538, 0.223, 0.119, 0.070, 0.033, 0.017],
])

# Lower bound of each EF wind-speed bin (m/s)
THRESHOLD_WIND = np.array([29.06, 38.45, 49.62, 60.80, 74.21, 89.41])

# EF5 is unbounded above; its representative speed sits 7.5 m/s over the threshold
MIDPOINT_WIND = np.append(
    THRESHOLD_WIND[:-1] + np.diff(THRESHOLD_WIND) / 2,
    THRESHOLD_WIND[-1] + 7.5
)

MAX_RATING = FRACTION_MATRIX.shape[0] - 1


def energy_factor(rating):
    """Return sum_j fraction[rating][j] * midpoint[j]**3 for one or many ratings"""
    rating = np.asarray(rating)
    if rating.size and (np.any(rating < 0) or np.any(rating > MAX_RATING)):
        raise ValueError(f"EF rating must be in 0..{MAX_RATING}")
    if rating.size and not np.all(np.equal(np.mod(rating, 1), 0)):
        raise ValueError("EF rating must be integral")

    factors = FRACTION_MATRIX @ MIDPOINT_WIND ** 3
    return factors[rating.astype(int)]


def energy_dissipation(rating, area_m2):
    """
    Energy dissipation of one or many tornadoes

    Args:
        rating: EF rating(s), integers 0-5
        area_m2: damage path area(s) in square metres

    Returns:
        Energy dissipation with the shape of the broadcast inputs
    """
    area_m2 = np.asarray(area_m2, dtype=float)
    if np.any(area_m2 < 0):
        raise ValueError("Path area must be non-negative")

    return area_m2 * energy_factor(rating)


def to_gigawatts(energy):
    return np.asarray(energy) / 1e9


def to_terawatts(energy):
    return np.asarray(energy) / 1e12
