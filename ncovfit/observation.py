"""
Observation model: map model means -> reported case tables.

Why do we need this?
- The simulator produces expected removals x and expected exports nu.
- The data are integer case counts, under-ascertained at the origin city,
  and the first days of domestic data arrive as one cumulative report.

This file implements:
1) the ascertainment vector (phi at the origin city, 1 elsewhere)
2) collapsing the first T0 reporting days into one cumulative count
3) Poisson sampling of synthetic (y, z) tables, used by the bootstrap
4) turning {label: series} case tables into ordered count matrices
"""

import numpy as np  # Numerical arrays and Poisson sampling.

from ncovfit.errors import InputValidationError


def ascertainment_vector(phi: float, n: int, origin: int) -> np.ndarray:
    """phi at the origin city, 1 elsewhere."""
    phi_vec = np.ones(n)
    phi_vec[origin] = phi
    return phi_vec


def collapse_initial_window(daily: np.ndarray, t0: int) -> np.ndarray:
    """
    Report the first t0 days as one cumulative count on day t0.

    Column t0-1 receives the sum of columns 0..t0-1, the earlier columns are
    zeroed. t0 = 0 returns an unchanged copy.
    """
    out = np.array(daily, dtype=float)
    if t0 < 0 or t0 > out.shape[1]:
        raise InputValidationError(f"t0={t0} must lie in [0, {out.shape[1]}]")
    if t0 >= 1:
        window = out[:, :t0].sum(axis=1)
        out[:, :t0] = 0.0
        out[:, t0 - 1] = window
    return out


def sample_observations(x, nu, phi_vec, t0: int, rng=None):
    """
    Draw one synthetic data set from the Poisson observation model.

    Args:
        x: (n, T) expected new removals
        nu: (m, T) expected imports
        phi_vec: (n,) ascertainment per city
        t0: length of the cumulative first reporting window
        rng: numpy Generator (default: a fresh default_rng())

    Returns:
        y: (n, T) domestic counts, first window collapsed onto day t0
        z: (m, T) imported counts, always daily
    """
    if rng is None:
        rng = np.random.default_rng()
    mean_y = np.asarray(phi_vec, dtype=float)[:, None] * np.asarray(x, dtype=float)
    # Sum of independent Poisson days == one Poisson draw on the summed mean.
    y_daily = rng.poisson(mean_y).astype(float)
    y = collapse_initial_window(y_daily, t0)
    z = rng.poisson(np.asarray(nu, dtype=float)).astype(float)
    return y, z


def daily_from_cumulative(cumulative) -> np.ndarray:
    """First difference of cumulative counts per row; the first column is kept."""
    cumulative = np.asarray(cumulative, dtype=float)
    if cumulative.ndim == 1:
        cumulative = cumulative[None, :]
    daily = np.diff(cumulative, axis=1, prepend=0.0)
    if np.any(daily < 0):
        rows = sorted(set(np.where(daily < 0)[0].tolist()))
        raise InputValidationError(f"cumulative counts decrease in rows {rows}")
    return daily


def case_matrix(table, labels, cumulative: bool = False) -> np.ndarray:
    """
    Stack a {label: daily series} table into a (len(labels), T) array.

    Rows follow `labels`, which must match the row labels of K / W.
    """
    missing = [lab for lab in labels if lab not in table]
    if missing:
        raise InputValidationError(f"case table has no rows for {missing}")
    rows = [np.asarray(table[lab], dtype=float) for lab in labels]
    lengths = {r.size for r in rows}
    if len(lengths) > 1:
        raise InputValidationError(f"case table rows have different lengths {sorted(lengths)}")
    counts = np.vstack(rows) if rows else np.zeros((0, 0))
    if cumulative and counts.size:
        counts = daily_from_cumulative(counts)
    return counts
