"""
Read-only run context: populations, mobility operators and the latent rate.

One MetapopInputs object is built up front and passed to every simulate /
likelihood / fit / bootstrap call; nothing is cached at module level.
"""

from __future__ import annotations

from dataclasses import dataclass  # Frozen container for the run context.
from typing import Optional, Sequence

import numpy as np  # Numerical arrays.

from ncovfit.errors import InputValidationError  # Raised for every malformed input.


def validate_network(N, K, alpha, stage: str = "inputs"):
    """
    Check populations, the city mobility matrix and the latent rate.

    Returns float copies (N, K) with the K diagonal set to 1; the caller's
    arrays are left untouched.
    """
    N = np.array(N, dtype=float)
    K = np.array(K, dtype=float)
    if N.ndim != 1 or N.size == 0:
        raise InputValidationError(f"N must be a non-empty vector, got shape {N.shape}", stage=stage)
    n = N.size
    if not np.all(np.isfinite(N)) or np.any(N <= 0):
        raise InputValidationError("populations must be finite and > 0", stage=stage)
    if K.shape != (n, n):
        raise InputValidationError(f"K must have shape ({n}, {n}), got {K.shape}", stage=stage)
    if not np.all(np.isfinite(K)) or np.any(K < 0):
        raise InputValidationError("K must be finite and non-negative", stage=stage)
    if not (np.isfinite(alpha) and alpha > 0):
        raise InputValidationError(f"alpha must be finite and > 0, got {alpha}", stage=stage)
    np.fill_diagonal(K, 1.0)
    return N, K


@dataclass(frozen=True, eq=False)
class MetapopInputs:
    """
    Static inputs of one fitting run.

    Parameters
    ----------
    N:
        City populations, shape (n,), all > 0.
    K:
        City x city mobility matrix, shape (n, n), non-negative. The diagonal
        is reset to 1 (self-coupling normaliser, not a passenger count).
    W:
        Country x city mobility matrix, shape (m, n), non-negative. m may be 0.
    alpha:
        Fixed E -> I rate (1 / latent period).
    origin:
        Index of the seeded origin city.
    """
    N: np.ndarray
    K: np.ndarray
    W: np.ndarray
    alpha: float
    origin: int = 0
    city_labels: Optional[Sequence[str]] = None
    country_labels: Optional[Sequence[str]] = None

    def __post_init__(self):
        N, K = validate_network(self.N, self.K, self.alpha)
        W = np.array(self.W, dtype=float)
        n = N.size
        if W.ndim == 1 and W.size == 0:
            W = W.reshape(0, n)
        if W.ndim != 2 or W.shape[1] != n:
            raise InputValidationError(f"W must have shape (m, {n}), got {W.shape}")
        if not np.all(np.isfinite(W)) or np.any(W < 0):
            raise InputValidationError("W must be finite and non-negative")
        if not (isinstance(self.origin, (int, np.integer)) and 0 <= self.origin < n):
            raise InputValidationError(f"origin must be a city index in [0, {n}), got {self.origin}")
        if self.city_labels is not None and len(self.city_labels) != n:
            raise InputValidationError("city_labels length does not match N")
        if self.country_labels is not None and len(self.country_labels) != W.shape[0]:
            raise InputValidationError("country_labels length does not match W rows")

        for arr in (N, K, W):
            arr.setflags(write=False)
        # frozen dataclass: write the normalised arrays back through object.__setattr__
        object.__setattr__(self, "N", N)
        object.__setattr__(self, "K", K)
        object.__setattr__(self, "W", W)
        object.__setattr__(self, "alpha", float(self.alpha))
        object.__setattr__(self, "origin", int(self.origin))

    @property
    def n_cities(self) -> int:
        return self.N.size

    @property
    def n_countries(self) -> int:
        return self.W.shape[0]


def _check_count_array(arr, rows: int, name: str) -> np.ndarray:
    arr = np.array(arr, dtype=float)
    if arr.ndim == 1 and arr.size == 0:
        arr = arr.reshape(rows, 0)
    if arr.ndim != 2 or arr.shape[0] != rows:
        raise InputValidationError(f"{name} must have {rows} rows, got shape {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise InputValidationError(f"{name} contains non-finite values")
    if np.any(arr < 0):
        raise InputValidationError(f"{name} contains negative counts")
    if np.any(arr != np.round(arr)):
        raise InputValidationError(f"{name} must hold integer counts")
    return arr


def check_counts(y, z, inputs: MetapopInputs):
    """
    Validate observed case tables against the run context.

    Returns float copies of (y, z); y is (n, T) and z is (m, T).
    """
    y = _check_count_array(y, inputs.n_cities, "y")
    if inputs.n_countries == 0 and np.size(z) == 0:
        z = np.zeros((0, y.shape[1]))
    z = _check_count_array(z, inputs.n_countries, "z")
    if y.shape[1] != z.shape[1]:
        raise InputValidationError(
            f"y and z must cover the same days, got T={y.shape[1]} and T={z.shape[1]}"
        )
    if y.shape[1] == 0:
        raise InputValidationError("at least one observed day is required")
    return y, z
