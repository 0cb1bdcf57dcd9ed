"""
Poisson log-likelihood of domestic and exported case counts.

    l = sum_t [ sum_i { y_it log(phi_i x_it) - phi_i x_it }
              + sum_j { z_jt log(nu_jt) - nu_jt } ]

The log(y!) constants are dropped. The first T0 domestic days were reported
as one cumulative count, so they enter as a single Poisson term on the
summed mean, scored against the count held on day T0. Imports are always
scored per day.

Convention: 0 * log(0) = 0. A zero (or negative, or non-finite) mean against
a positive count raises DomainError; nothing is silently turned into -inf.
"""

import numpy as np  # Numerical arrays.
from scipy.special import xlogy  # k * log(mu) with 0 * log(0) = 0.

from ncovfit.errors import DomainError, InputValidationError
from ncovfit.inputs import check_counts
from ncovfit.metapop_sim import expected_series  # Model means x, nu for one theta.

# Length of the cumulative first reporting window (days).
DEFAULT_T0 = 11


def poisson_terms(k, mu) -> np.ndarray:
    """Elementwise k * log(mu) - mu with 0 * log(0) = 0."""
    k = np.asarray(k, dtype=float)
    mu = np.asarray(mu, dtype=float)
    if not np.all(np.isfinite(mu)):
        raise DomainError("non-finite expected count")
    if np.any(mu < 0):
        raise DomainError(f"negative expected count (min {mu.min():.3g})")
    bad = (mu == 0) & (k > 0)
    if np.any(bad):
        raise DomainError(f"{int(bad.sum())} positive count(s) against a zero expected count")
    return xlogy(k, mu) - mu


def loglik_from_series(y, z, x, nu, phi_vec, t0: int = DEFAULT_T0) -> float:
    """
    Score observed tables against model means.

    Args:
        y: (n, T) domestic counts; for t0 >= 1 column t0-1 holds the cumulative
           count of days 1..t0 and columns before it are ignored
        z: (m, T) imported counts
        x: (n, >=T) expected new removals
        nu: (m, >=T) expected imports
        phi_vec: (n,) ascertainment per city
        t0: length of the cumulative first window, 0 <= t0 <= T

    Returns:
        finite log-likelihood (larger is better)
    """
    y = np.asarray(y, dtype=float)
    z = np.asarray(z, dtype=float)
    x = np.asarray(x, dtype=float)
    nu = np.asarray(nu, dtype=float)
    T = y.shape[1]
    if x.shape[1] < T or nu.shape[1] < T:
        raise InputValidationError(
            f"model horizon ({x.shape[1]} days) shorter than the data ({T} days)", stage="likelihood"
        )
    if not 0 <= t0 <= T:
        raise InputValidationError(f"t0={t0} must lie in [0, {T}]", stage="likelihood")

    mu_y = np.asarray(phi_vec, dtype=float)[:, None] * x[:, :T]
    domestic = 0.0
    if t0 >= 1:
        domestic += poisson_terms(y[:, t0 - 1], mu_y[:, :t0].sum(axis=1)).sum()
    domestic += poisson_terms(y[:, t0:], mu_y[:, t0:]).sum()
    foreign = poisson_terms(z, nu[:, :T]).sum()

    ll = float(domestic + foreign)
    if not np.isfinite(ll):
        raise DomainError("log-likelihood is not finite")
    return ll


def loglik_at(theta, y, z, inputs, t0, max_t, rtol, atol, method) -> float:
    """Simulate and score already-validated tables; DomainError gets theta attached."""
    x, nu, phi_vec = expected_series(theta, inputs, max_t, rtol=rtol, atol=atol, method=method)
    try:
        return loglik_from_series(y, z, x, nu, phi_vec, t0)
    except DomainError as err:
        err.theta = theta
        raise


def log_likelihood(
    theta,
    y,
    z,
    inputs,
    t0: int = DEFAULT_T0,
    max_t: int = None,
    rtol: float = 1e-7,
    atol: float = 1e-9,
    method: str = "RK45",
) -> float:
    """
    Simulate at theta and score (y, z).

    max_t defaults to the number of observed days. IntegrationError and
    DomainError propagate unchanged.
    """
    y, z = check_counts(y, z, inputs)
    if max_t is None:
        max_t = y.shape[1]
    return loglik_at(theta, y, z, inputs, t0, max_t, rtol, atol, method)
