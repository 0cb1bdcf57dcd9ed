"""
Maximum-likelihood fit of (beta, gamma, phi, I0).

The search runs in the unconstrained space of ncovfit.params and is
derivative-free: the likelihood surface is ridged and kinked where candidate
parameters stop the epidemic or drive a mean to zero.

The minimizer is an injected strategy,

    optimizer(objective, u0) -> u_best

so any simplex-style routine can replace the default scipy Nelder-Mead.
"""

from dataclasses import dataclass
from functools import partial  # Picklable optimizer with fixed options.
from typing import Callable, Optional

import numpy as np  # Numerical arrays.
from scipy.optimize import minimize  # Default Nelder-Mead search.

from ncovfit.errors import NcovFitError, NonConvergenceError
from ncovfit.inputs import check_counts
from ncovfit.likelihood import DEFAULT_T0, loglik_at
from ncovfit.params import EpiParams, doubling_time, from_unconstrained, to_unconstrained

Objective = Callable[[np.ndarray], float]
Optimizer = Callable[[Objective, np.ndarray], np.ndarray]


def nelder_mead(
    objective: Objective,
    u0: np.ndarray,
    maxiter: Optional[int] = None,
    xatol: float = 1e-4,
    fatol: float = 1e-4,
) -> np.ndarray:
    """Default strategy: scipy's Nelder-Mead simplex."""
    res = minimize(
        objective,
        u0,
        method="Nelder-Mead",
        options={"maxiter": maxiter, "xatol": xatol, "fatol": fatol},
    )
    return np.asarray(res.x, dtype=float)


@dataclass
class FitResult:
    theta: EpiParams        # Point estimate in model space.
    u: np.ndarray           # Same estimate in optimizer space.
    loglik: float           # Log-likelihood at the estimate.
    alpha: float            # Fixed E -> I rate used by the fit.
    n_evals: int = 0        # Objective evaluations made by the search.
    n_rejected: int = 0     # Candidates whose pipeline failed (scored +inf).

    def summary(self) -> dict:
        """Point estimate plus derived quantities, as plain floats."""
        th = self.theta
        return {
            "beta": th.beta,
            "gamma": th.gamma,
            "phi": th.phi,
            "i0": th.i0,
            "R0": th.r0,
            "infectious_period": th.infectious_period,
            "doubling_time": doubling_time(th.beta, th.gamma, self.alpha),
            "loglik": self.loglik,
            "n_evals": self.n_evals,
            "n_rejected": self.n_rejected,
        }


class _Objective:
    """
    Negative log-likelihood over u, with bookkeeping.

    Any pipeline failure for a candidate is a rejection: +inf to the search.
    """

    def __init__(self, y, z, inputs, t0, max_t, rtol, atol, method):
        self.y = y
        self.z = z
        self.inputs = inputs
        self.t0 = t0
        self.max_t = max_t
        self.solver = (rtol, atol, method)
        self.n_evals = 0
        self.n_rejected = 0
        self.n_finite = 0
        self.last_u = None
        self.last_error = None

    def loglik(self, u) -> float:
        theta = from_unconstrained(u)
        return loglik_at(theta, self.y, self.z, self.inputs, self.t0, self.max_t, *self.solver)

    def __call__(self, u) -> float:
        self.n_evals += 1
        self.last_u = np.array(u, dtype=float)
        try:
            ll = self.loglik(u)
        except NcovFitError as err:
            self.n_rejected += 1
            self.last_error = err
            return np.inf
        self.n_finite += 1
        return -ll


def fit(
    theta0: EpiParams,
    y,
    z,
    inputs,
    t0: int = DEFAULT_T0,
    max_t: int = None,
    optimizer: Optional[Optimizer] = None,
    rtol: float = 1e-7,
    atol: float = 1e-9,
    method: str = "RK45",
) -> FitResult:
    """
    Maximise the Poisson likelihood starting from theta0.

    Args:
        theta0: initial guess in model space
        y, z: observed domestic / imported count tables
        inputs: MetapopInputs run context
        t0: cumulative first reporting window (days)
        max_t: simulation horizon, defaults to the number of observed days
        optimizer: strategy (objective, u0) -> u; default nelder_mead
        rtol, atol, method: ODE solver settings

    Returns:
        FitResult with the estimate and evaluation counts.

    Raises:
        InputValidationError: inconsistent tables / context (before any search).
        NonConvergenceError: the search ended on a point whose likelihood
            cannot be evaluated, or never saw a finite likelihood.
    """
    y, z = check_counts(y, z, inputs)
    if max_t is None:
        max_t = y.shape[1]
    if optimizer is None:
        optimizer = nelder_mead

    objective = _Objective(y, z, inputs, t0, max_t, rtol, atol, method)
    u0 = to_unconstrained(theta0)
    u_best = np.asarray(optimizer(objective, u0), dtype=float)

    if objective.n_finite == 0:
        last = objective.last_error
        raise NonConvergenceError(
            f"no candidate had a finite likelihood in {objective.n_evals} evaluations"
            + (f"; last failure: {last}" if last is not None else ""),
            theta=_safe_theta(objective.last_u),
        )
    try:
        ll = objective.loglik(u_best)
    except NcovFitError as err:
        raise NonConvergenceError(
            f"search ended on a candidate that cannot be evaluated: {err}",
            theta=_safe_theta(u_best),
        ) from err

    return FitResult(
        theta=from_unconstrained(u_best),
        u=u_best,
        loglik=ll,
        alpha=inputs.alpha,
        n_evals=objective.n_evals,
        n_rejected=objective.n_rejected,
    )


def _safe_theta(u):
    """Model-space view of u for error reports; raw u if it does not map."""
    if u is None:
        return None
    try:
        return from_unconstrained(u)
    except NcovFitError:
        return tuple(float(v) for v in u)


def make_optimizer(maxiter: Optional[int] = None, xatol: float = 1e-4, fatol: float = 1e-4) -> Optimizer:
    """Picklable Nelder-Mead strategy with fixed options (safe for process pools)."""
    return partial(nelder_mead, maxiter=maxiter, xatol=xatol, fatol=fatol)
