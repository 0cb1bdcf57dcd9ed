"""
Metapopulation SEIR simulator over an airline network.

This file is the "physics engine" of the fit: every likelihood evaluation
integrates it once for the candidate parameters.

Key idea:
- Each city runs its own SEIR compartments.
- Cities are coupled only through the force of infection: the infective
  fraction of every connected city leaks in through the mobility matrix K.
- Foreign countries have no compartments; they receive exported infectives
  through W in proportion to the (ascertained) infective fraction.

Notation:
S: susceptible
E: exposed (latent)
I: infectious
R: removed
x: expected new removals per city per day (the model counterpart of cases)
nu: expected imported cases per foreign country per day
"""

from dataclasses import dataclass  # Data class decorator for the trajectory container.

import numpy as np  # Numerical arrays and math.
from scipy.integrate import solve_ivp  # ODE solver for numerical integration.

from ncovfit.errors import IntegrationError, InputValidationError
from ncovfit.inputs import MetapopInputs, validate_network  # Shared network checks.
from ncovfit.observation import ascertainment_vector  # phi at the origin, 1 elsewhere.


@dataclass
class Trajectory:
    """Daily-resolution output of one integration."""
    t: np.ndarray         # Days 0..max_t.
    S: np.ndarray         # (n, max_t + 1) compartments at integer days.
    E: np.ndarray
    I: np.ndarray
    R: np.ndarray
    x: np.ndarray         # (n, max_t) new removals R(s) - R(s-1), s = 1..max_t.
    I_over_N: np.ndarray  # (n, max_t) infective fraction at days 1..max_t.


def _initial_state(N: np.ndarray, init_city: int, i0: float) -> np.ndarray:
    """All susceptible except i0 infectives at the origin city."""
    if i0 > N[init_city]:
        # Seeding more infectives than residents has no meaning; fail instead of clamping.
        raise InputValidationError(
            f"i0={i0:.6g} exceeds the origin population {N[init_city]:.6g}",
            stage="simulate",
        )
    n = N.size
    S0 = N.copy()
    E0 = np.zeros(n)
    I0 = np.zeros(n)
    R0 = np.zeros(n)
    S0[init_city] -= i0
    I0[init_city] = i0
    return np.concatenate([S0, E0, I0, R0])


def simulate(
    theta,
    alpha: float,
    N: np.ndarray,
    K: np.ndarray,
    init_city: int,
    max_t: int,
    rtol: float = 1e-7,
    atol: float = 1e-9,
    method: str = "RK45",
) -> Trajectory:
    """
    Integrate the coupled SEIR system for max_t days.

    Args:
        theta: EpiParams (beta, gamma, phi, i0); phi is not used by the dynamics
        alpha: fixed E -> I rate
        N: (n,) city populations
        K: (n, n) non-negative mobility matrix; the diagonal is reset to 1
        init_city: index of the seeded origin city
        max_t: integration horizon in whole days (>= 1)
        rtol, atol, method: passed to scipy's solve_ivp

    Returns:
        Trajectory with compartments at days 0..max_t, daily new removals x
        and infective fractions I/N at days 1..max_t.

    Raises:
        InputValidationError: bad shapes, non-positive populations, negative K,
            alpha <= 0, or i0 larger than the origin population.
        IntegrationError: non-finite derivatives or a solver failure.
    """
    N, K = validate_network(N, K, alpha, stage="simulate")
    n = N.size
    if not 0 <= init_city < n:
        raise InputValidationError(f"init_city {init_city} out of range", stage="simulate")
    if int(max_t) != max_t or max_t < 1:
        raise InputValidationError(f"max_t must be a whole number of days >= 1, got {max_t}", stage="simulate")
    max_t = int(max_t)

    beta, gamma = theta.beta, theta.gamma
    y0 = _initial_state(N, init_city, theta.i0)

    def rhs(t, y):
        # Vectorised over all cities: y = [S, E, I, R] stacked.
        S = y[0:n]
        E = y[n:2 * n]
        I = y[2 * n:3 * n]
        i_frac = I / N
        # Local infective fraction plus mobility-weighted inflow, normalised by N.
        lam = beta * (i_frac + (K @ i_frac) / N)
        infection = S * lam
        dS = -infection
        dE = infection - alpha * E
        dI = alpha * E - gamma * I
        dR = gamma * I
        dy = np.concatenate([dS, dE, dI, dR])
        if not np.all(np.isfinite(dy)):
            raise IntegrationError(f"non-finite derivative at t={t:.3f}", stage="simulate", theta=theta)
        return dy

    t_eval = np.arange(0, max_t + 1, dtype=float)
    with np.errstate(invalid="ignore", over="ignore"):
        sol = solve_ivp(rhs, (0.0, float(max_t)), y0, method=method, t_eval=t_eval, rtol=rtol, atol=atol)
    if sol.status != 0:
        raise IntegrationError(f"solver failed: {sol.message}", stage="simulate", theta=theta)
    if sol.y.shape[1] != t_eval.size or not np.all(np.isfinite(sol.y)):
        raise IntegrationError("solver returned a non-finite or truncated state", stage="simulate", theta=theta)

    S, E, I, R = (sol.y[k * n:(k + 1) * n] for k in range(4))
    # Day-over-day increase in cumulative removals; clip integrator round-off.
    x = np.maximum(np.diff(R, axis=1), 0.0)
    I_over_N = np.maximum(I[:, 1:], 0.0) / N[:, None]
    return Trajectory(t=sol.t, S=S, E=E, I=I, R=R, x=x, I_over_N=I_over_N)


def foreign_imports(I_over_N: np.ndarray, phi_vec: np.ndarray, W: np.ndarray) -> np.ndarray:
    """
    Expected imported cases per country and day.

    nu[j, t] = sum_i W[j, i] * phi_i * I_i(t) / N_i
    """
    I_over_N = np.asarray(I_over_N, dtype=float)
    W = np.asarray(W, dtype=float)
    return W @ (np.asarray(phi_vec, dtype=float)[:, None] * I_over_N)


def expected_series(theta, inputs: MetapopInputs, max_t: int, rtol: float = 1e-7, atol: float = 1e-9, method: str = "RK45"):
    """
    Model means for both observation streams.

    Returns:
        x: (n, max_t) expected new removals
        nu: (m, max_t) expected imports
        phi_vec: (n,) ascertainment per city
    """
    traj = simulate(theta, inputs.alpha, inputs.N, inputs.K, inputs.origin, max_t, rtol=rtol, atol=atol, method=method)
    phi_vec = ascertainment_vector(theta.phi, inputs.n_cities, inputs.origin)
    nu = foreign_imports(traj.I_over_N, phi_vec, inputs.W)
    return traj.x, nu, phi_vec
