"""
Epidemiological parameter container and the optimizer-space transform.

The optimizer searches an unconstrained vector

    u = (log beta, log gamma, logit phi, log I0)

and every evaluation maps it back to model space with exp / expit, so the
search never proposes a negative rate or a probability outside (0, 1).
expit saturates to exactly 0 or 1 for large |u|, so phi is clipped to
[PHI_EPS, 1 - PHI_EPS] on the way back as well.
"""

from dataclasses import dataclass, astuple  # Frozen parameter container.

import numpy as np  # Numerical arrays and math.
from scipy.special import expit, logit  # Probability <-> real line.

from ncovfit.errors import InputValidationError

PARAM_NAMES = ("beta", "gamma", "phi", "i0")

# logit(1) is infinite; phi is kept in [PHI_EPS, 1 - PHI_EPS] in both directions.
PHI_EPS = 1e-9


@dataclass(frozen=True)
class EpiParams:
    """Estimated parameters theta = (beta, gamma, phi, I0)."""
    beta: float = 0.4        # Transmission rate (/day).
    gamma: float = 1 / 7.0   # Removal rate (1 / infectious period).
    phi: float = 1.0         # Ascertainment probability at the origin city.
    i0: float = 1.0          # Infectives seeded at the origin city at t=0.

    def __post_init__(self):
        if not self.beta > 0:
            raise InputValidationError(f"beta must be > 0, got {self.beta}", stage="inputs")
        if not self.gamma > 0:
            raise InputValidationError(f"gamma must be > 0, got {self.gamma}", stage="inputs")
        if not 0 < self.phi <= 1:
            raise InputValidationError(f"phi must lie in (0, 1], got {self.phi}", stage="inputs")
        if not self.i0 > 0:
            raise InputValidationError(f"i0 must be > 0, got {self.i0}", stage="inputs")

    def as_array(self) -> np.ndarray:
        return np.array(astuple(self), dtype=float)

    @classmethod
    def from_array(cls, values) -> "EpiParams":
        values = np.asarray(values, dtype=float)
        if values.shape != (4,):
            raise InputValidationError(
                f"expected 4 parameter values, got shape {values.shape}", stage="inputs"
            )
        return cls(*(float(v) for v in values))

    @property
    def r0(self) -> float:
        """Basic reproduction number beta / gamma."""
        return self.beta / self.gamma

    @property
    def infectious_period(self) -> float:
        return 1.0 / self.gamma


def to_unconstrained(theta: EpiParams) -> np.ndarray:
    """Model space -> optimizer space (log, log, logit, log)."""
    phi = min(theta.phi, 1.0 - PHI_EPS)
    return np.array([
        np.log(theta.beta),
        np.log(theta.gamma),
        logit(phi),
        np.log(theta.i0),
    ])


def from_unconstrained(u) -> EpiParams:
    """Optimizer space -> model space (exp, exp, clipped expit, exp)."""
    u = np.asarray(u, dtype=float)
    if u.shape != (4,):
        raise InputValidationError(f"expected 4 unconstrained values, got shape {u.shape}", stage="inputs")
    with np.errstate(over="ignore", under="ignore"):
        return EpiParams(
            beta=float(np.exp(u[0])),
            gamma=float(np.exp(u[1])),
            phi=float(np.clip(expit(u[2]), PHI_EPS, 1.0 - PHI_EPS)),
            i0=float(np.exp(u[3])),
        )


def growth_rate(beta: float, gamma: float, alpha: float) -> float:
    """
    Early exponential growth rate r of the SEIR linearisation.

    r is the dominant root of (r + alpha)(r + gamma) = alpha * beta.
    """
    disc = (alpha - gamma) ** 2 + 4.0 * alpha * beta
    return 0.5 * (-(alpha + gamma) + np.sqrt(disc))


def doubling_time(beta: float, gamma: float, alpha: float) -> float:
    """Epidemic doubling time ln 2 / r in days; inf when the epidemic does not grow."""
    r = growth_rate(beta, gamma, alpha)
    if r <= 0:
        return float("inf")
    return float(np.log(2.0) / r)
