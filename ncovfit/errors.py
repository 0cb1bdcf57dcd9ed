"""
Error taxonomy for simulation, likelihood, fitting and bootstrap stages.

Every error carries the stage that failed and, when known, the last
parameter vector that was being evaluated, so a failed fit can be reported
as "which stage, which theta".
"""


class NcovFitError(Exception):
    """Base class for every failure raised by the fitting pipeline."""

    stage = "unknown"

    def __init__(self, message, stage=None, theta=None):
        super().__init__(message)
        self.message = message
        if stage is not None:
            self.stage = stage
        self.theta = theta

    def __str__(self):
        text = f"[{self.stage}] {self.message}"
        if self.theta is not None:
            text += f" (theta={self.theta})"
        return text

    def __reduce__(self):
        # Keep stage/theta when errors cross a process boundary.
        return (type(self), (self.message, self.stage, self.theta))


class IntegrationError(NcovFitError, FloatingPointError):
    """ODE solver failure or non-finite compartment state."""

    stage = "simulate"


class DomainError(NcovFitError, ValueError):
    """log / division undefined: model mean <= 0 (or non-finite) against the data."""

    stage = "likelihood"


class NonConvergenceError(NcovFitError, RuntimeError):
    """The search ended without any finite candidate."""

    stage = "optimizer"


class InputValidationError(NcovFitError, ValueError):
    """Mismatched shapes, negative populations or counts, bad seeding."""

    stage = "inputs"


class BootstrapError(NcovFitError, RuntimeError):
    """No bootstrap replicate succeeded."""

    stage = "bootstrap"
