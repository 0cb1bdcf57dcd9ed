"""
Parametric bootstrap around a fitted theta.

Each replicate
1) integrates the model at theta_hat,
2) draws a synthetic (y, z) from the same Poisson observation structure the
   likelihood scores (first window collapsed the same way),
3) refits from theta_hat.

Replicates share only read-only inputs and own their random stream
(SeedSequence.spawn), so they can run in any order on any number of worker
processes and still give the same estimates for the same seed.
"""

from concurrent.futures import ProcessPoolExecutor, as_completed  # Replicates in worker processes.
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np  # Arrays and SeedSequence streams.

from ncovfit.errors import BootstrapError, NcovFitError
from ncovfit.fitting import Optimizer, fit
from ncovfit.inputs import MetapopInputs
from ncovfit.metapop_sim import expected_series
from ncovfit.observation import sample_observations  # Poisson redraw of (y, z).
from ncovfit.params import PARAM_NAMES, EpiParams


@dataclass
class ReplicateFailure:
    index: int      # Replicate number in 0..n_boot-1.
    stage: str      # Pipeline stage that raised (simulate, likelihood, optimizer, ...).
    message: str    # Error text without the stage prefix.


@dataclass
class _ReplicateTask:
    index: int
    theta_hat: EpiParams
    inputs: MetapopInputs
    t0: int
    max_t: int
    seed: np.random.SeedSequence
    optimizer: Optional[Optimizer]
    rtol: float
    atol: float
    method: str


@dataclass
class _ReplicateOutcome:
    index: int
    estimate: Optional[np.ndarray] = None
    failure: Optional[ReplicateFailure] = None


def _run_replicate(task: _ReplicateTask) -> _ReplicateOutcome:
    """One resimulate + refit; pipeline failures are returned, not raised."""
    solver = dict(rtol=task.rtol, atol=task.atol, method=task.method)
    rng = np.random.default_rng(task.seed)
    try:
        x, nu, phi_vec = expected_series(task.theta_hat, task.inputs, task.max_t, **solver)
        y, z = sample_observations(x, nu, phi_vec, task.t0, rng)
        res = fit(task.theta_hat, y, z, task.inputs, t0=task.t0, max_t=task.max_t, optimizer=task.optimizer, **solver)
    except NcovFitError as err:
        return _ReplicateOutcome(task.index, failure=ReplicateFailure(task.index, err.stage, err.message))
    return _ReplicateOutcome(task.index, estimate=res.theta.as_array())


@dataclass
class BootstrapResult:
    estimates: np.ndarray          # (succeeded, 4) model-space estimates, replicate order.
    indices: np.ndarray            # Replicate index of each row of estimates.
    requested: int
    failures: List[ReplicateFailure] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return int(self.estimates.shape[0])

    @property
    def n_failed(self) -> int:
        return len(self.failures)

    @property
    def thetas(self) -> List[EpiParams]:
        return [EpiParams.from_array(row) for row in self.estimates]

    @property
    def r0(self) -> np.ndarray:
        return self.estimates[:, 0] / self.estimates[:, 1]

    def mean(self) -> dict:
        out = dict(zip(PARAM_NAMES, self.estimates.mean(axis=0).tolist()))
        out["R0"] = float(self.r0.mean())
        return out

    def percentile_interval(self, level: float = 0.95) -> dict:
        """Equal-tailed percentile interval per parameter (and R0)."""
        if not 0 < level < 1:
            raise ValueError(f"level must lie in (0, 1), got {level}")
        q = 100.0 * np.array([(1 - level) / 2, (1 + level) / 2])
        out = {}
        for k, name in enumerate(PARAM_NAMES):
            lo, hi = np.percentile(self.estimates[:, k], q)
            out[name] = (float(lo), float(hi))
        lo, hi = np.percentile(self.r0, q)
        out["R0"] = (float(lo), float(hi))
        return out


def bootstrap(
    theta_hat: EpiParams,
    inputs: MetapopInputs,
    t0: int,
    max_t: int,
    n_boot: int = 100,
    n_workers: int = 1,
    seed=None,
    optimizer: Optional[Optimizer] = None,
    rtol: float = 1e-7,
    atol: float = 1e-9,
    method: str = "RK45",
    verbose: bool = False,
) -> BootstrapResult:
    """
    Run n_boot independent resimulate-and-refit replicates.

    Synthetic tables span max_t days. With n_workers > 1 replicates go to a
    process pool; the optimizer must then be picklable (module-level function
    or functools.partial, see fitting.make_optimizer).

    Raises:
        BootstrapError: if no replicate succeeded.
    """
    if n_boot < 1:
        raise ValueError(f"n_boot must be >= 1, got {n_boot}")
    seeds = np.random.SeedSequence(seed).spawn(n_boot)
    tasks = [
        _ReplicateTask(b, theta_hat, inputs, t0, max_t, seeds[b], optimizer, rtol, atol, method)
        for b in range(n_boot)
    ]

    outcomes = []
    if n_workers <= 1:
        for task in tasks:
            outcomes.append(_run_replicate(task))
            _report(outcomes[-1], len(outcomes), n_boot, verbose)
    else:
        with ProcessPoolExecutor(max_workers=n_workers) as executor:
            futures = [executor.submit(_run_replicate, task) for task in tasks]
            for future in as_completed(futures):
                outcomes.append(future.result())
                _report(outcomes[-1], len(outcomes), n_boot, verbose)

    outcomes.sort(key=lambda o: o.index)
    ok = [o for o in outcomes if o.failure is None]
    failures = [o.failure for o in outcomes if o.failure is not None]
    if not ok:
        raise BootstrapError(
            f"all {n_boot} replicates failed; first failure: "
            f"[{failures[0].stage}] {failures[0].message}",
            theta=theta_hat,
        )

    result = BootstrapResult(
        estimates=np.vstack([o.estimate for o in ok]),
        indices=np.array([o.index for o in ok]),
        requested=n_boot,
        failures=failures,
    )
    if verbose:
        print(f"Bootstrap finished: {result.succeeded}/{result.requested} replicates succeeded")
    return result


def _report(outcome: _ReplicateOutcome, done: int, total: int, verbose: bool):
    if not verbose:
        return
    if outcome.failure is not None:
        f = outcome.failure
        print(f"[WARN] bootstrap replicate {f.index} failed ({f.stage}): {f.message}")
    if done % 10 == 0 or done == total:
        print(f"  bootstrap progress: {done}/{total}")
