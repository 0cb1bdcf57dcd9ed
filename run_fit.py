"""
Entry point: synthetic recovery run.

You can run:
    python run_fit.py

What you should expect:
- a ground-truth epidemic on a small toy airline network
- Poisson-sampled domestic and exported case tables
- the maximum-likelihood estimate next to the truth
- a parametric bootstrap interval for every parameter (and R0)
- figures + terminal_output.txt under results/<timestamp>_<tag>/

Settings come from NCOVFIT_* environment variables (see ncovfit/config.py)
plus the RUN_* switches below.
"""

from datetime import datetime
from pathlib import Path
import sys

import numpy as np  # Numerical arrays.
import matplotlib.pyplot as plt  # Plotting.

# Fit and uncertainty engines.
from ncovfit.bootstrap import bootstrap
from ncovfit.config import _env_bool, _env_float, _env_float_list, _env_str, config_from_env
from ncovfit.errors import NcovFitError
from ncovfit.fitting import fit, make_optimizer
# Synthetic ground truth and observation layer.
from ncovfit.inputs import MetapopInputs
from ncovfit.metapop_sim import expected_series
from ncovfit.observation import sample_observations
from ncovfit.params import EpiParams, doubling_time
from ncovfit.plots import plot_bootstrap, plot_fit


def handle_figure(fig, name, output_dir, show=True, close_after=True):
    """Save a figure with a stable name and optionally show it non-blocking."""
    output_dir.mkdir(parents=True, exist_ok=True)
    fig_path = output_dir / f"{name}.png"
    fig.savefig(fig_path, dpi=200, bbox_inches="tight")
    if show:
        plt.show(block=False)
        plt.pause(0.1)
    if close_after:
        plt.close(fig)


class Tee:
    """Write output to both console and a file."""
    def __init__(self, *streams):
        self.streams = streams

    def write(self, data):
        for s in self.streams:
            s.write(data)
            s.flush()

    def flush(self):
        for s in self.streams:
            s.flush()


def toy_network(n_countries: int = 3):
    """
    Five-city toy network seeded at city 0 ("Wuhan").

    Passenger volumes are of the order of real daily domestic air traffic;
    W sends most exports from the origin city.
    """
    city_labels = ["Wuhan", "Beijing", "Shanghai", "Guangzhou", "Chengdu"]
    N = np.array([11.0e6, 21.5e6, 24.2e6, 14.9e6, 16.3e6])
    K = np.array([
        [1.0, 8.0e3, 9.0e3, 7.5e3, 4.0e3],
        [8.0e3, 1.0, 2.5e4, 1.8e4, 1.2e4],
        [9.0e3, 2.5e4, 1.0, 1.6e4, 1.1e4],
        [7.5e3, 1.8e4, 1.6e4, 1.0, 9.0e3],
        [4.0e3, 1.2e4, 1.1e4, 9.0e3, 1.0],
    ])
    country_labels = ["Thailand", "Japan", "Singapore", "Korea", "USA"][:n_countries]
    W = np.array([
        [1.2e3, 2.0e3, 3.0e3, 2.5e3, 1.0e3],
        [9.0e2, 4.0e3, 4.5e3, 2.0e3, 8.0e2],
        [6.0e2, 2.5e3, 3.5e3, 3.0e3, 5.0e2],
        [5.0e2, 3.5e3, 4.0e3, 1.5e3, 6.0e2],
        [3.0e2, 2.0e3, 2.5e3, 1.0e3, 4.0e2],
    ])[:n_countries]
    return N, K, W, city_labels, country_labels


def main():
    # Output folder for plots (timestamped).
    timestamp = datetime.now().strftime("%m%d%H%M%S")
    tag = _env_str("RUN_TAG", "").strip()
    output_dir = Path("results") / (f"{timestamp}_{tag}" if tag else timestamp)
    show_plots = _env_bool("RUN_SHOW_PLOTS", True)  # non-blocking display
    output_dir.mkdir(parents=True, exist_ok=True)
    log_file = open(output_dir / "terminal_output.txt", "w", encoding="utf-8")
    old_stdout, old_stderr = sys.stdout, sys.stderr
    sys.stdout = Tee(sys.stdout, log_file)
    sys.stderr = Tee(sys.stderr, log_file)
    try:
        run(output_dir, show_plots)
    finally:
        sys.stdout, sys.stderr = old_stdout, old_stderr
        log_file.close()


def run(output_dir, show_plots):
    print(">>> run_fit started")  # Run start marker.
    print("=" * 70)
    cfg = config_from_env()

    # === PARAMETER SCENARIOS (ADJUST IF EPIDEMIC TOO FAST/SLOW) ===
    # - "slow":   R0 ~ 1.8
    # - "medium": R0 ~ 2.4
    # - "fast":   R0 ~ 3.2
    scenario = _env_str("RUN_SCENARIO", "medium").lower().strip()
    beta_map = {"slow": 0.26, "medium": 0.35, "fast": 0.46}
    truth = EpiParams(
        beta=beta_map.get(scenario, beta_map["medium"]),
        gamma=1 / 7.0,
        phi=_env_float("RUN_PHI", 0.15),
        i0=_env_float("RUN_I0", 10.0),
    )
    n_days = int(_env_float("RUN_DAYS", 60))
    max_t = cfg.max_t or n_days

    N, K, W, city_labels, country_labels = toy_network()
    inputs = MetapopInputs(N=N, K=K, W=W, alpha=cfg.alpha, origin=0,
                           city_labels=city_labels, country_labels=country_labels)
    print(f"Scenario: {scenario}  cities={inputs.n_cities}  countries={inputs.n_countries}")
    print(f"Truth: beta={truth.beta:.4f}, gamma={truth.gamma:.4f}, phi={truth.phi:.3f}, "
          f"i0={truth.i0:.2f}, R0={truth.r0:.2f}, "
          f"doubling={doubling_time(truth.beta, truth.gamma, cfg.alpha):.2f}d")
    print(f"Config: {cfg}")

    # 1) Ground truth and one observed data set.
    solver = cfg.solver_kwargs()
    x, nu, phi_vec = expected_series(truth, inputs, max_t, **solver)
    rng = np.random.default_rng(cfg.seed)
    y, z = sample_observations(x[:, :n_days], nu[:, :n_days], phi_vec, cfg.t0, rng)
    print(f"Observed: {int(y.sum())} domestic cases, {int(z.sum())} exported cases over {n_days} days")

    # 2) Point estimate from a deliberately perturbed start.
    # Optional start override: RUN_START="beta,gamma,phi,i0".
    start = _env_float_list("RUN_START")
    theta0 = EpiParams(*start) if start else EpiParams(
        beta=truth.beta * 1.3, gamma=truth.gamma * 0.8, phi=0.5, i0=truth.i0 * 3)
    optimizer = make_optimizer(maxiter=cfg.maxiter, xatol=cfg.xatol, fatol=cfg.fatol)
    try:
        res = fit(theta0, y, z, inputs, t0=cfg.t0, max_t=max_t, optimizer=optimizer, **solver)
    except NcovFitError as err:
        print(f"[ERROR] fit failed at stage '{err.stage}': {err.message}")
        print(f"        last attempted theta: {err.theta}")
        raise

    print("\nMaximum-likelihood estimate:")
    print("=" * 70)
    for key, val in res.summary().items():
        print(f"  {key:>18s} = {val:.6g}")
    print("=" * 70)

    x_hat, nu_hat, phi_hat = expected_series(res.theta, inputs, max_t, **solver)
    t_days = np.arange(1, n_days + 1)
    fig1 = plot_fit(t_days, y, phi_hat[:, None] * x_hat[:, :n_days], city_labels, t0=cfg.t0,
                    title="Domestic cases: observed vs fitted")
    handle_figure(fig1, "fig1_domestic_fit", output_dir, show=show_plots)
    fig2 = plot_fit(t_days, z, nu_hat[:, :n_days], country_labels, t0=0,
                    title="Exported cases: observed vs fitted")
    handle_figure(fig2, "fig2_export_fit", output_dir, show=show_plots)

    # 3) Parametric bootstrap around the estimate.
    if cfg.n_boot <= 0:
        print("Bootstrap skipped (NCOVFIT_N_BOOT <= 0).")
        return
    print(f"\nParametric bootstrap: {cfg.n_boot} replicates on {cfg.n_workers} worker(s)")
    try:
        boot = bootstrap(res.theta, inputs, cfg.t0, n_days, n_boot=cfg.n_boot,
                         n_workers=cfg.n_workers, seed=cfg.seed + 1, optimizer=optimizer,
                         verbose=True, **solver)
    except NcovFitError as err:
        print(f"[ERROR] bootstrap failed: {err}")
        raise

    print(f"Replicates: requested={boot.requested}, succeeded={boot.succeeded}, failed={boot.n_failed}")
    ci = boot.percentile_interval(0.95)
    mean = boot.mean()
    print("\n95% bootstrap percentile intervals:")
    for name, (lo, hi) in ci.items():
        print(f"  {name:>6s}: mean={mean[name]:.5g}  [{lo:.5g}, {hi:.5g}]")

    np.savetxt(output_dir / "bootstrap_estimates.csv", boot.estimates, delimiter=",",
               header="beta,gamma,phi,i0", comments="")
    fig3 = plot_bootstrap(boot.estimates, theta_hat=res.theta, truth=truth)
    handle_figure(fig3, "fig3_bootstrap", output_dir, show=show_plots)
    print(f"\nOutputs written to {output_dir}")


if __name__ == "__main__":
    main()
