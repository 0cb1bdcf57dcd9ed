"""
Small plotting helpers for the runner scripts.
"""

import numpy as np  # Numerical arrays.
import matplotlib.pyplot as plt  # Plotting helpers.

from ncovfit.params import PARAM_NAMES


def _make_axes(n_panels: int):
    """Create a subplot grid sized to the number of panels."""
    if n_panels <= 2:
        rows, cols = 1, n_panels
    else:
        cols = 2
        rows = (n_panels + 1) // 2
    fig, axes = plt.subplots(rows, cols, figsize=(14, 5 * rows))
    axes = np.atleast_1d(axes).flatten()
    for j in range(n_panels, len(axes)):
        axes[j].set_visible(False)
    return fig, axes[:n_panels]


def plot_fit(t, observed, fitted, labels, t0=0, title="Observed vs fitted daily cases"):
    """
    Observed counts vs model means, one panel per row.

    Args:
        t: day numbers (T,)
        observed: (rows, T) counts
        fitted: (rows, T) expected counts (already ascertainment-scaled)
        labels: row names
        t0: cumulative first window; the day-t0 point is drawn hollow
    """
    fig, axes = _make_axes(len(labels))
    for i, (ax, name) in enumerate(zip(axes, labels)):
        obs = np.asarray(observed[i], dtype=float)
        ax.plot(t[t0:], obs[t0:], "ko", ms=3, label="Observed")
        if t0 >= 1:
            ax.plot(t[t0 - 1], obs[t0 - 1], "o", mfc="none", mec="k", label=f"Cumulative days 1-{t0}")
        ax.plot(t, fitted[i], "r-", lw=1.8, label="Model mean")
        ax.set_xlabel("Day", fontsize=11)
        ax.set_ylabel("Cases", fontsize=11)
        ax.set_title(name, fontsize=12)
        ax.legend(fontsize=8)
        ax.grid(True, alpha=0.3)
    fig.suptitle(title, fontsize=13, fontweight="bold", y=0.98)
    fig.tight_layout(rect=[0.0, 0.03, 1.0, 0.94])
    return fig


def plot_bootstrap(estimates, theta_hat=None, truth=None):
    """Histogram of bootstrap estimates per parameter with point estimate / truth lines."""
    fig, axes = _make_axes(len(PARAM_NAMES))
    for k, (ax, name) in enumerate(zip(axes, PARAM_NAMES)):
        ax.hist(estimates[:, k], bins=30, color="steelblue", alpha=0.7)
        if theta_hat is not None:
            ax.axvline(theta_hat.as_array()[k], color="r", lw=2, label="Estimate")
        if truth is not None:
            ax.axvline(truth.as_array()[k], color="k", ls="--", lw=1.5, label="Truth")
        ax.set_title(name, fontsize=12)
        ax.grid(True, alpha=0.3)
        if theta_hat is not None or truth is not None:
            ax.legend(fontsize=8)
    fig.suptitle("Parametric bootstrap distribution", fontsize=13, fontweight="bold", y=0.98)
    fig.tight_layout(rect=[0.0, 0.03, 1.0, 0.94])
    return fig
