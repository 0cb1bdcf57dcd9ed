import numpy as np
import pytest

from ncovfit.inputs import MetapopInputs
from ncovfit.metapop_sim import expected_series
from ncovfit.observation import collapse_initial_window
from ncovfit.params import EpiParams

# Loose solver settings keep the fitting tests fast.
FAST_SOLVER = {"rtol": 1e-6, "atol": 1e-6}


@pytest.fixture
def three_city_inputs():
    N = np.array([5.0e5, 1.0e6, 8.0e5])
    K = np.array([
        [0.0, 3.0e3, 2.0e3],
        [3.0e3, 0.0, 4.0e3],
        [2.0e3, 4.0e3, 0.0],
    ])
    W = np.array([
        [400.0, 800.0, 100.0],
        [200.0, 0.0, 600.0],
    ])
    return MetapopInputs(N=N, K=K, W=W, alpha=0.25, origin=0)


@pytest.fixture
def two_city_inputs():
    N = np.array([1.0e5, 2.0e5])
    K = np.array([[1.0, 2.0e3], [2.0e3, 1.0]])
    W = np.array([[500.0, 300.0]])
    return MetapopInputs(N=N, K=K, W=W, alpha=0.25, origin=0,
                         city_labels=["Wuhan", "Other"], country_labels=["Abroad"])


@pytest.fixture
def two_city_truth():
    return EpiParams(beta=0.6, gamma=0.25, phi=0.4, i0=10.0)


@pytest.fixture
def noise_free_data(two_city_inputs, two_city_truth):
    """Rounded model means over 80 days, first 11 days collapsed."""
    x, nu, phi_vec = expected_series(two_city_truth, two_city_inputs, 80)
    y = collapse_initial_window(np.round(phi_vec[:, None] * x), 11)
    z = np.round(nu)
    return y, z
