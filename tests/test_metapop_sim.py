import numpy as np
import pytest
from scipy.integrate import solve_ivp

from ncovfit.errors import IntegrationError, InputValidationError
from ncovfit.metapop_sim import expected_series, foreign_imports, simulate
from ncovfit.params import EpiParams, growth_rate


def _single_city_seir(beta, gamma, alpha, N, i0, max_t):
    """Reference single-population SEIR integrated with tight tolerances."""
    def rhs(t, y):
        S, E, I, R = y
        dS = -beta * S * I / N
        return [dS, -dS - alpha * E, alpha * E - gamma * I, gamma * I]

    t_eval = np.arange(0, max_t + 1, dtype=float)
    sol = solve_ivp(rhs, (0.0, float(max_t)), [N - i0, 0.0, i0, 0.0],
                    t_eval=t_eval, rtol=1e-11, atol=1e-11)
    return sol.y


def test_population_is_conserved(three_city_inputs):
    inp = three_city_inputs
    theta = EpiParams(beta=0.7, gamma=0.2, phi=0.5, i0=50.0)
    traj = simulate(theta, inp.alpha, inp.N, inp.K, inp.origin, 120)
    total = traj.S + traj.E + traj.I + traj.R
    np.testing.assert_allclose(total, np.repeat(inp.N[:, None], 121, axis=1), rtol=1e-6)


def test_removals_monotone_and_x_non_negative(three_city_inputs):
    inp = three_city_inputs
    theta = EpiParams(beta=0.7, gamma=0.2, phi=0.5, i0=50.0)
    traj = simulate(theta, inp.alpha, inp.N, inp.K, inp.origin, 120)
    assert np.all(np.diff(traj.R, axis=1) >= -1e-6 * inp.N[:, None])
    assert np.all(traj.x >= 0)
    assert traj.x.shape == (3, 120)
    assert traj.I_over_N.shape == (3, 120)
    np.testing.assert_allclose(traj.x, np.maximum(np.diff(traj.R, axis=1), 0.0))


def test_epidemic_spreads_to_connected_cities(three_city_inputs):
    inp = three_city_inputs
    theta = EpiParams(beta=0.7, gamma=0.2, phi=0.5, i0=50.0)
    traj = simulate(theta, inp.alpha, inp.N, inp.K, inp.origin, 120)
    assert np.all(traj.R[:, -1] > 0)
    assert traj.R[0, -1] / inp.N[0] > 0.5


def test_zero_coupling_reduces_to_single_city_seir():
    N = np.array([2.0e5, 5.0e5])
    K = np.eye(2)
    theta = EpiParams(beta=0.5, gamma=0.2, phi=1.0, i0=20.0)
    alpha, max_t = 0.25, 30
    traj = simulate(theta, alpha, N, K, 0, max_t, rtol=1e-10, atol=1e-10)

    # With K = I the origin city sees beta * (1 + 1/N) * I / N.
    beta_eff = theta.beta * (1.0 + 1.0 / N[0])
    S, E, I, R = _single_city_seir(beta_eff, theta.gamma, alpha, N[0], theta.i0, max_t)
    np.testing.assert_allclose(traj.R[0], R, rtol=1e-6, atol=1e-6)
    np.testing.assert_allclose(traj.I[0], I, rtol=1e-6, atol=1e-6)
    np.testing.assert_allclose(traj.x[0], np.diff(R), rtol=1e-5, atol=1e-6)
    # The unseeded, uncoupled city never leaves the disease-free state.
    assert np.all(traj.x[1] == 0)
    assert np.all(traj.S[1] == N[1])


def test_single_city_growth_curve():
    N = np.array([1.0e6])
    K = np.array([[1.0]])
    theta = EpiParams(beta=0.4, gamma=1 / 7, phi=1.0, i0=1.0)
    alpha = 0.25
    traj = simulate(theta, alpha, N, K, 0, 10)
    x = traj.x[0]
    I = traj.I[0]

    # The seeded infective first feeds E; after the transient both I and x grow.
    assert np.all(np.diff(x[3:]) > 0)
    assert x[-1] > x[0]
    assert np.all(np.diff(I[4:]) > 0)
    assert I[-1] > theta.i0
    assert traj.S[0, -1] / N[0] > 0.9999
    assert np.log(I[10] / I[9]) == pytest.approx(growth_rate(theta.beta, theta.gamma, alpha), rel=0.02)


def test_seed_larger_than_origin_population_fails():
    N = np.array([100.0, 1000.0])
    with pytest.raises(InputValidationError) as info:
        simulate(EpiParams(i0=150.0), 0.25, N, np.eye(2), 0, 5)
    assert info.value.stage == "simulate"


def test_seed_equal_to_origin_population_is_allowed():
    N = np.array([100.0, 1000.0])
    traj = simulate(EpiParams(i0=100.0), 0.25, N, np.eye(2), 0, 5)
    assert traj.S[0, 0] == 0.0
    assert np.all(traj.S[0] >= -1e-9)


def test_non_finite_state_raises_integration_error():
    N = np.array([1.0e4, 1.0e4])
    K = np.array([[1.0, 10.0], [10.0, 1.0]])
    with pytest.raises(IntegrationError) as info:
        simulate(EpiParams(beta=float("inf")), 0.25, N, K, 0, 5)
    assert info.value.stage == "simulate"
    assert info.value.theta is not None


@pytest.mark.parametrize("max_t", [0, -3, 2.5])
def test_bad_horizon_rejected(max_t):
    with pytest.raises(InputValidationError):
        simulate(EpiParams(), 0.25, np.array([1.0e4]), np.array([[1.0]]), 0, max_t)


def test_foreign_imports_formula():
    I_over_N = np.array([[0.1, 0.2], [0.0, 0.4]])
    phi_vec = np.array([0.5, 1.0])
    W = np.array([[10.0, 1.0], [0.0, 2.0]])
    nu = foreign_imports(I_over_N, phi_vec, W)
    expected = np.array([
        [10 * 0.5 * 0.1 + 1 * 0.0, 10 * 0.5 * 0.2 + 1 * 0.4],
        [2 * 0.0, 2 * 0.4],
    ])
    np.testing.assert_allclose(nu, expected)


def test_zero_travel_gives_zero_imports(three_city_inputs):
    inp = three_city_inputs
    I_over_N = np.full((3, 4), 0.01)
    nu = foreign_imports(I_over_N, np.ones(3), np.zeros_like(inp.W))
    assert nu.shape == (2, 4)
    assert np.all(nu == 0)


def test_expected_series_applies_ascertainment(three_city_inputs):
    theta = EpiParams(beta=0.7, gamma=0.2, phi=0.3, i0=50.0)
    x, nu, phi_vec = expected_series(theta, three_city_inputs, 40)
    np.testing.assert_allclose(phi_vec, [0.3, 1.0, 1.0])
    assert x.shape == (3, 40)
    assert nu.shape == (2, 40)
    assert np.all(nu >= 0)


@pytest.mark.parametrize("N, K, alpha", [
    ([1.0e5, -2.0e5], [[1.0, 2.0e3], [2.0e3, 1.0]], 0.25),
    ([1.0e5, 0.0], [[1.0, 2.0e3], [2.0e3, 1.0]], 0.25),
    ([1.0e5, 2.0e5], [[1.0, -5.0e3], [2.0e3, 1.0]], 0.25),
    ([1.0e5, 2.0e5], [[1.0, 2.0e3], [2.0e3, 1.0]], -0.25),
    ([1.0e5, 2.0e5], [[1.0, 2.0e3], [2.0e3, 1.0]], 0.0),
])
def test_invalid_network_rejected(N, K, alpha):
    with pytest.raises(InputValidationError) as info:
        simulate(EpiParams(beta=0.5, gamma=0.2, i0=10.0), alpha, np.array(N), np.array(K), 0, 30)
    assert info.value.stage == "simulate"


def test_mobility_diagonal_is_reset_to_one():
    N = np.array([1.0e5, 2.0e5])
    theta = EpiParams(beta=0.5, gamma=0.2, i0=10.0)
    K_raw = np.array([[0.0, 2.0e3], [2.0e3, 9.0e4]])
    K_unit = np.array([[1.0, 2.0e3], [2.0e3, 1.0]])
    a = simulate(theta, 0.25, N, K_raw, 0, 30)
    b = simulate(theta, 0.25, N, K_unit, 0, 30)
    np.testing.assert_allclose(a.R, b.R)
    # Caller's matrix is not modified.
    assert K_raw[1, 1] == 9.0e4
