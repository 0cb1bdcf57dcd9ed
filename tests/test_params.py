import numpy as np
import pytest

from ncovfit.errors import InputValidationError
from ncovfit.params import (
    EpiParams,
    doubling_time,
    from_unconstrained,
    growth_rate,
    to_unconstrained,
)


def test_round_trip_in_unconstrained_space():
    rng = np.random.default_rng(1)
    for u in rng.uniform(-5, 5, size=(200, 4)):
        back = to_unconstrained(from_unconstrained(u))
        np.testing.assert_allclose(back, u, rtol=1e-10, atol=1e-10)


def test_forward_map_stays_in_model_domain():
    rng = np.random.default_rng(2)
    for u in rng.uniform(-20, 20, size=(200, 4)):
        theta = from_unconstrained(u)
        assert theta.beta > 0
        assert theta.gamma > 0
        assert theta.i0 > 0
        assert 0 < theta.phi < 1


def test_round_trip_in_model_space():
    theta = EpiParams(beta=0.4, gamma=1 / 7, phi=0.3, i0=5.0)
    back = from_unconstrained(to_unconstrained(theta))
    np.testing.assert_allclose(back.as_array(), theta.as_array(), rtol=1e-12)


def test_phi_one_maps_to_finite_u():
    u = to_unconstrained(EpiParams(phi=1.0))
    assert np.all(np.isfinite(u))
    assert from_unconstrained(u).phi == pytest.approx(1.0, abs=1e-8)


@pytest.mark.parametrize("kwargs", [
    {"beta": 0.0},
    {"gamma": -1.0},
    {"phi": 0.0},
    {"phi": 1.5},
    {"i0": 0.0},
    {"beta": float("nan")},
])
def test_invalid_params_rejected(kwargs):
    with pytest.raises(InputValidationError):
        EpiParams(**kwargs)


def test_array_conversion():
    theta = EpiParams(beta=0.5, gamma=0.2, phi=0.7, i0=3.0)
    assert EpiParams.from_array(theta.as_array()) == theta
    assert theta.r0 == pytest.approx(2.5)
    assert theta.infectious_period == pytest.approx(5.0)
    with pytest.raises(InputValidationError):
        EpiParams.from_array([1.0, 2.0])


def test_growth_rate_solves_characteristic_equation():
    beta, gamma, alpha = 0.4, 1 / 7, 0.25
    r = growth_rate(beta, gamma, alpha)
    assert (r + alpha) * (r + gamma) == pytest.approx(alpha * beta)
    assert doubling_time(beta, gamma, alpha) == pytest.approx(np.log(2) / r)


def test_no_growth_gives_infinite_doubling_time():
    assert doubling_time(0.1, 0.2, 0.25) == float("inf")


@pytest.mark.parametrize("u_phi", [40.0, 800.0, -40.0, -800.0])
def test_saturated_logit_stays_strictly_inside_unit_interval(u_phi):
    theta = from_unconstrained([np.log(0.4), np.log(0.2), u_phi, 0.0])
    assert 0 < theta.phi < 1
    assert np.all(np.isfinite(to_unconstrained(theta)))
