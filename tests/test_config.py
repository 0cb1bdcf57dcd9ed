import pytest

from ncovfit.config import FitConfig, config_from_env


def test_defaults():
    cfg = FitConfig()
    assert cfg.t0 == 11
    assert cfg.max_t is None
    assert cfg.alpha == pytest.approx(1 / 5.2)
    assert cfg.solver_kwargs() == {"rtol": 1e-7, "atol": 1e-9, "method": "RK45"}


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("NCOVFIT_N_BOOT", "250")
    monkeypatch.setenv("NCOVFIT_METHOD", "LSODA")
    monkeypatch.setenv("NCOVFIT_MAX_T", "none")
    monkeypatch.setenv("NCOVFIT_XATOL", "1e-6")
    cfg = config_from_env(base=FitConfig(max_t=60, seed=9))
    assert cfg.n_boot == 250
    assert cfg.method == "LSODA"
    assert cfg.max_t is None
    assert cfg.xatol == 1e-6
    # Untouched fields keep the base values.
    assert cfg.seed == 9
    assert cfg.t0 == 11


def test_custom_prefix(monkeypatch):
    monkeypatch.setenv("NCOVFIT_SEED", "5")
    monkeypatch.setenv("RUN_SEED", "7")
    monkeypatch.setenv("RUN_MAXITER", "400")
    cfg = config_from_env(prefix="RUN_")
    assert cfg.seed == 7
    assert cfg.maxiter == 400
