"""
Run configuration: solver / search / bootstrap settings and env overrides.

Every field of FitConfig can be overridden from the environment with the
NCOVFIT_ prefix, e.g. NCOVFIT_N_BOOT=200 or NCOVFIT_METHOD=LSODA. The batch
runner uses this to sweep settings without editing code.
"""

import os  # Environment-variable overrides.
from dataclasses import dataclass, fields  # Config container and field iteration.
from typing import Optional

from ncovfit.likelihood import DEFAULT_T0


@dataclass
class FitConfig:
    t0: int = DEFAULT_T0            # Cumulative first reporting window (days).
    max_t: Optional[int] = None     # Simulation horizon; None -> number of observed days.
    alpha: float = 1 / 5.2          # Fixed E -> I rate (mean latent period 5.2 days).
    rtol: float = 1e-7              # solve_ivp relative tolerance.
    atol: float = 1e-9              # solve_ivp absolute tolerance.
    method: str = "RK45"            # solve_ivp method.
    maxiter: Optional[int] = None   # Nelder-Mead iteration cap (None -> scipy default).
    xatol: float = 1e-4             # Nelder-Mead tolerance in u-space.
    fatol: float = 1e-4             # Nelder-Mead tolerance on -loglik.
    n_boot: int = 100               # Bootstrap replicates.
    n_workers: int = 1              # Bootstrap worker processes.
    seed: int = 0                   # Root seed for synthetic data and bootstrap streams.

    def solver_kwargs(self) -> dict:
        return {"rtol": self.rtol, "atol": self.atol, "method": self.method}


def _env_str(key, default):
    return os.getenv(key, default)


def _env_float(key, default):
    val = os.getenv(key)
    return default if val is None else float(val)


def _env_int(key, default):
    val = os.getenv(key)
    return default if val is None else int(val)


def _env_bool(key, default):
    val = os.getenv(key)
    if val is None:
        return default
    return val.lower() in ("1", "true", "yes", "y")


def _env_float_list(key):
    raw = os.getenv(key, "").strip()
    if not raw:
        return []
    return [float(x) for x in raw.split(",") if x.strip()]


def _env_optional_int(key, default):
    val = os.getenv(key)
    if val is None:
        return default
    return None if val.strip().lower() in ("", "none") else int(val)


_READERS = {
    "t0": _env_int,
    "max_t": _env_optional_int,
    "alpha": _env_float,
    "rtol": _env_float,
    "atol": _env_float,
    "method": _env_str,
    "maxiter": _env_optional_int,
    "xatol": _env_float,
    "fatol": _env_float,
    "n_boot": _env_int,
    "n_workers": _env_int,
    "seed": _env_int,
}


def config_from_env(prefix: str = "NCOVFIT_", base: Optional[FitConfig] = None) -> FitConfig:
    """FitConfig with any PREFIX<FIELD> environment variables applied."""
    base = base or FitConfig()
    values = {}
    for f in fields(FitConfig):
        values[f.name] = _READERS[f.name](prefix + f.name.upper(), getattr(base, f.name))
    return FitConfig(**values)
