"""
Batch runner for synthetic recovery runs.

Set grids below and run:
    python run_fit_batch.py
"""

import itertools
import os
import subprocess
import sys


def fmt_float(val: float) -> str:
    s = f"{val:.3g}"
    return s.replace(".", "p")


def main():
    # ====== EDIT GRIDS HERE ======================
    scenarios = ["slow", "medium", "fast"]
    phis = [0.15, 0.5]
    days_list = [60]
    seeds = [0, 1]
    n_boot_list = [50]
    n_workers = 4
    # =================================================

    combos = list(itertools.product(scenarios, phis, days_list, seeds, n_boot_list))

    for scenario, phi, days, seed, n_boot in combos:
        tag = f"sc{scenario[0]}_phi{fmt_float(phi)}_d{days}_s{seed}_b{n_boot}"
        env = os.environ.copy()
        env.update({
            "RUN_SCENARIO": scenario,
            "RUN_PHI": str(phi),
            "RUN_DAYS": str(days),
            "RUN_TAG": tag,
            "RUN_SHOW_PLOTS": "0",
            "NCOVFIT_SEED": str(seed),
            "NCOVFIT_N_BOOT": str(n_boot),
            "NCOVFIT_N_WORKERS": str(n_workers),
        })

        print(f">>> Running: {tag}")
        result = subprocess.run([sys.executable, "run_fit.py"], env=env)
        if result.returncode != 0:
            print(f"[WARN] run failed: {tag} (code={result.returncode})")


if __name__ == "__main__":
    main()
