"""Convergence study of point evaluations on a hierarchy of unit square meshes."""

from __future__ import annotations

import logging
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from numpy.typing import ArrayLike, NDArray

from .datastructures import FESpaceP1, LevelMetrics, StudyParameters, mesh_hierarchy, unit_square_mesh
from .evaluation import jstar, naive_point_evaluation, stable_point_evaluation
from .kernels import harmonic_log
from .plot_style import save_figure, setup_style
from .potentials import mesh_size, representation_formula_error
from .solvers import solve_bvp

log = logging.getLogger(__name__)

ERROR_COLUMNS = ["stable_error", "jstar_error", "naive_error", "representation_error"]


def observed_rates(h: ArrayLike, err: ArrayLike) -> NDArray[np.float64]:
    """Rates log(e_i / e_{i+1}) / log(h_i / h_{i+1}) between consecutive levels."""
    h = np.asarray(h, dtype=np.float64)
    err = np.asarray(err, dtype=np.float64)
    return np.log(err[:-1] / err[1:]) / np.log(h[:-1] / h[1:])


def compute_convergence_rate(h: ArrayLike, err: ArrayLike, n_last: int | None = None) -> float:
    """Least squares slope of log(err) over log(h), optionally over the finest levels only."""
    h = np.asarray(h, dtype=np.float64)
    err = np.asarray(err, dtype=np.float64)
    if n_last is not None:
        h, err = h[-n_last:], err[-n_last:]
    if len(h) < 2:
        raise ValueError("Need at least two levels to fit a convergence rate")
    return float(np.polyfit(np.log(h), np.log(err), 1)[0])


def run_level(mesh, level: int, params: StudyParameters) -> LevelMetrics:
    """Solve the BVP on one mesh and measure all point evaluation errors."""
    x = params.point
    exact = float(harmonic_log(x[0], x[1]))

    fe_space = FESpaceP1(mesh)
    u_fe = solve_bvp(fe_space, harmonic_log)

    stable = stable_point_evaluation(
        fe_space, u_fe, x, degree=params.quad_degree, subdivisions=params.subdivisions
    )
    star = jstar(fe_space, u_fe, x, degree=params.quad_degree, subdivisions=params.subdivisions)
    naive = naive_point_evaluation(fe_space, u_fe, x)

    return LevelMetrics(
        level=level,
        h=mesh_size(mesh),
        ndofs=fe_space.ndofs,
        stable_error=abs(exact - stable),
        jstar_error=abs(exact - star),
        naive_error=abs(exact - naive),
        representation_error=representation_formula_error(mesh, x),
    )


def convergence_study(params: StudyParameters, base=None) -> pd.DataFrame:
    """Errors of every evaluation on `params.levels + 1` uniformly refined meshes.

    Parameters
    ----------
    params : StudyParameters
        Study configuration
    base : Mesh2d, optional
        Coarsest mesh, defaults to the structured n0 x n0 unit square mesh

    Returns
    -------
    pd.DataFrame
        One row per level with the LevelMetrics fields and a `<error>_rate`
        column per error (NaN on the coarsest level).
    """
    if base is None:
        base = unit_square_mesh(params.n0)

    rows = []
    for level, mesh in enumerate(mesh_hierarchy(base, params.levels)):
        metrics = run_level(mesh, level, params)
        log.info(
            f"Level {level}: h={metrics.h:.4f}, DOFs={metrics.ndofs}, "
            f"stable={metrics.stable_error:.3e}, naive={metrics.naive_error:.3e}"
        )
        rows.append(metrics.__dict__.copy())

    df = pd.DataFrame(rows)
    for col in ERROR_COLUMNS:
        rates = np.full(len(df), np.nan)
        if len(df) > 1:
            rates[1:] = observed_rates(df["h"], df[col])
        df[f"{col.removesuffix('_error')}_rate"] = rates
    return df


def to_latex_table(df: pd.DataFrame) -> str:
    """Format the study results as a LaTeX tabular."""
    lines = [
        "\\begin{tabular}{c|cc|cc|cc|c}",
        "\\hline",
        "Level & $h$ & DOF & $|e_{\\mathrm{stable}}|$ & Rate "
        "& $|e_{\\mathrm{naive}}|$ & Rate & $|e_{\\mathrm{rep}}|$ \\\\",
        "\\hline",
    ]
    for row in df.itertuples(index=False):
        stable_rate = "-" if np.isnan(row.stable_rate) else f"{row.stable_rate:.2f}"
        naive_rate = "-" if np.isnan(row.naive_rate) else f"{row.naive_rate:.2f}"
        lines.append(
            f"{row.level} & {row.h:.4f} & {row.ndofs} & {row.stable_error:.2e} & {stable_rate} "
            f"& {row.naive_error:.2e} & {naive_rate} & {row.representation_error:.2e} \\\\"
        )
    lines += ["\\hline", "\\end{tabular}"]
    return "\n".join(lines)


def plot_convergence(df: pd.DataFrame, filepath: str | Path) -> Path:
    """Log-log plot of the point evaluation errors against h."""
    setup_style()
    h = df["h"].to_numpy()

    fig, ax = plt.subplots()
    labels = {
        "stable_error": "Stable evaluation",
        "jstar_error": r"$J^*(w_h)$",
        "naive_error": r"$w_h(x)$",
        "representation_error": "Representation formula",
    }
    for col, label in labels.items():
        ax.loglog(h, df[col].to_numpy(), "o-", label=label)

    # Reference slopes anchored at the coarsest stable error
    e0 = df["stable_error"].iloc[0]
    ax.loglog(h, e0 * (h / h[0]), "k:", label=r"$O(h)$")
    ax.loglog(h, e0 * (h / h[0]) ** 2, "k--", label=r"$O(h^2)$")

    ax.set_xlabel("h (max element edge length)")
    ax.set_ylabel(r"$|u(x) - \tilde u_h(x)|$")
    ax.set_title("Point evaluation error")
    ax.grid(True, alpha=0.3)
    ax.legend()

    path = save_figure(fig, filepath)
    plt.close(fig)
    return path
