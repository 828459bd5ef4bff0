"""Stable point evaluation of P1 finite element solutions on the unit square.

A discrete harmonic function w_h is evaluated at an interior point x through
the functional J*(w) = -∫ w Δ(Psi G_x), where G_x is the fundamental solution
of the Laplacian and Psi a smooth cutoff vanishing near x. The result
converges like the L2 error of w_h instead of its pointwise error.

Main components:
- Mesh2d, FESpaceP1: triangular meshes and the P1 Lagrange space
- solve_bvp: Dirichlet problem for the Laplace/Poisson equation
- FundamentalSolution, Psi: kernels of the evaluation functional
- single_layer_potential, double_layer_potential: boundary potentials
- jstar, stable_point_evaluation, point_eval: point evaluation
- convergence_study: errors and rates over a mesh hierarchy
"""

from .datastructures import (
    Mesh2d,
    FESpaceP1,
    StudyParameters,
    LevelMetrics,
    LEFT,
    RIGHT,
    BOTTOM,
    TOP,
    BOUNDARY_TOL,
    EDGE_VERTICES,
    unit_square_mesh,
    refine_uniform,
    mesh_hierarchy,
)
from .assembly import assembly_2d
from .boundary import (
    dirbc_2d,
    get_boundary_nodes,
    get_edge_nodes,
    get_edge_midpoints,
    get_edge_lengths,
)
from .solvers import SolverError, solve_bvp
from .interpolation import evaluate, fe_function, interpolate, linf_error
from .kernels import (
    DOMAIN_CENTER,
    R_INNER,
    R_OUTER,
    FundamentalSolution,
    Psi,
    harmonic_log,
    harmonic_log_grad,
)
from .potentials import (
    mesh_size,
    outer_normal_unit_square,
    single_layer_potential,
    double_layer_potential,
    trace_double_layer_potential,
    representation_formula,
    representation_formula_error,
)
from .evaluation import (
    jstar,
    stable_point_evaluation,
    naive_point_evaluation,
    point_eval,
)
from .convergence import (
    convergence_study,
    compute_convergence_rate,
    observed_rates,
    plot_convergence,
    to_latex_table,
)

__all__ = [
    # Mesh and FE space
    "Mesh2d",
    "FESpaceP1",
    "LEFT",
    "RIGHT",
    "BOTTOM",
    "TOP",
    "BOUNDARY_TOL",
    "EDGE_VERTICES",
    "unit_square_mesh",
    "refine_uniform",
    "mesh_hierarchy",
    # Assembly and boundary conditions
    "assembly_2d",
    "dirbc_2d",
    "get_boundary_nodes",
    "get_edge_nodes",
    "get_edge_midpoints",
    "get_edge_lengths",
    # Solver
    "SolverError",
    "solve_bvp",
    # FE functions
    "evaluate",
    "fe_function",
    "interpolate",
    "linf_error",
    # Kernels
    "DOMAIN_CENTER",
    "R_INNER",
    "R_OUTER",
    "FundamentalSolution",
    "Psi",
    "harmonic_log",
    "harmonic_log_grad",
    # Potentials
    "mesh_size",
    "outer_normal_unit_square",
    "single_layer_potential",
    "double_layer_potential",
    "trace_double_layer_potential",
    "representation_formula",
    "representation_formula_error",
    # Point evaluation
    "jstar",
    "stable_point_evaluation",
    "naive_point_evaluation",
    "point_eval",
    # Studies
    "StudyParameters",
    "LevelMetrics",
    "convergence_study",
    "compute_convergence_rate",
    "observed_rates",
    "plot_convergence",
    "to_latex_table",
]
