"""Stable evaluation of a discrete harmonic function at an interior point.

For harmonic u and x in the disc where Psi vanishes, Green's second identity
applied to Psi * G_x gives

    u(x) = J*(u) = -∫_Ω u(y) Δ(Psi G_x)(y) dy.

For w_h in H1 one integration by parts turns this into

    J*(w_h) = ∫_Ω grad w_h . grad(Psi G_x) dy - ∫_∂Ω w_h ∂_n G_x ds,

since Psi = 1 and grad Psi = 0 on the boundary of the unit square. Only the
continuous gradient of Psi enters the volume integral, and replacing u by the
finite element solution w_h gives a point value whose error is controlled by
the L2-type error of w_h instead of its pointwise error.
"""

from __future__ import annotations

import logging

import numpy as np
from numpy.typing import ArrayLike, NDArray

from .assembly import map_to_physical
from .datastructures import FESpaceP1, Mesh2d
from .elements import composite_quadrature, triangle_quadrature
from .interpolation import evaluate, fe_function
from .kernels import (
    DOMAIN_CENTER,
    INNER,
    R_INNER,
    R_OUTER,
    FundamentalSolution,
    Psi,
    harmonic_log,
)
from .potentials import (
    _interior_point,
    check_unit_square,
    double_layer_potential,
    trace_double_layer_potential,
)
from .solvers import solve_bvp

log = logging.getLogger(__name__)


def _cut_elements(mesh: Mesh2d, center: NDArray[np.float64]) -> NDArray[np.bool_]:
    """Elements that may intersect one of the circles |y - center| = R_INNER, R_OUTER."""
    x1, y1, x2, y2, x3, y3 = mesh.vertex_coords
    d = np.column_stack([
        np.hypot(x1 - center[0], y1 - center[1]),
        np.hypot(x2 - center[0], y2 - center[1]),
        np.hypot(x3 - center[0], y3 - center[1]),
    ])
    h = mesh.element_edge_lengths.max(axis=1)
    lo, hi = d.min(axis=1) - h, d.max(axis=1)

    cut = np.zeros(mesh.noelms, dtype=bool)
    for r in (R_INNER, R_OUTER):
        cut |= (lo <= r) & (r <= hi)
    return cut


def _quadrature_groups(mesh: Mesh2d, center: NDArray[np.float64], degree: int, subdivisions: int):
    """(elements, bary, weights) groups; elements cut by the cutoff radii get a composite rule."""
    bary, weights = triangle_quadrature(degree)
    if subdivisions == 0:
        return [(np.arange(mesh.noelms), bary, weights)]

    cut = _cut_elements(mesh, center)
    fine_bary, fine_weights = composite_quadrature(bary, weights, subdivisions)
    return [
        (np.flatnonzero(~cut), bary, weights),
        (np.flatnonzero(cut), fine_bary, fine_weights),
    ]


def _evaluation_kernels(mesh: Mesh2d, x: ArrayLike) -> tuple[Psi, FundamentalSolution]:
    """Cutoff and fundamental solution for a point where the cutoff vanishes.

    Raises ValueError unless the mesh covers the unit square and
    |x - (0.5, 0.5)| < R_INNER.
    """
    check_unit_square(mesh)
    x = _interior_point(x)
    psi = Psi(DOMAIN_CENTER)
    if np.linalg.norm(x - psi.center) >= R_INNER:
        raise ValueError(
            f"Point {x.tolist()} must satisfy |x - (0.5, 0.5)| < {R_INNER:.6f}, "
            f"where the cutoff vanishes"
        )
    return psi, FundamentalSolution(x)


def _gradient_volume_term(
    fe_space: FESpaceP1,
    u_fe: NDArray[np.float64],
    G: FundamentalSolution,
    psi: Psi,
    degree: int,
    subdivisions: int,
) -> float:
    """∫_Ω grad w_h . grad(Psi G_x) dy over the support of Psi."""
    mesh = fe_space.mesh
    grads = fe_space.gradients(u_fe)

    total = 0.0
    for elements, bary, weights in _quadrature_groups(mesh, psi.center, degree, subdivisions):
        xq, yq = map_to_physical(mesh, bary, elements)
        pts = np.stack([xq, yq], axis=-1)
        active = psi.region(pts) != INNER

        p = pts[active]
        w = (weights * mesh.delta[elements][:, None])[active]
        grad_w = np.broadcast_to(grads[elements][:, None, :], pts.shape)[active]

        grad_psi_G = G(p)[:, None] * psi.grad(p) + psi(p)[:, None] * G.grad(p)
        total += np.sum(w * np.sum(grad_w * grad_psi_G, axis=-1))

    return float(total)


def jstar(
    fe_space: FESpaceP1,
    u_fe: NDArray[np.float64],
    x: ArrayLike,
    degree: int = 4,
    subdivisions: int = 3,
    n_quad: int = 5,
) -> float:
    """
    The functional J*(w_h) = -∫_Ω w_h Δ(Psi G_x) dy.

    ΔPsi jumps across both cutoff radii, so the functional is evaluated in its
    integrated form, which is exact for continuous piecewise linear w_h:
    the volume integral of grad w_h . grad(Psi G_x) minus the double-layer
    potential of the trace of w_h.

    Parameters
    ----------
    fe_space : FESpaceP1
        P1 space on a triangulation of the unit square
    u_fe : ndarray (ndofs,)
        Coefficients of w_h
    x : array_like (2,)
        Evaluation point, |x - (0.5, 0.5)| < R_INNER
    degree : int
        Triangle quadrature degree of the volume integral
    subdivisions : int
        Red refinement levels of the rule on elements cut by the cutoff radii
    n_quad : int
        Gauss-Legendre points per boundary edge

    Returns
    -------
    float
        J*(w_h)
    """
    u_fe = fe_space.check_coefficients(u_fe)
    psi, G = _evaluation_kernels(fe_space.mesh, x)

    volume = _gradient_volume_term(fe_space, u_fe, G, psi, degree, subdivisions)
    return volume - trace_double_layer_potential(fe_space, u_fe, G.x, n_quad)


def stable_point_evaluation(
    fe_space: FESpaceP1,
    u_fe: NDArray[np.float64],
    x: ArrayLike,
    degree: int = 4,
    subdivisions: int = 3,
) -> float:
    """Stable approximation of u(x) from the FE solution w_h.

    Same volume integral as `jstar`, with the boundary term discretized by the
    midpoint-rule double-layer potential of the trace of w_h,

        ∫_Ω grad w_h . grad(Psi G_x) dy - P_DL(w_h)(x).
    """
    u_fe = fe_space.check_coefficients(u_fe)
    psi, G = _evaluation_kernels(fe_space.mesh, x)

    volume = _gradient_volume_term(fe_space, u_fe, G, psi, degree, subdivisions)
    return volume - double_layer_potential(fe_space.mesh, fe_function(fe_space, u_fe), G.x)


def naive_point_evaluation(fe_space: FESpaceP1, u_fe: NDArray[np.float64], x: ArrayLike) -> float:
    """w_h(x) by barycentric interpolation in the containing triangle."""
    return evaluate(fe_space, u_fe, np.asarray(x, dtype=np.float64))


def point_eval(mesh: Mesh2d, x: ArrayLike = (0.3, 0.4)) -> float:
    """|u(x) - stable evaluation of w_h at x| for u = log|y + (1, 0)|.

    w_h is the FE solution of the Laplace equation with Dirichlet data u.
    """
    x = np.asarray(x, dtype=np.float64)
    fe_space = FESpaceP1(mesh)
    u_fe = solve_bvp(fe_space, harmonic_log)
    approx = stable_point_evaluation(fe_space, u_fe, x)
    error = float(abs(harmonic_log(x[0], x[1]) - approx))
    log.debug(f"point_eval: {fe_space.ndofs} DOFs, error={error:.3e}")
    return error
