"""Boundary potentials on triangulations of the unit square.

Single- and double-layer potentials of a density callable are approximated
with the midpoint rule on the boundary edges, summed in the mesh's
boundary-edge storage order. The double-layer potential of the trace of a
P1 function uses a Gauss-Legendre rule on each edge instead.
"""

from __future__ import annotations

from typing import Callable

import numpy as np
from numpy.typing import ArrayLike, NDArray

from .boundary import get_edge_lengths, get_edge_midpoints, get_edge_nodes
from .datastructures import FESpaceP1, Mesh2d
from .kernels import FundamentalSolution, harmonic_log, harmonic_log_grad

# Outward normals indexed by LEFT, RIGHT, BOTTOM, TOP
_SIDE_NORMALS = np.array([[-1.0, 0.0], [1.0, 0.0], [0.0, -1.0], [0.0, 1.0]])

# Gauss-Legendre points and weights on [-1, 1]
_GAUSS_QUAD = {n: np.polynomial.legendre.leggauss(n) for n in (1, 2, 3, 5)}

UNIT_SQUARE_TOL = 1e-10


def mesh_size(mesh: Mesh2d) -> float:
    """Longest edge of the mesh."""
    return float(np.max(mesh.element_edge_lengths))


def outer_normal_unit_square(point: ArrayLike) -> NDArray[np.float64]:
    """Outward unit normal of the side of [0,1]^2 nearest to the point(s)."""
    p = np.asarray(point, dtype=np.float64)
    dist = np.stack([p[..., 0], 1.0 - p[..., 0], p[..., 1], 1.0 - p[..., 1]], axis=-1)
    return _SIDE_NORMALS[np.argmin(dist, axis=-1)]


def check_unit_square(mesh: Mesh2d, tol: float = UNIT_SQUARE_TOL) -> None:
    """Raise ValueError unless the mesh triangulates exactly [0,1]^2."""
    box = (mesh.x0, mesh.y0, mesh.L1, mesh.L2)
    if not np.allclose(box, (0.0, 0.0, 1.0, 1.0), rtol=0.0, atol=tol):
        raise ValueError(f"Mesh must cover the unit square, got [x0, y0, L1, L2] = {box}")
    area = float(np.sum(mesh.delta))
    if abs(area - 1.0) > 1e-8:
        raise ValueError(f"Mesh area {area} differs from the unit square area")
    lengths = get_edge_lengths(mesh.boundary_edges, mesh)
    per_side = np.bincount(mesh.boundary_sides, weights=lengths, minlength=4)
    if not np.allclose(per_side, 1.0, rtol=0.0, atol=1e-8):
        raise ValueError(
            f"Boundary edges must cover every side once, got side lengths {per_side.tolist()}"
        )


def _interior_point(x: ArrayLike) -> NDArray[np.float64]:
    x = np.asarray(x, dtype=np.float64)
    if x.shape != (2,):
        raise ValueError(f"Expected a single 2D point, got shape {x.shape}")
    if not np.all((x > 0.0) & (x < 1.0)):
        raise ValueError(f"Point {x.tolist()} must lie strictly inside the unit square")
    return x


def single_layer_potential(
    mesh: Mesh2d,
    v: Callable[[NDArray, NDArray], NDArray],
    x: ArrayLike,
) -> float:
    """P_SL(v)(x) = ∫_∂Ω v(y) G_x(y) ds(y), local midpoint rule."""
    check_unit_square(mesh)
    G = FundamentalSolution(_interior_point(x))

    midpoints = get_edge_midpoints(mesh.boundary_edges, mesh)
    lengths = get_edge_lengths(mesh.boundary_edges, mesh)

    v_mid = np.asarray(v(midpoints[:, 0], midpoints[:, 1]), dtype=np.float64)
    return float(np.sum(v_mid * G(midpoints) * lengths))


def double_layer_potential(
    mesh: Mesh2d,
    v: Callable[[NDArray, NDArray], NDArray],
    x: ArrayLike,
) -> float:
    """P_DL(v)(x) = ∫_∂Ω v(y) grad G_x(y) . n(y) ds(y), local midpoint rule."""
    check_unit_square(mesh)
    G = FundamentalSolution(_interior_point(x))

    midpoints = get_edge_midpoints(mesh.boundary_edges, mesh)
    lengths = get_edge_lengths(mesh.boundary_edges, mesh)
    normals = outer_normal_unit_square(midpoints)

    v_mid = np.asarray(v(midpoints[:, 0], midpoints[:, 1]), dtype=np.float64)
    dG_dn = np.sum(G.grad(midpoints) * normals, axis=1)
    return float(np.sum(v_mid * dG_dn * lengths))


def trace_double_layer_potential(
    fe_space: FESpaceP1,
    u_fe: NDArray[np.float64],
    x: ArrayLike,
    n_quad: int = 5,
) -> float:
    """P_DL(w_h)(x) for the trace of the P1 function w_h.

    The trace is linear on each boundary edge, so its values at the Gauss
    points follow from the two end point coefficients.
    """
    if n_quad not in _GAUSS_QUAD:
        raise ValueError(f"Unsupported n_quad={n_quad}. Use 1, 2, 3, or 5.")
    mesh = fe_space.mesh
    check_unit_square(mesh)
    u_fe = fe_space.check_coefficients(u_fe)
    G = FundamentalSolution(_interior_point(x))

    t, w = _GAUSS_QUAD[n_quad]
    s = 0.5 * (t + 1.0)
    start, end = get_edge_nodes(mesh.boundary_edges, mesh)
    p0 = np.column_stack([mesh.VX[start], mesh.VY[start]])
    p1 = np.column_stack([mesh.VX[end], mesh.VY[end]])

    # (n_edges, n_quad) points on the edges and trace values there
    pts = p0[:, None, :] + s[None, :, None] * (p1 - p0)[:, None, :]
    trace = u_fe[start][:, None] + s * (u_fe[end] - u_fe[start])[:, None]

    normals = _SIDE_NORMALS[mesh.boundary_sides]
    dG_dn = np.sum(G.grad(pts) * normals[:, None, :], axis=-1)
    lengths = get_edge_lengths(mesh.boundary_edges, mesh)
    return float(np.sum(0.5 * lengths[:, None] * w * trace * dG_dn))


def representation_formula(
    mesh: Mesh2d,
    u: Callable[[NDArray, NDArray], NDArray],
    grad_u: Callable[[NDArray, NDArray], tuple[NDArray, NDArray]],
    x: ArrayLike,
) -> float:
    """u(x) = P_SL(du/dn)(x) - P_DL(u)(x) for harmonic u."""

    def normal_derivative(px, py):
        gx, gy = grad_u(px, py)
        n = outer_normal_unit_square(np.stack([px, py], axis=-1))
        return gx * n[..., 0] + gy * n[..., 1]

    return single_layer_potential(mesh, normal_derivative, x) - double_layer_potential(mesh, u, x)


def representation_formula_error(mesh: Mesh2d, x: ArrayLike = (0.3, 0.4)) -> float:
    """|u(x) - (P_SL(du/dn) - P_DL(u))(x)| for u = log|y + (1, 0)|."""
    x = _interior_point(x)
    approx = representation_formula(mesh, harmonic_log, harmonic_log_grad, x)
    return float(abs(harmonic_log(x[0], x[1]) - approx))
