from __future__ import annotations

from typing import Callable

import numpy as np
from numba import njit
from numpy.typing import ArrayLike, NDArray

from .datastructures import FESpaceP1, Mesh2d


@njit
def _locate_2d(VX, VY, cells, px, py, tol):
    """Numba-accelerated search for the triangle containing each point."""
    n_pts = len(px)
    n_elem = len(cells)
    elem = -np.ones(n_pts, dtype=np.int64)
    bary = np.zeros((n_pts, 3))

    for i in range(n_pts):
        for e in range(n_elem):
            a, b, c = cells[e, 0], cells[e, 1], cells[e, 2]
            det = (VY[b] - VY[c]) * (VX[a] - VX[c]) + (VX[c] - VX[b]) * (VY[a] - VY[c])
            l1 = ((VY[b] - VY[c]) * (px[i] - VX[c]) + (VX[c] - VX[b]) * (py[i] - VY[c])) / det
            l2 = ((VY[c] - VY[a]) * (px[i] - VX[c]) + (VX[a] - VX[c]) * (py[i] - VY[c])) / det
            l3 = 1.0 - l1 - l2
            if l1 >= -tol and l2 >= -tol and l3 >= -tol:
                elem[i] = e
                bary[i, 0] = l1
                bary[i, 1] = l2
                bary[i, 2] = l3
                break

    return elem, bary


def locate_points(
    mesh: Mesh2d, points: ArrayLike, tol: float = 1e-12
) -> tuple[NDArray[np.int64], NDArray[np.float64]]:
    """Return (0-based element, barycentric coordinates) for each point of shape (n, 2)."""
    pts = np.atleast_2d(np.asarray(points, dtype=np.float64))
    elem, bary = _locate_2d(
        mesh.VX, mesh.VY, mesh.EToV - 1, pts[:, 0].copy(), pts[:, 1].copy(), tol
    )
    if np.any(elem < 0):
        outside = pts[elem < 0]
        raise ValueError(f"Points outside the mesh: {outside[:5].tolist()}")
    return elem, bary


def evaluate(fe_space: FESpaceP1, u: NDArray[np.float64], points: ArrayLike):
    """Evaluate the piecewise linear FE function at points (single point -> float)."""
    u = fe_space.check_coefficients(u)
    pts = np.asarray(points, dtype=np.float64)
    elem, bary = locate_points(fe_space.mesh, pts)
    values = np.sum(u[fe_space.loc2glb[elem]] * bary, axis=1)
    if pts.ndim == 1:
        return float(values[0])
    return values


def fe_function(
    fe_space: FESpaceP1, u: NDArray[np.float64]
) -> Callable[[NDArray[np.float64], NDArray[np.float64]], NDArray[np.float64]]:
    """Wrap FE coefficients as a callable g(x, y), e.g. as a boundary density."""
    u = fe_space.check_coefficients(u).copy()

    def g(x, y):
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        pts = np.column_stack([x.ravel(), y.ravel()])
        return evaluate(fe_space, u, pts).reshape(x.shape)

    return g


def interpolate(
    fe_space: FESpaceP1, f: Callable[[NDArray, NDArray], NDArray]
) -> NDArray[np.float64]:
    """Nodal interpolant of f."""
    mesh = fe_space.mesh
    return np.broadcast_to(
        np.asarray(f(mesh.VX, mesh.VY), dtype=np.float64), (fe_space.ndofs,)
    ).copy()


def linf_error(
    fe_space: FESpaceP1, u_nodal: NDArray[np.float64], u_exact: Callable[[NDArray, NDArray], NDArray]
) -> float:
    """Maximum nodal error max_i |u_i - u_exact(x_i)|."""
    return float(np.max(np.abs(fe_space.check_coefficients(u_nodal) - interpolate(fe_space, u_exact))))
