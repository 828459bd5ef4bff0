from __future__ import annotations

from typing import Callable

import numpy as np
from numba import njit
from numpy.typing import NDArray
from scipy.sparse import csr_matrix

from .datastructures import Mesh2d
from .elements import triangle_quadrature


@njit
def _stiffness_core(abc, delta, lam):
    n_elem = len(delta)
    Ke_all = np.empty((n_elem, 3, 3))
    for e in range(n_elem):
        c = lam / (4.0 * abs(delta[e]))
        for i in range(3):
            for j in range(3):
                Ke_all[e, i, j] = c * (
                    abc[e, i, 1] * abc[e, j, 1] + abc[e, i, 2] * abc[e, j, 2]
                )
    return Ke_all


def assemble_stiffness_2d(mesh: Mesh2d, lam: float = 1.0) -> csr_matrix:
    """
    Assemble global stiffness matrix for -lam * Laplace(u) with P1 elements.

    Element matrices are scattered straight into the CSR pattern precomputed
    by the mesh.
    """
    Ke_all = _stiffness_core(mesh.abc, mesh.delta, lam)
    nnz = len(mesh._csr_indices)
    data = np.bincount(mesh._csr_data_map, weights=Ke_all.ravel(), minlength=nnz)
    return csr_matrix(
        (data, mesh._csr_indices, mesh._csr_indptr),
        shape=(mesh.nonodes, mesh.nonodes),
    )


def map_to_physical(
    mesh: Mesh2d,
    bary: NDArray[np.float64],
    elements: NDArray[np.int64] | None = None,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Physical coordinates of barycentric points, each of shape (n_elements, n_points)."""
    x1, y1, x2, y2, x3, y3 = mesh.vertex_coords
    if elements is not None:
        x1, y1, x2, y2, x3, y3 = (c[elements] for c in (x1, y1, x2, y2, x3, y3))
    xq = np.outer(x1, bary[:, 0]) + np.outer(x2, bary[:, 1]) + np.outer(x3, bary[:, 2])
    yq = np.outer(y1, bary[:, 0]) + np.outer(y2, bary[:, 1]) + np.outer(y3, bary[:, 2])
    return xq, yq


def assemble_load_2d(
    mesh: Mesh2d,
    f_func: Callable[[NDArray[np.float64], NDArray[np.float64]], NDArray[np.float64]],
    degree: int = 2,
) -> NDArray[np.float64]:
    """Assemble load vector b_i = ∫_Ω f φ_i dΩ with a triangle quadrature rule."""
    bary, weights = triangle_quadrature(degree)
    xq, yq = map_to_physical(mesh, bary)
    f_vals = np.broadcast_to(np.asarray(f_func(xq, yq), dtype=np.float64), xq.shape)

    # (noelms, 3): sum_q f(q) w_q lambda_j(q), scaled by the element area
    contrib = ((f_vals * weights) @ bary) * mesh.delta[:, None]
    return np.bincount(
        (mesh.EToV - 1).ravel(), weights=contrib.ravel(), minlength=mesh.nonodes
    )


def assembly_2d(
    mesh: Mesh2d,
    f_func: Callable[[NDArray[np.float64], NDArray[np.float64]], NDArray[np.float64]] | None = None,
    lam: float = 1.0,
) -> tuple[csr_matrix, NDArray[np.float64]]:
    """Assemble stiffness matrix and load vector for -lam * Laplace(u) = f.

    A missing source term gives a zero load vector.
    """
    A = assemble_stiffness_2d(mesh, lam)
    if f_func is None:
        b = np.zeros(mesh.nonodes, dtype=np.float64)
    else:
        b = assemble_load_2d(mesh, f_func)
    return A, b
