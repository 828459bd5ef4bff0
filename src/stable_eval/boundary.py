"""Boundary edge geometry and Dirichlet conditions.

Boundary edges are (element, local edge) pairs, both 1-based, as stored in
`Mesh2d.boundary_edges`. Local edge k runs from vertex EDGE_VERTICES[k-1, 0]
to vertex EDGE_VERTICES[k-1, 1] of the element, i.e. counter-clockwise.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy.sparse import csr_matrix, diags, spmatrix

from .datastructures import EDGE_VERTICES, Mesh2d


def get_edge_nodes(
    beds: NDArray[np.int64],
    mesh: Mesh2d,
) -> tuple[NDArray[np.int64], NDArray[np.int64]]:
    """0-based start and end node of each edge."""
    cells = mesh.EToV[beds[:, 0] - 1] - 1
    ends = np.take_along_axis(cells, EDGE_VERTICES[beds[:, 1] - 1], axis=1)
    return ends[:, 0], ends[:, 1]


def get_boundary_nodes(mesh: Mesh2d) -> NDArray[np.int64]:
    """Sorted 1-based indices of all nodes on the boundary."""
    start, end = get_edge_nodes(mesh.boundary_edges, mesh)
    return np.union1d(start, end) + 1


def get_edge_midpoints(
    beds: NDArray[np.int64],
    mesh: Mesh2d,
) -> NDArray[np.float64]:
    """Midpoints of the edges, shape (n_edges, 2)."""
    start, end = get_edge_nodes(beds, mesh)
    return 0.5 * np.column_stack([mesh.VX[start] + mesh.VX[end], mesh.VY[start] + mesh.VY[end]])


def get_edge_lengths(
    beds: NDArray[np.int64],
    mesh: Mesh2d,
) -> NDArray[np.float64]:
    start, end = get_edge_nodes(beds, mesh)
    return np.hypot(mesh.VX[end] - mesh.VX[start], mesh.VY[end] - mesh.VY[start])


def dirbc_2d(
    bnodes: NDArray[np.int64],
    f: NDArray[np.float64],
    A: spmatrix,
    b: NDArray[np.float64],
) -> tuple[csr_matrix, NDArray[np.float64]]:
    """
    Eliminate Dirichlet nodes from the linear system A u = b.

    Parameters
    ----------
    bnodes : ndarray of int
        1-based indices of the Dirichlet nodes
    f : ndarray
        Prescribed values at bnodes
    A : sparse matrix
        System matrix, not modified
    b : ndarray
        Right-hand side, not modified

    Returns
    -------
    A_bc : csr_matrix
        A with the Dirichlet rows and columns replaced by identity rows and columns
    b_bc : ndarray
        b minus the coupling to the prescribed values, with f at the Dirichlet rows
    """
    n = A.shape[0]
    fixed = np.zeros(n, dtype=bool)
    fixed[bnodes - 1] = True
    g = np.zeros(n)
    g[bnodes - 1] = f

    A = csr_matrix(A)
    b_bc = b - A @ g
    b_bc[fixed] = g[fixed]

    free = diags((~fixed).astype(np.float64))
    A_bc = free @ A @ free + diags(fixed.astype(np.float64))
    return csr_matrix(A_bc), b_bc
