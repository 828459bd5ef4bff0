"""Finite element solver for the Dirichlet problem of the Poisson equation."""

from __future__ import annotations

import logging
from typing import Callable

import numpy as np
from numpy.typing import NDArray
from scipy.sparse.linalg import splu

from .assembly import assembly_2d
from .boundary import dirbc_2d, get_boundary_nodes
from .datastructures import FESpaceP1

log = logging.getLogger(__name__)


class SolverError(RuntimeError):
    """The discrete boundary value problem could not be solved."""


def solve_bvp(
    fe_space: FESpaceP1,
    u: Callable[[NDArray, NDArray], NDArray],
    f: Callable[[NDArray, NDArray], NDArray] | None = None,
) -> NDArray[np.float64]:
    """Solve -∇²w = f with w = u on the boundary (f = 0 if omitted).

    Returns the nodal coefficients of the P1 Galerkin solution; boundary
    entries equal the sampled Dirichlet data.
    """
    mesh = fe_space.mesh
    A, b = assembly_2d(mesh, f)

    bnodes = get_boundary_nodes(mesh)
    g = np.broadcast_to(
        np.asarray(u(mesh.VX[bnodes - 1], mesh.VY[bnodes - 1]), dtype=np.float64),
        bnodes.shape,
    )
    A, b = dirbc_2d(bnodes, g, A, b)

    try:
        lu = splu(A.tocsc())
    except RuntimeError as exc:
        raise SolverError(f"LU decomposition failed: {exc}") from exc

    w = lu.solve(b)
    if not np.all(np.isfinite(w)):
        raise SolverError("Solving LSE failed: solution has non-finite entries")

    log.debug(f"Solved BVP: {fe_space.ndofs} DOFs, {len(bnodes)} Dirichlet nodes")
    return w
