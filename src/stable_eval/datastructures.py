from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd
from numpy.typing import NDArray

if TYPE_CHECKING:
    import meshio

# Sides of the bounding rectangle
LEFT, RIGHT, BOTTOM, TOP = 0, 1, 2, 3

# Distance below which a node counts as lying on a side
BOUNDARY_TOL = 1e-10

# Local edge k (1, 2, 3) runs between these positions of an EToV row
EDGE_VERTICES = np.array([[0, 1], [1, 2], [2, 0]])


@dataclass
class Mesh2d:
    """Triangulation of [x0, x0 + L1] x [y0, y0 + L2] for P1 elements.

    The constructor cuts each of the noelms1 x noelms2 grid squares into two
    triangles along the diagonal from its lower left to its upper right
    corner. Nodes are numbered row by row from the lower left corner.
    `from_arrays` and `from_meshio` wrap arbitrary triangulations.

    EToV is 1-based and counter-clockwise. Boundary edges are
    (element, local edge) pairs, both 1-based, in element order, with the
    side of the rectangle they lie on in `boundary_sides`.
    """

    x0: float
    y0: float
    L1: float
    L2: float
    noelms1: int
    noelms2: int

    noelms: int = field(init=False)
    nonodes: int = field(init=False)

    VX: NDArray[np.float64] = field(init=False)
    VY: NDArray[np.float64] = field(init=False)
    EToV: NDArray[np.int64] = field(init=False)

    # abc[e, i] = (a, b, c) with phi_i = (a + b x + c y) / (2 delta[e])
    abc: NDArray[np.float64] = field(init=False)
    delta: NDArray[np.float64] = field(init=False)

    boundary_edges: NDArray[np.int64] = field(init=False)
    boundary_sides: NDArray[np.int64] = field(init=False)

    # False for meshes built from arrays (refined or imported)
    structured: bool = field(init=False, default=True)

    # CSR pattern of the global P1 matrix; entry (e, i, j) of the element
    # matrices is summed into data slot _csr_data_map[9 e + 3 i + j]
    _csr_indptr: NDArray[np.int64] = field(init=False, repr=False)
    _csr_indices: NDArray[np.int64] = field(init=False, repr=False)
    _csr_data_map: NDArray[np.int64] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.noelms1 < 1 or self.noelms2 < 1:
            raise ValueError(
                f"Need at least one element per direction, got {self.noelms1}x{self.noelms2}"
            )
        nx, ny = self.noelms1, self.noelms2
        X, Y = np.meshgrid(
            np.linspace(self.x0, self.x0 + self.L1, nx + 1),
            np.linspace(self.y0, self.y0 + self.L2, ny + 1),
        )

        sw = (np.arange(ny)[:, None] * (nx + 1) + np.arange(nx)).ravel()
        se, nw = sw + 1, sw + nx + 1
        ne = nw + 1

        cells = np.empty((2 * nx * ny, 3), dtype=np.int64)
        cells[0::2] = np.column_stack([sw, se, ne])
        cells[1::2] = np.column_stack([sw, ne, nw])
        self._setup(X.ravel(), Y.ravel(), cells, BOUNDARY_TOL)

    def _setup(
        self,
        VX: NDArray[np.float64],
        VY: NDArray[np.float64],
        cells: NDArray[np.int64],
        tol: float,
    ) -> None:
        """Fill all derived arrays from nodes and 0-based counter-clockwise cells."""
        self.VX, self.VY = VX, VY
        self.nonodes, self.noelms = len(VX), len(cells)
        self.EToV = cells + 1
        self._compute_basis()
        self._compute_sparsity()
        self._find_boundary_edges(tol)

    def _compute_basis(self) -> None:
        cells = self.EToV - 1
        x, y = self.VX[cells], self.VY[cells]
        # Vertex i is paired with the next two vertices in counter-clockwise order
        xj, yj = np.roll(x, -1, axis=1), np.roll(y, -1, axis=1)
        xk, yk = np.roll(x, -2, axis=1), np.roll(y, -2, axis=1)

        self.abc = np.stack([xj * yk - xk * yj, yj - yk, xk - xj], axis=-1)
        self.delta = 0.5 * np.sum(self.abc[:, :, 0], axis=1)
        if np.any(self.delta <= 0.0):
            bad = np.flatnonzero(self.delta <= 0.0) + 1
            raise ValueError(f"Degenerate or clockwise elements: {bad[:10]}")

    def _compute_sparsity(self) -> None:
        cells = self.EToV - 1
        n = self.nonodes
        rows = np.repeat(cells, 3, axis=1).ravel()
        cols = np.tile(cells, (1, 3)).ravel()

        # Sorted unique keys are the nonzeros in CSR order
        keys, inverse = np.unique(rows * n + cols, return_inverse=True)
        self._csr_data_map = inverse.ravel()
        self._csr_indices = keys % n
        self._csr_indptr = np.searchsorted(keys // n, np.arange(n + 1))

    def _find_boundary_edges(self, tol: float) -> None:
        """Element edges with both end points on one side of the bounding rectangle."""
        ends = self.EToV[:, EDGE_VERTICES] - 1
        ex, ey = self.VX[ends], self.VY[ends]
        sides = [
            (ex, self.x0),
            (ex, self.x0 + self.L1),
            (ey, self.y0),
            (ey, self.y0 + self.L2),
        ]

        side = np.full(ends.shape[:2], -1, dtype=np.int64)
        for s in (LEFT, RIGHT, BOTTOM, TOP):
            coord, value = sides[s]
            side[np.all(np.abs(coord - value) < tol, axis=-1)] = s

        elems, edges = np.nonzero(side >= 0)
        self.boundary_edges = np.column_stack([elems + 1, edges + 1]).astype(np.int64)
        self.boundary_sides = side[elems, edges]

    @classmethod
    def from_arrays(
        cls,
        VX: NDArray[np.float64],
        VY: NDArray[np.float64],
        EToV: NDArray[np.int64],
        tol: float = BOUNDARY_TOL,
    ) -> Mesh2d:
        """Mesh from node coordinates and 0-based triangles of any orientation.

        The domain is the bounding rectangle of the nodes.
        """
        VX = np.asarray(VX, dtype=np.float64).ravel()
        VY = np.asarray(VY, dtype=np.float64).ravel()
        cells = np.array(EToV, dtype=np.int64)
        if cells.ndim != 2 or cells.shape[1] != 3:
            raise ValueError(f"Expected (n, 3) triangle connectivity, got shape {cells.shape}")
        if len(VX) != len(VY):
            raise ValueError("VX and VY must have the same length")
        if cells.min() < 0 or cells.max() >= len(VX):
            raise ValueError("Connectivity references nodes that do not exist")

        x, y = VX[cells], VY[cells]
        twice_area = (x[:, 1] - x[:, 0]) * (y[:, 2] - y[:, 0]) - (x[:, 2] - x[:, 0]) * (y[:, 1] - y[:, 0])
        cells[twice_area < 0] = cells[twice_area < 0][:, ::-1]

        mesh = cls.__new__(cls)
        mesh.x0, mesh.y0 = float(VX.min()), float(VY.min())
        mesh.L1, mesh.L2 = float(VX.max()) - mesh.x0, float(VY.max()) - mesh.y0
        # Resolution of a square grid with as many triangles
        mesh.noelms1 = mesh.noelms2 = max(1, int(round(np.sqrt(len(cells) / 2))))
        mesh.structured = False
        mesh._setup(VX, VY, cells, tol)
        return mesh

    @classmethod
    def from_meshio(
        cls,
        mesh: meshio.Mesh | str | Path,
        tol: float = BOUNDARY_TOL,
    ) -> Mesh2d:
        """
        Mesh from the triangle cells of a meshio mesh.

        Parameters
        ----------
        mesh : meshio.Mesh or str or Path
            meshio mesh, or a file meshio can read
        tol : float
            Distance below which a node lies on the bounding rectangle

        Returns
        -------
        Mesh2d
        """
        import meshio as mio

        if isinstance(mesh, (str, Path)):
            mesh = mio.read(mesh)

        blocks = [block.data for block in mesh.cells if block.type == "triangle"]
        if not blocks:
            raise ValueError("No triangle cells found in mesh")
        return cls.from_arrays(mesh.points[:, 0], mesh.points[:, 1], np.concatenate(blocks), tol=tol)

    @property
    def vertex_coords(
        self,
    ) -> tuple[
        NDArray[np.float64],
        NDArray[np.float64],
        NDArray[np.float64],
        NDArray[np.float64],
        NDArray[np.float64],
        NDArray[np.float64],
    ]:
        """(x1, y1, x2, y2, x3, y3), each of shape (noelms,)."""
        cells = self.EToV - 1
        x, y = self.VX[cells], self.VY[cells]
        return x[:, 0], y[:, 0], x[:, 1], y[:, 1], x[:, 2], y[:, 2]

    @property
    def element_edge_lengths(self) -> NDArray[np.float64]:
        """Lengths of the three local edges of every element, shape (noelms, 3)."""
        ends = self.EToV[:, EDGE_VERTICES] - 1
        dx = self.VX[ends[..., 1]] - self.VX[ends[..., 0]]
        dy = self.VY[ends[..., 1]] - self.VY[ends[..., 0]]
        return np.hypot(dx, dy)


def unit_square_mesh(n: int) -> Mesh2d:
    """Structured n x n triangulation of [0,1]^2."""
    return Mesh2d(x0=0.0, y0=0.0, L1=1.0, L2=1.0, noelms1=n, noelms2=n)


def refine_uniform(mesh: Mesh2d) -> Mesh2d:
    """Red refinement: split every triangle into four through its edge midpoints."""
    cells = mesh.EToV - 1
    n = mesh.nonodes

    # Number the edges by their sorted endpoint pair
    va = cells[:, EDGE_VERTICES[:, 0]]
    vb = cells[:, EDGE_VERTICES[:, 1]]
    keys = np.minimum(va, vb) * n + np.maximum(va, vb)
    unique_keys, edge_ids = np.unique(keys.ravel(), return_inverse=True)
    edge_ids = edge_ids.reshape(keys.shape)

    lo, hi = unique_keys // n, unique_keys % n
    VX = np.concatenate([mesh.VX, 0.5 * (mesh.VX[lo] + mesh.VX[hi])])
    VY = np.concatenate([mesh.VY, 0.5 * (mesh.VY[lo] + mesh.VY[hi])])

    m01, m12, m20 = (n + edge_ids[:, k] for k in range(3))
    v0, v1, v2 = cells[:, 0], cells[:, 1], cells[:, 2]

    children = np.empty((4 * mesh.noelms, 3), dtype=np.int64)
    children[0::4] = np.column_stack([v0, m01, m20])
    children[1::4] = np.column_stack([m01, v1, m12])
    children[2::4] = np.column_stack([m20, m12, v2])
    children[3::4] = np.column_stack([m01, m12, m20])

    return Mesh2d.from_arrays(VX, VY, children)


def mesh_hierarchy(base: Mesh2d, levels: int) -> list[Mesh2d]:
    """Return [base, refined once, ..., refined `levels` times].

    Structured meshes are regenerated with doubled resolution, which yields the
    same triangulation as red refinement.
    """
    meshes = [base]
    for _ in range(levels):
        coarse = meshes[-1]
        if coarse.structured:
            meshes.append(
                Mesh2d(
                    x0=coarse.x0, y0=coarse.y0, L1=coarse.L1, L2=coarse.L2,
                    noelms1=2 * coarse.noelms1, noelms2=2 * coarse.noelms2,
                )
            )
        else:
            meshes.append(refine_uniform(coarse))
    return meshes


@dataclass
class FESpaceP1:
    """Degree-1 Lagrange finite element space on a Mesh2d.

    One DOF per mesh node, global DOF index = node index (0-based).
    """

    mesh: Mesh2d

    ndofs: int = field(init=False)
    loc2glb: NDArray[np.int64] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.ndofs = self.mesh.nonodes
        self.loc2glb = self.mesh.EToV - 1

    def check_coefficients(self, u: NDArray[np.float64]) -> NDArray[np.float64]:
        u = np.asarray(u, dtype=np.float64)
        if u.shape != (self.ndofs,):
            raise ValueError(f"Expected coefficient vector of length {self.ndofs}, got shape {u.shape}")
        return u

    def element_values(
        self,
        u: NDArray[np.float64],
        bary: NDArray[np.float64],
        elements: NDArray[np.int64] | None = None,
    ) -> NDArray[np.float64]:
        """Values of the FE function at barycentric points, shape (n_elements, n_points)."""
        u = self.check_coefficients(u)
        loc2glb = self.loc2glb if elements is None else self.loc2glb[elements]
        return u[loc2glb] @ bary.T

    def gradients(self, u: NDArray[np.float64]) -> NDArray[np.float64]:
        """Elementwise constant gradient of the FE function, shape (noelms, 2)."""
        u = self.check_coefficients(u)
        u_e = u[self.loc2glb]
        two_delta = 2.0 * self.mesh.delta
        grad = np.empty((self.mesh.noelms, 2), dtype=np.float64)
        grad[:, 0] = np.sum(u_e * self.mesh.abc[:, :, 1], axis=1) / two_delta
        grad[:, 1] = np.sum(u_e * self.mesh.abc[:, :, 2], axis=1) / two_delta
        return grad


# ============================================================================
# Study parameters and per-level metrics
# ============================================================================


@dataclass
class StudyParameters:
    """Input configuration of a point-evaluation convergence study."""

    n0: int = 4
    levels: int = 5
    x: float = 0.3
    y: float = 0.4
    quad_degree: int = 4
    subdivisions: int = 3

    @property
    def point(self) -> NDArray[np.float64]:
        return np.array([self.x, self.y], dtype=np.float64)

    def to_mlflow(self) -> dict:
        """Convert to MLflow-compatible params dict."""
        return {
            k: (int(v) if isinstance(v, bool) else v) for k, v in self.__dict__.items()
        }

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame([self.to_mlflow()])


@dataclass
class LevelMetrics:
    """Errors of the point evaluations on one mesh of the hierarchy."""

    level: int = 0
    h: float = 0.0
    ndofs: int = 0
    stable_error: float = float("inf")
    jstar_error: float = float("inf")
    naive_error: float = float("inf")
    representation_error: float = float("inf")

    def to_mlflow(self) -> dict:
        """Convert to MLflow-compatible dict (skip inf)."""
        return {k: v for k, v in self.__dict__.items() if v != float("inf")}
