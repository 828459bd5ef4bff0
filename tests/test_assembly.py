"""Tests for quadrature, assembly, Dirichlet conditions and the BVP solver."""

import numpy as np
import pytest

import stable_eval.solvers as solvers
from stable_eval.assembly import assemble_load_2d, assemble_stiffness_2d, assembly_2d, map_to_physical
from stable_eval.boundary import dirbc_2d, get_boundary_nodes
from stable_eval.datastructures import FESpaceP1, refine_uniform, unit_square_mesh
from stable_eval.elements import composite_quadrature, triangle_quadrature
from stable_eval.interpolation import evaluate, fe_function, interpolate, linf_error, locate_points
from stable_eval.solvers import SolverError, solve_bvp


class TestQuadrature:
    """Test triangle quadrature rules."""

    @pytest.mark.parametrize("degree", [1, 2, 4])
    def test_weights_sum(self, degree):
        """Weights are normalized to the reference area."""
        bary, weights = triangle_quadrature(degree)
        assert np.isclose(np.sum(weights), 1.0)
        assert np.allclose(np.sum(bary, axis=1), 1.0)

    def test_degree4_exactness(self):
        """The 6-point rule integrates quartic monomials exactly."""
        bary, weights = triangle_quadrature(4)
        # ∫_T l1^a l2^b dA / |T| = 2 a! b! / (a + b + 2)!
        l1, l2 = bary[:, 0], bary[:, 1]
        assert np.isclose(np.sum(weights * l1**4), 2 * 24 / 720)
        assert np.isclose(np.sum(weights * l1**2 * l2**2), 2 * 4 / 720)

    def test_unsupported_degree(self):
        """Unknown degrees are rejected."""
        with pytest.raises(ValueError):
            triangle_quadrature(3)

    def test_composite(self):
        """Composite rules keep total weight and polynomial exactness."""
        bary, weights = triangle_quadrature(2)
        fine_bary, fine_weights = composite_quadrature(bary, weights, 2)
        assert fine_bary.shape == (16 * 3, 3)
        assert np.isclose(np.sum(fine_weights), 1.0)
        assert np.isclose(np.sum(fine_weights * fine_bary[:, 0] ** 2), 2 * 2 / 24)


class TestAssembly:
    """Test global stiffness matrix and load vector assembly."""

    def test_stiffness_properties(self):
        """Stiffness matrix is symmetric with zero row sums."""
        A = assemble_stiffness_2d(unit_square_mesh(4)).toarray()
        assert np.allclose(A, A.T)
        assert np.allclose(A.sum(axis=1), 0.0)

    @pytest.mark.parametrize(
        "mesh", [unit_square_mesh(3), refine_uniform(unit_square_mesh(2))], ids=["structured", "refined"]
    )
    def test_stiffness_energy(self, mesh):
        """u^T A u equals ∫ |grad u|^2 for linear u."""
        A = assemble_stiffness_2d(mesh)
        u = 2.0 * mesh.VX - 3.0 * mesh.VY
        assert np.isclose(u @ (A @ u), 13.0)

    def test_five_point_stencil(self):
        """Interior rows of a structured mesh are the five-point Laplacian."""
        n = 4
        A = assemble_stiffness_2d(unit_square_mesh(n)).toarray()
        k = 2 * (n + 1) + 2  # node at (0.5, 0.5)
        assert np.isclose(A[k, k], 4.0)
        for nb in (k - 1, k + 1, k - (n + 1), k + (n + 1)):
            assert np.isclose(A[k, nb], -1.0)
        assert np.isclose(np.abs(A[k]).sum(), 8.0)

    def test_load_constant(self):
        """Load vector of f = 1 sums to the domain area."""
        b = assemble_load_2d(unit_square_mesh(4), lambda x, y: np.ones_like(x))
        assert np.isclose(np.sum(b), 1.0)
        assert np.all(b > 0)

    def test_no_source(self):
        """A missing source gives a zero load vector."""
        _, b = assembly_2d(unit_square_mesh(3))
        assert np.allclose(b, 0.0)

    def test_map_to_physical(self):
        """Vertices map to themselves."""
        mesh = unit_square_mesh(2)
        xq, yq = map_to_physical(mesh, np.eye(3), elements=np.array([0, 3]))
        assert xq.shape == (2, 3)
        assert np.allclose(xq[0], mesh.VX[mesh.EToV[0] - 1])
        assert np.allclose(yq[1], mesh.VY[mesh.EToV[3] - 1])


class TestDirichlet:
    """Test Dirichlet boundary conditions."""

    def test_dirbc(self):
        """Boundary rows become identity rows and b is not modified in place."""
        mesh = unit_square_mesh(3)
        A, b = assembly_2d(mesh, lambda x, y: np.ones_like(x))
        b_orig = b.copy()
        bnodes = get_boundary_nodes(mesh)
        g = np.full(len(bnodes), 2.0)

        A_bc, b_bc = dirbc_2d(bnodes, g, A, b)
        assert np.allclose(b, b_orig)
        assert np.allclose(b_bc[bnodes - 1], 2.0)

        A_dense = A_bc.toarray()
        assert np.allclose(A_dense[bnodes - 1][:, bnodes - 1], np.eye(len(bnodes)))
        interior = np.setdiff1d(np.arange(mesh.nonodes), bnodes - 1)
        assert np.allclose(A_dense[np.ix_(interior, bnodes - 1)], 0.0)


class TestSolveBVP:
    """Test the Dirichlet problem solver."""

    @pytest.mark.parametrize(
        "mesh", [unit_square_mesh(4), refine_uniform(unit_square_mesh(2))], ids=["structured", "refined"]
    )
    def test_linear_exact(self, mesh):
        """Linear harmonic data is reproduced exactly."""
        space = FESpaceP1(mesh)
        u = lambda x, y: 1.0 + x - 2.0 * y
        w = solve_bvp(space, u)
        assert linf_error(space, w, u) < 1e-12

    def test_constant_data(self):
        """Scalar-valued boundary data is broadcast."""
        space = FESpaceP1(unit_square_mesh(3))
        w = solve_bvp(space, lambda x, y: 3.0)
        assert np.allclose(w, 3.0)

    def test_poisson_convergence(self):
        """Nodal error for a manufactured solution decreases like h^2."""
        u_exact = lambda x, y: np.sin(np.pi * x) * np.sin(np.pi * y)
        f = lambda x, y: 2 * np.pi**2 * np.sin(np.pi * x) * np.sin(np.pi * y)

        errors = []
        for n in [8, 16]:
            space = FESpaceP1(unit_square_mesh(n))
            errors.append(linf_error(space, solve_bvp(space, u_exact, f), u_exact))
        assert errors[1] < errors[0] / 3

    def test_factorization_failure(self, monkeypatch):
        """LU failures surface as SolverError."""

        def failing_splu(A):
            raise RuntimeError("Factor is exactly singular")

        monkeypatch.setattr(solvers, "splu", failing_splu)
        space = FESpaceP1(unit_square_mesh(2))
        with pytest.raises(SolverError):
            solve_bvp(space, lambda x, y: x)

    def test_non_finite_solution(self):
        """Non-finite boundary data is reported as SolverError."""
        space = FESpaceP1(unit_square_mesh(2))
        with pytest.raises(SolverError):
            solve_bvp(space, lambda x, y: np.full_like(x, np.nan))


class TestInterpolation:
    """Test point location and FE function evaluation."""

    def test_evaluate_linear(self):
        """Linear functions are evaluated exactly anywhere in the mesh."""
        space = FESpaceP1(unit_square_mesh(5))
        u = interpolate(space, lambda x, y: 2.0 * x + y)
        pts = np.random.default_rng(1).uniform(0, 1, size=(20, 2))
        assert np.allclose(evaluate(space, u, pts), 2.0 * pts[:, 0] + pts[:, 1])
        assert isinstance(evaluate(space, u, [0.3, 0.4]), float)

    def test_fe_function_shape(self):
        """The callable wrapper keeps the input shape."""
        space = FESpaceP1(unit_square_mesh(3))
        g = fe_function(space, interpolate(space, lambda x, y: x * y))
        x = np.linspace(0, 1, 6).reshape(2, 3)
        assert g(x, x).shape == (2, 3)
        assert np.allclose(g(x, np.zeros_like(x)), 0.0)

    def test_outside(self):
        """Points outside the mesh are rejected."""
        mesh = unit_square_mesh(2)
        with pytest.raises(ValueError):
            locate_points(mesh, np.array([[0.5, 0.5], [1.5, 0.5]]))
