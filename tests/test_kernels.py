"""Tests for the fundamental solution, the cutoff Psi and the test solution."""

import numpy as np
import pytest

from stable_eval.kernels import (
    INNER,
    OUTER,
    R_INNER,
    R_OUTER,
    TRANSITION,
    FundamentalSolution,
    Psi,
    harmonic_log,
    harmonic_log_grad,
)

FD_STEP = 1e-5


def fd_gradient(f, p, h=FD_STEP):
    ex, ey = np.array([h, 0.0]), np.array([0.0, h])
    return np.array([(f(p + ex) - f(p - ex)) / (2 * h), (f(p + ey) - f(p - ey)) / (2 * h)])


def fd_laplacian(f, p, h=1e-4):
    ex, ey = np.array([h, 0.0]), np.array([0.0, h])
    return (f(p + ex) + f(p - ex) + f(p + ey) + f(p - ey) - 4 * f(p)) / h**2


class TestFundamentalSolution:
    """Test G_x(y) = -(1/2pi) log|x - y|."""

    def test_values(self):
        """G vanishes at unit distance and grows towards the singularity."""
        G = FundamentalSolution([0.3, 0.4])
        assert np.isclose(G(np.array([1.3, 0.4])), 0.0)
        assert np.isclose(G(np.array([0.3, 0.4 + np.exp(-1)])), 1 / (2 * np.pi))

    def test_gradient(self):
        """Analytic gradient matches central differences."""
        G = FundamentalSolution([0.3, 0.4])
        p = np.array([0.8, 0.1])
        assert np.allclose(G.grad(p), fd_gradient(G, p), atol=1e-8)

    def test_harmonic(self):
        """G is harmonic away from x."""
        G = FundamentalSolution([0.3, 0.4])
        assert abs(fd_laplacian(G, np.array([0.7, 0.9]))) < 1e-4

    def test_vectorized(self):
        """Stacks of points keep their leading shape."""
        G = FundamentalSolution([0.5, 0.5])
        y = np.random.default_rng(0).uniform(0.6, 1.0, size=(3, 4, 2))
        assert G(y).shape == (3, 4)
        assert G.grad(y).shape == (3, 4, 2)

    def test_singular_point(self):
        """Evaluation at y = x is rejected."""
        G = FundamentalSolution([0.3, 0.4])
        with pytest.raises(ValueError):
            G(np.array([[0.1, 0.1], [0.3, 0.4]]))
        with pytest.raises(ValueError):
            G.grad(np.array([0.3, 0.4]))

    def test_invalid_center(self):
        """The singularity must be a single 2D point."""
        with pytest.raises(ValueError):
            FundamentalSolution([0.1, 0.2, 0.3])


class TestPsi:
    """Test the radial cutoff function."""

    def test_regions(self):
        """Psi is 0 inside R_INNER and 1 outside R_OUTER."""
        psi = Psi()
        pts = np.array([[0.5, 0.5], [0.5 + 0.2, 0.5], [0.5 + 0.42, 0.5], [0.0, 0.0], [1.0, 0.5]])
        assert np.array_equal(psi.region(pts), [INNER, INNER, TRANSITION, OUTER, OUTER])
        vals = psi(pts)
        assert np.allclose(vals[[0, 1]], 0.0)
        assert np.allclose(vals[[3, 4]], 1.0)
        assert 0.0 < vals[2] < 1.0

    def test_continuity(self):
        """Value and gradient are continuous across both radii."""
        psi = Psi()
        eps = 1e-7
        for r, expected in [(R_INNER, 0.0), (R_OUTER, 1.0)]:
            inside = np.array([0.5 + r - eps, 0.5])
            outside = np.array([0.5 + r + eps, 0.5])
            assert np.isclose(psi(inside), expected, atol=1e-5)
            assert np.isclose(psi(outside), expected, atol=1e-5)
            assert np.allclose(psi.grad(inside), psi.grad(outside), atol=1e-4)

    def test_gradient(self):
        """Analytic gradient matches central differences in the annulus."""
        psi = Psi()
        p = np.array([0.5 + 0.3, 0.5 + 0.25])
        assert np.allclose(psi.grad(p), fd_gradient(psi, p), atol=1e-6)

    def test_laplacian(self):
        """Analytic Laplacian matches the five-point stencil in the annulus."""
        psi = Psi()
        for p in [np.array([0.5 + 0.3, 0.5 + 0.25]), np.array([0.5 - 0.1, 0.5 - 0.4])]:
            assert np.isclose(psi.lapl(p), fd_laplacian(psi, p), rtol=1e-4, atol=1e-3)

    def test_flat_outside_annulus(self):
        """Gradient and Laplacian vanish where Psi is constant."""
        psi = Psi()
        pts = np.array([[0.5, 0.5], [0.55, 0.45], [0.02, 0.98]])
        assert np.allclose(psi.grad(pts), 0.0)
        assert np.allclose(psi.lapl(pts), 0.0)

    def test_other_center(self):
        """The cutoff can be centered elsewhere."""
        psi = Psi([0.0, 0.0])
        assert np.isclose(psi(np.array([0.0, 0.0])), 0.0)
        assert np.isclose(psi(np.array([1.0, 1.0])), 1.0)


class TestHarmonicLog:
    """Test u(x, y) = log|(x, y) + (1, 0)|."""

    def test_harmonic(self):
        """u is harmonic in the unit square."""
        u = lambda p: harmonic_log(p[0], p[1])
        for p in [np.array([0.3, 0.4]), np.array([0.9, 0.1])]:
            assert abs(fd_laplacian(u, p)) < 1e-5

    def test_gradient(self):
        """Analytic gradient matches central differences."""
        u = lambda p: harmonic_log(p[0], p[1])
        p = np.array([0.3, 0.4])
        assert np.allclose(harmonic_log_grad(p[0], p[1]), fd_gradient(u, p), atol=1e-8)
