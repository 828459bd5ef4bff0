"""Kernel functions for the point evaluation.

- FundamentalSolution: G_x(y) = -(1/2pi) log|x - y| and its gradient in y.
- Psi: radial cutoff around the domain center, 0 on the inner disc,
  1 outside radius 0.5, cos^2 profile in between.

All evaluations accept a single point of shape (2,) or a stack of points of
shape (..., 2).
"""

from __future__ import annotations

import numpy as np
from numpy.typing import ArrayLike, NDArray

DOMAIN_CENTER = (0.5, 0.5)

# Cutoff radii and phase constant of Psi
R_INNER = 0.25 * np.sqrt(2.0)
R_OUTER = 0.5
PSI_CONSTANT = np.pi / (0.5 * np.sqrt(2.0) - 1.0)

# Region tags of Psi
INNER, TRANSITION, OUTER = 0, 1, 2


def _as_points(y: ArrayLike) -> NDArray[np.float64]:
    y = np.asarray(y, dtype=np.float64)
    if y.ndim == 0 or y.shape[-1] != 2:
        raise ValueError(f"Expected points with trailing dimension 2, got shape {y.shape}")
    return y


def _as_center(x: ArrayLike) -> NDArray[np.float64]:
    x = np.array(x, dtype=np.float64)
    if x.shape != (2,):
        raise ValueError(f"Expected a single 2D point, got shape {x.shape}")
    x.setflags(write=False)
    return x


class FundamentalSolution:
    """Fundamental solution of the 2D Laplacian with singularity at x."""

    def __init__(self, x: ArrayLike):
        self.x = _as_center(x)

    def _offset(self, y: ArrayLike) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        diff = self.x - _as_points(y)
        r2 = np.sum(diff**2, axis=-1)
        if np.any(r2 == 0.0):
            raise ValueError(f"G not defined at y = x = ({self.x[0]}, {self.x[1]})")
        return diff, r2

    def __call__(self, y: ArrayLike) -> NDArray[np.float64]:
        """G_x(y) = -(1/2pi) log|x - y|."""
        _, r2 = self._offset(y)
        return -np.log(np.sqrt(r2)) / (2.0 * np.pi)

    def grad(self, y: ArrayLike) -> NDArray[np.float64]:
        """grad_y G_x(y) = (x - y) / (2pi |x - y|^2)."""
        diff, r2 = self._offset(y)
        return diff / (2.0 * np.pi * r2[..., None])


class Psi:
    """Cutoff function Psi(y) = phi(|y - center|).

    phi = 0 for d <= R_INNER, phi = 1 for d >= R_OUTER and
    phi(d) = cos^2(c (d - 0.5)) in between, with c = pi / (0.5 sqrt(2) - 1).
    Value and gradient are continuous across both radii.
    """

    def __init__(self, center: ArrayLike = DOMAIN_CENTER):
        self.center = _as_center(center)

    def _profile(self, y: ArrayLike):
        """Offset, distance, region tag and transition phase for every point."""
        offset = _as_points(y) - self.center
        d = np.sqrt(np.sum(offset**2, axis=-1))
        region = np.where(d <= R_INNER, INNER, np.where(d >= R_OUTER, OUTER, TRANSITION))
        transition = region == TRANSITION
        # Distance only divides inside the transition annulus
        d_safe = np.where(transition, d, 1.0)
        theta = PSI_CONSTANT * (d - R_OUTER)
        return offset, d_safe, region, transition, theta

    def region(self, y: ArrayLike) -> NDArray[np.int64]:
        """INNER, TRANSITION or OUTER tag for every point."""
        return self._profile(y)[2]

    def __call__(self, y: ArrayLike) -> NDArray[np.float64]:
        _, _, region, transition, theta = self._profile(y)
        return np.where(transition, np.cos(theta) ** 2, np.where(region == OUTER, 1.0, 0.0))

    def grad(self, y: ArrayLike) -> NDArray[np.float64]:
        offset, d, _, transition, theta = self._profile(y)
        coeff = -2.0 * np.cos(theta) * np.sin(theta) * PSI_CONSTANT / d
        return np.where(transition, coeff, 0.0)[..., None] * offset

    def lapl(self, y: ArrayLike) -> NDArray[np.float64]:
        """phi''(d) + phi'(d) / d."""
        _, d, _, transition, theta = self._profile(y)
        cos, sin = np.cos(theta), np.sin(theta)
        radial = 2.0 * PSI_CONSTANT**2 * (sin**2 - cos**2)
        transverse = -2.0 * PSI_CONSTANT * cos * sin / d
        return np.where(transition, radial + transverse, 0.0)


def harmonic_log(x: NDArray[np.float64], y: NDArray[np.float64]) -> NDArray[np.float64]:
    """u(x, y) = log|(x, y) + (1, 0)|, harmonic on the unit square."""
    return 0.5 * np.log((x + 1.0) ** 2 + y**2)


def harmonic_log_grad(
    x: NDArray[np.float64], y: NDArray[np.float64]
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    r2 = (x + 1.0) ** 2 + y**2
    return (x + 1.0) / r2, y / r2
