import numpy as np

# Symmetric triangle quadrature rules in barycentric coordinates.
# Weights are normalized to sum to 1 (multiply by the element area).
_TRIANGLE_QUAD = {
    1: (np.array([[1 / 3, 1 / 3, 1 / 3]]), np.array([1.0])),
    2: (
        np.array([
            [2 / 3, 1 / 6, 1 / 6],
            [1 / 6, 2 / 3, 1 / 6],
            [1 / 6, 1 / 6, 2 / 3],
        ]),
        np.array([1 / 3, 1 / 3, 1 / 3]),
    ),
    4: (
        np.array([
            [0.108103018168070, 0.445948490915965, 0.445948490915965],
            [0.445948490915965, 0.108103018168070, 0.445948490915965],
            [0.445948490915965, 0.445948490915965, 0.108103018168070],
            [0.816847572980459, 0.091576213509771, 0.091576213509771],
            [0.091576213509771, 0.816847572980459, 0.091576213509771],
            [0.091576213509771, 0.091576213509771, 0.816847572980459],
        ]),
        np.array([
            0.223381589678011,
            0.223381589678011,
            0.223381589678011,
            0.109951743655322,
            0.109951743655322,
            0.109951743655322,
        ]),
    ),
}


def triangle_quadrature(degree: int) -> tuple[np.ndarray, np.ndarray]:
    """
    Quadrature rule on a triangle, exact for polynomials of the given degree.

    Parameters
    ----------
    degree : int
        Polynomial degree (1, 2 or 4)

    Returns
    -------
    bary : ndarray (n_points, 3)
        Barycentric coordinates of the quadrature points
    weights : ndarray (n_points,)
        Weights summing to 1
    """
    if degree not in _TRIANGLE_QUAD:
        raise ValueError(f"Unsupported degree={degree}. Use 1, 2, or 4.")
    bary, weights = _TRIANGLE_QUAD[degree]
    return bary.copy(), weights.copy()


def composite_quadrature(
    bary: np.ndarray, weights: np.ndarray, levels: int
) -> tuple[np.ndarray, np.ndarray]:
    """
    Apply a triangle rule on the 4**levels sub-triangles of a red refinement.

    Parameters
    ----------
    bary : ndarray (n_points, 3)
        Barycentric points of the base rule
    weights : ndarray (n_points,)
        Weights of the base rule
    levels : int
        Number of red refinement steps of the reference triangle

    Returns
    -------
    bary : ndarray (4**levels * n_points, 3)
    weights : ndarray (4**levels * n_points,)
    """
    # Sub-triangles as rows of barycentric vertex coordinates
    triangles = [np.eye(3)]
    for _ in range(levels):
        refined = []
        for T in triangles:
            m01 = 0.5 * (T[0] + T[1])
            m12 = 0.5 * (T[1] + T[2])
            m20 = 0.5 * (T[2] + T[0])
            refined += [
                np.array([T[0], m01, m20]),
                np.array([m01, T[1], m12]),
                np.array([m20, m12, T[2]]),
                np.array([m01, m12, m20]),
            ]
        triangles = refined

    points = np.concatenate([bary @ T for T in triangles])
    w = np.tile(weights, len(triangles)) / len(triangles)
    return points, w
