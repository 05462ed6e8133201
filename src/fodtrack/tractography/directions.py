"""
Random Direction Sampling

Draws of unit directions used during tracking: uniform over a spherical cap
around a reference direction (candidate end directions) and uniform over the
whole sphere (seed directions).
"""

import numpy as np


def random_cone_direction(
    rng: np.random.Generator,
    max_angle: float,
    sin_max_angle: float
) -> np.ndarray:
    """
    Direction uniform in solid angle within ``max_angle`` of +z

    The polar angle is drawn uniformly and kept with probability
    ``sin(theta) / sin_max_angle``, giving a density proportional to the
    area element of the sphere.

    Args:
        rng: Random generator
        max_angle: Cone half-angle in radians
        sin_max_angle: Upper bound of sin(theta) over [0, max_angle]

    Returns:
        Unit vector (3,)
    """
    phi = 2.0 * np.pi * rng.random()
    while True:
        theta = max_angle * rng.random()
        if sin_max_angle * rng.random() <= np.sin(theta):
            break

    sin_theta = np.sin(theta)
    return np.array([sin_theta * np.cos(phi), sin_theta * np.sin(phi), np.cos(theta)])


def rotate_direction(reference: np.ndarray, direction: np.ndarray) -> np.ndarray:
    """
    Rotate a direction expressed relative to +z into the frame of ``reference``

    The rotation maps +z onto ``reference`` about the axis perpendicular to
    both, so the angle between the result and ``reference`` equals the angle
    between ``direction`` and +z.

    Args:
        reference: Unit reference direction (3,)
        direction: Unit direction relative to +z (3,)

    Returns:
        Rotated unit vector (3,)
    """
    n = np.sqrt(reference[0] ** 2 + reference[1] ** 2)
    if n == 0.0:
        return -direction if reference[2] < 0.0 else direction.copy()

    m = np.array([reference[0] / n, reference[1] / n, 0.0])
    mp = np.array([reference[2] * m[0], reference[2] * m[1], -n])
    alpha = direction[2]
    beta = direction[0] * m[0] + direction[1] * m[1]

    rotated = direction + alpha * (reference - np.array([0.0, 0.0, 1.0])) + beta * (mp - m)
    return rotated


def random_direction(
    rng: np.random.Generator,
    reference: np.ndarray,
    max_angle: float,
    sin_max_angle: float
) -> np.ndarray:
    """Unit direction uniform over the cap of half-angle ``max_angle`` around ``reference``"""
    rotated = rotate_direction(reference, random_cone_direction(rng, max_angle, sin_max_angle))
    return rotated / np.linalg.norm(rotated)


def random_unit_direction(rng: np.random.Generator) -> np.ndarray:
    """Unit direction uniform over the sphere (normalised Gaussian draw)"""
    while True:
        direction = rng.standard_normal(3)
        norm = np.linalg.norm(direction)
        if norm > 1e-12:
            return direction / norm
