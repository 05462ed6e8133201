"""
Constant-Curvature Arc Generation

Builds the candidate path of one tracking step: ``num_samples`` points spaced
evenly along a circular arc of length ``step_size`` that starts at the
current position tangent to the current direction and ends tangent to the
proposed end direction.
"""

from typing import Iterator, NamedTuple, Tuple

import numpy as np


class ArcSample(NamedTuple):
    """One point of a candidate path and the path's tangent there"""
    position: np.ndarray
    direction: np.ndarray


def generate_arc(
    position: np.ndarray,
    direction: np.ndarray,
    end_direction: np.ndarray,
    num_samples: int,
    step_size: float
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Sample a circular arc from ``position`` turning ``direction`` into ``end_direction``

    Args:
        position: Start of the arc (3,)
        direction: Unit tangent at the start (3,)
        end_direction: Unit tangent at the end of the arc (3,)
        num_samples: Number of samples along the arc
        step_size: Arc length

    Returns:
        positions: (num_samples, 3) sample positions, the last at the arc's end
        tangents: (num_samples, 3) unit tangents; the last equals ``end_direction``
    """
    end_direction = end_direction / np.linalg.norm(end_direction)
    cos_theta = min(1.0, max(-1.0, float(np.dot(end_direction, direction))))
    theta = np.arccos(cos_theta)

    curv = end_direction - cos_theta * direction
    curv_norm = np.linalg.norm(curv)

    # Sample i (1-based) sits at the fraction i/num_samples of the step
    fractions = np.arange(1, num_samples + 1, dtype=np.float64) / num_samples

    if theta == 0.0 or curv_norm == 0.0:
        # Straight on; also the antiparallel case, where no plane is defined
        positions = position + (fractions * step_size)[:, None] * direction
        tangents = np.tile(direction, (num_samples, 1))
        return positions, tangents

    curv = curv / curv_norm
    radius = step_size / theta

    angles = theta * fractions
    cos_a = np.cos(angles)[:, None]
    sin_a = np.sin(angles)[:, None]

    positions = position + radius * (sin_a * direction + (1.0 - cos_a) * curv)
    tangents = cos_a * direction + sin_a * curv
    tangents /= np.linalg.norm(tangents, axis=1, keepdims=True)

    # Exact at the end of the arc
    positions[-1] = position + radius * (np.sin(theta) * direction + (1.0 - cos_theta) * curv)
    tangents[-1] = end_direction

    return positions, tangents


def iter_arc_samples(positions: np.ndarray, tangents: np.ndarray) -> Iterator[ArcSample]:
    """Per-sample view of a generated arc"""
    for pos, tangent in zip(positions, tangents):
        yield ArcSample(pos, tangent)
