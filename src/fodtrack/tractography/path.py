"""
Candidate Path Probability

Scores a candidate arc by the joint FOD amplitude of its samples. A path with
any sample where the field is undefined or below the amplitude threshold is
rejected outright (probability ``nan``).
"""

from typing import NamedTuple, Optional

import numpy as np

from .arc import generate_arc, iter_arc_samples
from .config import TrackingConfig
from .directions import random_direction
from .field import FieldSampler


class PathProbability(NamedTuple):
    """Joint probability of a candidate path and the state it would lead to"""
    probability: float
    position: Optional[np.ndarray]
    direction: Optional[np.ndarray]

    @property
    def rejected(self) -> bool:
        return bool(np.isnan(self.probability))


_REJECTED = PathProbability(np.nan, None, None)


class PathEvaluator:
    """Joint probability of constant-curvature candidate paths"""

    def __init__(self, sampler: FieldSampler, config: TrackingConfig):
        self.sampler = sampler
        self.config = config

    def evaluate(
        self,
        position: np.ndarray,
        direction: np.ndarray,
        end_direction: np.ndarray
    ) -> PathProbability:
        """
        Probability of the arc from ``position`` ending along ``end_direction``

        Args:
            position: Current position (3,)
            direction: Current unit direction (3,)
            end_direction: Proposed unit direction at the end of the step (3,)

        Returns:
            Product of the per-sample amplitudes with the arc's final position
            and tangent, or a rejected result with probability nan
        """
        positions, tangents = generate_arc(
            position, direction, end_direction,
            self.config.num_samples, self.config.step_size
        )

        prob = 1.0
        for sample in iter_arc_samples(positions, tangents):
            amplitude = self.sampler.amplitude(sample.position, sample.direction)
            # Also rejects negative amplitudes
            if np.isnan(amplitude) or amplitude < self.config.threshold:
                return _REJECTED
            prob *= amplitude

        return PathProbability(prob, positions[-1], tangents[-1])

    def random_path(
        self,
        rng: np.random.Generator,
        position: np.ndarray,
        direction: np.ndarray
    ) -> PathProbability:
        """Evaluate a path towards an end direction drawn from the curvature cone"""
        end_direction = random_direction(
            rng, direction, self.config.max_angle_rad, self.config.sin_max_angle
        )
        return self.evaluate(position, direction, end_direction)
