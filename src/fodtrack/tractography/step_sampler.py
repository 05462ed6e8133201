"""
Rejection-Sampling Step
=======================

One propagation step draws candidate arcs and accepts one with probability
proportional to its joint FOD amplitude. The envelope of the rejection
sampler is estimated on the fly: a batch of random probe paths gives the
local maximum, which is combined with the previous step's value and widened
by a slack factor.

"""

import logging
from typing import NamedTuple, Optional

import numpy as np

from .config import TrackingConfig
from .path import PathEvaluator
from .state import PropagatorState

logger = logging.getLogger(__name__)


class StepResult(NamedTuple):
    """Outcome of one step attempt"""
    accepted: bool
    position: Optional[np.ndarray] = None
    direction: Optional[np.ndarray] = None
    trials: int = 0
    reason: Optional[str] = None


class StepSampler:
    """Rejection sampler over curvature-constrained candidate paths"""

    def __init__(self, path_evaluator: PathEvaluator, config: TrackingConfig):
        self.path_evaluator = path_evaluator
        self.config = config

    def estimate_envelope(self, state: PropagatorState, rng: np.random.Generator) -> float:
        """
        Largest finite path probability among the random probe paths

        Rejected paths (nan) never win the comparison, so the result is 0.0
        when every probe was rejected.
        """
        max_val_actual = 0.0
        for _ in range(self.config.n_envelope_probes):
            val = self.path_evaluator.random_path(rng, state.position, state.direction).probability
            if val > max_val_actual:
                max_val_actual = val
        return max_val_actual

    def attempt_step(self, state: PropagatorState, rng: np.random.Generator) -> StepResult:
        """
        Try to advance ``state`` by one step

        On acceptance the state's position, direction, previous probability
        and counters are updated in place. On failure only the previous
        probability changes.

        Args:
            state: State of the streamline being tracked
            rng: The streamline's random generator

        Returns:
            StepResult; ``reason`` is 'low_envelope' or 'max_trials' on failure
        """
        config = self.config

        max_val_actual = self.estimate_envelope(state, rng)
        max_val = max(state.prev_prob_val, max_val_actual) * config.envelope_multiplier
        state.prev_prob_val = max_val_actual

        if not np.isfinite(max_val) or max_val < config.prob_threshold:
            return StepResult(False, reason='low_envelope')

        # A probable path exists nearby: worth searching harder for it
        if max_val_actual > config.prob_threshold:
            nmax = config.extended_max_trials
        else:
            nmax = config.max_trials

        for n in range(nmax):
            path = self.path_evaluator.random_path(rng, state.position, state.direction)
            val = path.probability

            if val > config.prob_threshold:
                if val > max_val:
                    state.envelope_overshoots += 1
                    logger.debug(f"max_val exceeded (val = {val:.6g}, max_val = {max_val:.6g})")

                if rng.random() < val / max_val:
                    state.direction = path.direction / np.linalg.norm(path.direction)
                    state.position = np.array(path.position, dtype=np.float64)
                    state.prev_prob_val = val
                    state.total_trials += n + 1
                    state.total_steps += 1
                    return StepResult(True, state.position, state.direction, trials=n + 1)

        return StepResult(False, trials=nmax, reason='max_trials')
