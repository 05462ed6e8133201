"""
Streamline Propagator

Owns the state of one streamline and drives it through
``UNINITIALIZED -> SEEDED -> ... -> TERMINATED``. Seeding picks an initial
direction with sufficient FOD amplitude; every ``advance`` runs one
rejection-sampling step. Terminated propagators only report diagnostics.
"""

import logging
from typing import Optional

import numpy as np

from .config import TrackingConfig
from .directions import random_unit_direction
from .field import FieldSampler
from .path import PathEvaluator
from .state import PropagatorState, PropagatorStatus, StreamlineDiagnostics
from .step_sampler import StepSampler

logger = logging.getLogger(__name__)


class PropagatorStateError(RuntimeError):
    """Exception raised when an operation is invalid in the propagator's state"""
    pass


class StreamlinePropagator:
    """
    Second-order probabilistic propagation of a single streamline

    Only the field sampler and config are shared between propagators; the
    state and random generator are private, so separate propagators may run
    on separate workers.
    """

    def __init__(
        self,
        sampler: FieldSampler,
        config: TrackingConfig,
        rng: np.random.Generator,
        step_sampler: Optional[StepSampler] = None
    ):
        self.sampler = sampler
        self.config = config
        self.rng = rng
        self.step_sampler = step_sampler or StepSampler(PathEvaluator(sampler, config), config)
        self.state = PropagatorState()

    @property
    def status(self) -> PropagatorStatus:
        return self.state.status

    @property
    def position(self) -> np.ndarray:
        return self.state.position

    @property
    def direction(self) -> np.ndarray:
        return self.state.direction

    def initialize(self, seed_position: np.ndarray) -> bool:
        """
        Choose the initial direction at ``seed_position``

        Without a configured initial direction, up to ``max_trials`` random
        directions are tried and the first whose amplitude exceeds the
        initialisation threshold is kept. A configured direction is
        evaluated once.

        Returns:
            True if the streamline is seeded, False if seeding failed
        """
        if self.state.status is not PropagatorStatus.UNINITIALIZED:
            raise PropagatorStateError(
                f"initialize() requires an uninitialized propagator, status is {self.state.status.value}"
            )

        config = self.config
        self.state.position = np.array(seed_position, dtype=np.float64).reshape(3)

        coeffs = self.sampler.coefficients(self.state.position)
        if coeffs is None:
            self._terminate('seeding_failed')
            return False

        if config.init_direction is None:
            for _ in range(config.max_trials):
                direction = random_unit_direction(self.rng)
                self.state.seed_trials += 1
                val = self.sampler.amplitude_at(coeffs, direction)
                if np.isfinite(val) and val > config.init_threshold:
                    self._seed(direction, val)
                    return True
        else:
            direction = np.array(config.init_direction, dtype=np.float64)
            val = self.sampler.amplitude_at(coeffs, direction)
            if np.isfinite(val) and val > config.init_threshold:
                self._seed(direction, val)
                return True

        self._terminate('seeding_failed')
        return False

    def advance(self) -> bool:
        """
        Run one propagation step

        Returns:
            True if a step was accepted; False terminates the streamline
        """
        if self.state.status is not PropagatorStatus.SEEDED:
            raise PropagatorStateError(
                f"advance() requires a seeded propagator, status is {self.state.status.value}"
            )

        result = self.step_sampler.attempt_step(self.state, self.rng)
        if not result.accepted:
            self._terminate(result.reason)
        return result.accepted

    def finalize(self) -> StreamlineDiagnostics:
        """Report the streamline's diagnostics; the propagator is left untouched"""
        state = self.state
        diagnostics = StreamlineDiagnostics(
            seeded=(state.status is not PropagatorStatus.UNINITIALIZED
                    and state.termination_reason != 'seeding_failed'),
            termination_reason=state.termination_reason,
            seed_trials=state.seed_trials,
            total_trials=state.total_trials,
            total_steps=state.total_steps,
            envelope_overshoots=state.envelope_overshoots
        )
        if diagnostics.total_steps:
            logger.debug(
                f"mean number of samples per step = {diagnostics.mean_trials_per_step:.3f}"
            )
        return diagnostics

    def _seed(self, direction: np.ndarray, amplitude: float):
        self.state.direction = direction
        self.state.prev_prob_val = amplitude ** self.config.num_samples
        self.state.status = PropagatorStatus.SEEDED

    def _terminate(self, reason: str):
        self.state.status = PropagatorStatus.TERMINATED
        self.state.termination_reason = reason
        logger.debug(f"Streamline terminated: {reason}")
