"""
Per-Streamline Propagation State
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import numpy as np


class PropagatorStatus(Enum):
    UNINITIALIZED = 'uninitialized'
    SEEDED = 'seeded'
    TERMINATED = 'terminated'


@dataclass
class PropagatorState:
    """
    Mutable state of one streamline

    ``prev_prob_val`` carries the best path probability seen at the previous
    step into the next envelope estimate. The counters are diagnostics only.
    """

    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    direction: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0, 1.0]))
    prev_prob_val: float = 0.0
    status: PropagatorStatus = PropagatorStatus.UNINITIALIZED
    termination_reason: Optional[str] = None

    # Diagnostics
    seed_trials: int = 0
    total_trials: int = 0
    total_steps: int = 0
    envelope_overshoots: int = 0


@dataclass
class StreamlineDiagnostics:
    """Final report of one streamline, produced by ``StreamlinePropagator.finalize``"""

    seeded: bool
    termination_reason: Optional[str]
    seed_trials: int
    total_trials: int
    total_steps: int
    envelope_overshoots: int

    @property
    def mean_trials_per_step(self) -> float:
        if self.total_steps == 0:
            return 0.0
        return self.total_trials / self.total_steps
