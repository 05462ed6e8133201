"""
Second-Order Probabilistic Tracking Runs

Tracks one streamline per seed with ``StreamlinePropagator`` and collects
run-wide diagnostics:
- Shared field sampler and SH table built once per run
- Independent, reproducible random stream per streamline
- Optional output to TCK/TRK/HDF5
- Progress tracking and run summary
"""

import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import numpy as np
from tqdm import tqdm

from .config import TrackingConfig
from .field import FieldSampler
from .propagator import StreamlinePropagator
from .sh_evaluation import make_sh_evaluator
from .state import PropagatorStatus, StreamlineDiagnostics
from ..io.streamlines import save_streamlines
from ..utils.logger import log_decision

logger = logging.getLogger(__name__)


@dataclass
class TrackingDiagnostics:
    """Run-wide counters accumulated from every streamline's diagnostics"""

    n_seeds: int = 0
    n_seeding_failures: int = 0
    n_streamlines_kept: int = 0
    total_steps: int = 0
    total_trials: int = 0
    envelope_overshoots: int = 0
    termination_reasons: Dict[str, int] = field(default_factory=dict)
    tracking_time_seconds: float = 0.0

    def add(self, diagnostics: StreamlineDiagnostics, kept: bool):
        """Accumulate one streamline's report"""
        self.n_seeds += 1
        if not diagnostics.seeded:
            self.n_seeding_failures += 1
        if kept:
            self.n_streamlines_kept += 1
        self.total_steps += diagnostics.total_steps
        self.total_trials += diagnostics.total_trials
        self.envelope_overshoots += diagnostics.envelope_overshoots

        reason = diagnostics.termination_reason or 'unknown'
        self.termination_reasons[reason] = self.termination_reasons.get(reason, 0) + 1

    @property
    def mean_trials_per_step(self) -> float:
        if self.total_steps == 0:
            return 0.0
        return self.total_trials / self.total_steps

    def to_dict(self) -> Dict:
        stats = asdict(self)
        stats['mean_trials_per_step'] = self.mean_trials_per_step
        return stats

    def summary(self) -> str:
        """Formatted summary of the run"""
        lines = []
        lines.append("=" * 60)
        lines.append("TRACTOGRAPHY STATISTICS")
        lines.append("=" * 60)
        lines.append(f"Seeds: {self.n_seeds}")
        lines.append(f"Seeding failures: {self.n_seeding_failures}")
        lines.append(f"Streamlines kept: {self.n_streamlines_kept}")

        if self.n_seeds > 0:
            success_rate = 100.0 * self.n_streamlines_kept / self.n_seeds
            lines.append(f"Success rate: {success_rate:.1f}%")

        lines.append(f"Total steps: {self.total_steps}")
        lines.append(f"Mean number of samples per step: {self.mean_trials_per_step:.2f}")
        lines.append(f"Envelope overshoots: {self.envelope_overshoots}")
        lines.append(f"Tracking time: {self.tracking_time_seconds:.1f}s")
        lines.append("")
        lines.append("Termination reasons:")

        for reason, count in sorted(
            self.termination_reasons.items(),
            key=lambda x: x[1],
            reverse=True
        ):
            lines.append(f"  {reason}: {count}")

        lines.append("=" * 60)

        return "\n".join(lines)


class IFOD2Tracker:
    """
    Probabilistic tracking over an SH field by rejection sampling of arcs

    Every streamline gets its own propagator and random generator; only the
    config and field sampler (including any precomputed SH table) are
    shared, and neither is modified while tracking.
    """

    def __init__(
        self,
        field,
        config: Optional[TrackingConfig] = None,
        rng_seed: Optional[int] = None,
        max_num_steps: Optional[int] = None
    ):
        """
        Initialize tracker

        Args:
            field: Field access object exposing ``query_coefficients(position)``
                and ``lmax`` (e.g. ``SHField``)
            config: Tracking parameters; ``lmax`` defaults to the field's
            rng_seed: Random number generator seed (None = current time)
            max_num_steps: Upper bound on accepted steps per streamline
        """
        config = config or TrackingConfig()
        if config.lmax is None:
            config = config.with_lmax(field.lmax)
        self.config = config
        self.field = field
        self.max_num_steps = max_num_steps

        self.sampler = FieldSampler(field, make_sh_evaluator(config))

        if rng_seed is None:
            rng_seed = int(datetime.now().timestamp() * 1000000) % (2**32)
        self.rng_seed = rng_seed

        config.log_summary()
        logger.info(f"IFOD2Tracker initialized: rng_seed={rng_seed}, max_num_steps={max_num_steps}")

    def make_propagator(self, rng: np.random.Generator) -> StreamlinePropagator:
        """New propagator sharing this run's sampler and config"""
        return StreamlinePropagator(self.sampler, self.config, rng)

    def track_streamline(
        self,
        seed: np.ndarray,
        rng: np.random.Generator
    ) -> Tuple[np.ndarray, StreamlineDiagnostics]:
        """
        Track a single streamline from ``seed``

        Args:
            seed: Seed position in world coordinates (3,)
            rng: Random generator private to this streamline

        Returns:
            points: (n_points, 3) seed followed by every accepted position
            diagnostics: The propagator's final report
        """
        propagator = self.make_propagator(rng)
        points = [np.array(seed, dtype=np.float64)]

        if propagator.initialize(seed):
            while self.max_num_steps is None or len(points) <= self.max_num_steps:
                if not propagator.advance():
                    break
                points.append(propagator.position.copy())

        diagnostics = propagator.finalize()
        if propagator.status is PropagatorStatus.SEEDED:
            # Still able to advance; stopped by the caller's step bound
            diagnostics.termination_reason = 'max_num_steps'

        return np.vstack(points), diagnostics

    def track(
        self,
        seeds: np.ndarray,
        output_file: Optional[str] = None,
        reference_affine: Optional[np.ndarray] = None,
        reference_shape: Optional[Tuple[int, int, int]] = None,
        decision_log: Optional[str] = None,
        show_progress: bool = True
    ) -> Tuple[List[np.ndarray], TrackingDiagnostics]:
        """
        Track one streamline per seed

        Random streams are spawned per seed from ``rng_seed``, so results do
        not depend on how many other seeds are tracked or in what order.

        Args:
            seeds: Seed positions in world coordinates (N, 3)
            output_file: Streamline file to write (.tck, .trk, .h5)
            reference_affine: Reference affine for TRK output
            reference_shape: Reference dimensions for TRK output
            decision_log: Markdown file to append a run record to
            show_progress: Display a progress bar

        Returns:
            streamlines: Streamlines with at least two points
            diagnostics: Run-wide diagnostics
        """
        seeds = np.atleast_2d(np.asarray(seeds, dtype=np.float64))
        logger.info(f"Starting iFOD2 tracking with {len(seeds)} seeds...")

        start_time = time.time()
        diagnostics = TrackingDiagnostics()
        streamlines = []

        child_sequences = np.random.SeedSequence(self.rng_seed).spawn(len(seeds))

        pbar = tqdm(total=len(seeds), desc="Tracking", unit="streamline", disable=not show_progress)
        for seed, sequence in zip(seeds, child_sequences):
            rng = np.random.default_rng(sequence)
            points, streamline_diagnostics = self.track_streamline(seed, rng)

            kept = len(points) >= 2
            if kept:
                streamlines.append(points)
            diagnostics.add(streamline_diagnostics, kept)
            pbar.update(1)
        pbar.close()

        elapsed = time.time() - start_time
        diagnostics.tracking_time_seconds = elapsed

        logger.info(
            f"Tracking complete: {diagnostics.n_streamlines_kept} streamlines "
            f"from {len(seeds)} seeds in {elapsed:.1f}s"
        )
        logger.info(f"mean number of samples per step = {diagnostics.mean_trials_per_step:.3f}")

        if output_file is not None:
            save_streamlines(
                streamlines,
                output_file,
                affine=reference_affine if reference_affine is not None else getattr(self.field, 'affine', None),
                dimensions=reference_shape if reference_shape is not None else getattr(self.field, 'shape', None),
                metadata={**self.get_parameters(), **diagnostics.to_dict()}
            )

        if decision_log is not None:
            self._log_tracking_run(diagnostics, decision_log)

        return streamlines, diagnostics

    def get_parameters(self) -> Dict:
        """All tracking parameters for run records"""
        params = self.config.to_dict()
        params['rng_seed'] = self.rng_seed
        params['max_num_steps'] = self.max_num_steps
        return params

    def _log_tracking_run(self, diagnostics: TrackingDiagnostics, output_file: str):
        """Append a record of this run to the markdown log"""
        log_decision(
            decision_id=f"ifod2_{datetime.now().strftime('%Y%m%d_%H%M%S')}",
            component="ifod2_tracking",
            decision=f"Tracked {diagnostics.n_streamlines_kept} streamlines from "
                     f"{diagnostics.n_seeds} seeds",
            rationale=f"Second-order probabilistic tracking with {self.config.num_samples} "
                      f"samples per step. RNG seed {self.rng_seed} reproduces the run.",
            parameters={
                **self.get_parameters(),
                'n_seeding_failures': diagnostics.n_seeding_failures,
                'mean_trials_per_step': round(diagnostics.mean_trials_per_step, 3),
                'tracking_time_seconds': round(diagnostics.tracking_time_seconds, 2)
            },
            output_file=output_file
        )
