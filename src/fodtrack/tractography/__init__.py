"""
Tractography Module

Second-order probabilistic tractography over FOD fields stored as spherical
harmonic coefficients.

Main components:
- TrackingConfig: Immutable per-run parameters
- SHField / FieldSampler: Coefficient interpolation and FOD amplitude queries
- generate_arc: Constant-curvature candidate paths
- PathEvaluator: Joint FOD probability of a candidate path
- StepSampler: Rejection sampling of one step against an adaptive envelope
- StreamlinePropagator: Per-streamline state machine
- IFOD2Tracker: Tracking runs over many seeds with run-wide diagnostics
"""

from .config import TrackingConfig, ConfigurationError
from .sh_evaluation import (
    DirectSHEvaluator,
    PrecomputedSHEvaluator,
    make_sh_evaluator
)
from .field import SHField, FieldSampler, FieldLoadError
from .arc import ArcSample, generate_arc
from .path import PathEvaluator, PathProbability
from .state import PropagatorState, PropagatorStatus, StreamlineDiagnostics
from .step_sampler import StepSampler, StepResult
from .propagator import StreamlinePropagator, PropagatorStateError
from .tracker import IFOD2Tracker, TrackingDiagnostics
from .seeding import seeds_from_mask

__version__ = "0.1.0"

__all__ = [
    'TrackingConfig',
    'ConfigurationError',
    'DirectSHEvaluator',
    'PrecomputedSHEvaluator',
    'make_sh_evaluator',
    'SHField',
    'FieldSampler',
    'FieldLoadError',
    'ArcSample',
    'generate_arc',
    'PathEvaluator',
    'PathProbability',
    'PropagatorState',
    'PropagatorStatus',
    'StreamlineDiagnostics',
    'StepSampler',
    'StepResult',
    'StreamlinePropagator',
    'PropagatorStateError',
    'IFOD2Tracker',
    'TrackingDiagnostics',
    'seeds_from_mask',
]
