"""
Tracking Configuration

Immutable per-run parameters shared by every streamline of a tracking run,
together with the quantities derived from them (joint probability threshold,
sine of the curvature bound, minimum radius of curvature).
"""

import dataclasses
import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)

SUPPORTED_SH_BASES = ('tournier07', 'descoteaux07')


class ConfigurationError(ValueError):
    """Exception raised for invalid tracking parameters"""
    pass


@dataclass(frozen=True)
class TrackingConfig:
    """
    Shared, read-only parameters of a tracking run

    Attributes:
        lmax: Maximum (even) SH order; None until resolved against a field
        step_size: Arc length covered by one step (mm)
        max_angle: Maximum turning angle per step (degrees)
        num_samples: Number of samples along each candidate arc
        max_trials: Trial budget for seeding and for low-probability steps
        threshold: Minimum FOD amplitude for every sample of a path
        init_threshold: Minimum FOD amplitude for the initial direction
        init_direction: Optional fixed initial direction (normalised)
        precomputed: Evaluate amplitudes from a precomputed Legendre table
        sh_basis: SH basis convention of the coefficients
        legacy: Use the legacy variant of the SH basis
        n_envelope_probes: Random paths drawn to estimate the envelope
        envelope_multiplier: Slack applied to the estimated envelope
        extended_max_trials: Trial budget once a probable path was probed
    """

    lmax: Optional[int] = None
    step_size: float = 0.5
    max_angle: float = 45.0
    num_samples: int = 4
    max_trials: int = 100
    threshold: float = 0.1
    init_threshold: Optional[float] = None
    init_direction: Optional[Tuple[float, float, float]] = None
    precomputed: bool = True
    sh_basis: str = 'tournier07'
    legacy: bool = False
    n_envelope_probes: int = 100
    envelope_multiplier: float = 1.5
    extended_max_trials: int = 10000

    # Derived values, filled in by __post_init__
    max_angle_rad: float = field(init=False, repr=False)
    sin_max_angle: float = field(init=False, repr=False)
    prob_threshold: float = field(init=False, repr=False)

    def __post_init__(self):
        self._validate()

        if self.init_threshold is None:
            object.__setattr__(self, 'init_threshold', float(self.threshold))

        if self.init_direction is not None:
            direction = np.asarray(self.init_direction, dtype=np.float64).reshape(3)
            direction = direction / np.linalg.norm(direction)
            object.__setattr__(self, 'init_direction', tuple(float(v) for v in direction))

        max_angle_rad = math.radians(self.max_angle)
        object.__setattr__(self, 'max_angle_rad', max_angle_rad)
        # Envelope for the polar-angle rejection draw; sin peaks at 90 degrees
        object.__setattr__(self, 'sin_max_angle', math.sin(min(max_angle_rad, math.pi / 2)))
        object.__setattr__(self, 'prob_threshold', float(self.threshold) ** self.num_samples)

    def _validate(self):
        if int(self.num_samples) != self.num_samples or self.num_samples < 1:
            raise ConfigurationError(f"num_samples must be a positive integer, got {self.num_samples}")
        if not self.step_size > 0:
            raise ConfigurationError(f"step_size must be positive, got {self.step_size}")
        if not 0 < self.max_angle <= 180:
            raise ConfigurationError(f"max_angle must be in (0, 180] degrees, got {self.max_angle}")
        for name in ('max_trials', 'n_envelope_probes', 'extended_max_trials'):
            value = getattr(self, name)
            if int(value) != value or value < 1:
                raise ConfigurationError(f"{name} must be a positive integer, got {value}")
        if not self.envelope_multiplier >= 1:
            raise ConfigurationError(
                f"envelope_multiplier must be >= 1, got {self.envelope_multiplier}"
            )
        if not self.threshold >= 0:
            raise ConfigurationError(f"threshold must be non-negative, got {self.threshold}")
        if self.init_threshold is not None and not self.init_threshold >= 0:
            raise ConfigurationError(
                f"init_threshold must be non-negative, got {self.init_threshold}"
            )
        if self.lmax is not None and (self.lmax < 0 or self.lmax % 2 != 0):
            raise ConfigurationError(f"lmax must be a non-negative even integer, got {self.lmax}")
        if self.sh_basis not in SUPPORTED_SH_BASES:
            raise ConfigurationError(
                f"Unknown SH basis '{self.sh_basis}', expected one of {SUPPORTED_SH_BASES}"
            )
        if self.init_direction is not None:
            direction = np.asarray(self.init_direction, dtype=np.float64)
            if direction.shape != (3,) or not np.all(np.isfinite(direction)):
                raise ConfigurationError(f"init_direction must be a 3-vector, got {self.init_direction}")
            if np.linalg.norm(direction) == 0:
                raise ConfigurationError("init_direction must have non-zero length")

    @property
    def min_radius_of_curvature(self) -> float:
        """Radius of the tightest arc a single step may trace (mm)"""
        return self.step_size / self.max_angle_rad

    def with_lmax(self, lmax: int) -> 'TrackingConfig':
        """Return a copy with the SH order resolved"""
        return dataclasses.replace(self, lmax=lmax)

    def to_dict(self) -> Dict:
        """Export the user-facing parameters (derived values excluded)"""
        return {
            f.name: getattr(self, f.name)
            for f in dataclasses.fields(self)
            if f.init
        }

    @classmethod
    def from_dict(cls, params: Dict) -> 'TrackingConfig':
        """
        Build a config from a dictionary, rejecting unknown keys

        Args:
            params: Parameter names and values

        Returns:
            Validated TrackingConfig
        """
        known = {f.name for f in dataclasses.fields(cls) if f.init}
        unknown = set(params) - known
        if unknown:
            raise ConfigurationError(f"Unknown tracking parameters: {sorted(unknown)}")

        params = dict(params)
        if params.get('init_direction') is not None:
            params['init_direction'] = tuple(params['init_direction'])
        return cls(**params)

    @classmethod
    def from_json(cls, path: str) -> 'TrackingConfig':
        """Load a config from a JSON file"""
        with open(Path(path), 'r', encoding='utf-8') as f:
            try:
                params = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"Invalid JSON config {path}: {e}") from e
        if not isinstance(params, dict):
            raise ConfigurationError(f"Config {path} must contain a JSON object")
        return cls.from_dict(params)

    @classmethod
    def for_voxel_size(
        cls,
        voxel_size: Sequence[float],
        **params
    ) -> 'TrackingConfig':
        """
        Build a config whose step size and curvature default to the voxel size

        Step size defaults to half the smallest voxel dimension and the
        maximum angle to 90 degrees scaled by step size over voxel size.

        Args:
            voxel_size: Voxel dimensions in mm (3,)
            **params: Explicit parameters, which take precedence

        Returns:
            Validated TrackingConfig
        """
        vox = float(np.min(np.asarray(voxel_size, dtype=np.float64)))
        if not vox > 0:
            raise ConfigurationError(f"voxel_size must be positive, got {voxel_size}")

        params = {k: v for k, v in params.items() if v is not None}
        params.setdefault('step_size', 0.5 * vox)
        params.setdefault('max_angle', min(90.0 * params['step_size'] / vox, 180.0))
        return cls.from_dict(params)

    def log_summary(self):
        """Log the run parameters once at construction of a tracker"""
        logger.info(
            f"Tracking config: lmax={self.lmax}, step_size={self.step_size}mm, "
            f"max_angle={self.max_angle:.1f}deg, samples_per_step={self.num_samples}, "
            f"max_trials={self.max_trials}, threshold={self.threshold}, "
            f"sh_precomputed={self.precomputed}"
        )
        logger.info(f"minimum radius of curvature = {self.min_radius_of_curvature:.4g} mm")
