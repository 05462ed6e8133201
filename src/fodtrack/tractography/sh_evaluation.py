"""
Spherical Harmonic Amplitude Evaluation
========================================

Evaluates the amplitude of a truncated, even-order real SH series along a
single unit direction. Two interchangeable strategies are provided:

- ``DirectSHEvaluator`` evaluates DIPY's SH basis at the requested direction.
- ``PrecomputedSHEvaluator`` tabulates the azimuth-independent (associated
  Legendre) part of each basis function once per run, then interpolates it
  linearly along the polar angle. Much faster, equal up to interpolation
  error.

"""

import logging
import warnings
from typing import Tuple

import numpy as np
from dipy.reconst.shm import real_sh_descoteaux, real_sh_tournier

from .config import ConfigurationError, TrackingConfig

logger = logging.getLogger(__name__)

_BASIS_FUNCTIONS = {
    'tournier07': real_sh_tournier,
    'descoteaux07': real_sh_descoteaux,
}

# Sign of m for which a basis function varies as sin(|m| phi) rather than
# cos(|m| phi): tournier07 uses Imag(Y) for m < 0, descoteaux07 for m > 0.
_SIN_SIGN = {
    'tournier07': -1,
    'descoteaux07': 1,
}


def n_coeffs_for_lmax(lmax: int) -> int:
    """Number of coefficients of an even-order symmetric SH series"""
    return (lmax + 1) * (lmax + 2) // 2


def lmax_from_ncoeffs(n_coeffs: int) -> int:
    """
    Infer the maximum SH order from a coefficient count

    Raises:
        ConfigurationError: if no even order matches ``n_coeffs`` exactly
    """
    lmax = int(round((-3 + np.sqrt(1 + 8 * n_coeffs)) / 2))
    if lmax < 0 or lmax % 2 != 0 or n_coeffs_for_lmax(lmax) != n_coeffs:
        raise ConfigurationError(
            f"{n_coeffs} coefficients do not form an even-order SH series"
        )
    return lmax


def direction_to_angles(direction: np.ndarray) -> Tuple[float, float]:
    """Polar angle from +z and azimuth of a unit vector"""
    x, y, z = direction
    theta = np.arccos(min(1.0, max(-1.0, z)))
    phi = np.arctan2(y, x)
    return theta, phi


def real_sh_basis(
    sh_basis: str,
    lmax: int,
    theta: np.ndarray,
    phi: np.ndarray,
    legacy: bool = False
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Real SH basis matrix from DIPY

    Args:
        sh_basis: 'tournier07' or 'descoteaux07'
        lmax: Maximum even SH order
        theta: Polar angles (N,)
        phi: Azimuth angles (N,)
        legacy: Use the legacy variant of the basis

    Returns:
        basis: (N, n_coeffs) basis matrix
        m_values: Phase factor of each column
        l_values: Order of each column
    """
    basis_fn = _BASIS_FUNCTIONS[sh_basis]
    with warnings.catch_warnings():
        # DIPY flags the legacy bases as pending deprecation on every call
        warnings.simplefilter('ignore', PendingDeprecationWarning)
        return basis_fn(lmax, theta, phi, legacy=legacy)


class SHEvaluator:
    """Amplitude of an SH series along a unit direction"""

    def __init__(self, lmax: int, sh_basis: str = 'tournier07', legacy: bool = False):
        if sh_basis not in _BASIS_FUNCTIONS:
            raise ConfigurationError(f"Unknown SH basis '{sh_basis}'")
        self.lmax = lmax
        self.sh_basis = sh_basis
        self.legacy = legacy
        self.n_coeffs = n_coeffs_for_lmax(lmax)

    def amplitude(self, coeffs: np.ndarray, direction: np.ndarray) -> float:
        raise NotImplementedError


class DirectSHEvaluator(SHEvaluator):
    """Evaluates the SH basis afresh for every query"""

    def amplitude(self, coeffs: np.ndarray, direction: np.ndarray) -> float:
        theta, phi = direction_to_angles(direction)
        basis, _, _ = real_sh_basis(
            self.sh_basis, self.lmax, np.array([theta]), np.array([phi]), self.legacy
        )
        return float(basis[0] @ coeffs[:self.n_coeffs])


class PrecomputedSHEvaluator(SHEvaluator):
    """
    Evaluates the SH series from a precomputed Legendre table

    Each real basis function factors into ``K(theta) * cos(|m| phi)`` or
    ``K(theta) * sin(|m| phi)``. ``K`` is tabulated on a uniform grid of the
    polar angle by sampling DIPY's basis at an azimuth where the trigonometric
    factor equals one. The table is read-only after construction and can be
    shared by any number of streamlines.
    """

    def __init__(
        self,
        lmax: int,
        sh_basis: str = 'tournier07',
        legacy: bool = False,
        n_theta: int = 2048
    ):
        super().__init__(lmax, sh_basis, legacy)
        if n_theta < 2:
            raise ConfigurationError(f"n_theta must be at least 2, got {n_theta}")

        self.n_theta = n_theta
        self.theta_step = np.pi / (n_theta - 1)
        theta_grid = np.linspace(0.0, np.pi, n_theta)

        basis, m_values, l_values = real_sh_basis(
            sh_basis, lmax, theta_grid, np.zeros(n_theta), legacy
        )
        self.m_values = np.asarray(m_values)
        self.l_values = np.asarray(l_values)
        self.abs_m = np.abs(self.m_values).astype(np.float64)
        self.is_sin = np.sign(self.m_values) == _SIN_SIGN[sh_basis]

        table = basis.copy()
        for m in np.unique(self.abs_m[self.is_sin]):
            # sin(|m| phi) == 1 at phi = pi / (2|m|)
            phi = np.full(n_theta, np.pi / (2.0 * m))
            basis_m, _, _ = real_sh_basis(sh_basis, lmax, theta_grid, phi, legacy)
            columns = self.is_sin & (self.abs_m == m)
            table[:, columns] = basis_m[:, columns]

        self.table = table
        self.table.setflags(write=False)

        logger.info(
            f"Precomputed SH table: basis={sh_basis}, lmax={lmax}, "
            f"{n_theta} polar samples x {self.n_coeffs} coefficients"
        )

    def amplitude(self, coeffs: np.ndarray, direction: np.ndarray) -> float:
        theta, phi = direction_to_angles(direction)

        t = theta / self.theta_step
        i = min(int(t), self.n_theta - 2)
        f = min(t - i, 1.0)
        legendre = (1.0 - f) * self.table[i] + f * self.table[i + 1]

        angle = self.abs_m * phi
        trig = np.where(self.is_sin, np.sin(angle), np.cos(angle))

        return float(np.dot(coeffs[:self.n_coeffs], legendre * trig))


def make_sh_evaluator(config: TrackingConfig) -> SHEvaluator:
    """
    Build the amplitude evaluation strategy selected by the config

    Args:
        config: Tracking config with a resolved ``lmax``

    Returns:
        Precomputed or direct evaluator
    """
    if config.lmax is None:
        raise ConfigurationError("lmax must be resolved before building an SH evaluator")

    if config.precomputed:
        return PrecomputedSHEvaluator(config.lmax, config.sh_basis, config.legacy)
    return DirectSHEvaluator(config.lmax, config.sh_basis, config.legacy)
