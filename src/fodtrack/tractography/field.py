"""
FOD Field Access and Sampling

``SHField`` interpolates per-voxel SH coefficient vectors at arbitrary world
positions. ``FieldSampler`` combines a field with an SH evaluation strategy
to return the FOD amplitude at a (position, direction) pair.

Positions where no data exists (outside the volume, or masked with NaN)
yield ``nan`` amplitudes rather than exceptions.
"""

import logging
from typing import Optional

import nibabel as nib
import numba
import numpy as np
from nibabel.affines import voxel_sizes

from .config import ConfigurationError
from .sh_evaluation import SHEvaluator, lmax_from_ncoeffs

logger = logging.getLogger(__name__)


class FieldLoadError(Exception):
    """Exception raised for malformed SH coefficient volumes"""
    pass


@numba.jit(nopython=True, cache=True)
def _trilinear_coefficients(
    volume: np.ndarray,
    voxel: np.ndarray,
    out: np.ndarray
) -> bool:
    """
    Trilinear interpolation of a coefficient vector at a fractional voxel

    Args:
        volume: 4D coefficient volume (x, y, z, n_coeffs)
        voxel: Fractional voxel position (3,)
        out: Output buffer (n_coeffs,)

    Returns:
        False if the position is outside the volume
    """
    dims = volume.shape
    for i in range(3):
        if voxel[i] < 0.0 or voxel[i] > dims[i] - 1:
            return False

    x, y, z = voxel[0], voxel[1], voxel[2]
    x0 = min(int(np.floor(x)), max(dims[0] - 2, 0))
    y0 = min(int(np.floor(y)), max(dims[1] - 2, 0))
    z0 = min(int(np.floor(z)), max(dims[2] - 2, 0))
    x1 = min(x0 + 1, dims[0] - 1)
    y1 = min(y0 + 1, dims[1] - 1)
    z1 = min(z0 + 1, dims[2] - 1)

    xd = x - x0
    yd = y - y0
    zd = z - z0

    for c in range(dims[3]):
        c00 = volume[x0, y0, z0, c] * (1 - xd) + volume[x1, y0, z0, c] * xd
        c01 = volume[x0, y0, z1, c] * (1 - xd) + volume[x1, y0, z1, c] * xd
        c10 = volume[x0, y1, z0, c] * (1 - xd) + volume[x1, y1, z0, c] * xd
        c11 = volume[x0, y1, z1, c] * (1 - xd) + volume[x1, y1, z1, c] * xd

        c0 = c00 * (1 - yd) + c10 * yd
        c1 = c01 * (1 - yd) + c11 * yd

        out[c] = c0 * (1 - zd) + c1 * zd

    return True


class SHField:
    """
    Volumetric field of SH coefficients with trilinear interpolation

    Positions are world coordinates (mm), mapped to voxel space through the
    inverse of the voxel-to-world affine.
    """

    def __init__(
        self,
        coefficients: np.ndarray,
        affine: Optional[np.ndarray] = None
    ):
        """
        Args:
            coefficients: 4D array (x, y, z, n_coeffs) of SH coefficients
            affine: Voxel-to-world transform (4, 4); identity if None
        """
        data = np.asarray(coefficients)
        if data.ndim != 4:
            raise FieldLoadError(f"SH coefficient volume must be 4D, got shape {data.shape}")

        try:
            self.lmax = lmax_from_ncoeffs(data.shape[3])
        except ConfigurationError as e:
            raise FieldLoadError(str(e)) from e

        self.data = np.ascontiguousarray(data, dtype=np.float64)
        self.n_coeffs = data.shape[3]
        self.shape = data.shape[:3]

        self.affine = np.eye(4) if affine is None else np.asarray(affine, dtype=np.float64)
        if self.affine.shape != (4, 4):
            raise FieldLoadError(f"Affine must be 4x4, got shape {self.affine.shape}")
        inverse = np.linalg.inv(self.affine)
        self._rotation = np.ascontiguousarray(inverse[:3, :3])
        self._translation = np.ascontiguousarray(inverse[:3, 3])

    @classmethod
    def from_nifti(cls, path: str) -> 'SHField':
        """Load a 4D SH coefficient image"""
        logger.info(f"Loading SH coefficients from {path}")
        img = nib.load(str(path))
        field = cls(img.get_fdata(dtype=np.float64), img.affine)
        logger.info(
            f"SH field: shape={field.shape}, lmax={field.lmax}, "
            f"voxel size={tuple(np.round(field.voxel_size, 3))} mm"
        )
        return field

    @property
    def voxel_size(self) -> np.ndarray:
        """Voxel dimensions in mm"""
        return voxel_sizes(self.affine)

    def world_to_voxel(self, position: np.ndarray) -> np.ndarray:
        """Map a world position to fractional voxel coordinates"""
        return self._rotation @ position + self._translation

    def query_coefficients(self, position: np.ndarray) -> Optional[np.ndarray]:
        """
        Interpolated coefficient vector at a world position

        Returns:
            Coefficients (n_coeffs,), or None outside the volume or where
            the data are masked with NaN
        """
        voxel = self.world_to_voxel(np.asarray(position, dtype=np.float64))
        out = np.empty(self.n_coeffs, dtype=np.float64)
        if not _trilinear_coefficients(self.data, voxel, out):
            return None
        if np.isnan(out[0]):
            return None
        return out


class FieldSampler:
    """
    FOD amplitude at a position and direction

    Wraps any object exposing ``query_coefficients(position)`` together with
    an SH evaluation strategy. Holds no mutable state.
    """

    def __init__(self, field, evaluator: SHEvaluator):
        field_lmax = getattr(field, 'lmax', None)
        if field_lmax is not None and evaluator.lmax > field_lmax:
            raise ConfigurationError(
                f"Requested lmax={evaluator.lmax} exceeds the field's lmax={field_lmax}"
            )
        self.field = field
        self.evaluator = evaluator

    def coefficients(self, position: np.ndarray) -> Optional[np.ndarray]:
        """Coefficients at a position, or None where undefined"""
        return self.field.query_coefficients(position)

    def amplitude(self, position: np.ndarray, direction: np.ndarray) -> float:
        """FOD amplitude, or nan where the field is undefined"""
        coeffs = self.field.query_coefficients(position)
        if coeffs is None:
            return np.nan
        return self.evaluator.amplitude(coeffs, direction)

    def amplitude_at(self, coeffs: Optional[np.ndarray], direction: np.ndarray) -> float:
        """FOD amplitude of already fetched coefficients"""
        if coeffs is None:
            return np.nan
        return self.evaluator.amplitude(coeffs, direction)
