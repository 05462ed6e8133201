"""
Deformation Field Out-of-Bounds Correction

Replaces voxels of a deformation field that hold a given out-of-bounds marker
(by default (0, 0, 0)) with (nan, nan, nan), so that warps produced by other
registration packages mark unmapped voxels the way tracking and resampling
expect. The field is processed in slabs; the number of replaced voxels is
reported once all slabs are done.
"""

import logging
from dataclasses import dataclass
from typing import Sequence, Union

import nibabel as nib
import numpy as np

logger = logging.getLogger(__name__)

# Relative precision of single-precision comparisons
PRECISION = 1e-5


@dataclass
class WarpCorrectionResult:
    """Corrected deformation field and the number of voxels replaced"""
    data: np.ndarray
    n_corrected: int


def parse_marker(marker: Union[float, str, Sequence[float]]) -> np.ndarray:
    """
    Out-of-bounds marker from a single value or three values

    Accepts a number, a sequence, or a comma separated string.
    """
    if isinstance(marker, str):
        try:
            marker = [float(v) for v in marker.split(',')]
        except ValueError as e:
            raise ValueError(f"Invalid marker '{marker}': {e}") from e

    values = np.atleast_1d(np.asarray(marker, dtype=np.float32))
    if values.size == 1:
        return np.full(3, values[0], dtype=np.float32)
    if values.size == 3:
        return values.astype(np.float32)
    raise ValueError("marker requires either a single value or a list of 3 values")


def check_warp(warp: np.ndarray):
    """Raise ValueError unless ``warp`` is a 4D field of 3-vectors"""
    if warp.ndim != 4 or warp.shape[3] != 3:
        raise ValueError(
            f"Deformation field must be 4D with 3 volumes, got shape {warp.shape}"
        )


class BoundsCheck:
    """
    Slab-wise marker replacement with an explicit final report

    Call the instance on consecutive slabs of the field, then ``finalize``
    to obtain the number of voxels replaced.
    """

    def __init__(self, marker: np.ndarray, tolerance: float = PRECISION):
        self.marker = np.asarray(marker, dtype=np.float32)
        self.tolerance = tolerance
        self.marker_has_nan = bool(np.any(np.isnan(self.marker)))
        self.count = 0

    def __call__(self, slab_in: np.ndarray, slab_out: np.ndarray):
        distance = np.linalg.norm(slab_in - self.marker, axis=-1)
        matches = distance <= self.tolerance
        if self.marker_has_nan:
            matches |= np.any(np.isnan(slab_in), axis=-1)

        slab_out[...] = slab_in
        slab_out[matches] = np.nan
        self.count += int(np.count_nonzero(matches))

    def finalize(self) -> int:
        """Log and return the number of replaced voxels"""
        if self.count == 0:
            logger.warning(
                f"no out of bounds voxels found with value "
                f"({self.marker[0]},{self.marker[1]},{self.marker[2]})"
            )
        logger.info(f"converted {self.count} out of bounds values")
        return self.count


def correct_warp(
    warp: np.ndarray,
    marker: Union[float, str, Sequence[float]] = 0.0,
    tolerance: float = PRECISION,
    slab_size: int = 16
) -> WarpCorrectionResult:
    """
    Replace out-of-bounds marker voxels of a deformation field with nan

    A voxel matches when the L2 distance between its vector and the marker
    is at most ``tolerance``, or when both contain nan.

    Args:
        warp: Deformation field (x, y, z, 3)
        marker: Out-of-bounds value, one number or three
        tolerance: Matching tolerance on the L2 distance
        slab_size: Number of z-slices processed at once

    Returns:
        WarpCorrectionResult with the corrected float32 field
    """
    data = np.asarray(warp, dtype=np.float32)
    check_warp(data)
    if not tolerance >= 0:
        raise ValueError(f"tolerance must be non-negative, got {tolerance}")

    out = np.empty_like(data)
    check = BoundsCheck(parse_marker(marker), tolerance)
    for start in range(0, data.shape[2], slab_size):
        end = min(start + slab_size, data.shape[2])
        check(data[:, :, start:end], out[:, :, start:end])

    return WarpCorrectionResult(out, check.finalize())


def correct_warp_file(
    input_file: str,
    output_file: str,
    marker: Union[float, str, Sequence[float]] = 0.0,
    tolerance: float = PRECISION
) -> int:
    """
    Correct a deformation field image and save it

    Returns:
        Number of voxels replaced
    """
    logger.info(f"Loading deformation field from {input_file}")
    img = nib.load(str(input_file))

    result = correct_warp(img.get_fdata(dtype=np.float32), marker, tolerance)

    header = img.header.copy()
    header.set_data_dtype(np.float32)
    nib.save(nib.Nifti1Image(result.data, img.affine, header), str(output_file))
    logger.info(f"Saved corrected deformation field to {output_file}")

    return result.n_corrected
