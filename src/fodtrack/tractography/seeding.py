"""
Seed Placement

Places seed points inside the voxels of a binary mask, in world coordinates.
"""

import logging
from typing import Optional

import numpy as np
from nibabel.affines import apply_affine

logger = logging.getLogger(__name__)


def seeds_from_mask(
    mask: np.ndarray,
    affine: Optional[np.ndarray] = None,
    seeds_per_voxel: int = 1,
    rng: Optional[np.random.Generator] = None,
    jitter: bool = True
) -> np.ndarray:
    """
    Generate seeds inside every non-zero voxel of a mask

    Args:
        mask: Binary mask (x, y, z)
        affine: Voxel-to-world transform (4, 4); identity if None
        seeds_per_voxel: Number of seeds per voxel
        rng: Random generator for jitter (required if jitter is True)
        jitter: Place seeds uniformly within the voxel instead of at its centre

    Returns:
        Seed positions in world coordinates (N, 3)
    """
    if seeds_per_voxel < 1:
        raise ValueError(f"seeds_per_voxel must be positive, got {seeds_per_voxel}")

    voxel_indices = np.array(np.nonzero(np.asarray(mask) > 0)).T  # (N_voxels, 3)
    n_voxels = voxel_indices.shape[0]
    if n_voxels == 0:
        raise ValueError("Mask is empty - no seeds can be generated")

    voxels = np.repeat(voxel_indices.astype(np.float64), seeds_per_voxel, axis=0)
    if jitter:
        if rng is None:
            raise ValueError("Jittered seeding requires a random generator")
        # Voxel centres sit on integer coordinates
        voxels += rng.uniform(-0.5, 0.5, size=voxels.shape)

    affine = np.eye(4) if affine is None else np.asarray(affine, dtype=np.float64)
    seeds = apply_affine(affine, voxels)

    logger.info(
        f"Generated {len(seeds)} seeds from {n_voxels} voxels "
        f"({seeds_per_voxel} per voxel, jitter={jitter})"
    )

    return seeds
