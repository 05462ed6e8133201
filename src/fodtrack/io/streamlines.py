"""
Streamline Output

Writes tracked streamlines (world coordinates, mm) as MRtrix TCK, TrackVis
TRK or HDF5, and reads the HDF5 layout back.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import h5py
import nibabel as nib
import numpy as np
from nibabel.affines import voxel_sizes
from nibabel.streamlines import Field, Tractogram, TckFile, TrkFile

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ('.tck', '.trk', '.h5', '.hdf5')


def save_tck(streamlines: Sequence[np.ndarray], filepath: str):
    """
    Save streamlines in MRtrix TCK format

    Args:
        streamlines: Streamlines in world coordinates
        filepath: Output file path
    """
    logger.info(f"Saving {len(streamlines)} streamlines to TCK: {filepath}")

    tractogram = Tractogram(streamlines=list(streamlines), affine_to_rasmm=np.eye(4))
    TckFile(tractogram).save(str(filepath))

    logger.info(f"Saved to: {filepath}")


def save_trk(
    streamlines: Sequence[np.ndarray],
    filepath: str,
    affine: np.ndarray,
    dimensions: Sequence[int]
):
    """
    Save streamlines in TrackVis TRK format

    Args:
        streamlines: Streamlines in world coordinates (RASMM)
        filepath: Output file path
        affine: Voxel-to-world affine of the reference image (4, 4)
        dimensions: Reference image dimensions (3,)
    """
    logger.info(f"Saving {len(streamlines)} streamlines to TRK: {filepath}")

    header = {
        Field.VOXEL_TO_RASMM: np.asarray(affine, dtype=np.float32),
        Field.VOXEL_SIZES: voxel_sizes(affine).astype(np.float32),
        Field.DIMENSIONS: np.asarray(dimensions, dtype=np.int16)[:3],
        Field.VOXEL_ORDER: ''.join(nib.aff2axcodes(affine)),
    }
    tractogram = Tractogram(streamlines=list(streamlines), affine_to_rasmm=np.eye(4))
    TrkFile(tractogram, header=header).save(str(filepath))

    logger.info(f"Saved to: {filepath}")


def save_hdf5(
    streamlines: Sequence[np.ndarray],
    filepath: str,
    metadata: Optional[Dict] = None
):
    """
    Save streamlines to HDF5, one gzip dataset per streamline

    Args:
        streamlines: Streamlines in world coordinates
        filepath: Output file path
        metadata: Scalar run attributes stored on the file
    """
    output_path = Path(filepath)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    logger.info(f"Saving {len(streamlines)} streamlines to HDF5: {output_path}")

    with h5py.File(output_path, 'w') as h5f:
        group = h5f.create_group('streamlines')
        for i, streamline in enumerate(streamlines):
            group.create_dataset(
                f"streamline_{i:08d}",
                data=np.asarray(streamline, dtype=np.float32),
                compression='gzip',
                compression_opts=4
            )

        h5f.attrs['n_streamlines'] = len(streamlines)
        h5f.attrs['timestamp'] = datetime.now().isoformat()
        for key, value in (metadata or {}).items():
            if value is None:
                continue
            if isinstance(value, (dict, list, tuple)):
                value = json.dumps(value)
            h5f.attrs[key] = value

    logger.info(f"Saved to: {output_path}")


def load_hdf5(filepath: str) -> List[np.ndarray]:
    """
    Load streamlines written by ``save_hdf5``

    Args:
        filepath: Path to HDF5 file

    Returns:
        List of streamlines in file order
    """
    logger.info(f"Loading streamlines from {filepath}")

    streamlines = []
    with h5py.File(filepath, 'r') as h5f:
        group = h5f['streamlines']
        for key in sorted(group.keys()):
            streamlines.append(group[key][:])

    logger.info(f"Loaded {len(streamlines)} streamlines")

    return streamlines


def save_streamlines(
    streamlines: Sequence[np.ndarray],
    filepath: str,
    affine: Optional[np.ndarray] = None,
    dimensions: Optional[Sequence[int]] = None,
    metadata: Optional[Dict] = None
) -> Path:
    """
    Save streamlines in the format given by the file suffix

    Args:
        streamlines: Streamlines in world coordinates
        filepath: Output path ending in .tck, .trk, .h5 or .hdf5
        affine: Reference affine (required for TRK)
        dimensions: Reference dimensions (required for TRK)
        metadata: Run attributes (HDF5 only)

    Returns:
        Path written
    """
    output_path = Path(filepath)
    suffix = output_path.suffix.lower()
    if suffix not in SUPPORTED_FORMATS:
        raise ValueError(
            f"Unsupported streamline format '{suffix}', expected one of {SUPPORTED_FORMATS}"
        )
    output_path.parent.mkdir(parents=True, exist_ok=True)

    if suffix == '.tck':
        save_tck(streamlines, output_path)
    elif suffix == '.trk':
        if affine is None or dimensions is None:
            raise ValueError("TRK output requires a reference affine and dimensions")
        save_trk(streamlines, output_path, affine, dimensions)
    else:
        save_hdf5(streamlines, output_path, metadata)

    return output_path
