"""
Streamline input/output.
"""

from .streamlines import (
    save_tck,
    save_trk,
    save_hdf5,
    load_hdf5,
    save_streamlines,
    SUPPORTED_FORMATS
)

__all__ = [
    'save_tck',
    'save_trk',
    'save_hdf5',
    'load_hdf5',
    'save_streamlines',
    'SUPPORTED_FORMATS',
]
