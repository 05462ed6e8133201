"""
Preprocessing Module

Utilities applied to images before tracking.
"""

from .warp_correction import (
    BoundsCheck,
    WarpCorrectionResult,
    correct_warp,
    correct_warp_file,
    parse_marker
)

__all__ = [
    'BoundsCheck',
    'WarpCorrectionResult',
    'correct_warp',
    'correct_warp_file',
    'parse_marker',
]
