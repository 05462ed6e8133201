"""
fodtrack

Second-order probabilistic streamline tractography over fibre orientation
distribution fields.
"""

__version__ = "0.1.0"
