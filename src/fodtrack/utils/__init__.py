"""
Shared utilities: logging and run records.
"""

from .logger import FodTrackLogger, get_logger, log_decision

__all__ = ['FodTrackLogger', 'get_logger', 'log_decision']
