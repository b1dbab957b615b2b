"""Utility modules"""

from .logger import logger
from .metrics import SyncProgress

__all__ = [
    'logger',
    'SyncProgress'
]
