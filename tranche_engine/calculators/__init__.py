"""
Calculators Package

Provides all calculation components for sale processing.
"""

from .costs import CostAllocator
from .recurrence import RecurrenceEngine
from .tranches import TrancheScheduler
from .volume import VolumeTracker

__all__ = [
    "VolumeTracker",
    "TrancheScheduler",
    "CostAllocator",
    "RecurrenceEngine",
]
