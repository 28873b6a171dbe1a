"""
Freeze Module
=============

Freeze detection over successive frame fingerprints.

Components:
    - FreezeStateRegistry: owned per-key state with locking and eviction
    - FreezeDetector: NOT_FROZEN / FROZEN state machine
"""

from thumbwatch.freeze.registry import EvictedKey, FreezeState, FreezeStateRegistry
from thumbwatch.freeze.detector import FreezeDetector


__all__ = [
    "EvictedKey",
    "FreezeState",
    "FreezeStateRegistry",
    "FreezeDetector",
]
