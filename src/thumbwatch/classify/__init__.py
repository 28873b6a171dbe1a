"""
Classify Module
===============

Frame health classification and perceptual fingerprinting.

Components:
    - FrameClassifier: ok / black / corrupt verdicts
    - perceptual_hash: DCT fingerprint consumed by the freeze detector
"""

from thumbwatch.classify.classifier import FrameClassifier
from thumbwatch.classify.fingerprint import (
    FingerprintError,
    hamming_distance,
    perceptual_hash,
)


__all__ = [
    "FrameClassifier",
    "FingerprintError",
    "hamming_distance",
    "perceptual_hash",
]
