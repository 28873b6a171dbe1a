"""
Perceptual Fingerprint
======================

DCT-based perceptual hash (pHash) used for freeze detection.

Algorithm:
    1. Grayscale, resize to (hash_size * highfreq_factor)^2 with area
       interpolation (averages away re-encoding noise)
    2. 2D DCT of the resized image
    3. Keep the top-left hash_size x hash_size block (low frequencies)
    4. Bit = coefficient > median of the block
    5. Pack bits, render as hex

Two frames with identical visual content yield identical fingerprints;
material content changes flip enough low-frequency bits to differ.
"""

import logging

import cv2
import numpy as np

from thumbwatch.ingest.image_decoder import to_grayscale


logger = logging.getLogger(__name__)


class FingerprintError(Exception):
    """Raised when a fingerprint cannot be computed from a decoded frame."""
    pass


def perceptual_hash(
    bgr: np.ndarray,
    hash_size: int = 8,
    highfreq_factor: int = 4,
) -> str:
    """
    Compute the perceptual hash of a decoded frame.

    Args:
        bgr: Decoded BGR frame (H, W, 3), dtype=uint8
        hash_size: Side of the kept low-frequency block
        highfreq_factor: Oversampling factor before the DCT

    Returns:
        Hex string of hash_size * hash_size bits

    Raises:
        FingerprintError: If the frame cannot be hashed
    """
    if hash_size < 2:
        raise FingerprintError(f"hash_size must be >= 2, got {hash_size}")

    # cv2.dct only accepts even-sized inputs
    side = hash_size * highfreq_factor
    side += side % 2

    try:
        gray = to_grayscale(bgr)
        small = cv2.resize(gray, (side, side), interpolation=cv2.INTER_AREA)
        coeffs = cv2.dct(np.float32(small))
    except cv2.error as e:
        raise FingerprintError(f"DCT hashing failed: {e}") from e

    low = coeffs[:hash_size, :hash_size]
    bits = (low > np.median(low)).flatten()
    return np.packbits(bits).tobytes().hex()


def hamming_distance(a: str, b: str) -> int:
    """Number of differing bits between two equal-length hex fingerprints."""
    if len(a) != len(b):
        raise ValueError("Fingerprints must have equal length")
    return bin(int(a, 16) ^ int(b, 16)).count("1")
