"""
Thumbnail Decoding
==================

Bytes -> OpenCV BGR matrix, and nothing else.

Design Rules:
    - Single decode point for submitted payloads
    - A payload that is empty, undecodable or not 3-channel uint8 is an
      ImageDecodeError; the classifier turns that into a corrupt verdict
    - Grayscale is derived on demand from the BGR matrix
"""

import logging

import cv2
import numpy as np


logger = logging.getLogger(__name__)


class ImageDecodeError(Exception):
    """Raised when a payload cannot be decoded into a BGR frame."""
    pass


def decode_bgr(data: bytes) -> np.ndarray:
    """
    Decode image bytes to a BGR numpy array.

    Args:
        data: Encoded image (JPEG, PNG, ...)

    Returns:
        Decoded frame, shape (H, W, 3), uint8

    Raises:
        ImageDecodeError: Undecodable payload or unexpected matrix layout
    """
    if not data:
        raise ImageDecodeError("Empty image payload")

    try:
        nparr = np.frombuffer(data, np.uint8)
        bgr = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
    except cv2.error as e:
        raise ImageDecodeError(f"OpenCV failed to decode image: {e}") from e

    if bgr is None:
        raise ImageDecodeError("cv2.imdecode returned None")

    if bgr.ndim != 3 or bgr.shape[2] != 3:
        raise ImageDecodeError(f"Invalid image shape: {bgr.shape}")

    if bgr.shape[0] == 0 or bgr.shape[1] == 0:
        raise ImageDecodeError(f"Empty image dimensions: {bgr.shape}")

    if bgr.dtype != np.uint8:
        raise ImageDecodeError(f"Invalid dtype: {bgr.dtype}")

    return bgr


def to_grayscale(bgr: np.ndarray) -> np.ndarray:
    """Convert a decoded BGR frame to grayscale (H, W), dtype=uint8."""
    return cv2.cvtColor(bgr, cv2.COLOR_BGR2GRAY)
