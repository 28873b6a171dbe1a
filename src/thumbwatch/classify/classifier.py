"""
Frame Classifier
================

Determines per-frame health status: ok, black or corrupt.

This classifier:
    - Decodes the payload (decode failure -> corrupt, no fingerprint)
    - Scores the decoded frame for blackness under the configured policy
    - Computes a perceptual fingerprint for ok and black frames

Black Policies:
    mean_luma:   mean grayscale luminance < luma_threshold
    pixel_ratio: fraction of pixels with every channel <= pixel_cutoff
                 is >= black_ratio_threshold

Precedence is corrupt > black > ok. The classifier is a pure function
of the payload and its thresholds; it holds no per-stream state.
"""

import logging

import numpy as np

from thumbwatch.classify.fingerprint import FingerprintError, perceptual_hash
from thumbwatch.ingest.image_decoder import ImageDecodeError, decode_bgr, to_grayscale
from thumbwatch.models.health import ClassificationResult, FrameStatus


logger = logging.getLogger(__name__)


MEAN_LUMA = "mean_luma"
PIXEL_RATIO = "pixel_ratio"


class FrameClassifier:
    """
    Stateless frame health classifier.

    Attributes:
        black_policy: 'mean_luma' or 'pixel_ratio'
        luma_threshold: Mean luminance cut (mean_luma)
        pixel_cutoff: Per-channel black cut (pixel_ratio)
        black_ratio_threshold: Black pixel fraction cut (pixel_ratio)

    Example:
        classifier = FrameClassifier(luma_threshold=16.0)
        result = classifier.classify(jpeg_bytes)
        print(result.status, result.fingerprint)
    """

    def __init__(
        self,
        black_policy: str = MEAN_LUMA,
        luma_threshold: float = 16.0,
        pixel_cutoff: int = 16,
        black_ratio_threshold: float = 0.9,
        hash_size: int = 8,
        highfreq_factor: int = 4,
    ) -> None:
        if black_policy not in (MEAN_LUMA, PIXEL_RATIO):
            raise ValueError(f"Unknown black policy: {black_policy}")
        if not 0 < black_ratio_threshold <= 1:
            raise ValueError("black_ratio_threshold must be in (0, 1]")

        self.black_policy = black_policy
        self.luma_threshold = luma_threshold
        self.pixel_cutoff = pixel_cutoff
        self.black_ratio_threshold = black_ratio_threshold
        self.hash_size = hash_size
        self.highfreq_factor = highfreq_factor

        logger.info(
            f"FrameClassifier initialized: policy={black_policy}, "
            f"luma_threshold={luma_threshold}, pixel_cutoff={pixel_cutoff}, "
            f"ratio={black_ratio_threshold}"
        )

    def black_score(self, bgr: np.ndarray) -> float:
        """
        Score a decoded frame for blackness.

        Returns:
            Mean luminance (mean_luma) or black pixel fraction (pixel_ratio)
        """
        if self.black_policy == MEAN_LUMA:
            return float(to_grayscale(bgr).mean())
        black_pixels = np.all(bgr <= self.pixel_cutoff, axis=2)
        return float(black_pixels.mean())

    def is_black(self, bgr: np.ndarray) -> bool:
        score = self.black_score(bgr)
        if self.black_policy == MEAN_LUMA:
            return score < self.luma_threshold
        return score >= self.black_ratio_threshold

    def classify(self, data: bytes) -> ClassificationResult:
        """
        Classify one frame.

        Args:
            data: Encoded image bytes

        Returns:
            ClassificationResult. Corrupt frames carry no fingerprint;
            frames whose fingerprint could not be computed carry None.
        """
        try:
            bgr = decode_bgr(data)
        except ImageDecodeError as e:
            logger.debug(f"Decode failed, frame is corrupt: {e}")
            return ClassificationResult(status=FrameStatus.CORRUPT, fingerprint=None)

        status = FrameStatus.BLACK if self.is_black(bgr) else FrameStatus.OK

        try:
            fingerprint = perceptual_hash(
                bgr,
                hash_size=self.hash_size,
                highfreq_factor=self.highfreq_factor,
            )
        except FingerprintError as e:
            logger.warning(f"Fingerprinting failed, skipping freeze check: {e}")
            fingerprint = None

        return ClassificationResult(status=status, fingerprint=fingerprint)
