"""
Bit-level similarity between 64-bit perceptual fingerprints.
"""
from typing import Optional

from .. import config

_MASK = (1 << config.FINGERPRINT_BITS) - 1


def hamming_distance(a: int, b: int) -> int:
    """Number of differing bits, 0..64."""
    return bin((a ^ b) & _MASK).count("1")


def similarity_percent(a: int, b: int) -> float:
    """100 for identical fingerprints, 0 when every bit differs."""
    return 100.0 - hamming_distance(a, b) / config.FINGERPRINT_BITS * 100.0


def combined_similarity(structural_a: int,
                        structural_b: int,
                        color_a: Optional[int] = None,
                        color_b: Optional[int] = None) -> float:
    """
    0.6 * structural + 0.4 * color when both sides carry a color
    fingerprint, otherwise the structural similarity alone.
    """
    structural = similarity_percent(structural_a, structural_b)
    if color_a is None or color_b is None:
        return structural
    color = similarity_percent(color_a, color_b)
    return config.STRUCTURAL_WEIGHT * structural + config.COLOR_WEIGHT * color
