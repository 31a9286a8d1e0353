"""Difference-hash fingerprinting of decoded images."""

import logging
from typing import Optional

from PIL import Image

logger = logging.getLogger(__name__)

# 9 columns give 8 left/right comparisons per row, 8 rows give 64 bits.
HASH_WIDTH = 9
HASH_HEIGHT = 8


def dhash64(image: Optional[Image.Image]) -> int:
    """
    Compute a 64-bit difference hash for an image.

    The image is reduced to a 9x8 grayscale grid. Bit ``row * 8 + col`` is set
    when the pixel at ``col`` is strictly brighter than its right neighbour.

    Args:
        image: Decoded Pillow image

    Returns:
        Hash as an unsigned 64-bit integer. Unsupported input hashes to 0.
    """
    if not isinstance(image, Image.Image):
        return 0

    try:
        grid = image.convert("L").resize(
            (HASH_WIDTH, HASH_HEIGHT), Image.Resampling.LANCZOS
        )
        pixels = grid.load()
    except (OSError, ValueError) as e:
        logger.debug(f"Could not downsample image for hashing: {e}")
        return 0

    value = 0
    bit = 0
    for row in range(HASH_HEIGHT):
        for col in range(HASH_WIDTH - 1):
            if pixels[col, row] > pixels[col + 1, row]:
                value |= 1 << bit
            bit += 1

    return value


def hamming_distance(a: int, b: int) -> int:
    """Count differing bits between two hashes."""
    return bin(a ^ b).count("1")
