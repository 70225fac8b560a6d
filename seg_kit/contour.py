from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np


def _cv2():
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for contour extraction. Install with `pip install opencv-python`.") from e
    return cv2


def binarize(mask: np.ndarray, threshold: float) -> np.ndarray:
    return (np.asarray(mask) > threshold).astype(np.uint8)


def dilate(binary: np.ndarray, radius: int) -> np.ndarray:
    """
    Dilate a {0,1} grid with a (2*radius+1) square structuring element.
    Pixels beyond the grid edge never activate anything.
    """

    if radius <= 0:
        return binary.copy()
    cv2 = _cv2()
    kernel = np.ones((2 * radius + 1, 2 * radius + 1), dtype=np.uint8)
    return cv2.dilate(binary, kernel, iterations=1)


def extract_outline(mask: np.ndarray, threshold: float = 0.2, thickness: int = 1) -> np.ndarray:
    """
    Outer outline of a probability mask, as a uint8 {0,1} grid of the same shape.

    The outline is the ring of pixels added by a 1-pixel 8-connected dilation of
    the binarized mask. For thickness > 1 the ring is dilated again with radius
    (thickness - 1) // 2. A thickness <= 0 gives an empty outline.
    """

    mask = np.asarray(mask)
    if mask.ndim != 2:
        raise ValueError(f"Expected a 2D mask, got shape {mask.shape}")
    if thickness <= 0:
        return np.zeros(mask.shape, dtype=np.uint8)

    binary = binarize(mask, threshold)
    ring = dilate(binary, 1) & (1 - binary)
    if thickness > 1:
        ring = dilate(ring, (thickness - 1) // 2)
    return ring


@dataclass(frozen=True)
class ContourConfig:
    threshold: float = 0.2
    thickness: int = 1


class ContourExtractor:
    """
    Renderer-facing outline helper, usable without the rest of the pipeline.
    """

    def __init__(self, cfg: ContourConfig = ContourConfig()):
        self.cfg = cfg

    def apply(
        self,
        mask: np.ndarray,
        threshold: Optional[float] = None,
        thickness: Optional[int] = None,
    ) -> np.ndarray:
        return extract_outline(
            mask,
            self.cfg.threshold if threshold is None else threshold,
            self.cfg.thickness if thickness is None else thickness,
        )
