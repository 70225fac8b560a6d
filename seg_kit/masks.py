"""
Instance mask reconstruction from shared prototype channels.

A detection's mask is the linear combination of the M prototype grids weighted
by its mask coefficients, cropped to the detection's box and resized with
nearest-neighbour sampling.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from .errors import DecodeError, PerDetectionMaskError
from .types import Box, Detection


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PrototypeMaskSet:
    """
    Read-only (M, H, W) prototype grids from one inference call.
    """

    protos: np.ndarray

    def __post_init__(self) -> None:
        arr = np.array(self.protos, dtype=np.float32)
        if arr.ndim != 3:
            raise DecodeError(f"Prototype masks must be (M, H, W), got shape {arr.shape}")
        arr.setflags(write=False)
        object.__setattr__(self, "protos", arr)

    @classmethod
    def from_buffer(
        cls,
        buf: object,
        num_masks: int,
        height: int,
        width: int,
        channels_last: bool = True,
    ) -> "PrototypeMaskSet":
        """
        Build from a flat buffer laid out (H, W, M) (TFLite, channels_last) or (M, H, W).
        """

        try:
            flat = np.asarray(buf, dtype=np.float32).reshape(-1)
        except (TypeError, ValueError) as e:
            raise DecodeError(f"Prototype buffer is not numeric: {e}") from e
        expected = num_masks * height * width
        if flat.size != expected:
            raise DecodeError(
                f"Prototype buffer holds {flat.size} values, expected {expected} ({num_masks}x{height}x{width})"
            )
        if channels_last:
            return cls(flat.reshape(height, width, num_masks).transpose(2, 0, 1))
        return cls(flat.reshape(num_masks, height, width))

    @property
    def num_masks(self) -> int:
        return int(self.protos.shape[0])

    @property
    def height(self) -> int:
        return int(self.protos.shape[1])

    @property
    def width(self) -> int:
        return int(self.protos.shape[2])


def box_to_grid_rect(box: Box, grid_width: int, grid_height: int) -> Tuple[int, int, int, int]:
    """
    Integer rectangle [x0, x1) x [y0, y1) covering `box` on a grid, clamped to the grid.
    """

    x0 = max(int(box.x1 * grid_width), 0)
    y0 = max(int(box.y1 * grid_height), 0)
    x1 = min(int(box.x2 * grid_width), grid_width)
    y1 = min(int(box.y2 * grid_height), grid_height)
    return x0, y0, x1, y1


def resize_nearest(grid: np.ndarray, target_size: Tuple[int, int]) -> np.ndarray:
    """
    Nearest-neighbour resize of a 2D grid to target_size=(width, height).

    src = clamp(floor(dst * src_dim / dst_dim), 0, src_dim - 1) on each axis.
    """

    dst_w, dst_h = target_size
    if dst_w <= 0 or dst_h <= 0:
        raise ValueError(f"target_size must be positive, got {target_size}")
    src_h, src_w = grid.shape
    ys = np.clip((np.arange(dst_h) * src_h) // dst_h, 0, src_h - 1)
    xs = np.clip((np.arange(dst_w) * src_w) // dst_w, 0, src_w - 1)
    return grid[np.ix_(ys, xs)]


def composite_mask(
    box: Box,
    coefficients: Sequence[float],
    protos: PrototypeMaskSet,
    target_size: Tuple[int, int],
) -> np.ndarray:
    """
    Weighted sum of prototype channels inside the box rectangle, resized to target_size.

    `box` must be in model-input normalized space. Everything outside the box
    rectangle is exactly 0.
    """

    coeffs = np.asarray(coefficients, dtype=np.float32).reshape(-1)
    if coeffs.shape[0] != protos.num_masks:
        raise ValueError(f"Got {coeffs.shape[0]} mask coefficients for {protos.num_masks} prototype channels")

    out = np.zeros((protos.height, protos.width), dtype=np.float32)
    x0, y0, x1, y1 = box_to_grid_rect(box, protos.width, protos.height)
    if x0 < x1 and y0 < y1:
        out[y0:y1, x0:x1] = np.tensordot(coeffs, protos.protos[:, y0:y1, x0:x1], axes=(0, 0))
    return resize_nearest(out, target_size)


class MaskCompositor:
    def __init__(self, target_size: Tuple[int, int] = (1024, 1024)):
        self.target_size = (int(target_size[0]), int(target_size[1]))

    def empty_mask(self) -> np.ndarray:
        w, h = self.target_size
        return np.zeros((h, w), dtype=np.float32)

    def composite(self, detection: Detection, protos: PrototypeMaskSet) -> np.ndarray:
        return composite_mask(detection.input_box, detection.mask_coefficients, protos, self.target_size)

    def compose_all(self, detections: Sequence[Detection], protos: PrototypeMaskSet) -> List[np.ndarray]:
        """
        One mask per detection. A failure is contained to its own detection,
        which gets an all-zero mask.
        """

        masks: List[np.ndarray] = []
        for idx, det in enumerate(detections):
            try:
                masks.append(self.composite(det, protos))
            except Exception as e:
                err = PerDetectionMaskError(idx, e)
                logger.error("%s; substituting an all-zero mask", err, exc_info=True)
                masks.append(self.empty_mask())
        return masks


def compose_masks(
    detections: Sequence[Detection],
    protos: PrototypeMaskSet,
    target_size: Tuple[int, int] = (1024, 1024),
) -> List[np.ndarray]:
    return MaskCompositor(target_size).compose_all(detections, protos)
