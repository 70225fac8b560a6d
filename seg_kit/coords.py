from __future__ import annotations

from typing import Tuple, Union

import numpy as np

from .errors import ConfigurationError
from .types import Box, Detection, RawDetection


InputSize = Union[int, Tuple[int, int]]


def _as_wh(input_size: InputSize) -> Tuple[int, int]:
    if isinstance(input_size, int):
        return input_size, input_size
    w, h = input_size
    return int(w), int(h)


def letterbox_params(orig_width: int, orig_height: int, input_size: InputSize) -> Tuple[float, float, float]:
    """
    Scale and normalized padding used by an aspect-preserving, symmetrically padded resize.

    Returns:
        scale: resize factor applied to the original image
        pad_x, pad_y: padding on ONE side, as a fraction of the model input width/height
    """

    in_w, in_h = _as_wh(input_size)
    if orig_width <= 0 or orig_height <= 0:
        raise ConfigurationError(f"Original image size must be positive, got {orig_width}x{orig_height}")
    if in_w <= 0 or in_h <= 0:
        raise ConfigurationError(f"Model input size must be positive, got {in_w}x{in_h}")

    scale = min(in_w / orig_width, in_h / orig_height)
    pad_x = (in_w - orig_width * scale) / 2 / in_w
    pad_y = (in_h - orig_height * scale) / 2 / in_h

    # pad >= 0.5 means the padding band swallows the whole input.
    if pad_x >= 0.5 or pad_y >= 0.5:
        raise ConfigurationError(
            f"Degenerate letterbox for {orig_width}x{orig_height} -> {in_w}x{in_h}: "
            f"pad_x={pad_x:.4f}, pad_y={pad_y:.4f}"
        )
    return scale, pad_x, pad_y


def map_box(box: Box, orig_width: int, orig_height: int, input_size: InputSize) -> Box:
    """
    Map a model-input normalized box to original-image normalized coordinates,
    undoing letterbox padding independently on each axis.

    Coordinates that fall inside the padding band are clamped to the image edge.
    """

    _, pad_x, pad_y = letterbox_params(orig_width, orig_height, input_size)
    sx = 1.0 - 2.0 * pad_x
    sy = 1.0 - 2.0 * pad_y

    x1, x2 = np.clip([(box.x1 - pad_x) / sx, (box.x2 - pad_x) / sx], 0.0, 1.0)
    y1, y2 = np.clip([(box.y1 - pad_y) / sy, (box.y2 - pad_y) / sy], 0.0, 1.0)
    return Box(float(x1), float(y1), float(x2), float(y2))


def map_detection(raw: RawDetection, orig_width: int, orig_height: int, input_size: InputSize) -> Detection:
    return Detection.from_raw(raw, map_box(raw.box, orig_width, orig_height, input_size))
