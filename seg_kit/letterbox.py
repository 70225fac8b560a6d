from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .coords import InputSize, letterbox_params


@dataclass(frozen=True)
class LetterboxInfo:
    """
    scale: resize factor; pad_x / pad_y: one-side padding as a fraction of the input size.
    """

    scale: float
    pad_x: float
    pad_y: float
    orig_size: Tuple[int, int]


def letterbox(
    image: np.ndarray,
    input_size: InputSize = 640,
    color: Tuple[int, int, int] = (114, 114, 114),
) -> Tuple[np.ndarray, LetterboxInfo]:
    """
    Aspect-preserving resize with symmetric constant padding to the model input size.

    This is the frame-source convention undone by `coords.map_box`.

    Returns:
        padded: resized + padded image, shape (in_h, in_w, C)
        info: LetterboxInfo for the mapping back to the original image
    """
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for letterbox(). Install with `pip install opencv-python`.") from e

    if isinstance(input_size, int):
        input_size = (input_size, input_size)
    in_w, in_h = input_size

    h, w = image.shape[:2]
    scale, pad_x, pad_y = letterbox_params(w, h, (in_w, in_h))

    resized_w, resized_h = int(round(w * scale)), int(round(h * scale))
    if (w, h) != (resized_w, resized_h):
        image = cv2.resize(image, (resized_w, resized_h), interpolation=cv2.INTER_LINEAR)

    dw = (in_w - resized_w) / 2
    dh = (in_h - resized_h) / 2
    top, bottom = int(round(dh - 0.1)), int(round(dh + 0.1))
    left, right = int(round(dw - 0.1)), int(round(dw + 0.1))
    padded = cv2.copyMakeBorder(image, top, bottom, left, right, cv2.BORDER_CONSTANT, value=color)

    return padded, LetterboxInfo(scale=scale, pad_x=pad_x, pad_y=pad_y, orig_size=(w, h))
