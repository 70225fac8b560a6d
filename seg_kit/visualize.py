from __future__ import annotations

from typing import Tuple

import numpy as np

from .contour import ContourConfig, ContourExtractor
from .coords import InputSize, letterbox_params
from .types import FrameResult


def _cv2():
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for draw_detections(). Install with `pip install opencv-python`.") from e
    return cv2


def _color_for_class_id(class_id: int) -> Tuple[int, int, int]:
    """
    Deterministic BGR color for a class id (OpenCV expects BGR).
    """

    palette = [
        (255, 56, 56),
        (255, 157, 151),
        (255, 112, 31),
        (255, 178, 29),
        (207, 210, 49),
        (72, 249, 10),
        (146, 204, 23),
        (61, 219, 134),
        (26, 147, 52),
        (0, 212, 187),
    ]
    if 0 <= class_id < len(palette):
        return palette[class_id]

    rng = np.random.default_rng(abs(int(class_id)))
    bgr = rng.integers(0, 256, size=3, dtype=np.uint8)
    return int(bgr[0]), int(bgr[1]), int(bgr[2])


def mask_to_image(mask: np.ndarray, orig_size: Tuple[int, int], input_size: InputSize) -> np.ndarray:
    """
    Crop the letterbox padding band off a model-input-space mask and resize it
    (nearest) to the original image size (width, height).
    """

    cv2 = _cv2()
    orig_w, orig_h = orig_size
    _, pad_x, pad_y = letterbox_params(orig_w, orig_h, input_size)
    h, w = mask.shape
    x0, x1 = int(round(pad_x * w)), int(round((1.0 - pad_x) * w))
    y0, y1 = int(round(pad_y * h)), int(round((1.0 - pad_y) * h))
    content = np.ascontiguousarray(mask[y0:max(y1, y0 + 1), x0:max(x1, x0 + 1)], dtype=np.float32)
    return cv2.resize(content, (orig_w, orig_h), interpolation=cv2.INTER_NEAREST)


def draw_detections(
    image_bgr: np.ndarray,
    result: FrameResult,
    input_size: InputSize,
    *,
    contour: ContourConfig = ContourConfig(),
    mask_alpha: float = 0.35,
    show_score: bool = True,
    box_thickness: int = 1,
    font_scale: float = 0.5,
    font_thickness: int = 1,
) -> np.ndarray:
    """
    Draw boxes, labels, mask tint and mask outline on an OpenCV BGR image and return a copy.

    Args:
        image_bgr: original image in BGR (H, W, 3).
        result: FrameResult for this image (normalized original-image boxes).
        input_size: model input size the masks were produced at.
    """

    cv2 = _cv2()
    if image_bgr is None or not hasattr(image_bgr, "shape"):
        raise TypeError("image_bgr must be a NumPy array (BGR).")
    if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
        raise ValueError(f"Expected image shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")

    out = image_bgr.copy()
    h, w = out.shape[:2]
    extractor = ContourExtractor(contour)

    for idx, det in enumerate(result.detections):
        color = _color_for_class_id(det.class_id)

        if idx < len(result.masks):
            mask = mask_to_image(result.masks[idx], (w, h), input_size)
            fg = mask > contour.threshold
            tint = np.array(color, dtype=np.float32)
            out[fg] = (out[fg].astype(np.float32) * (1.0 - mask_alpha) + tint * mask_alpha).astype(np.uint8)
            outline = extractor.apply(mask).astype(bool)
            out[outline] = color

        x1, y1, x2, y2 = det.box.to_pixels(w, h)
        x1i = int(np.clip(round(x1), 0, w - 1))
        y1i = int(np.clip(round(y1), 0, h - 1))
        x2i = int(np.clip(round(x2), 0, w - 1))
        y2i = int(np.clip(round(y2), 0, h - 1))
        cv2.rectangle(out, (x1i, y1i), (x2i, y2i), color, thickness=box_thickness)

        label = det.class_name
        if show_score:
            label = f"{label} {det.confidence:.2f}"

        (tw, th), baseline = cv2.getTextSize(label, cv2.FONT_HERSHEY_SIMPLEX, font_scale, font_thickness)
        # Place label above the box if possible, else inside.
        y_text_top = y1i - th - baseline
        if y_text_top < 0:
            y_text_top = y1i

        x_text_right = min(x1i + tw, w - 1)
        y_text_bottom = min(y_text_top + th + baseline, h - 1)

        cv2.rectangle(out, (x1i, y_text_top), (x_text_right, y_text_bottom), color, thickness=-1)
        cv2.putText(
            out,
            label,
            (x1i, min(y_text_top + th, h - 1)),
            cv2.FONT_HERSHEY_SIMPLEX,
            font_scale,
            (255, 255, 255),
            thickness=font_thickness,
            lineType=cv2.LINE_AA,
        )

    return out
