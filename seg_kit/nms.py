from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from .errors import ConfigurationError
from .types import Box, Detection


@dataclass(frozen=True)
class NMSConfig:
    iou_threshold: float = 0.5
    max_detections: Optional[int] = None
    # False runs suppression separately per class id.
    class_agnostic: bool = True

    def __post_init__(self) -> None:
        if not 0.0 < self.iou_threshold <= 1.0:
            raise ConfigurationError(f"iou_threshold must be within (0, 1], got {self.iou_threshold}")
        if self.max_detections is not None and self.max_detections < 1:
            raise ConfigurationError(f"max_detections must be >= 1, got {self.max_detections}")


def box_iou(a: Box, b: Box) -> float:
    """
    Intersection-over-union of two axis-aligned boxes. A zero union yields 0.
    """

    w = max(0.0, min(a.x2, b.x2) - max(a.x1, b.x1))
    h = max(0.0, min(a.y2, b.y2) - max(a.y1, b.y1))
    inter = w * h
    union = a.area + b.area - inter
    if union <= 0.0:
        return 0.0
    return inter / union


def nms(boxes: np.ndarray, scores: np.ndarray, cfg: NMSConfig) -> np.ndarray:
    """
    Greedy NumPy NMS. Expects boxes shape (N,4) in xyxy and scores shape (N,).
    Returns indices of kept boxes, highest score first.

    Equal scores keep their input order. A box is dropped when its IoU with an
    already kept box is >= cfg.iou_threshold.
    """

    if boxes.size == 0:
        return np.empty((0,), dtype=np.int64)

    x1 = boxes[:, 0]
    y1 = boxes[:, 1]
    x2 = boxes[:, 2]
    y2 = boxes[:, 3]
    areas = np.maximum(0.0, x2 - x1) * np.maximum(0.0, y2 - y1)

    order = np.argsort(-scores, kind="stable")
    keep = []

    while order.size > 0:
        if cfg.max_detections is not None and len(keep) >= cfg.max_detections:
            break
        i = order[0]
        keep.append(i)

        rest = order[1:]
        xx1 = np.maximum(x1[i], x1[rest])
        yy1 = np.maximum(y1[i], y1[rest])
        xx2 = np.minimum(x2[i], x2[rest])
        yy2 = np.minimum(y2[i], y2[rest])

        w = np.maximum(0.0, xx2 - xx1)
        h = np.maximum(0.0, yy2 - yy1)
        inter = w * h
        union = areas[i] + areas[rest] - inter
        iou = np.divide(inter, union, out=np.zeros_like(inter), where=union > 0)

        order = rest[iou < cfg.iou_threshold]

    return np.array(keep, dtype=np.int64)


def _as_arrays(detections: Sequence[Detection]):
    boxes = np.array([d.box.as_xyxy() for d in detections], dtype=np.float64).reshape(-1, 4)
    scores = np.array([d.confidence for d in detections], dtype=np.float64)
    return boxes, scores


def suppress(detections: Sequence[Detection], cfg: NMSConfig = NMSConfig()) -> List[Detection]:
    """
    Remove redundant overlapping detections.

    Output is confidence-descending and always contains the highest-confidence input.
    """

    if not detections:
        return []

    boxes, scores = _as_arrays(detections)
    if cfg.class_agnostic:
        return [detections[i] for i in nms(boxes, scores, cfg)]

    class_ids = np.array([d.class_id for d in detections])
    per_class = NMSConfig(iou_threshold=cfg.iou_threshold, class_agnostic=False)
    kept: List[int] = []
    for cls in np.unique(class_ids):
        idx = np.where(class_ids == cls)[0]
        keep_local = nms(boxes[idx], scores[idx], per_class)
        kept.extend(idx[keep_local].tolist())

    kept_arr = np.array(sorted(kept), dtype=np.int64)
    order = kept_arr[np.argsort(-scores[kept_arr], kind="stable")]
    if cfg.max_detections is not None:
        order = order[: cfg.max_detections]
    return [detections[i] for i in order]
