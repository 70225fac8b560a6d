from __future__ import annotations

import logging
from typing import List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import ConfigurationError, DecodeError
from .layout import BoxFormat, ModelLayout, ScoreMode, TensorArrangement
from .types import Box, RawDetection


logger = logging.getLogger(__name__)

Outputs = Union[np.ndarray, Sequence[np.ndarray]]

UNKNOWN_CLASS = "unknown"


def _as_flat(buf: object, name: str) -> np.ndarray:
    try:
        flat = np.asarray(buf, dtype=np.float64).reshape(-1)
    except (TypeError, ValueError) as e:
        raise DecodeError(f"{name} is not a numeric buffer: {e}") from e
    return flat


def _require_size(flat: np.ndarray, expected: int, name: str) -> None:
    if flat.size != expected:
        raise DecodeError(f"{name} holds {flat.size} values, expected {expected}")


def _as_output_list(outputs: Outputs) -> List[np.ndarray]:
    if isinstance(outputs, np.ndarray):
        return [outputs]
    return list(outputs)


def class_name_for(class_id: int, class_names: Optional[Mapping[int, str]]) -> str:
    if not class_names:
        return UNKNOWN_CLASS
    return class_names.get(int(class_id), UNKNOWN_CLASS)


class TensorDecoder:
    """
    Turn raw output buffer(s) into RawDetection candidates.

    Box values are expected normalized to [0, 1] in model-input space. Three
    score layouts are handled, chosen by `layout.score_mode`:

    - ARGMAX: 4 box values, C-4-M class scores, M mask coefficients; the class
      is the argmax over the scores (first max wins).
    - EXPLICIT: [ymin, xmin, ymax, xmax, score, class_id, ...] rows (SSD), or the
      four MULTI_OUTPUT_SSD tensors cut at their valid-count.
    - IMPLICIT: 4 box values, one presence score, M mask coefficients; the
      class id is `layout.implicit_class_id`.
    """

    def __init__(self, layout: ModelLayout, class_names: Optional[Mapping[int, str]] = None):
        self.layout = layout
        self.class_names = dict(class_names) if class_names else {}

    def decode(self, outputs: Outputs, conf_threshold: float) -> List[RawDetection]:
        if not 0.0 <= conf_threshold <= 1.0:
            raise ConfigurationError(f"conf_threshold must be within [0, 1], got {conf_threshold}")

        outs = _as_output_list(outputs)
        if self.layout.arrangement is TensorArrangement.MULTI_OUTPUT_SSD:
            raw_boxes, conf, class_ids, coeffs = self._columns_multi_output(outs)
        else:
            if not outs:
                raise DecodeError("No output buffers provided")
            raw_boxes, conf, class_ids, coeffs = self._columns_single(outs[0])

        corners = self._to_corners(raw_boxes)
        keep = self._keep_mask(corners, conf, conf_threshold)
        indices = np.nonzero(keep)[0]

        detections: List[RawDetection] = []
        for i in indices:
            x1, y1, x2, y2 = corners[i]
            cls_id = int(class_ids[i])
            detections.append(
                RawDetection(
                    box=Box(float(x1), float(y1), float(x2), float(y2)),
                    confidence=float(conf[i]),
                    class_id=cls_id,
                    class_name=class_name_for(cls_id, self.class_names),
                    mask_coefficients=coeffs[i] if coeffs is not None else (),
                )
            )

        logger.debug("Decoded %d/%d candidates above %.3f", len(detections), conf.shape[0], conf_threshold)
        return detections

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _candidate_matrix(self, buf: np.ndarray) -> np.ndarray:
        """
        Return an (N, C) view of the prediction buffer regardless of arrangement.
        """

        n, c = self.layout.num_candidates, self.layout.num_channels
        flat = _as_flat(buf, "prediction buffer")
        _require_size(flat, n * c, "prediction buffer")
        if self.layout.arrangement is TensorArrangement.PER_BOX_INTERLEAVED:
            return flat.reshape(n, c)
        return flat.reshape(c, n).T

    def _columns_single(
        self, buf: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray, Optional[np.ndarray]]:
        layout = self.layout
        m = self._candidate_matrix(buf)
        n = m.shape[0]
        raw_boxes = m[:, 0:4]

        if layout.score_mode is ScoreMode.ARGMAX:
            class_scores = m[:, 4 : 4 + layout.num_class_scores]
            class_ids = np.argmax(class_scores, axis=1)
            conf = class_scores[np.arange(n), class_ids]
        elif layout.score_mode is ScoreMode.IMPLICIT:
            conf = m[:, 4]
            class_ids = np.full((n,), layout.implicit_class_id, dtype=np.int64)
        else:
            conf = m[:, 4]
            cls_col = m[:, 5]
            # Rows with a non-finite class id are dropped by the confidence mask below.
            class_ids = np.where(np.isfinite(cls_col), cls_col, -1).astype(np.int64)
            conf = np.where(np.isfinite(cls_col), conf, np.nan)

        coeffs = m[:, layout.num_channels - layout.num_masks :] if layout.has_masks else None
        return raw_boxes, conf, class_ids, coeffs

    def _columns_multi_output(
        self, outs: List[np.ndarray]
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray, None]:
        n = self.layout.num_candidates
        if len(outs) != 4:
            raise DecodeError(f"Multi-output SSD expects 4 buffers (locations, classes, scores, count), got {len(outs)}")

        locations = _as_flat(outs[0], "locations")
        classes = _as_flat(outs[1], "classes")
        scores = _as_flat(outs[2], "scores")
        count = _as_flat(outs[3], "valid count")
        _require_size(locations, n * 4, "locations")
        _require_size(classes, n, "classes")
        _require_size(scores, n, "scores")
        if count.size < 1 or not np.isfinite(count[0]):
            raise DecodeError("valid count tensor is empty or not finite")

        valid = int(count[0])
        if valid < 0 or valid > n:
            raise DecodeError(f"valid count {valid} outside [0, {n}]")

        raw_boxes = locations.reshape(n, 4)[:valid]
        cls_col = classes[:valid]
        conf = np.where(np.isfinite(cls_col), scores[:valid], np.nan)
        class_ids = np.where(np.isfinite(cls_col), cls_col, -1).astype(np.int64)
        return raw_boxes, conf, class_ids, None

    def _to_corners(self, raw_boxes: np.ndarray) -> np.ndarray:
        if self.layout.box_format is BoxFormat.CXCYWH:
            cx, cy, w, h = raw_boxes.T
            return np.stack([cx - w / 2, cy - h / 2, cx + w / 2, cy + h / 2], axis=1)
        ymin, xmin, ymax, xmax = raw_boxes.T
        return np.stack([xmin, ymin, xmax, ymax], axis=1)

    @staticmethod
    def _keep_mask(corners: np.ndarray, conf: np.ndarray, conf_threshold: float) -> np.ndarray:
        x1, y1, x2, y2 = corners.T
        with np.errstate(invalid="ignore"):
            in_range = np.all((corners >= 0.0) & (corners <= 1.0), axis=1)
            ordered = (x1 <= x2) & (y1 <= y2)
            return (conf >= conf_threshold) & in_range & ordered


def decode(
    outputs: Outputs,
    layout: ModelLayout,
    conf_threshold: float,
    class_names: Optional[Mapping[int, str]] = None,
) -> List[RawDetection]:
    return TensorDecoder(layout, class_names).decode(outputs, conf_threshold)
