from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .coords import letterbox_params, map_detection
from .decode import Outputs, TensorDecoder
from .errors import ConfigurationError, DecodeError
from .layout import ModelLayout
from .masks import MaskCompositor, PrototypeMaskSet
from .nms import NMSConfig, suppress
from .types import FrameResult, FrameStatus, RawDetection


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PostprocessConfig:
    """
    Per-pipeline thresholds and output sizing.
    """

    conf_threshold: float = 0.45
    iou_threshold: float = 0.5
    max_detections: Optional[int] = None
    # Suppress overlaps across class labels unless disabled.
    class_agnostic_nms: bool = True
    # Optional list of class IDs to keep; None keeps all.
    class_ids: Optional[Tuple[int, ...]] = None
    # (width, height) of every InstanceMask.
    mask_size: Tuple[int, int] = (1024, 1024)

    def __post_init__(self) -> None:
        if not 0.0 <= self.conf_threshold <= 1.0:
            raise ConfigurationError(f"conf_threshold must be within [0, 1], got {self.conf_threshold}")
        if self.class_ids is not None:
            object.__setattr__(self, "class_ids", tuple(int(c) for c in self.class_ids))
        w, h = self.mask_size
        if int(w) <= 0 or int(h) <= 0:
            raise ConfigurationError(f"mask_size must be positive, got {self.mask_size}")
        object.__setattr__(self, "mask_size", (int(w), int(h)))
        # Validates iou_threshold / max_detections.
        self.nms_config()

    def nms_config(self) -> NMSConfig:
        return NMSConfig(
            iou_threshold=self.iou_threshold,
            max_detections=self.max_detections,
            class_agnostic=self.class_agnostic_nms,
        )


class SegmentationPostprocessor:
    """
    Raw output tensors -> deduplicated detections in original-image normalized
    coordinates, plus one instance mask per detection when the model has a mask head.

    Outputs expected by `process` (in order):
    - single-tensor layouts: [predictions] or [predictions, prototypes]
    - MULTI_OUTPUT_SSD: [locations, classes, scores, valid_count]

    The prototype entry may be a raw buffer or a ready PrototypeMaskSet.
    """

    def __init__(
        self,
        layout: ModelLayout,
        cfg: PostprocessConfig = PostprocessConfig(),
        class_names: Optional[Mapping[int, str]] = None,
    ):
        self.layout = layout
        self.cfg = cfg
        self.decoder = TensorDecoder(layout, class_names)
        self.compositor = MaskCompositor(cfg.mask_size)

    def process(self, outputs: Outputs, orig_size: Tuple[int, int]) -> FrameResult:
        """
        Args:
            outputs: raw model outputs for one image
            orig_size: (width, height) of the original image before letterboxing

        Raises:
            ConfigurationError: layout / image size combination cannot be processed.
        """

        orig_w, orig_h = orig_size
        letterbox_params(orig_w, orig_h, self.layout.input_size)
        outs = [outputs] if isinstance(outputs, np.ndarray) else list(outputs)
        if self.layout.has_masks and len(outs) > 1 and isinstance(outs[1], PrototypeMaskSet):
            self._check_prototype_channels(outs[1])

        try:
            if len(outs) < self.layout.num_outputs:
                raise DecodeError(f"Expected {self.layout.num_outputs} output buffers, got {len(outs)}")
            raw = self.decoder.decode(self._prediction_outputs(outs), self.cfg.conf_threshold)
        except DecodeError as e:
            logger.warning("Dropping frame: %s", e)
            return FrameResult.failed(str(e))

        raw = self._filter_classes(raw)
        detections = [map_detection(r, orig_w, orig_h, self.layout.input_size) for r in raw]
        detections = suppress(detections, self.cfg.nms_config())
        if not detections:
            return FrameResult.empty()

        masks: List[np.ndarray] = []
        if self.layout.has_masks:
            try:
                protos = self._prototypes(outs[1])
            except DecodeError as e:
                logger.warning("Dropping frame: %s", e)
                return FrameResult.failed(str(e))
            masks = self.compositor.compose_all(detections, protos)

        logger.debug("Frame: %d detections, %d masks", len(detections), len(masks))
        return FrameResult(status=FrameStatus.OK, detections=detections, masks=masks)

    def __call__(self, outputs: Outputs, orig_size: Tuple[int, int]) -> FrameResult:
        return self.process(outputs, orig_size)

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _prediction_outputs(self, outs: Sequence[object]) -> Sequence[object]:
        if self.layout.num_outputs == 4:
            return outs[:4]
        return outs[:1]

    def _filter_classes(self, raw: List[RawDetection]) -> List[RawDetection]:
        if self.cfg.class_ids is None:
            return raw
        allowed = set(self.cfg.class_ids)
        return [r for r in raw if r.class_id in allowed]

    def _check_prototype_channels(self, protos: PrototypeMaskSet) -> None:
        if protos.num_masks != self.layout.num_masks:
            raise ConfigurationError(
                f"Prototype set has {protos.num_masks} channels, layout expects {self.layout.num_masks}"
            )

    def _prototypes(self, proto_output: Union[np.ndarray, PrototypeMaskSet]) -> PrototypeMaskSet:
        layout = self.layout
        if isinstance(proto_output, PrototypeMaskSet):
            return proto_output
        return PrototypeMaskSet.from_buffer(
            proto_output,
            layout.num_masks,
            layout.proto_height,
            layout.proto_width,
            channels_last=layout.proto_channels_last,
        )


def postprocess(
    outputs: Outputs,
    layout: ModelLayout,
    orig_size: Tuple[int, int],
    cfg: PostprocessConfig = PostprocessConfig(),
    class_names: Optional[Mapping[int, str]] = None,
) -> FrameResult:
    return SegmentationPostprocessor(layout, cfg, class_names).process(outputs, orig_size)

