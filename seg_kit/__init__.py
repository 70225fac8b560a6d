"""
Postprocessing for detection and instance-segmentation model outputs.

Turns raw output buffers into confidence-sorted, deduplicated detections in
original-image coordinates and per-instance masks built from prototype channels.
Framework-agnostic: works on NumPy arrays from any inference runtime. OpenCV is
only needed for letterboxing, contour extraction and drawing.
"""

from .types import Box, Detection, FrameResult, FrameStatus, RawDetection
from .errors import ConfigurationError, DecodeError, PerDetectionMaskError
from .layout import BoxFormat, ModelLayout, ScoreMode, TensorArrangement, resolve_layout
from .decode import TensorDecoder, decode
from .coords import letterbox_params, map_box, map_detection
from .nms import NMSConfig, box_iou, nms, suppress
from .masks import MaskCompositor, PrototypeMaskSet, composite_mask, compose_masks, resize_nearest
from .contour import ContourConfig, ContourExtractor, extract_outline
from .postprocess import PostprocessConfig, SegmentationPostprocessor, postprocess
from .config import load_layout, load_postprocess_config
from .metadata import load_class_names
from .letterbox import LetterboxInfo, letterbox
from .runtime import SegmentationPipeline
from .visualize import draw_detections

__all__ = [
    "Box",
    "Detection",
    "FrameResult",
    "FrameStatus",
    "RawDetection",
    "ConfigurationError",
    "DecodeError",
    "PerDetectionMaskError",
    "BoxFormat",
    "ModelLayout",
    "ScoreMode",
    "TensorArrangement",
    "resolve_layout",
    "TensorDecoder",
    "decode",
    "letterbox_params",
    "map_box",
    "map_detection",
    "NMSConfig",
    "box_iou",
    "nms",
    "suppress",
    "MaskCompositor",
    "PrototypeMaskSet",
    "composite_mask",
    "compose_masks",
    "resize_nearest",
    "ContourConfig",
    "ContourExtractor",
    "extract_outline",
    "PostprocessConfig",
    "SegmentationPostprocessor",
    "postprocess",
    "load_layout",
    "load_postprocess_config",
    "load_class_names",
    "LetterboxInfo",
    "letterbox",
    "SegmentationPipeline",
    "draw_detections",
]
