from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Sequence

import numpy as np

from .layout import ModelLayout
from .letterbox import LetterboxInfo, letterbox
from .postprocess import PostprocessConfig, SegmentationPostprocessor
from .types import FrameResult


InferFn = Callable[[np.ndarray], Sequence[np.ndarray]]


@dataclass(frozen=True)
class PreprocessResult:
    blob: np.ndarray
    info: LetterboxInfo


class SegmentationPipeline:
    """
    Plug-and-play pipeline: preprocess (letterbox) -> inference -> postprocess.

    `infer_fn` is supplied by the inference engine: it receives an NCHW float32
    blob and returns the model's raw outputs in the order documented on
    SegmentationPostprocessor. The pipeline expects BGR images (OpenCV-style).
    """

    def __init__(
        self,
        infer_fn: InferFn,
        layout: ModelLayout,
        *,
        post_cfg: PostprocessConfig = PostprocessConfig(),
        class_names: Optional[Mapping[int, str]] = None,
        pad_color: tuple = (114, 114, 114),
    ):
        self._infer_fn = infer_fn
        self.layout = layout
        self.pad_color = pad_color
        self.post = SegmentationPostprocessor(layout, post_cfg, class_names)

    def preprocess(self, image_bgr: np.ndarray) -> PreprocessResult:
        if image_bgr is None or not hasattr(image_bgr, "shape"):
            raise TypeError("image_bgr must be a NumPy array (BGR).")
        if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
            raise ValueError(f"Expected image shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")

        img, info = letterbox(image_bgr, self.layout.input_size, color=self.pad_color)

        # BGR -> RGB, normalize, HWC -> CHW, add batch
        blob = img[:, :, ::-1].astype(np.float32) / 255.0
        blob = np.transpose(blob, (2, 0, 1))[None, ...]
        return PreprocessResult(blob=blob, info=info)

    def __call__(self, image_bgr: np.ndarray) -> FrameResult:
        prep = self.preprocess(image_bgr)
        outputs = self._infer_fn(prep.blob)
        return self.post.process(outputs, orig_size=prep.info.orig_size)
