from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple, Union

from .errors import ConfigurationError


logger = logging.getLogger(__name__)

Shape = Sequence[int]


class TensorArrangement(str, Enum):
    # (N, C): each candidate's C values are contiguous.
    PER_BOX_INTERLEAVED = "per_box_interleaved"
    # (C, N): one row per channel, e.g. 84 x 8400 for YOLOv8.
    CHANNEL_MAJOR = "channel_major"
    # locations (N, 4), classes (N,), scores (N,), valid count (1,)
    MULTI_OUTPUT_SSD = "multi_output_ssd"


class ScoreMode(str, Enum):
    ARGMAX = "argmax"
    EXPLICIT = "explicit"
    IMPLICIT = "implicit"


class BoxFormat(str, Enum):
    CXCYWH = "cxcywh"
    YXYX = "yxyx"


@dataclass(frozen=True)
class ModelLayout:
    """
    Output tensor description, resolved once when the model is loaded.

    - num_candidates (N): candidate / anchor boxes per inference.
    - num_channels (C): values per candidate (4 box values + scores + M mask coefficients).
      For MULTI_OUTPUT_SSD this is the 4 location values.
    - num_masks (M): prototype mask channels, 0 for detection-only models.
    - score_mode / box_format: derived from the arrangement when left as None.
    - proto_height / proto_width: prototype grid size, required when M > 0.
    """

    input_width: int
    input_height: int
    num_candidates: int
    num_channels: int
    num_masks: int = 0
    arrangement: TensorArrangement = TensorArrangement.CHANNEL_MAJOR
    score_mode: Optional[ScoreMode] = None
    box_format: Optional[BoxFormat] = None
    proto_height: int = 0
    proto_width: int = 0
    proto_channels_last: bool = True
    implicit_class_id: int = 0

    def __post_init__(self) -> None:
        arrangement = TensorArrangement(self.arrangement)
        object.__setattr__(self, "arrangement", arrangement)

        score_mode = self.score_mode
        if score_mode is None:
            score_mode = ScoreMode.EXPLICIT if arrangement is TensorArrangement.MULTI_OUTPUT_SSD else ScoreMode.ARGMAX
        object.__setattr__(self, "score_mode", ScoreMode(score_mode))

        box_format = self.box_format
        if box_format is None:
            box_format = BoxFormat.YXYX if self.score_mode is ScoreMode.EXPLICIT else BoxFormat.CXCYWH
        object.__setattr__(self, "box_format", BoxFormat(box_format))

        self._validate()

    def _validate(self) -> None:
        if self.input_width <= 0 or self.input_height <= 0:
            raise ConfigurationError(
                f"Model input size must be positive, got {self.input_width}x{self.input_height}"
            )
        if self.num_candidates <= 0:
            raise ConfigurationError(f"num_candidates must be > 0, got {self.num_candidates}")
        if self.num_channels <= 0:
            raise ConfigurationError(f"num_channels must be > 0, got {self.num_channels}")
        if self.num_masks < 0:
            raise ConfigurationError(f"num_masks must be >= 0, got {self.num_masks}")

        if self.arrangement is TensorArrangement.MULTI_OUTPUT_SSD:
            if self.score_mode is not ScoreMode.EXPLICIT:
                raise ConfigurationError("MULTI_OUTPUT_SSD layouts carry explicit class and score tensors")
            if self.num_channels != 4:
                raise ConfigurationError(
                    f"MULTI_OUTPUT_SSD expects 4 location values per candidate, got {self.num_channels}"
                )
            if self.num_masks:
                raise ConfigurationError("MULTI_OUTPUT_SSD layouts cannot carry mask coefficients")
        elif self.score_mode is ScoreMode.EXPLICIT:
            if self.num_masks:
                raise ConfigurationError("Explicit class+score layouts cannot carry mask coefficients")
            if self.num_channels < 6:
                raise ConfigurationError(
                    f"Explicit class+score layout needs >= 6 channels, got {self.num_channels}"
                )
        elif self.score_mode is ScoreMode.IMPLICIT:
            if self.num_class_scores != 1:
                raise ConfigurationError(
                    "Single implicit class layout needs exactly one score channel "
                    f"(C - 4 - M = {self.num_class_scores})"
                )
        elif self.num_class_scores < 1:
            raise ConfigurationError(
                f"Mask-channel mismatch: C={self.num_channels} leaves no class scores after 4 box values "
                f"and M={self.num_masks} mask coefficients"
            )

        if self.num_masks > 0 and (self.proto_height <= 0 or self.proto_width <= 0):
            raise ConfigurationError(
                f"num_masks={self.num_masks} requires a positive prototype grid, "
                f"got {self.proto_height}x{self.proto_width}"
            )

    @property
    def input_size(self) -> Tuple[int, int]:
        return self.input_width, self.input_height

    @property
    def num_class_scores(self) -> int:
        return self.num_channels - 4 - self.num_masks

    @property
    def has_masks(self) -> bool:
        return self.num_masks > 0

    @property
    def expected_size(self) -> int:
        return self.num_candidates * self.num_channels

    @property
    def proto_size(self) -> int:
        return self.num_masks * self.proto_height * self.proto_width

    @property
    def num_outputs(self) -> int:
        if self.arrangement is TensorArrangement.MULTI_OUTPUT_SSD:
            return 4
        return 2 if self.has_masks else 1


def _strip_batch(shape: Shape) -> Tuple[int, ...]:
    dims = tuple(int(d) for d in shape)
    if len(dims) >= 3 and dims[0] == 1:
        dims = dims[1:]
    return dims


def resolve_layout(
    output_shapes: Sequence[Shape],
    input_size: Union[int, Tuple[int, int]],
    *,
    score_mode: Optional[ScoreMode] = None,
    num_masks: Optional[int] = None,
    implicit_class_id: int = 0,
) -> ModelLayout:
    """
    Build a ModelLayout from the output shapes reported by the inference engine.

    Supported shapes (batch dim optional):
    - 4 outputs: locations (1, N, 4), classes (1, N), scores (1, N), count (1,)
    - (1, C, N) with C < N: channel-major, e.g. (1, 116, 8400) for YOLOv8-seg
    - (1, N, C): per-box interleaved
    - optional second output (1, M, H, W) or (1, H, W, M): prototype masks

    When `score_mode` is None, a single score channel resolves to IMPLICIT and
    anything wider to ARGMAX. Explicit SSD rows must be requested explicitly.
    """

    if isinstance(input_size, int):
        input_size = (input_size, input_size)
    in_w, in_h = int(input_size[0]), int(input_size[1])

    if not output_shapes:
        raise ConfigurationError("Model reports no outputs")

    if len(output_shapes) == 4:
        loc = _strip_batch(output_shapes[0])
        if len(loc) != 2 or loc[-1] != 4:
            raise ConfigurationError(f"Expected SSD locations shaped (N, 4), got {tuple(output_shapes[0])}")
        layout = ModelLayout(
            input_width=in_w,
            input_height=in_h,
            num_candidates=loc[0],
            num_channels=4,
            arrangement=TensorArrangement.MULTI_OUTPUT_SSD,
        )
        logger.info("Resolved layout: %s", layout)
        return layout

    if len(output_shapes) > 2:
        raise ConfigurationError(f"Unsupported output count: {len(output_shapes)}")

    pred = _strip_batch(output_shapes[0])
    if len(pred) != 2:
        raise ConfigurationError(f"Unsupported prediction shape: {tuple(output_shapes[0])}")
    rows, cols = pred
    if rows < cols:
        arrangement = TensorArrangement.CHANNEL_MAJOR
        channels, candidates = rows, cols
    else:
        arrangement = TensorArrangement.PER_BOX_INTERLEAVED
        candidates, channels = rows, cols

    proto_h = proto_w = 0
    channels_last = True
    masks = int(num_masks) if num_masks is not None else 0
    if len(output_shapes) == 2:
        proto = _strip_batch(output_shapes[1])
        if len(proto) != 3:
            raise ConfigurationError(f"Unsupported prototype shape: {tuple(output_shapes[1])}")
        if num_masks is not None:
            channels_last = proto[2] == masks and proto[0] != masks
        else:
            # The channel axis is the smaller one (32 vs 160x160 for YOLOv8-seg).
            channels_last = proto[2] < proto[0]
        if channels_last:
            proto_h, proto_w, masks = proto
        else:
            masks, proto_h, proto_w = proto

    if score_mode is None:
        score_mode = ScoreMode.IMPLICIT if channels - 4 - masks == 1 else ScoreMode.ARGMAX

    layout = ModelLayout(
        input_width=in_w,
        input_height=in_h,
        num_candidates=candidates,
        num_channels=channels,
        num_masks=masks,
        arrangement=arrangement,
        score_mode=score_mode,
        proto_height=proto_h,
        proto_width=proto_w,
        proto_channels_last=channels_last,
        implicit_class_id=implicit_class_id,
    )
    logger.info("Resolved layout: %s", layout)
    return layout
