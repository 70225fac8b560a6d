from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np


def _frozen_vector(values) -> np.ndarray:
    arr = np.array(values, dtype=np.float32).reshape(-1)
    arr.setflags(write=False)
    return arr


def _set_coefficients(obj, values) -> None:
    arr = _frozen_vector(values)
    object.__setattr__(obj, "mask_coefficients", arr)
    object.__setattr__(obj, "_coefficient_key", tuple(float(v) for v in arr))


@dataclass(frozen=True)
class Box:
    """
    Axis-aligned box in normalized [0, 1] coordinates.
    """

    x1: float
    y1: float
    x2: float
    y2: float

    @property
    def cx(self) -> float:
        return (self.x1 + self.x2) / 2

    @property
    def cy(self) -> float:
        return (self.y1 + self.y2) / 2

    @property
    def w(self) -> float:
        return self.x2 - self.x1

    @property
    def h(self) -> float:
        return self.y2 - self.y1

    @property
    def area(self) -> float:
        return max(0.0, self.w) * max(0.0, self.h)

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.x1, self.y1, self.x2, self.y2

    def to_pixels(self, width: int, height: int) -> Tuple[float, float, float, float]:
        return self.x1 * width, self.y1 * height, self.x2 * width, self.y2 * height


@dataclass(frozen=True)
class RawDetection:
    """
    One candidate that cleared the confidence threshold, box still in model-input space.
    """

    box: Box
    confidence: float
    class_id: int
    class_name: str
    mask_coefficients: np.ndarray = field(default_factory=lambda: _frozen_vector([]), compare=False)
    # Hashable stand-in for mask_coefficients in __eq__ / __hash__.
    _coefficient_key: Tuple[float, ...] = field(default=(), init=False, repr=False)

    def __post_init__(self) -> None:
        _set_coefficients(self, self.mask_coefficients)


@dataclass(frozen=True)
class Detection:
    """
    A RawDetection whose box was mapped back to original-image normalized space.

    `input_box` keeps the model-input box; prototype masks live in that space.
    """

    box: Box
    confidence: float
    class_id: int
    class_name: str
    input_box: Box
    mask_coefficients: np.ndarray = field(default_factory=lambda: _frozen_vector([]), compare=False)
    _coefficient_key: Tuple[float, ...] = field(default=(), init=False, repr=False)

    def __post_init__(self) -> None:
        _set_coefficients(self, self.mask_coefficients)

    @classmethod
    def from_raw(cls, raw: RawDetection, box: Box) -> "Detection":
        return cls(
            box=box,
            confidence=raw.confidence,
            class_id=raw.class_id,
            class_name=raw.class_name,
            input_box=raw.box,
            mask_coefficients=raw.mask_coefficients,
        )

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.box.as_xyxy()


class FrameStatus(str, Enum):
    OK = "ok"
    EMPTY = "empty"
    ERROR = "error"


@dataclass(frozen=True, eq=False)
class FrameResult:
    """
    Per-frame output handed to the renderer. Compared by identity, since it carries mask arrays.

    `masks` is parallel to `detections` (one InstanceMask per detection) when the
    model has a mask head, and empty otherwise.
    """

    status: FrameStatus
    detections: List[Detection] = field(default_factory=list)
    masks: List[np.ndarray] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def empty(cls) -> "FrameResult":
        return cls(status=FrameStatus.EMPTY)

    @classmethod
    def failed(cls, error: str) -> "FrameResult":
        return cls(status=FrameStatus.ERROR, error=error)

    @property
    def ok(self) -> bool:
        return self.status is FrameStatus.OK

    def __len__(self) -> int:
        return len(self.detections)
