from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Union

from .errors import ConfigurationError
from .layout import BoxFormat, ModelLayout, ScoreMode, TensorArrangement
from .postprocess import PostprocessConfig


PathLike = Union[str, Path]


def _read_json_object(path: PathLike, what: str) -> Dict[str, Any]:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"{what} not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Invalid {what} JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ConfigurationError(f"{what} must be a JSON object")
    return payload


def _reject_unknown(payload: Dict[str, Any], allowed: set, what: str) -> None:
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ConfigurationError(f"Unknown {what} keys: {unknown}")


def _require_int(payload: Dict[str, Any], key: str) -> int:
    if key not in payload:
        raise ConfigurationError(f"Missing required key: {key}")
    return _as_int(payload[key], key)


def _as_int(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{key} must be an integer")
    return int(value)


def _as_number(value: Any, key: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{key} must be a number")
    return float(value)


def _as_enum(enum_cls, value: Any, key: str):
    try:
        return enum_cls(value)
    except ValueError as exc:
        choices = ", ".join(m.value for m in enum_cls)
        raise ConfigurationError(f"{key} must be one of: {choices} (got {value!r})") from exc


def _as_size(value: Any, key: str) -> tuple:
    if isinstance(value, int) and not isinstance(value, bool):
        return value, value
    if isinstance(value, list) and len(value) == 2:
        return _as_int(value[0], key), _as_int(value[1], key)
    raise ConfigurationError(f"{key} must be an integer or a [width, height] pair")


def load_layout(path: PathLike) -> ModelLayout:
    """
    Load a ModelLayout from JSON, e.g.

        {
          "input_size": 640,
          "num_candidates": 8400,
          "num_channels": 37,
          "num_masks": 32,
          "arrangement": "channel_major",
          "proto_height": 160,
          "proto_width": 160
        }
    """

    payload = _read_json_object(path, "Model layout")
    _reject_unknown(
        payload,
        {
            "input_size",
            "num_candidates",
            "num_channels",
            "num_masks",
            "arrangement",
            "score_mode",
            "box_format",
            "proto_height",
            "proto_width",
            "proto_channels_last",
            "implicit_class_id",
        },
        "model layout",
    )

    if "input_size" not in payload:
        raise ConfigurationError("Missing required key: input_size")
    in_w, in_h = _as_size(payload["input_size"], "input_size")

    proto_channels_last = payload.get("proto_channels_last", True)
    if not isinstance(proto_channels_last, bool):
        raise ConfigurationError("proto_channels_last must be a boolean")

    return ModelLayout(
        input_width=in_w,
        input_height=in_h,
        num_candidates=_require_int(payload, "num_candidates"),
        num_channels=_require_int(payload, "num_channels"),
        num_masks=_as_int(payload.get("num_masks", 0), "num_masks"),
        arrangement=_as_enum(TensorArrangement, payload.get("arrangement", "channel_major"), "arrangement"),
        score_mode=_as_enum(ScoreMode, payload["score_mode"], "score_mode") if "score_mode" in payload else None,
        box_format=_as_enum(BoxFormat, payload["box_format"], "box_format") if "box_format" in payload else None,
        proto_height=_as_int(payload.get("proto_height", 0), "proto_height"),
        proto_width=_as_int(payload.get("proto_width", 0), "proto_width"),
        proto_channels_last=proto_channels_last,
        implicit_class_id=_as_int(payload.get("implicit_class_id", 0), "implicit_class_id"),
    )


def load_postprocess_config(path: PathLike) -> PostprocessConfig:
    payload = _read_json_object(path, "Postprocess config")
    _reject_unknown(
        payload,
        {"conf_threshold", "iou_threshold", "max_detections", "class_agnostic_nms", "class_ids", "mask_size"},
        "postprocess config",
    )

    kwargs: Dict[str, Any] = {}
    if "conf_threshold" in payload:
        kwargs["conf_threshold"] = _as_number(payload["conf_threshold"], "conf_threshold")
    if "iou_threshold" in payload:
        kwargs["iou_threshold"] = _as_number(payload["iou_threshold"], "iou_threshold")
    if "max_detections" in payload:
        value = payload["max_detections"]
        kwargs["max_detections"] = None if value is None else _as_int(value, "max_detections")
    if "class_agnostic_nms" in payload:
        if not isinstance(payload["class_agnostic_nms"], bool):
            raise ConfigurationError("class_agnostic_nms must be a boolean")
        kwargs["class_agnostic_nms"] = payload["class_agnostic_nms"]
    if "class_ids" in payload:
        value = payload["class_ids"]
        if value is not None:
            if not isinstance(value, list):
                raise ConfigurationError("class_ids must be a list of integers or null")
            value = tuple(_as_int(v, "class_ids") for v in value)
        kwargs["class_ids"] = value
    if "mask_size" in payload:
        kwargs["mask_size"] = _as_size(payload["mask_size"], "mask_size")

    return PostprocessConfig(**kwargs)
