import json
import tempfile
import unittest
from pathlib import Path

from seg_kit.config import load_layout, load_postprocess_config
from seg_kit.errors import ConfigurationError
from seg_kit.layout import ModelLayout, ScoreMode, TensorArrangement
from seg_kit.postprocess import PostprocessConfig


class _TempJsonMixin:
    def _write(self, payload, name: str = "config.json") -> Path:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        path = Path(tmpdir.name) / name
        text = payload if isinstance(payload, str) else json.dumps(payload)
        path.write_text(text, encoding="utf-8")
        return path


class TestLoadLayout(_TempJsonMixin, unittest.TestCase):
    def test_load_ok(self) -> None:
        path = self._write(
            {
                "input_size": 640,
                "num_candidates": 8400,
                "num_channels": 37,
                "num_masks": 32,
                "arrangement": "channel_major",
                "score_mode": "implicit",
                "proto_height": 160,
                "proto_width": 160,
                "proto_channels_last": False,
                "implicit_class_id": 3,
            }
        )
        layout = load_layout(path)
        self.assertIsInstance(layout, ModelLayout)
        self.assertEqual(layout.input_size, (640, 640))
        self.assertIs(layout.arrangement, TensorArrangement.CHANNEL_MAJOR)
        self.assertIs(layout.score_mode, ScoreMode.IMPLICIT)
        self.assertEqual(layout.num_masks, 32)
        self.assertFalse(layout.proto_channels_last)
        self.assertEqual(layout.implicit_class_id, 3)

    def test_input_size_pair(self) -> None:
        path = self._write({"input_size": [320, 240], "num_candidates": 10, "num_channels": 4, "arrangement": "multi_output_ssd"})
        layout = load_layout(path)
        self.assertEqual(layout.input_size, (320, 240))
        self.assertIs(layout.score_mode, ScoreMode.EXPLICIT)

    def test_missing_required_key(self) -> None:
        path = self._write({"input_size": 640, "num_channels": 84})
        with self.assertRaises(ConfigurationError):
            load_layout(path)

    def test_unknown_keys_rejected(self) -> None:
        path = self._write({"input_size": 640, "num_candidates": 10, "num_channels": 84, "extra": 1})
        with self.assertRaises(ConfigurationError):
            load_layout(path)

    def test_bad_enum_value(self) -> None:
        path = self._write({"input_size": 640, "num_candidates": 10, "num_channels": 84, "arrangement": "nchw"})
        with self.assertRaises(ConfigurationError):
            load_layout(path)

    def test_invalid_layout_values(self) -> None:
        # mask-channel mismatch surfaces from ModelLayout validation
        path = self._write(
            {
                "input_size": 640,
                "num_candidates": 10,
                "num_channels": 36,
                "num_masks": 32,
                "proto_height": 160,
                "proto_width": 160,
            }
        )
        with self.assertRaises(ConfigurationError):
            load_layout(path)

    def test_invalid_json(self) -> None:
        path = self._write("{not json")
        with self.assertRaises(ConfigurationError):
            load_layout(path)

    def test_not_an_object(self) -> None:
        path = self._write([1, 2, 3])
        with self.assertRaises(ConfigurationError):
            load_layout(path)

    def test_missing_file(self) -> None:
        with self.assertRaises(FileNotFoundError):
            load_layout(Path(tempfile.gettempdir()) / "does-not-exist-layout.json")


class TestLoadPostprocessConfig(_TempJsonMixin, unittest.TestCase):
    def test_defaults(self) -> None:
        cfg = load_postprocess_config(self._write({}))
        self.assertEqual(cfg, PostprocessConfig())
        self.assertEqual(cfg.conf_threshold, 0.45)
        self.assertEqual(cfg.iou_threshold, 0.5)
        self.assertEqual(cfg.mask_size, (1024, 1024))
        self.assertTrue(cfg.class_agnostic_nms)

    def test_load_ok(self) -> None:
        path = self._write(
            {
                "conf_threshold": 0.3,
                "iou_threshold": 0.6,
                "max_detections": None,
                "class_agnostic_nms": False,
                "class_ids": [0, 2],
                "mask_size": [512, 256],
            }
        )
        cfg = load_postprocess_config(path)
        self.assertEqual(cfg.conf_threshold, 0.3)
        self.assertEqual(cfg.iou_threshold, 0.6)
        self.assertIsNone(cfg.max_detections)
        self.assertFalse(cfg.class_agnostic_nms)
        self.assertEqual(cfg.class_ids, (0, 2))
        self.assertEqual(cfg.mask_size, (512, 256))
        self.assertFalse(cfg.nms_config().class_agnostic)

    def test_unknown_keys_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            load_postprocess_config(self._write({"nms": 0.5}))

    def test_out_of_range_threshold(self) -> None:
        with self.assertRaises(ConfigurationError):
            load_postprocess_config(self._write({"conf_threshold": 1.2}))

    def test_wrong_types(self) -> None:
        for payload in (
            {"conf_threshold": "high"},
            {"class_agnostic_nms": 1},
            {"class_ids": 3},
            {"max_detections": 2.5},
        ):
            with self.subTest(payload=payload):
                with self.assertRaises(ConfigurationError):
                    load_postprocess_config(self._write(payload))


if __name__ == "__main__":
    unittest.main()
