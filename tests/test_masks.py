import unittest

import numpy as np

from seg_kit.errors import DecodeError
from seg_kit.masks import (
    MaskCompositor,
    PrototypeMaskSet,
    box_to_grid_rect,
    composite_mask,
    compose_masks,
    resize_nearest,
)
from seg_kit.types import Box, Detection


def _det(box: Box, coeffs) -> Detection:
    return Detection(box=box, confidence=0.9, class_id=0, class_name="lesion", input_box=box, mask_coefficients=coeffs)


class TestPrototypeMaskSet(unittest.TestCase):
    def test_channels_last_and_first_agree(self) -> None:
        protos = np.arange(2 * 3 * 4, dtype=np.float32).reshape(2, 3, 4)  # (M, H, W)

        first = PrototypeMaskSet.from_buffer(protos.ravel(), 2, 3, 4, channels_last=False)
        last = PrototypeMaskSet.from_buffer(protos.transpose(1, 2, 0).ravel(), 2, 3, 4, channels_last=True)

        self.assertTrue(np.array_equal(first.protos, protos))
        self.assertTrue(np.array_equal(last.protos, protos))
        self.assertEqual((last.num_masks, last.height, last.width), (2, 3, 4))

    def test_wrong_size_is_decode_error(self) -> None:
        with self.assertRaises(DecodeError):
            PrototypeMaskSet.from_buffer(np.zeros(23), 2, 3, 4)

    def test_protos_are_read_only(self) -> None:
        pms = PrototypeMaskSet(np.zeros((1, 2, 2)))
        with self.assertRaises(ValueError):
            pms.protos[0, 0, 0] = 1.0


class TestGridHelpers(unittest.TestCase):
    def test_box_to_grid_rect_truncates_and_clamps(self) -> None:
        self.assertEqual(box_to_grid_rect(Box(0.25, 0.25, 0.5, 0.75), 8, 8), (2, 2, 4, 6))
        self.assertEqual(box_to_grid_rect(Box(0.0, 0.0, 1.0, 1.0), 160, 120), (0, 0, 160, 120))

    def test_resize_nearest_upsamples_by_replication(self) -> None:
        grid = np.array([[1.0, 2.0], [3.0, 4.0]], dtype=np.float32)
        out = resize_nearest(grid, (4, 4))
        expected = np.array(
            [
                [1, 1, 2, 2],
                [1, 1, 2, 2],
                [3, 3, 4, 4],
                [3, 3, 4, 4],
            ],
            dtype=np.float32,
        )
        self.assertTrue(np.array_equal(out, expected))

    def test_resize_nearest_downsamples(self) -> None:
        grid = np.arange(16, dtype=np.float32).reshape(4, 4)
        out = resize_nearest(grid, (2, 2))
        self.assertTrue(np.array_equal(out, np.array([[0, 2], [8, 10]], dtype=np.float32)))

    def test_resize_nearest_non_square_target(self) -> None:
        out = resize_nearest(np.ones((4, 4), dtype=np.float32), (6, 3))
        self.assertEqual(out.shape, (3, 6))


class TestCompositeMask(unittest.TestCase):
    def test_cancelling_coefficients_give_zero_everywhere(self) -> None:
        protos = PrototypeMaskSet(np.ones((2, 8, 8), dtype=np.float32))
        mask = composite_mask(Box(0.25, 0.25, 0.75, 0.75), [1.0, -1.0], protos, (8, 8))
        self.assertEqual(mask.shape, (8, 8))
        self.assertTrue(np.all(mask == 0.0))

    def test_values_outside_box_are_zero(self) -> None:
        rng = np.random.default_rng(0)
        raw = rng.uniform(0.5, 1.0, size=(3, 8, 8)).astype(np.float32)
        protos = PrototypeMaskSet(raw)
        coeffs = np.array([0.5, 0.25, 1.0], dtype=np.float32)

        mask = composite_mask(Box(0.25, 0.25, 0.5, 0.75), coeffs, protos, (8, 8))

        inside = np.zeros((8, 8), dtype=bool)
        inside[2:6, 2:4] = True
        self.assertTrue(np.all(mask[~inside] == 0.0))
        expected = np.tensordot(coeffs, raw, axes=(0, 0))
        self.assertTrue(np.allclose(mask[inside], expected[inside]))

    def test_output_has_target_size(self) -> None:
        protos = PrototypeMaskSet(np.ones((1, 4, 4), dtype=np.float32))
        mask = composite_mask(Box(0.0, 0.0, 0.5, 0.5), [1.0], protos, (16, 12))
        self.assertEqual(mask.shape, (12, 16))
        # top-left quarter of the grid lands in the top-left quarter of the target
        self.assertTrue(np.all(mask[:6, :8] == 1.0))
        self.assertEqual(float(mask[6:, :].sum() + mask[:, 8:].sum()), 0.0)

    def test_coefficient_count_mismatch(self) -> None:
        protos = PrototypeMaskSet(np.ones((2, 4, 4), dtype=np.float32))
        with self.assertRaises(ValueError):
            composite_mask(Box(0.0, 0.0, 1.0, 1.0), [1.0], protos, (4, 4))


class TestMaskCompositor(unittest.TestCase):
    def test_one_mask_per_detection(self) -> None:
        protos = PrototypeMaskSet(np.ones((2, 4, 4), dtype=np.float32))
        dets = [_det(Box(0.0, 0.0, 0.5, 0.5), [1.0, 0.0]), _det(Box(0.5, 0.5, 1.0, 1.0), [0.0, 2.0])]

        masks = compose_masks(dets, protos, target_size=(4, 4))

        self.assertEqual(len(masks), 2)
        self.assertEqual(float(masks[0].sum()), 4.0)
        self.assertEqual(float(masks[1].sum()), 8.0)

    def test_failed_detection_gets_zero_mask(self) -> None:
        protos = PrototypeMaskSet(np.ones((2, 4, 4), dtype=np.float32))
        good = _det(Box(0.0, 0.0, 1.0, 1.0), [1.0, 1.0])
        bad = _det(Box(0.0, 0.0, 1.0, 1.0), [1.0])  # wrong coefficient count

        compositor = MaskCompositor(target_size=(8, 6))
        with self.assertLogs("seg_kit.masks", level="ERROR") as logs:
            masks = compositor.compose_all([good, bad, good], protos)

        self.assertEqual(len(masks), 3)
        self.assertEqual(masks[1].shape, (6, 8))
        self.assertTrue(np.all(masks[1] == 0.0))
        self.assertTrue(np.all(masks[0] == 2.0))
        self.assertTrue(np.all(masks[2] == 2.0))
        self.assertIn("detection #1", logs.output[0])


if __name__ == "__main__":
    unittest.main()
