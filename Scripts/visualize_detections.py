import argparse
import logging

import cv2
import numpy as np

from seg_kit import (
    ContourConfig,
    FrameStatus,
    SegmentationPostprocessor,
    draw_detections,
    load_class_names,
    load_layout,
    load_postprocess_config,
)
from seg_kit.log import setup_logging


logger = logging.getLogger("visualize_detections")


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Postprocess saved model outputs for one image and draw boxes, masks and outlines."
    )
    parser.add_argument("--image", required=True, help="Path to the original (un-letterboxed) image.")
    parser.add_argument(
        "--outputs",
        required=True,
        help="Path to a .npz with the raw model outputs stored as arr_0, arr_1, ... in model order.",
    )
    parser.add_argument("--layout", required=True, help="Path to the model layout JSON.")
    parser.add_argument("--post-config", default=None, help="Optional postprocess config JSON.")
    parser.add_argument("--labels", default=None, help="Optional labels file (names: block or one per line).")
    parser.add_argument("--threshold", type=float, default=0.2, help="Mask binarization threshold for drawing.")
    parser.add_argument("--thickness", type=int, default=1, help="Outline thickness in pixels.")
    parser.add_argument("--show", action="store_true", help="Show a window with the visualization.")
    parser.add_argument("--out", default=None, help="Optional output image path.")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING, ...).")
    args = parser.parse_args()

    setup_logging(args.log_level)

    img = cv2.imread(args.image)
    if img is None:
        raise FileNotFoundError(f"Could not read image at path: {args.image}")

    layout = load_layout(args.layout)
    class_names = load_class_names(args.labels) if args.labels else {}
    post = (
        SegmentationPostprocessor(layout, load_postprocess_config(args.post_config), class_names)
        if args.post_config
        else SegmentationPostprocessor(layout, class_names=class_names)
    )

    with np.load(args.outputs) as data:
        outputs = [data[f"arr_{i}"] for i in range(len(data.files))]

    h, w = img.shape[:2]
    result = post.process(outputs, orig_size=(w, h))
    if result.status is FrameStatus.ERROR:
        logger.error("Postprocess failed: %s", result.error)
        return 1
    if result.status is FrameStatus.EMPTY:
        logger.info("No detections above conf_threshold=%.2f", post.cfg.conf_threshold)

    for det in result.detections:
        logger.info("%s %.3f %s", det.class_name, det.confidence, det.as_xyxy())

    vis = draw_detections(
        img,
        result,
        layout.input_size,
        contour=ContourConfig(threshold=args.threshold, thickness=args.thickness),
    )
    if args.out:
        ok = cv2.imwrite(args.out, vis)
        if not ok:
            raise RuntimeError(f"Failed to write output image: {args.out}")

    if args.show:
        cv2.imshow("detections", vis)
        cv2.waitKey(0)
        cv2.destroyAllWindows()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
