from __future__ import annotations

import argparse
import statistics
import time
from dataclasses import dataclass
from typing import List

import numpy as np
from tqdm import tqdm

from seg_kit import Box, Detection, NMSConfig, suppress


@dataclass(frozen=True)
class TimingSummary:
    n: int
    mean_ms: float
    p50_ms: float
    p90_ms: float
    p95_ms: float


def _percentile(sorted_values: List[float], q: float) -> float:
    if not sorted_values:
        raise ValueError("No values provided.")
    if q < 0.0 or q > 100.0:
        raise ValueError("q must be in [0, 100].")
    if len(sorted_values) == 1:
        return float(sorted_values[0])
    # Linear interpolation between closest ranks.
    pos = (q / 100.0) * (len(sorted_values) - 1)
    lo = int(np.floor(pos))
    hi = int(np.ceil(pos))
    if lo == hi:
        return float(sorted_values[lo])
    t = pos - lo
    return float(sorted_values[lo] * (1.0 - t) + sorted_values[hi] * t)


def _summarize_ms(values_s: List[float]) -> TimingSummary:
    ms_sorted = sorted(v * 1000.0 for v in values_s)
    return TimingSummary(
        n=len(ms_sorted),
        mean_ms=float(statistics.fmean(ms_sorted)),
        p50_ms=_percentile(ms_sorted, 50.0),
        p90_ms=_percentile(ms_sorted, 90.0),
        p95_ms=_percentile(ms_sorted, 95.0),
    )


def _format_summary(label: str, s: TimingSummary) -> str:
    return (
        f"{label}: n={s.n} mean={s.mean_ms:.3f}ms p50={s.p50_ms:.3f}ms "
        f"p90={s.p90_ms:.3f}ms p95={s.p95_ms:.3f}ms"
    )


def _synthetic_detections(n: int, n_classes: int, seed: int) -> List[Detection]:
    rng = np.random.default_rng(seed)
    x1y1 = rng.uniform(0.0, 0.9, size=(n, 2))
    wh = rng.uniform(0.01, 0.1, size=(n, 2))
    x2y2 = np.minimum(x1y1 + wh, 1.0)
    scores = rng.uniform(0.0, 1.0, size=n)
    class_ids = rng.integers(0, n_classes, size=n)

    dets = []
    for (x1, y1), (x2, y2), score, cls in zip(x1y1, x2y2, scores, class_ids):
        box = Box(float(x1), float(y1), float(x2), float(y2))
        dets.append(
            Detection(box=box, confidence=float(score), class_id=int(cls), class_name=str(cls), input_box=box)
        )
    return dets


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Benchmark class-agnostic vs per-class suppression on synthetic detections."
    )
    parser.add_argument("--boxes", type=int, default=300, help="Number of synthetic detections per run.")
    parser.add_argument("--classes", type=int, default=1, help="Number of synthetic classes.")
    parser.add_argument("--iou", type=float, default=0.5, help="IoU threshold.")
    parser.add_argument("--max-det", type=int, default=100, help="Max detections to keep.")
    parser.add_argument("--runs", type=int, default=200, help="Recorded runs.")
    parser.add_argument("--warmup", type=int, default=10, help="Warmup runs to execute but not record.")
    parser.add_argument("--seed", type=int, default=0, help="RNG seed.")
    args = parser.parse_args()

    if args.boxes < 1:
        raise ValueError("--boxes must be >= 1")
    if args.classes < 1:
        raise ValueError("--classes must be >= 1")
    if args.runs < 1:
        raise ValueError("--runs must be >= 1")
    if args.warmup < 0:
        raise ValueError("--warmup must be >= 0")

    dets = _synthetic_detections(int(args.boxes), int(args.classes), int(args.seed))
    agnostic = NMSConfig(iou_threshold=float(args.iou), max_detections=int(args.max_det))
    per_class = NMSConfig(iou_threshold=float(args.iou), max_detections=int(args.max_det), class_agnostic=False)

    t_agnostic: List[float] = []
    t_per_class: List[float] = []
    kept_agnostic = kept_per_class = 0
    for run in tqdm(range(int(args.warmup) + int(args.runs)), unit="run"):
        t0 = time.perf_counter()
        kept_agnostic = len(suppress(dets, agnostic))
        t1 = time.perf_counter()
        kept_per_class = len(suppress(dets, per_class))
        t2 = time.perf_counter()
        if run >= int(args.warmup):
            t_agnostic.append(t1 - t0)
            t_per_class.append(t2 - t1)

    print(_format_summary("suppress_class_agnostic", _summarize_ms(t_agnostic)))
    print(_format_summary("suppress_per_class", _summarize_ms(t_per_class)))
    print(f"boxes={len(dets)} kept_agnostic={kept_agnostic} kept_per_class={kept_per_class}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
