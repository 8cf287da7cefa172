"""Static crops: one rectangle for a whole source video, or for one segment.

The global crop pools raw detections from a handful of windows spread across
the source and places a single full-height 9:16 rectangle. It is deliberately
conservative: it never zooms in and never strays far from the frame centre.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from reframer.core.detectors.person import PersonDetector
from reframer.core.errors import FramingCancelled
from reframer.core.framing.anchors import choose_anchor
from reframer.core.geometry import (
    clamp,
    group_bounds,
    median,
    percentile,
    target_crop_width,
    weighted_median,
    zoom_floor,
)
from reframer.core.types import CropKeyframe, Detection, GlobalCrop, PersonSnapshot
from reframer.core.video_sources.base import FrameSampler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StaticCropConfig:
    strong_min_score: float = 0.25
    # Fraction of the frame area.
    strong_min_area_ratio: float = 0.008
    strong_min_count: int = 8
    two_sides_min_ratio: float = 0.18
    two_sides_anchor_blend: float = 0.8
    single_group_blend: float = 0.6
    center_blend: float = 0.1
    max_shift_ratio: float = 0.22
    segment_bias_fraction: float = 0.35
    segment_max_anchor_width: float = 0.9
    z_min_floor: float = 0.88


@dataclass(frozen=True)
class GlobalSamplingConfig:
    window_s: float = 15.0
    min_windows: int = 3
    max_windows: int = 6
    min_detections: int = 50
    min_detection_score: float = 0.3
    usable_start_fraction: float = 0.1
    usable_end_fraction: float = 0.9


def _full_height_crop(center_x: float, base_w: int, base_h: int, z_floor: float) -> GlobalCrop:
    crop_w = target_crop_width(base_w, base_h)
    x = int(clamp(round(center_x - crop_w / 2.0), 0, base_w - crop_w))
    return GlobalCrop(x=x, y=0, w=crop_w, h=base_h, z_min=zoom_floor(base_w, base_h, z_floor))


def static_center_x(
    detections: Sequence[Detection],
    base_w: int,
    base_h: int,
    config: StaticCropConfig | None = None,
) -> float:
    """Horizontal crop centre for a pool of detections.

    Strong detections (score and area above thresholds) are preferred when
    there are enough of them. When both halves of the group hold a significant
    share of the area-weighted mass, the centre sits between the two clusters;
    otherwise it leans toward the dominant one.
    """

    cfg = config or StaticCropConfig()
    frame_cx = base_w / 2.0
    if not detections:
        return frame_cx

    min_area = cfg.strong_min_area_ratio * base_w * base_h
    strong = [d for d in detections if d.score >= cfg.strong_min_score and d.area >= min_area]
    used = strong if len(strong) >= cfg.strong_min_count else list(detections)

    group_cx = group_bounds(used).center_x
    weighted = [(d.cx, max(d.area, 1.0)) for d in used]
    total = sum(w for _, w in weighted)
    overall = weighted_median(weighted)

    left = [vw for vw in weighted if vw[0] <= group_cx]
    right = [vw for vw in weighted if vw[0] > group_cx]
    left_share = sum(w for _, w in left) / total if total > 0 else 0.0
    right_share = sum(w for _, w in right) / total if total > 0 else 0.0

    if left and right and left_share >= cfg.two_sides_min_ratio and right_share >= cfg.two_sides_min_ratio:
        anchors_cx = (weighted_median(left) + weighted_median(right)) / 2.0
        center = anchors_cx * cfg.two_sides_anchor_blend + overall * (1.0 - cfg.two_sides_anchor_blend)
        logger.debug("Static crop: two sides (left=%.2f right=%.2f)", left_share, right_share)
    else:
        center = group_cx * cfg.single_group_blend + overall * (1.0 - cfg.single_group_blend)

    center = center * (1.0 - cfg.center_blend) + frame_cx * cfg.center_blend
    max_shift = base_w * cfg.max_shift_ratio
    return clamp(center, frame_cx - max_shift, frame_cx + max_shift)


def calculate_static_crop(
    detections: Sequence[Detection],
    base_w: int,
    base_h: int,
    config: StaticCropConfig | None = None,
) -> GlobalCrop:
    """Full-height crop at the aspect-driven minimum zoom. Empty input gives a centred crop."""

    cfg = config or StaticCropConfig()
    center_x = static_center_x(detections, base_w, base_h, cfg)
    return _full_height_crop(center_x, base_w, base_h, cfg.z_min_floor)


def plan_sample_windows(
    duration: float,
    skip_until: float = 0.0,
    config: GlobalSamplingConfig | None = None,
) -> list[tuple[float, float]]:
    """(start, length) of each window to sample for a global crop."""

    cfg = config or GlobalSamplingConfig()
    if duration <= 0:
        return []
    win = cfg.window_s

    usable_start = max(max(0.0, skip_until), duration * cfg.usable_start_fraction)
    usable_end = duration * cfg.usable_end_fraction
    if usable_start > duration - win:
        usable_start = max(0.0, duration - win)
    if usable_end < usable_start + win:
        usable_end = min(duration, usable_start + win)
    usable = max(win, usable_end - usable_start)

    count = min(cfg.max_windows, max(cfg.min_windows, int(usable // win)))
    windows: list[tuple[float, float]] = []
    for i in range(count):
        if count == 1:
            t = usable_start + (usable - win) / 2.0
        else:
            t = usable_start + i * (usable - win) / (count - 1)
        start = max(0.0, min(t, duration - win))
        end = min(start + win, duration)
        windows.append((start, end - start))
    return windows


def compute_global_crop(
    detector: PersonDetector,
    sampler: FrameSampler,
    video_path: str,
    duration: float,
    base_w: int,
    base_h: int,
    sample_fps: float,
    skip_until: float = 0.0,
    sampling: GlobalSamplingConfig | None = None,
    config: StaticCropConfig | None = None,
    should_cancel: Callable[[], bool] | None = None,
) -> GlobalCrop | None:
    """Pool detections from sampled windows and compute one crop for the source.

    Windows run sequentially; a frame whose detection fails is logged and skipped,
    and a window whose decoding fails is logged and skipped. Returns
    `None` when fewer than `min_detections` detections were pooled.
    """

    scfg = sampling or GlobalSamplingConfig()
    windows = plan_sample_windows(duration, skip_until, scfg)
    logger.info("Global crop: sampling %d windows of %.1fs in %s", len(windows), scfg.window_s, video_path)

    pooled: list[Detection] = []
    ok_windows = 0
    for i, (start, length) in enumerate(windows):
        if should_cancel is not None and should_cancel():
            raise FramingCancelled(f"global crop cancelled before window {i + 1}/{len(windows)}")
        before = len(pooled)
        try:
            for frame in sampler.sample(video_path, start, length, sample_fps):
                try:
                    dets = detector.detect(frame.image, base_w, base_h)
                except Exception as exc:
                    logger.warning("Detector failed at t=%.2fs: %s", frame.time, exc)
                    continue
                pooled.extend(d for d in dets if d.score >= scfg.min_detection_score)
        except Exception:
            logger.exception("Global crop window %d/%d @ %.1fs failed", i + 1, len(windows), start)
            continue
        found = len(pooled) - before
        if found:
            ok_windows += 1
        logger.info("Global crop window %d/%d @ %.1fs: %d detections", i + 1, len(windows), start, found)

    if len(pooled) < scfg.min_detections:
        logger.info(
            "Global crop: insufficient detections (%d found, %d required, %d/%d windows)",
            len(pooled),
            scfg.min_detections,
            ok_windows,
            len(windows),
        )
        return None

    crop = calculate_static_crop(pooled, base_w, base_h, config)
    logger.info(
        "Global crop: %d detections -> %dx%d @ (%d,%d) z_min=%.3f",
        len(pooled),
        crop.w,
        crop.h,
        crop.x,
        crop.y,
        crop.z_min,
    )
    return crop


def compute_segment_static_crop(
    timeline: Sequence[PersonSnapshot],
    base_w: int,
    base_h: int,
    seg_start: float,
    config: StaticCropConfig | None = None,
) -> CropKeyframe | None:
    """Single keyframe from the median anchor centre, biased toward the frame centre.

    Returns `None` when no snapshot has an anchor.
    """

    cfg = config or StaticCropConfig()
    target_w = target_crop_width(base_w, base_h)
    max_anchor_w = target_w * cfg.segment_max_anchor_width

    centers: list[float] = []
    widths: list[float] = []
    for snap in timeline:
        anchor = choose_anchor(snap.detections, base_w, base_h)
        if anchor is None:
            continue
        centers.append(anchor.cx)
        widths.append(min(anchor.w, max_anchor_w))
    if not centers:
        return None

    median_cx = median(centers)
    frame_cx = base_w / 2.0
    if median_cx > frame_cx:
        center = median_cx - cfg.segment_bias_fraction * target_w
    elif median_cx < frame_cx:
        center = median_cx + cfg.segment_bias_fraction * target_w
    else:
        center = median_cx

    crop = _full_height_crop(center, base_w, base_h, cfg.z_min_floor)
    logger.info(
        "Segment static crop: %d anchors, median_cx=%.0f p90_width=%.0f -> x=%d",
        len(centers),
        median_cx,
        percentile(widths, 90),
        crop.x,
    )
    return crop.to_keyframe(seg_start)
