"""Post-processing of raw crop keyframes.

The chain runs in a fixed order; each step reads the output of the previous
one:

1. exponential smoothing
2. deadzone suppression
3. pan-rate limit
4. acceleration limit
5. segment-edge easing
6. fit to frame (crop size from zoom, origin clamped)
7. dedupe by minimum time delta
8. compression above the keyframe ceiling
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, replace

import numpy as np

from reframer.core.geometry import clamp, crop_size_at_zoom, step_toward, target_crop_width
from reframer.core.types import Constraints, CropKeyframe

logger = logging.getLogger(__name__)

MIN_DT = 0.001


@dataclass(frozen=True)
class PostprocessConfig:
    smooth_alpha: float = 0.2
    deadzone_x: float = 70.0
    deadzone_y: float = 50.0
    deadzone_zoom: float = 0.01
    # px/s^2
    max_accel: float = 900.0
    min_time_delta: float = 0.1
    max_keyframes: int = 120
    compress_min_time_delta: float = 0.15
    compress_min_position_delta: float = 1.0
    compress_min_zoom_delta: float = 0.005


def smooth_keyframes(kfs: Sequence[CropKeyframe], alpha: float) -> list[CropKeyframe]:
    if len(kfs) < 2:
        return list(kfs)
    sx, sy, sz = float(kfs[0].x), float(kfs[0].y), kfs[0].zoom
    out = [replace(kfs[0], x=int(round(sx)), y=int(round(sy)))]
    for kf in kfs[1:]:
        sx += alpha * (kf.x - sx)
        sy += alpha * (kf.y - sy)
        sz += alpha * (kf.zoom - sz)
        out.append(replace(kf, x=int(round(sx)), y=int(round(sy)), zoom=sz))
    return out


def apply_deadzone(
    kfs: Sequence[CropKeyframe],
    dz_x: float,
    dz_y: float,
    dz_zoom: float,
) -> list[CropKeyframe]:
    """Adopt a new value only when it moves more than the threshold from the last kept one."""

    if len(kfs) < 2:
        return list(kfs)
    out = [kfs[0]]
    for kf in kfs[1:]:
        prev = out[-1]
        out.append(
            replace(
                kf,
                x=kf.x if abs(kf.x - prev.x) > dz_x else prev.x,
                y=kf.y if abs(kf.y - prev.y) > dz_y else prev.y,
                zoom=kf.zoom if abs(kf.zoom - prev.zoom) > dz_zoom else prev.zoom,
            )
        )
    return out


def apply_pan_limit(kfs: Sequence[CropKeyframe], max_pan_per_second: float) -> list[CropKeyframe]:
    if len(kfs) < 2:
        return list(kfs)
    out = [kfs[0]]
    for kf in kfs[1:]:
        prev = out[-1]
        max_delta = max(0.0, max_pan_per_second) * max(MIN_DT, kf.t - prev.t)
        # Truncate toward the previous value so the per-step cap is never exceeded.
        nx = step_toward(prev.x, kf.x, max_delta)
        ny = step_toward(prev.y, kf.y, max_delta)
        out.append(replace(kf, x=prev.x + int(nx - prev.x), y=prev.y + int(ny - prev.y)))
    return out


def apply_accel_limit(kfs: Sequence[CropKeyframe], max_accel: float) -> list[CropKeyframe]:
    """Cap the change of per-step velocity at `max_accel * dt`."""

    if len(kfs) < 3:
        return list(kfs)
    out = [kfs[0]]
    vx = vy = 0.0
    for kf in kfs[1:]:
        prev = out[-1]
        dt = max(MIN_DT, kf.t - prev.t)
        vx = step_toward(vx, (kf.x - prev.x) / dt, max_accel * dt)
        vy = step_toward(vy, (kf.y - prev.y) / dt, max_accel * dt)
        out.append(replace(kf, x=int(round(prev.x + vx * dt)), y=int(round(prev.y + vy * dt))))
    return out


def ease_segment_edges(
    kfs: Sequence[CropKeyframe],
    seg_start: float,
    seg_end: float,
    ease_seconds: float,
) -> list[CropKeyframe]:
    """Blend toward the previous kept value near the segment's start and end.

    Influence rises linearly from 0 at an edge to 1 at `ease_seconds` away from
    it; the first keyframe is left as-is.
    """

    if not kfs or ease_seconds <= 0:
        return list(kfs)
    out = [kfs[0]]
    for kf in kfs[1:]:
        from_start = clamp((kf.t - seg_start) / ease_seconds, 0.0, 1.0)
        from_end = clamp((seg_end - kf.t) / ease_seconds, 0.0, 1.0)
        influence = min(from_start, from_end)
        prev = out[-1]
        out.append(
            replace(
                kf,
                x=int(round(prev.x + (kf.x - prev.x) * influence)),
                y=int(round(prev.y + (kf.y - prev.y) * influence)),
                zoom=prev.zoom + (kf.zoom - prev.zoom) * influence,
            )
        )
    return out


def fit_to_frame(
    kfs: Sequence[CropKeyframe],
    base_w: int,
    base_h: int,
    z_min: float,
) -> list[CropKeyframe]:
    """Recompute crop size from zoom and clamp the origin inside the frame."""

    target_w = target_crop_width(base_w, base_h)
    out: list[CropKeyframe] = []
    for kf in kfs:
        z = max(z_min, kf.zoom)
        crop_w, crop_h = crop_size_at_zoom(target_w, base_h, z)
        out.append(
            CropKeyframe(
                t=kf.t,
                x=int(clamp(kf.x, 0, max(0, base_w - crop_w))),
                y=int(clamp(kf.y, 0, max(0, base_h - crop_h))),
                w=crop_w,
                h=crop_h,
                zoom=z,
            )
        )
    return out


def dedupe_by_time(kfs: Sequence[CropKeyframe], min_delta: float) -> list[CropKeyframe]:
    if not kfs:
        return []
    out = [kfs[0]]
    for kf in kfs[1:]:
        if kf.t - out[-1].t >= min_delta:
            out.append(kf)
    return out


def drop_near_duplicates(kfs: Sequence[CropKeyframe], config: PostprocessConfig) -> list[CropKeyframe]:
    """Drop interior keyframes too close in time, or barely moved, from the last kept one."""

    if len(kfs) <= 2:
        return list(kfs)
    out = [kfs[0]]
    for kf in kfs[1:-1]:
        prev = out[-1]
        if kf.t - prev.t < config.compress_min_time_delta:
            continue
        moved = math.hypot(kf.x - prev.x, kf.y - prev.y)
        if moved < config.compress_min_position_delta and abs(kf.zoom - prev.zoom) < config.compress_min_zoom_delta:
            continue
        out.append(kf)
    out.append(kfs[-1])
    return out


def decimate(kfs: Sequence[CropKeyframe], max_keyframes: int) -> list[CropKeyframe]:
    """Uniformly pick `max_keyframes` keyframes, first and last included."""

    if len(kfs) <= max_keyframes:
        return list(kfs)
    idx = np.unique(np.linspace(0, len(kfs) - 1, max_keyframes).round().astype(int))
    return [kfs[i] for i in idx]


def compress_keyframes(kfs: Sequence[CropKeyframe], config: PostprocessConfig) -> list[CropKeyframe]:
    if len(kfs) <= config.max_keyframes:
        return list(kfs)
    filtered = drop_near_duplicates(kfs, config)
    out = decimate(filtered, config.max_keyframes)
    logger.debug("Keyframe compression: %d -> %d -> %d", len(kfs), len(filtered), len(out))
    return out


def postprocess(
    raw: Sequence[CropKeyframe],
    seg_start: float,
    seg_end: float,
    base_w: int,
    base_h: int,
    constraints: Constraints,
    z_min: float,
    config: PostprocessConfig | None = None,
) -> list[CropKeyframe]:
    """Run the full chain on raw keyframes."""

    cfg = config or PostprocessConfig()
    kfs = smooth_keyframes(raw, cfg.smooth_alpha)
    kfs = apply_deadzone(kfs, cfg.deadzone_x, cfg.deadzone_y, cfg.deadzone_zoom)
    kfs = apply_pan_limit(kfs, constraints.max_pan_per_second)
    kfs = apply_accel_limit(kfs, cfg.max_accel)
    kfs = ease_segment_edges(kfs, seg_start, seg_end, constraints.ease_duration_ms / 1000.0)
    kfs = fit_to_frame(kfs, base_w, base_h, z_min)
    kfs = dedupe_by_time(kfs, cfg.min_time_delta)
    out = compress_keyframes(kfs, cfg)
    if out:
        span = out[-1].t - out[0].t
        logger.info(
            "Keyframes: raw=%d deduped=%d final=%d (1 every %.2fs)",
            len(raw),
            len(kfs),
            len(out),
            span / len(out),
        )
    return out
