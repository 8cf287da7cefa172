"""Dynamic crop path from a person timeline.

Per sampled time: pick an anchor, smooth its centre, derive the feasible crop
origin interval from the group of alive tracks, then optimise both axes over the
whole segment and solve a zoom series. Output keyframes are in crop-origin
coordinates and already lie inside the frame.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from reframer.core.framing.anchors import AnchorSelector
from reframer.core.framing.optimizer import global_optimize_1d
from reframer.core.framing.speakers import SpeakerTimeline
from reframer.core.framing.zoom import GroupExtent, solve_zoom_series
from reframer.core.geometry import (
    GroupBounds,
    clamp,
    crop_size_at_zoom,
    group_bounds,
    target_crop_width,
    zoom_floor,
)
from reframer.core.types import Constraints, CropKeyframe, Detection, PersonSnapshot

logger = logging.getLogger(__name__)

# Vertical padding is adaptive to the group's height, never below 10% of the frame.
MIN_MARGIN_Y_RATIO = 0.1
ADAPTIVE_MARGIN_Y_RATIO = 0.6
TOP_PAD_RATIO = 0.6
TORSO_BIAS_RATIO = 0.18
TORSO_BIAS_GROUP_RATIO = 0.6
INSET_X_RATIO = 0.06
INSET_Y_RATIO = 0.08
MIN_INSET_PX = 8


@dataclass(frozen=True)
class TrajectoryConfig:
    lambda_v: float = 80.0
    lambda_a: float = 500.0
    iterations: int = 80
    learning_rate: float = 1.0
    z_min_floor: float = 0.88
    z_decay: float = 0.2
    # Anchor-centre smoothing before the feasible region is built.
    smooth_alpha: float = 0.2
    deadzone_x: float = 70.0
    deadzone_y: float = 50.0


@dataclass(frozen=True)
class FeasibleRegion:
    x_lower: float
    x_upper: float
    y_lower: float
    y_upper: float
    x_desired: float
    y_desired: float
    group: GroupExtent


class AnchorSmoother:
    """Exponential smoothing of anchor centres with a per-axis deadzone.

    A raw centre within the deadzone of the current smoothed value is treated as
    no movement at all.
    """

    def __init__(self, alpha: float = 0.2, deadzone_x: float = 70.0, deadzone_y: float = 50.0) -> None:
        self.alpha = alpha
        self.deadzone_x = deadzone_x
        self.deadzone_y = deadzone_y
        self.x: float | None = None
        self.y: float | None = None

    def update(self, raw_x: float, raw_y: float) -> tuple[float, float]:
        if self.x is None or self.y is None:
            self.x, self.y = raw_x, raw_y
            return raw_x, raw_y

        target_x = self.x if abs(raw_x - self.x) <= self.deadzone_x else raw_x
        target_y = self.y if abs(raw_y - self.y) <= self.deadzone_y else raw_y
        self.x = self.x + self.alpha * (target_x - self.x)
        self.y = self.y + self.alpha * (target_y - self.y)
        return self.x, self.y


def build_feasible(
    group: GroupBounds,
    smoothed_center: tuple[float, float],
    target_w: float,
    target_h: float,
    base_w: int,
    base_h: int,
    constraints: Constraints,
) -> FeasibleRegion:
    """Feasible crop-origin interval and desired origin for one sampled time."""

    margin_x = max(0.0, constraints.margin) * target_w
    min_margin_y = target_h * MIN_MARGIN_Y_RATIO
    adaptive_y = max(min_margin_y, group.height * ADAPTIVE_MARGIN_Y_RATIO)
    top_pad = max(min_margin_y, adaptive_y * TOP_PAD_RATIO)
    bottom_pad = adaptive_y

    padded_min_x = clamp(group.min_x - margin_x, 0.0, base_w)
    padded_max_x = clamp(group.max_x + margin_x, 0.0, base_w)
    padded_min_y = clamp(group.min_y - top_pad, 0.0, base_h)
    padded_max_y = clamp(group.max_y + bottom_pad, 0.0, base_h)

    inset_x = max(MIN_INSET_PX, int(target_w * INSET_X_RATIO))
    inset_y = max(MIN_INSET_PX, int(target_h * INSET_Y_RATIO))

    max_origin_x = max(0.0, base_w - target_w)
    x_lower = clamp(padded_max_x + inset_x - target_w, 0.0, max_origin_x)
    x_upper = clamp(padded_min_x - inset_x, 0.0, max_origin_x)
    if x_lower > x_upper:
        x_lower = x_upper = clamp((padded_min_x + padded_max_x) / 2.0 - target_w / 2.0, 0.0, max_origin_x)

    # Vertical bounds may extend past the frame by the safe fractions; the final
    # keyframe clamp brings them back inside.
    min_y = -round(target_h * constraints.safe_top_fraction)
    max_y = base_h - target_h + round(target_h * constraints.safe_bottom_fraction)
    y_lower = clamp(padded_max_y + inset_y - target_h, min_y, max_y)
    y_upper = clamp(padded_min_y - inset_y, min_y, max_y)
    if y_lower > y_upper:
        y_lower = y_upper = clamp((padded_min_y + padded_max_y) / 2.0 - target_h / 2.0, min_y, max_y)

    blend = clamp(constraints.center_bias_x, 0.0, 1.0)
    desired_cx = smoothed_center[0] * blend + (base_w / 2.0) * (1.0 - blend)
    torso_bias = min(target_h * TORSO_BIAS_RATIO, group.height * TORSO_BIAS_GROUP_RATIO)
    desired_cy = (padded_min_y + padded_max_y) / 2.0 + torso_bias - target_h * constraints.center_bias_y

    return FeasibleRegion(
        x_lower=x_lower,
        x_upper=x_upper,
        y_lower=y_lower,
        y_upper=y_upper,
        x_desired=clamp(desired_cx - target_w / 2.0, x_lower, x_upper),
        y_desired=clamp(desired_cy - target_h / 2.0, y_lower, y_upper),
        group=GroupExtent(
            w=padded_max_x - padded_min_x,
            h=padded_max_y - padded_min_y,
            inset_x=inset_x,
            inset_y=inset_y,
        ),
    )


def select_anchors(
    timeline: Sequence[PersonSnapshot],
    base_w: int,
    base_h: int,
    speakers: SpeakerTimeline | None = None,
) -> list[tuple[PersonSnapshot, Detection]]:
    """Anchor per snapshot that has alive tracks; empty snapshots contribute nothing."""

    selector = AnchorSelector(base_w, base_h)
    out: list[tuple[PersonSnapshot, Detection]] = []
    for snap in timeline:
        if not snap.detections:
            continue
        speaker = speakers.active_speaker_at(snap.time) if speakers else None
        anchor = selector.select(snap.detections, speaker)
        if anchor is not None:
            out.append((snap, anchor))
    return out


def compute_raw_keyframes(
    timeline: Sequence[PersonSnapshot],
    base_w: int,
    base_h: int,
    constraints: Constraints,
    config: TrajectoryConfig | None = None,
    speakers: SpeakerTimeline | None = None,
) -> list[CropKeyframe]:
    """Optimised, zoom-solved keyframes (one per anchored snapshot).

    Returns an empty list when no snapshot has an anchor.
    """

    cfg = config or TrajectoryConfig()
    anchored = select_anchors(timeline, base_w, base_h, speakers)
    if not anchored:
        return []

    target_w = target_crop_width(base_w, base_h)
    target_h = base_h
    z_min = zoom_floor(base_w, base_h, cfg.z_min_floor)

    smoother = AnchorSmoother(cfg.smooth_alpha, cfg.deadzone_x, cfg.deadzone_y)
    regions: list[FeasibleRegion] = []
    weights: list[float] = []
    times: list[float] = []
    for snap, anchor in anchored:
        smoothed = smoother.update(anchor.cx, anchor.cy)
        regions.append(
            build_feasible(
                group_bounds(snap.detections),
                smoothed,
                target_w,
                target_h,
                base_w,
                base_h,
                constraints,
            )
        )
        weights.append(anchor.score)
        times.append(snap.time)

    xs = global_optimize_1d(
        [r.x_desired for r in regions],
        [r.x_lower for r in regions],
        [r.x_upper for r in regions],
        weights,
        lambda_v=cfg.lambda_v,
        lambda_a=cfg.lambda_a,
        iterations=cfg.iterations,
        learning_rate=cfg.learning_rate,
    )
    ys = global_optimize_1d(
        [r.y_desired for r in regions],
        [r.y_lower for r in regions],
        [r.y_upper for r in regions],
        weights,
        lambda_v=cfg.lambda_v,
        lambda_a=cfg.lambda_a,
        iterations=cfg.iterations,
        learning_rate=cfg.learning_rate,
    )
    zs = solve_zoom_series([r.group for r in regions], target_w, target_h, z_min, decay=cfg.z_decay)

    logger.debug(
        "Raw trajectory: %d keyframes target=%dx%d z_min=%.3f",
        len(times),
        target_w,
        target_h,
        z_min,
    )

    out: list[CropKeyframe] = []
    for t, x, y, z in zip(times, xs, ys, zs, strict=True):
        crop_w, crop_h = crop_size_at_zoom(target_w, base_h, z)
        out.append(
            CropKeyframe(
                t=t,
                x=int(clamp(round(float(x)), 0, base_w - crop_w)),
                y=int(clamp(round(float(y)), 0, base_h - crop_h)),
                w=crop_w,
                h=crop_h,
                zoom=z,
            )
        )
    return out
