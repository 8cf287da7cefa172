from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from reframer.core.types import Detection

# Output aspect is fixed: width/height = 9/16, derived from source height.
ASPECT_W = 9
ASPECT_H = 16


@dataclass(frozen=True)
class GroupBounds:
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def center_x(self) -> float:
        return (self.min_x + self.max_x) / 2.0


def clamp(v: float, lo: float, hi: float) -> float:
    return lo if v < lo else hi if v > hi else v


def even(n: int) -> int:
    return (int(n) // 2) * 2


def step_toward(current: float, target: float, max_delta: float) -> float:
    """Move `current` toward `target` by at most `max_delta`."""

    if abs(target - current) <= max_delta:
        return target
    return current + max_delta if target > current else current - max_delta


def target_crop_width(base_w: int, base_h: int) -> int:
    """Even 9:16 crop width for a source, never wider than the source."""

    raw = min(math.floor(base_h * ASPECT_W / ASPECT_H), int(base_w))
    return even(raw)


def zoom_floor(base_w: int, base_h: int, configured_floor: float) -> float:
    """Canonical minimum zoom: max(targetW/baseW, 1.0, configured floor)."""

    return max(target_crop_width(base_w, base_h) / float(base_w), 1.0, float(configured_floor))


def crop_size_at_zoom(target_w: int, base_h: int, zoom: float) -> tuple[int, int]:
    return int(round(target_w / zoom)), int(round(base_h / zoom))


def group_bounds(detections: Iterable[Detection]) -> GroupBounds:
    """Bounding box of all detections. Callers must pass at least one."""

    min_x = min_y = math.inf
    max_x = max_y = -math.inf
    for d in detections:
        min_x = min(min_x, d.x)
        min_y = min(min_y, d.y)
        max_x = max(max_x, d.x + d.w)
        max_y = max(max_y, d.y + d.h)
    if min_x == math.inf:
        raise ValueError("group_bounds() requires at least one detection")
    return GroupBounds(min_x=min_x, min_y=min_y, max_x=max_x, max_y=max_y)


def weighted_median(values: Sequence[tuple[float, float]]) -> float:
    """Weighted median of (value, weight) pairs; 0.0 for an empty input."""

    if not values:
        return 0.0
    ordered = sorted(values, key=lambda vw: vw[0])
    half = sum(w for _, w in ordered) / 2.0
    acc = 0.0
    for value, weight in ordered:
        acc += weight
        if acc >= half:
            return value
    return ordered[-1][0]  # pragma: no cover


def median(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    s = sorted(values)
    n = len(s)
    if n % 2 == 0:
        return (s[n // 2 - 1] + s[n // 2]) / 2.0
    return s[n // 2]


def percentile(values: Sequence[float], p: float) -> float:
    """Nearest-rank percentile (p in [0, 100])."""

    if not values:
        return 0.0
    s = sorted(values)
    idx = math.ceil(len(s) * p / 100.0) - 1
    return s[max(0, min(idx, len(s) - 1))]
