"""Piecewise-linear crop expressions in FFmpeg expression syntax.

Each axis becomes either a constant or a sum of time-gated linear pieces:

    lt(t,t0)*v0 + gte(t,t0)*lt(t,t1)*(v0+(s0)*(t-t0)) + ... + gte(t,tn)*vn

Segments are half-open, so exactly one term is non-zero at any time: the value
holds before the first keyframe and after the last one.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

import numpy as np

from reframer.core.errors import ExpressionTooLargeError, InvalidCropError
from reframer.core.geometry import target_crop_width
from reframer.core.types import CropFilter, CropKeyframe

logger = logging.getLogger(__name__)

MIN_SEGMENT_S = 0.001


@dataclass(frozen=True)
class ExpressionConfig:
    # Axes whose values span less than this (px) are emitted as constants.
    constant_epsilon: float = 1.0
    max_filter_length: int = 65536
    warn_filter_length: int = 32768


AXES: dict[str, Callable[[CropKeyframe], float]] = {
    "x": lambda k: k.x,
    "y": lambda k: k.y,
    "w": lambda k: k.w,
    "h": lambda k: k.h,
}


def _ts(t: float) -> str:
    return f"{t:.3f}"


def build_piecewise_expr(
    kfs: Sequence[CropKeyframe],
    value: Callable[[CropKeyframe], float],
    epsilon: float = 1.0,
) -> str:
    """Expression for one axis; a plain integer when the axis is (nearly) constant."""

    if not kfs:
        raise ValueError("build_piecewise_expr() requires at least one keyframe")

    values = [float(value(k)) for k in kfs]
    if max(values) - min(values) < epsilon:
        return str(int(round(values[0])))

    parts = [f"lt(t,{_ts(kfs[0].t)})*{int(round(values[0]))}"]
    for a, b, va, vb in zip(kfs, kfs[1:], values, values[1:]):
        slope = (vb - va) / max(MIN_SEGMENT_S, b.t - a.t)
        parts.append(
            f"gte(t,{_ts(a.t)})*lt(t,{_ts(b.t)})*({int(round(va))}+({slope:.6f})*(t-{_ts(a.t)}))"
        )
    parts.append(f"gte(t,{_ts(kfs[-1].t)})*{int(round(values[-1]))}")
    return "+".join(parts)


def crop_violations(kf: CropKeyframe, base_w: int, base_h: int) -> list[str]:
    problems = []
    if kf.w <= 0 or kf.h <= 0:
        problems.append(f"empty crop {kf.w}x{kf.h}")
    if kf.w > base_w or kf.h > base_h:
        problems.append(f"crop {kf.w}x{kf.h} exceeds source {base_w}x{base_h}")
    if kf.x < 0 or kf.y < 0 or kf.x + kf.w > base_w or kf.y + kf.h > base_h:
        problems.append(f"crop at ({kf.x},{kf.y}) size {kf.w}x{kf.h} leaves source {base_w}x{base_h}")
    return problems


def validate_keyframes(kfs: Sequence[CropKeyframe], base_w: int, base_h: int) -> None:
    """Raise `InvalidCropError` if any keyframe's rectangle leaves the source."""

    errors = []
    for kf in kfs:
        for problem in crop_violations(kf, base_w, base_h):
            logger.error("Invalid crop at t=%.2fs: %s", kf.t, problem)
            errors.append(f"t={kf.t:.2f}s: {problem}")
    if errors:
        raise InvalidCropError(
            f"{len(errors)} invalid crop rectangle(s); first: {errors[0]}"
        )


def build_crop_filter(
    kfs: Sequence[CropKeyframe],
    base_w: int,
    base_h: int,
    config: ExpressionConfig | None = None,
) -> CropFilter:
    """Validate keyframes and emit the crop/scale filter chain."""

    cfg = config or ExpressionConfig()
    if not kfs:
        raise InvalidCropError("no keyframes to build a crop filter from")
    validate_keyframes(kfs, base_w, base_h)

    exprs = {axis: build_piecewise_expr(kfs, fn, cfg.constant_epsilon) for axis, fn in AXES.items()}
    constant_axes = tuple(axis for axis, expr in exprs.items() if "gte(" not in expr)

    target_w = target_crop_width(base_w, base_h)
    chain = [
        f"crop='{exprs['w']}':'{exprs['h']}':'{exprs['x']}':'{exprs['y']}'",
        f"scale={target_w}:{base_h}:eval=frame",
        "format=yuv420p",
    ]
    full = ",".join(chain)

    zooms = [k.zoom for k in kfs]
    logger.info(
        "Crop filter: %d keyframes, zoom %.2f-%.2f, %d/4 constant axes, %.1fKB",
        len(kfs),
        min(zooms),
        max(zooms),
        len(constant_axes),
        len(full) / 1024.0,
    )

    if len(full) > cfg.max_filter_length:
        raise ExpressionTooLargeError(
            f"crop filter is {len(full)} bytes, above the {cfg.max_filter_length} byte limit"
        )
    if len(full) > cfg.warn_filter_length:
        logger.warning("Crop filter is %d bytes, approaching the %d byte limit", len(full), cfg.max_filter_length)

    return CropFilter(
        x_expr=exprs["x"],
        y_expr=exprs["y"],
        w_expr=exprs["w"],
        h_expr=exprs["h"],
        filter=full,
        constant_axes=constant_axes,
    )


def interpolate_keyframes(kfs: Sequence[CropKeyframe], t: float) -> tuple[float, float, float, float]:
    """(x, y, w, h) at time `t` under the same hold/interpolate rules as the expressions."""

    if not kfs:
        raise ValueError("interpolate_keyframes() requires at least one keyframe")
    times = np.array([k.t for k in kfs], dtype=np.float64)
    x, y, w, h = (
        float(np.interp(t, times, np.array([fn(k) for k in kfs], dtype=np.float64)))
        for fn in AXES.values()
    )
    return x, y, w, h
