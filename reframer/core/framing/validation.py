from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from reframer.core.framing.expressions import crop_violations
from reframer.core.types import CropKeyframe

ZOOM_TOLERANCE = 1e-6


@dataclass(frozen=True)
class ValidationResult:
    passed: bool
    message: str
    details: dict[str, Any] = field(default_factory=dict)


def validate_crop_map(
    kfs: Sequence[CropKeyframe],
    base_w: int,
    base_h: int,
    z_floor: float,
    min_time_delta: float = 0.1,
) -> list[ValidationResult]:
    """Report zoom-floor, bounds and time-ordering checks for a crop map.

    Unlike the expression builder this never raises; callers inspect `passed`.
    """

    if not kfs:
        return [ValidationResult(False, "No keyframes", {"count": 0})]

    results: list[ValidationResult] = []

    below = [k for k in kfs if k.zoom < z_floor - ZOOM_TOLERANCE]
    results.append(
        ValidationResult(
            passed=not below,
            message=(
                f"Zoom >= {z_floor:.3f} for all keyframes"
                if not below
                else f"{len(below)} keyframe(s) below zoom floor {z_floor:.3f}"
            ),
            details={
                "z_min": z_floor,
                "min_zoom": min(k.zoom for k in kfs),
                "max_zoom": max(k.zoom for k in kfs),
                "violations": [k.t for k in below],
            },
        )
    )

    out_of_bounds = [(k.t, p) for k in kfs for p in crop_violations(k, base_w, base_h)]
    results.append(
        ValidationResult(
            passed=not out_of_bounds,
            message=(
                "All crops inside source bounds"
                if not out_of_bounds
                else f"{len(out_of_bounds)} crop bound violation(s)"
            ),
            details={
                "source": [base_w, base_h],
                "violations": [{"t": t, "problem": p} for t, p in out_of_bounds],
            },
        )
    )

    gaps = [b.t - a.t for a, b in zip(kfs, kfs[1:])]
    bad_gaps = [(a.t, g) for a, g in zip(kfs, gaps) if g <= 0 or g < min_time_delta]
    results.append(
        ValidationResult(
            passed=not bad_gaps,
            message=(
                f"Keyframe times strictly increasing with spacing >= {min_time_delta:.3f}s"
                if not bad_gaps
                else f"{len(bad_gaps)} keyframe spacing violation(s)"
            ),
            details={
                "count": len(kfs),
                "min_gap": min(gaps) if gaps else None,
                "violations": [{"t": t, "gap": g} for t, g in bad_gaps],
            },
        )
    )

    return results
