from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass


@dataclass(frozen=True)
class GroupExtent:
    """Padded group size and the insets it must keep from the crop edges."""

    w: float
    h: float
    inset_x: float
    inset_y: float


def required_zoom(group: GroupExtent, target_w: float, target_h: float, z_min: float) -> float:
    """Zoom needed to fit the padded group plus insets inside the crop."""

    need_x = (group.w + 2.0 * group.inset_x) / target_w
    need_y = (group.h + 2.0 * group.inset_y) / target_h
    if need_x <= 1.0 and need_y <= 1.0:
        return 1.0
    return max(z_min, 1.0 / max(need_x, need_y))


def solve_zoom_series(
    groups: Sequence[GroupExtent],
    target_w: float,
    target_h: float,
    z_min: float,
    decay: float = 0.2,
) -> list[float]:
    """Per-sample zoom, eased toward each sample's requirement and floored at `z_min`."""

    zs: list[float] = []
    for group in groups:
        zr = required_zoom(group, target_w, target_h, z_min)
        if not zs:
            zs.append(max(z_min, zr))
            continue
        prev = zs[-1]
        zs.append(max(z_min, prev + decay * (zr - prev)))
    return zs
