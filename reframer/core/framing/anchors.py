from __future__ import annotations

import math
from collections.abc import Sequence

from reframer.core.types import Detection


def centrality(det: Detection, base_w: int, base_h: int) -> float:
    """1 at the frame centre, falling to 0 at the frame edge (normalised distance)."""

    half_w = base_w / 2.0
    half_h = base_h / 2.0
    dx = abs(det.cx - half_w) / half_w if half_w > 0 else 0.0
    dy = abs(det.cy - half_h) / half_h if half_h > 0 else 0.0
    return 1.0 - min(1.0, math.hypot(dx, dy))


def anchor_score(det: Detection, base_w: int, base_h: int) -> float:
    return det.area * det.score * (0.5 + 0.5 * centrality(det, base_w, base_h))


def choose_anchor(detections: Sequence[Detection], base_w: int, base_h: int) -> Detection | None:
    """Highest-scoring detection; ties keep the earliest."""

    best: Detection | None = None
    best_score = -math.inf
    for det in detections:
        s = anchor_score(det, base_w, base_h)
        if s > best_score:
            best = det
            best_score = s
    return best


class AnchorSelector:
    """Per-frame primary-subject selection with speaker memory.

    The first time a speaker label is active, the best-scoring track is chosen
    and remembered for that label. Later frames where the same label is active
    keep that track while it is still present, so the anchor does not hop
    between similar-looking subjects.
    """

    def __init__(self, base_w: int, base_h: int) -> None:
        self.base_w = base_w
        self.base_h = base_h
        self.speaker_tracks: dict[str, int] = {}

    def select(self, detections: Sequence[Detection], speaker: str | None = None) -> Detection | None:
        if not detections:
            return None

        if speaker is not None:
            mapped = self.speaker_tracks.get(speaker)
            if mapped is not None:
                for det in detections:
                    if det.track_id == mapped:
                        return det

        pick = choose_anchor(detections, self.base_w, self.base_h)
        if speaker is not None and pick is not None and pick.track_id is not None:
            self.speaker_tracks[speaker] = pick.track_id
        return pick
