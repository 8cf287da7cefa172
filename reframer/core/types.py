"""Shared type definitions used across the framing engine.

This module intentionally centralizes small, stable types (detections, snapshots,
keyframes, crops and computation outcomes) so detector/tracker/framing code can
stay strongly typed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

import numpy as np

Frame = np.ndarray

BBox = tuple[float, float, float, float]
Point = tuple[float, float]

DetectorKind = Literal["face", "body"]


@dataclass(frozen=True)
class Detection:
    """Detector (or alive track) box in source-pixel coordinates."""

    x: float
    y: float
    w: float
    h: float
    score: float
    kind: DetectorKind = "body"
    track_id: int | None = None

    @property
    def cx(self) -> float:
        return self.x + self.w / 2.0

    @property
    def cy(self) -> float:
        return self.y + self.h / 2.0

    @property
    def area(self) -> float:
        return max(0.0, self.w) * max(0.0, self.h)

    @property
    def bbox(self) -> BBox:
        """Return the box as (x1, y1, x2, y2)."""

        return (self.x, self.y, self.x + self.w, self.y + self.h)


@dataclass(frozen=True)
class PersonSnapshot:
    """Alive persons at one sampled time."""

    time: float
    detections: tuple[Detection, ...] = ()


@dataclass(frozen=True)
class TranscriptWord:
    """One transcribed word with an optional diarization label."""

    start: float
    end: float
    text: str = ""
    speaker: str | None = None


@dataclass(frozen=True)
class SpeakerTurn:
    start: float
    end: float
    label: str


@dataclass(frozen=True)
class CropKeyframe:
    """Timestamped crop rectangle (source pixels) and the zoom it was derived from."""

    t: float
    x: int
    y: int
    w: int
    h: int
    zoom: float


@dataclass(frozen=True)
class Constraints:
    """Per-call-site framing constraints."""

    margin: float = 0.02
    max_pan_per_second: float = 400.0
    ease_duration_ms: float = 600.0
    center_bias_x: float = 0.75
    center_bias_y: float = 0.15
    safe_top_fraction: float = 0.05
    safe_bottom_fraction: float = 0.10


@dataclass(frozen=True)
class GlobalCrop:
    """One crop rectangle reused by every clip derived from a source video."""

    x: int
    y: int
    w: int
    h: int
    z_min: float

    def to_keyframe(self, t: float) -> CropKeyframe:
        return CropKeyframe(t=t, x=self.x, y=self.y, w=self.w, h=self.h, zoom=self.z_min)

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the key names used by persisted source records."""

        return {
            "cropX": self.x,
            "cropY": self.y,
            "cropW": self.w,
            "cropH": self.h,
            "zMin": self.z_min,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GlobalCrop:
        return cls(
            x=int(data["cropX"]),
            y=int(data["cropY"]),
            w=int(data["cropW"]),
            h=int(data["cropH"]),
            z_min=float(data["zMin"]),
        )


@dataclass(frozen=True)
class SegmentRequest:
    """One clip's time range in a source video, plus its transcript words."""

    video_path: str
    base_width: int
    base_height: int
    seg_start: float
    seg_end: float
    words: tuple[TranscriptWord, ...] = ()


@dataclass(frozen=True)
class Computed:
    keyframes: list[CropKeyframe]
    mode: Literal["dynamic", "static", "global"] = "dynamic"


@dataclass(frozen=True)
class Insufficient:
    reason: str = "no crop computable"


@dataclass(frozen=True)
class Failed:
    reason: str


FramingResult = Computed | Insufficient | Failed


@dataclass(frozen=True)
class CropFilter:
    """Renderer-consumable crop description."""

    x_expr: str
    y_expr: str
    w_expr: str
    h_expr: str
    filter: str
    constant_axes: tuple[str, ...] = field(default_factory=tuple)
