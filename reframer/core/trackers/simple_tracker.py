from __future__ import annotations

import itertools
from dataclasses import dataclass, replace

import numpy as np

from reframer.core.geometry import clamp
from reframer.core.types import Detection, DetectorKind

IOU_SUPPRESS_VALUE = -1.0
MIN_DT = 0.001


def iou(a: Detection, b: Detection) -> float:
    """Compute the intersection-over-union (IoU) of two x/y/w/h boxes."""

    xx1 = max(a.x, b.x)
    yy1 = max(a.y, b.y)
    xx2 = min(a.x + a.w, b.x + b.w)
    yy2 = min(a.y + a.h, b.y + b.h)
    if xx2 <= xx1 or yy2 <= yy1:
        return 0.0
    inter = (xx2 - xx1) * (yy2 - yy1)
    union = a.w * a.h + b.w * b.h - inter
    if union <= 0:
        return 0.0
    return inter / float(union)


@dataclass(frozen=True)
class TrackerConfig:
    iou_threshold: float = 0.35
    # Tracks missed for longer than this (seconds) are dropped.
    max_age_s: float = 0.8
    # Confirmation threshold before a track is used downstream.
    min_hits: int = 2
    min_area: float = 300.0
    # Detections smaller than this never reach association.
    min_detection_area: float = 100.0


@dataclass
class Track:
    """Internal tracker state for one person.

    `x`/`y` hold the current (possibly predicted) position; `seen_cx`/`seen_cy`
    and `last_seen` describe the last detection matched to the track.
    """

    id: int
    x: float
    y: float
    w: float
    h: float
    score: float
    kind: DetectorKind = "body"
    vx: float = 0.0
    vy: float = 0.0
    last_seen: float = 0.0
    updated_at: float = 0.0
    seen_cx: float = 0.0
    seen_cy: float = 0.0
    age: float = 0.0
    hits: int = 1
    miss: float = 0.0

    def as_detection(self) -> Detection:
        return Detection(
            x=self.x,
            y=self.y,
            w=self.w,
            h=self.h,
            score=self.score,
            kind=self.kind,
            track_id=self.id,
        )


class SimpleTracker:
    """A lightweight IoU-based multi-object tracker with constant-velocity prediction.

    Existing tracks are extrapolated to the new sample time, then detections are
    assigned greedily by IoU (highest pairs first, no pair reused). Tracks
    survive missed detections for `max_age_s` seconds and are only reported as
    alive once they have been confirmed `min_hits` times.
    """

    def __init__(self, frame_size: tuple[int, int], config: TrackerConfig | None = None) -> None:
        self.frame_w, self.frame_h = frame_size
        self.config = config or TrackerConfig()
        self.tracks: dict[int, Track] = {}
        self._id_iter = itertools.count(1)

    def _predicted(self, track: Track, t: float) -> Track:
        """Return `track` extrapolated to time `t`, clamped inside the frame."""

        dt = max(MIN_DT, t - track.updated_at)
        nx = clamp(round(track.x + track.vx * dt), 0.0, max(0.0, self.frame_w - track.w))
        ny = clamp(round(track.y + track.vy * dt), 0.0, max(0.0, self.frame_h - track.h))
        return replace(track, x=float(nx), y=float(ny))

    def _spawn(self, det: Detection, t: float) -> None:
        new_id = next(self._id_iter)
        self.tracks[new_id] = Track(
            id=new_id,
            x=det.x,
            y=det.y,
            w=det.w,
            h=det.h,
            score=det.score,
            kind=det.kind,
            last_seen=t,
            updated_at=t,
            seen_cx=det.cx,
            seen_cy=det.cy,
        )

    def _match(self, track: Track, det: Detection, t: float) -> None:
        dt_seen = max(MIN_DT, t - track.last_seen)
        self.tracks[track.id] = Track(
            id=track.id,
            x=det.x,
            y=det.y,
            w=det.w,
            h=det.h,
            score=det.score,
            kind=det.kind,
            vx=(det.cx - track.seen_cx) / dt_seen,
            vy=(det.cy - track.seen_cy) / dt_seen,
            last_seen=t,
            updated_at=t,
            seen_cx=det.cx,
            seen_cy=det.cy,
            age=track.age + max(0.0, t - track.updated_at),
            hits=track.hits + 1,
            miss=0.0,
        )

    def _age_out(self, track: Track, predicted: Track, t: float) -> None:
        """Keep an unmatched track at its predicted position, or drop it when too old."""

        miss = max(0.0, t - track.last_seen)
        if miss > self.config.max_age_s:
            del self.tracks[track.id]
            return
        self.tracks[track.id] = replace(
            predicted,
            updated_at=t,
            age=track.age + max(0.0, t - track.updated_at),
            miss=miss,
        )

    def update(self, detections: list[Detection], t: float) -> list[Detection]:
        """Associate detections sampled at time `t` and return alive tracks."""

        dets = [d for d in detections if d.area >= self.config.min_detection_area]

        originals = list(self.tracks.values())
        predicted = [self._predicted(tr, t) for tr in originals]
        assigned_tracks = np.zeros(len(originals), dtype=bool)
        assigned_dets = np.zeros(len(dets), dtype=bool)

        if predicted and dets:
            track_boxes = np.array(
                [(p.x, p.y, p.x + p.w, p.y + p.h) for p in predicted], dtype=np.float64
            )
            det_boxes = np.array([d.bbox for d in dets], dtype=np.float64)
            xA = np.maximum(track_boxes[:, None, 0], det_boxes[None, :, 0])
            yA = np.maximum(track_boxes[:, None, 1], det_boxes[None, :, 1])
            xB = np.minimum(track_boxes[:, None, 2], det_boxes[None, :, 2])
            yB = np.minimum(track_boxes[:, None, 3], det_boxes[None, :, 3])
            inter = np.maximum(0.0, xB - xA) * np.maximum(0.0, yB - yA)
            track_w = np.maximum(0.0, track_boxes[:, 2] - track_boxes[:, 0])
            track_h = np.maximum(0.0, track_boxes[:, 3] - track_boxes[:, 1])
            det_w = np.maximum(0.0, det_boxes[:, 2] - det_boxes[:, 0])
            det_h = np.maximum(0.0, det_boxes[:, 3] - det_boxes[:, 1])
            union = (track_w * track_h)[:, None] + (det_w * det_h)[None, :] - inter
            safe_union = np.where(union > 0.0, union, 1.0)
            iou_matrix = np.where(union > 0.0, inter / safe_union, 0.0)

            while True:
                ti, di = divmod(int(iou_matrix.argmax()), iou_matrix.shape[1])
                best = float(iou_matrix[ti, di])
                if best <= 0.0 or best < self.config.iou_threshold:
                    break
                self._match(originals[ti], dets[di], t)
                assigned_tracks[ti] = True
                assigned_dets[di] = True
                iou_matrix[ti, :] = IOU_SUPPRESS_VALUE
                iou_matrix[:, di] = IOU_SUPPRESS_VALUE

        for ti, track in enumerate(originals):
            if assigned_tracks[ti]:
                continue
            self._age_out(track, predicted[ti], t)

        for di, det in enumerate(dets):
            if assigned_dets[di]:
                continue
            self._spawn(det, t)

        return self.alive()

    def predict(self, t: float) -> list[Detection]:
        """Advance all tracks to time `t` without association and return alive tracks."""

        for track in list(self.tracks.values()):
            self._age_out(track, self._predicted(track, t), t)
        return self.alive()

    def alive(self) -> list[Detection]:
        """Confirmed tracks large enough to be used for framing."""

        cfg = self.config
        return [
            track.as_detection()
            for track in self.tracks.values()
            if track.hits >= cfg.min_hits and track.w * track.h >= cfg.min_area
        ]
