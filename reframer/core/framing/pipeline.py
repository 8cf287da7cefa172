"""Framing pipeline orchestration.

This module ties together frame sampling, detection, tracking, trajectory
optimisation and post-processing into per-segment crop maps, and exposes the
whole-source global crop.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field

from reframer.core.detectors.person import PersonDetector
from reframer.core.errors import ExpressionTooLargeError, FramingCancelled, InvalidCropError
from reframer.core.framing.expressions import ExpressionConfig, build_crop_filter
from reframer.core.framing.postprocess import PostprocessConfig, postprocess
from reframer.core.framing.speakers import SpeakerConfig, SpeakerTimeline
from reframer.core.framing.static_crop import (
    GlobalSamplingConfig,
    StaticCropConfig,
    compute_global_crop,
    compute_segment_static_crop,
)
from reframer.core.framing.trajectory import TrajectoryConfig, compute_raw_keyframes
from reframer.core.geometry import zoom_floor
from reframer.core.trackers.simple_tracker import SimpleTracker, TrackerConfig
from reframer.core.types import (
    Computed,
    Constraints,
    CropFilter,
    CropKeyframe,
    Failed,
    FramingResult,
    GlobalCrop,
    Insufficient,
    PersonSnapshot,
    SegmentRequest,
)
from reframer.core.video_sources.base import FrameSampler, OpenCVFrameSampler

logger = logging.getLogger(__name__)

FATAL_ERRORS = (InvalidCropError, ExpressionTooLargeError, FramingCancelled)


@dataclass(frozen=True)
class SamplingConfig:
    fps: float = 12.0
    # Run the detector every N sampled frames; predict-only in between.
    detect_every: int = 3
    detect_width: int | None = None


@dataclass(frozen=True)
class FramingConfig:
    sampling: SamplingConfig = field(default_factory=SamplingConfig)
    tracker: TrackerConfig = field(default_factory=TrackerConfig)
    speakers: SpeakerConfig = field(default_factory=SpeakerConfig)
    trajectory: TrajectoryConfig = field(default_factory=TrajectoryConfig)
    postprocess: PostprocessConfig = field(default_factory=PostprocessConfig)
    static_crop: StaticCropConfig = field(default_factory=StaticCropConfig)
    global_sampling: GlobalSamplingConfig = field(default_factory=GlobalSamplingConfig)
    expressions: ExpressionConfig = field(default_factory=ExpressionConfig)


def detect_persons_timeline(
    detector: PersonDetector,
    sampler: FrameSampler,
    video_path: str,
    seg_start: float,
    seg_end: float,
    base_w: int,
    base_h: int,
    sampling: SamplingConfig | None = None,
    tracker_config: TrackerConfig | None = None,
) -> list[PersonSnapshot]:
    """One snapshot of alive tracks per sampled frame of `[seg_start, seg_end)`.

    The detector runs on every `detect_every`-th frame, or whenever there are no
    tracks; other frames only advance the tracker by prediction. A detector error
    on one frame counts as zero detections. A decode failure ends the timeline
    early and keeps the frames sampled so far.
    """

    cfg = sampling or SamplingConfig()
    duration = max(0.0, seg_end - seg_start)
    if duration == 0.0:
        return []

    tracker = SimpleTracker((base_w, base_h), tracker_config)
    out: list[PersonSnapshot] = []
    detector_runs = 0
    frames = iter(sampler.sample(video_path, seg_start, duration, cfg.fps, resize_width=cfg.detect_width))
    idx = 0
    while True:
        try:
            frame = next(frames)
        except StopIteration:
            break
        except Exception:
            logger.exception("Frame sampling failed for %s at frame %d, keeping %d frames", video_path, idx, len(out))
            break
        if idx % cfg.detect_every == 0 or not tracker.tracks:
            try:
                dets = detector.detect(frame.image, base_w, base_h)
            except Exception as exc:
                logger.warning("Detector failed at t=%.2fs: %s", frame.time, exc)
                dets = []
            detector_runs += 1
            alive = tracker.update(dets, frame.time)
        else:
            alive = tracker.predict(frame.time)
        out.append(PersonSnapshot(time=frame.time, detections=tuple(alive)))
        idx += 1

    logger.info(
        "Person timeline: %d frames, %d detector runs, %d frames with persons",
        len(out),
        detector_runs,
        sum(1 for s in out if s.detections),
    )
    return out


class FramingEngine:
    """Per-clip crop maps and per-source global crops.

    The engine never reads settings itself: build it with a `FramingConfig`
    (see `framing_config_from_settings`) and a ready detector (see
    `load_detector`).
    """

    def __init__(
        self,
        detector: PersonDetector,
        sampler: FrameSampler | None = None,
        config: FramingConfig | None = None,
    ) -> None:
        self.detector = detector
        self.sampler: FrameSampler = sampler or OpenCVFrameSampler()
        self.config = config or FramingConfig()

    def z_min(self, base_w: int, base_h: int) -> float:
        return zoom_floor(base_w, base_h, self.config.trajectory.z_min_floor)

    def person_timeline(self, request: SegmentRequest) -> list[PersonSnapshot]:
        return detect_persons_timeline(
            self.detector,
            self.sampler,
            request.video_path,
            request.seg_start,
            request.seg_end,
            request.base_width,
            request.base_height,
            sampling=self.config.sampling,
            tracker_config=self.config.tracker,
        )

    def compute_dynamic(
        self,
        request: SegmentRequest,
        constraints: Constraints,
        timeline: Sequence[PersonSnapshot] | None = None,
    ) -> FramingResult:
        """Tracked, optimised and post-processed crop path for one segment."""

        if timeline is None:
            timeline = self.person_timeline(request)
        if not timeline:
            return Insufficient()

        speakers = SpeakerTimeline.from_words(
            request.words, request.seg_start, request.seg_end, self.config.speakers
        )
        raw = compute_raw_keyframes(
            timeline,
            request.base_width,
            request.base_height,
            constraints,
            config=self.config.trajectory,
            speakers=speakers or None,
        )
        if not raw:
            return Insufficient()

        kfs = postprocess(
            raw,
            request.seg_start,
            request.seg_end,
            request.base_width,
            request.base_height,
            constraints,
            z_min=self.z_min(request.base_width, request.base_height),
            config=self.config.postprocess,
        )
        if not kfs:
            return Insufficient()
        return Computed(keyframes=kfs, mode="dynamic")

    def compute_segment_static(
        self,
        request: SegmentRequest,
        global_crop: GlobalCrop | None = None,
        timeline: Sequence[PersonSnapshot] | None = None,
    ) -> FramingResult:
        """Single-keyframe crop: the persisted global crop, or one from this segment's anchors."""

        if global_crop is not None:
            logger.info(
                "Using global crop %dx%d @ (%d,%d)",
                global_crop.w,
                global_crop.h,
                global_crop.x,
                global_crop.y,
            )
            return Computed(keyframes=[global_crop.to_keyframe(request.seg_start)], mode="global")

        if timeline is None:
            timeline = self.person_timeline(request)
        kf = compute_segment_static_crop(
            timeline,
            request.base_width,
            request.base_height,
            request.seg_start,
            config=self.config.static_crop,
        )
        if kf is None:
            return Insufficient()
        return Computed(keyframes=[kf], mode="static")

    def compute_crop_map(
        self,
        request: SegmentRequest,
        constraints: Constraints,
        global_crop: GlobalCrop | None = None,
    ) -> FramingResult:
        """Global crop if supplied, else dynamic framing, else the segment static crop.

        The person timeline is computed once and shared by both fallbacks.
        """

        if global_crop is not None:
            return self.compute_segment_static(request, global_crop=global_crop)

        timeline = self.person_timeline(request)
        failures: list[str] = []

        stages: list[tuple[str, Callable[[], FramingResult]]] = [
            ("dynamic", lambda: self.compute_dynamic(request, constraints, timeline=timeline)),
            ("static", lambda: self.compute_segment_static(request, timeline=timeline)),
        ]
        for name, stage in stages:
            try:
                result = stage()
            except FATAL_ERRORS:
                raise
            except Exception as exc:
                logger.exception("%s framing failed for %s", name.capitalize(), request.video_path)
                failures.append(f"{name}: {exc}")
                continue
            if isinstance(result, Computed):
                logger.info("Crop map: using %s framing (%d keyframes)", result.mode, len(result.keyframes))
                return result
            if isinstance(result, Failed):
                failures.append(f"{name}: {result.reason}")

        if failures:
            return Failed("; ".join(failures))
        return Insufficient()

    def compute_crop_maps(
        self,
        requests: Iterable[SegmentRequest],
        constraints: Constraints,
        global_crop: GlobalCrop | None = None,
        should_cancel: Callable[[], bool] | None = None,
    ) -> list[FramingResult]:
        """Crop maps for several clips, one after another.

        Cancellation is only checked between clips.
        """

        results: list[FramingResult] = []
        for i, request in enumerate(requests):
            if should_cancel is not None and should_cancel():
                raise FramingCancelled(f"cancelled after {i} clip(s)")
            results.append(self.compute_crop_map(request, constraints, global_crop))
        return results

    def compute_global_crop(
        self,
        video_path: str,
        duration: float,
        base_w: int,
        base_h: int,
        skip_until: float = 0.0,
        should_cancel: Callable[[], bool] | None = None,
    ) -> GlobalCrop | None:
        return compute_global_crop(
            self.detector,
            self.sampler,
            video_path,
            duration,
            base_w,
            base_h,
            sample_fps=self.config.sampling.fps,
            skip_until=skip_until,
            sampling=self.config.global_sampling,
            config=self.config.static_crop,
            should_cancel=should_cancel,
        )

    def build_filter(self, keyframes: Sequence[CropKeyframe], base_w: int, base_h: int) -> CropFilter:
        """Render-boundary crop filter; raises on invalid rectangles or oversized output."""

        return build_crop_filter(keyframes, base_w, base_h, self.config.expressions)
