from __future__ import annotations

import numpy as np
import pytest

from reframer.core.errors import FramingCancelled
from reframer.core.framing.static_crop import (
    GlobalSamplingConfig,
    calculate_static_crop,
    compute_global_crop,
    compute_segment_static_crop,
    plan_sample_windows,
    static_center_x,
)
from reframer.core.types import Detection, PersonSnapshot
from reframer.core.video_sources.base import SampledFrame

W, H = 1920, 1080


def _det(cx: float, w: float = 200, h: float = 400, score: float = 0.9) -> Detection:
    return Detection(x=cx - w / 2, y=300, w=w, h=h, score=score)


class FakeSampler:
    def __init__(self, frames_per_window: int = 2, fail_on: set[int] | None = None):
        self.frames_per_window = frames_per_window
        self.fail_on = fail_on or set()
        self.calls = 0

    def sample(self, video_path, start, duration, fps, resize_width=None):
        idx = self.calls
        self.calls += 1
        if idx in self.fail_on:
            raise RuntimeError("decode failed")
        for k in range(self.frames_per_window):
            yield SampledFrame(time=start + k / fps, image=np.zeros((4, 4, 3), dtype=np.uint8))


class FakeDetector:
    def __init__(self, detections):
        self.detections = detections

    def detect(self, frame, target_width, target_height):
        return list(self.detections)


class FlakyDetector(FakeDetector):
    def __init__(self, detections, fail_every: int):
        super().__init__(detections)
        self.fail_every = fail_every
        self.calls = 0

    def detect(self, frame, target_width, target_height):
        self.calls += 1
        if self.calls % self.fail_every == 0:
            raise RuntimeError("inference failed")
        return super().detect(frame, target_width, target_height)


def test_tight_cluster_centres_on_it_with_slight_centre_pull():
    dets = [_det(1200) for _ in range(10)]
    assert static_center_x(dets, W, H) == pytest.approx(1200 * 0.9 + 960 * 0.1)
    crop = calculate_static_crop(dets, W, H)
    assert crop.x == 873
    assert (crop.w, crop.h, crop.y) == (606, 1080, 0)
    assert crop.z_min == pytest.approx(1.0)


def test_two_separated_clusters_place_crop_between_them():
    dets = [_det(400) for _ in range(5)] + [_det(1500) for _ in range(5)]
    # Anchor midpoint 950 blended with the weighted median (400), then pulled to centre.
    assert static_center_x(dets, W, H) == pytest.approx(852.0)


def test_center_shift_is_capped():
    cx = static_center_x([_det(1600)], W, H)
    assert cx == pytest.approx(960 + 0.22 * W)
    crop = calculate_static_crop([_det(1600)], W, H)
    assert crop.x == 1079
    assert 0 <= crop.x <= W - crop.w


def test_empty_pool_gives_centred_crop():
    crop = calculate_static_crop([], W, H)
    assert crop.x == 657
    assert crop.w == 606


def test_weak_detections_ignored_when_enough_strong_ones():
    strong = [_det(1200) for _ in range(8)]
    weak = [_det(300, w=40, h=40, score=0.1) for _ in range(20)]
    assert static_center_x(strong + weak, W, H) == pytest.approx(static_center_x(strong, W, H))


def test_plan_sample_windows_long_source():
    windows = plan_sample_windows(600.0)
    assert [round(s, 3) for s, _ in windows] == [60.0, 153.0, 246.0, 339.0, 432.0, 525.0]
    assert all(length == 15.0 for _, length in windows)


def test_plan_sample_windows_respects_skip_until():
    windows = plan_sample_windows(600.0, skip_until=200.0)
    assert windows[0][0] == pytest.approx(200.0)
    assert len(windows) == 6


def test_plan_sample_windows_short_sources():
    windows = plan_sample_windows(20.0)
    assert [s for s, _ in windows] == pytest.approx([2.0, 2.5, 3.0])
    assert all(length == pytest.approx(15.0) for _, length in windows)

    tiny = plan_sample_windows(10.0)
    assert set(tiny) == {(0.0, 10.0)}

    assert plan_sample_windows(0.0) == []


def test_global_crop_pools_windows():
    sampler = FakeSampler(frames_per_window=2)
    detector = FakeDetector([_det(1200) for _ in range(5)])
    crop = compute_global_crop(detector, sampler, "in.mp4", 600.0, W, H, sample_fps=2.0)
    assert sampler.calls == 6
    assert crop is not None
    assert crop.x == 873


def test_global_crop_skips_failing_window(caplog):
    sampler = FakeSampler(frames_per_window=2, fail_on={0})
    detector = FakeDetector([_det(1200) for _ in range(5)])
    crop = compute_global_crop(detector, sampler, "in.mp4", 600.0, W, H, sample_fps=2.0)
    assert crop is not None
    assert sampler.calls == 6
    assert "failed" in caplog.text


def test_global_crop_keeps_window_when_one_frame_fails_detection(caplog):
    sampler = FakeSampler(frames_per_window=10)
    detector = FlakyDetector([_det(1200)], fail_every=10)
    crop = compute_global_crop(detector, sampler, "in.mp4", 600.0, W, H, sample_fps=2.0)
    assert detector.calls == 60
    # 54 pooled detections clear the 50 minimum only if every window survives.
    assert crop is not None
    assert crop.x == 873
    assert "Detector failed" in caplog.text
    assert not [r for r in caplog.records if r.levelname == "ERROR"]


def test_global_crop_insufficient_detections():
    sampler = FakeSampler(frames_per_window=1)
    detector = FakeDetector([_det(1200)])
    assert compute_global_crop(detector, sampler, "in.mp4", 600.0, W, H, sample_fps=2.0) is None


def test_global_crop_drops_low_score_detections():
    sampler = FakeSampler(frames_per_window=5)
    detector = FakeDetector([_det(1200, score=0.2) for _ in range(10)])
    assert compute_global_crop(detector, sampler, "in.mp4", 600.0, W, H, sample_fps=2.0) is None

    lenient = GlobalSamplingConfig(min_detection_score=0.1)
    crop = compute_global_crop(detector, FakeSampler(5), "in.mp4", 600.0, W, H, 2.0, sampling=lenient)
    assert crop is not None


def test_global_crop_cancellation():
    with pytest.raises(FramingCancelled):
        compute_global_crop(
            FakeDetector([]),
            FakeSampler(),
            "in.mp4",
            600.0,
            W,
            H,
            sample_fps=2.0,
            should_cancel=lambda: True,
        )


def test_segment_static_crop_biases_toward_centre():
    timeline = [PersonSnapshot(i / 12, (_det(1600),)) for i in range(12)]
    kf = compute_segment_static_crop(timeline, W, H, seg_start=3.0)
    assert kf is not None
    assert kf.t == 3.0
    assert kf.x == 1085
    assert (kf.w, kf.h, kf.zoom) == (606, 1080, pytest.approx(1.0))

    left = compute_segment_static_crop([PersonSnapshot(0.0, (_det(300),))], W, H, seg_start=0.0)
    assert left.x == 209


def test_segment_static_crop_without_anchors():
    assert compute_segment_static_crop([PersonSnapshot(0.0, ())], W, H, 0.0) is None
    assert compute_segment_static_crop([], W, H, 0.0) is None
