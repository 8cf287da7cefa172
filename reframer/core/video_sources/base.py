"""Frame sampling for framing runs.

The framing pipeline consumes frames through a small interface (`FrameSampler`)
so decode can be swapped (or faked in tests) without touching the tracker or
trajectory code. Frames are produced lazily: each one is dropped by the caller
after detection, which keeps peak memory to a single decoded image.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Protocol

import cv2

from reframer.core.types import Frame

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SampledFrame:
    time: float
    image: Frame


@dataclass(frozen=True)
class VideoInfo:
    width: int
    height: int
    fps: float
    duration: float


class FrameSampler(Protocol):
    def sample(
        self,
        video_path: str,
        start: float,
        duration: float,
        fps: float,
        resize_width: int | None = None,
    ) -> Iterator[SampledFrame]:
        """Yield frames at `start + k/fps` for `k < ceil(duration * fps)`."""
        ...


def sample_times(start: float, duration: float, fps: float) -> list[float]:
    """Sample timestamps for a window; empty for a non-positive duration or rate."""

    if duration <= 0 or fps <= 0:
        return []
    count = int(math.ceil(duration * fps - 1e-9))
    return [start + k / fps for k in range(count)]


def _open(video_path: str) -> cv2.VideoCapture:
    cap = cv2.VideoCapture(video_path)
    if not cap.isOpened():
        cap.release()
        raise RuntimeError(f"Failed to open video source: {video_path}")
    return cap


def _resize(image: Frame, resize_width: int | None) -> Frame:
    if not resize_width or image.shape[1] <= resize_width:
        return image
    scale = resize_width / float(image.shape[1])
    return cv2.resize(
        image,
        (int(resize_width), max(1, int(round(image.shape[0] * scale)))),
        interpolation=cv2.INTER_AREA,
    )


def probe(video_path: str) -> VideoInfo:
    """Read the container's resolution, frame rate and duration."""

    cap = _open(video_path)
    try:
        width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        fps = float(cap.get(cv2.CAP_PROP_FPS))
        frames = float(cap.get(cv2.CAP_PROP_FRAME_COUNT))
    finally:
        cap.release()
    duration = frames / fps if fps > 0 and frames > 0 else 0.0
    return VideoInfo(width=width, height=height, fps=fps, duration=duration)


class OpenCVFrameSampler:
    """A `FrameSampler` backed by `cv2.VideoCapture`.

    Decodes sequentially from a single seek point and grabs (without decoding)
    the frames between two sample times.
    """

    def sample(
        self,
        video_path: str,
        start: float,
        duration: float,
        fps: float,
        resize_width: int | None = None,
    ) -> Iterator[SampledFrame]:
        times = sample_times(start, duration, fps)
        if not times:
            return

        cap = _open(video_path)
        try:
            native_fps = float(cap.get(cv2.CAP_PROP_FPS))
            if native_fps <= 0.0:
                native_fps = 30.0
                logger.warning("No frame rate reported for %s; assuming %.1f", video_path, native_fps)

            current = int(round(max(0.0, start) * native_fps))
            cap.set(cv2.CAP_PROP_POS_FRAMES, current)
            # Sampling faster than the native rate repeats the last decoded frame.
            last_index = -1
            image = None

            for t in times:
                wanted = int(round(max(0.0, t) * native_fps))
                if image is None or wanted > last_index:
                    while current < wanted:
                        if not cap.grab():
                            return
                        current += 1
                    ok, decoded = cap.read()
                    if not ok or decoded is None:
                        logger.debug("End of stream at t=%.3f in %s", t, video_path)
                        return
                    last_index = current
                    current += 1
                    image = _resize(decoded, resize_width)
                yield SampledFrame(time=t, image=image)
        finally:
            cap.release()
