from __future__ import annotations

import numpy as np

from reframer.core.overlay.draw import DIM_ALPHA, draw_crop_preview
from reframer.core.types import CropKeyframe, Detection


def test_preview_dims_outside_crop_and_returns_copy():
    frame = np.full((100, 200, 3), 200, dtype=np.uint8)
    kf = CropKeyframe(t=1.0, x=50, y=0, w=56, h=100, zoom=1.0)

    out = draw_crop_preview(frame, kf)

    assert out is not frame
    assert out.shape == frame.shape
    assert (frame == 200).all()
    assert abs(int(out[50, 10, 0]) - 200 * DIM_ALPHA) <= 1
    assert out[90, 80, 0] == 200


def test_preview_draws_crop_outline_and_detections():
    frame = np.zeros((100, 200, 3), dtype=np.uint8)
    kf = CropKeyframe(t=0.0, x=50, y=0, w=56, h=100, zoom=1.0)
    det = Detection(x=60, y=30, w=30, h=40, score=0.8, track_id=3)

    out = draw_crop_preview(frame, kf, [det])

    assert tuple(out[50, 50]) == (57, 255, 20)
    assert out[30:71, 60].any()


def test_preview_clamps_crop_larger_than_frame():
    frame = np.zeros((40, 40, 3), dtype=np.uint8)
    kf = CropKeyframe(t=0.0, x=-10, y=-10, w=80, h=80, zoom=1.0)
    out = draw_crop_preview(frame, kf, [Detection(x=5, y=5, w=10, h=10, score=0.5, kind="face")])
    assert out.shape == frame.shape
