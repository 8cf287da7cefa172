"""Crop preview drawing helpers (OpenCV)."""

from __future__ import annotations

from collections.abc import Sequence

import cv2
import numpy as np

from reframer.core.types import CropKeyframe, Detection

CROP_COLOR = (57, 255, 20)  # bright green
FACE_COLOR = (255, 128, 0)  # orange
BODY_COLOR = (0, 170, 255)
TEXT_COLOR = (255, 255, 255)
DIM_ALPHA = 0.45


def draw_crop_preview(
    frame: np.ndarray,
    keyframe: CropKeyframe,
    detections: Sequence[Detection] = (),
) -> np.ndarray:
    """Return a copy of `frame` with the area outside the crop dimmed and boxes drawn."""

    img = frame.copy()
    h, w = img.shape[:2]
    x1 = max(0, min(int(keyframe.x), w))
    y1 = max(0, min(int(keyframe.y), h))
    x2 = max(x1, min(int(keyframe.x + keyframe.w), w))
    y2 = max(y1, min(int(keyframe.y + keyframe.h), h))

    dimmed = (img.astype(np.float32) * DIM_ALPHA).astype(img.dtype)
    dimmed[y1:y2, x1:x2] = img[y1:y2, x1:x2]
    img = dimmed
    cv2.rectangle(img, (x1, y1), (max(x1, x2 - 1), max(y1, y2 - 1)), CROP_COLOR, 2)

    for det in detections:
        bx1, by1, bx2, by2 = map(int, det.bbox)
        color = FACE_COLOR if det.kind == "face" else BODY_COLOR
        cv2.rectangle(img, (bx1, by1), (bx2, by2), color, 2)
        label = f"ID {det.track_id}" if det.track_id is not None else f"{det.score:.2f}"
        cv2.putText(
            img,
            label,
            (bx1, max(by1 - 8, 0)),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.5,
            TEXT_COLOR,
            1,
            cv2.LINE_AA,
        )

    cv2.putText(
        img,
        f"t={keyframe.t:.2f}s z={keyframe.zoom:.2f}",
        (x1 + 4, y1 + 18),
        cv2.FONT_HERSHEY_SIMPLEX,
        0.5,
        TEXT_COLOR,
        1,
        cv2.LINE_AA,
    )
    return img
