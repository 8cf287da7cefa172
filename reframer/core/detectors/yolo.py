"""Ultralytics YOLO body detector integration.

Torch is only imported opportunistically (for `inference_mode` and thread
tuning); ONNX exports run without it.
"""

from __future__ import annotations

import importlib
import logging
from contextlib import nullcontext
from typing import Any

import numpy as np
from ultralytics import YOLO

from reframer.core.types import Detection

logger = logging.getLogger(__name__)

YOLO_DEFAULT_MODEL = "yolo11n.pt"


def scale_to_source(
    x1: float,
    y1: float,
    x2: float,
    y2: float,
    frame_shape: tuple[int, ...],
    target_width: int,
    target_height: int,
) -> tuple[float, float, float, float]:
    """Map an xyxy box from frame pixels to source pixels as (x, y, w, h)."""

    fh, fw = int(frame_shape[0]), int(frame_shape[1])
    sx = target_width / float(fw) if fw > 0 else 1.0
    sy = target_height / float(fh) if fh > 0 else 1.0
    return x1 * sx, y1 * sy, (x2 - x1) * sx, (y2 - y1) * sy


class YoloPersonDetector:
    """Person (body) detector wrapper around Ultralytics YOLO.

    Runs on CPU and keeps only COCO class 0. Boxes whose shorter side is below
    `min_size` frame pixels are discarded.
    """

    def __init__(
        self,
        model_name: str = YOLO_DEFAULT_MODEL,
        conf: float = 0.3,
        min_size: int = 100,
        torch_threads: int | None = None,
    ):
        """Create a detector.

        Args:
            model_name: Model path/name understood by Ultralytics (e.g. `yolo11n.pt`
                or an `.onnx` export).
            conf: Confidence threshold applied inside the Ultralytics predictor.
            min_size: Minimum box side in frame pixels.
            torch_threads: Optional torch intra-op thread count.
        """

        self.model_name = model_name
        self.is_onnx = model_name.lower().endswith(".onnx")
        self.device: str = "cpu"
        self.conf = conf
        self.min_size = min_size
        self._torch_inference_mode: Any | None = None
        if not self.is_onnx:
            try:
                torch = importlib.import_module("torch")
                self._torch_inference_mode = torch.inference_mode
                if torch_threads:
                    torch.set_num_threads(max(1, int(torch_threads)))
            except ImportError:
                self._torch_inference_mode = None

        self.model = YOLO(model_name)
        if not self.is_onnx:
            try:
                self.model.to(self.device)
            except Exception:
                # predict(device='cpu') still enforces CPU.
                logger.debug("Model %s does not support .to(); relying on predict(device)", model_name)

        self._predict_kwargs: dict[str, Any] = {
            "conf": self.conf,
            "verbose": False,
            "classes": [0],
            "device": self.device,
        }

        if not self.is_onnx:
            try:
                self.model.fuse()
            except Exception:
                logger.debug("Model %s does not support fuse()", model_name)

    def detect(self, frame: np.ndarray, target_width: int, target_height: int) -> list[Detection]:
        """Run inference on a single frame and return body detections in source pixels."""

        infer_ctx = (
            self._torch_inference_mode()
            if self._torch_inference_mode is not None
            else nullcontext()
        )
        with infer_ctx:
            results = self.model.predict(frame, **self._predict_kwargs)

        if not results:
            return []

        boxes = getattr(results[0], "boxes", None)
        if boxes is None or len(boxes) == 0:
            return []

        data = boxes.data
        if hasattr(data, "cpu"):
            data = data.cpu()
        data_np = data.numpy() if hasattr(data, "numpy") else np.asarray(data)
        # Boxes.data = (x1,y1,x2,y2,conf,cls)
        if data_np.ndim != 2 or data_np.shape[1] < 5:
            return []

        out: list[Detection] = []
        for row in data_np:
            x1, y1, x2, y2, score = (float(v) for v in row[:5])
            if min(x2 - x1, y2 - y1) < self.min_size:
                continue
            x, y, w, h = scale_to_source(x1, y1, x2, y2, frame.shape, target_width, target_height)
            out.append(Detection(x=x, y=y, w=w, h=h, score=score, kind="body"))
        return out
