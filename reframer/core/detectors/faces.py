"""Face detection using OpenCV DNN (when model files are present) or a Haar cascade."""

from __future__ import annotations

import logging
from pathlib import Path

import cv2
import numpy as np

from reframer.core.detectors.yolo import scale_to_source
from reframer.core.types import Detection

logger = logging.getLogger(__name__)

DNN_PROTO = "deploy.prototxt"
DNN_MODEL = "res10_300x300_ssd_iter_140000.caffemodel"
DNN_INPUT_SIZE = 300
DNN_MEAN = (104.0, 177.0, 123.0)
# Haar cascades produce no score; give them a fixed one above the default threshold.
HAAR_CONFIDENCE = 0.6


def find_dnn_model(model_dir: str | Path | None) -> tuple[Path, Path] | None:
    """Locate the SSD prototxt/caffemodel pair in `model_dir` or ./models."""

    search_dirs = [Path(model_dir)] if model_dir else []
    search_dirs.append(Path.cwd() / "models")
    for d in search_dirs:
        proto = d / DNN_PROTO
        model = d / DNN_MODEL
        if proto.exists() and model.exists():
            return proto, model
    return None


class FaceDetector:
    """Face detector with kind `face`.

    The backend is chosen once at construction: DNN SSD when the model files are
    found, otherwise the frontal-face Haar cascade bundled with OpenCV.
    """

    def __init__(self, conf: float = 0.5, min_size: int = 80, model_dir: str | None = None) -> None:
        self.conf = conf
        self.min_size = min_size
        self._net: cv2.dnn.Net | None = None
        self._cascade: cv2.CascadeClassifier | None = None

        paths = find_dnn_model(model_dir)
        if paths is not None:
            proto, model = paths
            self._net = cv2.dnn.readNetFromCaffe(str(proto), str(model))
            logger.info("Loaded DNN face detector from %s", model.parent)
        else:
            cascade_path = cv2.data.haarcascades + "haarcascade_frontalface_default.xml"
            self._cascade = cv2.CascadeClassifier(cascade_path)
            if self._cascade.empty():
                raise RuntimeError(f"Failed to load Haar cascade: {cascade_path}")
            logger.info("DNN face model not found; using Haar cascade")

    @property
    def backend(self) -> str:
        return "dnn" if self._net is not None else "haar"

    def _detect_dnn(self, image: np.ndarray) -> list[tuple[float, float, float, float, float]]:
        assert self._net is not None
        h, w = image.shape[:2]
        blob = cv2.dnn.blobFromImage(
            cv2.resize(image, (DNN_INPUT_SIZE, DNN_INPUT_SIZE)),
            1.0,
            (DNN_INPUT_SIZE, DNN_INPUT_SIZE),
            DNN_MEAN,
        )
        self._net.setInput(blob)
        raw = self._net.forward()

        boxes = []
        for i in range(raw.shape[2]):
            score = float(raw[0, 0, i, 2])
            if score < self.conf:
                continue
            x1, y1, x2, y2 = (raw[0, 0, i, 3:7] * np.array([w, h, w, h])).tolist()
            x1, y1 = max(0.0, x1), max(0.0, y1)
            x2, y2 = min(float(w), x2), min(float(h), y2)
            boxes.append((x1, y1, x2, y2, score))
        return boxes

    def _detect_haar(self, image: np.ndarray) -> list[tuple[float, float, float, float, float]]:
        assert self._cascade is not None
        gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY) if image.ndim == 3 else image
        min_side = max(20, int(self.min_size))
        rects = self._cascade.detectMultiScale(
            gray, scaleFactor=1.1, minNeighbors=4, minSize=(min_side, min_side)
        )
        return [
            (float(x), float(y), float(x + w), float(y + h), HAAR_CONFIDENCE)
            for (x, y, w, h) in rects
        ]

    def detect(self, frame: np.ndarray, target_width: int, target_height: int) -> list[Detection]:
        """Detect faces in `frame` and return them in source pixels."""

        raw = self._detect_dnn(frame) if self._net is not None else self._detect_haar(frame)
        out: list[Detection] = []
        for x1, y1, x2, y2, score in raw:
            if score < self.conf or min(x2 - x1, y2 - y1) < self.min_size:
                continue
            x, y, w, h = scale_to_source(x1, y1, x2, y2, frame.shape, target_width, target_height)
            out.append(Detection(x=x, y=y, w=w, h=h, score=score, kind="face"))
        return out
