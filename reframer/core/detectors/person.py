from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from reframer.core.types import Detection, Frame

if TYPE_CHECKING:
    from reframer.core.config.settings import FramingSettings

logger = logging.getLogger(__name__)


class PersonDetector(Protocol):
    def detect(self, frame: Frame, target_width: int, target_height: int) -> list[Detection]:
        """Return zero or more detections scaled to `target_width` x `target_height`."""
        ...


class FaceFirstDetector:
    """Return faces when any are found in a frame, otherwise bodies."""

    def __init__(self, face: PersonDetector | None, body: PersonDetector | None) -> None:
        if face is None and body is None:
            raise ValueError("FaceFirstDetector needs at least one detector")
        self.face = face
        self.body = body

    def detect(self, frame: Frame, target_width: int, target_height: int) -> list[Detection]:
        if self.face is not None:
            faces = self.face.detect(frame, target_width, target_height)
            if faces:
                return faces
        if self.body is not None:
            return self.body.detect(frame, target_width, target_height)
        return []


class NullDetector:
    """Detector that never finds anyone (dry runs)."""

    def detect(self, frame: Frame, target_width: int, target_height: int) -> list[Detection]:
        return []


def load_detector(settings: FramingSettings) -> FaceFirstDetector:
    """Load the face and body models and return a ready detector.

    A backend that fails to load is logged and skipped; if neither loads the
    error from the body model is raised.
    """

    from reframer.core.detectors.faces import FaceDetector
    from reframer.core.detectors.yolo import YoloPersonDetector

    face: PersonDetector | None = None
    try:
        face = FaceDetector(
            conf=settings.face_confidence,
            min_size=settings.face_min_size,
            model_dir=settings.face_model_dir,
        )
    except Exception:
        logger.exception("Face detector unavailable; continuing with body detection only")

    body: PersonDetector | None = None
    try:
        body = YoloPersonDetector(
            model_name=settings.model_name,
            conf=settings.body_confidence,
            min_size=settings.body_min_size,
            torch_threads=settings.torch_threads,
        )
    except Exception:
        if face is None:
            raise
        logger.exception("Body detector unavailable; continuing with face detection only")

    logger.info(
        "Detector ready (face=%s body=%s)",
        getattr(face, "backend", None),
        settings.model_name if body is not None else None,
    )
    return FaceFirstDetector(face=face, body=body)
