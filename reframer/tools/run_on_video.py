from __future__ import annotations

import argparse
import json
import logging
from dataclasses import asdict, is_dataclass
from pathlib import Path

import cv2
import numpy as np

from reframer.core.config.presets import preset_constraints
from reframer.core.config.settings import framing_config_from_settings, load_settings
from reframer.core.detectors.person import NullDetector, PersonDetector, load_detector
from reframer.core.errors import FramingError
from reframer.core.framing.pipeline import FramingEngine
from reframer.core.framing.validation import validate_crop_map
from reframer.core.overlay.draw import draw_crop_preview
from reframer.core.types import Computed, CropKeyframe, SegmentRequest, TranscriptWord
from reframer.core.video_sources.base import OpenCVFrameSampler, probe

logger = logging.getLogger("reframer.tools.run_on_video")


def _to_jsonable(obj):
    if is_dataclass(obj):
        return asdict(obj)
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, dict):
        return {str(k): _to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_jsonable(v) for v in obj]
    return obj


def _load_words(path: str | None) -> tuple[TranscriptWord, ...]:
    if not path:
        return ()
    with open(path, encoding="utf-8") as f:
        raw = json.load(f)
    return tuple(
        TranscriptWord(
            start=float(w["start"]),
            end=float(w["end"]),
            text=str(w.get("text", "")),
            speaker=w.get("speaker"),
        )
        for w in raw
    )


def _write_preview(
    path: str,
    video_path: str,
    keyframe: CropKeyframe,
    detector: PersonDetector,
    base_w: int,
    base_h: int,
) -> bool:
    """Save the frame at the keyframe's time with the crop and its detections drawn on it."""

    frame = next(iter(OpenCVFrameSampler().sample(video_path, keyframe.t, 1e-3, 1000.0)), None)
    if frame is None:
        logger.warning("No frame at t=%.2fs for preview", keyframe.t)
        return False
    try:
        detections = detector.detect(frame.image, base_w, base_h)
    except Exception as exc:
        logger.warning("Detector failed on preview frame at t=%.2fs: %s", frame.time, exc)
        detections = []
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    return bool(cv2.imwrite(path, draw_crop_preview(frame.image, keyframe, detections)))


def run(args) -> int:
    settings = load_settings()
    if args.preset:
        settings.constraints_preset = args.preset
    info = probe(args.input)
    detector = NullDetector() if args.mock else load_detector(settings)
    engine = FramingEngine(detector=detector, config=framing_config_from_settings(settings))

    output: dict = {
        "input": args.input,
        "video": _to_jsonable(info),
        "preset": settings.constraints_preset,
    }

    if args.global_crop:
        crop = engine.compute_global_crop(
            args.input, info.duration, info.width, info.height, skip_until=args.skip_until
        )
        output["global_crop"] = crop.to_dict() if crop is not None else None
        if crop is not None and args.preview:
            preview_at = crop.to_keyframe(max(args.skip_until, info.duration / 2.0))
            wrote = _write_preview(args.preview, args.input, preview_at, detector, info.width, info.height)
            output["preview"] = args.preview if wrote else None
    else:
        end = args.end if args.end is not None else info.duration
        request = SegmentRequest(
            video_path=args.input,
            base_width=info.width,
            base_height=info.height,
            seg_start=args.start,
            seg_end=end,
            words=_load_words(args.words),
        )
        result = engine.compute_crop_map(request, preset_constraints(settings.constraints_preset))
        output["result"] = type(result).__name__
        output["outcome"] = _to_jsonable(result)
        if isinstance(result, Computed):
            try:
                crop_filter = engine.build_filter(result.keyframes, info.width, info.height)
            except FramingError as exc:
                logger.error("Crop filter rejected: %s", exc)
                return 1
            output["filter"] = _to_jsonable(crop_filter)
            output["validation"] = _to_jsonable(
                validate_crop_map(
                    result.keyframes,
                    info.width,
                    info.height,
                    engine.z_min(info.width, info.height),
                    min_time_delta=settings.min_keyframe_delta_s,
                )
            )
            if args.preview:
                first = result.keyframes[0]
                wrote = _write_preview(args.preview, args.input, first, detector, info.width, info.height)
                output["preview"] = args.preview if wrote else None

    out_path = Path(args.output)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(output, f, indent=2)
    print(f"Wrote framing output to {out_path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Compute a 9:16 crop map for a video")
    parser.add_argument("--input", required=True, help="Path to video file")
    parser.add_argument("--output", required=True, help="Where to save JSON output")
    parser.add_argument("--start", type=float, default=0.0, help="Segment start (s)")
    parser.add_argument("--end", type=float, default=None, help="Segment end (s); defaults to video end")
    parser.add_argument(
        "--global",
        dest="global_crop",
        action="store_true",
        help="Compute one global crop for the whole video instead of a segment crop map",
    )
    parser.add_argument("--skip-until", type=float, default=0.0, help="Intro to skip for --global (s)")
    parser.add_argument("--words", default=None, help="JSON list of {start,end,text,speaker} words")
    parser.add_argument("--preset", default=None, help="Constraints preset (clip|source)")
    parser.add_argument("--preview", default=None, help="Write a PNG/JPEG of the first crop over its frame")
    parser.add_argument(
        "--mock", action="store_true", help="Use dummy detector (no model download)"
    )
    return parser


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    raise SystemExit(run(build_parser().parse_args()))
